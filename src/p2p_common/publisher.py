"""Post-commit event publication.

Publication is best-effort: it happens after the transaction has committed,
and a broker failure is logged but never rolls back or fails the operation.
The real-time fan-out (websocket, email, push) subscribes to these channels
outside this service.
"""

import json
import logging
from typing import Any, Protocol

from src.p2p_common.redis_client import get_redis

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "p2p:"


class EventPublisherProtocol(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class RedisEventPublisher:
    """Publishes JSON payloads on Redis Pub/Sub channel ``p2p:<topic>``."""

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        redis = await get_redis()
        await redis.publish(f"{CHANNEL_PREFIX}{topic}", json.dumps(payload, default=str))


async def publish_safely(
    publisher: EventPublisherProtocol | None, topic: str, payload: dict[str, Any]
) -> bool:
    """Publish and report success; failures are logged, never raised."""
    if publisher is None:
        return False
    try:
        await publisher.publish(topic, payload)
    except Exception:
        logger.warning("Failed to publish %s for %s", topic, payload.get("id"), exc_info=True)
        return False
    return True
