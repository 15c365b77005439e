"""Unit tests for post-commit event publication."""

import json
from unittest.mock import AsyncMock, patch

from src.p2p_common.publisher import RedisEventPublisher, publish_safely
from tests.fakes import FakePublisher


class TestPublishSafely:
    async def test_publishes(self) -> None:
        publisher = FakePublisher()
        assert await publish_safely(publisher, "trade.created", {"id": "t-1"})
        assert publisher.published == [("trade.created", {"id": "t-1"})]

    async def test_failure_is_swallowed_and_reported(self) -> None:
        assert not await publish_safely(FakePublisher(fail=True), "trade.created", {"id": "t"})

    async def test_no_publisher(self) -> None:
        assert not await publish_safely(None, "trade.created", {})


class TestRedisEventPublisher:
    async def test_publishes_json_on_prefixed_channel(self) -> None:
        redis = AsyncMock()
        with patch("src.p2p_common.publisher.get_redis", AsyncMock(return_value=redis)):
            await RedisEventPublisher().publish("trade.expired", {"id": "t-1", "status": "EXPIRED"})

        channel, body = redis.publish.await_args.args
        assert channel == "p2p:trade.expired"
        assert json.loads(body) == {"id": "t-1", "status": "EXPIRED"}
