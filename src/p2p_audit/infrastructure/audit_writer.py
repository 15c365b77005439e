"""DB helpers for p2p_audit_events.

Called from the offer, trade, dispute and sweeper services within their
transaction, so an audit row commits or rolls back together with the
mutation it describes.
"""

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_audit.domain.models import AuditEvent

_INSERT_AUDIT_SQL = text("""
    INSERT INTO p2p_audit_events
        (entity_type, entity_id, action, actor_id, previous_value, new_value, reason)
    VALUES
        (:entity_type, :entity_id, :action, :actor_id,
         CAST(:previous_value AS JSONB), CAST(:new_value AS JSONB), :reason)
""")

_LIST_AUDIT_SQL = text("""
    SELECT id, entity_type, entity_id, action, actor_id,
           previous_value, new_value, reason, created_at
    FROM p2p_audit_events
    WHERE entity_type = :entity_type AND entity_id = :entity_id
    ORDER BY id ASC
""")


def _load_json(value: Any) -> dict[str, Any]:
    # asyncpg hands JSONB back as text unless a codec is registered
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


async def write_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    actor_id: str | None,
    previous_value: dict[str, Any],
    new_value: dict[str, Any],
    db: AsyncSession,
    reason: str | None = None,
) -> None:
    """Insert one row into p2p_audit_events within the caller's transaction."""
    await db.execute(
        _INSERT_AUDIT_SQL,
        {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "actor_id": actor_id,
            "previous_value": json.dumps(previous_value, default=str),
            "new_value": json.dumps(new_value, default=str),
            "reason": reason,
        },
    )


class AuditRepository:
    """Concrete implementation of AuditTrailProtocol."""

    async def record(self, db: AsyncSession, event: AuditEvent) -> None:
        await write_audit_event(
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            action=event.action,
            actor_id=event.actor_id,
            previous_value=event.previous_value,
            new_value=event.new_value,
            db=db,
            reason=event.reason,
        )

    async def list_for_entity(
        self, db: AsyncSession, entity_type: str, entity_id: str
    ) -> list[AuditEvent]:
        rows = (
            await db.execute(
                _LIST_AUDIT_SQL, {"entity_type": entity_type, "entity_id": entity_id}
            )
        ).fetchall()
        return [
            AuditEvent(
                id=r.id,
                entity_type=r.entity_type,
                entity_id=r.entity_id,
                action=r.action,
                actor_id=r.actor_id,
                previous_value=_load_json(r.previous_value),
                new_value=_load_json(r.new_value),
                reason=r.reason,
                created_at=r.created_at,
            )
            for r in rows
        ]
