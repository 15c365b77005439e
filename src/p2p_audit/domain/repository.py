"""AuditTrail Protocol — append-only; there is deliberately no update or delete."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_audit.domain.models import AuditEvent


class AuditTrailProtocol(Protocol):
    async def record(self, db: AsyncSession, event: AuditEvent) -> None: ...

    async def list_for_entity(
        self, db: AsyncSession, entity_type: str, entity_id: str
    ) -> list[AuditEvent]: ...
