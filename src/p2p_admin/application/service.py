"""Admin application service — operator reads and the manual sweep trigger.

Admin mutations on offers, trades and disputes go through the same services
as user requests; only the permission differs.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_admin.application.invariants import verify_escrow_invariants
from src.p2p_audit.domain.repository import AuditTrailProtocol
from src.p2p_audit.infrastructure.audit_writer import AuditRepository
from src.p2p_common.database import async_session_factory
from src.p2p_common.enums import AuditEntityType
from src.p2p_common.errors import EntityNotFoundError
from src.p2p_gateway.auth.permissions import (
    AUDIT_VIEW,
    SWEEP_RUN,
    Actor,
    AuthorizerProtocol,
    RoleAuthorizer,
    require_permission,
)
from src.p2p_sweeper.sweeper import SessionFactory, SweepResult, run_timeout_sweep

_ENTITY_TYPES = frozenset(t.value for t in AuditEntityType)


class AdminService:
    def __init__(
        self,
        audit: AuditTrailProtocol | None = None,
        authorizer: AuthorizerProtocol | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._audit: AuditTrailProtocol = audit or AuditRepository()
        self._authorizer: AuthorizerProtocol = authorizer or RoleAuthorizer()
        self._session_factory: SessionFactory = session_factory or async_session_factory

    async def verify_invariants(self, db: AsyncSession, actor: Actor) -> dict[str, Any]:
        require_permission(self._authorizer, actor, AUDIT_VIEW)
        violations = await verify_escrow_invariants(db)
        return {"ok": not violations, "violations": violations}

    async def list_audit(
        self, db: AsyncSession, actor: Actor, entity_type: str, entity_id: str
    ) -> list[dict[str, Any]]:
        require_permission(self._authorizer, actor, AUDIT_VIEW)
        entity_type = entity_type.upper()
        if entity_type not in _ENTITY_TYPES:
            raise EntityNotFoundError(entity_type, entity_id)
        events = await self._audit.list_for_entity(db, entity_type, entity_id)
        return [
            {
                "id": e.id,
                "action": e.action,
                "actor_id": e.actor_id,
                "previous_value": e.previous_value,
                "new_value": e.new_value,
                "reason": e.reason,
                "created_at": e.created_at.isoformat() if e.created_at else None,
            }
            for e in events
        ]

    async def run_sweep(self, actor: Actor) -> SweepResult:
        require_permission(self._authorizer, actor, SWEEP_RUN)
        return await run_timeout_sweep(self._session_factory)
