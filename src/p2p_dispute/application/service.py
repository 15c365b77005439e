"""DisputeApplicationService — freezing a trade and settling it by authority.

A disputed trade accepts no buyer or seller action; only a resolver holding
p2p.dispute.resolve can move it on, either releasing escrow to the buyer or
returning it to the seller side. A resolved dispute is immutable.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_audit.domain.models import AuditEvent
from src.p2p_audit.domain.repository import AuditTrailProtocol
from src.p2p_audit.infrastructure.audit_writer import AuditRepository
from src.p2p_common.datetime_utils import utc_now
from src.p2p_common.enums import (
    AuditEntityType,
    DisputeResolution,
    DisputeStatus,
    TradeStatus,
)
from src.p2p_common.errors import (
    DisputeAlreadyResolvedError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    NotAuthorizedError,
)
from src.p2p_common.id_generator import generate_id
from src.p2p_common.publisher import (
    EventPublisherProtocol,
    RedisEventPublisher,
    publish_safely,
)
from src.p2p_common.tracing import OperationTracer, ensure_tracer
from src.p2p_common.unit_of_work import committing
from src.p2p_dispute.domain.models import Dispute, DisputeEvidence
from src.p2p_dispute.domain.repository import DisputeRepositoryProtocol
from src.p2p_dispute.infrastructure.persistence import DisputeRepository
from src.p2p_gateway.auth.permissions import (
    DISPUTE_RESOLVE,
    Actor,
    AuthorizerProtocol,
    RoleAuthorizer,
    require_owner_or_permission,
    require_permission,
)
from src.p2p_ledger.domain.repository import LedgerProtocol
from src.p2p_ledger.infrastructure.persistence import LedgerRepository
from src.p2p_offer.domain.repository import OfferRepositoryProtocol
from src.p2p_offer.infrastructure.persistence import OfferRepository
from src.p2p_trade.application.escrow import EscrowSettlement
from src.p2p_trade.domain.models import Trade
from src.p2p_trade.domain.repository import TradeRepositoryProtocol
from src.p2p_trade.infrastructure.persistence import TradeRepository

_RESOLUTIONS = frozenset(r.value for r in DisputeResolution)


class DisputeApplicationService:
    def __init__(
        self,
        disputes: DisputeRepositoryProtocol | None = None,
        trades: TradeRepositoryProtocol | None = None,
        offers: OfferRepositoryProtocol | None = None,
        ledger: LedgerProtocol | None = None,
        audit: AuditTrailProtocol | None = None,
        authorizer: AuthorizerProtocol | None = None,
        publisher: EventPublisherProtocol | None = None,
    ) -> None:
        self._disputes: DisputeRepositoryProtocol = disputes or DisputeRepository()
        self._trades: TradeRepositoryProtocol = trades or TradeRepository()
        self._offers: OfferRepositoryProtocol = offers or OfferRepository()
        self._ledger: LedgerProtocol = ledger or LedgerRepository()
        self._audit: AuditTrailProtocol = audit or AuditRepository()
        self._authorizer: AuthorizerProtocol = authorizer or RoleAuthorizer()
        self._publisher: EventPublisherProtocol = publisher or RedisEventPublisher()
        self._escrow = EscrowSettlement(self._trades, self._offers, self._ledger, self._audit)

    async def get_dispute(self, db: AsyncSession, dispute_id: str, actor: Actor) -> Dispute:
        dispute = await self._disputes.get(db, dispute_id)
        if dispute is None:
            raise EntityNotFoundError("DISPUTE", dispute_id)
        trade = await self._trades.get(db, dispute.trade_id)
        participants = trade.participants if trade else ()
        require_owner_or_permission(self._authorizer, actor, participants, DISPUTE_RESOLVE)
        return dispute

    async def raise_dispute(
        self,
        db: AsyncSession,
        trade_id: str,
        actor: Actor,
        reason: str,
        tracer: OperationTracer | None = None,
    ) -> Dispute:
        tracer = ensure_tracer(tracer, "raise_dispute")
        async with committing(db, tracer):
            tracer.step("Locking trade %s", trade_id)
            trade = await self._trades.get_for_update(db, trade_id)
            if trade is None:
                raise EntityNotFoundError("TRADE", trade_id)
            if not trade.is_participant(actor.id):
                raise NotAuthorizedError(actor.id, "p2p.trade.dispute")

            now = utc_now()
            dispute = Dispute(
                id=generate_id(),
                trade_id=trade.id,
                raised_by=actor.id,
                reason=reason,
                created_at=now,
                updated_at=now,
            )
            # Rejects anything but ESCROW / PAYMENT_SENT before touching storage
            await self._escrow.transition(db, trade, TradeStatus.DISPUTED, actor.id, reason)
            await self._disputes.insert(db, dispute)
            trade.dispute_id = dispute.id
            await self._trades.update(db, trade)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.DISPUTE,
                    entity_id=dispute.id,
                    action="DISPUTE_RAISED",
                    actor_id=actor.id,
                    new_value={**dispute.snapshot(), "trade_id": trade.id},
                    reason=reason,
                ),
            )

        tracer.success("Dispute %s raised on trade %s", dispute.id, trade.id)
        await publish_safely(
            self._publisher, "trade.disputed", {"id": trade.id, "dispute_id": dispute.id}
        )
        return dispute

    async def add_evidence(
        self,
        db: AsyncSession,
        dispute_id: str,
        actor: Actor,
        content: str,
        tracer: OperationTracer | None = None,
    ) -> Dispute:
        tracer = ensure_tracer(tracer, "add_evidence")
        async with committing(db, tracer):
            dispute = await self._lock_dispute(db, dispute_id, tracer)
            trade = await self._trades.get(db, dispute.trade_id)
            participants = trade.participants if trade else ()
            require_owner_or_permission(self._authorizer, actor, participants, DISPUTE_RESOLVE)
            if not dispute.is_open:
                raise DisputeAlreadyResolvedError(dispute.id, dispute.resolution)

            evidence = DisputeEvidence(submitted_by=actor.id, content=content, created_at=utc_now())
            await self._disputes.add_evidence(db, dispute.id, evidence)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.DISPUTE,
                    entity_id=dispute.id,
                    action="EVIDENCE_ADDED",
                    actor_id=actor.id,
                    previous_value=dispute.snapshot(),
                    new_value={**dispute.snapshot(), "evidence_count": len(dispute.evidence) + 1},
                ),
            )
        dispute.evidence.append(evidence)

        tracer.success("Evidence added to dispute %s", dispute.id)
        return dispute

    async def resolve_dispute(
        self,
        db: AsyncSession,
        dispute_id: str,
        resolution: str,
        actor: Actor,
        note: str | None = None,
        tracer: OperationTracer | None = None,
    ) -> Dispute:
        tracer = ensure_tracer(tracer, "resolve_dispute")
        require_permission(self._authorizer, actor, DISPUTE_RESOLVE)

        async with committing(db, tracer):
            dispute = await self._lock_dispute(db, dispute_id, tracer)
            if not dispute.is_open:
                raise DisputeAlreadyResolvedError(dispute.id, dispute.resolution)
            if resolution not in _RESOLUTIONS:
                raise InvalidStateTransitionError(dispute.status, resolution, entity_type="DISPUTE")

            trade = await self._lock_trade(db, dispute.trade_id, tracer)
            if trade.status != TradeStatus.DISPUTED:
                raise InvalidStateTransitionError(trade.status, resolution)
            offer = await self._offers.get_for_update(db, trade.offer_id)
            if offer is None:
                raise EntityNotFoundError("OFFER", trade.offer_id)

            if resolution == DisputeResolution.RELEASED_TO_BUYER:
                await self._escrow.release_to_buyer(db, trade, offer, actor.id, tracer, note)
            else:
                await self._escrow.return_to_seller(db, trade, offer, actor.id, tracer)
                await self._escrow.transition(db, trade, TradeStatus.CANCELLED, actor.id, note)
            await self._trades.update(db, trade)

            before = dispute.snapshot()
            dispute.status = DisputeStatus.RESOLVED
            dispute.resolution = resolution
            dispute.resolved_by = actor.id
            dispute.resolved_at = utc_now()
            dispute.resolution_note = note
            dispute.updated_at = dispute.resolved_at
            await self._disputes.update(db, dispute)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.DISPUTE,
                    entity_id=dispute.id,
                    action="DISPUTE_RESOLVED",
                    actor_id=actor.id,
                    previous_value=before,
                    new_value=dispute.snapshot(),
                    reason=note,
                ),
            )

        tracer.success("Dispute %s resolved: %s", dispute.id, resolution)
        await publish_safely(
            self._publisher,
            "dispute.resolved",
            {"id": dispute.id, "trade_id": trade.id, "resolution": resolution},
        )
        return dispute

    async def _lock_dispute(
        self, db: AsyncSession, dispute_id: str, tracer: OperationTracer
    ) -> Dispute:
        tracer.step("Locking dispute %s", dispute_id)
        dispute = await self._disputes.get_for_update(db, dispute_id)
        if dispute is None:
            raise EntityNotFoundError("DISPUTE", dispute_id)
        return dispute

    async def _lock_trade(self, db: AsyncSession, trade_id: str, tracer: OperationTracer) -> Trade:
        tracer.step("Locking trade %s", trade_id)
        trade = await self._trades.get_for_update(db, trade_id)
        if trade is None:
            raise EntityNotFoundError("TRADE", trade_id)
        return trade
