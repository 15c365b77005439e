"""Timeout sweeper — force-expires trades whose deadline has passed.

Stateless: each run re-reads candidates, so running it twice on the same data
ends in the same state as running it once. Every candidate gets its own short
transaction guarded by status + version; a trade a user touched in the
meantime is skipped, not overwritten. One trade failing never stops the sweep.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.p2p_audit.domain.models import AuditEvent
from src.p2p_audit.domain.repository import AuditTrailProtocol
from src.p2p_audit.infrastructure.audit_writer import AuditRepository
from src.p2p_common.datetime_utils import utc_now
from src.p2p_common.enums import AuditEntityType, TradeStatus
from src.p2p_common.errors import EntityNotFoundError
from src.p2p_common.publisher import (
    EventPublisherProtocol,
    RedisEventPublisher,
    publish_safely,
)
from src.p2p_common.tracing import OperationTracer, ensure_tracer
from src.p2p_common.unit_of_work import committing
from src.p2p_ledger.domain.repository import LedgerProtocol
from src.p2p_ledger.infrastructure.persistence import LedgerRepository
from src.p2p_offer.domain.repository import OfferRepositoryProtocol
from src.p2p_offer.infrastructure.persistence import OfferRepository
from src.p2p_trade.application.escrow import EscrowSettlement
from src.p2p_trade.domain.models import Trade
from src.p2p_trade.domain.repository import TradeRepositoryProtocol
from src.p2p_trade.domain.state_machine import (
    EXPIRABLE_BY_PAYMENT_DEADLINE,
    check_transition,
    is_overdue,
)
from src.p2p_trade.infrastructure.persistence import TradeRepository

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


@dataclass
class SweepResult:
    scanned: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0


class TimeoutSweeper:
    def __init__(
        self,
        trades: TradeRepositoryProtocol | None = None,
        offers: OfferRepositoryProtocol | None = None,
        ledger: LedgerProtocol | None = None,
        audit: AuditTrailProtocol | None = None,
        publisher: EventPublisherProtocol | None = None,
    ) -> None:
        self._trades: TradeRepositoryProtocol = trades or TradeRepository()
        self._offers: OfferRepositoryProtocol = offers or OfferRepository()
        self._audit: AuditTrailProtocol = audit or AuditRepository()
        self._publisher: EventPublisherProtocol = publisher or RedisEventPublisher()
        self._escrow = EscrowSettlement(
            self._trades, self._offers, ledger or LedgerRepository(), self._audit
        )

    async def run(
        self,
        session_factory: SessionFactory,
        now: datetime | None = None,
        tracer: OperationTracer | None = None,
        limit: int | None = None,
    ) -> SweepResult:
        tracer = ensure_tracer(tracer, "timeout_sweep")
        now = now or utc_now()
        result = SweepResult()

        async with session_factory() as db:
            candidates = await self._trades.list_expiry_candidates(
                db, now, limit or settings.P2P_SWEEP_BATCH_LIMIT
            )
        result.scanned = len(candidates)
        tracer.step("Sweep at %s found %d candidate(s)", now.isoformat(), result.scanned)

        for candidate in candidates:
            async with session_factory() as db:
                try:
                    expired = await self._expire_one(db, candidate, now, tracer)
                except Exception:
                    logger.exception("Timeout sweep failed for trade %s", candidate.id)
                    result.failed += 1
                    continue
            if expired:
                result.expired += 1
                await publish_safely(
                    self._publisher,
                    "trade.expired",
                    {"id": candidate.id, "offer_id": candidate.offer_id, "status": "EXPIRED"},
                )
            else:
                result.skipped += 1

        if result.failed:
            tracer.fail(
                "Sweep expired %d, skipped %d, failed %d of %d",
                result.expired, result.skipped, result.failed, result.scanned,
            )
        else:
            tracer.success(
                "Sweep expired %d, skipped %d of %d",
                result.expired, result.skipped, result.scanned,
            )
        return result

    async def _expire_one(
        self, db: AsyncSession, candidate: Trade, now: datetime, tracer: OperationTracer
    ) -> bool:
        if not is_overdue(candidate, now):
            return False
        check_transition(candidate.status, TradeStatus.EXPIRED)

        async with committing(db, tracer):
            won = await self._trades.expire_if_unchanged(
                db, candidate.id, candidate.status, candidate.version, now
            )
            if not won:
                tracer.step("Trade %s changed since scan, skipping", candidate.id)
                return False

            trade = await self._trades.get_for_update(db, candidate.id)
            if trade is None:
                raise EntityNotFoundError("TRADE", candidate.id)
            offer = await self._offers.get_for_update(db, trade.offer_id)
            if offer is None:
                raise EntityNotFoundError("OFFER", trade.offer_id)

            await self._escrow.return_to_seller(db, trade, offer, None, tracer)
            await self._trades.update(db, trade)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.TRADE,
                    entity_id=trade.id,
                    action="STATUS_CHANGED",
                    actor_id=None,
                    previous_value=candidate.snapshot(),
                    new_value=trade.snapshot(),
                    reason=_expiry_reason(candidate),
                ),
            )
        tracer.step("Trade %s expired from %s", candidate.id, candidate.status)
        return True


def _expiry_reason(trade: Trade) -> str:
    if trade.status in EXPIRABLE_BY_PAYMENT_DEADLINE:
        return "payment deadline passed"
    return "trade expiry passed"


async def run_timeout_sweep(
    session_factory: SessionFactory,
    now: datetime | None = None,
    tracer: OperationTracer | None = None,
    limit: int | None = None,
    sweeper: TimeoutSweeper | None = None,
) -> SweepResult:
    """One sweep with the default repositories unless `sweeper` is given."""
    return await (sweeper or TimeoutSweeper()).run(session_factory, now, tracer, limit)
