"""Escrow settlement — the fund movements shared by trades, disputes and the sweeper.

Every function runs inside the caller's transaction with the trade (and then
its offer) already locked. Nothing here commits.

Where the escrowed amount goes when a trade does not complete:

    offer ACTIVE, SELL   offer.available += amount; hold RETURNED, the funds stay
                         reserved as the offer's reservation (ledger untouched)
    offer ACTIVE, BUY    offer.available += amount; hold released to the seller
    offer not ACTIVE     offer.total -= amount; hold released to the seller
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_audit.domain.models import AuditEvent
from src.p2p_audit.domain.repository import AuditTrailProtocol
from src.p2p_common.datetime_utils import utc_now
from src.p2p_common.enums import AuditEntityType, EscrowHoldStatus, TradeStatus
from src.p2p_common.errors import LedgerInvariantViolationError
from src.p2p_common.tracing import OperationTracer
from src.p2p_ledger.domain.models import LedgerRef
from src.p2p_ledger.domain.repository import LedgerProtocol
from src.p2p_offer.domain.models import Offer
from src.p2p_offer.domain.repository import OfferRepositoryProtocol
from src.p2p_trade.domain.models import EscrowHold, Trade
from src.p2p_trade.domain.repository import TradeRepositoryProtocol
from src.p2p_trade.domain.state_machine import apply_transition


def trade_ref(trade: Trade, movement: str) -> LedgerRef:
    return LedgerRef("TRADE", trade.id, f"trade:{trade.id}:{movement}")


class EscrowSettlement:
    def __init__(
        self,
        trades: TradeRepositoryProtocol,
        offers: OfferRepositoryProtocol,
        ledger: LedgerProtocol,
        audit: AuditTrailProtocol,
    ) -> None:
        self._trades = trades
        self._offers = offers
        self._ledger = ledger
        self._audit = audit

    async def transition(
        self,
        db: AsyncSession,
        trade: Trade,
        target: str,
        actor_id: str | None,
        reason: str | None = None,
    ) -> None:
        """Apply one state-machine edge in memory and audit it; the caller persists."""
        before = trade.snapshot()
        previous = apply_transition(trade, target, utc_now())
        await self._audit.record(
            db,
            AuditEvent(
                entity_type=AuditEntityType.TRADE,
                entity_id=trade.id,
                action="STATUS_CHANGED",
                actor_id=actor_id,
                previous_value={**before, "status": previous},
                new_value=trade.snapshot(),
                reason=reason,
            ),
        )

    async def open_hold(
        self, db: AsyncSession, trade: Trade, actor_id: str | None, tracer: OperationTracer
    ) -> EscrowHold:
        """Record the escrow hold for `trade`; the ledger reservation is the caller's job."""
        tracer.step("Holding %s %s in escrow for trade %s", trade.amount, trade.asset, trade.id)
        hold = EscrowHold(
            trade_id=trade.id,
            seller_id=trade.seller_id,
            asset=trade.asset,
            amount=trade.amount,
        )
        await self._trades.insert_hold(db, hold)
        trade.escrow_amount = trade.amount
        await self._audit_hold(db, hold, None, actor_id)
        return hold

    async def release_to_buyer(
        self,
        db: AsyncSession,
        trade: Trade,
        offer: Offer,
        actor_id: str | None,
        tracer: OperationTracer,
        reason: str | None = None,
    ) -> None:
        """Seller reserved -> buyer available, then ESCROW_RELEASED -> COMPLETED."""
        hold = await self._trades.get_hold_for_update(db, trade.id)
        if hold is None or not hold.is_held or hold.amount != trade.escrow_amount:
            raise LedgerInvariantViolationError(
                "trade has no matching escrow hold to release",
                trade_id=trade.id,
                escrow_amount=trade.escrow_amount,
                hold_status=hold.status if hold else None,
                hold_amount=hold.amount if hold else None,
            )

        tracer.step(
            "Transferring %s %s from %s to %s",
            hold.amount, trade.asset, trade.seller_id, trade.buyer_id,
        )
        await self._ledger.transfer(
            db, trade.seller_id, trade.buyer_id, trade.asset, hold.amount,
            trade_ref(trade, "release"),
        )
        await self._mark_hold(db, hold, EscrowHoldStatus.RELEASED, actor_id)
        trade.escrow_amount = 0

        # Capacity consumed for good
        await self._shrink_offer_total(db, offer, trade)

        await self.transition(db, trade, TradeStatus.ESCROW_RELEASED, actor_id, reason)
        await self.transition(db, trade, TradeStatus.COMPLETED, actor_id, reason)

    async def return_to_seller(
        self,
        db: AsyncSession,
        trade: Trade,
        offer: Offer,
        actor_id: str | None,
        tracer: OperationTracer,
    ) -> None:
        """Give the trade amount back to the seller side; the caller applies the status edge."""
        hold = await self._trades.get_hold_for_update(db, trade.id)
        held = hold is not None and hold.is_held

        if offer.is_active:
            restored = offer.bounds.available + trade.amount
            if restored > offer.bounds.total:
                raise LedgerInvariantViolationError(
                    "offer available would exceed total",
                    offer_id=offer.id,
                    trade_id=trade.id,
                    available=offer.bounds.available,
                    amount=trade.amount,
                    total=offer.bounds.total,
                )
            tracer.step("Restoring %s to offer %s pool", trade.amount, offer.id)
            offer.bounds.available = restored
            offer.updated_at = utc_now()
            await self._offers.update(db, offer)
            if held and offer.is_sell:
                # Hold folds back into the offer reservation
                await self._mark_hold(db, hold, EscrowHoldStatus.RETURNED, actor_id)
            elif held:
                await self._release_hold(db, trade, hold, actor_id, tracer)
        else:
            await self._shrink_offer_total(db, offer, trade)
            if held:
                await self._release_hold(db, trade, hold, actor_id, tracer)

        trade.escrow_amount = 0

    async def _release_hold(
        self,
        db: AsyncSession,
        trade: Trade,
        hold: EscrowHold,
        actor_id: str | None,
        tracer: OperationTracer,
    ) -> None:
        tracer.step("Releasing %s %s escrow to seller %s", hold.amount, hold.asset, hold.seller_id)
        await self._ledger.release(
            db, hold.seller_id, hold.asset, hold.amount, trade_ref(trade, "return")
        )
        await self._mark_hold(db, hold, EscrowHoldStatus.RETURNED, actor_id)

    async def _shrink_offer_total(self, db: AsyncSession, offer: Offer, trade: Trade) -> None:
        remaining = offer.bounds.total - trade.amount
        if remaining < offer.bounds.available:
            raise LedgerInvariantViolationError(
                "offer total would drop below available",
                offer_id=offer.id,
                trade_id=trade.id,
                total=offer.bounds.total,
                available=offer.bounds.available,
                amount=trade.amount,
            )
        offer.bounds.total = remaining
        offer.updated_at = utc_now()
        await self._offers.update(db, offer)

    async def _mark_hold(
        self, db: AsyncSession, hold: EscrowHold, status: str, actor_id: str | None
    ) -> None:
        previous = hold.status
        hold.status = status
        await self._trades.update_hold(db, hold)
        await self._audit_hold(db, hold, previous, actor_id)

    async def _audit_hold(
        self, db: AsyncSession, hold: EscrowHold, previous: str | None, actor_id: str | None
    ) -> None:
        await self._audit.record(
            db,
            AuditEvent(
                entity_type=AuditEntityType.ESCROW,
                entity_id=hold.trade_id,
                action=f"ESCROW_{EscrowHoldStatus(hold.status).value}",
                actor_id=actor_id,
                previous_value={"status": previous} if previous else {},
                new_value={"status": hold.status, "amount": hold.amount},
            ),
        )
