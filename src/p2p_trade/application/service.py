"""TradeApplicationService — opens trades against offers and drives them to settlement.

Trade-level operations lock the trade first, then its offer. The escrow side
effects live in EscrowSettlement so disputes and the sweeper settle the same
way user actions do.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.p2p_audit.domain.models import AuditEvent
from src.p2p_audit.domain.repository import AuditTrailProtocol
from src.p2p_audit.infrastructure.audit_writer import AuditRepository
from src.p2p_common.datetime_utils import is_past, minutes_from, utc_now
from src.p2p_common.enums import AuditEntityType, OfferStatus, TradeStatus
from src.p2p_common.errors import (
    EntityNotFoundError,
    InsufficientFundsError,
    InvalidOfferParametersError,
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
from src.p2p_common.units import asset_decimals, trade_total
from src.p2p_gateway.auth.permissions import (
    TRADE_MANAGE,
    TRADE_VIEW,
    Actor,
    AuthorizerProtocol,
    RoleAuthorizer,
    require_owner_or_permission,
)
from src.p2p_ledger.domain.repository import LedgerProtocol
from src.p2p_ledger.infrastructure.persistence import LedgerRepository
from src.p2p_offer.domain.models import Offer
from src.p2p_offer.domain.repository import OfferRepositoryProtocol
from src.p2p_offer.infrastructure.persistence import OfferRepository
from src.p2p_trade.application.escrow import EscrowSettlement, trade_ref
from src.p2p_trade.domain.models import Trade
from src.p2p_trade.domain.repository import TradeRepositoryProtocol
from src.p2p_trade.infrastructure.persistence import TradeRepository

_CANCELLABLE = frozenset({TradeStatus.PENDING, TradeStatus.ACTIVE})


class TradeApplicationService:
    def __init__(
        self,
        trades: TradeRepositoryProtocol | None = None,
        offers: OfferRepositoryProtocol | None = None,
        ledger: LedgerProtocol | None = None,
        audit: AuditTrailProtocol | None = None,
        authorizer: AuthorizerProtocol | None = None,
        publisher: EventPublisherProtocol | None = None,
    ) -> None:
        self._trades: TradeRepositoryProtocol = trades or TradeRepository()
        self._offers: OfferRepositoryProtocol = offers or OfferRepository()
        self._ledger: LedgerProtocol = ledger or LedgerRepository()
        self._audit: AuditTrailProtocol = audit or AuditRepository()
        self._authorizer: AuthorizerProtocol = authorizer or RoleAuthorizer()
        self._publisher: EventPublisherProtocol = publisher or RedisEventPublisher()
        self._escrow = EscrowSettlement(self._trades, self._offers, self._ledger, self._audit)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_trade(self, db: AsyncSession, trade_id: str, actor: Actor) -> Trade:
        trade = await self._trades.get(db, trade_id)
        if trade is None:
            raise EntityNotFoundError("TRADE", trade_id)
        require_owner_or_permission(self._authorizer, actor, trade.participants, TRADE_VIEW)
        return trade

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_trade(
        self,
        db: AsyncSession,
        offer_id: str,
        actor: Actor,
        amount: int,
        method_id: str | None = None,
        tracer: OperationTracer | None = None,
    ) -> Trade:
        """Claim `amount` of an offer's capacity and open a trade on it.

        SELL offer: the claimed amount is already reserved for the offer, so it
        moves straight into an escrow hold and the trade lands in ESCROW.
        BUY offer: the counterparty sells; the trade waits in ACTIVE until the
        seller funds escrow.
        """
        tracer = ensure_tracer(tracer, "create_trade")
        async with committing(db, tracer):
            tracer.step("Locking offer %s", offer_id)
            offer = await self._offers.get_for_update(db, offer_id)
            if offer is None:
                raise EntityNotFoundError("OFFER", offer_id)
            if offer.status != OfferStatus.ACTIVE:
                raise InvalidStateTransitionError(offer.status, "TRADE_OPENED", entity_type="OFFER")
            if actor.id == offer.owner_id:
                raise NotAuthorizedError(actor.id, "p2p.trade.open_own_offer")
            _check_trade_amount(offer, amount)
            if method_id is not None and method_id not in offer.methods:
                raise InvalidOfferParametersError(
                    f"settlement method {method_id} is not accepted by offer {offer.id}"
                )

            now = utc_now()
            if offer.is_sell:
                seller_id, buyer_id = offer.owner_id, actor.id
            else:
                seller_id, buyer_id = actor.id, offer.owner_id
            window = offer.payment_window_minutes or settings.P2P_PAYMENT_WINDOW_MINUTES
            trade = Trade(
                id=generate_id(),
                offer_id=offer.id,
                buyer_id=buyer_id,
                seller_id=seller_id,
                asset=offer.asset,
                counter_asset=offer.counter_asset,
                amount=amount,
                price=offer.price_rule.price,
                total=trade_total(amount, offer.price_rule.price, asset_decimals(offer.asset)),
                method_id=method_id,
                payment_deadline=minutes_from(now, window),
                expires_at=minutes_from(now, settings.P2P_TRADE_EXPIRY_MINUTES),
                created_at=now,
                updated_at=now,
            )

            tracer.step(
                "Claiming %s of offer %s (available %s)", amount, offer.id, offer.bounds.available
            )
            offer.bounds.available -= amount
            offer.updated_at = now
            await self._offers.update(db, offer)

            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.TRADE,
                    entity_id=trade.id,
                    action="TRADE_CREATED",
                    actor_id=actor.id,
                    new_value=trade.snapshot(),
                ),
            )
            await self._escrow.transition(db, trade, TradeStatus.ACTIVE, actor.id)
            await self._trades.insert(db, trade)
            if offer.is_sell:
                await self._escrow.open_hold(db, trade, actor.id, tracer)
                await self._escrow.transition(db, trade, TradeStatus.ESCROW, actor.id)
                await self._trades.update(db, trade)

        tracer.success("Trade %s opened on offer %s in %s", trade.id, offer.id, trade.status)
        await publish_safely(self._publisher, "trade.created", _trade_payload(trade))
        return trade

    async def fund_escrow(
        self,
        db: AsyncSession,
        trade_id: str,
        actor: Actor,
        tracer: OperationTracer | None = None,
    ) -> Trade:
        """Seller of a BUY-offer trade moves the trade amount into escrow."""
        tracer = ensure_tracer(tracer, "fund_escrow")
        async with committing(db, tracer):
            trade = await self._lock_trade(db, trade_id, tracer)
            if actor.id != trade.seller_id:
                raise NotAuthorizedError(actor.id, "p2p.trade.fund")
            if trade.status != TradeStatus.ACTIVE:
                raise InvalidStateTransitionError(trade.status, TradeStatus.ESCROW)
            if is_past(trade.payment_deadline, utc_now()):
                raise InvalidStateTransitionError(trade.status, TradeStatus.ESCROW)

            tracer.step(
                "Reserving %s %s from seller %s", trade.amount, trade.asset, trade.seller_id
            )
            await self._ledger.reserve(
                db, trade.seller_id, trade.asset, trade.amount, trade_ref(trade, "fund")
            )
            await self._escrow.open_hold(db, trade, actor.id, tracer)
            await self._escrow.transition(db, trade, TradeStatus.ESCROW, actor.id)
            await self._trades.update(db, trade)

        tracer.success("Trade %s funded", trade.id)
        await publish_safely(self._publisher, "trade.escrow_funded", _trade_payload(trade))
        return trade

    async def mark_payment_sent(
        self,
        db: AsyncSession,
        trade_id: str,
        actor: Actor,
        tracer: OperationTracer | None = None,
    ) -> Trade:
        tracer = ensure_tracer(tracer, "mark_payment_sent")
        async with committing(db, tracer):
            trade = await self._lock_trade(db, trade_id, tracer)
            if actor.id != trade.buyer_id:
                raise NotAuthorizedError(actor.id, "p2p.trade.mark_paid")
            if trade.status != TradeStatus.ESCROW:
                raise InvalidStateTransitionError(trade.status, TradeStatus.PAYMENT_SENT)
            if is_past(trade.payment_deadline, utc_now()):
                # Left for the sweeper to expire
                raise InvalidStateTransitionError(trade.status, TradeStatus.PAYMENT_SENT)

            await self._escrow.transition(db, trade, TradeStatus.PAYMENT_SENT, actor.id)
            await self._trades.update(db, trade)

        tracer.success("Trade %s marked paid", trade.id)
        await publish_safely(self._publisher, "trade.payment_sent", _trade_payload(trade))
        return trade

    async def confirm_receipt_and_release(
        self,
        db: AsyncSession,
        trade_id: str,
        actor: Actor,
        tracer: OperationTracer | None = None,
    ) -> Trade:
        tracer = ensure_tracer(tracer, "confirm_receipt_and_release")
        async with committing(db, tracer):
            trade = await self._lock_trade(db, trade_id, tracer)
            require_owner_or_permission(self._authorizer, actor, (trade.seller_id,), TRADE_MANAGE)
            # DISPUTED -> ESCROW_RELEASED is reserved for dispute resolution
            if trade.status != TradeStatus.PAYMENT_SENT:
                raise InvalidStateTransitionError(trade.status, TradeStatus.ESCROW_RELEASED)
            offer = await self._lock_offer(db, trade)
            await self._escrow.release_to_buyer(db, trade, offer, actor.id, tracer)
            await self._trades.update(db, trade)

        tracer.success("Trade %s completed", trade.id)
        await publish_safely(self._publisher, "trade.completed", _trade_payload(trade))
        return trade

    async def cancel_trade(
        self,
        db: AsyncSession,
        trade_id: str,
        actor: Actor,
        reason: str | None = None,
        tracer: OperationTracer | None = None,
    ) -> Trade:
        tracer = ensure_tracer(tracer, "cancel_trade")
        async with committing(db, tracer):
            trade = await self._lock_trade(db, trade_id, tracer)
            require_owner_or_permission(self._authorizer, actor, trade.participants, TRADE_MANAGE)
            if trade.status not in _CANCELLABLE:
                raise InvalidStateTransitionError(trade.status, TradeStatus.CANCELLED)
            offer = await self._lock_offer(db, trade)
            await self._escrow.return_to_seller(db, trade, offer, actor.id, tracer)
            await self._escrow.transition(db, trade, TradeStatus.CANCELLED, actor.id, reason)
            await self._trades.update(db, trade)

        tracer.success("Trade %s cancelled", trade.id)
        await publish_safely(self._publisher, "trade.cancelled", _trade_payload(trade))
        return trade

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _lock_trade(
        self, db: AsyncSession, trade_id: str, tracer: OperationTracer
    ) -> Trade:
        tracer.step("Locking trade %s", trade_id)
        trade = await self._trades.get_for_update(db, trade_id)
        if trade is None:
            raise EntityNotFoundError("TRADE", trade_id)
        return trade

    async def _lock_offer(self, db: AsyncSession, trade: Trade) -> Offer:
        offer = await self._offers.get_for_update(db, trade.offer_id)
        if offer is None:
            raise EntityNotFoundError("OFFER", trade.offer_id)
        return offer


def _check_trade_amount(offer: Offer, amount: int) -> None:
    bounds = offer.bounds
    if not (bounds.min_per_trade <= amount <= bounds.max_per_trade):
        raise InvalidOfferParametersError(
            f"amount {amount} outside per-trade bounds "
            f"[{bounds.min_per_trade}, {bounds.max_per_trade}]"
        )
    if amount > bounds.available:
        raise InsufficientFundsError(amount, bounds.available, offer.asset)


def _trade_payload(trade: Trade) -> dict[str, object]:
    return {
        "id": trade.id,
        "offer_id": trade.offer_id,
        "buyer_id": trade.buyer_id,
        "seller_id": trade.seller_id,
        "asset": trade.asset,
        **trade.snapshot(),
    }
