"""OfferApplicationService — offer lifecycle and the fund lock behind SELL offers.

A SELL offer keeps exactly `available` reserved in the owner's ledger while its
status is anything but CANCELLED; open trades hold the rest of `total` as
escrow. Every method follows lock → validate → mutate → commit, then publishes
best-effort after the commit.
"""

from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_audit.domain.models import AuditEvent
from src.p2p_audit.domain.repository import AuditTrailProtocol
from src.p2p_audit.infrastructure.audit_writer import AuditRepository
from src.p2p_common.datetime_utils import utc_now
from src.p2p_common.enums import AuditEntityType, OfferActivityType, OfferStatus
from src.p2p_common.errors import (
    EntityNotFoundError,
    InvalidAmountChangeError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    OfferHasActiveTradesError,
)
from src.p2p_common.id_generator import generate_id
from src.p2p_common.publisher import (
    EventPublisherProtocol,
    RedisEventPublisher,
    publish_safely,
)
from src.p2p_common.tracing import OperationTracer, ensure_tracer
from src.p2p_common.unit_of_work import committing
from src.p2p_gateway.auth.permissions import (
    OFFER_MANAGE,
    Actor,
    AuthorizerProtocol,
    RoleAuthorizer,
    require_owner_or_permission,
    require_permission,
)
from src.p2p_ledger.domain.models import LedgerRef
from src.p2p_ledger.domain.repository import LedgerProtocol
from src.p2p_ledger.infrastructure.persistence import LedgerRepository
from src.p2p_offer.domain.models import AmountBounds, Offer, OfferActivity, PriceRule
from src.p2p_offer.domain.repository import OfferRepositoryProtocol
from src.p2p_offer.domain.rules import (
    check_offer_transition,
    validate_bounds,
    validate_methods,
    validate_payment_window,
    validate_price_rule,
)
from src.p2p_offer.infrastructure.persistence import OfferRepository

# Statuses only an offer manager may put an offer into, or lift it out of
T = TypeVar("T")

_ADMIN_ONLY_STATUSES = frozenset({OfferStatus.DISABLED, OfferStatus.REJECTED})


@dataclass
class OfferChanges:
    """Owner-editable fields; None means unchanged."""

    total: int | None = None
    min_per_trade: int | None = None
    max_per_trade: int | None = None
    price: int | None = None
    methods: frozenset[str] | None = None
    payment_window_minutes: int | None = None


def offer_ref(offer: Offer, movement: str) -> LedgerRef:
    """Ledger reference for a movement made at the offer's current version."""
    return LedgerRef("OFFER", offer.id, f"offer:{offer.id}:v{offer.version}:{movement}")


class OfferApplicationService:
    def __init__(
        self,
        repo: OfferRepositoryProtocol | None = None,
        ledger: LedgerProtocol | None = None,
        audit: AuditTrailProtocol | None = None,
        authorizer: AuthorizerProtocol | None = None,
        publisher: EventPublisherProtocol | None = None,
    ) -> None:
        self._repo: OfferRepositoryProtocol = repo or OfferRepository()
        self._ledger: LedgerProtocol = ledger or LedgerRepository()
        self._audit: AuditTrailProtocol = audit or AuditRepository()
        self._authorizer: AuthorizerProtocol = authorizer or RoleAuthorizer()
        self._publisher: EventPublisherProtocol = publisher or RedisEventPublisher()

    async def get_offer(self, db: AsyncSession, offer_id: str) -> Offer:
        offer = await self._repo.get(db, offer_id)
        if offer is None:
            raise EntityNotFoundError("OFFER", offer_id)
        return offer

    async def create_offer(
        self,
        db: AsyncSession,
        actor: Actor,
        direction: str,
        asset: str,
        counter_asset: str,
        total: int,
        min_per_trade: int,
        max_per_trade: int,
        price: int,
        methods: frozenset[str],
        payment_window_minutes: int | None = None,
        tracer: OperationTracer | None = None,
    ) -> Offer:
        tracer = ensure_tracer(tracer, "create_offer")
        tracer.step("Validating %s offer for %s %s", direction, total, asset)
        bounds = AmountBounds(
            total=total,
            min_per_trade=min_per_trade,
            max_per_trade=max_per_trade,
            available=total,
        )
        rule = PriceRule(price=price)
        validate_bounds(bounds)
        validate_price_rule(rule)
        validate_methods(methods)
        validate_payment_window(payment_window_minutes)

        now = utc_now()
        offer = Offer(
            id=generate_id(),
            owner_id=actor.id,
            direction=direction,
            asset=asset.upper(),
            counter_asset=counter_asset.upper(),
            price_rule=rule,
            bounds=bounds,
            methods=frozenset(methods),
            status=OfferStatus.ACTIVE,
            payment_window_minutes=payment_window_minutes,
            created_at=now,
            updated_at=now,
        )
        created = OfferActivity(
            type=OfferActivityType.CREATED,
            actor_id=actor.id,
            previous_status=None,
            new_status=OfferStatus.ACTIVE,
            created_at=now,
        )

        async with committing(db, tracer):
            if offer.is_sell:
                tracer.step("Reserving %s %s for offer %s", total, offer.asset, offer.id)
                await self._ledger.reserve(
                    db, actor.id, offer.asset, total, offer_ref(offer, "create")
                )
            await self._repo.insert(db, offer)
            await self._repo.append_activity(db, offer.id, created)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.OFFER,
                    entity_id=offer.id,
                    action="OFFER_CREATED",
                    actor_id=actor.id,
                    new_value=offer.snapshot(),
                ),
            )
        offer.activity_log.append(created)

        tracer.success("Offer %s created", offer.id)
        await publish_safely(self._publisher, "offer.created", _offer_payload(offer))
        return offer

    async def update_offer(
        self,
        db: AsyncSession,
        offer_id: str,
        actor: Actor,
        changes: OfferChanges,
        tracer: OperationTracer | None = None,
    ) -> Offer:
        tracer = ensure_tracer(tracer, "update_offer")
        async with committing(db, tracer):
            tracer.step("Locking offer %s", offer_id)
            offer = await self._lock(db, offer_id)
            if actor.id != offer.owner_id:
                raise NotAuthorizedError(actor.id, "p2p.offer.update")
            if offer.status == OfferStatus.CANCELLED:
                raise InvalidStateTransitionError(offer.status, "UPDATED", entity_type="OFFER")

            before = offer.snapshot()
            delta = 0
            if changes.total is not None and changes.total != offer.bounds.total:
                delta = changes.total - offer.bounds.total
                available_after = offer.bounds.available + delta
                if available_after < 0:
                    raise InvalidAmountChangeError(offer.id, changes.total, available_after)

            bounds = AmountBounds(
                total=offer.bounds.total + delta,
                min_per_trade=_pick(changes.min_per_trade, offer.bounds.min_per_trade),
                max_per_trade=_pick(changes.max_per_trade, offer.bounds.max_per_trade),
                available=offer.bounds.available + delta,
            )
            rule = PriceRule(
                price=_pick(changes.price, offer.price_rule.price), model=offer.price_rule.model
            )
            methods = changes.methods if changes.methods is not None else offer.methods
            window = _pick(changes.payment_window_minutes, offer.payment_window_minutes)
            validate_bounds(bounds)
            validate_price_rule(rule)
            validate_methods(methods)
            validate_payment_window(window)

            if offer.holds_reservation and delta > 0:
                tracer.step("Reserving additional %s %s", delta, offer.asset)
                await self._ledger.reserve(
                    db, offer.owner_id, offer.asset, delta, offer_ref(offer, "increase")
                )
            elif offer.holds_reservation and delta < 0:
                tracer.step("Releasing %s %s", -delta, offer.asset)
                await self._ledger.release(
                    db, offer.owner_id, offer.asset, -delta, offer_ref(offer, "decrease")
                )

            offer.bounds = bounds
            offer.price_rule = rule
            offer.methods = frozenset(methods)
            offer.payment_window_minutes = window
            offer.updated_at = utc_now()
            await self._repo.update(db, offer)
            activity = OfferActivity(
                type=OfferActivityType.UPDATED,
                actor_id=actor.id,
                previous_status=offer.status,
                new_status=offer.status,
                created_at=offer.updated_at,
            )
            await self._repo.append_activity(db, offer.id, activity)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.OFFER,
                    entity_id=offer.id,
                    action="OFFER_UPDATED",
                    actor_id=actor.id,
                    previous_value=before,
                    new_value=offer.snapshot(),
                ),
            )
        offer.activity_log.append(activity)

        tracer.success("Offer %s updated", offer.id)
        await publish_safely(self._publisher, "offer.updated", _offer_payload(offer))
        return offer

    async def delete_offer(
        self,
        db: AsyncSession,
        offer_id: str,
        actor: Actor,
        tracer: OperationTracer | None = None,
    ) -> Offer:
        tracer = ensure_tracer(tracer, "delete_offer")
        async with committing(db, tracer):
            tracer.step("Locking offer %s", offer_id)
            offer = await self._lock(db, offer_id)
            require_owner_or_permission(
                self._authorizer, actor, (offer.owner_id,), OFFER_MANAGE
            )
            if offer.status == OfferStatus.CANCELLED:
                raise InvalidStateTransitionError(
                    offer.status, OfferStatus.CANCELLED, entity_type="OFFER"
                )
            open_trades = await self._repo.count_open_trades(db, offer.id)
            if open_trades > 0:
                raise OfferHasActiveTradesError(offer.id, open_trades)

            before = offer.snapshot()
            previous_status = offer.status
            await self._release_offer_reservation(db, offer, "cancel", tracer)
            offer.status = OfferStatus.CANCELLED
            offer.updated_at = utc_now()
            await self._repo.update(db, offer)
            activity = OfferActivity(
                type=OfferActivityType.DELETED,
                actor_id=actor.id,
                previous_status=previous_status,
                new_status=OfferStatus.CANCELLED,
                created_at=offer.updated_at,
            )
            await self._repo.append_activity(db, offer.id, activity)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.OFFER,
                    entity_id=offer.id,
                    action="OFFER_DELETED",
                    actor_id=actor.id,
                    previous_value=before,
                    new_value=offer.snapshot(),
                ),
            )
        offer.activity_log.append(activity)

        tracer.success("Offer %s cancelled", offer.id)
        await publish_safely(self._publisher, "offer.cancelled", _offer_payload(offer))
        return offer

    async def set_offer_status(
        self,
        db: AsyncSession,
        offer_id: str,
        target: str,
        actor: Actor,
        reason: str | None = None,
        tracer: OperationTracer | None = None,
    ) -> Offer:
        tracer = ensure_tracer(tracer, "set_offer_status")
        async with committing(db, tracer):
            tracer.step("Locking offer %s", offer_id)
            offer = await self._lock(db, offer_id)
            if offer.status in _ADMIN_ONLY_STATUSES or target in _ADMIN_ONLY_STATUSES:
                require_permission(self._authorizer, actor, OFFER_MANAGE)
            else:
                require_owner_or_permission(
                    self._authorizer, actor, (offer.owner_id,), OFFER_MANAGE
                )
            check_offer_transition(offer.status, target)

            before = offer.snapshot()
            previous_status = offer.status
            if target == OfferStatus.CANCELLED:
                await self._release_offer_reservation(db, offer, "cancel", tracer)
            elif previous_status == OfferStatus.CANCELLED and offer.is_sell:
                if offer.bounds.available > 0:
                    tracer.step(
                        "Re-reserving %s %s on reactivation", offer.bounds.available, offer.asset
                    )
                    await self._ledger.reserve(
                        db,
                        offer.owner_id,
                        offer.asset,
                        offer.bounds.available,
                        offer_ref(offer, "reactivate"),
                    )

            offer.status = target
            offer.updated_at = utc_now()
            await self._repo.update(db, offer)
            activity = OfferActivity(
                type=OfferActivityType.STATUS_CHANGED,
                actor_id=actor.id,
                previous_status=previous_status,
                new_status=target,
                created_at=offer.updated_at,
            )
            await self._repo.append_activity(db, offer.id, activity)
            await self._audit.record(
                db,
                AuditEvent(
                    entity_type=AuditEntityType.OFFER,
                    entity_id=offer.id,
                    action="OFFER_STATUS_CHANGED",
                    actor_id=actor.id,
                    previous_value=before,
                    new_value=offer.snapshot(),
                    reason=reason,
                ),
            )
        offer.activity_log.append(activity)

        tracer.success("Offer %s: %s -> %s", offer.id, previous_status, target)
        await publish_safely(self._publisher, "offer.status_changed", _offer_payload(offer))
        return offer

    async def _lock(self, db: AsyncSession, offer_id: str) -> Offer:
        offer = await self._repo.get_for_update(db, offer_id)
        if offer is None:
            raise EntityNotFoundError("OFFER", offer_id)
        return offer

    async def _release_offer_reservation(
        self, db: AsyncSession, offer: Offer, movement: str, tracer: OperationTracer
    ) -> None:
        if offer.holds_reservation and offer.bounds.available > 0:
            tracer.step("Releasing %s %s reserved by offer", offer.bounds.available, offer.asset)
            await self._ledger.release(
                db, offer.owner_id, offer.asset, offer.bounds.available, offer_ref(offer, movement)
            )


def _pick(value: T | None, fallback: T) -> T:
    return fallback if value is None else value


def _offer_payload(offer: Offer) -> dict[str, object]:
    return {"id": offer.id, "owner_id": offer.owner_id, **offer.snapshot()}
