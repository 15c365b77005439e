"""Offer status table and amount-bound validation."""

from src.p2p_common.enums import OfferStatus, PriceModel
from src.p2p_common.errors import InvalidOfferParametersError, InvalidStateTransitionError
from src.p2p_offer.domain.models import AmountBounds, PriceRule

# ACTIVE can be paused, disabled or cancelled; everything else can only be reactivated.
OFFER_TRANSITIONS: dict[str, frozenset[str]] = {
    OfferStatus.ACTIVE: frozenset(
        {OfferStatus.PAUSED, OfferStatus.DISABLED, OfferStatus.CANCELLED}
    ),
    OfferStatus.PAUSED: frozenset({OfferStatus.ACTIVE}),
    OfferStatus.DISABLED: frozenset({OfferStatus.ACTIVE}),
    OfferStatus.REJECTED: frozenset({OfferStatus.ACTIVE}),
    OfferStatus.CANCELLED: frozenset({OfferStatus.ACTIVE}),
}


def check_offer_transition(current: str, target: str) -> None:
    if target not in OFFER_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateTransitionError(current, target, entity_type="OFFER")


def validate_bounds(bounds: AmountBounds) -> None:
    if bounds.total <= 0:
        raise InvalidOfferParametersError(f"total must be positive, got {bounds.total}")
    if bounds.min_per_trade <= 0:
        raise InvalidOfferParametersError(
            f"min_per_trade must be positive, got {bounds.min_per_trade}"
        )
    if bounds.min_per_trade > bounds.max_per_trade:
        raise InvalidOfferParametersError(
            f"min_per_trade {bounds.min_per_trade} exceeds max_per_trade {bounds.max_per_trade}"
        )
    if bounds.max_per_trade > bounds.total:
        raise InvalidOfferParametersError(
            f"max_per_trade {bounds.max_per_trade} exceeds total {bounds.total}"
        )
    if not (0 <= bounds.available <= bounds.total):
        raise InvalidOfferParametersError(
            f"available {bounds.available} outside [0, {bounds.total}]"
        )


def validate_price_rule(rule: PriceRule) -> None:
    if rule.model != PriceModel.FIXED:
        raise InvalidOfferParametersError(f"unsupported price model {rule.model}")
    if rule.price <= 0:
        raise InvalidOfferParametersError(f"price must be positive, got {rule.price}")


def validate_methods(methods: frozenset[str]) -> None:
    if not methods:
        raise InvalidOfferParametersError("at least one settlement method is required")


def validate_payment_window(minutes: int | None) -> None:
    if minutes is not None and minutes <= 0:
        raise InvalidOfferParametersError(f"payment window must be positive, got {minutes}")
