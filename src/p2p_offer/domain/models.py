"""Offer domain model — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime

from src.p2p_common.enums import OfferDirection, OfferStatus, PriceModel


@dataclass
class PriceRule:
    price: int                       # counter-asset minor units per whole asset unit
    model: str = PriceModel.FIXED


@dataclass
class AmountBounds:
    total: int                       # asset minor units committed to open + future trades
    min_per_trade: int
    max_per_trade: int
    available: int                   # capacity not yet claimed by a trade


@dataclass(frozen=True)
class OfferActivity:
    """One entry of the offer's ordered activity log."""

    type: str                        # OfferActivityType value
    actor_id: str
    previous_status: str | None
    new_status: str | None
    created_at: datetime | None = None


@dataclass
class Offer:
    id: str
    owner_id: str
    direction: str                   # BUY / SELL
    asset: str
    counter_asset: str
    price_rule: PriceRule
    bounds: AmountBounds
    methods: frozenset[str]          # accepted settlement method ids
    status: str = OfferStatus.ACTIVE
    payment_window_minutes: int | None = None
    version: int = 0
    activity_log: list[OfferActivity] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_sell(self) -> bool:
        return self.direction == OfferDirection.SELL

    @property
    def is_active(self) -> bool:
        return self.status == OfferStatus.ACTIVE

    @property
    def holds_reservation(self) -> bool:
        """A SELL offer keeps `available` reserved in the owner's ledger until CANCELLED."""
        return self.is_sell and self.status != OfferStatus.CANCELLED

    def snapshot(self) -> dict[str, object]:
        """Audit-friendly view of the mutable fields."""
        return {
            "status": self.status,
            "total": self.bounds.total,
            "available": self.bounds.available,
            "min_per_trade": self.bounds.min_per_trade,
            "max_per_trade": self.bounds.max_per_trade,
            "price": self.price_rule.price,
            "methods": sorted(self.methods),
            "payment_window_minutes": self.payment_window_minutes,
        }
