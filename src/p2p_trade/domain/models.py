"""Trade domain models — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.p2p_common.enums import EscrowHoldStatus, TradeStatus


@dataclass
class Trade:
    id: str
    offer_id: str
    buyer_id: str
    seller_id: str
    asset: str
    counter_asset: str
    amount: int                      # asset minor units
    price: int                       # counter-asset minor units per whole asset unit
    total: int                       # counter-asset minor units the buyer pays off-platform
    method_id: str | None = None
    status: str = TradeStatus.PENDING
    escrow_amount: int = 0           # asset minor units currently held for this trade
    payment_deadline: datetime | None = None
    expires_at: datetime | None = None
    payment_sent_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    expired_at: datetime | None = None
    dispute_id: str | None = None
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def participants(self) -> tuple[str, str]:
        return (self.buyer_id, self.seller_id)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def snapshot(self) -> dict[str, object]:
        return {
            "status": self.status,
            "amount": self.amount,
            "escrow_amount": self.escrow_amount,
            "dispute_id": self.dispute_id,
        }


@dataclass
class EscrowHold:
    """Attributes part of the seller's ledger `reserved` to one trade."""

    trade_id: str
    seller_id: str
    asset: str
    amount: int
    status: str = EscrowHoldStatus.HELD
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_held(self) -> bool:
        return self.status == EscrowHoldStatus.HELD
