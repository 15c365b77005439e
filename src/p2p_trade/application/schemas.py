from datetime import datetime

from pydantic import BaseModel, Field

from src.p2p_trade.domain.models import Trade


class CreateTradeRequest(BaseModel):
    amount: int = Field(gt=0)
    method_id: str | None = None


class CancelTradeRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class TradeResponse(BaseModel):
    id: str
    offer_id: str
    buyer_id: str
    seller_id: str
    asset: str
    counter_asset: str
    amount: int
    price: int
    total: int
    method_id: str | None
    status: str
    escrow_amount: int
    payment_deadline: datetime | None
    expires_at: datetime | None
    payment_sent_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    expired_at: datetime | None = None
    dispute_id: str | None = None
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_trade(cls, trade: Trade) -> "TradeResponse":
        return cls(
            id=trade.id,
            offer_id=trade.offer_id,
            buyer_id=trade.buyer_id,
            seller_id=trade.seller_id,
            asset=trade.asset,
            counter_asset=trade.counter_asset,
            amount=trade.amount,
            price=trade.price,
            total=trade.total,
            method_id=trade.method_id,
            status=trade.status,
            escrow_amount=trade.escrow_amount,
            payment_deadline=trade.payment_deadline,
            expires_at=trade.expires_at,
            payment_sent_at=trade.payment_sent_at,
            completed_at=trade.completed_at,
            cancelled_at=trade.cancelled_at,
            expired_at=trade.expired_at,
            dispute_id=trade.dispute_id,
            version=trade.version,
            created_at=trade.created_at,
            updated_at=trade.updated_at,
        )
