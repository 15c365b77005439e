from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from src.p2p_offer.domain.models import Offer

OfferStatusLiteral = Literal["ACTIVE", "PAUSED", "DISABLED", "REJECTED", "CANCELLED"]


def _clean_methods(v: list[str] | None) -> list[str] | None:
    if v is None:
        return v
    cleaned = [m.strip() for m in v]
    if any(not m for m in cleaned):
        raise ValueError("settlement method ids must be non-empty")
    return cleaned


class CreateOfferRequest(BaseModel):
    direction: Literal["BUY", "SELL"]
    asset: str = Field(min_length=1, max_length=16)
    counter_asset: str = Field(min_length=1, max_length=16)
    total: int
    min_per_trade: int
    max_per_trade: int
    price: int
    methods: list[str]
    payment_window_minutes: int | None = None

    @field_validator("methods")
    @classmethod
    def methods_not_blank(cls, v: list[str]) -> list[str]:
        return _clean_methods(v) or []


class UpdateOfferRequest(BaseModel):
    total: int | None = None
    min_per_trade: int | None = None
    max_per_trade: int | None = None
    price: int | None = None
    methods: list[str] | None = None
    payment_window_minutes: int | None = None

    @field_validator("methods")
    @classmethod
    def methods_not_blank(cls, v: list[str] | None) -> list[str] | None:
        return _clean_methods(v)


class SetOfferStatusRequest(BaseModel):
    status: OfferStatusLiteral
    reason: str | None = Field(default=None, max_length=500)


class OfferActivityResponse(BaseModel):
    type: str
    actor_id: str
    previous_status: str | None
    new_status: str | None
    created_at: datetime | None = None


class OfferResponse(BaseModel):
    id: str
    owner_id: str
    direction: str
    asset: str
    counter_asset: str
    price_model: str
    price: int
    total: int
    min_per_trade: int
    max_per_trade: int
    available: int
    methods: list[str]
    status: str
    payment_window_minutes: int | None
    version: int
    activity: list[OfferActivityResponse]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_offer(cls, offer: Offer) -> "OfferResponse":
        return cls(
            id=offer.id,
            owner_id=offer.owner_id,
            direction=offer.direction,
            asset=offer.asset,
            counter_asset=offer.counter_asset,
            price_model=offer.price_rule.model,
            price=offer.price_rule.price,
            total=offer.bounds.total,
            min_per_trade=offer.bounds.min_per_trade,
            max_per_trade=offer.bounds.max_per_trade,
            available=offer.bounds.available,
            methods=sorted(offer.methods),
            status=offer.status,
            payment_window_minutes=offer.payment_window_minutes,
            version=offer.version,
            activity=[
                OfferActivityResponse(
                    type=a.type,
                    actor_id=a.actor_id,
                    previous_status=a.previous_status,
                    new_status=a.new_status,
                    created_at=a.created_at,
                )
                for a in offer.activity_log
            ],
            created_at=offer.created_at,
            updated_at=offer.updated_at,
        )
