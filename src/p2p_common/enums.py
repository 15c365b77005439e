"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class OfferDirection(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OfferStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DISABLED = "DISABLED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class OfferActivityType(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DELETED = "DELETED"


class PriceModel(str, Enum):
    FIXED = "FIXED"


class TradeStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    ESCROW = "ESCROW"
    PAYMENT_SENT = "PAYMENT_SENT"
    ESCROW_RELEASED = "ESCROW_RELEASED"
    DISPUTED = "DISPUTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class EscrowHoldStatus(str, Enum):
    HELD = "HELD"
    RELEASED = "RELEASED"
    RETURNED = "RETURNED"


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class DisputeResolution(str, Enum):
    RELEASED_TO_BUYER = "RELEASED_TO_BUYER"
    RETURNED_TO_SELLER = "RETURNED_TO_SELLER"


class LedgerEntryType(str, Enum):
    # Host funding
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    # available <-> reserved (same user)
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    # seller reserved -> buyer available (paired)
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"


class AuditEntityType(str, Enum):
    OFFER = "OFFER"
    TRADE = "TRADE"
    DISPUTE = "DISPUTE"
    ESCROW = "ESCROW"
