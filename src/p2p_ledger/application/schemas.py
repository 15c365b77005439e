"""Pydantic schemas and cursor utilities for the ledger API."""

import base64
import binascii
import json

from pydantic import BaseModel, Field

from src.p2p_common.units import asset_decimals, format_minor
from src.p2p_ledger.domain.models import AccountBalance, LedgerEntry

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class HostMovementRequest(BaseModel):
    """Deposit or withdrawal booked by the host wallet on a user's behalf."""

    user_id: str = Field(min_length=1)
    asset: str = Field(min_length=1, max_length=16)
    amount: int = Field(..., gt=0, description="Amount in asset minor units")
    reference: str = Field(
        ..., min_length=1, max_length=128, description="Host reference; retries with it apply once"
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    asset: str
    available: int
    available_display: str
    reserved: int
    reserved_display: str
    balance: int
    balance_display: str

    @classmethod
    def from_balance(cls, account: AccountBalance) -> "BalanceResponse":
        decimals = asset_decimals(account.asset)
        return cls(
            user_id=account.user_id,
            asset=account.asset,
            available=account.available,
            available_display=format_minor(account.available, decimals),
            reserved=account.reserved,
            reserved_display=format_minor(account.reserved, decimals),
            balance=account.balance,
            balance_display=format_minor(account.balance, decimals),
        )


class BalancesResponse(BaseModel):
    items: list[BalanceResponse]


class LedgerEntryItem(BaseModel):
    id: int
    asset: str
    entry_type: str
    amount: int
    available_after: int
    reserved_after: int
    reference_type: str | None
    reference_id: str | None
    created_at: str | None  # ISO8601 string

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "LedgerEntryItem":
        return cls(
            id=entry.id,
            asset=entry.asset,
            entry_type=entry.entry_type,
            amount=entry.amount,
            available_after=entry.available_after,
            reserved_after=entry.reserved_after,
            reference_type=entry.reference_type,
            reference_id=entry.reference_id,
            created_at=entry.created_at.isoformat() if entry.created_at else None,
        )


class LedgerResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool
