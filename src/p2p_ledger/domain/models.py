"""Domain models for p2p_ledger — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class AccountBalance:
    user_id: str
    asset: str
    available: int   # minor units, spendable
    reserved: int    # minor units, offer reservations + escrow holds
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def balance(self) -> int:
        return self.available + self.reserved


@dataclass
class LedgerEntry:
    id: int                          # BIGSERIAL
    user_id: str
    asset: str
    entry_type: str                  # LedgerEntryType value
    amount: int                      # signed effect on `available`
    available_after: int
    reserved_after: int
    idempotency_key: str
    reference_type: str | None = None
    reference_id: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class LedgerRef:
    """What a fund movement belongs to, plus the key that makes it apply once.

    `key` must be unique per logical movement: retrying the same movement with
    the same key is a no-op, a different movement needs a different key.
    """

    reference_type: str   # OFFER / TRADE / HOST
    reference_id: str
    key: str
