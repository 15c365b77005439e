"""LedgerRepository — concrete implementation of LedgerProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A result of 0 rows means the balance could not cover the movement
(InsufficientFundsError); the caller's transaction is then rolled back.

Idempotency: before moving funds we look for the ledger entry carrying the
movement's key. If it exists the movement was already applied in this (or a
retried) transaction and the current balance is returned untouched. The unique
index on (user_id, asset, entry_type, idempotency_key) turns a concurrent
duplicate into ConcurrentModificationError instead of a double movement; the
retry then finds the entry and applies nothing.

Transaction ownership: The CALLER (application service) is responsible for
committing or rolling back.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.enums import LedgerEntryType
from src.p2p_common.errors import (
    ConcurrentModificationError,
    InsufficientFundsError,
    InternalError,
    LedgerInvariantViolationError,
)
from src.p2p_ledger.domain.models import AccountBalance, LedgerEntry, LedgerRef

_BALANCE_COLUMNS = "user_id, asset, available, reserved, version, created_at, updated_at"

# ---------------------------------------------------------------------------
# SQL: balance mutations
# ---------------------------------------------------------------------------

_CREDIT_AVAILABLE_SQL = text(f"""
    INSERT INTO p2p_accounts (user_id, asset, available, reserved)
    VALUES (:user_id, :asset, :amount, 0)
    ON CONFLICT (user_id, asset) DO UPDATE
        SET available = p2p_accounts.available + EXCLUDED.available,
            version = p2p_accounts.version + 1,
            updated_at = NOW()
    RETURNING {_BALANCE_COLUMNS}
""")

_DEBIT_AVAILABLE_SQL = text(f"""
    UPDATE p2p_accounts
    SET available = available - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND asset = :asset AND available >= :amount
    RETURNING {_BALANCE_COLUMNS}
""")

_RESERVE_SQL = text(f"""
    UPDATE p2p_accounts
    SET available = available - :amount,
        reserved  = reserved  + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND asset = :asset AND available >= :amount
    RETURNING {_BALANCE_COLUMNS}
""")

_RELEASE_SQL = text(f"""
    UPDATE p2p_accounts
    SET available = available + :amount,
        reserved  = reserved  - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND asset = :asset AND reserved >= :amount
    RETURNING {_BALANCE_COLUMNS}
""")

_DEBIT_RESERVED_SQL = text(f"""
    UPDATE p2p_accounts
    SET reserved = reserved - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND asset = :asset AND reserved >= :amount
    RETURNING {_BALANCE_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: reads and ledger entries
# ---------------------------------------------------------------------------

_GET_BALANCE_SQL = text(f"""
    SELECT {_BALANCE_COLUMNS}
    FROM p2p_accounts
    WHERE user_id = :user_id AND asset = :asset
""")

_LIST_BALANCES_SQL = text(f"""
    SELECT {_BALANCE_COLUMNS}
    FROM p2p_accounts
    WHERE user_id = :user_id
    ORDER BY asset
""")

_ENTRY_EXISTS_SQL = text("""
    SELECT id FROM p2p_ledger_entries
    WHERE user_id = :user_id AND asset = :asset
      AND entry_type = :entry_type AND idempotency_key = :key
""")

_INSERT_ENTRY_SQL = text("""
    INSERT INTO p2p_ledger_entries
        (user_id, asset, entry_type, amount, available_after, reserved_after,
         idempotency_key, reference_type, reference_id)
    VALUES
        (:user_id, :asset, :entry_type, :amount, :available_after, :reserved_after,
         :key, :reference_type, :reference_id)
    RETURNING id
""")

_LIST_ENTRIES_SQL = text("""
    SELECT id, user_id, asset, entry_type, amount, available_after, reserved_after,
           idempotency_key, reference_type, reference_id, created_at
    FROM p2p_ledger_entries
    WHERE user_id = :user_id
      AND (CAST(:asset AS TEXT) IS NULL OR asset = :asset)
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_balance(row: Any) -> AccountBalance:
    return AccountBalance(
        user_id=row.user_id,
        asset=row.asset,
        available=row.available,
        reserved=row.reserved,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_entry(row: Any) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        user_id=row.user_id,
        asset=row.asset,
        entry_type=row.entry_type,
        amount=row.amount,
        available_after=row.available_after,
        reserved_after=row.reserved_after,
        idempotency_key=row.idempotency_key,
        reference_type=row.reference_type,
        reference_id=row.reference_id,
        created_at=row.created_at,
    )


def _require_positive(amount: int, operation: str) -> None:
    if amount <= 0:
        raise LedgerInvariantViolationError(
            f"{operation} amount must be positive", operation=operation, amount=amount
        )


class LedgerRepository:
    """Concrete ledger — every movement is one conditional UPDATE plus one entry row."""

    async def get_balance(
        self, db: AsyncSession, user_id: str, asset: str
    ) -> AccountBalance | None:
        row = (await db.execute(_GET_BALANCE_SQL, {"user_id": user_id, "asset": asset})).fetchone()
        return _row_to_balance(row) if row else None

    async def list_balances(self, db: AsyncSession, user_id: str) -> list[AccountBalance]:
        rows = (await db.execute(_LIST_BALANCES_SQL, {"user_id": user_id})).fetchall()
        return [_row_to_balance(r) for r in rows]

    async def deposit(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance:
        _require_positive(amount, "deposit")
        return await self._move(
            db, _CREDIT_AVAILABLE_SQL, user_id, asset, amount,
            LedgerEntryType.DEPOSIT, amount, ref, shortfall_column=None,
        )

    async def withdraw(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance:
        _require_positive(amount, "withdraw")
        return await self._move(
            db, _DEBIT_AVAILABLE_SQL, user_id, asset, amount,
            LedgerEntryType.WITHDRAW, -amount, ref, shortfall_column="available",
        )

    async def reserve(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance:
        _require_positive(amount, "reserve")
        return await self._move(
            db, _RESERVE_SQL, user_id, asset, amount,
            LedgerEntryType.RESERVE, -amount, ref, shortfall_column="available",
        )

    async def release(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance:
        _require_positive(amount, "release")
        return await self._move(
            db, _RELEASE_SQL, user_id, asset, amount,
            LedgerEntryType.RELEASE, amount, ref, shortfall_column="reserved",
        )

    async def transfer(
        self,
        db: AsyncSession,
        from_user_id: str,
        to_user_id: str,
        asset: str,
        amount: int,
        ref: LedgerRef,
    ) -> tuple[AccountBalance, AccountBalance]:
        """Debit `from_user_id`'s reserved balance, credit `to_user_id`'s available."""
        _require_positive(amount, "transfer")
        if from_user_id == to_user_id:
            raise LedgerInvariantViolationError(
                "transfer to self", user_id=from_user_id, amount=amount
            )
        source = await self._move(
            db, _DEBIT_RESERVED_SQL, from_user_id, asset, amount,
            LedgerEntryType.TRANSFER_OUT, 0, ref, shortfall_column="reserved",
        )
        target = await self._move(
            db, _CREDIT_AVAILABLE_SQL, to_user_id, asset, amount,
            LedgerEntryType.TRANSFER_IN, amount, ref, shortfall_column=None,
        )
        return source, target

    async def list_entries(
        self,
        db: AsyncSession,
        user_id: str,
        asset: str | None,
        cursor_id: int | None,
        limit: int,
    ) -> list[LedgerEntry]:
        rows = (
            await db.execute(
                _LIST_ENTRIES_SQL,
                {"user_id": user_id, "asset": asset, "cursor_id": cursor_id, "limit": limit},
            )
        ).fetchall()
        return [_row_to_entry(r) for r in rows]

    async def _move(
        self,
        db: AsyncSession,
        sql: Any,
        user_id: str,
        asset: str,
        amount: int,
        entry_type: LedgerEntryType,
        signed_amount: int,
        ref: LedgerRef,
        shortfall_column: str | None,
    ) -> AccountBalance:
        existing = (
            await db.execute(
                _ENTRY_EXISTS_SQL,
                {"user_id": user_id, "asset": asset, "entry_type": entry_type, "key": ref.key},
            )
        ).fetchone()
        if existing is not None:
            current = await self.get_balance(db, user_id, asset)
            if current is None:
                raise InternalError(f"Ledger entry {existing.id} has no account row")
            return current

        row = (
            await db.execute(sql, {"user_id": user_id, "asset": asset, "amount": amount})
        ).fetchone()
        if row is None:
            current = await self.get_balance(db, user_id, asset)
            have = getattr(current, shortfall_column, 0) if current and shortfall_column else 0
            raise InsufficientFundsError(amount, have, asset)
        account = _row_to_balance(row)

        try:
            inserted = (
                await db.execute(
                    _INSERT_ENTRY_SQL,
                    {
                        "user_id": user_id,
                        "asset": asset,
                        "entry_type": entry_type,
                        "amount": signed_amount,
                        "available_after": account.available,
                        "reserved_after": account.reserved,
                        "key": ref.key,
                        "reference_type": ref.reference_type,
                        "reference_id": ref.reference_id,
                    },
                )
            ).fetchone()
        except IntegrityError as exc:
            # Another transaction booked the same movement between our check and insert
            raise ConcurrentModificationError(
                "LEDGER_ENTRY", ref.key, expected="no entry", current="entry exists"
            ) from exc
        if inserted is None:
            raise InternalError("Ledger insert returned no rows — this should never happen")
        return account
