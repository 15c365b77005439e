"""Ledger Protocol — the consumed Account/Wallet store interface.

Every mutating method runs inside the caller's transaction, fails fast with
InsufficientFundsError instead of letting a balance go negative, and is
idempotent per LedgerRef.key.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_ledger.domain.models import AccountBalance, LedgerEntry, LedgerRef


class LedgerProtocol(Protocol):
    async def get_balance(
        self, db: AsyncSession, user_id: str, asset: str
    ) -> AccountBalance | None: ...

    async def list_balances(self, db: AsyncSession, user_id: str) -> list[AccountBalance]: ...

    async def deposit(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance: ...

    async def withdraw(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance: ...

    async def reserve(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance: ...

    async def release(
        self, db: AsyncSession, user_id: str, asset: str, amount: int, ref: LedgerRef
    ) -> AccountBalance: ...

    async def transfer(
        self,
        db: AsyncSession,
        from_user_id: str,
        to_user_id: str,
        asset: str,
        amount: int,
        ref: LedgerRef,
    ) -> tuple[AccountBalance, AccountBalance]: ...

    async def list_entries(
        self,
        db: AsyncSession,
        user_id: str,
        asset: str | None,
        cursor_id: int | None,
        limit: int,
    ) -> list[LedgerEntry]: ...
