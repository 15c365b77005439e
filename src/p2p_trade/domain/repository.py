"""TradeRepository Protocol — trades and their escrow holds."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_trade.domain.models import EscrowHold, Trade


class TradeRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, trade: Trade) -> None: ...

    async def get(self, db: AsyncSession, trade_id: str) -> Trade | None: ...

    async def get_for_update(self, db: AsyncSession, trade_id: str) -> Trade | None: ...

    async def update(self, db: AsyncSession, trade: Trade) -> None:
        """Persist status, escrow amount, timestamps and dispute link; bumps version."""
        ...

    async def expire_if_unchanged(
        self, db: AsyncSession, trade_id: str, expected_status: str, version: int, now: datetime
    ) -> bool:
        """Set EXPIRED only if status and version still match.

        Returns False when another writer got there first.
        """
        ...

    async def list_expiry_candidates(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[Trade]: ...

    async def insert_hold(self, db: AsyncSession, hold: EscrowHold) -> None: ...

    async def get_hold_for_update(self, db: AsyncSession, trade_id: str) -> EscrowHold | None: ...

    async def update_hold(self, db: AsyncSession, hold: EscrowHold) -> None: ...
