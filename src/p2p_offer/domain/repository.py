"""OfferRepository Protocol — interface contract for persistence layer."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_offer.domain.models import Offer, OfferActivity


class OfferRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, offer: Offer) -> None: ...

    async def get(self, db: AsyncSession, offer_id: str) -> Offer | None: ...

    async def get_for_update(self, db: AsyncSession, offer_id: str) -> Offer | None:
        """Read the offer holding a row-level exclusive lock until commit."""
        ...

    async def update(self, db: AsyncSession, offer: Offer) -> None:
        """Persist bounds, price, methods, window and status; bumps version."""
        ...

    async def append_activity(
        self, db: AsyncSession, offer_id: str, activity: OfferActivity
    ) -> None: ...

    async def count_open_trades(self, db: AsyncSession, offer_id: str) -> int: ...
