"""DisputeRepository Protocol — interface contract for persistence layer."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_dispute.domain.models import Dispute, DisputeEvidence


class DisputeRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, dispute: Dispute) -> None: ...

    async def get(self, db: AsyncSession, dispute_id: str) -> Dispute | None: ...

    async def get_for_update(self, db: AsyncSession, dispute_id: str) -> Dispute | None: ...

    async def update(self, db: AsyncSession, dispute: Dispute) -> None:
        """Persist status and resolution fields."""
        ...

    async def add_evidence(
        self, db: AsyncSession, dispute_id: str, evidence: DisputeEvidence
    ) -> None: ...
