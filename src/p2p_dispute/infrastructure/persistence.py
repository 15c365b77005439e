"""DisputeRepository — raw SQL persistence for p2p_disputes and their evidence."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_dispute.domain.models import Dispute, DisputeEvidence

_DISPUTE_COLUMNS = """
    id, trade_id, raised_by, reason, status, resolution, resolved_by,
    resolved_at, resolution_note, created_at, updated_at
"""

_INSERT_DISPUTE_SQL = text("""
    INSERT INTO p2p_disputes (id, trade_id, raised_by, reason, status)
    VALUES (:id, :trade_id, :raised_by, :reason, :status)
""")

_GET_DISPUTE_SQL = text(f"SELECT {_DISPUTE_COLUMNS} FROM p2p_disputes WHERE id = :id")

_GET_DISPUTE_FOR_UPDATE_SQL = text(
    f"SELECT {_DISPUTE_COLUMNS} FROM p2p_disputes WHERE id = :id FOR UPDATE"
)

_UPDATE_DISPUTE_SQL = text("""
    UPDATE p2p_disputes
    SET status = :status, resolution = :resolution, resolved_by = :resolved_by,
        resolved_at = :resolved_at, resolution_note = :resolution_note,
        updated_at = NOW()
    WHERE id = :id
""")

_INSERT_EVIDENCE_SQL = text("""
    INSERT INTO p2p_dispute_evidence (dispute_id, submitted_by, content)
    VALUES (:dispute_id, :submitted_by, :content)
""")

_LIST_EVIDENCE_SQL = text("""
    SELECT submitted_by, content, created_at
    FROM p2p_dispute_evidence
    WHERE dispute_id = :dispute_id
    ORDER BY id ASC
""")


def _row_to_dispute(row: Any, evidence: list[DisputeEvidence]) -> Dispute:
    return Dispute(
        id=row.id,
        trade_id=row.trade_id,
        raised_by=row.raised_by,
        reason=row.reason,
        status=row.status,
        resolution=row.resolution,
        resolved_by=row.resolved_by,
        resolved_at=row.resolved_at,
        resolution_note=row.resolution_note,
        evidence=evidence,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class DisputeRepository:
    """Concrete implementation of DisputeRepositoryProtocol using raw SQL."""

    async def insert(self, db: AsyncSession, dispute: Dispute) -> None:
        await db.execute(
            _INSERT_DISPUTE_SQL,
            {
                "id": dispute.id,
                "trade_id": dispute.trade_id,
                "raised_by": dispute.raised_by,
                "reason": dispute.reason,
                "status": dispute.status,
            },
        )

    async def get(self, db: AsyncSession, dispute_id: str) -> Dispute | None:
        return await self._load(db, _GET_DISPUTE_SQL, dispute_id)

    async def get_for_update(self, db: AsyncSession, dispute_id: str) -> Dispute | None:
        return await self._load(db, _GET_DISPUTE_FOR_UPDATE_SQL, dispute_id)

    async def update(self, db: AsyncSession, dispute: Dispute) -> None:
        await db.execute(
            _UPDATE_DISPUTE_SQL,
            {
                "id": dispute.id,
                "status": dispute.status,
                "resolution": dispute.resolution,
                "resolved_by": dispute.resolved_by,
                "resolved_at": dispute.resolved_at,
                "resolution_note": dispute.resolution_note,
            },
        )

    async def add_evidence(
        self, db: AsyncSession, dispute_id: str, evidence: DisputeEvidence
    ) -> None:
        await db.execute(
            _INSERT_EVIDENCE_SQL,
            {
                "dispute_id": dispute_id,
                "submitted_by": evidence.submitted_by,
                "content": evidence.content,
            },
        )

    async def _load(self, db: AsyncSession, sql: Any, dispute_id: str) -> Dispute | None:
        row = (await db.execute(sql, {"id": dispute_id})).fetchone()
        if row is None:
            return None
        evidence_rows = (
            await db.execute(_LIST_EVIDENCE_SQL, {"dispute_id": dispute_id})
        ).fetchall()
        evidence = [
            DisputeEvidence(submitted_by=e.submitted_by, content=e.content, created_at=e.created_at)
            for e in evidence_rows
        ]
        return _row_to_dispute(row, evidence)
