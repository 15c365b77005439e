"""Unit tests for DisputeRepository against a mocked AsyncSession."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from src.p2p_common.enums import DisputeResolution, DisputeStatus
from src.p2p_dispute.domain.models import Dispute, DisputeEvidence
from src.p2p_dispute.infrastructure.persistence import DisputeRepository

_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


def _dispute_row() -> MagicMock:
    row = MagicMock()
    row.id = "d-1"
    row.trade_id = "t-1"
    row.raised_by = "buyer-1"
    row.reason = "paid, no release"
    row.status = "OPEN"
    row.resolution = None
    row.resolved_by = None
    row.resolved_at = None
    row.resolution_note = None
    row.created_at = _NOW
    row.updated_at = _NOW
    return row


def _load_results(row: object, evidence: list[object]) -> list[MagicMock]:
    dispute_result = MagicMock()
    dispute_result.fetchone.return_value = row
    evidence_result = MagicMock()
    evidence_result.fetchall.return_value = evidence
    return [dispute_result, evidence_result]


class TestLoad:
    async def test_get_for_update_locks_the_row(self) -> None:
        db = AsyncMock()
        evidence = MagicMock(submitted_by="buyer-1", content="receipt.png", created_at=_NOW)
        db.execute.side_effect = _load_results(_dispute_row(), [evidence])

        dispute = await DisputeRepository().get_for_update(db, "d-1")

        assert dispute is not None
        assert "FOR UPDATE" in str(db.execute.await_args_list[0].args[0])
        assert dispute.evidence == [
            DisputeEvidence(submitted_by="buyer-1", content="receipt.png", created_at=_NOW)
        ]

    async def test_plain_get_does_not_lock(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = _load_results(_dispute_row(), [])

        dispute = await DisputeRepository().get(db, "d-1")

        assert dispute is not None and dispute.is_open
        assert "FOR UPDATE" not in str(db.execute.await_args_list[0].args[0])

    async def test_missing_dispute(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = _load_results(None, [])

        assert await DisputeRepository().get_for_update(db, "missing") is None
        assert db.execute.await_count == 1


async def test_update_writes_resolution_fields() -> None:
    db = AsyncMock()
    dispute = Dispute(
        id="d-1", trade_id="t-1", raised_by="buyer-1", reason="no release",
        status=DisputeStatus.RESOLVED, resolution=DisputeResolution.RETURNED_TO_SELLER,
        resolved_by="admin-1", resolved_at=_NOW, resolution_note="no payment proof",
    )

    await DisputeRepository().update(db, dispute)

    params = db.execute.await_args.args[1]
    assert params["status"] == "RESOLVED"
    assert params["resolution"] == "RETURNED_TO_SELLER"
    assert params["resolved_by"] == "admin-1"
    assert params["resolved_at"] == _NOW
