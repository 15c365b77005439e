"""Unit tests for AdminService and the global escrow invariant checks."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.p2p_admin.application.invariants import verify_escrow_invariants
from src.p2p_admin.application.service import AdminService
from src.p2p_audit.domain.models import AuditEvent
from src.p2p_common.errors import EntityNotFoundError, NotAuthorizedError
from src.p2p_sweeper.sweeper import SweepResult
from tests.fakes import ADMIN, BUYER, SUPPORT, FakeAuditTrail, FakeSessionFactory


def _rows(*rows: object) -> MagicMock:
    result = MagicMock()
    result.fetchall.return_value = list(rows)
    return result


class TestVerifyEscrowInvariants:
    async def test_clean_books(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = [_rows(), _rows(), _rows()]
        assert await verify_escrow_invariants(db) == []
        assert db.execute.await_count == 3

    async def test_reports_every_check(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = [
            _rows(MagicMock(user_id="u-1", asset="USDT", actual=500, expected=300)),
            _rows(MagicMock(id="o-1", total=1000, available=900, open_amount=50)),
            _rows(
                MagicMock(
                    id="t-1", status="EXPIRED", escrow_amount=200, hold_status=None,
                    hold_amount=None,
                )
            ),
        ]
        violations = await verify_escrow_invariants(db)

        assert len(violations) == 3
        assert "u-1/USDT" in violations[0]
        assert "offer o-1" in violations[1]
        assert "trade t-1 (EXPIRED)" in violations[2]


class TestAdminService:
    async def test_verify_invariants_requires_audit_view(self) -> None:
        svc = AdminService(audit=FakeAuditTrail())
        with pytest.raises(NotAuthorizedError):
            await svc.verify_invariants(AsyncMock(), BUYER)

    async def test_verify_invariants_ok_flag(self) -> None:
        svc = AdminService(audit=FakeAuditTrail())
        with patch(
            "src.p2p_admin.application.service.verify_escrow_invariants",
            AsyncMock(return_value=["offer o-1: bad"]),
        ):
            result = await svc.verify_invariants(AsyncMock(), SUPPORT)
        assert result == {"ok": False, "violations": ["offer o-1: bad"]}

    async def test_list_audit(self) -> None:
        audit = FakeAuditTrail()
        await audit.record(
            AsyncMock(),
            AuditEvent(
                entity_type="TRADE",
                entity_id="t-1",
                action="STATUS_CHANGED",
                actor_id=None,
                previous_value={"status": "ESCROW"},
                new_value={"status": "EXPIRED"},
                reason="payment deadline passed",
            ),
        )
        events = await AdminService(audit=audit).list_audit(AsyncMock(), ADMIN, "trade", "t-1")

        assert len(events) == 1
        assert events[0]["action"] == "STATUS_CHANGED"
        assert events[0]["actor_id"] is None
        assert events[0]["new_value"] == {"status": "EXPIRED"}
        assert events[0]["created_at"] is None

    async def test_list_audit_unknown_entity_type(self) -> None:
        with pytest.raises(EntityNotFoundError):
            await AdminService(audit=FakeAuditTrail()).list_audit(
                AsyncMock(), ADMIN, "market", "m-1"
            )

    async def test_run_sweep_requires_permission(self) -> None:
        svc = AdminService(audit=FakeAuditTrail(), session_factory=FakeSessionFactory())
        with pytest.raises(NotAuthorizedError):
            await svc.run_sweep(SUPPORT)

    async def test_run_sweep(self) -> None:
        sessions = FakeSessionFactory()
        svc = AdminService(audit=FakeAuditTrail(), session_factory=sessions)
        with patch(
            "src.p2p_admin.application.service.run_timeout_sweep",
            AsyncMock(return_value=SweepResult(scanned=2, expired=2)),
        ) as mock_sweep:
            result = await svc.run_sweep(ADMIN)
        mock_sweep.assert_awaited_once_with(sessions)
        assert result.expired == 2
