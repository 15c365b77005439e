"""Unit tests for TradeRepository's guarded writes against a mocked AsyncSession."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from src.p2p_common.enums import TradeStatus
from src.p2p_trade.domain.models import Trade
from src.p2p_trade.infrastructure.persistence import TradeRepository

_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


def _result(row: object) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = row
    return result


class TestExpireIfUnchanged:
    async def test_guard_matches(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _result(MagicMock(id="t-1"))

        assert await TradeRepository().expire_if_unchanged(db, "t-1", TradeStatus.ESCROW, 4, _NOW)
        params = db.execute.await_args.args[1]
        assert params["expected_status"] == "ESCROW"
        assert params["expired"] == "EXPIRED"
        assert params["version"] == 4
        assert params["now"] == _NOW

    async def test_lost_race_returns_false(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _result(None)
        assert not await TradeRepository().expire_if_unchanged(
            db, "t-1", TradeStatus.ACTIVE, 1, _NOW
        )


async def test_update_bumps_in_memory_version() -> None:
    db = AsyncMock()
    trade = Trade(
        id="t-1", offer_id="o-1", buyer_id="buyer-1", seller_id="seller-1",
        asset="USDT", counter_asset="CNY", amount=100, price=720, total=1,
        status=TradeStatus.PAYMENT_SENT, escrow_amount=100, version=2,
    )
    await TradeRepository().update(db, trade)

    assert trade.version == 3
    params = db.execute.await_args.args[1]
    assert params["status"] == "PAYMENT_SENT"
    assert params["escrow_amount"] == 100


async def test_list_expiry_candidates_binds_statuses_and_limit() -> None:
    db = AsyncMock()
    result = MagicMock()
    result.fetchall.return_value = []
    db.execute.return_value = result

    assert await TradeRepository().list_expiry_candidates(db, _NOW, 50) == []
    params = db.execute.await_args.args[1]
    assert (params["active"], params["escrow"], params["payment_sent"]) == (
        "ACTIVE",
        "ESCROW",
        "PAYMENT_SENT",
    )
    assert params["limit"] == 50


class TestRowLocks:
    async def test_get_for_update_locks_the_trade(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _result(None)

        assert await TradeRepository().get_for_update(db, "t-1") is None
        assert "FOR UPDATE" in str(db.execute.await_args.args[0])
        assert db.execute.await_args.args[1] == {"id": "t-1"}

    async def test_plain_get_does_not_lock(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _result(None)

        await TradeRepository().get(db, "t-1")
        assert "FOR UPDATE" not in str(db.execute.await_args.args[0])

    async def test_get_hold_for_update_locks_the_hold(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _result(None)

        assert await TradeRepository().get_hold_for_update(db, "t-1") is None
        assert "FOR UPDATE" in str(db.execute.await_args.args[0])
        assert db.execute.await_args.args[1] == {"trade_id": "t-1"}
