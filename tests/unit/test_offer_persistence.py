"""Unit tests for OfferRepository against a mocked AsyncSession."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from src.p2p_common.enums import OfferStatus
from src.p2p_offer.domain.models import AmountBounds, Offer, PriceRule
from src.p2p_offer.infrastructure.persistence import OfferRepository

_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


def _offer_row() -> MagicMock:
    row = MagicMock()
    row.id = "o-1"
    row.owner_id = "seller-1"
    row.direction = "SELL"
    row.asset = "USDT"
    row.counter_asset = "CNY"
    row.price_model = "FIXED"
    row.price = 720
    row.total = 1000
    row.min_per_trade = 10
    row.max_per_trade = 500
    row.available = 800
    row.methods = ["alipay", "bank"]
    row.status = "ACTIVE"
    row.payment_window_minutes = 15
    row.version = 3
    row.created_at = _NOW
    row.updated_at = _NOW
    return row


def _activity_row() -> MagicMock:
    row = MagicMock()
    row.type = "CREATED"
    row.actor_id = "seller-1"
    row.previous_status = None
    row.new_status = "ACTIVE"
    row.created_at = _NOW
    return row


def _load_results(row: object, activity: list[object]) -> list[MagicMock]:
    offer_result = MagicMock()
    offer_result.fetchone.return_value = row
    activity_result = MagicMock()
    activity_result.fetchall.return_value = activity
    return [offer_result, activity_result]


def _make_offer(**overrides: object) -> Offer:
    defaults: dict = {
        "id": "o-1",
        "owner_id": "seller-1",
        "direction": "SELL",
        "asset": "USDT",
        "counter_asset": "CNY",
        "price_rule": PriceRule(price=720),
        "bounds": AmountBounds(total=1000, min_per_trade=10, max_per_trade=500, available=800),
        "methods": frozenset({"bank", "alipay"}),
        "version": 3,
    }
    defaults.update(overrides)
    return Offer(**defaults)


class TestLoad:
    async def test_get_for_update_locks_the_row(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = _load_results(_offer_row(), [_activity_row()])

        offer = await OfferRepository().get_for_update(db, "o-1")

        assert offer is not None
        first_sql = str(db.execute.await_args_list[0].args[0])
        assert "FOR UPDATE" in first_sql
        assert db.execute.await_args_list[0].args[1] == {"id": "o-1"}

    async def test_plain_get_does_not_lock(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = _load_results(_offer_row(), [])

        await OfferRepository().get(db, "o-1")

        assert "FOR UPDATE" not in str(db.execute.await_args_list[0].args[0])

    async def test_maps_row_and_activity_log(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = _load_results(_offer_row(), [_activity_row()])

        offer = await OfferRepository().get(db, "o-1")

        assert offer is not None
        assert offer.bounds.total == 1000
        assert offer.bounds.available == 800
        assert offer.price_rule.price == 720
        assert offer.methods == frozenset({"alipay", "bank"})
        assert offer.version == 3
        assert [a.new_status for a in offer.activity_log] == ["ACTIVE"]

    async def test_missing_offer_skips_activity_query(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = _load_results(None, [])

        assert await OfferRepository().get_for_update(db, "missing") is None
        assert db.execute.await_count == 1


async def test_update_bumps_in_memory_version() -> None:
    db = AsyncMock()
    offer = _make_offer(status=OfferStatus.PAUSED)

    await OfferRepository().update(db, offer)

    assert offer.version == 4
    sql = str(db.execute.await_args.args[0])
    assert "version = version + 1" in sql
    params = db.execute.await_args.args[1]
    assert params["status"] == "PAUSED"
    assert params["available"] == 800
    assert params["methods"] == ["alipay", "bank"]


async def test_count_open_trades_excludes_terminal_statuses() -> None:
    db = AsyncMock()
    result = MagicMock()
    result.scalar_one.return_value = 2
    db.execute.return_value = result

    assert await OfferRepository().count_open_trades(db, "o-1") == 2
    sql = str(db.execute.await_args.args[0])
    assert "NOT IN" in sql
    params = db.execute.await_args.args[1]
    assert params["offer_id"] == "o-1"
    assert {params["completed"], params["cancelled"], params["expired"]} == {
        "COMPLETED",
        "CANCELLED",
        "EXPIRED",
    }
