"""Unit tests for OfferApplicationService over the in-memory backend."""

from unittest.mock import AsyncMock

import pytest

from src.p2p_common.errors import (
    EntityNotFoundError,
    InsufficientFundsError,
    InvalidAmountChangeError,
    InvalidOfferParametersError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    OfferHasActiveTradesError,
)
from src.p2p_offer.application.service import OfferChanges
from tests.fakes import (
    ADMIN,
    BUYER,
    SELLER,
    USDT,
    FakeBackend,
    FakePublisher,
    open_offer,
)


class TestCreateOffer:
    async def test_sell_offer_reserves_total(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)

        assert offer.status == "ACTIVE"
        assert offer.bounds.available == offer.bounds.total == 1_000 * USDT
        assert backend.ledger.balance("seller-1", "USDT") == (0, 1_000 * USDT)
        assert backend.audit.actions(offer.id) == ["OFFER_CREATED"]
        assert backend.publisher.topics() == ["offer.created"]
        assert [a.type for a in backend.offers.offers[offer.id].activity_log] == ["CREATED"]

    async def test_buy_offer_leaves_ledger_alone(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend, direction="BUY", owner=BUYER)

        assert offer.direction == "BUY"
        assert backend.ledger.entries == []

    async def test_sell_offer_without_funds_rolls_back(self, backend: FakeBackend) -> None:
        db = AsyncMock()
        backend.ledger.seed("seller-1", "USDT", 5 * USDT)

        with pytest.raises(InsufficientFundsError):
            await backend.offer_service().create_offer(
                db,
                SELLER,
                direction="SELL",
                asset="usdt",
                counter_asset="cny",
                total=100 * USDT,
                min_per_trade=USDT,
                max_per_trade=50 * USDT,
                price=720,
                methods=frozenset({"bank"}),
            )
        db.rollback.assert_awaited_once()
        assert backend.offers.offers == {}
        assert backend.publisher.published == []

    async def test_invalid_bounds_rejected_before_any_write(self, backend: FakeBackend) -> None:
        with pytest.raises(InvalidOfferParametersError):
            await open_offer(backend, min_per_trade=600 * USDT)
        assert backend.ledger.entries == []

    async def test_publisher_failure_does_not_fail_create(self) -> None:
        backend = FakeBackend(publisher=FakePublisher(fail=True))
        offer = await open_offer(backend)
        assert offer.id in backend.offers.offers


class TestUpdateOffer:
    async def test_increase_total_reserves_delta(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        backend.ledger.seed("seller-1", "USDT", 200 * USDT, 1_000 * USDT)

        updated = await backend.offer_service().update_offer(
            AsyncMock(), offer.id, SELLER, OfferChanges(total=1_200 * USDT)
        )

        assert updated.bounds.total == updated.bounds.available == 1_200 * USDT
        assert backend.ledger.balance("seller-1", "USDT") == (0, 1_200 * USDT)
        assert backend.publisher.topics()[-1] == "offer.updated"

    async def test_decrease_total_releases_delta(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)

        await backend.offer_service().update_offer(
            AsyncMock(), offer.id, SELLER, OfferChanges(total=600 * USDT, max_per_trade=100 * USDT)
        )

        assert backend.ledger.balance("seller-1", "USDT") == (400 * USDT, 600 * USDT)
        stored = backend.offers.offers[offer.id]
        assert stored.bounds.max_per_trade == 100 * USDT
        assert stored.version == 1

    async def test_unset_fields_keep_current_values(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)

        updated = await backend.offer_service().update_offer(
            AsyncMock(), offer.id, SELLER, OfferChanges(price=730)
        )

        assert updated.price_rule.price == 730
        assert updated.bounds.min_per_trade == 10 * USDT
        assert updated.bounds.max_per_trade == 500 * USDT
        assert updated.payment_window_minutes == offer.payment_window_minutes

    async def test_cannot_shrink_below_open_trades(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        await backend.trade_service().create_trade(AsyncMock(), offer.id, BUYER, 400 * USDT)

        with pytest.raises(InvalidAmountChangeError):
            await backend.offer_service().update_offer(
                AsyncMock(), offer.id, SELLER, OfferChanges(total=300 * USDT)
            )
        assert backend.offers.offers[offer.id].bounds.total == 1_000 * USDT

    async def test_only_owner_updates(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        with pytest.raises(NotAuthorizedError):
            await backend.offer_service().update_offer(
                AsyncMock(), offer.id, ADMIN, OfferChanges(price=700)
            )

    async def test_updated_bounds_are_validated(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        with pytest.raises(InvalidOfferParametersError):
            await backend.offer_service().update_offer(
                AsyncMock(), offer.id, SELLER, OfferChanges(min_per_trade=900 * USDT)
            )


class TestDeleteOffer:
    async def test_releases_reservation(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)

        deleted = await backend.offer_service().delete_offer(AsyncMock(), offer.id, SELLER)

        assert deleted.status == "CANCELLED"
        assert backend.ledger.balance("seller-1", "USDT") == (1_000 * USDT, 0)
        assert backend.audit.actions(offer.id)[-1] == "OFFER_DELETED"
        assert backend.publisher.topics()[-1] == "offer.cancelled"

    async def test_refuses_with_open_trades(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        await backend.trade_service().create_trade(AsyncMock(), offer.id, BUYER, 100 * USDT)

        with pytest.raises(OfferHasActiveTradesError):
            await backend.offer_service().delete_offer(AsyncMock(), offer.id, SELLER)

    async def test_twice_is_invalid(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        svc = backend.offer_service()
        await svc.delete_offer(AsyncMock(), offer.id, SELLER)
        with pytest.raises(InvalidStateTransitionError):
            await svc.delete_offer(AsyncMock(), offer.id, SELLER)


class TestSetOfferStatus:
    async def test_owner_pauses_and_resumes(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        svc = backend.offer_service()

        paused = await svc.set_offer_status(AsyncMock(), offer.id, "PAUSED", SELLER)
        assert paused.status == "PAUSED"
        resumed = await svc.set_offer_status(AsyncMock(), offer.id, "ACTIVE", SELLER)
        assert resumed.status == "ACTIVE"
        # Pausing keeps the reservation
        assert backend.ledger.balance("seller-1", "USDT") == (0, 1_000 * USDT)

    async def test_owner_cannot_disable(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        with pytest.raises(NotAuthorizedError):
            await backend.offer_service().set_offer_status(
                AsyncMock(), offer.id, "DISABLED", SELLER
            )

    async def test_owner_cannot_lift_admin_disable(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        svc = backend.offer_service()
        await svc.set_offer_status(AsyncMock(), offer.id, "DISABLED", ADMIN, "spam")

        with pytest.raises(NotAuthorizedError):
            await svc.set_offer_status(AsyncMock(), offer.id, "ACTIVE", SELLER)
        reactivated = await svc.set_offer_status(AsyncMock(), offer.id, "ACTIVE", ADMIN)
        assert reactivated.status == "ACTIVE"

    async def test_cancel_then_reactivate_re_reserves(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        svc = backend.offer_service()

        await svc.set_offer_status(AsyncMock(), offer.id, "CANCELLED", SELLER)
        assert backend.ledger.balance("seller-1", "USDT") == (1_000 * USDT, 0)

        await svc.set_offer_status(AsyncMock(), offer.id, "ACTIVE", SELLER)
        assert backend.ledger.balance("seller-1", "USDT") == (0, 1_000 * USDT)

    async def test_invalid_edge(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        svc = backend.offer_service()
        await svc.set_offer_status(AsyncMock(), offer.id, "PAUSED", SELLER)
        with pytest.raises(InvalidStateTransitionError):
            await svc.set_offer_status(AsyncMock(), offer.id, "CANCELLED", SELLER)

    async def test_status_change_is_audited_with_reason(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        await backend.offer_service().set_offer_status(
            AsyncMock(), offer.id, "DISABLED", ADMIN, "fraud report"
        )
        event = backend.audit.events[-1]
        assert event.action == "OFFER_STATUS_CHANGED"
        assert event.reason == "fraud report"
        assert event.previous_value["status"] == "ACTIVE"
        assert event.new_value["status"] == "DISABLED"


class TestGetOffer:
    async def test_returns_offer_with_activity(self, backend: FakeBackend) -> None:
        offer = await open_offer(backend)
        svc = backend.offer_service()
        await svc.set_offer_status(AsyncMock(), offer.id, "PAUSED", SELLER)

        fetched = await svc.get_offer(AsyncMock(), offer.id)

        assert fetched.status == "PAUSED"
        assert [a.type for a in fetched.activity_log] == ["CREATED", "STATUS_CHANGED"]

    async def test_unknown_offer(self, backend: FakeBackend) -> None:
        with pytest.raises(EntityNotFoundError):
            await backend.offer_service().get_offer(AsyncMock(), "missing")
