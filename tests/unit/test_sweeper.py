"""Unit tests for the timeout sweeper and its scheduler."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from src.p2p_common.datetime_utils import utc_now
from src.p2p_common.tracing import OperationTracer
from src.p2p_sweeper.scheduler import SweepScheduler
from src.p2p_sweeper.sweeper import SweepResult, run_timeout_sweep
from src.p2p_trade.domain.models import Trade
from tests.fakes import BUYER, SELLER, USDT, FakeBackend, FakeSessionFactory, open_offer


async def _trade(backend: FakeBackend, direction: str = "SELL") -> Trade:
    if direction == "SELL":
        offer = await open_offer(backend)
        taker = BUYER
    else:
        offer = await open_offer(backend, direction="BUY", owner=BUYER)
        backend.ledger.seed("seller-1", "USDT", 200 * USDT)
        taker = SELLER
    return await backend.trade_service().create_trade(AsyncMock(), offer.id, taker, 200 * USDT)


def _later(minutes: int = 31) -> datetime:
    return utc_now() + timedelta(minutes=minutes)


class TestExpiry:
    async def test_active_trade_past_deadline_expires(self, backend: FakeBackend) -> None:
        trade = await _trade(backend, direction="BUY")
        offer_id = trade.offer_id

        result = await backend.sweeper().run(FakeSessionFactory(), now=_later())

        assert result == SweepResult(scanned=1, expired=1, skipped=0, failed=0)
        stored = backend.trades.trades[trade.id]
        assert stored.status == "EXPIRED"
        assert stored.expired_at is not None
        assert backend.offers.offers[offer_id].bounds.available == 1_000 * USDT
        # Nothing was escrowed yet, so the seller's ledger is untouched
        assert backend.ledger.balance("seller-1", "USDT") == (200 * USDT, 0)
        audit = backend.audit.events[-1]
        assert audit.actor_id is None
        assert audit.reason == "payment deadline passed"
        assert audit.new_value["status"] == "EXPIRED"
        assert backend.publisher.topics()[-1] == "trade.expired"

    async def test_escrow_trade_folds_hold_back_into_offer(self, backend: FakeBackend) -> None:
        trade = await _trade(backend)

        await backend.sweeper().run(FakeSessionFactory(), now=_later())

        assert backend.trades.trades[trade.id].escrow_amount == 0
        assert backend.trades.holds[trade.id].status == "RETURNED"
        assert backend.offers.offers[trade.offer_id].bounds.available == 1_000 * USDT
        assert backend.ledger.balance("seller-1", "USDT") == (0, 1_000 * USDT)

    async def test_escrow_on_paused_offer_releases_to_seller(
        self, backend: FakeBackend
    ) -> None:
        trade = await _trade(backend)
        await backend.offer_service().set_offer_status(
            AsyncMock(), trade.offer_id, "PAUSED", SELLER
        )

        await backend.sweeper().run(FakeSessionFactory(), now=_later())

        offer = backend.offers.offers[trade.offer_id]
        assert (offer.bounds.total, offer.bounds.available) == (800 * USDT, 800 * USDT)
        assert backend.ledger.balance("seller-1", "USDT") == (200 * USDT, 800 * USDT)

    async def test_payment_sent_waits_for_trade_expiry(self, backend: FakeBackend) -> None:
        trade = await _trade(backend)
        await backend.trade_service().mark_payment_sent(AsyncMock(), trade.id, BUYER)

        early = await backend.sweeper().run(FakeSessionFactory(), now=_later())
        assert early.scanned == 0
        assert backend.trades.trades[trade.id].status == "PAYMENT_SENT"

        await backend.sweeper().run(FakeSessionFactory(), now=_later(60 * 25))
        assert backend.trades.trades[trade.id].status == "EXPIRED"
        assert backend.audit.events[-1].reason == "trade expiry passed"

    async def test_not_yet_due_is_left_alone(self, backend: FakeBackend) -> None:
        trade = await _trade(backend)
        result = await backend.sweeper().run(FakeSessionFactory())
        assert result.scanned == 0
        assert backend.trades.trades[trade.id].status == "ESCROW"

    async def test_second_run_is_a_no_op(self, backend: FakeBackend) -> None:
        await _trade(backend)
        sweeper = backend.sweeper()
        now = _later()

        first = await sweeper.run(FakeSessionFactory(), now=now)
        entries = len(backend.ledger.entries)
        events = len(backend.audit.events)
        second = await sweeper.run(FakeSessionFactory(), now=now)

        assert first.expired == 1
        assert second == SweepResult()
        assert len(backend.ledger.entries) == entries
        assert len(backend.audit.events) == events


class TestRaces:
    async def test_trade_changed_since_scan_is_skipped(self, backend: FakeBackend) -> None:
        trade = await _trade(backend)
        now = _later()
        original = backend.trades.list_expiry_candidates

        async def _stale_scan(db, at, limit):  # type: ignore[no-untyped-def]
            candidates = await original(db, at, limit)
            # The buyer acts between the scan and the expiry attempt
            backend.trades.trades[trade.id].version += 1
            return candidates

        backend.trades.list_expiry_candidates = _stale_scan  # type: ignore[method-assign]
        result = await backend.sweeper().run(FakeSessionFactory(), now=now)

        assert result == SweepResult(scanned=1, expired=0, skipped=1, failed=0)
        assert backend.trades.trades[trade.id].status == "ESCROW"

    async def test_one_failure_does_not_stop_the_sweep(self, backend: FakeBackend) -> None:
        broken = await _trade(backend)
        healthy = await _trade(backend, direction="BUY")
        del backend.offers.offers[broken.offer_id]
        sessions = FakeSessionFactory()

        result = await backend.sweeper().run(sessions, now=_later())

        assert result.failed == 1
        assert result.expired == 1
        assert backend.trades.trades[healthy.id].status == "EXPIRED"
        # One session for the scan and one per candidate; the failed one rolled back
        assert len(sessions.sessions) == 3
        assert sum(s.rollback.await_count for s in sessions.sessions) == 1

    async def test_tracer_records_summary(self, backend: FakeBackend) -> None:
        await _trade(backend)
        tracer = OperationTracer("timeout_sweep")
        await backend.sweeper().run(FakeSessionFactory(), now=_later(), tracer=tracer)
        assert tracer.messages("SUCCESS") == ["Sweep expired 1, skipped 0 of 1"]

    async def test_run_timeout_sweep_uses_given_sweeper(self, backend: FakeBackend) -> None:
        await _trade(backend)
        result = await run_timeout_sweep(
            FakeSessionFactory(), now=_later(), sweeper=backend.sweeper()
        )
        assert result.expired == 1


class TestSweepScheduler:
    async def test_runs_until_stopped(self) -> None:
        calls = 0

        async def _sweep() -> SweepResult:
            nonlocal calls
            calls += 1
            return SweepResult(scanned=calls)

        scheduler = SweepScheduler(_sweep, interval_seconds=0.01)
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert calls >= 2
        assert scheduler.last_result is not None
        assert not scheduler.running

    async def test_survives_a_failing_run(self) -> None:
        outcomes: list[object] = [RuntimeError("db down"), SweepResult(expired=1)]

        async def _sweep() -> SweepResult:
            outcome = outcomes.pop(0) if outcomes else SweepResult()
            if isinstance(outcome, Exception):
                raise outcome
            return outcome  # type: ignore[return-value]

        scheduler = SweepScheduler(_sweep, interval_seconds=0.01)
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.last_result is not None

    async def test_start_is_idempotent(self) -> None:
        sweep = AsyncMock(return_value=SweepResult())
        scheduler = SweepScheduler(sweep, interval_seconds=60)
        await scheduler.start()
        await scheduler.start()
        await asyncio.sleep(0)
        await scheduler.stop()
        assert sweep.await_count == 1

    async def test_stop_without_start(self) -> None:
        scheduler = SweepScheduler(AsyncMock(), interval_seconds=60)
        await scheduler.stop()
        assert not scheduler.running
