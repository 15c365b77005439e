"""HTTP-level tests: routing, status codes and the AppError envelope.

Services are patched on each router's module-level instance, so these cover
only the HTTP edge; the behaviour behind them is tested per service.
"""

from collections.abc import Callable
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient

from src.p2p_admin.api import router as admin_router
from src.p2p_common.errors import (
    EntityNotFoundError,
    InvalidStateTransitionError,
    NotAuthorizedError,
)
from src.p2p_gateway.auth.permissions import Actor
from src.p2p_ledger.api import router as ledger_router
from src.p2p_ledger.application.schemas import BalancesResponse
from src.p2p_sweeper.sweeper import SweepResult
from src.p2p_trade.api import router as trade_router
from src.p2p_trade.domain.models import Trade
from tests.fakes import ADMIN, BUYER, SELLER, USDT

ActorSetter = Callable[[Actor], AsyncMock]


def _trade(**overrides: object) -> Trade:
    trade = Trade(
        id="t-1",
        offer_id="o-1",
        buyer_id=BUYER.id,
        seller_id=SELLER.id,
        asset="USDT",
        counter_asset="CNY",
        amount=100 * USDT,
        price=720,
        total=72_000,
        method_id="bank",
    )
    for key, value in overrides.items():
        setattr(trade, key, value)
    return trade


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_missing_token_is_401(client: AsyncClient) -> None:
    resp = await client.get("/api/v1/p2p/trades/t-1")
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


async def test_create_trade_201(client: AsyncClient, as_actor: ActorSetter) -> None:
    session = as_actor(BUYER)
    mock = AsyncMock(return_value=_trade())
    with patch.object(trade_router._service, "create_trade", mock):
        resp = await client.post(
            "/api/v1/p2p/offers/o-1/trades", json={"amount": 100 * USDT, "method_id": "bank"}
        )

    assert resp.status_code == 201
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["id"] == "t-1"
    assert body["data"]["status"] == "PENDING"
    mock.assert_awaited_once_with(session, "o-1", BUYER, 100 * USDT, "bank")


async def test_create_trade_rejects_non_positive_amount(
    client: AsyncClient, as_actor: ActorSetter
) -> None:
    as_actor(BUYER)
    resp = await client.post("/api/v1/p2p/offers/o-1/trades", json={"amount": 0})
    assert resp.status_code == 422


async def test_not_authorized_envelope(client: AsyncClient, as_actor: ActorSetter) -> None:
    as_actor(BUYER)
    mock = AsyncMock(side_effect=NotAuthorizedError(BUYER.id, "release escrow"))
    with patch.object(trade_router._service, "confirm_receipt_and_release", mock):
        resp = await client.post("/api/v1/p2p/trades/t-1/release")

    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == 1003
    assert body["data"] == {"actor_id": BUYER.id, "action": "release escrow"}
    assert body["request_id"] == resp.headers["x-request-id"]


async def test_invalid_transition_envelope(client: AsyncClient, as_actor: ActorSetter) -> None:
    as_actor(SELLER)
    mock = AsyncMock(side_effect=InvalidStateTransitionError("COMPLETED", "CANCELLED"))
    with patch.object(trade_router._service, "cancel_trade", mock):
        resp = await client.post("/api/v1/p2p/trades/t-1/cancel", json={"reason": "changed mind"})

    assert resp.status_code == 409
    assert resp.json()["data"]["current"] == "COMPLETED"
    assert mock.await_args.args[3] == "changed mind"


async def test_not_found_envelope(client: AsyncClient, as_actor: ActorSetter) -> None:
    as_actor(BUYER)
    mock = AsyncMock(side_effect=EntityNotFoundError("TRADE", "t-404"))
    with patch.object(trade_router._service, "get_trade", mock):
        resp = await client.get("/api/v1/p2p/trades/t-404")

    assert resp.status_code == 404
    assert resp.json()["code"] == 3001


async def test_balances(client: AsyncClient, as_actor: ActorSetter) -> None:
    as_actor(BUYER)
    mock = AsyncMock(return_value=BalancesResponse(items=[]))
    with patch.object(ledger_router._service, "get_balances", mock):
        resp = await client.get("/api/v1/p2p/balances")

    assert resp.status_code == 200
    assert resp.json()["data"] == {"items": []}
    assert resp.json()["request_id"] == resp.headers["x-request-id"]


async def test_admin_sweep(client: AsyncClient, as_actor: ActorSetter) -> None:
    as_actor(ADMIN)
    mock = AsyncMock(return_value=SweepResult(scanned=3, expired=2, skipped=1))
    with patch.object(admin_router._service, "run_sweep", mock):
        resp = await client.post("/api/v1/admin/p2p/sweep")

    assert resp.status_code == 200
    assert resp.json()["data"] == {"scanned": 3, "expired": 2, "skipped": 1, "failed": 0}
    mock.assert_awaited_once_with(ADMIN)


async def test_admin_offer_status_requires_manage(
    client: AsyncClient, as_actor: ActorSetter
) -> None:
    as_actor(SELLER)
    mock = AsyncMock()
    with patch.object(admin_router._offers, "set_offer_status", mock):
        resp = await client.post(
            "/api/v1/admin/p2p/offers/o-1/status", json={"status": "PAUSED"}
        )

    assert resp.status_code == 403
    mock.assert_not_awaited()
