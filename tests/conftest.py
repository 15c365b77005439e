"""Shared test fixtures."""

import os

# Settings read JWT_SECRET at import time
os.environ.setdefault("JWT_SECRET", "test-secret")

from collections.abc import AsyncIterator, Callable, Iterator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from src.main import app  # noqa: E402
from src.p2p_common.database import get_db_session  # noqa: E402
from src.p2p_gateway.auth.dependencies import get_current_actor  # noqa: E402
from src.p2p_gateway.auth.permissions import Actor  # noqa: E402
from tests.fakes import FakeBackend  # noqa: E402


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def db() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def as_actor() -> Iterator[Callable[[Actor], AsyncMock]]:
    """Route requests as the given Actor with a mocked DB session.

    Usage: session = as_actor(BUYER); overrides are dropped after the test.
    """
    session = AsyncMock()

    async def _db() -> AsyncIterator[AsyncMock]:
        yield session

    def _set(actor: Actor) -> AsyncMock:
        app.dependency_overrides[get_current_actor] = lambda: actor
        app.dependency_overrides[get_db_session] = _db
        return session

    yield _set
    app.dependency_overrides.clear()
