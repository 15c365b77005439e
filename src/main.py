"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.p2p_admin.api.router import router as admin_router
from src.p2p_common.database import async_session_factory, engine
from src.p2p_common.errors import AppError
from src.p2p_common.redis_client import close_redis, get_redis
from src.p2p_common.response import error_response
from src.p2p_dispute.api.router import router as dispute_router
from src.p2p_gateway.middleware.request_log import RequestLogMiddleware
from src.p2p_ledger.api.router import router as ledger_router
from src.p2p_offer.api.router import router as offer_router
from src.p2p_sweeper.scheduler import SweepScheduler
from src.p2p_sweeper.sweeper import run_timeout_sweep
from src.p2p_trade.api.router import router as trade_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, start the sweeper. Shutdown: stop and dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await get_redis()
    scheduler: SweepScheduler | None = None
    if settings.P2P_SWEEP_ENABLED:
        scheduler = SweepScheduler(
            lambda: run_timeout_sweep(async_session_factory),
            settings.P2P_SWEEP_INTERVAL_SECONDS,
        )
        await scheduler.start()
    app.state.sweep_scheduler = scheduler
    yield
    # Shutdown
    if scheduler is not None:
        await scheduler.stop()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=error_response(exc.code, exc.message, exc.details).model_dump(),
    )


app.include_router(offer_router, prefix="/api/v1")
app.include_router(trade_router, prefix="/api/v1")
app.include_router(dispute_router, prefix="/api/v1")
app.include_router(ledger_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
