"""Ledger REST API — the caller's own balances and ledger entries."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.database import get_db_session
from src.p2p_common.response import ApiResponse, success_response
from src.p2p_gateway.auth.dependencies import get_current_actor
from src.p2p_gateway.auth.permissions import Actor
from src.p2p_ledger.application.service import LedgerApplicationService

router = APIRouter(prefix="/p2p", tags=["p2p-ledger"])

_service = LedgerApplicationService()


@router.get("/balances")
async def get_balances(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.get_balances(db, actor)
    return success_response(data.model_dump())


@router.get("/ledger")
async def list_ledger(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    asset: str | None = Query(None, description="Filter by asset"),
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
) -> ApiResponse:
    data = await _service.list_ledger(db, actor, asset, cursor, limit)
    return success_response(data.model_dump())
