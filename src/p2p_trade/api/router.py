"""Trade REST API — opening trades on offers and the buyer/seller actions."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.database import get_db_session
from src.p2p_common.response import ApiResponse, success_response
from src.p2p_gateway.auth.dependencies import get_current_actor
from src.p2p_gateway.auth.permissions import Actor
from src.p2p_trade.application.schemas import (
    CancelTradeRequest,
    CreateTradeRequest,
    TradeResponse,
)
from src.p2p_trade.application.service import TradeApplicationService
from src.p2p_trade.domain.models import Trade

router = APIRouter(prefix="/p2p", tags=["p2p-trades"])
_service = TradeApplicationService()


def _ok(trade: Trade) -> ApiResponse:
    return success_response(TradeResponse.from_trade(trade).model_dump(mode="json"))


@router.post("/offers/{offer_id}/trades", response_model=ApiResponse, status_code=201)
async def create_trade(
    offer_id: str,
    body: CreateTradeRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    trade = await _service.create_trade(db, offer_id, actor, body.amount, body.method_id)
    return _ok(trade)


@router.get("/trades/{trade_id}", response_model=ApiResponse)
async def get_trade(
    trade_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    return _ok(await _service.get_trade(db, trade_id, actor))


@router.post("/trades/{trade_id}/fund", response_model=ApiResponse)
async def fund_escrow(
    trade_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    return _ok(await _service.fund_escrow(db, trade_id, actor))


@router.post("/trades/{trade_id}/payment-sent", response_model=ApiResponse)
async def mark_payment_sent(
    trade_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    return _ok(await _service.mark_payment_sent(db, trade_id, actor))


@router.post("/trades/{trade_id}/release", response_model=ApiResponse)
async def confirm_receipt_and_release(
    trade_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    return _ok(await _service.confirm_receipt_and_release(db, trade_id, actor))


@router.post("/trades/{trade_id}/cancel", response_model=ApiResponse)
async def cancel_trade(
    trade_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    body: CancelTradeRequest | None = None,
) -> ApiResponse:
    reason = body.reason if body else None
    return _ok(await _service.cancel_trade(db, trade_id, actor, reason))
