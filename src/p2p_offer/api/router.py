"""Offer REST API — owner-facing endpoints under /p2p/offers."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.database import get_db_session
from src.p2p_common.response import ApiResponse, success_response
from src.p2p_gateway.auth.dependencies import get_current_actor
from src.p2p_gateway.auth.permissions import Actor
from src.p2p_offer.application.schemas import (
    CreateOfferRequest,
    OfferResponse,
    SetOfferStatusRequest,
    UpdateOfferRequest,
)
from src.p2p_offer.application.service import OfferApplicationService, OfferChanges
from src.p2p_offer.domain.models import Offer

router = APIRouter(prefix="/p2p/offers", tags=["p2p-offers"])
_service = OfferApplicationService()


def _dump(offer: Offer) -> dict[str, Any]:
    return OfferResponse.from_offer(offer).model_dump(mode="json")


@router.post("", response_model=ApiResponse, status_code=201)
async def create_offer(
    body: CreateOfferRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    offer = await _service.create_offer(
        db,
        actor,
        direction=body.direction,
        asset=body.asset,
        counter_asset=body.counter_asset,
        total=body.total,
        min_per_trade=body.min_per_trade,
        max_per_trade=body.max_per_trade,
        price=body.price,
        methods=frozenset(body.methods),
        payment_window_minutes=body.payment_window_minutes,
    )
    return success_response(_dump(offer))


@router.get("/{offer_id}", response_model=ApiResponse)
async def get_offer(
    offer_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    offer = await _service.get_offer(db, offer_id)
    return success_response(_dump(offer))


@router.patch("/{offer_id}", response_model=ApiResponse)
async def update_offer(
    offer_id: str,
    body: UpdateOfferRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    changes = OfferChanges(
        total=body.total,
        min_per_trade=body.min_per_trade,
        max_per_trade=body.max_per_trade,
        price=body.price,
        methods=frozenset(body.methods) if body.methods is not None else None,
        payment_window_minutes=body.payment_window_minutes,
    )
    offer = await _service.update_offer(db, offer_id, actor, changes)
    return success_response(_dump(offer))


@router.delete("/{offer_id}", response_model=ApiResponse)
async def delete_offer(
    offer_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    offer = await _service.delete_offer(db, offer_id, actor)
    return success_response(_dump(offer))


@router.post("/{offer_id}/status", response_model=ApiResponse)
async def set_offer_status(
    offer_id: str,
    body: SetOfferStatusRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    offer = await _service.set_offer_status(db, offer_id, body.status, actor, body.reason)
    return success_response(_dump(offer))
