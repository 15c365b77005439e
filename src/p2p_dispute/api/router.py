"""Dispute REST API — participant-facing endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.database import get_db_session
from src.p2p_common.response import ApiResponse, success_response
from src.p2p_dispute.application.schemas import (
    AddEvidenceRequest,
    DisputeResponse,
    RaiseDisputeRequest,
)
from src.p2p_dispute.application.service import DisputeApplicationService
from src.p2p_gateway.auth.dependencies import get_current_actor
from src.p2p_gateway.auth.permissions import Actor

router = APIRouter(prefix="/p2p", tags=["p2p-disputes"])
_service = DisputeApplicationService()


@router.post("/trades/{trade_id}/dispute", response_model=ApiResponse, status_code=201)
async def raise_dispute(
    trade_id: str,
    body: RaiseDisputeRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    dispute = await _service.raise_dispute(db, trade_id, actor, body.reason)
    return success_response(DisputeResponse.from_dispute(dispute).model_dump(mode="json"))


@router.get("/disputes/{dispute_id}", response_model=ApiResponse)
async def get_dispute(
    dispute_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    dispute = await _service.get_dispute(db, dispute_id, actor)
    return success_response(DisputeResponse.from_dispute(dispute).model_dump(mode="json"))


@router.post("/disputes/{dispute_id}/evidence", response_model=ApiResponse)
async def add_evidence(
    dispute_id: str,
    body: AddEvidenceRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    dispute = await _service.add_evidence(db, dispute_id, actor, body.content)
    return success_response(DisputeResponse.from_dispute(dispute).model_dump(mode="json"))
