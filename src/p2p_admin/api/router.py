"""Admin REST API — operator actions over offers, trades, disputes and the ledger.

Every route re-enters the same service the user path uses; permissions are
checked there, so a token without the matching p2p.* permission gets 403.
"""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_admin.application.service import AdminService
from src.p2p_common.database import get_db_session
from src.p2p_common.response import ApiResponse, success_response
from src.p2p_dispute.application.schemas import DisputeResponse, ResolveDisputeRequest
from src.p2p_dispute.application.service import DisputeApplicationService
from src.p2p_gateway.auth.dependencies import get_current_actor
from src.p2p_gateway.auth.permissions import (
    OFFER_MANAGE,
    Actor,
    RoleAuthorizer,
    require_permission,
)
from src.p2p_ledger.application.schemas import HostMovementRequest
from src.p2p_ledger.application.service import LedgerApplicationService
from src.p2p_offer.application.schemas import OfferResponse, SetOfferStatusRequest
from src.p2p_offer.application.service import OfferApplicationService
from src.p2p_trade.application.schemas import CancelTradeRequest, TradeResponse
from src.p2p_trade.application.service import TradeApplicationService
from src.p2p_trade.domain.models import Trade

router = APIRouter(prefix="/admin", tags=["admin"])
_service = AdminService()
_offers = OfferApplicationService()
_trades = TradeApplicationService()
_disputes = DisputeApplicationService()
_ledger = LedgerApplicationService()
_authorizer = RoleAuthorizer()


def _trade_ok(trade: Trade) -> ApiResponse:
    return success_response(TradeResponse.from_trade(trade).model_dump(mode="json"))


@router.post("/p2p/offers/{offer_id}/status")
async def set_offer_status(
    offer_id: str,
    body: SetOfferStatusRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    # The owner path stays on /p2p/offers; here the caller must be an operator
    require_permission(_authorizer, actor, OFFER_MANAGE)
    offer = await _offers.set_offer_status(db, offer_id, body.status, actor, body.reason)
    return success_response(OfferResponse.from_offer(offer).model_dump(mode="json"))


@router.post("/p2p/disputes/{dispute_id}/resolve")
async def resolve_dispute(
    dispute_id: str,
    body: ResolveDisputeRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    dispute = await _disputes.resolve_dispute(db, dispute_id, body.resolution, actor, body.note)
    return success_response(DisputeResponse.from_dispute(dispute).model_dump(mode="json"))


@router.post("/p2p/trades/{trade_id}/cancel")
async def cancel_trade(
    trade_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    body: CancelTradeRequest | None = None,
) -> ApiResponse:
    reason = body.reason if body else None
    return _trade_ok(await _trades.cancel_trade(db, trade_id, actor, reason))


@router.post("/p2p/sweep")
async def run_sweep(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> ApiResponse:
    result = await _service.run_sweep(actor)
    return success_response(asdict(result))


@router.get("/p2p/invariants")
async def verify_invariants(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    return success_response(await _service.verify_invariants(db, actor))


@router.get("/audit/{entity_type}/{entity_id}")
async def list_audit(
    entity_type: str,
    entity_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    events = await _service.list_audit(db, actor, entity_type, entity_id)
    return success_response({"items": events})


@router.post("/p2p/ledger/deposit")
async def deposit(
    body: HostMovementRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _ledger.deposit(db, actor, body.user_id, body.asset, body.amount, body.reference)
    return success_response(data.model_dump())


@router.post("/p2p/ledger/withdraw")
async def withdraw(
    body: HostMovementRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _ledger.withdraw(db, actor, body.user_id, body.asset, body.amount, body.reference)
    return success_response(data.model_dump())
