from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from src.p2p_dispute.domain.models import Dispute


class RaiseDisputeRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class AddEvidenceRequest(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class ResolveDisputeRequest(BaseModel):
    resolution: Literal["RELEASED_TO_BUYER", "RETURNED_TO_SELLER"]
    note: str | None = Field(default=None, max_length=2000)


class EvidenceResponse(BaseModel):
    submitted_by: str
    content: str
    created_at: datetime | None = None


class DisputeResponse(BaseModel):
    id: str
    trade_id: str
    raised_by: str
    reason: str
    status: str
    resolution: str | None
    resolved_by: str | None
    resolved_at: datetime | None
    resolution_note: str | None
    evidence: list[EvidenceResponse]
    created_at: datetime | None = None

    @classmethod
    def from_dispute(cls, dispute: Dispute) -> "DisputeResponse":
        return cls(
            id=dispute.id,
            trade_id=dispute.trade_id,
            raised_by=dispute.raised_by,
            reason=dispute.reason,
            status=dispute.status,
            resolution=dispute.resolution,
            resolved_by=dispute.resolved_by,
            resolved_at=dispute.resolved_at,
            resolution_note=dispute.resolution_note,
            evidence=[
                EvidenceResponse(
                    submitted_by=e.submitted_by, content=e.content, created_at=e.created_at
                )
                for e in dispute.evidence
            ],
            created_at=dispute.created_at,
        )
