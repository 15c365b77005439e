"""Dispute domain models — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime

from src.p2p_common.enums import DisputeStatus


@dataclass(frozen=True)
class DisputeEvidence:
    submitted_by: str
    content: str
    created_at: datetime | None = None


@dataclass
class Dispute:
    id: str
    trade_id: str
    raised_by: str
    reason: str
    status: str = DisputeStatus.OPEN
    resolution: str | None = None    # DisputeResolution value once RESOLVED
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_note: str | None = None
    evidence: list[DisputeEvidence] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == DisputeStatus.OPEN

    def snapshot(self) -> dict[str, object]:
        return {
            "status": self.status,
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
            "evidence_count": len(self.evidence),
        }
