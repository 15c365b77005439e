"""Audit event model — one row per offer/trade/dispute/escrow mutation."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class AuditEvent:
    entity_type: str                 # AuditEntityType value
    entity_id: str
    action: str                      # e.g. TRADE_CREATED, STATUS_CHANGED, OFFER_UPDATED
    actor_id: str | None             # None for system actions (sweeper)
    previous_value: dict[str, Any] = field(default_factory=dict)
    new_value: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None
    id: int | None = None
    created_at: datetime | None = None
