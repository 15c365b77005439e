"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/Permission
  2xxx: Ledger/Funds
  3xxx: Lookup
  4xxx: Offer/Trade lifecycle
  5xxx: Dispute
  9xxx: System

Every error carries `details`, the attempted and current state, which the API
layer returns as the response `data`.
"""

from enum import Enum
from typing import Any


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.details: dict[str, Any] = details or {}
        super().__init__(message)


def _plain(value: Any) -> Any:
    """Enum members as their wire value, so messages read ESCROW, not TradeStatus.ESCROW."""
    return value.value if isinstance(value, Enum) else value


# --- 1xxx: Auth/Permission ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


class NotAuthorizedError(AppError):
    def __init__(self, actor_id: str, action: str) -> None:
        super().__init__(
            1003,
            f"Actor {actor_id} is not authorized to {action}",
            403,
            {"actor_id": actor_id, "action": action},
        )


# --- 2xxx: Ledger/Funds ---

class InsufficientFundsError(AppError):
    def __init__(self, required: int, available: int, asset: str | None = None) -> None:
        unit = f" {asset}" if asset else ""
        super().__init__(
            2001,
            f"Insufficient funds: required {required}{unit}, available {available}{unit}",
            422,
            {"required": required, "available": available, "asset": asset},
        )


class LedgerInvariantViolationError(AppError):
    """Always a caller bug or a race the locking scheme should have prevented."""

    def __init__(self, detail: str, **state: Any) -> None:
        super().__init__(2002, f"Ledger invariant violated: {detail}", 500, state)


# --- 3xxx: Lookup ---

class EntityNotFoundError(AppError):
    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(
            3001,
            f"{entity_type} not found: {entity_id}",
            404,
            {"entity_type": entity_type, "entity_id": entity_id},
        )


# --- 4xxx: Offer/Trade lifecycle ---

class InvalidStateTransitionError(AppError):
    def __init__(self, current: str, requested: str, entity_type: str = "TRADE") -> None:
        current, requested = _plain(current), _plain(requested)
        super().__init__(
            4001,
            f"Invalid {entity_type.lower()} transition: {current} -> {requested}",
            409,
            {"entity_type": entity_type, "current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class InvalidAmountChangeError(AppError):
    def __init__(self, offer_id: str, requested_total: int, available_after: int) -> None:
        super().__init__(
            4002,
            f"Offer {offer_id}: total {requested_total} would leave available at {available_after}",
            422,
            {
                "offer_id": offer_id,
                "requested_total": requested_total,
                "available_after": available_after,
            },
        )


class OfferHasActiveTradesError(AppError):
    def __init__(self, offer_id: str, active_trades: int) -> None:
        super().__init__(
            4003,
            f"Offer {offer_id} has {active_trades} active trade(s)",
            409,
            {"offer_id": offer_id, "active_trades": active_trades},
        )


class InvalidOfferParametersError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4004, f"Invalid offer parameters: {detail}", 422, {"detail": detail})


# --- 5xxx: Dispute ---

class DisputeAlreadyResolvedError(AppError):
    def __init__(self, dispute_id: str, resolution: str | None) -> None:
        resolution = _plain(resolution)
        super().__init__(
            5001,
            f"Dispute {dispute_id} is already resolved ({resolution})",
            409,
            {"dispute_id": dispute_id, "resolution": resolution},
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class ConcurrentModificationError(AppError):
    """Optimistic check failed; safe to retry."""

    def __init__(
        self, entity_type: str, entity_id: str, expected: str, current: str | None
    ) -> None:
        super().__init__(
            9003,
            f"{entity_type} {entity_id} changed concurrently: expected {expected}, found {current}",
            409,
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "expected": expected,
                "current": current,
            },
        )
