"""Trade state machine.

    PENDING         -> ACTIVE, CANCELLED
    ACTIVE          -> ESCROW, CANCELLED, EXPIRED
    ESCROW          -> PAYMENT_SENT, DISPUTED, EXPIRED
    PAYMENT_SENT    -> ESCROW_RELEASED, DISPUTED, EXPIRED
    ESCROW_RELEASED -> COMPLETED
    DISPUTED        -> ESCROW_RELEASED, CANCELLED

COMPLETED, CANCELLED and EXPIRED are terminal.
"""

from datetime import datetime

from src.p2p_common.enums import TradeStatus
from src.p2p_common.errors import InvalidStateTransitionError
from src.p2p_trade.domain.models import Trade

TRADE_TRANSITIONS: dict[str, frozenset[str]] = {
    TradeStatus.PENDING: frozenset({TradeStatus.ACTIVE, TradeStatus.CANCELLED}),
    TradeStatus.ACTIVE: frozenset(
        {TradeStatus.ESCROW, TradeStatus.CANCELLED, TradeStatus.EXPIRED}
    ),
    TradeStatus.ESCROW: frozenset(
        {TradeStatus.PAYMENT_SENT, TradeStatus.DISPUTED, TradeStatus.EXPIRED}
    ),
    TradeStatus.PAYMENT_SENT: frozenset(
        {TradeStatus.ESCROW_RELEASED, TradeStatus.DISPUTED, TradeStatus.EXPIRED}
    ),
    TradeStatus.ESCROW_RELEASED: frozenset({TradeStatus.COMPLETED}),
    TradeStatus.DISPUTED: frozenset({TradeStatus.ESCROW_RELEASED, TradeStatus.CANCELLED}),
    TradeStatus.COMPLETED: frozenset(),
    TradeStatus.CANCELLED: frozenset(),
    TradeStatus.EXPIRED: frozenset(),
}

TERMINAL_STATES = frozenset({TradeStatus.COMPLETED, TradeStatus.CANCELLED, TradeStatus.EXPIRED})

# Statuses the sweeper may force-expire, keyed to the deadline that applies
EXPIRABLE_BY_PAYMENT_DEADLINE = frozenset({TradeStatus.ACTIVE, TradeStatus.ESCROW})
EXPIRABLE_BY_TRADE_EXPIRY = frozenset({TradeStatus.PAYMENT_SENT})


def can_transition(current: str, target: str) -> bool:
    return target in TRADE_TRANSITIONS.get(current, frozenset())


def check_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransitionError(current, target)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def apply_transition(trade: Trade, target: str, now: datetime) -> str:
    """Move `trade` to `target`, stamping the matching timestamp. Returns the prior status."""
    check_transition(trade.status, target)
    previous = trade.status
    trade.status = target
    if target == TradeStatus.PAYMENT_SENT:
        trade.payment_sent_at = now
    elif target == TradeStatus.COMPLETED:
        trade.completed_at = now
    elif target == TradeStatus.CANCELLED:
        trade.cancelled_at = now
    elif target == TradeStatus.EXPIRED:
        trade.expired_at = now
    trade.updated_at = now
    return previous


def is_overdue(trade: Trade, now: datetime) -> bool:
    """True when the sweeper should expire `trade` at `now`."""
    if trade.status in EXPIRABLE_BY_PAYMENT_DEADLINE:
        return trade.payment_deadline is not None and trade.payment_deadline < now
    if trade.status in EXPIRABLE_BY_TRADE_EXPIRY:
        return trade.expires_at is not None and trade.expires_at < now
    return False
