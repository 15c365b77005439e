"""Global escrow invariant checks, run on demand by operators.

Each check returns human-readable violation strings; an empty list means the
books agree. Violations are logged at ERROR since none of them should ever be
reachable through the services.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# reserved == open SELL offer reservations + HELD escrow holds, per (user, asset)
_RESERVATION_MISMATCH_SQL = text("""
    WITH attributed AS (
        SELECT owner_id AS user_id, asset, available AS amount
        FROM p2p_offers
        WHERE direction = 'SELL' AND status <> 'CANCELLED'
        UNION ALL
        SELECT seller_id AS user_id, asset, amount
        FROM p2p_escrow_holds
        WHERE status = 'HELD'
    ),
    expected AS (
        SELECT user_id, asset, SUM(amount) AS reserved
        FROM attributed
        GROUP BY user_id, asset
    )
    SELECT COALESCE(a.user_id, e.user_id) AS user_id,
           COALESCE(a.asset, e.asset) AS asset,
           COALESCE(a.reserved, 0) AS actual,
           COALESCE(e.reserved, 0) AS expected
    FROM p2p_accounts a
    FULL OUTER JOIN expected e ON e.user_id = a.user_id AND e.asset = a.asset
    WHERE COALESCE(a.reserved, 0) <> COALESCE(e.reserved, 0)
""")

# total == available + sum of open trade amounts, 0 <= available <= total
_OFFER_POOL_MISMATCH_SQL = text("""
    SELECT o.id, o.total, o.available, COALESCE(SUM(t.amount), 0) AS open_amount
    FROM p2p_offers o
    LEFT JOIN p2p_trades t
        ON t.offer_id = o.id AND t.status NOT IN ('COMPLETED', 'CANCELLED', 'EXPIRED')
    GROUP BY o.id, o.total, o.available
    HAVING o.total <> o.available + COALESCE(SUM(t.amount), 0)
        OR o.available < 0
        OR o.available > o.total
""")

# a trade's escrow_amount is exactly its HELD hold, or 0 without one
_ESCROW_MISMATCH_SQL = text("""
    SELECT t.id, t.status, t.escrow_amount, h.status AS hold_status, h.amount AS hold_amount
    FROM p2p_trades t
    LEFT JOIN p2p_escrow_holds h ON h.trade_id = t.id
    WHERE (h.status = 'HELD' AND h.amount <> t.escrow_amount)
       OR ((h.trade_id IS NULL OR h.status <> 'HELD') AND t.escrow_amount <> 0)
""")


async def verify_reservations(db: AsyncSession) -> list[str]:
    rows = (await db.execute(_RESERVATION_MISMATCH_SQL)).fetchall()
    return [
        f"reserved mismatch for {r.user_id}/{r.asset}: ledger={r.actual} attributed={r.expected}"
        for r in rows
    ]


async def verify_offer_pools(db: AsyncSession) -> list[str]:
    rows = (await db.execute(_OFFER_POOL_MISMATCH_SQL)).fetchall()
    return [
        f"offer {r.id}: total={r.total} != available({r.available}) + open({r.open_amount})"
        for r in rows
    ]


async def verify_escrow_holds(db: AsyncSession) -> list[str]:
    rows = (await db.execute(_ESCROW_MISMATCH_SQL)).fetchall()
    return [
        f"trade {r.id} ({r.status}): escrow_amount={r.escrow_amount} "
        f"hold={r.hold_status}:{r.hold_amount}"
        for r in rows
    ]


async def verify_escrow_invariants(db: AsyncSession) -> list[str]:
    """Run every check and return the combined violations."""
    violations: list[str] = []
    violations += await verify_reservations(db)
    violations += await verify_offer_pools(db)
    violations += await verify_escrow_holds(db)
    for msg in violations:
        logger.error("Escrow invariant violated: %s", msg)
    return violations
