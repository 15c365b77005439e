"""TradeRepository — raw SQL persistence for p2p_trades and p2p_escrow_holds."""

from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.enums import TradeStatus
from src.p2p_trade.domain.models import EscrowHold, Trade

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_TRADE_COLUMNS = """
    id, offer_id, buyer_id, seller_id, asset, counter_asset, amount, price, total,
    method_id, status, escrow_amount, payment_deadline, expires_at, payment_sent_at,
    completed_at, cancelled_at, expired_at, dispute_id, version, created_at, updated_at
"""

_INSERT_TRADE_SQL = text("""
    INSERT INTO p2p_trades (id, offer_id, buyer_id, seller_id, asset, counter_asset,
        amount, price, total, method_id, status, escrow_amount,
        payment_deadline, expires_at)
    VALUES (:id, :offer_id, :buyer_id, :seller_id, :asset, :counter_asset,
        :amount, :price, :total, :method_id, :status, :escrow_amount,
        :payment_deadline, :expires_at)
""")

_GET_TRADE_SQL = text(f"SELECT {_TRADE_COLUMNS} FROM p2p_trades WHERE id = :id")

_GET_TRADE_FOR_UPDATE_SQL = text(
    f"SELECT {_TRADE_COLUMNS} FROM p2p_trades WHERE id = :id FOR UPDATE"
)

_UPDATE_TRADE_SQL = text("""
    UPDATE p2p_trades
    SET status = :status, escrow_amount = :escrow_amount,
        payment_sent_at = :payment_sent_at, completed_at = :completed_at,
        cancelled_at = :cancelled_at, expired_at = :expired_at,
        dispute_id = :dispute_id,
        version = version + 1, updated_at = NOW()
    WHERE id = :id
""")

# Optimistic guard: zero rows means a user action or another sweeper won the race
_EXPIRE_TRADE_SQL = text("""
    UPDATE p2p_trades
    SET status = :expired, expired_at = :now,
        version = version + 1, updated_at = NOW()
    WHERE id = :id AND status = :expected_status AND version = :version
    RETURNING id
""")

_LIST_EXPIRY_CANDIDATES_SQL = text(f"""
    SELECT {_TRADE_COLUMNS} FROM p2p_trades
    WHERE (status IN (:active, :escrow) AND payment_deadline < :now)
       OR (status = :payment_sent AND expires_at < :now)
    ORDER BY payment_deadline ASC, id ASC
    LIMIT :limit
""")

_INSERT_HOLD_SQL = text("""
    INSERT INTO p2p_escrow_holds (trade_id, seller_id, asset, amount, status)
    VALUES (:trade_id, :seller_id, :asset, :amount, :status)
""")

_GET_HOLD_FOR_UPDATE_SQL = text("""
    SELECT trade_id, seller_id, asset, amount, status, created_at, updated_at
    FROM p2p_escrow_holds
    WHERE trade_id = :trade_id
    FOR UPDATE
""")

_UPDATE_HOLD_SQL = text("""
    UPDATE p2p_escrow_holds
    SET status = :status, updated_at = NOW()
    WHERE trade_id = :trade_id
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_trade(row: Any) -> Trade:
    """Convert a DB result row to a Trade domain object."""
    return Trade(
        id=row.id,
        offer_id=row.offer_id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        asset=row.asset,
        counter_asset=row.counter_asset,
        amount=row.amount,
        price=row.price,
        total=row.total,
        method_id=row.method_id,
        status=row.status,
        escrow_amount=row.escrow_amount,
        payment_deadline=row.payment_deadline,
        expires_at=row.expires_at,
        payment_sent_at=row.payment_sent_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        expired_at=row.expired_at,
        dispute_id=row.dispute_id,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_hold(row: Any) -> EscrowHold:
    return EscrowHold(
        trade_id=row.trade_id,
        seller_id=row.seller_id,
        asset=row.asset,
        amount=row.amount,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TradeRepository:
    """Concrete implementation of TradeRepositoryProtocol using raw SQL."""

    async def insert(self, db: AsyncSession, trade: Trade) -> None:
        await db.execute(
            _INSERT_TRADE_SQL,
            {
                "id": trade.id,
                "offer_id": trade.offer_id,
                "buyer_id": trade.buyer_id,
                "seller_id": trade.seller_id,
                "asset": trade.asset,
                "counter_asset": trade.counter_asset,
                "amount": trade.amount,
                "price": trade.price,
                "total": trade.total,
                "method_id": trade.method_id,
                "status": trade.status,
                "escrow_amount": trade.escrow_amount,
                "payment_deadline": trade.payment_deadline,
                "expires_at": trade.expires_at,
            },
        )

    async def get(self, db: AsyncSession, trade_id: str) -> Trade | None:
        row = (await db.execute(_GET_TRADE_SQL, {"id": trade_id})).fetchone()
        return _row_to_trade(row) if row else None

    async def get_for_update(self, db: AsyncSession, trade_id: str) -> Trade | None:
        row = (await db.execute(_GET_TRADE_FOR_UPDATE_SQL, {"id": trade_id})).fetchone()
        return _row_to_trade(row) if row else None

    async def update(self, db: AsyncSession, trade: Trade) -> None:
        await db.execute(
            _UPDATE_TRADE_SQL,
            {
                "id": trade.id,
                "status": trade.status,
                "escrow_amount": trade.escrow_amount,
                "payment_sent_at": trade.payment_sent_at,
                "completed_at": trade.completed_at,
                "cancelled_at": trade.cancelled_at,
                "expired_at": trade.expired_at,
                "dispute_id": trade.dispute_id,
            },
        )
        trade.version += 1

    async def expire_if_unchanged(
        self, db: AsyncSession, trade_id: str, expected_status: str, version: int, now: datetime
    ) -> bool:
        row = (
            await db.execute(
                _EXPIRE_TRADE_SQL,
                {
                    "id": trade_id,
                    "expired": TradeStatus.EXPIRED,
                    "expected_status": expected_status,
                    "version": version,
                    "now": now,
                },
            )
        ).fetchone()
        return row is not None

    async def list_expiry_candidates(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[Trade]:
        rows = (
            await db.execute(
                _LIST_EXPIRY_CANDIDATES_SQL,
                {
                    "active": TradeStatus.ACTIVE,
                    "escrow": TradeStatus.ESCROW,
                    "payment_sent": TradeStatus.PAYMENT_SENT,
                    "now": now,
                    "limit": limit,
                },
            )
        ).fetchall()
        return [_row_to_trade(r) for r in rows]

    async def insert_hold(self, db: AsyncSession, hold: EscrowHold) -> None:
        await db.execute(
            _INSERT_HOLD_SQL,
            {
                "trade_id": hold.trade_id,
                "seller_id": hold.seller_id,
                "asset": hold.asset,
                "amount": hold.amount,
                "status": hold.status,
            },
        )

    async def get_hold_for_update(self, db: AsyncSession, trade_id: str) -> EscrowHold | None:
        row = (await db.execute(_GET_HOLD_FOR_UPDATE_SQL, {"trade_id": trade_id})).fetchone()
        return _row_to_hold(row) if row else None

    async def update_hold(self, db: AsyncSession, hold: EscrowHold) -> None:
        await db.execute(_UPDATE_HOLD_SQL, {"trade_id": hold.trade_id, "status": hold.status})
