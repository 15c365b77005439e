"""OfferRepository — raw SQL persistence implementation."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.enums import TradeStatus
from src.p2p_offer.domain.models import AmountBounds, Offer, OfferActivity, PriceRule

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_COLUMNS = """
    id, owner_id, direction, asset, counter_asset, price_model, price,
    total, min_per_trade, max_per_trade, available, methods, status,
    payment_window_minutes, version, created_at, updated_at
"""

_INSERT_OFFER_SQL = text("""
    INSERT INTO p2p_offers (id, owner_id, direction, asset, counter_asset,
        price_model, price, total, min_per_trade, max_per_trade, available,
        methods, status, payment_window_minutes)
    VALUES (:id, :owner_id, :direction, :asset, :counter_asset,
        :price_model, :price, :total, :min_per_trade, :max_per_trade, :available,
        CAST(:methods AS TEXT[]), :status, :payment_window_minutes)
""")

_GET_OFFER_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM p2p_offers WHERE id = :id
""")

_GET_OFFER_FOR_UPDATE_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM p2p_offers WHERE id = :id
    FOR UPDATE
""")

_UPDATE_OFFER_SQL = text("""
    UPDATE p2p_offers
    SET price = :price, total = :total, available = :available,
        min_per_trade = :min_per_trade, max_per_trade = :max_per_trade,
        methods = CAST(:methods AS TEXT[]), status = :status,
        payment_window_minutes = :payment_window_minutes,
        version = version + 1, updated_at = NOW()
    WHERE id = :id
""")

_INSERT_ACTIVITY_SQL = text("""
    INSERT INTO p2p_offer_activities (offer_id, type, actor_id, previous_status, new_status)
    VALUES (:offer_id, :type, :actor_id, :previous_status, :new_status)
""")

_LIST_ACTIVITY_SQL = text("""
    SELECT type, actor_id, previous_status, new_status, created_at
    FROM p2p_offer_activities
    WHERE offer_id = :offer_id
    ORDER BY id ASC
""")

_COUNT_OPEN_TRADES_SQL = text("""
    SELECT COUNT(*) FROM p2p_trades
    WHERE offer_id = :offer_id
      AND status NOT IN (:completed, :cancelled, :expired)
""")


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_offer(row: Any, activity: list[OfferActivity]) -> Offer:
    """Convert a DB result row to an Offer domain object."""
    return Offer(
        id=row.id,
        owner_id=row.owner_id,
        direction=row.direction,
        asset=row.asset,
        counter_asset=row.counter_asset,
        price_rule=PriceRule(price=row.price, model=row.price_model),
        bounds=AmountBounds(
            total=row.total,
            min_per_trade=row.min_per_trade,
            max_per_trade=row.max_per_trade,
            available=row.available,
        ),
        methods=frozenset(row.methods or ()),
        status=row.status,
        payment_window_minutes=row.payment_window_minutes,
        version=row.version,
        activity_log=activity,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _offer_params(offer: Offer) -> dict[str, Any]:
    return {
        "id": offer.id,
        "price": offer.price_rule.price,
        "total": offer.bounds.total,
        "available": offer.bounds.available,
        "min_per_trade": offer.bounds.min_per_trade,
        "max_per_trade": offer.bounds.max_per_trade,
        "methods": sorted(offer.methods),
        "status": offer.status,
        "payment_window_minutes": offer.payment_window_minutes,
    }


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OfferRepository:
    """Concrete implementation of OfferRepositoryProtocol using raw SQL."""

    async def insert(self, db: AsyncSession, offer: Offer) -> None:
        params = _offer_params(offer)
        params.update(
            owner_id=offer.owner_id,
            direction=offer.direction,
            asset=offer.asset,
            counter_asset=offer.counter_asset,
            price_model=offer.price_rule.model,
        )
        await db.execute(_INSERT_OFFER_SQL, params)

    async def get(self, db: AsyncSession, offer_id: str) -> Offer | None:
        return await self._load(db, _GET_OFFER_SQL, offer_id)

    async def get_for_update(self, db: AsyncSession, offer_id: str) -> Offer | None:
        return await self._load(db, _GET_OFFER_FOR_UPDATE_SQL, offer_id)

    async def update(self, db: AsyncSession, offer: Offer) -> None:
        await db.execute(_UPDATE_OFFER_SQL, _offer_params(offer))
        offer.version += 1

    async def append_activity(
        self, db: AsyncSession, offer_id: str, activity: OfferActivity
    ) -> None:
        await db.execute(
            _INSERT_ACTIVITY_SQL,
            {
                "offer_id": offer_id,
                "type": activity.type,
                "actor_id": activity.actor_id,
                "previous_status": activity.previous_status,
                "new_status": activity.new_status,
            },
        )

    async def count_open_trades(self, db: AsyncSession, offer_id: str) -> int:
        result = await db.execute(
            _COUNT_OPEN_TRADES_SQL,
            {
                "offer_id": offer_id,
                "completed": TradeStatus.COMPLETED,
                "cancelled": TradeStatus.CANCELLED,
                "expired": TradeStatus.EXPIRED,
            },
        )
        return int(result.scalar_one())

    async def _load(self, db: AsyncSession, sql: Any, offer_id: str) -> Offer | None:
        row = (await db.execute(sql, {"id": offer_id})).fetchone()
        if row is None:
            return None
        activity_rows = (
            await db.execute(_LIST_ACTIVITY_SQL, {"offer_id": offer_id})
        ).fetchall()
        activity = [
            OfferActivity(
                type=a.type,
                actor_id=a.actor_id,
                previous_status=a.previous_status,
                new_status=a.new_status,
                created_at=a.created_at,
            )
            for a in activity_rows
        ]
        return _row_to_offer(row, activity)
