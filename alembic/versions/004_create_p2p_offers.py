"""004: create p2p_offers and p2p_offer_activities tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE p2p_offers (
            id                      VARCHAR(64)     PRIMARY KEY,
            owner_id                VARCHAR(64)     NOT NULL,
            direction               VARCHAR(4)      NOT NULL,
            asset                   VARCHAR(16)     NOT NULL,
            counter_asset           VARCHAR(16)     NOT NULL,
            price_model             VARCHAR(16)     NOT NULL DEFAULT 'FIXED',
            price                   BIGINT  NOT NULL,
            total                   BIGINT  NOT NULL,
            min_per_trade           BIGINT  NOT NULL,
            max_per_trade           BIGINT  NOT NULL,
            available               BIGINT  NOT NULL,
            methods                 TEXT[]          NOT NULL,
            status                  VARCHAR(16)     NOT NULL DEFAULT 'ACTIVE',
            payment_window_minutes  INTEGER,
            version                 BIGINT          NOT NULL DEFAULT 0,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_p2p_offers_direction   CHECK (direction IN ('BUY', 'SELL')),
            CONSTRAINT ck_p2p_offers_price_model CHECK (price_model IN ('FIXED')),
            CONSTRAINT ck_p2p_offers_status      CHECK (
                status IN ('ACTIVE', 'PAUSED', 'DISABLED', 'REJECTED', 'CANCELLED')
            ),
            CONSTRAINT ck_p2p_offers_price_gt_0  CHECK (price > 0),
            CONSTRAINT ck_p2p_offers_available   CHECK (available >= 0 AND available <= total),
            CONSTRAINT ck_p2p_offers_min_max     CHECK (
                min_per_trade > 0 AND min_per_trade <= max_per_trade
            ),
            CONSTRAINT ck_p2p_offers_methods     CHECK (cardinality(methods) >= 1),
            CONSTRAINT ck_p2p_offers_window      CHECK (
                payment_window_minutes IS NULL OR payment_window_minutes > 0
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_p2p_offers_updated_at
            BEFORE UPDATE ON p2p_offers
            FOR EACH ROW EXECUTE FUNCTION fn_p2p_touch_updated_at();
    """)
    op.execute("CREATE INDEX idx_p2p_offers_owner ON p2p_offers (owner_id, status);")
    op.execute("""
        CREATE INDEX idx_p2p_offers_book
        ON p2p_offers (asset, counter_asset, direction, status);
    """)

    op.execute("""
        CREATE TABLE p2p_offer_activities (
            id               BIGSERIAL    PRIMARY KEY,
            offer_id         VARCHAR(64)  NOT NULL REFERENCES p2p_offers (id),
            type             VARCHAR(20)  NOT NULL,
            actor_id         VARCHAR(64)  NOT NULL,
            previous_status  VARCHAR(16),
            new_status       VARCHAR(16),
            created_at       TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_p2p_offer_activity_type CHECK (
                type IN ('CREATED', 'UPDATED', 'STATUS_CHANGED', 'DELETED')
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_p2p_offer_activities_offer
        ON p2p_offer_activities (offer_id, id);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS p2p_offer_activities CASCADE;")
    op.execute("DROP TABLE IF EXISTS p2p_offers CASCADE;")
