"""005: create p2p_trades and p2p_escrow_holds tables

Revision ID: 005
Revises: 004
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE p2p_trades (
            id                VARCHAR(64)     PRIMARY KEY,
            offer_id          VARCHAR(64)     NOT NULL REFERENCES p2p_offers (id),
            buyer_id          VARCHAR(64)     NOT NULL,
            seller_id         VARCHAR(64)     NOT NULL,
            asset             VARCHAR(16)     NOT NULL,
            counter_asset     VARCHAR(16)     NOT NULL,
            amount            BIGINT  NOT NULL,
            price             BIGINT  NOT NULL,
            total             BIGINT  NOT NULL,
            method_id         VARCHAR(64),
            status            VARCHAR(20)     NOT NULL DEFAULT 'PENDING',
            escrow_amount     BIGINT  NOT NULL DEFAULT 0,
            payment_deadline  TIMESTAMPTZ     NOT NULL,
            expires_at        TIMESTAMPTZ     NOT NULL,
            payment_sent_at   TIMESTAMPTZ,
            completed_at      TIMESTAMPTZ,
            cancelled_at      TIMESTAMPTZ,
            expired_at        TIMESTAMPTZ,
            dispute_id        VARCHAR(64),
            version           BIGINT          NOT NULL DEFAULT 0,
            created_at        TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_p2p_trades_status CHECK (
                status IN (
                    'PENDING', 'ACTIVE', 'ESCROW', 'PAYMENT_SENT', 'ESCROW_RELEASED',
                    'DISPUTED', 'COMPLETED', 'CANCELLED', 'EXPIRED'
                )
            ),
            CONSTRAINT ck_p2p_trades_amount_gt_0      CHECK (amount > 0),
            CONSTRAINT ck_p2p_trades_escrow_range     CHECK (
                escrow_amount >= 0 AND escrow_amount <= amount
            ),
            CONSTRAINT ck_p2p_trades_distinct_parties CHECK (buyer_id <> seller_id)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_p2p_trades_updated_at
            BEFORE UPDATE ON p2p_trades
            FOR EACH ROW EXECUTE FUNCTION fn_p2p_touch_updated_at();
    """)
    op.execute("CREATE INDEX idx_p2p_trades_offer ON p2p_trades (offer_id, status);")
    op.execute("CREATE INDEX idx_p2p_trades_buyer ON p2p_trades (buyer_id, created_at DESC);")
    op.execute("CREATE INDEX idx_p2p_trades_seller ON p2p_trades (seller_id, created_at DESC);")
    # Sweeper candidate scans
    op.execute("""
        CREATE INDEX idx_p2p_trades_payment_deadline ON p2p_trades (payment_deadline)
        WHERE status IN ('ACTIVE', 'ESCROW');
    """)
    op.execute("""
        CREATE INDEX idx_p2p_trades_expires_at ON p2p_trades (expires_at)
        WHERE status = 'PAYMENT_SENT';
    """)

    op.execute("""
        CREATE TABLE p2p_escrow_holds (
            trade_id    VARCHAR(64)     PRIMARY KEY REFERENCES p2p_trades (id),
            seller_id   VARCHAR(64)     NOT NULL,
            asset       VARCHAR(16)     NOT NULL,
            amount      BIGINT  NOT NULL,
            status      VARCHAR(10)     NOT NULL DEFAULT 'HELD',
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_p2p_escrow_status    CHECK (status IN ('HELD', 'RELEASED', 'RETURNED')),
            CONSTRAINT ck_p2p_escrow_amount_gt_0 CHECK (amount > 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_p2p_escrow_holds_updated_at
            BEFORE UPDATE ON p2p_escrow_holds
            FOR EACH ROW EXECUTE FUNCTION fn_p2p_touch_updated_at();
    """)
    op.execute("""
        CREATE INDEX idx_p2p_escrow_holds_seller ON p2p_escrow_holds (seller_id, asset)
        WHERE status = 'HELD';
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS p2p_escrow_holds CASCADE;")
    op.execute("DROP TABLE IF EXISTS p2p_trades CASCADE;")
