"""006: create p2p_disputes and p2p_dispute_evidence tables

Revision ID: 006
Revises: 005
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE p2p_disputes (
            id               VARCHAR(64)   PRIMARY KEY,
            trade_id         VARCHAR(64)   NOT NULL REFERENCES p2p_trades (id),
            raised_by        VARCHAR(64)   NOT NULL,
            reason           TEXT          NOT NULL,
            status           VARCHAR(10)   NOT NULL DEFAULT 'OPEN',
            resolution       VARCHAR(20),
            resolved_by      VARCHAR(64),
            resolved_at      TIMESTAMPTZ,
            resolution_note  TEXT,
            created_at       TIMESTAMPTZ   NOT NULL DEFAULT NOW(),
            updated_at       TIMESTAMPTZ   NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_p2p_disputes_trade   UNIQUE (trade_id),
            CONSTRAINT ck_p2p_disputes_status  CHECK (status IN ('OPEN', 'RESOLVED')),
            CONSTRAINT ck_p2p_disputes_resolution CHECK (
                resolution IS NULL
                OR resolution IN ('RELEASED_TO_BUYER', 'RETURNED_TO_SELLER')
            ),
            CONSTRAINT ck_p2p_disputes_resolved CHECK (
                (status = 'OPEN' AND resolution IS NULL)
                OR (status = 'RESOLVED' AND resolution IS NOT NULL AND resolved_by IS NOT NULL)
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_p2p_disputes_updated_at
            BEFORE UPDATE ON p2p_disputes
            FOR EACH ROW EXECUTE FUNCTION fn_p2p_touch_updated_at();
    """)
    op.execute("""
        ALTER TABLE p2p_trades
        ADD CONSTRAINT fk_p2p_trades_dispute
        FOREIGN KEY (dispute_id) REFERENCES p2p_disputes (id);
    """)

    op.execute("""
        CREATE TABLE p2p_dispute_evidence (
            id            BIGSERIAL    PRIMARY KEY,
            dispute_id    VARCHAR(64)  NOT NULL REFERENCES p2p_disputes (id),
            submitted_by  VARCHAR(64)  NOT NULL,
            content       TEXT         NOT NULL,
            created_at    TIMESTAMPTZ  NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_p2p_dispute_evidence ON p2p_dispute_evidence (dispute_id, id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS p2p_dispute_evidence CASCADE;")
    op.execute("ALTER TABLE p2p_trades DROP CONSTRAINT IF EXISTS fk_p2p_trades_dispute;")
    op.execute("DROP TABLE IF EXISTS p2p_disputes CASCADE;")
