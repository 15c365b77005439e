"""002: create p2p_accounts table

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE p2p_accounts (
            user_id     VARCHAR(64) NOT NULL,
            asset       VARCHAR(16) NOT NULL,
            available   BIGINT NOT NULL DEFAULT 0,
            reserved    BIGINT NOT NULL DEFAULT 0,
            version     BIGINT      NOT NULL DEFAULT 0,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_p2p_accounts                PRIMARY KEY (user_id, asset),
            CONSTRAINT ck_p2p_accounts_available_gte_0 CHECK (available >= 0),
            CONSTRAINT ck_p2p_accounts_reserved_gte_0  CHECK (reserved >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_p2p_accounts_updated_at
            BEFORE UPDATE ON p2p_accounts
            FOR EACH ROW EXECUTE FUNCTION fn_p2p_touch_updated_at();
    """)
    op.execute(
        "COMMENT ON TABLE p2p_accounts IS "
        "'Per-asset balances in minor units; balance = available + reserved';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS p2p_accounts CASCADE;")
