"""001: create shared p2p trigger functions

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # p2p_ prefix: these live next to the host application's own functions
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_p2p_touch_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    # Shared by the ledger and audit tables; rows there are never rewritten
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_p2p_append_only()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only (% rejected)', TG_TABLE_NAME, TG_OP;
        END;
        $$ LANGUAGE plpgsql;
    """)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS fn_p2p_append_only();")
    op.execute("DROP FUNCTION IF EXISTS fn_p2p_touch_updated_at();")
