"""003: create p2p_ledger_entries table

Revision ID: 003
Revises: 002
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE p2p_ledger_entries (
            id               BIGSERIAL       PRIMARY KEY,
            user_id          VARCHAR(64)     NOT NULL,
            asset            VARCHAR(16)     NOT NULL,
            entry_type       VARCHAR(20)     NOT NULL,
            amount           BIGINT  NOT NULL,
            available_after  BIGINT  NOT NULL,
            reserved_after   BIGINT  NOT NULL,
            idempotency_key  VARCHAR(200)    NOT NULL,
            reference_type   VARCHAR(20),
            reference_id     VARCHAR(64),
            created_at       TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_p2p_ledger_entry_type CHECK (
                entry_type IN (
                    'DEPOSIT', 'WITHDRAW',
                    'RESERVE', 'RELEASE',
                    'TRANSFER_OUT', 'TRANSFER_IN'
                )
            ),
            CONSTRAINT ck_p2p_ledger_available_after_gte_0 CHECK (available_after >= 0),
            CONSTRAINT ck_p2p_ledger_reserved_after_gte_0  CHECK (reserved_after >= 0)
        );
    """)
    # One row per logical movement; a retried movement hits this and applies once
    op.execute("""
        CREATE UNIQUE INDEX uq_p2p_ledger_movement
        ON p2p_ledger_entries (user_id, asset, entry_type, idempotency_key);
    """)
    op.execute("""
        CREATE INDEX idx_p2p_ledger_user_id
        ON p2p_ledger_entries (user_id, id DESC);
    """)
    op.execute("""
        CREATE INDEX idx_p2p_ledger_reference
        ON p2p_ledger_entries (reference_type, reference_id)
        WHERE reference_id IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE p2p_ledger_entries IS 'Append-only fund movements, minor units';")
    op.execute("""
        CREATE TRIGGER trg_p2p_ledger_append_only
            BEFORE UPDATE OR DELETE ON p2p_ledger_entries
            FOR EACH ROW EXECUTE FUNCTION fn_p2p_append_only();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS p2p_ledger_entries CASCADE;")
