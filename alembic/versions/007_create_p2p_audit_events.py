"""007: create p2p_audit_events table

Revision ID: 007
Revises: 006
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE p2p_audit_events (
            id              BIGSERIAL    PRIMARY KEY,
            entity_type     VARCHAR(10)  NOT NULL,
            entity_id       VARCHAR(64)  NOT NULL,
            action          VARCHAR(40)  NOT NULL,
            actor_id        VARCHAR(64),
            previous_value  JSONB        NOT NULL DEFAULT '{}'::jsonb,
            new_value       JSONB        NOT NULL DEFAULT '{}'::jsonb,
            reason          TEXT,
            created_at      TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_p2p_audit_entity_type CHECK (
                entity_type IN ('OFFER', 'TRADE', 'DISPUTE', 'ESCROW')
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_p2p_audit_entity
        ON p2p_audit_events (entity_type, entity_id, id);
    """)
    # Append-only: reject UPDATE and DELETE outright
    op.execute("""
        CREATE TRIGGER trg_p2p_audit_append_only
            BEFORE UPDATE OR DELETE ON p2p_audit_events
            FOR EACH ROW EXECUTE FUNCTION fn_p2p_append_only();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS p2p_audit_events CASCADE;")
