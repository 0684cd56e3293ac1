"""007: create pending_messages table

Revision ID: 007
Revises: 006
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE pending_messages (
            id              BIGSERIAL       PRIMARY KEY,
            phone           VARCHAR(20)     NOT NULL,
            message         TEXT            NOT NULL,
            order_id        VARCHAR(64),
            status          VARCHAR(10)     NOT NULL DEFAULT 'pending',
            retry_count     INTEGER         NOT NULL DEFAULT 0,
            next_attempt_at TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            last_error      TEXT,
            sent_at         TIMESTAMPTZ,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_pending_messages_status CHECK (status IN ('pending', 'sent', 'failed')),
            CONSTRAINT ck_pending_messages_retry_gte_0 CHECK (retry_count >= 0)
        );
    """)
    op.execute("""
        CREATE INDEX idx_pending_messages_due
            ON pending_messages (next_attempt_at)
            WHERE status = 'pending';
    """)
    op.execute("""
        CREATE TRIGGER trg_pending_messages_updated_at
            BEFORE UPDATE ON pending_messages
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE pending_messages IS 'Outbox of WhatsApp messages that failed to send';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS pending_messages CASCADE;")
