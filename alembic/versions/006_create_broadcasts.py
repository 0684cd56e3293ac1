"""006: create broadcasts table

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE broadcasts (
            id              BIGSERIAL       PRIMARY KEY,
            order_id        VARCHAR(64)     NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
            kind            VARCHAR(10)     NOT NULL,
            candidate_id    VARCHAR(64)     NOT NULL REFERENCES parties (id),
            round           INTEGER         NOT NULL DEFAULT 1,
            distance_km     DOUBLE PRECISION,
            sent_at         TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            response        VARCHAR(10),
            responded_at    TIMESTAMPTZ,
            CONSTRAINT uq_broadcasts_candidate UNIQUE (order_id, kind, candidate_id),
            CONSTRAINT ck_broadcasts_kind CHECK (kind IN ('supplier', 'courier')),
            CONSTRAINT ck_broadcasts_response CHECK (
                response IS NULL
                OR response IN ('accepted', 'rejected', 'stale', 'expired', 'withdrawn')
            ),
            CONSTRAINT ck_broadcasts_round_gt_0 CHECK (round > 0)
        );
    """)
    # At most one accepted offer per order and kind.
    op.execute("""
        CREATE UNIQUE INDEX uq_broadcasts_one_accepted
            ON broadcasts (order_id, kind)
            WHERE response = 'accepted';
    """)
    op.execute("""
        CREATE INDEX idx_broadcasts_open
            ON broadcasts (candidate_id, kind)
            WHERE response IS NULL;
    """)
    op.execute("CREATE INDEX idx_broadcasts_open_sent ON broadcasts (sent_at) WHERE response IS NULL;")
    op.execute("COMMENT ON TABLE broadcasts IS 'One row per offer sent to a candidate supplier or courier';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS broadcasts CASCADE;")
