"""003: create parties table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE parties (
            id              VARCHAR(64)             PRIMARY KEY,
            phone           VARCHAR(20)             NOT NULL,
            name            VARCHAR(120)            NOT NULL,
            role            VARCHAR(10)             NOT NULL,
            location        GEOGRAPHY(Point, 4326),
            address         VARCHAR(500),
            business_name   VARCHAR(120),
            categories      TEXT[]                  NOT NULL DEFAULT '{}',
            vehicle         VARCHAR(10),
            is_busy         BOOLEAN                 NOT NULL DEFAULT FALSE,
            is_active       BOOLEAN                 NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ             NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ             NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_parties_phone     UNIQUE (phone),
            CONSTRAINT ck_parties_phone     CHECK (phone ~ '^[0-9]{8,20}$'),
            CONSTRAINT ck_parties_role      CHECK (role IN ('buyer', 'supplier', 'courier')),
            CONSTRAINT ck_parties_vehicle   CHECK (
                vehicle IS NULL OR vehicle IN ('motor', 'mobil', 'pickup', 'truck')
            ),
            CONSTRAINT ck_parties_busy_courier CHECK (NOT is_busy OR role = 'courier')
        );
    """)
    op.execute("CREATE INDEX idx_parties_location ON parties USING GIST (location);")
    op.execute("CREATE INDEX idx_parties_role_active ON parties (role) WHERE is_active;")
    op.execute("CREATE INDEX idx_parties_categories ON parties USING GIN (categories);")
    op.execute("""
        CREATE TRIGGER trg_parties_updated_at
            BEFORE UPDATE ON parties
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE parties IS 'Buyers, suppliers and couriers, keyed by WhatsApp number';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS parties CASCADE;")
