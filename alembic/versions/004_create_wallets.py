"""004: create wallets and wallet_transactions tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE wallets (
            party_id        VARCHAR(64)     PRIMARY KEY,
            available       BIGINT          NOT NULL DEFAULT 0,
            escrow_held     BIGINT          NOT NULL DEFAULT 0,
            total_earned    BIGINT          NOT NULL DEFAULT 0,
            version         BIGINT          NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallets_available_gte_0     CHECK (available >= 0),
            CONSTRAINT ck_wallets_escrow_held_gte_0   CHECK (escrow_held >= 0),
            CONSTRAINT ck_wallets_total_earned_gte_0  CHECK (total_earned >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_wallets_updated_at
            BEFORE UPDATE ON wallets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE wallets IS 'Per-party balances, all amounts in rupiah';")

    op.execute("""
        CREATE TABLE wallet_transactions (
            id              BIGSERIAL       PRIMARY KEY,
            party_id        VARCHAR(64)     NOT NULL REFERENCES wallets (party_id),
            order_id        VARCHAR(64),
            entry_type      VARCHAR(20)     NOT NULL,
            amount          BIGINT          NOT NULL,
            balance_after   BIGINT          NOT NULL,
            description     VARCHAR(255),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallet_tx_entry_type CHECK (entry_type IN (
                'payment', 'escrow_in', 'escrow_release', 'payout',
                'commission_in', 'refund_out', 'refund_in'
            )),
            CONSTRAINT ck_wallet_tx_amount_nonzero CHECK (amount <> 0)
        );
    """)
    op.execute("CREATE INDEX idx_wallet_tx_party ON wallet_transactions (party_id, id DESC);")
    op.execute("CREATE INDEX idx_wallet_tx_order ON wallet_transactions (order_id);")
    op.execute("COMMENT ON TABLE wallet_transactions IS 'Append-only ledger; entries of one order net to zero';")

    # System wallet that collects service fees.
    op.execute("""
        INSERT INTO wallets (party_id, available, escrow_held, total_earned, version)
        VALUES ('PLATFORM', 0, 0, 0, 0)
        ON CONFLICT (party_id) DO NOTHING;
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS wallet_transactions CASCADE;")
    op.execute("DROP TABLE IF EXISTS wallets CASCADE;")
