"""005: create orders and order_status_history tables

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                          VARCHAR(64)     PRIMARY KEY,
            buyer_id                    VARCHAR(64)     NOT NULL REFERENCES parties (id),
            supplier_id                 VARCHAR(64)     REFERENCES parties (id),
            courier_id                  VARCHAR(64)     REFERENCES parties (id),
            status                      VARCHAR(30)     NOT NULL DEFAULT 'searching_supplier',

            product_name                VARCHAR(200)    NOT NULL,
            category                    VARCHAR(64),
            quantity                    INTEGER         NOT NULL,
            unit                        VARCHAR(16)     NOT NULL DEFAULT 'kg',
            weight_kg                   DOUBLE PRECISION NOT NULL,

            buyer_price                 BIGINT          NOT NULL,
            supplier_price              BIGINT,
            supplier_offered_price      BIGINT,
            shipping_cost               BIGINT          NOT NULL DEFAULT 0,
            service_fee                 BIGINT          NOT NULL DEFAULT 0,
            total_amount                BIGINT          NOT NULL DEFAULT 0,
            delivery_method             VARCHAR(10),
            distance_km                 DOUBLE PRECISION,

            delivery_latitude           DOUBLE PRECISION NOT NULL,
            delivery_longitude          DOUBLE PRECISION NOT NULL,
            delivery_address            VARCHAR(500),
            pickup_latitude             DOUBLE PRECISION,
            pickup_longitude            DOUBLE PRECISION,
            pickup_address              VARCHAR(500),
            courier_latitude            DOUBLE PRECISION,
            courier_longitude           DOUBLE PRECISION,
            courier_location_updated_at TIMESTAMPTZ,

            delivery_token              VARCHAR(64),
            negotiation_started_at      TIMESTAMPTZ,
            paid_at                     TIMESTAMPTZ,
            pickup_photo_url            VARCHAR(1000),
            pickup_at                   TIMESTAMPTZ,
            delivered_at                TIMESTAMPTZ,
            dispute_reason              TEXT,
            dispute_image_url           VARCHAR(1000),
            dispute_confidence          DOUBLE PRECISION,
            disputed_at                 TIMESTAMPTZ,
            resolved_at                 TIMESTAMPTZ,
            cancel_reason               TEXT,

            created_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),

            CONSTRAINT ck_orders_status CHECK (status IN (
                'searching_supplier', 'waiting_buyer_approval', 'negotiating_courier',
                'stuck_no_courier', 'waiting_payment', 'paid_held', 'shipping',
                'delivered', 'dispute_check', 'completed', 'refunded',
                'cancelled_by_buyer', 'failed_no_supplier'
            )),
            CONSTRAINT ck_orders_delivery_method CHECK (
                delivery_method IS NULL OR delivery_method IN ('self', 'courier')
            ),
            CONSTRAINT ck_orders_quantity_gt_0      CHECK (quantity > 0),
            CONSTRAINT ck_orders_weight_gt_0        CHECK (weight_kg > 0),
            CONSTRAINT ck_orders_buyer_price_gt_0   CHECK (buyer_price > 0),
            CONSTRAINT ck_orders_amounts_gte_0      CHECK (
                shipping_cost >= 0 AND service_fee >= 0 AND total_amount >= 0
            ),
            CONSTRAINT ck_orders_total CHECK (
                total_amount = buyer_price + service_fee + shipping_cost
            ),
            CONSTRAINT ck_orders_dispute_confidence CHECK (
                dispute_confidence IS NULL OR dispute_confidence BETWEEN 0 AND 1
            )
        );
    """)
    op.execute("CREATE INDEX idx_orders_buyer ON orders (buyer_id, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_supplier ON orders (supplier_id, status);")
    op.execute("CREATE INDEX idx_orders_courier ON orders (courier_id, status);")
    op.execute("CREATE INDEX idx_orders_status ON orders (status, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE orders IS 'One B2B order from search through settlement';")

    op.execute("""
        CREATE TABLE order_status_history (
            id              BIGSERIAL       PRIMARY KEY,
            order_id        VARCHAR(64)     NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
            from_status     VARCHAR(30),
            to_status       VARCHAR(30)     NOT NULL,
            reason          VARCHAR(255),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_order_history_order ON order_status_history (order_id, id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS order_status_history CASCADE;")
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
