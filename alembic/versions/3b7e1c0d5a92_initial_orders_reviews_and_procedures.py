"""Initial orders, reviews and reporting procedures

Revision ID: 3b7e1c0d5a92
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7e1c0d5a92"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")

PG_ORDER_DETAILS = """
CREATE OR REPLACE FUNCTION usp_get_order_details(p_status_filter VARCHAR, p_min_items INTEGER)
RETURNS TABLE (
    order_id VARCHAR, status VARCHAR, total NUMERIC, address TEXT,
    buyer_id VARCHAR, buyer_name VARCHAR, item_count BIGINT, created_at TIMESTAMP
) AS $$
    SELECT o.id, o.status, o.total, o.address,
           o.buyer_id, COALESCE(u.full_name, u.username), COUNT(oi.id), o.created_at
    FROM orders o
    JOIN users u ON u.id = o.buyer_id
    LEFT JOIN order_items oi ON oi.order_id = o.id
    WHERE p_status_filter IS NULL OR o.status = p_status_filter
    GROUP BY o.id, o.status, o.total, o.address, o.buyer_id, u.full_name, u.username, o.created_at
    HAVING p_min_items IS NULL OR COUNT(oi.id) >= p_min_items
    ORDER BY o.created_at DESC, o.id
$$ LANGUAGE sql STABLE;
"""

PG_TOP_SELLING = """
CREATE OR REPLACE FUNCTION usp_get_top_selling_products(p_min_quantity INTEGER, p_seller_id VARCHAR)
RETURNS TABLE (
    barcode VARCHAR, product_name VARCHAR, seller_id VARCHAR, total_quantity_sold BIGINT
) AS $$
    SELECT p.barcode, p.name, p.seller_id, SUM(oi.quantity)
    FROM products p
    JOIN order_items oi ON oi.barcode = p.barcode
    JOIN orders o ON o.id = oi.order_id
    WHERE o.status = 'Delivered'
      AND (p_seller_id IS NULL OR p.seller_id = p_seller_id)
    GROUP BY p.barcode, p.name, p.seller_id
    HAVING p_min_quantity IS NULL OR SUM(oi.quantity) >= p_min_quantity
    ORDER BY SUM(oi.quantity) DESC, p.barcode
$$ LANGUAGE sql STABLE;
"""

PG_REACTIONS_UPSERT = """
CREATE OR REPLACE PROCEDURE usp_reactions_upsert(
    p_review_id VARCHAR, p_author_id VARCHAR, p_reaction_type VARCHAR
) AS $$
    INSERT INTO reactions (review_id, author_id, type, created_at, updated_at)
    VALUES (p_review_id, p_author_id, p_reaction_type, now(), now())
    ON CONFLICT (review_id, author_id)
    DO UPDATE SET type = EXCLUDED.type, updated_at = now();
$$ LANGUAGE sql;
"""


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("full_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("buyer", "seller", "admin", name="user_role", native_enum=False),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "products",
        sa.Column("barcode", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("seller_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_products_name", "products", ["name"], unique=False)
    op.create_index("ix_products_seller_id", "products", ["seller_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("buyer_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*ORDER_STATUSES, name="order_status", native_enum=False, length=20),
            nullable=False,
        ),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
    )
    op.create_index("ix_orders_id", "orders", ["id"], unique=False)
    op.create_index("ix_orders_status", "orders", ["status"], unique=False)
    op.create_index("ix_orders_created_at", "orders", ["created_at"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("barcode", sa.String(100), sa.ForeignKey("products.barcode"), nullable=False),
        sa.Column("variation_name", sa.String(100), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        sa.CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"], unique=False)
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"], unique=False)
    op.create_index("ix_order_items_barcode", "order_items", ["barcode"], unique=False)

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )

    op.create_table(
        "review_links",
        sa.Column("review_id", sa.String(36), sa.ForeignKey("reviews.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("order_item_id", sa.String(36), sa.ForeignKey("order_items.id"), nullable=False),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.UniqueConstraint("order_item_id", "user_id", name="uq_review_links_item_user"),
    )

    op.create_table(
        "review_notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("review_id", sa.String(36), sa.ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_review_notes_review_author", "review_notes", ["review_id", "author_id"], unique=False)

    op.create_table(
        "reactions",
        sa.Column("review_id", sa.String(36), primary_key=True),
        sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_reactions_review_type", "reactions", ["review_id", "type"], unique=False)

    # Primary tier for reports and reactions; other dialects use the query fallback.
    if op.get_bind().dialect.name == "postgresql":
        op.execute(PG_ORDER_DETAILS)
        op.execute(PG_TOP_SELLING)
        op.execute(PG_REACTIONS_UPSERT)


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP PROCEDURE IF EXISTS usp_reactions_upsert(VARCHAR, VARCHAR, VARCHAR)")
        op.execute("DROP FUNCTION IF EXISTS usp_get_top_selling_products(INTEGER, VARCHAR)")
        op.execute("DROP FUNCTION IF EXISTS usp_get_order_details(VARCHAR, INTEGER)")

    op.drop_index("ix_reactions_review_type", table_name="reactions")
    op.drop_table("reactions")
    op.drop_index("ix_review_notes_review_author", table_name="review_notes")
    op.drop_table("review_notes")
    op.drop_table("review_links")
    op.drop_table("reviews")
    op.drop_index("ix_order_items_barcode", table_name="order_items")
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_index("ix_order_items_id", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_created_at", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_index("ix_orders_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_products_seller_id", table_name="products")
    op.drop_index("ix_products_name", table_name="products")
    op.drop_table("products")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
