"""initial schema: users, vendors, products, cart, orders, boosts, settings

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled", "Payment Failed")
PAYMENT_METHODS = ("MTN MoMo", "Vodafone Cash", "Telecel Cash", "Cash on Delivery", "Paystack")
INVENTORY_STATUSES = ("not_required", "pending", "adjusted", "adjustment_failed")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", sa.Enum("customer", "vendor", "admin", name="roleenum"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("blacklisted", sa.Boolean(), nullable=True),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_phone", "users", ["phone"], unique=True)

    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("store_name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_vendors_id", "vendors", ["id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False),
        sa.Column("boosted_until", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )
    op.create_index("ix_products_id", "products", ["id"])
    op.create_index("ix_products_vendor_id", "products", ["vendor_id"])
    op.create_index("ix_products_boosted_until", "products", ["boosted_until"])

    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("added_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_cart_items_id", "cart_items", ["id"])
    op.create_index("ix_cart_items_user_id", "cart_items", ["user_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.Enum(*ORDER_STATUSES, name="orderstatus"), nullable=False),
        sa.Column("order_date", sa.DateTime(), nullable=True),
        sa.Column("shipping_address", sa.JSON(), nullable=False),
        sa.Column("payment_method", sa.Enum(*PAYMENT_METHODS, name="paymentmethod"), nullable=False),
        sa.Column("transaction_id", sa.String(), nullable=True),
        sa.Column("inventory_status", sa.Enum(*INVENTORY_STATUSES, name="inventorystatus"), nullable=False),
        sa.Column("inventory_failures", sa.JSON(), nullable=False),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_user_id", "orders", ["user_id"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_at_purchase", sa.Numeric(12, 2), nullable=False),
        sa.Column("product_name", sa.String(), nullable=True),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"])
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "boost_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_boost_plans_id", "boost_plans", ["id"])

    op.create_table(
        "boost_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("boost_plans.id"), nullable=True),
        sa.Column("plan_duration_days", sa.Integer(), nullable=False),
        sa.Column("plan_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("request_status", sa.String(8), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_boost_requests_id", "boost_requests", ["id"])
    op.create_index("ix_boost_requests_product_id", "boost_requests", ["product_id"])
    op.create_index(
        "uq_boost_requests_pending_product",
        "boost_requests",
        ["product_id"],
        unique=True,
        sqlite_where=sa.text("request_status = 'pending'"),
        postgresql_where=sa.text("request_status = 'pending'"),
    )

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(), primary_key=True),
        sa.Column("value", sa.JSON(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_index("uq_boost_requests_pending_product", table_name="boost_requests")
    op.drop_table("boost_requests")
    op.drop_table("boost_plans")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("cart_items")
    op.drop_table("products")
    op.drop_table("vendors")
    op.drop_table("users")
    for enum_name in ("inventorystatus", "paymentmethod", "orderstatus", "roleenum"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
