"""
Order Service — テーブル定義

SQLAlchemy Core のテーブル定義。
stores / customers / products は外部サービス(ストア管理・顧客・カタログ)の
持ち物で、このサービスからは読み取り専用として扱う。
書き込むのは orders / order_items / sales の 3 テーブルだけ。
"""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)

metadata = MetaData()

Money = Numeric(12, 2)

# Integer 列 (int4) と Money 列に収まる上限
ID_MAX = 2**31 - 1
MONEY_MAX = Decimal("9999999999.99")


def is_valid_id(value) -> bool:
    """int4 の ID 列に格納できる正の整数か。"""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 1 <= value <= ID_MAX
    )

# ── 外部コラボレータ (読み取り専用) ─────────────────

stores = Table(
    "stores",
    metadata,
    Column("store_id", Integer, primary_key=True),
    Column("store_name", String(255), nullable=False, default=""),
    Column("store_status", String(16), nullable=False, default="enabled"),
)

customers = Table(
    "customers",
    metadata,
    Column("customer_id", Integer, primary_key=True),
    Column("customer_name", String(255), nullable=False),
    Column("store_id", Integer, ForeignKey("stores.store_id"), nullable=False),
)

products = Table(
    "products",
    metadata,
    Column("product_id", Integer, primary_key=True),
    Column("product_name", String(255), nullable=False, default=""),
    Column("price", Money, nullable=False),
    Column("store_id", Integer, ForeignKey("stores.store_id"), nullable=False),
)

# ── 注文 ─────────────────────────────────────────

orders = Table(
    "orders",
    metadata,
    Column("order_id", Integer, primary_key=True, autoincrement=True),
    Column("customer_id", Integer, ForeignKey("customers.customer_id"), nullable=True),
    Column("store_id", Integer, ForeignKey("stores.store_id"), nullable=False),
    Column("date_ordered", DateTime(timezone=True), nullable=False),
    Column("total_amount", Money, nullable=False),
    Column("status", String(16), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_orders_store_id", "store_id"),
)

order_items = Table(
    "order_items",
    metadata,
    Column("order_item_id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", Integer, ForeignKey("orders.order_id"), nullable=False),
    Column("product_id", Integer, ForeignKey("products.product_id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Money, nullable=False),
    Column("store_id", Integer, nullable=False),
    CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    Index("ix_order_items_order_id", "order_id"),
)

# ── 売上台帳 (追記のみ) ──────────────────────────
# order_item_id の UNIQUE 制約で、同じ注文明細から 2 行目の売上は作れない。

sales = Table(
    "sales",
    metadata,
    Column("sale_id", Integer, primary_key=True, autoincrement=True),
    Column("sale_date", DateTime(timezone=True), nullable=False),
    Column("sale_type", String(16), nullable=False),
    Column("product_id", Integer, ForeignKey("products.product_id"), nullable=False),
    Column("quantity_sold", Integer, nullable=False),
    Column("unit_price_at_sale", Money, nullable=False),
    Column("total_sale_amount", Money, nullable=False),
    Column("store_id", Integer, nullable=False),
    Column("customer_id", Integer, nullable=True),
    Column("order_id", Integer, ForeignKey("orders.order_id"), nullable=True),
    Column(
        "order_item_id",
        Integer,
        ForeignKey("order_items.order_item_id"),
        nullable=True,
        unique=True,
    ),
    Index("ix_sales_store_id", "store_id"),
    Index("ix_sales_order_id", "order_id"),
)
