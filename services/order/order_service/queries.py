"""
Order Service — クエリハンドラ (読み取り側)

すべてのクエリはストア単位で絞り込む。
別ストアの注文・売上は見えない。
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import OrderNotFound
from .schema import customers, is_valid_id, order_items, orders, products, sales

GUEST = "Guest"


def _order_columns():
    return (
        orders.c.order_id,
        orders.c.customer_id,
        orders.c.date_ordered,
        orders.c.total_amount,
        orders.c.status,
        func.coalesce(customers.c.customer_name, GUEST).label("customer_name"),
    )


def _order_to_dict(row) -> dict:
    return {
        "order_id": row.order_id,
        "customer_id": row.customer_id,
        "date_ordered": row.date_ordered.isoformat() if row.date_ordered else None,
        "total_amount": row.total_amount,
        "status": row.status,
        "customer_name": row.customer_name,
    }


async def list_orders(session: AsyncSession, store_id: int) -> list[dict]:
    """ストアの注文一覧。顧客なしの注文は customer_name = "Guest"。"""
    result = await session.execute(
        select(*_order_columns())
        .select_from(orders.outerjoin(customers, orders.c.customer_id == customers.c.customer_id))
        .where(orders.c.store_id == store_id)
        .order_by(orders.c.date_ordered.desc(), orders.c.order_id.desc())
    )
    return [_order_to_dict(row) for row in result.fetchall()]


async def get_order(session: AsyncSession, store_id: int, order_id: int) -> dict:
    """注文 1 件と明細。ストアが違えば OrderNotFound。"""
    if not is_valid_id(order_id):
        raise OrderNotFound(order_id)
    result = await session.execute(
        select(*_order_columns())
        .select_from(orders.outerjoin(customers, orders.c.customer_id == customers.c.customer_id))
        .where(orders.c.order_id == order_id, orders.c.store_id == store_id)
    )
    row = result.first()
    if row is None:
        raise OrderNotFound(order_id)

    items = await session.execute(
        select(
            order_items.c.order_item_id,
            order_items.c.product_id,
            products.c.product_name,
            order_items.c.quantity,
            order_items.c.unit_price,
        )
        .join(products, order_items.c.product_id == products.c.product_id)
        .where(order_items.c.order_id == order_id)
        .order_by(order_items.c.order_item_id)
    )
    order = _order_to_dict(row)
    order["items"] = [
        {
            "order_item_id": item.order_item_id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "line_total": item.unit_price * item.quantity,
        }
        for item in items.fetchall()
    ]
    return order


async def list_sales(
    session: AsyncSession,
    store_id: int,
    order_id: int | None = None,
) -> list[dict]:
    """ストアの売上台帳。order_id を渡すとその注文の売上だけ。"""
    if order_id is not None and not is_valid_id(order_id):
        return []
    query = select(sales).where(sales.c.store_id == store_id)
    if order_id is not None:
        query = query.where(sales.c.order_id == order_id)
    result = await session.execute(query.order_by(sales.c.sale_id))
    return [
        {
            "sale_id": row.sale_id,
            "sale_date": row.sale_date.isoformat() if row.sale_date else None,
            "sale_type": row.sale_type,
            "product_id": row.product_id,
            "quantity_sold": row.quantity_sold,
            "unit_price_at_sale": row.unit_price_at_sale,
            "total_sale_amount": row.total_sale_amount,
            "store_id": row.store_id,
            "customer_id": row.customer_id,
            "order_id": row.order_id,
        }
        for row in result.fetchall()
    ]


async def product_sales_summary(session: AsyncSession, store_id: int) -> list[dict]:
    """
    商品ごとの販売数量と売上金額。

    売上のない商品も 0 として含める。
    """
    totals = (
        select(
            sales.c.product_id,
            func.sum(sales.c.quantity_sold).label("total_sold"),
            func.sum(sales.c.total_sale_amount).label("total_revenue"),
        )
        .where(sales.c.store_id == store_id)
        .group_by(sales.c.product_id)
        .subquery()
    )
    result = await session.execute(
        select(
            products.c.product_id,
            products.c.product_name,
            products.c.price,
            func.coalesce(totals.c.total_sold, 0).label("total_sold"),
            func.coalesce(totals.c.total_revenue, 0).label("total_revenue"),
        )
        .select_from(products.outerjoin(totals, products.c.product_id == totals.c.product_id))
        .where(products.c.store_id == store_id)
        .order_by(products.c.product_id)
    )
    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "price": row.price,
            "total_sold": int(row.total_sold),
            "total_revenue": row.total_revenue,
        }
        for row in result.fetchall()
    ]
