"""
Order Service — 売上台帳ライター

配達完了 (Delivered) になった注文から売上行 (sales) を作る。
売上台帳は追記のみで、1 つの注文につき売上バッチは最大 1 回。

冪等性は 2 段構え:
  1. 同じトランザクション内での既存行チェック
     (呼び出し前に guard.scope_check が注文行をロック済み)
  2. sales.order_item_id の UNIQUE 制約
"""

import logging

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import ValidationError
from .schema import order_items, orders, sales

logger = logging.getLogger(__name__)

SALE_TYPE_ONLINE = "online"


async def has_sales_batch(session: AsyncSession, order_id: int) -> bool:
    """この注文から作られた売上行が既にあるか。"""
    result = await session.execute(
        select(func.count()).select_from(sales).where(sales.c.order_id == order_id)
    )
    return result.scalar_one() > 0


async def record_sale(session: AsyncSession, order_id: int, store_id: int) -> list[dict]:
    """
    注文明細 1 行につき売上 1 行を INSERT する。

    - sale_date は注文日時 (配達日時ではない)
    - 単価は注文時に保存したスナップショット
    - 既に売上バッチがあれば何もせず空リストを返す

    戻り値は書き込んだ売上行 (len が計上件数)。
    トランザクションは呼び出し側が管理する。1 行でも失敗すれば
    バッチ全体がロールバックされる。
    """
    if await has_sales_batch(session, order_id):
        logger.info("Sales already recorded for order %s", order_id)
        return []

    result = await session.execute(
        select(
            order_items.c.order_item_id,
            order_items.c.product_id,
            order_items.c.quantity,
            order_items.c.unit_price,
            orders.c.date_ordered,
            orders.c.customer_id,
        )
        .join(orders, order_items.c.order_id == orders.c.order_id)
        .where(orders.c.order_id == order_id, orders.c.store_id == store_id)
        .order_by(order_items.c.order_item_id)
    )
    items = result.fetchall()
    if not items:
        raise ValidationError(f"No order items found for order {order_id}")

    rows = [
        {
            "sale_date": item.date_ordered,
            "sale_type": SALE_TYPE_ONLINE,
            "product_id": item.product_id,
            "quantity_sold": item.quantity,
            "unit_price_at_sale": item.unit_price,
            "total_sale_amount": item.unit_price * item.quantity,
            "store_id": store_id,
            "customer_id": item.customer_id,
            "order_id": order_id,
            "order_item_id": item.order_item_id,
        }
        for item in items
    ]
    await session.execute(insert(sales), rows)

    logger.info("Recorded %d sales rows for order %s", len(rows), order_id)
    return rows
