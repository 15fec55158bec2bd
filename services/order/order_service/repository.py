"""
Order Service — 注文リポジトリ

注文 (orders) と注文明細 (order_items) の永続化を担当する。
ここの関数はトランザクションを開始・コミットしない。
呼び出し側 (commands.py) が 1 つのトランザクションで囲むことで、
注文と全明細が「全部書けるか、何も書かれないか」のどちらかになる。
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from . import catalog
from .errors import ValidationError
from .schema import ID_MAX, MONEY_MAX, is_valid_id, order_items, orders
from .transitions import OrderStatus, parse_status

logger = logging.getLogger(__name__)


def _validate_items(items: list[dict]) -> list[dict]:
    """明細の形式チェック。product_id と quantity はどちらも int4 に収まる正の整数。"""
    if not items:
        raise ValidationError("Order must contain at least one item", field="items")

    lines = []
    for index, item in enumerate(items):
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if not is_valid_id(product_id):
            raise ValidationError(
                f"items[{index}].product_id must be an integer between 1 and {ID_MAX}",
                field="items",
            )
        if not is_valid_id(quantity):
            raise ValidationError(
                f"items[{index}].quantity must be an integer between 1 and {ID_MAX}"
                f" (got {quantity!r})",
                field="items",
            )
        lines.append(
            {
                "product_id": product_id,
                "quantity": quantity,
                "client_price": item.get("price"),
            }
        )
    return lines


async def create_order(
    session: AsyncSession,
    customer_id: int | None,
    store_id: int | None,
    items: list[dict],
    status: "OrderStatus | str" = OrderStatus.PENDING,
) -> dict:
    """
    注文と明細をまとめて INSERT する。

    1. 入力検証 (ストア・顧客・明細)
    2. カタログから単価を取得 (他ストアの商品は拒否)
    3. 合計金額をサーバー側で計算
    4. orders → order_items の順に INSERT

    クライアントが送ってきた price は無視する。
    """
    if store_id is None:
        raise ValidationError("store_id is required", field="store_id")
    if not is_valid_id(store_id):
        raise ValidationError(f"Unknown store: {store_id}", field="store_id")
    if customer_id is not None and not is_valid_id(customer_id):
        raise ValidationError(f"Unknown customer: {customer_id}", field="customer_id")
    initial_status = parse_status(status)
    lines = _validate_items(items)

    store_status = await catalog.get_store_status(session, store_id)
    if store_status is None:
        raise ValidationError(f"Unknown store: {store_id}", field="store_id")
    if store_status != "enabled":
        raise ValidationError(
            f"Store {store_id} is {store_status} and cannot accept orders",
            field="store_id",
        )

    if customer_id is not None and not await catalog.customer_exists(session, customer_id):
        raise ValidationError(f"Unknown customer: {customer_id}", field="customer_id")

    prices = await catalog.get_product_prices(
        session, [line["product_id"] for line in lines], store_id
    )
    missing = sorted({line["product_id"] for line in lines} - prices.keys())
    if missing:
        raise ValidationError(
            f"Products {missing} do not belong to store {store_id}",
            field="items",
        )

    total = Decimal("0.00")
    for line in lines:
        unit_price = prices[line["product_id"]]
        client_price = line.pop("client_price")
        if client_price is not None and catalog.to_money(client_price) != unit_price:
            logger.warning(
                "Ignoring client price %s for product %s (catalog price %s)",
                client_price,
                line["product_id"],
                unit_price,
            )
        line["unit_price"] = unit_price
        total += unit_price * line["quantity"]
    total = catalog.to_money(total)
    if total > MONEY_MAX:
        raise ValidationError(
            f"Order total {total} exceeds the maximum of {MONEY_MAX}", field="items"
        )

    now = datetime.now(timezone.utc)
    result = await session.execute(
        insert(orders).values(
            customer_id=customer_id,
            store_id=store_id,
            date_ordered=now,
            total_amount=total,
            status=initial_status.value,
            updated_at=now,
        )
    )
    order_id = result.inserted_primary_key[0]

    await session.execute(
        insert(order_items),
        [
            {
                "order_id": order_id,
                "product_id": line["product_id"],
                "quantity": line["quantity"],
                "unit_price": line["unit_price"],
                "store_id": store_id,
            }
            for line in lines
        ],
    )

    return {
        "order_id": order_id,
        "customer_id": customer_id,
        "store_id": store_id,
        "status": initial_status.value,
        "total_amount": total,
        "date_ordered": now,
        "items": lines,
    }
