"""
Order Service — コマンドハンドラ (書き込み側)

状態を変更する操作はここに集める。各コマンドは
1 つのトランザクション (async with session.begin()) の中で完結し、
例外 (呼び出し側の切断による CancelledError を含む) が起きれば
すべてロールバックされる。
コミットに成功した後でだけ Redis Pub/Sub にイベントを発行する。
"""

import json
import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, guard, ledger, repository
from .errors import StorageFailure
from .events import OrderCreated, OrderStatusChanged, SalesRecorded
from .schema import orders
from .transitions import OrderStatus, Outcome, check_transition, parse_status

logger = logging.getLogger(__name__)


async def create_order(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    customer_id: int | None,
    store_id: int | None,
    items: list[dict],
    status: "OrderStatus | str" = OrderStatus.PENDING,
) -> dict:
    """
    注文作成コマンド (CreateOrder / Checkout 共通)

    1. 注文と全明細を 1 トランザクションで INSERT
    2. コミット後に OrderCreated イベントを発行
    """
    try:
        async with session.begin():
            order = await repository.create_order(
                session, customer_id, store_id, items, status
            )
    except SQLAlchemyError as e:
        logger.exception("Failed to create order for store %s", store_id)
        raise StorageFailure("create_order", type(e).__name__) from e

    logger.info(
        "Created order %s for store %s (total %s)",
        order["order_id"],
        store_id,
        order["total_amount"],
    )
    await _publish(
        redis,
        OrderCreated(
            order_id=order["order_id"],
            customer_id=customer_id,
            store_id=order["store_id"],
            status=order["status"],
            total_amount=order["total_amount"],
            item_count=len(order["items"]),
            timestamp=order["date_ordered"],
        ),
    )
    return order


async def checkout(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    customer_id: int | None,
    store_id: int | None,
    items: list[dict],
) -> dict:
    """チェックアウト = ステータス Pending 固定の注文作成。"""
    return await create_order(
        session, redis, customer_id, store_id, items, OrderStatus.PENDING
    )


async def update_order_status(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    order_id: int,
    new_status: "OrderStatus | str",
    acting_store_id: int,
) -> dict:
    """
    注文ステータス更新コマンド

    1. 認可 (条件付き UPDATE で注文行をロック)
    2. 状態遷移表によるチェック
    3. ステータスを書き込む
    4. Delivered かつ売上未計上なら売上台帳に書き込む

    1〜4 は同一トランザクション。Delivered の再送は
    DeliveredAlreadyRecorded を返す (エラーではない)。
    このときはガードの updated_at 更新もロールバックし、何も書き込まない。
    """
    target = parse_status(new_status)
    recorded: list[dict] = []

    try:
        async with session.begin() as transaction:
            await guard.scope_check(session, acting_store_id, order_id)

            result = await session.execute(
                select(orders.c.status, orders.c.customer_id).where(
                    orders.c.order_id == order_id
                )
            )
            row = result.one()
            current = parse_status(row.status)
            check_transition(current, target)

            if current is not target:
                await session.execute(
                    update(orders)
                    .where(orders.c.order_id == order_id)
                    .values(status=target.value)
                )

            if target is OrderStatus.DELIVERED:
                recorded = await ledger.record_sale(session, order_id, acting_store_id)
                outcome = (
                    Outcome.DELIVERED_AND_RECORDED
                    if recorded
                    else Outcome.DELIVERED_ALREADY_RECORDED
                )
                if not recorded:
                    await transaction.rollback()
            else:
                outcome = Outcome.STATUS_UPDATED
    except SQLAlchemyError as e:
        logger.exception("Failed to update status of order %s", order_id)
        raise StorageFailure("update_order_status", type(e).__name__) from e

    logger.info(
        "Order %s: %s -> %s (%s)", order_id, current.value, target.value, outcome.value
    )

    now = datetime.now(timezone.utc)
    if outcome is not Outcome.DELIVERED_ALREADY_RECORDED:
        await _publish(
            redis,
            OrderStatusChanged(
                order_id=order_id,
                store_id=acting_store_id,
                previous_status=current.value,
                status=target.value,
                outcome=outcome.value,
                timestamp=now,
            ),
        )
    if recorded:
        await _publish(
            redis,
            SalesRecorded(
                order_id=order_id,
                store_id=acting_store_id,
                customer_id=row.customer_id,
                records=len(recorded),
                total_sale_amount=sum(r["total_sale_amount"] for r in recorded),
                sale_date=recorded[0]["sale_date"],
                timestamp=now,
            ),
        )

    return {
        "order_id": order_id,
        "previous_status": current.value,
        "status": target.value,
        "outcome": outcome.value,
        "sales_recorded": len(recorded),
    }


async def _publish(redis: aioredis.Redis | None, event: BaseModel) -> None:
    """
    イベントを order_events チャネルに発行する。

    書き込みは既にコミット済みなので、発行に失敗しても
    リクエスト自体は失敗させずにログへ残す。
    """
    if redis is None:
        return
    event_type = type(event).__name__
    try:
        await redis.publish(
            config.ORDER_EVENTS_CHANNEL,
            json.dumps(
                {"event_type": event_type, "data": event.model_dump(mode="json")},
                default=str,
            ),
        )
    except RedisError:
        logger.exception("Failed to publish %s", event_type)
