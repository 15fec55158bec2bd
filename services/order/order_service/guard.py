"""
Order Service — 認可ガード

操作者 (ショップオーナー) のストアスコープで注文を操作できるか判定する。

存在チェックと認可チェックを別々のクエリにすると、その間に注文が
書き換わる余地が生まれる。そこで store_id で絞り込んだ条件付き UPDATE を
1 回だけ発行し、影響行数で判定する。この UPDATE は同時に注文行の
書き込みロックを取り、トランザクション終了まで保持される。
updated_at の更新はロック取得のための書き込みで、冪等な再送
(DeliveredAlreadyRecorded) の場合は呼び出し側がロールバックして残さない。
"""

from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import Unauthorized
from .schema import is_valid_id, orders


async def scope_check(session: AsyncSession, actor_store_id: int, order_id: int) -> None:
    """
    注文行をロックしつつ認可する。

    影響行数 0 → Unauthorized。
    「注文が無い」と「他ストアの注文」は呼び出し側から区別できない。
    ID 列に収まらない ID は存在し得ないので、発行前に同じく Unauthorized。
    """
    if not (is_valid_id(order_id) and is_valid_id(actor_store_id)):
        raise Unauthorized()
    result = await session.execute(
        update(orders)
        .where(orders.c.order_id == order_id, orders.c.store_id == actor_store_id)
        .values(updated_at=datetime.now(timezone.utc))
    )
    if result.rowcount == 0:
        raise Unauthorized()
