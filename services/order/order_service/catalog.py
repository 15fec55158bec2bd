"""
Order Service — カタログ / 顧客 / ストア参照

外部サービスが管理するテーブルの読み取り専用ビュー。
注文金額は必ずここで取得したカタログ価格から計算する
(クライアントが送ってきた価格は信用しない)。
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .schema import customers, products, stores

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """DB ドライバが返す float / Decimal / int を 2 桁の Decimal に揃える。"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


async def get_product_prices(
    session: AsyncSession,
    product_ids: list[int],
    store_id: int,
) -> dict[int, Decimal]:
    """
    指定ストアに属する商品の単価を返す。

    他ストアの商品や存在しない商品は結果に含まれない(NotFound 扱い)。
    """
    if not product_ids:
        return {}
    result = await session.execute(
        select(products.c.product_id, products.c.price).where(
            products.c.product_id.in_(sorted(set(product_ids))),
            products.c.store_id == store_id,
        )
    )
    return {row.product_id: to_money(row.price) for row in result}


async def get_store_status(session: AsyncSession, store_id: int) -> str | None:
    """ストアの有効/無効状態。ストアが無ければ None。"""
    result = await session.execute(
        select(stores.c.store_status).where(stores.c.store_id == store_id)
    )
    return result.scalar_one_or_none()


async def customer_exists(session: AsyncSession, customer_id: int) -> bool:
    result = await session.execute(
        select(customers.c.customer_id).where(customers.c.customer_id == customer_id)
    )
    return result.first() is not None
