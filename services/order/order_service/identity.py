"""
Order Service — 操作者 (Actor)

認証はゲートウェイ側で済んでいる前提。
検証済みの ID 情報はヘッダーで渡されるので、ここでは読むだけで
トークンの解析・検証は一切しない。

    X-Actor-Id:   操作者 ID
    X-Store-Id:   操作者のストアスコープ
    X-Actor-Role: shop_owner / admin / customer
"""

from dataclasses import dataclass

from fastapi import Depends, Header

from .errors import Unauthorized
from .schema import is_valid_id

STORE_MANAGER_ROLES = frozenset({"shop_owner", "admin"})


@dataclass(frozen=True)
class Actor:
    actor_id: int
    store_id: int
    role: str

    @property
    def can_manage_orders(self) -> bool:
        return self.role in STORE_MANAGER_ROLES


async def get_actor(
    x_actor_id: int = Header(),
    x_store_id: int = Header(),
    x_actor_role: str = Header(),
) -> Actor:
    return Actor(actor_id=x_actor_id, store_id=x_store_id, role=x_actor_role)


async def get_store_manager(actor: Actor = Depends(get_actor)) -> Actor:
    """ストアの注文を管理できる操作者だけを通す。ID 列に収まらないストア ID も拒否。"""
    if not actor.can_manage_orders or not is_valid_id(actor.store_id):
        raise Unauthorized()
    return actor
