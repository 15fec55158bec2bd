"""
Order Service — 注文ステータスの状態遷移表

状態遷移 (前進のみ):
    Pending    → Processing / Shipped / Delivered / Cancelled
    Processing → Shipped / Delivered / Cancelled
    Shipped    → Delivered / Cancelled
    Delivered, Cancelled は終端状態

Delivered は売上計上のトリガーとなる唯一の状態。
"""

from enum import Enum

from .errors import InvalidTransition, ValidationError


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


class Outcome(str, Enum):
    """ステータス更新の結果。いずれも成功扱い。"""

    STATUS_UPDATED = "StatusUpdated"
    DELIVERED_AND_RECORDED = "DeliveredAndRecorded"
    DELIVERED_ALREADY_RECORDED = "DeliveredAlreadyRecorded"


TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def parse_status(value: "str | OrderStatus") -> OrderStatus:
    """文字列を OrderStatus に変換する。未知の値は ValidationError。"""
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(
            f"Unknown order status {value!r} (expected one of: {allowed})",
            field="status",
        ) from None


def check_transition(current: OrderStatus, target: OrderStatus) -> None:
    """
    遷移表に照らして current → target を検証する。

    Delivered → Delivered だけは再送(リトライ)として許可し、
    呼び出し側で冪等な no-op として扱う。
    """
    if current is OrderStatus.DELIVERED and target is OrderStatus.DELIVERED:
        return
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)
