"""Order Service — 例外定義

エンジンが送出する例外はすべて OrderServiceError を基底とする。
HTTP ステータスへの対応付けは ERROR_STATUS_CODES で行い、
main.py の exception_handler が参照する。
"""


class OrderServiceError(Exception):
    """注文サービスの全例外の基底クラス。"""

    pass


class ValidationError(OrderServiceError):
    """リクエスト内容の不備（クライアント側で修正可能）。"""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class Unauthorized(OrderServiceError):
    """操作者のストアスコープが注文と一致しない。

    注文が存在しないのか、別ストアの注文なのかは区別しない。
    """

    def __init__(self):
        super().__init__("Unauthorized or order not found")


class OrderNotFound(OrderServiceError):
    """スコープ付き参照で注文が見つからない。"""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidTransition(OrderServiceError):
    """状態遷移表に無い遷移。"""

    def __init__(self, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot transition order from {current} to {attempted}")


class StorageFailure(OrderServiceError):
    """トランザクションをコミットできなかった（ロールバック済み）。"""

    def __init__(self, operation: str, reason: str | None = None):
        self.operation = operation
        msg = f"Storage failure during {operation}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


ERROR_STATUS_CODES: dict[type[OrderServiceError], int] = {
    ValidationError: 400,
    Unauthorized: 403,
    OrderNotFound: 404,
    InvalidTransition: 409,
    StorageFailure: 503,
}
