"""
Order Service — イベント定義

コミット後に Redis Pub/Sub (order_events) へ発行するドメインイベント。
イベントは過去形で命名し、不変(immutable)として扱う。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class OrderCreated(BaseModel):
    """注文が作成された"""
    order_id: int
    customer_id: int | None
    store_id: int
    status: str
    total_amount: Decimal
    item_count: int
    timestamp: datetime


class OrderStatusChanged(BaseModel):
    """注文ステータスが変更された"""
    order_id: int
    store_id: int
    previous_status: str
    status: str
    outcome: str
    timestamp: datetime


class SalesRecorded(BaseModel):
    """配達完了により売上が計上された"""
    order_id: int
    store_id: int
    customer_id: int | None
    records: int
    total_sale_amount: Decimal
    sale_date: datetime
    timestamp: datetime
