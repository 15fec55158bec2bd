import json
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from order_service.main import create_app
from order_service.schema import customers, metadata, order_items, orders, products, sales, stores


class RecordingRedis:
    """Captures published messages instead of talking to a Redis server."""

    def __init__(self):
        self.messages: list[tuple[str, dict]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.messages.append((channel, json.loads(message)))
        return 1

    def event_types(self) -> list[str]:
        return [message["event_type"] for _, message in self.messages]


@pytest.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(
            insert(stores),
            [
                {"store_id": 1, "store_name": "Corner Shop", "store_status": "enabled"},
                {"store_id": 2, "store_name": "Other Shop", "store_status": "enabled"},
                {"store_id": 3, "store_name": "Closed Shop", "store_status": "disabled"},
            ],
        )
        await conn.execute(
            insert(customers),
            [
                {"customer_id": 7, "customer_name": "Alice", "store_id": 1},
                {"customer_id": 8, "customer_name": "Bob", "store_id": 2},
            ],
        )
        await conn.execute(
            insert(products),
            [
                {"product_id": 10, "product_name": "Mug", "price": Decimal("5.00"), "store_id": 1},
                {"product_id": 11, "product_name": "Tea", "price": Decimal("3.00"), "store_id": 1},
                {"product_id": 20, "product_name": "Lamp", "price": Decimal("9.99"), "store_id": 2},
                {"product_id": 30, "product_name": "Desk", "price": Decimal("50.00"), "store_id": 3},
            ],
        )
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def redis():
    return RecordingRedis()


@pytest.fixture()
async def client(session_factory, redis):
    app = create_app(session_factory=session_factory, redis=redis)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def owner_headers(store_id: int, role: str = "shop_owner") -> dict:
    return {"X-Actor-Id": "1", "X-Store-Id": str(store_id), "X-Actor-Role": role}


SCENARIO_ITEMS = [
    {"product_id": 10, "quantity": 2},
    {"product_id": 11, "quantity": 1},
]


async def count_rows(session_factory, table, **filters) -> int:
    async with session_factory() as session:
        query = select(func.count()).select_from(table)
        for name, value in filters.items():
            query = query.where(table.c[name] == value)
        result = await session.execute(query)
        return result.scalar_one()


async def fetch_order(session_factory, order_id: int):
    async with session_factory() as session:
        result = await session.execute(select(orders).where(orders.c.order_id == order_id))
        return result.one()


async def fetch_sales(session_factory, order_id: int):
    async with session_factory() as session:
        result = await session.execute(
            select(sales).where(sales.c.order_id == order_id).order_by(sales.c.sale_id)
        )
        return result.fetchall()


async def fetch_items(session_factory, order_id: int):
    async with session_factory() as session:
        result = await session.execute(
            select(order_items)
            .where(order_items.c.order_id == order_id)
            .order_by(order_items.c.order_item_id)
        )
        return result.fetchall()
