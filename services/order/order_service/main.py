"""
Order Service — FastAPI エントリーポイント

注文のライフサイクル (作成 → ステータス更新 → 配達完了) と
配達完了時の売上台帳への計上を扱う。

  POST /orders                  注文作成
  POST /orders/checkout         チェックアウト (Pending 固定の注文作成)
  PUT  /orders/{id}/status      ステータス更新 (+ Delivered で売上計上)
  GET  /orders, /orders/{id}    注文の参照 (ストア単位)
  GET  /sales, /sales/products  売上台帳の参照 (ストア単位)

DB セッションはリクエストごとに取得し、リクエスト終了時に返却する。
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import commands, config, queries
from .errors import ERROR_STATUS_CODES, OrderServiceError
from .identity import Actor, get_store_manager
from .schema import metadata

logger = logging.getLogger(__name__)


# ── Request Models ───────────────────────────────


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int
    # 参考値。保存される金額はカタログ価格から計算する。
    price: Decimal | None = None


class CreateOrderRequest(BaseModel):
    customer_id: int | None = None
    store_id: int | None = None
    status: str = "Pending"
    items: list[OrderItemRequest] = []
    total_amount: Decimal | None = None


class CheckoutRequest(BaseModel):
    customer_id: int
    store_id: int | None = None
    items: list[OrderItemRequest] = []


class UpdateStatusRequest(BaseModel):
    status: str


# ── App / Lifespan ───────────────────────────────


def create_app(
    session_factory: sessionmaker | None = None,
    redis: aioredis.Redis | None = None,
) -> FastAPI:
    """
    アプリケーションを組み立てる。

    session_factory / redis を渡さなければ lifespan で環境変数から生成する。
    テストでは外から渡して差し替える。
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config.configure_logging()
        engine = None
        owned_redis = None
        if app.state.session_factory is None:
            engine = create_async_engine(
                config.database_url(), echo=config.SQL_ECHO, pool_pre_ping=True
            )
            if config.CREATE_SCHEMA:
                async with engine.begin() as conn:
                    await conn.run_sync(metadata.create_all)
            app.state.session_factory = sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            )
        if app.state.redis is None:
            owned_redis = aioredis.from_url(config.REDIS_URL, decode_responses=True)
            app.state.redis = owned_redis
        logger.info("Order service started")
        yield
        if owned_redis is not None:
            await owned_redis.aclose()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(title="Order Service", lifespan=lifespan)
    app.state.session_factory = session_factory
    app.state.redis = redis

    @app.exception_handler(OrderServiceError)
    async def order_service_error_handler(
        request: Request, exc: OrderServiceError
    ) -> JSONResponse:
        """OrderServiceError のサブクラスを HTTP レスポンスに対応付ける。"""
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error_type": type(exc).__name__},
        )

    app.include_router(_routes())
    return app


async def get_session(request: Request):
    async with request.app.state.session_factory() as session:
        yield session


def get_redis(request: Request) -> aioredis.Redis | None:
    return request.app.state.redis


def _routes() -> APIRouter:
    router = APIRouter()

    # ── Command Endpoints (書き込み側) ────────────

    @router.post("/orders", status_code=201)
    async def cmd_create_order(
        req: CreateOrderRequest,
        session: AsyncSession = Depends(get_session),
        redis: aioredis.Redis | None = Depends(get_redis),
    ):
        """注文作成コマンド"""
        order = await commands.create_order(
            session,
            redis,
            req.customer_id,
            req.store_id,
            [item.model_dump() for item in req.items],
            req.status,
        )
        return _created(order)

    @router.post("/orders/checkout", status_code=201)
    async def cmd_checkout(
        req: CheckoutRequest,
        session: AsyncSession = Depends(get_session),
        redis: aioredis.Redis | None = Depends(get_redis),
    ):
        """チェックアウトコマンド (注文作成と同じ検証・原子性)"""
        order = await commands.checkout(
            session,
            redis,
            req.customer_id,
            req.store_id,
            [item.model_dump() for item in req.items],
        )
        return _created(order)

    @router.put("/orders/{order_id}/status")
    async def cmd_update_status(
        order_id: int,
        req: UpdateStatusRequest,
        actor: Actor = Depends(get_store_manager),
        session: AsyncSession = Depends(get_session),
        redis: aioredis.Redis | None = Depends(get_redis),
    ):
        """ステータス更新コマンド"""
        return await commands.update_order_status(
            session, redis, order_id, req.status, actor.store_id
        )

    # ── Query Endpoints (読み取り側) ──────────────

    @router.get("/orders")
    async def query_list_orders(
        actor: Actor = Depends(get_store_manager),
        session: AsyncSession = Depends(get_session),
    ):
        """ストアの注文一覧"""
        return await queries.list_orders(session, actor.store_id)

    @router.get("/orders/{order_id}")
    async def query_get_order(
        order_id: int,
        actor: Actor = Depends(get_store_manager),
        session: AsyncSession = Depends(get_session),
    ):
        """注文詳細 (明細付き)"""
        return await queries.get_order(session, actor.store_id, order_id)

    @router.get("/sales")
    async def query_list_sales(
        order_id: int | None = None,
        actor: Actor = Depends(get_store_manager),
        session: AsyncSession = Depends(get_session),
    ):
        """ストアの売上台帳"""
        return await queries.list_sales(session, actor.store_id, order_id)

    @router.get("/sales/products")
    async def query_product_sales(
        actor: Actor = Depends(get_store_manager),
        session: AsyncSession = Depends(get_session),
    ):
        """商品ごとの販売数量・売上"""
        return await queries.product_sales_summary(session, actor.store_id)

    @router.get("/health")
    async def health():
        return {"status": "ok", "service": "order-service"}

    return router


def _created(order: dict) -> dict:
    return {
        "order_id": order["order_id"],
        "total_amount": order["total_amount"],
        "status": order["status"],
    }


app = create_app()
