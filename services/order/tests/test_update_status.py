"""Tests for status transitions, delivery sales recording and store scoping."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import insert

from conftest import SCENARIO_ITEMS, count_rows, fetch_order, fetch_sales
from order_service import commands, ledger
from order_service.errors import (
    InvalidTransition,
    StorageFailure,
    Unauthorized,
    ValidationError,
)
from order_service.schema import sales


@pytest.fixture()
async def order_id(session_factory):
    async with session_factory() as session:
        order = await commands.create_order(session, None, 7, 1, SCENARIO_ITEMS)
    return order["order_id"]


async def _update(session_factory, redis, order_id, status, store_id):
    async with session_factory() as session:
        return await commands.update_order_status(
            session, redis, order_id, status, store_id
        )


async def test_delivery_records_one_sale_per_item(session_factory, redis, order_id):
    result = await _update(session_factory, redis, order_id, "Delivered", 1)

    assert result["outcome"] == "DeliveredAndRecorded"
    assert result["previous_status"] == "Pending"
    assert result["sales_recorded"] == 2

    order = await fetch_order(session_factory, order_id)
    assert order.status == "Delivered"

    rows = await fetch_sales(session_factory, order_id)
    assert [r.total_sale_amount for r in rows] == [Decimal("10.00"), Decimal("3.00")]
    assert [r.quantity_sold for r in rows] == [2, 1]
    assert [r.unit_price_at_sale for r in rows] == [Decimal("5.00"), Decimal("3.00")]
    for row in rows:
        assert row.sale_date == order.date_ordered
        assert row.sale_type == "online"
        assert row.store_id == 1
        assert row.customer_id == 7


async def test_repeated_delivery_is_idempotent(session_factory, redis, order_id):
    await _update(session_factory, redis, order_id, "Delivered", 1)

    result = await _update(session_factory, redis, order_id, "Delivered", 1)

    assert result["outcome"] == "DeliveredAlreadyRecorded"
    assert result["sales_recorded"] == 0
    assert await count_rows(session_factory, sales, order_id=order_id) == 2


async def test_repeated_delivery_leaves_the_order_row_untouched(
    session_factory, redis, order_id
):
    await _update(session_factory, redis, order_id, "Delivered", 1)
    before = await fetch_order(session_factory, order_id)

    await _update(session_factory, redis, order_id, "Delivered", 1)

    after = await fetch_order(session_factory, order_id)
    assert after.updated_at == before.updated_at
    assert after.status == "Delivered"


async def test_concurrent_deliveries_record_exactly_one_batch(
    session_factory, redis, order_id
):
    results = await asyncio.gather(
        _update(session_factory, redis, order_id, "Delivered", 1),
        _update(session_factory, redis, order_id, "Delivered", 1),
    )

    outcomes = sorted(r["outcome"] for r in results)
    assert outcomes == ["DeliveredAlreadyRecorded", "DeliveredAndRecorded"]
    assert await count_rows(session_factory, sales, order_id=order_id) == 2


async def test_wrong_store_is_unauthorized_and_changes_nothing(
    session_factory, redis, order_id
):
    with pytest.raises(Unauthorized):
        await _update(session_factory, redis, order_id, "Delivered", 2)

    order = await fetch_order(session_factory, order_id)
    assert order.status == "Pending"
    assert await count_rows(session_factory, sales) == 0
    assert redis.messages == []


async def test_missing_order_looks_the_same_as_foreign_order(
    session_factory, redis, order_id
):
    with pytest.raises(Unauthorized) as missing:
        await _update(session_factory, redis, 9999, "Shipped", 1)
    with pytest.raises(Unauthorized) as foreign:
        await _update(session_factory, redis, order_id, "Shipped", 2)

    assert str(missing.value) == str(foreign.value)


@pytest.mark.parametrize(
    "target_order,store_id",
    [(2**63, 1), (2**31, 1), (None, 2**63), (None, 0)],
)
async def test_out_of_range_ids_are_unauthorized(
    session_factory, redis, order_id, target_order, store_id
):
    with pytest.raises(Unauthorized):
        await _update(session_factory, redis, target_order or order_id, "Shipped", store_id)

    order = await fetch_order(session_factory, order_id)
    assert order.status == "Pending"
    assert redis.messages == []


async def test_non_delivery_transition_only_updates_status(
    session_factory, redis, order_id
):
    result = await _update(session_factory, redis, order_id, "Processing", 1)

    assert result["outcome"] == "StatusUpdated"
    assert (await fetch_order(session_factory, order_id)).status == "Processing"
    assert await count_rows(session_factory, sales) == 0
    assert redis.event_types() == ["OrderStatusChanged"]


async def test_walk_through_the_full_lifecycle(session_factory, redis, order_id):
    for status in ("Processing", "Shipped"):
        result = await _update(session_factory, redis, order_id, status, 1)
        assert result["outcome"] == "StatusUpdated"

    result = await _update(session_factory, redis, order_id, "Delivered", 1)

    assert result["outcome"] == "DeliveredAndRecorded"
    assert result["previous_status"] == "Shipped"


@pytest.mark.parametrize("terminal", ["Cancelled", "Delivered"])
@pytest.mark.parametrize("target", ["Pending", "Processing", "Shipped", "Cancelled"])
async def test_terminal_orders_reject_transitions(
    session_factory, redis, order_id, terminal, target
):
    if terminal == target:
        pytest.skip("same-status update covered separately")

    await _update(session_factory, redis, order_id, terminal, 1)
    sales_before = await count_rows(session_factory, sales)
    redis.messages.clear()

    with pytest.raises(InvalidTransition) as exc_info:
        await _update(session_factory, redis, order_id, target, 1)

    assert exc_info.value.current == terminal
    assert exc_info.value.attempted == target
    assert (await fetch_order(session_factory, order_id)).status == terminal
    assert await count_rows(session_factory, sales) == sales_before
    assert redis.messages == []


async def test_cancelled_order_cannot_be_delivered(session_factory, redis, order_id):
    await _update(session_factory, redis, order_id, "Cancelled", 1)

    with pytest.raises(InvalidTransition):
        await _update(session_factory, redis, order_id, "Delivered", 1)

    assert await count_rows(session_factory, sales) == 0


async def test_order_created_as_delivered_is_recorded_on_first_signal(
    session_factory, redis
):
    async with session_factory() as session:
        order = await commands.create_order(
            session, None, 7, 1, SCENARIO_ITEMS, status="Delivered"
        )

    result = await _update(session_factory, redis, order["order_id"], "Delivered", 1)

    assert result["outcome"] == "DeliveredAndRecorded"
    assert await count_rows(session_factory, sales, order_id=order["order_id"]) == 2


async def test_unknown_status_is_a_validation_error(session_factory, redis, order_id):
    with pytest.raises(ValidationError):
        await _update(session_factory, redis, order_id, "Refunded", 1)


async def test_delivery_publishes_status_and_sales_events(
    session_factory, redis, order_id
):
    await _update(session_factory, redis, order_id, "Delivered", 1)
    await _update(session_factory, redis, order_id, "Delivered", 1)

    assert redis.event_types() == ["OrderStatusChanged", "SalesRecorded"]
    sales_event = redis.messages[1][1]["data"]
    assert sales_event["records"] == 2
    assert Decimal(sales_event["total_sale_amount"]) == Decimal("13.00")


async def test_failed_sales_insert_rolls_back_the_status_change(
    session_factory, redis, order_id, monkeypatch
):
    async def broken_record_sale(session, order_id, store_id):
        # row without sale_date and the other NOT NULL columns
        await session.execute(insert(sales).values(order_id=order_id, store_id=store_id))
        return []

    monkeypatch.setattr(ledger, "record_sale", broken_record_sale)

    with pytest.raises(StorageFailure):
        await _update(session_factory, redis, order_id, "Delivered", 1)

    assert (await fetch_order(session_factory, order_id)).status == "Pending"
    assert await count_rows(session_factory, sales) == 0
