import asyncio
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from conftest import make_order, stock_of
from coffeeshop.core.exceptions import (
    EmptyOrder,
    InsufficientInventory,
    InvalidOrderID,
    InvalidQuantity,
    InvalidStateTransition,
    NotFound,
)
from coffeeshop.models.inventory import InventoryTransaction, TransactionType
from coffeeshop.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory
from coffeeshop.schemas.order import OrderItemRequest, OrderRequest
from coffeeshop.services import inventory_ledger, order_store
from coffeeshop.services.order_service import (
    close_order,
    create_order,
    delete_order,
    get_order,
    list_orders,
    transition_status,
    update_order,
)
from coffeeshop.services.pricing import calculate_total, resolve_prices, update_price


async def _ledger_sum(order_id, kind):
    rows = await InventoryTransaction.filter(reference_id=order_id, transaction_type=kind)
    totals = {}
    for row in rows:
        totals[row.ingredient_id] = totals.get(row.ingredient_id, Decimal("0")) + row.delta
    return totals


async def _force_status(order_id, status):
    await Order.filter(id=order_id).update(status=status)


# --- CREATE ---

@pytest.mark.asyncio
async def test_latte_milk_scenario(cafe):
    """One latte empties the milk, a second is refused, deleting the first restores it."""
    first = await create_order(make_order((cafe.latte.id, 1)))
    assert first.status == OrderStatus.PENDING
    assert await stock_of(cafe.milk) == Decimal("0")

    with pytest.raises(InsufficientInventory) as excinfo:
        await create_order(make_order((cafe.latte.id, 1)))
    assert excinfo.value.ingredient == "Milk"
    assert excinfo.value.needed == Decimal("200.000")
    assert excinfo.value.available == Decimal("0.000")
    assert await Order.all().count() == 1

    await delete_order(first.id)
    assert await stock_of(cafe.milk) == Decimal("200")


@pytest.mark.asyncio
async def test_create_persists_items_ledger_and_history(cafe):
    order = await create_order(make_order((cafe.espresso.id, 2), (cafe.cookie.id, 1), customer_id=cafe.ada.id))

    assert order.total_price == Decimal("6.20")
    stored = await get_order(order.id)
    assert stored.customer_id == cafe.ada.id
    assert sorted((i.menu_item_id, i.quantity, i.price_at_order) for i in stored.items) == sorted([
        (cafe.espresso.id, 2, Decimal("2.50")),
        (cafe.cookie.id, 1, Decimal("1.20")),
    ])
    assert await _ledger_sum(order.id, TransactionType.ORDER_USAGE) == {cafe.beans.id: Decimal("-36.000")}
    assert await stock_of(cafe.beans) == Decimal("964")

    history = await order_store.get_status_history(order.id)
    assert [h.status for h in history] == [OrderStatus.PENDING]


@pytest.mark.asyncio
async def test_create_ignores_client_prices(cafe):
    request = OrderRequest(items=[
        OrderItemRequest(menu_item_id=cafe.latte.id, quantity=1, price_at_order=Decimal("0.01")),
    ])
    order = await create_order(request)

    assert order.total_price == Decimal("3.75")
    item = await OrderItem.get(order_id=order.id)
    assert item.price_at_order == Decimal("3.75")


@pytest.mark.asyncio
async def test_create_rejects_empty_and_non_positive_quantities(cafe):
    with pytest.raises(EmptyOrder):
        await create_order(make_order())
    with pytest.raises(InvalidQuantity):
        await create_order(make_order((cafe.espresso.id, 0)))

    assert await Order.all().count() == 0
    assert await InventoryTransaction.all().count() == 0


@pytest.mark.asyncio
async def test_create_unknown_or_inactive_item_writes_nothing(cafe):
    with pytest.raises(NotFound):
        await create_order(make_order((cafe.espresso.id, 1), (9999, 1)))
    with pytest.raises(NotFound):
        await create_order(make_order((cafe.retired.id, 1)))

    assert await stock_of(cafe.beans) == Decimal("1000")
    assert await Order.all().count() == 0
    assert await InventoryTransaction.all().count() == 0


@pytest.mark.asyncio
async def test_create_rolls_back_on_late_failure(cafe):
    with patch("coffeeshop.services.order_store.append_status", AsyncMock(side_effect=RuntimeError("db went away"))):
        with pytest.raises(RuntimeError):
            await create_order(make_order((cafe.latte.id, 1)))

    assert await stock_of(cafe.milk) == Decimal("200")
    assert await Order.all().count() == 0
    assert await OrderItem.all().count() == 0
    assert await InventoryTransaction.all().count() == 0


@pytest.mark.asyncio
async def test_concurrent_creates_never_oversell(cafe):
    results = await asyncio.gather(
        create_order(make_order((cafe.latte.id, 1))),
        create_order(make_order((cafe.latte.id, 1))),
        return_exceptions=True,
    )

    created = [r for r in results if isinstance(r, Order)]
    refused = [r for r in results if isinstance(r, InsufficientInventory)]
    assert len(created) == 1
    assert len(refused) == 1
    assert await stock_of(cafe.milk) == Decimal("0")


@pytest.mark.asyncio
async def test_cancelled_create_rolls_back(cafe):
    reached = asyncio.Event()

    async def stall(*args, **kwargs):
        reached.set()
        await asyncio.sleep(3600)

    with patch("coffeeshop.services.order_store.append_status", side_effect=stall):
        task = asyncio.create_task(create_order(make_order((cafe.latte.id, 1))))
        await reached.wait()
        # Stock is already deducted inside the open transaction at this point
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert await stock_of(cafe.milk) == Decimal("200")
    assert await stock_of(cafe.beans) == Decimal("1000")
    assert await Order.all().count() == 0
    assert await InventoryTransaction.all().count() == 0

    # The transaction is released; the same order goes through afterwards
    order = await create_order(make_order((cafe.latte.id, 1)))
    assert await stock_of(cafe.milk) == Decimal("0")
    assert await inventory_ledger.usage_since(order.id) == {
        cafe.milk.id: Decimal("200.000"), cafe.beans.id: Decimal("18.000"),
    }


# --- UPDATE ---

@pytest.mark.asyncio
async def test_update_applies_only_net_delta(cafe):
    order = await create_order(make_order((cafe.espresso.id, 1)))
    assert await stock_of(cafe.beans) == Decimal("982")

    updated = await update_order(order.id, make_order((cafe.espresso.id, 3), (cafe.cookie.id, 2)))

    assert updated.total_price == Decimal("9.90")
    assert await stock_of(cafe.beans) == Decimal("946")
    # Ledger reflects the corrected consumption, not a doubled one
    assert await _ledger_sum(order.id, TransactionType.ORDER_USAGE) == {cafe.beans.id: Decimal("-54.000")}
    assert await inventory_ledger.usage_since(order.id) == {cafe.beans.id: Decimal("54.000")}
    assert sorted((i.menu_item_id, i.quantity) for i in updated.items) == sorted([
        (cafe.espresso.id, 3), (cafe.cookie.id, 2),
    ])


@pytest.mark.asyncio
async def test_update_reduction_is_a_restock_even_when_stock_is_empty(cafe):
    order = await create_order(make_order((cafe.latte.id, 1)))
    assert await stock_of(cafe.milk) == Decimal("0")

    await update_order(order.id, make_order((cafe.espresso.id, 1)))

    assert await stock_of(cafe.milk) == Decimal("200")
    assert await stock_of(cafe.beans) == Decimal("982")
    assert await inventory_ledger.usage_since(order.id) == {cafe.beans.id: Decimal("18.000")}


@pytest.mark.asyncio
async def test_update_shortage_leaves_order_untouched(cafe):
    order = await create_order(make_order((cafe.latte.id, 1)))

    with pytest.raises(InsufficientInventory):
        await update_order(order.id, make_order((cafe.latte.id, 2)))

    stored = await get_order(order.id)
    assert [(i.menu_item_id, i.quantity) for i in stored.items] == [(cafe.latte.id, 1)]
    assert stored.total_price == Decimal("3.75")
    assert await stock_of(cafe.milk) == Decimal("0")
    assert await inventory_ledger.usage_since(order.id) == {
        cafe.milk.id: Decimal("200.000"), cafe.beans.id: Decimal("18.000"),
    }


@pytest.mark.asyncio
async def test_update_rejects_missing_invalid_and_closed_orders(cafe):
    with pytest.raises(InvalidOrderID):
        await update_order(0, make_order((cafe.espresso.id, 1)))
    with pytest.raises(NotFound):
        await update_order(12345, make_order((cafe.espresso.id, 1)))

    order = await create_order(make_order((cafe.espresso.id, 1)))
    await close_order(order.id)
    with pytest.raises(InvalidStateTransition):
        await update_order(order.id, make_order((cafe.espresso.id, 2)))
    assert await stock_of(cafe.beans) == Decimal("982")


@pytest.mark.asyncio
async def test_update_recomputes_total_after_price_change(cafe):
    order = await create_order(make_order((cafe.espresso.id, 2)))
    await update_price(cafe.espresso.id, "3.00")

    # Snapshot of the original line is untouched until the order is updated
    item = await OrderItem.get(order_id=order.id)
    assert item.price_at_order == Decimal("2.50")

    updated = await update_order(order.id, make_order((cafe.espresso.id, 2)))
    assert updated.total_price == Decimal("6.00")
    assert await stock_of(cafe.beans) == Decimal("964")


@pytest.mark.asyncio
async def test_update_locks_ingredients_in_ascending_order(cafe):
    order = await create_order(make_order((cafe.latte.id, 1)))
    real_lock = inventory_ledger.lock_ingredients
    acquired = []

    async def record(ingredient_ids, conn):
        ingredient_ids = list(ingredient_ids)
        for iid in sorted(set(ingredient_ids)):
            if iid not in acquired:
                acquired.append(iid)
        return await real_lock(ingredient_ids, conn)

    # Milk usage drops (lower id) while bean usage grows (higher id)
    with patch.object(inventory_ledger, "lock_ingredients", side_effect=record):
        await update_order(order.id, make_order((cafe.espresso.id, 12)))

    assert cafe.milk.id < cafe.beans.id
    assert acquired == [cafe.milk.id, cafe.beans.id]
    assert await stock_of(cafe.milk) == Decimal("200")
    assert await stock_of(cafe.beans) == Decimal("784")


@pytest.mark.asyncio
async def test_concurrent_updates_never_oversell(cafe):
    first = await create_order(make_order((cafe.espresso.id, 1)))
    second = await create_order(make_order((cafe.espresso.id, 1)))

    # Both want the only 200 ml of milk
    results = await asyncio.gather(
        update_order(first.id, make_order((cafe.latte.id, 1))),
        update_order(second.id, make_order((cafe.latte.id, 1))),
        return_exceptions=True,
    )

    updated = [r for r in results if isinstance(r, Order)]
    refused = [r for r in results if isinstance(r, InsufficientInventory)]
    assert len(updated) == 1
    assert len(refused) == 1
    assert await stock_of(cafe.milk) == Decimal("0")
    assert await stock_of(cafe.beans) == Decimal("964")

    milk_used = Decimal("0")
    for order_id in (first.id, second.id):
        milk_used += (await inventory_ledger.usage_since(order_id)).get(cafe.milk.id, Decimal("0"))
    assert milk_used == Decimal("200.000")


@pytest.mark.asyncio
async def test_update_rolls_back_when_order_row_vanishes(cafe):
    order = await create_order(make_order((cafe.latte.id, 1)))
    real_update_row = order_store.update_order_row

    async def vanish_then_update(order_id, conn, **values):
        await OrderItem.filter(order_id=order_id).using_db(conn).delete()
        await Order.filter(id=order_id).using_db(conn).delete()
        await real_update_row(order_id, conn, **values)

    with patch("coffeeshop.services.order_store.update_order_row", side_effect=vanish_then_update):
        with pytest.raises(NotFound):
            await update_order(order.id, make_order((cafe.espresso.id, 2)))

    # Stock moves, ledger rows and the deletion are all undone
    stored = await get_order(order.id)
    assert [(i.menu_item_id, i.quantity) for i in stored.items] == [(cafe.latte.id, 1)]
    assert await stock_of(cafe.milk) == Decimal("0")
    assert await stock_of(cafe.beans) == Decimal("982")
    assert await inventory_ledger.usage_since(order.id) == {
        cafe.milk.id: Decimal("200.000"), cafe.beans.id: Decimal("18.000"),
    }


# --- DELETE ---

@pytest.mark.asyncio
async def test_delete_restock_cancels_usage(cafe):
    order = await create_order(make_order((cafe.latte.id, 1), (cafe.espresso.id, 2)))
    await update_order(order.id, make_order((cafe.espresso.id, 1)))

    await delete_order(order.id)

    usage = await _ledger_sum(order.id, TransactionType.ORDER_USAGE)
    restored = await _ledger_sum(order.id, TransactionType.ORDER_DELETION)
    for ingredient_id in set(usage) | set(restored):
        assert usage.get(ingredient_id, 0) + restored.get(ingredient_id, 0) == 0
    assert await stock_of(cafe.milk) == Decimal("200")
    assert await stock_of(cafe.beans) == Decimal("1000")
    assert await Order.filter(id=order.id).exists() is False
    assert await OrderItem.filter(order_id=order.id).count() == 0


@pytest.mark.asyncio
async def test_delete_missing_order(cafe):
    with pytest.raises(NotFound):
        await delete_order(777)
    with pytest.raises(InvalidOrderID):
        await delete_order(-1)


@pytest.mark.asyncio
async def test_delete_rolls_back_restock_when_no_row_is_deleted(cafe):
    order = await create_order(make_order((cafe.latte.id, 1)))
    real_delete_rows = order_store.delete_order_rows

    async def vanish_then_delete(order_id, conn):
        await OrderItem.filter(order_id=order_id).using_db(conn).delete()
        await Order.filter(id=order_id).using_db(conn).delete()
        await real_delete_rows(order_id, conn)

    with patch("coffeeshop.services.order_store.delete_order_rows", side_effect=vanish_then_delete):
        with pytest.raises(NotFound):
            await delete_order(order.id)

    assert await Order.filter(id=order.id).exists()
    assert await stock_of(cafe.milk) == Decimal("0")
    assert await InventoryTransaction.filter(transaction_type=TransactionType.ORDER_DELETION).count() == 0


# --- CLOSE / STATUS ---

@pytest.mark.asyncio
async def test_close_scenarios(cafe):
    cancelled = await create_order(make_order((cafe.espresso.id, 1)))
    await transition_status(cancelled.id, OrderStatus.CANCELLED)
    with pytest.raises(InvalidStateTransition):
        await close_order(cancelled.id)

    delivered = await create_order(make_order((cafe.espresso.id, 1)))
    await close_order(delivered.id)
    with pytest.raises(InvalidStateTransition):
        await close_order(delivered.id)

    preparing = await create_order(make_order((cafe.espresso.id, 1)))
    await _force_status(preparing.id, OrderStatus.PREPARING)
    beans_before = await stock_of(cafe.beans)

    closed = await close_order(preparing.id)

    assert closed.status == OrderStatus.DELIVERED
    assert await stock_of(cafe.beans) == beans_before
    history = await order_store.get_status_history(preparing.id)
    assert [h.status for h in history] == [OrderStatus.PENDING, OrderStatus.DELIVERED]


@pytest.mark.asyncio
async def test_close_missing_order(cafe):
    with pytest.raises(NotFound):
        await close_order(404)


@pytest.mark.asyncio
async def test_transition_status_follows_lifecycle(cafe):
    order = await create_order(make_order((cafe.espresso.id, 1)))

    with pytest.raises(InvalidStateTransition):
        await transition_status(order.id, OrderStatus.READY)

    for status in (OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DELIVERED):
        order = await transition_status(order.id, status)
        assert order.status == status

    with pytest.raises(InvalidStateTransition) as excinfo:
        await transition_status(order.id, OrderStatus.CANCELLED)
    assert "final state" in str(excinfo.value)

    history = await OrderStatusHistory.filter(order_id=order.id).order_by("id")
    assert [h.status for h in history] == [
        OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.PREPARING,
        OrderStatus.READY, OrderStatus.DELIVERED,
    ]


# --- READS / PRICING ---

@pytest.mark.asyncio
async def test_list_orders_filters_by_status(cafe):
    first = await create_order(make_order((cafe.espresso.id, 1)))
    second = await create_order(make_order((cafe.cookie.id, 1)))
    await close_order(first.id)

    delivered = await list_orders(status=OrderStatus.DELIVERED)
    pending = await list_orders(status=OrderStatus.PENDING)
    assert [o.id for o in delivered] == [first.id]
    assert [o.id for o in pending] == [second.id]
    assert len(await list_orders()) == 2


@pytest.mark.asyncio
async def test_total_is_idempotent(cafe):
    order = await create_order(make_order((cafe.latte.id, 1), (cafe.espresso.id, 3)))
    stored = await get_order(order.id)
    lines = order_store.lines_of(stored.items)

    first = calculate_total(lines, await resolve_prices(mid for mid, _ in lines))
    second = calculate_total(lines, await resolve_prices(mid for mid, _ in lines))
    assert first == second == stored.total_price == Decimal("11.25")
