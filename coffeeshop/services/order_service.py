import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from tortoise.transactions import in_transaction

from coffeeshop.core.exceptions import (
    EmptyOrder,
    InvalidDateRange,
    InvalidOrderID,
    InvalidQuantity,
    InvalidStateTransition,
    InvalidTotalPrice,
    NotFound,
)
from coffeeshop.models.inventory import TransactionType
from coffeeshop.models.order import FINAL_STATUSES, STATUS_TRANSITIONS, Order, OrderStatus
from coffeeshop.schemas.order import OrderItemRequest, OrderRequest
from coffeeshop.services import inventory_ledger, order_store
from coffeeshop.services.pricing import calculate_total, resolve_prices
from coffeeshop.services.recipes import compute_requirements

log = logging.getLogger("order_service")


def _validate_order_id(order_id: int):
    if order_id is None or order_id <= 0:
        raise InvalidOrderID()


def _validate_items(items: List[OrderItemRequest]):
    if not items:
        raise EmptyOrder()
    for item in items:
        if item.quantity <= 0:
            raise InvalidQuantity(f"quantity for menu item {item.menu_item_id} must be positive")


async def _price_order(items: List[OrderItemRequest], conn) -> Tuple[Dict[int, Decimal], Decimal]:
    """Stamps current menu prices and recomputes the authoritative total."""
    lines = order_store.lines_of(items)
    prices = await resolve_prices((mid for mid, _ in lines), conn)
    total = calculate_total(lines, prices)
    if total <= 0:
        raise InvalidTotalPrice()
    return prices, total


async def _load_mutable_order(order_id: int, conn) -> Order:
    order = await order_store.get_order(order_id, conn, lock=True)
    if not order:
        raise NotFound(f"order {order_id} not found")
    if order.status in FINAL_STATUSES:
        raise InvalidStateTransition(
            f"order {order_id} is already {order.status.value} and can no longer be modified"
        )
    return order


async def create_order(request: OrderRequest) -> Order:
    """
    Places an order: verifies stock for every ingredient the items need,
    persists the order in PENDING, deducts the stock and writes the
    order_usage ledger rows plus the first status-history row.
    Everything happens in one transaction; any failure leaves no trace.
    """
    _validate_items(request.items)

    async with in_transaction() as conn:
        # 1. Ingredient requirements, checked against locked stock rows
        requirements = await compute_requirements(order_store.lines_of(request.items), conn)
        availability = await inventory_ledger.check_availability(requirements, conn)
        availability.raise_for_shortage()

        # 2. Authoritative total from current menu prices
        prices, total = await _price_order(request.items, conn)

        # 3. Order header + lines
        order = await order_store.insert_order(request, total, prices, conn)

        # 4. Deduct stock, tagged with the new order id
        await inventory_ledger.apply(
            {iid: -amount for iid, amount in requirements.items()},
            TransactionType.ORDER_USAGE,
            conn,
            reference_id=order.id,
            note=f"Used by order #{order.id}",
        )
        await order_store.append_status(order.id, OrderStatus.PENDING, conn)

    log.info(f"Order {order.id} created for customer {request.customer_id}, total {order.total_price}.")
    return order


async def update_order(order_id: int, request: OrderRequest) -> Order:
    """
    Replaces an open order's items. Only the net change in ingredient usage
    touches the stock: extra usage is checked and deducted, reduced usage is
    returned. The previous consumption is read back from the ledger.
    """
    _validate_order_id(order_id)
    _validate_items(request.items)

    async with in_transaction() as conn:
        await _load_mutable_order(order_id, conn)

        previous = await inventory_ledger.usage_since(order_id, conn)
        requested = await compute_requirements(order_store.lines_of(request.items), conn)

        net = {
            iid: requested.get(iid, Decimal("0")) - previous.get(iid, Decimal("0"))
            for iid in set(previous) | set(requested)
        }
        # Lock every ingredient the update touches, increases and decreases
        # alike, in one ascending pass
        await inventory_ledger.lock_ingredients(net.keys(), conn)
        additional = {iid: delta for iid, delta in net.items() if delta > 0}
        availability = await inventory_ledger.check_availability(additional, conn, lock=False)
        availability.raise_for_shortage()

        prices, total = await _price_order(request.items, conn)

        await inventory_ledger.apply(
            {iid: -delta for iid, delta in net.items()},
            TransactionType.ORDER_USAGE,
            conn,
            reference_id=order_id,
            note=f"Adjusted by update of order #{order_id}",
        )
        await order_store.update_order_row(
            order_id,
            conn,
            customer_id=request.customer_id,
            payment_method=request.payment_method,
            special_instructions=request.special_instructions,
            total_price=total,
        )
        await order_store.replace_items(order_id, request.items, prices, conn)
        order = await order_store.get_order(order_id, conn)

    log.info(f"Order {order_id} updated, new total {order.total_price}.")
    return order


async def delete_order(order_id: int) -> None:
    """Deletes an order and returns everything it consumed to stock."""
    _validate_order_id(order_id)

    async with in_transaction() as conn:
        order = await order_store.get_order(order_id, conn, lock=True)
        if not order:
            raise NotFound(f"order {order_id} not found")

        consumed = await inventory_ledger.usage_since(order_id, conn)
        await inventory_ledger.apply(
            consumed,
            TransactionType.ORDER_DELETION,
            conn,
            reference_id=order_id,
            note=f"Restored from deleted order #{order_id}",
        )
        await order_store.delete_order_rows(order_id, conn)

    log.info(f"Order {order_id} deleted, {len(consumed)} ingredient(s) restocked.")


async def close_order(order_id: int) -> Order:
    """Marks an order DELIVERED. Stock was committed when the order was placed."""
    _validate_order_id(order_id)

    async with in_transaction() as conn:
        order = await order_store.get_order(order_id, conn, lock=True)
        if not order:
            raise NotFound(f"order {order_id} not found")

        if order.status == OrderStatus.CANCELLED:
            raise InvalidStateTransition("cannot close already cancelled order")
        if order.status == OrderStatus.DELIVERED:
            raise InvalidStateTransition("order already closed")

        await order_store.set_status(order_id, OrderStatus.DELIVERED, conn)
        order = await order_store.get_order(order_id, conn)

    log.info(f"Order {order_id} closed.")
    return order


async def transition_status(order_id: int, new_status: OrderStatus) -> Order:
    """
    Moves an order one step along its lifecycle, enforcing the state machine.
    Status changes never touch inventory.
    """
    _validate_order_id(order_id)

    async with in_transaction() as conn:
        order = await order_store.get_order(order_id, conn, lock=True)
        if not order:
            raise NotFound(f"order {order_id} not found")

        # Block status updates if the order is in a final, irreversible state.
        if order.status in FINAL_STATUSES:
            raise InvalidStateTransition(
                f"Order is already in a final state: {order.status.value}. Status cannot be updated."
            )
        if new_status not in STATUS_TRANSITIONS[order.status]:
            raise InvalidStateTransition(
                f"cannot move order {order_id} from {order.status.value} to {new_status.value}"
            )

        old_status = order.status
        await order_store.set_status(order_id, new_status, conn)
        order = await order_store.get_order(order_id, conn)

    log.info(f"Order {order_id} moved {old_status.value} -> {new_status.value}.")
    return order


async def get_order(order_id: int) -> Order:
    _validate_order_id(order_id)
    order = await order_store.get_order(order_id)
    if not order:
        raise NotFound(f"order {order_id} not found")
    return order


async def list_orders(
    status: Optional[OrderStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Order]:
    if start and end and start > end:
        raise InvalidDateRange()
    return await order_store.list_orders(status=status, start=start, end=end)
