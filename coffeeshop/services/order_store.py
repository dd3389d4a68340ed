from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from tortoise import timezone

from coffeeshop.core.exceptions import NotFound
from coffeeshop.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory
from coffeeshop.schemas.order import OrderItemRequest, OrderRequest


def lines_of(items) -> List[Tuple[int, int]]:
    """(menu_item_id, quantity) pairs for persisted items or request items alike."""
    return [(item.menu_item_id, item.quantity) for item in items]


async def get_order(order_id: int, conn: Any = None, lock: bool = False) -> Optional[Order]:
    """Fetches an order with its items; lock=True holds the order row until commit."""
    query = Order.filter(id=order_id).using_db(conn)
    if lock:
        query = query.select_for_update()
    order = await query.first()
    if order:
        await order.fetch_related("items", using_db=conn)
    return order


async def list_orders(
    status: Optional[OrderStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Order]:
    query = Order.all()
    if status is not None:
        query = query.filter(status=status)
    if start is not None:
        query = query.filter(created_at__gte=start)
    if end is not None:
        query = query.filter(created_at__lte=end)
    return await query.order_by("-created_at", "-id").prefetch_related("items")


async def _insert_items(order_id: int, items: List[OrderItemRequest], prices: Dict[int, Decimal], conn: Any):
    for item in items:
        # Snapshot the server-side price; the client's price_at_order is display-only
        await OrderItem.create(
            order_id=order_id,
            menu_item_id=item.menu_item_id,
            quantity=item.quantity,
            price_at_order=prices[item.menu_item_id],
            customizations=item.customizations,
            using_db=conn,
        )


async def insert_order(request: OrderRequest, total: Decimal, prices: Dict[int, Decimal], conn: Any) -> Order:
    order = await Order.create(
        customer_id=request.customer_id,
        status=OrderStatus.PENDING,
        payment_method=request.payment_method,
        total_price=total,
        special_instructions=request.special_instructions,
        using_db=conn,
    )
    await _insert_items(order.id, request.items, prices, conn)
    return order


async def update_order_row(order_id: int, conn: Any, **values) -> None:
    """Updates one order row; zero affected rows means it vanished mid-transaction."""
    values["updated_at"] = timezone.now()
    updated = await Order.filter(id=order_id).using_db(conn).update(**values)
    if not updated:
        raise NotFound(f"order {order_id} not found")


async def replace_items(order_id: int, items: List[OrderItemRequest], prices: Dict[int, Decimal], conn: Any) -> None:
    await OrderItem.filter(order_id=order_id).using_db(conn).delete()
    await _insert_items(order_id, items, prices, conn)


async def delete_order_rows(order_id: int, conn: Any) -> None:
    await OrderItem.filter(order_id=order_id).using_db(conn).delete()
    deleted = await Order.filter(id=order_id).using_db(conn).delete()
    if not deleted:
        raise NotFound(f"order {order_id} not found")


async def append_status(order_id: int, status: OrderStatus, conn: Any) -> OrderStatusHistory:
    return await OrderStatusHistory.create(order_id=order_id, status=status, using_db=conn)


async def set_status(order_id: int, status: OrderStatus, conn: Any) -> None:
    """Moves an order to a new status and appends the matching history row."""
    await update_order_row(order_id, conn, status=status)
    await append_status(order_id, status, conn)


async def get_status_history(order_id: int, conn: Any = None) -> List[OrderStatusHistory]:
    return await OrderStatusHistory.filter(order_id=order_id).using_db(conn).order_by("id")
