import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional

from tortoise.exceptions import BaseORMException

from coffeeshop.core.config import MAX_BATCH_SIZE, UNKNOWN_CUSTOMER_NAME
from coffeeshop.core.exceptions import BatchTooLarge, EmptyBatch, EngineError
from coffeeshop.models.customer import Customer
from coffeeshop.schemas.batch import BatchResult, InventoryUsage, ProcessedOrder
from coffeeshop.schemas.order import OrderItemRequest, OrderRequest
from coffeeshop.services import inventory_ledger, order_store
from coffeeshop.services.order_service import create_order
from coffeeshop.services.pricing import calculate_total, resolve_prices

log = logging.getLogger("batch_service")

EMPTY_ORDER_REASON = "empty order items"


async def resolve_customer_name(customer_id: Optional[int]) -> str:
    """Best-effort display name; falls back to a placeholder instead of failing."""
    placeholder = UNKNOWN_CUSTOMER_NAME.format(customer_id=customer_id if customer_id is not None else "unknown")
    if customer_id is None:
        return placeholder
    try:
        customer = await Customer.get_or_none(id=customer_id)
    except BaseORMException as e:
        log.warning(f"Customer lookup failed for {customer_id}: {e}")
        return placeholder
    if not customer or not customer.display_name:
        return placeholder
    return customer.display_name


async def quote_total(items: List[OrderItemRequest]) -> Decimal:
    """Total at current menu prices; client-supplied prices are ignored."""
    lines = order_store.lines_of(items)
    try:
        prices = await resolve_prices(mid for mid, _ in lines)
    except EngineError:
        # The order is rejected by create_order with the precise reason
        return Decimal("0")
    return calculate_total(lines, prices)


async def process_batch(orders: List[OrderRequest]) -> BatchResult:
    """
    Runs every candidate order through create_order, one after another in
    input order. Each order commits or rolls back on its own, so a rejected
    order never undoes an accepted one, and later orders see the stock left
    by earlier ones.
    """
    if not orders:
        raise EmptyBatch()
    if len(orders) > MAX_BATCH_SIZE:
        raise BatchTooLarge(f"batch of {len(orders)} orders exceeds the limit of {MAX_BATCH_SIZE}")

    result = BatchResult()
    summary = result.summary
    used: Dict[int, Decimal] = defaultdict(Decimal)

    for position, request in enumerate(orders, start=1):
        customer_name = await resolve_customer_name(request.customer_id)

        if not request.items:
            result.processed_orders.append(ProcessedOrder(
                customer_name=customer_name,
                status="rejected",
                reason=EMPTY_ORDER_REASON,
            ))
            summary.rejected += 1
            continue

        total = await quote_total(request.items)
        try:
            order = await create_order(request)
        except (EngineError, BaseORMException) as e:
            log.warning(f"Batch order #{position} for {customer_name} rejected: {e}")
            result.processed_orders.append(ProcessedOrder(
                customer_name=customer_name,
                status="rejected",
                total=total,
                reason=str(e),
            ))
            summary.rejected += 1
            continue

        for ingredient_id, amount in (await inventory_ledger.usage_since(order.id)).items():
            used[ingredient_id] += amount

        result.processed_orders.append(ProcessedOrder(
            order_id=order.id,
            customer_name=customer_name,
            status="accepted",
            total=order.total_price,
        ))
        summary.accepted += 1
        summary.total_revenue += order.total_price

    summary.total_orders = len(orders)

    ingredients = await inventory_ledger.get_ingredients(used.keys())
    summary.inventory_updates = [
        InventoryUsage(
            ingredient_id=ingredient_id,
            name=ingredients[ingredient_id].name,
            quantity_used=used[ingredient_id],
            remaining=ingredients[ingredient_id].quantity,
        )
        for ingredient_id in sorted(used)
        if ingredient_id in ingredients
    ]

    log.info(
        f"Batch processed: {summary.accepted} accepted, {summary.rejected} rejected, "
        f"revenue {summary.total_revenue}."
    )
    return result
