import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Tuple

from tortoise.transactions import in_transaction

from coffeeshop.core.exceptions import InvalidMenuItemPrice, NotFound
from coffeeshop.models.menu import MenuItem, PriceHistory

log = logging.getLogger("pricing")

CENTS = Decimal("0.01")


def to_price(value) -> Decimal:
    """Parses a selling price to cents; it must be strictly positive."""
    try:
        price = Decimal(str(value)).quantize(CENTS)
    except (InvalidOperation, ValueError):
        raise InvalidMenuItemPrice(f"invalid menu item price: {value!r}")
    if price <= 0:
        raise InvalidMenuItemPrice()
    return price


async def get_price(menu_item_id: int, conn: Any = None) -> Decimal:
    """Current price of an active menu item."""
    menu_item = await MenuItem.get_or_none(id=menu_item_id, is_active=True).using_db(conn)
    if not menu_item:
        raise NotFound(f"menu item {menu_item_id} not found or inactive")
    return menu_item.price


async def resolve_prices(menu_item_ids: Iterable[int], conn: Any = None) -> Dict[int, Decimal]:
    """Looks up the current price of every distinct menu item in one query."""
    ids = sorted(set(menu_item_ids))
    menu_items = await MenuItem.filter(id__in=ids, is_active=True).using_db(conn)
    prices = {m.id: m.price for m in menu_items}
    for mid in ids:
        if mid not in prices:
            raise NotFound(f"menu item {mid} not found or inactive")
    return prices


def calculate_total(lines: Iterable[Tuple[int, int]], prices: Dict[int, Decimal]) -> Decimal:
    """Authoritative order total: sum(current price x quantity)."""
    total = sum((prices[mid] * qty for mid, qty in lines), Decimal("0"))
    return total.quantize(CENTS)


async def update_price(menu_item_id: int, new_price) -> MenuItem:
    """
    Changes a menu item's price and records the change in price_history
    within the same transaction. Setting the current price again writes no
    history row.
    """
    price = to_price(new_price)

    async with in_transaction() as conn:
        menu_item = await MenuItem.filter(id=menu_item_id).using_db(conn).select_for_update().first()
        if not menu_item:
            raise NotFound(f"menu item {menu_item_id} not found")

        old_price = menu_item.price
        if old_price != price:
            menu_item.price = price
            await menu_item.save(update_fields=["price", "updated_at"], using_db=conn)
            await PriceHistory.create(
                menu_item_id=menu_item.id,
                old_price=old_price,
                new_price=price,
                using_db=conn,
            )
            log.info(f"Menu item {menu_item_id} price changed {old_price} -> {price}")
    return menu_item


async def get_price_history(menu_item_id: int) -> List[PriceHistory]:
    if not await MenuItem.exists(id=menu_item_id):
        raise NotFound(f"menu item {menu_item_id} not found")
    return await PriceHistory.filter(menu_item_id=menu_item_id).order_by("changed_at", "id")
