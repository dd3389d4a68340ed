import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from tortoise.transactions import in_transaction

from coffeeshop.core.exceptions import InvalidName, InvalidQuantity, NotFound
from coffeeshop.models.inventory import Ingredient
from coffeeshop.models.menu import MenuItem, RecipeIngredient
from coffeeshop.services.pricing import to_price
from coffeeshop.services.recipes import get_recipe, get_recipes, to_quantity

log = logging.getLogger("menu_catalog")


@dataclass
class MenuEntry:
    menu_item: MenuItem
    recipe: List[Tuple[int, Decimal]]


def _merge_recipe(lines: Iterable[Tuple[int, Decimal]]) -> Dict[int, Decimal]:
    """Sums repeated ingredients; every amount must be positive."""
    recipe: Dict[int, Decimal] = defaultdict(Decimal)
    for ingredient_id, quantity in lines:
        amount = to_quantity(quantity)
        if amount <= 0:
            raise InvalidQuantity(f"recipe quantity for ingredient {ingredient_id} must be positive")
        recipe[ingredient_id] += amount
    return dict(recipe)


async def create_menu_item(
    name: str,
    price,
    ingredients: Iterable[Tuple[int, Decimal]] = (),
    description: Optional[str] = None,
) -> MenuEntry:
    """
    Adds a menu item together with its recipe in one transaction. Every
    recipe ingredient must already exist in the inventory.
    """
    if not name or not name.strip():
        raise InvalidName("menu item name must not be empty")
    price = to_price(price)
    recipe = _merge_recipe(ingredients)

    async with in_transaction() as conn:
        known = set(await Ingredient.filter(id__in=list(recipe)).using_db(conn).values_list("id", flat=True))
        for ingredient_id in sorted(recipe):
            if ingredient_id not in known:
                raise NotFound(f"ingredient {ingredient_id} not found")

        menu_item = await MenuItem.create(name=name.strip(), description=description, price=price, using_db=conn)
        for ingredient_id in sorted(recipe):
            await RecipeIngredient.create(
                menu_item_id=menu_item.id,
                ingredient_id=ingredient_id,
                quantity=recipe[ingredient_id],
                using_db=conn,
            )
        lines = await get_recipe(menu_item.id, conn)

    log.info(f"Menu item {menu_item.name} (#{menu_item.id}) created at {price} with {len(lines)} ingredient(s).")
    return MenuEntry(menu_item, lines)


async def get_menu_item(menu_item_id: int) -> MenuEntry:
    menu_item = await MenuItem.get_or_none(id=menu_item_id)
    if not menu_item:
        raise NotFound(f"menu item {menu_item_id} not found")
    return MenuEntry(menu_item, await get_recipe(menu_item_id))


async def list_menu_items(active_only: bool = False) -> List[MenuEntry]:
    query = MenuItem.all()
    if active_only:
        query = query.filter(is_active=True)
    menu_items = await query.order_by("id")
    recipes = await get_recipes(m.id for m in menu_items)
    return [MenuEntry(m, recipes[m.id]) for m in menu_items]
