from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from coffeeshop.models.menu import RecipeIngredient

# Inventory quantities carry three fractional digits (grams / millilitres)
QUANTITY_STEP = Decimal("0.001")

Requirements = Dict[int, Decimal]


def to_quantity(value) -> Decimal:
    """Normalizes a stock amount to an exact three-place Decimal."""
    return Decimal(str(value)).quantize(QUANTITY_STEP)


async def get_recipe(menu_item_id: int, conn: Any = None) -> List[Tuple[int, Decimal]]:
    """Returns (ingredient_id, quantity per unit) pairs for one menu item."""
    rows = await RecipeIngredient.filter(menu_item_id=menu_item_id).using_db(conn).order_by("ingredient_id")
    return [(row.ingredient_id, to_quantity(row.quantity)) for row in rows]


async def get_recipes(menu_item_ids: Iterable[int], conn: Any = None) -> Dict[int, List[Tuple[int, Decimal]]]:
    """Loads the recipes of several menu items with a single query."""
    ids = sorted(set(menu_item_ids))
    recipes: Dict[int, List[Tuple[int, Decimal]]] = {mid: [] for mid in ids}
    if not ids:
        return recipes
    rows = await RecipeIngredient.filter(menu_item_id__in=ids).using_db(conn).order_by("menu_item_id", "ingredient_id")
    for row in rows:
        recipes[row.menu_item_id].append((row.ingredient_id, to_quantity(row.quantity)))
    return recipes


def requirements_for(lines: Iterable[Tuple[int, int]], recipes: Dict[int, List[Tuple[int, Decimal]]]) -> Requirements:
    """
    Multiplies each recipe by its line quantity and accumulates the total
    amount needed per ingredient.
    """
    required: Dict[int, Decimal] = defaultdict(Decimal)
    for menu_item_id, quantity in lines:
        for ingredient_id, per_unit in recipes.get(menu_item_id, []):
            required[ingredient_id] += per_unit * quantity
    return {iid: to_quantity(amount) for iid, amount in required.items()}


async def compute_requirements(lines: Iterable[Tuple[int, int]], conn: Any = None) -> Requirements:
    lines = list(lines)
    recipes = await get_recipes((mid for mid, _ in lines), conn)
    return requirements_for(lines, recipes)
