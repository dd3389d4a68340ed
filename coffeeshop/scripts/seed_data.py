# coffeeshop/scripts/seed_data.py
import asyncio
import logging
from decimal import Decimal
from coffeeshop.core.db import init_db, close_db
from coffeeshop.models.customer import Customer
from coffeeshop.models.inventory import Ingredient, UnitType
from coffeeshop.models.menu import MenuItem, RecipeIngredient
from coffeeshop.services.inventory_ledger import adjust_stock, create_ingredient

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("seed_data")

INGREDIENTS = [
    # name, quantity, unit, reorder level
    ("Espresso Beans", "5000", UnitType.GRAMS, "1000"),
    ("Milk", "20000", UnitType.MILLILITERS, "5000"),
    ("Oat Milk", "15000", UnitType.MILLILITERS, "4000"),
    ("Sugar", "10000", UnitType.GRAMS, "2000"),
    ("Chocolate Syrup", "5000", UnitType.MILLILITERS, "1000"),
    ("Caramel Syrup", "4500", UnitType.MILLILITERS, "1000"),
    ("Whipped Cream", "3000", UnitType.MILLILITERS, "800"),
    ("Paper Cups (12oz)", "1000", UnitType.ITEMS, "300"),
]

MENU = [
    # name, price, {ingredient: quantity per unit}
    ("Espresso", "2.50", {"Espresso Beans": "18", "Paper Cups (12oz)": "1"}),
    ("Latte", "3.75", {"Espresso Beans": "18", "Milk": "200", "Paper Cups (12oz)": "1"}),
    ("Oat Latte", "4.25", {"Espresso Beans": "18", "Oat Milk": "200", "Paper Cups (12oz)": "1"}),
    ("Mocha", "4.50", {"Espresso Beans": "18", "Milk": "150", "Chocolate Syrup": "30",
                       "Whipped Cream": "20", "Paper Cups (12oz)": "1"}),
    ("Caramel Macchiato", "4.75", {"Espresso Beans": "18", "Milk": "180", "Caramel Syrup": "25",
                                   "Paper Cups (12oz)": "1"}),
]

CUSTOMERS = [
    ("Ada", "Lovelace", "ada@example.com"),
    ("Alan", "Turing", "alan@example.com"),
]


async def seed():
    ingredients = {}
    for name, qty, unit, reorder in INGREDIENTS:
        ingredient = await Ingredient.get_or_none(name=name)
        if ingredient is None:
            ingredient = await create_ingredient(name, unit, quantity=qty, reorder_level=reorder)
        elif ingredient.quantity != Decimal(qty):
            # Existing ingredient: top up or write off back to the seed level (idempotent)
            ingredient = await adjust_stock(ingredient.id, Decimal(qty) - ingredient.quantity, "Seed reset")
        ingredients[name] = ingredient
    log.info("Inventory seeded: %d ingredients.", len(ingredients))

    for name, price, recipe in MENU:
        menu_item, _ = await MenuItem.get_or_create(name=name, defaults={"price": Decimal(price), "is_active": True})
        for ingredient_name, per_unit in recipe.items():
            await RecipeIngredient.get_or_create(
                menu_item=menu_item,
                ingredient=ingredients[ingredient_name],
                defaults={"quantity": Decimal(per_unit)},
            )
        log.info("Menu item: %s (#%d)", menu_item.name, menu_item.id)

    for first, last, email in CUSTOMERS:
        await Customer.get_or_create(email=email, defaults={"first_name": first, "last_name": last})
    log.info("Customers seeded.")


async def main():
    await init_db()
    await seed()
    await close_db()

if __name__ == "__main__":
    asyncio.run(main())
