import pytest_asyncio
from decimal import Decimal
from types import SimpleNamespace

from coffeeshop.core.db import init_db, close_db
from coffeeshop.models.customer import Customer
from coffeeshop.models.inventory import Ingredient, UnitType
from coffeeshop.models.menu import MenuItem, RecipeIngredient
from coffeeshop.schemas.order import OrderItemRequest, OrderRequest


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    await init_db(db_url="sqlite://:memory:", generate_schemas=True)
    yield
    await close_db()


@pytest_asyncio.fixture
async def cafe(db):
    """
    Small coffee-shop catalog:
      Latte    3.75  -> 200 ml milk, 18 g beans
      Espresso 2.50  -> 18 g beans
      Cookie   1.20  -> (no tracked ingredients)
      Retired  5.00  -> inactive menu item
    Stock: 200 ml milk, 1000 g beans, 500 g sugar.
    """
    milk = await Ingredient.create(name="Milk", quantity=Decimal("200"), unit=UnitType.MILLILITERS, reorder_level=Decimal("50"))
    beans = await Ingredient.create(name="Espresso Beans", quantity=Decimal("1000"), unit=UnitType.GRAMS, reorder_level=Decimal("100"))
    sugar = await Ingredient.create(name="Sugar", quantity=Decimal("500"), unit=UnitType.GRAMS, reorder_level=Decimal("0"))

    latte = await MenuItem.create(name="Latte", price=Decimal("3.75"))
    espresso = await MenuItem.create(name="Espresso", price=Decimal("2.50"))
    cookie = await MenuItem.create(name="Cookie", price=Decimal("1.20"))
    retired = await MenuItem.create(name="Retired Special", price=Decimal("5.00"), is_active=False)

    await RecipeIngredient.create(menu_item=latte, ingredient=milk, quantity=Decimal("200"))
    await RecipeIngredient.create(menu_item=latte, ingredient=beans, quantity=Decimal("18"))
    await RecipeIngredient.create(menu_item=espresso, ingredient=beans, quantity=Decimal("18"))

    ada = await Customer.create(first_name="Ada", last_name="Lovelace", email="ada@example.com")

    return SimpleNamespace(
        milk=milk, beans=beans, sugar=sugar,
        latte=latte, espresso=espresso, cookie=cookie, retired=retired,
        ada=ada,
    )


def make_order(*lines, customer_id=None, **extra) -> OrderRequest:
    """make_order((menu_item_id, quantity), ...) -> OrderRequest"""
    items = [OrderItemRequest(menu_item_id=mid, quantity=qty) for mid, qty in lines]
    return OrderRequest(customer_id=customer_id, items=items, **extra)


async def stock_of(ingredient) -> Decimal:
    await ingredient.refresh_from_db()
    return ingredient.quantity


