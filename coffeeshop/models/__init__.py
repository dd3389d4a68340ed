# coffeeshop/models/__init__.py
from .menu import MenuItem, RecipeIngredient, PriceHistory
from .inventory import Ingredient, InventoryTransaction, TransactionType, UnitType
from .order import Order, OrderItem, OrderStatus, OrderStatusHistory, PaymentMethod
from .customer import Customer

# Export all models
__all__ = [
    "Customer",
    "Ingredient",
    "InventoryTransaction",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentMethod",
    "PriceHistory",
    "RecipeIngredient",
    "TransactionType",
    "UnitType",
]
