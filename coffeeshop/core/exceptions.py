"""
Engine exceptions.

Raised by the service layer when a business rule is violated. The API layer
translates them into HTTP responses through the handlers registered in
exception_handlers.py.
"""
from decimal import Decimal
from typing import Optional


class EngineError(Exception):
    """Base class for every error the order/inventory engine reports to callers."""
    code = "engine_error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.__doc__ or cls.__name__

    @property
    def message(self) -> str:
        return str(self)


# ----------- Validation errors -----------

class EmptyOrder(EngineError):
    """order must contain at least one item"""
    code = "empty_order"


class InvalidQuantity(EngineError):
    """item quantity must be positive"""
    code = "invalid_quantity"


class InvalidTotalPrice(EngineError):
    """total price must be positive"""
    code = "invalid_total_price"


class InvalidOrderID(EngineError):
    """invalid order ID"""
    code = "invalid_order_id"


class InvalidMenuItemPrice(EngineError):
    """invalid menu item price"""
    code = "invalid_menu_item_price"


class InvalidName(EngineError):
    """name must not be empty"""
    code = "invalid_name"


class InvalidCostPerUnit(EngineError):
    """cost per unit must not be negative"""
    code = "invalid_cost_per_unit"


class InvalidReorderLevel(EngineError):
    """reorder level must not be negative"""
    code = "invalid_reorder_level"


class EmptyBatch(EngineError):
    """batch must contain at least one order"""
    code = "empty_batch"


class BatchTooLarge(EngineError):
    """batch exceeds the maximum number of orders"""
    code = "batch_too_large"


# ----------- Lookup errors -----------

class NotFound(EngineError):
    """resource not found"""
    code = "not_found"
    status_code = 404


# ----------- Availability / state errors -----------

class InsufficientInventory(EngineError):
    """Not enough stock of one ingredient to fulfil the request."""
    code = "insufficient_inventory"
    status_code = 409

    def __init__(self, ingredient: str, needed: Decimal, available: Decimal):
        self.ingredient = ingredient
        self.needed = needed
        self.available = available
        super().__init__(
            f"insufficient inventory for ingredient {ingredient} "
            f"(need {needed}, have {available})"
        )


class InvalidStateTransition(EngineError):
    """order status does not allow this operation"""
    code = "invalid_state_transition"
    status_code = 409


class InvalidDateRange(EngineError):
    """invalid date range"""
    code = "invalid_date_range"
