from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class RecipeLine(BaseModel):
    ingredient_id: int
    quantity: Decimal = Field(..., description="Amount of the ingredient one unit of the item consumes.")


class MenuItemCreateRequest(BaseModel):
    """Schema for adding a menu item together with its recipe."""
    name: str
    description: Optional[str] = None
    price: Decimal
    ingredients: List[RecipeLine] = Field(default_factory=list)


class MenuItemResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    is_active: bool
    ingredients: List[RecipeLine]


class PriceUpdateRequest(BaseModel):
    price: Decimal = Field(..., description="New selling price of the menu item.")


class PriceHistoryResponse(BaseModel):
    menu_item_id: int
    old_price: Decimal
    new_price: Decimal
    changed_at: datetime
