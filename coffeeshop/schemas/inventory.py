from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from coffeeshop.models.inventory import TransactionType, UnitType


class IngredientCreateRequest(BaseModel):
    """Schema for registering a new ingredient. Opening stock is booked as an adjustment."""
    name: str
    unit: UnitType
    quantity: Decimal = Field(Decimal("0"), description="Opening stock.")
    reorder_level: Decimal = Decimal("0")
    cost_per_unit: Optional[Decimal] = None


class IngredientUpdateRequest(BaseModel):
    """Descriptive fields only; stock levels change through /adjust."""
    name: Optional[str] = None
    unit: Optional[UnitType] = None
    reorder_level: Optional[Decimal] = None
    cost_per_unit: Optional[Decimal] = None


class IngredientResponse(BaseModel):
    """Schema for fetching ingredient stock."""
    id: int
    name: str
    quantity: Decimal
    unit: UnitType
    reorder_level: Decimal
    cost_per_unit: Optional[Decimal] = None


class StockAdjustmentRequest(BaseModel):
    delta: Decimal = Field(..., description="Signed change; positive restocks, negative writes off stock.")
    note: Optional[str] = Field(None, description="Reason recorded on the ledger entry.")


class InventoryTransactionResponse(BaseModel):
    id: int
    ingredient_id: int
    delta: Decimal
    transaction_type: TransactionType
    reference_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
