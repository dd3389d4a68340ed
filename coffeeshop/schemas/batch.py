from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from decimal import Decimal

from coffeeshop.schemas.order import OrderRequest


class BatchOrderRequest(BaseModel):
    orders: List[OrderRequest]


class ProcessedOrder(BaseModel):
    """Outcome for one candidate order, in input order."""
    order_id: Optional[int] = None
    customer_name: str
    status: Literal["accepted", "rejected"]
    total: Decimal = Decimal("0")
    reason: Optional[str] = None


class InventoryUsage(BaseModel):
    ingredient_id: int
    name: str
    quantity_used: Decimal
    remaining: Decimal


class BatchSummary(BaseModel):
    total_orders: int = 0
    accepted: int = 0
    rejected: int = 0
    total_revenue: Decimal = Decimal("0")
    inventory_updates: List[InventoryUsage] = Field(default_factory=list)


class BatchResult(BaseModel):
    processed_orders: List[ProcessedOrder] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
