from pydantic import BaseModel, Field
from typing import Any, List, Optional
from datetime import datetime
from decimal import Decimal

from coffeeshop.models.order import OrderStatus, PaymentMethod


class OrderItemRequest(BaseModel):
    """Schema for a single line in an order request."""
    menu_item_id: int
    quantity: int
    # Accepted for display only; the committed price is always looked up server-side
    price_at_order: Optional[Decimal] = None
    customizations: Optional[Any] = None


class OrderRequest(BaseModel):
    """Schema for the full order body used by create, update and batch processing."""
    customer_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    special_instructions: Optional[Any] = None
    items: List[OrderItemRequest] = Field(default_factory=list)


class OrderPlacementResponse(BaseModel):
    """Response schema for a created or modified order."""
    order_id: int
    status: OrderStatus
    total_price: Decimal
    message: str


class OrderStatusUpdate(BaseModel):
    """Schema for updating an order status."""
    status: OrderStatus


class OrderItemResponse(BaseModel):
    """Schema for an item inside the detailed order response."""
    menu_item_id: int
    quantity: int
    price_at_order: Decimal
    customizations: Optional[Any] = None


class OrderDetailResponse(BaseModel):
    """Schema for fetching detailed order information."""
    id: int
    customer_id: Optional[int] = None
    status: OrderStatus
    payment_method: Optional[PaymentMethod] = None
    total_price: Decimal
    special_instructions: Optional[Any] = None
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: datetime
