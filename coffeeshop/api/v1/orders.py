import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, HTTPException, Response, status
from coffeeshop.core.exceptions import EngineError
from coffeeshop.models.order import Order, OrderStatus
from coffeeshop.schemas.batch import BatchOrderRequest
from coffeeshop.schemas.order import (
    OrderDetailResponse,
    OrderItemResponse,
    OrderPlacementResponse,
    OrderRequest,
    OrderStatusUpdate,
)
from coffeeshop.schemas.response import SuccessResponse
from coffeeshop.services.batch_service import process_batch
from coffeeshop.services.order_service import (
    close_order,
    create_order,
    delete_order,
    get_order,
    list_orders,
    transition_status,
    update_order,
)

router = APIRouter()
log = logging.getLogger("uvicorn")


def _placement(order: Order, message: str) -> dict:
    return OrderPlacementResponse(
        order_id=order.id,
        status=order.status,
        total_price=order.total_price,
        message=message,
    ).model_dump()


def _detail(order: Order) -> dict:
    items = [
        OrderItemResponse(
            menu_item_id=i.menu_item_id,
            quantity=i.quantity,
            price_at_order=i.price_at_order,
            customizations=i.customizations,
        )
        for i in order.items
    ]
    return OrderDetailResponse(
        id=order.id,
        customer_id=order.customer_id,
        status=order.status,
        payment_method=order.payment_method,
        total_price=order.total_price,
        special_instructions=order.special_instructions,
        items=items,
        created_at=order.created_at,
        updated_at=order.updated_at,
    ).model_dump()


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest):
    """
    Places a new order. Stock is checked and deducted before the response is sent.
    """
    try:
        order = await create_order(request_data)
        return SuccessResponse(data=_placement(order, "Order placed."))
    except EngineError:
        # Translated by the registered engine exception handler
        raise
    except Exception as e:
        log.error(f"Error placing order: {e}")
        raise HTTPException(status_code=500, detail="Server failed to place order.")


@router.post("/batch-process", response_model=SuccessResponse)
async def batch_process_endpoint(request_data: BatchOrderRequest):
    """Processes a list of orders, accepting or rejecting each one individually."""
    try:
        result = await process_batch(request_data.orders)
        return SuccessResponse(data=result.model_dump())
    except EngineError:
        raise
    except Exception as e:
        log.error(f"Error processing batch: {e}")
        raise HTTPException(status_code=500, detail="Server failed to process batch.")


@router.get("/", response_model=SuccessResponse)
async def list_orders_endpoint(
    status_filter: Optional[OrderStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """Lists orders, newest first, optionally filtered by status and creation date."""
    orders = await list_orders(status=status_filter, start=start_date, end=end_date)
    return SuccessResponse(data=[_detail(o) for o in orders])


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: int):
    """Fetches details for a specific order."""
    order = await get_order(order_id)
    return SuccessResponse(data=_detail(order))


@router.put("/{order_id}", response_model=SuccessResponse)
async def update_order_endpoint(order_id: int, request_data: OrderRequest):
    """Replaces the items of an open order, adjusting stock by the net difference."""
    try:
        order = await update_order(order_id, request_data)
        return SuccessResponse(data=_placement(order, "Order updated."))
    except EngineError:
        raise
    except Exception as e:
        log.error(f"Error updating order: {e}")
        raise HTTPException(status_code=500, detail="Server failed to update order.")


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order_endpoint(order_id: int):
    """Deletes an order and restocks its ingredients."""
    await delete_order(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{order_id}/close", response_model=SuccessResponse)
async def close_order_endpoint(order_id: int):
    """Marks the order as delivered."""
    order = await close_order(order_id)
    return SuccessResponse(data=_placement(order, "Order closed."))


@router.patch("/{order_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(order_id: int, payload: OrderStatusUpdate):
    """
    Moves the order along its lifecycle (e.g. 'accepted', 'preparing', 'ready', 'cancelled').
    """
    order = await transition_status(order_id, payload.status)
    return SuccessResponse(data=_placement(order, f"Order status successfully updated to {order.status.value}"))
