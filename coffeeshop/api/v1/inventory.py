import logging
from typing import Optional
from fastapi import APIRouter, status
from coffeeshop.schemas.inventory import (
    IngredientCreateRequest,
    IngredientResponse,
    IngredientUpdateRequest,
    InventoryTransactionResponse,
    StockAdjustmentRequest,
)
from coffeeshop.schemas.response import SuccessResponse
from coffeeshop.services.inventory_ledger import (
    adjust_stock,
    create_ingredient,
    get_ingredient,
    get_transactions,
    list_ingredients,
    low_stock,
    update_ingredient,
)

log = logging.getLogger("uvicorn")

router = APIRouter()


def _ingredient(ingredient) -> dict:
    return IngredientResponse(
        id=ingredient.id,
        name=ingredient.name,
        quantity=ingredient.quantity,
        unit=ingredient.unit,
        reorder_level=ingredient.reorder_level,
        cost_per_unit=ingredient.cost_per_unit,
    ).model_dump()


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_ingredient_endpoint(payload: IngredientCreateRequest):
    """Registers an ingredient; any opening stock is logged as an 'adjustment'."""
    ingredient = await create_ingredient(
        payload.name,
        payload.unit,
        quantity=payload.quantity,
        reorder_level=payload.reorder_level,
        cost_per_unit=payload.cost_per_unit,
    )
    return SuccessResponse(data=_ingredient(ingredient))


@router.get("/", response_model=SuccessResponse)
async def list_ingredients_endpoint():
    return SuccessResponse(data=[_ingredient(i) for i in await list_ingredients()])


@router.get("/low-stock", response_model=SuccessResponse)
async def low_stock_endpoint():
    """Ingredients at or below their reorder level."""
    return SuccessResponse(data=[_ingredient(i) for i in await low_stock()])


@router.get("/transactions", response_model=SuccessResponse)
async def transactions_endpoint(order_id: Optional[int] = None, ingredient_id: Optional[int] = None):
    """Audit log of stock movements, filterable by triggering order or ingredient."""
    entries = await get_transactions(reference_id=order_id, ingredient_id=ingredient_id)
    data = [
        InventoryTransactionResponse(
            id=e.id,
            ingredient_id=e.ingredient_id,
            delta=e.delta,
            transaction_type=e.transaction_type,
            reference_id=e.reference_id,
            notes=e.notes,
            created_at=e.created_at,
        ).model_dump()
        for e in entries
    ]
    return SuccessResponse(data=data)


@router.get("/{ingredient_id}", response_model=SuccessResponse)
async def get_ingredient_endpoint(ingredient_id: int):
    return SuccessResponse(data=_ingredient(await get_ingredient(ingredient_id)))


@router.patch("/{ingredient_id}", response_model=SuccessResponse)
async def update_ingredient_endpoint(ingredient_id: int, payload: IngredientUpdateRequest):
    """Edits name, unit, reorder level or cost. Stock levels change through /adjust only."""
    ingredient = await update_ingredient(
        ingredient_id,
        name=payload.name,
        unit=payload.unit,
        reorder_level=payload.reorder_level,
        cost_per_unit=payload.cost_per_unit,
    )
    return SuccessResponse(data=_ingredient(ingredient))


@router.post("/{ingredient_id}/adjust", response_model=SuccessResponse)
async def adjust_stock_endpoint(ingredient_id: int, payload: StockAdjustmentRequest):
    """Restocks or writes off an ingredient; recorded as an 'adjustment' ledger entry."""
    ingredient = await adjust_stock(ingredient_id, payload.delta, payload.note)
    log.info(f"Ingredient {ingredient_id} adjusted by {payload.delta}.")
    return SuccessResponse(data=_ingredient(ingredient))
