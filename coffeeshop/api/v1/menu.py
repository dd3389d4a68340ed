import logging
from fastapi import APIRouter, status
from coffeeshop.schemas.menu import (
    MenuItemCreateRequest,
    MenuItemResponse,
    PriceHistoryResponse,
    PriceUpdateRequest,
    RecipeLine,
)
from coffeeshop.schemas.response import SuccessResponse
from coffeeshop.services.menu_catalog import MenuEntry, create_menu_item, get_menu_item, list_menu_items
from coffeeshop.services.pricing import get_price_history, update_price

log = logging.getLogger("uvicorn")

router = APIRouter()


def _menu_item(entry: MenuEntry) -> dict:
    item = entry.menu_item
    return MenuItemResponse(
        id=item.id,
        name=item.name,
        description=item.description,
        price=item.price,
        is_active=item.is_active,
        ingredients=[RecipeLine(ingredient_id=iid, quantity=qty) for iid, qty in entry.recipe],
    ).model_dump()


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_menu_item_endpoint(payload: MenuItemCreateRequest):
    """Adds a menu item with its recipe."""
    entry = await create_menu_item(
        payload.name,
        payload.price,
        [(line.ingredient_id, line.quantity) for line in payload.ingredients],
        description=payload.description,
    )
    return SuccessResponse(data=_menu_item(entry))


@router.get("/", response_model=SuccessResponse)
async def list_menu_items_endpoint(active_only: bool = False):
    return SuccessResponse(data=[_menu_item(e) for e in await list_menu_items(active_only=active_only)])


@router.get("/{menu_item_id}", response_model=SuccessResponse)
async def get_menu_item_endpoint(menu_item_id: int):
    """Fetches a menu item and the ingredients one unit of it consumes."""
    return SuccessResponse(data=_menu_item(await get_menu_item(menu_item_id)))


@router.put("/{menu_item_id}/price", response_model=SuccessResponse)
async def update_price_endpoint(menu_item_id: int, payload: PriceUpdateRequest):
    """Changes the price of a menu item; the change is kept in the price history."""
    menu_item = await update_price(menu_item_id, payload.price)
    return SuccessResponse(data={"menu_item_id": menu_item.id, "price": str(menu_item.price)})


@router.get("/{menu_item_id}/price-history", response_model=SuccessResponse)
async def price_history_endpoint(menu_item_id: int):
    history = await get_price_history(menu_item_id)
    data = [
        PriceHistoryResponse(
            menu_item_id=h.menu_item_id,
            old_price=h.old_price,
            new_price=h.new_price,
            changed_at=h.changed_at,
        ).model_dump()
        for h in history
    ]
    return SuccessResponse(data=data)
