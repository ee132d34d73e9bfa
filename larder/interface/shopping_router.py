"""Shopping list endpoints: generation and list lifecycle."""

from fastapi import APIRouter, Response, status

from larder.domain.create_models import ShoppingItemCreate, ShoppingListGenerate
from larder.domain.shopping import ShoppingList, ShoppingListItem
from larder.domain.update_models import ShoppingItemUpdate
from larder.services import shopping_service


router = APIRouter(prefix="/shopping-lists", tags=["shopping"])


@router.post("/generate", response_model=ShoppingList, status_code=status.HTTP_201_CREATED)
async def generate(data: ShoppingListGenerate) -> ShoppingList:
    """Generate a new list from the meal plan, forecasts and minimum stock levels."""
    return await shopping_service.generate_shopping_list(
        shop_date=data.shop_date,
        plan_until=data.plan_until,
        name=data.name,
    )


@router.get("", response_model=list[ShoppingList])
async def list_shopping_lists() -> list[ShoppingList]:
    return await shopping_service.list_shopping_lists()


@router.get("/active", response_model=ShoppingList)
async def get_active() -> ShoppingList:
    return await shopping_service.get_active_shopping_list()


@router.get("/{list_id}", response_model=ShoppingList)
async def get_shopping_list(list_id: str) -> ShoppingList:
    return await shopping_service.get_shopping_list(list_id=list_id)


@router.delete("/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_shopping_list(list_id: str) -> Response:
    await shopping_service.delete_shopping_list(list_id=list_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{list_id}/items", response_model=ShoppingListItem, status_code=status.HTTP_201_CREATED)
async def add_item(list_id: str, data: ShoppingItemCreate) -> ShoppingListItem:
    return await shopping_service.add_item(list_id=list_id, data=data)


@router.put("/{list_id}/items/{item_id}", response_model=ShoppingListItem)
async def update_item(list_id: str, item_id: str, data: ShoppingItemUpdate) -> ShoppingListItem:
    return await shopping_service.update_item(list_id=list_id, item_id=item_id, data=data)


@router.delete("/{list_id}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(list_id: str, item_id: str) -> Response:
    await shopping_service.delete_item(list_id=list_id, item_id=item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{list_id}/complete", response_model=ShoppingList)
async def complete(list_id: str) -> ShoppingList:
    """Book purchased items into stock and close the list."""
    return await shopping_service.complete_shopping_list(list_id=list_id)
