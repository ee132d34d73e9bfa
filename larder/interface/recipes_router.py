"""Recipe and meal plan endpoints."""

from datetime import datetime

from fastapi import APIRouter, Body, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from larder.core.errors import ValidationFailedError
from larder.domain.create_models import CookRequest
from larder.domain.recipe import MealPlanEntry, Recipe
from larder.models.service_models import CookResult, PlannedIngredient
from larder.services import demand_service, recipe_service


router = APIRouter(prefix="/recipes", tags=["recipes"])
meal_plan_router = APIRouter(prefix="/meal-plan", tags=["meal-plan"])


class MealCompletionResponse(BaseModel):
    """Meal plan entry after completion, with the cooking result when it was cooked."""

    entry: MealPlanEntry
    cook: CookResult | None = None


@router.get("/suggestions", response_model=list[Recipe])
async def suggestions() -> list[Recipe]:
    """Recipes cookable from what is in stock."""
    return await recipe_service.suggest_recipes()


@router.post("/{recipe_id}/cook", response_model=CookResult)
async def cook(recipe_id: str, data: CookRequest | None = Body(default=None)) -> CookResult | JSONResponse:
    """Cook a recipe; responds 400 with the itemized missing ingredients when it cannot."""
    result = await recipe_service.cook_recipe(recipe_id=recipe_id, servings=data.servings if data else None)
    if not result.success:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.model_dump(mode="json"))
    return result


@meal_plan_router.get("/ingredients", response_model=list[PlannedIngredient])
async def planned_ingredients(
    date_from: datetime = Query(..., alias="from"),
    date_to: datetime = Query(..., alias="to"),
) -> list[PlannedIngredient]:
    """Ingredients needed by the pending meals between two days, inclusive."""
    if date_to < date_from:
        raise ValidationFailedError("to must not be before from", field="to")
    return await demand_service.aggregate_meal_plan_ingredients(date_from=date_from, date_to=date_to)


@meal_plan_router.post("/{entry_id}/complete", response_model=MealCompletionResponse)
async def complete(entry_id: str, cook: bool = Query(default=False)) -> MealCompletionResponse | JSONResponse:
    entry, cook_result = await recipe_service.complete_meal_plan_entry(entry_id=entry_id, cook=cook)
    response = MealCompletionResponse(entry=entry, cook=cook_result)
    if cook_result is not None and not cook_result.success:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=response.model_dump(mode="json"))
    return response


@meal_plan_router.post("/{entry_id}/uncomplete", response_model=MealPlanEntry)
async def uncomplete(entry_id: str) -> MealPlanEntry:
    return await recipe_service.uncomplete_meal_plan_entry(entry_id=entry_id)
