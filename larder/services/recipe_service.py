"""Recipe service for cooking recipes and completing meal plan entries."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from larder.core import db_client
from larder.core.config import constants
from larder.core.db_client import sanitize_param
from larder.core.errors import ConflictError, NotFoundError
from larder.core.logging import span
from larder.core.rounding import round_quantity
from larder.domain.article import Article
from larder.domain.consumption import ConsumptionSource
from larder.domain.recipe import MealPlanEntry, Recipe, RecipeIngredient
from larder.models.service_models import ConsumedIngredient, CookResult, MissingIngredient
from larder.services import consumption_service, inventory_service
from larder.services.unit_service import Unconvertible, UnitCatalog


logger = logging.getLogger(__name__)


@dataclass
class _PlannedIngredient:
    ingredient: RecipeIngredient
    article: Article
    quantity: float


async def get_recipe(*, recipe_id: str) -> Recipe:
    """Get a recipe with its ingredients.

    Raises:
        NotFoundError: If the recipe does not exist
    """
    try:
        record = await db_client.get_record(collection="recipes", record_id=recipe_id)
    except KeyError as e:
        raise NotFoundError("Recipe", recipe_id) from e

    ingredients = await db_client.list_all_records(
        collection="recipe_ingredients",
        filter_query=f'recipe_id = "{sanitize_param(recipe_id)}"',
        sort="id ASC",
    )
    return Recipe(**record, ingredients=[RecipeIngredient(**i) for i in ingredients])


async def find_article_for_category(*, category: str) -> Article | None:
    """First article of a category that still has stock."""
    records = await db_client.list_all_records(
        collection="articles",
        filter_query=f'category = "{sanitize_param(category)}"',
        sort="id ASC",
    )
    for record in records:
        if await inventory_service.get_current_stock(article_id=record["id"]) > 0:
            return Article(**record)
    return None


async def suggest_recipes() -> list[Recipe]:
    """Recipes whose required ingredients are all in stock, by article or by category.

    Only presence is checked, not quantities. Optional ingredients are ignored,
    so a recipe with nothing required is always suggested.
    """
    with span("recipe_service.suggest_recipes"):
        batches = await db_client.list_all_records(collection="batches", filter_query='quantity > "0"')
        stocked_ids = {batch["article_id"] for batch in batches}

        categories: set[str] = set()
        for article_id in stocked_ids:
            article = await inventory_service.get_article(article_id=article_id)
            if article.category:
                categories.add(article.category)

        suggestions = []
        for record in await db_client.list_all_records(collection="recipes", sort="name ASC, id ASC"):
            recipe = await get_recipe(recipe_id=record["id"])
            if all(
                ingredient.article_id in stocked_ids or ingredient.category_match in categories
                for ingredient in recipe.ingredients
                if not ingredient.is_optional
            ):
                suggestions.append(recipe)

        logger.info("Suggested recipes", extra={"count": len(suggestions), "stocked_articles": len(stocked_ids)})
        return suggestions


async def _resolve_article(ingredient: RecipeIngredient) -> Article | None:
    if ingredient.article_id:
        return await inventory_service.get_article(article_id=ingredient.article_id)
    if ingredient.category_match:
        return await find_article_for_category(category=ingredient.category_match)
    return None


async def _plan(
    recipe: Recipe,
    multiplier: float,
    catalog: UnitCatalog,
) -> tuple[list[_PlannedIngredient], list[MissingIngredient]]:
    """Check every required ingredient against stock without consuming anything."""
    planned: list[_PlannedIngredient] = []
    missing: list[MissingIngredient] = []
    reserved: dict[str, float] = {}

    for ingredient in recipe.ingredients:
        if ingredient.is_optional:
            continue

        needed = round_quantity(ingredient.quantity * multiplier)
        article = await _resolve_article(ingredient)
        if article is None:
            missing.append(
                MissingIngredient(
                    ingredient_id=ingredient.id,
                    name=ingredient.category_match or "Unknown",
                    needed=needed,
                    unit=ingredient.unit,
                    error="No article in stock for this ingredient",
                )
            )
            continue

        result = catalog.convert(needed, ingredient.unit, article.default_unit)
        if isinstance(result, Unconvertible):
            missing.append(
                MissingIngredient(
                    ingredient_id=ingredient.id,
                    article_id=article.id,
                    name=article.name,
                    needed=needed,
                    unit=ingredient.unit,
                    error=f"Cannot convert {result.from_unit} to {result.to_unit}",
                )
            )
            continue

        amount = round_quantity(result.quantity)
        stock = await inventory_service.get_current_stock(article_id=article.id)
        available = round_quantity(stock - reserved.get(article.id, 0.0))
        if available + constants.PACK_TOLERANCE < amount:
            missing.append(
                MissingIngredient(
                    ingredient_id=ingredient.id,
                    article_id=article.id,
                    name=article.name,
                    needed=amount,
                    available=max(0.0, available),
                    unit=article.default_unit,
                )
            )
            continue

        reserved[article.id] = reserved.get(article.id, 0.0) + amount
        planned.append(_PlannedIngredient(ingredient=ingredient, article=article, quantity=amount))

    return planned, missing


async def cook_recipe(*, recipe_id: str, servings: int | None = None) -> CookResult:
    """Consume every required ingredient of a recipe, or nothing at all.

    Optional ingredients are skipped. Ingredients bound to a category use the
    first article of that category with stock. If any ingredient is missing,
    unconvertible or short, the result lists all of them and no stock moves.

    Raises:
        NotFoundError: If the recipe does not exist
    """
    with span("recipe_service.cook_recipe"):
        recipe = await get_recipe(recipe_id=recipe_id)
        portions = servings or recipe.servings
        multiplier = portions / recipe.servings
        catalog = await UnitCatalog.load()

        consumed: list[ConsumedIngredient] = []
        async with db_client.transaction():
            planned, missing = await _plan(recipe, multiplier, catalog)

            if missing:
                logger.warning(
                    "Cannot cook recipe",
                    extra={"recipe_id": recipe.id, "missing": [m.name for m in missing]},
                )
                return CookResult(
                    success=False,
                    recipe_id=recipe.id,
                    recipe_name=recipe.name,
                    servings=portions,
                    missing=missing,
                )

            for item in planned:
                _, _, logs = await consumption_service.consume_fifo(
                    article_id=item.article.id,
                    quantity=item.quantity,
                    source=ConsumptionSource.RECIPE,
                    notes=f"Cooked: {recipe.name}",
                    recipe_id=recipe.id,
                )
                consumed.append(
                    ConsumedIngredient(
                        ingredient_id=item.ingredient.id,
                        article_id=item.article.id,
                        article_name=item.article.name,
                        quantity=item.quantity,
                        unit=item.article.default_unit,
                        logs=logs,
                    )
                )

        logger.info(
            "Cooked recipe",
            extra={"recipe_id": recipe.id, "servings": portions, "ingredients": len(consumed)},
        )
        return CookResult(
            success=True,
            recipe_id=recipe.id,
            recipe_name=recipe.name,
            servings=portions,
            consumed=consumed,
        )


async def get_meal_plan_entry(*, entry_id: str) -> MealPlanEntry:
    """Get a meal plan entry by ID.

    Raises:
        NotFoundError: If the entry does not exist
    """
    try:
        record = await db_client.get_record(collection="meal_plan_entries", record_id=entry_id)
    except KeyError as e:
        raise NotFoundError("Meal plan entry", entry_id) from e
    return MealPlanEntry(**record)


async def complete_meal_plan_entry(*, entry_id: str, cook: bool = False) -> tuple[MealPlanEntry, CookResult | None]:
    """Mark a planned meal as done, optionally cooking it first.

    When cooking fails the entry stays pending and the failed result is returned.

    Raises:
        NotFoundError: If the entry does not exist
        ConflictError: If the entry is already completed
    """
    with span("recipe_service.complete_meal_plan_entry"):
        async with db_client.transaction():
            entry = await get_meal_plan_entry(entry_id=entry_id)
            if entry.completed_at is not None:
                raise ConflictError("Meal already completed", dependency=f"meal_plan_entry:{entry_id}")

            cook_result = None
            if cook:
                cook_result = await cook_recipe(recipe_id=entry.recipe_id, servings=entry.servings)
                if not cook_result.success:
                    return entry, cook_result

            record = await db_client.update_record(
                collection="meal_plan_entries",
                record_id=entry_id,
                data={"completed_at": datetime.now(UTC)},
            )

        logger.info("Completed meal plan entry", extra={"entry_id": entry_id, "cooked": cook})
        return MealPlanEntry(**record), cook_result


async def uncomplete_meal_plan_entry(*, entry_id: str) -> MealPlanEntry:
    """Return a completed meal to the plan. Consumed stock is not restored."""
    with span("recipe_service.uncomplete_meal_plan_entry"):
        await get_meal_plan_entry(entry_id=entry_id)
        record = await db_client.update_record(
            collection="meal_plan_entries",
            record_id=entry_id,
            data={"completed_at": None},
        )
        logger.info("Reopened meal plan entry", extra={"entry_id": entry_id})
        return MealPlanEntry(**record)


async def list_meal_plan_entries(*, date_from: datetime, date_to: datetime) -> list[MealPlanEntry]:
    """Planned meals dated inside ``[date_from, date_to]``, completed or not, by meal type."""
    records = await db_client.list_all_records(
        collection="meal_plan_entries",
        filter_query=(
            f'date >= "{db_client.format_timestamp(date_from)}" && date <= "{db_client.format_timestamp(date_to)}"'
        ),
        sort="meal_type ASC, date ASC, id ASC",
    )
    return [MealPlanEntry(**record) for record in records]
