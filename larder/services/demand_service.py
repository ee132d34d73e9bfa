"""Demand aggregation: what the household needs between a shop date and a plan horizon.

Demand comes from three branches processed in order, first match wins per
article:

1. recipes of pending meal-plan entries inside the window, scaled by servings
2. consumption forecasts for the window length
3. articles below their minimum stock

For every article line the net need is
``recipe + forecast + min_stock - current_stock`` rounded to 4 decimals.
Ingredients bound to a category get one line per category; ingredients with
neither an article nor a category get their own line that never merges.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time

from larder.core import db_client
from larder.core.config import constants
from larder.core.db_client import sanitize_param
from larder.core.logging import span
from larder.core.rounding import round_quantity
from larder.domain.article import Article
from larder.domain.recipe import MealPlanEntry, Recipe, RecipeIngredient
from larder.domain.shopping import ShoppingReason
from larder.models.service_models import PlannedIngredient
from larder.services import forecast_service, inventory_service
from larder.services.unit_service import Converted, UnitCatalog


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArticleKey:
    article_id: str


@dataclass(frozen=True)
class CategoryKey:
    name: str


@dataclass(frozen=True)
class UnresolvedKey:
    """Key of an ingredient with neither article nor category; unique per planned entry."""

    ingredient_id: str
    entry_id: str


DemandKey = ArticleKey | CategoryKey | UnresolvedKey


@dataclass
class DemandLine:
    """Aggregated demand for one key."""

    key: DemandKey
    article_id: str | None
    name: str | None
    unit: str
    reason: ShoppingReason
    recipe_quantity: float = 0.0
    forecast_quantity: float = 0.0
    min_stock: float = 0.0
    current_stock: float = 0.0

    @property
    def total_need(self) -> float:
        return round_quantity(self.recipe_quantity + self.forecast_quantity + self.min_stock - self.current_stock)


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min, tzinfo=value.tzinfo)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max, tzinfo=value.tzinfo)


async def _load_recipe(recipe_id: str, cache: dict[str, Recipe]) -> Recipe:
    if recipe_id not in cache:
        record = await db_client.get_record(collection="recipes", record_id=recipe_id)
        ingredients = await db_client.list_all_records(
            collection="recipe_ingredients",
            filter_query=f'recipe_id = "{sanitize_param(recipe_id)}"',
        )
        cache[recipe_id] = Recipe(**record, ingredients=[RecipeIngredient(**i) for i in ingredients])
    return cache[recipe_id]


async def _load_article(article_id: str, cache: dict[str, Article]) -> Article:
    if article_id not in cache:
        cache[article_id] = await inventory_service.get_article(article_id=article_id)
    return cache[article_id]


def _line_name(ingredient: RecipeIngredient, recipe: Recipe, article: Article | None) -> str:
    """Label for a recipe demand line; unresolved ingredients fall back to their notes or recipe."""
    if article is not None:
        return article.name
    if ingredient.category_match:
        return ingredient.category_match
    return ingredient.notes or f"Recipe {recipe.name}: ingredient {ingredient.id}"


async def list_pending_entries(*, window_start: datetime, window_end: datetime) -> list[MealPlanEntry]:
    """Uncompleted meal-plan entries dated inside the window (inclusive)."""
    records = await db_client.list_all_records(
        collection="meal_plan_entries",
        filter_query=(
            f'date >= "{db_client.format_timestamp(window_start)}" '
            f'&& date <= "{db_client.format_timestamp(window_end)}" '
            "&& completed_at = null"
        ),
        sort="date ASC, id ASC",
    )
    return [MealPlanEntry(**record) for record in records]


async def _add_recipe_demand(
    lines: dict[DemandKey, DemandLine],
    *,
    window_start: datetime,
    window_end: datetime,
    catalog: UnitCatalog,
    articles: dict[str, Article],
) -> None:
    recipes: dict[str, Recipe] = {}
    entries = await list_pending_entries(window_start=window_start, window_end=window_end)

    for entry in entries:
        recipe = await _load_recipe(entry.recipe_id, recipes)
        multiplier = entry.servings / recipe.servings

        for ingredient in recipe.ingredients:
            quantity = ingredient.quantity * multiplier
            unit = ingredient.unit
            article: Article | None = None

            if ingredient.article_id:
                key: DemandKey = ArticleKey(ingredient.article_id)
                article = await _load_article(ingredient.article_id, articles)
                result = catalog.convert(quantity, ingredient.unit, article.default_unit)
                if isinstance(result, Converted):
                    quantity, unit = result.quantity, result.unit
                else:
                    # Keep the ingredient's own unit and quantity so the demand is not dropped
                    logger.warning(
                        "Ingredient unit not convertible to article unit",
                        extra={
                            "ingredient_id": ingredient.id,
                            "article_id": article.id,
                            "from_unit": ingredient.unit,
                            "to_unit": article.default_unit,
                        },
                    )
            elif ingredient.category_match:
                key = CategoryKey(ingredient.category_match)
            else:
                key = UnresolvedKey(ingredient_id=ingredient.id, entry_id=entry.id)

            line = lines.get(key)
            if line is None:
                lines[key] = DemandLine(
                    key=key,
                    article_id=ingredient.article_id,
                    name=_line_name(ingredient, recipe, article),
                    unit=unit,
                    reason=ShoppingReason.RECIPE,
                    recipe_quantity=quantity,
                )
                continue

            if line.unit != unit:
                logger.warning(
                    "Summing demand in mixed units",
                    extra={"key": str(key), "line_unit": line.unit, "unit": unit},
                )
            line.recipe_quantity += quantity


async def aggregate(
    *,
    shop_date: datetime,
    plan_until: datetime,
    catalog: UnitCatalog | None = None,
) -> dict[DemandKey, DemandLine]:
    """Aggregate demand for the window ``[start_of_day(shop_date), end_of_day(plan_until)]``.

    Returns:
        Demand lines keyed by article, category or unresolved ingredient, in
        processing order (recipe lines, then forecast lines, then low-stock lines).
        Lines may carry a non-positive net need; callers filter.
    """
    with span("demand_service.aggregate"):
        window_start = start_of_day(shop_date)
        window_end = end_of_day(plan_until)

        catalog = catalog or await UnitCatalog.load()
        articles: dict[str, Article] = {}
        lines: dict[DemandKey, DemandLine] = {}

        await _add_recipe_demand(
            lines,
            window_start=window_start,
            window_end=window_end,
            catalog=catalog,
            articles=articles,
        )

        forecasts = await forecast_service.get_forecasted_shopping_items(shop_date=window_start, plan_until=window_end)
        forecast_by_article = {item.article_id: item.quantity for item in forecasts}

        low_stock_articles = await inventory_service.list_articles_with_min_stock()
        min_stock_by_article = {a.id: a.min_stock or 0.0 for a in low_stock_articles}

        # Recipe-covered articles pick up forecast, threshold and stock
        for line in lines.values():
            if line.article_id is None:
                continue
            line.forecast_quantity = forecast_by_article.get(line.article_id, 0.0)
            line.min_stock = min_stock_by_article.get(line.article_id, 0.0)
            line.current_stock = await inventory_service.get_current_stock(article_id=line.article_id)

        for item in forecasts:
            key = ArticleKey(item.article_id)
            if key in lines:
                continue
            article = await _load_article(item.article_id, articles)
            lines[key] = DemandLine(
                key=key,
                article_id=article.id,
                name=article.name,
                unit=article.default_unit or constants.DEFAULT_UNIT,
                reason=ShoppingReason.FORECAST,
                forecast_quantity=item.quantity,
                min_stock=min_stock_by_article.get(article.id, 0.0),
                current_stock=await inventory_service.get_current_stock(article_id=article.id),
            )

        for article in low_stock_articles:
            key = ArticleKey(article.id)
            if key in lines:
                continue
            lines[key] = DemandLine(
                key=key,
                article_id=article.id,
                name=article.name,
                unit=article.default_unit or constants.DEFAULT_UNIT,
                reason=ShoppingReason.LOW_STOCK,
                min_stock=article.min_stock or 0.0,
                current_stock=await inventory_service.get_current_stock(article_id=article.id),
            )

        logger.info(
            "Aggregated demand",
            extra={
                "shop_date": window_start.isoformat(),
                "plan_until": window_end.isoformat(),
                "lines": len(lines),
                "recipe_lines": sum(1 for line in lines.values() if line.reason == ShoppingReason.RECIPE),
            },
        )
        return lines


async def aggregate_meal_plan_ingredients(
    *,
    date_from: datetime,
    date_to: datetime,
    catalog: UnitCatalog | None = None,
) -> list[PlannedIngredient]:
    """Ingredients needed by the pending meals of ``[start_of_day(date_from), end_of_day(date_to)]``.

    Quantities are scaled by servings and summed per article, category or
    ingredient line. Stock, forecasts and thresholds are not considered. A line
    keeps the unit of its first contributor; later contributors are converted
    into it when possible.
    """
    with span("demand_service.aggregate_meal_plan_ingredients"):
        catalog = catalog or await UnitCatalog.load()
        recipes: dict[str, Recipe] = {}
        articles: dict[str, Article] = {}
        planned: dict[tuple[str, str], PlannedIngredient] = {}

        entries = await list_pending_entries(window_start=start_of_day(date_from), window_end=end_of_day(date_to))
        for entry in entries:
            recipe = await _load_recipe(entry.recipe_id, recipes)
            multiplier = entry.servings / recipe.servings

            for ingredient in recipe.ingredients:
                quantity = ingredient.quantity * multiplier
                if ingredient.article_id:
                    key = ("article", ingredient.article_id)
                elif ingredient.category_match:
                    key = ("category", ingredient.category_match)
                else:
                    key = ("ingredient", ingredient.id)

                line = planned.get(key)
                if line is None:
                    article = await _load_article(ingredient.article_id, articles) if ingredient.article_id else None
                    planned[key] = PlannedIngredient(
                        article_id=ingredient.article_id,
                        article_name=article.name if article else None,
                        category_match=ingredient.category_match,
                        unit=ingredient.unit,
                        total_quantity=quantity,
                        recipes=[recipe.name],
                    )
                    continue

                result = catalog.convert(quantity, ingredient.unit, line.unit)
                if isinstance(result, Converted):
                    quantity = result.quantity
                else:
                    logger.warning(
                        "Summing planned ingredients in mixed units",
                        extra={"key": key, "line_unit": line.unit, "unit": ingredient.unit},
                    )
                line.total_quantity += quantity
                if recipe.name not in line.recipes:
                    line.recipes.append(recipe.name)

        for line in planned.values():
            line.total_quantity = round_quantity(line.total_quantity)

        logger.info("Aggregated planned ingredients", extra={"entries": len(entries), "lines": len(planned)})
        return list(planned.values())
