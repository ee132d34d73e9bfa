"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from datetime import datetime

from pydantic import BaseModel

from larder.domain.article import Article, Batch
from larder.domain.consumption import ConsumptionLog
from larder.domain.recipe import MealPlanEntry


class ConversionInfo(BaseModel):
    """How a requested quantity was translated into the canonical unit."""

    original_quantity: float
    original_unit: str
    converted_quantity: float
    converted_unit: str


class ConsumeResult(BaseModel):
    """Outcome of FIFO consumption; remaining > 0 means stock ran short."""

    article_id: str
    requested: float
    consumed: float
    remaining: float
    unit: str
    logs: list[ConsumptionLog]
    conversion: ConversionInfo | None = None


class BatchConsumeResult(BaseModel):
    """Outcome of consuming from one specific batch."""

    batch: Batch
    log: ConsumptionLog
    conversion: ConversionInfo | None = None


class StockCorrectionResult(BaseModel):
    """Outcome of a stock correction."""

    article_id: str
    previous_stock: float
    new_stock: float
    difference: float
    logs: list[ConsumptionLog] = []
    batch: Batch | None = None


class PurchaseUpdateResult(BaseModel):
    """Outcome of editing a recorded purchase."""

    batch: Batch
    consumed: float
    has_been_consumed: bool


class ConsumedIngredient(BaseModel):
    """An ingredient taken from stock while cooking."""

    ingredient_id: str
    article_id: str
    article_name: str
    quantity: float
    unit: str
    logs: list[ConsumptionLog] = []


class MissingIngredient(BaseModel):
    """An ingredient that blocked cooking."""

    ingredient_id: str
    article_id: str | None = None
    name: str
    needed: float
    available: float = 0
    unit: str
    error: str | None = None


class CookResult(BaseModel):
    """Outcome of cooking a recipe; nothing is consumed unless success is True."""

    success: bool
    recipe_id: str
    recipe_name: str
    servings: int
    consumed: list[ConsumedIngredient] = []
    missing: list[MissingIngredient] = []


class ConsumptionForecast(BaseModel):
    """Rolling-average consumption forecast for one article."""

    article_id: str
    article_name: str
    unit: str
    current_stock: float
    total_consumed: float
    average_per_day: float
    average_per_week: float
    days_until_empty: int | None
    predicted_empty_date: datetime | None
    predicted_need: float
    recommended_purchase: float
    min_stock: float | None = None


class ExpiringBatch(BaseModel):
    """A batch with stock left that is expired or expires soon."""

    batch: Batch
    article_name: str
    unit: str
    days_until_expiry: int


class PlannedIngredient(BaseModel):
    """Ingredient demand of the pending meals in a date range, before stock is considered."""

    article_id: str | None = None
    article_name: str | None = None
    category_match: str | None = None
    unit: str
    total_quantity: float
    recipes: list[str] = []


class LowStockArticle(BaseModel):
    """An article below its minimum stock."""

    article: Article
    total_stock: float
    shortfall: float


class ShoppingListSummary(BaseModel):
    id: str
    name: str
    shop_date: datetime
    total_items: int
    purchased_items: int
    estimated_total: float


class DashboardStats(BaseModel):
    total_articles: int
    active_batches: int
    recipes: int


class Dashboard(BaseModel):
    """Household overview: expiry warnings, low stock, today's meals and the active list."""

    expired: list[ExpiringBatch]
    expiring_soon: list[ExpiringBatch]
    low_stock: list[LowStockArticle]
    todays_meals: list[MealPlanEntry]
    shopping_list: ShoppingListSummary | None = None
    stats: DashboardStats
