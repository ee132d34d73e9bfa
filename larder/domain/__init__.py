"""Domain models and DTOs."""

from larder.domain.article import Article, Batch
from larder.domain.consumption import ConsumptionDirection, ConsumptionLog, ConsumptionSource
from larder.domain.create_models import (
    BatchConsumeRequest,
    BatchCreate,
    ConsumeRequest,
    CookRequest,
    ShoppingItemCreate,
    ShoppingListGenerate,
    StockCorrectionRequest,
    UnitCreate,
)
from larder.domain.recipe import MealPlanEntry, Recipe, RecipeIngredient
from larder.domain.shopping import ShoppingList, ShoppingListItem, ShoppingReason
from larder.domain.unit import Unit
from larder.domain.update_models import ConsumptionLogUpdate, PurchaseUpdate, ShoppingItemUpdate, UnitUpdate


__all__ = [
    "Article",
    "Batch",
    "BatchConsumeRequest",
    "BatchCreate",
    "ConsumeRequest",
    "ConsumptionDirection",
    "ConsumptionLog",
    "ConsumptionLogUpdate",
    "ConsumptionSource",
    "CookRequest",
    "MealPlanEntry",
    "PurchaseUpdate",
    "Recipe",
    "RecipeIngredient",
    "ShoppingItemCreate",
    "ShoppingItemUpdate",
    "ShoppingList",
    "ShoppingListGenerate",
    "ShoppingListItem",
    "ShoppingReason",
    "StockCorrectionRequest",
    "Unit",
    "UnitCreate",
    "UnitUpdate",
]
