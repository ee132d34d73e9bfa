"""Recipe and meal plan domain models."""

from datetime import datetime

from pydantic import BaseModel, Field


class RecipeIngredient(BaseModel):
    """Ingredient line of a recipe, bound to an article or to a category."""

    id: str = Field(..., description="Unique ingredient ID from database")
    recipe_id: str
    article_id: str | None = Field(default=None, description="Specific article, if bound")
    category_match: str | None = Field(default=None, description="Any article of this category, if unbound")
    quantity: float = Field(..., gt=0, description="Quantity for the recipe's base servings")
    unit: str = Field(..., description="Unit of quantity")
    is_optional: bool = False
    notes: str | None = None


class Recipe(BaseModel):
    """Recipe data transfer object."""

    id: str = Field(..., description="Unique recipe ID from database")
    name: str
    description: str | None = None
    servings: int = Field(default=2, gt=0, description="Servings the ingredient quantities are written for")
    instructions: str | None = None
    prep_time: int | None = None
    cook_time: int | None = None
    ingredients: list[RecipeIngredient] = Field(default_factory=list)


class MealPlanEntry(BaseModel):
    """A recipe planned for a date and meal."""

    id: str = Field(..., description="Unique entry ID from database")
    date: datetime
    meal_type: str = Field(..., description="Meal slot (e.g., 'breakfast', 'dinner')")
    recipe_id: str
    servings: int = Field(default=2, gt=0)
    notes: str | None = None
    completed_at: datetime | None = Field(default=None, description="Set once the meal was cooked")
