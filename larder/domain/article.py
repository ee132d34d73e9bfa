"""Article and batch domain models."""

from datetime import datetime

from pydantic import BaseModel, Field


class Article(BaseModel):
    """Article data transfer object (a kind of thing kept in stock)."""

    id: str = Field(..., description="Unique article ID from database")
    name: str = Field(..., description="Article name (e.g., 'Milk', 'Flour')")
    default_unit: str = Field(default="pcs", description="Canonical unit in which stock is counted")
    package_size: float = Field(default=1, gt=0, description="Size of one purchasable package")
    package_unit: str = Field(default="pcs", description="Unit of package_size")
    min_stock: float | None = Field(default=None, description="Minimum stock threshold in the canonical unit")
    default_expiry_days: int | None = Field(default=None, description="Shelf life applied to new batches")
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    fiber: float | None = None
    category: str | None = Field(default=None, description="Category used by category-matched ingredients")
    is_consumable: bool = Field(default=True, description="Whether consumption is forecast for this article")


class Batch(BaseModel):
    """A single purchase of an article, consumed first-expiring-first-out."""

    id: str = Field(..., description="Unique batch ID from database")
    article_id: str = Field(..., description="Article this batch belongs to")
    quantity: float = Field(..., ge=0, description="Remaining quantity in the article's canonical unit")
    initial_quantity: float = Field(..., gt=0, description="Quantity at purchase")
    purchase_date: datetime = Field(..., description="When the batch was bought")
    expiry_date: datetime | None = Field(default=None, description="When the batch expires")
    purchase_price: float | None = Field(default=None, description="Price paid for the batch")
    notes: str | None = None
    created: datetime | None = None
