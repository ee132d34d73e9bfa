"""Unit of measure domain model."""

from pydantic import BaseModel, Field


class Unit(BaseModel):
    """Unit of measure data transfer object.

    Units sharing a ``conversion_group`` convert linearly through their
    ``conversion_factor`` (e.g. g=1, kg=1000 in group "mass"). A unit may also
    carry one custom edge: ``1 <symbol> = converts_to_amount <target>``.
    """

    id: str = Field(..., description="Unique unit ID from database")
    symbol: str = Field(..., description="Unit symbol (e.g., 'g', 'kg', 'pcs')")
    name: str = Field(..., description="Human readable name")
    is_default: bool = Field(default=False, description="Seeded default unit")
    conversion_group: str | None = Field(default=None, description="Linear conversion group (e.g., 'mass')")
    conversion_factor: float = Field(default=1, gt=0, description="Factor relative to the group's base unit")
    converts_to_unit_id: str | None = Field(default=None, description="Target unit of the custom edge")
    converts_to_amount: float | None = Field(default=None, gt=0, description="Target amount per one of this unit")
    sort_order: int = Field(default=0, description="Display ordering")
