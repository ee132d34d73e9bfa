"""Service layer for inventory, demand and shopping operations."""

from larder.services import (
    consumption_service,
    demand_service,
    forecast_service,
    inventory_service,
    recipe_service,
    shopping_service,
    unit_service,
)


__all__ = [
    "consumption_service",
    "demand_service",
    "forecast_service",
    "inventory_service",
    "recipe_service",
    "shopping_service",
    "unit_service",
]
