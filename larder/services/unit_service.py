"""Unit service for unit conversion and unit management.

Conversion rules, applied in order:

1. same symbol: the quantity is returned unchanged
2. both units share a conversion group: ``quantity * from.factor / to.factor``
3. ``from`` has a custom edge to ``to``: ``quantity * from.converts_to_amount``
4. ``to`` has a custom edge to ``from``: ``quantity / to.converts_to_amount``
5. otherwise the units are unconvertible

There is no multi-hop resolution and no crossing between groups. A failed
conversion is returned as an ``Unconvertible`` value; callers decide whether to
fall back to the original unit or to reject the operation.
"""

import logging
from dataclasses import dataclass
from typing import Any

from larder.core import db_client
from larder.core.db_client import sanitize_param
from larder.core.errors import ConflictError, NotFoundError, ValidationFailedError
from larder.core.logging import span
from larder.domain.create_models import UnitCreate
from larder.domain.unit import Unit
from larder.domain.update_models import UnitUpdate


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Converted:
    """A successful conversion."""

    quantity: float
    unit: str


@dataclass(frozen=True)
class Unconvertible:
    """The two units are not related by a group or a one-hop edge."""

    from_unit: str
    to_unit: str


ConversionResult = Converted | Unconvertible


def convert_units(quantity: float, from_unit: Unit, to_unit: Unit) -> ConversionResult:
    """Convert a quantity between two unit definitions. Pure function."""
    if from_unit.symbol == to_unit.symbol:
        return Converted(quantity=quantity, unit=to_unit.symbol)

    if from_unit.conversion_group and from_unit.conversion_group == to_unit.conversion_group:
        return Converted(
            quantity=quantity * from_unit.conversion_factor / to_unit.conversion_factor,
            unit=to_unit.symbol,
        )

    if from_unit.converts_to_unit_id == to_unit.id and from_unit.converts_to_amount:
        return Converted(quantity=quantity * from_unit.converts_to_amount, unit=to_unit.symbol)

    if to_unit.converts_to_unit_id == from_unit.id and to_unit.converts_to_amount:
        return Converted(quantity=quantity / to_unit.converts_to_amount, unit=to_unit.symbol)

    return Unconvertible(from_unit=from_unit.symbol, to_unit=to_unit.symbol)


class UnitCatalog:
    """In-memory snapshot of all units, for converting many quantities without per-line queries."""

    def __init__(self, units: list[Unit]) -> None:
        self._by_symbol = {unit.symbol: unit for unit in units}

    @classmethod
    async def load(cls) -> "UnitCatalog":
        """Load every unit from the database."""
        return cls(await list_units())

    def get(self, symbol: str) -> Unit | None:
        return self._by_symbol.get(symbol)

    def convert(self, quantity: float, from_symbol: str, to_symbol: str) -> ConversionResult:
        """Convert by symbol; unknown symbols are unconvertible unless both symbols are equal."""
        if from_symbol == to_symbol:
            return Converted(quantity=quantity, unit=to_symbol)

        from_unit = self._by_symbol.get(from_symbol)
        to_unit = self._by_symbol.get(to_symbol)
        if from_unit is None or to_unit is None:
            return Unconvertible(from_unit=from_symbol, to_unit=to_symbol)

        return convert_units(quantity, from_unit, to_unit)


async def get_unit_by_symbol(*, symbol: str) -> Unit | None:
    """Fetch a unit by its symbol, or None."""
    record = await db_client.get_first_record(
        collection="units",
        filter_query=f'symbol = "{sanitize_param(symbol)}"',
    )
    return Unit(**record) if record else None


async def convert_quantity_between_units(quantity: float, from_symbol: str, to_symbol: str) -> ConversionResult:
    """Store-backed conversion that resolves both units by symbol first."""
    with span("unit_service.convert_quantity_between_units"):
        if from_symbol == to_symbol:
            return Converted(quantity=quantity, unit=to_symbol)

        from_unit = await get_unit_by_symbol(symbol=from_symbol)
        to_unit = await get_unit_by_symbol(symbol=to_symbol)
        if from_unit is None or to_unit is None:
            logger.debug("Unknown unit symbol", extra={"from_unit": from_symbol, "to_unit": to_symbol})
            return Unconvertible(from_unit=from_symbol, to_unit=to_symbol)

        return convert_units(quantity, from_unit, to_unit)


async def list_units() -> list[Unit]:
    """List all units ordered for display."""
    with span("unit_service.list_units"):
        records = await db_client.list_all_records(collection="units", sort="sort_order ASC, symbol ASC")
        return [Unit(**record) for record in records]


async def get_unit(*, unit_id: str) -> Unit:
    """Get a unit by ID.

    Raises:
        NotFoundError: If the unit does not exist
    """
    with span("unit_service.get_unit"):
        try:
            record = await db_client.get_record(collection="units", record_id=unit_id)
        except KeyError as e:
            raise NotFoundError("Unit", unit_id) from e
        return Unit(**record)


async def _ensure_symbol_free(symbol: str, *, exclude_id: str | None = None) -> None:
    existing = await get_unit_by_symbol(symbol=symbol)
    if existing and existing.id != exclude_id:
        raise ConflictError(f"Unit with symbol '{symbol}' already exists", dependency=f"unit:{existing.id}")


async def _ensure_target_exists(target_id: str) -> None:
    try:
        await db_client.get_record(collection="units", record_id=target_id)
    except KeyError as e:
        raise ValidationFailedError("Target unit not found", field="converts_to_unit_id") from e


async def create_unit(*, data: UnitCreate) -> Unit:
    """Create a new unit.

    Raises:
        ConflictError: If the symbol is already taken
        ValidationFailedError: If the conversion target does not exist
    """
    with span("unit_service.create_unit"):
        await _ensure_symbol_free(data.symbol)
        if data.converts_to_unit_id:
            await _ensure_target_exists(data.converts_to_unit_id)

        record = await db_client.create_record(collection="units", data=data.model_dump())
        logger.info("Created unit", extra={"unit_id": record["id"], "symbol": data.symbol})
        return Unit(**record)


async def update_unit(*, unit_id: str, data: UnitUpdate) -> Unit:
    """Update a unit; only fields that were set are written.

    Raises:
        NotFoundError: If the unit does not exist
        ConflictError: On a duplicate symbol or a conversion to itself
        ValidationFailedError: If the conversion target does not exist
    """
    with span("unit_service.update_unit"):
        existing = await get_unit(unit_id=unit_id)
        changes: dict[str, Any] = data.model_dump(exclude_unset=True)

        if changes.get("symbol") and changes["symbol"] != existing.symbol:
            await _ensure_symbol_free(changes["symbol"], exclude_id=unit_id)

        target_id = changes.get("converts_to_unit_id")
        if target_id:
            if target_id == unit_id:
                raise ConflictError("Unit cannot convert to itself", dependency=f"unit:{unit_id}")
            await _ensure_target_exists(target_id)

        if not changes:
            return existing

        record = await db_client.update_record(collection="units", record_id=unit_id, data=changes)
        logger.info("Updated unit", extra={"unit_id": unit_id, "fields": sorted(changes)})
        return Unit(**record)


async def delete_unit(*, unit_id: str) -> None:
    """Delete a unit that nothing refers to.

    Raises:
        NotFoundError: If the unit does not exist
        ConflictError: If an article, a recipe ingredient or another unit still uses it
    """
    with span("unit_service.delete_unit"):
        unit = await get_unit(unit_id=unit_id)
        symbol = sanitize_param(unit.symbol)

        articles = await db_client.count_records(
            collection="articles",
            filter_query=f'(default_unit = "{symbol}" || package_unit = "{symbol}")',
        )
        if articles:
            raise ConflictError(
                f"Unit is used by {articles} article(s)",
                dependency="articles",
                count=articles,
            )

        ingredients = await db_client.count_records(
            collection="recipe_ingredients",
            filter_query=f'unit = "{symbol}"',
        )
        if ingredients:
            raise ConflictError(
                f"Unit is used in {ingredients} recipe ingredient(s)",
                dependency="recipe_ingredients",
                count=ingredients,
            )

        dependents = await db_client.count_records(
            collection="units",
            filter_query=f'converts_to_unit_id = "{sanitize_param(unit_id)}"',
        )
        if dependents:
            raise ConflictError(
                f"{dependents} unit(s) are configured to convert to this unit",
                dependency="units",
                count=dependents,
            )

        await db_client.delete_record(collection="units", record_id=unit_id)
        logger.info("Deleted unit", extra={"unit_id": unit_id, "symbol": unit.symbol})
