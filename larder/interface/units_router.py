"""Unit conversion and unit management endpoints."""

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from larder.core.errors import NotFoundError, UnconvertibleUnitError
from larder.domain.create_models import UnitCreate
from larder.domain.unit import Unit
from larder.domain.update_models import UnitUpdate
from larder.services import unit_service
from larder.services.unit_service import Unconvertible


router = APIRouter(prefix="/units", tags=["units"])


class ConversionResponse(BaseModel):
    """Result of converting a quantity between two units."""

    from_unit: str
    to_unit: str
    quantity: float
    result: float


@router.get("/convert", response_model=ConversionResponse)
async def convert(
    from_unit: str = Query(..., alias="from"),
    to_unit: str = Query(..., alias="to"),
    quantity: float = Query(...),
) -> ConversionResponse:
    """Convert a quantity between two known units."""
    for symbol in (from_unit, to_unit):
        if await unit_service.get_unit_by_symbol(symbol=symbol) is None:
            raise NotFoundError("Unit", symbol)

    result = await unit_service.convert_quantity_between_units(quantity, from_unit, to_unit)
    if isinstance(result, Unconvertible):
        raise UnconvertibleUnitError(result.from_unit, result.to_unit)

    return ConversionResponse(from_unit=from_unit, to_unit=to_unit, quantity=quantity, result=result.quantity)


@router.get("", response_model=list[Unit])
async def list_units() -> list[Unit]:
    return await unit_service.list_units()


@router.post("", response_model=Unit, status_code=status.HTTP_201_CREATED)
async def create_unit(data: UnitCreate) -> Unit:
    return await unit_service.create_unit(data=data)


@router.get("/{unit_id}", response_model=Unit)
async def get_unit(unit_id: str) -> Unit:
    return await unit_service.get_unit(unit_id=unit_id)


@router.put("/{unit_id}", response_model=Unit)
async def update_unit(unit_id: str, data: UnitUpdate) -> Unit:
    return await unit_service.update_unit(unit_id=unit_id, data=data)


@router.delete("/{unit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_unit(unit_id: str) -> Response:
    await unit_service.delete_unit(unit_id=unit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
