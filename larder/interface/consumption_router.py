"""Consumption log maintenance endpoints."""

from fastapi import APIRouter, Response, status

from larder.domain.consumption import ConsumptionLog
from larder.domain.update_models import ConsumptionLogUpdate
from larder.services import consumption_service


router = APIRouter(prefix="/consumption", tags=["consumption"])


@router.put("/{log_id}", response_model=ConsumptionLog)
async def update_log(log_id: str, data: ConsumptionLogUpdate) -> ConsumptionLog:
    return await consumption_service.update_consumption_log(log_id=log_id, data=data)


@router.delete("/{log_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_log(log_id: str) -> Response:
    await consumption_service.delete_consumption_log(log_id=log_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
