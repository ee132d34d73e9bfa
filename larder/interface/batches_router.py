"""Batch endpoints: purchases, purchase edits and direct batch consumption."""

from fastapi import APIRouter, status

from larder.domain.article import Batch
from larder.domain.create_models import BatchConsumeRequest, BatchCreate
from larder.domain.update_models import PurchaseUpdate
from larder.models.service_models import BatchConsumeResult, PurchaseUpdateResult
from larder.services import consumption_service, inventory_service


router = APIRouter(prefix="/batches", tags=["batches"])


@router.post("", response_model=Batch, status_code=status.HTTP_201_CREATED)
async def create_batch(data: BatchCreate) -> Batch:
    return await inventory_service.create_batch(data=data)


@router.put("/{batch_id}/purchase", response_model=PurchaseUpdateResult)
async def update_purchase(batch_id: str, data: PurchaseUpdate) -> PurchaseUpdateResult:
    return await inventory_service.update_purchase(batch_id=batch_id, data=data)


@router.post("/{batch_id}/consume", response_model=BatchConsumeResult)
async def consume(batch_id: str, data: BatchConsumeRequest) -> BatchConsumeResult:
    return await consumption_service.consume_from_batch(
        batch_id=batch_id,
        quantity=data.quantity,
        unit=data.unit,
        source=data.source,
        notes=data.notes,
    )
