"""Article stock endpoints: consumption, correction and stock levels."""

from fastapi import APIRouter, Query
from pydantic import BaseModel

from larder.domain.article import Batch
from larder.domain.create_models import ConsumeRequest, StockCorrectionRequest
from larder.models.service_models import ConsumeResult, ExpiringBatch, StockCorrectionResult
from larder.services import consumption_service, inventory_service


router = APIRouter(prefix="/articles", tags=["articles"])


class StockResponse(BaseModel):
    """Current stock of an article with its batches in consumption order."""

    article_id: str
    name: str
    unit: str
    stock: float
    batches: list[Batch]


@router.get("/expiring", response_model=list[ExpiringBatch])
async def get_expiring(days: int | None = Query(default=None, ge=0)) -> list[ExpiringBatch]:
    """Batches with stock left that are expired or expire within ``days``."""
    return await inventory_service.list_expiring_batches(days=days)


@router.get("/{article_id}/stock", response_model=StockResponse)
async def get_stock(article_id: str) -> StockResponse:
    article = await inventory_service.get_article(article_id=article_id)
    return StockResponse(
        article_id=article.id,
        name=article.name,
        unit=article.default_unit,
        stock=await inventory_service.get_current_stock(article_id=article.id),
        batches=await inventory_service.list_fifo_batches(article_id=article.id),
    )


@router.post("/{article_id}/consume", response_model=ConsumeResult)
async def consume(article_id: str, data: ConsumeRequest) -> ConsumeResult:
    """Consume FIFO; a short stock is reported through ``remaining``."""
    return await consumption_service.consume_from_article(
        article_id=article_id,
        quantity=data.quantity,
        source=data.source,
        notes=data.notes,
        unit=data.unit,
    )


@router.post("/{article_id}/correct-stock", response_model=StockCorrectionResult)
async def correct_stock(article_id: str, data: StockCorrectionRequest) -> StockCorrectionResult:
    return await consumption_service.correct_stock(
        article_id=article_id,
        actual_stock=data.actual_stock,
        notes=data.notes,
    )
