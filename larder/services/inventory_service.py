"""Inventory service for stock levels, package info, price history and purchases."""

import logging
from datetime import UTC, datetime, time, timedelta
from typing import Any

from pydantic import BaseModel

from larder.core import db_client
from larder.core.config import settings
from larder.core.db_client import sanitize_param
from larder.core.errors import NotFoundError, ValidationFailedError
from larder.core.logging import span
from larder.core.rounding import round_display, round_quantity
from larder.domain.article import Article, Batch
from larder.domain.create_models import BatchCreate
from larder.domain.update_models import PurchaseUpdate
from larder.models.service_models import ExpiringBatch, LowStockArticle, PurchaseUpdateResult


logger = logging.getLogger(__name__)

# Expiry ascending with undated batches last, then oldest purchase first
FIFO_SORT = "expiry_date ASC NULLS LAST, purchase_date ASC, id ASC"


class PackageInfo(BaseModel):
    """Purchasable package of an article."""

    package_size: float
    package_unit: str
    default_unit: str


async def get_article(*, article_id: str) -> Article:
    """Get an article by ID.

    Raises:
        NotFoundError: If the article does not exist
    """
    try:
        record = await db_client.get_record(collection="articles", record_id=article_id)
    except KeyError as e:
        raise NotFoundError("Article", article_id) from e
    return Article(**record)


async def list_articles_with_min_stock() -> list[Article]:
    """Articles that declare a minimum stock threshold (zero thresholds are ignored)."""
    records = await db_client.list_all_records(
        collection="articles",
        filter_query="min_stock != null",
        sort="id ASC",
    )
    return [article for article in (Article(**r) for r in records) if article.min_stock]


async def get_current_stock(*, article_id: str) -> float:
    """Total remaining quantity over the article's batches, in its canonical unit."""
    with span("inventory_service.get_current_stock"):
        total = await db_client.sum_field(
            collection="batches",
            field="quantity",
            filter_query=f'article_id = "{sanitize_param(article_id)}" && quantity > "0"',
        )
        return round_quantity(total)


async def get_package_info(*, article_id: str) -> PackageInfo:
    """Package size and unit of an article."""
    article = await get_article(article_id=article_id)
    return PackageInfo(
        package_size=article.package_size,
        package_unit=article.package_unit,
        default_unit=article.default_unit,
    )


async def estimate_pack_price(*, article_id: str) -> float | None:
    """Average price of the most recent priced purchases, taken as the price of one pack.

    Returns:
        Average of the last ``settings.price_history_limit`` batch prices, or None
        when the article has never been bought with a price
    """
    with span("inventory_service.estimate_pack_price"):
        records = await db_client.list_records(
            collection="batches",
            per_page=settings.price_history_limit,
            filter_query=f'article_id = "{sanitize_param(article_id)}" && purchase_price != null',
            sort="purchase_date DESC, id DESC",
        )
        if not records:
            return None

        prices = [float(record["purchase_price"]) for record in records]
        return sum(prices) / len(prices)


async def list_fifo_batches(*, article_id: str) -> list[Batch]:
    """Batches with stock left, in consumption order."""
    records = await db_client.list_all_records(
        collection="batches",
        filter_query=f'article_id = "{sanitize_param(article_id)}" && quantity > "0"',
        sort=FIFO_SORT,
    )
    return [Batch(**record) for record in records]


async def get_batch(*, batch_id: str) -> Batch:
    """Get a batch by ID.

    Raises:
        NotFoundError: If the batch does not exist
    """
    try:
        record = await db_client.get_record(collection="batches", record_id=batch_id)
    except KeyError as e:
        raise NotFoundError("Batch", batch_id) from e
    return Batch(**record)


async def insert_batch(
    *,
    article_id: str,
    quantity: float,
    purchase_date: datetime,
    expiry_date: datetime | None = None,
    purchase_price: float | None = None,
    notes: str | None = None,
) -> Batch:
    """Write a fresh batch whose remaining quantity equals its initial quantity."""
    quantity = round_quantity(quantity)
    record = await db_client.create_record(
        collection="batches",
        data={
            "article_id": article_id,
            "quantity": quantity,
            "initial_quantity": quantity,
            "purchase_date": purchase_date,
            "expiry_date": expiry_date,
            "purchase_price": round_display(purchase_price) if purchase_price is not None else None,
            "notes": notes,
            "created": db_client.now_timestamp(),
        },
    )
    logger.info("Created batch", extra={"batch_id": record["id"], "article_id": article_id, "quantity": quantity})
    return Batch(**record)


async def create_batch(*, data: BatchCreate) -> Batch:
    """Record a purchase as a new batch.

    The expiry date defaults to the purchase date plus the article's
    ``default_expiry_days`` when not given.

    Raises:
        NotFoundError: If the article does not exist
    """
    with span("inventory_service.create_batch"):
        article = await get_article(article_id=data.article_id)
        purchase_date = data.purchase_date or datetime.now(UTC)

        expiry_date = data.expiry_date
        if expiry_date is None and article.default_expiry_days:
            expiry_date = purchase_date + timedelta(days=article.default_expiry_days)

        return await insert_batch(
            article_id=article.id,
            quantity=data.quantity,
            purchase_date=purchase_date,
            expiry_date=expiry_date,
            purchase_price=data.purchase_price,
            notes=data.notes,
        )


async def update_purchase(*, batch_id: str, data: PurchaseUpdate) -> PurchaseUpdateResult:
    """Edit a recorded purchase while keeping the consumed amount constant.

    ``consumed = initial_quantity - quantity`` is computed first. A new initial
    quantity moves the remaining quantity to ``new_initial - consumed``.

    Raises:
        NotFoundError: If the batch does not exist
        ValidationFailedError: If the new initial quantity is below what was already consumed
    """
    with span("inventory_service.update_purchase"):
        async with db_client.transaction():
            batch = await get_batch(batch_id=batch_id)
            consumed = round_quantity(batch.initial_quantity - batch.quantity)
            has_been_consumed = consumed > 0

            changes: dict[str, Any] = data.model_dump(exclude_unset=True)

            if changes.get("initial_quantity") is not None:
                new_initial = round_quantity(changes["initial_quantity"])
                new_quantity = round_quantity(new_initial - consumed)
                if new_quantity < 0:
                    raise ValidationFailedError(
                        f"Cannot set initial quantity to {new_initial} because {consumed} has already been consumed",
                        field="initial_quantity",
                        consumed=consumed,
                    )
                changes["initial_quantity"] = new_initial
                changes["quantity"] = new_quantity
            else:
                changes.pop("initial_quantity", None)

            if changes.get("purchase_date") is None:
                changes.pop("purchase_date", None)

            if not changes:
                return PurchaseUpdateResult(batch=batch, consumed=consumed, has_been_consumed=has_been_consumed)

            record = await db_client.update_record(collection="batches", record_id=batch_id, data=changes)

        logger.info(
            "Updated purchase",
            extra={"batch_id": batch_id, "fields": sorted(changes), "consumed": consumed},
        )
        return PurchaseUpdateResult(batch=Batch(**record), consumed=consumed, has_been_consumed=has_been_consumed)


async def list_expiring_batches(*, days: int | None = None, now: datetime | None = None) -> list[ExpiringBatch]:
    """Batches with stock left that expire by the end of the day ``days`` from now, soonest first.

    Already expired batches are included; undated batches never are.
    """
    with span("inventory_service.list_expiring_batches"):
        days = settings.expiring_days if days is None else days
        now = now or datetime.now(UTC)
        horizon = datetime.combine((now + timedelta(days=days)).date(), time.max, tzinfo=now.tzinfo or UTC)

        records = await db_client.list_all_records(
            collection="batches",
            filter_query=(
                f'quantity > "0" && expiry_date != null && expiry_date <= "{db_client.format_timestamp(horizon)}"'
            ),
            sort="expiry_date ASC, id ASC",
        )

        articles: dict[str, Article] = {}
        expiring = []
        for record in records:
            batch = Batch(**record)
            if batch.article_id not in articles:
                articles[batch.article_id] = await get_article(article_id=batch.article_id)
            article = articles[batch.article_id]
            expiring.append(
                ExpiringBatch(
                    batch=batch,
                    article_name=article.name,
                    unit=article.default_unit,
                    days_until_expiry=(batch.expiry_date.date() - now.date()).days,
                )
            )
        return expiring


async def list_low_stock_articles() -> list[LowStockArticle]:
    """Articles below their minimum stock, largest shortfall first."""
    low = []
    for article in await list_articles_with_min_stock():
        stock = await get_current_stock(article_id=article.id)
        if stock < article.min_stock:
            low.append(
                LowStockArticle(article=article, total_stock=stock, shortfall=round_quantity(article.min_stock - stock))
            )
    return sorted(low, key=lambda entry: entry.shortfall, reverse=True)
