"""Consumption service: FIFO batch consumption, stock correction and log maintenance.

Every flow that takes stock out of the larder (manual consumption, cooking,
corrections) goes through ``consume_fifo`` so batches are always drained in the
same order: earliest expiry first, undated batches last, then oldest purchase.
Each batch decrement is a guarded update that refuses to go below zero, and it
is written in the same transaction as its consumption log.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from larder.core import db_client
from larder.core.errors import InsufficientStockError, NotFoundError, UnconvertibleUnitError
from larder.core.logging import log_with_context, span
from larder.core.rounding import round_quantity
from larder.domain.article import Article
from larder.domain.consumption import ConsumptionDirection, ConsumptionLog, ConsumptionSource
from larder.domain.update_models import ConsumptionLogUpdate
from larder.models.service_models import BatchConsumeResult, ConsumeResult, ConversionInfo, StockCorrectionResult
from larder.services import inventory_service, unit_service
from larder.services.unit_service import Unconvertible


logger = logging.getLogger(__name__)


async def write_log(
    *,
    article_id: str,
    quantity: float,
    source: ConsumptionSource,
    direction: ConsumptionDirection = ConsumptionDirection.CONSUMPTION,
    batch_id: str | None = None,
    recipe_id: str | None = None,
    notes: str | None = None,
    consumed_at: datetime | None = None,
) -> ConsumptionLog:
    """Append a consumption log entry with a non-negative quantity."""
    record = await db_client.create_record(
        collection="consumption_logs",
        data={
            "article_id": article_id,
            "batch_id": batch_id,
            "recipe_id": recipe_id,
            "quantity": round_quantity(quantity),
            "direction": direction,
            "consumed_at": consumed_at or datetime.now(UTC),
            "source": source,
            "notes": notes,
        },
    )
    return ConsumptionLog(**record)


async def _to_canonical(quantity: float, unit: str | None, article: Article) -> tuple[float, ConversionInfo | None]:
    """Express a requested quantity in the article's canonical unit.

    Raises:
        UnconvertibleUnitError: If the unit cannot be converted
    """
    if not unit or unit == article.default_unit:
        return quantity, None

    result = await unit_service.convert_quantity_between_units(quantity, unit, article.default_unit)
    if isinstance(result, Unconvertible):
        raise UnconvertibleUnitError(result.from_unit, result.to_unit)

    converted = round_quantity(result.quantity)
    return converted, ConversionInfo(
        original_quantity=quantity,
        original_unit=unit,
        converted_quantity=converted,
        converted_unit=article.default_unit,
    )


async def consume_fifo(
    *,
    article_id: str,
    quantity: float,
    source: ConsumptionSource,
    notes: str | None = None,
    recipe_id: str | None = None,
) -> tuple[float, float, list[ConsumptionLog]]:
    """Drain batches in FIFO order, one log per touched batch.

    Must run inside ``db_client.transaction()``. Stops when the quantity is
    covered or the batches are exhausted.

    Returns:
        Tuple of (consumed, remaining, logs) where consumed + remaining == quantity
    """
    requested = round_quantity(quantity)
    remaining = requested
    logs: list[ConsumptionLog] = []
    now = datetime.now(UTC)

    for batch in await inventory_service.list_fifo_batches(article_id=article_id):
        if remaining <= 0:
            break

        take = round_quantity(min(batch.quantity, remaining))
        if take <= 0:
            continue

        decremented = await db_client.conditional_decrement(
            collection="batches",
            record_id=batch.id,
            field="quantity",
            amount=take,
        )
        if not decremented:
            logger.warning("Batch changed during consumption", extra={"batch_id": batch.id, "amount": take})
            continue

        logs.append(
            await write_log(
                article_id=article_id,
                batch_id=batch.id,
                recipe_id=recipe_id,
                quantity=take,
                source=source,
                notes=notes,
                consumed_at=now,
            )
        )
        remaining = round_quantity(remaining - take)

    return round_quantity(requested - remaining), remaining, logs


async def consume_from_article(
    *,
    article_id: str,
    quantity: float,
    source: ConsumptionSource = ConsumptionSource.MANUAL,
    notes: str | None = None,
    unit: str | None = None,
) -> ConsumeResult:
    """Consume from an article's batches in FIFO order.

    Short stock is not an error: whatever is available is consumed and the
    rest is reported as ``remaining``.

    Raises:
        NotFoundError: If the article does not exist
        UnconvertibleUnitError: If ``unit`` cannot be converted to the article's unit
    """
    with span("consumption_service.consume_from_article"):
        article = await inventory_service.get_article(article_id=article_id)
        amount, conversion = await _to_canonical(quantity, unit, article)

        async with db_client.transaction():
            consumed, remaining, logs = await consume_fifo(
                article_id=article.id,
                quantity=amount,
                source=source,
                notes=notes,
            )

        log_with_context(
            logger,
            "warning" if remaining > 0 else "info",
            "Consumed from article",
            article_id=article.id,
            requested=amount,
            consumed=consumed,
            remaining=remaining,
            batches=len(logs),
        )
        return ConsumeResult(
            article_id=article.id,
            requested=amount,
            consumed=consumed,
            remaining=remaining,
            unit=article.default_unit,
            logs=logs,
            conversion=conversion,
        )


async def consume_from_batch(
    *,
    batch_id: str,
    quantity: float,
    unit: str | None = None,
    source: ConsumptionSource = ConsumptionSource.MANUAL,
    notes: str | None = None,
) -> BatchConsumeResult:
    """Consume from one specific batch, all or nothing.

    Raises:
        NotFoundError: If the batch does not exist
        UnconvertibleUnitError: If ``unit`` cannot be converted to the article's unit
        InsufficientStockError: If the batch holds less than the requested quantity
    """
    with span("consumption_service.consume_from_batch"):
        batch = await inventory_service.get_batch(batch_id=batch_id)
        article = await inventory_service.get_article(article_id=batch.article_id)
        amount, conversion = await _to_canonical(quantity, unit, article)

        if conversion is not None:
            notes = f"{notes or ''} ({quantity} {unit})".strip()

        async with db_client.transaction():
            decremented = await db_client.conditional_decrement(
                collection="batches",
                record_id=batch.id,
                field="quantity",
                amount=amount,
            )
            if not decremented:
                current = await inventory_service.get_batch(batch_id=batch.id)
                raise InsufficientStockError(
                    available=current.quantity,
                    requested=amount,
                    unit=article.default_unit,
                )

            log = await write_log(
                article_id=article.id,
                batch_id=batch.id,
                quantity=amount,
                source=source,
                notes=notes,
            )
            updated = await inventory_service.get_batch(batch_id=batch.id)

        logger.info(
            "Consumed from batch",
            extra={"batch_id": batch.id, "article_id": article.id, "quantity": amount, "left": updated.quantity},
        )
        return BatchConsumeResult(batch=updated, log=log, conversion=conversion)


async def correct_stock(*, article_id: str, actual_stock: float, notes: str | None = None) -> StockCorrectionResult:
    """Bring the computed stock of an article in line with a counted stock.

    A surplus becomes one new batch and an ADDITION log; a deficit is consumed
    FIFO. Both are tagged CORRECTION.

    Raises:
        NotFoundError: If the article does not exist
    """
    with span("consumption_service.correct_stock"):
        article = await inventory_service.get_article(article_id=article_id)
        actual = round_quantity(actual_stock)

        async with db_client.transaction():
            previous = await inventory_service.get_current_stock(article_id=article.id)
            difference = round_quantity(actual - previous)

            if difference == 0:
                logger.info("Stock already matches", extra={"article_id": article.id, "stock": previous})
                return StockCorrectionResult(
                    article_id=article.id,
                    previous_stock=previous,
                    new_stock=previous,
                    difference=0,
                )

            batch = None
            if difference > 0:
                now = datetime.now(UTC)
                batch = await inventory_service.insert_batch(
                    article_id=article.id,
                    quantity=difference,
                    purchase_date=now,
                    notes=notes or "Stock correction (added)",
                )
                logs = [
                    await write_log(
                        article_id=article.id,
                        batch_id=batch.id,
                        quantity=difference,
                        source=ConsumptionSource.CORRECTION,
                        direction=ConsumptionDirection.ADDITION,
                        notes=notes or f"Stock corrected from {previous} to {actual}",
                        consumed_at=now,
                    )
                ]
            else:
                _, _, logs = await consume_fifo(
                    article_id=article.id,
                    quantity=-difference,
                    source=ConsumptionSource.CORRECTION,
                    notes=notes or f"Stock corrected from {previous} to {actual}",
                )

            new_stock = await inventory_service.get_current_stock(article_id=article.id)

        log_with_context(
            logger,
            "info",
            "Stock corrected",
            article_id=article.id,
            previous_stock=previous,
            new_stock=new_stock,
            difference=difference,
        )
        return StockCorrectionResult(
            article_id=article.id,
            previous_stock=previous,
            new_stock=new_stock,
            difference=difference,
            logs=logs,
            batch=batch,
        )


async def get_consumption_log(*, log_id: str) -> ConsumptionLog:
    """Get a consumption log entry by ID.

    Raises:
        NotFoundError: If the entry does not exist
    """
    try:
        record = await db_client.get_record(collection="consumption_logs", record_id=log_id)
    except KeyError as e:
        raise NotFoundError("Consumption log", log_id) from e
    return ConsumptionLog(**record)


async def update_consumption_log(*, log_id: str, data: ConsumptionLogUpdate) -> ConsumptionLog:
    """Edit quantity, time or notes of a log entry. Batches are not touched."""
    with span("consumption_service.update_consumption_log"):
        current = await get_consumption_log(log_id=log_id)
        changes: dict[str, Any] = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if "notes" in data.model_fields_set:
            changes["notes"] = data.notes
        if not changes:
            return current

        if "quantity" in changes:
            changes["quantity"] = round_quantity(changes["quantity"])

        record = await db_client.update_record(collection="consumption_logs", record_id=log_id, data=changes)
        logger.info("Updated consumption log", extra={"log_id": log_id, "fields": sorted(changes)})
        return ConsumptionLog(**record)


async def delete_consumption_log(*, log_id: str) -> None:
    """Delete a log entry. Batches are not touched."""
    with span("consumption_service.delete_consumption_log"):
        await get_consumption_log(log_id=log_id)
        await db_client.delete_record(collection="consumption_logs", record_id=log_id)
        logger.info("Deleted consumption log", extra={"log_id": log_id})

