"""Shopping service for list generation and the shopping list lifecycle."""

import logging
from datetime import UTC, datetime
from typing import Any

from larder.core import db_client
from larder.core.db_client import sanitize_param
from larder.core.errors import ConflictError, NotFoundError
from larder.core.logging import span
from larder.core.rounding import packs_needed, round_display
from larder.domain.article import Article
from larder.domain.create_models import ShoppingItemCreate
from larder.domain.shopping import ShoppingList, ShoppingListItem, ShoppingReason
from larder.domain.update_models import ShoppingItemUpdate
from larder.services import demand_service, inventory_service
from larder.services.demand_service import DemandLine
from larder.services.unit_service import Converted, UnitCatalog


logger = logging.getLogger(__name__)


def default_list_name(shop_date: datetime) -> str:
    return f"Shopping {shop_date.date().isoformat()}"


def recommend_packs(line: DemandLine, article: Article | None, catalog: UnitCatalog) -> int:
    """Whole packages covering the line's need.

    Falls back to one pack when the line has no article or the package unit
    cannot be expressed in the unit of the need.
    """
    if article is None:
        return 1

    result = catalog.convert(article.package_size, article.package_unit, line.unit)
    if not isinstance(result, Converted) or result.quantity <= 0:
        logger.info(
            "Package size not convertible, recommending one pack",
            extra={"article_id": article.id, "package_unit": article.package_unit, "need_unit": line.unit},
        )
        return 1

    return packs_needed(line.total_need, result.quantity)


async def _hydrate(record: dict[str, Any]) -> ShoppingList:
    item_records = await db_client.list_all_records(
        collection="shopping_list_items",
        filter_query=f'list_id = "{sanitize_param(record["id"])}"',
        sort="id ASC",
    )

    names: dict[str, str] = {}
    items = []
    for item_record in item_records:
        article_id = item_record.get("article_id")
        if article_id and article_id not in names:
            article = await db_client.get_first_record(
                collection="articles",
                filter_query=f'id = "{sanitize_param(article_id)}"',
            )
            names[article_id] = article["name"] if article else ""
        items.append(ShoppingListItem(**item_record, article_name=names.get(article_id) or None))

    estimated = [item.estimated_price for item in items if item.estimated_price is not None]
    return ShoppingList(
        **record,
        items=items,
        total_items=len(items),
        purchased_items=sum(1 for item in items if item.is_purchased),
        estimated_total=round_display(sum(estimated)),
    )


async def _get_list_record(list_id: str) -> dict[str, Any]:
    try:
        return await db_client.get_record(collection="shopping_lists", record_id=list_id)
    except KeyError as e:
        raise NotFoundError("Shopping list", list_id) from e


async def _get_item_record(list_id: str, item_id: str) -> dict[str, Any]:
    try:
        record = await db_client.get_record(collection="shopping_list_items", record_id=item_id)
    except KeyError as e:
        raise NotFoundError("Shopping list item", item_id) from e
    if record["list_id"] != list_id:
        raise NotFoundError("Shopping list item", item_id)
    return record


async def generate_shopping_list(
    *,
    shop_date: datetime,
    plan_until: datetime,
    name: str | None = None,
) -> ShoppingList:
    """Generate and persist a shopping list from planned meals, forecasts and stock thresholds.

    Every call creates a new list; nothing is deduplicated against earlier lists.

    Args:
        shop_date: Day of the shopping trip (start of the planning window)
        plan_until: Last planned day (end of the planning window)
        name: List name, defaults to "Shopping <YYYY-MM-DD>"

    Returns:
        The new list with its items; purchased_items and estimated_total are 0
    """
    with span("shopping_service.generate_shopping_list"):
        window_start = demand_service.start_of_day(shop_date)
        window_end = demand_service.end_of_day(plan_until)

        catalog = await UnitCatalog.load()
        lines = await demand_service.aggregate(shop_date=shop_date, plan_until=plan_until, catalog=catalog)

        items_to_create: list[dict[str, Any]] = []
        for line in lines.values():
            need = line.total_need
            if round_display(need) <= 0:
                continue

            article = await inventory_service.get_article(article_id=line.article_id) if line.article_id else None
            packs = recommend_packs(line, article, catalog)

            estimated_price = None
            if article is not None:
                pack_price = await inventory_service.estimate_pack_price(article_id=article.id)
                if pack_price is not None:
                    estimated_price = round_display(pack_price * packs)

            items_to_create.append(
                {
                    "article_id": line.article_id,
                    "custom_name": line.name if line.reason == ShoppingReason.RECIPE else None,
                    "needed_quantity": round_display(need),
                    "unit": line.unit,
                    "recommended_packs": packs,
                    "estimated_price": estimated_price,
                    "reason": line.reason,
                }
            )

        async with db_client.transaction():
            record = await db_client.create_record(
                collection="shopping_lists",
                data={
                    "name": name or default_list_name(window_start),
                    "shop_date": window_start,
                    "plan_until_date": window_end,
                    "created": db_client.now_timestamp(),
                },
            )
            for item in items_to_create:
                await db_client.create_record(collection="shopping_list_items", data={"list_id": record["id"], **item})

        logger.info(
            "Generated shopping list",
            extra={"list_id": record["id"], "items": len(items_to_create), "demand_lines": len(lines)},
        )

        shopping_list = await _hydrate(record)
        return shopping_list.model_copy(update={"purchased_items": 0, "estimated_total": 0})


async def list_shopping_lists() -> list[ShoppingList]:
    """All shopping lists, newest first."""
    with span("shopping_service.list_shopping_lists"):
        records = await db_client.list_all_records(collection="shopping_lists", sort="created DESC, id DESC")
        return [await _hydrate(record) for record in records]


async def get_shopping_list(*, list_id: str) -> ShoppingList:
    """Get a shopping list with its items.

    Raises:
        NotFoundError: If the list does not exist
    """
    with span("shopping_service.get_shopping_list"):
        return await _hydrate(await _get_list_record(list_id))


async def get_active_shopping_list() -> ShoppingList:
    """The most recently created list that is not completed.

    Raises:
        NotFoundError: If every list is completed
    """
    with span("shopping_service.get_active_shopping_list"):
        record = await db_client.get_first_record(
            collection="shopping_lists",
            filter_query="completed_at = null",
            sort="created DESC, id DESC",
        )
        if record is None:
            raise NotFoundError("Active shopping list")
        return await _hydrate(record)


async def delete_shopping_list(*, list_id: str) -> None:
    """Delete a list together with its items."""
    with span("shopping_service.delete_shopping_list"):
        await _get_list_record(list_id)
        await db_client.delete_record(collection="shopping_lists", record_id=list_id)
        logger.info("Deleted shopping list", extra={"list_id": list_id})


async def add_item(*, list_id: str, data: ShoppingItemCreate) -> ShoppingListItem:
    """Manually add an item to a list.

    Raises:
        NotFoundError: If the list or the referenced article does not exist
    """
    with span("shopping_service.add_item"):
        await _get_list_record(list_id)
        article_name = None
        if data.article_id:
            article = await inventory_service.get_article(article_id=data.article_id)
            article_name = article.name

        record = await db_client.create_record(
            collection="shopping_list_items",
            data={"list_id": list_id, **data.model_dump()},
        )
        logger.info("Added shopping list item", extra={"list_id": list_id, "item_id": record["id"]})
        return ShoppingListItem(**record, article_name=article_name)


async def update_item(*, list_id: str, item_id: str, data: ShoppingItemUpdate) -> ShoppingListItem:
    """Update an item; a new needed quantity rescales an existing price estimate.

    Raises:
        NotFoundError: If the item does not belong to the list
    """
    with span("shopping_service.update_item"):
        current = ShoppingListItem(**await _get_item_record(list_id, item_id))
        changes: dict[str, Any] = data.model_dump(exclude_unset=True)
        for field in ("is_purchased", "needed_quantity", "recommended_packs"):
            if changes.get(field, 0) is None:
                changes.pop(field)

        new_needed = changes.get("needed_quantity")
        if (
            new_needed is not None
            and current.article_id
            and current.needed_quantity > 0
            and current.estimated_price is not None
        ):
            price_per_unit = current.estimated_price / current.needed_quantity
            changes["estimated_price"] = round_display(price_per_unit * new_needed)

        if not changes:
            return current

        record = await db_client.update_record(collection="shopping_list_items", record_id=item_id, data=changes)
        logger.info("Updated shopping list item", extra={"list_id": list_id, "item_id": item_id})
        return ShoppingListItem(**record)


async def delete_item(*, list_id: str, item_id: str) -> None:
    with span("shopping_service.delete_item"):
        await _get_item_record(list_id, item_id)
        await db_client.delete_record(collection="shopping_list_items", record_id=item_id)
        logger.info("Deleted shopping list item", extra={"list_id": list_id, "item_id": item_id})


async def complete_shopping_list(*, list_id: str) -> ShoppingList:
    """Turn the purchased items of a list into batches and close the list.

    Each purchased item with an article becomes one batch of
    ``purchased_quantity`` (or ``needed_quantity``), priced at ``actual_price``
    (or ``estimated_price``), with the item's expiry and purchase dates.

    Raises:
        NotFoundError: If the list does not exist
        ConflictError: If the list is already completed
    """
    with span("shopping_service.complete_shopping_list"):
        now = datetime.now(UTC)

        async with db_client.transaction():
            record = await _get_list_record(list_id)
            if record.get("completed_at"):
                raise ConflictError("Shopping list already completed", dependency=f"shopping_list:{list_id}")

            item_records = await db_client.list_all_records(
                collection="shopping_list_items",
                filter_query=f'list_id = "{sanitize_param(list_id)}" && is_purchased = "true" && article_id != null',
                sort="id ASC",
            )

            created = 0
            for item in (ShoppingListItem(**r) for r in item_records):
                quantity = item.purchased_quantity if item.purchased_quantity is not None else item.needed_quantity
                if quantity <= 0:
                    logger.warning(
                        "Skipping purchased item without quantity",
                        extra={"list_id": list_id, "item_id": item.id},
                    )
                    continue

                await inventory_service.insert_batch(
                    article_id=item.article_id,
                    quantity=quantity,
                    purchase_date=item.purchase_date or now,
                    expiry_date=item.expiry_date,
                    purchase_price=item.actual_price if item.actual_price is not None else item.estimated_price,
                )
                created += 1

            record = await db_client.update_record(
                collection="shopping_lists",
                record_id=list_id,
                data={"completed_at": now},
            )

        logger.info("Completed shopping list", extra={"list_id": list_id, "batches_created": created})
        return await _hydrate(record)
