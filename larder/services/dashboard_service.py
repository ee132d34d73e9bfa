"""Dashboard service: one overview of expiry, low stock, today's meals and shopping."""

import logging
from datetime import UTC, datetime

from larder.core import db_client
from larder.core.errors import NotFoundError
from larder.core.logging import span
from larder.models.service_models import Dashboard, DashboardStats, ShoppingListSummary
from larder.services import demand_service, inventory_service, recipe_service, shopping_service


logger = logging.getLogger(__name__)


async def _active_list_summary() -> ShoppingListSummary | None:
    try:
        shopping_list = await shopping_service.get_active_shopping_list()
    except NotFoundError:
        return None
    return ShoppingListSummary(
        id=shopping_list.id,
        name=shopping_list.name,
        shop_date=shopping_list.shop_date,
        total_items=shopping_list.total_items,
        purchased_items=shopping_list.purchased_items,
        estimated_total=shopping_list.estimated_total,
    )


async def get_dashboard(*, now: datetime | None = None) -> Dashboard:
    """Build the household overview as of ``now``.

    Batches expiring within ``settings.expiring_days`` are split into those
    already expired before today and those expiring from today on.
    """
    with span("dashboard_service.get_dashboard"):
        now = now or datetime.now(UTC)
        today_start = demand_service.start_of_day(now)

        expiring = await inventory_service.list_expiring_batches(now=now)
        expired = [entry for entry in expiring if entry.batch.expiry_date < today_start]
        expiring_soon = [entry for entry in expiring if entry.batch.expiry_date >= today_start]

        stats = DashboardStats(
            total_articles=await db_client.count_records(collection="articles"),
            active_batches=await db_client.count_records(collection="batches", filter_query='quantity > "0"'),
            recipes=await db_client.count_records(collection="recipes"),
        )

        dashboard = Dashboard(
            expired=expired,
            expiring_soon=expiring_soon,
            low_stock=await inventory_service.list_low_stock_articles(),
            todays_meals=await recipe_service.list_meal_plan_entries(
                date_from=today_start, date_to=demand_service.end_of_day(now)
            ),
            shopping_list=await _active_list_summary(),
            stats=stats,
        )

        logger.info(
            "Built dashboard",
            extra={"expired": len(expired), "expiring_soon": len(expiring_soon), "low_stock": len(dashboard.low_stock)},
        )
        return dashboard
