"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

import logfire
import pytest

from larder.core import db_client
from larder.core.config import settings


logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_test_logfire() -> None:
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
async def test_db(tmp_path, monkeypatch) -> AsyncIterator[None]:
    """Fresh SQLite database (schema plus default units) for each test."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "test.db"))
    await db_client.init_db()
    yield
    await db_client.close_connection()


class Seed:
    """Writes fixture records straight into the database."""

    async def unit(self, symbol: str, **fields: Any) -> dict[str, Any]:
        data = {"symbol": symbol, "name": fields.pop("name", symbol), **fields}
        return await db_client.create_record(collection="units", data=data)

    async def article(self, name: str, **fields: Any) -> dict[str, Any]:
        return await db_client.create_record(collection="articles", data={"name": name, **fields})

    async def batch(
        self,
        article_id: str,
        quantity: float,
        *,
        initial_quantity: float | None = None,
        expiry_date: datetime | None = None,
        purchase_date: datetime | None = None,
        purchase_price: float | None = None,
    ) -> dict[str, Any]:
        return await db_client.create_record(
            collection="batches",
            data={
                "article_id": article_id,
                "quantity": quantity,
                "initial_quantity": initial_quantity if initial_quantity is not None else quantity,
                "purchase_date": purchase_date or datetime.now(UTC),
                "expiry_date": expiry_date,
                "purchase_price": purchase_price,
                "created": db_client.now_timestamp(),
            },
        )

    async def recipe(self, name: str, *, servings: int = 2, ingredients: list[dict[str, Any]]) -> dict[str, Any]:
        recipe = await db_client.create_record(collection="recipes", data={"name": name, "servings": servings})
        for ingredient in ingredients:
            await db_client.create_record(
                collection="recipe_ingredients",
                data={"recipe_id": recipe["id"], **ingredient},
            )
        return recipe

    async def meal(self, recipe_id: str, date: datetime, *, servings: int = 2, **fields: Any) -> dict[str, Any]:
        return await db_client.create_record(
            collection="meal_plan_entries",
            data={"recipe_id": recipe_id, "date": date, "meal_type": "dinner", "servings": servings, **fields},
        )

    async def log(self, article_id: str, quantity: float, *, consumed_at: datetime, **fields: Any) -> dict[str, Any]:
        return await db_client.create_record(
            collection="consumption_logs",
            data={"article_id": article_id, "quantity": quantity, "consumed_at": consumed_at, **fields},
        )


@pytest.fixture
def seed(test_db) -> Seed:
    """Record factory bound to the temporary database."""
    return Seed()
