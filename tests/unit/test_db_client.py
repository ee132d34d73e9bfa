"""Tests for the SQLite client: filters, sorting, transactions and guarded updates."""

import asyncio
from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from larder.core import db_client
from larder.core.config import constants


@pytest.mark.unit
class TestParseFilter:
    def test_single_comparison(self) -> None:
        """Test a quoted comparison becomes a bound parameter."""
        where, params = db_client.parse_filter('name = "Milk"')

        assert where == "name = ?"
        assert params == ["Milk"]

    def test_numbers_and_booleans(self) -> None:
        """Test numeric and boolean literals are typed."""
        where, params = db_client.parse_filter('quantity > "0" && is_consumable = "true" && price <= "2.5"')

        assert where == "quantity > ? AND is_consumable = ? AND price <= ?"
        assert params == [0, True, 2.5]

    def test_null_comparisons(self) -> None:
        """Test null comparisons use IS NULL and IS NOT NULL without parameters."""
        where, params = db_client.parse_filter('completed_at = null && min_stock != null')

        assert where == "completed_at IS NULL AND min_stock IS NOT NULL"
        assert params == []

    def test_or_group(self) -> None:
        """Test a parenthesized || group becomes an OR clause."""
        where, params = db_client.parse_filter('(default_unit = "g" || package_unit = "g")')

        assert where == "(default_unit = ? OR package_unit = ?)"
        assert params == ["g", "g"]

    def test_like_escapes_wildcards(self) -> None:
        """Test ~ maps to LIKE with escaped wildcards."""
        where, params = db_client.parse_filter('name ~ "100%_oat"')

        assert "LIKE" in where
        assert params == ["%100\\%\\_oat%"]

    def test_non_ascii_value_is_bound_verbatim(self) -> None:
        """Test umlauts survive escaping and reach SQL unchanged."""
        where, params = db_client.parse_filter(f'category = "{db_client.sanitize_param("Gemüse")}"')

        assert where == "category = ?"
        assert params == ["Gemüse"]

    def test_quotes_inside_value(self) -> None:
        """Test apostrophes and escaped double quotes stay part of the value."""
        value = 'Baker\'s "00" flour'

        _, params = db_client.parse_filter(f'category = "{db_client.sanitize_param(value)}"')

        assert params == [value]

    def test_separators_inside_value(self) -> None:
        """Test && and || inside a quoted value do not split the filter."""
        nuts = db_client.sanitize_param("Nuts (salted) && seeds")
        where, params = db_client.parse_filter(f'(category = "{nuts}" || category = "a || b") && name != null')

        assert where == "(category = ? OR category = ?) AND name IS NOT NULL"
        assert params == ["Nuts (salted) && seeds", "a || b"]

    def test_invalid_syntax(self) -> None:
        """Test malformed terms are rejected."""
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            db_client.parse_filter("name = Milk")


@pytest.mark.unit
class TestSafeSort:
    def test_multi_term_with_nulls_last(self) -> None:
        """Test FIFO ordering terms pass validation unchanged."""
        sort = "expiry_date ASC NULLS LAST, purchase_date ASC, id ASC"

        assert db_client._safe_sort(sort) == sort

    def test_injection_falls_back(self) -> None:
        """Test anything but column names and directions falls back to id ordering."""
        assert db_client._safe_sort("id; DROP TABLE batches") == "id ASC"


@pytest.mark.unit
class TestFormatTimestamp:
    def test_utc_with_microseconds(self) -> None:
        """Test timestamps are UTC ISO strings with fixed precision."""
        value = datetime(2026, 11, 2, 12, 30, tzinfo=UTC)

        assert db_client.format_timestamp(value) == "2026-11-02T12:30:00.000000+00:00"

    def test_converts_offsets_to_utc(self) -> None:
        """Test aware datetimes in other zones are normalized to UTC."""
        value = datetime(2026, 11, 2, 1, 0, tzinfo=timezone(timedelta(hours=2)))

        assert db_client.format_timestamp(value) == "2026-11-01T23:00:00.000000+00:00"

    def test_naive_and_date(self) -> None:
        """Test naive datetimes are taken as UTC and dates become midnight."""
        assert db_client.format_timestamp(datetime(2026, 1, 5, 8)) == "2026-01-05T08:00:00.000000+00:00"
        assert db_client.format_timestamp(date(2026, 1, 5)) == "2026-01-05T00:00:00.000000+00:00"


@pytest.mark.unit
class TestRecords:
    async def test_create_and_get(self, test_db) -> None:
        """Test created records come back with string ids."""
        record = await db_client.create_record(
            collection="articles",
            data={"name": "Milk", "default_unit": "ml", "is_consumable": True},
        )

        assert record["id"] == "1"
        assert record["is_consumable"] == 1
        fetched = await db_client.get_record(collection="articles", record_id=record["id"])
        assert fetched["name"] == "Milk"

    async def test_foreign_keys_become_strings(self, test_db) -> None:
        """Test *_id columns are converted to strings."""
        article = await db_client.create_record(collection="articles", data={"name": "Milk"})
        batch = await db_client.create_record(
            collection="batches",
            data={
                "article_id": article["id"],
                "quantity": 1,
                "initial_quantity": 1,
                "purchase_date": datetime.now(UTC),
            },
        )

        assert batch["article_id"] == article["id"]

    async def test_get_missing_raises_key_error(self, test_db) -> None:
        """Test missing and non-numeric ids raise KeyError."""
        with pytest.raises(KeyError):
            await db_client.get_record(collection="articles", record_id="99")
        with pytest.raises(KeyError):
            await db_client.get_record(collection="articles", record_id="abc")

    async def test_update_and_delete(self, test_db) -> None:
        """Test updates return the new record and deletes remove it."""
        record = await db_client.create_record(collection="articles", data={"name": "Milk"})

        updated = await db_client.update_record(collection="articles", record_id=record["id"], data={"min_stock": 2})
        assert updated["min_stock"] == 2

        await db_client.delete_record(collection="articles", record_id=record["id"])
        assert await db_client.count_records(collection="articles") == 0

    async def test_empty_update_rejected(self, test_db) -> None:
        """Test an empty update payload is refused."""
        with pytest.raises(ValueError, match="Empty update payload"):
            await db_client.update_record(collection="articles", record_id="1", data={})

    async def test_list_all_records_walks_pages(self, test_db, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test every record is returned across several pages."""
        monkeypatch.setattr(constants, "DEFAULT_PER_PAGE_LIMIT", 2)
        for i in range(5):
            await db_client.create_record(collection="articles", data={"name": f"Article {i}"})

        records = await db_client.list_all_records(collection="articles", sort="id DESC")

        assert [r["name"] for r in records] == [f"Article {i}" for i in range(4, -1, -1)]

    async def test_sort_nulls_last(self, test_db) -> None:
        """Test NULLS LAST puts undated rows after dated ones."""
        article = await db_client.create_record(collection="articles", data={"name": "Rice"})
        now = datetime.now(UTC)
        for expiry in (None, now + timedelta(days=3), now + timedelta(days=1)):
            await db_client.create_record(
                collection="batches",
                data={
                    "article_id": article["id"],
                    "quantity": 1,
                    "initial_quantity": 1,
                    "purchase_date": now,
                    "expiry_date": expiry,
                },
            )

        records = await db_client.list_all_records(collection="batches", sort="expiry_date ASC NULLS LAST, id ASC")

        assert [r["id"] for r in records] == ["3", "2", "1"]

    async def test_non_ascii_filter_matches_stored_text(self, test_db) -> None:
        """Test lookups by umlaut and apostrophe values find their rows."""
        for category in ("Gemüse", "Baker's flour"):
            await db_client.create_record(collection="articles", data={"name": category, "category": category})

        for category in ("Gemüse", "Baker's flour"):
            record = await db_client.get_first_record(
                collection="articles", filter_query=f'category = "{db_client.sanitize_param(category)}"'
            )
            assert record is not None
            assert record["name"] == category

    async def test_sum_field(self, test_db) -> None:
        """Test sums default to zero when nothing matches."""
        await db_client.create_record(collection="articles", data={"name": "A", "min_stock": 1.5})
        await db_client.create_record(collection="articles", data={"name": "B", "min_stock": 2})

        assert await db_client.sum_field(collection="articles", field="min_stock") == 3.5
        assert await db_client.sum_field(collection="articles", field="min_stock", filter_query='name = "C"') == 0.0


@pytest.mark.unit
class TestConditionalDecrement:
    async def _batch(self, quantity: float) -> dict:
        article = await db_client.create_record(collection="articles", data={"name": "Flour"})
        return await db_client.create_record(
            collection="batches",
            data={
                "article_id": article["id"],
                "quantity": quantity,
                "initial_quantity": quantity,
                "purchase_date": datetime.now(UTC),
            },
        )

    async def test_decrements_when_enough(self, test_db) -> None:
        """Test the column is reduced by the amount."""
        batch = await self._batch(5)

        assert await db_client.conditional_decrement(
            collection="batches", record_id=batch["id"], field="quantity", amount=1.25
        )
        record = await db_client.get_record(collection="batches", record_id=batch["id"])
        assert record["quantity"] == 3.75

    async def test_refuses_to_go_negative(self, test_db) -> None:
        """Test the update is skipped when the row holds too little."""
        batch = await self._batch(1)

        assert not await db_client.conditional_decrement(
            collection="batches", record_id=batch["id"], field="quantity", amount=2
        )
        record = await db_client.get_record(collection="batches", record_id=batch["id"])
        assert record["quantity"] == 1


@pytest.mark.unit
class TestTransaction:
    async def test_commits_on_success(self, test_db) -> None:
        """Test writes inside a transaction persist after the block."""
        async with db_client.transaction():
            await db_client.create_record(collection="articles", data={"name": "Oats"})

        assert await db_client.count_records(collection="articles") == 1

    async def test_rolls_back_on_error(self, test_db) -> None:
        """Test every write of a failed block is undone."""
        with pytest.raises(ValueError, match="boom"):
            async with db_client.transaction():
                await db_client.create_record(collection="articles", data={"name": "Ghost"})
                raise ValueError("boom")

        assert await db_client.count_records(collection="articles") == 0

    async def test_nested_joins_outer(self, test_db) -> None:
        """Test a nested transaction is part of the outer one."""
        with pytest.raises(ValueError, match="outer"):
            async with db_client.transaction():
                async with db_client.transaction():
                    await db_client.create_record(collection="articles", data={"name": "Inner"})
                raise ValueError("outer")

        assert await db_client.count_records(collection="articles") == 0

    async def test_plain_write_does_not_join_open_transaction(self, test_db) -> None:
        """Test a write from another task survives a concurrent rollback."""
        opened = asyncio.Event()

        async def failing_purchase() -> None:
            async with db_client.transaction():
                await db_client.create_record(collection="articles", data={"name": "Rolled back"})
                opened.set()
                await asyncio.sleep(0.05)
                raise ValueError("purchase failed")

        async def manual_item() -> None:
            await opened.wait()
            await db_client.create_record(collection="articles", data={"name": "Kept"})

        results = await asyncio.gather(failing_purchase(), manual_item(), return_exceptions=True)

        assert isinstance(results[0], ValueError)
        records = await db_client.list_all_records(collection="articles")
        assert [r["name"] for r in records] == ["Kept"]

    async def test_reader_never_sees_uncommitted_writes(self, test_db) -> None:
        """Test a concurrent read waits for the open transaction to finish."""
        opened = asyncio.Event()
        seen: list[int] = []

        async def failing_write() -> None:
            async with db_client.transaction():
                await db_client.create_record(collection="articles", data={"name": "Pending"})
                opened.set()
                await asyncio.sleep(0.05)
                raise ValueError("abort")

        async def reader() -> None:
            await opened.wait()
            seen.append(await db_client.count_records(collection="articles"))

        await asyncio.gather(failing_write(), reader(), return_exceptions=True)

        assert seen == [0]


@pytest.mark.unit
class TestSchema:
    async def test_default_units_seeded(self, test_db) -> None:
        """Test the default units exist after initialization."""
        records = await db_client.list_all_records(collection="units", sort="symbol ASC")

        assert [r["symbol"] for r in records] == ["g", "kg", "l", "ml", "pcs"]

    async def test_init_is_idempotent(self, test_db) -> None:
        """Test running the schema twice does not duplicate the seed."""
        await db_client.init_db()

        assert await db_client.count_records(collection="units") == 5

    async def test_addition_logs_must_be_corrections(self, test_db) -> None:
        """Test the store refuses ADDITION logs from other sources."""
        article = await db_client.create_record(collection="articles", data={"name": "Milk"})

        with pytest.raises(RuntimeError):
            await db_client.create_record(
                collection="consumption_logs",
                data={
                    "article_id": article["id"],
                    "quantity": 1,
                    "direction": "ADDITION",
                    "source": "MANUAL",
                    "consumed_at": datetime.now(UTC),
                },
            )
