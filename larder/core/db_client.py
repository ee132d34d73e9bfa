"""SQLite database client wrapper with CRUD operations."""

import asyncio
import json
import logging
import re
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from larder.core.config import constants, settings


logger = logging.getLogger(__name__)


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _validate_field_name(field: str) -> None:
    """Validate that a column name is a plain identifier."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", field):
        msg = f"Invalid field name: {field}"
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for embedding in a double-quoted filter literal via json.dumps.

    Non-ASCII text is kept as-is so the bound value matches the stored one.
    """
    return json.dumps(str(value), ensure_ascii=False)[1:-1]


def format_timestamp(value: datetime | date) -> str:
    """Serialize a datetime as a UTC ISO-8601 string so stored timestamps sort lexically.

    Naive datetimes are taken to be UTC; plain dates become midnight UTC.
    """
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=UTC)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def now_timestamp() -> str:
    """Current time in the stored timestamp format."""
    return format_timestamp(datetime.now(UTC))


def _serialize_value(val: Any) -> Any:
    """Convert a Python value into something SQLite accepts."""
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, datetime | date):
        return format_timestamp(val)
    if isinstance(val, bool):
        return int(val)
    if isinstance(val, dict | list):
        return json.dumps(val)
    return val


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert integer ID and foreign key fields to strings for Pydantic compatibility."""
    converted = record.copy()
    for key, value in converted.items():
        if isinstance(value, int) and (key == "id" or key.endswith("_id")):
            converted[key] = str(value)
    return converted


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        return value.replace("%", "\\%").replace("_", "\\_")

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


_COMPARISON = re.compile(
    r"""(\w+)\s*(>=|<=|!=|=|>|<|~)\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)')""",
    re.DOTALL,
)


def _unquote(match: re.Match[str]) -> str:
    """Undo the escaping of a quoted filter literal."""
    double_quoted = match.group(3)
    if double_quoted is not None:
        return json.loads(f'"{double_quoted}"', strict=False)
    return re.sub(r"\\(.)", r"\1", match.group(4), flags=re.DOTALL)


def _parse_single_comparison(comparison: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a single comparison expression into a SQL condition and its parameters."""
    null_match = re.match(r"^(\w+)\s*(=|!=)\s*null$", comparison)
    if null_match:
        field = null_match.group(1)
        keyword = "IS NULL" if null_match.group(2) == "=" else "IS NOT NULL"
        return f"{field} {keyword}", []

    match = _COMPARISON.fullmatch(comparison)
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    try:
        raw_value = _unquote(match)
    except json.JSONDecodeError as e:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg) from e

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    if is_like:
        return f"{field} LIKE ? ESCAPE '\\'", [f"%{value}%"]
    return f"{field} {sql_op} ?", [value]


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
    or_parts = _split_top_level(inner, "||")
    or_conditions = []
    or_params: list[str | int | float | None] = []

    for part in or_parts:
        cond, values = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.extend(values)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split on ``separator`` outside quoted literals and parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0
    quote: str | None = None
    escaped = False

    for char in text:
        current += char
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue

        if char in "\"'":
            quote = char
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1
        elif paren_depth == 0 and current.endswith(separator):
            parts.append(current[: -len(separator)].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups and quoted values."""
    return _split_top_level(filter_query, "&&")


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Supported syntax: ``field = "value"``, the operators ``= != > < >= <= ~``,
    ``field = null`` / ``field != null``, ``&&`` between terms and
    parenthesized ``||`` groups.
    """
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params: list[str | int | float | None] = []

    for raw_part in parts:
        part = raw_part.strip()

        # Handle parenthesized OR groups
        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, values = _parse_single_comparison(part)
            conditions.append(cond)
            params.extend(values)

    return " AND ".join(conditions), params


_SORT_TERM = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\s+(ASC|DESC))?(\s+NULLS\s+(FIRST|LAST))?$", re.IGNORECASE)


def _safe_sort(sort: str) -> str:
    """Validate an ORDER BY expression: comma separated ``column [ASC|DESC] [NULLS FIRST|LAST]`` terms."""
    if not sort:
        return "id ASC"

    terms = [term.strip() for term in sort.split(",")]
    if all(_SORT_TERM.match(term) for term in terms):
        return ", ".join(terms)

    logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
    return "id ASC"


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_tx_locks: dict[tuple[int, int, str], asyncio.Lock] = {}
_db_lock = asyncio.Lock()
_in_transaction: ContextVar[bool] = ContextVar("larder_in_transaction", default=False)
_holds_lock: ContextVar[bool] = ContextVar("larder_holds_lock", default=False)


def _cache_key(db_path: str | None = None) -> tuple[int, int, str]:
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_event_loop())
    return (thread_id, loop_id, str(get_db_path(db_path)))


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    loop = asyncio.get_event_loop()
    cache_key = _cache_key(db_path)
    thread_id, loop_id, path_str = cache_key
    path = Path(path_str)

    # Check if we have a cached connection and verify the loop is still valid
    if cache_key in _db_connections:
        cached_conn = _db_connections[cache_key]
        if not loop.is_closed():
            return cached_conn
        # Loop is closed, remove stale connection
        async with _db_lock:
            _db_connections.pop(cache_key, None)
            _tx_locks.pop(cache_key, None)

    # Create new connection with async lock to prevent races
    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode: statements commit on their own unless wrapped in transaction()
        conn = await aiosqlite.connect(str(path), isolation_level=None)
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn
        _tx_locks[cache_key] = asyncio.Lock()

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    thread_id, loop_id, _ = cache_key

    if cache_key not in _db_connections:
        return

    try:
        async with _db_lock:
            if cache_key in _db_connections:
                conn = _db_connections[cache_key]
                await conn.close()
                del _db_connections[cache_key]
                _tx_locks.pop(cache_key, None)
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": thread_id, "loop_id": loop_id, "db_path": cache_key[2]},
                )
    except Exception as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
        )


@asynccontextmanager
async def _locked_connection() -> AsyncIterator[aiosqlite.Connection]:
    """Yield the shared connection while holding its lock.

    Every record operation goes through here, so a statement from one task
    never runs inside another task's open transaction. Callers that already
    hold the lock (a transaction, or a record operation calling another)
    reuse it.
    """
    conn = await get_connection()
    if _holds_lock.get():
        yield conn
        return

    async with _tx_locks[_cache_key()]:
        token = _holds_lock.set(True)
        try:
            yield conn
        finally:
            _holds_lock.reset(token)


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """Run the enclosed record operations as one atomic write transaction.

    Transactions are serialized per connection and reentrant: a nested
    ``transaction()`` joins the outer one instead of opening a new one.
    The transaction rolls back if the block raises.
    """
    async with _locked_connection() as conn:
        if _in_transaction.get():
            yield conn
            return

        await conn.execute("BEGIN IMMEDIATE")
        token = _in_transaction.set(True)
        try:
            yield conn
        except BaseException:
            await conn.execute("ROLLBACK")
            logger.warning("Transaction rolled back")
            raise
        else:
            await conn.execute("COMMIT")
        finally:
            _in_transaction.reset(token)


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    schema = __import__("larder.core.schema", fromlist=["init_db"])
    await schema.init_db(db_path=db_path)


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    try:
        _validate_collection_name(collection)
        async with _locked_connection() as conn:
            columns = list(data.keys())
            placeholders = ["?" for _ in columns]
            columns_str = ", ".join(columns)
            placeholders_str = ", ".join(placeholders)

            values = [_serialize_value(data[key]) for key in columns]

            query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, values)

            record_id = cursor.lastrowid
            result = await get_record(collection=collection, record_id=str(record_id))

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return result
    except Exception as e:
        if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
            msg = f"Table '{collection}' does not exist. Call init_db() first."
            logger.error("Table not found", extra={"collection": collection})
            raise RuntimeError(msg) from e
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise RuntimeError(msg) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising KeyError if not found."""
    try:
        _validate_collection_name(collection)
        async with _locked_connection() as conn:
            query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (int(record_id),))
            row = await cursor.fetchone()

        if row is None:
            msg = f"Record not found in {collection}: {record_id}"
            raise KeyError(msg)

        columns = [description[0] for description in cursor.description]
        record = dict(zip(columns, row, strict=True))

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return _convert_record_ids(record)
    except KeyError:
        raise
    except ValueError as e:
        # Non-numeric ids can never match an integer primary key
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg) from e
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise RuntimeError(msg) from e


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        set_clause = ", ".join(f"{key} = ?" for key in data)
        values = [_serialize_value(val) for val in data.values()]
        values.append(int(record_id))

        async with _locked_connection() as conn:
            query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, values)

            if cursor.rowcount == 0:
                msg = f"Record not found in {collection}: {record_id}"
                raise KeyError(msg)

            logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
            return await get_record(collection=collection, record_id=record_id)
    except KeyError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise RuntimeError(msg) from e


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising KeyError if not found."""
    try:
        _validate_collection_name(collection)
        async with _locked_connection() as conn:
            query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (int(record_id),))

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise KeyError(msg)

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    except KeyError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to delete record from {collection}: {e}"
        raise RuntimeError(msg) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    try:
        _validate_collection_name(collection)

        where_clause = ""
        params: list[Any] = []
        if filter_query:
            where_clause, params = parse_filter(filter_query)
            where_clause = f"WHERE {where_clause}"

        safe_sort = _safe_sort(sort)
        offset = (page - 1) * per_page

        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {safe_sort} LIMIT ? OFFSET ?"  # noqa: S608 - collection and sort are validated
        params.extend([per_page, offset])

        async with _locked_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        columns = [description[0] for description in cursor.description]
        records = [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]

        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise RuntimeError(msg) from e


async def list_all_records(
    *,
    collection: str,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List every record matching the filter by walking all pages.

    The pages are read under one lock so a concurrent write cannot shift them.
    """
    per_page = constants.DEFAULT_PER_PAGE_LIMIT
    records: list[dict[str, Any]] = []
    page = 1

    async with _locked_connection():
        while True:
            chunk = await list_records(
                collection=collection,
                page=page,
                per_page=per_page,
                filter_query=filter_query,
                sort=sort,
            )
            records.extend(chunk)
            if len(chunk) < per_page:
                return records
            page += 1


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    try:
        _validate_collection_name(collection)

        where_clause, params = parse_filter(filter_query)
        safe_sort = _safe_sort(sort)

        # Guard against empty filter_query to avoid invalid WHERE clause
        if where_clause:
            query = f"SELECT * FROM {collection} WHERE {where_clause} ORDER BY {safe_sort} LIMIT 1"  # noqa: S608 - collection is validated
        else:
            query = f"SELECT * FROM {collection} ORDER BY {safe_sort} LIMIT 1"  # noqa: S608 - collection is validated
            params = []

        async with _locked_connection() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()

        if row is None:
            return None

        columns = [description[0] for description in cursor.description]
        record = dict(zip(columns, row, strict=True))

        logger.debug("Retrieved first record", extra={"collection": collection})
        return _convert_record_ids(record)
    except Exception as e:
        logger.error(
            "get_first_record_failed", extra={"collection": collection, "filter_query": filter_query, "error": str(e)}
        )
        msg = f"Failed to get first record from {collection}: {e}"
        raise RuntimeError(msg) from e


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count records matching the filter."""
    try:
        _validate_collection_name(collection)

        where_clause, params = parse_filter(filter_query)
        where_sql = f"WHERE {where_clause}" if where_clause else ""

        query = f"SELECT COUNT(*) FROM {collection} {where_sql}"  # noqa: S608 - collection is validated
        async with _locked_connection() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
    except Exception as e:
        logger.error("count_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to count records in {collection}: {e}"
        raise RuntimeError(msg) from e


async def sum_field(*, collection: str, field: str, filter_query: str = "") -> float:
    """Sum a numeric column over the records matching the filter (0 when none match)."""
    try:
        _validate_collection_name(collection)
        _validate_field_name(field)

        where_clause, params = parse_filter(filter_query)
        where_sql = f"WHERE {where_clause}" if where_clause else ""

        query = f"SELECT COALESCE(SUM({field}), 0) FROM {collection} {where_sql}"  # noqa: S608 - names are validated
        async with _locked_connection() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
        return float(row[0]) if row else 0.0
    except Exception as e:
        logger.error("sum_field_failed", extra={"collection": collection, "field": field, "error": str(e)})
        msg = f"Failed to sum {field} in {collection}: {e}"
        raise RuntimeError(msg) from e


async def conditional_decrement(*, collection: str, record_id: str, field: str, amount: float) -> bool:
    """Subtract ``amount`` from a numeric column only if the result stays non-negative.

    Returns:
        True if the row was updated, False if it held less than ``amount``
    """
    try:
        _validate_collection_name(collection)
        _validate_field_name(field)

        query = (
            f"UPDATE {collection} SET {field} = MAX(0, ROUND({field} - ?, {constants.QUANTITY_PRECISION})) "  # noqa: S608 - names are validated
            f"WHERE id = ? AND {field} >= ? - {constants.PACK_TOLERANCE}"
        )
        async with _locked_connection() as conn:
            cursor = await conn.execute(query, (amount, int(record_id), amount))

        updated = cursor.rowcount > 0
        logger.debug(
            "Conditional decrement",
            extra={"collection": collection, "record_id": record_id, "amount": amount, "updated": updated},
        )
        return updated
    except Exception as e:
        logger.error(
            "conditional_decrement_failed",
            extra={"collection": collection, "record_id": record_id, "error": str(e)},
        )
        msg = f"Failed to decrement {field} in {collection}: {e}"
        raise RuntimeError(msg) from e
