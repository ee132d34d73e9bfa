"""SQLite schema management (code-first approach)."""

import logging

import aiosqlite

from larder.core.config import settings
from larder.core.db_client import get_connection


logger = logging.getLogger(__name__)


# Central list of all collections in the schema, in dependency order
COLLECTIONS = [
    "units",
    "articles",
    "batches",
    "recipes",
    "recipe_ingredients",
    "consumption_logs",
    "meal_plan_entries",
    "shopping_lists",
    "shopping_list_items",
]


_TABLES: dict[str, str] = {
    "units": """
        CREATE TABLE IF NOT EXISTS units (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            symbol TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            is_default INTEGER NOT NULL DEFAULT 0,
            conversion_group TEXT,
            conversion_factor REAL NOT NULL DEFAULT 1 CHECK (conversion_factor > 0),
            converts_to_unit_id INTEGER REFERENCES units(id),
            converts_to_amount REAL CHECK (converts_to_amount IS NULL OR converts_to_amount > 0),
            sort_order INTEGER NOT NULL DEFAULT 0,
            created TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))
        )
    """,
    "articles": """
        CREATE TABLE IF NOT EXISTS articles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            default_unit TEXT NOT NULL DEFAULT 'pcs',
            package_size REAL NOT NULL DEFAULT 1 CHECK (package_size > 0),
            package_unit TEXT NOT NULL DEFAULT 'pcs',
            min_stock REAL,
            default_expiry_days INTEGER,
            calories REAL,
            protein REAL,
            carbs REAL,
            fat REAL,
            fiber REAL,
            category TEXT,
            is_consumable INTEGER NOT NULL DEFAULT 1,
            created TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))
        )
    """,
    "batches": """
        CREATE TABLE IF NOT EXISTS batches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            article_id INTEGER NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
            quantity REAL NOT NULL CHECK (quantity >= 0),
            initial_quantity REAL NOT NULL CHECK (initial_quantity > 0),
            purchase_date TEXT NOT NULL,
            expiry_date TEXT,
            purchase_price REAL,
            notes TEXT,
            created TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))
        )
    """,
    "recipes": """
        CREATE TABLE IF NOT EXISTS recipes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT,
            servings INTEGER NOT NULL DEFAULT 2 CHECK (servings > 0),
            instructions TEXT,
            prep_time INTEGER,
            cook_time INTEGER,
            created TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))
        )
    """,
    "recipe_ingredients": """
        CREATE TABLE IF NOT EXISTS recipe_ingredients (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            recipe_id INTEGER NOT NULL REFERENCES recipes(id) ON DELETE CASCADE,
            article_id INTEGER REFERENCES articles(id) ON DELETE SET NULL,
            category_match TEXT,
            quantity REAL NOT NULL CHECK (quantity > 0),
            unit TEXT NOT NULL,
            is_optional INTEGER NOT NULL DEFAULT 0,
            notes TEXT
        )
    """,
    "consumption_logs": """
        CREATE TABLE IF NOT EXISTS consumption_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            article_id INTEGER NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
            batch_id INTEGER REFERENCES batches(id) ON DELETE SET NULL,
            recipe_id INTEGER REFERENCES recipes(id) ON DELETE SET NULL,
            quantity REAL NOT NULL CHECK (quantity >= 0),
            direction TEXT NOT NULL DEFAULT 'CONSUMPTION'
                CHECK (direction IN ('CONSUMPTION', 'ADDITION')),
            consumed_at TEXT NOT NULL,
            source TEXT NOT NULL DEFAULT 'MANUAL'
                CHECK (source IN ('MANUAL', 'RECIPE', 'EXPIRED', 'WASTE', 'CORRECTION')),
            notes TEXT,
            CHECK (direction = 'CONSUMPTION' OR source = 'CORRECTION')
        )
    """,
    "meal_plan_entries": """
        CREATE TABLE IF NOT EXISTS meal_plan_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            meal_type TEXT NOT NULL,
            recipe_id INTEGER NOT NULL REFERENCES recipes(id) ON DELETE CASCADE,
            servings INTEGER NOT NULL DEFAULT 2 CHECK (servings > 0),
            notes TEXT,
            completed_at TEXT
        )
    """,
    "shopping_lists": """
        CREATE TABLE IF NOT EXISTS shopping_lists (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            shop_date TEXT NOT NULL,
            plan_until_date TEXT NOT NULL,
            created TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')),
            completed_at TEXT
        )
    """,
    "shopping_list_items": """
        CREATE TABLE IF NOT EXISTS shopping_list_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            list_id INTEGER NOT NULL REFERENCES shopping_lists(id) ON DELETE CASCADE,
            article_id INTEGER REFERENCES articles(id) ON DELETE SET NULL,
            custom_name TEXT,
            needed_quantity REAL NOT NULL CHECK (needed_quantity >= 0),
            unit TEXT NOT NULL DEFAULT 'pcs',
            recommended_packs INTEGER NOT NULL DEFAULT 1 CHECK (recommended_packs >= 1),
            estimated_price REAL,
            is_purchased INTEGER NOT NULL DEFAULT 0,
            purchased_quantity REAL,
            actual_price REAL,
            purchase_date TEXT,
            expiry_date TEXT,
            reason TEXT NOT NULL DEFAULT 'MANUAL'
                CHECK (reason IN ('RECIPE', 'LOW_STOCK', 'FORECAST', 'MANUAL'))
        )
    """,
}


_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_batches_article ON batches (article_id, expiry_date, purchase_date)",
    "CREATE INDEX IF NOT EXISTS idx_logs_article ON consumption_logs (article_id, consumed_at)",
    "CREATE INDEX IF NOT EXISTS idx_ingredients_recipe ON recipe_ingredients (recipe_id)",
    "CREATE INDEX IF NOT EXISTS idx_meal_plan_date ON meal_plan_entries (date)",
    "CREATE INDEX IF NOT EXISTS idx_items_list ON shopping_list_items (list_id)",
]


# symbol, name, conversion_group, conversion_factor, sort_order
DEFAULT_UNITS: list[tuple[str, str, str | None, float, int]] = [
    ("pcs", "Pieces", None, 1, 0),
    ("g", "Gram", "mass", 1, 1),
    ("kg", "Kilogram", "mass", 1000, 2),
    ("ml", "Milliliter", "volume", 1, 3),
    ("l", "Liter", "volume", 1000, 4),
]


async def _seed_default_units(conn: aiosqlite.Connection) -> None:
    """Insert the default units when the units table is empty."""
    cursor = await conn.execute("SELECT COUNT(*) FROM units")
    row = await cursor.fetchone()
    if row and row[0] > 0:
        return

    await conn.executemany(
        "INSERT INTO units (symbol, name, is_default, conversion_group, conversion_factor, sort_order) "
        "VALUES (?, ?, 1, ?, ?, ?)",
        DEFAULT_UNITS,
    )
    logger.info("Seeded default units", extra={"count": len(DEFAULT_UNITS)})


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if missing, then seed default units.

    Args:
        db_path: Optional database path; defaults to settings.sqlite_db_path
    """
    conn = await get_connection(db_path=db_path)

    for name in COLLECTIONS:
        await conn.execute(_TABLES[name])
        logger.debug("Ensured table", extra={"collection": name})

    for index_sql in _INDEXES:
        await conn.execute(index_sql)

    if settings.seed_default_units:
        await _seed_default_units(conn)

    logger.info("Database schema initialized", extra={"collections": len(COLLECTIONS)})
