"""
PostgreSQL schema setup for the Cellarbook Supabase project.

Creates the four tables the repository layer reads and writes. Safe to
run repeatedly (everything is IF NOT EXISTS).
"""

import logging
from typing import Optional

import psycopg

from cellarbook.config import get_setting
from cellarbook.constants import TableNames
from cellarbook.error_handling import ConfigurationError, StorageError
from cellarbook.schema import WINE_FIELDS

logger = logging.getLogger(__name__)


def get_database_url() -> Optional[str]:
    """Get database URL from Streamlit secrets or environment."""
    return get_setting("DATABASE_URL")


def _wines_ddl() -> str:
    # Every wine attribute is stored as nullable text
    attribute_columns = ",\n".join(
        f"    {column} TEXT" for column in WINE_FIELDS if column not in ("producer", "name")
    )
    return f"""
CREATE TABLE IF NOT EXISTS {TableNames.WINES} (
    id TEXT PRIMARY KEY,
    producer TEXT NOT NULL DEFAULT '',
    name TEXT NOT NULL DEFAULT '',
{attribute_columns},
    is_user_added BOOLEAN NOT NULL DEFAULT FALSE,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
"""


SCHEMA_STATEMENTS = [
    _wines_ddl(),
    f"""
CREATE TABLE IF NOT EXISTS {TableNames.CONSUMPTION} (
    id TEXT PRIMARY KEY,
    wine_id TEXT NOT NULL REFERENCES {TableNames.WINES}(id) ON DELETE CASCADE,
    date TEXT NOT NULL,
    notes TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);
""",
    f"""
CREATE TABLE IF NOT EXISTS {TableNames.USER_NOTES} (
    wine_id TEXT PRIMARY KEY REFERENCES {TableNames.WINES}(id) ON DELETE CASCADE,
    note TEXT,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
""",
    f"""
CREATE TABLE IF NOT EXISTS {TableNames.PURCHASE_DATES} (
    wine_id TEXT PRIMARY KEY REFERENCES {TableNames.WINES}(id) ON DELETE CASCADE,
    purchase_date TEXT,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
""",
    f"CREATE INDEX IF NOT EXISTS idx_wines_is_deleted ON {TableNames.WINES}(is_deleted);",
    f"CREATE INDEX IF NOT EXISTS idx_wines_producer ON {TableNames.WINES}(producer);",
    f"CREATE INDEX IF NOT EXISTS idx_consumption_wine_id ON {TableNames.CONSUMPTION}(wine_id);",
]


def init_database(database_url: Optional[str] = None) -> None:
    """
    Create the catalog tables if they do not exist.

    Args:
        database_url: Postgres connection string (defaults to DATABASE_URL)

    Raises:
        ConfigurationError: If no database URL is available
        StorageError: If the DDL fails
    """
    database_url = database_url or get_database_url()
    if not database_url:
        raise ConfigurationError("DATABASE_URL not found in secrets or environment")

    try:
        with psycopg.connect(database_url) as conn:
            with conn.cursor() as cursor:
                for statement in SCHEMA_STATEMENTS:
                    cursor.execute(statement)
            conn.commit()
    except psycopg.Error as e:
        logger.error(f"Database initialization failed: {e}")
        raise StorageError(f"Database initialization failed: {e}") from e

    logger.info(f"Database schema ready ({len(SCHEMA_STATEMENTS)} statements)")
