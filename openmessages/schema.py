"""
Schema management: table creation and additive column migrations.

Tables are declared in models.py and created with ``create_all``. Columns
introduced after the first release are listed in ``ADDITIVE_COLUMNS`` and
added with ``ALTER TABLE ... ADD COLUMN`` when an existing database lacks
them. Every migration is additive and safe to re-run at each startup.
"""

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from openmessages.models import Base

logger = logging.getLogger(__name__)


# (table, column, column DDL) in the order they were introduced
ADDITIVE_COLUMNS: list[tuple[str, str, str]] = [
    ("messages", "media_id", "TEXT NOT NULL DEFAULT ''"),
    ("messages", "mime_type", "TEXT NOT NULL DEFAULT ''"),
    ("messages", "decryption_key", "TEXT NOT NULL DEFAULT ''"),
    ("messages", "reactions", "TEXT NOT NULL DEFAULT ''"),
    ("messages", "reply_to_id", "TEXT NOT NULL DEFAULT ''"),
]


def _existing_columns(engine: Engine, table: str) -> set[str]:
    return {col["name"] for col in inspect(engine).get_columns(table)}


def apply_migrations(engine: Engine) -> list[str]:
    """
    Add any missing additive columns.

    Returns:
        The ``table.column`` names that were added by this call.
    """
    added: list[str] = []
    columns_by_table: dict[str, set[str]] = {}

    for table, column, ddl in ADDITIVE_COLUMNS:
        if table not in columns_by_table:
            columns_by_table[table] = _existing_columns(engine, table)
        if column in columns_by_table[table]:
            continue

        logger.info(f"Adding column {table}.{column}")
        try:
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
        except OperationalError as e:
            # Another process added it between inspection and ALTER
            if "duplicate column" not in str(e).lower():
                raise
            logger.debug(f"Column {table}.{column} already exists")
            continue
        columns_by_table[table].add(column)
        added.append(f"{table}.{column}")

    return added


def ensure_indexes(engine: Engine) -> None:
    """Create declared indexes missing from tables that predate them."""
    for table in Base.metadata.sorted_tables:
        for index in table.indexes:
            index.create(bind=engine, checkfirst=True)


def init_schema(engine: Engine) -> list[str]:
    """
    Create all tables and indexes, then apply additive migrations.
    Idempotent: called on every store startup.
    """
    logger.debug("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    added = apply_migrations(engine)
    ensure_indexes(engine)
    if added:
        logger.info(f"Schema migrated, added columns: {', '.join(added)}")
    else:
        logger.debug("Schema up to date")
    return added
