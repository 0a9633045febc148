"""Runtime schema ensurer.

Production databases are managed by Alembic. Local development and the test
suite run with ``SCHEMA_MODE=ensure``, where tables are created (or extended
with missing columns) the first time they are needed by this process.
"""

from __future__ import annotations

import logging
import threading

from sqlalchemy import Table, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .db import Base, engine as default_engine

logger = logging.getLogger(__name__)

# SQLSTATE codes for duplicate table / column / object
_ALREADY_EXISTS_SQLSTATES = {"42P07", "42701", "42710"}

_ensured_tables: set[str] = set()
_lock = threading.Lock()


def _is_already_exists_error(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _ALREADY_EXISTS_SQLSTATES:
        return True
    message = str(exc).lower()
    return "already exists" in message or "duplicate column" in message


def _create_table(bind: Engine, table: Table) -> None:
    try:
        with bind.begin() as connection:
            table.create(bind=connection)
        logger.info(f"Created table {table.name}")
    except DBAPIError as e:
        if not _is_already_exists_error(e):
            raise
        logger.info(f"Table {table.name} was created concurrently")


def _add_missing_columns(bind: Engine, table: Table) -> list[str]:
    with bind.connect() as connection:
        existing = {col["name"] for col in inspect(connection).get_columns(table.name)}

    preparer = bind.dialect.identifier_preparer
    added: list[str] = []

    for column in table.columns:
        if column.name in existing:
            continue
        # Added columns are always nullable; the ORM fills in defaults on write.
        column_type = column.type.compile(dialect=bind.dialect)
        ddl = (
            f"ALTER TABLE {preparer.format_table(table)} "
            f"ADD COLUMN {preparer.format_column(column)} {column_type}"
        )
        try:
            with bind.begin() as connection:
                connection.execute(text(ddl))
            added.append(column.name)
        except DBAPIError as e:
            if not _is_already_exists_error(e):
                raise
            logger.debug(f"Column {table.name}.{column.name} added concurrently")

    return added


def ensure_table_exists(table_name: str, bind: Engine | None = None) -> Table:
    """
    Make sure ``table_name`` exists with every mapped column.

    The check runs at most once per table per process. A table created by a
    concurrent process between our inspection and our CREATE is fine; any
    other DDL failure propagates and the table is not marked as ensured.
    """
    table = Base.metadata.tables.get(table_name)
    if table is None:
        raise KeyError(f"Unknown table: {table_name}")

    if table_name in _ensured_tables:
        return table

    bind = bind or default_engine
    with _lock:
        if table_name in _ensured_tables:
            return table

        with bind.connect() as connection:
            exists = inspect(connection).has_table(table_name)

        if not exists:
            _create_table(bind, table)
        else:
            added = _add_missing_columns(bind, table)
            if added:
                logger.info(f"Added columns to {table_name}: {', '.join(added)}")

        _ensured_tables.add(table_name)

    return table


def ensure_schema(bind: Engine | None = None) -> None:
    """Ensure every mapped table, parents before children."""
    for table in Base.metadata.sorted_tables:
        ensure_table_exists(table.name, bind=bind)


def reset_schema_cache() -> None:
    with _lock:
        _ensured_tables.clear()
