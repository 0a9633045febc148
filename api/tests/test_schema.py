from __future__ import annotations

import pytest
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.exc import OperationalError

from cities_collective import schema
from cities_collective.db import Base
from cities_collective.schema import ensure_schema, ensure_table_exists, reset_schema_cache


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'schema.db'}")
    reset_schema_cache()
    yield engine
    reset_schema_cache()
    engine.dispose()


def _columns(engine, table_name):
    return {col["name"] for col in inspect(engine).get_columns(table_name)}


def test_creates_missing_table(file_engine):
    ensure_table_exists("cities", bind=file_engine)

    assert inspect(file_engine).has_table("cities")
    assert "city_name" in _columns(file_engine, "cities")


def test_adds_missing_columns(file_engine):
    with file_engine.begin() as connection:
        connection.execute(text("CREATE TABLE moderation_settings (id INTEGER PRIMARY KEY, key VARCHAR(100))"))

    ensure_table_exists("moderation_settings", bind=file_engine)

    assert {"value", "updated_at"} <= _columns(file_engine, "moderation_settings")


def test_second_call_is_memoized(file_engine):
    ensure_table_exists("cities", bind=file_engine)
    statements = []
    event.listen(file_engine, "before_cursor_execute", lambda *args: statements.append(args[2]))

    ensure_table_exists("cities", bind=file_engine)

    assert statements == []


def test_ensure_schema_is_idempotent(file_engine):
    ensure_schema(bind=file_engine)
    reset_schema_cache()

    ensure_schema(bind=file_engine)

    assert inspect(file_engine).has_table("city_images")
    assert inspect(file_engine).has_table("hall_of_fame_cache")


def test_unknown_table():
    with pytest.raises(KeyError):
        ensure_table_exists("no_such_table")


def test_table_created_by_racing_process_is_tolerated(file_engine, monkeypatch):
    table = Base.metadata.tables["cities"]
    create = table.create

    def racing_create(bind=None, **kwargs):
        # another process wins between our inspection and our CREATE
        create(bind=file_engine)
        raise OperationalError("CREATE TABLE cities", {}, Exception("table cities already exists"))

    monkeypatch.setattr(table, "create", racing_create)

    ensure_table_exists("cities", bind=file_engine)

    assert inspect(file_engine).has_table("cities")
    assert "cities" in schema._ensured_tables


def test_other_ddl_errors_propagate_and_are_retried_next_time(file_engine, monkeypatch):
    table = Base.metadata.tables["cities"]

    def failing_create(bind=None, **kwargs):
        raise OperationalError("CREATE TABLE cities", {}, Exception("disk I/O error"))

    monkeypatch.setattr(table, "create", failing_create)

    with pytest.raises(OperationalError):
        ensure_table_exists("cities", bind=file_engine)
    assert "cities" not in schema._ensured_tables

    monkeypatch.undo()
    ensure_table_exists("cities", bind=file_engine)
    assert inspect(file_engine).has_table("cities")
