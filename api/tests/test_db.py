"""Connection manager: statement timeouts and reconnects."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from cities_collective import db as db_module
from cities_collective.errors import QueryTimeoutError
from cities_collective.services import search as search_service


def _operational_error(message: str) -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception(message))


class FlakyEngine:
    """Refuses the first ``failures`` connections, then hands out real ones."""

    def __init__(self, failures: int):
        self.failures = failures
        self.connects = 0
        self.disposals = 0

    def dispose(self):
        self.disposals += 1

    def connect(self):
        self.connects += 1
        if self.connects <= self.failures:
            raise _operational_error("connection refused")
        return db_module.engine.connect()


def test_query_timeout_translates_cancellation(db):
    with pytest.raises(QueryTimeoutError):
        with db_module.query_timeout(db, seconds=0.5):
            raise _operational_error("canceling statement due to statement timeout")


def test_query_timeout_passes_other_errors_through(db):
    with pytest.raises(OperationalError):
        with db_module.query_timeout(db):
            raise _operational_error("no such table: cities")


def test_query_timeout_allows_normal_queries(db):
    with db_module.query_timeout(db) as session:
        assert session is db


def test_search_timeout_returns_504(client, monkeypatch):
    def slow_rows(*args, **kwargs):
        raise _operational_error("canceling statement due to statement timeout")

    monkeypatch.setattr(search_service, "_search_rows", slow_rows)

    response = client.get("/api/search")

    assert response.status_code == 504
    assert response.json() == {"error": "Database query timed out"}


def test_reconnect_backs_off_exponentially():
    bind = FlakyEngine(failures=2)
    delays = []

    db_module.reconnect_with_backoff(attempts=5, base_delay=0.5, sleep=delays.append, bind=bind)

    assert delays == [0.5, 1.0]
    assert bind.connects == 3
    assert bind.disposals == 3


def test_reconnect_raises_after_last_attempt():
    bind = FlakyEngine(failures=10)
    delays = []

    with pytest.raises(OperationalError):
        db_module.reconnect_with_backoff(attempts=3, base_delay=1, sleep=delays.append, bind=bind)

    assert delays == [1, 2]
    assert bind.connects == 3


def test_health_check_reports_connected():
    health = db_module.check_database_health()

    assert health["status"] == "connected"
    assert health["response_time_ms"] >= 0
