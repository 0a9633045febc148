from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Generator, Iterator
from urllib.parse import quote_plus

from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from . import settings
from .errors import QueryTimeoutError

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """Get the database URL for API operations."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_user = os.getenv("DB_USER")
    db_pass = os.getenv("DB_PASSWORD")
    db_name = os.getenv("DB_DATABASE")
    db_host = os.getenv("DB_HOST", "db")
    db_port = os.getenv("DB_PORT", "5432")

    if db_user and db_pass and db_name:
        # URL-encode the password in case it contains special characters
        encoded_pass = quote_plus(db_pass)
        return f"postgresql+psycopg://{db_user}:{encoded_pass}@{db_host}:{db_port}/{db_name}"

    raise RuntimeError(
        "DATABASE_URL must be set, or DB_USER, DB_PASSWORD, and DB_DATABASE must all be set."
    )


DATABASE_URL = get_database_url()


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def is_sqlite(url: str = DATABASE_URL) -> bool:
    return url.startswith("sqlite")


def _engine_kwargs(url: str) -> dict:
    if is_sqlite(url):
        # Local development and tests; a single shared connection keeps
        # in-memory databases alive across threads.
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        return kwargs

    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT_S,
        "connect_args": {
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        },
    }


engine = create_engine(
    DATABASE_URL,
    future=True,
    echo=settings.LOG_LEVEL == "DEBUG",
    pool_pre_ping=True,
    **_engine_kwargs(DATABASE_URL),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_session() -> Generator[Session, None, None]:
    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request: commits on success, rolls back on error."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _is_timeout_error(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == "57014":  # query_canceled
        return True
    return "statement timeout" in str(exc).lower() or "interrupted" in str(exc).lower()


@contextmanager
def query_timeout(session: Session, seconds: float | None = None) -> Iterator[Session]:
    """
    Bound every statement issued inside the block by ``seconds``.

    On PostgreSQL this sets a transaction-local ``statement_timeout``; the
    driver cancellation is re-raised as QueryTimeoutError. Partial results
    are never returned.
    """
    timeout_s = settings.DB_QUERY_TIMEOUT_S if seconds is None else seconds
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_s * 1000)}"))

    try:
        yield session
    except DBAPIError as e:
        if _is_timeout_error(e):
            session.rollback()
            raise QueryTimeoutError() from e
        raise


def check_database_health() -> dict:
    """Run ``SELECT 1`` and report connectivity plus round-trip time."""
    started = time.perf_counter()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except OperationalError as e:
        logger.warning(f"Database health check failed: {e}")
        return {"status": "disconnected", "response_time_ms": None}

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    return {"status": "connected", "response_time_ms": elapsed_ms}


def reconnect_with_backoff(
    attempts: int | None = None,
    base_delay: float | None = None,
    sleep=time.sleep,
    bind=None,
) -> None:
    """
    Drop pooled connections and retry until the database answers.

    Delay doubles after each failed attempt. Raises the last OperationalError
    once all attempts are exhausted.
    """
    bind = engine if bind is None else bind
    attempts = max(1, attempts or settings.RECONNECT_ATTEMPTS)
    delay = settings.RECONNECT_BASE_DELAY_S if base_delay is None else base_delay

    for attempt in range(1, attempts + 1):
        bind.dispose()
        try:
            with bind.connect() as connection:
                connection.execute(text("SELECT 1"))
            logger.info(f"Database reconnected on attempt {attempt}")
            return
        except OperationalError as e:
            logger.warning(f"Reconnect attempt {attempt}/{attempts} failed: {e}")
            if attempt == attempts:
                raise
            sleep(delay)
            delay *= 2
