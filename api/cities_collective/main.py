from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import settings
from .db import check_database_health, engine, reconnect_with_backoff, session_scope
from .errors import DomainError
from .middleware import SecurityHeadersMiddleware, V1CorsMiddleware
from .routers import (
    admin,
    auth,
    cities,
    comments,
    follows,
    images,
    internal,
    notifications,
    search,
    system,
    users,
    v1,
)
from .schema import ensure_schema

load_dotenv()

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def run_migrations() -> None:
    logger.info("run_migrations: Starting...")
    try:
        alembic_cfg = _alembic_config()

        from alembic.runtime.migration import MigrationContext
        from alembic.script import ScriptDirectory

        try:
            with engine.connect() as connection:
                context = MigrationContext.configure(connection)
                current_heads = context.get_current_heads()
                current_rev = current_heads[0] if len(current_heads) == 1 else None

                script = ScriptDirectory.from_config(alembic_cfg)
                heads = script.get_heads()

                if current_rev and current_rev in heads:
                    logger.info(f"Database is up to date (revision: {current_rev}), skipping migrations.")
                    return

                logger.info(f"Current revision(s): {current_heads}, target: {heads}. Running migrations...")
        finally:
            # Release pooled connections before Alembic opens its own
            engine.dispose()

        command.upgrade(alembic_cfg, "heads")
        logger.info("run_migrations: Completed successfully.")
    except Exception as e:
        logger.error(f"run_migrations: Error occurred: {e}", exc_info=True)
        raise


def _alembic_config() -> Config:
    base_dir = Path(__file__).resolve().parent.parent
    cfg = Config(str(base_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(base_dir / "alembic"))
    return cfg


def prepare_schema() -> None:
    mode = settings.SCHEMA_MODE
    if mode == "migrate":
        run_migrations()
    elif mode == "ensure":
        logger.info("Ensuring database schema at runtime")
        ensure_schema()
    else:
        logger.info(f"SCHEMA_MODE={mode}, leaving the schema as it is")


# ============================================================================
# BACKGROUND TASKS
# ============================================================================


async def database_health_loop(interval_s: float | None = None) -> None:
    """Ping the database periodically and rebuild the pool when it stops answering."""
    interval = settings.HEALTH_CHECK_INTERVAL_S if interval_s is None else interval_s
    while True:
        await asyncio.sleep(interval)
        health = await asyncio.to_thread(check_database_health)
        if health["status"] == "connected":
            logger.debug(f"Database health check ok ({health['response_time_ms']} ms)")
            continue

        logger.warning("Database unreachable, attempting reconnect")
        try:
            await asyncio.to_thread(reconnect_with_backoff)
        except OperationalError as e:
            logger.error(f"Database reconnect failed: {e}")


def warm_cache() -> None:
    """Populate the most requested cache entries."""
    from .services.cities import get_community_stats, get_recent_cities, get_total_city_count
    from .services.users import get_total_user_count

    with session_scope() as db:
        get_community_stats(db)
        get_recent_cities(db)
        city_count = get_total_city_count(db)
        user_count = get_total_user_count(db)
    logger.info(f"Cache warmed ({city_count} cities, {user_count} users)")


async def delayed_cache_warm(delay_s: float | None = None) -> None:
    await asyncio.sleep(settings.CACHE_WARM_DELAY_S if delay_s is None else delay_s)
    try:
        await asyncio.to_thread(warm_cache)
    except Exception as e:
        logger.warning(f"Cache warm-up failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    prepare_schema()

    tasks: list[asyncio.Task] = []
    if settings.BACKGROUND_TASKS_ENABLED:
        tasks.append(asyncio.create_task(database_health_loop()))
        tasks.append(asyncio.create_task(delayed_cache_warm()))
    logger.info("Cities Collective API server ready")
    yield

    logger.info("Shutting down application...")
    for task in tasks:
        task.cancel()
    for task in tasks:
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(
    title="Cities Collective API",
    version="1.0.0",
    description="Community sharing of city save-games",
    lifespan=lifespan,
)

# CORS for the web front end. /api/v1 gets its own open policy below.
cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost")
if cors_origins_str == "*":
    logger.warning(
        "CORS is configured to allow all origins. "
        "This is insecure for production. Set CORS_ORIGINS to specific domains."
    )
cors_origins = [origin.strip() for origin in cors_origins_str.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,
)
app.add_middleware(SecurityHeadersMiddleware)
# Outermost, so v1 preflights never reach CORSMiddleware
app.add_middleware(V1CorsMiddleware)


# ============================================================================
# ERROR HANDLERS
# ============================================================================


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} hit a constraint: {exc.orig}")
    return _error(status.HTTP_409_CONFLICT, "Conflicting update, please retry")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} raised: {exc}", exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# Include all routers
app.include_router(system.router)
app.include_router(auth.router)
app.include_router(cities.router)
app.include_router(images.router)
app.include_router(search.router)
app.include_router(comments.router)
app.include_router(follows.router)
app.include_router(notifications.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(v1.router)
app.include_router(internal.router)
