"""System endpoints (health)."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from .. import schemas
from ..db import check_database_health

router = APIRouter(prefix="/api", tags=["System"])
logger = logging.getLogger(__name__)

# Global startup time for uptime calculation
_STARTUP_TIME = time.time()


@router.get("/health", response_model=schemas.HealthResponse)
def get_health():
    """
    Liveness and database connectivity.

    Returns 503 with ``status: unhealthy`` while the database is unreachable.
    """
    database = schemas.DatabaseHealth(**check_database_health())
    healthy = database.status == "connected"
    body = schemas.HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        database=database,
        uptime_s=round(time.time() - _STARTUP_TIME, 2),
    )
    if healthy:
        return body
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(mode="json", by_alias=True),
    )
