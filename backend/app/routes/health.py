"""
Lyceum Backend — Health Check Routes
======================================

What:  Health check endpoint for monitoring and load balancer probes, plus
       the plain root page.
Why:   Load balancers route away from instances whose database is unreachable.
How:   Pings MongoDB and reports whether cloud storage is configured.

Status levels:
    - healthy:   MongoDB reachable and cloud storage configured (HTTP 200)
    - degraded:  MongoDB reachable, cloud storage unconfigured; video uploads
                 and the GridFS fallback will fail (HTTP 200)
    - unhealthy: MongoDB unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import HTMLResponse, JSONResponse

from app import __version__
from app.config import settings
from app.database import ping_database
from app.schemas.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def root() -> str:
    return "<h1>Hello World</h1>"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"model": HealthResponse}},
)
async def health_check():
    db_status = "connected"
    overall = "healthy"

    try:
        if not await ping_database():
            db_status = "disconnected"
            overall = "unhealthy"
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    storage_status = "configured" if settings.gcs_configured else "unconfigured"
    if storage_status != "configured" and overall == "healthy":
        overall = "degraded"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        cloud_storage=storage_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
