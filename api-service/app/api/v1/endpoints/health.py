"""
Health Check Endpoints
Liveness and dependency checks
"""

from typing import Any, Dict
import time

from fastapi import APIRouter
import psutil
import structlog

from app.core.cache import cache
from app.core.database import check_database_health
from app.schemas.base import HealthCheck, HealthStatus

logger = structlog.get_logger()
router = APIRouter()

SERVICE_NAME = "backoffice-api"
SERVICE_VERSION = "1.0.0"


@router.get("", response_model=HealthCheck)
async def health_check() -> HealthCheck:
    """
    Dependency health check

    The database is required; Redis only backs the permission cache, so
    losing it degrades the service rather than failing it.
    """
    checks: Dict[str, Any] = {}
    overall_status = HealthStatus.HEALTHY

    db_healthy = await check_database_health()
    checks["database"] = {"status": "healthy" if db_healthy else "unhealthy"}
    if not db_healthy:
        overall_status = HealthStatus.UNHEALTHY

    redis_healthy = await cache.ping()
    checks["redis"] = {"status": "healthy" if redis_healthy else "degraded"}
    if not redis_healthy and overall_status == HealthStatus.HEALTHY:
        overall_status = HealthStatus.DEGRADED

    memory = psutil.virtual_memory()
    checks["memory"] = {
        "status": "healthy" if memory.percent < 90 else "degraded",
        "usage_percent": memory.percent,
    }
    if memory.percent >= 90 and overall_status == HealthStatus.HEALTHY:
        overall_status = HealthStatus.DEGRADED

    return HealthCheck(
        status=overall_status,
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        checks=checks,
    )


@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    return {"status": "alive", "timestamp": time.time()}
