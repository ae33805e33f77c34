"""
Health check endpoints for the REST API.
"""

import asyncio

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal, engine
from shared.infrastructure.events import check_redis_health
from shared.utils.health import (
    HealthStatus,
    health_check_with_timeout,
    aggregate_health_checks,
)


router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check():
    """Service status without checking dependencies."""
    return {
        "status": HealthStatus.HEALTHY.value,
        "service": "rest-api",
        "environment": settings.environment,
    }


def _ping_database() -> None:
    with SessionLocal() as db:
        db.execute(text("SELECT 1"))


@health_check_with_timeout(timeout=3.0, component="database")
async def check_database_health() -> dict:
    await asyncio.to_thread(_ping_database)
    return {"dialect": engine.dialect.name}


@router.get("/health/detailed")
async def detailed_health_check():
    """
    Database and Redis connectivity.

    Returns 503 Service Unavailable if any dependency is down.
    """
    results = await aggregate_health_checks([
        check_database_health(),
        check_redis_health(),
    ])

    checks = {
        "service": "rest-api",
        "environment": settings.environment,
        "status": results["status"],
        "dependencies": results["components"],
    }

    if results["status"] != HealthStatus.HEALTHY.value:
        return JSONResponse(content=checks, status_code=503)
    return checks
