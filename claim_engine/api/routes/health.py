"""
Health Check Routes
Liveness for the process, readiness including the claims database.
Source: https://microservices.io/patterns/observability/health-check-api.html
"""

from typing import Any

from fastapi import APIRouter

from claim_engine.api.config import settings
from claim_engine.db.connection import check_db_connection

router = APIRouter(tags=["Health"])


def _state(ok: bool) -> str:
    return "healthy" if ok else "unhealthy"


@router.get("/health")
async def health_check() -> dict[str, Any]:
    return {"status": "healthy", "service": settings.SERVICE_NAME}


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    database_ok = await check_db_connection()
    return {
        "status": _state(database_ok),
        "service": settings.SERVICE_NAME,
        "version": settings.APP_VERSION,
        "checks": {"database": _state(database_ok)},
    }
