"""
Health and Monitoring Router.

Public, unauthenticated endpoints for health checks and basic monitoring of the
Caption Gallery API.

Endpoints Provided:
- `/healthcheck`: A lightweight check that the service is running.
- `/monitoring/ping`: A simple ping endpoint for connectivity testing.
- `/monitoring/detailed`: Checks the database and the session registry and
  reports `degraded` when a component is unhealthy.
"""

from fastapi import APIRouter
from datetime import datetime, timezone
from typing import Dict, Any

from core.logging_config import get_logger
from core.auth import get_auth_service
from core.database import get_database_info, health_check as database_health_check

logger = get_logger(__name__)

SERVICE_NAME = "Caption Gallery API"
SERVICE_VERSION = "1.0.0"

health_router = APIRouter(tags=["Health & Monitoring"])

monitoring_router = APIRouter(prefix="/monitoring", tags=["Health & Monitoring"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_router.get("/healthcheck")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint (no authentication required)

    Returns:
        Dict with status, timestamp, and version info
    """
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
    }


@monitoring_router.get("/ping")
async def ping() -> Dict[str, str]:
    """Simple ping endpoint for connectivity testing"""
    return {
        "message": "pong",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
    }


@monitoring_router.get("/detailed")
async def detailed_health_check() -> Dict[str, Any]:
    """Detailed health check with component status"""
    logger.info("Detailed health check requested")

    health_status = {
        "status": "healthy",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
        "components": {},
    }

    try:
        tables = await database_health_check()
        db_info = await get_database_info()
        health_status["components"]["database"] = {
            "status": tables["status"],
            "info": db_info,
        }
        if tables["status"] != "healthy":
            health_status["status"] = "degraded"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "error": str(e),
        }
        health_status["status"] = "degraded"

    auth_service = get_auth_service()
    health_status["components"]["sessions"] = {
        "status": "healthy",
        "active_sessions": len(auth_service.sessions),
        "pending_sign_ins": len(auth_service.pending_sign_ins),
        "listeners": auth_service.listener_count,
    }

    return health_status
