"""Health check endpoints"""
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scriptdesk import __version__
from scriptdesk.database import get_db
from scriptdesk.utils.logger import logger

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time
STARTUP_TIME = time.time()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": "scriptdesk",
        "version": __version__,
        "timestamp": _timestamp(),
    }


@router.get("/ready")
def readiness_check(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Readiness check - verifies the database is reachable

    Sessions, markers and rate-limit counters all live there, so without it
    no identity operation can succeed. Returns 503 when the round-trip fails.
    """
    checks = {
        "database": False,
        "database_latency_ms": None,
    }

    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        checks["database"] = True
        checks["database_latency_ms"] = round(latency_ms, 2)
    except SQLAlchemyError:
        logger.error("Readiness check failed", extra={"event": "health_ready"}, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "message": "Database check failed",
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": _timestamp(),
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Returns 200 if process is alive
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": _timestamp(),
    }
