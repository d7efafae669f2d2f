"""
Health check endpoint.

- /health: 200 when the database answers, 500 otherwise. Not captured by
  the request logger.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request, Response, status

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/health",
    summary="Health check",
    description="""
    Database connectivity check.

    Returns 200 with `database: connected` when the persistence store
    answers a trivial query, 500 with `database: disconnected` otherwise.
    """,
)
async def health_check(request: Request, response: Response) -> Dict[str, Any]:
    health_checker = getattr(request.app.state, "health_checker", None)
    environment = request.app.state.settings.environment

    if not health_checker:
        logger.warning("Health checker not initialized")
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return {
            "status": "error",
            "database": "disconnected",
            "error": "health checker not initialized",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    health_status = await health_checker.check_all()

    if health_status.is_healthy:
        response.status_code = status.HTTP_200_OK
        return {
            "status": "ok",
            "database": health_status.database,
            "timestamp": health_status.timestamp,
            "environment": environment,
        }

    response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return {
        "status": "error",
        "database": health_status.database,
        "error": health_status.error,
        "timestamp": health_status.timestamp,
    }
