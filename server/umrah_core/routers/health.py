"""Health check router."""

import logging
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import with_timeout
from ..core.dependencies import DatabaseSession
from ..core.exceptions import PersistenceTimeoutError
from ..core.observability import SERVICE_NAME, SERVICE_VERSION
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


async def check_database(db: AsyncSession) -> str:
    """Run a trivial query and report "ok" or the failure reason."""
    try:
        await with_timeout(db.execute(text("SELECT 1")), "health.database")
        return "ok"
    except PersistenceTimeoutError:
        return "timeout"
    except Exception as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        return "unavailable"


@router.post("/ping", response_model=HealthResponse)
async def health_ping(db: AsyncSession = DatabaseSession) -> JSONResponse:
    """
    Health check endpoint.

    Returns current service status, timestamp and database reachability.
    A degraded service still answers with 200.
    """
    database = await check_database(db)
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY if database == "ok" else HealthStatus.DEGRADED,
        service=SERVICE_NAME,
        timestamp=datetime.utcnow(),
        version=SERVICE_VERSION,
        checks={"database": database}
    )

    logger.debug(
        "Health check requested",
        extra={
            "status": response_data.status.value,
            "database": database
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
