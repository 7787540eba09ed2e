"""Health Check Endpoint"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from quota_service.core.config import settings
from quota_service.core.database import check_db_connection, check_redis_connection

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> JSONResponse:
    """
    Health check endpoint that verifies service dependencies.

    Redis is only checked when account locks are distributed.

    Returns:
        200 OK if all services are healthy
        503 Service Unavailable if any service is unhealthy
    """
    checks = {"database": await check_db_connection()}
    if settings.ACCOUNT_LOCK_BACKEND == "redis":
        checks["redis"] = await check_redis_connection()

    healthy = all(checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "version": settings.APP_VERSION,
            "services": {
                name: "healthy" if ok else "unhealthy"
                for name, ok in checks.items()
            }
        }
    )
