"""FastAPI Application Entry Point"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from quota_service.api.exception_handlers import register_exception_handlers
from quota_service.api.v1 import accounts, health
from quota_service.core.config import settings
from quota_service.core.database import close_db, close_redis, init_db, init_redis
from quota_service.core.logging_config import get_logger


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events"""
    await init_db()
    if settings.ACCOUNT_LOCK_BACKEND == "redis":
        await init_redis()
    logger.info(
        "application_started",
        environment=settings.ENVIRONMENT,
        lock_backend=settings.ACCOUNT_LOCK_BACKEND
    )
    yield
    await close_db()
    await close_redis()
    logger.info("application_stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

register_exception_handlers(app)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with detailed field-level information"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "type": "ValidationError",
                "message": "Request validation failed",
                "details": errors
            }
        }
    )


app.include_router(health.router)
app.include_router(accounts.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": settings.APP_NAME, "version": settings.APP_VERSION}
