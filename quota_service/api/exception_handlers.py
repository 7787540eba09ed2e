"""Custom exception handlers for FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quota_service.core.exceptions import (
    AccountLockTimeout,
    ContainerNotFound,
    InternalInvariantError,
    QuotaExceededError,
    QuotaServiceError,
    ResourceLimitExceededError,
)
from quota_service.core.logging_config import get_logger


logger = get_logger(__name__)


async def quota_exceeded_exception_handler(
    request: Request,
    exc: QuotaServiceError
) -> JSONResponse:
    """
    Handle QuotaExceededError and ResourceLimitExceededError.

    The message is actionable (current/limit and an upgrade hint), so it is
    passed through to the caller as-is.
    """
    logger.info(
        "quota_exceeded_handled",
        request_path=request.url.path,
        request_method=request.method,
        error_code=exc.error_code,
        error_details=exc.details
    )

    return JSONResponse(
        status_code=409,
        content={
            **exc.get_api_response(),
            "details": exc.details,
            "timestamp": exc.timestamp.isoformat()
        }
    )


async def internal_invariant_exception_handler(
    request: Request,
    exc: InternalInvariantError
) -> JSONResponse:
    """
    Handle missing records, invalid plans and unknown quota types.

    These indicate a broken system invariant, so the response stays generic
    and the specifics only go to the log.
    """
    logger.error(
        "quota_invariant_violation",
        request_path=request.url.path,
        request_method=request.method,
        **exc.to_dict()
    )

    return JSONResponse(
        status_code=500,
        content={
            **exc.get_api_response(),
            "timestamp": exc.timestamp.isoformat()
        }
    )


async def container_not_found_exception_handler(
    request: Request,
    exc: ContainerNotFound
) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            **exc.get_api_response(),
            "timestamp": exc.timestamp.isoformat()
        }
    )


async def account_lock_timeout_exception_handler(
    request: Request,
    exc: AccountLockTimeout
) -> JSONResponse:
    """Handle lock contention; the caller may retry"""
    logger.warning(
        "account_lock_timeout_handled",
        request_path=request.url.path,
        account_id=exc.account_id
    )

    return JSONResponse(
        status_code=503,
        content={
            **exc.get_api_response(),
            "timestamp": exc.timestamp.isoformat()
        },
        headers={"Retry-After": "1"}
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all quota service exception handlers on the app"""
    app.add_exception_handler(QuotaExceededError, quota_exceeded_exception_handler)
    app.add_exception_handler(ResourceLimitExceededError, quota_exceeded_exception_handler)
    app.add_exception_handler(InternalInvariantError, internal_invariant_exception_handler)
    app.add_exception_handler(ContainerNotFound, container_not_found_exception_handler)
    app.add_exception_handler(AccountLockTimeout, account_lock_timeout_exception_handler)
