"""Custom exceptions for the quota service"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone


class QuotaServiceError(Exception):
    """
    Base class for all quota service errors.

    Not-found and invalid-input conditions are raised and abort the
    enclosing transaction. Admission denials are returned as results by
    the engines and only become exceptions in the orchestration layer.
    """

    error_type = "quota_service_error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize QuotaServiceError.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details for debugging
        """
        self.message = message
        self.error_code = error_code or self.error_type
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_type": self.error_type,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }

    def get_api_response(self) -> Dict[str, Any]:
        """
        Get API-friendly error response.

        Returns:
            Dictionary suitable for HTTP error responses
        """
        return {
            "detail": self.message,
            "type": self.error_code
        }


class InternalInvariantError(QuotaServiceError):
    """
    Errors that indicate a broken system invariant rather than a user mistake.

    The API layer surfaces these as generic internal errors.
    """

    def get_api_response(self) -> Dict[str, Any]:
        return {
            "detail": "Internal error while evaluating account quota",
            "type": "internal_error"
        }


class UsageRecordNotFound(InternalInvariantError):
    """
    Raised when an account has no usage record.

    The account was never initialized with initialize_account_usage.
    """

    error_type = "usage_record_not_found"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"Usage record not found for account {account_id}. Run initialize_account_usage.",
            details={"account_id": account_id}
        )


class AccountNotFound(InternalInvariantError):
    """Raised when an account id does not reference an existing account"""

    error_type = "account_not_found"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"Account not found: {account_id}",
            details={"account_id": account_id}
        )


class InvalidPlanError(InternalInvariantError, ValueError):
    """Raised when an unrecognized plan tier reaches the plan catalog"""

    error_type = "invalid_plan"

    def __init__(self, plan_id: str, valid_plans: List[str]):
        self.plan_id = plan_id
        self.valid_plans = valid_plans
        super().__init__(
            f"Invalid plan: '{plan_id}'. Valid options: {valid_plans}",
            details={"plan_id": plan_id, "valid_plans": valid_plans}
        )


class UnknownQuotaType(InternalInvariantError, ValueError):
    """Raised when a caller passes an unsupported quota type literal"""

    error_type = "unknown_quota_type"

    def __init__(self, quota_type: str):
        self.quota_type = quota_type
        super().__init__(
            f"Unknown quota type: {quota_type}",
            details={"quota_type": quota_type}
        )


class ContainerNotFound(QuotaServiceError):
    """Raised when a container is missing or belongs to another account"""

    error_type = "container_not_found"

    def __init__(self, container_id: str, account_id: str):
        self.container_id = container_id
        self.account_id = account_id
        super().__init__(
            "Container not found or does not belong to this account",
            details={"container_id": container_id, "account_id": account_id}
        )


class AccountLockTimeout(QuotaServiceError):
    """Raised when the per-account lock cannot be acquired in time"""

    error_type = "account_lock_timeout"

    def __init__(self, account_id: str, timeout_seconds: float):
        self.account_id = account_id
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for account {account_id}",
            details={"account_id": account_id, "timeout_seconds": timeout_seconds}
        )


class QuotaExceededError(QuotaServiceError):
    """
    Raised by quota-gated mutations when an admission check denies.

    The engines return denials as results. This exception is how a calling
    mutation aborts before any side effect.
    """

    error_type = "quota_exceeded"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class ResourceLimitExceededError(QuotaServiceError):
    """Raised by container accounting when a resource check denies"""

    error_type = "resource_limit_exceeded"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
