"""Services package"""

from quota_service.services.plan_catalog import (
    PlanCatalog,
    get_plan_catalog,
    MONTHLY_WINDOW,
    DAILY_WINDOW,
)
from quota_service.services.account_lock import (
    AccountLockManager,
    get_default_lock_manager,
    set_default_lock_manager,
)
from quota_service.services.quota_engine import QuotaEngine, parse_quota_type
from quota_service.services.resource_quota_engine import ResourceQuotaEngine
from quota_service.services.container_accounting import ContainerAccountingService
from quota_service.services.plan_change import PlanChangeService
from quota_service.services.reset_sweep import ResetSweep
from quota_service.services.resource_reconciler import ResourceReconciler

__all__ = [
    "PlanCatalog",
    "get_plan_catalog",
    "MONTHLY_WINDOW",
    "DAILY_WINDOW",
    "AccountLockManager",
    "get_default_lock_manager",
    "set_default_lock_manager",
    "QuotaEngine",
    "parse_quota_type",
    "ResourceQuotaEngine",
    "ContainerAccountingService",
    "PlanChangeService",
    "ResetSweep",
    "ResourceReconciler",
]
