"""Account Quota API Endpoints - usage, admission checks, plans and containers"""

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from quota_service.core.database import get_db, get_redis
from quota_service.core.logging_config import get_logger
from quota_service.schemas.account import (
    ContainerCreate,
    ContainerCreated,
    ContainerRemoved,
    PlanChangeRequest,
    PlanChangeResult,
)
from quota_service.schemas.quota import (
    AccountUsageSummary,
    ContainerRequestCheck,
    QuotaCheckResult,
    QuotaType,
    ResourceQuotaView,
    ResourceRequest,
)
from quota_service.schemas.metrics import (
    AccountResourceMetrics,
    ContainerMetrics,
    ContainerMetricsHistory,
    ContainerStatusUpdate,
    ContainerView,
    MetricsSample,
    ResourceMetricView,
    ResourceReport,
)
from quota_service.services.account_lock import AccountLockManager, get_default_lock_manager
from quota_service.services.container_accounting import ContainerAccountingService
from quota_service.services.plan_change import PlanChangeService
from quota_service.services.quota_engine import QuotaEngine
from quota_service.services.resource_metrics import DEFAULT_HISTORY_LIMIT, ResourceMetricsService
from quota_service.services.resource_quota_engine import ResourceQuotaEngine


logger = get_logger(__name__)
router = APIRouter(prefix="/accounts/{account_id}", tags=["Account Quotas"])


# ============================================================================
# Dependencies
# ============================================================================


async def get_lock_manager() -> AccountLockManager:
    """Distributed locks when Redis is configured, the process-wide manager otherwise"""
    redis = get_redis()
    if redis is None:
        return get_default_lock_manager()
    return AccountLockManager(redis=redis)


async def get_quota_engine(
    db: AsyncSession = Depends(get_db),
    lock_manager: AccountLockManager = Depends(get_lock_manager)
) -> QuotaEngine:
    """Dependency to get QuotaEngine instance"""
    return QuotaEngine(db_session=db, lock_manager=lock_manager)


async def get_resource_quota_engine(db: AsyncSession = Depends(get_db)) -> ResourceQuotaEngine:
    """Dependency to get ResourceQuotaEngine instance"""
    return ResourceQuotaEngine(db_session=db)


async def get_container_service(
    db: AsyncSession = Depends(get_db),
    lock_manager: AccountLockManager = Depends(get_lock_manager)
) -> ContainerAccountingService:
    """Dependency to get ContainerAccountingService instance"""
    return ContainerAccountingService(db_session=db, lock_manager=lock_manager)


async def get_plan_change_service(
    db: AsyncSession = Depends(get_db),
    lock_manager: AccountLockManager = Depends(get_lock_manager)
) -> PlanChangeService:
    """Dependency to get PlanChangeService instance"""
    return PlanChangeService(db_session=db, lock_manager=lock_manager)


async def get_metrics_service(db: AsyncSession = Depends(get_db)) -> ResourceMetricsService:
    """Dependency to get ResourceMetricsService instance"""
    return ResourceMetricsService(db_session=db)


# ============================================================================
# Usage and Admission
# ============================================================================


@router.get("/usage", response_model=AccountUsageSummary)
async def get_account_usage(
    account_id: str,
    quota_engine: QuotaEngine = Depends(get_quota_engine)
):
    """
    Get the account's usage against every plan quota.

    Counters whose window has elapsed are reported as zero, with
    reset_in_seconds telling when the current window ends.
    """
    summary = await quota_engine.get_account_usage(account_id)

    logger.info(
        "account_usage_retrieved",
        account_id=account_id,
        plan_id=summary.plan_id,
        messages=summary.messages.current,
        api_calls=summary.api_calls.current
    )
    return summary


@router.get("/quota/{quota_type}", response_model=QuotaCheckResult)
async def check_quota(
    account_id: str,
    quota_type: QuotaType,
    quota_engine: QuotaEngine = Depends(get_quota_engine)
):
    """
    Check whether the account may consume one more unit of a quota.

    A denial is a normal 200 response with allowed=false.
    """
    return await quota_engine.check_quota(account_id, quota_type)


@router.post("/quota/{quota_type}/consume", response_model=QuotaCheckResult)
async def consume_quota(
    account_id: str,
    quota_type: QuotaType,
    quota_engine: QuotaEngine = Depends(get_quota_engine)
):
    """
    Atomically check and record one unit of usage.

    Returns the check result taken before the increment.

    Raises:
        QuotaExceededError 409: The quota is exhausted; nothing was recorded
    """
    return await quota_engine.consume(account_id, quota_type)


# ============================================================================
# Resource Quota
# ============================================================================


@router.get("/resource-quota", response_model=ResourceQuotaView)
async def get_resource_quota(
    account_id: str,
    resource_engine: ResourceQuotaEngine = Depends(get_resource_quota_engine)
):
    """Get the account's resource ceilings and aggregate usage, creating the record if needed"""
    quota = await resource_engine.get_resource_quota(account_id)
    return ResourceQuotaView.model_validate(quota)


@router.post("/resource-quota/check", response_model=ContainerRequestCheck)
async def check_container_request(
    account_id: str,
    request: ResourceRequest,
    resource_engine: ResourceQuotaEngine = Depends(get_resource_quota_engine)
):
    """Check whether a container with the given resources would fit. Reserves nothing."""
    return await resource_engine.check_container_request(
        account_id,
        cpu=request.cpu,
        memory=request.memory,
        disk=request.disk
    )


# ============================================================================
# Plan
# ============================================================================


@router.put("/plan", response_model=PlanChangeResult)
async def update_account_plan(
    account_id: str,
    request: PlanChangeRequest,
    plan_service: PlanChangeService = Depends(get_plan_change_service)
):
    """
    Move the account to another plan tier.

    Usage counters are kept; the new limits apply from the next check.
    """
    return await plan_service.update_account_plan(account_id, request.plan.value)


# ============================================================================
# Containers
# ============================================================================


@router.post(
    "/containers",
    response_model=ContainerCreated,
    status_code=status.HTTP_201_CREATED
)
async def create_container(
    account_id: str,
    request: ContainerCreate,
    container_service: ContainerAccountingService = Depends(get_container_service)
):
    """
    Reserve container and resource quota for a new container.

    Raises:
        QuotaExceededError 409: Container count limit reached
        ResourceLimitExceededError 409: Requested resources do not fit
    """
    container = await container_service.create_container(
        account_id,
        name=request.name,
        image_tag=request.image_tag,
        cpu_limit=request.cpu_limit,
        memory_limit=request.memory_limit,
        disk_limit=request.disk_limit
    )

    return ContainerCreated(
        container_id=container.id,
        message="Container created successfully",
        resource_limits=ResourceRequest(
            cpu=container.cpu_limit,
            memory=container.memory_limit,
            disk=container.disk_limit
        )
    )


@router.delete("/containers/{container_id}", response_model=ContainerRemoved)
async def remove_container(
    account_id: str,
    container_id: str,
    container_service: ContainerAccountingService = Depends(get_container_service)
):
    """
    Release a container's quota.

    Raises:
        ContainerNotFound 404: Unknown container or owned by another account
    """
    removed_id = await container_service.remove_container(account_id, container_id)
    return ContainerRemoved(
        container_id=removed_id,
        message="Container removed successfully"
    )


@router.get("/containers", response_model=List[ContainerView])
async def list_containers(
    account_id: str,
    container_service: ContainerAccountingService = Depends(get_container_service)
):
    """List the account's containers"""
    containers = await container_service.list_containers(account_id)
    return [ContainerView.model_validate(c) for c in containers]


@router.get("/containers/{container_id}", response_model=ContainerView)
async def get_container(
    account_id: str,
    container_id: str,
    container_service: ContainerAccountingService = Depends(get_container_service)
):
    """
    Get one container.

    Raises:
        ContainerNotFound 404: Unknown container or owned by another account
    """
    container = await container_service.get_container(account_id, container_id)
    return ContainerView.model_validate(container)


@router.patch("/containers/{container_id}/status", response_model=ContainerView)
async def update_container_status(
    account_id: str,
    container_id: str,
    request: ContainerStatusUpdate,
    container_service: ContainerAccountingService = Depends(get_container_service)
):
    """Record a container lifecycle transition. Reserved quota is unchanged."""
    container = await container_service.update_status(account_id, container_id, request.status)
    return ContainerView.model_validate(container)


# ============================================================================
# Resource Metrics
# ============================================================================


@router.post(
    "/containers/{container_id}/metrics",
    response_model=ResourceMetricView,
    status_code=status.HTTP_201_CREATED
)
async def record_container_metrics(
    account_id: str,
    container_id: str,
    sample: MetricsSample,
    metrics_service: ResourceMetricsService = Depends(get_metrics_service)
):
    """
    Record a usage sample reported by the container monitor.

    Raises:
        ContainerNotFound 404: Unknown container or owned by another account
    """
    metric = await metrics_service.record_metrics(
        account_id,
        container_id,
        cpu_usage_millicores=sample.cpu_usage_millicores,
        memory_usage_bytes=sample.memory_usage_bytes,
        disk_usage_bytes=sample.disk_usage_bytes
    )
    return ResourceMetricView.from_model(metric)


@router.get("/containers/{container_id}/metrics", response_model=ContainerMetrics)
async def get_container_metrics(
    account_id: str,
    container_id: str,
    metrics_service: ResourceMetricsService = Depends(get_metrics_service)
):
    """Get the latest usage sample for a container; status is no_data until one exists"""
    return await metrics_service.get_container_metrics(account_id, container_id)


@router.get("/containers/{container_id}/metrics/history", response_model=ContainerMetricsHistory)
async def get_container_metrics_history(
    account_id: str,
    container_id: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=1000),
    metrics_service: ResourceMetricsService = Depends(get_metrics_service)
):
    """Get the most recent usage samples for a container, newest first"""
    return await metrics_service.get_container_metrics_history(account_id, container_id, limit)


@router.get("/resource-metrics", response_model=AccountResourceMetrics)
async def get_account_resource_metrics(
    account_id: str,
    metrics_service: ResourceMetricsService = Depends(get_metrics_service)
):
    """Get measured usage across all containers against the aggregate ceilings"""
    return await metrics_service.get_account_resource_metrics(account_id)


@router.get("/resource-report", response_model=ResourceReport)
async def get_resource_report(
    account_id: str,
    metrics_service: ResourceMetricsService = Depends(get_metrics_service)
):
    """Get ceilings, reserved totals and every container with its latest sample"""
    return await metrics_service.get_resource_report(account_id)
