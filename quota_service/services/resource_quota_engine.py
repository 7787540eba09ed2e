"""Resource Quota Engine - CPU, memory and disk accounting per account"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quota_service.core.clock import Clock, utc_now
from quota_service.core.exceptions import AccountNotFound
from quota_service.core.logging_config import get_logger
from quota_service.models.account import AccountModel
from quota_service.models.resource_quota import ResourceQuotaModel
from quota_service.schemas.quota import (
    ContainerRequestCheck,
    ResourceCheckResult,
    ResourceLimits,
    ResourceRequest,
)
from quota_service.services.plan_catalog import PlanCatalog, get_plan_catalog

logger = get_logger(__name__)


DEFAULT_CPU_LIMIT = 500  # 0.5 cores in millicores
DEFAULT_MEMORY_LIMIT = 512  # MB
DEFAULT_DISK_LIMIT = 5120  # 5 GB in MB


class ResourceQuotaEngine:
    """
    Resource Quota Engine tracks aggregate CPU/memory/disk reservations.

    The record for an account is created lazily from its plan's resource
    limits. Ceilings follow the account's current plan: when the stored
    plan_id no longer matches, they are re-copied on the next access.

    check_resource_quota is read-only and does not reserve anything; the
    caller commits with increment_resource_usage once the container exists,
    and releases with decrement_resource_usage using the same deltas.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        catalog: Optional[PlanCatalog] = None,
        clock: Clock = utc_now
    ):
        """
        Initialize Resource Quota Engine.

        Args:
            db_session: Database session; the caller owns the commit
            catalog: Plan catalog (defaults to the process-wide catalog)
            clock: Time source returning naive UTC datetimes
        """
        self.db_session = db_session
        self.catalog = catalog or get_plan_catalog()
        self.clock = clock

    # ========================================================================
    # Record Access
    # ========================================================================

    async def get_resource_quota(
        self,
        account_id: str,
        for_update: bool = False
    ) -> ResourceQuotaModel:
        """
        Load the account's resource quota, creating it on first access.

        Raises:
            AccountNotFound: Account id does not exist
            InvalidPlanError: Account carries an unknown plan tier
        """
        account = await self.db_session.get(AccountModel, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFound(account_id)

        plan_id = account.plan
        limits = self.catalog.resource_limits_for(plan_id)

        quota = await self._find_resource_quota(account_id, for_update=for_update)
        if quota is None:
            quota = await self._create_resource_quota(account_id, plan_id, limits, for_update)

        if quota.plan_id != plan_id:
            await self.sync_ceilings(quota, plan_id, limits)

        return quota

    async def _find_resource_quota(
        self,
        account_id: str,
        for_update: bool = False
    ) -> Optional[ResourceQuotaModel]:
        stmt = (
            select(ResourceQuotaModel)
            .where(ResourceQuotaModel.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db_session.execute(stmt)
        return result.scalar_one_or_none()

    async def _create_resource_quota(
        self,
        account_id: str,
        plan_id: str,
        limits: ResourceLimits,
        for_update: bool = False
    ) -> ResourceQuotaModel:
        """Insert a zero-usage record, or return the row a concurrent caller inserted"""
        now = self.clock()
        quota = ResourceQuotaModel(
            account_id=account_id,
            plan_id=plan_id,
            current_total_cpu_in_use=0,
            current_total_memory_in_use=0,
            current_total_disk_in_use=0,
            created_at=now,
            updated_at=now,
            **limits.model_dump()
        )
        try:
            async with self.db_session.begin_nested():
                self.db_session.add(quota)
                await self.db_session.flush()
        except IntegrityError:
            existing = await self._find_resource_quota(account_id, for_update=for_update)
            if existing is None:
                raise
            logger.info("resource_quota_create_conflict", account_id=account_id)
            return existing

        logger.info(
            "resource_quota_created",
            account_id=account_id,
            plan_id=plan_id
        )
        return quota

    async def sync_ceilings(
        self,
        quota: ResourceQuotaModel,
        plan_id: str,
        limits: Optional[ResourceLimits] = None
    ) -> ResourceQuotaModel:
        """Copy the plan's ceilings onto the record. Usage totals are kept."""
        limits = limits or self.catalog.resource_limits_for(plan_id)
        old_plan = quota.plan_id

        for field, value in limits.model_dump().items():
            setattr(quota, field, value)
        quota.plan_id = plan_id
        quota.updated_at = self.clock()
        await self.db_session.flush()

        logger.info(
            "resource_quota_ceilings_synced",
            account_id=quota.account_id,
            old_plan=old_plan,
            new_plan=plan_id
        )
        return quota

    # ========================================================================
    # Quota Checking
    # ========================================================================

    async def check_resource_quota(
        self,
        account_id: str,
        requested_cpu: int,
        requested_memory: int,
        requested_disk: int
    ) -> ResourceCheckResult:
        """
        Check a container request against the account's resource quota.

        Per-container ceilings are checked first (CPU, memory, disk), then
        aggregate availability in the same order. Only the first failing
        dimension is reported.

        Args:
            account_id: Account to check
            requested_cpu: CPU in millicores
            requested_memory: Memory in MB
            requested_disk: Disk in MB

        Returns:
            ResourceCheckResult indicating if the container fits
        """
        quota = await self.get_resource_quota(account_id)

        if requested_cpu > quota.max_cpu_per_container:
            return self._deny(
                account_id,
                "cpu_per_container",
                f"CPU limit ({requested_cpu}m) exceeds per-container max ({quota.max_cpu_per_container}m)"
            )

        if requested_memory > quota.max_memory_per_container:
            return self._deny(
                account_id,
                "memory_per_container",
                f"Memory limit ({requested_memory}MB) exceeds per-container max ({quota.max_memory_per_container}MB)"
            )

        if requested_disk > quota.max_disk_per_container:
            return self._deny(
                account_id,
                "disk_per_container",
                f"Disk limit ({requested_disk}MB) exceeds per-container max ({quota.max_disk_per_container}MB)"
            )

        available_cpu = quota.max_total_cpu - quota.current_total_cpu_in_use
        available_memory = quota.max_total_memory - quota.current_total_memory_in_use
        available_disk = quota.max_total_disk - quota.current_total_disk_in_use

        if requested_cpu > available_cpu:
            return self._deny(
                account_id,
                "total_cpu",
                f"Insufficient CPU quota. Available: {available_cpu}m, Requested: {requested_cpu}m"
            )

        if requested_memory > available_memory:
            return self._deny(
                account_id,
                "total_memory",
                f"Insufficient memory quota. Available: {available_memory}MB, Requested: {requested_memory}MB"
            )

        if requested_disk > available_disk:
            return self._deny(
                account_id,
                "total_disk",
                f"Insufficient disk quota. Available: {available_disk}MB, Requested: {requested_disk}MB"
            )

        return ResourceCheckResult(allowed=True)

    async def check_container_request(
        self,
        account_id: str,
        cpu: Optional[int] = None,
        memory: Optional[int] = None,
        disk: Optional[int] = None
    ) -> ContainerRequestCheck:
        """Check a container request, filling unset resources with defaults"""
        requested = ResourceRequest(
            cpu=DEFAULT_CPU_LIMIT if cpu is None else cpu,
            memory=DEFAULT_MEMORY_LIMIT if memory is None else memory,
            disk=DEFAULT_DISK_LIMIT if disk is None else disk
        )
        result = await self.check_resource_quota(
            account_id, requested.cpu, requested.memory, requested.disk
        )
        return ContainerRequestCheck(
            allowed=result.allowed,
            message=result.message,
            requested_resources=requested
        )

    # ========================================================================
    # Usage Adjustment
    # ========================================================================

    async def increment_resource_usage(
        self,
        account_id: str,
        cpu_delta: int,
        memory_delta: int,
        disk_delta: int
    ) -> ResourceQuotaModel:
        """
        Add a container's limits to the aggregate totals.

        Unconditional: no re-check against the ceilings.
        """
        self._validate_deltas(cpu_delta, memory_delta, disk_delta)
        quota = await self.get_resource_quota(account_id, for_update=True)

        quota.current_total_cpu_in_use += cpu_delta
        quota.current_total_memory_in_use += memory_delta
        quota.current_total_disk_in_use += disk_delta
        quota.updated_at = self.clock()
        await self.db_session.flush()

        logger.info(
            "resource_usage_incremented",
            account_id=account_id,
            cpu=cpu_delta,
            memory=memory_delta,
            disk=disk_delta,
            cpu_in_use=quota.current_total_cpu_in_use
        )
        return quota

    async def decrement_resource_usage(
        self,
        account_id: str,
        cpu_delta: int,
        memory_delta: int,
        disk_delta: int
    ) -> ResourceQuotaModel:
        """
        Subtract a container's limits from the aggregate totals.

        Each dimension is clamped at zero independently.
        """
        self._validate_deltas(cpu_delta, memory_delta, disk_delta)
        quota = await self.get_resource_quota(account_id, for_update=True)

        new_cpu = quota.current_total_cpu_in_use - cpu_delta
        new_memory = quota.current_total_memory_in_use - memory_delta
        new_disk = quota.current_total_disk_in_use - disk_delta

        if min(new_cpu, new_memory, new_disk) < 0:
            logger.warning(
                "resource_usage_underflow_clamped",
                account_id=account_id,
                cpu=new_cpu,
                memory=new_memory,
                disk=new_disk
            )

        quota.current_total_cpu_in_use = max(0, new_cpu)
        quota.current_total_memory_in_use = max(0, new_memory)
        quota.current_total_disk_in_use = max(0, new_disk)
        quota.updated_at = self.clock()
        await self.db_session.flush()

        logger.info(
            "resource_usage_decremented",
            account_id=account_id,
            cpu=cpu_delta,
            memory=memory_delta,
            disk=disk_delta,
            cpu_in_use=quota.current_total_cpu_in_use
        )
        return quota

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def _deny(self, account_id: str, resource: str, message: str) -> ResourceCheckResult:
        logger.warning(
            "resource_quota_denied",
            account_id=account_id,
            exceeded_resource=resource,
            reason=message
        )
        return ResourceCheckResult(
            allowed=False,
            message=message,
            exceeded_resource=resource
        )

    @staticmethod
    def _validate_deltas(cpu_delta: int, memory_delta: int, disk_delta: int) -> None:
        if min(cpu_delta, memory_delta, disk_delta) < 0:
            raise ValueError(
                f"Resource deltas must be non-negative, got cpu={cpu_delta} "
                f"memory={memory_delta} disk={disk_delta}"
            )
