"""Container Accounting - quota-gated container reservation and release"""

from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from quota_service.core.clock import Clock, utc_now
from quota_service.core.exceptions import (
    ContainerNotFound,
    QuotaExceededError,
    ResourceLimitExceededError,
)
from quota_service.core.logging_config import get_logger
from quota_service.models.container import ContainerModel, ContainerStatus
from quota_service.models.resource_metric import ResourceMetricModel
from quota_service.schemas.quota import QuotaType
from quota_service.services.account_lock import AccountLockManager, get_default_lock_manager
from quota_service.services.quota_engine import QuotaEngine
from quota_service.services.resource_quota_engine import (
    DEFAULT_CPU_LIMIT,
    DEFAULT_DISK_LIMIT,
    DEFAULT_MEMORY_LIMIT,
    ResourceQuotaEngine,
)

logger = get_logger(__name__)


class ContainerAccountingService:
    """
    Reserves and releases account capacity for containers.

    A container touches two stores: the usage record's container_count and
    the resource quota's aggregate totals. Both checks and both writes run
    under the account lock inside one transaction, so a failure between the
    two writes rolls both back.

    Every container row holds its reservation whatever its status, until
    remove_container releases it. update_status only records the lifecycle
    state reported by whoever runs the container.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        quota_engine: Optional[QuotaEngine] = None,
        resource_engine: Optional[ResourceQuotaEngine] = None,
        lock_manager: Optional[AccountLockManager] = None,
        clock: Clock = utc_now
    ):
        self.db_session = db_session
        self.clock = clock
        self.lock_manager = lock_manager or get_default_lock_manager()
        self.quota_engine = quota_engine or QuotaEngine(
            db_session, clock=clock, lock_manager=self.lock_manager
        )
        self.resource_engine = resource_engine or ResourceQuotaEngine(db_session, clock=clock)

    async def create_container(
        self,
        account_id: str,
        name: str,
        image_tag: str,
        cpu_limit: int = DEFAULT_CPU_LIMIT,
        memory_limit: int = DEFAULT_MEMORY_LIMIT,
        disk_limit: int = DEFAULT_DISK_LIMIT
    ) -> ContainerModel:
        """
        Reserve quota for a new container and record it.

        Raises:
            QuotaExceededError: Container count quota is exhausted
            ResourceLimitExceededError: CPU/memory/disk does not fit
            AccountLockTimeout: Account lock not acquired in time
        """
        async with self.lock_manager.hold(account_id):
            try:
                await self.quota_engine.lock_usage_record(account_id)
                quota_check = await self.quota_engine.check_quota(account_id, QuotaType.CONTAINERS)
                if not quota_check.allowed:
                    raise QuotaExceededError(
                        f"Quota exceeded: {quota_check.message}. "
                        f"Upgrade your plan to create more containers.",
                        details=quota_check.model_dump(mode="json")
                    )

                resource_check = await self.resource_engine.check_resource_quota(
                    account_id, cpu_limit, memory_limit, disk_limit
                )
                if not resource_check.allowed:
                    raise ResourceLimitExceededError(
                        f"Resource quota exceeded: {resource_check.message}",
                        details=resource_check.model_dump(mode="json")
                    )

                now = self.clock()
                container = ContainerModel(
                    account_id=account_id,
                    name=name,
                    image_tag=image_tag,
                    cpu_limit=cpu_limit,
                    memory_limit=memory_limit,
                    disk_limit=disk_limit,
                    status=ContainerStatus.PROVISIONING,
                    created_at=now,
                    updated_at=now
                )
                self.db_session.add(container)
                await self.db_session.flush()

                await self.quota_engine.increment_usage(account_id, QuotaType.CONTAINERS)
                await self.resource_engine.increment_resource_usage(
                    account_id, cpu_limit, memory_limit, disk_limit
                )
                await self.db_session.commit()
            except Exception:
                await self.db_session.rollback()
                raise

        logger.info(
            "container_reserved",
            account_id=account_id,
            container_id=container.id,
            container_name=name,
            image_tag=image_tag,
            cpu_limit=cpu_limit,
            memory_limit=memory_limit,
            disk_limit=disk_limit
        )
        return container

    async def remove_container(self, account_id: str, container_id: str) -> str:
        """
        Release a container's quota using its own recorded limits.

        Raises:
            ContainerNotFound: Container missing or owned by another account
        """
        async with self.lock_manager.hold(account_id):
            try:
                await self.quota_engine.lock_usage_record(account_id)
                stmt = (
                    select(ContainerModel)
                    .where(ContainerModel.id == container_id)
                    .with_for_update()
                )
                result = await self.db_session.execute(stmt)
                container = result.scalar_one_or_none()
                if container is None or container.account_id != account_id:
                    raise ContainerNotFound(container_id, account_id)

                cpu, memory, disk = container.cpu_limit, container.memory_limit, container.disk_limit
                await self.db_session.execute(
                    delete(ResourceMetricModel).where(ResourceMetricModel.container_id == container_id)
                )
                await self.db_session.delete(container)
                await self.db_session.flush()

                await self.quota_engine.decrement_usage(account_id, QuotaType.CONTAINERS)
                await self.resource_engine.decrement_resource_usage(account_id, cpu, memory, disk)
                await self.db_session.commit()
            except Exception:
                await self.db_session.rollback()
                raise

        logger.info(
            "container_released",
            account_id=account_id,
            container_id=container_id,
            cpu_limit=cpu,
            memory_limit=memory,
            disk_limit=disk
        )
        return container_id

    # ========================================================================
    # Container Queries and Status
    # ========================================================================

    async def get_container(self, account_id: str, container_id: str) -> ContainerModel:
        """
        Load a container owned by the account.

        Raises:
            ContainerNotFound: Container missing or owned by another account
        """
        container = await self.db_session.get(ContainerModel, container_id, populate_existing=True)
        if container is None or container.account_id != account_id:
            raise ContainerNotFound(container_id, account_id)
        return container

    async def list_containers(self, account_id: str) -> List[ContainerModel]:
        """List the account's containers, oldest first"""
        result = await self.db_session.execute(
            select(ContainerModel)
            .where(ContainerModel.account_id == account_id)
            .order_by(ContainerModel.created_at, ContainerModel.id)
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        account_id: str,
        container_id: str,
        new_status: ContainerStatus
    ) -> ContainerModel:
        """
        Record a lifecycle transition. Quota and resource usage are unchanged.

        Raises:
            ContainerNotFound: Container missing or owned by another account
        """
        new_status = ContainerStatus(new_status)
        container = await self.get_container(account_id, container_id)
        old_status = container.status

        if old_status != new_status:
            container.status = new_status
            container.updated_at = self.clock()
            await self.db_session.flush()

            logger.info(
                "container_status_changed",
                account_id=account_id,
                container_id=container_id,
                old_status=ContainerStatus(old_status).value,
                new_status=new_status.value
            )
        return container
