"""Resource Metrics - container usage samples, threshold alerts and account reports"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quota_service.core.clock import Clock, utc_now
from quota_service.core.logging_config import get_logger
from quota_service.models.resource_metric import ResourceMetricModel
from quota_service.schemas.metrics import (
    AccountAlerts,
    AccountResourceMetrics,
    AggregateCeilings,
    AggregateQuotaReport,
    AggregateUsage,
    ContainerMetrics,
    ContainerMetricsHistory,
    ContainerReportEntry,
    PerContainerCeilings,
    QuotaReport,
    ResourceMetricView,
    ResourceReport,
)
from quota_service.services.container_accounting import ContainerAccountingService
from quota_service.services.resource_quota_engine import ResourceQuotaEngine

logger = get_logger(__name__)


METRIC_ALERT_THRESHOLD_PERCENT = 80.0
DEFAULT_HISTORY_LIMIT = 24
BYTES_PER_MB = 1024 * 1024


def usage_percent(used: float, limit: float) -> float:
    """Percentage of limit used, uncapped. 0 when there is no limit."""
    if limit <= 0:
        return 0.0
    return used * 100 / limit


class ResourceMetricsService:
    """
    Stores usage samples reported for containers and summarizes them.

    Samples are measurements, not reservations: they never change the
    resource quota counters, which track the limits containers were
    admitted with.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        container_service: Optional[ContainerAccountingService] = None,
        resource_engine: Optional[ResourceQuotaEngine] = None,
        clock: Clock = utc_now
    ):
        self.db_session = db_session
        self.clock = clock
        self.resource_engine = resource_engine or ResourceQuotaEngine(db_session, clock=clock)
        self.container_service = container_service or ContainerAccountingService(
            db_session, resource_engine=self.resource_engine, clock=clock
        )

    # ========================================================================
    # Recording
    # ========================================================================

    async def record_metrics(
        self,
        account_id: str,
        container_id: str,
        cpu_usage_millicores: int,
        memory_usage_bytes: int,
        disk_usage_bytes: int
    ) -> ResourceMetricModel:
        """
        Store one usage sample for a container.

        Percentages are taken against the container's own limits and capped
        at 100. A dimension alerts when it is above 80% before capping.

        Raises:
            ContainerNotFound: Container missing or owned by another account
            ValueError: A usage value is negative
        """
        if min(cpu_usage_millicores, memory_usage_bytes, disk_usage_bytes) < 0:
            raise ValueError("Resource usage values must be non-negative")

        container = await self.container_service.get_container(account_id, container_id)

        cpu_percent = usage_percent(cpu_usage_millicores, container.cpu_limit)
        memory_percent = usage_percent(memory_usage_bytes, container.memory_limit * BYTES_PER_MB)
        disk_percent = usage_percent(disk_usage_bytes, container.disk_limit * BYTES_PER_MB)

        now = self.clock()
        metric = ResourceMetricModel(
            account_id=account_id,
            container_id=container_id,
            cpu_usage_millicores=cpu_usage_millicores,
            cpu_usage_percent=min(100.0, cpu_percent),
            memory_usage_bytes=memory_usage_bytes,
            memory_usage_percent=min(100.0, memory_percent),
            disk_usage_bytes=disk_usage_bytes,
            disk_usage_percent=min(100.0, disk_percent),
            cpu_threshold_exceeded=cpu_percent > METRIC_ALERT_THRESHOLD_PERCENT,
            memory_threshold_exceeded=memory_percent > METRIC_ALERT_THRESHOLD_PERCENT,
            disk_threshold_exceeded=disk_percent > METRIC_ALERT_THRESHOLD_PERCENT,
            recorded_at=now,
            created_at=now,
            updated_at=now
        )
        self.db_session.add(metric)
        await self.db_session.flush()

        if metric.cpu_threshold_exceeded or metric.memory_threshold_exceeded or metric.disk_threshold_exceeded:
            logger.warning(
                "resource_threshold_exceeded",
                account_id=account_id,
                container_id=container_id,
                cpu_percent=round(cpu_percent, 1),
                memory_percent=round(memory_percent, 1),
                disk_percent=round(disk_percent, 1)
            )
        else:
            logger.debug(
                "resource_metrics_recorded",
                account_id=account_id,
                container_id=container_id
            )
        return metric

    # ========================================================================
    # Container Metrics
    # ========================================================================

    async def get_container_metrics(self, account_id: str, container_id: str) -> ContainerMetrics:
        """
        Latest sample for a container.

        Raises:
            ContainerNotFound: Container missing or owned by another account
        """
        container = await self.container_service.get_container(account_id, container_id)
        latest = await self._latest_metric(container_id)

        result = ContainerMetrics(
            container_id=container.id,
            container_name=container.name,
            status="ok",
            cpu_limit=container.cpu_limit,
            memory_limit=container.memory_limit,
            disk_limit=container.disk_limit
        )
        if latest is None:
            result.status = "no_data"
            result.message = "No metrics available yet"
        else:
            result.metrics = ResourceMetricView.from_model(latest)
        return result

    async def get_container_metrics_history(
        self,
        account_id: str,
        container_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT
    ) -> ContainerMetricsHistory:
        """
        Most recent samples for a container, newest first.

        Raises:
            ContainerNotFound: Container missing or owned by another account
            ValueError: limit is not positive
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")

        container = await self.container_service.get_container(account_id, container_id)
        result = await self.db_session.execute(
            select(ResourceMetricModel)
            .where(
                ResourceMetricModel.account_id == account_id,
                ResourceMetricModel.container_id == container_id
            )
            .order_by(ResourceMetricModel.recorded_at.desc(), ResourceMetricModel.created_at.desc())
            .limit(limit)
        )
        history = [ResourceMetricView.from_model(m) for m in result.scalars().all()]

        return ContainerMetricsHistory(
            container_id=container.id,
            container_name=container.name,
            metrics_count=len(history),
            metrics=history
        )

    # ========================================================================
    # Account Metrics and Reports
    # ========================================================================

    async def get_account_resource_metrics(self, account_id: str) -> AccountResourceMetrics:
        """
        Sum the latest sample of every container against the aggregate ceilings.

        Containers without samples count as zero usage.

        Raises:
            AccountNotFound: Account id does not exist
        """
        quota = await self.resource_engine.get_resource_quota(account_id)
        containers = await self.container_service.list_containers(account_id)
        samples = [await self._latest_metric(c.id) for c in containers]
        samples = [s for s in samples if s is not None]

        total_cpu = sum(s.cpu_usage_millicores for s in samples)
        total_memory = sum(s.memory_usage_bytes for s in samples)
        total_disk = sum(s.disk_usage_bytes for s in samples)

        return AccountResourceMetrics(
            account_id=account_id,
            quota=AggregateCeilings(
                max_total_cpu=quota.max_total_cpu,
                max_total_memory=quota.max_total_memory,
                max_total_disk=quota.max_total_disk
            ),
            usage=AggregateUsage(
                total_cpu_in_use=total_cpu,
                total_cpu_percent=min(100.0, usage_percent(total_cpu, quota.max_total_cpu)),
                total_memory_in_use=total_memory,
                total_memory_percent=min(
                    100.0, usage_percent(total_memory, quota.max_total_memory * BYTES_PER_MB)
                ),
                total_disk_in_use=total_disk,
                total_disk_percent=min(
                    100.0, usage_percent(total_disk, quota.max_total_disk * BYTES_PER_MB)
                )
            ),
            container_count=len(containers),
            alerts=AccountAlerts(
                high_cpu_usage=any(s.cpu_threshold_exceeded for s in samples),
                high_memory_usage=any(s.memory_threshold_exceeded for s in samples),
                high_disk_usage=any(s.disk_threshold_exceeded for s in samples)
            )
        )

    async def get_resource_report(self, account_id: str) -> ResourceReport:
        """
        Full resource picture for an account: ceilings, reserved totals and
        each container's limits with its latest sample.

        Raises:
            AccountNotFound: Account id does not exist
        """
        quota = await self.resource_engine.get_resource_quota(account_id)
        containers = await self.container_service.list_containers(account_id)

        entries: List[ContainerReportEntry] = []
        for container in containers:
            latest = await self._latest_metric(container.id)
            entries.append(ContainerReportEntry(
                id=container.id,
                name=container.name,
                image_tag=container.image_tag,
                status=container.status,
                cpu_limit=container.cpu_limit,
                memory_limit=container.memory_limit,
                disk_limit=container.disk_limit,
                metrics=ResourceMetricView.from_model(latest) if latest is not None else None,
                created_at=container.created_at,
                updated_at=container.updated_at
            ))

        logger.info(
            "resource_report_generated",
            account_id=account_id,
            container_count=len(entries)
        )

        return ResourceReport(
            account_id=account_id,
            quotas=QuotaReport(
                per_container=PerContainerCeilings(
                    max_cpu=quota.max_cpu_per_container,
                    max_memory=quota.max_memory_per_container,
                    max_disk=quota.max_disk_per_container
                ),
                aggregate=AggregateQuotaReport(
                    max_cpu=quota.max_total_cpu,
                    max_memory=quota.max_total_memory,
                    max_disk=quota.max_total_disk,
                    current_cpu_in_use=quota.current_total_cpu_in_use,
                    current_memory_in_use=quota.current_total_memory_in_use,
                    current_disk_in_use=quota.current_total_disk_in_use
                )
            ),
            container_count=len(entries),
            containers=entries,
            timestamp=self.clock()
        )

    async def _latest_metric(self, container_id: str) -> Optional[ResourceMetricModel]:
        result = await self.db_session.execute(
            select(ResourceMetricModel)
            .where(ResourceMetricModel.container_id == container_id)
            .order_by(ResourceMetricModel.recorded_at.desc(), ResourceMetricModel.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
