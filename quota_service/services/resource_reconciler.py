"""Resource Reconciler - recomputes aggregate usage from live containers"""

from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from quota_service.core.clock import Clock, utc_now
from quota_service.core.logging_config import get_logger
from quota_service.models.container import ContainerModel
from quota_service.models.resource_quota import ResourceQuotaModel
from quota_service.models.usage_record import UsageRecordModel
from quota_service.schemas.quota import ReconciliationCorrection, ReconciliationResult
from quota_service.services.account_lock import AccountLockManager, get_default_lock_manager

logger = get_logger(__name__)


class ResourceReconciler:
    """
    Corrects drift between the counters and the live container set.

    current_total_*_in_use must equal the sum of the limits of the account's
    containers, and container_count must equal how many there are. Writes
    that bypassed ContainerAccountingService (or crashed halfway) break
    that; this job puts it back.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        lock_manager: Optional[AccountLockManager] = None,
        clock: Clock = utc_now
    ):
        self.session_factory = session_factory
        self.lock_manager = lock_manager or get_default_lock_manager()
        self.clock = clock

    async def reconcile(self, account_id: Optional[str] = None) -> ReconciliationResult:
        """
        Reconcile one account, or every account with a resource quota.

        Returns:
            ReconciliationResult listing the corrections made
        """
        result = ReconciliationResult(timestamp=self.clock())

        if account_id is not None:
            account_ids = [account_id]
        else:
            async with self.session_factory() as session:
                rows = await session.execute(
                    select(ResourceQuotaModel.account_id).order_by(ResourceQuotaModel.account_id)
                )
                account_ids = list(rows.scalars().all())

        for current_id in account_ids:
            try:
                correction = await self._reconcile_account(current_id)
                result.accounts_checked += 1
                if correction is not None:
                    result.corrections.append(correction)
            except Exception as e:
                logger.error(
                    "resource_reconcile_failed",
                    account_id=current_id,
                    error=str(e),
                    exc_info=True
                )
                result.errors.append(f"Failed to reconcile resources for {current_id}: {e}")

        result.error_count = len(result.errors)

        logger.info(
            "resource_reconcile_completed",
            accounts_checked=result.accounts_checked,
            corrections=len(result.corrections),
            error_count=result.error_count
        )
        return result

    async def _reconcile_account(self, account_id: str) -> Optional[ReconciliationCorrection]:
        async with self.lock_manager.hold(account_id):
            async with self.session_factory() as session:
                async with session.begin():
                    # Lock usage then quota before summing, the order container
                    # writers use; the sum must not predate a committed writer.
                    usage = (await session.execute(
                        select(UsageRecordModel)
                        .where(UsageRecordModel.account_id == account_id)
                        .with_for_update()
                    )).scalar_one_or_none()
                    quota = (await session.execute(
                        select(ResourceQuotaModel)
                        .where(ResourceQuotaModel.account_id == account_id)
                        .with_for_update()
                    )).scalar_one_or_none()

                    totals = await session.execute(
                        select(
                            func.count(ContainerModel.id),
                            func.coalesce(func.sum(ContainerModel.cpu_limit), 0),
                            func.coalesce(func.sum(ContainerModel.memory_limit), 0),
                            func.coalesce(func.sum(ContainerModel.disk_limit), 0),
                        ).where(ContainerModel.account_id == account_id)
                    )
                    count, cpu, memory, disk = totals.one()
                    expected = {
                        "container_count": int(count),
                        "cpu": int(cpu),
                        "memory": int(memory),
                        "disk": int(disk),
                    }

                    before: Dict[str, int] = {}
                    if quota is not None:
                        before.update(
                            cpu=quota.current_total_cpu_in_use,
                            memory=quota.current_total_memory_in_use,
                            disk=quota.current_total_disk_in_use
                        )
                    if usage is not None:
                        before["container_count"] = usage.container_count

                    drifted: List[str] = [key for key, value in before.items() if value != expected[key]]
                    if not drifted:
                        return None

                    now = self.clock()
                    if quota is not None:
                        quota.current_total_cpu_in_use = expected["cpu"]
                        quota.current_total_memory_in_use = expected["memory"]
                        quota.current_total_disk_in_use = expected["disk"]
                        quota.updated_at = now
                    if usage is not None:
                        usage.container_count = expected["container_count"]
                        usage.updated_at = now

        after = {key: expected[key] for key in before}
        logger.warning(
            "resource_drift_corrected",
            account_id=account_id,
            drifted=drifted,
            before=before,
            after=after
        )
        return ReconciliationCorrection(account_id=account_id, before=before, after=after)
