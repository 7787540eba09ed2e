"""Plan Change Service - moves an account between plan tiers"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quota_service.core.clock import Clock, utc_now
from quota_service.core.exceptions import AccountNotFound
from quota_service.core.logging_config import get_logger
from quota_service.models.account import AccountModel
from quota_service.models.resource_quota import ResourceQuotaModel
from quota_service.models.usage_record import UsageRecordModel
from quota_service.schemas.account import PlanChangeResult
from quota_service.services.account_lock import AccountLockManager, get_default_lock_manager
from quota_service.services.plan_catalog import PlanCatalog, get_plan_catalog
from quota_service.services.quota_engine import QuotaEngine
from quota_service.services.resource_quota_engine import ResourceQuotaEngine

logger = get_logger(__name__)


class PlanChangeService:
    """
    Applies plan upgrades and downgrades.

    Patches the account's plan, the usage record's plan_id and the resource
    quota ceilings in one transaction. Counters are left untouched, so a
    downgrade below current usage simply denies further admissions.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        catalog: Optional[PlanCatalog] = None,
        lock_manager: Optional[AccountLockManager] = None,
        clock: Clock = utc_now
    ):
        self.db_session = db_session
        self.catalog = catalog or get_plan_catalog()
        self.lock_manager = lock_manager or get_default_lock_manager()
        self.clock = clock
        self.quota_engine = QuotaEngine(
            db_session, catalog=self.catalog, clock=clock, lock_manager=self.lock_manager
        )
        self.resource_engine = ResourceQuotaEngine(db_session, catalog=self.catalog, clock=clock)

    async def update_account_plan(self, account_id: str, new_plan: str) -> PlanChangeResult:
        """
        Move an account to a new plan tier. Takes effect on the next check.

        Raises:
            InvalidPlanError: Unknown target tier
            AccountNotFound: Account id does not exist
        """
        new_plan = self.catalog.normalize(new_plan)

        async with self.lock_manager.hold(account_id):
            try:
                account = await self.db_session.get(
                    AccountModel, account_id, with_for_update=True, populate_existing=True
                )
                if account is None:
                    raise AccountNotFound(account_id)

                old_plan = account.plan
                if old_plan == new_plan:
                    return PlanChangeResult(
                        success=False,
                        message="Account is already on this plan"
                    )

                now = self.clock()
                account.plan = new_plan
                account.updated_at = now

                usage = await self._find(UsageRecordModel, account_id)
                if usage is not None:
                    usage.plan_id = new_plan
                    usage.updated_at = now
                else:
                    await self.quota_engine.initialize_account_usage(account_id, new_plan)

                resource_quota = await self._find(ResourceQuotaModel, account_id)
                if resource_quota is not None:
                    await self.resource_engine.sync_ceilings(resource_quota, new_plan)

                await self.db_session.commit()
            except Exception:
                await self.db_session.rollback()
                raise

        logger.info(
            "account_plan_changed",
            account_id=account_id,
            old_plan=old_plan,
            new_plan=new_plan
        )
        return PlanChangeResult(
            success=True,
            message=f"Plan updated from {old_plan} to {new_plan}",
            old_plan=old_plan,
            new_plan=new_plan
        )

    async def _find(self, model, account_id: str):
        stmt = (
            select(model)
            .where(model.account_id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db_session.execute(stmt)
        return result.scalar_one_or_none()
