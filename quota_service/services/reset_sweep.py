"""Proactive Reset Sweep - rolls over elapsed quota windows for every account"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from quota_service.core.clock import Clock, utc_now
from quota_service.core.logging_config import get_logger
from quota_service.models.usage_record import UsageRecordModel
from quota_service.schemas.quota import SweepResult
from quota_service.services.plan_catalog import DAILY_WINDOW, MONTHLY_WINDOW, PlanCatalog
from quota_service.services.quota_engine import QuotaEngine

logger = get_logger(__name__)


class ResetSweep:
    """
    Resets elapsed monthly and daily windows across all usage records.

    Lets idle accounts show zeroed counters without waiting for their next
    quota-consuming call. Uses the same elapsed test and reset writes as
    reset_monthly_quota / reset_daily_quota. Each record is handled in its
    own transaction; a failing record is reported and the sweep moves on.
    Safe to run repeatedly.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        catalog: Optional[PlanCatalog] = None,
        clock: Clock = utc_now,
        monthly_window: timedelta = MONTHLY_WINDOW,
        daily_window: timedelta = DAILY_WINDOW
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.clock = clock
        self.monthly_window = monthly_window
        self.daily_window = daily_window

    async def run(self) -> SweepResult:
        """
        Sweep every usage record once.

        Returns:
            SweepResult with reset_count, error_count, errors and timestamp
        """
        now = self.clock()
        result = SweepResult(timestamp=now)

        try:
            async with self.session_factory() as session:
                rows = await session.execute(
                    select(UsageRecordModel.id, UsageRecordModel.account_id)
                    .order_by(UsageRecordModel.id)
                )
                records = rows.all()
        except Exception as e:
            logger.error("quota_sweep_listing_failed", error=str(e), exc_info=True)
            result.errors.append(f"Quota reset sweep error: {e}")
            result.error_count = len(result.errors)
            return result

        for record_id, account_id in records:
            try:
                if await self._reset_record(record_id, now):
                    result.reset_count += 1
            except Exception as e:
                logger.error(
                    "quota_sweep_record_failed",
                    account_id=account_id,
                    error=str(e),
                    exc_info=True
                )
                result.errors.append(f"Failed to reset usage for {account_id}: {e}")

        result.error_count = len(result.errors)

        logger.info(
            "quota_sweep_completed",
            records=len(records),
            reset_count=result.reset_count,
            error_count=result.error_count
        )
        return result

    async def _reset_record(self, record_id: str, now) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                usage = await session.get(UsageRecordModel, record_id, with_for_update=True)
                if usage is None:
                    # Deleted together with its account since listing
                    return False

                engine = QuotaEngine(
                    session,
                    catalog=self.catalog,
                    clock=lambda: now,
                    monthly_window=self.monthly_window,
                    daily_window=self.daily_window
                )

                changed = False
                if engine.month_elapsed(usage, now):
                    engine.apply_monthly_reset(usage, now)
                    changed = True
                if engine.day_elapsed(usage, now):
                    engine.apply_daily_reset(usage, now)
                    changed = True

                return changed
