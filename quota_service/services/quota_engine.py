"""Quota Engine - admission checks and usage counters for plan quotas"""

from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quota_service.core.clock import Clock, utc_now
from quota_service.core.config import settings
from quota_service.core.exceptions import (
    AccountNotFound,
    QuotaExceededError,
    UnknownQuotaType,
    UsageRecordNotFound,
)
from quota_service.core.logging_config import get_logger
from quota_service.models.account import AccountModel
from quota_service.models.usage_record import UsageRecordModel
from quota_service.schemas.quota import (
    AccountUsageSummary,
    CountUsage,
    QuotaCheckResult,
    QuotaType,
    WindowedUsage,
    WINDOWED_QUOTA_TYPES,
)
from quota_service.services.account_lock import AccountLockManager, get_default_lock_manager
from quota_service.services.plan_catalog import (
    DAILY_WINDOW,
    MONTHLY_WINDOW,
    PlanCatalog,
    get_plan_catalog,
)

logger = get_logger(__name__)


QUOTA_LABELS = {
    QuotaType.MESSAGES: ("Messages", " this month"),
    QuotaType.API_CALLS: ("API calls", " today"),
    QuotaType.AGENTS: ("Agents", ""),
    QuotaType.CONTAINERS: ("Containers", ""),
}


def parse_quota_type(quota_type: Union[QuotaType, str]) -> QuotaType:
    """
    Coerce a quota type literal into QuotaType.

    Raises:
        UnknownQuotaType: If the literal is not a supported quota type
    """
    if isinstance(quota_type, QuotaType):
        return quota_type
    try:
        return QuotaType(quota_type)
    except ValueError:
        raise UnknownQuotaType(str(quota_type))


class QuotaEngine:
    """
    Quota Engine enforces plan quotas per account.

    Responsibilities:
    - Read-only admission checks (check_quota)
    - Counter mutations (increment_usage, decrement_usage)
    - Window resets (reset_monthly_quota, reset_daily_quota)
    - Usage record creation (initialize_account_usage)

    Rate counters (messages, API calls) roll over when their window has
    elapsed. The elapsed test is strict: a window exactly one window-length
    old is still current.

    check_quota and increment_usage are two separate calls. Two callers that
    both check before either increments can overshoot the limit; callers
    that need a hard ceiling use consume(), which runs both under the
    account lock and commits before releasing it.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        catalog: Optional[PlanCatalog] = None,
        clock: Clock = utc_now,
        monthly_window: timedelta = MONTHLY_WINDOW,
        daily_window: timedelta = DAILY_WINDOW,
        lock_manager: Optional[AccountLockManager] = None
    ):
        """
        Initialize Quota Engine.

        Args:
            db_session: Database session; the caller owns the commit
            catalog: Plan catalog (defaults to the process-wide catalog)
            clock: Time source returning naive UTC datetimes
            monthly_window: Length of the message window
            daily_window: Length of the API call window
            lock_manager: Per-account locks used by consume()
        """
        self.db_session = db_session
        self.catalog = catalog or get_plan_catalog()
        self.clock = clock
        self.monthly_window = monthly_window
        self.daily_window = daily_window
        self.lock_manager = lock_manager or get_default_lock_manager()

    # ========================================================================
    # Admission Checks
    # ========================================================================

    async def check_quota(
        self,
        account_id: str,
        quota_type: Union[QuotaType, str]
    ) -> QuotaCheckResult:
        """
        Check whether the account may consume one more unit.

        Elapsed windows are applied in memory only; nothing is written.
        Being exactly at the limit denies the next unit.

        Args:
            account_id: Account to check
            quota_type: messages, apiCalls, agents or containers

        Returns:
            QuotaCheckResult with allowed/current/limit/remaining/message

        Raises:
            UsageRecordNotFound: Account usage was never initialized
            AccountNotFound: Account id does not exist
            InvalidPlanError: Account carries an unknown plan tier
            UnknownQuotaType: Unsupported quota type literal
        """
        quota_type = parse_quota_type(quota_type)
        usage = await self._get_usage(account_id)
        account = await self._get_account(account_id)
        quota = self.catalog.limits_for(account.plan)
        now = self.clock()

        current = self._effective_value(usage, quota_type, now)
        limit = {
            QuotaType.MESSAGES: quota.messages_per_month,
            QuotaType.API_CALLS: quota.api_calls_per_day,
            QuotaType.AGENTS: quota.max_agents,
            QuotaType.CONTAINERS: quota.max_containers,
        }[quota_type]

        remaining = limit - current
        label, suffix = QUOTA_LABELS[quota_type]
        result = QuotaCheckResult(
            allowed=remaining > 0,
            current=current,
            limit=limit,
            remaining=max(0, remaining),
            message=f"{label}: {current}/{limit}{suffix}",
            quota_type=quota_type
        )

        if not result.allowed:
            logger.warning(
                "quota_denied",
                account_id=account_id,
                quota_type=quota_type.value,
                current=current,
                limit=limit,
                plan=account.plan
            )

        return result

    async def get_account_usage(self, account_id: str) -> AccountUsageSummary:
        """
        Window-aware usage snapshot with remaining quotas and time to reset.

        Read-only, like check_quota.
        """
        usage = await self._get_usage(account_id)
        account = await self._get_account(account_id)
        quota = self.catalog.limits_for(account.plan)
        now = self.clock()

        month_elapsed = self.month_elapsed(usage, now)
        day_elapsed = self.day_elapsed(usage, now)
        messages = 0 if month_elapsed else usage.messages_this_month
        api_calls = 0 if day_elapsed else usage.api_calls_today

        month_reset_in = 0.0 if month_elapsed else (
            self.monthly_window - (now - usage.messages_month_start)
        ).total_seconds()
        day_reset_in = 0.0 if day_elapsed else (
            self.daily_window - (now - usage.api_calls_day_start)
        ).total_seconds()

        return AccountUsageSummary(
            account_id=account_id,
            plan_id=account.plan,
            messages=WindowedUsage(
                current=messages,
                limit=quota.messages_per_month,
                remaining=max(0, quota.messages_per_month - messages),
                reset_in_seconds=max(0.0, month_reset_in)
            ),
            api_calls=WindowedUsage(
                current=api_calls,
                limit=quota.api_calls_per_day,
                remaining=max(0, quota.api_calls_per_day - api_calls),
                reset_in_seconds=max(0.0, day_reset_in)
            ),
            agents=CountUsage(
                current=usage.agent_count,
                limit=quota.max_agents,
                remaining=max(0, quota.max_agents - usage.agent_count)
            ),
            containers=CountUsage(
                current=usage.container_count,
                limit=quota.max_containers,
                remaining=max(0, quota.max_containers - usage.container_count)
            )
        )

    # ========================================================================
    # Counter Mutations
    # ========================================================================

    async def increment_usage(
        self,
        account_id: str,
        quota_type: Union[QuotaType, str]
    ) -> UsageRecordModel:
        """
        Record one unit of usage. Does not check the limit.

        If the counter's window has elapsed, the counter is set to 1 and its
        window start rebased to now in the same write. Any other elapsed
        window touched by this write is rolled over to 0.

        Raises:
            UsageRecordNotFound: Account usage was never initialized
            UnknownQuotaType: Unsupported quota type literal
        """
        quota_type = parse_quota_type(quota_type)
        usage = await self._get_usage(account_id, for_update=True)
        now = self.clock()

        if self.month_elapsed(usage, now):
            usage.messages_this_month = 1 if quota_type == QuotaType.MESSAGES else 0
            usage.messages_month_start = now
            usage.last_reset = now
        elif quota_type == QuotaType.MESSAGES:
            usage.messages_this_month += 1

        if self.day_elapsed(usage, now):
            usage.api_calls_today = 1 if quota_type == QuotaType.API_CALLS else 0
            usage.api_calls_day_start = now
        elif quota_type == QuotaType.API_CALLS:
            usage.api_calls_today += 1

        if quota_type == QuotaType.AGENTS:
            usage.agent_count += 1
        elif quota_type == QuotaType.CONTAINERS:
            usage.container_count += 1

        usage.updated_at = now
        await self.db_session.flush()

        logger.debug(
            "usage_incremented",
            account_id=account_id,
            quota_type=quota_type.value
        )
        return usage

    async def decrement_usage(
        self,
        account_id: str,
        quota_type: Union[QuotaType, str]
    ) -> UsageRecordModel:
        """
        Release one unit of a live count (agents, containers).

        Clamped at zero so a duplicate delete cannot go negative. Rate
        counters are never decremented.

        Raises:
            UsageRecordNotFound: Account usage was never initialized
            UnknownQuotaType: Unsupported quota type literal
        """
        quota_type = parse_quota_type(quota_type)
        usage = await self._get_usage(account_id, for_update=True)

        if quota_type in WINDOWED_QUOTA_TYPES:
            logger.warning(
                "decrement_ignored_for_windowed_quota",
                account_id=account_id,
                quota_type=quota_type.value
            )
            return usage

        if quota_type == QuotaType.AGENTS:
            usage.agent_count = max(0, usage.agent_count - 1)
        else:
            usage.container_count = max(0, usage.container_count - 1)

        usage.updated_at = self.clock()
        await self.db_session.flush()

        logger.debug(
            "usage_decremented",
            account_id=account_id,
            quota_type=quota_type.value
        )
        return usage

    async def consume(
        self,
        account_id: str,
        quota_type: Union[QuotaType, str]
    ) -> QuotaCheckResult:
        """
        Check and increment under the account lock, then commit.

        Returns the pre-increment check result.

        Raises:
            QuotaExceededError: If the check denies; nothing is written
            AccountLockTimeout: If the account lock is not acquired in time
        """
        async with self.lock_manager.hold(account_id):
            result = await self.check_quota(account_id, quota_type)
            if not result.allowed:
                raise QuotaExceededError(
                    f"Quota exceeded: {result.message}",
                    details=result.model_dump(mode="json")
                )
            try:
                await self.increment_usage(account_id, quota_type)
                await self.db_session.commit()
            except Exception:
                await self.db_session.rollback()
                raise
            return result

    # ========================================================================
    # Window Resets
    # ========================================================================

    async def reset_monthly_quota(self, account_id: str) -> bool:
        """
        Zero the message counter if its window has elapsed.

        Idempotent. No write at all when the window is current, and a silent
        no-op when the account has no usage record.

        Returns:
            True if the counter was reset
        """
        usage = await self._find_usage(account_id, for_update=True)
        if usage is None:
            return False

        now = self.clock()
        if not self.month_elapsed(usage, now):
            return False

        self.apply_monthly_reset(usage, now)
        await self.db_session.flush()
        logger.info("monthly_quota_reset", account_id=account_id)
        return True

    async def reset_daily_quota(self, account_id: str) -> bool:
        """
        Zero the API call counter if its window has elapsed.

        Same semantics as reset_monthly_quota.
        """
        usage = await self._find_usage(account_id, for_update=True)
        if usage is None:
            return False

        now = self.clock()
        if not self.day_elapsed(usage, now):
            return False

        self.apply_daily_reset(usage, now)
        await self.db_session.flush()
        logger.info("daily_quota_reset", account_id=account_id)
        return True

    def apply_monthly_reset(self, usage: UsageRecordModel, now: datetime) -> None:
        usage.messages_this_month = 0
        usage.messages_month_start = now
        usage.last_reset = now
        usage.updated_at = now

    def apply_daily_reset(self, usage: UsageRecordModel, now: datetime) -> None:
        usage.api_calls_today = 0
        usage.api_calls_day_start = now
        usage.updated_at = now

    # ========================================================================
    # Usage Record Lifecycle
    # ========================================================================

    async def initialize_account_usage(
        self,
        account_id: str,
        plan_id: str = settings.DEFAULT_PLAN
    ) -> str:
        """
        Create the account's usage record with zero counters.

        Idempotent: if a record already exists its id is returned untouched.

        Returns:
            Usage record id

        Raises:
            InvalidPlanError: If plan_id is not a known tier
        """
        plan_id = self.catalog.normalize(plan_id)

        existing = await self._find_usage(account_id)
        if existing is not None:
            return existing.id

        now = self.clock()
        usage = UsageRecordModel(
            account_id=account_id,
            plan_id=plan_id,
            messages_this_month=0,
            messages_month_start=now,
            api_calls_today=0,
            api_calls_day_start=now,
            agent_count=0,
            container_count=0,
            last_reset=now,
            created_at=now,
            updated_at=now
        )

        try:
            async with self.db_session.begin_nested():
                self.db_session.add(usage)
                await self.db_session.flush()
        except IntegrityError:
            # A concurrent initializer inserted first
            existing = await self._find_usage(account_id)
            if existing is None:
                raise
            logger.info("account_usage_initialize_conflict", account_id=account_id)
            return existing.id

        logger.info(
            "account_usage_initialized",
            account_id=account_id,
            plan_id=plan_id
        )
        return usage.id

    async def lock_usage_record(self, account_id: str) -> UsageRecordModel:
        """
        Load the usage record with a row lock held until the transaction ends.

        Every writer that touches both the usage record and the resource
        quota takes this lock first, so they serialize on one row even when
        the account lock is process-local.

        Raises:
            UsageRecordNotFound: Account usage was never initialized
        """
        return await self._get_usage(account_id, for_update=True)

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def month_elapsed(self, usage: UsageRecordModel, now: datetime) -> bool:
        """Strict: a window exactly monthly_window old has not elapsed"""
        return now - usage.messages_month_start > self.monthly_window

    def day_elapsed(self, usage: UsageRecordModel, now: datetime) -> bool:
        return now - usage.api_calls_day_start > self.daily_window

    def _effective_value(
        self,
        usage: UsageRecordModel,
        quota_type: QuotaType,
        now: datetime
    ) -> int:
        if quota_type == QuotaType.MESSAGES:
            return 0 if self.month_elapsed(usage, now) else usage.messages_this_month
        if quota_type == QuotaType.API_CALLS:
            return 0 if self.day_elapsed(usage, now) else usage.api_calls_today
        if quota_type == QuotaType.AGENTS:
            return usage.agent_count
        return usage.container_count

    async def _find_usage(
        self,
        account_id: str,
        for_update: bool = False
    ) -> Optional[UsageRecordModel]:
        stmt = (
            select(UsageRecordModel)
            .where(UsageRecordModel.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db_session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_usage(self, account_id: str, for_update: bool = False) -> UsageRecordModel:
        usage = await self._find_usage(account_id, for_update=for_update)
        if usage is None:
            raise UsageRecordNotFound(account_id)
        return usage

    async def _get_account(self, account_id: str) -> AccountModel:
        account = await self.db_session.get(AccountModel, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFound(account_id)
        return account
