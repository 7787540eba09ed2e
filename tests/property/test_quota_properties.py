"""
Property-based tests for quota accounting.

These tests verify that admission checks, counters and resource totals keep
their guarantees for arbitrary usage levels, plans and operation sequences.
"""

import asyncio
from datetime import datetime, timedelta

import pytest
from hypothesis import given, strategies as st, settings
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from quota_service.models import AccountModel, Base, UsageRecordModel
from quota_service.schemas.quota import QuotaType
from quota_service.services.account_lock import AccountLockManager
from quota_service.services.plan_catalog import MONTHLY_WINDOW, DAILY_WINDOW, PlanCatalog
from quota_service.services.quota_engine import QuotaEngine
from quota_service.services.resource_quota_engine import ResourceQuotaEngine


START = datetime(2026, 3, 1, 0, 0, 0)
PLANS = ["free", "pro", "enterprise"]

plan_strategy = st.sampled_from(PLANS)
quota_type_strategy = st.sampled_from(list(QuotaType))


def run_with_session(scenario):
    """Run an async scenario against a fresh in-memory database"""
    async def _run():
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with factory() as session:
                return await scenario(session)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


async def create_account(session, plan: str, clock=lambda: START) -> str:
    account = AccountModel(name="prop", plan=plan)
    session.add(account)
    await session.flush()
    await QuotaEngine(session, clock=clock, lock_manager=AccountLockManager()).initialize_account_usage(
        account.id, plan
    )
    return account.id


def transient_usage(**values) -> UsageRecordModel:
    fields = dict(
        account_id="acct",
        plan_id="free",
        messages_this_month=0,
        messages_month_start=START,
        api_calls_today=0,
        api_calls_day_start=START,
        agent_count=0,
        container_count=0,
        last_reset=START
    )
    fields.update(values)
    return UsageRecordModel(**fields)


# ============================================================================
# Plan catalog
# ============================================================================


@given(lower=st.integers(min_value=0, max_value=2), higher=st.integers(min_value=0, max_value=2))
def test_plan_limits_are_monotonic(lower, higher):
    """Every quota and resource limit is non-decreasing from a lower tier to a higher one"""
    if lower > higher:
        lower, higher = higher, lower
    catalog = PlanCatalog.default()

    low_quota = catalog.limits_for(PLANS[lower]).model_dump()
    high_quota = catalog.limits_for(PLANS[higher]).model_dump()
    low_resources = catalog.resource_limits_for(PLANS[lower]).model_dump()
    high_resources = catalog.resource_limits_for(PLANS[higher]).model_dump()

    assert all(high_quota[key] >= value for key, value in low_quota.items())
    assert all(high_resources[key] >= value for key, value in low_resources.items())


@given(plan=st.text(max_size=20).filter(lambda value: value not in PLANS))
def test_unknown_plans_never_resolve(plan):
    assert not PlanCatalog.default().is_valid_plan(plan)


# ============================================================================
# Window logic
# ============================================================================


@given(
    age_seconds=st.integers(min_value=0, max_value=90 * 24 * 3600),
    messages=st.integers(min_value=0, max_value=2000),
)
@settings(max_examples=200)
def test_effective_message_count_tracks_window(age_seconds, messages):
    """An elapsed month reads as zero; a current one reads the stored counter"""
    engine = QuotaEngine(None, clock=lambda: START, lock_manager=AccountLockManager())
    usage = transient_usage(messages_this_month=messages)
    now = START + timedelta(seconds=age_seconds)

    effective = engine._effective_value(usage, QuotaType.MESSAGES, now)

    if timedelta(seconds=age_seconds) > MONTHLY_WINDOW:
        assert effective == 0
    else:
        assert effective == messages


@given(age_seconds=st.integers(min_value=0, max_value=3 * 24 * 3600))
def test_day_window_elapses_strictly_after_its_length(age_seconds):
    engine = QuotaEngine(None, clock=lambda: START, lock_manager=AccountLockManager())
    usage = transient_usage()

    elapsed = engine.day_elapsed(usage, START + timedelta(seconds=age_seconds))

    assert elapsed == (age_seconds > DAILY_WINDOW.total_seconds())


# ============================================================================
# Admission and counters
# ============================================================================


@pytest.mark.property
@given(plan=plan_strategy, quota_type=quota_type_strategy, used=st.integers(min_value=0, max_value=2_000_000))
@settings(max_examples=30, deadline=None)
def test_check_allows_iff_below_limit(plan, quota_type, used):
    """allowed == current < limit, and remaining never goes negative"""
    column = {
        QuotaType.MESSAGES: "messages_this_month",
        QuotaType.API_CALLS: "api_calls_today",
        QuotaType.AGENTS: "agent_count",
        QuotaType.CONTAINERS: "container_count",
    }[quota_type]

    async def scenario(session):
        account_id = await create_account(session, plan)
        engine = QuotaEngine(session, clock=lambda: START, lock_manager=AccountLockManager())
        usage = await engine._get_usage(account_id)
        setattr(usage, column, used)
        await session.flush()
        return await engine.check_quota(account_id, quota_type)

    result = run_with_session(scenario)

    assert result.current == used
    assert result.allowed == (used < result.limit)
    assert result.remaining == max(0, result.limit - used)
    assert result.remaining >= 0


@pytest.mark.property
@given(
    operations=st.lists(
        st.tuples(st.sampled_from(["inc", "dec"]), st.sampled_from([QuotaType.AGENTS, QuotaType.CONTAINERS])),
        max_size=25
    )
)
@settings(max_examples=25, deadline=None)
def test_live_counts_never_negative(operations):
    """Any interleaving of increments and decrements keeps live counts >= 0"""
    async def scenario(session):
        account_id = await create_account(session, "enterprise")
        engine = QuotaEngine(session, clock=lambda: START, lock_manager=AccountLockManager())
        expected = {QuotaType.AGENTS: 0, QuotaType.CONTAINERS: 0}
        for action, quota_type in operations:
            if action == "inc":
                usage = await engine.increment_usage(account_id, quota_type)
                expected[quota_type] += 1
            else:
                usage = await engine.decrement_usage(account_id, quota_type)
                expected[quota_type] = max(0, expected[quota_type] - 1)
            assert usage.agent_count >= 0
            assert usage.container_count >= 0
        usage = await engine._get_usage(account_id)
        return expected, usage.agent_count, usage.container_count

    expected, agents, containers = run_with_session(scenario)

    assert agents == expected[QuotaType.AGENTS]
    assert containers == expected[QuotaType.CONTAINERS]


# ============================================================================
# Resource totals
# ============================================================================


container_strategy = st.tuples(
    st.integers(min_value=0, max_value=8000),
    st.integers(min_value=0, max_value=32768),
    st.integers(min_value=0, max_value=512000),
)


@pytest.mark.property
@given(containers=st.lists(container_strategy, max_size=10), plan=plan_strategy)
@settings(max_examples=25, deadline=None)
def test_resource_round_trip_restores_totals(containers, plan):
    """Incrementing then decrementing the same containers returns every total to zero"""
    async def scenario(session):
        account_id = await create_account(session, plan)
        engine = ResourceQuotaEngine(session, clock=lambda: START)
        for cpu, memory, disk in containers:
            await engine.increment_resource_usage(account_id, cpu, memory, disk)
        quota = await engine.get_resource_quota(account_id)
        peak = (
            quota.current_total_cpu_in_use,
            quota.current_total_memory_in_use,
            quota.current_total_disk_in_use,
        )
        for cpu, memory, disk in reversed(containers):
            quota = await engine.decrement_resource_usage(account_id, cpu, memory, disk)
        final = (
            quota.current_total_cpu_in_use,
            quota.current_total_memory_in_use,
            quota.current_total_disk_in_use,
        )
        return peak, final

    peak, final = run_with_session(scenario)

    assert peak == (
        sum(c[0] for c in containers),
        sum(c[1] for c in containers),
        sum(c[2] for c in containers),
    )
    assert final == (0, 0, 0)


@pytest.mark.property
@given(plan=plan_strategy, resources=container_strategy)
@settings(max_examples=40, deadline=None)
def test_resource_check_matches_ceilings(plan, resources):
    """A fresh account admits a container exactly when it fits every per-container ceiling"""
    cpu, memory, disk = resources

    async def scenario(session):
        account_id = await create_account(session, plan)
        engine = ResourceQuotaEngine(session, clock=lambda: START)
        return await engine.check_resource_quota(account_id, cpu, memory, disk)

    result = run_with_session(scenario)
    limits = PlanCatalog.default().resource_limits_for(plan)

    fits = (
        cpu <= limits.max_cpu_per_container
        and memory <= limits.max_memory_per_container
        and disk <= limits.max_disk_per_container
    )
    assert result.allowed == fits
    if not fits:
        assert result.exceeded_resource.endswith("_per_container")


@pytest.mark.property
@given(
    first_plan=plan_strategy,
    second_plan=plan_strategy,
    increments=st.integers(min_value=1, max_value=10)
)
@settings(max_examples=20, deadline=None)
def test_accounts_are_isolated(first_plan, second_plan, increments):
    """Mutating one account never changes another account's counters or totals"""
    async def scenario(session):
        first = await create_account(session, first_plan)
        second = await create_account(session, second_plan)
        quota_engine = QuotaEngine(session, clock=lambda: START, lock_manager=AccountLockManager())
        resource_engine = ResourceQuotaEngine(session, clock=lambda: START)

        for _ in range(increments):
            await quota_engine.increment_usage(first, QuotaType.MESSAGES)
            await quota_engine.increment_usage(first, QuotaType.AGENTS)
        await resource_engine.increment_resource_usage(first, 100, 100, 100)

        usage = await quota_engine._get_usage(second)
        quota = await resource_engine.get_resource_quota(second)
        return usage, quota

    usage, quota = run_with_session(scenario)

    assert usage.messages_this_month == 0
    assert usage.agent_count == 0
    assert quota.current_total_cpu_in_use == 0
