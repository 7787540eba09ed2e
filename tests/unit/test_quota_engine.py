"""Unit tests for QuotaEngine"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from quota_service.core.exceptions import (
    AccountNotFound,
    InvalidPlanError,
    QuotaExceededError,
    UnknownQuotaType,
    UsageRecordNotFound,
)
from quota_service.models import AccountModel, UsageRecordModel
from quota_service.schemas.quota import QuotaType
from quota_service.services.quota_engine import QuotaEngine, parse_quota_type


MONTH = timedelta(days=30)
DAY = timedelta(hours=24)


async def set_usage(session_factory, account_id, **values):
    """Overwrite usage record columns from a separate, committed session"""
    async with session_factory() as session:
        await session.execute(
            update(UsageRecordModel)
            .where(UsageRecordModel.account_id == account_id)
            .values(**values)
        )
        await session.commit()


async def load_usage(session_factory, account_id) -> UsageRecordModel:
    async with session_factory() as session:
        result = await session.execute(
            select(UsageRecordModel).where(UsageRecordModel.account_id == account_id)
        )
        return result.scalar_one()


# ============================================================================
# check_quota
# ============================================================================


@pytest.mark.asyncio
async def test_check_quota_fresh_account(make_account, quota_engine):
    account_id = await make_account("free")

    result = await quota_engine.check_quota(account_id, QuotaType.MESSAGES)

    assert result.allowed is True
    assert result.current == 0
    assert result.limit == 500
    assert result.remaining == 500
    assert result.message == "Messages: 0/500 this month"
    assert result.quota_type == QuotaType.MESSAGES


@pytest.mark.asyncio
@pytest.mark.parametrize("used,allowed,remaining", [
    (499, True, 1),
    (500, False, 0),
    (501, False, 0),
])
async def test_check_quota_limit_boundary(make_account, session_factory, quota_engine, used, allowed, remaining):
    account_id = await make_account("free")
    await set_usage(session_factory, account_id, messages_this_month=used)

    result = await quota_engine.check_quota(account_id, "messages")

    assert result.allowed is allowed
    assert result.current == used
    assert result.remaining == remaining
    assert result.message == f"Messages: {used}/500 this month"


@pytest.mark.asyncio
async def test_check_quota_message_per_type(make_account, session_factory, quota_engine):
    account_id = await make_account("pro")
    await set_usage(session_factory, account_id, api_calls_today=1000, agent_count=3, container_count=5)

    api_calls = await quota_engine.check_quota(account_id, "apiCalls")
    agents = await quota_engine.check_quota(account_id, "agents")
    containers = await quota_engine.check_quota(account_id, "containers")

    assert api_calls.allowed is False
    assert api_calls.message == "API calls: 1000/1000 today"
    assert agents.allowed is True
    assert agents.message == "Agents: 3/10"
    assert agents.remaining == 7
    assert containers.allowed is False
    assert containers.message == "Containers: 5/5"


@pytest.mark.asyncio
async def test_window_exactly_one_length_old_is_still_current(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    await set_usage(
        session_factory,
        account_id,
        messages_this_month=500,
        messages_month_start=clock() - MONTH,
        api_calls_today=50,
        api_calls_day_start=clock() - DAY
    )

    messages = await quota_engine.check_quota(account_id, QuotaType.MESSAGES)
    api_calls = await quota_engine.check_quota(account_id, QuotaType.API_CALLS)

    assert messages.allowed is False
    assert messages.current == 500
    assert api_calls.allowed is False
    assert api_calls.current == 50


@pytest.mark.asyncio
@pytest.mark.parametrize("past_window", [timedelta(milliseconds=1), timedelta(microseconds=1)])
async def test_window_rolls_just_past_one_length(make_account, session_factory, quota_engine, clock, past_window):
    account_id = await make_account("free")
    await set_usage(
        session_factory,
        account_id,
        messages_this_month=500,
        messages_month_start=clock() - MONTH - past_window,
        api_calls_today=50,
        api_calls_day_start=clock() - DAY - past_window
    )

    messages = await quota_engine.check_quota(account_id, QuotaType.MESSAGES)
    api_calls = await quota_engine.check_quota(account_id, QuotaType.API_CALLS)

    assert (messages.allowed, messages.current, messages.remaining) == (True, 0, 500)
    assert (api_calls.allowed, api_calls.current, api_calls.remaining) == (True, 0, 50)


@pytest.mark.asyncio
async def test_elapsed_window_reads_as_zero_without_writing(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    stale_start = clock() - MONTH - timedelta(seconds=1)
    await set_usage(
        session_factory,
        account_id,
        messages_this_month=500,
        messages_month_start=stale_start
    )

    result = await quota_engine.check_quota(account_id, QuotaType.MESSAGES)

    assert result.allowed is True
    assert result.current == 0
    assert result.remaining == 500

    stored = await load_usage(session_factory, account_id)
    assert stored.messages_this_month == 500
    assert stored.messages_month_start == stale_start


@pytest.mark.asyncio
async def test_live_counts_never_reset(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    await set_usage(
        session_factory,
        account_id,
        agent_count=1,
        messages_month_start=clock() - timedelta(days=90),
        api_calls_day_start=clock() - timedelta(days=90)
    )

    result = await quota_engine.check_quota(account_id, QuotaType.AGENTS)

    assert result.allowed is False
    assert result.current == 1


@pytest.mark.asyncio
async def test_check_quota_without_usage_record(make_account, quota_engine):
    account_id = await make_account("free", init_usage=False)

    with pytest.raises(UsageRecordNotFound) as exc_info:
        await quota_engine.check_quota(account_id, QuotaType.MESSAGES)

    assert exc_info.value.account_id == account_id


@pytest.mark.asyncio
async def test_check_quota_with_unknown_plan(make_account, session_factory, quota_engine):
    account_id = await make_account("free")
    async with session_factory() as session:
        await session.execute(
            update(AccountModel).where(AccountModel.id == account_id).values(plan="gold")
        )
        await session.commit()

    with pytest.raises(InvalidPlanError):
        await quota_engine.check_quota(account_id, QuotaType.MESSAGES)


@pytest.mark.asyncio
async def test_check_quota_unknown_type(make_account, quota_engine):
    account_id = await make_account("free")

    with pytest.raises(UnknownQuotaType):
        await quota_engine.check_quota(account_id, "bananas")


def test_parse_quota_type():
    assert parse_quota_type("apiCalls") is QuotaType.API_CALLS
    assert parse_quota_type(QuotaType.AGENTS) is QuotaType.AGENTS
    with pytest.raises(UnknownQuotaType):
        parse_quota_type("api_calls")


# ============================================================================
# increment_usage / decrement_usage
# ============================================================================


@pytest.mark.asyncio
async def test_increment_each_quota_type(make_account, quota_engine):
    account_id = await make_account("pro")

    for quota_type in QuotaType:
        usage = await quota_engine.increment_usage(account_id, quota_type)

    assert usage.messages_this_month == 1
    assert usage.api_calls_today == 1
    assert usage.agent_count == 1
    assert usage.container_count == 1


@pytest.mark.asyncio
async def test_increment_does_not_check_limit(make_account, session_factory, quota_engine):
    account_id = await make_account("free")
    await set_usage(session_factory, account_id, agent_count=1)

    usage = await quota_engine.increment_usage(account_id, QuotaType.AGENTS)

    assert usage.agent_count == 2


@pytest.mark.asyncio
async def test_increment_after_elapsed_month_restarts_window(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    await set_usage(
        session_factory,
        account_id,
        messages_this_month=500,
        messages_month_start=clock() - timedelta(days=31)
    )

    usage = await quota_engine.increment_usage(account_id, QuotaType.MESSAGES)

    assert usage.messages_this_month == 1
    assert usage.messages_month_start == clock()
    assert usage.last_reset == clock()


@pytest.mark.asyncio
async def test_increment_after_elapsed_day_restarts_window(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    await set_usage(
        session_factory,
        account_id,
        api_calls_today=50,
        api_calls_day_start=clock() - timedelta(hours=25),
        messages_this_month=7
    )

    usage = await quota_engine.increment_usage(account_id, QuotaType.API_CALLS)

    assert usage.api_calls_today == 1
    assert usage.api_calls_day_start == clock()
    assert usage.messages_this_month == 7


@pytest.mark.asyncio
async def test_increment_other_type_rolls_elapsed_window_to_zero(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("pro")
    await set_usage(
        session_factory,
        account_id,
        messages_this_month=42,
        messages_month_start=clock() - timedelta(days=40)
    )

    usage = await quota_engine.increment_usage(account_id, QuotaType.AGENTS)

    assert usage.agent_count == 1
    assert usage.messages_this_month == 0
    assert usage.messages_month_start == clock()


@pytest.mark.asyncio
async def test_decrement_floors_at_zero(make_account, session_factory, quota_engine):
    account_id = await make_account("pro")
    await set_usage(session_factory, account_id, container_count=1)

    first = await quota_engine.decrement_usage(account_id, QuotaType.CONTAINERS)
    assert first.container_count == 0

    second = await quota_engine.decrement_usage(account_id, QuotaType.CONTAINERS)
    assert second.container_count == 0

    agents = await quota_engine.decrement_usage(account_id, QuotaType.AGENTS)
    assert agents.agent_count == 0


@pytest.mark.asyncio
async def test_decrement_ignores_windowed_counters(make_account, session_factory, quota_engine):
    account_id = await make_account("free")
    await set_usage(session_factory, account_id, messages_this_month=10, api_calls_today=4)

    await quota_engine.decrement_usage(account_id, QuotaType.MESSAGES)
    usage = await quota_engine.decrement_usage(account_id, QuotaType.API_CALLS)

    assert usage.messages_this_month == 10
    assert usage.api_calls_today == 4


@pytest.mark.asyncio
async def test_increment_without_usage_record(make_account, quota_engine):
    account_id = await make_account("free", init_usage=False)

    with pytest.raises(UsageRecordNotFound):
        await quota_engine.increment_usage(account_id, QuotaType.MESSAGES)


# ============================================================================
# consume
# ============================================================================


@pytest.mark.asyncio
async def test_consume_returns_pre_increment_result(make_account, session_factory, quota_engine):
    account_id = await make_account("free")

    result = await quota_engine.consume(account_id, QuotaType.MESSAGES)

    assert result.allowed is True
    assert result.current == 0
    stored = await load_usage(session_factory, account_id)
    assert stored.messages_this_month == 1


@pytest.mark.asyncio
async def test_consume_denied_writes_nothing(make_account, session_factory, quota_engine):
    account_id = await make_account("free")
    await set_usage(session_factory, account_id, agent_count=1)

    with pytest.raises(QuotaExceededError) as exc_info:
        await quota_engine.consume(account_id, QuotaType.AGENTS)

    assert exc_info.value.message == "Quota exceeded: Agents: 1/1"
    assert exc_info.value.details["limit"] == 1
    stored = await load_usage(session_factory, account_id)
    assert stored.agent_count == 1


@pytest.mark.asyncio
async def test_concurrent_consume_never_exceeds_limit(make_account, session_factory, clock, lock_manager):
    account_id = await make_account("free")

    async def attempt():
        async with session_factory() as session:
            engine = QuotaEngine(session, clock=clock, lock_manager=lock_manager)
            return await engine.consume(account_id, QuotaType.AGENTS)

    results = await asyncio.gather(*[attempt() for _ in range(5)], return_exceptions=True)

    admitted = [r for r in results if not isinstance(r, Exception)]
    denied = [r for r in results if isinstance(r, QuotaExceededError)]
    assert len(admitted) == 1
    assert len(denied) == 4

    stored = await load_usage(session_factory, account_id)
    assert stored.agent_count == 1


# ============================================================================
# Window resets
# ============================================================================


@pytest.mark.asyncio
async def test_reset_monthly_noop_while_window_current(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    start = clock() - timedelta(days=10)
    await set_usage(session_factory, account_id, messages_this_month=12, messages_month_start=start)

    assert await quota_engine.reset_monthly_quota(account_id) is False

    stored = await load_usage(session_factory, account_id)
    assert stored.messages_this_month == 12
    assert stored.messages_month_start == start


@pytest.mark.asyncio
async def test_reset_monthly_after_window_elapsed(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    await set_usage(
        session_factory,
        account_id,
        messages_this_month=12,
        messages_month_start=clock() - timedelta(days=31)
    )

    assert await quota_engine.reset_monthly_quota(account_id) is True
    assert await quota_engine.reset_monthly_quota(account_id) is False

    result = await quota_engine.db_session.execute(
        select(UsageRecordModel).where(UsageRecordModel.account_id == account_id)
    )
    usage = result.scalar_one()
    assert usage.messages_this_month == 0
    assert usage.messages_month_start == clock()
    assert usage.last_reset == clock()


@pytest.mark.asyncio
async def test_reset_daily_after_window_elapsed(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    await set_usage(
        session_factory,
        account_id,
        api_calls_today=30,
        api_calls_day_start=clock() - DAY - timedelta(minutes=1)
    )

    assert await quota_engine.reset_daily_quota(account_id) is True

    check = await quota_engine.check_quota(account_id, QuotaType.API_CALLS)
    assert check.current == 0


@pytest.mark.asyncio
async def test_reset_without_usage_record_is_silent(make_account, quota_engine):
    account_id = await make_account("free", init_usage=False)

    assert await quota_engine.reset_monthly_quota(account_id) is False
    assert await quota_engine.reset_daily_quota(account_id) is False


# ============================================================================
# Usage record lifecycle and summary
# ============================================================================


@pytest.mark.asyncio
async def test_initialize_account_usage_is_idempotent(make_account, quota_engine, clock):
    account_id = await make_account("free", init_usage=False)

    first_id = await quota_engine.initialize_account_usage(account_id, "pro")
    second_id = await quota_engine.initialize_account_usage(account_id, "pro")

    assert first_id == second_id

    result = await quota_engine.db_session.execute(
        select(UsageRecordModel).where(UsageRecordModel.account_id == account_id)
    )
    usage = result.scalar_one()
    assert usage.plan_id == "pro"
    assert usage.messages_this_month == 0
    assert usage.api_calls_today == 0
    assert usage.messages_month_start == clock()
    assert usage.api_calls_day_start == clock()


@pytest.mark.asyncio
async def test_concurrent_initialize_account_usage_creates_one_record(make_account, session_factory, clock):
    account_id = await make_account("free", init_usage=False)

    async def initialize():
        async with session_factory() as session:
            usage_id = await QuotaEngine(session, clock=clock).initialize_account_usage(account_id, "free")
            await session.commit()
            return usage_id

    first_id, second_id = await asyncio.gather(initialize(), initialize())

    assert first_id == second_id
    async with session_factory() as session:
        result = await session.execute(
            select(UsageRecordModel).where(UsageRecordModel.account_id == account_id)
        )
        assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_initialize_returns_row_inserted_after_lookup(make_account, quota_engine, monkeypatch):
    """The insert loses on the unique constraint and the existing id is returned"""
    account_id = await make_account("free")
    stored = await quota_engine._find_usage(account_id)
    original_find = quota_engine._find_usage
    calls = []

    async def find_missing_once(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await original_find(*args, **kwargs)

    monkeypatch.setattr(quota_engine, "_find_usage", find_missing_once)

    usage_id = await quota_engine.initialize_account_usage(account_id, "free")

    assert usage_id == stored.id
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_initialize_account_usage_rejects_unknown_plan(make_account, quota_engine):
    account_id = await make_account("free", init_usage=False)

    with pytest.raises(InvalidPlanError):
        await quota_engine.initialize_account_usage(account_id, "platinum")


@pytest.mark.asyncio
async def test_get_account_usage_summary(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("pro")
    await set_usage(session_factory, account_id, messages_this_month=100, api_calls_today=10, agent_count=2)
    clock.advance(timedelta(hours=6))

    summary = await quota_engine.get_account_usage(account_id)

    assert summary.plan_id == "pro"
    assert summary.messages.current == 100
    assert summary.messages.remaining == 9900
    assert summary.messages.reset_in_seconds == (MONTH - timedelta(hours=6)).total_seconds()
    assert summary.api_calls.reset_in_seconds == timedelta(hours=18).total_seconds()
    assert summary.agents.current == 2
    assert summary.agents.remaining == 8
    assert summary.containers.limit == 5


@pytest.mark.asyncio
async def test_get_account_usage_after_elapsed_windows(make_account, session_factory, quota_engine, clock):
    account_id = await make_account("free")
    await set_usage(session_factory, account_id, messages_this_month=500, api_calls_today=50)
    clock.advance(timedelta(days=31))

    summary = await quota_engine.get_account_usage(account_id)

    assert summary.messages.current == 0
    assert summary.messages.reset_in_seconds == 0
    assert summary.api_calls.current == 0
    assert summary.api_calls.remaining == 50


@pytest.mark.asyncio
async def test_get_account_usage_unknown_account(quota_engine, session_factory):
    async with session_factory() as session:
        session.add(UsageRecordModel(
            account_id="missing-account",
            plan_id="free",
            messages_month_start=quota_engine.clock(),
            api_calls_day_start=quota_engine.clock(),
            last_reset=quota_engine.clock()
        ))
        await session.commit()

    with pytest.raises(AccountNotFound):
        await quota_engine.get_account_usage("missing-account")


@pytest.mark.asyncio
async def test_free_plan_messages_end_to_end(make_account, quota_engine):
    account_id = await make_account("free")

    first = await quota_engine.check_quota(account_id, QuotaType.MESSAGES)
    assert (first.allowed, first.current, first.limit, first.remaining) == (True, 0, 500, 500)

    for _ in range(500):
        usage = await quota_engine.increment_usage(account_id, QuotaType.MESSAGES)
    assert usage.messages_this_month == 500

    last = await quota_engine.check_quota(account_id, QuotaType.MESSAGES)
    assert last.allowed is False
    assert last.remaining == 0
