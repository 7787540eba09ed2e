"""Unit tests for the proactive reset sweep"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from quota_service.models import UsageRecordModel
from quota_service.services.reset_sweep import ResetSweep


async def set_usage(session_factory, account_id, **values):
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


@pytest.mark.asyncio
async def test_sweep_resets_only_elapsed_windows(make_account, session_factory, clock):
    stale_month = await make_account("free", name="stale-month")
    stale_day = await make_account("free", name="stale-day")
    current = await make_account("free", name="current")

    await set_usage(
        session_factory,
        stale_month,
        messages_this_month=400,
        messages_month_start=clock() - timedelta(days=31)
    )
    await set_usage(
        session_factory,
        stale_day,
        api_calls_today=49,
        api_calls_day_start=clock() - timedelta(hours=30),
        messages_this_month=7
    )
    await set_usage(session_factory, current, messages_this_month=3, api_calls_today=2)

    result = await ResetSweep(session_factory, clock=clock).run()

    assert result.reset_count == 2
    assert result.error_count == 0
    assert result.errors == []
    assert result.timestamp == clock()

    month_usage = await load_usage(session_factory, stale_month)
    assert month_usage.messages_this_month == 0
    assert month_usage.messages_month_start == clock()

    day_usage = await load_usage(session_factory, stale_day)
    assert day_usage.api_calls_today == 0
    assert day_usage.messages_this_month == 7

    current_usage = await load_usage(session_factory, current)
    assert current_usage.messages_this_month == 3
    assert current_usage.api_calls_today == 2


@pytest.mark.asyncio
async def test_sweep_is_idempotent(make_account, session_factory, clock):
    account_id = await make_account("free")
    clock.advance(timedelta(days=45))

    first = await ResetSweep(session_factory, clock=clock).run()
    second = await ResetSweep(session_factory, clock=clock).run()

    assert first.reset_count == 1
    assert second.reset_count == 0


@pytest.mark.asyncio
async def test_sweep_respects_strict_boundary(make_account, session_factory, clock):
    await make_account("free")
    clock.advance(timedelta(days=30))

    result = await ResetSweep(session_factory, clock=clock).run()

    # Daily window elapsed, monthly window is exactly one length old
    assert result.reset_count == 1


@pytest.mark.asyncio
async def test_sweep_collects_record_errors(make_account, session_factory, clock, monkeypatch):
    good = await make_account("free", name="good")
    bad = await make_account("free", name="bad")
    clock.advance(timedelta(days=31))

    sweep = ResetSweep(session_factory, clock=clock)
    original = sweep._reset_record

    async def flaky_reset(record_id, now):
        record = await load_usage(session_factory, bad)
        if record_id == record.id:
            raise RuntimeError("disk on fire")
        return await original(record_id, now)

    monkeypatch.setattr(sweep, "_reset_record", flaky_reset)

    result = await sweep.run()

    assert result.reset_count == 1
    assert result.error_count == 1
    assert result.errors == [f"Failed to reset usage for {bad}: disk on fire"]

    assert (await load_usage(session_factory, good)).messages_this_month == 0


@pytest.mark.asyncio
async def test_sweep_with_no_records(session_factory, clock):
    result = await ResetSweep(session_factory, clock=clock).run()

    assert result.reset_count == 0
    assert result.error_count == 0
