"""Shared test fixtures for all tests"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from quota_service.models import AccountModel, Base
from quota_service.services.account_lock import AccountLockManager, set_default_lock_manager
from quota_service.services.quota_engine import QuotaEngine


class FrozenClock:
    """Controllable time source; call it like utc_now()"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Create test database engine.

    File-backed SQLite so that separate sessions get separate connections,
    which the sweep, reconciler and concurrency tests rely on.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'quota_test.db'}",
        echo=False
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def clock():
    """Frozen clock starting at a fixed instant"""
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0))


@pytest.fixture
def lock_manager():
    """Fresh in-process lock manager, also installed as the process default"""
    manager = AccountLockManager(blocking_timeout_seconds=2.0)
    set_default_lock_manager(manager)
    yield manager
    set_default_lock_manager(None)


@pytest.fixture
def quota_engine(db_session, clock, lock_manager):
    """QuotaEngine bound to the test session and frozen clock"""
    return QuotaEngine(db_session, clock=clock, lock_manager=lock_manager)


@pytest.fixture
def make_account(session_factory, clock):
    """
    Factory creating a committed account with an initialized usage record.

    Usage:
        account_id = await make_account(plan="pro")
    """
    async def _make_account(plan: str = "free", name: str = "test-account", init_usage: bool = True) -> str:
        async with session_factory() as session:
            account = AccountModel(name=name, plan=plan, created_at=clock(), updated_at=clock())
            session.add(account)
            await session.flush()
            if init_usage:
                engine = QuotaEngine(session, clock=clock)
                await engine.initialize_account_usage(account.id, plan)
            await session.commit()
            return account.id

    return _make_account


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers",
        "asyncio: mark test as async"
    )
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers",
        "property: mark test as property-based test"
    )
