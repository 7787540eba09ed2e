"""Database configuration and connection management"""

import asyncio
from typing import AsyncGenerator, Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine
)
from redis.asyncio import Redis, ConnectionPool
from quota_service.core.config import settings

# Import Base from models so every table is registered on the same metadata
from quota_service.models.base import Base

engine: Optional[AsyncEngine] = None
async_session_factory: Optional[async_sessionmaker] = None

redis_client: Optional[Redis] = None
redis_pool: Optional[ConnectionPool] = None


async def init_db(database_url: Optional[str] = None, create_tables: bool = False) -> None:
    """Initialize the async engine and session factory"""
    global engine, async_session_factory

    url = database_url or settings.DATABASE_URL
    engine_kwargs = {"echo": settings.DATABASE_ECHO or settings.DEBUG}
    if not url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=10,  # Maximum number of connections in the pool
            max_overflow=20,  # Maximum overflow connections beyond pool_size
            pool_timeout=30,  # Timeout for getting connection from pool
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_pre_ping=True,  # Verify connections before using
        )

    engine = create_async_engine(url, **engine_kwargs)

    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine and cleanup connections"""
    global engine, async_session_factory
    if engine:
        await engine.dispose()
        engine = None
        async_session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection for database sessions.

    Commits when the request handler returns, rolls back on any error so a
    failed quota-gated mutation never leaves a partial commit.

    Usage in FastAPI:
        @router.get("/usage")
        async def get_usage(db: AsyncSession = Depends(get_db)):
            ...
    """
    if async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_db_connection() -> bool:
    """
    Check if the database connection is healthy.
    Used for health checks.
    """
    if engine is None:
        return False

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


# ============================================================================
# Redis Configuration
# ============================================================================

def get_redis_url() -> str:
    """Construct Redis connection URL"""
    if settings.REDIS_PASSWORD:
        return (
            f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:"
            f"{settings.REDIS_PORT}/{settings.REDIS_DB}"
        )
    return f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"


async def init_redis() -> None:
    """Initialize Redis async client with connection pooling and retry logic"""
    global redis_client, redis_pool

    redis_pool = ConnectionPool.from_url(
        get_redis_url(),
        max_connections=50,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        retry_on_timeout=True,
        health_check_interval=30,
    )

    redis_client = Redis(connection_pool=redis_pool)

    max_retries = 3
    retry_delay = 1  # seconds

    for attempt in range(max_retries):
        try:
            await redis_client.ping()
            break
        except Exception as e:
            if attempt == max_retries - 1:
                raise RuntimeError(f"Failed to connect to Redis after {max_retries} attempts: {e}")
            await asyncio.sleep(retry_delay * (attempt + 1))


async def close_redis() -> None:
    """Close Redis client and cleanup connections"""
    global redis_client, redis_pool
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None


def get_redis() -> Optional[Redis]:
    """
    Get the Redis client instance, or None when locks are process-local.
    """
    if settings.ACCOUNT_LOCK_BACKEND != "redis":
        return None
    if redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.
    Used for health checks.
    """
    if redis_client is None:
        return False

    try:
        await redis_client.ping()
        return True
    except Exception:
        return False
