"""Per-account locks serializing quota read-modify-write sequences"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import Redis
from redis.exceptions import LockError

from quota_service.core.config import settings
from quota_service.core.exceptions import AccountLockTimeout
from quota_service.core.logging_config import get_logger

logger = get_logger(__name__)


class AccountLockManager:
    """
    Hands out one lock per account id.

    With a Redis client the lock is distributed (``quota:lock:<account_id>``)
    and holds across workers. Without one, an in-process asyncio.Lock is
    used, which only serializes callers inside this process.

    Holding the lock around check + increment is what keeps N concurrent
    admissions from overshooting a limit.
    """

    LOCK_KEY_PREFIX = "quota:lock:"

    def __init__(
        self,
        redis: Optional[Redis] = None,
        timeout_seconds: float = settings.ACCOUNT_LOCK_TIMEOUT_SECONDS,
        blocking_timeout_seconds: float = settings.ACCOUNT_LOCK_BLOCKING_TIMEOUT_SECONDS
    ):
        """
        Initialize the lock manager.

        Args:
            redis: Redis client for distributed locks, or None for local locks
            timeout_seconds: Redis lock expiry, bounds a crashed holder
            blocking_timeout_seconds: How long to wait before giving up
        """
        self.redis = redis
        self.timeout_seconds = timeout_seconds
        self.blocking_timeout_seconds = blocking_timeout_seconds
        self._local_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "local"

    @asynccontextmanager
    async def hold(self, account_id: str) -> AsyncIterator[None]:
        """
        Hold the account's lock for the duration of the block.

        Raises:
            AccountLockTimeout: If the lock is not acquired within the blocking timeout
        """
        if self.redis is not None:
            async with self._hold_redis(account_id):
                yield
        else:
            async with self._hold_local(account_id):
                yield

    @asynccontextmanager
    async def _hold_local(self, account_id: str) -> AsyncIterator[None]:
        lock = self._local_locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._local_locks[account_id] = lock

        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "account_lock_timeout",
                account_id=account_id,
                backend="local",
                timeout=self.blocking_timeout_seconds
            )
            raise AccountLockTimeout(account_id, self.blocking_timeout_seconds)

        try:
            yield
        finally:
            lock.release()

    @asynccontextmanager
    async def _hold_redis(self, account_id: str) -> AsyncIterator[None]:
        lock = self.redis.lock(
            f"{self.LOCK_KEY_PREFIX}{account_id}",
            timeout=self.timeout_seconds,
            blocking_timeout=self.blocking_timeout_seconds
        )

        acquired = await lock.acquire()
        if not acquired:
            logger.warning(
                "account_lock_timeout",
                account_id=account_id,
                backend="redis",
                timeout=self.blocking_timeout_seconds
            )
            raise AccountLockTimeout(account_id, self.blocking_timeout_seconds)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Lock expired while held; the protected write already happened
                logger.error(
                    "account_lock_release_failed",
                    account_id=account_id,
                    error=str(e)
                )


_default_lock_manager: Optional[AccountLockManager] = None


def get_default_lock_manager() -> AccountLockManager:
    """
    Process-wide lock manager.

    Local locks only serialize callers that share the same manager, so every
    engine in the process must use this instance unless given a Redis-backed one.
    """
    global _default_lock_manager
    if _default_lock_manager is None:
        _default_lock_manager = AccountLockManager()
    return _default_lock_manager


def set_default_lock_manager(lock_manager: Optional[AccountLockManager]) -> None:
    """Install the lock manager returned by get_default_lock_manager()"""
    global _default_lock_manager
    _default_lock_manager = lock_manager
