"""Celery tasks for quota maintenance"""

import asyncio
from typing import Any, Dict, Optional

from quota_service.core import database
from quota_service.core.celery_app import celery_app
from quota_service.core.config import settings
from quota_service.core.logging_config import get_logger
from quota_service.services.account_lock import AccountLockManager, get_default_lock_manager
from quota_service.services.reset_sweep import ResetSweep
from quota_service.services.resource_reconciler import ResourceReconciler

logger = get_logger(__name__)


@celery_app.task(name="quota.reset_quotas_proactive")
def reset_quotas_proactive() -> Dict[str, Any]:
    """
    Celery task rolling over elapsed quota windows for every account.

    Run hourly via Celery Beat. Idempotent.
    """
    return asyncio.run(_reset_quotas_proactive_async())


async def _reset_quotas_proactive_async() -> Dict[str, Any]:
    await database.init_db()
    try:
        sweep = ResetSweep(database.async_session_factory)
        result = await sweep.run()
        logger.info(
            "reset_quotas_proactive_finished",
            reset_count=result.reset_count,
            error_count=result.error_count
        )
        return result.model_dump(mode="json")
    finally:
        await database.close_db()


@celery_app.task(name="quota.reconcile_resource_usage")
def reconcile_resource_usage(account_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Celery task correcting drift between resource counters and live containers.

    Args:
        account_id: Restrict to one account; all accounts when omitted
    """
    return asyncio.run(_reconcile_resource_usage_async(account_id))


async def _reconcile_resource_usage_async(account_id: Optional[str] = None) -> Dict[str, Any]:
    await database.init_db()
    use_redis = settings.ACCOUNT_LOCK_BACKEND == "redis"
    try:
        if use_redis:
            # Must serialize with API workers holding the same account locks
            await database.init_redis()
            lock_manager = AccountLockManager(database.get_redis())
        else:
            lock_manager = get_default_lock_manager()

        reconciler = ResourceReconciler(database.async_session_factory, lock_manager=lock_manager)
        result = await reconciler.reconcile(account_id)
        logger.info(
            "reconcile_resource_usage_finished",
            account_id=account_id,
            corrections=len(result.corrections)
        )
        return result.to_dict()
    finally:
        if use_redis:
            await database.close_redis()
        await database.close_db()
