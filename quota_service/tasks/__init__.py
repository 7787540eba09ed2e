"""Celery Tasks Package"""

# Import tasks to register them with Celery
from quota_service.tasks.quota_tasks import (
    reset_quotas_proactive,
    reconcile_resource_usage
)

__all__ = [
    "reset_quotas_proactive",
    "reconcile_resource_usage"
]
