"""Celery Application Configuration"""

from celery import Celery
from celery.schedules import crontab
from quota_service.core.config import settings


def make_celery() -> Celery:
    """
    Create and configure Celery application instance.

    Returns:
        Configured Celery application
    """
    broker_url = (
        f"amqp://{settings.RABBITMQ_USER}:{settings.RABBITMQ_PASSWORD}"
        f"@{settings.RABBITMQ_HOST}:{settings.RABBITMQ_PORT}//"
    )

    redis_password_part = f":{settings.REDIS_PASSWORD}@" if settings.REDIS_PASSWORD else ""
    result_backend = (
        f"redis://{redis_password_part}{settings.REDIS_HOST}:"
        f"{settings.REDIS_PORT}/{settings.REDIS_DB}"
    )

    celery_app = Celery(
        "quota_service",
        broker=broker_url,
        backend=result_backend,
        include=["quota_service.tasks.quota_tasks"]
    )

    celery_app.conf.update(
        # Task execution settings
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task result settings
        result_expires=3600,  # Results expire after 1 hour

        # Beat schedule configuration
        beat_schedule={
            # Roll over elapsed quota windows for idle accounts
            'reset-quotas-proactive': {
                'task': 'quota.reset_quotas_proactive',
                'schedule': settings.RESET_SWEEP_INTERVAL_SECONDS,
            },
            # Recompute aggregate resource usage from live containers
            'reconcile-resource-usage': {
                'task': 'quota.reconcile_resource_usage',
                'schedule': crontab(hour=settings.RECONCILE_CRON_HOUR, minute=0),
            },
        },

        task_routes={
            "quota.*": {"queue": "quota_maintenance"},
        },

        # Worker settings
        worker_prefetch_multiplier=1,
        worker_max_tasks_per_child=1000,

        # Task execution limits
        task_time_limit=900,  # 15 minutes hard limit
        task_soft_time_limit=840,

        # Retry settings
        task_acks_late=True,
        task_reject_on_worker_lost=True,
    )

    return celery_app


# Create global Celery app instance
celery_app = make_celery()
