"""SQLAlchemy models for the quota service"""

from quota_service.models.base import Base
from quota_service.models.account import AccountModel
from quota_service.models.usage_record import UsageRecordModel
from quota_service.models.resource_quota import ResourceQuotaModel
from quota_service.models.container import ContainerModel, ContainerStatus
from quota_service.models.resource_metric import ResourceMetricModel

__all__ = [
    "Base",
    "AccountModel",
    "UsageRecordModel",
    "ResourceQuotaModel",
    "ContainerModel",
    "ContainerStatus",
    "ResourceMetricModel",
]
