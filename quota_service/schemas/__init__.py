"""Pydantic schemas for quota results and API request/response validation"""

from quota_service.schemas.quota import (
    PlanTier,
    QuotaType,
    PlanQuota,
    ResourceLimits,
    QuotaCheckResult,
    ResourceCheckResult,
    ResourceRequest,
    ContainerRequestCheck,
    AccountUsageSummary,
    ResourceQuotaView,
    SweepResult,
    ReconciliationResult,
)
from quota_service.schemas.account import (
    PlanChangeRequest,
    PlanChangeResult,
    ContainerCreate,
    ContainerCreated,
    ContainerRemoved,
)
from quota_service.schemas.metrics import (
    MetricsSample,
    ResourceMetricView,
    ContainerMetrics,
    ContainerMetricsHistory,
    AccountResourceMetrics,
    ResourceReport,
    ContainerView,
    ContainerStatusUpdate,
)

__all__ = [
    "PlanTier",
    "QuotaType",
    "PlanQuota",
    "ResourceLimits",
    "QuotaCheckResult",
    "ResourceCheckResult",
    "ResourceRequest",
    "ContainerRequestCheck",
    "AccountUsageSummary",
    "ResourceQuotaView",
    "SweepResult",
    "ReconciliationResult",
    "PlanChangeRequest",
    "PlanChangeResult",
    "ContainerCreate",
    "ContainerCreated",
    "ContainerRemoved",
    "MetricsSample",
    "ResourceMetricView",
    "ContainerMetrics",
    "ContainerMetricsHistory",
    "AccountResourceMetrics",
    "ResourceReport",
    "ContainerView",
    "ContainerStatusUpdate",
]
