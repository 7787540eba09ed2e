"""Schemas for container resource metrics and account resource reports"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from quota_service.models.container import ContainerStatus


class MetricsSample(BaseModel):
    """Usage sample reported by the container monitor"""
    cpu_usage_millicores: int = Field(..., ge=0, description="CPU in millicores")
    memory_usage_bytes: int = Field(..., ge=0, description="Memory in bytes")
    disk_usage_bytes: int = Field(..., ge=0, description="Disk in bytes")


class ResourceAlerts(BaseModel):
    """Which dimensions crossed the alert threshold"""
    cpu: bool = False
    memory: bool = False
    disk: bool = False


class ResourceMetricView(BaseModel):
    """One stored metrics sample"""
    cpu_usage_millicores: int
    cpu_usage_percent: float
    memory_usage_bytes: int
    memory_usage_percent: float
    disk_usage_bytes: int
    disk_usage_percent: float
    alerts: ResourceAlerts
    recorded_at: datetime

    @classmethod
    def from_model(cls, metric) -> "ResourceMetricView":
        return cls(
            cpu_usage_millicores=metric.cpu_usage_millicores,
            cpu_usage_percent=metric.cpu_usage_percent,
            memory_usage_bytes=metric.memory_usage_bytes,
            memory_usage_percent=metric.memory_usage_percent,
            disk_usage_bytes=metric.disk_usage_bytes,
            disk_usage_percent=metric.disk_usage_percent,
            alerts=ResourceAlerts(
                cpu=metric.cpu_threshold_exceeded,
                memory=metric.memory_threshold_exceeded,
                disk=metric.disk_threshold_exceeded
            ),
            recorded_at=metric.recorded_at
        )


class ContainerMetrics(BaseModel):
    """Latest sample for a container; status is no_data until one is recorded"""
    container_id: str
    container_name: str
    status: str
    message: Optional[str] = None
    cpu_limit: int
    memory_limit: int
    disk_limit: int
    metrics: Optional[ResourceMetricView] = None


class ContainerMetricsHistory(BaseModel):
    container_id: str
    container_name: str
    metrics_count: int
    metrics: List[ResourceMetricView]


class AggregateCeilings(BaseModel):
    max_total_cpu: int
    max_total_memory: int
    max_total_disk: int


class AggregateUsage(BaseModel):
    """Summed latest samples; CPU in millicores, memory and disk in bytes"""
    total_cpu_in_use: int
    total_cpu_percent: float
    total_memory_in_use: int
    total_memory_percent: float
    total_disk_in_use: int
    total_disk_percent: float


class AccountAlerts(BaseModel):
    high_cpu_usage: bool = False
    high_memory_usage: bool = False
    high_disk_usage: bool = False


class AccountResourceMetrics(BaseModel):
    """Measured usage across all of an account's containers"""
    account_id: str
    quota: AggregateCeilings
    usage: AggregateUsage
    container_count: int
    alerts: AccountAlerts


class PerContainerCeilings(BaseModel):
    max_cpu: int
    max_memory: int
    max_disk: int


class AggregateQuotaReport(BaseModel):
    max_cpu: int
    max_memory: int
    max_disk: int
    current_cpu_in_use: int
    current_memory_in_use: int
    current_disk_in_use: int


class QuotaReport(BaseModel):
    per_container: PerContainerCeilings
    aggregate: AggregateQuotaReport


class ContainerReportEntry(BaseModel):
    id: str
    name: str
    image_tag: str
    status: ContainerStatus
    cpu_limit: int
    memory_limit: int
    disk_limit: int
    metrics: Optional[ResourceMetricView] = None
    created_at: datetime
    updated_at: datetime


class ResourceReport(BaseModel):
    """Ceilings, reserved totals and every container with its latest sample"""
    account_id: str
    quotas: QuotaReport
    container_count: int
    containers: List[ContainerReportEntry]
    timestamp: datetime


class ContainerView(BaseModel):
    """Read model of a container row"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    name: str
    image_tag: str
    status: ContainerStatus
    cpu_limit: int
    memory_limit: int
    disk_limit: int
    created_at: datetime
    updated_at: datetime


class ContainerStatusUpdate(BaseModel):
    """Schema for recording a container lifecycle transition"""
    status: ContainerStatus = Field(..., description="New lifecycle status")
