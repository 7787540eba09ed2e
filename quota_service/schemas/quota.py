"""Pydantic schemas for plan limits and quota results"""

import enum
from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field


class PlanTier(str, enum.Enum):
    """Account subscription plans"""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class QuotaType(str, enum.Enum):
    """Metered quantities with an admission check"""
    MESSAGES = "messages"
    API_CALLS = "apiCalls"
    AGENTS = "agents"
    CONTAINERS = "containers"


WINDOWED_QUOTA_TYPES = frozenset({QuotaType.MESSAGES, QuotaType.API_CALLS})


class PlanQuota(BaseModel):
    """Count and rate ceilings for a plan tier"""
    model_config = ConfigDict(frozen=True)

    messages_per_month: int = Field(..., ge=0)
    api_calls_per_day: int = Field(..., ge=0)
    max_agents: int = Field(..., ge=0)
    max_containers: int = Field(..., ge=0)


class ResourceLimits(BaseModel):
    """
    CPU (millicores), memory (MB) and disk (MB) ceilings for a plan tier.

    Per-container ceilings bound a single container, aggregate ceilings bound
    the sum over all of an account's containers.
    """
    model_config = ConfigDict(frozen=True)

    max_cpu_per_container: int = Field(..., ge=0)
    max_memory_per_container: int = Field(..., ge=0)
    max_disk_per_container: int = Field(..., ge=0)
    max_total_cpu: int = Field(..., ge=0)
    max_total_memory: int = Field(..., ge=0)
    max_total_disk: int = Field(..., ge=0)


class QuotaCheckResult(BaseModel):
    """Result of an admission check. A denial is a result, not an error."""
    allowed: bool
    current: int
    limit: int
    remaining: int
    message: str
    quota_type: Optional[QuotaType] = None


class ResourceCheckResult(BaseModel):
    """Result of a resource quota check; message names the first failing dimension"""
    allowed: bool
    message: Optional[str] = None
    exceeded_resource: Optional[str] = None


class ResourceRequest(BaseModel):
    """Requested container resources"""
    cpu: int = Field(default=500, ge=0, description="CPU in millicores")
    memory: int = Field(default=512, ge=0, description="Memory in MB")
    disk: int = Field(default=5120, ge=0, description="Disk in MB")


class ContainerRequestCheck(BaseModel):
    """Resource check echoed with the resources that were evaluated"""
    allowed: bool
    message: Optional[str] = None
    requested_resources: ResourceRequest


class WindowedUsage(BaseModel):
    current: int
    limit: int
    remaining: int
    reset_in_seconds: float = Field(..., ge=0)


class CountUsage(BaseModel):
    current: int
    limit: int
    remaining: int


class AccountUsageSummary(BaseModel):
    """Window-aware usage snapshot for dashboards"""
    account_id: str
    plan_id: str
    messages: WindowedUsage
    api_calls: WindowedUsage
    agents: CountUsage
    containers: CountUsage


class ResourceQuotaView(BaseModel):
    """Read model of a resource quota record"""
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    plan_id: str
    max_cpu_per_container: int
    max_memory_per_container: int
    max_disk_per_container: int
    max_total_cpu: int
    max_total_memory: int
    max_total_disk: int
    current_total_cpu_in_use: int
    current_total_memory_in_use: int
    current_total_disk_in_use: int
    updated_at: datetime


class SweepResult(BaseModel):
    """Summary of one proactive reset sweep"""
    reset_count: int = 0
    error_count: int = 0
    errors: List[str] = Field(default_factory=list)
    timestamp: datetime


class ReconciliationCorrection(BaseModel):
    account_id: str
    before: Dict[str, int]
    after: Dict[str, int]


class ReconciliationResult(BaseModel):
    """Summary of one resource reconciliation pass"""
    accounts_checked: int = 0
    corrections: List[ReconciliationCorrection] = Field(default_factory=list)
    error_count: int = 0
    errors: List[str] = Field(default_factory=list)
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
