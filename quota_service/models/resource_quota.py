"""Resource Quota Model"""

from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.types import CHAR

from quota_service.models.base import BaseModel


class ResourceQuotaModel(BaseModel):
    """
    Resource Quotas table for CPU, memory and disk accounting.

    Ceilings are copied from the plan's resource limits and re-synced when
    the account plan changes. The current_total_* counters must always equal
    the sum of the limits of the account's live containers.

    Units: CPU in millicores, memory and disk in MB.
    """
    __tablename__ = "resource_quotas"

    account_id = Column(CHAR(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    plan_id = Column(String(20), nullable=False)

    # Per-container ceilings
    max_cpu_per_container = Column(Integer, nullable=False)
    max_memory_per_container = Column(Integer, nullable=False)
    max_disk_per_container = Column(Integer, nullable=False)

    # Aggregate ceilings
    max_total_cpu = Column(Integer, nullable=False)
    max_total_memory = Column(Integer, nullable=False)
    max_total_disk = Column(Integer, nullable=False)

    # Aggregate usage
    current_total_cpu_in_use = Column(Integer, nullable=False, default=0, server_default="0")
    current_total_memory_in_use = Column(Integer, nullable=False, default=0, server_default="0")
    current_total_disk_in_use = Column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (
        UniqueConstraint('account_id', name='uk_resource_quota_account'),
    )
