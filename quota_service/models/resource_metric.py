"""Resource Metric Model"""

from sqlalchemy import Column, Integer, Float, BigInteger, Boolean, TIMESTAMP, ForeignKey, Index
from sqlalchemy.types import CHAR

from quota_service.models.base import BaseModel


class ResourceMetricModel(BaseModel):
    """
    Resource Metrics table holding usage samples reported for containers.

    Usage is absolute (CPU in millicores, memory and disk in bytes). The
    percentages are against the container's own limits, capped at 100; the
    threshold flags are computed before capping.
    """
    __tablename__ = "resource_metrics"

    account_id = Column(CHAR(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    container_id = Column(CHAR(36), ForeignKey("containers.id", ondelete="CASCADE"), nullable=False)

    cpu_usage_millicores = Column(Integer, nullable=False)
    cpu_usage_percent = Column(Float, nullable=False)
    memory_usage_bytes = Column(BigInteger, nullable=False)
    memory_usage_percent = Column(Float, nullable=False)
    disk_usage_bytes = Column(BigInteger, nullable=False)
    disk_usage_percent = Column(Float, nullable=False)

    cpu_threshold_exceeded = Column(Boolean, nullable=False, default=False)
    memory_threshold_exceeded = Column(Boolean, nullable=False, default=False)
    disk_threshold_exceeded = Column(Boolean, nullable=False, default=False)

    recorded_at = Column(TIMESTAMP, nullable=False)

    __table_args__ = (
        Index('idx_resource_metrics_container_recorded', 'container_id', 'recorded_at'),
        Index('idx_resource_metrics_account_container', 'account_id', 'container_id'),
    )

    def __repr__(self) -> str:
        return (
            f"<ResourceMetricModel(container_id={self.container_id}, "
            f"cpu={self.cpu_usage_millicores}m, recorded_at={self.recorded_at})>"
        )
