"""Container model"""

import enum
from sqlalchemy import Column, String, Integer, Enum, ForeignKey, Index
from sqlalchemy.types import CHAR

from quota_service.models.base import BaseModel


class ContainerStatus(str, enum.Enum):
    """Lifecycle status of a provisioned container"""
    PROVISIONING = "provisioning"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class ContainerModel(BaseModel):
    """
    Container reserved against an account's quotas.

    Rows here are the live container set that aggregate resource usage is
    reconciled against. Provisioning itself happens elsewhere.
    """
    __tablename__ = "containers"

    account_id = Column(CHAR(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    image_tag = Column(String(255), nullable=False)
    cpu_limit = Column(Integer, nullable=False)
    memory_limit = Column(Integer, nullable=False)
    disk_limit = Column(Integer, nullable=False)
    status = Column(
        Enum(ContainerStatus, values_callable=lambda e: [m.value for m in e]),
        default=ContainerStatus.PROVISIONING,
        nullable=False
    )

    __table_args__ = (
        Index('idx_containers_account', 'account_id'),
    )

    def __repr__(self) -> str:
        return f"<ContainerModel(id={self.id}, account_id={self.account_id}, name={self.name})>"
