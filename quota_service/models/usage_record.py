"""Usage Record Model"""

from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.types import CHAR

from quota_service.models.base import BaseModel


class UsageRecordModel(BaseModel):
    """
    Per-account usage counters.

    messages_this_month and api_calls_today are rate counters that only
    count usage since their window start. agent_count and container_count
    are live counts with no reset window.
    """
    __tablename__ = "usage_records"

    account_id = Column(CHAR(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    plan_id = Column(String(20), nullable=False, default="free", server_default="free")

    # Rolling 30-day message window
    messages_this_month = Column(Integer, nullable=False, default=0, server_default="0")
    messages_month_start = Column(TIMESTAMP, nullable=False)

    # Rolling 24-hour API call window
    api_calls_today = Column(Integer, nullable=False, default=0, server_default="0")
    api_calls_day_start = Column(TIMESTAMP, nullable=False)

    # Live counts
    agent_count = Column(Integer, nullable=False, default=0, server_default="0")
    container_count = Column(Integer, nullable=False, default=0, server_default="0")

    last_reset = Column(TIMESTAMP, nullable=False)

    __table_args__ = (
        UniqueConstraint('account_id', name='uk_usage_account'),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageRecordModel(account_id={self.account_id}, plan_id={self.plan_id}, "
            f"messages={self.messages_this_month}, api_calls={self.api_calls_today})>"
        )
