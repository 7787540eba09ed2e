"""Account model"""

from sqlalchemy import Column, String, Index

from quota_service.models.base import BaseModel


class AccountModel(BaseModel):
    """
    Tenant account.

    Only the fields the quota engines read are modelled here; the plan tier
    is the sole driver of every quota and resource ceiling.
    """
    __tablename__ = "accounts"

    name = Column(String(255), nullable=False)
    plan = Column(String(20), nullable=False, default="free", server_default="free")

    __table_args__ = (
        Index('idx_accounts_plan', 'plan'),
    )

    def __repr__(self) -> str:
        return f"<AccountModel(id={self.id}, name={self.name}, plan={self.plan})>"
