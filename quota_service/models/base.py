"""Base model with common fields"""

from sqlalchemy import Column, CHAR, TIMESTAMP
from sqlalchemy.orm import declarative_base
import uuid

from quota_service.core.clock import utc_now

Base = declarative_base()


class BaseModel(Base):
    """
    Abstract base model with common fields for all tables.

    Provides:
    - id: UUID primary key
    - created_at: Timestamp of creation
    - updated_at: Timestamp of last update
    """
    __abstract__ = True

    id = Column(CHAR(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = Column(TIMESTAMP, default=utc_now, nullable=False)
    updated_at = Column(
        TIMESTAMP,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )
