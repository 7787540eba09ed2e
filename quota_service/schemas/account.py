"""Schemas for plan changes and container accounting"""

from typing import Optional
from pydantic import BaseModel, Field

from quota_service.schemas.quota import PlanTier, ResourceRequest


class PlanChangeRequest(BaseModel):
    """Schema for changing an account's plan"""
    plan: PlanTier = Field(..., description="Target plan tier")


class PlanChangeResult(BaseModel):
    success: bool
    message: str
    old_plan: Optional[str] = None
    new_plan: Optional[str] = None


class ContainerCreate(BaseModel):
    """Schema for reserving quota for a new container"""
    name: str = Field(..., min_length=1, max_length=255)
    image_tag: str = Field(..., min_length=1, max_length=255)
    cpu_limit: int = Field(default=500, ge=1, description="CPU in millicores")
    memory_limit: int = Field(default=512, ge=1, description="Memory in MB")
    disk_limit: int = Field(default=5120, ge=1, description="Disk in MB")


class ContainerCreated(BaseModel):
    success: bool = True
    container_id: str
    message: str
    resource_limits: ResourceRequest


class ContainerRemoved(BaseModel):
    success: bool = True
    container_id: str
    message: str
