"""Pydantic schemas for corpus stores and sync reports."""
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from personal_agent.models.stores import StoreType


class StoreCreate(BaseModel):
    """Schema for registering a corpus store."""
    type: StoreType
    location: str = Field(..., min_length=1, description="Directory path or bucket/prefix")


class StoreResponse(BaseModel):
    id: int
    type: StoreType
    location: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SyncReport(BaseModel):
    """Outcome of one sync run."""
    processed: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0
