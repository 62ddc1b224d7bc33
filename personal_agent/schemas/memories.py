"""Pydantic schemas for memory requests, responses and analytics."""
import datetime as dt
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class MemoryCreate(BaseModel):
    """Schema for creating a memory."""
    content: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1, max_length=1024)
    tags: List[str] = Field(default_factory=list)
    context: Optional[str] = Field(default=None, description="Extra text embedded together with the content")


class MemoryUpdate(BaseModel):
    """Schema for updating a memory; tags replace the existing set."""
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    append_content: bool = False


class MemoryResponse(BaseModel):
    """Schema for memory responses."""
    id: int
    path: str
    content: str
    tags: List[str]
    sha: Optional[str]
    has_embedding: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_memory(cls, memory) -> "MemoryResponse":
        return cls(
            id=memory.id,
            path=memory.path,
            content=memory.content,
            tags=list(memory.tags or []),
            sha=memory.sha,
            has_embedding=memory.embedding is not None,
            created_at=memory.created_at,
            updated_at=memory.updated_at,
        )


class PathAnalytics(BaseModel):
    path: str
    count: int
    tags: List[str]


class TagAnalytics(BaseModel):
    tag: str
    count: int


class DateAnalytics(BaseModel):
    date: dt.date
    count: int


class MemorySummary(BaseModel):
    """Ungrouped memory statistics."""
    total_memories: int
    unique_paths: int
    unique_tags: int
    oldest_memory: Optional[datetime] = None
    newest_memory: Optional[datetime] = None
