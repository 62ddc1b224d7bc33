"""Pydantic schemas for retrieval requests and responses."""
from datetime import datetime
from enum import Enum
from typing import Optional, List, Union
from pydantic import BaseModel, Field


class SearchMode(str, Enum):
    VECTOR = "vector"
    TAG = "tag"
    KEYWORD = "keyword"


class SearchTarget(str, Enum):
    DOCUMENTS = "documents"
    MEMORIES = "memories"


class SearchOptions(BaseModel):
    """
    Options shared by all retrieval strategies.

    `limit` and `threshold` fall back to per-strategy defaults when unset;
    `tags` is only used by vector search as an intersection filter.
    `store_id` restricts document searches to one store.
    """
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    threshold: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    tags: Optional[List[str]] = None
    store_id: Optional[int] = None


class SearchRequest(BaseModel):
    """Schema for the search endpoint."""
    query: Union[str, List[str]]
    mode: SearchMode = SearchMode.VECTOR
    target: SearchTarget = SearchTarget.DOCUMENTS
    options: SearchOptions = Field(default_factory=SearchOptions)


class RelevanceRequest(BaseModel):
    """Schema for recency-aware memory ranking."""
    query: str = Field(..., min_length=1)
    k: int = Field(default=5, ge=1, le=100)
    recency_weight: float = Field(default=0.1, ge=0.0, le=1.0)


class SearchResultItem(BaseModel):
    """Schema for a single ranked item."""
    id: int
    path: str
    content: str
    tags: List[str]
    similarity: Optional[float] = None
    score: Optional[float] = None
    created_at: datetime


class SearchResponse(BaseModel):
    mode: SearchMode
    target: SearchTarget
    results: List[SearchResultItem]
    total_results: int
