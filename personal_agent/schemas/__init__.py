from .checkpoints import Checkpoint, CheckpointMessage, ProposedMessage, CheckpointWrite, CheckpointWriteResponse
from .memories import (
    MemoryCreate, MemoryUpdate, MemoryResponse,
    PathAnalytics, TagAnalytics, DateAnalytics, MemorySummary
)
from .search import (
    SearchMode, SearchTarget, SearchOptions, SearchRequest, RelevanceRequest,
    SearchResultItem, SearchResponse
)
from .documents import StoreCreate, StoreResponse, SyncReport

__all__ = ["Checkpoint", "CheckpointMessage", "ProposedMessage", "CheckpointWrite", "CheckpointWriteResponse",
           "MemoryCreate", "MemoryUpdate", "MemoryResponse",
           "PathAnalytics", "TagAnalytics", "DateAnalytics", "MemorySummary",
           "SearchMode", "SearchTarget", "SearchOptions", "SearchRequest", "RelevanceRequest",
           "SearchResultItem", "SearchResponse",
           "StoreCreate", "StoreResponse", "SyncReport"]
