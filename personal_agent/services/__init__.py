from .thread_key import ThreadKey
from .conversations import ConversationService, project_checkpoint
from .checkpointer import DatabaseCheckpointSaver
from .embeddings import EmbeddingService, embedding_service
from .retrieval import RetrievalService, SearchHit, SearchStrategy, retrieval_service
from .memories import MemoryService
from .documents import DocumentService

__all__ = ["ThreadKey", "ConversationService", "project_checkpoint", "DatabaseCheckpointSaver",
           "EmbeddingService", "embedding_service", "RetrievalService", "SearchHit", "SearchStrategy",
           "retrieval_service", "MemoryService", "DocumentService"]
