"""Columns shared by documents and memories."""
from sqlalchemy import Column, String, Text, DateTime, JSON, func
from sqlalchemy.dialects.postgresql import JSONB
from pgvector.sqlalchemy import Vector

from personal_agent.config import EMBEDDING_DIMENSIONS

TagList = JSON().with_variant(JSONB(), "postgresql")


class KnowledgeMixin:
    """Path-keyed text with an embedding, a tag list and a content hash."""

    path = Column(String, nullable=False, index=True)
    content = Column(Text, nullable=False)
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    tags = Column(TagList, nullable=False, default=list)
    sha = Column(String(64), nullable=True, index=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
