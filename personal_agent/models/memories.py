"""Memory model for personal knowledge records."""
from sqlalchemy import Column, Integer

from .threads import Base
from .knowledge import KnowledgeMixin


class Memory(KnowledgeMixin, Base):
    """
    SQLAlchemy model for memories.

    Same shape as a document minus the store reference; content and tags
    may be updated in place and the embedding is optional.
    """
    __tablename__ = "memories"

    id = Column(Integer, primary_key=True, index=True)
