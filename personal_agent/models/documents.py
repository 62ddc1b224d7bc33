"""Document model for the read-only knowledge corpus."""
from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .threads import Base
from .knowledge import KnowledgeMixin


class Document(KnowledgeMixin, Base):
    """
    SQLAlchemy model for corpus documents.

    Documents are synced from a store and replaced wholesale when their
    content hash changes. The path is unique across the corpus.
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)

    store = relationship("Store", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("path", name="uq_documents_path"),
    )
