"""Store model: a document corpus backed by a directory or a bucket prefix."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum, func
from sqlalchemy.orm import relationship

from .threads import Base


class StoreType(enum.Enum):
    """Enum for corpus backends."""
    LOCAL = "local"
    MINIO = "minio"


class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(
        Enum(StoreType, name="store_type", values_callable=lambda types: [t.value for t in types]),
        nullable=False,
    )
    # Directory path for local stores, "bucket/prefix" for MinIO stores
    location = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    documents = relationship("Document", back_populates="store", cascade="all, delete-orphan")
