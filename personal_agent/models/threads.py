"""Thread model for conversation management."""
from sqlalchemy import Column, Integer, String, DateTime, func
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Thread(Base):
    """
    SQLAlchemy model for conversation threads.

    A thread is keyed by the originating source, channel and user (and an
    optional sub-thread). Its messages form an append-only log.
    """
    __tablename__ = "threads"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, nullable=False, index=True)
    source = Column(String, nullable=False)
    channel = Column(String, nullable=False)
    user = Column(String, nullable=False)
    subthread = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    messages = relationship("Message", back_populates="thread", cascade="all, delete-orphan")
