"""Message model: one turn within a thread."""
import enum

from sqlalchemy import Column, Integer, Text, ForeignKey, DateTime, JSON, Enum, UniqueConstraint, func
from sqlalchemy.orm import relationship

from .threads import Base


class MessageRole(enum.Enum):
    """Enum for message authors."""
    HUMAN = "human"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(Base):
    """
    SQLAlchemy model for thread messages.

    Rows are never updated. `position` is the index the message had in the
    checkpoint list that introduced it, so appends are keyed by position.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    thread_id = Column(Integer, ForeignKey("threads.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    role = Column(
        Enum(MessageRole, name="message_role", values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    message_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    thread = relationship("Thread", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("thread_id", "position", name="uq_messages_thread_position"),
    )
