"""Pydantic schemas for reconstructed conversation state."""
from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, ConfigDict

from personal_agent.models.messages import MessageRole


class CheckpointMessage(BaseModel):
    """One persisted message as it appears inside a checkpoint."""
    id: int
    role: MessageRole
    content: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(use_enum_values=True)


class Checkpoint(BaseModel):
    """
    Conversation state of a thread, rebuilt from its message log.

    `step` always equals the number of messages and `ts` the timestamp of
    the latest one.
    """
    thread_key: str
    messages: List[CheckpointMessage]
    step: int
    ts: datetime


class ProposedMessage(BaseModel):
    """Schema for a message submitted through the HTTP surface."""
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = None


class CheckpointWrite(BaseModel):
    """Schema for replacing a thread's checkpoint with a full message list."""
    messages: List[ProposedMessage] = Field(default_factory=list)


class CheckpointWriteResponse(BaseModel):
    thread_key: str
    step: int
