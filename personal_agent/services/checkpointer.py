"""LangGraph checkpoint saver backed by the relational message log."""
import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Iterator, Optional, Sequence, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.base import (
    BaseCheckpointSaver,
    ChannelVersions,
    Checkpoint as GraphCheckpoint,
    CheckpointMetadata,
    CheckpointTuple,
    empty_checkpoint,
)
from sqlalchemy.orm import sessionmaker

from personal_agent.database import SessionLocal, session_scope
from personal_agent.schemas.checkpoints import Checkpoint, CheckpointMessage
from personal_agent.services.conversations import ConversationService

logger = logging.getLogger(__name__)

MESSAGE_CLASSES = {
    "human": HumanMessage,
    "assistant": AIMessage,
    "system": SystemMessage,
}


def to_langchain_message(message: CheckpointMessage) -> BaseMessage:
    """Convert a stored message to the LangChain message the graph state holds."""
    message_class = MESSAGE_CLASSES[message.role]
    return message_class(
        content=message.content,
        id=str(message.id),
        additional_kwargs=dict(message.metadata or {}),
    )


def _thread_id(config: RunnableConfig) -> Optional[str]:
    return (config or {}).get("configurable", {}).get("thread_id")


class DatabaseCheckpointSaver(BaseCheckpointSaver):
    """
    Checkpoint saver that keeps no checkpoint rows of its own.

    Every read rebuilds the checkpoint from the thread's messages, so there is
    exactly one checkpoint per thread and it is never stale. Writes append the
    unseen tail of ``channel_values["messages"]``.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, **kwargs):
        super().__init__(**kwargs)
        self.session_factory = session_factory or SessionLocal

    def _to_tuple(self, config: RunnableConfig, checkpoint: Checkpoint) -> CheckpointTuple:
        graph_checkpoint = empty_checkpoint()
        graph_checkpoint["id"] = str(uuid.uuid5(uuid.NAMESPACE_URL, f"{checkpoint.thread_key}#{checkpoint.step}"))
        graph_checkpoint["ts"] = checkpoint.ts.isoformat()
        graph_checkpoint["channel_values"] = {
            "messages": [to_langchain_message(m) for m in checkpoint.messages],
        }
        metadata: CheckpointMetadata = {
            "source": "update",
            "step": checkpoint.step,
            "parents": {},
        }
        return CheckpointTuple(
            config={
                "configurable": {
                    "thread_id": checkpoint.thread_key,
                    "checkpoint_ns": (config.get("configurable") or {}).get("checkpoint_ns", ""),
                    "checkpoint_id": graph_checkpoint["id"],
                }
            },
            checkpoint=graph_checkpoint,
            metadata=metadata,
            parent_config=None,
        )

    def get_tuple(self, config: RunnableConfig) -> Optional[CheckpointTuple]:
        thread_id = _thread_id(config)
        if not thread_id:
            return None

        with session_scope(self.session_factory) as db:
            checkpoint = ConversationService.get_checkpoint(db, thread_id)

        if checkpoint is None:
            return None
        return self._to_tuple(config, checkpoint)

    def list(
        self,
        config: Optional[RunnableConfig],
        *,
        filter: Optional[Dict[str, Any]] = None,
        before: Optional[RunnableConfig] = None,
        limit: Optional[int] = None,
    ) -> Iterator[CheckpointTuple]:
        if config is None or limit == 0:
            return
        checkpoint_tuple = self.get_tuple(config)
        if checkpoint_tuple is not None:
            yield checkpoint_tuple

    def put(
        self,
        config: RunnableConfig,
        checkpoint: GraphCheckpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions = None,
    ) -> RunnableConfig:
        thread_id = _thread_id(config)
        if not thread_id:
            raise ValueError("thread_id is required in config.configurable")

        messages = checkpoint.get("channel_values", {}).get("messages")
        if not isinstance(messages, (list, tuple)):
            messages = []

        with session_scope(self.session_factory) as db:
            ConversationService.put_checkpoint(db, thread_id, list(messages))

        return {
            "configurable": {
                "thread_id": thread_id,
                "checkpoint_ns": config["configurable"].get("checkpoint_ns", ""),
                "checkpoint_id": checkpoint["id"],
            }
        }

    def put_writes(
        self,
        config: RunnableConfig,
        writes: Sequence[Tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        ConversationService.record_side_effect(config, writes, task_id)

    async def aget_tuple(self, config: RunnableConfig) -> Optional[CheckpointTuple]:
        return await asyncio.to_thread(self.get_tuple, config)

    async def alist(
        self,
        config: Optional[RunnableConfig],
        *,
        filter: Optional[Dict[str, Any]] = None,
        before: Optional[RunnableConfig] = None,
        limit: Optional[int] = None,
    ) -> AsyncIterator[CheckpointTuple]:
        checkpoint_tuples = await asyncio.to_thread(
            lambda: list(self.list(config, filter=filter, before=before, limit=limit))
        )
        for checkpoint_tuple in checkpoint_tuples:
            yield checkpoint_tuple

    async def aput(
        self,
        config: RunnableConfig,
        checkpoint: GraphCheckpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions = None,
    ) -> RunnableConfig:
        return await asyncio.to_thread(self.put, config, checkpoint, metadata, new_versions)

    async def aput_writes(
        self,
        config: RunnableConfig,
        writes: Sequence[Tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        await asyncio.to_thread(self.put_writes, config, writes, task_id, task_path)
