"""Conversation store: thread lifecycle, append-only message log and checkpoint reconstruction."""
import logging
import threading
import zlib
from typing import Optional, List, Any, Iterable, Mapping, Tuple, Dict

from sqlalchemy import func, desc
from sqlalchemy.orm import Session

from personal_agent.database import dialect_insert
from personal_agent.errors import ThreadNotFound
from personal_agent.models import Thread, Message, MessageRole
from personal_agent.schemas.checkpoints import Checkpoint, CheckpointMessage
from personal_agent.services.thread_key import ThreadKey

logger = logging.getLogger(__name__)

# LangChain message types and plain role names accepted on write
ROLE_ALIASES = {
    "human": MessageRole.HUMAN,
    "user": MessageRole.HUMAN,
    "ai": MessageRole.ASSISTANT,
    "assistant": MessageRole.ASSISTANT,
    "system": MessageRole.SYSTEM,
}

# Appends for one key are serialized through one of these stripes
_APPEND_LOCKS = [threading.Lock() for _ in range(64)]


def _append_lock(thread_key: str) -> threading.Lock:
    return _APPEND_LOCKS[zlib.crc32(thread_key.encode("utf-8")) % len(_APPEND_LOCKS)]


def canonical_key(thread_key: str) -> str:
    """Stored form of a thread key; raises MalformedKey for invalid keys."""
    return str(ThreadKey.parse(thread_key))


def coerce_message(entry: Any) -> Optional[Tuple[MessageRole, str, Optional[Dict[str, Any]]]]:
    """
    Extract (role, content, metadata) from a proposed checkpoint entry.

    Accepts LangChain messages and mappings with role/content keys. Returns
    None for anything without a known role or with non-text content.
    """
    if isinstance(entry, Mapping):
        role = entry.get("role")
        content = entry.get("content")
        metadata = entry.get("metadata")
    elif hasattr(entry, "type") and hasattr(entry, "content"):
        role = entry.type
        content = entry.content
        metadata = getattr(entry, "additional_kwargs", None) or None
    else:
        return None

    if isinstance(role, MessageRole):
        role = role.value
    if not isinstance(role, str) or role not in ROLE_ALIASES:
        return None
    if not isinstance(content, str):
        return None
    if metadata is not None and not isinstance(metadata, Mapping):
        return None
    return ROLE_ALIASES[role], content, dict(metadata) if metadata else None


def project_checkpoint(thread_key: str, messages: Iterable[Message]) -> Optional[Checkpoint]:
    """Fold an ordered message log into a checkpoint. None for an empty log."""
    entries = [
        CheckpointMessage(
            id=message.id,
            role=message.role,
            content=message.content,
            metadata=message.message_metadata,
            created_at=message.created_at,
        )
        for message in messages
    ]
    if not entries:
        return None
    return Checkpoint(
        thread_key=thread_key,
        messages=entries,
        step=len(entries),
        ts=entries[-1].created_at,
    )


class ConversationService:
    """Service class for thread and message persistence."""

    @staticmethod
    def find_or_create_thread(db: Session, thread_key: str) -> Thread:
        """Insert the thread if missing, otherwise refresh its updated_at."""
        key = ThreadKey.parse(thread_key)
        canonical = str(key)

        stmt = dialect_insert(db, Thread.__table__).values(
            key=canonical,
            source=key.source,
            channel=key.channel,
            user=key.user,
            subthread=key.subthread,
        )
        if hasattr(stmt, "on_conflict_do_update"):
            stmt = stmt.on_conflict_do_update(
                index_elements=[Thread.__table__.c.key],
                set_={"updated_at": func.now()},
            )
            db.execute(stmt)
        elif ConversationService.get_thread(db, canonical) is None:
            db.execute(stmt)

        return db.query(Thread).filter(Thread.key == canonical).one()

    @staticmethod
    def get_thread(db: Session, thread_key: str, required: bool = False) -> Optional[Thread]:
        """Retrieve a thread by key. Equivalent spellings of a key find the same thread."""
        thread = db.query(Thread).filter(Thread.key == canonical_key(thread_key)).first()
        if thread is None and required:
            raise ThreadNotFound(f"Thread {thread_key} not found")
        return thread

    @staticmethod
    def list_threads(db: Session, skip: int = 0, limit: int = 20) -> List[Thread]:
        """List threads, most recently active first."""
        return db.query(Thread).order_by(
            desc(Thread.updated_at), desc(Thread.id)
        ).offset(skip).limit(limit).all()

    @staticmethod
    def get_messages(db: Session, thread_id: int, limit: Optional[int] = None) -> List[Message]:
        """Messages of a thread in creation order."""
        query = db.query(Message).filter(
            Message.thread_id == thread_id
        ).order_by(Message.created_at, Message.position)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    @staticmethod
    def message_count(db: Session, thread_id: int) -> int:
        """Number of stored messages, i.e. the length of the checkpoint read back."""
        return db.query(func.count(Message.id)).filter(Message.thread_id == thread_id).scalar()

    @staticmethod
    def get_checkpoint(db: Session, thread_key: str) -> Optional[Checkpoint]:
        """Rebuild the checkpoint of a thread from its message log."""
        thread = ConversationService.get_thread(db, thread_key)
        if thread is None:
            return None
        return project_checkpoint(thread.key, ConversationService.get_messages(db, thread.id))

    @staticmethod
    def put_checkpoint(db: Session, thread_key: str, proposed_messages: List[Any]) -> str:
        """
        Persist the unseen tail of a full message list.

        The first `existing_count` entries are taken as already stored, where
        `existing_count` is the number of stored messages; only the entries
        after them are appended, so extending the read-back checkpoint stores
        exactly the new messages and replaying it stores nothing. Malformed
        entries of the tail are skipped and accepted ones take consecutive
        positions.
        The tail is written with a single INSERT and a single commit.
        """
        with _append_lock(canonical_key(thread_key)):
            thread = ConversationService.find_or_create_thread(db, thread_key)
            existing_count = ConversationService.message_count(db, thread.id)

            rows = []
            for index in range(existing_count, len(proposed_messages)):
                parsed = coerce_message(proposed_messages[index])
                if parsed is None:
                    logger.warning(f"Skipping malformed message at index {index} for thread {thread.key}")
                    continue
                role, content, metadata = parsed
                rows.append({
                    "thread_id": thread.id,
                    "position": existing_count + len(rows),
                    "role": role,
                    "content": content,
                    "metadata": metadata,
                })

            if rows:
                stmt = dialect_insert(db, Message.__table__)
                if hasattr(stmt, "on_conflict_do_nothing"):
                    stmt = stmt.on_conflict_do_nothing(index_elements=["thread_id", "position"])
                db.execute(stmt, rows)

            db.commit()

        if rows:
            logger.info(f"Appended {len(rows)} messages to thread {thread.key}")
        return thread.key

    @staticmethod
    def record_side_effect(*args, **kwargs) -> None:
        """Per-step writes are not tracked; the message log is the only durable state."""
        return None
