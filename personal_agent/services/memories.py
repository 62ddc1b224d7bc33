"""Memory write path: create, update, lookups and aggregate analytics."""
import logging
from collections import Counter, OrderedDict
from datetime import datetime
from typing import Optional, List, Iterable, Set, Union

from sqlalchemy import func, desc
from sqlalchemy.orm import Session

from personal_agent.errors import MemoryNotFound, NoFieldsToUpdate
from personal_agent.models import Memory
from personal_agent.schemas.memories import PathAnalytics, TagAnalytics, DateAnalytics, MemorySummary
from personal_agent.services.content import content_sha
from personal_agent.services.embeddings import EmbeddingService, embedding_service

logger = logging.getLogger(__name__)

ANALYTICS_GROUPINGS = ("path", "tag", "date")
RECENT_DATES = 30


def embedding_text(content: str, context: Optional[str] = None) -> str:
    """Text that gets embedded for a memory: optional context, blank line, content."""
    if context:
        return f"{context}\n\n{content}"
    return content


class MemoryService:
    """Service class for memory CRUD operations."""

    @staticmethod
    def create(
        db: Session,
        content: str,
        path: str,
        tags: Optional[List[str]] = None,
        context: Optional[str] = None,
        embeddings: Optional[EmbeddingService] = None,
    ) -> Memory:
        """
        Create a new memory.

        Args:
            db: Database session
            content: Memory text
            path: Hierarchical key, e.g. "projects/agent/decisions"
            tags: Tag list stored as given
            context: Optional text embedded ahead of the content
            embeddings: Embedding service; rows are stored without an
                embedding when it is not configured

        Returns:
            The persisted Memory with id and timestamps
        """
        embeddings = embeddings or embedding_service
        vector = embeddings.embed_text(embedding_text(content, context))

        memory = Memory(
            path=path,
            content=content,
            tags=list(tags or []),
            embedding=vector,
            sha=content_sha(content),
        )
        db.add(memory)
        db.commit()
        db.refresh(memory)

        logger.info(f"Created memory {memory.id} at {path} (embedded={vector is not None})")
        return memory

    @staticmethod
    def get(db: Session, memory_id: int) -> Memory:
        """Retrieve a memory by ID."""
        memory = db.query(Memory).filter(Memory.id == memory_id).first()
        if memory is None:
            raise MemoryNotFound(f"Memory {memory_id} not found")
        return memory

    @staticmethod
    def find_by_path(db: Session, path: str) -> Optional[Memory]:
        """Most recent memory stored under a path."""
        return db.query(Memory).filter(Memory.path == path).order_by(
            desc(Memory.created_at), desc(Memory.id)
        ).first()

    @staticmethod
    def list_memories(
        db: Session,
        path: Optional[str] = None,
        tags: Optional[List[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Memory]:
        """Memories filtered by exact path and/or tag containment, newest first."""
        query = db.query(Memory)
        if path:
            query = query.filter(Memory.path == path)
        memories = query.order_by(desc(Memory.created_at), desc(Memory.id)).all()

        if tags:
            required = set(tags)
            memories = [m for m in memories if required.issubset(m.tags or [])]
        if limit is not None:
            memories = memories[:limit]
        return memories

    @staticmethod
    def update(
        db: Session,
        memory_id: int,
        content: Optional[str] = None,
        tags: Optional[List[str]] = None,
        append_content: bool = False,
        reembed: bool = False,
        embeddings: Optional[EmbeddingService] = None,
    ) -> Memory:
        """
        Update a memory's content and/or tags.

        With append_content the new text is joined to the existing content
        with a blank line. Tags replace the current set. The embedding is
        only regenerated when reembed is set.
        """
        if content is None and tags is None:
            raise NoFieldsToUpdate("At least one of content or tags must be provided")

        memory = MemoryService.get(db, memory_id)

        if content is not None:
            if append_content:
                memory.content = f"{memory.content}\n\n{content}"
            else:
                memory.content = content
            memory.sha = content_sha(memory.content)

            if reembed:
                embeddings = embeddings or embedding_service
                memory.embedding = embeddings.embed_text(memory.content)
            elif memory.embedding is not None:
                logger.warning(f"Memory {memory_id} content changed; its embedding now reflects older content")

        if tags is not None:
            memory.tags = list(tags)

        memory.updated_at = func.now()
        db.commit()
        db.refresh(memory)

        logger.info(f"Updated memory {memory_id}")
        return memory

    @staticmethod
    def save_memory(
        db: Session,
        path: str,
        content: str,
        tags: List[str],
        embedding: Optional[List[float]],
        sha: str,
        modified_at: Optional[datetime] = None,
    ) -> Memory:
        """Insert or replace the memory stored under a path. Used by sync."""
        memory = MemoryService.find_by_path(db, path)
        if memory is None:
            memory = Memory(path=path)
            db.add(memory)

        memory.content = content
        memory.tags = list(tags)
        memory.embedding = embedding
        memory.sha = sha
        memory.modified_at = modified_at
        db.commit()
        db.refresh(memory)
        return memory

    @staticmethod
    def find_existing_shas(db: Session, shas: Iterable[str]) -> Set[str]:
        """Subset of the given hashes already stored."""
        shas = list(set(shas))
        if not shas:
            return set()
        rows = db.query(Memory.sha).filter(Memory.sha.in_(shas)).all()
        return {row.sha for row in rows}

    @staticmethod
    def analytics(
        db: Session,
        group_by: Optional[str] = None,
    ) -> Union[List[PathAnalytics], List[TagAnalytics], List[DateAnalytics], MemorySummary]:
        """
        Aggregate statistics over all memories.

        group_by "path" rolls up tags per path, "tag" counts each tag across
        memories, "date" counts memories for the most recent calendar dates.
        Without grouping a summary is returned.
        """
        if group_by is not None and group_by not in ANALYTICS_GROUPINGS:
            raise ValueError(f"Unsupported grouping {group_by!r}. Expected one of {', '.join(ANALYTICS_GROUPINGS)}")

        if group_by == "path":
            counts: Counter = Counter()
            rollup: "OrderedDict[str, set]" = OrderedDict()
            for path, tags in db.query(Memory.path, Memory.tags).all():
                counts[path] += 1
                rollup.setdefault(path, set()).update(tags or [])
            return [
                PathAnalytics(path=path, count=count, tags=sorted(rollup[path]))
                for path, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
            ]

        if group_by == "tag":
            counts = Counter()
            for (tags,) in db.query(Memory.tags).all():
                counts.update(tags or [])
            return [
                TagAnalytics(tag=tag, count=count)
                for tag, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
            ]

        if group_by == "date":
            day = func.date(Memory.created_at).label("day")
            rows = db.query(day, func.count(Memory.id)).group_by(day).order_by(desc(day)).limit(RECENT_DATES).all()
            return [DateAnalytics(date=row[0], count=row[1]) for row in rows]

        total, unique_paths, oldest, newest = db.query(
            func.count(Memory.id),
            func.count(func.distinct(Memory.path)),
            func.min(Memory.created_at),
            func.max(Memory.created_at),
        ).one()
        unique_tags = set()
        for (tags,) in db.query(Memory.tags).all():
            unique_tags.update(tags or [])

        return MemorySummary(
            total_memories=total,
            unique_paths=unique_paths,
            unique_tags=len(unique_tags),
            oldest_memory=oldest,
            newest_memory=newest,
        )
