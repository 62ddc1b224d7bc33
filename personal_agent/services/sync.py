"""Corpus and memory sync: pull markdown files from a source, skip unchanged ones, embed and upsert the rest."""
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Tuple

from celery import Task
from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.orm import Session

from personal_agent.celery_app import celery
from personal_agent.config import MEMORY_SOURCE_DIR
from personal_agent.database import session_scope
from personal_agent.errors import StorageUnavailable
from personal_agent.schemas.documents import SyncReport
from personal_agent.services.content import content_sha, extract_tags
from personal_agent.services.documents import DocumentService
from personal_agent.services.embeddings import EmbeddingService, embedding_service
from personal_agent.services.memories import MemoryService
from personal_agent.services.sources import CorpusSource, LocalDirectorySource, SourceEntry, source_for_store

logger = logging.getLogger(__name__)


@dataclass
class FetchedFile:
    entry: SourceEntry
    content: str
    sha: str
    tags: List[str]


def _fetch_all(source: CorpusSource, report: SyncReport) -> List[FetchedFile]:
    """Read every entry of a source. Unreadable entries are counted as failed."""
    fetched = []
    for entry in source.list_entries():
        report.processed += 1
        try:
            content = source.fetch(entry.path)
        except Exception as e:
            logger.warning(f"Failed to fetch {entry.path}: {e}")
            report.failed += 1
            continue
        fetched.append(FetchedFile(
            entry=entry,
            content=content,
            sha=content_sha(content),
            tags=extract_tags(content),
        ))
    return fetched


def _embed_changed(
    embeddings: EmbeddingService,
    changed: List[FetchedFile],
    report: SyncReport,
) -> List[Tuple[FetchedFile, List[float]]]:
    """
    Embed changed files, batch first and then one by one if the batch fails.

    A file that cannot be embedded on its own is counted as failed and left
    out, so one bad file never aborts the sync.
    """
    if not changed:
        return []
    if not embeddings.is_configured:
        raise RuntimeError("No embedding model configured; set OPENAI_API_KEY")
    try:
        return list(zip(changed, embeddings.embed_documents([f.content for f in changed])))
    except Exception as e:
        logger.warning(f"Batch embedding of {len(changed)} files failed, retrying per file: {e}")

    embedded = []
    for file in changed:
        try:
            vector = embeddings.embed_documents([file.content])[0]
        except Exception as e:
            logger.warning(f"Failed to embed {file.entry.path}: {e}")
            report.failed += 1
            continue
        embedded.append((file, vector))
    return embedded


def sync_documents(
    db: Session,
    store_id: int,
    source: Optional[CorpusSource] = None,
    embeddings: Optional[EmbeddingService] = None,
) -> SyncReport:
    """
    Sync a store's documents from its source.

    Files whose content hash is already stored are skipped; the rest are
    embedded in batches and upserted by path. Files that fail to embed are
    counted as failed.
    """
    embeddings = embeddings or embedding_service
    store = DocumentService.get_store(db, store_id)
    source = source or source_for_store(store)

    report = SyncReport()
    fetched = _fetch_all(source, report)

    existing = DocumentService.find_existing_shas(db, [f.sha for f in fetched])
    changed = [f for f in fetched if f.sha not in existing]
    report.skipped = len(fetched) - len(changed)

    for file, vector in _embed_changed(embeddings, changed, report):
        DocumentService.save_document(
            db,
            store_id=store.id,
            path=file.entry.path,
            content=file.content,
            tags=file.tags,
            embedding=vector,
            sha=file.sha,
            modified_at=file.entry.modified_at,
        )
        report.saved += 1

    logger.info(
        f"Store {store_id} sync completed: {report.processed} processed, {report.saved} saved, "
        f"{report.skipped} unchanged, {report.failed} failed"
    )
    return report


def sync_memories(
    db: Session,
    source: CorpusSource,
    embeddings: Optional[EmbeddingService] = None,
) -> SyncReport:
    """Sync memories from a source, upserting by path. Embeddings are optional."""
    embeddings = embeddings or embedding_service

    report = SyncReport()
    fetched = _fetch_all(source, report)

    existing = MemoryService.find_existing_shas(db, [f.sha for f in fetched])
    changed = [f for f in fetched if f.sha not in existing]
    report.skipped = len(fetched) - len(changed)

    if embeddings.is_configured:
        embedded = _embed_changed(embeddings, changed, report)
    else:
        embedded = [(file, None) for file in changed]

    for file, vector in embedded:
        MemoryService.save_memory(
            db,
            path=file.entry.path,
            content=file.content,
            tags=file.tags,
            embedding=vector,
            sha=file.sha,
            modified_at=file.entry.modified_at,
        )
        report.saved += 1

    logger.info(
        f"Memory sync completed: {report.processed} processed, {report.saved} saved, "
        f"{report.skipped} unchanged, {report.failed} failed"
    )
    return report


@celery.task(bind=True, name='sync_store', max_retries=3)
def sync_store(self: Task, store_id: int) -> Dict[str, Any]:
    """Celery task to sync one document store."""
    try:
        with session_scope() as db:
            return sync_documents(db, store_id).model_dump()
    except SoftTimeLimitExceeded:
        logger.error(f"Task time limit exceeded for store {store_id}")
        raise
    except StorageUnavailable as e:
        logger.error(f"Error syncing store {store_id}: {e}")
        raise self.retry(exc=e, countdown=60)


@celery.task(bind=True, name='sync_memory_directory', max_retries=3)
def sync_memory_directory(self: Task, directory: str = MEMORY_SOURCE_DIR) -> Dict[str, Any]:
    """Celery task to sync memories from a local directory of markdown files."""
    try:
        with session_scope() as db:
            return sync_memories(db, LocalDirectorySource(directory)).model_dump()
    except StorageUnavailable as e:
        logger.error(f"Error syncing memories from {directory}: {e}")
        raise self.retry(exc=e, countdown=60)
