"""Document service for corpus stores and documents."""
from datetime import datetime
from typing import Optional, List, Iterable, Set

from sqlalchemy import desc
from sqlalchemy.orm import Session

from personal_agent.errors import StoreNotFound
from personal_agent.models import Document, Store, StoreType


class DocumentService:
    """Service class for store and document operations."""

    @staticmethod
    def create_store(db: Session, store_type: StoreType, location: str) -> Store:
        """Register a new corpus store."""
        store = Store(type=store_type, location=location)
        db.add(store)
        db.commit()
        db.refresh(store)
        return store

    @staticmethod
    def get_store(db: Session, store_id: int) -> Store:
        store = db.query(Store).filter(Store.id == store_id).first()
        if store is None:
            raise StoreNotFound(f"Store {store_id} not found")
        return store

    @staticmethod
    def find_by_path(db: Session, path: str) -> Optional[Document]:
        return db.query(Document).filter(Document.path == path).first()

    @staticmethod
    def list_documents(db: Session, store_id: Optional[int] = None, skip: int = 0, limit: int = 20) -> List[Document]:
        """List documents, most recently created first."""
        query = db.query(Document)
        if store_id is not None:
            query = query.filter(Document.store_id == store_id)
        return query.order_by(desc(Document.created_at), desc(Document.id)).offset(skip).limit(limit).all()

    @staticmethod
    def save_document(
        db: Session,
        store_id: int,
        path: str,
        content: str,
        tags: List[str],
        embedding: List[float],
        sha: str,
        modified_at: Optional[datetime] = None,
    ) -> Document:
        """Insert a document or replace the one stored under the same path."""
        document = DocumentService.find_by_path(db, path)
        if document is None:
            document = Document(path=path)
            db.add(document)

        document.store_id = store_id
        document.content = content
        document.tags = list(tags)
        document.embedding = embedding
        document.sha = sha
        document.modified_at = modified_at
        db.commit()
        db.refresh(document)
        return document

    @staticmethod
    def find_existing_shas(db: Session, shas: Iterable[str]) -> Set[str]:
        """Subset of the given hashes already stored."""
        shas = list(set(shas))
        if not shas:
            return set()
        rows = db.query(Document.sha).filter(Document.sha.in_(shas)).all()
        return {row.sha for row in rows}
