"""Database configuration and session management."""
import logging
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine, insert, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import sessionmaker, Session

from personal_agent.config import DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW
from personal_agent.errors import StorageUnavailable

logger = logging.getLogger(__name__)


def build_engine(url: str = DATABASE_URL) -> Engine:
    """Create an engine with a bounded connection pool."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker = None) -> Iterator[Session]:
    """
    Acquire a session for the duration of one logical call.

    Connection-level failures surface as StorageUnavailable; anything else is
    re-raised unchanged after rollback. The session is always closed.
    """
    db = (factory or SessionLocal)()
    try:
        yield db
    except (OperationalError, InterfaceError) as e:
        db.rollback()
        logger.error(f"Storage backend unavailable: {e}")
        raise StorageUnavailable(str(e)) from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def dialect_insert(db: Session, table):
    """Return an INSERT construct supporting ON CONFLICT for the bound dialect."""
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return pg_insert(table)
    if name == "sqlite":
        return sqlite_insert(table)
    return insert(table)


def init_db(bind: Engine = None) -> None:
    """Create the pgvector extension, all tables and the vector indexes."""
    # Import models to register them on the metadata
    from personal_agent.models import Base

    bind = bind or engine
    is_postgres = bind.dialect.name == "postgresql"

    if is_postgres:
        with bind.connect() as conn:
            try:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                conn.commit()
                logger.info("pgvector extension enabled")
            except Exception as e:
                logger.error(f"Failed to create pgvector extension: {e}")

    Base.metadata.create_all(bind=bind)

    if is_postgres:
        create_vector_indexes(bind)


def create_vector_indexes(bind: Engine) -> None:
    """Create cosine ivfflat indexes on the embedding columns."""
    with bind.connect() as conn:
        for table in ("documents", "memories"):
            try:
                conn.execute(text(
                    f"CREATE INDEX IF NOT EXISTS {table}_embedding_idx "
                    f"ON {table} USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100)"
                ))
                conn.commit()
                logger.info(f"Vector index on {table} ready")
            except Exception as e:
                logger.error(f"Error creating vector index on {table}: {e}")
                conn.rollback()
