from fastapi import FastAPI, Depends, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import List, Optional, Union
import logging

from sqlalchemy import text
from sqlalchemy.orm import Session

from personal_agent.config import ALLOWED_ORIGINS, configure_logging
from personal_agent.database import get_db, init_db
from personal_agent.errors import PersonalAgentError
from personal_agent.schemas import (
    Checkpoint, CheckpointWrite, CheckpointWriteResponse,
    MemoryCreate, MemoryUpdate, MemoryResponse,
    PathAnalytics, TagAnalytics, DateAnalytics, MemorySummary,
    SearchRequest, RelevanceRequest, SearchResultItem, SearchResponse, SearchMode, SearchTarget,
    StoreCreate, StoreResponse,
)
from personal_agent.services import (
    ConversationService, MemoryService, DocumentService,
    EmbeddingService, RetrievalService, SearchHit, embedding_service, retrieval_service,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Enable pgvector, create tables and vector indexes if they don't exist
    init_db()
    logger.info("Database schema ready")
    yield


app = FastAPI(
    title="Personal Agent Knowledge Core",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600
)


@app.exception_handler(PersonalAgentError)
async def personal_agent_error_handler(request: Request, exc: PersonalAgentError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


def get_embedding_service() -> EmbeddingService:
    return embedding_service


def get_retrieval_service() -> RetrievalService:
    return retrieval_service


def _result_item(hit: SearchHit) -> SearchResultItem:
    return SearchResultItem(
        id=hit.item.id,
        path=hit.item.path,
        content=hit.item.content,
        tags=list(hit.item.tags or []),
        similarity=hit.similarity,
        score=hit.score,
        created_at=hit.item.created_at,
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "personal-agent"}


@app.get("/health/detailed")
def detailed_health_check(
    db: Session = Depends(get_db),
    embeddings: EmbeddingService = Depends(get_embedding_service)
):
    """Health check for the database and the embedding model configuration."""
    health_status = {
        "status": "healthy",
        "service": "personal-agent",
        "checks": {}
    }

    try:
        db.execute(text("SELECT 1"))
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            db.execute(text("SELECT 1 FROM pg_extension WHERE extname = 'vector'"))
        health_status["checks"]["database"] = {"status": "healthy", "type": dialect}
    except Exception as e:
        health_status["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "unhealthy"

    health_status["checks"]["embeddings"] = {
        "status": "configured" if embeddings.is_configured else "not_configured"
    }

    return health_status


# Conversation checkpoints
@app.get("/session/{thread_key}", response_model=Checkpoint)
def get_session(thread_key: str, db: Session = Depends(get_db)) -> Checkpoint:
    """Reconstructed conversation state of a thread."""
    checkpoint = ConversationService.get_checkpoint(db, thread_key)
    if checkpoint is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No messages for this thread")
    return checkpoint


@app.put("/session/{thread_key}", response_model=CheckpointWriteResponse)
def put_session(
    thread_key: str,
    payload: CheckpointWrite,
    db: Session = Depends(get_db)
) -> CheckpointWriteResponse:
    """Persist the unseen tail of the thread's full message list."""
    stored_key = ConversationService.put_checkpoint(
        db,
        thread_key,
        [message.model_dump() for message in payload.messages]
    )
    checkpoint = ConversationService.get_checkpoint(db, stored_key)
    return CheckpointWriteResponse(thread_key=stored_key, step=checkpoint.step if checkpoint else 0)


# Retrieval
@app.post("/search", response_model=SearchResponse)
def search(
    search_request: SearchRequest,
    db: Session = Depends(get_db),
    retrieval: RetrievalService = Depends(get_retrieval_service)
) -> SearchResponse:
    """Search documents or memories with one retrieval strategy."""
    if search_request.mode == SearchMode.VECTOR and not isinstance(search_request.query, str):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Vector search expects a text query"
        )
    if search_request.options.store_id is not None and search_request.target != SearchTarget.DOCUMENTS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="store_id only applies to document searches"
        )

    hits = retrieval.search(
        db,
        search_request.query,
        mode=search_request.mode,
        options=search_request.options,
        target=search_request.target
    )
    results = [_result_item(hit) for hit in hits]
    return SearchResponse(
        mode=search_request.mode,
        target=search_request.target,
        results=results,
        total_results=len(results)
    )


@app.post("/memories/relevant", response_model=SearchResponse)
def relevant_memories(
    relevance_request: RelevanceRequest,
    db: Session = Depends(get_db),
    retrieval: RetrievalService = Depends(get_retrieval_service)
) -> SearchResponse:
    """Memories ranked by blended similarity and recency."""
    hits = retrieval.rank_memories_by_relevance(
        db,
        relevance_request.query,
        k=relevance_request.k,
        recency_weight=relevance_request.recency_weight
    )
    results = [_result_item(hit) for hit in hits]
    return SearchResponse(
        mode=SearchMode.VECTOR,
        target=SearchTarget.MEMORIES,
        results=results,
        total_results=len(results)
    )


# Memories
@app.post("/memories", response_model=MemoryResponse, status_code=status.HTTP_201_CREATED)
def create_memory(
    memory: MemoryCreate,
    db: Session = Depends(get_db),
    embeddings: EmbeddingService = Depends(get_embedding_service)
) -> MemoryResponse:
    """Create a memory, embedding it when an embedding model is configured."""
    created = MemoryService.create(
        db,
        content=memory.content,
        path=memory.path,
        tags=memory.tags,
        context=memory.context,
        embeddings=embeddings
    )
    return MemoryResponse.from_memory(created)


@app.get("/memories", response_model=List[MemoryResponse])
def list_memories(
    path: Optional[str] = None,
    tags: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db)
) -> List[MemoryResponse]:
    """List memories by path and/or tags, newest first."""
    memories = MemoryService.list_memories(db, path=path, tags=tags, limit=limit)
    return [MemoryResponse.from_memory(memory) for memory in memories]


@app.get(
    "/memories/analytics",
    response_model=Union[MemorySummary, List[PathAnalytics], List[TagAnalytics], List[DateAnalytics]]
)
def memory_analytics(
    group_by: Optional[str] = Query(None, pattern="^(path|tag|date)$"),
    db: Session = Depends(get_db)
):
    """Memory statistics, optionally grouped by path, tag or date."""
    return MemoryService.analytics(db, group_by=group_by)


@app.patch("/memories/{memory_id}", response_model=MemoryResponse)
def update_memory(
    memory_id: int,
    memory_update: MemoryUpdate,
    db: Session = Depends(get_db)
) -> MemoryResponse:
    """Replace or append content and/or replace tags."""
    updated = MemoryService.update(
        db,
        memory_id,
        content=memory_update.content,
        tags=memory_update.tags,
        append_content=memory_update.append_content
    )
    return MemoryResponse.from_memory(updated)


# Corpus stores
@app.post("/stores", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
def create_store(store: StoreCreate, db: Session = Depends(get_db)) -> StoreResponse:
    """Register a document store."""
    return DocumentService.create_store(db, store.type, store.location)


@app.post("/stores/{store_id}/sync")
def trigger_store_sync(store_id: int, db: Session = Depends(get_db)) -> dict:
    """Trigger background sync for a store."""
    from personal_agent.services.sync import sync_store

    store = DocumentService.get_store(db, store_id)
    task = sync_store.delay(store.id)

    return {
        "message": "Sync started",
        "store_id": store.id,
        "task_id": task.id
    }
