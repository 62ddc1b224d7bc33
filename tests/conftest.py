import math
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from langchain_core.embeddings import Embeddings
from sqlalchemy.orm import sessionmaker

from personal_agent.config import EMBEDDING_DIMENSIONS
from personal_agent.database import build_engine
from personal_agent.models import Base
from personal_agent.services import embeddings as embeddings_module
from personal_agent.services.embeddings import EmbeddingService


def unit(index: int) -> List[float]:
    vector = [0.0] * EMBEDDING_DIMENSIONS
    vector[index] = 1.0
    return vector


def blend(similarity: float, towards: int = 0, away: int = 1) -> List[float]:
    """Unit vector whose cosine similarity with unit(towards) is `similarity`."""
    vector = [0.0] * EMBEDDING_DIMENSIONS
    vector[towards] = similarity
    vector[away] = math.sqrt(max(0.0, 1.0 - similarity * similarity))
    return vector


class FakeEmbeddings(Embeddings):
    """Deterministic embeddings: known texts map to fixed vectors, the rest to a default."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default: Optional[List[float]] = None):
        self.vectors = dict(vectors or {})
        self.default = default or unit(0)
        self.document_calls: List[List[str]] = []

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_calls.append(list(texts))
        return [self.vectors.get(text, self.default) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self.vectors.get(text, self.default)


@pytest.fixture(autouse=True)
def no_openai_key(monkeypatch):
    # Tests never talk to OpenAI; services built without a model stay unconfigured
    monkeypatch.setattr(embeddings_module, "OPENAI_API_KEY", None)


@pytest.fixture
def engine(tmp_path: Path):
    engine = build_engine(f"sqlite:///{tmp_path / 'personal_agent.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def embedding_service(fake_embeddings) -> EmbeddingService:
    return EmbeddingService(model=fake_embeddings, batch_size=2)
