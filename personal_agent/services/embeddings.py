"""Embedding generation for documents, memories and queries."""
import logging
from typing import List, Optional

from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings

from personal_agent.config import OPENAI_API_KEY, EMBEDDING_MODEL, EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Thin wrapper around a LangChain embeddings model.

    When no model is configured (no OpenAI key and nothing injected) the
    service reports itself as unconfigured and callers store rows without an
    embedding.
    """

    def __init__(self, model: Optional[Embeddings] = None, batch_size: int = 10):
        self._model = model
        self.batch_size = batch_size

    @property
    def model(self) -> Optional[Embeddings]:
        if self._model is None and OPENAI_API_KEY:
            self._model = OpenAIEmbeddings(
                openai_api_key=OPENAI_API_KEY,
                model=EMBEDDING_MODEL,
                dimensions=EMBEDDING_DIMENSIONS,
            )
        return self._model

    @property
    def is_configured(self) -> bool:
        return self.model is not None

    def embed_query(self, text: str) -> List[float]:
        """Embed a search query."""
        if not self.is_configured:
            raise RuntimeError("No embedding model configured; set OPENAI_API_KEY")
        try:
            return self.model.embed_query(text)
        except Exception as e:
            logger.error(f"Error generating query embedding: {e}")
            raise

    def embed_text(self, text: str) -> Optional[List[float]]:
        """Embed one stored text, or None when embeddings are not configured."""
        if not self.is_configured:
            return None
        return self.embed_documents([text])[0]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Embed texts in batches."""
        if not self.is_configured:
            raise RuntimeError("No embedding model configured; set OPENAI_API_KEY")

        vectors: List[List[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]
            try:
                vectors.extend(self.model.embed_documents(batch))
            except Exception as e:
                logger.error(f"Error generating embeddings: {e}")
                raise
        return vectors


# Global instance
embedding_service = EmbeddingService()
