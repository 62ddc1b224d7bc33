"""Hybrid retrieval over documents and memories: vector, tag and keyword search plus recency-aware memory ranking."""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from sqlalchemy import DateTime, Text, desc, extract, func, literal, or_, type_coerce
from sqlalchemy.dialects.postgresql import JSONB, array
from sqlalchemy.orm import Query, Session

from personal_agent.models import Document, Memory
from personal_agent.schemas.search import SearchMode, SearchOptions, SearchTarget
from personal_agent.services.embeddings import EmbeddingService, embedding_service

logger = logging.getLogger(__name__)

DEFAULT_RECENCY_WEIGHT = 0.1

TARGET_MODELS = {
    SearchTarget.DOCUMENTS: Document,
    SearchTarget.MEMORIES: Memory,
}


@dataclass
class SearchHit:
    """A ranked item. `similarity` is only set by embedding-based strategies."""
    item: Any
    similarity: Optional[float] = None
    score: Optional[float] = None


def cosine_similarities(vectors: Sequence[Sequence[float]], query: Sequence[float]) -> np.ndarray:
    """
    1 - cosine distance between each vector and the query.

    Zero-length vectors have no defined direction and score 0.
    """
    if len(vectors) == 0:
        return np.zeros(0)
    matrix = np.asarray(np.vstack(vectors), dtype=np.float64)
    q = np.asarray(query, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    with np.errstate(divide="ignore", invalid="ignore"):
        similarities = (matrix @ q) / norms
    return np.nan_to_num(similarities, nan=0.0, posinf=0.0, neginf=0.0)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; the database clock is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_since(created_at: datetime, now: Optional[datetime] = None) -> float:
    now = _as_utc(now or datetime.now(timezone.utc))
    elapsed = (now - _as_utc(created_at)).total_seconds() / 86400.0
    return max(elapsed, 0.0)


def recency_score(created_at: datetime, now: Optional[datetime] = None) -> float:
    """1 / (1 + age in days): 1.0 for brand new items, decaying towards 0."""
    return 1.0 / (1.0 + days_since(created_at, now))


def combined_score(similarity: float, recency: float, recency_weight: float = DEFAULT_RECENCY_WEIGHT) -> float:
    return similarity * (1.0 - recency_weight) + recency * recency_weight


def split_terms(query: Union[str, Sequence[str]]) -> List[str]:
    """Normalize a tag/keyword query given as a list or a comma/space separated string."""
    if isinstance(query, str):
        terms = re.split(r"[,\s]+", query)
    else:
        terms = list(query)
    return [t.strip() for t in terms if isinstance(t, str) and t.strip()]


def uses_sql_vectors(db: Session) -> bool:
    """pgvector operators and JSONB containment are only available on PostgreSQL."""
    return db.get_bind().dialect.name == "postgresql"


def _jsonb_tags(model):
    return type_coerce(model.tags, JSONB)


def _scoped(query: Query, model, options: SearchOptions) -> Query:
    if options.store_id is not None:
        query = query.filter(model.store_id == options.store_id)
    return query


class SearchStrategy(ABC):
    """
    One way of finding relevant items in a knowledge table.

    Implementations return SearchHit lists already ordered and bounded by the
    effective limit.
    """

    mode: SearchMode
    default_limit: int = 10

    def limit_for(self, options: SearchOptions) -> int:
        return options.limit if options.limit is not None else self.default_limit

    @abstractmethod
    def search(self, db: Session, model, query: Any, options: SearchOptions) -> List[SearchHit]:
        ...


class VectorSearch(SearchStrategy):
    """Cosine similarity above a threshold, optionally restricted to items sharing any tag."""

    mode = SearchMode.VECTOR
    default_limit = 10
    default_threshold = 0.7

    def threshold_for(self, options: SearchOptions) -> float:
        return options.threshold if options.threshold is not None else self.default_threshold

    def sql_query(self, db: Session, model, query: Sequence[float], options: SearchOptions) -> Query:
        """Similarity filter, tag intersection, ordering and limit evaluated by pgvector."""
        distance = model.embedding.cosine_distance(query)
        similarity = (1 - distance).label("similarity")

        sql = db.query(model, similarity).filter(
            model.embedding.isnot(None),
            1 - distance > self.threshold_for(options),
        )
        if options.tags:
            sql = sql.filter(_jsonb_tags(model).has_any(array(list(options.tags), type_=Text)))
        sql = _scoped(sql, model, options)
        return sql.order_by(distance, model.id).limit(self.limit_for(options))

    def search(self, db: Session, model, query: Sequence[float], options: SearchOptions) -> List[SearchHit]:
        if uses_sql_vectors(db):
            return [
                SearchHit(item=row, similarity=float(similarity))
                for row, similarity in self.sql_query(db, model, query, options).all()
            ]

        threshold = self.threshold_for(options)
        rows = _scoped(db.query(model), model, options).filter(
            model.embedding.isnot(None)
        ).order_by(model.id).all()
        if options.tags:
            wanted = set(options.tags)
            rows = [row for row in rows if wanted.intersection(row.tags or [])]
        if not rows:
            return []

        similarities = cosine_similarities([row.embedding for row in rows], query)
        hits = [
            SearchHit(item=row, similarity=float(similarity))
            for row, similarity in zip(rows, similarities)
            if similarity > threshold
        ]
        # sort is stable, so equal similarities keep insertion order
        hits.sort(key=lambda hit: hit.similarity, reverse=True)
        return hits[:self.limit_for(options)]


class TagSearch(SearchStrategy):
    """Items carrying every queried tag, most recent first."""

    mode = SearchMode.TAG
    default_limit = 10

    def sql_query(self, db: Session, model, query: Union[str, Sequence[str]], options: SearchOptions) -> Query:
        sql = db.query(model).filter(_jsonb_tags(model).contains(split_terms(query)))
        sql = _scoped(sql, model, options)
        return sql.order_by(desc(model.created_at), desc(model.id)).limit(self.limit_for(options))

    def search(self, db: Session, model, query: Union[str, Sequence[str]], options: SearchOptions) -> List[SearchHit]:
        if uses_sql_vectors(db):
            return [SearchHit(item=row) for row in self.sql_query(db, model, query, options).all()]

        required = set(split_terms(query))
        limit = self.limit_for(options)

        hits: List[SearchHit] = []
        rows = _scoped(db.query(model), model, options).order_by(
            desc(model.created_at), desc(model.id)
        ).all()
        for row in rows:
            if required.issubset(row.tags or []):
                hits.append(SearchHit(item=row))
                if len(hits) >= limit:
                    break
        return hits


class KeywordSearch(SearchStrategy):
    """Case-insensitive substring match of any keyword against content or path."""

    mode = SearchMode.KEYWORD
    default_limit = 5

    @staticmethod
    def _pattern(keyword: str) -> str:
        escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    def search(self, db: Session, model, query: Union[str, Sequence[str]], options: SearchOptions) -> List[SearchHit]:
        keywords = split_terms(query)
        if not keywords:
            return []

        conditions = []
        for keyword in keywords:
            pattern = self._pattern(keyword)
            conditions.append(model.content.ilike(pattern, escape="\\"))
            conditions.append(model.path.ilike(pattern, escape="\\"))

        rows = _scoped(db.query(model), model, options).filter(or_(*conditions)).order_by(
            desc(model.created_at), desc(model.id)
        ).limit(self.limit_for(options)).all()
        return [SearchHit(item=row) for row in rows]


class MemoryRelevanceRanker:
    """
    Rank embedded memories by a blend of similarity and recency.

    There is no threshold: a weakly similar memory can still rank high when
    it is recent and the recency weight is large.
    """

    default_k = 5

    def sql_query(
        self,
        db: Session,
        query_vector: Sequence[float],
        k: int,
        recency_weight: float,
        now: datetime,
    ) -> Query:
        similarity = 1 - Memory.embedding.cosine_distance(query_vector)
        age_days = func.greatest(
            extract("epoch", literal(now, DateTime(timezone=True)) - Memory.created_at) / 86400.0, 0.0
        )
        recency = 1.0 / (1.0 + age_days)
        score = similarity * (1.0 - recency_weight) + recency * recency_weight
        return db.query(Memory, similarity.label("similarity"), score.label("score")).filter(
            Memory.embedding.isnot(None)
        ).order_by(desc(score), Memory.id).limit(k)

    def rank(
        self,
        db: Session,
        query_vector: Sequence[float],
        k: int = default_k,
        recency_weight: float = DEFAULT_RECENCY_WEIGHT,
        now: Optional[datetime] = None,
    ) -> List[SearchHit]:
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        if not 0.0 <= recency_weight <= 1.0:
            raise ValueError(f"recency_weight must be within [0, 1], got {recency_weight}")

        now = now or datetime.now(timezone.utc)
        if uses_sql_vectors(db):
            return [
                SearchHit(item=row, similarity=float(similarity), score=float(score))
                for row, similarity, score in self.sql_query(db, query_vector, k, recency_weight, now).all()
            ]

        rows = db.query(Memory).filter(Memory.embedding.isnot(None)).order_by(Memory.id).all()
        if not rows:
            return []

        similarities = cosine_similarities([row.embedding for row in rows], query_vector)
        hits = []
        for row, similarity in zip(rows, similarities):
            recency = recency_score(row.created_at, now)
            hits.append(SearchHit(
                item=row,
                similarity=float(similarity),
                score=combined_score(float(similarity), recency, recency_weight),
            ))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:k]


class RetrievalService:
    """Dispatch search requests to the registered strategies."""

    def __init__(
        self,
        embeddings: Optional[EmbeddingService] = None,
        strategies: Optional[Sequence[SearchStrategy]] = None,
    ):
        self.embeddings = embeddings or embedding_service
        self.strategies: Dict[SearchMode, SearchStrategy] = {
            strategy.mode: strategy
            for strategy in (strategies or (VectorSearch(), TagSearch(), KeywordSearch()))
        }
        self.ranker = MemoryRelevanceRanker()

    def register(self, strategy: SearchStrategy) -> None:
        self.strategies[strategy.mode] = strategy

    def _query_vector(self, query: Union[str, Sequence[float]]) -> Sequence[float]:
        if isinstance(query, str):
            return self.embeddings.embed_query(query)
        return query

    def search(
        self,
        db: Session,
        query: Any,
        mode: Union[SearchMode, str] = SearchMode.VECTOR,
        options: Optional[SearchOptions] = None,
        target: Union[SearchTarget, str] = SearchTarget.DOCUMENTS,
    ) -> List[SearchHit]:
        """
        Find relevant items with one strategy.

        Args:
            db: Database session
            query: Text or embedding for vector mode; tags or keywords (list or
                separated string) for the other modes
            mode: vector, tag or keyword
            options: Limit, threshold, optional tag filter and optional store
            target: documents or memories

        Returns:
            Ranked list of SearchHit
        """
        try:
            mode = SearchMode(mode)
            target = SearchTarget(target)
        except ValueError as e:
            raise ValueError(f"Unsupported search request: {e}") from e

        strategy = self.strategies.get(mode)
        if strategy is None:
            raise ValueError(f"No strategy registered for mode {mode.value}")

        options = options or SearchOptions()
        if options.store_id is not None and target != SearchTarget.DOCUMENTS:
            raise ValueError("store_id only applies to document searches")
        if mode == SearchMode.VECTOR:
            query = self._query_vector(query)

        hits = strategy.search(db, TARGET_MODELS[target], query, options)
        logger.info(f"{mode.value} search over {target.value} returned {len(hits)} results")
        return hits

    def rank_memories_by_relevance(
        self,
        db: Session,
        query: Union[str, Sequence[float]],
        k: int = MemoryRelevanceRanker.default_k,
        recency_weight: float = DEFAULT_RECENCY_WEIGHT,
    ) -> List[SearchHit]:
        return self.ranker.rank(db, self._query_vector(query), k=k, recency_weight=recency_weight)


# Global instance
retrieval_service = RetrievalService()
