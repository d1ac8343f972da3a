"""
Vector store - append-mostly storage of content embeddings with cosine search.

InMemoryVectorStore is the default for development and tests.
PgVectorStore persists to PostgreSQL through the pgvector extension.
"""
import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from postgen.errors import ExternalServiceError
from postgen.schemas.similarity import ContentEmbedding, EmbeddingMetadata, SimilarityResult

logger = logging.getLogger(__name__)

# Metadata keys that map to dedicated columns in the pgvector table
_INDEXED_FIELDS = ("resource_id", "product_id", "category")


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Compute cosine similarity between two vectors."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def _matches(metadata: EmbeddingMetadata, filter: Optional[Mapping[str, Any]]) -> bool:
    if not filter:
        return True
    values = metadata.model_dump()
    return all(values.get(key) == expected for key, expected in filter.items())


class VectorStore(ABC):
    @abstractmethod
    async def store_embedding(self, record: ContentEmbedding) -> None:
        ...

    @abstractmethod
    async def search_similar(
        self,
        vector: list[float],
        limit: int = 3,
        score_threshold: float = 0.0,
        filter: Optional[Mapping[str, Any]] = None,
        category: Optional[str] = None,
    ) -> list[SimilarityResult]:
        """Nearest neighbours by descending score, all with score >= score_threshold."""

    @abstractmethod
    async def delete_by_resource_id(self, resource_id: str) -> int:
        ...

    @abstractmethod
    async def delete_by_post_id(self, post_id: str) -> int:
        ...

    async def count(self) -> int:
        return 0

    async def aclose(self) -> None:
        return None


class InMemoryVectorStore(VectorStore):
    def __init__(self):
        self._records: dict[str, ContentEmbedding] = {}
        self._lock = asyncio.Lock()

    async def store_embedding(self, record: ContentEmbedding) -> None:
        async with self._lock:
            self._records[record.id] = record

    async def search_similar(
        self,
        vector: list[float],
        limit: int = 3,
        score_threshold: float = 0.0,
        filter: Optional[Mapping[str, Any]] = None,
        category: Optional[str] = None,
    ) -> list[SimilarityResult]:
        async with self._lock:
            records = list(self._records.values())

        hits = []
        for record in records:
            if category is not None and record.metadata.category != category:
                continue
            if not _matches(record.metadata, filter):
                continue
            score = cosine_similarity(vector, record.embedding)
            if score < score_threshold:
                continue
            hits.append(SimilarityResult(
                id=record.id,
                post_id=record.post_id,
                content=record.content,
                score=score,
                metadata=record.metadata,
            ))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    async def delete_by_resource_id(self, resource_id: str) -> int:
        async with self._lock:
            doomed = [
                rid for rid, rec in self._records.items()
                if rec.metadata.resource_id == resource_id
            ]
            for rid in doomed:
                del self._records[rid]
        return len(doomed)

    async def delete_by_post_id(self, post_id: str) -> int:
        async with self._lock:
            doomed = [rid for rid, rec in self._records.items() if rec.post_id == post_id]
            for rid in doomed:
                del self._records[rid]
        return len(doomed)

    async def count(self) -> int:
        return len(self._records)


class PgVectorStore(VectorStore):
    """pgvector-backed store. Scores are 1 - cosine distance."""

    def __init__(self, session_factory, engine=None):
        self._session_factory = session_factory
        self._engine = engine

    async def store_embedding(self, record: ContentEmbedding) -> None:
        from postgen.models.content_embedding import ContentEmbeddingRecord

        meta = record.metadata.model_dump(exclude_none=True)
        row = ContentEmbeddingRecord(
            id=record.id,
            post_id=record.post_id,
            resource_id=meta.get("resource_id"),
            product_id=meta.get("product_id"),
            category=meta.get("category"),
            content=record.content,
            embedding=record.embedding,
            metadata_=meta,
            created_at=record.created_at,
        )
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
        except Exception as e:
            raise ExternalServiceError(
                f"Failed to store embedding {record.id}: {e}", service="vector_store",
            ) from e

    async def search_similar(
        self,
        vector: list[float],
        limit: int = 3,
        score_threshold: float = 0.0,
        filter: Optional[Mapping[str, Any]] = None,
        category: Optional[str] = None,
    ) -> list[SimilarityResult]:
        from sqlalchemy import select

        from postgen.models.content_embedding import ContentEmbeddingRecord as Row

        distance = Row.embedding.cosine_distance(vector)
        score = (1 - distance).label("score")
        query = select(Row, score).where(score >= score_threshold)
        if category is not None:
            query = query.where(Row.category == category)
        for key, value in (filter or {}).items():
            if key in _INDEXED_FIELDS:
                query = query.where(getattr(Row, key) == value)
            else:
                query = query.where(Row.metadata_[key].astext == str(value))
        query = query.order_by(distance).limit(limit)

        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                rows = result.all()
        except Exception as e:
            raise ExternalServiceError(
                f"Vector search failed: {e}", service="vector_store",
            ) from e

        return [
            SimilarityResult(
                id=row.id,
                post_id=row.post_id,
                content=row.content,
                score=float(row_score),
                metadata=EmbeddingMetadata.model_validate(row.metadata_ or {}),
            )
            for row, row_score in rows
        ]

    async def _delete_where(self, column: str, value: str) -> int:
        from sqlalchemy import delete

        from postgen.models.content_embedding import ContentEmbeddingRecord as Row

        try:
            async with self._session_factory() as db:
                result = await db.execute(delete(Row).where(getattr(Row, column) == value))
                await db.commit()
                return result.rowcount or 0
        except Exception as e:
            raise ExternalServiceError(
                f"Failed to delete embeddings by {column}: {e}", service="vector_store",
            ) from e

    async def delete_by_resource_id(self, resource_id: str) -> int:
        return await self._delete_where("resource_id", resource_id)

    async def delete_by_post_id(self, post_id: str) -> int:
        return await self._delete_where("post_id", post_id)

    async def count(self) -> int:
        from sqlalchemy import func, select

        from postgen.models.content_embedding import ContentEmbeddingRecord as Row

        async with self._session_factory() as db:
            result = await db.execute(select(func.count()).select_from(Row))
            return int(result.scalar_one())

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


def build_vector_store(settings) -> VectorStore:
    if settings.vector_backend == "pgvector":
        from postgen.database import build_engine, build_session_factory

        engine = build_engine(settings)
        logger.info("Using pgvector store")
        return PgVectorStore(build_session_factory(engine), engine=engine)
    logger.info("Using in-memory vector store")
    return InMemoryVectorStore()
