"""
Tests for postgen/services/vector_store.py - cosine search over stored embeddings.
"""
from datetime import datetime, timezone

import pytest

from postgen.schemas.similarity import ContentEmbedding, EmbeddingMetadata
from postgen.services.vector_store import (
    InMemoryVectorStore,
    PgVectorStore,
    build_vector_store,
    cosine_similarity,
)


def _record(rid: str, post_id: str, vector: list[float], **meta) -> ContentEmbedding:
    return ContentEmbedding(
        id=rid,
        post_id=post_id,
        content=f"content of {rid}",
        embedding=vector,
        metadata=EmbeddingMetadata(**meta),
        created_at=datetime.now(timezone.utc),
    )


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


class TestInMemoryVectorStore:
    async def test_search_orders_by_score(self):
        store = InMemoryVectorStore()
        await store.store_embedding(_record("far", "p1", [0.0, 1.0]))
        await store.store_embedding(_record("near", "p2", [1.0, 0.1]))
        await store.store_embedding(_record("exact", "p3", [1.0, 0.0]))
        hits = await store.search_similar([1.0, 0.0], limit=3)
        assert [h.id for h in hits] == ["exact", "near", "far"]

    async def test_threshold_and_limit(self):
        store = InMemoryVectorStore()
        await store.store_embedding(_record("a", "p1", [1.0, 0.0]))
        await store.store_embedding(_record("b", "p2", [0.0, 1.0]))
        hits = await store.search_similar([1.0, 0.0], limit=5, score_threshold=0.5)
        assert [h.id for h in hits] == ["a"]
        hits = await store.search_similar([1.0, 0.0], limit=1)
        assert len(hits) == 1

    async def test_filter_on_metadata(self):
        store = InMemoryVectorStore()
        await store.store_embedding(_record("a", "p1", [1.0, 0.0], product_id="x"))
        await store.store_embedding(_record("b", "p2", [1.0, 0.0], product_id="y"))
        hits = await store.search_similar([1.0, 0.0], filter={"product_id": "y"})
        assert [h.id for h in hits] == ["b"]

    async def test_category_filter(self):
        store = InMemoryVectorStore()
        await store.store_embedding(_record("a", "p1", [1.0, 0.0], category="post"))
        await store.store_embedding(_record("b", "kb", [1.0, 0.0], category="knowledge"))
        hits = await store.search_similar([1.0, 0.0], category="knowledge")
        assert [h.post_id for h in hits] == ["kb"]

    async def test_delete_by_post_and_resource(self):
        store = InMemoryVectorStore()
        await store.store_embedding(_record("a", "p1", [1.0, 0.0], resource_id="r1"))
        await store.store_embedding(_record("b", "p1", [1.0, 0.0], resource_id="r1"))
        await store.store_embedding(_record("c", "p2", [1.0, 0.0], resource_id="r2"))
        assert await store.delete_by_post_id("p1") == 2
        assert await store.delete_by_resource_id("r2") == 1
        assert await store.count() == 0


class TestBuildVectorStore:
    def test_memory_backend(self, test_settings):
        assert isinstance(build_vector_store(test_settings), InMemoryVectorStore)

    def test_pgvector_requires_database_url(self, test_settings):
        settings = test_settings.model_copy(update={"vector_backend": "pgvector", "database_url": ""})
        with pytest.raises(ValueError):
            build_vector_store(settings)

    def test_pgvector_backend(self, test_settings):
        settings = test_settings.model_copy(update={
            "vector_backend": "pgvector",
            "database_url": "postgresql+asyncpg://user:pw@localhost:5432/postgen",
        })
        assert isinstance(build_vector_store(settings), PgVectorStore)
