"""
Content similarity checker - flags near-duplicate content against stored posts.

Candidate retrieval uses a looser pre-filter (threshold * prefilter_factor) so
callers also see near misses; the final is_similar decision always uses the
untightened threshold. Embedding and vector store errors propagate unchanged,
there is no fallback to "not similar".
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from postgen.errors import EmptyContent, ValidationError
from postgen.schemas.similarity import (
    ContentEmbedding,
    EmbeddingMetadata,
    SimilarContent,
    SimilarityReport,
    SimilarityResult,
    StoreEmbeddingResult,
)
from postgen.services.embeddings import EmbeddingClient
from postgen.services.vector_store import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8
DEFAULT_PREFILTER_FACTOR = 0.8
DEFAULT_LIMIT = 3
PREVIEW_CHARS = 200
POST_CATEGORY = "post"  # published posts; knowledge chunks use their own category


def build_text_blob(content: str, title: Optional[str] = None) -> str:
    return f"{title or ''} {content or ''}".strip()


def truncate_preview(content: str, max_chars: int = PREVIEW_CHARS) -> str:
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + "..."


def similarity_warning(max_similarity: float) -> str:
    return (
        f"Content is {max_similarity * 100:.1f}% similar to existing content. "
        "Consider changing the angle, topic, or insights."
    )


class ContentSimilarityChecker:
    def __init__(
        self,
        embeddings: EmbeddingClient,
        vector_store: VectorStore,
        default_threshold: float = DEFAULT_THRESHOLD,
        prefilter_factor: float = DEFAULT_PREFILTER_FACTOR,
        default_limit: int = DEFAULT_LIMIT,
        preview_chars: int = PREVIEW_CHARS,
    ):
        self.embeddings = embeddings
        self.vector_store = vector_store
        self.default_threshold = default_threshold
        self.prefilter_factor = prefilter_factor
        self.default_limit = default_limit
        self.preview_chars = preview_chars

    async def check_similarity(
        self,
        content: str,
        title: Optional[str] = None,
        similarity_threshold: Optional[float] = None,
        limit: Optional[int] = None,
        scope_filter: Optional[Mapping[str, Any]] = None,
        category: Optional[str] = POST_CATEGORY,
    ) -> SimilarityReport:
        """
        Compare content against stored embeddings of the given category (posts by default).

        Raises:
            EmptyContent: title + content is blank.
            ValidationError: threshold outside [0, 1] or limit < 1.
        """
        threshold = self.default_threshold if similarity_threshold is None else similarity_threshold
        limit = self.default_limit if limit is None else limit
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError(f"similarity_threshold must be within [0, 1], got {threshold}")
        if limit < 1:
            raise ValidationError(f"limit must be >= 1, got {limit}")

        text = build_text_blob(content, title)
        if not text:
            raise EmptyContent("Cannot check similarity of empty content")

        vector = await self.embeddings.generate_embedding(text)
        hits = await self.vector_store.search_similar(
            vector,
            limit=limit,
            score_threshold=threshold * self.prefilter_factor,
            filter=scope_filter,
            category=category,
        )

        similar = [
            SimilarContent(
                post_id=hit.post_id,
                content=truncate_preview(hit.content, self.preview_chars),
                similarity=hit.score,
                title=hit.metadata.title,
                platform=hit.metadata.platform,
                resource_id=hit.metadata.resource_id,
            )
            for hit in hits
        ]
        max_similarity = max((hit.score for hit in hits), default=0.0)
        is_similar = max_similarity >= threshold

        if is_similar:
            logger.info(
                "Similar content found (max=%.3f, threshold=%.2f, hits=%d)",
                max_similarity, threshold, len(hits),
            )
        return SimilarityReport(
            is_similar=is_similar,
            max_similarity=max_similarity,
            similar_content=similar,
            warning=similarity_warning(max_similarity) if is_similar else None,
        )

    async def store_embedding(
        self,
        post_id: str,
        content: str,
        title: Optional[str] = None,
        extra_metadata: Optional[Mapping[str, Any]] = None,
    ) -> StoreEmbeddingResult:
        """Embed and append a new version. Never overwrites earlier versions of post_id."""
        if not post_id:
            raise ValidationError("post_id is required")
        text = build_text_blob(content, title)
        if not text:
            raise EmptyContent("Cannot store an embedding for empty content")

        vector = await self.embeddings.generate_embedding(text)
        now = datetime.now(timezone.utc)
        embedding_id = f"{post_id}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"

        meta = dict(extra_metadata or {})
        meta.setdefault("title", title)
        meta.setdefault("resource_id", post_id)
        meta.setdefault("category", POST_CATEGORY)
        record = ContentEmbedding(
            id=embedding_id,
            post_id=post_id,
            content=content,
            embedding=vector,
            metadata=EmbeddingMetadata.model_validate(meta),
            created_at=now,
        )
        await self.vector_store.store_embedding(record)
        logger.info("Embedding stored", extra={"post_id": post_id})
        return StoreEmbeddingResult(success=True, embedding_id=embedding_id)

    async def delete_post_embeddings(self, post_id: str) -> int:
        """Remove every stored version for a post (by post ID and resource ID)."""
        removed = await self.vector_store.delete_by_post_id(post_id)
        removed += await self.vector_store.delete_by_resource_id(post_id)
        logger.info("Deleted %d embeddings", removed, extra={"post_id": post_id})
        return removed

    async def retrieve_knowledge(
        self,
        query: str,
        limit: int = 5,
        scope_filter: Optional[Mapping[str, Any]] = None,
        score_threshold: float = 0.0,
    ) -> list[SimilarityResult]:
        """Nearest stored content for a free-text query (RAG retrieval)."""
        if not query or not query.strip():
            raise EmptyContent("Cannot retrieve knowledge for an empty query")
        vector = await self.embeddings.generate_embedding(query.strip())
        return await self.vector_store.search_similar(
            vector,
            limit=limit,
            score_threshold=score_threshold,
            filter=scope_filter,
        )
