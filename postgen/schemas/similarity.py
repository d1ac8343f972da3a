"""
Content embedding and similarity schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import Field

from postgen.schemas.session import CamelModel


class EmbeddingMetadata(CamelModel):
    title: Optional[str] = None
    platform: Optional[str] = None
    resource_id: Optional[str] = None
    topic: Optional[str] = None
    product_id: Optional[str] = None
    category: Optional[str] = None  # post, product, knowledge


class ContentEmbedding(CamelModel):
    """A stored vector. Created once, never mutated, deleted with its owning post."""
    id: str
    post_id: str
    content: str
    embedding: list[float]
    metadata: EmbeddingMetadata = Field(default_factory=EmbeddingMetadata)
    created_at: datetime


class SimilarityResult(CamelModel):
    """Transient search hit. score is in [0, 1], higher = more similar."""
    id: str
    post_id: str
    content: str
    score: float
    metadata: EmbeddingMetadata = Field(default_factory=EmbeddingMetadata)


class SimilarContent(CamelModel):
    post_id: str
    content: str
    similarity: float
    title: Optional[str] = None
    platform: Optional[str] = None
    resource_id: Optional[str] = None


class SimilarityReport(CamelModel):
    is_similar: bool
    max_similarity: float
    similar_content: list[SimilarContent] = Field(default_factory=list)
    warning: Optional[str] = None


class StoreEmbeddingResult(CamelModel):
    success: bool
    embedding_id: str


class SimilarityCheckRequest(CamelModel):
    content: str
    title: Optional[str] = None
    similarity_threshold: Optional[float] = None
    limit: Optional[int] = None
    product_id: Optional[str] = None
    platform: Optional[str] = None


class StoreEmbeddingRequest(CamelModel):
    post_id: str
    content: str
    title: Optional[str] = None
    metadata: EmbeddingMetadata = Field(default_factory=EmbeddingMetadata)
