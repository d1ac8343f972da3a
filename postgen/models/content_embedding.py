"""
Content embedding model - one row per stored version of a post.
Append-mostly: rows are only removed by explicit delete-by-post/resource.
"""
from datetime import datetime, timezone
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from postgen.database import Base

EMBEDDING_DIM = 1536


class ContentEmbeddingRecord(Base):
    __tablename__ = "content_embeddings"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)  # {postId}_{ts}_{suffix}
    post_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(255))
    product_id: Mapped[Optional[str]] = mapped_column(String(255))
    category: Mapped[Optional[str]] = mapped_column(String(50))  # post, product, knowledge
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding = mapped_column(Vector(EMBEDDING_DIM), nullable=False)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_content_embeddings_post_id", "post_id"),
        Index("ix_content_embeddings_resource_id", "resource_id"),
        Index("ix_content_embeddings_product_id", "product_id"),
    )

    def __repr__(self) -> str:
        return f"<ContentEmbeddingRecord {self.id} post={self.post_id}>"
