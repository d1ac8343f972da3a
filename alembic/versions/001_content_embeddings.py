"""Content embeddings table with pgvector column.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "content_embeddings",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("post_id", sa.String(255), nullable=False),
        sa.Column("resource_id", sa.String(255)),
        sa.Column("product_id", sa.String(255)),
        sa.Column("category", sa.String(50)),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("embedding", Vector(1536), nullable=False),
        sa.Column("metadata", postgresql.JSONB, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_content_embeddings_post_id", "content_embeddings", ["post_id"])
    op.create_index("ix_content_embeddings_resource_id", "content_embeddings", ["resource_id"])
    op.create_index("ix_content_embeddings_product_id", "content_embeddings", ["product_id"])
    # Cosine ANN index
    op.execute(
        "CREATE INDEX ix_content_embeddings_embedding ON content_embeddings "
        "USING hnsw (embedding vector_cosine_ops)"
    )


def downgrade() -> None:
    op.drop_table("content_embeddings")
