"""
Database models - import all models here so Alembic can discover them.
"""
from postgen.models.content_embedding import ContentEmbeddingRecord

__all__ = ["ContentEmbeddingRecord"]
