"""
Similarity API - duplicate checks and embedding lifecycle.
"""
import logging

from fastapi import APIRouter, Depends

from postgen.api.deps import get_container, http_error
from postgen.container import ServiceContainer
from postgen.errors import PostGenError
from postgen.schemas.similarity import (
    SimilarityCheckRequest,
    SimilarityReport,
    StoreEmbeddingRequest,
    StoreEmbeddingResult,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/similarity", tags=["similarity"])


@router.post("/check", response_model=SimilarityReport, response_model_exclude_none=True)
async def check_similarity(
    payload: SimilarityCheckRequest,
    container: ServiceContainer = Depends(get_container),
):
    scope = {}
    if payload.product_id:
        scope["product_id"] = payload.product_id
    if payload.platform:
        scope["platform"] = payload.platform
    try:
        return await container.require_similarity().check_similarity(
            payload.content,
            title=payload.title,
            similarity_threshold=payload.similarity_threshold,
            limit=payload.limit,
            scope_filter=scope or None,
        )
    except PostGenError as e:
        raise http_error(e)


@router.post("/embeddings", response_model=StoreEmbeddingResult)
async def store_embedding(
    payload: StoreEmbeddingRequest,
    container: ServiceContainer = Depends(get_container),
):
    try:
        return await container.require_similarity().store_embedding(
            payload.post_id,
            payload.content,
            title=payload.title,
            extra_metadata=payload.metadata.model_dump(exclude_none=True),
        )
    except PostGenError as e:
        raise http_error(e)


@router.delete("/embeddings/{post_id}")
async def delete_post_embeddings(
    post_id: str,
    container: ServiceContainer = Depends(get_container),
):
    try:
        removed = await container.require_similarity().delete_post_embeddings(post_id)
    except PostGenError as e:
        raise http_error(e)
    return {"postId": post_id, "deleted": removed}
