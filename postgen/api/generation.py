"""
Generation API - single-pass, blocking multi-pass and SSE streaming.

- POST /api/v1/generation/single-pass - one call, three style variations
- POST /api/v1/generation/multi-pass  - runs a pass preset, returns the final post
- POST /api/v1/generation/stream      - same pipeline as server-sent events

The stream's session ID is returned in the X-Session-ID header; reconnecting
with that sessionId resumes from the last completed pass.
"""
import logging
import uuid
from contextlib import aclosing

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from postgen.api.deps import get_container, http_error
from postgen.container import ServiceContainer
from postgen.errors import PostGenError
from postgen.schemas.events import to_sse
from postgen.schemas.generation import (
    GenerationRequest,
    MultiPassResult,
    SinglePassRequest,
    SinglePassResult,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/generation", tags=["generation"])


@router.post(
    "/single-pass",
    response_model=SinglePassResult,
    response_model_exclude_none=True,
)
async def generate_single_pass(
    payload: SinglePassRequest,
    container: ServiceContainer = Depends(get_container),
):
    try:
        return await container.single_pass().generate(payload)
    except PostGenError as e:
        raise http_error(e)


@router.post(
    "/multi-pass",
    response_model=MultiPassResult,
    response_model_exclude_none=True,
)
async def generate_multi_pass(
    payload: GenerationRequest,
    container: ServiceContainer = Depends(get_container),
):
    try:
        pipeline = container.pipeline(payload.action, payload.passes)
        return await pipeline.generate(payload)
    except PostGenError as e:
        raise http_error(e)


@router.post("/stream")
async def generate_stream(
    payload: GenerationRequest,
    request: Request,
    container: ServiceContainer = Depends(get_container),
):
    """Stream pipeline events as `data: <json>` frames."""
    try:
        pipeline = container.pipeline(payload.action, payload.passes)
        payload, _ = await pipeline.resolve_request(payload)
    except PostGenError as e:
        raise http_error(e)

    if not payload.session_id:
        payload = payload.model_copy(update={"session_id": str(uuid.uuid4())})
    session_id = payload.session_id

    async def event_source():
        async with aclosing(pipeline.generate_stream(payload)) as events:
            async for event in events:
                yield to_sse(event)
                if await request.is_disconnected():
                    logger.info("Client disconnected, stopping stream", extra={"session_id": session_id})
                    break

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={
            "X-Session-ID": session_id,
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/sessions")
async def list_sessions(container: ServiceContainer = Depends(get_container)):
    try:
        session_ids = await container.session_cache.get_active_sessions()
    except PostGenError as e:
        raise http_error(e)
    return {"sessions": session_ids, "count": len(session_ids)}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        session = await container.session_cache.get_session(session_id)
    except PostGenError as e:
        raise http_error(e)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.to_wire()


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        deleted = await container.session_cache.delete_session(session_id)
    except PostGenError as e:
        raise http_error(e)
    if not deleted:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"deleted": True, "sessionId": session_id}
