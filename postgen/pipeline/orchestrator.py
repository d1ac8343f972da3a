"""
Generation pipeline orchestrator.

Iterates an ordered list of pass descriptors against one session:
- passes already stored in the session are skipped (resume), unless the
  request's idea/product changed since the session was created
- passes whose precondition is unmet are skipped silently
- each executed pass emits pass-start, pass-chunk* (streaming passes only)
  and pass-complete, in that order, after persisting its result
- a failing core pass emits one error event and ends the stream; results of
  earlier passes stay in the session for a later resume

The pipeline never persists anything itself beyond session updates.
"""
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from postgen.errors import (
    ExternalServiceError,
    MalformedLLMResponse,
    PostGenError,
    SessionNotFound,
    ValidationError,
)
from postgen.pipeline.passes import PASS_DESCRIPTORS, PassContext, PassDescriptor
from postgen.pipeline.parsing import normalize_hashtags
from postgen.schemas.brand import DEFAULT_BRAND_MEMORY, BrandMemory
from postgen.schemas.events import (
    ErrorEvent,
    PassChunkEvent,
    PassCompleteEvent,
    PassStartEvent,
    PipelineEvent,
)
from postgen.schemas.generation import GenerationMetadata, GenerationRequest, MultiPassResult
from postgen.schemas.session import PASS_ORDER, GenerationSession, PassName
from postgen.services.llm import LLMClient
from postgen.services.research import ResearchProvider
from postgen.services.session_cache import SessionCache
from postgen.services.similarity import ContentSimilarityChecker
from postgen.utils.metrics import Timer

logger = logging.getLogger(__name__)

PIPELINE_PRESETS: dict[str, tuple[PassName, ...]] = {
    "multipass": (
        PassName.RESEARCH, PassName.RAG, PassName.IDEA, PassName.ANGLE,
        PassName.OUTLINE, PassName.DRAFT, PassName.ENHANCE,
    ),
    "quick": (PassName.OUTLINE, PassName.DRAFT),
    "scoring": (PassName.SCORING,),
    "improve": (PassName.ENHANCE, PassName.SCORING),
    "full": PASS_ORDER,
}


def resolve_passes(
    action: Optional[str] = None,
    passes: Optional[Sequence[PassName]] = None,
) -> list[PassDescriptor]:
    """
    Descriptors for an explicit pass list or a named preset, always in causal order.

    Raises:
        ValidationError: unknown preset name or empty pass list.
    """
    if passes is not None:
        names = set(passes)
        if not names:
            raise ValidationError("passes must not be empty")
    else:
        action = action or "quick"
        if action not in PIPELINE_PRESETS:
            raise ValidationError(
                f"Unknown action '{action}'. Expected one of: {', '.join(PIPELINE_PRESETS)}"
            )
        names = set(PIPELINE_PRESETS[action])
    return [PASS_DESCRIPTORS[name] for name in PASS_ORDER if name in names]


def validate_request(
    request: GenerationRequest,
    existing: Optional[GenerationSession] = None,
) -> None:
    """
    Reject requests with nothing to generate from. Runs before any external call.
    A request resuming a live session may omit idea, topic and body.
    """
    if existing is not None:
        return
    if not request.seed and not (request.body or "").strip():
        raise ValidationError("At least one of idea, topic or body is required")


def has_change(session: GenerationSession, request: GenerationRequest) -> bool:
    """
    True when the request targets a different idea or product than the stored session.
    Fields the request leaves unset keep the stored values.
    """
    if request.seed is not None and request.seed != session.metadata.idea:
        return True
    return request.product is not None and request.product.id != session.metadata.product_id


def _metadata_updates(session: GenerationSession, request: GenerationRequest) -> dict:
    updates = {"idea": session.metadata.idea, "product_id": session.metadata.product_id}
    if request.seed is not None:
        updates["idea"] = request.seed
    if request.product is not None:
        updates["product_id"] = request.product.id
    return updates


@dataclass
class _RunState:
    session_id: Optional[str] = None
    error: Optional[PostGenError] = None


class GenerationPipeline:
    def __init__(
        self,
        llm: LLMClient,
        session_cache: SessionCache,
        passes: Sequence[PassDescriptor],
        similarity: Optional[ContentSimilarityChecker] = None,
        research: Optional[ResearchProvider] = None,
        brand: Optional[BrandMemory] = None,
        rag_limit: int = 5,
        stream_idle_timeout: Optional[float] = None,
    ):
        self.llm = llm
        self.session_cache = session_cache
        self.passes = list(passes)
        self.similarity = similarity
        self.research = research
        self.brand = brand or DEFAULT_BRAND_MEMORY
        self.rag_limit = rag_limit
        self.stream_idle_timeout = stream_idle_timeout

    @property
    def pass_names(self) -> list[PassName]:
        return [d.name for d in self.passes]

    async def resolve_request(
        self,
        request: GenerationRequest,
    ) -> tuple[GenerationRequest, Optional[GenerationSession]]:
        """
        Validate a request, filling the seed idea from the stored session on resume.

        Raises:
            ValidationError: a new session without idea, topic or body.
            CacheUnavailable: the session store is down.
        """
        existing = None
        if request.session_id:
            existing = await self.session_cache.get_session(request.session_id)
        validate_request(request, existing)
        if existing is not None and request.seed is None and existing.metadata.idea:
            request = request.model_copy(update={"idea": existing.metadata.idea})
        return request, existing

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[PipelineEvent]:
        """
        Run the pipeline as a finite, ordered event stream.
        Supplying request.session_id resumes that session from its last completed pass.
        """
        async with aclosing(self._run(request, _RunState())) as events:
            async for event in events:
                yield event

    async def generate(self, request: GenerationRequest) -> MultiPassResult:
        """
        Blocking multi-pass generation.

        Raises:
            PostGenError: the error that terminated the pipeline.
        """
        state = _RunState()
        async with aclosing(self._run(request, state)) as events:
            async for _ in events:
                pass
        if state.error is not None:
            raise state.error

        session = await self.session_cache.get_session(state.session_id)
        if session is None:
            raise SessionNotFound("Session expired before the result was built", session_id=state.session_id)
        result = self.build_result(session, request)

        if request.check_similarity and self.similarity is not None and result.body:
            result.similarity = await self.similarity.check_similarity(
                result.body,
                title=result.title,
                similarity_threshold=request.similarity_threshold,
            )
        return result

    def build_result(
        self,
        session: GenerationSession,
        request: Optional[GenerationRequest] = None,
    ) -> MultiPassResult:
        """Assemble the final post from whatever the session holds."""
        request = request or GenerationRequest()
        title = (
            (session.outline_pass.title if session.outline_pass else None)
            or request.title
            or "Generated Content"
        )
        body = (
            (session.enhance_pass.enhanced if session.enhance_pass else None)
            or (session.draft_pass.draft if session.draft_pass else None)
            or request.body
            or ""
        )
        hashtags = normalize_hashtags(
            (session.outline_pass.hashtags if session.outline_pass else None) or request.hashtags
        )
        scoring = session.scoring_pass
        metadata = GenerationMetadata(
            ideas_generated=len(session.idea_pass.ideas) if session.idea_pass else 0,
            angles_explored=len(session.angle_pass.angles) if session.angle_pass else 0,
            passes_completed=session.completed_passes(),
        )
        if scoring is not None:
            metadata.score = scoring.score
            metadata.score_breakdown = scoring.score_breakdown
            metadata.weaknesses = scoring.weaknesses
            metadata.suggested_fixes = scoring.suggested_fixes
        return MultiPassResult(
            session_id=session.session_id,
            title=title,
            body=body,
            hashtags=hashtags.split() if hashtags else [],
            metadata=metadata,
        )

    async def _run(self, request: GenerationRequest, state: _RunState) -> AsyncIterator[PipelineEvent]:
        session_id = request.session_id or str(uuid.uuid4())
        state.session_id = session_id
        current_pass: Optional[PassName] = None
        try:
            request, _ = await self.resolve_request(request)
            session = await self.session_cache.get_or_create_session(
                session_id,
                metadata={
                    "idea": request.seed,
                    "product_id": request.product.id if request.product else None,
                },
            )
            changed = has_change(session, request)
            if changed:
                logger.info(
                    "Request differs from stored session, re-running passes",
                    extra={"session_id": session_id},
                )
                session = await self._update(session_id, {}, metadata=_metadata_updates(session, request))

            ctx = PassContext(
                request=request,
                session=session,
                brand=request.brand or self.brand,
                llm=self.llm,
                similarity=self.similarity,
                research=self.research,
                rag_limit=self.rag_limit,
                stream_idle_timeout=self.stream_idle_timeout,
            )

            for descriptor in self.passes:
                current_pass = descriptor.name
                if ctx.session.has_result(descriptor.name) and not changed:
                    logger.debug(
                        "Pass already completed, skipping",
                        extra={"session_id": session_id, "pass_name": descriptor.name.value},
                    )
                    continue
                if not descriptor.precondition(ctx):
                    logger.info(
                        "Pass precondition unmet, skipping",
                        extra={"session_id": session_id, "pass_name": descriptor.name.value},
                    )
                    continue

                yield PassStartEvent(pass_name=descriptor.name)
                timer = Timer().start()
                result = None
                try:
                    async with aclosing(descriptor.executor(ctx)) as items:
                        async for item in items:
                            if isinstance(item, str):
                                timer.mark_first()
                                yield PassChunkEvent(pass_name=descriptor.name, text=item)
                            else:
                                result = item
                    if result is None:
                        raise MalformedLLMResponse(f"{descriptor.name.value} pass produced no result")
                except (ExternalServiceError, MalformedLLMResponse) as e:
                    if descriptor.fallback is None:
                        raise
                    logger.warning(
                        "Enrichment pass failed, continuing without it: %s", e.message,
                        extra={"session_id": session_id, "pass_name": descriptor.name.value},
                    )
                    result = descriptor.fallback()

                ctx.session = await self._update(session_id, {descriptor.name: result})
                logger.info(
                    "Pass complete",
                    extra={
                        "session_id": session_id,
                        "pass_name": descriptor.name.value,
                        "latency_ms": timer.stop(),
                        "first_chunk_ms": timer.first_chunk_ms,
                    },
                )
                yield PassCompleteEvent(
                    pass_name=descriptor.name,
                    result=result.model_dump(by_alias=True, mode="json"),
                )
            current_pass = None

        except PostGenError as e:
            e.with_context(
                pass_name=current_pass.value if current_pass else None,
                session_id=session_id,
            )
            state.error = e
            logger.warning(
                "Pipeline stopped: %s", e.message,
                extra={
                    "session_id": session_id,
                    "pass_name": e.pass_name,
                    "error_code": e.error_code,
                },
            )
            yield self._error_event(e, current_pass)
        except Exception as e:
            logger.exception(
                "Unexpected pipeline failure",
                extra={"session_id": session_id, "pass_name": current_pass.value if current_pass else None},
            )
            error = PostGenError(
                f"Unexpected error: {e}",
                pass_name=current_pass.value if current_pass else None,
                session_id=session_id,
            )
            state.error = error
            yield self._error_event(error, current_pass)

    async def _update(self, session_id: str, updates: dict, metadata: Optional[dict] = None) -> GenerationSession:
        session = await self.session_cache.update_session(session_id, updates, metadata=metadata)
        if session is None:
            raise SessionNotFound("Session expired during generation", session_id=session_id)
        return session

    @staticmethod
    def _error_event(error: PostGenError, current_pass: Optional[PassName]) -> ErrorEvent:
        return ErrorEvent(
            message=error.message,
            pass_name=current_pass,
            session_id=error.session_id,
            error_code=error.error_code,
        )


def build_pipeline(
    llm: LLMClient,
    session_cache: SessionCache,
    action: Optional[str] = None,
    passes: Optional[Sequence[PassName]] = None,
    **kwargs,
) -> GenerationPipeline:
    """Build a pipeline for a named preset or an explicit pass list."""
    return GenerationPipeline(llm, session_cache, resolve_passes(action, passes), **kwargs)
