"""
Pass descriptors - the ordered, explicit definition of the generation pipeline.

Each descriptor is (name, precondition, executor). Executors are async
generators: streaming passes yield text chunks, and every executor finishes by
yielding exactly one typed pass result. Executors read the session snapshot in
PassContext, which only ever holds results of passes that ran before them.
"""
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional, Union

from postgen.errors import MalformedLLMResponse
from postgen.pipeline.parsing import parse_angles, parse_ideas, parse_outline, parse_scoring
from postgen.prompts import generation as prompts
from postgen.schemas.brand import BrandMemory
from postgen.schemas.generation import GenerationRequest
from postgen.schemas.session import (
    AnglePassResult,
    DraftPassResult,
    EnhancePassResult,
    GenerationSession,
    IdeaMeta,
    IdeaPassResult,
    PassName,
    PassResult,
    RagPassResult,
    RagSource,
    ResearchPassResult,
)
from postgen.services.channel import ChunkChannel
from postgen.services.llm import LLMClient, LLMRequest
from postgen.services.research import ResearchProvider, research_topic
from postgen.services.similarity import ContentSimilarityChecker
from postgen.utils.json_output import sanitize_output_text

logger = logging.getLogger(__name__)

# RAG gate
INTERNAL_KNOWLEDGE_TRIGGERS = (
    "chính sách", "điều khoản", "bảo hành", "đổi trả", "quy trình", "hướng dẫn",
    "cách sử dụng", "so sánh", "thông số", "giá", "ship", "vận chuyển",
    "policy", "warranty", "return", "refund", "how to", "compare", "spec",
    "price", "shipping", "delivery",
)
FACT_SENSITIVE_CONTENT_TYPES = ("ad", "product", "faq", "support", "landing")
RAG_GATE_MIN_SCORE = 2


@dataclass
class PassContext:
    request: GenerationRequest
    session: GenerationSession
    brand: BrandMemory
    llm: LLMClient
    similarity: Optional[ContentSimilarityChecker] = None
    research: Optional[ResearchProvider] = None
    rag_limit: int = 5
    stream_idle_timeout: Optional[float] = None

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def seed(self) -> Optional[str]:
        return self.request.seed

    @property
    def language(self) -> str:
        return self.brand.language


PassItem = Union[str, PassResult]
PassExecutor = Callable[[PassContext], AsyncIterator[PassItem]]


@dataclass(frozen=True)
class PassDescriptor:
    name: PassName
    precondition: Callable[[PassContext], bool]
    executor: PassExecutor
    streaming: bool = False
    # Enrichment passes record an empty result on provider failure instead of aborting
    fallback: Optional[Callable[[], PassResult]] = field(default=None)


def final_content(ctx: PassContext) -> Optional[str]:
    session = ctx.session
    if session.enhance_pass and session.enhance_pass.enhanced:
        return session.enhance_pass.enhanced
    if session.draft_pass and session.draft_pass.draft:
        return session.draft_pass.draft
    return (ctx.request.body or "").strip() or None


def rag_gate_score(ctx: PassContext) -> int:
    score = 0
    seed = (ctx.seed or "").lower()
    if any(trigger in seed for trigger in INTERNAL_KNOWLEDGE_TRIGGERS):
        score += 2
    if ctx.request.product is not None:
        score += 2
    if (ctx.request.content_type or "").lower() in FACT_SENSITIVE_CONTENT_TYPES:
        score += 1
    if ctx.session.research_pass and ctx.session.research_pass.risks:
        score += 1
    return score


async def _complete(ctx: PassContext, name: str, prompt: str) -> str:
    settings = prompts.PASS_SETTINGS[name]
    response = await ctx.llm.generate_completion(LLMRequest(
        prompt=prompt,
        system_prompt=settings.system_prompt,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    ))
    return response.content


def _channel(ctx: PassContext, name: str, prompt: str) -> ChunkChannel:
    settings = prompts.PASS_SETTINGS[name]
    source = ctx.llm.generate_streaming_completion(LLMRequest(
        prompt=prompt,
        system_prompt=settings.system_prompt,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    ))
    return ChunkChannel(source, idle_timeout=ctx.stream_idle_timeout)


# Executors


async def run_research(ctx: PassContext) -> AsyncIterator[PassItem]:
    yield await research_topic(ctx.llm, ctx.research, ctx.seed, language=ctx.language)


async def run_rag(ctx: PassContext) -> AsyncIterator[PassItem]:
    hits = await ctx.similarity.retrieve_knowledge(ctx.seed, limit=ctx.rag_limit)
    sources = [
        RagSource(
            post_id=hit.post_id,
            title=hit.metadata.title or "",
            content=hit.content,
            similarity=hit.score,
        )
        for hit in hits
    ]
    rag_context = "\n\n".join(
        f"{source.title}\n{source.content}".strip() for source in sources
    )
    logger.info("Retrieved %d knowledge chunks", len(sources), extra={"session_id": ctx.session_id})
    yield RagPassResult(rag_context=rag_context, sources=sources)


async def run_idea(ctx: PassContext) -> AsyncIterator[PassItem]:
    text = await _complete(ctx, "idea", prompts.build_idea_prompt(ctx.request, ctx.brand, ctx.session))
    ideas = parse_ideas(text)
    rag = ctx.session.rag_pass
    yield IdeaPassResult(
        ideas=ideas,
        selected_idea=ideas[0],
        meta=IdeaMeta(
            used_research=ctx.session.research_pass is not None,
            used_rag=bool(rag and rag.rag_context),
        ),
    )


async def run_angle(ctx: PassContext) -> AsyncIterator[PassItem]:
    text = await _complete(ctx, "angle", prompts.build_angle_prompt(ctx.request, ctx.brand, ctx.session))
    angles = parse_angles(text)
    yield AnglePassResult(angles=angles, selected_angle=angles[0])


async def run_outline(ctx: PassContext) -> AsyncIterator[PassItem]:
    text = await _complete(
        ctx, "outline", prompts.build_outline_prompt(ctx.request, ctx.brand, ctx.session),
    )
    yield parse_outline(text)


async def run_draft(ctx: PassContext) -> AsyncIterator[PassItem]:
    buffer = []
    prompt = prompts.build_draft_prompt(ctx.request, ctx.brand, ctx.session)
    async with _channel(ctx, "draft", prompt) as channel:
        async for text in channel:
            buffer.append(text)
            yield text
    draft = sanitize_output_text("".join(buffer))
    if not draft:
        raise MalformedLLMResponse("draft stream produced no content")
    yield DraftPassResult(draft=draft)


async def run_enhance(ctx: PassContext) -> AsyncIterator[PassItem]:
    buffer = []
    prompt = prompts.build_enhance_prompt(ctx.request, ctx.brand, ctx.session)
    async with _channel(ctx, "enhance", prompt) as channel:
        async for text in channel:
            buffer.append(text)
            yield text
    enhanced = sanitize_output_text("".join(buffer))
    if not enhanced:
        raise MalformedLLMResponse("enhance stream produced no content")
    yield EnhancePassResult(enhanced=enhanced)


async def run_scoring(ctx: PassContext) -> AsyncIterator[PassItem]:
    prompt = prompts.build_scoring_prompt(final_content(ctx), ctx.brand, ctx.request.platform_hint)
    text = await _complete(ctx, "scoring", prompt)
    yield parse_scoring(text)


PASS_DESCRIPTORS: dict[PassName, PassDescriptor] = {
    PassName.RESEARCH: PassDescriptor(
        name=PassName.RESEARCH,
        precondition=lambda ctx: ctx.research is not None and bool(ctx.seed),
        executor=run_research,
        fallback=ResearchPassResult,
    ),
    PassName.RAG: PassDescriptor(
        name=PassName.RAG,
        precondition=lambda ctx: (
            ctx.similarity is not None
            and bool(ctx.seed)
            and rag_gate_score(ctx) >= RAG_GATE_MIN_SCORE
        ),
        executor=run_rag,
        fallback=RagPassResult,
    ),
    PassName.IDEA: PassDescriptor(
        name=PassName.IDEA,
        precondition=lambda ctx: bool(ctx.seed),
        executor=run_idea,
    ),
    PassName.ANGLE: PassDescriptor(
        name=PassName.ANGLE,
        precondition=lambda ctx: bool(ctx.seed) or ctx.session.idea_pass is not None,
        executor=run_angle,
    ),
    PassName.OUTLINE: PassDescriptor(
        name=PassName.OUTLINE,
        precondition=lambda ctx: bool(ctx.seed) or ctx.session.idea_pass is not None,
        executor=run_outline,
    ),
    PassName.DRAFT: PassDescriptor(
        name=PassName.DRAFT,
        precondition=lambda ctx: (
            bool(ctx.seed) or ctx.session.outline_pass is not None or bool(ctx.request.body)
        ),
        executor=run_draft,
        streaming=True,
    ),
    PassName.ENHANCE: PassDescriptor(
        name=PassName.ENHANCE,
        precondition=lambda ctx: ctx.session.draft_pass is not None or bool(ctx.request.body),
        executor=run_enhance,
        streaming=True,
    ),
    PassName.SCORING: PassDescriptor(
        name=PassName.SCORING,
        precondition=lambda ctx: final_content(ctx) is not None,
        executor=run_scoring,
    ),
}
