"""
Service container - the composition root.
Every service is constructed exactly once at startup and passed by reference;
nothing in postgen keeps module-level client singletons.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from postgen.config import Settings
from postgen.errors import ExternalServiceError
from postgen.pipeline.orchestrator import GenerationPipeline, build_pipeline
from postgen.pipeline.single_pass import SinglePassGenerator
from postgen.schemas.brand import DEFAULT_BRAND_MEMORY, BrandMemory
from postgen.schemas.session import PassName
from postgen.services.embeddings import EmbeddingClient, build_embedding_client
from postgen.services.llm import LLMClient, build_llm_client
from postgen.services.research import ResearchProvider, build_research_provider
from postgen.services.session_cache import SessionCache, build_session_cache
from postgen.services.similarity import ContentSimilarityChecker
from postgen.services.vector_store import VectorStore, build_vector_store

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    session_cache: SessionCache
    vector_store: VectorStore
    llm: Optional[LLMClient] = None
    embeddings: Optional[EmbeddingClient] = None
    research: Optional[ResearchProvider] = None
    similarity: Optional[ContentSimilarityChecker] = None
    brand: BrandMemory = field(default_factory=DEFAULT_BRAND_MEMORY.model_copy)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        embeddings = build_embedding_client(settings)
        vector_store = build_vector_store(settings)
        similarity = None
        if embeddings is not None:
            similarity = ContentSimilarityChecker(
                embeddings,
                vector_store,
                default_threshold=settings.similarity_threshold,
                prefilter_factor=settings.similarity_prefilter_factor,
                default_limit=settings.similarity_limit,
                preview_chars=settings.similarity_preview_chars,
            )
        container = cls(
            settings=settings,
            session_cache=build_session_cache(settings),
            vector_store=vector_store,
            llm=build_llm_client(settings),
            embeddings=embeddings,
            research=build_research_provider(settings),
            similarity=similarity,
            brand=DEFAULT_BRAND_MEMORY.model_copy(update={"language": settings.default_language}),
        )
        logger.info(
            "Services ready (llm=%s, similarity=%s, research=%s)",
            container.llm.provider if container.llm else "none",
            "on" if similarity else "off",
            "on" if container.research else "off",
        )
        return container

    def require_llm(self) -> LLMClient:
        if self.llm is None:
            raise ExternalServiceError("No LLM provider configured", service="llm")
        return self.llm

    def require_similarity(self) -> ContentSimilarityChecker:
        if self.similarity is None:
            raise ExternalServiceError("No embedding provider configured", service="embedding")
        return self.similarity

    def pipeline(
        self,
        action: Optional[str] = None,
        passes: Optional[Sequence[PassName]] = None,
    ) -> GenerationPipeline:
        return build_pipeline(
            self.require_llm(),
            self.session_cache,
            action=action,
            passes=passes,
            similarity=self.similarity,
            research=self.research,
            brand=self.brand,
            rag_limit=self.settings.rag_limit,
            stream_idle_timeout=self.settings.llm_timeout_seconds,
        )

    def single_pass(self) -> SinglePassGenerator:
        return SinglePassGenerator(self.require_llm(), brand=self.brand)

    async def aclose(self) -> None:
        """Release network clients and pools. Errors are logged, not raised."""
        for name in ("llm", "embeddings", "research", "vector_store", "session_cache"):
            service = getattr(self, name)
            if service is None:
                continue
            try:
                await service.aclose()
            except Exception as e:
                logger.warning("Failed to close %s: %s", name, str(e))
