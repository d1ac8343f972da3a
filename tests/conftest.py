"""
Test configuration and fixtures.
Uses the in-memory session cache and vector store. Mocks all external services.
"""
import json

import pytest

from postgen.config import Settings
from postgen.container import ServiceContainer
from postgen.errors import EmptyContent
from postgen.prompts.generation import PASS_SETTINGS
from postgen.schemas.session import ResearchSource
from postgen.services.embeddings import EmbeddingClient
from postgen.services.llm import LLMClient, LLMResponse, LLMUsage
from postgen.services.research import ResearchProvider, ResearchResult
from postgen.services.session_cache import InMemorySessionCache
from postgen.services.similarity import ContentSimilarityChecker
from postgen.services.vector_store import InMemoryVectorStore

FIXED_NOW = 1_700_000_000.0

IDEAS_JSON = json.dumps({"ideas": [
    "Morning catch story from the Cô Tô harbor",
    "How we keep crab alive from boat to door",
    "A day with our delivery driver",
]})

ANGLES_JSON = json.dumps({"angles": [
    "Behind the scenes at 4am",
    "Customer unboxing moment",
    "Freshness myths busted",
]})

OUTLINE_JSON = json.dumps({
    "title": "Fresh Crab, Delivered Daily",
    "outline": "Hook: the 4am catch\nBody: cold chain 0-4 degrees\nCTA: order before noon",
    "hashtags": ["#Seafood", "#CoTo", "#seafood"],
})

SCORING_JSON = json.dumps({
    "score": 82,
    "scoreBreakdown": {
        "clarity": 17,
        "engagement": 16,
        "brandVoice": 17,
        "platformFit": 16,
        "safety": 16,
    },
    "weaknesses": ["CTA is generic"],
    "suggestedFixes": ["Name the delivery window"],
})

RESEARCH_EXTRACT_JSON = json.dumps({
    "insights": ["Buyers want same-day delivery proof"],
    "risks": ["Unverifiable freshness claims"],
    "recommendedAngles": ["Show the cold chain"],
})

SINGLE_PASS_JSON = json.dumps({
    "title": "Cua tươi mỗi sáng",
    "body": "Cua đánh bắt lúc 4 giờ sáng, giao tận tay bạn trước trưa.",
    "hashtags": ["#haisan", "#coto"],
    "variations": [
        {"title": "Chuyên nghiệp", "body": "Quy trình lạnh 0-4 độ C.", "style": "professional"},
        {"title": "Thân thiện", "body": "Sáng nay biển hiền, cua chắc thịt.", "style": "casual"},
        {"title": "Ưu đãi", "body": "Đặt trước 10 giờ, giao trong ngày.", "style": "promotional"},
    ],
})

DRAFT_CHUNKS = ["Cua tươi ", "giao tận nơi ", "mỗi sáng."]
ENHANCE_CHUNKS = ["Cua tươi từ Cô Tô, ", "giao tận nơi mỗi sáng."]


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = FIXED_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLM(LLMClient):
    """
    Scripted LLM. Each request is matched to a pass by its system prompt and
    temperature; the scripted value is returned (or raised, if an exception).
    """

    provider = "fake"

    def __init__(self, completions=None, streams=None):
        self.completions = dict(completions or {})
        self.streams = dict(streams or {})
        self.calls: list[str] = []
        self.requests = []
        self.closed = False

    @staticmethod
    def pass_for(request) -> str:
        for name, settings in PASS_SETTINGS.items():
            if (
                settings.system_prompt == request.system_prompt
                and settings.temperature == request.temperature
            ):
                return name
        return "unknown"

    async def generate_completion(self, request):
        name = self.pass_for(request)
        self.calls.append(name)
        self.requests.append(request)
        value = self.completions.get(name, "")
        if isinstance(value, Exception):
            raise value
        return LLMResponse(
            content=value,
            model="fake-model",
            usage=LLMUsage(input_tokens=10, output_tokens=20),
            provider=self.provider,
        )

    async def generate_streaming_completion(self, request):
        name = self.pass_for(request)
        self.calls.append(name)
        self.requests.append(request)
        value = self.streams.get(name, [])
        if isinstance(value, Exception):
            raise value
        for chunk in value:
            yield chunk

    async def aclose(self):
        self.closed = True


class FakeEmbeddings(EmbeddingClient):
    """Deterministic embeddings: known texts map to fixed vectors, the rest to a default."""

    def __init__(self, vectors=None, default=None, dimension: int = 3):
        self.dimension = dimension
        self.vectors = dict(vectors or {})
        self.default = list(default or [1.0, 0.0, 0.0])
        self.calls: list[str] = []

    async def generate_embedding(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmptyContent("Cannot embed empty text")
        self.calls.append(text)
        return list(self.vectors.get(text, self.default))


class FakeResearch(ResearchProvider):
    def __init__(self, content: str = "Raw research notes", citations=None, error: Exception = None):
        self.content = content
        self.citations = citations if citations is not None else [
            ResearchSource(url="https://example.com/crab", title="Crab market report"),
        ]
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str) -> ResearchResult:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return ResearchResult(content=self.content, citations=list(self.citations))


def default_completions() -> dict:
    return {
        "research_extract": RESEARCH_EXTRACT_JSON,
        "idea": IDEAS_JSON,
        "angle": ANGLES_JSON,
        "outline": OUTLINE_JSON,
        "scoring": SCORING_JSON,
        "single_pass": SINGLE_PASS_JSON,
    }


def default_streams() -> dict:
    return {"draft": list(DRAFT_CHUNKS), "enhance": list(ENHANCE_CHUNKS)}


@pytest.fixture
def clock():
    """Fake clock starting at a fixed epoch second."""
    return FakeClock()


@pytest.fixture
def session_cache(clock):
    """In-memory session cache on the fake clock (30 minute TTL)."""
    return InMemorySessionCache(session_ttl_seconds=1800, default_ttl_seconds=1800, clock=clock)


@pytest.fixture
def fake_llm():
    """Scripted LLM with valid output for every pass."""
    return FakeLLM(completions=default_completions(), streams=default_streams())


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddings()


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def similarity(fake_embeddings, vector_store):
    """Similarity checker over fake embeddings and the in-memory vector store."""
    return ContentSimilarityChecker(fake_embeddings, vector_store)


@pytest.fixture
def test_settings():
    """Settings isolated from any local .env file. The sweeper is disabled."""
    return Settings(_env_file=None, session_sweep_interval_seconds=0)


@pytest.fixture
def container(test_settings, fake_llm, fake_embeddings, vector_store, similarity):
    """A fully wired service container with every external service faked."""
    return ServiceContainer(
        settings=test_settings,
        session_cache=InMemorySessionCache(),
        vector_store=vector_store,
        llm=fake_llm,
        embeddings=fake_embeddings,
        similarity=similarity,
    )
