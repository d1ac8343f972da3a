"""
Tests for postgen/services/research.py - Perplexity search and insight extraction.
"""
import json

import httpx
import pytest

from postgen.errors import ExternalServiceError
from postgen.services.research import (
    PerplexityResearchProvider,
    _parse_citations,
    build_research_provider,
    research_topic,
)
from tests.conftest import RESEARCH_EXTRACT_JSON, FakeLLM, FakeResearch


def _provider(handler) -> PerplexityResearchProvider:
    return PerplexityResearchProvider(
        api_key="pplx-test",
        base_url="https://api.perplexity.test",
        transport=httpx.MockTransport(handler),
    )


class TestParseCitations:
    def test_accepts_strings_and_objects(self):
        sources = _parse_citations([
            "https://a.example",
            {"url": "https://b.example", "title": "B"},
            {"title": "no url"},
            42,
        ])
        assert [(s.url, s.title) for s in sources] == [
            ("https://a.example", ""),
            ("https://b.example", "B"),
        ]

    def test_none_is_empty(self):
        assert _parse_citations(None) == []


class TestPerplexityProvider:
    async def test_search_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "choices": [{"message": {"content": "Crab prices rose 10%"}}],
                "citations": ["https://news.example/crab"],
            })

        provider = _provider(handler)
        result = await provider.search("crab market")
        await provider.aclose()

        assert result.content == "Crab prices rose 10%"
        assert result.citations[0].url == "https://news.example/crab"
        assert seen["auth"] == "Bearer pplx-test"
        assert seen["path"] == "/chat/completions"
        assert seen["body"]["return_citations"] is True
        assert seen["body"]["messages"][-1]["content"] == "crab market"

    async def test_http_error_raises(self):
        provider = _provider(lambda request: httpx.Response(429, text="rate limited"))
        with pytest.raises(ExternalServiceError, match="429") as exc_info:
            await provider.search("crab market")
        assert exc_info.value.service == "research"

    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = _provider(handler)
        with pytest.raises(ExternalServiceError, match="timed out"):
            await provider.search("crab market")

    async def test_missing_choices_returns_empty_content(self):
        provider = _provider(lambda request: httpx.Response(200, json={}))
        result = await provider.search("crab market")
        assert result.content == ""
        assert result.citations == []


class TestResearchTopic:
    async def test_extracts_insights_and_keeps_sources(self):
        llm = FakeLLM(completions={"research_extract": RESEARCH_EXTRACT_JSON})
        result = await research_topic(llm, FakeResearch(), "Fresh crab delivery")
        assert result.insights == ["Buyers want same-day delivery proof"]
        assert result.risks == ["Unverifiable freshness claims"]
        assert result.recommended_angles == ["Show the cold chain"]
        assert result.sources[0].title == "Crab market report"
        assert llm.calls == ["research_extract"]

    async def test_unparseable_extraction_keeps_sources_only(self):
        llm = FakeLLM(completions={"research_extract": "I could not extract anything."})
        result = await research_topic(llm, FakeResearch(), "Fresh crab delivery")
        assert result.insights == []
        assert len(result.sources) == 1

    async def test_provider_failure_propagates(self):
        research = FakeResearch(error=ExternalServiceError("down", service="research"))
        with pytest.raises(ExternalServiceError):
            await research_topic(FakeLLM(), research, "Fresh crab delivery")

    async def test_query_includes_topic_and_language(self):
        research = FakeResearch()
        llm = FakeLLM(completions={"research_extract": RESEARCH_EXTRACT_JSON})
        await research_topic(llm, research, "Fresh crab delivery", language="english")
        assert "Fresh crab delivery" in research.queries[0]
        assert "english" in research.queries[0]


class TestBuildResearchProvider:
    def test_no_key_returns_none(self, test_settings):
        settings = test_settings.model_copy(update={"perplexity_api_key": ""})
        assert build_research_provider(settings) is None

    def test_key_builds_perplexity(self, test_settings):
        settings = test_settings.model_copy(update={"perplexity_api_key": "pplx-test"})
        assert isinstance(build_research_provider(settings), PerplexityResearchProvider)
