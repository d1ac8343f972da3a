"""
Research provider - Perplexity online search via its chat completions API.

Auth: Bearer token via API key. One shared httpx client per process.
research_topic() turns raw provider output into insights / risks / angles with
a low-temperature LLM extraction call, keeping provider citations as sources.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from postgen.errors import ExternalServiceError, MalformedLLMResponse
from postgen.prompts.generation import (
    PASS_SETTINGS,
    build_research_extract_prompt,
    build_research_query,
)
from postgen.schemas.session import ResearchPassResult, ResearchSource
from postgen.services.llm import LLMClient, LLMRequest
from postgen.utils.json_output import parse_json_object
from postgen.utils.metrics import Timer

logger = logging.getLogger(__name__)

RESEARCH_SYSTEM_PROMPT = (
    "You are a helpful research assistant. Provide accurate, well-researched "
    "information with citations."
)


@dataclass
class ResearchResult:
    content: str
    citations: list[ResearchSource] = field(default_factory=list)


class ResearchProvider(ABC):
    @abstractmethod
    async def search(self, query: str) -> ResearchResult:
        ...

    async def aclose(self) -> None:
        return None


def _parse_citations(raw) -> list[ResearchSource]:
    """Citations arrive either as bare URLs or as {url, title} objects."""
    sources = []
    for item in raw or []:
        if isinstance(item, str):
            sources.append(ResearchSource(url=item))
        elif isinstance(item, dict) and item.get("url"):
            sources.append(ResearchSource(url=item["url"], title=item.get("title") or ""))
    return sources


class PerplexityResearchProvider(ResearchProvider):
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.perplexity.ai",
        model: str = "sonar",
        timeout: float = 45.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def search(self, query: str) -> ResearchResult:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": RESEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ],
            "return_citations": True,
            "temperature": 0.2,
        }
        timer = Timer().start()
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceError("Perplexity search timed out", service="research") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"Perplexity API error ({e.response.status_code}): {e.response.text[:200]}",
                service="research",
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceError(f"Perplexity search failed: {e}", service="research") from e

        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        citations = _parse_citations(data.get("citations"))
        logger.info(
            "Research search ok (%d citations)", len(citations),
            extra={"provider": "perplexity", "model": self.model, "latency_ms": timer.stop()},
        )
        return ResearchResult(content=content, citations=citations)

    async def aclose(self) -> None:
        await self._client.aclose()


async def research_topic(
    llm: LLMClient,
    provider: ResearchProvider,
    topic: str,
    language: str = "vietnamese",
) -> ResearchPassResult:
    """
    Research a topic and structure the findings.

    Provider failures propagate as ExternalServiceError. An extraction response
    that is not valid JSON yields empty insights but keeps the citations.
    """
    result = await provider.search(build_research_query(topic, language))

    settings = PASS_SETTINGS["research_extract"]
    response = await llm.generate_completion(LLMRequest(
        prompt=build_research_extract_prompt(result.content),
        system_prompt=settings.system_prompt,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    ))
    try:
        parsed = parse_json_object(response.content, label="research")
    except MalformedLLMResponse as e:
        logger.warning("Research extraction unparseable, keeping sources only: %s", e.message)
        parsed = {}

    return ResearchPassResult(
        insights=[str(i) for i in parsed.get("insights") or []],
        risks=[str(r) for r in parsed.get("risks") or []],
        recommended_angles=[str(a) for a in parsed.get("recommendedAngles") or []],
        sources=result.citations,
    )


def build_research_provider(settings) -> Optional[ResearchProvider]:
    if not settings.perplexity_api_key:
        return None
    return PerplexityResearchProvider(
        api_key=settings.perplexity_api_key,
        base_url=settings.perplexity_base_url,
        model=settings.perplexity_model,
        timeout=settings.research_timeout_seconds,
    )
