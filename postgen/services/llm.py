"""
LLM client - Anthropic primary, OpenAI fallback.
Every call is bounded by an explicit timeout and tracks latency, tokens and cost.
Failures and timeouts surface as ExternalServiceError, never as empty content.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from postgen.errors import ExternalServiceError
from postgen.utils.json_output import sanitize_output_text
from postgen.utils.metrics import Timer

logger = logging.getLogger(__name__)

# Cost per million tokens (input/output)
COST_TABLE = {
    "claude-haiku-4-5-20251001": {"input": 1.00, "output": 5.00},
    "claude-sonnet-4-5-20250929": {"input": 3.00, "output": 15.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost in USD for a given model and token count."""
    costs = COST_TABLE.get(model, {"input": 1.0, "output": 5.0})
    return (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000


@dataclass
class LLMRequest:
    prompt: str
    system_prompt: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    model: Optional[str] = None


@dataclass
class LLMUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    provider: str = ""
    latency_ms: int = 0
    cost_usd: float = 0.0


class LLMClient(ABC):
    """Completion interface consumed by the generation pipeline."""

    provider = "abstract"

    @abstractmethod
    async def generate_completion(self, request: LLMRequest) -> LLMResponse:
        ...

    @abstractmethod
    def generate_streaming_completion(self, request: LLMRequest) -> AsyncIterator[str]:
        """Finite, non-restartable stream of text chunks."""
        ...

    async def aclose(self) -> None:
        return None


class AnthropicLLMClient(LLMClient):
    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        default_temperature: float = 0.7,
        client=None,
    ):
        if client is None:
            from anthropic import AsyncAnthropic
            client = AsyncAnthropic(api_key=api_key, timeout=timeout)
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.default_temperature = default_temperature

    def _params(self, request: LLMRequest) -> dict:
        params = {
            "model": request.model or self.model,
            "max_tokens": request.max_tokens or self.max_tokens,
            "temperature": (
                request.temperature if request.temperature is not None
                else self.default_temperature
            ),
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            params["system"] = request.system_prompt
        return params

    async def generate_completion(self, request: LLMRequest) -> LLMResponse:
        params = self._params(request)
        timer = Timer().start()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**params), timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(
                f"Anthropic completion timed out after {self.timeout}s", service="llm",
            ) from e
        except Exception as e:
            raise ExternalServiceError(
                f"Anthropic completion failed: {e}", service="llm",
            ) from e
        latency_ms = timer.stop()

        content = ""
        for block in response.content:
            if block.type == "text":
                content += block.text
        content = sanitize_output_text(content)

        input_tokens = response.usage.input_tokens if response.usage else 0
        output_tokens = response.usage.output_tokens if response.usage else 0
        model = getattr(response, "model", None) or params["model"]

        logger.info(
            "LLM completion ok (%d in / %d out tokens)", input_tokens, output_tokens,
            extra={"provider": self.provider, "model": model, "latency_ms": latency_ms},
        )
        return LLMResponse(
            content=content,
            model=model,
            usage=LLMUsage(input_tokens=input_tokens, output_tokens=output_tokens),
            provider=self.provider,
            latency_ms=latency_ms,
            cost_usd=calculate_cost(model, input_tokens, output_tokens),
        )

    async def generate_streaming_completion(self, request: LLMRequest) -> AsyncIterator[str]:
        params = self._params(request)
        try:
            async with self._client.messages.stream(**params) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except Exception as e:
            raise ExternalServiceError(
                f"Anthropic streaming completion failed: {e}", service="llm",
            ) from e

    async def aclose(self) -> None:
        await self._client.close()


class OpenAILLMClient(LLMClient):
    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        default_temperature: float = 0.7,
        client=None,
    ):
        if client is None:
            from openai import AsyncOpenAI
            client = AsyncOpenAI(api_key=api_key, base_url=(base_url or None), timeout=timeout)
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.default_temperature = default_temperature

    def _params(self, request: LLMRequest) -> dict:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return {
            "model": request.model or self.model,
            "max_tokens": request.max_tokens or self.max_tokens,
            "temperature": (
                request.temperature if request.temperature is not None
                else self.default_temperature
            ),
            "messages": messages,
        }

    async def generate_completion(self, request: LLMRequest) -> LLMResponse:
        params = self._params(request)
        timer = Timer().start()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**params), timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(
                f"OpenAI completion timed out after {self.timeout}s", service="llm",
            ) from e
        except Exception as e:
            raise ExternalServiceError(f"OpenAI completion failed: {e}", service="llm") from e
        latency_ms = timer.stop()

        content = response.choices[0].message.content if response.choices else ""
        content = sanitize_output_text(content or "")
        input_tokens = response.usage.prompt_tokens if response.usage else 0
        output_tokens = response.usage.completion_tokens if response.usage else 0
        model = params["model"]

        logger.info(
            "LLM completion ok (%d in / %d out tokens)", input_tokens, output_tokens,
            extra={"provider": self.provider, "model": model, "latency_ms": latency_ms},
        )
        return LLMResponse(
            content=content,
            model=model,
            usage=LLMUsage(input_tokens=input_tokens, output_tokens=output_tokens),
            provider=self.provider,
            latency_ms=latency_ms,
            cost_usd=calculate_cost(model, input_tokens, output_tokens),
        )

    async def generate_streaming_completion(self, request: LLMRequest) -> AsyncIterator[str]:
        params = self._params(request)
        try:
            stream = await self._client.chat.completions.create(**params, stream=True)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
                if text:
                    yield text
        except Exception as e:
            raise ExternalServiceError(
                f"OpenAI streaming completion failed: {e}", service="llm",
            ) from e

    async def aclose(self) -> None:
        await self._client.close()


class FallbackLLMClient(LLMClient):
    """
    Tries the primary provider, then the fallback.
    Streaming only falls back if the primary fails before its first chunk,
    since chunks already delivered cannot be retracted.
    """

    provider = "fallback"

    def __init__(self, primary: LLMClient, fallback: LLMClient):
        self.primary = primary
        self.fallback = fallback

    async def generate_completion(self, request: LLMRequest) -> LLMResponse:
        try:
            return await self.primary.generate_completion(request)
        except ExternalServiceError as e:
            logger.warning(
                "Primary LLM failed, falling back: %s", e.message,
                extra={"provider": self.primary.provider},
            )
        return await self.fallback.generate_completion(request)

    async def generate_streaming_completion(self, request: LLMRequest) -> AsyncIterator[str]:
        started = False
        try:
            async for text in self.primary.generate_streaming_completion(request):
                started = True
                yield text
            return
        except ExternalServiceError as e:
            if started:
                raise
            logger.warning(
                "Primary LLM stream failed before first chunk, falling back: %s", e.message,
                extra={"provider": self.primary.provider},
            )
        async for text in self.fallback.generate_streaming_completion(request):
            yield text

    async def aclose(self) -> None:
        await self.primary.aclose()
        await self.fallback.aclose()


def build_llm_client(settings) -> Optional[LLMClient]:
    """Build the configured LLM client, or None when no provider key is set."""
    clients: list[LLMClient] = []
    if settings.anthropic_api_key:
        clients.append(AnthropicLLMClient(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            timeout=settings.llm_timeout_seconds,
            default_temperature=settings.llm_default_temperature,
        ))
    if settings.openai_api_key:
        clients.append(OpenAILLMClient(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            max_tokens=settings.anthropic_max_tokens,
            timeout=settings.llm_timeout_seconds,
            default_temperature=settings.llm_default_temperature,
        ))
    if not clients:
        logger.warning("No LLM provider configured (set ANTHROPIC_API_KEY or OPENAI_API_KEY)")
        return None
    if len(clients) == 1:
        return clients[0]
    return FallbackLLMClient(clients[0], clients[1])
