"""
Single-pass generation - one blocking LLM call returning a post plus three
style variations. Nothing is persisted in this mode.
"""
import logging
from typing import Optional

from postgen.errors import ValidationError
from postgen.pipeline.parsing import parse_single_pass
from postgen.prompts.generation import PASS_SETTINGS, build_single_pass_prompt
from postgen.schemas.brand import DEFAULT_BRAND_MEMORY, BrandMemory
from postgen.schemas.generation import SinglePassRequest, SinglePassResult
from postgen.services.llm import LLMClient, LLMRequest

logger = logging.getLogger(__name__)


class SinglePassGenerator:
    def __init__(self, llm: LLMClient, brand: Optional[BrandMemory] = None):
        self.llm = llm
        self.brand = brand or DEFAULT_BRAND_MEMORY

    async def generate(
        self,
        request: SinglePassRequest,
        brand: Optional[BrandMemory] = None,
    ) -> SinglePassResult:
        """
        Raises:
            ValidationError: every request field is empty.
            MalformedLLMResponse: output is not JSON or does not match the schema.
        """
        if not any(
            (value or "").strip()
            for value in (request.topic, request.idea, request.product_url, request.detail_instruction)
        ):
            raise ValidationError("At least one of topic, idea, productUrl or detailInstruction is required")

        settings = PASS_SETTINGS["single_pass"]
        response = await self.llm.generate_completion(LLMRequest(
            prompt=build_single_pass_prompt(request, brand or self.brand),
            system_prompt=settings.system_prompt,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        ))
        result = parse_single_pass(response.content)
        logger.info(
            "Single-pass generation ok (%d hashtags)", len(result.hashtags),
            extra={"provider": response.provider, "model": response.model, "latency_ms": response.latency_ms},
        )
        return result
