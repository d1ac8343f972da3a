"""
Request and response schemas for single-pass and multi-pass generation.
"""
from typing import Literal, Optional

from pydantic import Field, model_validator

from postgen.schemas.brand import BrandMemory, ProductContext
from postgen.schemas.session import CamelModel, PassName, ScoreBreakdown
from postgen.schemas.similarity import SimilarityReport

VARIATION_STYLES = ("professional", "casual", "promotional")


class SinglePassRequest(CamelModel):
    topic: Optional[str] = None
    idea: Optional[str] = None
    product_url: Optional[str] = None
    detail_instruction: Optional[str] = None


class Variation(CamelModel):
    title: str
    body: str
    style: Literal["professional", "casual", "promotional"]


class SinglePassResult(CamelModel):
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    hashtags: list[str] = Field(default_factory=list)
    variations: list[Variation]

    @model_validator(mode="after")
    def _one_variation_per_style(self) -> "SinglePassResult":
        styles = sorted(v.style for v in self.variations)
        if styles != sorted(VARIATION_STYLES):
            raise ValueError(
                f"variations must contain exactly one of each style {VARIATION_STYLES}, got {styles}"
            )
        return self


class GenerationRequest(CamelModel):
    """Multi-pass / streaming request. Supplying session_id resumes that session."""
    session_id: Optional[str] = None
    action: str = "quick"  # preset name, see pipeline.orchestrator.PIPELINE_PRESETS
    passes: Optional[list[PassName]] = None  # explicit pass list overrides the preset

    topic: Optional[str] = None
    idea: Optional[str] = None
    platform_hint: Optional[str] = None
    content_type: Optional[str] = None
    product: Optional[ProductContext] = None
    detail_instruction: Optional[str] = None
    content_instruction: Optional[str] = None

    # Existing post fields (improve / scoring flows)
    title: Optional[str] = None
    body: Optional[str] = None
    hashtags: Optional[str] = None

    brand: Optional[BrandMemory] = None
    check_similarity: bool = False
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @property
    def seed(self) -> Optional[str]:
        """The seed idea for generation: explicit idea first, then topic."""
        return (self.idea or "").strip() or (self.topic or "").strip() or None

    @property
    def instruction(self) -> Optional[str]:
        return self.content_instruction or self.detail_instruction


class GenerationMetadata(CamelModel):
    ideas_generated: int = 0
    angles_explored: int = 0
    passes_completed: list[PassName] = Field(default_factory=list)
    score: Optional[float] = None
    score_breakdown: Optional[ScoreBreakdown] = None
    weaknesses: Optional[list[str]] = None
    suggested_fixes: Optional[list[str]] = None


class MultiPassResult(CamelModel):
    session_id: str
    title: str
    body: str
    hashtags: list[str] = Field(default_factory=list)
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)
    similarity: Optional[SimilarityReport] = None
