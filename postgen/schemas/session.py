"""
Generation session schemas - the unit of in-progress multi-pass work.

Each pass writes exactly one result field. PASS_RESULT_TYPES maps pass name ->
result model, so session access by pass name is a closed, exhaustive union.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys (wire format shared with the UI)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PassName(str, Enum):
    RESEARCH = "research"
    RAG = "rag"
    IDEA = "idea"
    ANGLE = "angle"
    OUTLINE = "outline"
    DRAFT = "draft"
    ENHANCE = "enhance"
    SCORING = "scoring"


# Declared causal order. A pass may only read results of passes before it.
PASS_ORDER: tuple[PassName, ...] = tuple(PassName)


class ResearchSource(CamelModel):
    url: str
    title: str = ""


class ResearchPassResult(CamelModel):
    insights: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    recommended_angles: list[str] = Field(default_factory=list)
    sources: list[ResearchSource] = Field(default_factory=list)


class RagSource(CamelModel):
    post_id: str
    title: str = ""
    content: str
    similarity: float


class RagPassResult(CamelModel):
    rag_context: str = ""
    sources: list[RagSource] = Field(default_factory=list)


class IdeaMeta(CamelModel):
    used_research: bool = False
    used_rag: bool = False


class IdeaPassResult(CamelModel):
    ideas: list[str]
    selected_idea: str
    meta: IdeaMeta = Field(default_factory=IdeaMeta)


class AnglePassResult(CamelModel):
    angles: list[str]
    selected_angle: str


class OutlinePassResult(CamelModel):
    outline: str
    title: str
    hashtags: Optional[str] = None


class DraftPassResult(CamelModel):
    draft: str


class EnhancePassResult(CamelModel):
    enhanced: str


class ScoreBreakdown(CamelModel):
    clarity: float = Field(ge=0, le=20)
    engagement: float = Field(ge=0, le=20)
    brand_voice: float = Field(ge=0, le=20)
    platform_fit: float = Field(ge=0, le=20)
    safety: float = Field(ge=0, le=20)

    @property
    def total(self) -> float:
        return self.clarity + self.engagement + self.brand_voice + self.platform_fit + self.safety


class ScoringPassResult(CamelModel):
    score: float = Field(ge=0, le=100)
    score_breakdown: ScoreBreakdown
    weaknesses: list[str] = Field(default_factory=list)
    suggested_fixes: list[str] = Field(default_factory=list)


PassResult = Union[
    ResearchPassResult,
    RagPassResult,
    IdeaPassResult,
    AnglePassResult,
    OutlinePassResult,
    DraftPassResult,
    EnhancePassResult,
    ScoringPassResult,
]

PASS_RESULT_TYPES: dict[PassName, type] = {
    PassName.RESEARCH: ResearchPassResult,
    PassName.RAG: RagPassResult,
    PassName.IDEA: IdeaPassResult,
    PassName.ANGLE: AnglePassResult,
    PassName.OUTLINE: OutlinePassResult,
    PassName.DRAFT: DraftPassResult,
    PassName.ENHANCE: EnhancePassResult,
    PassName.SCORING: ScoringPassResult,
}


def pass_field(name: PassName) -> str:
    """Session attribute holding a pass result, e.g. 'draft_pass'."""
    return f"{name.value}_pass"


def pass_alias(name: PassName) -> str:
    """Wire key holding a pass result, e.g. 'draftPass'."""
    return f"{name.value}Pass"


class SessionMetadata(CamelModel):
    idea: Optional[str] = None
    product_id: Optional[str] = None
    started_at: datetime
    last_updated_at: datetime


class GenerationSession(CamelModel):
    session_id: str
    metadata: SessionMetadata
    expires_at: datetime

    research_pass: Optional[ResearchPassResult] = None
    rag_pass: Optional[RagPassResult] = None
    idea_pass: Optional[IdeaPassResult] = None
    angle_pass: Optional[AnglePassResult] = None
    outline_pass: Optional[OutlinePassResult] = None
    draft_pass: Optional[DraftPassResult] = None
    enhance_pass: Optional[EnhancePassResult] = None
    scoring_pass: Optional[ScoringPassResult] = None

    def get_result(self, name: PassName) -> Optional[PassResult]:
        return getattr(self, pass_field(name))

    def has_result(self, name: PassName) -> bool:
        return self.get_result(name) is not None

    def completed_passes(self) -> list[PassName]:
        """Passes with a stored result, in declared order."""
        return [name for name in PASS_ORDER if self.has_result(name)]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
