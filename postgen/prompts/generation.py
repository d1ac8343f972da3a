"""
Prompt templates for every generation pass and for single-pass generation.

Each pass reads only results of passes that precede it. Builders take the
request, brand memory and current session and return the user prompt; the
system prompt and sampling settings live in PASS_SETTINGS.
"""
from dataclasses import dataclass
from typing import Optional

from postgen.prompts.humanizer import EDIT_HUMANIZER, POST_HUMANIZER
from postgen.schemas.brand import BrandMemory, ProductContext
from postgen.schemas.generation import GenerationRequest, SinglePassRequest
from postgen.schemas.session import GenerationSession, PassName

JSON_ONLY = "Return valid JSON only. Never use markdown code blocks or add extra text."


@dataclass(frozen=True)
class PromptSettings:
    system_prompt: str
    temperature: float
    max_tokens: int


PASS_SETTINGS: dict[str, PromptSettings] = {
    "research_extract": PromptSettings(
        f"You are a data extraction assistant. {JSON_ONLY}", 0.2, 600,
    ),
    PassName.IDEA.value: PromptSettings(
        f"You are a professional content strategist. {JSON_ONLY}", 0.9, 500,
    ),
    PassName.ANGLE.value: PromptSettings(
        f"You are a professional content strategist. {JSON_ONLY}", 0.8, 500,
    ),
    PassName.OUTLINE.value: PromptSettings(
        f"You are a content architect. {JSON_ONLY}", 0.6, 500,
    ),
    PassName.DRAFT.value: PromptSettings(
        "You are a professional content writer. Respond with the post body as plain "
        f"text only. Never use markdown code blocks.\n\n{POST_HUMANIZER}",
        0.7, 1500,
    ),
    PassName.ENHANCE.value: PromptSettings(
        "You are an expert content editor. Respond with the edited post body as plain "
        f"text only. Never use markdown code blocks.\n\n{EDIT_HUMANIZER}",
        0.6, 1500,
    ),
    PassName.SCORING.value: PromptSettings(
        f"You are a content quality analyst. {JSON_ONLY}", 0.1, 500,
    ),
    "single_pass": PromptSettings(
        "You are a professional social media content creator. Always respond with "
        f"valid JSON only.\n\n{POST_HUMANIZER}",
        0.8, 1000,
    ),
}


RESEARCH_QUERY_PROMPT = """Research this topic for social media content creation:

Topic: {topic}
Language: {language}

Provide:
1. Key insights about this topic (current trends, audience interests, relevant facts)
2. Potential risks or controversies to avoid when creating content
3. Recommended content angles that would resonate with the audience
4. Cite your sources

Focus on actionable insights for content creators."""

RESEARCH_EXTRACT_PROMPT = """Extract structured insights from this research content:

{content}

Return ONLY valid JSON:
{{
  "insights": ["insight 1", "insight 2", "insight 3"],
  "risks": ["risk 1", "risk 2"],
  "recommendedAngles": ["angle 1", "angle 2", "angle 3"]
}}

Make insights specific and actionable for content creation."""

IDEA_TASK = """TASK:
Generate exactly 3 DISTINCT content ideas that:
- Align strictly with the brand voice and niche
- Emphasize 1-2 key value points
- Use at least one research insight or recommended angle when available
- Avoid the listed risks

RULES:
- Concept-level ideas only (what to talk about + how)
- Do NOT write captions, CTAs, hashtags, emojis or hooks
- Each idea must be clearly different in angle

Return ONLY valid JSON in this format:
{"ideas": ["Idea 1", "Idea 2", "Idea 3"]}"""

ANGLE_TASK = """TASK:
Generate exactly 3 DISTINCT content angles for the idea. An angle defines HOW
the idea is framed, not what the idea is. Frame it from different audience
perspectives or motivations (educational vs experiential, problem vs outcome,
emotional vs rational, beginner vs expert).

Avoid rewording the idea, generic descriptions, and angles that differ only in tone.

Return ONLY valid JSON in this format:
{"angles": ["Angle 1", "Angle 2", "Angle 3"]}"""

OUTLINE_TASK = """TASK:
1. Write ONE short, catchy title (max 12 words)
2. Write an outline as a SINGLE plain-text string with line breaks:
   Hook, 2-3 main points, soft CTA
3. Suggest 3-5 specific hashtags (ASCII only, one word each, with #)

RULES:
- Do not repeat the title inside the outline
- Sections describe PURPOSE, not finished sentences
- No emojis, no markdown

Return ONLY valid JSON in this exact format:
{"title": "Your Title", "outline": "Hook: ...\\nMain point 1: ...\\nCTA: ...", "hashtags": ["#tag1", "#tag2"]}"""

DRAFT_GUIDELINES = """Writing guidelines:
- Natural, conversational tone focused on audience value
- Follow the outline but do not label sections
- One cohesive post ending with a soft, optional call-to-action

Output rules:
- Return ONLY the plain-text post body, no title
- No markdown, no explanations or meta commentary"""

ENHANCE_GUIDELINES = """Enhancement guidelines:
- Improve clarity, flow and readability without changing meaning
- Adjust the call-to-action only if it improves clarity or matches the instruction
- Only refine product mentions that already exist

Strict boundaries:
- Do NOT rewrite from scratch or add new ideas, claims or angles
- Do NOT significantly change the length

Output rules:
- Return ONLY the enhanced post body as plain text"""

SCORING_TASK = """Score each criterion from 0 to 20:
1. Clarity: is the message clear and easy to understand?
2. Engagement: will it capture audience attention?
3. Brand voice: does it match the brand tone and style?
4. Platform fit: is it suited to the target platform?
5. Safety: does it avoid spam, fake claims and inappropriate content?

Return ONLY valid JSON:
{
  "score": <sum of all criteria, 0-100>,
  "scoreBreakdown": {"clarity": 0, "engagement": 0, "brandVoice": 0, "platformFit": 0, "safety": 0},
  "weaknesses": ["weakness 1"],
  "suggestedFixes": ["fix 1"]
}"""

SINGLE_PASS_PROMPT = """Generate social media post content:

Product: {product}
Style: {style}
Language: {language}
{details}

Generate:
1. One main post title (10-200 characters)
2. One main post body (50-3000 characters)
3. Three variations, one per style: professional, casual, promotional

Return ONLY valid JSON in this exact format:
{{
  "title": "string",
  "body": "string",
  "hashtags": ["string"],
  "variations": [
    {{"title": "string", "body": "string", "style": "professional"}},
    {{"title": "string", "body": "string", "style": "casual"}},
    {{"title": "string", "body": "string", "style": "promotional"}}
  ]
}}"""


def _join(*sections: Optional[str]) -> str:
    return "\n\n".join(s.strip() for s in sections if s and s.strip())


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def brand_context(brand: Optional[BrandMemory], include_cta: bool = False) -> str:
    if brand is None:
        return ""
    lines = [
        f"Brand overview: {brand.product_description}",
        f"Niche: {brand.niche}" if brand.niche else "",
        f"Brand voice: {brand.brand_voice.model_dump_json()}",
        f"Content style: {brand.content_style}",
        f"Language: {brand.language}",
    ]
    if brand.key_points:
        lines.append(f"Key value points:\n{_bullets(brand.key_points)}")
    if include_cta and brand.cta_library:
        lines.append(f"CTA library:\n{_bullets(brand.cta_library)}")
    if brand.content_instruction:
        lines.append(f"Brand content rules:\n{brand.content_instruction}")
    return "Brand context:\n" + "\n".join(line for line in lines if line)


def product_block(product: Optional[ProductContext]) -> str:
    if product is None or not (product.name or product.detail or product.url):
        return ""
    lines = [
        f"- Name: {product.name}" if product.name else "",
        f"- Details: {product.detail}" if product.detail else "",
        f"- URL: {product.url}" if product.url else "",
    ]
    return (
        "Product reference (context only, not the main subject):\n"
        + "\n".join(line for line in lines if line)
        + "\nMention it only where it naturally supports the message. No hard selling."
    )


def build_research_query(topic: str, language: str) -> str:
    return RESEARCH_QUERY_PROMPT.format(topic=topic, language=language)


def build_research_extract_prompt(content: str) -> str:
    return RESEARCH_EXTRACT_PROMPT.format(content=content)


def build_idea_prompt(
    request: GenerationRequest,
    brand: Optional[BrandMemory],
    session: GenerationSession,
) -> str:
    research = session.research_pass
    rag = session.rag_pass
    research_block = ""
    if research is not None:
        research_block = _join(
            f"Audience & market insights:\n{_bullets(research.insights)}" if research.insights else "",
            f"Recommended angles:\n{_bullets(research.recommended_angles)}"
            if research.recommended_angles else "",
            f"Risks to avoid:\n{_bullets(research.risks)}" if research.risks else "",
        )
    return _join(
        "You are a senior content strategist generating HIGH-LEVEL content ideas "
        "(not captions, not full posts).",
        brand_context(brand),
        f"Seed idea (may be weak or incomplete): {request.seed}",
        product_block(request.product),
        f"Specific instructions: {request.instruction}" if request.instruction else "",
        research_block,
        f"Reference knowledge:\n{rag.rag_context}" if rag and rag.rag_context else "",
        IDEA_TASK,
    )


def build_angle_prompt(
    request: GenerationRequest,
    brand: Optional[BrandMemory],
    session: GenerationSession,
) -> str:
    idea = session.idea_pass.selected_idea if session.idea_pass else request.seed
    return _join(
        "You are a senior content strategist exploring DIFFERENT ANGLES for one idea.",
        f"Brand context (alignment only): {brand.product_description}" if brand else "",
        f"Core content idea:\n{idea}",
        f"Product reference (optional, subtle): {request.product.name}"
        if request.product and request.product.name else "",
        ANGLE_TASK,
    )


def build_outline_prompt(
    request: GenerationRequest,
    brand: Optional[BrandMemory],
    session: GenerationSession,
) -> str:
    idea = session.idea_pass.selected_idea if session.idea_pass else request.seed
    angle = session.angle_pass.selected_angle if session.angle_pass else ""
    return _join(
        "You are designing a CONTENT OUTLINE only. Do NOT write the full content.",
        f"Core idea: {idea}",
        f"Chosen angle: {angle}" if angle else "",
        f"Platform: {request.platform_hint}" if request.platform_hint else "",
        f"Initial hashtags: {request.hashtags}" if request.hashtags else "",
        f"Language: {brand.language}" if brand else "",
        OUTLINE_TASK,
    )


def build_draft_prompt(
    request: GenerationRequest,
    brand: Optional[BrandMemory],
    session: GenerationSession,
) -> str:
    outline = session.outline_pass.outline if session.outline_pass else ""
    idea = session.idea_pass.selected_idea if session.idea_pass else request.seed
    return _join(
        "You are writing the FULL DRAFT of a social media post body. "
        "Deliver value-first content that feels natural and non-promotional.",
        f"Core idea: {idea}" if idea and not outline else "",
        f"Reference content (do not copy directly):\n{request.body}" if request.body else "",
        brand_context(brand, include_cta=True),
        f"Content structure to follow:\n{outline}" if outline else "",
        product_block(request.product),
        f"Specific instructions: {request.instruction}" if request.instruction else "",
        DRAFT_GUIDELINES,
    )


def build_enhance_prompt(
    request: GenerationRequest,
    brand: Optional[BrandMemory],
    session: GenerationSession,
) -> str:
    draft = session.draft_pass.draft if session.draft_pass else (request.body or "")
    brand_block = ""
    if brand is not None:
        brand_block = _join(
            f"Brand voice: {brand.brand_voice.model_dump_json()}",
            f"Key points:\n{_bullets(brand.key_points)}" if brand.key_points else "",
        )
    return _join(
        "You are enhancing an EXISTING draft.",
        f"User instruction (highest priority): {request.instruction}" if request.instruction else "",
        f"Original draft:\n{draft}",
        f"Brand alignment:\n{brand_block}" if brand_block else "",
        ENHANCE_GUIDELINES,
    )


def build_scoring_prompt(
    content: str,
    brand: Optional[BrandMemory],
    platform: Optional[str] = None,
) -> str:
    return _join(
        f"Score this content for quality:\n{content}",
        brand_context(brand, include_cta=True) or "No brand context.",
        f"Target platform: {platform}" if platform else "",
        SCORING_TASK,
    )


def build_single_pass_prompt(request: SinglePassRequest, brand: BrandMemory) -> str:
    details = "\n".join(line for line in (
        f"Topic: {request.topic}" if request.topic else "",
        f"Post idea: {request.idea}" if request.idea else "",
        f"Product URL for reference: {request.product_url}" if request.product_url else "",
        f"Specific instructions: {request.detail_instruction}" if request.detail_instruction else "",
    ) if line)
    return SINGLE_PASS_PROMPT.format(
        product=brand.product_description,
        style=brand.content_style,
        language=brand.language,
        details=details,
    )

