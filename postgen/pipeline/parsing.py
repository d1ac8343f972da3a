"""
Response parsers for the JSON-producing passes.
Every parser either returns a validated result or raises MalformedLLMResponse;
nothing is silently coerced into shape.
"""
import re
from typing import Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from postgen.errors import MalformedLLMResponse
from postgen.schemas.generation import SinglePassResult
from postgen.schemas.session import OutlinePassResult, ScoringPassResult
from postgen.utils.json_output import parse_json_object

MIN_CANDIDATES = 3


def _string_list(data: dict, key: str, label: str, raw: str, minimum: int = 0) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedLLMResponse(f"{label} response field '{key}' must be a list of strings", raw=raw)
    cleaned = [v.strip() for v in value if v.strip()]
    if len(cleaned) < minimum:
        raise MalformedLLMResponse(
            f"{label} response must contain at least {minimum} {key}, got {len(cleaned)}", raw=raw,
        )
    return cleaned


def parse_ideas(text: str) -> list[str]:
    data = parse_json_object(text, label="idea")
    return _string_list(data, "ideas", "idea", text, minimum=MIN_CANDIDATES)


def parse_angles(text: str) -> list[str]:
    data = parse_json_object(text, label="angle")
    return _string_list(data, "angles", "angle", text, minimum=MIN_CANDIDATES)


def normalize_hashtags(value: Optional[Union[str, Iterable[str]]]) -> str:
    """Dedupe, strip inner whitespace, lower-case and space-join hashtags."""
    if value is None:
        return ""
    if isinstance(value, str):
        tags = re.split(r"[,\s]+", value)
    else:
        tags = list(value)
    seen = []
    for tag in tags:
        tag = re.sub(r"\s+", "", str(tag)).lower()
        if tag and tag not in seen:
            seen.append(tag)
    return " ".join(seen)


def parse_outline(text: str) -> OutlinePassResult:
    data = parse_json_object(text, label="outline")
    title = data.get("title")
    outline = data.get("outline")
    if not isinstance(title, str) or not title.strip():
        raise MalformedLLMResponse("outline response is missing a title", raw=text)
    if not isinstance(outline, str) or not outline.strip():
        raise MalformedLLMResponse("outline response is missing the outline text", raw=text)
    hashtags = data.get("hashtags")
    if hashtags is not None and not isinstance(hashtags, (list, str)):
        raise MalformedLLMResponse("outline response field 'hashtags' must be a list", raw=text)
    return OutlinePassResult(
        title=title.strip(),
        outline=outline.strip(),
        hashtags=normalize_hashtags(hashtags) or None,
    )


def parse_scoring(text: str) -> ScoringPassResult:
    data = parse_json_object(text, label="scoring")
    try:
        return ScoringPassResult.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedLLMResponse(f"scoring response failed validation: {e.errors()[0]['msg']}", raw=text) from e


def parse_single_pass(text: str) -> SinglePassResult:
    data = parse_json_object(text, label="single-pass")
    try:
        return SinglePassResult.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedLLMResponse(
            f"single-pass response failed validation ({e.error_count()} errors)", raw=text,
        ) from e
