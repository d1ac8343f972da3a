"""
Helpers for cleaning LLM text output and extracting JSON payloads.
"""
import json
import re
from typing import Any

from postgen.errors import MalformedLLMResponse

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


def sanitize_output_text(text: str) -> str:
    """Remove hidden reasoning blocks returned by some providers."""
    if not text:
        return ""
    return _THINK_RE.sub("", text).strip()


def strip_json_fences(text: str) -> str:
    """
    Strip markdown code fences from LLM JSON output.
    Falls back to the outermost {...} or [...] span, whichever opens first.
    """
    text = text.strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    candidates = []
    for start_char, end_char in (("{", "}"), ("[", "]")):
        start = text.find(start_char)
        end = text.rfind(end_char)
        if start != -1 and end > start:
            candidates.append((start, end))
    if candidates:
        start, end = min(candidates)
        return text[start:end + 1]
    return text


def parse_json_object(text: str, label: str = "llm") -> dict[str, Any]:
    """
    Parse an LLM completion into a JSON object.

    Raises:
        MalformedLLMResponse: when the text is not valid JSON or not an object.
    """
    cleaned = strip_json_fences(sanitize_output_text(text))
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedLLMResponse(
            f"{label} response is not valid JSON: {e.msg} (line {e.lineno})",
            raw=text,
        ) from e
    if not isinstance(parsed, dict):
        raise MalformedLLMResponse(
            f"{label} response must be a JSON object, got {type(parsed).__name__}",
            raw=text,
        )
    return parsed
