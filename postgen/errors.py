"""
Error taxonomy for content generation.

Every error carries enough context (pass name, session ID) for the caller to
decide whether to retry, resume, or abandon.
"""
from typing import Optional


class PostGenError(Exception):
    """Base error for everything raised by postgen."""

    error_code = "postgen_error"

    def __init__(
        self,
        message: str,
        pass_name: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.pass_name = pass_name
        self.session_id = session_id

    def with_context(
        self,
        pass_name: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> "PostGenError":
        """Fill in missing context without overwriting what the raiser set."""
        if self.pass_name is None:
            self.pass_name = pass_name
        if self.session_id is None:
            self.session_id = session_id
        return self

    def to_dict(self) -> dict:
        data = {"error": self.error_code, "message": self.message}
        if self.pass_name:
            data["pass"] = self.pass_name
        if self.session_id:
            data["sessionId"] = self.session_id
        return data


class ValidationError(PostGenError):
    """Malformed or missing request fields. Raised before any external call."""

    error_code = "validation_error"


class EmptyContent(ValidationError):
    """Content to embed or compare is empty after trimming."""

    error_code = "empty_content"


class MalformedLLMResponse(PostGenError):
    """LLM output failed JSON parsing or schema validation."""

    error_code = "malformed_llm_response"

    def __init__(self, message: str, raw: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.raw = raw[:500]


class ExternalServiceError(PostGenError):
    """LLM, embedding, vector store or research provider failure (incl. timeouts)."""

    error_code = "external_service_error"

    def __init__(self, message: str, service: str = "unknown", **kwargs):
        super().__init__(message, **kwargs)
        self.service = service

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["service"] = self.service
        return data


class SessionNotFound(PostGenError):
    """Session is absent or past its TTL."""

    error_code = "session_not_found"


class CacheUnavailable(PostGenError):
    """Cache backing store outage. Fatal for the current request only."""

    error_code = "cache_unavailable"
