"""
Shared API dependencies and error translation.
"""
from fastapi import HTTPException, Request

from postgen.container import ServiceContainer
from postgen.errors import (
    CacheUnavailable,
    ExternalServiceError,
    MalformedLLMResponse,
    PostGenError,
    SessionNotFound,
    ValidationError,
)

ERROR_STATUS_CODES = (
    (ValidationError, 400),
    (SessionNotFound, 404),
    (MalformedLLMResponse, 502),
    (ExternalServiceError, 502),
    (CacheUnavailable, 503),
)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def status_for(error: PostGenError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def http_error(error: PostGenError) -> HTTPException:
    return HTTPException(status_code=status_for(error), detail=error.to_dict())
