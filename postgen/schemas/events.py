"""
Pipeline event models and server-sent-events encoding.

Events within one stream are strictly ordered:
pass-start, pass-chunk*, pass-complete per pass, or a terminal error.
"""
import json
from typing import Literal, Optional, Union

from pydantic import Field

from postgen.schemas.session import CamelModel, PassName


class PassStartEvent(CamelModel):
    type: Literal["pass-start"] = "pass-start"
    pass_name: PassName = Field(alias="pass")


class PassChunkEvent(CamelModel):
    type: Literal["pass-chunk"] = "pass-chunk"
    pass_name: PassName = Field(alias="pass")
    text: str


class PassCompleteEvent(CamelModel):
    type: Literal["pass-complete"] = "pass-complete"
    pass_name: PassName = Field(alias="pass")
    result: dict


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    message: str
    pass_name: Optional[PassName] = Field(default=None, alias="pass")
    session_id: Optional[str] = None
    error_code: Optional[str] = None


PipelineEvent = Union[PassStartEvent, PassChunkEvent, PassCompleteEvent, ErrorEvent]


def event_to_dict(event: PipelineEvent) -> dict:
    return event.model_dump(by_alias=True, mode="json", exclude_none=True)


def to_sse(event: PipelineEvent) -> str:
    """Encode one event as a server-sent-events frame."""
    payload = json.dumps(event_to_dict(event), ensure_ascii=False)
    return f"data: {payload}\n\n"
