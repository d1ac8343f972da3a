"""
Tests for postgen/schemas/events.py and session wire format.
"""
import json

from postgen.schemas.events import (
    ErrorEvent,
    PassChunkEvent,
    PassCompleteEvent,
    PassStartEvent,
    event_to_dict,
    to_sse,
)
from postgen.schemas.session import PassName, pass_alias, pass_field


class TestEventWireFormat:
    def test_pass_start(self):
        assert event_to_dict(PassStartEvent(pass_name=PassName.DRAFT)) == {
            "type": "pass-start",
            "pass": "draft",
        }

    def test_pass_chunk(self):
        event = PassChunkEvent(pass_name=PassName.ENHANCE, text="Xin chào")
        assert event_to_dict(event) == {"type": "pass-chunk", "pass": "enhance", "text": "Xin chào"}

    def test_pass_complete_carries_result(self):
        event = PassCompleteEvent(pass_name=PassName.DRAFT, result={"draft": "body"})
        assert event_to_dict(event)["result"] == {"draft": "body"}

    def test_error_event_camel_case(self):
        event = ErrorEvent(
            message="boom",
            pass_name=PassName.DRAFT,
            session_id="s1",
            error_code="external_service_error",
        )
        assert event_to_dict(event) == {
            "type": "error",
            "message": "boom",
            "pass": "draft",
            "sessionId": "s1",
            "errorCode": "external_service_error",
        }

    def test_error_event_omits_missing_context(self):
        assert event_to_dict(ErrorEvent(message="bad request")) == {"type": "error", "message": "bad request"}


class TestSse:
    def test_frame_format(self):
        frame = to_sse(PassChunkEvent(pass_name=PassName.DRAFT, text="Cua tươi"))
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {"type": "pass-chunk", "pass": "draft", "text": "Cua tươi"}

    def test_non_ascii_kept_verbatim(self):
        assert "tươi" in to_sse(PassChunkEvent(pass_name=PassName.DRAFT, text="tươi"))


class TestPassNaming:
    def test_field_and_alias(self):
        assert pass_field(PassName.RAG) == "rag_pass"
        assert pass_alias(PassName.RAG) == "ragPass"
