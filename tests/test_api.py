"""
Tests for postgen/api - generation, session, similarity and health endpoints.
"""
import json

import pytest
from fastapi.testclient import TestClient

from postgen import __version__
from postgen.api.deps import status_for
from postgen.errors import (
    CacheUnavailable,
    ExternalServiceError,
    MalformedLLMResponse,
    SessionNotFound,
    ValidationError,
)
from postgen.main import create_app
from tests.conftest import DRAFT_CHUNKS


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def _sse_events(text: str) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in text.splitlines()
        if line.startswith("data: ")
    ]


class TestStatusMapping:
    def test_error_types_map_to_http_status(self):
        assert status_for(ValidationError("x")) == 400
        assert status_for(SessionNotFound("x")) == 404
        assert status_for(MalformedLLMResponse("x")) == 502
        assert status_for(ExternalServiceError("x")) == 502
        assert status_for(CacheUnavailable("x")) == 503


class TestSinglePassEndpoint:
    def test_success(self, client):
        response = client.post("/api/v1/generation/single-pass", json={"topic": "Fresh crab"})
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Cua tươi mỗi sáng"
        assert len(data["variations"]) == 3

    def test_empty_request_is_400(self, client):
        response = client.post("/api/v1/generation/single-pass", json={})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_malformed_llm_output_is_502(self, client, fake_llm):
        fake_llm.completions["single_pass"] = "not json"
        response = client.post("/api/v1/generation/single-pass", json={"topic": "Fresh crab"})
        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "malformed_llm_response"

    def test_no_llm_configured_is_502(self, client, container):
        container.llm = None
        response = client.post("/api/v1/generation/single-pass", json={"topic": "Fresh crab"})
        assert response.status_code == 502
        assert response.json()["detail"]["service"] == "llm"


class TestMultiPassEndpoint:
    def test_quick_generation(self, client):
        response = client.post(
            "/api/v1/generation/multi-pass",
            json={"idea": "Fresh crab delivery", "action": "quick", "sessionId": "api-1"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == "api-1"
        assert data["title"] == "Fresh Crab, Delivered Daily"
        assert data["body"] == "".join(DRAFT_CHUNKS)
        assert data["hashtags"] == ["#seafood", "#coto"]
        assert data["metadata"]["passesCompleted"] == ["outline", "draft"]

    def test_unknown_action_is_400(self, client):
        response = client.post("/api/v1/generation/multi-pass", json={"idea": "x", "action": "viral"})
        assert response.status_code == 400

    def test_missing_seed_is_400(self, client):
        response = client.post("/api/v1/generation/multi-pass", json={"action": "quick"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_pass_failure_reports_pass_and_session(self, client, fake_llm):
        fake_llm.streams["draft"] = ExternalServiceError("provider timeout", service="llm")
        response = client.post(
            "/api/v1/generation/multi-pass",
            json={"idea": "Fresh crab delivery", "sessionId": "api-2"},
        )
        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["pass"] == "draft"
        assert detail["sessionId"] == "api-2"

    def test_invalid_pass_name_is_422(self, client):
        response = client.post(
            "/api/v1/generation/multi-pass",
            json={"idea": "x", "passes": ["summary"]},
        )
        assert response.status_code == 422


class TestStreamEndpoint:
    def test_streams_ordered_events(self, client):
        response = client.post(
            "/api/v1/generation/stream",
            json={"idea": "Fresh crab delivery", "action": "quick"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["X-Session-ID"]

        events = _sse_events(response.text)
        assert [(e["type"], e["pass"]) for e in events] == [
            ("pass-start", "outline"),
            ("pass-complete", "outline"),
            ("pass-start", "draft"),
            ("pass-chunk", "draft"),
            ("pass-chunk", "draft"),
            ("pass-chunk", "draft"),
            ("pass-complete", "draft"),
        ]

    def test_error_event_then_resume(self, client, fake_llm):
        fake_llm.streams["draft"] = ExternalServiceError("provider timeout", service="llm")
        first = client.post(
            "/api/v1/generation/stream",
            json={"idea": "Fresh crab delivery", "action": "quick"},
        )
        session_id = first.headers["X-Session-ID"]
        events = _sse_events(first.text)
        assert events[-1]["type"] == "error"
        assert events[-1]["sessionId"] == session_id
        assert events[-1]["pass"] == "draft"

        fake_llm.streams["draft"] = list(DRAFT_CHUNKS)
        second = client.post(
            "/api/v1/generation/stream",
            json={"idea": "Fresh crab delivery", "action": "quick", "sessionId": session_id},
        )
        assert second.headers["X-Session-ID"] == session_id
        events = _sse_events(second.text)
        assert events[0] == {"type": "pass-start", "pass": "draft"}
        assert events[-1]["type"] == "pass-complete"

    def test_resume_with_session_id_only(self, client, fake_llm):
        fake_llm.streams["draft"] = ExternalServiceError("provider timeout", service="llm")
        first = client.post(
            "/api/v1/generation/stream",
            json={"idea": "Fresh crab delivery", "action": "quick"},
        )
        session_id = first.headers["X-Session-ID"]

        fake_llm.streams["draft"] = list(DRAFT_CHUNKS)
        second = client.post(
            "/api/v1/generation/stream",
            json={"action": "quick", "sessionId": session_id},
        )
        assert second.status_code == 200
        events = _sse_events(second.text)
        assert events[0] == {"type": "pass-start", "pass": "draft"}
        assert events[-1]["type"] == "pass-complete"

        session = client.get(f"/api/v1/generation/sessions/{session_id}").json()
        assert session["metadata"]["idea"] == "Fresh crab delivery"

    def test_unknown_session_without_seed_is_rejected(self, client):
        response = client.post(
            "/api/v1/generation/stream",
            json={"action": "quick", "sessionId": "never-created"},
        )
        assert response.status_code == 400

    def test_validation_fails_before_streaming(self, client):
        response = client.post("/api/v1/generation/stream", json={"action": "quick"})
        assert response.status_code == 400


class TestSessionEndpoints:
    def test_get_list_and_delete(self, client):
        client.post(
            "/api/v1/generation/multi-pass",
            json={"idea": "Fresh crab delivery", "sessionId": "sess-1"},
        )
        listing = client.get("/api/v1/generation/sessions").json()
        assert "sess-1" in listing["sessions"]

        session = client.get("/api/v1/generation/sessions/sess-1").json()
        assert session["sessionId"] == "sess-1"
        assert session["outlinePass"]["title"] == "Fresh Crab, Delivered Daily"
        assert session["metadata"]["idea"] == "Fresh crab delivery"

        assert client.delete("/api/v1/generation/sessions/sess-1").status_code == 200
        assert client.get("/api/v1/generation/sessions/sess-1").status_code == 404
        assert client.delete("/api/v1/generation/sessions/sess-1").status_code == 404


class TestSimilarityEndpoints:
    def test_store_check_delete(self, client):
        stored = client.post(
            "/api/v1/similarity/embeddings",
            json={"postId": "post-1", "content": "Cua tươi mỗi sáng", "metadata": {"platform": "facebook"}},
        )
        assert stored.status_code == 200
        assert stored.json()["success"] is True
        assert stored.json()["embeddingId"].startswith("post-1_")

        report = client.post("/api/v1/similarity/check", json={"content": "Cua tươi mỗi sáng"}).json()
        assert report["isSimilar"] is True
        assert report["similarContent"][0]["postId"] == "post-1"
        assert report["similarContent"][0]["platform"] == "facebook"
        assert "warning" in report

        deleted = client.delete("/api/v1/similarity/embeddings/post-1").json()
        assert deleted == {"postId": "post-1", "deleted": 1}

        report = client.post("/api/v1/similarity/check", json={"content": "Cua tươi mỗi sáng"}).json()
        assert report["isSimilar"] is False
        assert "warning" not in report

    def test_empty_content_is_400(self, client):
        response = client.post("/api/v1/similarity/check", json={"content": "  "})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "empty_content"

    def test_no_embedding_provider_is_502(self, client, container):
        container.similarity = None
        response = client.post("/api/v1/similarity/check", json={"content": "text"})
        assert response.status_code == 502


class TestHealthEndpoints:
    def test_liveness(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__

    def test_readiness(self, client):
        data = client.get("/health/ready").json()
        assert data["status"] == "ready"
        assert data["checks"]["session_cache"] is True
        assert data["checks"]["llm"] is True
        assert data["checks"]["research"] is False

    def test_readiness_degraded_without_llm(self, client, container):
        container.llm = None
        assert client.get("/health/ready").json()["status"] == "degraded"

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc123"})
        assert response.headers["X-Correlation-ID"] == "abc123"
