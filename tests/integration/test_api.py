"""
Integration tests for the orchestration server API.

Runs the FastAPI app in-process with TestClient; the judge is simulated
because no API key is configured.
"""

import pytest
from fastapi.testclient import TestClient
from httpx import ConnectError, Request, Response

from config import Settings
from mastery.api.main import create_app


def make_settings(**overrides):
    values = {
        "anthropic_api_key": None,
        "session_cleanup_interval_seconds": 3600,
        "server_eval_cooldown_ms": 0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def client():
    with TestClient(create_app(make_settings())) as client:
        yield client


@pytest.fixture
def keyed_client():
    with TestClient(create_app(make_settings(anthropic_api_key="sk-test"))) as client:
        yield client


def transcript(role, text, is_final=True):
    return {"type": "transcript", "entry": {"role": role, "text": text, "timestamp": 0, "isFinal": is_final}}


def sync_point(ws):
    """Round-trip a malformed message so earlier sends are known to be processed."""
    ws.send_text("not json")
    assert ws.receive_json() == {"type": "error", "error": "Failed to process message"}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["sessions"] == 0
        assert data["judge"] == "simulated"


class TestOrchestrationSocket:
    """Tests for the /orchestrate WebSocket."""

    def test_transcript_triggers_evaluation(self, client, cookie_card):
        with client.websocket_connect("/orchestrate?sessionId=ws1") as ws:
            ws.send_json({"type": "init", "studentName": "Maya", "currentCard": cookie_card.to_dict()})
            ws.send_json(transcript("pi", "What do you notice?"))
            ws.send_json(transcript("student", "there are four cookies"))
            ws.send_json(transcript("pi", "Anything else?"))
            ws.send_json(transcript("student", "they are all the same size"))

            message = ws.receive_json()
            assert message["type"] == "evaluation"
            assert message["evaluation"]["suggestedAction"] == "continue"
            assert message["evaluation"]["reasoning"] == "Simulated: Continue exploring"

            summary = client.get("/session/ws1").json()
            assert summary["studentName"] == "Maya"
            assert summary["currentCard"] == "Equal Cookies"
            assert summary["transcriptLength"] == 4
            assert summary["evaluationCount"] == 1

            assert client.get("/health").json()["sessions"] == 1

    def test_force_evaluation(self, client, cookie_card):
        with client.websocket_connect("/orchestrate?sessionId=ws2") as ws:
            ws.send_json({"type": "init", "studentName": "Maya", "currentCard": cookie_card.to_dict()})
            ws.send_json({"type": "force_evaluation"})

            message = ws.receive_json()
            assert message["type"] == "evaluation"
            assert message["evaluation"]["reasoning"] == "Not enough conversation yet"

    def test_card_change_resets_transcript(self, client, cookie_card, brownie_card):
        with client.websocket_connect("/orchestrate?sessionId=ws3") as ws:
            ws.send_json({"type": "init", "studentName": "Maya", "currentCard": cookie_card.to_dict()})
            ws.send_json(transcript("pi", "Hi there"))
            ws.send_json({"type": "card_change", "card": brownie_card.to_dict()})
            sync_point(ws)

            summary = client.get("/session/ws3").json()
            assert summary["currentCard"] == "Brownie Halves"
            assert summary["transcriptLength"] == 0

    def test_malformed_messages_keep_socket_open(self, client):
        with client.websocket_connect("/orchestrate?sessionId=ws4") as ws:
            ws.send_json({"type": "transcript", "entry": {"role": "robot", "text": "beep"}})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "teleport"})
            ws.send_json(transcript("student", "still here"))
            sync_point(ws)

            transcript_data = client.get("/transcript/ws4").json()
            assert transcript_data["sessionId"] == "ws4"
            assert [e["text"] for e in transcript_data["transcript"]] == ["still here"]

    def test_inject_message(self, client):
        with client.websocket_connect("/orchestrate?sessionId=ws5") as ws:
            sync_point(ws)
            response =client.post("/inject-message", json={"sessionId": "ws5", "message": "Nice work!"})

            assert response.status_code == 200
            assert response.json() == {"success": True}
            assert ws.receive_json() == {"type": "inject_message", "message": "Nice work!"}


class TestSessionEndpoints:
    @pytest.mark.parametrize("path", ["/session/missing", "/transcript/missing"])
    def test_unknown_session(self, client, path):
        assert client.get(path).status_code == 404

    def test_manual_evaluate(self, client, cookie_card):
        with client.websocket_connect("/orchestrate?sessionId=ws6") as ws:
            ws.send_json({"type": "init", "studentName": "Maya", "currentCard": cookie_card.to_dict()})
            sync_point(ws)

            response = client.post("/evaluate/ws6")

            assert response.status_code == 200
            assert response.json()["suggestedAction"] == "continue"
            assert ws.receive_json()["type"] == "evaluation"

    def test_manual_evaluate_without_card(self, client):
        with client.websocket_connect("/orchestrate?sessionId=ws7") as ws:
            sync_point(ws)
            response = client.post("/evaluate/ws7")

        assert response.status_code == 200
        assert response.json() is None

    def test_manual_evaluate_unknown(self, client):
        assert client.post("/evaluate/missing").status_code == 404

    def test_inject_unknown_session(self, client):
        response = client.post("/inject-message", json={"sessionId": "missing", "message": "hi"})
        assert response.status_code == 404

    def test_inject_requires_fields(self, client):
        assert client.post("/inject-message", json={"sessionId": "ws1"}).status_code == 422


class TestJudgeProxy:
    """Tests for POST /api/claude/evaluate."""

    BODY = {
        "model": "claude-3-5-haiku-20241022",
        "max_tokens": 500,
        "messages": [{"role": "user", "content": "Evaluate this"}],
    }

    def test_missing_key(self, client):
        response = client.post("/api/claude/evaluate", json=self.BODY)

        assert response.status_code == 500
        assert response.json() == {"error": "Server configuration error"}

    def test_forwards_with_key(self, keyed_client, monkeypatch):
        captured = {}

        async def mock_post(url, **kwargs):
            captured["url"] = url
            captured["headers"] = kwargs["headers"]
            captured["json"] = kwargs["json"]
            return Response(
                200,
                json={"content": [{"type": "text", "text": "{}"}]},
                request=Request("POST", url),
            )

        monkeypatch.setattr(keyed_client.app.state.http_client, "post", mock_post)

        response = keyed_client.post("/api/claude/evaluate", json=self.BODY)

        assert response.status_code == 200
        assert response.json()["content"][0]["type"] == "text"
        assert captured["url"] == "https://api.anthropic.com/v1/messages"
        assert captured["headers"]["x-api-key"] == "sk-test"
        assert captured["headers"]["anthropic-version"] == "2023-06-01"
        assert captured["json"]["temperature"] == 0.3

    def test_upstream_error_status(self, keyed_client, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(429, text="rate limited", request=Request("POST", url))

        monkeypatch.setattr(keyed_client.app.state.http_client, "post", mock_post)

        response = keyed_client.post("/api/claude/evaluate", json=self.BODY)

        assert response.status_code == 429
        assert response.json() == {"error": "Claude API request failed", "details": "rate limited"}

    def test_network_failure(self, keyed_client, monkeypatch):
        async def mock_post(url, **kwargs):
            raise ConnectError("unreachable", request=Request("POST", url))

        monkeypatch.setattr(keyed_client.app.state.http_client, "post", mock_post)

        response = keyed_client.post("/api/claude/evaluate", json=self.BODY)

        assert response.status_code == 500
        assert response.json()["error"] == "Evaluation failed"

    def test_invalid_body(self, keyed_client):
        response = keyed_client.post("/api/claude/evaluate", json={"model": "x", "messages": []})
        assert response.status_code == 422
