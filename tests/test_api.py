import os
import time
from contextlib import contextmanager
from typing import Any, Dict, List

import jwt
import pytest
from fastapi.testclient import TestClient

from onyxgpt.models import InferenceRequest


@pytest.fixture
def app():
    """
    Import the FastAPI app from the runtime.

    The implementation is expected to expose `app` at `onyxgpt.main`.
    """
    from onyxgpt.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@contextmanager
def env_vars(env: Dict[str, str]):
    """
    Temporarily set environment variables for a test.

    Restores previous values afterwards, even if the test fails.
    """
    old_values: Dict[str, Any] = {}
    for key, value in env.items():
        old_values[key] = os.environ.get(key)
        os.environ[key] = value
    try:
        yield
    finally:
        for key, old in old_values.items():
            if old is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = old


def _assert_error_envelope(resp_json: Dict[str, Any], expected_code: str):
    assert "error" in resp_json, "Error responses must include 'error' envelope"
    assert "meta" in resp_json, "Error responses must include 'meta' envelope"
    assert resp_json["error"].get("code") == expected_code
    assert isinstance(resp_json["meta"].get("request_id"), str)
    assert resp_json["meta"].get("service") == "onyxgpt"


class RecordingClient:
    """AI client double that records completion requests."""

    def __init__(self, reply: str = "hello back"):
        self.reply = reply
        self.requests: List[InferenceRequest] = []

    def complete(self, request: InferenceRequest) -> str:
        self.requests.append(request)
        return self.reply

    def chat(self, prompt, image_url=None, options=None) -> str:
        return f"saw {image_url}"


class RaisingClient:
    def complete(self, request):
        raise RuntimeError("provider failure for testing")

    def chat(self, *args, **kwargs):
        raise RuntimeError("provider failure for testing")


@contextmanager
def override_client(app, ai_client):
    from onyxgpt.dependencies import get_client

    app.dependency_overrides[get_client] = lambda: ai_client
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_client, None)


def _chat_body(**overrides) -> Dict[str, Any]:
    body: Dict[str, Any] = {"messages": [{"role": "user", "content": "hello"}], "model": "gpt-5"}
    body.update(overrides)
    return body


### 1) Service endpoints #######################################################


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "onyxgpt"
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["builtin_triggers"] == 59


### 2) Validation endpoints ####################################################


def test_validate_request_applies_defaults(client):
    resp = client.post("/validate/request", json=_chat_body())
    assert resp.status_code == 200
    value = resp.json()["value"]
    assert value["temperature"] == 0.7
    assert value["max_tokens"] == 2000


def test_validate_settings_returns_camel_case(client):
    resp = client.post(
        "/validate/settings",
        json={"textModel": "m1", "imageModel": "m2", "temperature": 1, "maxTokens": 500},
    )
    assert resp.status_code == 200
    value = resp.json()["value"]
    assert value["streamingEnabled"] is True
    assert value["taskMode"] == "standard"


def test_validate_message_lists_every_violation(client):
    resp = client.post("/validate/message", json={"role": "bot", "content": ""})
    assert resp.status_code == 422
    data = resp.json()
    _assert_error_envelope(data, "VALIDATION_ERROR")
    assert len(data["error"]["details"]) == 2


def test_validate_unknown_contract_returns_404(client):
    resp = client.post("/validate/widget", json={})
    assert resp.status_code == 404
    _assert_error_envelope(resp.json(), "NOT_FOUND")


def test_malformed_json_returns_400(client):
    resp = client.post(
        "/validate/message",
        content="{ this is not valid json }",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    _assert_error_envelope(resp.json(), "MALFORMED_REQUEST")


### 3) Chat completions ########################################################


def test_completions_send_validated_request(app, client):
    ai_client = RecordingClient()
    with override_client(app, ai_client):
        resp = client.post("/chat/completions", json=_chat_body())

    assert resp.status_code == 200
    data = resp.json()
    assert data == {"content": "hello back", "model": "gpt-5", "available": True, "triggers": []}
    (sent,) = ai_client.requests
    assert sent.temperature == 0.7
    assert [m.content for m in sent.messages] == ["hello"]

    logs = client.get("/logs").json()
    assert logs["count"] == 1
    assert logs["entries"][0]["details"]["method"] == "chat.completions"


def test_completions_prepend_trigger_prompt(app, client):
    ai_client = RecordingClient()
    body = _chat_body(messages=[{"role": "user", "content": "reason about gravity"}])
    with override_client(app, ai_client):
        resp = client.post("/chat/completions", json=body)

    assert [t["name"] for t in resp.json()["triggers"]] == ["reason"]
    sent = ai_client.requests[0]
    assert sent.messages[0].role == "system"
    assert sent.messages[0].content.startswith("reason means ")
    assert sent.messages[1].content == "reason about gravity"


def test_completions_invalid_body_returns_422_and_skips_client(app, client):
    ai_client = RecordingClient()
    with override_client(app, ai_client):
        resp = client.post("/chat/completions", json=_chat_body(temperature=5, messages=[]))

    assert resp.status_code == 422
    data = resp.json()
    _assert_error_envelope(data, "VALIDATION_ERROR")
    fields = {err["path"][0] for err in data["error"]["details"]}
    assert fields == {"temperature", "messages"}
    assert ai_client.requests == []


def test_completions_client_failure_is_logged_not_raised(app, client):
    with override_client(app, RaisingClient()):
        resp = client.post("/chat/completions", json=_chat_body())

    assert resp.status_code == 200
    assert resp.json()["content"] == ""
    entry = client.get("/logs").json()["entries"][0]
    assert entry["details"]["success"] is False
    assert entry["details"]["error"] == "provider failure for testing"


def test_completions_without_client_is_unavailable(app, client):
    with override_client(app, None):
        resp = client.post("/chat/completions", json=_chat_body())
    assert resp.json()["available"] is False
    assert client.get("/logs").json()["count"] == 0


### 4) Vision and trigger routes ###############################################


def test_vision_returns_text(app, client):
    with override_client(app, RecordingClient()):
        resp = client.post("/chat/vision", json={"image_url": "https://img/1.png"})
    assert resp.json() == {"text": "saw https://img/1.png", "available": True}


def test_vision_failure_returns_empty_text(app, client):
    with override_client(app, RaisingClient()):
        resp = client.post("/chat/vision", json={"image_url": "https://img/1.png"})
    assert resp.status_code == 200
    assert resp.json()["text"] == ""
    assert client.get("/logs").json()["entries"][0]["details"]["method"] == "ai.chat (vision)"


def test_vision_requires_image_url(client):
    resp = client.post("/chat/vision", json={"prompt": "what?"})
    assert resp.status_code == 422
    _assert_error_envelope(resp.json(), "VALIDATION_ERROR")


def test_detect_triggers_route(client):
    resp = client.post("/chat/triggers/detect", json={"content": "please summarize this"})
    assert resp.status_code == 200
    assert [t["name"] for t in resp.json()["triggers"]] == ["summarize"]


def test_trigger_management_routes(client):
    custom = {
        "trigger": "haiku",
        "category": "Communication & Style",
        "system_instruction": "Answer as a haiku.",
    }
    assert client.post("/chat/triggers", json=custom).status_code == 200
    duplicate = client.post("/chat/triggers", json=custom)
    assert duplicate.status_code == 409
    _assert_error_envelope(duplicate.json(), "TRIGGER_EXISTS")

    assert client.post("/chat/triggers/haiku/toggle").status_code == 200
    haiku = [t for t in client.get("/chat/triggers").json()["triggers"] if t["trigger"] == "haiku"]
    assert haiku[0]["enabled"] is False

    assert client.post("/chat/triggers/missing/toggle").status_code == 404
    assert client.delete("/chat/triggers/haiku").status_code == 200
    assert client.post("/chat/triggers/reset").json() == {"ok": True}


### 5) Settings ################################################################


def test_settings_defaults_and_update(client):
    defaults = client.get("/settings").json()
    assert defaults["textModel"] == "gpt-5-nano"
    assert defaults["provider"] == "puter"

    updated = {**defaults, "textModel": "gpt-5", "taskMode": "creative"}
    resp = client.put("/settings", json=updated)
    assert resp.status_code == 200
    assert client.get("/settings").json()["taskMode"] == "creative"


def test_invalid_settings_are_not_saved(client):
    resp = client.put("/settings", json={"textModel": "", "imageModel": "m", "temperature": 9, "maxTokens": 1})
    assert resp.status_code == 422
    _assert_error_envelope(resp.json(), "VALIDATION_ERROR")
    assert client.get("/settings").json()["textModel"] == "gpt-5-nano"


### 6) Auth behavior ###########################################################


def test_chat_requires_token_when_auth_token_set(client):
    with env_vars({"AUTH_TOKEN": "secret-token"}):
        missing = client.post("/chat/completions", json=_chat_body())
        wrong = client.post(
            "/chat/completions",
            headers={"Authorization": "Bearer not-the-token"},
            json=_chat_body(),
        )
        ok = client.post(
            "/chat/completions",
            headers={"Authorization": "Bearer secret-token"},
            json=_chat_body(),
        )
    assert missing.status_code == 401
    _assert_error_envelope(missing.json(), "UNAUTHORIZED")
    assert wrong.status_code == 401
    assert ok.status_code == 200


def test_validation_routes_stay_public_when_auth_token_set(client):
    with env_vars({"AUTH_TOKEN": "secret-token"}):
        resp = client.post("/validate/message", json={"role": "user", "content": "hi"})
    assert resp.status_code == 200


def test_chat_requires_supabase_session(client):
    secret = "test-jwt-secret-with-enough-length-for-hs256"
    token = jwt.encode(
        {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) + 600},
        secret,
        algorithm="HS256",
    )
    with env_vars({"SUPABASE_JWT_SECRET": secret}):
        missing = client.post("/chat/triggers/detect", json={"content": "hi"})
        ok = client.post(
            "/chat/triggers/detect",
            headers={"Authorization": f"Bearer {token}"},
            json={"content": "hi"},
        )
    assert missing.status_code == 401
    assert missing.json()["error"]["message"] == "You must be signed in to access the chat."
    assert ok.status_code == 200


def test_auth_routes_report_missing_provider(client):
    resp = client.post("/auth/signin", json={"email": "a@example.com", "password": "pw"})
    assert resp.status_code == 503
    _assert_error_envelope(resp.json(), "AUTH_NOT_CONFIGURED")


def test_signin_route_surfaces_provider_error(app, client):
    from onyxgpt.auth import AuthError, AuthProvider
    from onyxgpt.dependencies import get_auth_provider

    class FailingProvider(AuthProvider):
        def sign_in(self, email, password):
            raise AuthError("Invalid login credentials")

    app.dependency_overrides[get_auth_provider] = lambda: FailingProvider()
    try:
        resp = client.post("/auth/signin", json={"email": "a@example.com", "password": "bad"})
        missing = client.post("/auth/signin", json={"email": "a@example.com"})
    finally:
        app.dependency_overrides.pop(get_auth_provider, None)

    assert resp.status_code == 401
    data = resp.json()
    _assert_error_envelope(data, "AUTH_FAILED")
    assert data["error"]["message"] == "Invalid login credentials"
    assert missing.status_code == 422


### 7) Logs ####################################################################


def test_logs_export_is_attachment(app, client):
    with override_client(app, RecordingClient()):
        client.post("/chat/completions", json=_chat_body())
    resp = client.get("/logs/export")
    assert resp.status_code == 200
    assert "attachment" in resp.headers["content-disposition"]
    assert len(resp.json()) == 1


def test_settings_reject_snake_case_payload(client):
    resp = client.put(
        "/settings",
        json={"text_model": "a", "image_model": "b", "temperature": 1, "max_tokens": 5},
    )
    assert resp.status_code == 422
    fields = {err["path"][0] for err in resp.json()["error"]["details"]}
    assert fields == {"textModel", "imageModel", "maxTokens"}
    assert client.get("/settings").json()["textModel"] == "gpt-5-nano"
