"""Tests for the chat and admission API routes.

Each test builds its own application so usage counters never leak between
tests. The LLM client is replaced by an in-process fake.
"""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.adapters.llm.base import AbstractLLMClient, ChatMessage, LLMReply
from app.core.app_factory import create_app
from app.core.config import RateLimitSettings, Settings


class FakeLLMClient(AbstractLLMClient):
    """Records calls and returns a canned reply."""

    def __init__(self, reply: LLMReply | None = None, error: Exception | None = None) -> None:
        self.reply = reply or LLMReply(content="Hi! How can I help?", prompt_tokens=100, completion_tokens=50)
        self.error = error
        self.calls: list[list[ChatMessage]] = []
        self.kwargs: list[dict[str, Any]] = []

    async def generate_reply(self, messages: list[ChatMessage], **kwargs: Any) -> LLMReply:
        self.calls.append(messages)
        self.kwargs.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.reply


def make_settings(**overrides: Any) -> Settings:
    rate_limit = {
        "requests_limit": 3,
        "burst_limit": 100,
        "usage_limit": 5000,
        "sessions_limit": 2,
        "sessions_exempt_keys": "10.9.9.9",
    }
    rate_limit.update(overrides)
    return Settings(rate_limit=RateLimitSettings(**rate_limit))


@pytest.fixture
def llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def client(llm: FakeLLMClient) -> TestClient:
    return TestClient(create_app(make_settings(), llm_client=llm))


def chat_body(content: str = "Hello there", session_id: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"messages": [{"role": "user", "content": content}]}
    if session_id is not None:
        body["session_id"] = session_id
    return body


CLIENT_A = {"X-Forwarded-For": "203.0.113.7", "X-Session-ID": "conv-1"}


class TestChatAdmitted:
    def test_returns_reply_and_quota_headers(self, client: TestClient, llm: FakeLLMClient) -> None:
        response = client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)

        assert response.status_code == 200
        data = response.json()
        assert data["reply"] == "Hi! How can I help?"
        assert data["session_id"] == "conv-1"
        assert data["usage"] == {"reserved_units": 3, "prompt_tokens": 100, "completion_tokens": 50}

        assert response.headers["X-Session-ID"] == "conv-1"
        assert response.headers["X-RateLimit-Requests-Limit"] == "3"
        assert response.headers["X-RateLimit-Requests-Remaining"] == "2"
        assert response.headers["X-RateLimit-Tokens-Limit"] == "5000"
        assert response.headers["X-RateLimit-Tokens-Remaining"] == "4850"
        assert response.headers["X-RateLimit-Sessions-Limit"] == "2"
        assert int(response.headers["X-RateLimit-Requests-Reset"]) > 0
        assert "Retry-After" not in response.headers

    def test_system_prompt_and_options_sent_to_llm(self, client: TestClient, llm: FakeLLMClient) -> None:
        client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)

        messages = llm.calls[0]
        assert messages[0].role == "system"
        assert messages[-1].content == "Hello there"
        assert set(llm.kwargs[0]) == {"temperature", "max_tokens"}

    def test_generates_session_id_when_absent(self, client: TestClient) -> None:
        response = client.post("/v1/chat", json=chat_body())

        assert response.status_code == 200
        assert response.headers["X-Session-ID"] == response.json()["session_id"]

    def test_body_session_id_is_used(self, client: TestClient) -> None:
        response = client.post("/v1/chat", json=chat_body(session_id="from-body"))
        assert response.json()["session_id"] == "from-body"


class TestChatRejected:
    def test_requests_limit_returns_429(self, client: TestClient, llm: FakeLLMClient) -> None:
        for _ in range(3):
            assert client.post("/v1/chat", json=chat_body(), headers=CLIENT_A).status_code == 200

        response = client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)

        assert response.status_code == 429
        data = response.json()
        assert data["error"] == "Rate limit exceeded"
        assert data["type"] == "requests"
        assert data["limit"] == 3
        assert data["remaining"] == 0
        assert isinstance(data["resetTime"], int)
        assert "Too many requests" in data["message"]

        assert response.headers["X-RateLimit-Type"] == "requests"
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == str(data["resetTime"])
        assert 0 < int(response.headers["Retry-After"]) <= 3600

        assert len(llm.calls) == 3

    def test_other_clients_unaffected(self, client: TestClient) -> None:
        for _ in range(4):
            client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)

        other = {"X-Forwarded-For": "198.51.100.4"}
        assert client.post("/v1/chat", json=chat_body(), headers=other).status_code == 200

    def test_session_cap_returns_429(self, llm: FakeLLMClient) -> None:
        client = TestClient(create_app(make_settings(requests_limit=10), llm_client=llm))
        headers = {"X-Forwarded-For": "203.0.113.7"}

        for session_id in ("s1", "s2"):
            response = client.post("/v1/chat", json=chat_body(session_id=session_id), headers=headers)
            assert response.status_code == 200

        response = client.post("/v1/chat", json=chat_body(session_id="s3"), headers=headers)
        assert response.status_code == 429
        assert response.json()["type"] == "sessions"
        assert response.headers["Retry-After"] == "60"

        released = client.delete("/v1/chat/sessions/s1", headers=headers)
        assert released.status_code == 204

        response = client.post("/v1/chat", json=chat_body(session_id="s3"), headers=headers)
        assert response.status_code == 200

    def test_exempt_key_skips_session_cap(self, llm: FakeLLMClient) -> None:
        client = TestClient(create_app(make_settings(requests_limit=10), llm_client=llm))
        headers = {"X-Forwarded-For": "10.9.9.9"}

        for n in range(5):
            response = client.post("/v1/chat", json=chat_body(session_id=f"s{n}"), headers=headers)
            assert response.status_code == 200

    def test_usage_budget_returns_429(self, llm: FakeLLMClient) -> None:
        client = TestClient(create_app(make_settings(usage_limit=10), llm_client=llm))

        response = client.post("/v1/chat", json=chat_body("x" * 200), headers=CLIENT_A)

        assert response.status_code == 429
        assert response.json()["type"] == "tokens"
        assert response.json()["remaining"] == 10
        assert llm.calls == []


class TestChatErrors:
    def test_last_message_must_be_user(self, client: TestClient, llm: FakeLLMClient) -> None:
        body = {
            "messages": [
                {"role": "user", "content": "Hello"},
                {"role": "assistant", "content": "Hi"},
            ]
        }
        response = client.post("/v1/chat", json=body, headers=CLIENT_A)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "last_message_not_user"
        assert llm.calls == []

        quota = client.get("/v1/admission/quota", headers=CLIENT_A).json()
        assert quota["requests"]["remaining"] == 3

    def test_empty_messages_rejected_by_schema(self, client: TestClient) -> None:
        response = client.post("/v1/chat", json={"messages": []})
        assert response.status_code == 422

    def test_llm_failure_returns_500(self) -> None:
        llm = FakeLLMClient(error=RuntimeError("OpenAI API error: timeout"))
        client = TestClient(create_app(make_settings(), llm_client=llm))

        response = client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "llm_call_failed"


class TestAdmissionEndpoints:
    def test_quota_reflects_usage(self, client: TestClient) -> None:
        client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)

        response = client.get("/v1/admission/quota", headers={"X-Forwarded-For": "203.0.113.7"})

        assert response.status_code == 200
        data = response.json()
        assert data["client_key"] == "203.0.113.7"
        assert data["requests"]["remaining"] == 2
        assert data["tokens"]["remaining"] == 4850
        assert data["sessions_limit"] == 2
        assert data["session_exempt"] is False

    def test_quota_does_not_consume(self, client: TestClient) -> None:
        for _ in range(5):
            client.get("/v1/admission/quota", headers=CLIENT_A)
        assert client.post("/v1/chat", json=chat_body(), headers=CLIENT_A).status_code == 200

    def test_stats(self, client: TestClient) -> None:
        client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)

        data = client.get("/v1/admission/stats").json()

        assert data == {
            "enabled": True,
            "burst_entries": 1,
            "request_entries": 1,
            "usage_entries": 1,
            "session_entries": 1,
            "active_sessions": 1,
        }


def test_disabled_admission_never_rejects(llm: FakeLLMClient) -> None:
    client = TestClient(create_app(make_settings(enabled=False), llm_client=llm))

    for _ in range(10):
        response = client.post("/v1/chat", json=chat_body(), headers=CLIENT_A)
        assert response.status_code == 200


def test_lifespan_runs_sweeper(llm: FakeLLMClient) -> None:
    app = create_app(make_settings(), llm_client=llm)

    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok", "sweeper": "running"}

    assert app.state.expiry_sweeper.running is False
