from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.adapters.llm.base import AbstractLLMClient, LLMReply


class _StaticLLM(AbstractLLMClient):
    async def generate_reply(self, messages, **kwargs) -> LLMReply:
        return LLMReply(content="ok")


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(llm_client=_StaticLLM()))


def test_preserves_incoming_request_id_header(client: TestClient):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client: TestClient):
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
    assert len(generated) > 0

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_request_id_present_on_rate_limited_response(client: TestClient):
    headers = {"X-Forwarded-For": "203.0.113.50", "X-Request-ID": "rl-1"}
    body = {"messages": [{"role": "user", "content": "hi"}]}

    statuses = [client.post("/v1/chat", json=body, headers=headers).status_code for _ in range(6)]
    resp = client.post("/v1/chat", json=body, headers=headers)

    assert 429 in statuses + [resp.status_code]
    assert resp.headers.get("X-Request-ID") == "rl-1"


def test_access_log_emitted(client: TestClient, caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.INFO, logger="app.core.middleware"):
        client.get("/health", headers={"X-Request-ID": "log-1"})

    records = [r for r in caplog.records if r.getMessage() == "http.request"]
    assert records
    assert records[-1].status == 200
    assert records[-1].route == "/health"
