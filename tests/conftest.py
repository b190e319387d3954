"""
pytest configuration and shared fixtures for the Draft Relay tests.

Key concern: tests must not require a live MongoDB or Gemini API key.
We achieve this by:
  1. Overriding get_counter_store with a MemoryCounterStore driven by a
     ManualClock, and pinning rate_limit.utcnow to the same clock so
     bucket keys and expiry agree.
  2. Overriding get_gemini_client with a GeminiClient on an
     httpx.MockTransport (FakeGemini) that records every outbound request.
  3. Setting a dummy GEMINI_API_KEY; tests that need "unconfigured"
     clear it with monkeypatch.

HTTPX's ASGITransport runs the app to completion, so background counter
writes have landed by the time a test sees the response.
"""

import os
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("COUNTER_STORE", "memory")

# 2026-03-14T09:26:30Z, mid-minute, so small advances stay in the same bucket
START_TS = datetime(2026, 3, 14, 9, 26, 30, tzinfo=timezone.utc).timestamp()

GEMINI_TEST_URL = "https://gemini.test/v1beta"
TEST_API_KEY = "test-key"


class ManualClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = START_TS) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=timezone.utc)


def gemini_body(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


class FakeGemini:
    """
    Stand-in for the generateContent endpoint.

    Set .status / .body / .raw / .error before the request to shape the
    reply; inspect .requests afterwards.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status = 200
        self.body: Any = gemini_body("Hi Caleb,\n\nCould we meet Tuesday?\n\nThanks,\nSam")
        self.raw: str | None = None
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.raw is not None:
            return httpx.Response(self.status, text=self.raw)
        return httpx.Response(self.status, json=self.body)

    def client(self):
        from draft_relay.ai.gemini_client import GeminiClient

        return GeminiClient(base_url=GEMINI_TEST_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def clock(monkeypatch) -> ManualClock:
    import draft_relay.core.rate_limit as rate_limit_module

    manual = ManualClock()
    monkeypatch.setattr(rate_limit_module, "utcnow", manual.utcnow)
    return manual


@pytest.fixture()
def store(clock):
    from draft_relay.core.counter_store import MemoryCounterStore

    return MemoryCounterStore(clock=clock)


@pytest.fixture()
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture(autouse=True)
def configured(monkeypatch):
    """Known settings for every test; monkeypatch restores them afterwards."""
    from draft_relay.core.config import DEFAULT_SYSTEM_PROMPT, settings

    monkeypatch.setattr(settings, "gemini_api_key", TEST_API_KEY)
    monkeypatch.setattr(settings, "minute_limit", 3)
    monkeypatch.setattr(settings, "daily_limit", 20)
    monkeypatch.setattr(settings, "model", "gemini-2.0-flash")
    monkeypatch.setattr(settings, "system_prompt", DEFAULT_SYSTEM_PROMPT)
    monkeypatch.setattr(settings, "caller_ip_header", "cf-connecting-ip")
    return settings


@pytest.fixture()
async def client(store, fake_gemini):
    """
    HTTPX async test client wired to the FastAPI app.

    Usage:
        async def test_something(client):
            response = await client.post("/", json={"prompt": "hello"})
            assert response.status_code == 200
    """
    from draft_relay.ai.gemini_client import get_gemini_client
    from draft_relay.core.counter_store import get_counter_store
    from draft_relay.main import app

    app.dependency_overrides[get_counter_store] = lambda: store
    app.dependency_overrides[get_gemini_client] = fake_gemini.client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
