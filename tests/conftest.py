"""Pytest configuration and shared fixtures."""

import os
import sys
from pathlib import Path

import httpx
import pytest

# Ensure source tree is importable without editable install
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def pytest_configure(config):
    """Configure pytest markers and environment for tests."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")

    # These MUST override any developer shell/.env values to keep the test run deterministic.
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LLM_PROVIDER"] = "fake"
    os.environ["OPENAI_API_KEY"] = "sk-test"
    os.environ["REDIS_URL"] = ""
    os.environ["LOG_LEVEL"] = "WARNING"
    os.environ["RETRY_DELAYS_SECONDS"] = "1,2,5"


@pytest.fixture(autouse=True)
def block_external_http(monkeypatch):
    """Fail the fast lane if code tries to hit the public internet.

    Allowlist only localhost/loopback for local services.
    """

    allowed_hosts = {"test", "testserver", "localhost", "127.0.0.1", "0.0.0.0"}

    async def _async_guard(self, method, url, *args, **kwargs):  # type: ignore[no-untyped-def]
        u = httpx.URL(url) if not isinstance(url, httpx.URL) else url
        if u.scheme in {"http", "https"} and (u.host or "") not in allowed_hosts:
            raise RuntimeError(f"External HTTP blocked in tests: {u!s}")
        return await _orig_async_request(self, method, url, *args, **kwargs)

    def _sync_guard(self, method, url, *args, **kwargs):  # type: ignore[no-untyped-def]
        u = httpx.URL(url) if not isinstance(url, httpx.URL) else url
        if u.scheme in {"http", "https"} and (u.host or "") not in allowed_hosts:
            raise RuntimeError(f"External HTTP blocked in tests: {u!s}")
        return _orig_sync_request(self, method, url, *args, **kwargs)

    _orig_async_request = httpx.AsyncClient.request
    _orig_sync_request = httpx.Client.request
    monkeypatch.setattr(httpx.AsyncClient, "request", _async_guard, raising=True)
    monkeypatch.setattr(httpx.Client, "request", _sync_guard, raising=True)

    yield


@pytest.fixture(autouse=True)
def fresh_settings():
    """Rebuild Settings for every test so monkeypatched env vars take effect."""
    from personasim.config import reset_settings_cache

    reset_settings_cache()
    yield
    reset_settings_cache()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store():
    from personasim.storage.kv import InMemoryKeyValueStore

    return InMemoryKeyValueStore()


@pytest.fixture
def fake_client():
    from personasim.llm_clients import FakeCompletionClient

    return FakeCompletionClient()


@pytest.fixture
def beginner_persona():
    from personasim.models import PersonaTraits

    return PersonaTraits(
        name="Sarah Mitchell",
        tech_level="beginner",
        communication_style="casual",
        patience="low",
        emotional_state="frustrated",
    )


@pytest.fixture
def calm_persona():
    from personasim.models import PersonaTraits

    return PersonaTraits(
        name="Jennifer Williams",
        tech_level="intermediate",
        communication_style="casual",
        patience="medium",
        emotional_state="calm",
    )


@pytest.fixture
def conversation_store(kv_store):
    from personasim.storage.conversations import ConversationStore

    return ConversationStore(kv_store)


@pytest.fixture
def tracker(kv_store):
    from personasim.persona.tracker import PersonaStateTracker

    return PersonaStateTracker(kv_store)


@pytest.fixture
def gateway(fake_client, kv_store):
    from personasim.gateway import LanguageModelGateway

    return LanguageModelGateway(fake_client, cache=kv_store)
