import asyncio
import os

import pytest

from gemini_relay import relay as relay_module
from gemini_relay.config import RelayConfig
from gemini_relay.logging_utils import JsonlLogger
from gemini_relay.metrics import MetricsAggregator
from gemini_relay.relay import GeminiRelay


def candidate_line(text: str) -> str:
    return 'data: {"candidates":[{"content":{"parts":[{"text":"%s"}]}}]}\n' % text


class FakeUpstreamResponse:
    """Stands in for the object returned by ``httpx.AsyncClient.stream``."""

    def __init__(self, status_code=200, chunks=(), body=b"", fail_with=None):
        self.status_code = status_code
        self.chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.fail_with = fail_with
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    async def aread(self):
        return self.body

    async def aiter_bytes(self):
        for chunk in self.chunks:
            yield chunk
        if self.fail_with is not None:
            raise self.fail_with


class FakeUpstream:
    def __init__(self):
        self.calls = []
        self.response = FakeUpstreamResponse()

    def respond(self, **kwargs) -> FakeUpstreamResponse:
        self.response = FakeUpstreamResponse(**kwargs)
        return self.response


@pytest.fixture(autouse=True)
def clear_relay_env(monkeypatch, tmp_path):
    for key in list(os.environ.keys()):
        if key.startswith("GEMINI_RELAY_") or key in {"GEMINI_API_KEY", "PORT"}:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GEMINI_RELAY_CONFIG_FILE", str(tmp_path / "relay.toml"))
    yield


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeUpstream()

    def fake_stream(self, method, url, **kwargs):
        fake.calls.append({"method": method, "url": url, **kwargs})
        return fake.response

    monkeypatch.setattr(relay_module.httpx.AsyncClient, "stream", fake_stream)
    return fake


@pytest.fixture
def cfg():
    return RelayConfig(api_key="test-key", log_path="")


@pytest.fixture
def relay(cfg):
    return GeminiRelay(cfg, MetricsAggregator(), JsonlLogger(""))


@pytest.fixture
def collect():
    def _collect(relay, model_type=None, contents=None):
        async def _run():
            return [frame async for frame in relay.stream(model_type, contents)]

        return asyncio.run(_run())

    return _collect


@pytest.fixture
def candidate():
    return candidate_line
