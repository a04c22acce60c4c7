"""Shared fixtures: scripted HTTP responses via httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any

import httpx
import pytest
import pytest_asyncio

BASE_URL = "http://ollama.test:11434"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def chunked_response(chunks: Iterable[bytes], status_code: int = 200) -> httpx.Response:
    """Response whose body arrives exactly in ``chunks``."""
    parts = list(chunks)

    async def body():
        for part in parts:
            yield part

    return httpx.Response(status_code, content=body())


def ndjson(*values: Any) -> bytes:
    return b"".join(json.dumps(v).encode("utf-8") + b"\n" for v in values)


def chat_fragment(content: str, done: bool = False) -> dict[str, Any]:
    return {
        "model": "test-model",
        "created_at": "2024-08-01T00:00:00Z",
        "message": {"role": "assistant", "content": content},
        "done": done,
    }


class RecordingAccumulator:
    """Accumulator that records every value and can stop at a given one."""

    def __init__(self, stop_at: int | None = None) -> None:
        self.values: list[Any] = []
        self.stop_at = stop_at

    def accumulate(self, value: Any):
        from murmur.accumulators import Flow

        self.values.append(value)
        if self.stop_at is not None and len(self.values) >= self.stop_at:
            return Flow.STOP
        return Flow.CONTINUE


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def mock_client():
    """Factory for AsyncClients backed by a request handler."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of Settings."""
    for var in (
        "OLLAMA_HOST",
        "MURMUR_LOG",
        "MURMUR_HISTFILE",
        "MURMUR_MODEL",
        "MURMUR_PS1",
        "MURMUR_LOG_LEVEL",
        "MURMUR_REQUEST_TIMEOUT",
        "MURMUR_SPINNER_INTERVAL",
    ):
        monkeypatch.delenv(var, raising=False)
