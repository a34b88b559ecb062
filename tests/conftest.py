"""Shared fixtures and fakes for sandbox relay tests."""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock

import pytest


class MockResponse:
    """Minimal stand-in for httpx.Response."""

    def __init__(self, status_code: int = 200, json_data: Any = None):
        self.status_code = status_code
        self._json_data = json_data

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return self._json_data


class MockHttpClient:
    """Records POSTs and replays queued responses (or raises queued exceptions)."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses: list[Any] = list(responses or [])
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    async def post(self, url: str, content: str | None = None, headers: dict | None = None):
        self.requests.append({"url": url, "content": content, "headers": headers or {}})
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response
        return MockResponse(200)

    async def aclose(self) -> None:
        self.closed = True

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r["content"]) for r in self.requests]


async def _iterate(chunks: list[Any], error: BaseException | None = None) -> AsyncIterator[Any]:
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


class FakeProcess:
    """SandboxProcess whose output and exit code are fixed up front."""

    def __init__(
        self,
        stdout: list[Any] | None = None,
        exit_code: int = 0,
        *,
        stderr: list[bytes] | None = None,
        stdout_error: BaseException | None = None,
        pid: int = 4242,
    ):
        self.pid = pid
        self.stdout = _iterate(stdout or [], stdout_error)
        self.stderr = _iterate(stderr or [])
        future = asyncio.get_running_loop().create_future()
        future.set_result(exit_code)
        self.exit_code = future
        self.killed = False

    async def kill(self) -> None:
        self.killed = True


def event_lines(*events: dict[str, Any]) -> list[bytes]:
    """Encode events the way the agent writes them: one JSON object per line."""
    return [(json.dumps(event) + "\n").encode() for event in events]


def make_sandbox(*processes: FakeProcess) -> AsyncMock:
    """AsyncMock sandbox whose exec returns the given processes in order."""
    sandbox = AsyncMock()
    sandbox.exec = AsyncMock(side_effect=list(processes))
    return sandbox


@pytest.fixture
def http_client() -> MockHttpClient:
    return MockHttpClient()


@pytest.fixture
def no_sleep(monkeypatch) -> list[float]:
    """Skip backoff delays in the reporter, recording what was requested."""
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr("sandbox_relay.reporter.asyncio.sleep", fake_sleep)
    return delays
