"""Type definitions for sandbox execution and event streaming."""

import json
from collections.abc import AsyncIterable, Awaitable
from datetime import datetime
from typing import Annotated, Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, TypeAdapter

DEFAULT_MODEL = "sonnet"
DEFAULT_TIMEOUT_MS = 600_000
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 1000


class WorkspaceConfig(BaseModel):
    """Workspace preparation settings for one session (everything but the prompt)."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    repo: str | None = None
    branch: str | None = None
    # Working directory relative to the workspace root
    cwd: str | None = None
    model: str = DEFAULT_MODEL
    files: dict[str, str] | None = None
    env: dict[str, str] | None = None
    # Milliseconds, passed through to the sandbox exec layer
    timeout: int = DEFAULT_TIMEOUT_MS


class SandboxConfig(WorkspaceConfig):
    """Configuration for running the agent against a prompt."""

    prompt: str


class SandboxResult(BaseModel):
    """Outcome of a run-and-wait execution."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    exit_code: int
    started_at: datetime
    completed_at: datetime
    # Milliseconds
    duration: int
    error: str | None = None


class ReporterConfig(BaseModel):
    """Session endpoint and retry policy for event delivery."""

    model_config = ConfigDict(frozen=True)

    session_url: str
    auth_token: str | None = None
    retry_attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=0)
    # Milliseconds; doubles after every failed attempt
    retry_delay: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)


class Usage(BaseModel):
    """Token usage counters reported by the agent."""

    model_config = ConfigDict(extra="allow")

    input_tokens: StrictInt
    output_tokens: StrictInt
    cache_creation_input_tokens: StrictInt | None = None
    cache_read_input_tokens: StrictInt | None = None


class _Event(BaseModel):
    # Unknown keys are forwarded untouched; the payload is opaque to us.
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class AssistantEvent(_Event):
    type: Literal["assistant"] = "assistant"
    content: StrictStr


class ToolUseEvent(_Event):
    type: Literal["tool_use"] = "tool_use"
    tool: StrictStr
    input: Any = None


class ToolResultEvent(_Event):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: StrictStr | None = None
    output: Any = None


class ResultEvent(_Event):
    type: Literal["result"] = "result"
    usage: Usage | None = None
    stop_reason: StrictStr | None = None


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    error: StrictStr
    details: Any = None


class CompleteEvent(_Event):
    """Terminal event synthesized by the reporter once the process has exited."""

    type: Literal["complete"] = "complete"
    exit_code: StrictInt = Field(alias="exitCode")


StreamEvent = Annotated[
    AssistantEvent | ToolUseEvent | ToolResultEvent | ResultEvent | ErrorEvent | CompleteEvent,
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def dump_event(event: StreamEvent) -> str:
    """Serialize an event to compact JSON, keeping only the fields it was given."""
    payload = {
        "type": event.type,
        **event.model_dump(mode="json", by_alias=True, exclude_unset=True),
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class StreamSummary(BaseModel):
    """Aggregate counts over a sequence of stream events."""

    total_events: int = 0
    assistant_messages: int = 0
    tool_calls: int = 0
    tool_results: int = 0
    errors: int = 0
    usage: Usage | None = None
    stop_reason: str | None = None
    exit_code: int | None = None


class SandboxProcess(Protocol):
    """A running process inside the sandbox.

    ``exit_code`` must be awaitable more than once (an ``asyncio.Task`` or
    ``Future``): both the reporter and run-and-wait callers await it.
    """

    pid: int
    stdout: AsyncIterable[bytes]
    stderr: AsyncIterable[bytes]
    exit_code: Awaitable[int]

    async def kill(self) -> None: ...


class SandboxBinding(Protocol):
    """Sandbox capability: command execution and workspace file access."""

    async def exec(
        self,
        command: str,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        stream: bool = False,
        timeout: int | None = None,
    ) -> SandboxProcess: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def read_file(self, path: str) -> str: ...

    async def exists(self, path: str) -> bool: ...

    async def mkdir(self, path: str, *, recursive: bool = False) -> None: ...
