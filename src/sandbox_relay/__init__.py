"""Run a coding agent in a sandbox and relay its stream-JSON events to a session."""

from .executor import execute_and_wait, execute_in_sandbox, kill_sandbox_process, setup_sandbox
from .reporter import DeliveryExhaustedError, SandboxReporter, report_sandbox_events
from .stream_parser import (
    parse_stream_json,
    parse_stream_json_lines,
    stream_events,
    summarize_stream_events,
)
from .types import (
    ReporterConfig,
    SandboxBinding,
    SandboxConfig,
    SandboxProcess,
    SandboxResult,
    StreamEvent,
    WorkspaceConfig,
)
from .validation import InvalidInputError, validate_branch_name, validate_git_url
from .workspace import SetupError

__all__ = [
    "DeliveryExhaustedError",
    "InvalidInputError",
    "ReporterConfig",
    "SandboxBinding",
    "SandboxConfig",
    "SandboxProcess",
    "SandboxReporter",
    "SandboxResult",
    "SetupError",
    "StreamEvent",
    "WorkspaceConfig",
    "execute_and_wait",
    "execute_in_sandbox",
    "kill_sandbox_process",
    "parse_stream_json",
    "parse_stream_json_lines",
    "report_sandbox_events",
    "setup_sandbox",
    "stream_events",
    "summarize_stream_events",
    "validate_branch_name",
    "validate_git_url",
]
