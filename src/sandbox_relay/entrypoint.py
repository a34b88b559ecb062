#!/usr/bin/env python3
"""
Sandbox entrypoint - runs one agent session and relays its events.

Runs inside the sandbox container:
1. Prepare /workspace (clone, checkout, initial files)
2. Start the agent with structured streaming output
3. Relay every event to the session collector, then the completion event
4. Exit with the agent's exit code
"""

import argparse
import asyncio
import os
import sys
import time
from collections.abc import AsyncIterable

from pydantic import ValidationError

from .executor import execute_in_sandbox, kill_sandbox_process
from .local import LocalSandbox
from .log_config import StructuredLogger, configure_logging, get_logger
from .reporter import DeliveryExhaustedError, report_sandbox_events
from .types import (
    DEFAULT_MODEL,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
    ReporterConfig,
    SandboxConfig,
)
from .validation import InvalidInputError
from .workspace import SetupError

configure_logging()

EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2

# Seconds to let trailing stderr reach the log after the agent exits
STDERR_FLUSH_TIMEOUT = 5.0
# Longer stderr lines are logged in pieces
MAX_STDERR_LINE = 64 * 1024


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a sandboxed agent and stream its events")
    parser.add_argument("--session-id", required=True, help="Session ID")
    parser.add_argument("--session-url", required=True, help="Session collector base URL")
    parser.add_argument("--prompt", required=True, help="Prompt for the agent")
    parser.add_argument("--token", default=None, help="Bearer token for the collector")
    parser.add_argument("--repo", default=None, help="Repository URL to clone")
    parser.add_argument("--branch", default=None, help="Branch to check out")
    parser.add_argument("--cwd", default=None, help="Working directory inside /workspace")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="Agent model")
    parser.add_argument(
        "--timeout", type=int, default=DEFAULT_TIMEOUT_MS, help="Agent timeout (ms)"
    )
    parser.add_argument(
        "--retry-attempts",
        type=int,
        default=DEFAULT_RETRY_ATTEMPTS,
        help="Delivery retries per event",
    )
    parser.add_argument(
        "--retry-delay",
        type=int,
        default=DEFAULT_RETRY_DELAY_MS,
        help="Base retry delay (ms)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> tuple[SandboxConfig, ReporterConfig]:
    env = {}
    if os.environ.get("ANTHROPIC_API_KEY"):
        env["ANTHROPIC_API_KEY"] = os.environ["ANTHROPIC_API_KEY"]

    sandbox_config = SandboxConfig(
        session_id=args.session_id,
        prompt=args.prompt,
        repo=args.repo,
        branch=args.branch,
        cwd=args.cwd,
        model=args.model,
        env=env,
        timeout=args.timeout,
    )
    reporter_config = ReporterConfig(
        session_url=args.session_url,
        auth_token=args.token,
        retry_attempts=args.retry_attempts,
        retry_delay=args.retry_delay,
    )
    return sandbox_config, reporter_config


async def forward_agent_logs(stream: AsyncIterable[bytes], log: StructuredLogger) -> None:
    """Forward agent stderr to the log line by line so its pipe never fills."""
    buffer = b""
    try:
        async for chunk in stream:
            buffer += chunk
            while b"\n" in buffer:
                line, buffer = buffer.split(b"\n", 1)
                log.debug("agent.stderr", line=line.decode(errors="replace").rstrip())
            if len(buffer) > MAX_STDERR_LINE:
                log.debug("agent.stderr", line=buffer.decode(errors="replace"), truncated=True)
                buffer = b""
        if buffer.strip():
            log.debug("agent.stderr", line=buffer.decode(errors="replace").rstrip())
    except Exception as e:
        log.warn("agent.stderr_forward_error", exc=e)


async def run(sandbox_config: SandboxConfig, reporter_config: ReporterConfig) -> int:
    """Execute one session and return the process exit status to use."""
    log = get_logger("entrypoint", service="sandbox", session_id=sandbox_config.session_id)
    start_time = time.time()
    outcome = "success"
    exit_code = EXIT_FAILURE
    proc = None
    stderr_task = None

    log.info("session.start", model=sandbox_config.model, has_repo=bool(sandbox_config.repo))

    try:
        proc = await execute_in_sandbox(LocalSandbox(), sandbox_config)
        stderr_task = asyncio.create_task(forward_agent_logs(proc.stderr, log))
        await report_sandbox_events(proc, reporter_config)
        exit_code = await proc.exit_code
    except InvalidInputError as e:
        outcome = "invalid_input"
        exit_code = EXIT_INVALID_INPUT
        log.error("session.invalid_input", exc=e)
    except SetupError as e:
        outcome = "setup_error"
        log.error("session.setup_error", exc=e, exit_code=e.exit_code)
    except DeliveryExhaustedError as e:
        outcome = "delivery_error"
        log.error("session.delivery_error", exc=e, attempts=e.attempts)
    except Exception as e:
        outcome = "error"
        log.error("session.error", exc=e)
    finally:
        if outcome != "success" and proc is not None:
            await kill_sandbox_process(proc)
        if stderr_task is not None:
            if outcome != "success":
                stderr_task.cancel()
            await asyncio.wait([stderr_task], timeout=STDERR_FLUSH_TIMEOUT)
            stderr_task.cancel()
        duration_ms = int((time.time() - start_time) * 1000)
        log.info("session.run", outcome=outcome, exit_code=exit_code, duration_ms=duration_ms)

    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Entry point for the sandbox relay."""
    args = build_parser().parse_args(argv)
    try:
        sandbox_config, reporter_config = config_from_args(args)
    except ValidationError as e:
        log = get_logger("entrypoint", service="sandbox", session_id=args.session_id)
        log.error("session.invalid_config", exc=e, error_count=e.error_count())
        return EXIT_INVALID_INPUT
    return asyncio.run(run(sandbox_config, reporter_config))


if __name__ == "__main__":
    sys.exit(main())
