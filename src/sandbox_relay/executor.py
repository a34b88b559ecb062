"""
Sandbox execution entry points.

- execute_in_sandbox: prepare the workspace, start the agent, hand back the
  live process (the caller drains it, usually via the reporter)
- execute_and_wait: same, then wait for exit and summarize; never raises
- setup_sandbox: workspace preparation only
- kill_sandbox_process: request termination
"""

import asyncio
import time
from collections.abc import AsyncIterable
from datetime import UTC, datetime

from .command import build_agent_command
from .launcher import build_agent_env, launch_agent, resolve_workdir
from .log_config import configure_logging, get_logger
from .types import SandboxBinding, SandboxConfig, SandboxProcess, SandboxResult
from .validation import validate_model_name
from .workspace import setup_sandbox

configure_logging()

log = get_logger("executor", service="sandbox")

__all__ = [
    "execute_and_wait",
    "execute_in_sandbox",
    "kill_sandbox_process",
    "setup_sandbox",
]


async def execute_in_sandbox(sandbox: SandboxBinding, config: SandboxConfig) -> SandboxProcess:
    """Set up the workspace and launch the agent without waiting on it.

    All inputs are validated before anything runs in the sandbox.
    """
    validate_model_name(config.model)
    await setup_sandbox(sandbox, config)

    command = build_agent_command(config.prompt, config.model)
    return await launch_agent(
        sandbox,
        command,
        cwd=resolve_workdir(config.cwd),
        env=build_agent_env(config.env),
        timeout=config.timeout,
    )


async def _drain(stream: AsyncIterable[bytes]) -> None:
    async for _chunk in stream:
        pass


async def _wait_for_exit(proc: SandboxProcess) -> int:
    # Keep the pipes flowing so a chatty agent cannot block on a full buffer.
    drains = [
        asyncio.ensure_future(_drain(proc.stdout)),
        asyncio.ensure_future(_drain(proc.stderr)),
    ]
    try:
        _, _, exit_code = await asyncio.gather(*drains, asyncio.shield(proc.exit_code))
    except BaseException:
        for drain in drains:
            drain.cancel()
        await asyncio.gather(*drains, return_exceptions=True)
        raise
    return exit_code


async def execute_and_wait(sandbox: SandboxBinding, config: SandboxConfig) -> SandboxResult:
    """Run the agent to completion and return a result summary.

    Failures during setup, launch or waiting are reported in the result
    (exit code 1 plus the error message) instead of being raised.
    """
    started_at = datetime.now(UTC)
    start_time = time.monotonic()
    exit_code = 1
    error: str | None = None

    try:
        proc = await execute_in_sandbox(sandbox, config)
        exit_code = await _wait_for_exit(proc)
    except Exception as e:
        error = str(e) or type(e).__name__
        log.error("sandbox.run_error", session_id=config.session_id, exc=e)

    completed_at = datetime.now(UTC)
    duration_ms = int((time.monotonic() - start_time) * 1000)
    log.info(
        "sandbox.run",
        session_id=config.session_id,
        exit_code=exit_code,
        outcome="error" if error else "success",
        duration_ms=duration_ms,
    )

    return SandboxResult(
        session_id=config.session_id,
        exit_code=exit_code,
        started_at=started_at,
        completed_at=completed_at,
        duration=duration_ms,
        error=error,
    )


async def kill_sandbox_process(process: SandboxProcess) -> None:
    """Request termination; does not stop a reporter still delivering events."""
    log.info("sandbox.kill", pid=process.pid, detail=f"Killing sandbox process: PID {process.pid}")
    await process.kill()
