"""Agent process launch inside the sandbox."""

from .log_config import configure_logging, get_logger
from .types import SandboxBinding, SandboxProcess
from .workspace import WORKSPACE_ROOT, workspace_path

configure_logging()

log = get_logger("launcher", service="sandbox")


def resolve_workdir(cwd: str | None) -> str:
    return workspace_path(cwd) if cwd else WORKSPACE_ROOT


def build_agent_env(env: dict[str, str] | None) -> dict[str, str]:
    """Caller environment plus the API key entry the agent reads.

    A missing key is passed as empty; the agent fails loudly on its own.
    """
    env = dict(env or {})
    env["ANTHROPIC_API_KEY"] = env.get("ANTHROPIC_API_KEY", "")
    return env


async def launch_agent(
    sandbox: SandboxBinding,
    command: str,
    *,
    cwd: str,
    env: dict[str, str],
    timeout: int,
) -> SandboxProcess:
    """Start the command as a streaming process. Does not drain or wait."""
    proc = await sandbox.exec(command, cwd=cwd, env=env, stream=True, timeout=timeout)
    log.info("agent.start", pid=proc.pid, cwd=cwd, timeout_ms=timeout)
    return proc
