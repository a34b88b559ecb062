"""
Workspace preparation inside the sandbox.

Clones the repository (or creates an empty workspace), checks out the
requested branch, and writes any initial files the caller supplied.
"""

from .log_config import StructuredLogger, configure_logging, get_logger
from .types import SandboxBinding, WorkspaceConfig
from .validation import validate_branch_name, validate_git_url, validate_workspace_path

configure_logging()

WORKSPACE_ROOT = "/workspace"
CLONE_TIMEOUT_MS = 60_000
CHECKOUT_TIMEOUT_MS = 10_000


class SetupError(RuntimeError):
    """Raised when a workspace setup command exits unsuccessfully."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


def workspace_path(relative: str) -> str:
    return f"{WORKSPACE_ROOT}/{relative}"


def validate_workspace_config(config: WorkspaceConfig) -> None:
    """Run every input check before anything is executed in the sandbox."""
    if config.repo:
        validate_git_url(config.repo)
    if config.branch:
        validate_branch_name(config.branch)
    if config.cwd:
        validate_workspace_path(config.cwd)
    for path in config.files or {}:
        validate_workspace_path(path)


async def _run_setup_command(
    sandbox: SandboxBinding,
    command: str,
    step: str,
    *,
    cwd: str | None = None,
    timeout: int,
    log: StructuredLogger,
) -> None:
    if cwd is None:
        proc = await sandbox.exec(command, timeout=timeout)
    else:
        proc = await sandbox.exec(command, cwd=cwd, timeout=timeout)

    exit_code = await proc.exit_code
    if exit_code != 0:
        log.error(f"git.{step}_error", exit_code=exit_code)
        raise SetupError(f"git {step} failed with exit code {exit_code}", exit_code)


async def setup_sandbox(sandbox: SandboxBinding, config: WorkspaceConfig) -> None:
    """Prepare the workspace without running the agent.

    Raises:
        InvalidInputError: If the repo URL, branch, cwd or a file path is unsafe.
        SetupError: If clone or checkout exits non-zero.
    """
    log = get_logger("workspace", service="sandbox", session_id=config.session_id)

    validate_workspace_config(config)

    if config.repo:
        log.info("git.clone_start", repo=config.repo)
        await _run_setup_command(
            sandbox,
            f"git clone {config.repo} {WORKSPACE_ROOT}",
            "clone",
            timeout=CLONE_TIMEOUT_MS,
            log=log,
        )
        log.info("git.clone_complete", repo_path=WORKSPACE_ROOT)

        if config.branch:
            await _run_setup_command(
                sandbox,
                f"git checkout {config.branch}",
                "checkout",
                cwd=WORKSPACE_ROOT,
                timeout=CHECKOUT_TIMEOUT_MS,
                log=log,
            )
            log.info("git.checkout_complete", branch=config.branch)
    else:
        if config.branch:
            log.debug("git.checkout_skip", reason="no_repo_configured", branch=config.branch)
        await sandbox.mkdir(WORKSPACE_ROOT, recursive=True)

    files = config.files or {}
    for path, content in files.items():
        await sandbox.write_file(workspace_path(path), content)
    if files:
        log.info("workspace.files_written", count=len(files))
