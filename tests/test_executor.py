"""Tests for the sandbox execution entry points."""

import asyncio
from unittest.mock import call

import pytest

from sandbox_relay.executor import execute_and_wait, execute_in_sandbox, kill_sandbox_process
from sandbox_relay.launcher import build_agent_env, resolve_workdir
from sandbox_relay.types import SandboxConfig
from sandbox_relay.validation import InvalidInputError
from tests.conftest import FakeProcess, event_lines, make_sandbox

AGENT_COMMAND = (
    "pnpm claude --output-format stream-json"
    ' --print "assistant,result,tool_use,tool_result"'
    " --model sonnet -p "
)


class TestLauncherHelpers:
    """Tests for working directory and environment resolution."""

    def test_workdir_defaults_to_workspace_root(self):
        assert resolve_workdir(None) == "/workspace"

    def test_workdir_is_relative_to_workspace(self):
        assert resolve_workdir("packages/app") == "/workspace/packages/app"

    def test_env_gets_api_key_entry(self):
        assert build_agent_env(None) == {"ANTHROPIC_API_KEY": ""}

    def test_env_keeps_caller_values(self):
        env = build_agent_env({"ANTHROPIC_API_KEY": "sk-test", "DEBUG": "1"})
        assert env == {"ANTHROPIC_API_KEY": "sk-test", "DEBUG": "1"}


class TestExecuteInSandbox:
    """Tests for execute_in_sandbox."""

    @pytest.mark.asyncio
    async def test_launches_agent_in_workspace(self):
        agent = FakeProcess()
        sandbox = make_sandbox(agent)
        config = SandboxConfig(session_id="s1", prompt="Hello")

        proc = await execute_in_sandbox(sandbox, config)

        assert proc is agent
        sandbox.mkdir.assert_awaited_once_with("/workspace", recursive=True)
        sandbox.exec.assert_awaited_once_with(
            AGENT_COMMAND + '"Hello"',
            cwd="/workspace",
            env={"ANTHROPIC_API_KEY": ""},
            stream=True,
            timeout=600000,
        )

    @pytest.mark.asyncio
    async def test_clone_then_launch_in_subdirectory(self):
        sandbox = make_sandbox(FakeProcess(), FakeProcess(), FakeProcess())
        config = SandboxConfig(
            session_id="s1",
            prompt='Fix the "bug"',
            repo="https://github.com/x/y.git",
            branch="main",
            cwd="packages/app",
            env={"ANTHROPIC_API_KEY": "sk-test"},
            timeout=30000,
        )

        await execute_in_sandbox(sandbox, config)

        assert sandbox.exec.call_args_list == [
            call("git clone https://github.com/x/y.git /workspace", timeout=60000),
            call("git checkout main", cwd="/workspace", timeout=10000),
            call(
                AGENT_COMMAND + '"Fix the \\"bug\\""',
                cwd="/workspace/packages/app",
                env={"ANTHROPIC_API_KEY": "sk-test"},
                stream=True,
                timeout=30000,
            ),
        ]

    @pytest.mark.asyncio
    async def test_invalid_model_rejected_before_setup(self):
        sandbox = make_sandbox()
        config = SandboxConfig(session_id="s1", prompt="Hello", model="sonnet; id")

        with pytest.raises(InvalidInputError):
            await execute_in_sandbox(sandbox, config)

        sandbox.mkdir.assert_not_called()
        sandbox.exec.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_repo_raises(self):
        sandbox = make_sandbox()
        config = SandboxConfig(session_id="s1", prompt="Hello", repo="ftp://example.com/x.git")

        with pytest.raises(InvalidInputError, match="Invalid git URL format"):
            await execute_in_sandbox(sandbox, config)


class TestExecuteAndWait:
    """Tests for execute_and_wait."""

    @pytest.mark.asyncio
    async def test_returns_exit_code(self):
        agent = FakeProcess(
            event_lines({"type": "assistant", "content": "hi"}),
            exit_code=0,
            stderr=[b"warning: something\n"],
        )
        sandbox = make_sandbox(agent)
        config = SandboxConfig(session_id="s1", prompt="Hello")

        result = await execute_and_wait(sandbox, config)

        assert result.session_id == "s1"
        assert result.exit_code == 0
        assert result.error is None
        assert result.completed_at >= result.started_at
        assert result.duration >= 0

    @pytest.mark.asyncio
    async def test_reports_nonzero_exit(self):
        sandbox = make_sandbox(FakeProcess(exit_code=3))
        config = SandboxConfig(session_id="s1", prompt="Hello")

        result = await execute_and_wait(sandbox, config)

        assert result.exit_code == 3
        assert result.error is None

    @pytest.mark.asyncio
    async def test_exec_failure_becomes_result(self):
        """Never raises: a failing exec yields exit code 1 and the message."""
        sandbox = make_sandbox()
        sandbox.exec.side_effect = RuntimeError("Sandbox unavailable")
        config = SandboxConfig(
            session_id="s1", prompt="Hello", repo="https://github.com/x/y.git"
        )

        result = await execute_and_wait(sandbox, config)

        assert result.exit_code == 1
        assert result.error == "Sandbox unavailable"

    @pytest.mark.asyncio
    async def test_validation_failure_becomes_result(self):
        sandbox = make_sandbox()
        config = SandboxConfig(
            session_id="s1", prompt="Hello", repo="https://github.com/x/y.git; rm -rf /"
        )

        result = await execute_and_wait(sandbox, config)

        assert result.exit_code == 1
        assert "contains unsafe characters" in result.error

    @pytest.mark.asyncio
    async def test_error_without_message_uses_type_name(self):
        sandbox = make_sandbox()
        sandbox.mkdir.side_effect = PermissionError()
        config = SandboxConfig(session_id="s1", prompt="Hello")

        result = await execute_and_wait(sandbox, config)

        assert result.exit_code == 1
        assert result.error == "PermissionError"

    @pytest.mark.asyncio
    async def test_stream_failure_stops_other_drain(self):
        """A failing stdout cancels the stderr drain before the result is returned."""
        stderr_closed = asyncio.Event()

        async def endless_stderr():
            try:
                yield b"still running\n"
                await asyncio.Event().wait()
            finally:
                stderr_closed.set()

        agent = FakeProcess(stdout_error=OSError("pipe closed"))
        agent.stderr = endless_stderr()
        sandbox = make_sandbox(agent)
        config = SandboxConfig(session_id="s1", prompt="Hello")

        result = await asyncio.wait_for(execute_and_wait(sandbox, config), timeout=5)

        assert result.exit_code == 1
        assert result.error == "pipe closed"
        assert stderr_closed.is_set()
        assert not agent.exit_code.cancelled()


class TestKillSandboxProcess:
    """Tests for kill_sandbox_process."""

    @pytest.mark.asyncio
    async def test_kills_process(self, caplog):
        proc = FakeProcess(pid=12345)

        await kill_sandbox_process(proc)

        assert proc.killed
        assert "Killing sandbox process: PID 12345" in caplog.text
