"""
Sandbox binding for code already running inside the sandbox container.

Commands run directly through the shell with asyncio subprocesses and files
are read and written on the local filesystem. The container itself is the
isolation boundary; nothing here restricts what a command can do.
"""

import asyncio
import os
from collections.abc import AsyncIterator
from pathlib import Path

from .log_config import configure_logging, get_logger

configure_logging()

log = get_logger("local_sandbox", service="sandbox")


class ProcessTimeoutError(TimeoutError):
    """Raised from a process's exit code when it outlives its timeout."""

    pass


class LocalProcess:
    """A shell process started by LocalSandbox.

    Streaming processes expose stdout/stderr as they are produced. Buffered
    processes collect output while running and replay it once they exit, so
    callers that only await the exit code cannot stall on a full pipe.
    """

    READ_CHUNK_SIZE = 64 * 1024
    REAP_POLL_INTERVAL = 0.05

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        stream: bool,
        timeout: int | None,
    ):
        self._process = process
        self._timeout = timeout
        self._output: tuple[bytes, bytes] = (b"", b"")
        self.pid = process.pid

        if stream:
            self.stdout = self._read_chunks(process.stdout)
            self.stderr = self._read_chunks(process.stderr)
            self.exit_code = asyncio.ensure_future(self._wait(self._reap()))
        else:
            self.stdout = self._replay(0)
            self.stderr = self._replay(1)
            self.exit_code = asyncio.ensure_future(self._wait(self._communicate()))

    async def _read_chunks(self, reader: asyncio.StreamReader | None) -> AsyncIterator[bytes]:
        if reader is None:
            return
        while chunk := await reader.read(self.READ_CHUNK_SIZE):
            yield chunk

    async def _communicate(self) -> int:
        stdout, stderr = await self._process.communicate()
        self._output = (stdout or b"", stderr or b"")
        return self._process.returncode

    async def _reap(self) -> int:
        # Process.wait() only returns once every pipe has closed, which never
        # happens while a reader is paused on a full buffer.
        while self._process.returncode is None:
            await asyncio.sleep(self.REAP_POLL_INTERVAL)
        return self._process.returncode

    async def _replay(self, index: int) -> AsyncIterator[bytes]:
        await self.exit_code
        if self._output[index]:
            yield self._output[index]

    async def _wait(self, waiter) -> int:
        if self._timeout is None:
            return await waiter

        try:
            return await asyncio.wait_for(waiter, timeout=self._timeout / 1000)
        except TimeoutError:
            log.error("process.timeout", pid=self.pid, timeout_ms=self._timeout)
            await self.kill()
            await self._reap()
            raise ProcessTimeoutError(
                f"Process {self.pid} exceeded timeout of {self._timeout}ms"
            ) from None

    async def kill(self) -> None:
        if self._process.returncode is not None:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            # Exited between the returncode check and the signal.
            pass


class LocalSandbox:
    """SandboxBinding backed by the current container."""

    async def exec(
        self,
        command: str,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        stream: bool = False,
        timeout: int | None = None,
    ) -> LocalProcess:
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            env={**os.environ, **(env or {})},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        log.debug("process.start", pid=process.pid, cwd=cwd, stream=stream)
        return LocalProcess(process, stream=stream, timeout=timeout)

    async def write_file(self, path: str, content: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)

    async def read_file(self, path: str) -> str:
        return Path(path).read_text()

    async def exists(self, path: str) -> bool:
        return Path(path).exists()

    async def mkdir(self, path: str, *, recursive: bool = False) -> None:
        Path(path).mkdir(parents=recursive, exist_ok=recursive)
