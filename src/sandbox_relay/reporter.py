"""
Event reporter - relays agent output to the session collector.

Each decoded event is POSTed to ``{session_url}/event`` in order, one at a
time. Failed deliveries are retried with exponential backoff; once the stream
ends and the process has exited, a final ``complete`` event carrying the exit
code is delivered last.
"""

import asyncio
import contextlib

import httpx

from .log_config import configure_logging, get_logger
from .stream_parser import stream_events
from .types import (
    CompleteEvent,
    ErrorEvent,
    ReporterConfig,
    SandboxProcess,
    StreamEvent,
    dump_event,
)

configure_logging()


class DeliveryExhaustedError(RuntimeError):
    """Raised when an event could not be delivered within the retry budget."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class SandboxReporter:
    """
    Streams sandbox process events to a remote session endpoint.

    Delivery is at-least-once per event: a POST whose acknowledgement is lost
    will be sent again. Events are never skipped; if one cannot be delivered
    the remaining stream is abandoned with DeliveryExhaustedError.
    """

    HTTP_CONNECT_TIMEOUT = 30.0
    HTTP_DEFAULT_TIMEOUT = 30.0

    def __init__(self, config: ReporterConfig, http_client: httpx.AsyncClient | None = None):
        self.config = config
        self.event_url = f"{config.session_url.rstrip('/')}/event"
        self.http_client = http_client
        self.log = get_logger("reporter", service="sandbox", session_url=config.session_url)

    @property
    def max_attempts(self) -> int:
        return self.config.retry_attempts + 1

    async def __aenter__(self) -> "SandboxReporter":
        if self.http_client is None:
            self.http_client = self._create_http_client()
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None

    def _create_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(
                self.HTTP_DEFAULT_TIMEOUT,
                connect=self.HTTP_CONNECT_TIMEOUT,
            )
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    async def stream_to_session(self, process: SandboxProcess) -> None:
        """Deliver every event from the process, then the completion event.

        Raises:
            DeliveryExhaustedError: If any event exhausts its retry budget.
            Exception: Whatever reading the stream or awaiting the exit code
                raised, re-raised as the same object after an ``error`` event
                has been reported.
        """
        if self.http_client is not None:
            await self._relay(process)
            return

        async with self:
            await self._relay(process)

    async def _relay(self, process: SandboxProcess) -> None:
        log = self.log.bind(pid=process.pid)
        log.info("reporter.stream_start")
        delivered = 0

        try:
            async with contextlib.aclosing(stream_events(process.stdout)) as events:
                async for event in events:
                    await self.report_event(event)
                    delivered += 1
            exit_code = await process.exit_code
        except DeliveryExhaustedError:
            log.error("reporter.stream_aborted", delivered=delivered)
            raise
        except Exception as e:
            log.error("reporter.stream_error", delivered=delivered, exc=e)
            await self._report_stream_failure(e)
            raise

        log.info(
            "reporter.process_complete",
            exit_code=exit_code,
            delivered=delivered,
            detail=f"Sandbox process completed with exit code {exit_code}",
        )
        await self.report_event(CompleteEvent(exit_code=exit_code))

    async def _report_stream_failure(self, error: Exception) -> None:
        """Best-effort error event; never replaces the original failure."""
        message = str(error) or type(error).__name__
        try:
            await self.report_event(ErrorEvent(error=message))
        except DeliveryExhaustedError as report_error:
            self.log.error("reporter.error_event_failed", exc=report_error)

    async def report_event(self, event: StreamEvent) -> None:
        """POST one event, retrying with exponential backoff."""
        if self.http_client is None:
            raise RuntimeError("HTTP client not initialized")

        body = dump_event(event)
        headers = self._headers()
        total = self.max_attempts
        detail = ""

        for attempt in range(1, total + 1):
            try:
                response = await self.http_client.post(
                    self.event_url,
                    content=body,
                    headers=headers,
                )
                if response.is_success:
                    return
                detail = f"HTTP {response.status_code}"
            except (httpx.HTTPError, OSError) as e:
                detail = str(e) or type(e).__name__

            if attempt < total:
                delay_ms = self.config.retry_delay * 2 ** (attempt - 1)
                self.log.warn(
                    "reporter.retry",
                    event_type=event.type,
                    attempt=attempt,
                    max_attempts=total,
                    delay_ms=delay_ms,
                    detail=f"Request failed (attempt {attempt}/{total}): {detail}",
                )
                await asyncio.sleep(delay_ms / 1000)

        self.log.error(
            "reporter.delivery_exhausted",
            event_type=event.type,
            attempts=total,
            detail=detail,
        )
        raise DeliveryExhaustedError(
            f"Failed to report event after {total} attempts: {detail}",
            attempts=total,
        )


async def report_sandbox_events(
    process: SandboxProcess,
    config: ReporterConfig,
    http_client: httpx.AsyncClient | None = None,
) -> None:
    """Stream a process's events to the session endpoint described by config."""
    reporter = SandboxReporter(config, http_client=http_client)
    await reporter.stream_to_session(process)
