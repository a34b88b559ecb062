"""
Stream-JSON decoding for agent stdout.

The agent writes one JSON event per line:

    {"type": "assistant", "content": "..."}
    {"type": "tool_use", "tool": "Read", "input": {...}}

Lines that are not valid JSON or do not match a known event shape are logged
and skipped, so a stray diagnostic line cannot stall the rest of the stream.
"""

import json
from collections.abc import AsyncIterable, AsyncIterator, Iterable

from pydantic import ValidationError

from .log_config import configure_logging, get_logger
from .types import StreamEvent, StreamSummary, stream_event_adapter

configure_logging()

log = get_logger("stream_parser", service="sandbox")

# Only a prefix of a rejected line is logged.
MAX_LOGGED_LINE = 200


def parse_stream_json(line: str) -> StreamEvent | None:
    """Parse a single line into an event, or None if it is blank or invalid."""
    line = line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        log.warn("stream.parse_error", reason="invalid_json", line=line[:MAX_LOGGED_LINE], exc=e)
        return None

    try:
        return stream_event_adapter.validate_python(data)
    except ValidationError as e:
        log.warn(
            "stream.parse_error",
            reason="invalid_event",
            line=line[:MAX_LOGGED_LINE],
            error_count=e.error_count(),
        )
        return None


def parse_stream_json_lines(lines: Iterable[str]) -> list[StreamEvent]:
    """Parse many lines, dropping the ones that do not decode."""
    events = []
    for line in lines:
        event = parse_stream_json(line)
        if event is not None:
            events.append(event)
    return events


def _decode_line(raw: bytes) -> StreamEvent | None:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        log.warn("stream.parse_error", reason="invalid_utf8", exc=e)
        return None
    return parse_stream_json(text)


async def stream_events(stream: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Decode a byte stream into events, in arrival order.

    Chunks may split lines (or multi-byte characters) anywhere; bytes are
    buffered until a newline arrives. A trailing line without a newline is
    decoded once the stream ends.
    """
    buffer = b""
    decoded = 0
    non_blank = 0

    async for chunk in stream:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        buffer += chunk

        while b"\n" in buffer:
            raw, buffer = buffer.split(b"\n", 1)
            if not raw.strip():
                continue
            non_blank += 1
            event = _decode_line(raw)
            if event is not None:
                decoded += 1
                yield event

    if buffer.strip():
        non_blank += 1
        event = _decode_line(buffer)
        if event is not None:
            decoded += 1
            yield event

    if non_blank and not decoded:
        log.warn("stream.no_events_decoded", lines=non_blank)
    else:
        log.debug("stream.end", lines=non_blank, events=decoded, skipped=non_blank - decoded)


def summarize_stream_events(events: Iterable[StreamEvent]) -> StreamSummary:
    """Count events by kind; usage and stop reason come from the last result."""
    summary = StreamSummary()
    for event in events:
        summary.total_events += 1
        if event.type == "assistant":
            summary.assistant_messages += 1
        elif event.type == "tool_use":
            summary.tool_calls += 1
        elif event.type == "tool_result":
            summary.tool_results += 1
        elif event.type == "error":
            summary.errors += 1
        elif event.type == "result":
            if event.usage is not None:
                summary.usage = event.usage
            if event.stop_reason is not None:
                summary.stop_reason = event.stop_reason
        elif event.type == "complete":
            summary.exit_code = event.exit_code
    return summary
