from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional

from src.taskstream.services.streaming import StreamChannel


def sse(event: str, data: Any = None) -> List[str]:
    """Encode one server-sent event as the lines a response would yield."""
    lines = [f"event: {event}"]
    if data is not None:
        lines.append("data: " + (data if isinstance(data, str) else json.dumps(data)))
    lines.append("")
    return lines


def sse_stream(*frames: List[str]) -> List[str]:
    lines: List[str] = []
    for frame in frames:
        lines.extend(frame)
    return lines


class FakeTransport:
    """Replays canned event-stream lines; optionally fails part-way."""

    def __init__(self, lines: List[Any], *, fail_after: Optional[int] = None, error: Optional[Exception] = None) -> None:
        self.lines = list(lines)
        self.fail_after = fail_after
        self.error = error or ConnectionError("connection reset")
        self.payload: Optional[Dict[str, Any]] = None
        self.headers: Optional[Dict[str, str]] = None
        self.closed = False
        self.open_calls = 0

    def open(self, payload: Dict[str, Any], headers: Dict[str, str]) -> Iterator[Any]:
        self.open_calls += 1
        self.payload = payload
        self.headers = headers
        return self._lines()

    def _lines(self) -> Iterator[Any]:
        for index, line in enumerate(self.lines):
            if self.fail_after is not None and index >= self.fail_after:
                raise self.error
            yield line
        if self.fail_after is not None and self.fail_after >= len(self.lines):
            raise self.error

    def close(self) -> None:
        self.closed = True


class ScriptedChannels:
    """Channel factory handing out one scripted transport per ``send``."""

    def __init__(self, *scripts: List[Any], credentials=None) -> None:
        self.scripts = list(scripts)
        self.credentials = credentials
        self.transports: List[FakeTransport] = []
        self.channels: List[StreamChannel] = []

    def __call__(self) -> StreamChannel:
        lines = self.scripts.pop(0) if self.scripts else sse("done")
        transport = lines if isinstance(lines, FakeTransport) else FakeTransport(lines)
        channel = StreamChannel(transport, credentials=self.credentials)
        self.transports.append(transport)
        self.channels.append(channel)
        return channel


def immediate_scheduler(calls: List[float]):
    def schedule(delay: float, callback) -> None:
        calls.append(delay)
        callback()

    return schedule
