"""Streaming transport for assistant responses.

A :class:`StreamChannel` wraps one server-sent-events connection and turns
its frames into typed :data:`StreamEvent` values. Channels are single use and
pull based: ``open()`` returns an iterator that the session coordinator
drains in delivery order. ``cancel()`` may be called at any point; nothing is
yielded after it, not even events already decoded from the current frame.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import DEFAULT_SIDE_EFFECT_EVENTS, RuntimeSettings
from ..domain.chat_models import (
    ContentDelta,
    Done,
    Error,
    ExecutionAssigned,
    SideEffect,
    StreamEvent,
    UsageUpdate,
    is_terminal,
)
from ..domain.errors import BufferFinalizedError, ChannelStateError, TransportError
from ..security.credentials import CredentialProvider

LOG = logging.getLogger("taskstream.stream")


class IncrementalContentBuffer:
    """Growing text buffer fed by content deltas."""

    def __init__(self) -> None:
        self._parts: List[str] = []
        self._text = ""
        self._dirty = False
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def append(self, text: str) -> None:
        if self._finalized:
            raise BufferFinalizedError("cannot append to a finalized buffer")
        if text:
            self._parts.append(text)
            self._dirty = True

    def snapshot(self) -> str:
        if self._dirty:
            self._text = "".join(self._parts)
            self._parts = [self._text]
            self._dirty = False
        return self._text

    def finalize(self) -> str:
        self._finalized = True
        return self.snapshot()


@dataclass
class SSEFrame:
    event: str
    data: str


def iter_sse_frames(lines: Iterable[Any]) -> Iterator[SSEFrame]:
    """Group raw event-stream lines into frames.

    A blank line dispatches the pending frame; a frame still pending when the
    line source ends is dispatched as well.

    Raises:
        TransportError when a line is not valid UTF-8.
    """
    event_name = ""
    data_lines: List[str] = []
    for raw_line in lines:
        if isinstance(raw_line, bytes):
            try:
                line = raw_line.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise TransportError(f"malformed event-stream line: {exc}") from exc
        else:
            line = str(raw_line)
        line = line.rstrip("\r")
        if not line:
            if event_name or data_lines:
                yield SSEFrame(event=event_name or "message", data="\n".join(data_lines))
            event_name = ""
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_name = value.strip()
        elif name == "data":
            data_lines.append(value)
    if event_name or data_lines:
        yield SSEFrame(event=event_name or "message", data="\n".join(data_lines))


def decode_frame(frame: SSEFrame, side_effect_events: FrozenSet[str] = DEFAULT_SIDE_EFFECT_EVENTS) -> List[StreamEvent]:
    """Map one frame onto zero or more stream events.

    Raises:
        TransportError when a recognised frame carries an unusable payload.
    """
    if frame.event == "message":
        data = _load_object(frame)
        events: List[StreamEvent] = []
        execution_id = data.get("executionId")
        if execution_id:
            title = data.get("title")
            events.append(ExecutionAssigned(execution_id=str(execution_id), title=title if isinstance(title, str) else None))
        token_count = data.get("tokenCount")
        cost = data.get("cost")
        if token_count is not None or cost is not None:
            try:
                events.append(UsageUpdate(token_count=token_count, cost=cost))
            except ValueError as exc:
                raise TransportError(f"malformed usage in message frame: {exc}") from exc
        content = data.get("content")
        if isinstance(content, str) and content:
            events.append(ContentDelta(text=content))
        return events

    if frame.event == "done":
        return [Done()]

    if frame.event == "error":
        message = "Stream failed"
        try:
            data = json.loads(frame.data) if frame.data else {}
        except json.JSONDecodeError:
            data = {}
            message = frame.data.strip() or message
        if isinstance(data, dict):
            detail = data.get("message") or data.get("error")
            if detail:
                message = str(detail)
        return [Error(message=message)]

    if frame.event in side_effect_events:
        try:
            payload = json.loads(frame.data) if frame.data else {}
        except json.JSONDecodeError as exc:
            raise TransportError(f"malformed {frame.event} frame: {exc}") from exc
        if not isinstance(payload, dict):
            payload = {"value": payload}
        return [SideEffect(name=frame.event, payload=payload)]

    LOG.debug("stream_event_ignored", extra={"event_name": frame.event})
    return []


def _load_object(frame: SSEFrame) -> Dict[str, Any]:
    try:
        data = json.loads(frame.data)
    except json.JSONDecodeError as exc:
        raise TransportError(f"malformed {frame.event} frame: {exc}") from exc
    if not isinstance(data, dict):
        raise TransportError(f"malformed {frame.event} frame: expected a JSON object")
    return data


class StreamTransport(Protocol):
    def open(self, payload: Dict[str, Any], headers: Dict[str, str]) -> Iterable[Any]: ...

    def close(self) -> None: ...


def _build_session() -> requests.Session:
    session = requests.Session()
    # Only connection establishment is retried; a stream that started is never replayed.
    retry = Retry(total=1, connect=1, read=0, status=0, backoff_factor=0.5, allowed_methods=frozenset(["POST"]))
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class RequestsTransport:
    """POSTs the request body and yields the event-stream response lines."""

    def __init__(
        self,
        url: str,
        *,
        connect_timeout: int = 3,
        read_timeout: int = 60,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self._timeout = (connect_timeout, read_timeout)
        self._session = session or _build_session()
        self._response: Optional[requests.Response] = None

    def open(self, payload: Dict[str, Any], headers: Dict[str, str]) -> Iterator[Any]:
        LOG.debug("stream_connect", extra={"url": self.url, "timeout": self._timeout})
        resp = self._session.post(self.url, json=payload, headers=headers, timeout=self._timeout, stream=True)
        self._response = resp
        resp.raise_for_status()
        return resp.iter_lines()

    def close(self) -> None:
        resp, self._response = self._response, None
        if resp is not None:
            resp.close()


class StreamChannel:
    def __init__(
        self,
        transport: StreamTransport,
        *,
        credentials: Optional[CredentialProvider] = None,
        side_effect_events: FrozenSet[str] = DEFAULT_SIDE_EFFECT_EVENTS,
    ) -> None:
        self._transport = transport
        self._credentials = credentials
        self._side_effect_events = side_effect_events
        self._opened = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self, payload: Dict[str, Any]) -> Iterator[StreamEvent]:
        if self._opened:
            raise ChannelStateError("stream channel has already been opened")
        self._opened = True
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        token = self._credentials() if self._credentials else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self._events(payload, headers)

    def cancel(self) -> None:
        if self._closed:
            return
        LOG.info("stream_cancelled")
        self._shutdown()

    def _shutdown(self) -> None:
        self._closed = True
        try:
            self._transport.close()
        except (requests.RequestException, OSError) as exc:
            LOG.debug("stream_close_failed", extra={"err": str(exc)})

    def _events(self, payload: Dict[str, Any], headers: Dict[str, str]) -> Iterator[StreamEvent]:
        try:
            for frame in iter_sse_frames(self._transport.open(payload, headers)):
                if self._closed:
                    return
                for event in decode_frame(frame, self._side_effect_events):
                    if self._closed:
                        return
                    yield event
                    if is_terminal(event):
                        self._shutdown()
                        return
            if not self._closed:
                raise TransportError("stream ended before completion")
        except (requests.RequestException, OSError, TransportError) as exc:
            if self._closed:
                return
            LOG.warning("stream_transport_error", extra={"err": str(exc)})
            self._shutdown()
            yield Error(message=str(exc) or "Stream failed")


ChannelFactory = Callable[[], StreamChannel]


def build_channel_factory(settings: RuntimeSettings, credentials: Optional[CredentialProvider] = None) -> ChannelFactory:
    def factory() -> StreamChannel:
        transport = RequestsTransport(
            settings.stream_url,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
        )
        return StreamChannel(transport, credentials=credentials, side_effect_events=settings.side_effect_events)

    return factory
