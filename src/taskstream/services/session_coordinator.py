"""Per-conversation orchestration of streaming, history and extraction.

Every stream event is applied through :func:`reduce_event`, a single reducer
over the session state. The coordinator owns the session, keeps at most one
channel open, and executes what the reducer hands back (forwarding side
effects, closing the channel).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from ..config import RuntimeSettings, load_settings
from ..domain.artifact_models import ExtractionResult
from ..domain.chat_models import (
    ContentDelta,
    ConversationSession,
    Done,
    Error,
    ExecutionAssigned,
    Message,
    Role,
    SideEffect,
    StreamEvent,
    UsageUpdate,
)
from ..infrastructure.history_store import HistoryStore
from ..observability.metrics import STREAM_EVENTS
from .artifacts import ArtifactExtractor
from .side_effects import Scheduler, SideEffectSink, forward_side_effect, timer_scheduler
from .streaming import ChannelFactory, IncrementalContentBuffer, StreamChannel

LOG = logging.getLogger("taskstream.session")

ActionHandler = Callable[[str, Optional[Any]], None]


@dataclass
class ActiveStream:
    channel: StreamChannel
    events: Iterator[StreamEvent]
    message_id: str
    buffer: IncrementalContentBuffer = field(default_factory=IncrementalContentBuffer)
    pull_lock: threading.Lock = field(default_factory=threading.Lock)


@dataclass
class Reduction:
    terminal: bool = False
    side_effects: List[SideEffect] = field(default_factory=list)


def attach_extraction(message: Message, result: ExtractionResult) -> None:
    artifact = result.artifact
    message.artifact = artifact
    message.fields = dict(artifact.fields) if artifact and artifact.has_fields else None


def reduce_event(
    session: ConversationSession,
    message_id: str,
    buffer: IncrementalContentBuffer,
    event: StreamEvent,
    *,
    extractor: ArtifactExtractor,
    error_text: str,
    extract_on_delta: bool = False,
) -> Reduction:
    message = session.find_message(message_id)

    if isinstance(event, ContentDelta):
        buffer.append(event.text)
        if message is not None:
            message.content = buffer.snapshot()
            if extract_on_delta:
                attach_extraction(message, extractor.extract(message.content))
        return Reduction()

    if isinstance(event, ExecutionAssigned):
        session.assign_execution(event.execution_id, event.title)
        return Reduction()

    if isinstance(event, UsageUpdate):
        if event.token_count is not None:
            session.token_count = event.token_count
        if event.cost is not None:
            session.cost = event.cost
        return Reduction()

    if isinstance(event, SideEffect):
        return Reduction(side_effects=[event])

    if isinstance(event, Done):
        text = buffer.finalize()
        session.streaming = False
        if message is not None:
            message.content = text
            message.streaming = False
            attach_extraction(message, extractor.extract(text))
        return Reduction(terminal=True)

    if isinstance(event, Error):
        buffer.finalize()
        session.streaming = False
        if message is not None:
            message.content = error_text
            message.streaming = False
            message.artifact = None
            message.fields = None
        return Reduction(terminal=True)

    return Reduction()


class SessionCoordinator:
    def __init__(
        self,
        channel_factory: ChannelFactory,
        *,
        session: Optional[ConversationSession] = None,
        settings: Optional[RuntimeSettings] = None,
        extractor: Optional[ArtifactExtractor] = None,
        side_effect_sink: SideEffectSink = forward_side_effect,
        scheduler: Scheduler = timer_scheduler,
        side_effect_delay: Optional[float] = None,
        action_handler: Optional[ActionHandler] = None,
        history_store: Optional[HistoryStore] = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._channel_factory = channel_factory
        self._session = session or ConversationSession()
        self._extractor = extractor or ArtifactExtractor(self._settings.post_artifact_text)
        self._side_effect_sink = side_effect_sink
        self._scheduler = scheduler
        self._side_effect_delay = (
            self._settings.side_effect_delay if side_effect_delay is None else side_effect_delay
        )
        self._action_handler = action_handler
        self._history_store = history_store
        self._active: Optional[ActiveStream] = None
        self._lock = threading.RLock()

    @classmethod
    def hydrate(
        cls,
        channel_factory: ChannelFactory,
        messages: Sequence[Message],
        *,
        session_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        title: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> "SessionCoordinator":
        """Rebuild a coordinator from persisted history.

        Stale streaming flags are cleared and assistant messages are re-scanned
        so their artifacts and extracted fields are available again.
        """
        restored = [message.model_copy(update={"streaming": False}, deep=True) for message in messages]
        session = ConversationSession(
            messages=restored,
            execution_id=execution_id or None,
            title=title,
            context=dict(context or {}),
        )
        if session_id:
            session.session_id = session_id
        coordinator = cls(channel_factory, session=session, **kwargs)
        for message in session.messages:
            if message.role == Role.ASSISTANT and message.artifact is None:
                attach_extraction(message, coordinator._extractor.extract(message.content))
        LOG.info("session_hydrated", extra={"session_id": session.session_id, "message_count": len(restored)})
        return coordinator

    @property
    def session(self) -> ConversationSession:
        return self._session

    @property
    def channel_factory(self) -> ChannelFactory:
        return self._channel_factory

    @channel_factory.setter
    def channel_factory(self, factory: ChannelFactory) -> None:
        # Applies from the next send(); an open channel keeps its credentials.
        self._channel_factory = factory

    @property
    def channel(self) -> Optional[StreamChannel]:
        return self._active.channel if self._active else None

    @property
    def is_streaming(self) -> bool:
        return self._active is not None

    def send(self, text: str, attachments: Optional[Sequence[Dict[str, Any]]] = None) -> Message:
        """Start a new exchange and return the streaming assistant placeholder."""
        with self._lock:
            if self._active is not None:
                self.cancel()

            self._session.messages.append(Message(role=Role.USER, content=text, attachments=list(attachments or [])))
            channel = self._channel_factory()
            events = channel.open(self._build_payload())

            placeholder = Message(role=Role.ASSISTANT, content="", streaming=True)
            self._session.messages.append(placeholder)
            self._session.streaming = True
            self._active = ActiveStream(channel=channel, events=events, message_id=placeholder.message_id)
            LOG.info(
                "session_send",
                extra={
                    "session_id": self._session.session_id,
                    "message_count": len(self._session.messages),
                    "attachment_count": len(attachments or []),
                },
            )
            return placeholder

    def pump(self, max_events: Optional[int] = None) -> Optional[Message]:
        """Apply events from the open channel in delivery order.

        Stops at a terminal event, after ``max_events`` events, or when the
        stream is cancelled. Returns the assistant message being streamed.
        """
        with self._lock:
            stream = self._active
        if stream is None:
            return None
        return self._drain(stream, max_events)

    def send_and_wait(self, text: str, attachments: Optional[Sequence[Dict[str, Any]]] = None) -> Message:
        with self._lock:
            placeholder = self.send(text, attachments)
            stream = self._active
        if stream is None:
            return placeholder
        return self._drain(stream, None) or placeholder

    def cancel(self) -> None:
        with self._lock:
            stream, self._active = self._active, None
            if stream is None:
                return
            stream.channel.cancel()
            if not stream.buffer.finalized:
                stream.buffer.finalize()
            message = self._session.find_message(stream.message_id)
            if message is not None:
                message.streaming = False
            self._session.streaming = False
            LOG.info("session_stream_cancelled", extra={"session_id": self._session.session_id})

    def close(self) -> None:
        with self._lock:
            self.cancel()
            if self._history_store is not None:
                self._history_store.save(self._session)
            LOG.info("session_closed", extra={"session_id": self._session.session_id})

    def invoke_action(self, message_id: str, label: str, data: Optional[Any] = None) -> str:
        """Trigger an artifact action button; returns the emitted action id."""
        with self._lock:
            message = self._session.find_message(message_id)
            if message is None or message.artifact is None:
                raise KeyError(message_id)
            action = message.artifact.find_action(label)
            if action is None:
                raise KeyError(label)
        if self._action_handler is not None:
            self._action_handler(action.action, data if data is not None else action.value)
        LOG.info("artifact_action", extra={"session_id": self._session.session_id, "action": action.action})
        return action.action

    def _drain(self, stream: ActiveStream, max_events: Optional[int]) -> Optional[Message]:
        # Waiting for the next event happens outside the session lock so that
        # cancel() and send() from another thread are never blocked by the network.
        applied = 0
        with stream.pull_lock:
            for event in stream.events:
                with self._lock:
                    if self._active is not stream:
                        break
                    terminal = self._apply(stream, event)
                applied += 1
                if terminal or (max_events is not None and applied >= max_events):
                    break
            else:
                with self._lock:
                    if self._active is stream:
                        self.cancel()

        with self._lock:
            return self._session.find_message(stream.message_id)

    def _apply(self, stream: ActiveStream, event: StreamEvent) -> bool:
        STREAM_EVENTS.labels(kind=event.kind).inc()
        outcome = reduce_event(
            self._session,
            stream.message_id,
            stream.buffer,
            event,
            extractor=self._extractor,
            error_text=self._settings.error_text,
            extract_on_delta=self._settings.extract_on_delta,
        )
        for effect in outcome.side_effects:
            self._schedule_side_effect(effect)
        if outcome.terminal:
            stream.channel.cancel()
            self._active = None
            if isinstance(event, Error):
                LOG.warning("session_stream_failed", extra={"session_id": self._session.session_id, "err": event.message})
        return outcome.terminal

    def _build_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self._session.context)
        payload["messages"] = [message.wire_format() for message in self._session.messages]
        if self._session.execution_id:
            payload["executionId"] = self._session.execution_id
        return payload

    def _schedule_side_effect(self, effect: SideEffect) -> None:
        sink = self._side_effect_sink
        session_id = self._session.session_id
        self._scheduler(self._side_effect_delay, lambda: sink(effect, session_id))
