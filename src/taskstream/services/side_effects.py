from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional

import redis

from ..domain.chat_models import SideEffect

_logger = logging.getLogger("taskstream.side_effects")

SideEffectSink = Callable[[SideEffect, str], None]
Scheduler = Callable[[float, Callable[[], None]], Any]


@dataclass
class ForwardedEffect:
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None
    forwarded_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z"))


# Rolling buffer of recently forwarded effects for diagnostics
_RECENT_EFFECTS: List[ForwardedEffect] = []
_MAX_BUFFER = 200
_lock = threading.Lock()


class _RedisPublisher:
    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self) -> None:
        try:
            self._client = redis.Redis.from_url(self._url, socket_timeout=0.5)
            self._client.ping()
        except (redis.RedisError, OSError) as exc:
            _logger.warning("side_effect_redis_unavailable", extra={"err": str(exc)})
            self._client = None

    def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        if not self._client:
            self._connect()
        if not self._client:
            return False
        try:
            self._client.publish(channel, json.dumps(payload, default=str))
            return True
        except (redis.RedisError, OSError) as exc:
            _logger.warning("side_effect_publish_failed", extra={"channel": channel, "err": str(exc)})
            self._client = None
            return False


_publisher: Optional[_RedisPublisher] = None


def _get_publisher() -> Optional[_RedisPublisher]:
    global _publisher
    if _publisher is not None:
        return _publisher
    url = os.getenv("REDIS_URL")
    if not url:
        return None
    _publisher = _RedisPublisher(url)
    return _publisher


def forward_side_effect(effect: SideEffect, session_id: str) -> None:
    """Default sink: buffer, log, and publish to Redis when configured."""
    forwarded = ForwardedEffect(name=effect.name, payload=dict(effect.payload), session_id=session_id)
    with _lock:
        _RECENT_EFFECTS.append(forwarded)
        if len(_RECENT_EFFECTS) > _MAX_BUFFER:
            del _RECENT_EFFECTS[0 : len(_RECENT_EFFECTS) - _MAX_BUFFER]

    _logger.info(
        "side_effect_forwarded",
        extra={"effect_name": effect.name, "session_id": session_id, "effect_payload": effect.payload},
    )

    publisher = _get_publisher()
    if publisher:
        publisher.publish(
            f"taskstream.side_effects.{effect.name}",
            {"sessionId": session_id, "payload": effect.payload},
        )


def list_recent_side_effects(limit: int = 50) -> List[ForwardedEffect]:
    if limit <= 0:
        return []
    with _lock:
        return list(_RECENT_EFFECTS[-limit:])


def reset_side_effects() -> None:
    """Clear the in-memory buffer and publisher (useful for tests)."""
    global _publisher
    with _lock:
        _RECENT_EFFECTS.clear()
    _publisher = None


def timer_scheduler(delay: float, callback: Callable[[], None]) -> Optional[threading.Timer]:
    """Run ``callback`` after ``delay`` seconds on a daemon timer."""
    if delay <= 0:
        callback()
        return None
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer
