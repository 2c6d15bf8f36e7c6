"""Runtime settings resolved from environment variables.

Values are read once per call to :func:`load_settings`; malformed values fall
back to their defaults instead of failing start-up.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

DEFAULT_STREAM_URL = "http://127.0.0.1:3000/api/chat/stream"
DEFAULT_ERROR_TEXT = "Sorry, an error occurred. Please try again."
DEFAULT_SIDE_EFFECT_EVENTS = frozenset({"postCompleted"})

POST_ARTIFACT_KEEP = "keep"
POST_ARTIFACT_DISCARD = "discard"


@dataclass(frozen=True)
class RuntimeSettings:
    stream_url: str = DEFAULT_STREAM_URL
    connect_timeout: int = 3
    read_timeout: int = 60
    side_effect_delay: float = 5.0
    side_effect_events: FrozenSet[str] = field(default_factory=lambda: DEFAULT_SIDE_EFFECT_EVENTS)
    post_artifact_text: str = POST_ARTIFACT_KEEP
    extract_on_delta: bool = False
    error_text: str = DEFAULT_ERROR_TEXT
    bearer_token: Optional[str] = None
    redis_url: Optional[str] = None


def load_settings() -> RuntimeSettings:
    policy = (os.getenv("TASKSTREAM_POST_ARTIFACT_TEXT") or POST_ARTIFACT_KEEP).strip().lower()
    if policy not in {POST_ARTIFACT_KEEP, POST_ARTIFACT_DISCARD}:
        policy = POST_ARTIFACT_KEEP
    return RuntimeSettings(
        stream_url=(os.getenv("TASKSTREAM_STREAM_URL") or DEFAULT_STREAM_URL).strip(),
        connect_timeout=_env_int("TASKSTREAM_CONNECT_TIMEOUT", 3),
        read_timeout=_env_int("TASKSTREAM_READ_TIMEOUT", 60),
        side_effect_delay=_env_float("TASKSTREAM_SIDE_EFFECT_DELAY", 5.0),
        side_effect_events=_env_names("TASKSTREAM_SIDE_EFFECT_EVENTS", DEFAULT_SIDE_EFFECT_EVENTS),
        post_artifact_text=policy,
        extract_on_delta=_env_flag("TASKSTREAM_EXTRACT_ON_DELTA"),
        error_text=os.getenv("TASKSTREAM_ERROR_TEXT") or DEFAULT_ERROR_TEXT,
        bearer_token=os.getenv("TASKSTREAM_BEARER_TOKEN") or None,
        redis_url=os.getenv("REDIS_URL") or None,
    )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
        return value if value >= 0 else default
    except ValueError:
        return default


def _env_flag(name: str) -> bool:
    flag = os.getenv(name)
    return bool(flag) and flag.strip().lower() in {"1", "true", "yes", "on"}


def _env_names(name: str, default: FrozenSet[str]) -> FrozenSet[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    names = frozenset(part.strip() for part in raw.split(",") if part.strip())
    return names or default
