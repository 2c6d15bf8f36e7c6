from __future__ import annotations

from threading import RLock
from typing import Dict, List, Optional, Protocol

from ..domain.chat_models import ConversationSession, Message


class HistoryStore(Protocol):
    def load(self, session_id: str) -> Optional[ConversationSession]: ...

    def load_messages(self, session_id: str) -> List[Message]: ...

    def save(self, session: ConversationSession) -> None: ...


class InMemoryHistoryStore:
    """Keeps detached copies of completed sessions keyed by session id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = RLock()

    def load(self, session_id: str) -> Optional[ConversationSession]:
        with self._lock:
            stored = self._sessions.get(session_id)
            return stored.model_copy(deep=True) if stored else None

    def load_messages(self, session_id: str) -> List[Message]:
        session = self.load(session_id)
        return list(session.messages) if session else []

    def save(self, session: ConversationSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session.model_copy(deep=True)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
