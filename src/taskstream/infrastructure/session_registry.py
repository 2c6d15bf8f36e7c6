from __future__ import annotations

from threading import RLock
from typing import Callable, Dict, List, Optional

from ..config import load_settings
from ..security.credentials import CredentialProvider, env_credentials
from ..services.conversational_form import ConversationalFormEngine
from ..services.session_coordinator import SessionCoordinator
from ..services.streaming import ChannelFactory, build_channel_factory
from .history_store import HistoryStore, InMemoryHistoryStore

ChannelFactoryBuilder = Callable[[Optional[CredentialProvider]], ChannelFactory]


def _default_builder(credentials: Optional[CredentialProvider]) -> ChannelFactory:
    settings = load_settings()
    return build_channel_factory(settings, credentials or env_credentials())


class SessionRegistry:
    """Live coordinators and form engines for the HTTP surface."""

    def __init__(self, history_store: Optional[HistoryStore] = None) -> None:
        self._coordinators: Dict[str, SessionCoordinator] = {}
        self._forms: Dict[str, ConversationalFormEngine] = {}
        self._history_store: HistoryStore = history_store or InMemoryHistoryStore()
        self._builder: ChannelFactoryBuilder = _default_builder
        self._lock = RLock()

    @property
    def history_store(self) -> HistoryStore:
        return self._history_store

    def set_channel_factory_builder(self, builder: Optional[ChannelFactoryBuilder]) -> None:
        with self._lock:
            self._builder = builder or _default_builder

    def channel_factory(self, credentials: Optional[CredentialProvider] = None) -> ChannelFactory:
        with self._lock:
            builder = self._builder
        return builder(credentials)

    def add_session(self, coordinator: SessionCoordinator) -> SessionCoordinator:
        with self._lock:
            self._coordinators[coordinator.session.session_id] = coordinator
        return coordinator

    def get_session(self, session_id: str) -> Optional[SessionCoordinator]:
        with self._lock:
            return self._coordinators.get(session_id)

    def remove_session(self, session_id: str) -> SessionCoordinator:
        with self._lock:
            coordinator = self._coordinators.pop(session_id, None)
        if coordinator is None:
            raise KeyError(session_id)
        return coordinator

    def list_session_ids(self) -> List[str]:
        with self._lock:
            return list(self._coordinators)

    def add_form(self, engine: ConversationalFormEngine) -> ConversationalFormEngine:
        with self._lock:
            self._forms[engine.session.form_id] = engine
        return engine

    def get_form(self, form_id: str) -> Optional[ConversationalFormEngine]:
        with self._lock:
            return self._forms.get(form_id)

    def clear(self) -> None:
        with self._lock:
            coordinators = list(self._coordinators.values())
            self._coordinators.clear()
            self._forms.clear()
            self._builder = _default_builder
        for coordinator in coordinators:
            coordinator.cancel()


_registry: Optional[SessionRegistry] = None


def get_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry


def reset_registry() -> None:
    """Drop all live sessions and forms (useful for tests)."""
    global _registry
    if _registry is not None:
        _registry.clear()
    _registry = None
