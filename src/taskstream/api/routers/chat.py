from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel

from ...domain.chat_models import ActionInvoke, ConversationSession, Message, MessageCreate, SessionCreate
from ...infrastructure.session_registry import get_registry
from ...security.credentials import get_bearer_token, static_credentials
from ...services.session_coordinator import SessionCoordinator
from ...services.side_effects import list_recent_side_effects

router = APIRouter(prefix="/chat", tags=["chat"])


class ActionResult(BaseModel):
    message_id: str
    action: str


class SideEffectView(BaseModel):
    name: str
    payload: Dict[str, Any]
    session_id: Optional[str] = None
    forwarded_at: str


def _coordinator(session_id: str) -> SessionCoordinator:
    coordinator = get_registry().get_session(session_id)
    if coordinator is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return coordinator


def _credentials(token: Optional[str]):
    return static_credentials(token) if token else None


@router.post("/sessions", response_model=ConversationSession, status_code=status.HTTP_201_CREATED)
def create_session(payload: SessionCreate, token: Optional[str] = Depends(get_bearer_token)) -> ConversationSession:
    registry = get_registry()
    factory = registry.channel_factory(_credentials(token))
    if payload.history:
        coordinator = SessionCoordinator.hydrate(
            factory,
            payload.history,
            execution_id=payload.execution_id,
            title=payload.title,
            context=payload.context,
            history_store=registry.history_store,
        )
    else:
        session = ConversationSession(
            title=payload.title,
            execution_id=payload.execution_id or None,
            context=dict(payload.context),
        )
        coordinator = SessionCoordinator(factory, session=session, history_store=registry.history_store)
    registry.add_session(coordinator)
    return coordinator.session


@router.get("/sessions", response_model=List[str])
def list_sessions() -> List[str]:
    return get_registry().list_session_ids()


@router.get("/sessions/{session_id}", response_model=ConversationSession)
def get_session(session_id: str) -> ConversationSession:
    registry = get_registry()
    coordinator = registry.get_session(session_id)
    if coordinator is not None:
        return coordinator.session
    stored = registry.history_store.load(session_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return stored


@router.post("/sessions/{session_id}/messages", response_model=Message)
def send_message(
    session_id: str,
    payload: MessageCreate,
    token: Optional[str] = Depends(get_bearer_token),
) -> Message:
    coordinator = _coordinator(session_id)
    if token:
        coordinator.channel_factory = get_registry().channel_factory(static_credentials(token))
    return coordinator.send_and_wait(payload.content, payload.attachments)


@router.post("/sessions/{session_id}/cancel", response_model=ConversationSession)
def cancel_stream(session_id: str) -> ConversationSession:
    coordinator = _coordinator(session_id)
    coordinator.cancel()
    return coordinator.session


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_session(session_id: str) -> Response:
    try:
        coordinator = get_registry().remove_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")
    coordinator.close()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/messages/{message_id}/actions", response_model=ActionResult)
def invoke_action(session_id: str, message_id: str, payload: ActionInvoke) -> ActionResult:
    coordinator = _coordinator(session_id)
    try:
        action = coordinator.invoke_action(message_id, payload.label, payload.data)
    except KeyError:
        raise HTTPException(status_code=404, detail="Action not found")
    return ActionResult(message_id=message_id, action=action)


@router.get("/side-effects", response_model=List[SideEffectView])
def recent_side_effects(limit: int = Query(50, ge=1, le=200)) -> List[SideEffectView]:
    return [
        SideEffectView(
            name=effect.name,
            payload=effect.payload,
            session_id=effect.session_id,
            forwarded_at=effect.forwarded_at,
        )
        for effect in list_recent_side_effects(limit)
    ]
