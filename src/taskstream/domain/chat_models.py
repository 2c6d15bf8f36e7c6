from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .artifact_models import ArtifactBlock


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _new_id() -> str:
    return uuid.uuid4().hex


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    message_id: str = Field(default_factory=_new_id)
    role: Role
    content: str = ""
    streaming: bool = False
    artifact: Optional[ArtifactBlock] = None
    fields: Optional[Dict[str, Any]] = None
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now_iso)

    def wire_format(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.attachments:
            entry["attachments"] = list(self.attachments)
        return entry


class ConversationSession(BaseModel):
    session_id: str = Field(default_factory=_new_id)
    messages: List[Message] = Field(default_factory=list)
    streaming: bool = False
    token_count: int = 0
    cost: float = 0.0
    execution_id: Optional[str] = None
    title: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=_now_iso)

    def assign_execution(self, execution_id: str, title: Optional[str] = None) -> bool:
        """Record the backend execution id; only the first assignment sticks."""
        if self.execution_id is not None or not execution_id:
            return False
        self.execution_id = execution_id
        if title and not self.title:
            self.title = title
        return True

    def find_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.message_id == message_id:
                return message
        return None


# Stream events: a closed union discriminated on ``kind``.


class ContentDelta(BaseModel):
    kind: Literal["content_delta"] = "content_delta"
    text: str


class ExecutionAssigned(BaseModel):
    kind: Literal["execution_assigned"] = "execution_assigned"
    execution_id: str
    title: Optional[str] = None


class UsageUpdate(BaseModel):
    kind: Literal["usage_update"] = "usage_update"
    token_count: Optional[int] = None
    cost: Optional[float] = None


class SideEffect(BaseModel):
    kind: Literal["side_effect"] = "side_effect"
    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class Done(BaseModel):
    kind: Literal["done"] = "done"


class Error(BaseModel):
    kind: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[
    Union[ContentDelta, ExecutionAssigned, UsageUpdate, SideEffect, Done, Error],
    Field(discriminator="kind"),
]

TERMINAL_KINDS = frozenset({"done", "error"})


def is_terminal(event: Any) -> bool:
    return getattr(event, "kind", None) in TERMINAL_KINDS


# HTTP request/response bodies


class SessionCreate(BaseModel):
    title: Optional[str] = None
    execution_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    history: List[Message] = Field(default_factory=list)


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)
    attachments: List[Dict[str, Any]] = Field(default_factory=list)


class ActionInvoke(BaseModel):
    label: str = Field(min_length=1)
    data: Optional[Dict[str, Any]] = None
