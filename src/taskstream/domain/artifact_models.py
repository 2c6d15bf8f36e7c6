from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ArtifactKind(str, Enum):
    TYPED = "artifact"
    GENERIC = "json"


class ArtifactAction(BaseModel):
    label: str
    action: str
    value: Optional[Any] = None


class ArtifactBlock(BaseModel):
    type: str
    kind: ArtifactKind = ArtifactKind.TYPED
    payload: Any = None
    title: Optional[str] = None
    before: str = ""
    after: str = ""
    fields: Dict[str, Any] = Field(default_factory=dict)
    actions: List[ArtifactAction] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    @property
    def has_fields(self) -> bool:
        return bool(self.fields)

    def find_action(self, label_or_id: str) -> Optional[ArtifactAction]:
        for action in self.actions:
            if action.label == label_or_id:
                return action
        for action in self.actions:
            if action.action == label_or_id:
                return action
        return None


class ExtractionResult(BaseModel):
    before: str
    artifact: Optional[ArtifactBlock] = None
    after: str = ""

    @property
    def fields(self) -> Dict[str, Any]:
        return dict(self.artifact.fields) if self.artifact else {}


# Payload shapes for typed artifacts. A payload that fails validation is
# treated as plain text by the extractor.


class FormArtifactPayload(BaseModel):
    title: Optional[str] = None
    fields: Dict[str, Any]
    validation: Optional[Any] = None
    actions: List[ArtifactAction] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    code: str = ""
    severity: str = "error"
    message: str = ""
    category: Optional[str] = None
    details: Optional[Any] = None


class RecoveryPlan(BaseModel):
    suggestions: List[str] = Field(default_factory=list)
    actions: List[ArtifactAction] = Field(default_factory=list)


class ErrorArtifactPayload(BaseModel):
    title: Optional[str] = None
    error: ErrorDetail
    recovery: RecoveryPlan = Field(default_factory=RecoveryPlan)


class ExtractRequest(BaseModel):
    text: str


class FlattenRequest(BaseModel):
    data: Any = None
