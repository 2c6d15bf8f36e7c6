from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class FieldValidation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    required: bool = False
    pattern: Optional[str] = None
    min_length: Optional[int] = Field(default=None, alias="minLength")
    max_length: Optional[int] = Field(default=None, alias="maxLength")
    options: Optional[List[Any]] = None


class FieldSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    type: FieldType = FieldType.STRING
    validation: Optional[FieldValidation] = None
    examples: List[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.display_name or self.name

    @property
    def required(self) -> bool:
        return bool(self.validation and self.validation.required)


class FormState(str, Enum):
    IDLE = "idle"
    AWAITING_FIELD = "awaiting_field"
    REVIEWING = "reviewing"
    SUBMITTED = "submitted"


class FormAction(BaseModel):
    label: str
    action: Literal["accept", "edit", "confirm"]
    value: Optional[Any] = None


class FormMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str
    type: Literal["text", "form-field", "form-review"] = "text"
    field_name: Optional[str] = None
    field_value: Optional[Any] = None
    data: Optional[Dict[str, Any]] = None
    actions: List[FormAction] = Field(default_factory=list)


class FieldResponse(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    next_message: Optional[FormMessage] = None
    is_complete: bool = False


class FormSession(BaseModel):
    form_id: str
    fields: List[FieldSpec]
    cursor: int = 0
    answers: Dict[str, Any] = Field(default_factory=dict)
    extracted: Dict[str, Any] = Field(default_factory=dict)
    state: FormState = FormState.IDLE

    def known_values(self) -> Dict[str, Any]:
        """Extracted values overlaid with collected answers."""
        return {**self.extracted, **self.answers}


# HTTP request bodies


class FormCreate(BaseModel):
    fields: List[FieldSpec] = Field(default_factory=list)
    extracted: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
    message_id: Optional[str] = None


class FieldAnswer(BaseModel):
    field: str
    value: Any = None


class FieldEdit(BaseModel):
    field: str


class FormSubmit(BaseModel):
    data: Optional[Dict[str, Any]] = None


class FormSubmitted(BaseModel):
    form_id: str
    data: Dict[str, Any]


class FormSummary(BaseModel):
    form_id: str
    content: str
