"""Guided, one-field-at-a-time form collection.

The engine walks an ordered field schema::

    idle -> awaiting_field(i) -> ... -> reviewing -> submitted

Extracted document data may be supplied before the conversation starts. It is
kept apart from collected answers; when the cursor reaches a field with an
extracted value, that value is offered for quick confirmation instead of a
plain prompt. Editing from the review step re-enters ``awaiting_field`` at the chosen
field without discarding any other answer.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..domain.errors import FieldValidationError, FormStateError
from ..domain.form_models import (
    FieldResponse,
    FieldSpec,
    FieldType,
    FieldValidation,
    FormAction,
    FormMessage,
    FormSession,
    FormState,
)
from ..observability.metrics import FORM_VALIDATION_FAILURES

LOG = logging.getLogger("taskstream.form")

FORM_TRANSITIONS: Dict[FormState, Tuple[FormState, ...]] = {
    FormState.IDLE: (FormState.AWAITING_FIELD, FormState.REVIEWING),
    FormState.AWAITING_FIELD: (FormState.AWAITING_FIELD, FormState.REVIEWING),
    FormState.REVIEWING: (FormState.AWAITING_FIELD, FormState.SUBMITTED),
    FormState.SUBMITTED: (),
}

REVIEW_PROMPT = "I've collected all your information. Please review and confirm:"


def is_valid_transition(current: FormState, target: FormState) -> bool:
    return target in FORM_TRANSITIONS.get(current, ())


def pattern_hint(pattern: str) -> str:
    if "[A-Z0-9]" in pattern:
        return "letters and numbers only"
    if "\\d{4}" in pattern:
        return "4 digits"
    if "@" in pattern:
        return "email format"
    return "specific format required"


def validate_field(spec: FieldSpec, value: Any) -> Optional[str]:
    """Return an error message for ``value``, or ``None`` when it is acceptable."""
    label = spec.label
    rules = spec.validation or FieldValidation()

    if _is_empty(value):
        return f"{label} is required" if rules.required else None

    if spec.type == FieldType.NUMBER and not _is_number(value):
        return f"{label} must be a number"
    if spec.type == FieldType.DATE and not _is_date(value):
        return f"{label} must be a date (YYYY-MM-DD)"
    if spec.type == FieldType.BOOLEAN and not _is_boolean(value):
        return f"{label} must be yes or no"

    text = value if isinstance(value, str) else str(value)
    if rules.pattern:
        try:
            matched = re.search(rules.pattern, text) is not None
        except re.error as exc:
            LOG.warning("form_pattern_invalid", extra={"field": spec.name, "pattern": rules.pattern, "err": str(exc)})
            matched = True
        if not matched:
            return f"{label} format is invalid"
    if rules.min_length is not None and len(text) < rules.min_length:
        return f"{label} must be at least {rules.min_length} characters"
    if rules.max_length is not None and len(text) > rules.max_length:
        return f"{label} must be no more than {rules.max_length} characters"
    if rules.options:
        allowed = {str(option) for option in rules.options}
        if value not in rules.options and text not in allowed:
            return f"{label} must be one of: {', '.join(str(o) for o in rules.options)}"
    return None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value.strip())
            return True
        except ValueError:
            return False
    return False


def _is_date(value: Any) -> bool:
    if isinstance(value, date):
        return True
    if not isinstance(value, str):
        return False
    raw = value.strip()
    try:
        date.fromisoformat(raw)
        return True
    except ValueError:
        pass
    try:
        datetime.fromisoformat(raw.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def _is_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    return isinstance(value, str) and value.strip().lower() in {"true", "false", "yes", "no"}


def humanize_field_name(name: str) -> str:
    words: List[str] = []
    for part in re.split(r"[._\-\s]+", name):
        if not part:
            continue
        spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", part)
        words.extend(word[:1].upper() + word[1:] for word in spaced.split())
    return " ".join(words) or name


def schema_from_fields(fields: Mapping[str, Any]) -> List[FieldSpec]:
    """Derive a field schema from an extracted field map."""
    specs: List[FieldSpec] = []
    for name, value in fields.items():
        if isinstance(value, bool):
            field_type = FieldType.BOOLEAN
        elif isinstance(value, (int, float)):
            field_type = FieldType.NUMBER
        elif isinstance(value, str) and len(value) >= 10 and _is_date(value):
            field_type = FieldType.DATE
        else:
            field_type = FieldType.STRING
        specs.append(
            FieldSpec(
                name=name,
                display_name=humanize_field_name(name),
                type=field_type,
                validation=FieldValidation(required=True),
            )
        )
    return specs


class ConversationalFormEngine:
    def __init__(
        self,
        fields: Sequence[FieldSpec],
        *,
        form_id: Optional[str] = None,
        on_submit: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        self._session = FormSession(form_id=form_id or uuid.uuid4().hex, fields=list(fields))
        self._on_submit = on_submit

    @property
    def session(self) -> FormSession:
        return self._session

    @property
    def state(self) -> FormState:
        return self._session.state

    @property
    def cursor(self) -> int:
        return self._session.cursor

    @property
    def answers(self) -> Dict[str, Any]:
        return dict(self._session.answers)

    @property
    def current_field(self) -> Optional[FieldSpec]:
        if self.state != FormState.AWAITING_FIELD:
            return None
        return self._session.fields[self._session.cursor]

    def set_extracted_data(self, data: Mapping[str, Any]) -> None:
        if self.state == FormState.SUBMITTED:
            raise FormStateError("set_extracted_data", self.state.value)
        names = {spec.name for spec in self._session.fields}
        seeded = 0
        for key, value in data.items():
            if key in names and value is not None:
                self._session.extracted[key] = value
                seeded += 1
        LOG.debug("form_seeded", extra={"form_id": self._session.form_id, "seeded": seeded})

    def start_conversation(self) -> FormMessage:
        if self.state != FormState.IDLE:
            raise FormStateError("start_conversation", self.state.value)
        if not self._session.fields:
            self._transition(FormState.REVIEWING)
            return FormMessage(content="No fields to collect.")
        self._session.cursor = 0
        self._transition(FormState.AWAITING_FIELD)
        return self._field_message(self._session.fields[0])

    def process_field_response(self, field_name: str, value: Any) -> FieldResponse:
        if self.state != FormState.AWAITING_FIELD:
            raise FormStateError("process_field_response", self.state.value)
        spec = self._session.fields[self._session.cursor]
        if spec.name != field_name:
            raise FormStateError(
                "process_field_response",
                self.state.value,
                f"expected an answer for '{spec.name}', got '{field_name}'",
            )

        error = validate_field(spec, value)
        if error:
            FORM_VALIDATION_FAILURES.labels(field=spec.name).inc()
            LOG.info("form_field_rejected", extra={"form_id": self._session.form_id, "field": spec.name})
            return FieldResponse(is_valid=False, error=error)

        self._session.answers[spec.name] = value
        next_index = self._next_unanswered()
        if next_index is None:
            self._transition(FormState.REVIEWING)
            return FieldResponse(is_valid=True, is_complete=True, next_message=self.generate_review_message())

        self._session.cursor = next_index
        return FieldResponse(is_valid=True, next_message=self._field_message(self._session.fields[next_index]))

    def accept(self) -> FieldResponse:
        """Confirm the pre-filled answer of the current field."""
        spec = self.current_field
        if spec is None:
            raise FormStateError("accept", self.state.value)
        return self.process_field_response(spec.name, self._session.known_values().get(spec.name))

    def edit_field(self, field_name: str) -> FormMessage:
        if self.state not in (FormState.AWAITING_FIELD, FormState.REVIEWING):
            raise FormStateError("edit_field", self.state.value)
        index = self._index_of(field_name)
        if index is None:
            raise FormStateError("edit_field", self.state.value, f"unknown field '{field_name}'")
        self._session.cursor = index
        self._transition(FormState.AWAITING_FIELD)
        return self._prompt(self._session.fields[index])

    def generate_review_message(self) -> FormMessage:
        if self.state != FormState.REVIEWING:
            raise FormStateError("generate_review_message", self.state.value)
        return FormMessage(
            content=REVIEW_PROMPT,
            type="form-review",
            data=self.answers,
            actions=[
                FormAction(label="Confirm", action="confirm"),
                FormAction(label="Edit", action="edit"),
            ],
        )

    def submit(self, form_data: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        if self.state != FormState.REVIEWING:
            raise FormStateError("submit", self.state.value)
        if form_data:
            for spec in self._session.fields:
                if spec.name not in form_data:
                    continue
                error = validate_field(spec, form_data[spec.name])
                if error:
                    raise FieldValidationError(spec.name, error)
            for spec in self._session.fields:
                if spec.name in form_data:
                    self._session.answers[spec.name] = form_data[spec.name]

        self._transition(FormState.SUBMITTED)
        result = self.answers
        LOG.info("form_submitted", extra={"form_id": self._session.form_id, "field_count": len(result)})
        if self._on_submit:
            self._on_submit(dict(result))
        return result

    def _transition(self, target: FormState) -> None:
        if not is_valid_transition(self.state, target):
            raise FormStateError(f"transition to {target.value}", self.state.value)
        self._session.state = target

    def _index_of(self, field_name: str) -> Optional[int]:
        for index, spec in enumerate(self._session.fields):
            if spec.name == field_name:
                return index
        return None

    def _next_unanswered(self) -> Optional[int]:
        for index, spec in enumerate(self._session.fields):
            if spec.name not in self._session.answers:
                return index
        return None

    def _field_message(self, spec: FieldSpec) -> FormMessage:
        value = self._session.known_values().get(spec.name)
        if value is None:
            return self._prompt(spec)
        return FormMessage(
            content=f'I found your {spec.label}: "{value}". Is this correct?',
            type="form-field",
            field_name=spec.name,
            field_value=value,
            actions=[
                FormAction(label="Yes, that's correct", action="accept", value=value),
                FormAction(label="No, let me correct it", action="edit"),
            ],
        )

    def _prompt(self, spec: FieldSpec) -> FormMessage:
        prompt = f"Please provide your {spec.label}"
        if spec.validation and spec.validation.pattern:
            prompt += f" (format: {pattern_hint(spec.validation.pattern)})"
        if spec.examples:
            prompt += f", for example {spec.examples[0]}"
        return FormMessage(content=prompt, type="form-field", field_name=spec.name)
