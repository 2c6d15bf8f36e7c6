from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status

from ...domain.errors import FieldValidationError, FormStateError
from ...domain.form_models import (
    FieldAnswer,
    FieldEdit,
    FieldResponse,
    FormCreate,
    FormMessage,
    FormSession,
    FormSubmit,
    FormSubmitted,
    FormSummary,
)
from ...infrastructure.session_registry import get_registry
from ...services.conversational_form import ConversationalFormEngine, schema_from_fields
from ...services.field_display import format_field_summary

router = APIRouter(prefix="/forms", tags=["forms"])


def _engine(form_id: str) -> ConversationalFormEngine:
    engine = get_registry().get_form(form_id)
    if engine is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return engine


def _conflict(exc: FormStateError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


def _message_fields(session_id: str, message_id: str) -> Dict[str, Any]:
    coordinator = get_registry().get_session(session_id)
    if coordinator is None:
        raise HTTPException(status_code=404, detail="Session not found")
    message = coordinator.session.find_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return dict(message.fields or {})


@router.post("", response_model=FormSession, status_code=status.HTTP_201_CREATED)
def create_form(payload: FormCreate) -> FormSession:
    extracted: Dict[str, Any] = {}
    if payload.session_id and payload.message_id:
        extracted.update(_message_fields(payload.session_id, payload.message_id))
    elif payload.session_id or payload.message_id:
        raise HTTPException(status_code=422, detail="session_id and message_id must be given together")
    extracted.update(payload.extracted)

    fields = list(payload.fields) or schema_from_fields(extracted)
    engine = ConversationalFormEngine(fields)
    if extracted:
        engine.set_extracted_data(extracted)
    get_registry().add_form(engine)
    return engine.session


@router.get("/{form_id}", response_model=FormSession)
def get_form(form_id: str) -> FormSession:
    return _engine(form_id).session


@router.post("/{form_id}/start", response_model=FormMessage)
def start_form(form_id: str) -> FormMessage:
    engine = _engine(form_id)
    try:
        return engine.start_conversation()
    except FormStateError as exc:
        raise _conflict(exc)


@router.post("/{form_id}/answers", response_model=FieldResponse)
def answer_field(form_id: str, payload: FieldAnswer) -> FieldResponse:
    engine = _engine(form_id)
    try:
        return engine.process_field_response(payload.field, payload.value)
    except FormStateError as exc:
        raise _conflict(exc)


@router.post("/{form_id}/edit", response_model=FormMessage)
def edit_field(form_id: str, payload: FieldEdit) -> FormMessage:
    engine = _engine(form_id)
    try:
        return engine.edit_field(payload.field)
    except FormStateError as exc:
        raise _conflict(exc)


@router.get("/{form_id}/review", response_model=FormMessage)
def review_form(form_id: str) -> FormMessage:
    engine = _engine(form_id)
    try:
        return engine.generate_review_message()
    except FormStateError as exc:
        raise _conflict(exc)


@router.get("/{form_id}/summary", response_model=FormSummary)
def summarize_form(form_id: str) -> FormSummary:
    engine = _engine(form_id)
    return FormSummary(form_id=form_id, content=format_field_summary(engine.session.known_values(), engine.session.fields))


@router.post("/{form_id}/submit", response_model=FormSubmitted)
def submit_form(form_id: str, payload: FormSubmit) -> FormSubmitted:
    engine = _engine(form_id)
    try:
        data = engine.submit(payload.data)
    except FormStateError as exc:
        raise _conflict(exc)
    except FieldValidationError as exc:
        raise HTTPException(status_code=422, detail={"field": exc.field_name, "message": str(exc)})
    return FormSubmitted(form_id=form_id, data=data)
