"""Locate and interpret structured blocks embedded in assistant text.

Two block syntaxes are recognised, in priority order::

    ```artifact:<type>        typed artifact, JSON body interpreted per type
    ```json                   generic data block, JSON body flattened

Only complete blocks (opening and closing fence both present) match, so a
half-streamed message is always treated as plain text. Malformed blocks never
raise; the whole message degrades to plain text and the failure is logged.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from ..config import POST_ARTIFACT_DISCARD, POST_ARTIFACT_KEEP
from ..domain.artifact_models import (
    ArtifactBlock,
    ArtifactKind,
    ErrorArtifactPayload,
    ExtractionResult,
    FormArtifactPayload,
)
from ..domain.error_codes import lookup_error
from ..domain.errors import ArtifactParseError
from ..observability.metrics import ARTIFACT_PARSE_FALLBACKS
from .field_extraction import flatten

LOG = logging.getLogger("taskstream.extract")

# Closing fences must sit on their own line so that the opening fence of a
# following block is never mistaken for one.
_CLOSE = r"\r?\n[ \t]*```[ \t]*(?=\r?\n|$)"
_TYPED_BLOCK = re.compile(r"```artifact:([\w.-]+)[ \t]*\r?\n(.*?)" + _CLOSE, re.DOTALL)
_GENERIC_BLOCK = re.compile(r"```json[ \t]*\r?\n(.*?)" + _CLOSE, re.DOTALL)

GENERIC_TYPE = "data"


class ArtifactExtractor:
    def __init__(self, post_artifact_text: str = POST_ARTIFACT_KEEP) -> None:
        self.post_artifact_text = post_artifact_text

    def extract(self, text: Optional[str]) -> ExtractionResult:
        text = text or ""

        match = _TYPED_BLOCK.search(text)
        if match:
            artifact_type = match.group(1)
            try:
                block = _interpret_typed(artifact_type, match.group(2))
            except ArtifactParseError as exc:
                _record_fallback(exc, artifact_type)
                return ExtractionResult(before=text)
            return self._split(text, match, block)

        match = _GENERIC_BLOCK.search(text)
        if match:
            try:
                payload = _parse_json(match.group(1))
            except ArtifactParseError as exc:
                _record_fallback(exc, GENERIC_TYPE)
                return ExtractionResult(before=text)
            block = ArtifactBlock(
                type=GENERIC_TYPE,
                kind=ArtifactKind.GENERIC,
                payload=payload,
                fields=flatten(payload),
            )
            return self._split(text, match, block)

        return ExtractionResult(before=text)

    def _split(self, text: str, match: re.Match[str], block: ArtifactBlock) -> ExtractionResult:
        before = text[: match.start()]
        after = text[match.end():]
        if self.post_artifact_text == POST_ARTIFACT_DISCARD:
            after = ""
        block.before = before
        block.after = after
        return ExtractionResult(before=before, artifact=block, after=after)


_default_extractor = ArtifactExtractor()


def extract(text: Optional[str]) -> ExtractionResult:
    return _default_extractor.extract(text)


def _parse_json(body: str) -> Any:
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ArtifactParseError("invalid_json", f"block body is not valid JSON: {exc}") from exc


def _interpret_typed(artifact_type: str, body: str) -> ArtifactBlock:
    payload = _parse_json(body)
    if not isinstance(payload, dict):
        raise ArtifactParseError("shape_mismatch", f"artifact:{artifact_type} body must be a JSON object")

    if artifact_type == "form":
        try:
            form = FormArtifactPayload.model_validate(payload)
        except ValidationError as exc:
            raise ArtifactParseError("shape_mismatch", str(exc)) from exc
        return ArtifactBlock(
            type=artifact_type,
            payload=payload,
            title=form.title,
            fields=dict(form.fields),
            actions=list(form.actions),
        )

    if artifact_type == "error":
        try:
            error = ErrorArtifactPayload.model_validate(payload)
        except ValidationError as exc:
            raise ArtifactParseError("shape_mismatch", str(exc)) from exc
        suggestions = list(error.recovery.suggestions)
        if not suggestions:
            known = lookup_error(error.error.code)
            if known:
                suggestions = list(known.suggestions)
        return ArtifactBlock(
            type=artifact_type,
            payload=payload,
            title=error.title,
            actions=list(error.recovery.actions),
            suggestions=suggestions,
        )

    title = payload.get("title")
    return ArtifactBlock(
        type=artifact_type,
        payload=payload,
        title=title if isinstance(title, str) else None,
        fields=flatten(payload),
    )


def _record_fallback(exc: ArtifactParseError, artifact_type: str) -> None:
    ARTIFACT_PARSE_FALLBACKS.labels(reason=exc.reason).inc()
    LOG.warning(
        "artifact_parse_fallback",
        extra={"artifact_type": artifact_type, "reason": exc.reason, "err": str(exc)},
    )
