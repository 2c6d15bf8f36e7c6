from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from ...config import load_settings
from ...domain.artifact_models import ArtifactBlock, ExtractRequest, FlattenRequest
from ...services.artifacts import ArtifactExtractor
from ...services.field_extraction import flatten

router = APIRouter(prefix="/extract", tags=["extraction"])


class ExtractResponse(BaseModel):
    before: str
    artifact: Optional[ArtifactBlock] = None
    after: str = ""
    fields: Dict[str, Any]


class FlattenResponse(BaseModel):
    fields: Dict[str, Any]


@router.post("", response_model=ExtractResponse)
def extract_text(payload: ExtractRequest) -> ExtractResponse:
    result = ArtifactExtractor(load_settings().post_artifact_text).extract(payload.text)
    return ExtractResponse(before=result.before, artifact=result.artifact, after=result.after, fields=result.fields)


@router.post("/flatten", response_model=FlattenResponse)
def flatten_data(payload: FlattenRequest) -> FlattenResponse:
    return FlattenResponse(fields=flatten(payload.data))
