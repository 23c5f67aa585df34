from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .auth import User, require_teacher
from ..pipeline import Pipeline, get_pipeline
from ..store import ASSESSMENT_MODELS


router = APIRouter(prefix="/assessments", tags=["assessments"])


class PublishRequest(BaseModel):
    is_active: bool


class PublishResponse(BaseModel):
    id: str
    state: str
    notified: int = 0


@router.patch("/{kind}/{assessment_id}/publish", response_model=PublishResponse)
def publish_assessment(
    kind: str,
    assessment_id: str,
    body: PublishRequest,
    user: User = Depends(require_teacher),
    pipeline: Pipeline = Depends(get_pipeline),
):
    if kind not in ASSESSMENT_MODELS:
        raise HTTPException(status_code=400, detail=f"kind must be one of {list(ASSESSMENT_MODELS)}")
    try:
        outcome = pipeline.gatekeeper.request_publish(kind, assessment_id, body.is_active)
    except LookupError:
        raise HTTPException(status_code=404, detail=f"{kind} not found")
    return PublishResponse(id=assessment_id, state=outcome.state, notified=outcome.notified)
