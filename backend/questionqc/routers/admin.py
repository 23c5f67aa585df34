from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .auth import User, require_admin
from ..db import get_db
from ..errors import InvalidTransition, PersistenceFailure
from ..lifecycle import REVIEW_TRANSITIONS
from ..models import QUESTION_STATUSES
from ..pipeline import Pipeline, get_pipeline
from ..review_queue import ReviewQueuePage, fetch_review_queue
from ..verdict import QUESTION_SOURCES, QuestionRef


router = APIRouter(prefix="/admin", tags=["admin"])


class ReviewDecisionRequest(BaseModel):
    question_id: str
    question_source: str
    decision: str
    notes: Optional[str] = None
    return_reasons: Optional[List[str]] = None
    override_bloom: Optional[int] = None
    override_hots_strength: Optional[str] = None
    override_difficulty: Optional[str] = None
    override_boundedness: Optional[str] = None


class ReviewDecisionResponse(BaseModel):
    success: bool = True
    question_id: str
    new_status: str


@router.get("/review-queue", response_model=ReviewQueuePage)
async def review_queue(
    source: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if source is not None and source not in QUESTION_SOURCES:
        raise HTTPException(status_code=400, detail=f"source must be one of {list(QUESTION_SOURCES)}")
    if status is not None and status not in QUESTION_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of {list(QUESTION_STATUSES)}")
    return fetch_review_queue(db, source=source, status=status, page=page, limit=limit)


@router.post("/review-queue", response_model=ReviewDecisionResponse)
def review_decision(
    req: ReviewDecisionRequest,
    user: User = Depends(require_admin),
    pipeline: Pipeline = Depends(get_pipeline),
):
    if req.question_source not in QUESTION_SOURCES:
        raise HTTPException(status_code=400, detail=f"question_source must be one of {list(QUESTION_SOURCES)}")
    if req.decision not in REVIEW_TRANSITIONS:
        raise HTTPException(status_code=400, detail="decision must be approve, return, or archive")
    overrides = req.model_dump(include={
        "override_bloom", "override_hots_strength", "override_difficulty", "override_boundedness",
    })
    try:
        new_status = pipeline.lifecycle.review(
            QuestionRef(source=req.question_source, question_id=req.question_id),
            reviewer_id=user.id,
            decision=req.decision,
            notes=req.notes,
            return_reasons=req.return_reasons,
            overrides=overrides,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="question not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="could not save the review")
    return ReviewDecisionResponse(question_id=req.question_id, new_status=new_status)
