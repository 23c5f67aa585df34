from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import User, require_teacher
from ..db import get_db
from ..models import ARCHIVED, DRAFT, ROLE_ADMIN
from ..pipeline import Pipeline, get_pipeline
from ..review_queue import VerdictSummary, verdict_summary
from ..routing import RoutingDecision, summarize
from ..store import ASSESSMENT_CHILDREN, get_assessment, latest_verdict, question_model
from ..verdict import QUESTION_SOURCES, QuestionRef


router = APIRouter(prefix="/questions", tags=["questions"])

EDITABLE_FIELDS = (
    "question_text", "question_type", "options", "correct_answer",
    "difficulty", "hots_claim", "subject_name", "grade_band",
)


class QuestionIn(BaseModel):
    question_text: str = Field(min_length=1)
    question_type: str = "MULTIPLE_CHOICE"
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    difficulty: Optional[str] = None
    hots_claim: bool = False
    subject_name: Optional[str] = None
    grade_band: Optional[str] = None
    # Required for quiz and exam questions
    assessment_id: Optional[str] = None
    order_index: int = 0


class QuestionUpdate(BaseModel):
    question_text: Optional[str] = None
    question_type: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    difficulty: Optional[str] = None
    hots_claim: Optional[bool] = None
    subject_name: Optional[str] = None
    grade_band: Optional[str] = None


class QuestionOut(BaseModel):
    id: str
    question_source: str
    status: str


class AnalysisOut(QuestionOut):
    verdict: Optional[VerdictSummary] = None
    routing: Optional[str] = None


def _validate_source(source: str) -> str:
    if source not in QUESTION_SOURCES:
        raise HTTPException(status_code=400, detail=f"source must be one of {list(QUESTION_SOURCES)}")
    return source


def _new_row(db: Session, source: str, body: QuestionIn, user: User):
    model = question_model(source)
    values = {field: getattr(body, field) for field in EDITABLE_FIELDS}
    values["teacher_user_id"] = user.id
    values["status"] = DRAFT
    if source in ASSESSMENT_CHILDREN:
        if not body.assessment_id:
            raise HTTPException(status_code=400, detail=f"assessment_id is required for {source} questions")
        if get_assessment(db, source, body.assessment_id) is None:
            raise HTTPException(status_code=404, detail=f"{source} {body.assessment_id} not found")
        _, fk = ASSESSMENT_CHILDREN[source]
        values[fk] = body.assessment_id
        values["order_index"] = body.order_index
    row = model(**values)
    db.add(row)
    return row


@router.post("/{source}", response_model=QuestionOut, status_code=201)
async def create_question(
    source: str,
    body: QuestionIn,
    user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    _validate_source(source)
    row = _new_row(db, source, body, user)
    db.commit()
    pipeline.lifecycle.submit(QuestionRef(source=source, question_id=row.id))
    return QuestionOut(id=row.id, question_source=source, status=DRAFT)


@router.post("/{source}/bulk", response_model=List[QuestionOut], status_code=201)
async def create_questions_bulk(
    source: str,
    body: List[QuestionIn],
    user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    _validate_source(source)
    if not body:
        raise HTTPException(status_code=400, detail="at least one question is required")
    rows = [_new_row(db, source, item, user) for item in body]
    db.commit()
    ids = [row.id for row in rows]
    pipeline.dispatcher.dispatch_bulk([QuestionRef(source=source, question_id=qid) for qid in ids])
    return [QuestionOut(id=qid, question_source=source, status=DRAFT) for qid in ids]


@router.put("/{source}/{question_id}", response_model=QuestionOut)
async def update_question(
    source: str,
    question_id: str,
    body: QuestionUpdate,
    user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    _validate_source(source)
    row = db.get(question_model(source), question_id)
    if row is None:
        raise HTTPException(status_code=404, detail="question not found")
    if user.role != ROLE_ADMIN and row.teacher_user_id != user.id:
        raise HTTPException(status_code=403, detail="not your question")
    if row.status == ARCHIVED:
        raise HTTPException(status_code=409, detail="archived questions cannot be edited")
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(row, field, value)
    # Edited content is unvetted until re-analyzed; a verdict still in flight for the old text no longer applies
    row.status = DRAFT
    db.commit()
    pipeline.lifecycle.submit(QuestionRef(source=source, question_id=question_id))
    return QuestionOut(id=question_id, question_source=source, status=DRAFT)


@router.post("/{source}/{question_id}/analyze", response_model=AnalysisOut)
async def analyze_question(
    source: str,
    question_id: str,
    user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Run quality analysis now and wait for the outcome."""
    _validate_source(source)
    row = db.get(question_model(source), question_id)
    if row is None:
        raise HTTPException(status_code=404, detail="question not found")
    if user.role != ROLE_ADMIN and row.teacher_user_id != user.id:
        raise HTTPException(status_code=403, detail="not your question")
    ref = QuestionRef(source=source, question_id=question_id)
    status = await pipeline.lifecycle.run(ref)
    if status is None:
        raise HTTPException(status_code=409, detail="question is archived or already being analyzed")
    if status == DRAFT:
        raise HTTPException(status_code=502, detail="quality analysis failed; the question was returned to draft")
    db.expire_all()
    record = latest_verdict(db, ref)
    if record is None:
        return AnalysisOut(id=question_id, question_source=source, status=status)
    decision = RoutingDecision(
        action=record.routing_action,
        reasons=list(record.routing_reasons or []),
        priority=record.routing_priority,
    )
    return AnalysisOut(
        id=question_id,
        question_source=source,
        status=status,
        verdict=verdict_summary(record),
        routing=summarize(decision),
    )
