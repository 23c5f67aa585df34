from __future__ import annotations
import math
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import AdminReview, QualityVerdictRecord
from .routing import NEUTRAL_PRIORITY
from .store import QUESTION_MODELS


class VerdictSummary(BaseModel):
	priority: int
	action: str
	reasons: List[str] = []
	primary_bloom_level: int
	hots_strength: str
	boundedness: str
	difficulty_score: float
	difficulty_label: str
	clarity_score: float
	created_at: datetime


class ReviewQueueItem(BaseModel):
	question_source: str
	question_id: str
	question_text: str
	question_type: str
	status: str
	teacher_user_id: Optional[str] = None
	assessment_id: Optional[str] = None
	created_at: datetime
	verdict: Optional[VerdictSummary] = None
	latest_decision: Optional[str] = None

	@property
	def priority(self) -> int:
		return self.verdict.priority if self.verdict else NEUTRAL_PRIORITY


class ReviewQueuePage(BaseModel):
	data: List[ReviewQueueItem]
	total: int
	page: int
	limit: int
	total_pages: int


def _latest_verdicts(db: Session, source: str, ids: List[str]) -> Dict[str, QualityVerdictRecord]:
	if not ids:
		return {}
	newest = (
		select(func.max(QualityVerdictRecord.id))
		.where(QualityVerdictRecord.question_source == source, QualityVerdictRecord.question_id.in_(ids))
		.group_by(QualityVerdictRecord.question_id)
	)
	rows = db.scalars(select(QualityVerdictRecord).where(QualityVerdictRecord.id.in_(newest)))
	return {r.question_id: r for r in rows}


def _latest_decisions(db: Session, source: str, ids: List[str]) -> Dict[str, str]:
	if not ids:
		return {}
	newest = (
		select(func.max(AdminReview.id))
		.where(AdminReview.question_source == source, AdminReview.question_id.in_(ids))
		.group_by(AdminReview.question_id)
	)
	rows = db.scalars(select(AdminReview).where(AdminReview.id.in_(newest)))
	return {r.question_id: r.decision for r in rows}


def verdict_summary(record: QualityVerdictRecord) -> VerdictSummary:
	return VerdictSummary(
		priority=record.routing_priority,
		action=record.routing_action,
		reasons=list(record.routing_reasons or []),
		primary_bloom_level=record.primary_bloom_level,
		hots_strength=record.hots_strength,
		boundedness=record.boundedness,
		difficulty_score=record.difficulty_score,
		difficulty_label=record.difficulty_label,
		clarity_score=record.clarity_score,
		created_at=record.created_at,
	)


def fetch_review_queue(
	db: Session,
	source: Optional[str] = None,
	status: Optional[str] = None,
	page: int = 1,
	limit: int = 20,
) -> ReviewQueuePage:
	"""All questions across sources, most urgent verdict first, newest first on ties."""
	page = max(1, page)
	limit = max(1, min(limit, 100))
	sources = [source] if source else list(QUESTION_MODELS)

	items: List[ReviewQueueItem] = []
	for src in sources:
		model = QUESTION_MODELS[src]
		query = select(model)
		if status:
			query = query.where(model.status == status)
		questions = list(db.scalars(query.order_by(model.created_at.desc())))
		ids = [q.id for q in questions]
		verdicts = _latest_verdicts(db, src, ids)
		decisions = _latest_decisions(db, src, ids)
		for q in questions:
			record = verdicts.get(q.id)
			items.append(ReviewQueueItem(
				question_source=src,
				question_id=q.id,
				question_text=q.question_text,
				question_type=q.question_type,
				status=q.status,
				teacher_user_id=q.teacher_user_id,
				assessment_id=getattr(q, "quiz_id", None) or getattr(q, "exam_id", None),
				created_at=q.created_at,
				verdict=verdict_summary(record) if record else None,
				latest_decision=decisions.get(q.id),
			))

	items.sort(key=lambda item: -item.created_at.timestamp())
	items.sort(key=lambda item: item.priority)

	total = len(items)
	offset = (page - 1) * limit
	return ReviewQueuePage(
		data=items[offset : offset + limit],
		total=total,
		page=page,
		limit=limit,
		total_pages=math.ceil(total / limit) if total else 0,
	)
