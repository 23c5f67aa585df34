"""Data-store operations used by the pipeline.

Every write commits on its own so a failure in a later step never undoes an
earlier one. SQLAlchemy errors surface as ``PersistenceFailure``.
"""
from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, Optional, Type

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import PersistenceFailure
from .models import (
	ANALYZING, APPROVED, ADMIN_REVIEW, DRAFT, RETURNED, ROLE_ADMIN,
	AcademicYear, AdminReview, BankQuestion, Exam, ExamQuestion, QualityVerdictRecord,
	Quiz, QuizQuestion, StudentEnrollment, User,
)
from .routing import RoutingDecision
from .verdict import QuestionRef, QuestionSnapshot, Verdict

QUESTION_MODELS = {"bank": BankQuestion, "quiz": QuizQuestion, "exam": ExamQuestion}
ASSESSMENT_MODELS = {"quiz": Quiz, "exam": Exam}
# assessment kind -> (question model, foreign key column name)
ASSESSMENT_CHILDREN = {"quiz": (QuizQuestion, "quiz_id"), "exam": (ExamQuestion, "exam_id")}

# States from which an edit may (re)start analysis
CLAIMABLE_STATES = (DRAFT, APPROVED, ADMIN_REVIEW, RETURNED)
# An ``analyzing`` row untouched for this long is treated as abandoned and may be claimed again
STALE_ANALYSIS_AFTER = timedelta(minutes=30)


def question_model(source: str) -> Type:
	try:
		return QUESTION_MODELS[source]
	except KeyError:
		raise ValueError(f"unknown question source {source!r}") from None


def assessment_model(kind: str) -> Type:
	try:
		return ASSESSMENT_MODELS[kind]
	except KeyError:
		raise ValueError(f"unknown assessment kind {kind!r}") from None


@contextmanager
def persisting(db: Session, what: str) -> Iterator[None]:
	try:
		yield
		db.commit()
	except SQLAlchemyError as e:
		db.rollback()
		raise PersistenceFailure(f"{what} failed: {e}") from e


# ---- questions ----

def get_question(db: Session, ref: QuestionRef):
	return db.get(question_model(ref.source), ref.question_id)


def snapshot_of(row, source: str) -> QuestionSnapshot:
	return QuestionSnapshot(
		source=source,
		question_id=row.id,
		question_text=row.question_text or "",
		question_type=row.question_type or "MULTIPLE_CHOICE",
		options=[str(o) for o in row.options] if row.options else None,
		correct_answer=row.correct_answer,
		teacher_difficulty=row.difficulty,
		teacher_hots_claim=bool(row.hots_claim),
		subject_name=row.subject_name,
		grade_band=row.grade_band,
		teacher_user_id=row.teacher_user_id,
		assessment_id=getattr(row, "quiz_id", None) or getattr(row, "exam_id", None),
	)


def claim_for_analysis(db: Session, ref: QuestionRef) -> bool:
	"""Move the question to ``analyzing``.

	Fails for archived questions and for ones already being analyzed, unless
	that analysis has been silent for longer than ``STALE_ANALYSIS_AFTER``.
	"""
	model = question_model(ref.source)
	now = datetime.utcnow()
	with persisting(db, f"claim {ref}"):
		result = db.execute(
			update(model)
			.where(
				model.id == ref.question_id,
				or_(
					model.status.in_(CLAIMABLE_STATES),
					and_(model.status == ANALYZING, model.updated_at < now - STALE_ANALYSIS_AFTER),
				),
			)
			.values(status=ANALYZING, updated_at=now)
			.execution_options(synchronize_session=False)
		)
	return result.rowcount == 1


def finish_analysis(db: Session, ref: QuestionRef, status: str) -> bool:
	"""Leave ``analyzing`` for ``status``; a no-op if someone else moved it meanwhile."""
	model = question_model(ref.source)
	with persisting(db, f"set {ref} to {status}"):
		result = db.execute(
			update(model)
			.where(model.id == ref.question_id, model.status == ANALYZING)
			.values(status=status)
			.execution_options(synchronize_session=False)
		)
	return result.rowcount == 1


# ---- verdicts and reviews ----

def insert_verdict(db: Session, ref: QuestionRef, verdict: Verdict, decision: RoutingDecision) -> QualityVerdictRecord:
	row = QualityVerdictRecord(
		question_source=ref.source,
		question_id=ref.question_id,
		primary_bloom_level=verdict.primary_bloom_level,
		secondary_bloom_levels=verdict.secondary_bloom_levels,
		hots_flag=verdict.hots.flag,
		hots_strength=verdict.hots.strength,
		hots_signals=verdict.hots.signals,
		boundedness=verdict.boundedness,
		difficulty_score=verdict.difficulty.score,
		difficulty_label=verdict.difficulty.label,
		difficulty_reasons=verdict.difficulty.reasons,
		clarity_score=verdict.quality.clarity_score,
		ambiguity_flags=verdict.quality.ambiguity_flags,
		missing_info_flags=verdict.quality.missing_info_flags,
		grade_fit_flags=verdict.quality.grade_fit_flags,
		subject_match_score=verdict.subject_match_score,
		suggested_edits=[edit.model_dump() for edit in verdict.suggested_edits],
		bloom_confidence=verdict.confidence.bloom,
		hots_confidence=verdict.confidence.hots,
		difficulty_confidence=verdict.confidence.difficulty,
		boundedness_confidence=verdict.confidence.boundedness,
		routing_action=decision.action,
		routing_priority=decision.priority,
		routing_reasons=list(decision.reasons),
		full_report=verdict.raw_report,
		model_version=verdict.model_version,
	)
	with persisting(db, f"insert verdict for {ref}"):
		db.add(row)
	return row


def latest_verdict(db: Session, ref: QuestionRef) -> Optional[QualityVerdictRecord]:
	return db.scalars(
		select(QualityVerdictRecord)
		.where(
			QualityVerdictRecord.question_source == ref.source,
			QualityVerdictRecord.question_id == ref.question_id,
		)
		.order_by(QualityVerdictRecord.created_at.desc(), QualityVerdictRecord.id.desc())
		.limit(1)
	).first()


def apply_review(db: Session, ref: QuestionRef, review: AdminReview, status: str, *, expected: str) -> bool:
	"""Move the question from ``expected`` to ``status`` and record ``review``, or do neither."""
	model = question_model(ref.source)
	with persisting(db, f"review {ref}"):
		result = db.execute(
			update(model)
			.where(model.id == ref.question_id, model.status == expected)
			.values(status=status)
			.execution_options(synchronize_session=False)
		)
		if result.rowcount != 1:
			return False
		db.add(review)
	return True


def latest_admin_review(db: Session, ref: QuestionRef) -> Optional[AdminReview]:
	return db.scalars(
		select(AdminReview)
		.where(AdminReview.question_source == ref.source, AdminReview.question_id == ref.question_id)
		.order_by(AdminReview.created_at.desc(), AdminReview.id.desc())
		.limit(1)
	).first()


# ---- assessments ----

def get_assessment(db: Session, kind: str, assessment_id: str):
	return db.get(assessment_model(kind), assessment_id)


def child_statuses(db: Session, kind: str, assessment_id: str) -> List[str]:
	model, fk = ASSESSMENT_CHILDREN[kind]
	return list(db.scalars(select(model.status).where(getattr(model, fk) == assessment_id)))


def publish_if_pending(db: Session, kind: str, assessment_id: str) -> int:
	"""Flip pending -> active. The predicate on pending_publish makes this the race guard."""
	model = assessment_model(kind)
	with persisting(db, f"publish {kind}/{assessment_id}"):
		result = db.execute(
			update(model)
			.where(model.id == assessment_id, model.pending_publish.is_(True))
			.values(is_active=True, pending_publish=False)
			.execution_options(synchronize_session=False)
		)
	return result.rowcount


def activate_if_inactive(db: Session, kind: str, assessment_id: str) -> int:
	model = assessment_model(kind)
	with persisting(db, f"activate {kind}/{assessment_id}"):
		result = db.execute(
			update(model)
			.where(model.id == assessment_id, model.is_active.is_(False))
			.values(is_active=True, pending_publish=False)
			.execution_options(synchronize_session=False)
		)
	return result.rowcount


def set_publish_flags(db: Session, kind: str, assessment_id: str, *, is_active: bool, pending_publish: bool) -> None:
	model = assessment_model(kind)
	with persisting(db, f"update {kind}/{assessment_id}"):
		db.execute(
			update(model)
			.where(model.id == assessment_id)
			.values(is_active=is_active, pending_publish=pending_publish)
			.execution_options(synchronize_session=False)
		)


# ---- recipients ----

def enrolled_student_ids(db: Session, class_id: str) -> List[str]:
	active_year = db.scalars(select(AcademicYear.id).where(AcademicYear.is_active.is_(True)).limit(1)).first()
	if active_year is None:
		return []
	return list(db.scalars(
		select(StudentEnrollment.student_user_id).where(
			StudentEnrollment.class_id == class_id,
			StudentEnrollment.academic_year_id == active_year,
		)
	))


def admin_user_ids(db: Session) -> List[str]:
	return list(db.scalars(select(User.id).where(User.role == ROLE_ADMIN)))
