from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text, Index
from sqlalchemy.orm import declared_attr
from .db import Base


def _uuid() -> str:
	return uuid.uuid4().hex


# Question lifecycle states
DRAFT = "draft"
ANALYZING = "analyzing"
APPROVED = "approved"
ADMIN_REVIEW = "admin_review"
RETURNED = "returned"
ARCHIVED = "archived"
QUESTION_STATUSES = (DRAFT, ANALYZING, APPROVED, ADMIN_REVIEW, RETURNED, ARCHIVED)

# User roles
ROLE_ADMIN = "ADMIN"
ROLE_TEACHER = "TEACHER"
ROLE_STUDENT = "STUDENT"


class User(Base):
	__tablename__ = "users"
	id = Column(String(32), primary_key=True, default=_uuid)
	username = Column(String(128), unique=True, index=True, nullable=False)
	password_hash = Column(String(256), nullable=True)
	full_name = Column(String(256), nullable=True)
	role = Column(String(16), default=ROLE_STUDENT, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class QuestionColumns:
	"""Columns shared by the three question sources (bank, quiz, exam)."""

	id = Column(String(32), primary_key=True, default=_uuid)
	question_text = Column(Text, nullable=False)
	question_type = Column(String(32), default="MULTIPLE_CHOICE", nullable=False)
	options = Column(JSON, nullable=True)
	correct_answer = Column(Text, nullable=True)
	difficulty = Column(String(16), nullable=True)  # EASY / MEDIUM / HARD as declared by the teacher
	hots_claim = Column(Boolean, default=False, nullable=False)
	subject_name = Column(String(128), nullable=True)
	grade_band = Column(String(16), nullable=True)
	status = Column(String(16), default=DRAFT, nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	@declared_attr
	def teacher_user_id(cls):
		return Column(String(32), ForeignKey("users.id"), nullable=True)


class BankQuestion(QuestionColumns, Base):
	__tablename__ = "question_bank"


class QuizQuestion(QuestionColumns, Base):
	__tablename__ = "quiz_questions"
	quiz_id = Column(String(32), ForeignKey("quizzes.id"), nullable=False, index=True)
	order_index = Column(Integer, default=0, nullable=False)


class ExamQuestion(QuestionColumns, Base):
	__tablename__ = "exam_questions"
	exam_id = Column(String(32), ForeignKey("exams.id"), nullable=False, index=True)
	order_index = Column(Integer, default=0, nullable=False)


class AssessmentColumns:
	id = Column(String(32), primary_key=True, default=_uuid)
	title = Column(String(256), nullable=False)
	class_id = Column(String(32), nullable=True)
	subject_name = Column(String(128), nullable=True)
	duration_minutes = Column(Integer, default=0, nullable=False)
	start_time = Column(DateTime, nullable=True)
	# is_active: visible to students; pending_publish: waiting for every question to be approved
	is_active = Column(Boolean, default=False, nullable=False)
	pending_publish = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	@declared_attr
	def teacher_user_id(cls):
		return Column(String(32), ForeignKey("users.id"), nullable=True)


class Quiz(AssessmentColumns, Base):
	__tablename__ = "quizzes"


class Exam(AssessmentColumns, Base):
	__tablename__ = "exams"


class AcademicYear(Base):
	__tablename__ = "academic_years"
	id = Column(String(32), primary_key=True, default=_uuid)
	name = Column(String(64), nullable=False)
	is_active = Column(Boolean, default=False, nullable=False)


class StudentEnrollment(Base):
	__tablename__ = "student_enrollments"
	id = Column(Integer, primary_key=True, autoincrement=True)
	student_user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
	class_id = Column(String(32), nullable=False, index=True)
	academic_year_id = Column(String(32), ForeignKey("academic_years.id"), nullable=False)


class QualityVerdictRecord(Base):
	"""One analyzer verdict. Rows are never updated; the newest per question wins."""

	__tablename__ = "quality_verdicts"
	id = Column(Integer, primary_key=True, autoincrement=True)
	question_source = Column(String(8), nullable=False)
	question_id = Column(String(32), nullable=False)
	primary_bloom_level = Column(Integer, nullable=False)
	secondary_bloom_levels = Column(JSON, nullable=True)
	hots_flag = Column(Boolean, default=False, nullable=False)
	hots_strength = Column(String(8), nullable=False)
	hots_signals = Column(JSON, nullable=True)
	boundedness = Column(String(8), nullable=False)
	difficulty_score = Column(Float, nullable=False)
	difficulty_label = Column(String(16), nullable=False)
	difficulty_reasons = Column(JSON, nullable=True)
	clarity_score = Column(Float, nullable=False)
	ambiguity_flags = Column(JSON, nullable=True)
	missing_info_flags = Column(JSON, nullable=True)
	grade_fit_flags = Column(JSON, nullable=True)
	subject_match_score = Column(Float, nullable=True)
	suggested_edits = Column(JSON, nullable=True)
	bloom_confidence = Column(Float, nullable=False)
	hots_confidence = Column(Float, nullable=False)
	difficulty_confidence = Column(Float, nullable=False)
	boundedness_confidence = Column(Float, nullable=False)
	routing_action = Column(String(16), nullable=False)
	routing_priority = Column(Integer, nullable=False)
	routing_reasons = Column(JSON, nullable=True)
	full_report = Column(JSON, nullable=True)  # audit only
	model_version = Column(String(32), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (Index("ix_quality_verdicts_question", "question_source", "question_id"),)


class AdminReview(Base):
	__tablename__ = "admin_reviews"
	id = Column(Integer, primary_key=True, autoincrement=True)
	question_source = Column(String(8), nullable=False)
	question_id = Column(String(32), nullable=False)
	reviewer_id = Column(String(32), ForeignKey("users.id"), nullable=False)
	decision = Column(String(16), nullable=False)  # approve / return / archive
	notes = Column(Text, nullable=True)
	return_reasons = Column(JSON, nullable=True)
	override_bloom = Column(Integer, nullable=True)
	override_hots_strength = Column(String(8), nullable=True)
	override_difficulty = Column(String(16), nullable=True)
	override_boundedness = Column(String(8), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (Index("ix_admin_reviews_question", "question_source", "question_id"),)


class Notification(Base):
	__tablename__ = "notifications"
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(32), nullable=False, index=True)
	type = Column(String(32), nullable=False)
	title = Column(String(256), nullable=False)
	message = Column(Text, nullable=False)
	link = Column(String(256), nullable=True)
	is_read = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
