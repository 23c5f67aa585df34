"""Auto-publication of quizzes and exams.

An assessment a teacher tried to activate while some of its questions were
still under review is parked with ``pending_publish``. Each time one of its
questions is approved, ``try_auto_publish`` runs again; the first call that
sees every question approved flips the assessment live. Concurrent callers
are arbitrated by a conditional UPDATE on ``pending_publish``: only the call
whose UPDATE changed a row sends notifications.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, List

from sqlalchemy.orm import Session

from . import store
from .models import APPROVED
from .notifications import TYPE_EXAM_NEW, TYPE_QUIZ_NEW, TYPE_SYSTEM, NotificationDraft, Notifier

logger = logging.getLogger(__name__)

ACTIVATED = "activated"
PENDING = "pending_publish"
DEACTIVATED = "deactivated"
UNCHANGED = "unchanged"


@dataclass(frozen=True)
class PublishOutcome:
	state: str
	notified: int = 0


class PublicationGatekeeper:
	def __init__(self, session_factory: Callable[[], Session], notifier: Notifier) -> None:
		self.session_factory = session_factory
		self.notifier = notifier

	def try_auto_publish(self, kind: str, assessment_id: str) -> bool:
		"""Publish the assessment if it is waiting and every question is approved.

		Returns True only for the call that actually performed the transition.
		"""
		db = self.session_factory()
		try:
			assessment = store.get_assessment(db, kind, assessment_id)
			if assessment is None:
				logger.warning("Auto-publish: %s/%s not found", kind, assessment_id)
				return False
			if not assessment.pending_publish:
				logger.debug("Auto-publish: %s/%s is not pending publish", kind, assessment_id)
				return False
			if assessment.is_active:
				return False
			statuses = store.child_statuses(db, kind, assessment_id)
			if not statuses:
				logger.info("Auto-publish: %s/%s has no questions", kind, assessment_id)
				return False
			if any(s != APPROVED for s in statuses):
				logger.info("Auto-publish: %s/%s not ready, statuses=%s", kind, assessment_id, statuses)
				return False

			changed = store.publish_if_pending(db, kind, assessment_id)
			if changed == 0:
				logger.info("Auto-publish: %s/%s already published by a concurrent caller", kind, assessment_id)
				return False
			db.refresh(assessment)
			logger.info("Auto-published %s/%s", kind, assessment_id)
			self._notify_published(db, kind, assessment, reviewed=True)
			return True
		finally:
			db.close()

	def request_publish(self, kind: str, assessment_id: str, active: bool) -> PublishOutcome:
		"""Teacher toggles visibility. Activation waits for every question to be approved."""
		db = self.session_factory()
		try:
			assessment = store.get_assessment(db, kind, assessment_id)
			if assessment is None:
				raise LookupError(f"{kind} {assessment_id} not found")
			if not active:
				store.set_publish_flags(db, kind, assessment_id, is_active=False, pending_publish=False)
				return PublishOutcome(state=DEACTIVATED)

			statuses = store.child_statuses(db, kind, assessment_id)
			if statuses and any(s != APPROVED for s in statuses):
				store.set_publish_flags(db, kind, assessment_id, is_active=False, pending_publish=True)
				logger.info("%s/%s parked until all %d question(s) are approved", kind, assessment_id, len(statuses))
				return PublishOutcome(state=PENDING)

			if store.activate_if_inactive(db, kind, assessment_id) == 0:
				return PublishOutcome(state=UNCHANGED)
			db.refresh(assessment)
			notified = self._notify_published(db, kind, assessment, reviewed=False)
			return PublishOutcome(state=ACTIVATED, notified=notified)
		finally:
			db.close()

	def _notify_published(self, db: Session, kind: str, assessment, *, reviewed: bool) -> int:
		label = "Quiz" if kind == "quiz" else "Exam"
		path = "quizzes" if kind == "quiz" else "exams"
		drafts: List[NotificationDraft] = []
		if reviewed and assessment.teacher_user_id:
			drafts.append(NotificationDraft(
				user_id=assessment.teacher_user_id,
				type=TYPE_SYSTEM,
				title=f"{label} reviewed and published",
				message=f'{label} "{assessment.title}" has finished review and is now published.',
				link=f"/dashboard/teacher/{path}/{assessment.id}",
			))
		if assessment.class_id:
			starts = f" Starts: {assessment.start_time:%Y-%m-%d %H:%M}" if assessment.start_time else ""
			message = f"{assessment.subject_name or ''} - {assessment.duration_minutes or 0} minutes.{starts}".strip()
			for student_id in store.enrolled_student_ids(db, assessment.class_id):
				drafts.append(NotificationDraft(
					user_id=student_id,
					type=TYPE_QUIZ_NEW if kind == "quiz" else TYPE_EXAM_NEW,
					title=f"New {label}: {assessment.title}",
					message=message,
					link=f"/dashboard/student/{path}",
				))
		return self.notifier.send(drafts)
