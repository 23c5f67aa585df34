"""Drives one question through quality control.

    draft -> analyzing -> approved | admin_review
    admin_review -> approved | returned | archived      (human review)
    approved -> archived                                (human review)
    draft | approved | admin_review | returned -> analyzing   (teacher edit)

The analysis path runs detached from the request that triggered it, so
everything that can go wrong there is logged and absorbed here. The move to
``analyzing`` is committed before the analyzer is called; a second trigger
for a question already in flight finds nothing to claim and stops.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from . import store
from .background import spawn
from .errors import AnalysisError, InvalidTransition, PersistenceFailure
from .models import ADMIN_REVIEW, APPROVED, ARCHIVED, DRAFT, RETURNED, AdminReview
from .notifications import TYPE_QUALITY_REVIEW, TYPE_QUESTION_RETURNED, NotificationDraft, Notifier
from .publication import PublicationGatekeeper
from .routing import AUTO_APPROVE, RoutingDecision, route
from .verdict import QuestionRef, QuestionSnapshot, Verdict

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_RETURN = "return"
DECISION_ARCHIVE = "archive"

# decision -> (target status, statuses the decision may be applied to)
REVIEW_TRANSITIONS: Dict[str, tuple[str, tuple[str, ...]]] = {
	DECISION_APPROVE: (APPROVED, (ADMIN_REVIEW,)),
	DECISION_RETURN: (RETURNED, (ADMIN_REVIEW,)),
	DECISION_ARCHIVE: (ARCHIVED, (ADMIN_REVIEW, APPROVED)),
}

OVERRIDE_FIELDS = ("override_bloom", "override_hots_strength", "override_difficulty", "override_boundedness")


class Analyzer(Protocol):
	async def analyze(self, question: QuestionSnapshot) -> Verdict: ...


class QuestionLifecycle:
	def __init__(
		self,
		session_factory: Callable[[], Session],
		analyzer: Analyzer,
		notifier: Notifier,
		gatekeeper: PublicationGatekeeper,
	) -> None:
		self.session_factory = session_factory
		self.analyzer = analyzer
		self.notifier = notifier
		self.gatekeeper = gatekeeper

	def submit(self, ref: QuestionRef) -> asyncio.Task:
		"""Start analysis in the background and return immediately."""
		return spawn(self.run(ref), name=f"qc:{ref}")

	async def run(self, ref: QuestionRef) -> Optional[str]:
		"""Analyze and route one question. Returns its final status, or None if not claimed.

		Data-store steps and notification fan-out run in worker threads.
		"""
		try:
			snapshot = await asyncio.to_thread(self._claim, ref)
		except PersistenceFailure:
			logger.exception("Could not claim %s for analysis", ref)
			return None
		if snapshot is None:
			return None

		try:
			return await self._analyze_and_route(snapshot)
		except PersistenceFailure:
			logger.exception("Persistence failure while processing %s, reverting to draft", ref)
		except Exception:
			logger.exception("Unexpected error while processing %s, reverting to draft", ref)
		return DRAFT if await asyncio.to_thread(self._revert_to_draft, ref) else None

	def _claim(self, ref: QuestionRef) -> Optional[QuestionSnapshot]:
		db = self.session_factory()
		try:
			if not store.claim_for_analysis(db, ref):
				logger.info("Skipping %s: missing, archived or already being analyzed", ref)
				return None
			row = store.get_question(db, ref)
			return store.snapshot_of(row, ref.source)
		finally:
			db.close()

	async def _analyze_and_route(self, snapshot: QuestionSnapshot) -> Optional[str]:
		ref = snapshot.ref
		try:
			verdict = await self.analyzer.analyze(snapshot)
		except AnalysisError as e:
			raw = getattr(e, "raw_text", "")
			logger.error(
				"Quality analysis failed for %s (%s): %s%s",
				ref, type(e).__name__, e, f" | raw: {raw[:300]}" if raw else "",
			)
			await asyncio.to_thread(self._revert_to_draft, ref)
			return DRAFT

		decision = route(verdict, snapshot.teacher_difficulty, snapshot.teacher_hots_claim)
		new_status = APPROVED if decision.action == AUTO_APPROVE else ADMIN_REVIEW

		moved, settled = await asyncio.to_thread(self._record_verdict, ref, verdict, decision, new_status)
		if not moved:
			return settled
		logger.info("Quality analysis complete for %s: %s (priority %s)", ref, new_status, decision.priority)

		if new_status == ADMIN_REVIEW:
			await asyncio.to_thread(self._notify_review_needed, snapshot, decision)
		elif snapshot.assessment_id:
			await asyncio.to_thread(self._auto_publish, ref.source, snapshot.assessment_id)
		return new_status

	def _record_verdict(self, ref: QuestionRef, verdict: Verdict, decision: RoutingDecision, new_status: str) -> Tuple[bool, Optional[str]]:
		"""Store the verdict and leave ``analyzing``.

		Returns whether this run set the status, and the status the question ends up in.
		"""
		db = self.session_factory()
		try:
			store.insert_verdict(db, ref, verdict, decision)
			if store.finish_analysis(db, ref, new_status):
				return True, new_status
			row = store.get_question(db, ref)
			if row is None:
				logger.warning("%s was deleted while the analyzer ran; verdict stored", ref)
				return False, None
			logger.warning("%s left analyzing while the analyzer ran; verdict stored, status untouched", ref)
			return False, row.status
		finally:
			db.close()

	def _revert_to_draft(self, ref: QuestionRef) -> bool:
		db = self.session_factory()
		try:
			return store.finish_analysis(db, ref, DRAFT)
		except PersistenceFailure:
			logger.exception(
				"Could not revert %s to draft; it stays in analyzing until %s passes and it can be claimed again",
				ref, store.STALE_ANALYSIS_AFTER,
			)
			return False
		finally:
			db.close()

	def _auto_publish(self, kind: str, assessment_id: str) -> None:
		try:
			self.gatekeeper.try_auto_publish(kind, assessment_id)
		except Exception:
			logger.exception("Auto-publish check failed for %s/%s", kind, assessment_id)

	def _notify_review_needed(self, snapshot: QuestionSnapshot, decision: RoutingDecision) -> None:
		try:
			db = self.session_factory()
			try:
				recipients: List[str] = store.admin_user_ids(db)
			finally:
				db.close()
			if snapshot.teacher_user_id and snapshot.teacher_user_id not in recipients:
				recipients.insert(0, snapshot.teacher_user_id)
			reasons = ", ".join(decision.reasons) or "Needs manual verification"
			self.notifier.send(
				NotificationDraft(
					user_id=user_id,
					type=TYPE_QUALITY_REVIEW,
					title="Quality analysis finished: question needs admin review",
					message=f"The question was analyzed and forwarded for admin review. Reasons: {reasons}",
					link="/dashboard/admin/review-queue" if user_id != snapshot.teacher_user_id else "/dashboard/teacher/question-bank",
				)
				for user_id in recipients
			)
		except Exception:
			logger.exception("Failed to send review notifications for %s", snapshot.ref)

	# ---- human review ----

	def review(
		self,
		ref: QuestionRef,
		reviewer_id: str,
		decision: str,
		notes: Optional[str] = None,
		return_reasons: Optional[List[str]] = None,
		overrides: Optional[Dict[str, object]] = None,
	) -> str:
		"""Apply an admin decision. Raises InvalidTransition or LookupError."""
		if decision not in REVIEW_TRANSITIONS:
			raise ValueError(f"decision must be one of {sorted(REVIEW_TRANSITIONS)}")
		target, allowed_from = REVIEW_TRANSITIONS[decision]
		overrides = {k: v for k, v in (overrides or {}).items() if k in OVERRIDE_FIELDS and v is not None}

		db = self.session_factory()
		try:
			row = store.get_question(db, ref)
			if row is None:
				raise LookupError(f"question {ref} not found")
			current = row.status
			if current not in allowed_from:
				raise InvalidTransition(current, target)
			snapshot = store.snapshot_of(row, ref.source)
			review = AdminReview(
				question_source=ref.source,
				question_id=ref.question_id,
				reviewer_id=reviewer_id,
				decision=decision,
				notes=notes or None,
				return_reasons=return_reasons or None,
				**overrides,
			)
			if not store.apply_review(db, ref, review, target, expected=current):
				# Someone moved the question between our read and write.
				db.expire_all()
				moved = store.get_question(db, ref)
				if moved is None:
					raise LookupError(f"question {ref} not found")
				raise InvalidTransition(moved.status, target)
		finally:
			db.close()
		logger.info("Admin %s set %s to %s (%s)", reviewer_id, ref, target, decision)

		if target == RETURNED:
			self._notify_returned(snapshot, notes, return_reasons)
		elif target == APPROVED and snapshot.assessment_id:
			self._auto_publish(ref.source, snapshot.assessment_id)
		return target

	def _notify_returned(self, snapshot: QuestionSnapshot, notes: Optional[str], reasons: Optional[List[str]]) -> None:
		if not snapshot.teacher_user_id:
			return
		detail = "; ".join(reasons or []) or notes or "See reviewer notes"
		try:
			self.notifier.send([NotificationDraft(
				user_id=snapshot.teacher_user_id,
				type=TYPE_QUESTION_RETURNED,
				title="Question returned for revision",
				message=f"An administrator returned your question. {detail}",
				link="/dashboard/teacher/question-bank",
			)])
		except Exception:
			logger.exception("Failed to notify teacher about returned %s", snapshot.ref)

	def latest_review(self, ref: QuestionRef) -> Optional[AdminReview]:
		db = self.session_factory()
		try:
			return store.latest_admin_review(db, ref)
		finally:
			db.close()
