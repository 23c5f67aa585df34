"""Routing rules: auto-approve a question or send it to the admin review queue.

``route`` is pure and total. Every rule that fires contributes one reason and
a priority; the decision takes the most urgent (lowest) priority among them.
A verdict the rules cannot read is sent to review at ``VIOLATION_PRIORITY``:
misrouting toward more scrutiny is always safe, toward less never is.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import RoutingViolation
from .verdict import BOUNDEDNESS_TIERS, HOTS_STRENGTHS, Verdict

logger = logging.getLogger(__name__)

AUTO_APPROVE = "auto_approve"
ADMIN_REVIEW = "admin_review"

VIOLATION_PRIORITY = 0
BOUNDEDNESS_PRIORITY = 10
DIFFICULTY_MISMATCH_PRIORITY = 20
VERY_LOW_CONFIDENCE_PRIORITY = 30
FLAG_PRIORITY = 40
LOW_CONFIDENCE_PRIORITY = 40
HOTS_CLAIM_PRIORITY = 50
GRADE_FIT_PRIORITY = 50
NEUTRAL_PRIORITY = 100

REVIEW_CONFIDENCE = 0.65
VERY_LOW_CONFIDENCE = 0.50
EASY_MAX_SCORE = 7  # teacher says easy, analyzer scores >= this
HARD_MIN_SCORE = 3  # teacher says hard, analyzer scores <= this


@dataclass(frozen=True)
class RoutingDecision:
	action: str
	reasons: List[str] = field(default_factory=list)
	priority: int = NEUTRAL_PRIORITY

	@property
	def needs_review(self) -> bool:
		return self.action == ADMIN_REVIEW


class _Collector:
	def __init__(self) -> None:
		self.reasons: List[str] = []
		self.priority = NEUTRAL_PRIORITY

	def add(self, reason: str, priority: int) -> None:
		self.reasons.append(reason)
		self.priority = min(self.priority, priority)


def route(
	verdict: Verdict,
	teacher_difficulty: Optional[str] = None,
	teacher_hots_claim: Optional[bool] = None,
) -> RoutingDecision:
	try:
		return _apply_rules(verdict, teacher_difficulty, teacher_hots_claim)
	except RoutingViolation as e:
		reason = f"Verdict could not be classified: {e}"
	except (AttributeError, TypeError, ValueError) as e:
		reason = f"Verdict could not be classified: {type(e).__name__}: {e}"
	logger.warning("Routing violation, sending to review: %s", reason)
	return RoutingDecision(action=ADMIN_REVIEW, reasons=[reason], priority=VIOLATION_PRIORITY)


def _apply_rules(
	verdict: Verdict,
	teacher_difficulty: Optional[str],
	teacher_hots_claim: Optional[bool],
) -> RoutingDecision:
	if verdict.unreadable_fields:
		raise RoutingViolation(f"missing or invalid {', '.join(verdict.unreadable_fields)}")
	if verdict.boundedness not in BOUNDEDNESS_TIERS:
		raise RoutingViolation(f"unknown boundedness tier {verdict.boundedness!r}")
	if verdict.hots.strength not in HOTS_STRENGTHS:
		raise RoutingViolation(f"unknown HOTS strength {verdict.hots.strength!r}")

	found = _Collector()
	declared = (teacher_difficulty or "").strip().lower()
	score = float(verdict.difficulty.score)

	if declared == "easy" and score >= EASY_MAX_SCORE:
		found.add("Difficulty mismatch: teacher declared Easy but the analyzer rates it Hard", DIFFICULTY_MISMATCH_PRIORITY)
	if declared == "hard" and score <= HARD_MIN_SCORE:
		found.add("Difficulty mismatch: teacher declared Hard but the analyzer rates it Easy", DIFFICULTY_MISMATCH_PRIORITY)

	if teacher_hots_claim is True and (verdict.primary_bloom_level <= 3 or verdict.hots.strength == "S0"):
		found.add("Teacher claims HOTS but the analyzer disagrees (Bloom <= 3 or S0)", HOTS_CLAIM_PRIORITY)

	if verdict.boundedness == "B0":
		found.add("Poor boundedness (B0): the question is under-specified and may confuse students", BOUNDEDNESS_PRIORITY)

	quality = verdict.quality
	if quality.ambiguity_flags:
		found.add(f"Ambiguous question: {'; '.join(quality.ambiguity_flags)}", FLAG_PRIORITY)
	if quality.missing_info_flags:
		found.add(f"Missing information: {'; '.join(quality.missing_info_flags)}", FLAG_PRIORITY)

	conf = verdict.confidence
	low = [
		label for label, value in (
			("Bloom", conf.bloom),
			("HOTS", conf.hots),
			("Difficulty", conf.difficulty),
			("Boundedness", conf.boundedness),
		)
		if value < REVIEW_CONFIDENCE
	]
	if low:
		priority = VERY_LOW_CONFIDENCE_PRIORITY if conf.minimum() < VERY_LOW_CONFIDENCE else LOW_CONFIDENCE_PRIORITY
		found.add(f"Low analyzer confidence on: {', '.join(low)}", priority)

	if quality.grade_fit_flags:
		found.add(f"Not suitable for the grade level: {'; '.join(quality.grade_fit_flags)}", GRADE_FIT_PRIORITY)

	if found.reasons:
		return RoutingDecision(action=ADMIN_REVIEW, reasons=found.reasons, priority=found.priority)
	return RoutingDecision(action=AUTO_APPROVE, reasons=[], priority=NEUTRAL_PRIORITY)


def urgency_label(priority: int) -> str:
	if priority <= 10:
		return "Urgent"
	if priority <= 30:
		return "High"
	if priority <= 50:
		return "Medium"
	return "Low"


def summarize(decision: RoutingDecision) -> str:
	if decision.action == AUTO_APPROVE:
		return "Question approved automatically by the quality analyzer"
	return f"Needs admin review ({urgency_label(decision.priority)}): {'; '.join(decision.reasons)}"
