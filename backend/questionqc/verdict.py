from __future__ import annotations
import logging
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

QUESTION_SOURCES = ("bank", "quiz", "exam")

BOUNDEDNESS_TIERS = ("B0", "B1", "B2")
HOTS_STRENGTHS = ("S0", "S1", "S2")
DIFFICULTY_LABELS = ("easy", "medium", "hard")
CONFIDENCE_DIMENSIONS = ("bloom", "hots", "difficulty", "boundedness")
# Report fields the routing rules read; a verdict missing any of them cannot be routed
ROUTING_FIELDS = (
	"primary_bloom_level", "boundedness", "hots.strength", "difficulty.score_1_10",
) + tuple(f"confidence.{dim}" for dim in CONFIDENCE_DIMENSIONS)


class QuestionRef(BaseModel):
	source: str
	question_id: str

	def __str__(self) -> str:
		return f"{self.source}/{self.question_id}"


class QuestionSnapshot(BaseModel):
	"""The content of one question as sent to the analyzer."""

	source: str
	question_id: str
	question_text: str
	question_type: str = "MULTIPLE_CHOICE"
	options: Optional[List[str]] = None
	correct_answer: Optional[str] = None
	teacher_difficulty: Optional[str] = None
	teacher_hots_claim: bool = False
	subject_name: Optional[str] = None
	grade_band: Optional[str] = None
	teacher_user_id: Optional[str] = None
	# quiz_id / exam_id when the question belongs to an assessment
	assessment_id: Optional[str] = None

	@property
	def ref(self) -> QuestionRef:
		return QuestionRef(source=self.source, question_id=self.question_id)


class HotsAssessment(BaseModel):
	flag: bool = False
	strength: str = "S0"
	signals: List[str] = Field(default_factory=list)


class DifficultyAssessment(BaseModel):
	score: float = 5
	label: str = "medium"
	reasons: List[str] = Field(default_factory=list)


class QualityAssessment(BaseModel):
	clarity_score: float = 70
	ambiguity_flags: List[str] = Field(default_factory=list)
	missing_info_flags: List[str] = Field(default_factory=list)
	grade_fit_flags: List[str] = Field(default_factory=list)


class SuggestedEdit(BaseModel):
	goal: str = ""
	change_summary: str = ""
	before: str = ""
	after: str = ""


class Confidence(BaseModel):
	bloom: float = 0.7
	hots: float = 0.7
	difficulty: float = 0.7
	boundedness: float = 0.7

	def minimum(self) -> float:
		return min(self.bloom, self.hots, self.difficulty, self.boundedness)


class Verdict(BaseModel):
	primary_bloom_level: int = 1
	secondary_bloom_levels: List[int] = Field(default_factory=list)
	hots: HotsAssessment = Field(default_factory=HotsAssessment)
	boundedness: str = "B1"
	difficulty: DifficultyAssessment = Field(default_factory=DifficultyAssessment)
	quality: QualityAssessment = Field(default_factory=QualityAssessment)
	subject_match_score: float = 80
	suggested_edits: List[SuggestedEdit] = Field(default_factory=list)
	confidence: Confidence = Field(default_factory=Confidence)
	model_version: str = "qc-v1"
	# Full analyzer report, kept for audit and display only
	raw_report: Dict[str, Any] = Field(default_factory=dict)
	# Routing fields the report left out or gave as non-numbers; filled with display defaults above
	unreadable_fields: List[str] = Field(default_factory=list)

	@classmethod
	def from_report(cls, data: Dict[str, Any]) -> "Verdict":
		"""Build a verdict from a decoded report, filling gaps with defaults.

		Out-of-range numbers are clamped. Anything ``validate_report`` finds is
		logged; the analyzer's tier strings are kept verbatim so routing can
		still see an unknown tier. Routing fields that are missing, non-numeric
		or non-finite get a display default and are listed in
		``unreadable_fields`` so routing refuses to trust them.
		"""
		problems = validate_report(data)
		if problems:
			logger.warning("Analyzer report validation warnings: %s", problems)

		hots = _as_dict(data.get("hots"))
		difficulty = _as_dict(data.get("difficulty"))
		quality = _as_dict(data.get("quality"))
		alignment = _as_dict(data.get("alignment"))
		conf = _as_dict(data.get("confidence"))

		return cls(
			primary_bloom_level=int(_clamp(_number(data.get("primary_bloom_level"), 1), 1, 6)),
			secondary_bloom_levels=[
				int(_clamp(level, 1, 6)) for level in _as_list(data.get("secondary_bloom_levels"))
				if isinstance(level, (int, float)) and not isinstance(level, bool)
			],
			hots=HotsAssessment(
				flag=bool(hots.get("flag") or False),
				strength=str(hots.get("strength") or "S0"),
				signals=_strings(hots.get("signals")),
			),
			boundedness=str(data.get("boundedness") or "B1"),
			difficulty=DifficultyAssessment(
				score=_clamp(_number(difficulty.get("score_1_10"), 5), 0, 10),
				label=str(difficulty.get("label") or "medium").lower(),
				reasons=_strings(difficulty.get("reasons")),
			),
			quality=QualityAssessment(
				clarity_score=_clamp(_number(quality.get("clarity_score_0_100"), 70), 0, 100),
				ambiguity_flags=_strings(quality.get("ambiguity_flags")),
				missing_info_flags=_strings(quality.get("missing_info_flags")),
				grade_fit_flags=_strings(quality.get("grade_fit_flags")),
			),
			subject_match_score=_clamp(_number(alignment.get("subject_match_score_0_100"), 80), 0, 100),
			suggested_edits=[
				SuggestedEdit(**{k: str(v) for k, v in edit.items() if k in SuggestedEdit.model_fields})
				for edit in _as_list(data.get("suggested_edits")) if isinstance(edit, dict)
			],
			confidence=Confidence(**{
				dim: _clamp(_number(conf.get(dim), 0.7), 0.0, 1.0) for dim in CONFIDENCE_DIMENSIONS
			}),
			model_version=str(data.get("model_version") or "qc-v1"),
			raw_report=data,
			unreadable_fields=unreadable_routing_fields(data),
		)


def validate_report(data: Dict[str, Any]) -> List[str]:
	errors: List[str] = []
	level = _finite(data.get("primary_bloom_level"))
	if level is None or not 1 <= level <= 6:
		errors.append("primary_bloom_level must be 1-6")
	if data.get("boundedness") not in BOUNDEDNESS_TIERS:
		errors.append("boundedness must be B0, B1, or B2")
	if _as_dict(data.get("hots")).get("strength") not in HOTS_STRENGTHS:
		errors.append("hots.strength must be S0, S1, or S2")
	difficulty = _as_dict(data.get("difficulty"))
	if difficulty.get("label") not in DIFFICULTY_LABELS:
		errors.append("difficulty.label must be easy, medium, or hard")
	score = _finite(difficulty.get("score_1_10"))
	if score is None or not 0 <= score <= 10:
		errors.append("difficulty.score_1_10 must be 0-10")
	conf = _as_dict(data.get("confidence"))
	for key in CONFIDENCE_DIMENSIONS:
		value = _finite(conf.get(key))
		if value is None or not 0 <= value <= 1:
			errors.append(f"confidence.{key} must be 0.00-1.00")
	return errors


def unreadable_routing_fields(data: Dict[str, Any]) -> List[str]:
	hots = _as_dict(data.get("hots"))
	difficulty = _as_dict(data.get("difficulty"))
	conf = _as_dict(data.get("confidence"))
	values = {
		"primary_bloom_level": _finite(data.get("primary_bloom_level")),
		"boundedness": data.get("boundedness") or None,
		"hots.strength": hots.get("strength") or None,
		"difficulty.score_1_10": _finite(difficulty.get("score_1_10")),
	}
	for dim in CONFIDENCE_DIMENSIONS:
		values[f"confidence.{dim}"] = _finite(conf.get(dim))
	return [name for name in ROUTING_FIELDS if values[name] is None]


def _as_dict(value: Any) -> Dict[str, Any]:
	return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
	return value if isinstance(value, list) else []


def _strings(value: Any) -> List[str]:
	return [str(v) for v in _as_list(value) if v is not None and str(v).strip()]


def _finite(value: Any) -> Optional[float]:
	"""``value`` as a float, or None for booleans, non-numbers, NaN and infinities."""
	if isinstance(value, bool) or value is None:
		return None
	try:
		number = float(value)
	except (TypeError, ValueError):
		return None
	return number if math.isfinite(number) else None


def _number(value: Any, default: float) -> float:
	number = _finite(value)
	return default if number is None else number


def _clamp(value: float, low: float, high: float) -> float:
	return max(low, min(high, value))
