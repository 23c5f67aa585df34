from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class SubjectRubric:
	name: str
	aliases: tuple[str, ...]
	bloom_signals: Dict[int, str]
	hots_triggers: List[str] = field(default_factory=list)
	risk_flags: List[str] = field(default_factory=list)


SUBJECT_RUBRICS: Dict[str, SubjectRubric] = {
	"science": SubjectRubric(
		name="Science",
		aliases=("ipa", "sains", "science", "biologi", "biology", "fisika", "physics", "kimia", "chemistry"),
		bloom_signals={
			1: "Recall terms, laws, units, definitions",
			2: "Explain concept; interpret simple diagram",
			3: "Apply formula or standard procedure to a scenario",
			4: "Interpret data; identify variables; cause-effect; compare experiments",
			5: "Critique conclusions; choose best method using criteria",
			6: "Design investigation/solution under constraints",
		},
		hots_triggers=[
			"Data/graph interpretation with reasoning",
			"Experimental design with constraints/controls",
			"Evaluation using explicit criteria",
		],
		risk_flags=[
			"Missing variables/control definition",
			"Too complex datasets for grade",
			"Requires outside niche knowledge",
		],
	),
	"math": SubjectRubric(
		name="Mathematics",
		aliases=("matematika", "math", "mtk"),
		bloom_signals={
			1: "Recall formula/definition",
			2: "Explain meaning of steps; interpret representation",
			3: "Solve using known procedure",
			4: "Compare strategies; debug errors; case analysis; pattern analysis",
			5: "Judge method correctness/efficiency using criteria",
			6: "Construct model/rule; generalization; create problem under constraints",
		},
		hots_triggers=[
			"Error analysis (debug)",
			"Compare 2 methods + justify choice",
			"Modeling with assumptions",
		],
		risk_flags=[
			"Ambiguous constraints leading to multiple correct answers",
			"Too many steps with no scaffold",
			"Heavy reading word problems",
		],
	),
	"english": SubjectRubric(
		name="English",
		aliases=("bahasa inggris", "english", "b.inggris", "b. inggris"),
		bloom_signals={
			1: "Vocabulary/grammar recall",
			2: "Summarize/paraphrase; main idea",
			3: "Apply grammar/vocab to produce short text",
			4: "Analyze tone/structure/purpose; compare perspectives; identify fallacies",
			5: "Evaluate argument credibility/strength using criteria",
			6: "Create/transform text for audience/purpose with constraints",
		},
		hots_triggers=[
			"Requires evidence from text",
			"Evaluates arguments with criteria",
			"Rewrite/transform for specified audience/purpose",
		],
		risk_flags=[
			"Reading too long without scaffold",
			"Cultural knowledge not provided",
			"Missing writing rubric",
		],
	),
	"civics": SubjectRubric(
		name="Civics",
		aliases=("ppkn", "pkn", "civics", "kewarganegaraan", "pancasila"),
		bloom_signals={
			1: "Recall principles/institutions",
			2: "Explain meaning/values; roles",
			3: "Apply rules/values to straightforward case",
			4: "Analyze stakeholders; rights/duties conflicts; causal chain",
			5: "Evaluate policy/action using criteria (justice, legality, public good)",
			6: "Propose program/policy with constraints + steps + success metrics",
		},
		hots_triggers=[
			"Explicit criteria & trade-offs",
			"Stakeholder table / cause-effect mapping",
			"Constrained solution proposal with implementation steps",
		],
		risk_flags=[
			"Opinion-only prompts without criteria",
			"Scenario lacking context",
			"Sensitive topics needing neutrality",
		],
	),
	"economy": SubjectRubric(
		name="Economics",
		aliases=("ekonomi", "economy", "economics"),
		bloom_signals={
			1: "Define terms (inflation, demand, GDP)",
			2: "Explain relationships (cause-effect) simply",
			3: "Compute/basic interpretation (graphs, simple metrics)",
			4: "Analyze trends, causal chains, compare market outcomes using data",
			5: "Evaluate policy options with criteria (efficiency, equity, stability)",
			6: "Design strategy/business/policy proposal with assumptions + constraints",
		},
		hots_triggers=[
			"Decision table with criteria + trade-offs",
			"Data interpretation + justification",
			"Constrained policy/business proposal",
		],
		risk_flags=[
			"Claims without evidence requirement",
			"Ambiguous variables/timeframe",
			"Math-heavy without required data/formula",
		],
	),
	"history": SubjectRubric(
		name="History",
		aliases=("sejarah", "history"),
		bloom_signals={
			1: "Recall dates, figures, events",
			2: "Explain causes and effects of events",
			3: "Apply historical concepts to new contexts",
			4: "Compare different historical perspectives",
			5: "Evaluate historical sources for bias and reliability",
			6: "Construct historical narrative with evidence and analysis",
		},
		hots_triggers=[
			"Source analysis with bias identification",
			"Multiple perspective comparison",
			"Evidence-based argumentation",
		],
		risk_flags=[
			"Single-perspective narrative",
			"Memorization-only questions",
			"Anachronistic framing",
		],
	),
}

# Words a student of the grade band can be expected to read in one question
READING_LIMITS: Dict[str, int] = {"K-3": 100, "4-6": 200, "SMP": 300, "SMA": 500}
DEFAULT_GRADE_BAND = "SMP"


def find_subject_rubric(subject_name: Optional[str]) -> Optional[SubjectRubric]:
	if not subject_name:
		return None
	lower = subject_name.lower().strip()
	for rubric in SUBJECT_RUBRICS.values():
		if any(alias in lower for alias in rubric.aliases):
			return rubric
	return None


def reading_limit(grade_band: Optional[str]) -> int:
	return READING_LIMITS.get((grade_band or DEFAULT_GRADE_BAND).upper(), READING_LIMITS[DEFAULT_GRADE_BAND])


def rubric_section(rubric: Optional[SubjectRubric]) -> str:
	if rubric is None:
		return ""
	signals = "\n".join(f"Level {level}: {desc}" for level, desc in sorted(rubric.bloom_signals.items()))
	triggers = "\n".join(f"- {t}" for t in rubric.hots_triggers)
	risks = "\n".join(f"- {f}" for f in rubric.risk_flags)
	return (
		f"## Subject Rubric: {rubric.name}\n\n"
		f"### Bloom's Taxonomy Signals for {rubric.name}:\n{signals}\n\n"
		f"### HOTS Triggers for {rubric.name}:\n{triggers}\n\n"
		f"### Risk Flags for {rubric.name}:\n{risks}\n"
	)
