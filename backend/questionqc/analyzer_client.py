from __future__ import annotations
import json
import logging
import httpx
from typing import Any, Dict, Optional

from .errors import MalformedResponse, ProviderFailure, QuestionRejected
from .rubrics import DEFAULT_GRADE_BAND, find_subject_rubric, reading_limit, rubric_section
from .settings import AnalyzerConfig
from .verdict import QuestionSnapshot, Verdict
from .verdict_decoder import decode_analyzer_text

logger = logging.getLogger(__name__)

MIN_QUESTION_LENGTH = 10


def build_analysis_prompt(question: QuestionSnapshot) -> str:
	grade_band = question.grade_band or DEFAULT_GRADE_BAND
	rubric = find_subject_rubric(question.subject_name)
	options_line = f"- Options: {json.dumps(question.options, ensure_ascii=False)}\n" if question.options else ""
	answer_line = f"- Correct Answer: {question.correct_answer}\n" if question.correct_answer else ""
	return (
		"You are an expert education quality analyst specializing in Bloom's Taxonomy and HOTS assessment.\n\n"
		"## Context\n"
		f"- Grade Band: {grade_band}\n"
		f"- Subject: {question.subject_name or 'General'}\n"
		f"- Reading Limit for this grade: {reading_limit(grade_band)} words\n\n"
		"## Question to Analyze\n"
		f"- Type: {question.question_type}\n"
		f"- Question Text: \"{question.question_text}\"\n"
		f"{options_line}{answer_line}\n"
		"## Teacher Metadata\n"
		f"- Teacher Declared Difficulty: {question.teacher_difficulty or 'not specified'}\n"
		f"- Teacher HOTS Claim: {'Yes' if question.teacher_hots_claim else 'No'}\n\n"
		f"{rubric_section(rubric)}\n"
		"## Bloom's Taxonomy Definitions\n"
		"Level 1 (Remember): Recall facts, terms, concepts\n"
		"Level 2 (Understand): Explain, interpret, summarize\n"
		"Level 3 (Apply): Use information in new situations\n"
		"Level 4 (Analyze): Break down, find patterns, identify relationships\n"
		"Level 5 (Evaluate): Judge, critique, assess using criteria\n"
		"Level 6 (Create): Design, construct, produce original work\n\n"
		"## HOTS Strength\n"
		"- S2 (Strong): Explicit criteria/constraints/evidence/debug required\n"
		"- S1 (Medium): \"Explain why\" but structure is weak\n"
		"- S0 (Weak): Looks like HOTS but output is still recall/summary\n\n"
		"## Boundedness\n"
		"- B2 (Good): Complete info + clear output format + scope + rubric\n"
		"- B1 (Partial): Some elements unclear but answerable\n"
		"- B0 (Bad): Needs external research / key info missing / grading ambiguous\n\n"
		"## Difficulty Score (0-10)\n"
		"Components: Steps/complexity (0-4) + Prerequisite load (0-3) + Reading/data load (0-3)\n"
		"Mapping: 0-3 = easy, 4-6 = medium, 7-10 = hard\n\n"
		"## Output Format\n"
		"Output ONLY the following JSON object, no other text. Keep LaTeX notation as written.\n"
		"{\"primary_bloom_level\": <1-6>, \"secondary_bloom_levels\": [<levels>],\n"
		" \"hots\": {\"flag\": <true/false>, \"strength\": \"<S0|S1|S2>\", \"signals\": [\"...\"]},\n"
		" \"boundedness\": \"<B0|B1|B2>\",\n"
		" \"difficulty\": {\"score_1_10\": <0-10>, \"label\": \"<easy|medium|hard>\", \"reasons\": [\"...\"]},\n"
		" \"quality\": {\"clarity_score_0_100\": <0-100>, \"ambiguity_flags\": [], \"missing_info_flags\": [], \"grade_fit_flags\": []},\n"
		" \"alignment\": {\"subject_match_score_0_100\": <0-100>},\n"
		" \"suggested_edits\": [{\"goal\": \"<add_hots|improve_clarity|fix_boundedness|adjust_difficulty>\", \"change_summary\": \"...\", \"before\": \"...\", \"after\": \"...\"}],\n"
		" \"confidence\": {\"bloom\": <0.00-1.00>, \"hots\": <0.00-1.00>, \"difficulty\": <0.00-1.00>, \"boundedness\": <0.00-1.00>},\n"
		" \"model_version\": \"qc-v1\"}"
	)


class QualityAnalyzerClient:
	def __init__(self, config: AnalyzerConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
		self.config = config
		self.base_url = config.endpoint
		self._auth_in_query = config.provider != "vertex"
		self._client = httpx.AsyncClient(timeout=config.timeout_seconds, transport=transport)

	async def analyze(self, question: QuestionSnapshot) -> Verdict:
		"""Run one analysis attempt for ``question``.

		Raises:
			QuestionRejected: the text is too short to be worth analyzing.
			ProviderFailure: the analyzer could not be reached or returned nothing.
			MalformedResponse: the reply could not be decoded into a report.
		"""
		if not question.question_text or len(question.question_text.strip()) < MIN_QUESTION_LENGTH:
			raise QuestionRejected("question text too short for analysis")
		raw = await self.generate(build_analysis_prompt(question))
		data = decode_analyzer_text(raw)
		if not isinstance(data, dict):
			raise MalformedResponse(f"expected a JSON object, got {type(data).__name__}", raw_text=raw)
		return Verdict.from_report(data)

	async def generate(self, prompt: str) -> str:
		if not self.config.api_key:
			raise ProviderFailure("GEMINI_API_KEY is not configured")
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.config.api_key
		else:
			headers["x-goog-api-key"] = self.config.api_key
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": prompt}]}],
			"generationConfig": {
				"temperature": self.config.temperature,
				"topP": self.config.top_p,
				"maxOutputTokens": self.config.max_output_tokens,
				"responseMimeType": "application/json",
			},
		}
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			logger.error("Analyzer returned HTTP %s: %s", http_err.response.status_code, http_err.response.text[:300])
			raise ProviderFailure(f"analyzer returned HTTP {http_err.response.status_code}") from http_err
		except httpx.RequestError as net_err:
			raise ProviderFailure(f"analyzer request failed: {type(net_err).__name__}: {net_err}") from net_err
		if not r.content:
			raise ProviderFailure("analyzer returned an empty body")
		try:
			data = r.json()
			text = data["candidates"][0]["content"]["parts"][0]["text"]
		except (ValueError, KeyError, IndexError, TypeError) as e:
			raise ProviderFailure(f"unexpected analyzer response: {r.text[:300]}") from e
		if not isinstance(text, str) or not text.strip():
			raise ProviderFailure("analyzer returned no text")
		return text

	async def aclose(self) -> None:
		await self._client.aclose()
