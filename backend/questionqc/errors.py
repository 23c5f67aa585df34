"""Failure taxonomy for the quality-control pipeline.

Everything raised along the analysis path is absorbed by the lifecycle
orchestrator; only ``InvalidTransition`` reaches an HTTP caller (the human
review path is synchronous).
"""
from __future__ import annotations


class QualityPipelineError(Exception):
	pass


class AnalysisError(QualityPipelineError):
	"""The analyzer could not produce a verdict for one question."""


class ProviderFailure(AnalysisError):
	"""Network error, timeout, non-success status or empty body from the analyzer."""


class MalformedResponse(AnalysisError):
	"""The analyzer replied but the reply could not be decoded into a verdict."""

	def __init__(self, message: str, raw_text: str = "") -> None:
		super().__init__(message)
		self.raw_text = raw_text


class QuestionRejected(AnalysisError):
	"""The question cannot be analyzed at all (e.g. text too short)."""


class PersistenceFailure(QualityPipelineError):
	"""A data-store write failed mid-pipeline."""


class RoutingViolation(QualityPipelineError):
	"""A verdict shape the routing rules cannot classify."""


class InvalidTransition(QualityPipelineError):
	def __init__(self, current: str, target: str) -> None:
		super().__init__(f"cannot move question from {current!r} to {target!r}")
		self.current = current
		self.target = target
