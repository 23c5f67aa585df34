from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from .analyzer_client import QualityAnalyzerClient
from .dispatcher import BulkDispatcher
from .lifecycle import Analyzer, QuestionLifecycle
from .notifications import Notifier
from .publication import PublicationGatekeeper
from .settings import Settings


@dataclass
class Pipeline:
	analyzer: Analyzer
	notifier: Notifier
	gatekeeper: PublicationGatekeeper
	lifecycle: QuestionLifecycle
	dispatcher: BulkDispatcher

	async def aclose(self) -> None:
		close = getattr(self.analyzer, "aclose", None)
		if close is not None:
			await close()


def build_pipeline(
	session_factory: Callable[[], Session],
	settings: Settings,
	analyzer: Optional[Analyzer] = None,
) -> Pipeline:
	analyzer = analyzer or QualityAnalyzerClient(settings.analyzer_config())
	notifier = Notifier(session_factory)
	gatekeeper = PublicationGatekeeper(session_factory, notifier)
	lifecycle = QuestionLifecycle(session_factory, analyzer, notifier, gatekeeper)
	dispatcher = BulkDispatcher(lifecycle, batch_size=settings.bulk_batch_size)
	return Pipeline(analyzer, notifier, gatekeeper, lifecycle, dispatcher)


def get_pipeline(request: Request) -> Pipeline:
	return request.app.state.pipeline
