from __future__ import annotations
import asyncio
import logging
from typing import Iterable, List, Sequence

from .background import spawn
from .lifecycle import QuestionLifecycle
from .verdict import QuestionRef

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 3


def batched(items: Sequence[QuestionRef], size: int) -> List[List[QuestionRef]]:
	return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BulkDispatcher:
	"""Feeds many questions to the lifecycle, at most ``batch_size`` at a time.

	Batches run one after another; inside a batch every question runs
	concurrently and the next batch starts only once all of them settled.
	"""

	def __init__(self, lifecycle: QuestionLifecycle, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
		if batch_size < 1:
			raise ValueError("batch_size must be >= 1")
		self.lifecycle = lifecycle
		self.batch_size = batch_size

	def dispatch_bulk(self, refs: Iterable[QuestionRef]) -> asyncio.Task:
		"""Fire and forget: schedules processing and returns at once."""
		items = list(refs)
		return spawn(self.process(items), name=f"qc-bulk:{len(items)}")

	async def process(self, refs: Sequence[QuestionRef]) -> None:
		for batch in batched(refs, self.batch_size):
			results = await asyncio.gather(*(self.lifecycle.run(ref) for ref in batch), return_exceptions=True)
			for ref, result in zip(batch, results):
				if isinstance(result, BaseException):
					logger.error("Bulk analysis failed for %s", ref, exc_info=result)
		logger.info("Bulk analysis finished for %d question(s)", len(refs))
