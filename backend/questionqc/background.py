"""Detached ("fire-and-forget") tasks on the running event loop."""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Coroutine, Set

logger = logging.getLogger(__name__)

# Strong references until done; the loop only keeps weak ones.
_background_tasks: Set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
	_background_tasks.discard(task)
	if task.cancelled():
		return
	exc = task.exception()
	if exc is not None:
		logger.error("Background task %s failed", task.get_name(), exc_info=exc)


def spawn(coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
	task = asyncio.create_task(coro, name=name)
	_background_tasks.add(task)
	task.add_done_callback(_on_done)
	return task


def pending_tasks() -> Set[asyncio.Task]:
	return set(_background_tasks)


async def drain() -> None:
	"""Wait for every detached task, including ones spawned while waiting."""
	while _background_tasks:
		await asyncio.gather(*list(_background_tasks), return_exceptions=True)
