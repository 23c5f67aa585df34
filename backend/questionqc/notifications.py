from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Notification

logger = logging.getLogger(__name__)

TYPE_QUALITY_REVIEW = "QUALITY_REVIEW"
TYPE_QUESTION_RETURNED = "QUESTION_RETURNED"
TYPE_SYSTEM = "SYSTEM"
TYPE_QUIZ_NEW = "QUIZ_NEW"
TYPE_EXAM_NEW = "EXAM_NEW"


@dataclass(frozen=True)
class NotificationDraft:
	user_id: str
	type: str
	title: str
	message: str
	link: Optional[str] = None


class Notifier:
	"""Inserts notification rows in a session of its own.

	Delivery problems are logged and swallowed: a notification must never
	fail the pipeline step that produced it.
	"""

	def __init__(self, session_factory: Callable[[], Session]) -> None:
		self.session_factory = session_factory

	def send(self, drafts: Iterable[NotificationDraft]) -> int:
		rows: List[Notification] = [
			Notification(user_id=d.user_id, type=d.type, title=d.title, message=d.message, link=d.link)
			for d in drafts
			if d.user_id
		]
		if not rows:
			return 0
		db = self.session_factory()
		try:
			db.add_all(rows)
			db.commit()
		except SQLAlchemyError:
			db.rollback()
			logger.exception("Failed to insert %d notification(s)", len(rows))
			return 0
		finally:
			db.close()
		return len(rows)
