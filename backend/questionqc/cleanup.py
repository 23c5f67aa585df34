from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import ANALYZING
from .store import QUESTION_MODELS, STALE_ANALYSIS_AFTER
from .verdict import QuestionRef

logger = logging.getLogger(__name__)


def find_stuck_questions(db: Session, older_than: timedelta = STALE_ANALYSIS_AFTER) -> List[QuestionRef]:
	"""Questions sitting in ``analyzing`` longer than ``older_than``.

	Only reported here. Past ``STALE_ANALYSIS_AFTER`` the next trigger for
	such a question (an edit, a bulk run or a manual analysis) claims it again.
	"""
	threshold = datetime.utcnow() - older_than
	stuck: List[QuestionRef] = []
	for source, model in QUESTION_MODELS.items():
		ids = db.scalars(select(model.id).where(model.status == ANALYZING, model.updated_at < threshold))
		stuck.extend(QuestionRef(source=source, question_id=qid) for qid in ids)
	if stuck:
		logger.warning(
			"%d question(s) stuck in analyzing for over %s: %s",
			len(stuck), older_than, ", ".join(str(ref) for ref in stuck),
		)
	return stuck
