import asyncio
from typing import Any, Dict, List, Optional

import pytest

from questionqc.db import Base, make_engine, make_session_factory
from questionqc import models
from questionqc.notifications import Notifier
from questionqc.publication import PublicationGatekeeper
from questionqc.lifecycle import QuestionLifecycle
from questionqc.verdict import QuestionSnapshot, Verdict


def good_report(**overrides: Any) -> Dict[str, Any]:
    report = {
        "primary_bloom_level": 4,
        "secondary_bloom_levels": [5],
        "hots": {"flag": True, "strength": "S2", "signals": ["compare two methods"]},
        "boundedness": "B2",
        "difficulty": {"score_1_10": 5, "label": "medium", "reasons": ["two steps"]},
        "quality": {
            "clarity_score_0_100": 92,
            "ambiguity_flags": [],
            "missing_info_flags": [],
            "grade_fit_flags": [],
        },
        "alignment": {"subject_match_score_0_100": 95},
        "suggested_edits": [],
        "confidence": {"bloom": 0.95, "hots": 0.92, "difficulty": 0.9, "boundedness": 0.94},
        "model_version": "qc-v1",
    }
    report.update(overrides)
    return report


def make_verdict(**overrides: Any) -> Verdict:
    return Verdict.from_report(good_report(**overrides))


class FakeAnalyzer:
    """Stands in for the analyzer client; records calls and concurrency."""

    def __init__(self, verdict: Optional[Verdict] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.verdict = verdict or make_verdict()
        self.error = error
        self.delay = delay
        self.calls: List[QuestionSnapshot] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze(self, question: QuestionSnapshot) -> Verdict:
        self.calls.append(question)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.verdict
        finally:
            self.in_flight -= 1


@pytest.fixture
def engine(tmp_path):
    """A database file per test; sessions opened in worker threads each get their own connection."""
    eng = make_engine(f"sqlite:///{tmp_path / 'qc.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier(session_factory):
    return Notifier(session_factory)


@pytest.fixture
def gatekeeper(session_factory, notifier):
    return PublicationGatekeeper(session_factory, notifier)


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def lifecycle(session_factory, analyzer, notifier, gatekeeper):
    return QuestionLifecycle(session_factory, analyzer, notifier, gatekeeper)


@pytest.fixture
def teacher(db):
    user = models.User(id="teacher1", username="teacher1", full_name="Teacher One", role=models.ROLE_TEACHER)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin_user(db):
    user = models.User(id="admin1", username="admin1", full_name="Admin One", role=models.ROLE_ADMIN)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def classroom(db):
    """Active academic year with two students enrolled in class 'c1'."""
    year = models.AcademicYear(id="y1", name="2026/2027", is_active=True)
    old_year = models.AcademicYear(id="y0", name="2025/2026", is_active=False)
    db.add_all([year, old_year])
    for sid in ("s1", "s2", "s3"):
        db.add(models.User(id=sid, username=sid, role=models.ROLE_STUDENT))
    db.add_all([
        models.StudentEnrollment(student_user_id="s1", class_id="c1", academic_year_id="y1"),
        models.StudentEnrollment(student_user_id="s2", class_id="c1", academic_year_id="y1"),
        # enrolled last year only
        models.StudentEnrollment(student_user_id="s3", class_id="c1", academic_year_id="y0"),
    ])
    db.commit()
    return "c1"


def add_question(db, source: str = "bank", status: str = models.DRAFT, **fields: Any):
    model = {"bank": models.BankQuestion, "quiz": models.QuizQuestion, "exam": models.ExamQuestion}[source]
    values = {
        "question_text": "Compare two methods for solving x^2 - 5x + 6 = 0 and justify which is faster.",
        "question_type": "ESSAY",
        "difficulty": "MEDIUM",
        "hots_claim": True,
        "subject_name": "Matematika",
        "grade_band": "SMA",
        "status": status,
    }
    values.update(fields)
    row = model(**values)
    db.add(row)
    db.commit()
    return row


def add_assessment(db, kind: str = "quiz", **fields: Any):
    model = models.Quiz if kind == "quiz" else models.Exam
    values = {"title": "Quadratics", "subject_name": "Matematika", "duration_minutes": 30}
    values.update(fields)
    row = model(**values)
    db.add(row)
    db.commit()
    return row
