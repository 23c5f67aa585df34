import asyncio

import pytest
from sqlalchemy import select

from questionqc.dispatcher import BulkDispatcher, batched
from questionqc.errors import ProviderFailure
from questionqc.lifecycle import QuestionLifecycle
from questionqc.models import APPROVED, DRAFT, BankQuestion
from questionqc.verdict import QuestionRef

from conftest import FakeAnalyzer, add_question


class EventAnalyzer(FakeAnalyzer):
    """Records start/end events per question; fails the questions named in ``fail``."""

    def __init__(self, fail=()):
        super().__init__(delay=0.1)
        self.fail = set(fail)
        self.events = []

    async def analyze(self, question):
        self.events.append(("start", question.question_id))
        try:
            verdict = await super().analyze(question)
            if question.question_id in self.fail:
                raise ProviderFailure("quota exceeded")
            return verdict
        finally:
            self.events.append(("end", question.question_id))


def refs_for(rows):
    return [QuestionRef(source="bank", question_id=r.id) for r in rows]


def test_batched_splits_in_order():
    refs = [QuestionRef(source="bank", question_id=str(i)) for i in range(7)]
    groups = batched(refs, 3)
    assert [[r.question_id for r in g] for g in groups] == [["0", "1", "2"], ["3", "4", "5"], ["6"]]
    assert batched([], 3) == []


def test_batch_size_must_be_positive(lifecycle):
    with pytest.raises(ValueError):
        BulkDispatcher(lifecycle, batch_size=0)


async def test_bulk_runs_in_batches_of_three(db, session_factory, notifier, gatekeeper):
    analyzer = EventAnalyzer()
    lifecycle = QuestionLifecycle(session_factory, analyzer, notifier, gatekeeper)
    rows = [add_question(db, question_text=f"Question number {i} asks something long enough.") for i in range(7)]
    refs = refs_for(rows)

    await BulkDispatcher(lifecycle).dispatch_bulk(refs)

    assert analyzer.max_in_flight == 3
    ids = [r.question_id for r in refs]
    for first, second in zip(batched(ids, 3), batched(ids, 3)[1:]):
        last_end = max(i for i, (kind, qid) in enumerate(analyzer.events) if kind == "end" and qid in first)
        first_start = min(i for i, (kind, qid) in enumerate(analyzer.events) if kind == "start" and qid in second)
        assert last_end < first_start
    db.expire_all()
    assert {q.status for q in db.scalars(select(BankQuestion))} == {APPROVED}


async def test_one_failure_does_not_affect_the_rest(db, session_factory, notifier, gatekeeper):
    rows = [add_question(db) for _ in range(4)]
    analyzer = EventAnalyzer(fail={rows[1].id})
    lifecycle = QuestionLifecycle(session_factory, analyzer, notifier, gatekeeper)

    await BulkDispatcher(lifecycle).process(refs_for(rows))

    db.expire_all()
    statuses = [db.get(BankQuestion, r.id).status for r in rows]
    assert statuses == [APPROVED, DRAFT, APPROVED, APPROVED]


async def test_exception_escaping_run_is_logged_and_skipped(caplog):
    seen = []

    class ExplodingLifecycle:
        async def run(self, ref):
            seen.append(ref.question_id)
            if ref.question_id == "b":
                raise RuntimeError("lost connection")
            await asyncio.sleep(0)
            return APPROVED

    refs = [QuestionRef(source="bank", question_id=q) for q in "abcd"]
    await BulkDispatcher(ExplodingLifecycle(), batch_size=2).process(refs)

    assert seen == ["a", "b", "c", "d"]
    assert "Bulk analysis failed for bank/b" in caplog.text


async def test_dispatch_returns_before_processing(db, session_factory, notifier, gatekeeper):
    analyzer = FakeAnalyzer(delay=0.01)
    lifecycle = QuestionLifecycle(session_factory, analyzer, notifier, gatekeeper)
    rows = [add_question(db) for _ in range(2)]

    task = BulkDispatcher(lifecycle).dispatch_bulk(refs_for(rows))
    assert not task.done()
    assert analyzer.calls == []
    await task
    assert len(analyzer.calls) == 2
