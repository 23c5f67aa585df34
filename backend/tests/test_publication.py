import threading

import pytest
from sqlalchemy import func, select

from questionqc.models import ADMIN_REVIEW, ANALYZING, APPROVED, Exam, Notification, Quiz
from questionqc.publication import ACTIVATED, DEACTIVATED, PENDING, UNCHANGED

from conftest import add_assessment, add_question


def notification_count(db):
    return db.scalar(select(func.count()).select_from(Notification))


def reload(db, model, row_id):
    db.expire_all()
    return db.get(model, row_id)


def test_not_ready_while_a_question_is_still_analyzing(db, gatekeeper, classroom):
    quiz = add_assessment(db, class_id=classroom, pending_publish=True)
    add_question(db, "quiz", status=APPROVED, quiz_id=quiz.id)
    add_question(db, "quiz", status=APPROVED, quiz_id=quiz.id)
    add_question(db, "quiz", status=ANALYZING, quiz_id=quiz.id)

    assert gatekeeper.try_auto_publish("quiz", quiz.id) is False

    quiz = reload(db, Quiz, quiz.id)
    assert quiz.is_active is False
    assert quiz.pending_publish is True
    assert notification_count(db) == 0


def test_assessment_not_waiting_is_left_alone(db, gatekeeper):
    quiz = add_assessment(db, pending_publish=False)
    add_question(db, "quiz", status=APPROVED, quiz_id=quiz.id)

    assert gatekeeper.try_auto_publish("quiz", quiz.id) is False
    assert reload(db, Quiz, quiz.id).is_active is False


def test_missing_or_empty_assessment(db, gatekeeper):
    assert gatekeeper.try_auto_publish("exam", "missing") is False
    empty = add_assessment(db, "exam", pending_publish=True)
    assert gatekeeper.try_auto_publish("exam", empty.id) is False
    assert reload(db, Exam, empty.id).pending_publish is True


def test_publishes_and_notifies_teacher_and_enrolled_students(db, gatekeeper, teacher, classroom):
    quiz = add_assessment(db, class_id=classroom, teacher_user_id=teacher.id, pending_publish=True)
    for _ in range(3):
        add_question(db, "quiz", status=APPROVED, quiz_id=quiz.id)

    assert gatekeeper.try_auto_publish("quiz", quiz.id) is True

    quiz = reload(db, Quiz, quiz.id)
    assert quiz.is_active is True
    assert quiz.pending_publish is False
    notes = {n.user_id: n for n in db.scalars(select(Notification))}
    assert set(notes) == {"teacher1", "s1", "s2"}
    assert notes["teacher1"].type == "SYSTEM"
    assert notes["s1"].type == "QUIZ_NEW"
    assert notes["s1"].title == "New Quiz: Quadratics"
    assert notes["s1"].message == "Matematika - 30 minutes."

    # a second call finds nothing pending
    assert gatekeeper.try_auto_publish("quiz", quiz.id) is False
    assert notification_count(db) == 3


def test_concurrent_final_approvals_publish_once(db, gatekeeper, teacher, classroom):
    exam = add_assessment(db, "exam", class_id=classroom, teacher_user_id=teacher.id, pending_publish=True)
    for _ in range(2):
        add_question(db, "exam", status=APPROVED, exam_id=exam.id)

    callers = 4
    barrier = threading.Barrier(callers)
    results = []

    def attempt():
        barrier.wait()
        results.append(gatekeeper.try_auto_publish("exam", exam.id))

    threads = [threading.Thread(target=attempt) for _ in range(callers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == [False, False, False, True]
    assert reload(db, Exam, exam.id).is_active is True
    assert notification_count(db) == 3


# ---- teacher publish requests ----

def test_request_publish_parks_until_review_finishes(db, gatekeeper, classroom):
    quiz = add_assessment(db, class_id=classroom)
    add_question(db, "quiz", status=APPROVED, quiz_id=quiz.id)
    add_question(db, "quiz", status=ADMIN_REVIEW, quiz_id=quiz.id)

    outcome = gatekeeper.request_publish("quiz", quiz.id, True)

    assert outcome.state == PENDING
    quiz = reload(db, Quiz, quiz.id)
    assert quiz.is_active is False
    assert quiz.pending_publish is True
    assert notification_count(db) == 0


def test_request_publish_activates_when_all_approved(db, gatekeeper, teacher, classroom):
    quiz = add_assessment(db, class_id=classroom, teacher_user_id=teacher.id)
    add_question(db, "quiz", status=APPROVED, quiz_id=quiz.id)

    outcome = gatekeeper.request_publish("quiz", quiz.id, True)

    assert outcome.state == ACTIVATED
    assert outcome.notified == 2
    assert reload(db, Quiz, quiz.id).is_active is True
    # students only; the teacher published it themselves
    assert {n.user_id for n in db.scalars(select(Notification))} == {"s1", "s2"}

    assert gatekeeper.request_publish("quiz", quiz.id, True).state == UNCHANGED
    assert notification_count(db) == 2


def test_request_publish_without_questions_activates(db, gatekeeper):
    exam = add_assessment(db, "exam")
    outcome = gatekeeper.request_publish("exam", exam.id, True)
    assert outcome.state == ACTIVATED
    assert outcome.notified == 0


def test_deactivate_clears_pending(db, gatekeeper):
    quiz = add_assessment(db, is_active=False, pending_publish=True)
    assert gatekeeper.request_publish("quiz", quiz.id, False).state == DEACTIVATED
    quiz = reload(db, Quiz, quiz.id)
    assert quiz.pending_publish is False
    assert quiz.is_active is False


def test_request_publish_unknown_assessment(gatekeeper):
    with pytest.raises(LookupError):
        gatekeeper.request_publish("quiz", "missing", True)
