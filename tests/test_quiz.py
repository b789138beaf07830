# tests/test_quiz.py
from datetime import date, datetime, timedelta

import pytest

from wellness_path.db import init_db, get_connection
from wellness_path.gate import REASON_NO_PROGRESS, REASON_QUIZ_LOCKED, record_quiz_attempt
from wellness_path.milestones import get_badges
from wellness_path.models import QuizQuestion
from wellness_path.progress import ensure_progress, get_progress, mark_lesson_complete, NotAuthenticatedError
from wellness_path.quiz import (
    QuizNotAvailableError, grade_quiz, save_quiz_attempt, record_passing_attempt, submit_quiz_attempt,
    get_quiz_attempts, get_best_quiz_score, get_best_scores, can_retry_stored_quiz, check_quiz_access,
)

START = date(2024, 1, 1)
T = datetime(2024, 1, 6, 12, 0)


def make_questions():
    return [
        QuizQuestion(id="q1", prompt="?", choices=["A", "B"], correct_answer="A", topic_tag="hydration"),
        QuizQuestion(id="q2", prompt="?", choices=["A", "B"], correct_answer="B", topic_tag="fiber"),
        QuizQuestion(id="q3", prompt="?", choices=["A", "B"], correct_answer="A", topic_tag="fiber"),
        QuizQuestion(id="q4", prompt="?", type="reflection", topic_tag="support"),
    ]


def test_grade_quiz_all_correct():
    result = grade_quiz(make_questions(), {"q1": "A", "q2": "B", "q3": "A", "q4": "anything"})
    assert result == {"score": 100, "passed": True, "missed_topics": []}


def test_grade_quiz_reflection_counts_as_correct():
    result = grade_quiz(make_questions(), {"q1": "A", "q2": "B", "q3": "A"})
    assert result["score"] == 100


def test_grade_quiz_missed_topics_unique():
    result = grade_quiz(make_questions(), {"q1": "A", "q2": "A", "q3": "B"})
    assert result["score"] == 50
    assert result["passed"] is False
    assert result["missed_topics"] == ["fiber"]


def test_grade_quiz_case_insensitive():
    result = grade_quiz(make_questions(), {"q1": " a ", "q2": "b", "q3": "A"})
    assert result["score"] == 100


def test_grade_quiz_passing_threshold():
    # 3 of 4 = 75
    result = grade_quiz(make_questions(), {"q1": "A", "q2": "B", "q3": "B"})
    assert result["score"] == 75
    assert result["passed"] is True
    assert grade_quiz(make_questions(), {"q1": "A", "q2": "B", "q3": "B"}, passing_score=80)["passed"] is False


def test_grade_quiz_empty():
    with pytest.raises(ValueError):
        grade_quiz([], {})


def finish_chapter(db, user, number):
    for day in range(5 * number - 4, 5 * number + 1):
        mark_lesson_complete(db, user, f"lesson_day_{day}")


def ready_for_quiz(db, user, *chapters):
    """Progress row with every lesson of ``chapters`` completed."""
    init_db(db)
    ensure_progress(db, user, START)
    for number in chapters:
        finish_chapter(db, user, number)


def test_save_and_get_attempts(tmp_db):
    init_db(tmp_db)
    save_quiz_attempt(tmp_db, "u1", record_quiz_attempt("chapter_1", 40, False, ["fiber"], T))
    save_quiz_attempt(tmp_db, "u1", record_quiz_attempt("chapter_1", 60, False, [], T + timedelta(days=1)))
    attempts = get_quiz_attempts(tmp_db, "u1", "chapter_1")
    assert [a.score for a in attempts] == [60, 40]
    assert attempts[1].missed_topics == ("fiber",)
    assert attempts[1].can_retry_at == T + timedelta(hours=24)
    assert attempts[0].id is not None


def test_get_attempts_signed_out(tmp_db):
    init_db(tmp_db)
    assert get_quiz_attempts(tmp_db, None, "chapter_1") == []


def test_save_attempt_requires_user(tmp_db):
    init_db(tmp_db)
    with pytest.raises(NotAuthenticatedError):
        save_quiz_attempt(tmp_db, None, record_quiz_attempt("chapter_1", 40, False, [], T))


def test_record_passing_attempt_advances_chapter(tmp_db, curriculum):
    ready_for_quiz(tmp_db, "u1", 1)
    record_passing_attempt(tmp_db, "u1", record_quiz_attempt("chapter_1", 80, True, [], T), curriculum)
    assert get_progress(tmp_db, "u1").current_chapter == 2
    assert get_badges(tmp_db, "u1") == ["chapter_1_complete"]
    assert len(get_quiz_attempts(tmp_db, "u1", "chapter_1")) == 1


def test_record_passing_attempt_rejects_failed(tmp_db):
    init_db(tmp_db)
    with pytest.raises(ValueError):
        record_passing_attempt(tmp_db, "u1", record_quiz_attempt("chapter_1", 30, False, [], T))


def test_record_passing_attempt_bad_chapter_stores_nothing(tmp_db):
    """A malformed chapter id stores nothing."""
    init_db(tmp_db)
    ensure_progress(tmp_db, "u1", START)
    with pytest.raises(ValueError):
        record_passing_attempt(tmp_db, "u1", record_quiz_attempt("final", 90, True, [], T))
    assert get_quiz_attempts(tmp_db, "u1") == []


def test_record_passing_attempt_without_progress_stores_nothing(tmp_db, curriculum):
    """With no progress row the attempt rolls back instead of being kept without a chapter advance."""
    init_db(tmp_db)
    with pytest.raises(LookupError):
        record_passing_attempt(tmp_db, "u1", record_quiz_attempt("chapter_1", 90, True, [], T), curriculum)
    assert get_quiz_attempts(tmp_db, "u1") == []
    assert get_badges(tmp_db, "u1") == []

    # Once progress exists the quiz is still open to take
    ready_for_quiz(tmp_db, "u1", 1)
    assert can_retry_stored_quiz(tmp_db, "u1", "chapter_1", now=T).can_retry is True


def test_passing_locked_chapter_is_rejected(tmp_db, curriculum):
    """Passing a later chapter's quiz can't skip the chapter-1 quiz."""
    ready_for_quiz(tmp_db, "u1", 1, 5)
    with pytest.raises(QuizNotAvailableError):
        submit_quiz_attempt(tmp_db, "u1", "chapter_5", 100, True, [], now=T, curriculum=curriculum)
    assert get_progress(tmp_db, "u1").current_chapter == 1
    assert get_quiz_attempts(tmp_db, "u1") == []
    assert get_badges(tmp_db, "u1") == []


def test_quiz_before_chapter_lessons_is_rejected(tmp_db, curriculum):
    init_db(tmp_db)
    ensure_progress(tmp_db, "u1", START)
    for day in range(1, 5):
        mark_lesson_complete(tmp_db, "u1", f"lesson_day_{day}")
    with pytest.raises(QuizNotAvailableError):
        submit_quiz_attempt(tmp_db, "u1", "chapter_1", 100, True, [], now=T, curriculum=curriculum)
    with pytest.raises(QuizNotAvailableError):
        submit_quiz_attempt(tmp_db, "u1", "chapter_1", 20, False, [], now=T, curriculum=curriculum)
    assert get_quiz_attempts(tmp_db, "u1") == []
    assert get_progress(tmp_db, "u1").current_chapter == 1


def test_check_quiz_access(tmp_db, curriculum):
    init_db(tmp_db)
    assert check_quiz_access(tmp_db, "u1", "chapter_1", curriculum).reason == REASON_NO_PROGRESS
    ready_for_quiz(tmp_db, "u1", 1, 2)
    assert check_quiz_access(tmp_db, "u1", "chapter_1", curriculum).can_access is True
    assert check_quiz_access(tmp_db, "u1", "chapter_2", curriculum).reason == REASON_QUIZ_LOCKED
    assert check_quiz_access(tmp_db, "u1", "chapter_3", curriculum).reason == REASON_QUIZ_LOCKED


def test_passing_older_chapter_does_not_move_back(tmp_db, curriculum):
    ready_for_quiz(tmp_db, "u1", 1, 2)
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 90, True, [], now=T, curriculum=curriculum)
    submit_quiz_attempt(tmp_db, "u1", "chapter_2", 90, True, [], now=T, curriculum=curriculum)
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 95, True, [], now=T, curriculum=curriculum)
    assert get_progress(tmp_db, "u1").current_chapter == 3
    assert get_badges(tmp_db, "u1") == ["chapter_1_complete", "chapter_2_complete"]


def test_submit_failed_attempt_keeps_chapter(tmp_db):
    ready_for_quiz(tmp_db, "u1", 1)
    attempt = submit_quiz_attempt(tmp_db, "u1", "chapter_1", 50, False, ["fiber"], now=T)
    assert attempt.can_retry_at == T + timedelta(hours=24)
    assert get_progress(tmp_db, "u1").current_chapter == 1
    assert get_badges(tmp_db, "u1") == []


def test_submit_with_custom_cooldown(tmp_db):
    ready_for_quiz(tmp_db, "u1", 1)
    attempt = submit_quiz_attempt(tmp_db, "u1", "chapter_1", 50, False, [], now=T, cooldown=timedelta(hours=2))
    assert attempt.can_retry_at == T + timedelta(hours=2)


def test_best_scores(tmp_db):
    ready_for_quiz(tmp_db, "u1", 1, 2)
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 50, False, [], now=T)
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 90, True, [], now=T + timedelta(days=1))
    submit_quiz_attempt(tmp_db, "u1", "chapter_2", 60, False, [], now=T + timedelta(days=2))
    assert get_best_quiz_score(tmp_db, "u1", "chapter_1") == 90
    assert get_best_quiz_score(tmp_db, "u1", "chapter_5") is None
    assert get_best_scores(tmp_db, "u1") == {"chapter_1": 90, "chapter_2": 60}


def test_can_retry_stored_quiz(tmp_db):
    ready_for_quiz(tmp_db, "u1", 1)
    assert can_retry_stored_quiz(tmp_db, "u1", "chapter_1", now=T).can_retry is True
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 50, False, [], now=T)
    decision = can_retry_stored_quiz(tmp_db, "u1", "chapter_1", now=T + timedelta(hours=23, minutes=59))
    assert decision.can_retry is False
    assert decision.wait_time_ms == 60_000
    assert can_retry_stored_quiz(tmp_db, "u1", "chapter_1", now=T + timedelta(hours=24, seconds=1)).can_retry is True


def test_can_retry_stored_quiz_after_pass(tmp_db):
    ready_for_quiz(tmp_db, "u1", 1)
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 50, False, [], now=T)
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 80, True, [], now=T + timedelta(days=1))
    decision = can_retry_stored_quiz(tmp_db, "u1", "chapter_1", now=T + timedelta(days=2))
    assert decision.can_retry is False
    assert decision.wait_time_ms is None


def test_can_retry_stored_quiz_signed_out(tmp_db):
    init_db(tmp_db)
    assert can_retry_stored_quiz(tmp_db, None, "chapter_1", now=T).can_retry is False


def test_attempt_rows_store_json_topics(tmp_db):
    ready_for_quiz(tmp_db, "u1", 1)
    submit_quiz_attempt(tmp_db, "u1", "chapter_1", 40, False, ["goal_setting", "body_signals"], now=T)
    conn = get_connection(tmp_db)
    row = conn.execute("SELECT missed_topics, passed FROM quiz_attempts").fetchone()
    conn.close()
    assert row["missed_topics"] == '["goal_setting", "body_signals"]'
    assert row["passed"] == 0
