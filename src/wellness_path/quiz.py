"""Chapter quiz grading and attempt history."""
import json
import logging
import sqlite3
from dataclasses import replace
from datetime import datetime, timedelta

from wellness_path import gate
from wellness_path.curriculum import Curriculum, load_curriculum
from wellness_path.db import get_connection, transaction
from wellness_path.milestones import award_badge_in, chapter_badge
from wellness_path.models import AccessDecision, Progress, QuizAttempt, QuizQuestion, RetryDecision
from wellness_path.progress import advance_chapter_in, get_progress, load_progress_in, require_user

logger = logging.getLogger(__name__)

PASSING_SCORE = 70


class QuizNotAvailableError(Exception):
    """Raised when a chapter quiz is submitted before it can be taken."""


def _normalize(answer) -> str:
    return str(answer).lower().strip()


def grade_quiz(
    questions: list[QuizQuestion], answers: dict[str, str], passing_score: int = PASSING_SCORE,
) -> dict:
    """Score answers against a chapter's questions.

    Reflection questions have no right answer and always count as correct.
    Missed topics are reported once each, in question order.
    """
    if not questions:
        raise ValueError("Quiz has no questions")
    correct = 0
    missed_topics = []
    for q in questions:
        if q.type == "reflection":
            correct += 1
            continue
        answer = answers.get(q.id)
        if answer is not None and q.correct_answer is not None and _normalize(answer) == _normalize(q.correct_answer):
            correct += 1
        elif q.topic_tag and q.topic_tag not in missed_topics:
            missed_topics.append(q.topic_tag)
    score = round(correct / len(questions) * 100)
    return {"score": score, "passed": score >= passing_score, "missed_topics": missed_topics}


def _row_to_attempt(row: sqlite3.Row) -> QuizAttempt:
    return QuizAttempt(
        id=row["id"],
        chapter_id=row["chapter_id"],
        score=row["score"],
        passed=bool(row["passed"]),
        attempted_at=datetime.fromisoformat(row["attempted_at"]),
        missed_topics=tuple(json.loads(row["missed_topics"] or "[]")),
        can_retry_at=datetime.fromisoformat(row["can_retry_at"]) if row["can_retry_at"] else None,
    )


def _insert_attempt(conn: sqlite3.Connection, user_id: str, attempt: QuizAttempt) -> QuizAttempt:
    cur = conn.execute(
        """INSERT INTO quiz_attempts
        (user_id, chapter_id, score, passed, missed_topics, can_retry_at, attempted_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            user_id, attempt.chapter_id, attempt.score, int(attempt.passed),
            json.dumps(list(attempt.missed_topics)),
            attempt.can_retry_at.isoformat() if attempt.can_retry_at else None,
            attempt.attempted_at.isoformat(),
        ),
    )
    return replace(attempt, id=cur.lastrowid)


def _require_quiz_access(
    conn: sqlite3.Connection, user_id: str, chapter_id: str, curriculum: Curriculum,
) -> Progress:
    progress = load_progress_in(conn, user_id)
    if progress is None:
        raise LookupError(f"No progress recorded for {user_id}")
    chapter = curriculum.get_chapter(chapter_id)
    decision = gate.can_take_quiz(chapter.number, progress, chapter.lesson_ids)
    if not decision.can_access:
        raise QuizNotAvailableError(decision.reason)
    return progress


def check_quiz_access(
    db_path: str, user_id: str | None, chapter_id: str, curriculum: Curriculum | None = None,
) -> AccessDecision:
    """Read progress and ask the gate whether ``chapter_id``'s quiz can be taken."""
    curriculum = curriculum or load_curriculum()
    chapter = curriculum.get_chapter(chapter_id)
    progress = get_progress(db_path, user_id, curriculum.phase_days)
    return gate.can_take_quiz(chapter.number, progress, chapter.lesson_ids)


def save_quiz_attempt(db_path: str, user_id: str | None, attempt: QuizAttempt) -> QuizAttempt:
    user_id = require_user(user_id)
    with transaction(db_path) as conn:
        saved = _insert_attempt(conn, user_id, attempt)
    logger.info(f"{user_id} scored {attempt.score} on {attempt.chapter_id} (passed={attempt.passed})")
    return saved


def record_passing_attempt(
    db_path: str, user_id: str | None, attempt: QuizAttempt, curriculum: Curriculum | None = None,
) -> QuizAttempt:
    """Store a passing attempt, open the next chapter and award the chapter badge together.

    Raises ``LookupError`` when the user has no progress and
    ``QuizNotAvailableError`` when the chapter quiz can't be taken yet; nothing
    is stored in either case.
    """
    if not attempt.passed:
        raise ValueError("record_passing_attempt requires a passing attempt")
    user_id = require_user(user_id)
    number = gate.chapter_number(attempt.chapter_id)
    curriculum = curriculum or load_curriculum()
    with transaction(db_path) as conn:
        _require_quiz_access(conn, user_id, attempt.chapter_id, curriculum)
        saved = _insert_attempt(conn, user_id, attempt)
        advance_chapter_in(conn, user_id, number + 1)
        award_badge_in(conn, user_id, chapter_badge(number))
    logger.info(f"{user_id} passed {attempt.chapter_id} with {attempt.score}")
    return saved


def submit_quiz_attempt(
    db_path: str,
    user_id: str | None,
    chapter_id: str,
    score: int,
    passed: bool,
    missed_topics: list[str],
    now: datetime | None = None,
    cooldown: timedelta = gate.RETRY_COOLDOWN,
    curriculum: Curriculum | None = None,
) -> QuizAttempt:
    """Record a quiz result for a chapter whose quiz is open to the user."""
    attempt = gate.record_quiz_attempt(
        chapter_id, score, passed, missed_topics, now or datetime.now(), cooldown,
    )
    if passed:
        return record_passing_attempt(db_path, user_id, attempt, curriculum)
    user_id = require_user(user_id)
    curriculum = curriculum or load_curriculum()
    with transaction(db_path) as conn:
        _require_quiz_access(conn, user_id, chapter_id, curriculum)
        saved = _insert_attempt(conn, user_id, attempt)
    logger.info(f"{user_id} scored {score} on {chapter_id} (passed=False)")
    return saved


def get_quiz_attempts(db_path: str, user_id: str | None, chapter_id: str | None = None) -> list[QuizAttempt]:
    """Attempts newest first, optionally for one chapter."""
    if not user_id:
        return []
    conn = get_connection(db_path)
    if chapter_id is None:
        rows = conn.execute(
            "SELECT * FROM quiz_attempts WHERE user_id = ? ORDER BY attempted_at DESC, id DESC",
            (user_id,),
        ).fetchall()
    else:
        rows = conn.execute(
            """SELECT * FROM quiz_attempts WHERE user_id = ? AND chapter_id = ?
            ORDER BY attempted_at DESC, id DESC""",
            (user_id, chapter_id),
        ).fetchall()
    conn.close()
    return [_row_to_attempt(r) for r in rows]


def get_best_quiz_score(db_path: str, user_id: str | None, chapter_id: str) -> int | None:
    if not user_id:
        return None
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT MAX(score) AS best FROM quiz_attempts WHERE user_id = ? AND chapter_id = ?",
        (user_id, chapter_id),
    ).fetchone()
    conn.close()
    return row["best"]


def get_best_scores(db_path: str, user_id: str | None) -> dict[str, int]:
    """Best score per chapter id."""
    if not user_id:
        return {}
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT chapter_id, MAX(score) AS best FROM quiz_attempts WHERE user_id = ? GROUP BY chapter_id",
        (user_id,),
    ).fetchall()
    conn.close()
    return {r["chapter_id"]: r["best"] for r in rows}


def can_retry_stored_quiz(
    db_path: str,
    user_id: str | None,
    chapter_id: str,
    now: datetime | None = None,
    immediate_retry: bool = False,
) -> RetryDecision:
    if not user_id:
        return RetryDecision(can_retry=False)
    attempts = get_quiz_attempts(db_path, user_id, chapter_id)
    return gate.can_retry_quiz(chapter_id, attempts, now or datetime.now(), immediate_retry)
