"""Progress persistence: lesson completion, journal/movement status, access checks."""
import logging
import sqlite3
from datetime import date, datetime

from wellness_path import gate
from wellness_path.curriculum import Curriculum, load_curriculum
from wellness_path.db import get_connection, transaction
from wellness_path.models import AccessDecision, LessonStatus, Progress

logger = logging.getLogger(__name__)


class NotAuthenticatedError(Exception):
    """Raised when a write is attempted without a user."""


def require_user(user_id: str | None) -> str:
    if not user_id:
        raise NotAuthenticatedError("Not authenticated")
    return user_id


def load_progress_in(conn: sqlite3.Connection, user_id: str) -> Progress | None:
    row = conn.execute("SELECT * FROM user_progress WHERE user_id = ?", (user_id,)).fetchone()
    if not row:
        return None
    lessons = conn.execute(
        "SELECT lesson_id FROM completed_lessons WHERE user_id = ?", (user_id,)
    ).fetchall()
    start = row["subscription_start_date"]
    return Progress(
        user_id=user_id,
        subscription_start_date=date.fromisoformat(start) if start else None,
        completed_lessons={r["lesson_id"] for r in lessons},
        current_day=row["current_day"],
        current_chapter=row["current_chapter"],
        current_streak=row["current_streak"],
        longest_streak=row["longest_streak"],
    )


def _create_progress(conn: sqlite3.Connection, user_id: str, start: date | None) -> Progress:
    conn.execute(
        """INSERT INTO user_progress
        (user_id, subscription_start_date, current_day, current_chapter,
         current_streak, longest_streak, updated_at)
        VALUES (?, ?, 1, 1, 0, 0, ?)""",
        (user_id, start.isoformat() if start else None, datetime.now().isoformat()),
    )
    logger.info(f"Created progress for {user_id} starting {start}")
    return Progress(user_id=user_id, subscription_start_date=start)


def _save_progress(conn: sqlite3.Connection, progress: Progress) -> None:
    conn.execute(
        """UPDATE user_progress SET current_day=?, current_chapter=?,
        current_streak=?, longest_streak=?, updated_at=?
        WHERE user_id=?""",
        (
            progress.current_day, progress.current_chapter, progress.current_streak,
            progress.longest_streak, datetime.now().isoformat(), progress.user_id,
        ),
    )


def advance_chapter_in(conn: sqlite3.Connection, user_id: str, chapter_number: int) -> bool:
    """Move ``current_chapter`` forward to ``chapter_number``; never backwards.

    Returns False when the user has no progress row.
    """
    cur = conn.execute(
        "UPDATE user_progress SET current_chapter = MAX(current_chapter, ?), updated_at = ? WHERE user_id = ?",
        (chapter_number, datetime.now().isoformat(), user_id),
    )
    return cur.rowcount > 0


def get_progress(
    db_path: str, user_id: str | None, max_day: int = gate.MAX_PHASE_DAY,
) -> Progress | None:
    """Current progress, or None if signed out or nothing has been recorded yet.

    ``current_day`` follows the completed-lesson count; a stale stored value is
    corrected on read.
    """
    if not user_id:
        return None
    conn = get_connection(db_path)
    progress = load_progress_in(conn, user_id)
    if progress is None:
        conn.close()
        return None
    expected_day = min(progress.completed_count + 1, max_day)
    if progress.current_day != expected_day:
        logger.debug(f"Resyncing current_day for {user_id}: {progress.current_day} -> {expected_day}")
        progress.current_day = expected_day
        _save_progress(conn, progress)
        conn.commit()
    conn.close()
    return progress


def ensure_progress(
    db_path: str, user_id: str | None, account_created: date | datetime,
    max_day: int = gate.MAX_PHASE_DAY,
) -> Progress | None:
    """Create progress anchored at the account creation date, or correct a drifted start date."""
    if not user_id:
        return None
    start = account_created.date() if isinstance(account_created, datetime) else account_created
    with transaction(db_path) as conn:
        progress = load_progress_in(conn, user_id)
        if progress is None:
            _create_progress(conn, user_id, start)
        elif progress.subscription_start_date != start:
            logger.info(f"Correcting start date for {user_id}: {progress.subscription_start_date} -> {start}")
            conn.execute(
                "UPDATE user_progress SET subscription_start_date = ? WHERE user_id = ?",
                (start.isoformat(), user_id),
            )
    return get_progress(db_path, user_id, max_day)


def mark_lesson_complete(
    db_path: str, user_id: str | None, lesson_id: str, max_day: int = gate.MAX_PHASE_DAY,
) -> Progress:
    """Record ``lesson_id`` as completed and update the streak.

    Completing the same lesson again changes nothing.
    """
    user_id = require_user(user_id)
    with transaction(db_path) as conn:
        progress = load_progress_in(conn, user_id)
        if progress is None:
            progress = _create_progress(conn, user_id, None)
        updated = gate.complete_lesson(lesson_id, progress, max_day)
        cur = conn.execute(
            "INSERT OR IGNORE INTO completed_lessons (user_id, lesson_id, completed_at) VALUES (?, ?, ?)",
            (user_id, lesson_id, datetime.now().isoformat()),
        )
        if cur.rowcount == 0:
            logger.debug(f"{lesson_id} already completed by {user_id}")
        else:
            logger.info(f"{user_id} completed {lesson_id} (streak {updated.current_streak})")
        _save_progress(conn, updated)
    return updated


def complete_lesson_if_done(
    db_path: str, user_id: str | None, lesson_id: str, max_day: int = gate.MAX_PHASE_DAY,
) -> Progress | None:
    """Complete ``lesson_id`` once its journal and movement are both logged.

    Returns None, and records nothing, while either is missing.
    """
    if not get_lesson_status(db_path, user_id, lesson_id).is_complete:
        logger.debug(f"{lesson_id} not finished by {user_id}; journal or movement missing")
        return None
    return mark_lesson_complete(db_path, user_id, lesson_id, max_day)


def advance_chapter(db_path: str, user_id: str | None, chapter_number: int) -> None:
    user_id = require_user(user_id)
    with transaction(db_path) as conn:
        if not advance_chapter_in(conn, user_id, chapter_number):
            raise LookupError(f"No progress recorded for {user_id}")
    logger.info(f"{user_id} advanced to chapter {chapter_number}")


def _mark_activity(db_path: str, user_id: str | None, lesson_id: str, column: str, text: str | None = None) -> None:
    user_id = require_user(user_id)
    conn = get_connection(db_path)
    conn.execute(
        "INSERT OR IGNORE INTO lesson_activity (user_id, lesson_id) VALUES (?, ?)",
        (user_id, lesson_id),
    )
    conn.execute(
        f"UPDATE lesson_activity SET {column} = 1, updated_at = ? WHERE user_id = ? AND lesson_id = ?",
        (datetime.now().isoformat(), user_id, lesson_id),
    )
    if text is not None:
        conn.execute(
            "UPDATE lesson_activity SET journal_text = ? WHERE user_id = ? AND lesson_id = ?",
            (text, user_id, lesson_id),
        )
    conn.commit()
    conn.close()


def record_journal(db_path: str, user_id: str | None, lesson_id: str, text: str = "") -> None:
    _mark_activity(db_path, user_id, lesson_id, "journal_done", text)


def record_movement(db_path: str, user_id: str | None, lesson_id: str) -> None:
    _mark_activity(db_path, user_id, lesson_id, "movement_done")


def get_lesson_status(db_path: str, user_id: str | None, lesson_id: str) -> LessonStatus:
    if not user_id:
        return LessonStatus()
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT journal_done, movement_done FROM lesson_activity WHERE user_id = ? AND lesson_id = ?",
        (user_id, lesson_id),
    ).fetchone()
    conn.close()
    if not row:
        return LessonStatus()
    return LessonStatus(
        journal_complete=bool(row["journal_done"]),
        movement_complete=bool(row["movement_done"]),
    )


def is_lesson_fully_complete(db_path: str, user_id: str | None, lesson_id: str) -> bool:
    return get_lesson_status(db_path, user_id, lesson_id).is_complete


def check_lesson_access(
    db_path: str,
    user_id: str | None,
    lesson_day: int,
    today: date | None = None,
    curriculum: Curriculum | None = None,
) -> AccessDecision:
    """Read the stores and ask the gate whether ``lesson_day`` can be opened."""
    curriculum = curriculum or load_curriculum()
    max_day = curriculum.phase_days
    if curriculum.lesson_for_day(lesson_day) is None:
        return AccessDecision(can_access=False, reason=gate.REASON_NOT_FOUND)

    progress = get_progress(db_path, user_id, max_day)
    previous = curriculum.lesson_for_day(lesson_day - 1)
    previous_status = get_lesson_status(db_path, user_id, previous.id) if previous else None
    return gate.can_access_lesson(
        lesson_day, progress, today or date.today(), previous_status, max_day,
    )


def reset_progress(db_path: str, user_id: str | None) -> None:
    """Delete all progress, activity, quiz attempts, badges and milestones for a user."""
    user_id = require_user(user_id)
    with transaction(db_path) as conn:
        for table in ("completed_lessons", "lesson_activity", "quiz_attempts", "badges", "milestones", "user_progress"):
            conn.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
    logger.info(f"Reset all progress for {user_id}")
