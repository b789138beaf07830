"""Lesson unlock, streak and quiz-retry rules.

Everything here is a pure function of its arguments: callers fetch progress and
quiz attempts from the stores, pass them in, and persist whatever comes back.
"""
import math
from dataclasses import replace
from datetime import date, datetime, timedelta

from wellness_path.models import AccessDecision, LessonStatus, Progress, QuizAttempt, RetryDecision

MAX_PHASE_DAY = 30
LESSONS_PER_CHAPTER = 5
CHAPTER_BOUNDARIES = (6, 11, 16, 21, 26)  # first day of chapters 2-6
RETRY_COOLDOWN = timedelta(hours=24)

REASON_NO_PROGRESS = "No progress found"
REASON_NOT_FOUND = "Lesson not found"
REASON_NOT_YET = "This lesson is not available yet. Come back tomorrow!"
REASON_CHAPTER_QUIZ = "Complete the chapter quiz to continue"
REASON_PREVIOUS_LESSON = "Complete the previous lesson's journal and movement to unlock this lesson"
REASON_QUIZ_LOCKED = "Pass the previous chapter quiz to unlock this chapter"
REASON_QUIZ_LESSONS = "Complete every lesson in this chapter to take the quiz"


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def calculate_unlocked_day(
    subscription_start: date | datetime,
    today: date | datetime,
    max_day: int = MAX_PHASE_DAY,
) -> int:
    """Highest lesson day the calendar allows.

    Day 1 is the subscription start date, day 2 the next calendar day, and so
    on. Time of day is ignored on both sides.

    Args:
        subscription_start: Local date (or datetime) the program started.
        today: Local date (or datetime) to evaluate.
        max_day: Size of the current content phase.

    Returns:
        An int in ``[1, max_day]``.
    """
    days_elapsed = (_as_date(today) - _as_date(subscription_start)).days
    return max(1, min(days_elapsed + 1, max_day))


def required_chapter(boundary: int) -> int:
    return math.ceil(boundary / LESSONS_PER_CHAPTER)


def chapter_for_day(day_number: int) -> int:
    return (day_number - 1) // LESSONS_PER_CHAPTER + 1


def chapter_number(chapter_id: str) -> int:
    """Parse ``chapter_<n>`` into n."""
    prefix, _, number = chapter_id.rpartition("_")
    if prefix != "chapter" or not number.isdigit():
        raise ValueError(f"Not a chapter id: {chapter_id!r}")
    return int(number)


def can_access_lesson(
    lesson_day: int,
    progress: Progress | None,
    today: date | datetime,
    previous_status: LessonStatus | None = None,
    max_day: int = MAX_PHASE_DAY,
) -> AccessDecision:
    """Decide whether the lesson for ``lesson_day`` can be opened today.

    Checks run in order and the first failure wins. ``previous_status`` is the
    journal/movement status of lesson ``lesson_day - 1``, or None when there is
    no such lesson.
    """
    if lesson_day == 1:
        return AccessDecision(can_access=True)
    if progress is None or progress.subscription_start_date is None:
        return AccessDecision(can_access=False, reason=REASON_NO_PROGRESS)
    if lesson_day < 1:
        return AccessDecision(can_access=False, reason=REASON_NOT_FOUND)

    unlocked_day = calculate_unlocked_day(progress.subscription_start_date, today, max_day)
    if lesson_day > unlocked_day:
        return AccessDecision(can_access=False, reason=REASON_NOT_YET)

    for boundary in CHAPTER_BOUNDARIES:
        if lesson_day >= boundary and progress.current_chapter < required_chapter(boundary):
            return AccessDecision(can_access=False, reason=REASON_CHAPTER_QUIZ)

    if previous_status is not None and not previous_status.is_complete:
        return AccessDecision(
            can_access=False,
            reason=REASON_PREVIOUS_LESSON,
            previous_lesson_status=previous_status,
        )

    return AccessDecision(can_access=True)


def can_take_quiz(
    chapter_number: int,
    progress: Progress | None,
    chapter_lesson_ids: list[str] | tuple[str, ...],
) -> AccessDecision:
    """Whether the quiz for chapter ``chapter_number`` may be taken.

    The chapter must be open (the previous quiz passed) and every one of its
    lessons completed.
    """
    if progress is None:
        return AccessDecision(can_access=False, reason=REASON_NO_PROGRESS)
    if chapter_number > progress.current_chapter:
        return AccessDecision(can_access=False, reason=REASON_QUIZ_LOCKED)
    if any(lesson_id not in progress.completed_lessons for lesson_id in chapter_lesson_ids):
        return AccessDecision(can_access=False, reason=REASON_QUIZ_LESSONS)
    return AccessDecision(can_access=True)


def complete_lesson(lesson_id: str, progress: Progress, max_day: int = MAX_PHASE_DAY) -> Progress:
    """Return a copy of ``progress`` with ``lesson_id`` completed.

    A lesson already in the set leaves the streak alone. The streak counts
    new completions, not consecutive calendar days.
    """
    completed = set(progress.completed_lessons)
    streak = progress.current_streak
    if lesson_id not in completed:
        completed.add(lesson_id)
        streak += 1
    return replace(
        progress,
        completed_lessons=completed,
        current_day=min(len(completed) + 1, max_day),
        current_streak=streak,
        longest_streak=max(progress.longest_streak, streak),
    )


def record_quiz_attempt(
    chapter_id: str,
    score: int,
    passed: bool,
    missed_topics: list[str] | tuple[str, ...],
    now: datetime,
    cooldown: timedelta = RETRY_COOLDOWN,
) -> QuizAttempt:
    if not 0 <= score <= 100:
        raise ValueError(f"Quiz score must be between 0 and 100, got {score}")
    return QuizAttempt(
        chapter_id=chapter_id,
        score=score,
        passed=passed,
        attempted_at=now,
        missed_topics=tuple(missed_topics),
        can_retry_at=None if passed else now + cooldown,
    )


def can_retry_quiz(
    chapter_id: str,
    attempts: list[QuizAttempt],
    now: datetime,
    immediate_retry: bool = False,
) -> RetryDecision:
    """Whether a chapter quiz can be taken again at ``now``.

    Only the most recent attempt for the chapter matters. A passed quiz is
    final; a failed one opens up again once its cooldown has elapsed.
    """
    chapter_attempts = [a for a in attempts if a.chapter_id == chapter_id]
    if not chapter_attempts:
        return RetryDecision(can_retry=True)

    latest = max(chapter_attempts, key=lambda a: a.attempted_at)
    if latest.passed:
        return RetryDecision(can_retry=False)
    if immediate_retry or latest.can_retry_at is None or now >= latest.can_retry_at:
        return RetryDecision(can_retry=True)

    wait = latest.can_retry_at - now
    return RetryDecision(can_retry=False, wait_time_ms=int(wait.total_seconds() * 1000))
