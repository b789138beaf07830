"""Missed quiz topics and the lessons to revisit for them."""
from collections import Counter

from wellness_path.curriculum import Curriculum
from wellness_path.quiz import get_quiz_attempts


def get_missed_topics(db_path: str, user_id: str | None, chapter_id: str | None = None) -> list[dict]:
    """Topics missed across quiz attempts, most frequently missed first."""
    counts = Counter()
    for attempt in get_quiz_attempts(db_path, user_id, chapter_id):
        counts.update(attempt.missed_topics)
    return [{"topic": topic, "times_missed": n} for topic, n in counts.most_common()]


def get_review_lessons(curriculum: Curriculum, missed_topics: list[str]) -> list[dict]:
    """Map each missed topic to the lesson that covers it (None when no lesson does)."""
    results = []
    for topic in missed_topics:
        lesson = curriculum.lesson_for_topic(topic)
        results.append({
            "topic": topic,
            "lesson_day": lesson.day_number if lesson else None,
            "lesson_id": lesson.id if lesson else None,
            "review_title": lesson.title if lesson else None,
        })
    return results
