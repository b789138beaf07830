"""Journey dashboard: chapter progress and overall statistics."""
from wellness_path.curriculum import Curriculum
from wellness_path.db import get_connection
from wellness_path.models import Progress
from wellness_path.quiz import PASSING_SCORE


def get_progress_color(percent: float) -> str:
    if percent >= 100:
        return "green"
    elif percent >= 60:
        return "yellow"
    elif percent > 0:
        return "dark_orange"
    return "dim"


def get_chapter_progress(
    curriculum: Curriculum,
    progress: Progress | None,
    best_scores: dict[str, int],
    passing_score: int = PASSING_SCORE,
) -> list[dict]:
    completed = progress.completed_lessons if progress else set()
    current_chapter = progress.current_chapter if progress else 1
    results = []
    for chapter in curriculum.chapters:
        best = best_scores.get(chapter.id)
        quiz_passed = best is not None and best >= passing_score
        done = sum(1 for lesson_id in chapter.lesson_ids if lesson_id in completed)
        total = len(chapter.lesson_ids)
        results.append({
            "chapter_id": chapter.id,
            "number": chapter.number,
            "title": chapter.title,
            "is_unlocked": chapter.number <= current_chapter,
            "quiz_passed": quiz_passed,
            "is_complete": quiz_passed and done == total,
            "lessons_completed": done,
            "total_lessons": total,
            "progress_percent": round(done / total * 100, 1) if total else 0.0,
            "best_score": best,
        })
    return results


def get_journey_stats(db_path: str, user_id: str | None) -> dict:
    stats = {
        "lessons_completed": 0,
        "current_streak": 0,
        "longest_streak": 0,
        "current_chapter": 1,
        "quizzes_taken": 0,
        "avg_quiz_score": 0.0,
        "milestones_earned": 0,
    }
    if not user_id:
        return stats
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM user_progress WHERE user_id = ?", (user_id,)).fetchone()
    if row:
        stats["current_streak"] = row["current_streak"]
        stats["longest_streak"] = row["longest_streak"]
        stats["current_chapter"] = row["current_chapter"]
    stats["lessons_completed"] = conn.execute(
        "SELECT COUNT(*) FROM completed_lessons WHERE user_id = ?", (user_id,)
    ).fetchone()[0]
    quiz_row = conn.execute(
        "SELECT COUNT(*) AS t, AVG(score) AS avg FROM quiz_attempts WHERE user_id = ?", (user_id,)
    ).fetchone()
    stats["quizzes_taken"] = quiz_row["t"]
    stats["avg_quiz_score"] = round(quiz_row["avg"], 1) if quiz_row["avg"] is not None else 0.0
    stats["milestones_earned"] = conn.execute(
        "SELECT COUNT(*) FROM milestones WHERE user_id = ?", (user_id,)
    ).fetchone()[0]
    conn.close()
    return stats
