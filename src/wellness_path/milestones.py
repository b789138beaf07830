"""Badges and milestone achievements."""
import logging
import sqlite3
from datetime import datetime

from wellness_path.db import get_connection, transaction
from wellness_path.progress import require_user, get_progress

logger = logging.getLogger(__name__)

DAY_MILESTONES = (7, 14, 30, 60, 90, 180, 365)
STREAK_MILESTONES = (7, 30)


def chapter_badge(chapter_number: int) -> str:
    return f"chapter_{chapter_number}_complete"


def award_badge_in(conn: sqlite3.Connection, user_id: str, badge_id: str) -> bool:
    """Insert a badge inside an open transaction. Returns False if already earned."""
    cur = conn.execute(
        "INSERT OR IGNORE INTO badges (user_id, badge_id, awarded_at) VALUES (?, ?, ?)",
        (user_id, badge_id, datetime.now().isoformat()),
    )
    if cur.rowcount:
        logger.info(f"Awarded badge {badge_id} to {user_id}")
    return bool(cur.rowcount)


def award_badge(db_path: str, user_id: str | None, badge_id: str) -> bool:
    user_id = require_user(user_id)
    with transaction(db_path) as conn:
        return award_badge_in(conn, user_id, badge_id)


def get_badges(db_path: str, user_id: str | None) -> list[str]:
    if not user_id:
        return []
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT badge_id FROM badges WHERE user_id = ? ORDER BY id", (user_id,)
    ).fetchall()
    conn.close()
    return [r["badge_id"] for r in rows]


def record_milestone(db_path: str, user_id: str | None, milestone_type: str) -> dict:
    """Record a milestone once; later calls return the existing row."""
    user_id = require_user(user_id)
    conn = get_connection(db_path)
    cur = conn.execute(
        "INSERT OR IGNORE INTO milestones (user_id, milestone_type, achieved_at) VALUES (?, ?, ?)",
        (user_id, milestone_type, datetime.now().isoformat()),
    )
    conn.commit()
    if cur.rowcount:
        logger.info(f"{user_id} reached milestone {milestone_type}")
    row = conn.execute(
        "SELECT * FROM milestones WHERE user_id = ? AND milestone_type = ?",
        (user_id, milestone_type),
    ).fetchone()
    conn.close()
    return dict(row)


def get_milestones(db_path: str, user_id: str | None) -> list[dict]:
    if not user_id:
        return []
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM milestones WHERE user_id = ? ORDER BY achieved_at DESC, id DESC",
        (user_id,),
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def share_milestone(db_path: str, milestone_id: int) -> None:
    conn = get_connection(db_path)
    conn.execute("UPDATE milestones SET shared = 1 WHERE id = ?", (milestone_id,))
    conn.commit()
    conn.close()


def due_milestones(completed_count: int, current_streak: int, badges: list[str]) -> list[str]:
    """Milestone types earned by the given totals, in award order."""
    earned = [f"day_{day}" for day in DAY_MILESTONES if completed_count >= day]
    earned += [f"streak_{n}" for n in STREAK_MILESTONES if current_streak >= n]
    earned += [b for b in badges if b.startswith("chapter_") and b.endswith("_complete")]
    return earned


def check_milestones(db_path: str, user_id: str | None) -> list[dict]:
    """Record every milestone the user qualifies for and return all of them."""
    progress = get_progress(db_path, user_id)
    if progress is None:
        return []
    badges = get_badges(db_path, user_id)
    for milestone_type in due_milestones(progress.completed_count, progress.current_streak, badges):
        record_milestone(db_path, user_id, milestone_type)
    return get_milestones(db_path, user_id)
