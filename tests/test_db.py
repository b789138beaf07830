"""Tests for database initialization and connection management."""
import sqlite3

import pytest

from wellness_path.db import init_db, get_connection, transaction


def test_init_db_creates_tables(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    )
    tables = {row[0] for row in cursor.fetchall()}
    expected = {
        "user_progress", "completed_lessons", "lesson_activity",
        "quiz_attempts", "badges", "milestones",
    }
    assert expected.issubset(tables)
    conn.close()


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    init_db(tmp_db)  # should not raise
    conn = get_connection(tmp_db)
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    assert len(cursor.fetchall()) > 0
    conn.close()


def test_init_db_creates_parent_dir(tmp_path):
    db = tmp_path / "nested" / "wellness.db"
    init_db(str(db))
    assert db.exists()


def test_get_connection_returns_row_factory(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    conn.execute("INSERT INTO badges (user_id, badge_id) VALUES ('u1', 'chapter_1_complete')")
    row = conn.execute("SELECT user_id, badge_id FROM badges").fetchone()
    assert row["badge_id"] == "chapter_1_complete"
    conn.close()


def test_transaction_commits(tmp_db):
    init_db(tmp_db)
    with transaction(tmp_db) as conn:
        conn.execute("INSERT INTO badges (user_id, badge_id) VALUES ('u1', 'a')")
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM badges").fetchone()[0] == 1
    conn.close()


def test_transaction_rolls_back_on_error(tmp_db):
    init_db(tmp_db)
    with pytest.raises(RuntimeError):
        with transaction(tmp_db) as conn:
            conn.execute("INSERT INTO badges (user_id, badge_id) VALUES ('u1', 'a')")
            raise RuntimeError("boom")
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM badges").fetchone()[0] == 0
    conn.close()


def test_completed_lessons_unique_per_user(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    conn.execute("INSERT INTO user_progress (user_id) VALUES ('u1')")
    conn.execute("INSERT INTO completed_lessons (user_id, lesson_id) VALUES ('u1', 'lesson_day_1')")
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute("INSERT INTO completed_lessons (user_id, lesson_id) VALUES ('u1', 'lesson_day_1')")
    conn.close()
