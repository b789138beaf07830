"""Lesson, chapter and quiz content loading."""
import json
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from wellness_path.models import Chapter, Lesson, QuizQuestion

CONTENT_DIR = Path(__file__).parent / "content"
DEFAULT_CURRICULUM = CONTENT_DIR / "curriculum.json"


class LessonNotFoundError(LookupError):
    pass


class ChapterNotFoundError(LookupError):
    pass


@dataclass
class Curriculum:
    phase_days: int
    lessons: list[Lesson] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)

    def lesson_for_day(self, day_number: int) -> Lesson | None:
        for lesson in self.lessons:
            if lesson.day_number == day_number:
                return lesson
        return None

    def get_lesson(self, lesson_id: str) -> Lesson:
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return lesson
        raise LessonNotFoundError(lesson_id)

    def get_chapter(self, chapter_id: str) -> Chapter:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        raise ChapterNotFoundError(chapter_id)

    def lessons_in_chapter(self, chapter_id: str) -> list[Lesson]:
        return [l for l in self.lessons if l.chapter_id == chapter_id]

    def lesson_for_topic(self, topic_tag: str) -> Lesson | None:
        """First lesson that teaches ``topic_tag``."""
        for lesson in self.lessons:
            if lesson.topic_tag == topic_tag:
                return lesson
        return None


def read_curriculum_file(file_path: str | Path) -> dict:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        return json.loads(path.read_text(encoding="utf-8"))
    elif suffix in (".yaml", ".yml"):
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    raise ValueError(f"Unsupported curriculum format: {path.suffix or path.name}")


def parse_curriculum(data: dict) -> Curriculum:
    lessons = sorted(
        (
            Lesson(
                id=l["id"],
                day_number=int(l["day_number"]),
                chapter_id=l["chapter_id"],
                title=l["title"],
                topic_tag=l.get("topic_tag", ""),
                content=l.get("content", ""),
                journal_prompt=l.get("journal_prompt", ""),
                movement=l.get("movement", ""),
            )
            for l in data.get("lessons", [])
        ),
        key=lambda l: l.day_number,
    )
    chapters = []
    for c in sorted(data.get("chapters", []), key=lambda c: c["number"]):
        questions = [
            QuizQuestion(
                id=q["id"],
                prompt=q["prompt"],
                type=q.get("type", "multiple_choice"),
                choices=list(q.get("choices", [])),
                correct_answer=q.get("correct_answer"),
                topic_tag=q.get("topic_tag", ""),
            )
            for q in c.get("questions", [])
        ]
        chapters.append(Chapter(
            id=c["id"],
            number=int(c["number"]),
            title=c["title"],
            lesson_ids=[l.id for l in lessons if l.chapter_id == c["id"]],
            questions=questions,
        ))
    phase_days = int(data.get("phase", {}).get("days", len(lessons)))
    return Curriculum(phase_days=phase_days, lessons=lessons, chapters=chapters)


def load_curriculum(file_path: str | Path | None = None) -> Curriculum:
    """Load the bundled curriculum, or a JSON/YAML file with the same shape."""
    return parse_curriculum(read_curriculum_file(file_path or DEFAULT_CURRICULUM))
