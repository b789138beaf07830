"""Data classes for the wellness program domain model."""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


@dataclass
class Progress:
    user_id: str
    subscription_start_date: Optional[date] = None
    completed_lessons: set[str] = field(default_factory=set)
    current_day: int = 1
    current_chapter: int = 1
    current_streak: int = 0
    longest_streak: int = 0

    @property
    def completed_count(self) -> int:
        return len(self.completed_lessons)


@dataclass
class LessonStatus:
    journal_complete: bool = False
    movement_complete: bool = False

    @property
    def is_complete(self) -> bool:
        return self.journal_complete and self.movement_complete


@dataclass
class AccessDecision:
    can_access: bool
    reason: Optional[str] = None
    previous_lesson_status: Optional[LessonStatus] = None


@dataclass
class RetryDecision:
    can_retry: bool
    wait_time_ms: Optional[int] = None


@dataclass(frozen=True)
class QuizAttempt:
    chapter_id: str
    score: int
    passed: bool
    attempted_at: datetime
    missed_topics: tuple[str, ...] = ()
    can_retry_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Lesson:
    id: str
    day_number: int
    chapter_id: str
    title: str
    topic_tag: str = ""
    content: str = ""
    journal_prompt: str = ""
    movement: str = ""


@dataclass
class QuizQuestion:
    id: str
    prompt: str
    type: str = "multiple_choice"
    choices: list[str] = field(default_factory=list)
    correct_answer: Optional[str] = None
    topic_tag: str = ""


@dataclass
class Chapter:
    id: str
    number: int
    title: str
    lesson_ids: list[str] = field(default_factory=list)
    questions: list[QuizQuestion] = field(default_factory=list)
