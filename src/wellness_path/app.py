"""Interactive CLI application."""
import logging
from datetime import date, datetime, timedelta

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from wellness_path.config import config
from wellness_path.curriculum import Curriculum, load_curriculum
from wellness_path.dashboard import get_chapter_progress, get_journey_stats, get_progress_color
from wellness_path.db import init_db
from wellness_path.gate import calculate_unlocked_day, chapter_for_day
from wellness_path.milestones import check_milestones, get_milestones
from wellness_path.models import Chapter, Lesson
from wellness_path.progress import (
    check_lesson_access, complete_lesson_if_done, ensure_progress, get_lesson_status,
    get_progress, record_journal, record_movement,
)
from wellness_path.quiz import (
    can_retry_stored_quiz, check_quiz_access, get_best_scores, grade_quiz, submit_quiz_attempt,
)
from wellness_path.review import get_missed_topics, get_review_lessons

console = Console()
logger = logging.getLogger(__name__)

EXIT_WORDS = ("q", "menu")


class SessionExitRequested(Exception):
    """Raised when the user backs out of a session prompt."""


def session_prompt(prompt: str, **kwargs) -> str:
    if kwargs.get("choices"):
        kwargs["choices"] = [*kwargs["choices"], *EXIT_WORDS]
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def session_int_prompt(prompt: str, choices: list[str] | None = None, default: int | None = None) -> int:
    kwargs = {"default": str(default)} if default is not None else {}
    while True:
        answer = session_prompt(prompt, **kwargs).strip()
        if answer.isdigit() and (choices is None or answer in choices):
            return int(answer)
        console.print("[red]Please enter a valid number.[/red]")


def format_wait(wait_time_ms: int) -> str:
    minutes = max(1, round(wait_time_ms / 60000))
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


def setup_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def show_welcome():
    console.print(Panel(
        "[bold]Wellness Path[/bold]\n[dim]30 days of lessons, journaling and movement[/dim]",
        title="Welcome", border_style="green",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("today", "Today's lesson, journal and movement"),
        ("lesson", "Open a lesson by day"),
        ("journal", "Write the journal for a lesson"),
        ("move", "Log the movement for a lesson"),
        ("quiz", "Take a chapter quiz"),
        ("progress", "Chapters, streak and stats"),
        ("milestones", "Milestones and badges"),
        ("review", "Revisit missed quiz topics"),
        ("plan", "View the 30-day plan"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def show_lesson(lesson: Lesson) -> None:
    body = f"[bold]{lesson.title}[/bold]"
    if lesson.content:
        body += f"\n\n{lesson.content}"
    if lesson.movement:
        body += f"\n\n[cyan]Movement:[/cyan] {lesson.movement}"
    console.print(Panel(body, title=f"Day {lesson.day_number}", border_style="cyan"))


def report_new_milestones(db_path: str, user_id: str, before: set[str]) -> None:
    for m in check_milestones(db_path, user_id):
        if m["milestone_type"] not in before:
            console.print(f"[magenta]Milestone reached: {m['milestone_type']}[/magenta]")


def finish_lesson(db_path: str, user_id: str, lesson: Lesson, max_day: int, before: set[str]) -> None:
    """Complete the lesson if its journal and movement are both logged."""
    progress = complete_lesson_if_done(db_path, user_id, lesson.id, max_day)
    if progress is None:
        console.print("[yellow]Log your journal and movement to complete this lesson.[/yellow]\n")
        return
    console.print(f"[green]Lesson complete![/green] Streak: [bold]{progress.current_streak}[/bold]\n")
    report_new_milestones(db_path, user_id, before)


def run_lesson_session(db_path: str, user_id: str, lesson: Lesson, max_day: int) -> None:
    """Read the lesson, check off journal and movement, then complete it."""
    show_lesson(lesson)
    before = {m["milestone_type"] for m in get_milestones(db_path, user_id)}
    session_prompt("[dim]Press Enter when done reading[/dim]", default="")

    status = get_lesson_status(db_path, user_id, lesson.id)
    if not status.journal_complete:
        console.print(f"[bold]Journal:[/bold] {lesson.journal_prompt or 'How did today go?'}")
        text = session_prompt("Your entry")
        record_journal(db_path, user_id, lesson.id, text)
        console.print("[green]Journal saved.[/green]\n")
    if not status.movement_complete:
        done = session_prompt(f"Did you do today's movement ({lesson.movement or 'any movement'})?", choices=["y", "n"])
        if done == "y":
            record_movement(db_path, user_id, lesson.id)
            console.print("[green]Movement logged.[/green]\n")
    finish_lesson(db_path, user_id, lesson, max_day, before)


def open_lesson(db_path: str, user_id: str, curriculum: Curriculum, day: int, today: date) -> None:
    decision = check_lesson_access(db_path, user_id, day, today, curriculum)
    if not decision.can_access:
        console.print(f"[yellow]{decision.reason}[/yellow]")
        status = decision.previous_lesson_status
        if status:
            console.print(
                f"  Journal: {'done' if status.journal_complete else '[red]missing[/red]'}  |  "
                f"Movement: {'done' if status.movement_complete else '[red]missing[/red]'}"
            )
        return
    run_lesson_session(db_path, user_id, curriculum.lesson_for_day(day), curriculum.phase_days)


def cmd_today(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    progress = get_progress(db_path, user_id, curriculum.phase_days)
    if progress and progress.completed_count >= curriculum.phase_days:
        console.print("[green]You've finished every lesson in this phase![/green]")
        return
    open_lesson(db_path, user_id, curriculum, progress.current_day if progress else 1, today)


def cmd_lesson(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    progress = get_progress(db_path, user_id, curriculum.phase_days)
    day = session_int_prompt("Lesson day", default=progress.current_day if progress else 1)
    open_lesson(db_path, user_id, curriculum, day, today)


def pick_open_lesson(db_path: str, user_id: str, curriculum: Curriculum, today: date) -> Lesson | None:
    """Ask for a lesson day that is completed or can be opened today."""
    progress = get_progress(db_path, user_id, curriculum.phase_days)
    completed = progress.completed_lessons if progress else set()
    day = session_int_prompt("Lesson day", default=progress.current_day if progress else 1)
    lesson = curriculum.lesson_for_day(day)
    if lesson is None:
        console.print(f"[yellow]There is no lesson {day}.[/yellow]")
        return None
    if lesson.id not in completed:
        decision = check_lesson_access(db_path, user_id, day, today, curriculum)
        if not decision.can_access:
            console.print(f"[yellow]{decision.reason}[/yellow]")
            return None
    return lesson


def cmd_journal(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    lesson = pick_open_lesson(db_path, user_id, curriculum, today)
    if lesson is None:
        return
    before = {m["milestone_type"] for m in get_milestones(db_path, user_id)}
    console.print(f"[bold]Journal:[/bold] {lesson.journal_prompt or 'How did today go?'}")
    record_journal(db_path, user_id, lesson.id, session_prompt("Your entry"))
    console.print("[green]Journal saved.[/green]")
    finish_lesson(db_path, user_id, lesson, curriculum.phase_days, before)


def cmd_move(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    lesson = pick_open_lesson(db_path, user_id, curriculum, today)
    if lesson is None:
        return
    if get_lesson_status(db_path, user_id, lesson.id).movement_complete:
        console.print("[green]Movement already logged for this lesson.[/green]")
        return
    before = {m["milestone_type"] for m in get_milestones(db_path, user_id)}
    done = session_prompt(f"Did you do the movement ({lesson.movement or 'any movement'})?", choices=["y", "n"])
    if done == "y":
        record_movement(db_path, user_id, lesson.id)
        console.print("[green]Movement logged.[/green]")
        finish_lesson(db_path, user_id, lesson, curriculum.phase_days, before)


def run_quiz_session(chapter: Chapter) -> dict[str, str]:
    answers = {}
    console.print(f"\n[bold]{chapter.title} Quiz[/bold] ({len(chapter.questions)} questions)\n")
    for i, q in enumerate(chapter.questions, 1):
        console.print(f"[bold]Q{i}.[/bold] {q.prompt}\n")
        if q.type == "reflection":
            answers[q.id] = session_prompt("Your reflection")
            continue
        letters = [chr(ord("a") + n) for n in range(len(q.choices))]
        for letter, choice in zip(letters, q.choices):
            console.print(f"  [cyan]{letter})[/cyan] {choice}")
        letter = session_prompt("\nYour answer", choices=letters)
        answers[q.id] = q.choices[letters.index(letter)]
        console.print()
    return answers


def cmd_quiz(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    progress = get_progress(db_path, user_id, curriculum.phase_days)
    current = min(progress.current_chapter if progress else 1, len(curriculum.chapters))
    numbers = [str(c.number) for c in curriculum.chapters]
    number = session_int_prompt("Chapter", choices=numbers, default=current)
    chapter = curriculum.chapters[numbers.index(str(number))]

    access = check_quiz_access(db_path, user_id, chapter.id, curriculum)
    if not access.can_access:
        console.print(f"[yellow]{access.reason}[/yellow]")
        return

    retry = can_retry_stored_quiz(db_path, user_id, chapter.id, immediate_retry=config.IMMEDIATE_RETRY)
    if not retry.can_retry:
        if retry.wait_time_ms is None:
            console.print("[green]You've already passed this quiz.[/green]")
        else:
            console.print(f"[yellow]You can retry this quiz in {format_wait(retry.wait_time_ms)}.[/yellow]")
        return

    answers = run_quiz_session(chapter)
    result = grade_quiz(chapter.questions, answers, config.PASSING_SCORE)
    before = {m["milestone_type"] for m in get_milestones(db_path, user_id)}
    submit_quiz_attempt(
        db_path, user_id, chapter.id, result["score"], result["passed"], result["missed_topics"],
        cooldown=timedelta(hours=config.RETRY_HOURS), curriculum=curriculum,
    )
    if result["passed"]:
        console.print(f"[bold green]Passed with {result['score']}%![/bold green] The next chapter is open.")
    else:
        console.print(f"[bold red]{result['score']}%[/bold red]: {config.PASSING_SCORE}% needed to pass.")
        for item in get_review_lessons(curriculum, result["missed_topics"]):
            if item["lesson_day"]:
                console.print(f"  [dim]Review day {item['lesson_day']}: {item['review_title']}[/dim]")
    report_new_milestones(db_path, user_id, before)


def cmd_progress(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    progress = get_progress(db_path, user_id, curriculum.phase_days)
    stats = get_journey_stats(db_path, user_id)
    header = f"Lesson {progress.current_day if progress else 1} of {curriculum.phase_days}"
    if progress and progress.subscription_start_date:
        unlocked = calculate_unlocked_day(progress.subscription_start_date, today, curriculum.phase_days)
        header += f" (Day {unlocked} unlocked)"
    console.print(Panel(f"[bold]{header}[/bold]", title="Your Journey", border_style="green"))

    table = Table(title="Chapters")
    table.add_column("Chapter", style="cyan")
    table.add_column("Lessons", justify="right")
    table.add_column("Quiz")
    table.add_column("Status")
    for ch in get_chapter_progress(curriculum, progress, get_best_scores(db_path, user_id), config.PASSING_SCORE):
        color = get_progress_color(ch["progress_percent"])
        quiz = f"{ch['best_score']}%" if ch["best_score"] is not None else "-"
        status = "Complete" if ch["is_complete"] else ("Open" if ch["is_unlocked"] else "Locked")
        table.add_row(
            f"{ch['number']}. {ch['title']}",
            f"[{color}]{ch['lessons_completed']}/{ch['total_lessons']}[/{color}]",
            quiz,
            status,
        )
    console.print(table)

    console.print(f"\n  Streak: [bold]{stats['current_streak']}[/bold] (best {stats['longest_streak']})  |  "
                  f"Lessons: [bold]{stats['lessons_completed']}[/bold]  |  "
                  f"Quizzes: [bold]{stats['quizzes_taken']}[/bold]  |  "
                  f"Avg Quiz: [bold]{stats['avg_quiz_score']}%[/bold]")


def cmd_milestones(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    milestones = check_milestones(db_path, user_id)
    if not milestones:
        console.print("[dim]No milestones yet. Complete your first week to earn one![/dim]")
        return
    table = Table(title="Milestones")
    table.add_column("Milestone", style="magenta")
    table.add_column("Achieved")
    for m in milestones:
        table.add_row(m["milestone_type"], datetime.fromisoformat(m["achieved_at"]).strftime("%b %d, %Y"))
    console.print(table)


def cmd_review(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    missed = get_missed_topics(db_path, user_id)
    if not missed:
        console.print("[green]No missed topics. Keep up the good work.[/green]")
        return
    counts = {m["topic"]: m["times_missed"] for m in missed}
    table = Table(title="Topics to Review")
    table.add_column("Topic")
    table.add_column("Missed", justify="right")
    table.add_column("Lesson")
    for item in get_review_lessons(curriculum, list(counts)):
        lesson = f"Day {item['lesson_day']}: {item['review_title']}" if item["lesson_day"] else "-"
        table.add_row(item["topic"], str(counts[item["topic"]]), lesson)
    console.print(table)


def cmd_plan(db_path: str, user_id: str, curriculum: Curriculum, today: date):
    progress = get_progress(db_path, user_id, curriculum.phase_days)
    completed = progress.completed_lessons if progress else set()
    current = progress.current_day if progress else 1
    table = Table(title=f"{curriculum.phase_days}-Day Plan")
    table.add_column("Day", justify="right")
    table.add_column("Chapter", justify="right")
    table.add_column("Lesson")
    table.add_column("Status")
    for lesson in curriculum.lessons:
        if lesson.id in completed:
            status = "[green]Done[/green]"
        elif check_lesson_access(db_path, user_id, lesson.day_number, today, curriculum).can_access:
            status = "[cyan]Current[/cyan]" if lesson.day_number == current else "[cyan]Open[/cyan]"
        else:
            status = "[dim]Locked[/dim]"
        table.add_row(str(lesson.day_number), str(chapter_for_day(lesson.day_number)), lesson.title, status)
    console.print(table)


COMMANDS = {
    "today": cmd_today,
    "lesson": cmd_lesson,
    "journal": cmd_journal,
    "move": cmd_move,
    "quiz": cmd_quiz,
    "progress": cmd_progress,
    "milestones": cmd_milestones,
    "review": cmd_review,
    "plan": cmd_plan,
}


def main():
    setup_logging(config.LOG_LEVEL)
    problems = config.validate()
    if problems:
        for problem in problems:
            console.print(f"[red]Config error: {problem}[/red]")
        return

    db_path = config.DB_PATH
    user_id = config.USER_ID
    init_db(db_path)
    curriculum = load_curriculum(config.CURRICULUM_PATH or None)
    if config.PHASE_DAYS < curriculum.phase_days:
        logger.info(f"Limiting phase to {config.PHASE_DAYS} of {curriculum.phase_days} days")
        curriculum.phase_days = config.PHASE_DAYS
    if get_progress(db_path, user_id, curriculum.phase_days) is None:
        console.print("[dim]Setting up your journey...[/dim]")
        ensure_progress(db_path, user_id, date.today(), curriculum.phase_days)

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="today").strip().lower()
        if choice in ("quit", "exit", "q"):
            console.print("[dim]See you tomorrow![/dim]")
            break
        command = COMMANDS.get(choice)
        if command is None:
            console.print("[red]Unknown command. Try again.[/red]")
            continue
        try:
            command(db_path, user_id, curriculum, date.today())
        except SessionExitRequested:
            console.print("[dim]Back to menu.[/dim]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.debug(f"Command {choice} failed", exc_info=True)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
