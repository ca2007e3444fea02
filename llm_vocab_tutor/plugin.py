import datetime
import os
import time
from typing import Any, Optional

import llm  # type: ignore

from . import db
from .judge import DEFAULT_JUDGE_MODEL

# Set to a file path to keep everything in one JSON document instead of the database
JSON_STORE: Optional[str] = os.environ.get("LLM_VOCAB_JSON")

WEEKDAY_NAMES = {"sun": "Sun", "mon": "Mon", "tue": "Tue", "wed": "Wed",
                 "thu": "Thu", "fri": "Fri", "sat": "Sat"}


def get_repository() -> Any:
    from .repository import JsonFileRepository, SqlRepository
    if JSON_STORE:
        return JsonFileRepository(JSON_STORE)
    if not db.is_db_initialized():
        db.init_db()
    return SqlRepository()


def parse_day(value: Optional[str]) -> datetime.date:
    if not value:
        return datetime.date.today()
    return datetime.date.fromisoformat(value)


@llm.hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:
    import click

    @cli.command("vocab-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Initialize the vocabulary tutor database."""
        db.init_db()
        click.echo("Database initialized.")

    @cli.command("vocab-import")  # type: ignore[misc]
    @click.argument("task_id")
    @click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--title", default=None, help="Task title (defaults to the task id)")
    def import_csv(task_id: str, csv_path: str, title: Optional[str]) -> None:
        """Import vocabulary rows (unit, english, meaning[, pronunciation]) into a task."""
        from .repository import import_vocabulary_csv
        import_vocabulary_csv(get_repository(), task_id, csv_path, title=title)

    @cli.command("vocab-assign")  # type: ignore[misc]
    @click.argument("student_id")
    @click.argument("task_id")
    @click.option("--start-unit", required=True, help="First unit to study")
    @click.option("--start-date", default=None, help="YYYY-MM-DD (default: today)")
    @click.option("--end-date", default=None, help="YYYY-MM-DD, no units after this day")
    @click.option("--days", default="mon,tue,wed,thu,fri", show_default=True,
                  help="Comma separated study days")
    @click.option("--amount", default=1, show_default=True, type=int, help="Units per study day")
    @click.option("--name", default=None, help="Student name for a new student")
    def assign(student_id: str, task_id: str, start_unit: str, start_date: Optional[str],
               end_date: Optional[str], days: str, amount: int, name: Optional[str]) -> None:
        """Assign a task to a student on a weekly schedule."""
        from .structured import DaySchedule, InvalidAssignmentError, WeeklySchedule, WEEKDAYS
        from .tutor import Tutor

        chosen = {d.strip().lower()[:3] for d in days.split(",") if d.strip()}
        unknown = chosen - set(WEEKDAYS)
        if unknown:
            raise click.BadParameter(f"Unknown day(s): {', '.join(sorted(unknown))}", param_hint="--days")
        schedule = WeeklySchedule(days={
            key: DaySchedule(active=key in chosen, daily_amount=amount) for key in WEEKDAYS
        })
        repository = get_repository()
        repository.add_student(student_id, name or student_id)
        try:
            Tutor(repository).create_assignment(
                student_id, task_id, parse_day(start_date), start_unit, schedule,
                end_date=parse_day(end_date) if end_date else None,
            )
        except InvalidAssignmentError as e:
            raise click.ClickException(str(e))

    @cli.command("vocab-pause")  # type: ignore[misc]
    @click.argument("student_id")
    @click.argument("task_id")
    def pause(student_id: str, task_id: str) -> None:
        """Pause an assignment."""
        from .tutor import Tutor
        try:
            Tutor(get_repository()).pause_assignment(student_id, task_id)
        except ValueError as e:
            raise click.ClickException(str(e))
        click.echo(f"⏸️  Paused '{task_id}' for {student_id}")

    @cli.command("vocab-resume")  # type: ignore[misc]
    @click.argument("student_id")
    @click.argument("task_id")
    def resume(student_id: str, task_id: str) -> None:
        """Resume a paused assignment."""
        from .structured import AssignmentStatus
        from .tutor import Tutor
        try:
            assignment = Tutor(get_repository()).resume_assignment(student_id, task_id)
        except ValueError as e:
            raise click.ClickException(str(e))
        if assignment.status == AssignmentStatus.COMPLETED:
            return
        click.echo(f"▶️  Resumed '{task_id}' for {student_id}")

    @cli.command("vocab-today")  # type: ignore[misc]
    @click.argument("student_id")
    @click.option("--date", "day", default=None, help="YYYY-MM-DD (default: today)")
    @click.option("--upcoming", default=3, show_default=True, type=int, help="Days to show ahead")
    def today(student_id: str, day: Optional[str], upcoming: int) -> None:
        """Show what a student studies today and in the next few days."""
        from .scheduler import upcoming_schedule
        from .tutor import Tutor

        target = parse_day(day)
        repository = get_repository()
        plan = Tutor(repository).todays_plan(student_id, target)
        if not plan:
            click.echo(f"📭 No active assignments for {student_id} on {target}")
            return

        for planned in plan:
            assignment = planned.assignment
            click.echo(f"📚 {assignment.task_title or assignment.task_id} "
                       f"({assignment.progress.completed}/{assignment.progress.total} units, "
                       f"{assignment.progress.percent}%)")
            if not planned.units:
                click.echo("   No words scheduled for this day.")
            for activity in planned.units:
                click.echo(f"   Unit {activity.unit}: {activity.word_count} words | "
                           f"learned {activity.learning_count}x, "
                           f"mistake review {activity.mistake_review_count}x, "
                           f"evaluated {activity.evaluation_count}x")
            if upcoming > 0:
                click.echo("   Upcoming:")
                for scheduled in upcoming_schedule(assignment, target, days=upcoming):
                    units = ", ".join(scheduled.units) if scheduled.units else "-"
                    marker = "📖" if scheduled.is_study_day else "  "
                    click.echo(f"   {marker} {scheduled.date} {WEEKDAY_NAMES[scheduled.weekday]}: {units}")

    def run_learning(student_id: str, start: Any) -> None:
        from .learning import Choice, SessionState
        from .tutor import Tutor

        session = start.session
        session.start()
        seconds = session.timer.seconds
        click.echo(f"Unit {start.target_unit}: {len(start.words)} words. "
                   f"Answer o (I know it) or x (not sure); q quits.")
        while not session.is_finished:
            word = session.current_word
            click.echo(f"\n[Round {session.round}] {session.position}/{len(session.words)}  {word.term}")
            answer = click.prompt("o/x", type=click.Choice(["o", "x", "q"]), show_choices=False)
            if answer == "q":
                session.cancel()
                click.echo("Session closed, nothing was recorded.")
                return
            session.choose(Choice.KNOW if answer == "o" else Choice.UNSURE)
            if session.state != SessionState.AWAITING_CONFIRMATION:
                continue
            pronunciation = f" [{word.pronunciation}]" if word.pronunciation else ""
            click.echo(f"   {word.meaning}{pronunciation}")
            shown_at = time.monotonic()
            reply = click.prompt(f"   Enter to continue, w if you were wrong ({seconds:.1f}s)",
                                 default="", show_default=False)
            session.tick(time.monotonic() - shown_at)
            if session.state == SessionState.AWAITING_CONFIRMATION:
                if reply.strip().lower() == "w":
                    session.mark_wrong()
                else:
                    session.advance()
            elif reply.strip().lower() == "w":
                click.echo("   Too late, the first answer already counted.")

        Tutor(get_repository()).complete_learning(student_id, start, session)

    @cli.command("vocab-learn")  # type: ignore[misc]
    @click.argument("student_id")
    @click.argument("task_id")
    @click.option("--date", "day", default=None, help="YYYY-MM-DD (default: today)")
    @click.option("--unit", default=None, help="Study this unit instead of today's")
    def learn(student_id: str, task_id: str, day: Optional[str], unit: Optional[str]) -> None:
        """Run an interactive learning session for today's unit."""
        from .tutor import Tutor
        start = Tutor(get_repository()).start_learning(student_id, task_id, parse_day(day), unit=unit)
        if not start.ready:
            click.echo(start.message)
            return
        run_learning(student_id, start)

    @cli.command("vocab-review")  # type: ignore[misc]
    @click.argument("student_id")
    @click.argument("task_id")
    @click.option("--date", "day", default=None, help="YYYY-MM-DD (default: today)")
    @click.option("--unit", default=None, help="Review this unit instead of today's")
    def review(student_id: str, task_id: str, day: Optional[str], unit: Optional[str]) -> None:
        """Re-learn the words missed in the first learning session of a unit."""
        from .tutor import Tutor
        start = Tutor(get_repository()).start_mistake_review(student_id, task_id, parse_day(day), unit=unit)
        if not start.ready:
            click.echo(start.message)
            return
        click.echo(f"🔁 Mistake review #{start.mistake_review_ordinal}")
        run_learning(student_id, start)

    @cli.command("vocab-evaluate")  # type: ignore[misc]
    @click.argument("student_id")
    @click.argument("task_id")
    @click.option("--date", "day", default=None, help="YYYY-MM-DD (default: today)")
    @click.option("--unit", default=None, help="Evaluate this unit instead of today's")
    @click.option("--model", default=DEFAULT_JUDGE_MODEL, show_default=True,
                  help="LLM model used to grade answers ('none' for local scoring only)")
    def evaluate(student_id: str, task_id: str, day: Optional[str], unit: Optional[str], model: str) -> None:
        """Test recall of the words missed in a unit by typing their meaning."""
        from .judge import get_judge
        from .tutor import Tutor

        judge = get_judge(model) if model and model != "none" else None
        tutor = Tutor(get_repository(), judge=judge)
        start = tutor.start_evaluation(student_id, task_id, parse_day(day), unit=unit)
        if not start.ready:
            click.echo(start.message)
            return

        session = start.session
        session.start()
        while not session.is_finished:
            word = session.current_word
            click.echo(f"\n[Round {session.round}] {word.term}")
            answer = click.prompt("Meaning", default="", show_default=False)
            if not answer.strip():
                click.echo("   Please type an answer.")
                continue
            result = session.submit(answer)
            mark = "⭕" if result.is_correct else "❌"
            click.echo(f"   {mark} {result.score} points (answer: {result.correct_answer})")
            if not session.is_finished and session.current_result is not None:
                session.next_word()

        tutor.complete_evaluation(student_id, start, session)

    @cli.command("vocab-score")  # type: ignore[misc]
    @click.argument("term")
    @click.argument("correct_answer")
    @click.argument("user_answer")
    @click.option("--model", default=DEFAULT_JUDGE_MODEL, show_default=True,
                  help="LLM model used to grade answers ('none' for local scoring only)")
    def score(term: str, correct_answer: str, user_answer: str, model: str) -> None:
        """Score one answer the way evaluations do."""
        from .evaluation import is_correct, score_answer
        from .judge import get_judge

        judge = get_judge(model) if model and model != "none" else None
        points = score_answer(user_answer, correct_answer, term, judge=judge)
        click.echo(f"{points} ({'correct' if is_correct(points) else 'incorrect'})")

    @cli.command("vocab-timer")  # type: ignore[misc]
    @click.argument("student_id")
    @click.argument("seconds", type=float, required=False)
    def timer(student_id: str, seconds: Optional[float]) -> None:
        """Show or set the confirmation time after revealing a meaning."""
        repository = get_repository()
        if seconds is None:
            click.echo(f"Confirmation time for {student_id}: {repository.get_confirm_seconds(student_id)}s")
            return
        try:
            repository.set_confirm_seconds(student_id, seconds)
        except ValueError as e:
            raise click.ClickException(str(e))
        click.echo(f"Confirmation time for {student_id} set to {seconds}s")
