import datetime
import enum
import os
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from .evaluation import EvaluationSession
from .learning import LearningSession
from .mistakes import (
    evaluation_records_for,
    first_learning_record,
    learning_records_for,
    mistake_review_records,
    mistakes_for,
)
from .repository import BaseRepository
from .scheduler import CumulativeSchedule
from .structured import (
    Assignment,
    AssignmentStatus,
    EvaluationRecord,
    InvalidAssignmentError,
    LearningRecord,
    Progress,
    VocabularyItem,
    WeeklySchedule,
)
from .units import words_for_unit

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


class SessionOutcome(str, enum.Enum):
    READY = "ready"
    NO_WORDS_TODAY = "no_words_today"
    NEEDS_LEARNING = "needs_learning"
    NO_MISTAKES = "no_mistakes"
    NEEDS_MISTAKE_REVIEW = "needs_mistake_review"
    NOTHING_TO_EVALUATE = "nothing_to_evaluate"
    ASSIGNMENT_INACTIVE = "assignment_inactive"


OUTCOME_MESSAGES = {
    SessionOutcome.NO_WORDS_TODAY: "No words are scheduled for this day.",
    SessionOutcome.NEEDS_LEARNING: "Complete a learning session for this unit first.",
    SessionOutcome.NO_MISTAKES: "No mistakes to review. Every word was known on first sight!",
    SessionOutcome.NEEDS_MISTAKE_REVIEW: "Complete a mistake review for this unit before the evaluation.",
    SessionOutcome.NOTHING_TO_EVALUATE: "Nothing to evaluate. Every word was known on first sight!",
    SessionOutcome.ASSIGNMENT_INACTIVE: "This assignment is paused or already completed.",
}


@dataclass
class SessionStart:
    """Result of asking to start a session: either a ready session or the reason there is none."""
    outcome: SessionOutcome
    task_id: str
    date: datetime.date
    target_unit: Optional[str] = None
    words: List[VocabularyItem] = field(default_factory=list)
    session: Optional[Union[LearningSession, EvaluationSession]] = None
    is_mistake_review: bool = False
    mistake_review_ordinal: Optional[int] = None

    @property
    def ready(self) -> bool:
        return self.outcome == SessionOutcome.READY

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES.get(self.outcome, "")


@dataclass
class UnitActivity:
    unit: str
    word_count: int
    learning_count: int = 0
    mistake_review_count: int = 0
    evaluation_count: int = 0


@dataclass
class PlannedAssignment:
    assignment: Assignment
    units: List[UnitActivity] = field(default_factory=list)


class Tutor:
    """
    Student-facing workflow: what to study today, and the
    learn -> mistake review -> evaluate cycle for each unit.

    All state lives in the repository; the tutor only reads histories and
    appends one record per completed session.
    """

    def __init__(self, repository: BaseRepository, judge: Optional[Any] = None):
        self.repository = repository
        self.judge = judge

    # -- assignments -----------------------------------------------------------

    def create_assignment(self, student_id: str, task_id: str, start_date: datetime.date,
                          start_unit: str, weekly_schedule: WeeklySchedule,
                          end_date: Optional[datetime.date] = None,
                          task_title: str = "") -> Assignment:
        items = self.repository.get_vocabulary_items(task_id)
        if not items:
            raise InvalidAssignmentError(f"Task '{task_id}' has no vocabulary items")
        if end_date is not None and end_date < start_date:
            raise InvalidAssignmentError("End date cannot be before the start date")
        assignment = Assignment(
            task_id=task_id,
            task_title=task_title or task_id,
            start_date=start_date,
            end_date=end_date,
            start_unit=start_unit,
            weekly_schedule=weekly_schedule,
            vocabulary_items=items,
        )
        calculator = CumulativeSchedule(assignment)
        assignment.progress = Progress(
            completed=0, total=len(calculator.unit_index) - calculator.start_index
        )
        self.repository.save_assignment(student_id, assignment)
        print(f"✅ Assigned '{task_id}' to {student_id} from unit {start_unit} "
              f"({assignment.progress.total} units)")
        return assignment

    def _require_assignment(self, student_id: str, task_id: str) -> Assignment:
        assignment = self.repository.get_assignment(student_id, task_id)
        if assignment is None:
            raise ValueError(f"Student '{student_id}' has no assignment for task '{task_id}'")
        return assignment

    def _set_status(self, student_id: str, task_id: str, current: AssignmentStatus,
                    new: AssignmentStatus) -> Assignment:
        assignment = self._require_assignment(student_id, task_id)
        if assignment.status == new:
            return assignment
        if assignment.status != current:
            raise ValueError(
                f"Cannot change assignment '{task_id}' from {assignment.status.value} to {new.value}"
            )
        assignment.status = new
        if new == AssignmentStatus.ACTIVE and assignment.progress.is_finished:
            assignment.status = AssignmentStatus.COMPLETED
            print(f"🎉 Assignment '{task_id}' completed for {student_id}")
        self.repository.save_assignment(student_id, assignment)
        return assignment

    def pause_assignment(self, student_id: str, task_id: str) -> Assignment:
        return self._set_status(student_id, task_id, AssignmentStatus.ACTIVE, AssignmentStatus.PAUSED)

    def resume_assignment(self, student_id: str, task_id: str) -> Assignment:
        return self._set_status(student_id, task_id, AssignmentStatus.PAUSED, AssignmentStatus.ACTIVE)

    # -- today ---------------------------------------------------------------------

    def todays_plan(self, student_id: str, day: datetime.date) -> List[PlannedAssignment]:
        """Active assignments running on `day`, with the units to study and per-unit activity counts."""
        learning = self.repository.list_learning_records(student_id)
        evaluations = self.repository.list_evaluation_records(student_id)
        plan: List[PlannedAssignment] = []
        for assignment in self.repository.list_assignments(student_id):
            if assignment.status != AssignmentStatus.ACTIVE:
                continue
            if day < assignment.start_date:
                continue
            if assignment.end_date is not None and day > assignment.end_date:
                continue
            units = CumulativeSchedule(assignment).resolve(day)
            planned = PlannedAssignment(assignment=assignment)
            for unit in units:
                planned.units.append(UnitActivity(
                    unit=unit,
                    word_count=len(words_for_unit(assignment.vocabulary_items, unit)),
                    learning_count=len(learning_records_for(learning, assignment.task_id, unit)),
                    mistake_review_count=len(mistake_review_records(learning, assignment.task_id, unit)),
                    evaluation_count=len(evaluation_records_for(evaluations, assignment.task_id, unit)),
                ))
            plan.append(planned)
        return plan

    # -- starting sessions ---------------------------------------------------------

    def _target_unit(self, student_id: str, assignment: Assignment, day: datetime.date,
                     unit: Optional[str], learned: bool) -> Optional[str]:
        """The unit asked for, otherwise one of the day's units.

        Picks the first of the day's units that has (`learned=True`) or has
        not (`learned=False`) a regular learning record, falling back to the
        first of the day's units.
        """
        calculator = CumulativeSchedule(assignment)
        if unit is not None:
            if unit not in calculator.unit_index:
                raise InvalidAssignmentError(f"Unit '{unit}' is not part of task '{assignment.task_id}'")
            return unit
        units = calculator.resolve(day)
        if not units:
            return None
        learning = self.repository.list_learning_records(student_id)
        for candidate in units:
            if bool(learning_records_for(learning, assignment.task_id, candidate)) == learned:
                return candidate
        return units[0]

    def _inactive(self, assignment: Assignment, day: datetime.date) -> Optional[SessionStart]:
        if assignment.status == AssignmentStatus.ACTIVE:
            return None
        if DEBUG_MODE:
            print(f"   Assignment '{assignment.task_id}' is {assignment.status.value}")
        return SessionStart(SessionOutcome.ASSIGNMENT_INACTIVE, assignment.task_id, day)

    def start_learning(self, student_id: str, task_id: str, day: datetime.date,
                       unit: Optional[str] = None) -> SessionStart:
        assignment = self._require_assignment(student_id, task_id)
        inactive = self._inactive(assignment, day)
        if inactive is not None:
            return inactive
        target = self._target_unit(student_id, assignment, day, unit, learned=False)
        words = words_for_unit(assignment.vocabulary_items, target) if target else []
        if not words:
            return SessionStart(SessionOutcome.NO_WORDS_TODAY, task_id, day, target_unit=target)
        session = LearningSession(words, confirm_seconds=self.repository.get_confirm_seconds(student_id))
        if DEBUG_MODE:
            print(f"   Learning '{task_id}' unit {target}: {len(words)} words")
        return SessionStart(SessionOutcome.READY, task_id, day, target_unit=target,
                            words=words, session=session)

    def start_mistake_review(self, student_id: str, task_id: str, day: datetime.date,
                             unit: Optional[str] = None) -> SessionStart:
        assignment = self._require_assignment(student_id, task_id)
        inactive = self._inactive(assignment, day)
        if inactive is not None:
            return inactive
        target = self._target_unit(student_id, assignment, day, unit, learned=True)
        if target is None:
            return SessionStart(SessionOutcome.NO_WORDS_TODAY, task_id, day)
        learning = self.repository.list_learning_records(student_id)
        if first_learning_record(learning, task_id, target) is None:
            return SessionStart(SessionOutcome.NEEDS_LEARNING, task_id, day, target_unit=target)
        words = mistakes_for(learning, task_id, target)
        if not words:
            return SessionStart(SessionOutcome.NO_MISTAKES, task_id, day, target_unit=target)
        ordinal = len(mistake_review_records(learning, task_id, target)) + 1
        session = LearningSession(words, confirm_seconds=self.repository.get_confirm_seconds(student_id),
                                  is_mistake_review=True)
        return SessionStart(SessionOutcome.READY, task_id, day, target_unit=target, words=words,
                            session=session, is_mistake_review=True, mistake_review_ordinal=ordinal)

    def start_evaluation(self, student_id: str, task_id: str, day: datetime.date,
                         unit: Optional[str] = None) -> SessionStart:
        assignment = self._require_assignment(student_id, task_id)
        inactive = self._inactive(assignment, day)
        if inactive is not None:
            return inactive
        target = self._target_unit(student_id, assignment, day, unit, learned=True)
        if target is None:
            return SessionStart(SessionOutcome.NO_WORDS_TODAY, task_id, day)
        learning = self.repository.list_learning_records(student_id)
        if first_learning_record(learning, task_id, target) is None:
            return SessionStart(SessionOutcome.NEEDS_LEARNING, task_id, day, target_unit=target)
        words = mistakes_for(learning, task_id, target)
        if not words:
            return SessionStart(SessionOutcome.NOTHING_TO_EVALUATE, task_id, day, target_unit=target)
        if not mistake_review_records(learning, task_id, target):
            return SessionStart(SessionOutcome.NEEDS_MISTAKE_REVIEW, task_id, day, target_unit=target)
        session = EvaluationSession(words, judge=self.judge)
        return SessionStart(SessionOutcome.READY, task_id, day, target_unit=target,
                            words=words, session=session)

    # -- completing sessions -------------------------------------------------------

    def complete_learning(self, student_id: str, start: SessionStart,
                          session: LearningSession) -> LearningRecord:
        """
        Append the record for a finished learning session.

        A regular session that is the first learning of its unit advances the
        assignment's progress by one unit (clamped to the total). Mistake
        reviews never touch progress.
        """
        if not session.is_finished:
            raise ValueError("Only a completed learning session can be recorded")
        history = self.repository.list_learning_records(student_id)
        previous = [r for r in history
                    if r.task_id == start.task_id and r.target_unit == start.target_unit]
        first_time = not learning_records_for(history, start.task_id, start.target_unit)
        record = LearningRecord(
            date=start.date,
            task_id=start.task_id,
            target_unit=start.target_unit,
            session_ordinal=len(previous) + 1,
            is_first_learning=first_time and not session.is_mistake_review,
            is_mistake_review=session.is_mistake_review,
            mistake_review_ordinal=start.mistake_review_ordinal if session.is_mistake_review else None,
            rounds=list(session.rounds),
            summary=session.summary(),
        )
        self.repository.append_learning_record(student_id, record)
        if record.is_first_learning:
            self.repository.update_progress(student_id, start.task_id, 1)

        label = "Mistake review" if record.is_mistake_review else "Learning"
        print(f"✅ {label} complete: {record.summary.final_mastered_count}/{record.summary.total_words} "
              f"words in {record.summary.total_rounds} round(s) ({record.summary.completion_rate}%)")
        return record

    def complete_evaluation(self, student_id: str, start: SessionStart,
                            session: EvaluationSession) -> EvaluationRecord:
        if not session.is_finished:
            raise ValueError("Only a completed evaluation can be recorded")
        learning = learning_records_for(self.repository.list_learning_records(student_id),
                                        start.task_id, start.target_unit)
        previous = evaluation_records_for(self.repository.list_evaluation_records(student_id),
                                          start.task_id, start.target_unit)
        record = EvaluationRecord(
            date=start.date,
            task_id=start.task_id,
            target_unit=start.target_unit,
            session_ordinal=learning[-1].session_ordinal if learning else 1,
            attempt_number=len(previous) + 1,
            results=session.results,
            summary=session.summary(),
        )
        self.repository.append_evaluation_record(student_id, record)
        if record.summary.passed:
            print(f"🎉 Evaluation passed! Accuracy: {record.summary.accuracy}%")
        else:
            print(f"📝 Evaluation done: {record.summary.correct_words}/{record.summary.total_words} "
                  f"({record.summary.accuracy}%). Please study again.")
        return record
