from typing import List, Optional, Sequence

from .structured import (
    EvaluationRecord,
    LearningRecord,
    RoundResult,
    VocabularyItem,
    WordStatus,
)


def derive_mistakes(first_round: Optional[RoundResult]) -> List[VocabularyItem]:
    """
    Words the learner did not confidently know on first exposure.

    Only the first round counts: a word is a mistake when its first-round
    status is `repeat` or `forgot` (never reached also counts as `forgot`).
    The first round's order is kept.
    """
    if first_round is None:
        return []
    return [
        state.word for state in first_round.word_states
        if state.status in (WordStatus.REPEAT, WordStatus.FORGOT)
    ]


def _matches(record_task: str, record_unit: Optional[str], task_id: str, unit: Optional[str]) -> bool:
    return record_task == task_id and (unit is None or record_unit == unit)


def learning_records_for(records: Sequence[LearningRecord], task_id: str,
                         unit: Optional[str] = None) -> List[LearningRecord]:
    """Regular (non mistake-review) learning records for a task, optionally one unit."""
    return [
        r for r in records
        if _matches(r.task_id, r.target_unit, task_id, unit) and not r.is_mistake_review
    ]


def mistake_review_records(records: Sequence[LearningRecord], task_id: str,
                           unit: Optional[str] = None) -> List[LearningRecord]:
    return [
        r for r in records
        if _matches(r.task_id, r.target_unit, task_id, unit) and r.is_mistake_review
    ]


def evaluation_records_for(records: Sequence[EvaluationRecord], task_id: str,
                           unit: Optional[str] = None) -> List[EvaluationRecord]:
    return [r for r in records if _matches(r.task_id, r.target_unit, task_id, unit)]


def first_learning_record(records: Sequence[LearningRecord], task_id: str,
                          unit: Optional[str] = None) -> Optional[LearningRecord]:
    matching = learning_records_for(records, task_id, unit)
    return matching[0] if matching else None


def mistakes_for(records: Sequence[LearningRecord], task_id: str,
                 unit: Optional[str] = None) -> List[VocabularyItem]:
    """Mistake set of the first regular learning session for a task/unit."""
    first = first_learning_record(records, task_id, unit)
    if first is None or not first.rounds:
        return []
    return derive_mistakes(first.rounds[0])
