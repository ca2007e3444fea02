import datetime

from llm_vocab_tutor.mistakes import (
    derive_mistakes,
    evaluation_records_for,
    first_learning_record,
    learning_records_for,
    mistake_review_records,
    mistakes_for,
)
from llm_vocab_tutor.structured import (
    EvaluationRecord,
    EvaluationSummary,
    LearningRecord,
    LearningSummary,
    RoundResult,
    VocabularyItem,
    WordState,
    WordStatus,
)

A = VocabularyItem(unit="1", term="A", meaning="가", item_id="word_0")
B = VocabularyItem(unit="1", term="B", meaning="나", item_id="word_1")
C = VocabularyItem(unit="1", term="C", meaning="다", item_id="word_2")
DAY = datetime.date(2024, 1, 1)


def make_round(number, states):
    return RoundResult(
        round_number=number,
        total_words=len(states),
        mastered_count=sum(1 for _, s in states if s == WordStatus.MASTERED),
        repeat_count=sum(1 for _, s in states if s == WordStatus.REPEAT),
        forgot_count=sum(1 for _, s in states if s == WordStatus.FORGOT),
        word_states=[WordState(word=w, status=s) for w, s in states],
    )


def make_record(rounds, unit="1", task_id="task-1", mistake_review=False):
    return LearningRecord(
        date=DAY,
        task_id=task_id,
        target_unit=unit,
        session_ordinal=1,
        is_first_learning=not mistake_review,
        is_mistake_review=mistake_review,
        rounds=rounds,
        summary=LearningSummary(total_rounds=len(rounds), total_words=3,
                                final_mastered_count=0, completion_rate=0),
    )


def test_repeat_and_forgot_words_are_mistakes_in_order():
    first = make_round(1, [(A, WordStatus.MASTERED), (B, WordStatus.REPEAT), (C, WordStatus.FORGOT)])
    assert derive_mistakes(first) == [B, C]


def test_no_first_round_means_no_mistakes():
    assert derive_mistakes(None) == []


def test_only_the_first_round_counts():
    first = make_round(1, [(A, WordStatus.MASTERED), (B, WordStatus.REPEAT), (C, WordStatus.MASTERED)])
    second = make_round(2, [(B, WordStatus.REPEAT)])
    records = [make_record([first, second])]
    assert mistakes_for(records, "task-1", "1") == [B]


def test_mistakes_come_from_the_first_regular_session():
    first = make_record([make_round(1, [(A, WordStatus.REPEAT), (B, WordStatus.MASTERED)])])
    later = make_record([make_round(1, [(A, WordStatus.MASTERED), (B, WordStatus.FORGOT)])])
    review = make_record([make_round(1, [(A, WordStatus.MASTERED)])], mistake_review=True)
    records = [review, first, later]

    assert first_learning_record(records, "task-1", "1") is first
    assert mistakes_for(records, "task-1", "1") == [A]
    assert mistakes_for(records, "task-1", "2") == []


def test_record_filters():
    regular = make_record([], unit="1")
    other_unit = make_record([], unit="2")
    other_task = make_record([], task_id="task-2")
    review = make_record([], unit="1", mistake_review=True)
    records = [regular, other_unit, other_task, review]

    assert learning_records_for(records, "task-1", "1") == [regular]
    assert learning_records_for(records, "task-1") == [regular, other_unit]
    assert mistake_review_records(records, "task-1", "1") == [review]
    assert mistake_review_records(records, "task-1", "2") == []


def test_evaluation_record_filter():
    summary = EvaluationSummary(total_words=0, correct_words=0, incorrect_words=0, accuracy=0, passed=False)
    unit1 = EvaluationRecord(date=DAY, task_id="task-1", target_unit="1", session_ordinal=1,
                             attempt_number=1, results=[], summary=summary)
    unit2 = EvaluationRecord(date=DAY, task_id="task-1", target_unit="2", session_ordinal=1,
                             attempt_number=1, results=[], summary=summary)
    assert evaluation_records_for([unit1, unit2], "task-1", "2") == [unit2]
    assert evaluation_records_for([unit1, unit2], "task-9") == []
