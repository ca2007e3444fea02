import datetime
import json

import pytest
from sqlalchemy import create_engine

from llm_vocab_tutor import db
from llm_vocab_tutor.repository import JsonFileRepository, SqlRepository, import_vocabulary_csv
from llm_vocab_tutor.structured import (
    Assignment,
    AssignmentStatus,
    DaySchedule,
    EvaluationRecord,
    EvaluationResult,
    EvaluationSummary,
    LearningRecord,
    LearningSummary,
    Progress,
    RoundResult,
    VocabularyItem,
    WeeklySchedule,
    WordState,
    WordStatus,
)

DAY = datetime.date(2024, 1, 1)


@pytest.fixture
def sql_repository(tmp_path, monkeypatch):
    # Use a temporary SQLite DB, and rebind engine/session to it
    test_db = str(tmp_path / "test.db")
    monkeypatch.setenv("LLM_VOCAB_DB", test_db)
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    db.init_db()
    return SqlRepository()


@pytest.fixture
def json_repository(tmp_path):
    return JsonFileRepository(tmp_path / "store" / "tutor.json")


@pytest.fixture(params=["sql", "json"])
def repository(request):
    return request.getfixturevalue(f"{request.param}_repository")


def add_words(repository, task_id="task-1"):
    repository.add_task(task_id, "Middle school words")
    repository.add_vocabulary_items(task_id, [
        VocabularyItem(unit="1", term="apple", meaning="사과", pronunciation="애플"),
        VocabularyItem(unit="1", term="banana", meaning="바나나"),
        VocabularyItem(unit="2", term="dog", meaning="개"),
    ])


def make_assignment(repository, task_id="task-1", total=2):
    return Assignment(
        task_id=task_id,
        task_title="Middle school words",
        start_date=DAY,
        end_date=datetime.date(2024, 3, 1),
        start_unit="1",
        weekly_schedule=WeeklySchedule(days={"mon": DaySchedule(active=True, daily_amount=2)}),
        vocabulary_items=repository.get_vocabulary_items(task_id),
        progress=Progress(completed=0, total=total),
    )


def make_learning_record(unit="1", ordinal=1, mistake_review=False):
    word = VocabularyItem(unit=unit, term="apple", meaning="사과", item_id="word_0")
    return LearningRecord(
        date=DAY,
        task_id="task-1",
        target_unit=unit,
        session_ordinal=ordinal,
        is_first_learning=ordinal == 1,
        is_mistake_review=mistake_review,
        mistake_review_ordinal=1 if mistake_review else None,
        rounds=[RoundResult(round_number=1, total_words=1, mastered_count=0, repeat_count=1,
                            forgot_count=0, word_states=[WordState(word=word, status=WordStatus.REPEAT)])],
        summary=LearningSummary(total_rounds=1, total_words=1, final_mastered_count=0, completion_rate=0),
    )


def test_vocabulary_items_keep_their_order(repository):
    add_words(repository)
    items = repository.get_vocabulary_items("task-1")

    assert [i.term for i in items] == ["apple", "banana", "dog"]
    assert [i.item_id for i in items] == ["word_0", "word_1", "word_2"]
    assert items[0].pronunciation == "애플"
    assert repository.get_vocabulary_items("missing") == []


def test_adding_items_appends_after_existing_ones(repository):
    add_words(repository)
    repository.add_vocabulary_items("task-1", [VocabularyItem(unit="3", term="cat", meaning="고양이")])

    items = repository.get_vocabulary_items("task-1")
    assert items[-1].term == "cat"
    assert items[-1].item_id == "word_3"


def test_assignment_round_trip(repository):
    add_words(repository)
    repository.add_student("kim", "Kim Minji", level="중2")
    repository.save_assignment("kim", make_assignment(repository))

    [assignment] = repository.list_assignments("kim")
    assert assignment.task_id == "task-1"
    assert assignment.start_date == DAY
    assert assignment.end_date == datetime.date(2024, 3, 1)
    assert assignment.weekly_schedule.days["mon"] == DaySchedule(active=True, daily_amount=2)
    assert assignment.weekly_schedule.days["tue"] == DaySchedule()
    assert assignment.status == AssignmentStatus.ACTIVE
    assert len(assignment.vocabulary_items) == 3
    assert repository.get_assignment("kim", "task-1") == assignment
    assert repository.get_assignment("kim", "task-2") is None
    assert repository.list_assignments("nobody") == []


def test_saving_again_replaces_the_assignment(repository):
    add_words(repository)
    assignment = make_assignment(repository)
    repository.save_assignment("kim", assignment)
    assignment.status = AssignmentStatus.PAUSED
    repository.save_assignment("kim", assignment)

    assignments = repository.list_assignments("kim")
    assert len(assignments) == 1
    assert assignments[0].status == AssignmentStatus.PAUSED


def test_update_progress_clamps_and_completes(repository):
    add_words(repository)
    repository.save_assignment("kim", make_assignment(repository, total=2))

    assert repository.update_progress("kim", "task-1", 1) == Progress(completed=1, total=2)
    assert repository.get_assignment("kim", "task-1").status == AssignmentStatus.ACTIVE

    assert repository.update_progress("kim", "task-1", 5) == Progress(completed=2, total=2)
    assert repository.get_assignment("kim", "task-1").status == AssignmentStatus.COMPLETED

    assert repository.update_progress("kim", "task-1", -10) == Progress(completed=0, total=2)
    assert repository.update_progress("kim", "task-9", 1) is None


def test_learning_records_are_appended_in_order(repository):
    repository.append_learning_record("kim", make_learning_record(ordinal=1))
    repository.append_learning_record("kim", make_learning_record(ordinal=2, mistake_review=True))

    records = repository.list_learning_records("kim")
    assert [r.session_ordinal for r in records] == [1, 2]
    assert records[0] == make_learning_record(ordinal=1)
    assert records[1].is_mistake_review
    assert records[1].mistake_review_ordinal == 1
    assert records[0].rounds[0].word_states[0].status == WordStatus.REPEAT
    assert repository.list_learning_records("lee") == []


def test_evaluation_records_round_trip(repository):
    record = EvaluationRecord(
        date=DAY,
        task_id="task-1",
        target_unit="1",
        session_ordinal=1,
        attempt_number=1,
        results=[EvaluationResult(word_id="word_0", term="apple", user_answer="사과",
                                  correct_answer="사과", score=100, is_correct=True)],
        summary=EvaluationSummary(total_words=1, correct_words=1, incorrect_words=0,
                                  accuracy=100, passed=True),
    )
    repository.append_evaluation_record("kim", record)
    assert repository.list_evaluation_records("kim") == [record]


def test_confirm_seconds_setting(repository):
    assert repository.get_confirm_seconds("kim") == 1.5
    repository.set_confirm_seconds("kim", 2.5)
    assert repository.get_confirm_seconds("kim") == 2.5
    repository.set_confirm_seconds("kim", 0.5)
    assert repository.get_confirm_seconds("kim") == 0.5
    with pytest.raises(ValueError):
        repository.set_confirm_seconds("kim", -1)


def test_json_store_survives_reopening(tmp_path):
    path = tmp_path / "tutor.json"
    repository = JsonFileRepository(path)
    add_words(repository)
    repository.add_student("kim", "Kim Minji")
    repository.save_assignment("kim", make_assignment(repository))
    repository.append_learning_record("kim", make_learning_record())

    reopened = JsonFileRepository(path)
    assert [i.term for i in reopened.get_vocabulary_items("task-1")] == ["apple", "banana", "dog"]
    assert reopened.get_assignment("kim", "task-1").start_unit == "1"
    assert len(reopened.list_learning_records("kim")) == 1

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["students"]["kim"]["assignments"][0]["weeklySchedule"]["mon"] == {
        "active": True, "dailyAmount": 2,
    }
    # Only the store itself is left behind, no temporary files
    assert [p.name for p in tmp_path.iterdir()] == ["tutor.json"]


def test_json_store_reads_legacy_schedule_format(tmp_path):
    path = tmp_path / "tutor.json"
    path.write_text(json.dumps({
        "tasks": {"task-1": {"title": "Words", "area": "vocabulary", "items": [
            {"unit": "1", "term": "apple", "meaning": "사과"},
        ]}},
        "students": {"kim": {"name": "Kim", "assignments": [{
            "taskId": "task-1",
            "startDate": "2024-01-01T00:00:00.000Z",
            "startUnit": "1",
            "weeklySchedule": {"월": {"isActive": True, "dailyAmount": "1"}},
            "status": "active",
            "progress": {"completed": 0, "total": 1},
        }]}},
    }, ensure_ascii=False), encoding="utf-8")

    [assignment] = JsonFileRepository(path).list_assignments("kim")
    assert assignment.start_date == DAY
    assert assignment.weekly_schedule.days["mon"] == DaySchedule(active=True, daily_amount=1)


def test_sql_repository_from_url(tmp_path):
    repository = SqlRepository.from_url(f"sqlite:///{tmp_path / 'other.db'}")
    add_words(repository)
    assert len(repository.get_vocabulary_items("task-1")) == 3


def test_import_vocabulary_csv(repository, tmp_path):
    csv_path = tmp_path / "words.csv"
    csv_path.write_text(
        "unit,english,meaning,pronunciation\n"
        "1,apple,사과,애플\n"
        "1,banana,바나나,\n"
        "2,,개,\n"
        "2,dog,,\n"
        ",cat,고양이,\n"
        "2,cat,고양이,캣\n",
        encoding="utf-8-sig",
    )

    assert import_vocabulary_csv(repository, "task-1", str(csv_path), title="Animals") == 3
    items = repository.get_vocabulary_items("task-1")
    assert [(i.unit, i.term, i.meaning) for i in items] == [
        ("1", "apple", "사과"), ("1", "banana", "바나나"), ("2", "cat", "고양이"),
    ]
    assert items[0].pronunciation == "애플"
    assert items[1].pronunciation is None
