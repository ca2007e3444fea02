"""
Repository pattern for tasks and student records.

Business logic only talks to `BaseRepository`; `SqlRepository` keeps data in
any SQLAlchemy database (remote-durable), `JsonFileRepository` in a single
JSON file on disk (local-durable).
"""

import csv
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from sqlalchemy import create_engine, func
from sqlalchemy.orm import Session, sessionmaker

from . import db
from .learning import DEFAULT_CONFIRM_SECONDS
from .structured import (
    Assignment,
    AssignmentStatus,
    EvaluationRecord,
    LearningRecord,
    Progress,
    VocabularyItem,
    WeeklySchedule,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


def _item_id(sequence: int) -> str:
    return f"word_{sequence}"


class BaseRepository(ABC):
    """
    Abstract base class for task and student storage.

    Records are append-only: implementations never update or delete a
    learning or evaluation record once appended.
    """

    @abstractmethod
    def add_task(self, task_id: str, title: str, area: str = "vocabulary") -> None:
        """Create a task (no-op if it already exists)."""
        pass

    @abstractmethod
    def add_vocabulary_items(self, task_id: str, items: Sequence[VocabularyItem]) -> int:
        """Append items after the task's existing ones. Returns the number added."""
        pass

    @abstractmethod
    def get_vocabulary_items(self, task_id: str) -> List[VocabularyItem]:
        """Items of a task ordered by their sequence index."""
        pass

    @abstractmethod
    def add_student(self, student_id: str, name: str, level: str = "") -> None:
        pass

    @abstractmethod
    def list_assignments(self, student_id: str) -> List[Assignment]:
        pass

    @abstractmethod
    def save_assignment(self, student_id: str, assignment: Assignment) -> None:
        """Insert or replace the student's assignment for `assignment.task_id`."""
        pass

    @abstractmethod
    def list_learning_records(self, student_id: str) -> List[LearningRecord]:
        pass

    @abstractmethod
    def append_learning_record(self, student_id: str, record: LearningRecord) -> None:
        pass

    @abstractmethod
    def list_evaluation_records(self, student_id: str) -> List[EvaluationRecord]:
        pass

    @abstractmethod
    def append_evaluation_record(self, student_id: str, record: EvaluationRecord) -> None:
        pass

    @abstractmethod
    def get_confirm_seconds(self, student_id: str) -> float:
        pass

    @abstractmethod
    def set_confirm_seconds(self, student_id: str, seconds: float) -> None:
        pass

    def get_assignment(self, student_id: str, task_id: str) -> Optional[Assignment]:
        for assignment in self.list_assignments(student_id):
            if assignment.task_id == task_id:
                return assignment
        return None

    def update_progress(self, student_id: str, task_id: str, delta: int) -> Optional[Progress]:
        """
        Add `delta` completed units to an assignment, clamped to its total.

        An active assignment whose progress reaches the total becomes
        completed. Returns the new progress, or None if there is no such
        assignment.
        """
        assignment = self.get_assignment(student_id, task_id)
        if assignment is None:
            return None
        assignment.progress.advance(delta)
        if assignment.progress.is_finished and assignment.status == AssignmentStatus.ACTIVE:
            assignment.status = AssignmentStatus.COMPLETED
            print(f"🎉 Assignment '{task_id}' completed for {student_id}")
        self.save_assignment(student_id, assignment)
        return assignment.progress


def _validate_seconds(seconds: float) -> float:
    seconds = float(seconds)
    if seconds < 0:
        raise ValueError("Confirmation time cannot be negative")
    return seconds


class SqlRepository(BaseRepository):
    """Repository backed by the SQLAlchemy models in `db`."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        # Default to db.get_session at call time so a rebound db.engine is honoured
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: str) -> "SqlRepository":
        engine = create_engine(url)
        db.Base.metadata.create_all(bind=engine)
        return cls(sessionmaker(bind=engine, expire_on_commit=False))

    def _session(self) -> Session:
        if self._session_factory is not None:
            return self._session_factory()
        return db.get_session()

    def add_task(self, task_id: str, title: str, area: str = "vocabulary") -> None:
        session = self._session()
        if session.get(db.Task, task_id) is None:
            session.add(db.Task(id=task_id, title=title, area=area))
            session.commit()
        session.close()

    def add_vocabulary_items(self, task_id: str, items: Sequence[VocabularyItem]) -> int:
        session = self._session()
        last = (session.query(func.max(db.VocabularyItemRow.sequence))
                .filter(db.VocabularyItemRow.task_id == task_id)
                .scalar())
        sequence = -1 if last is None else last
        for item in items:
            sequence += 1
            session.add(db.VocabularyItemRow(
                task_id=task_id,
                sequence=sequence,
                unit=item.unit,
                term=item.term,
                meaning=item.meaning,
                pronunciation=item.pronunciation,
            ))
        session.commit()
        session.close()
        return len(items)

    def get_vocabulary_items(self, task_id: str) -> List[VocabularyItem]:
        session = self._session()
        rows = (session.query(db.VocabularyItemRow)
                .filter(db.VocabularyItemRow.task_id == task_id)
                .order_by(db.VocabularyItemRow.sequence.asc())
                .all())
        session.close()
        return [
            VocabularyItem(unit=row.unit, term=row.term, meaning=row.meaning,
                           pronunciation=row.pronunciation, item_id=_item_id(row.sequence))
            for row in rows
        ]

    def add_student(self, student_id: str, name: str, level: str = "") -> None:
        session = self._session()
        if session.get(db.Student, student_id) is None:
            session.add(db.Student(id=student_id, name=name, level=level))
            session.commit()
        session.close()

    def _to_assignment(self, row: db.AssignmentRow) -> Assignment:
        return Assignment(
            task_id=row.task_id,
            task_title=row.task_title or "",
            start_date=row.start_date,
            end_date=row.end_date,
            start_unit=row.start_unit,
            weekly_schedule=WeeklySchedule.from_dict(row.weekly_schedule),
            vocabulary_items=self.get_vocabulary_items(row.task_id),
            status=AssignmentStatus(row.status),
            progress=Progress(completed=row.progress_completed, total=row.progress_total),
        )

    def list_assignments(self, student_id: str) -> List[Assignment]:
        session = self._session()
        rows = (session.query(db.AssignmentRow)
                .filter(db.AssignmentRow.student_id == student_id)
                .order_by(db.AssignmentRow.id.asc())
                .all())
        session.close()
        return [self._to_assignment(row) for row in rows]

    def save_assignment(self, student_id: str, assignment: Assignment) -> None:
        session = self._session()
        row = (session.query(db.AssignmentRow)
               .filter_by(student_id=student_id, task_id=assignment.task_id)
               .one_or_none())
        if row is None:
            row = db.AssignmentRow(student_id=student_id, task_id=assignment.task_id)
            session.add(row)
        row.task_title = assignment.task_title
        row.start_date = assignment.start_date
        row.end_date = assignment.end_date
        row.start_unit = assignment.start_unit
        row.weekly_schedule = assignment.weekly_schedule.to_dict()
        row.status = assignment.status.value
        row.progress_completed = assignment.progress.completed
        row.progress_total = assignment.progress.total
        session.commit()
        session.close()

    def list_learning_records(self, student_id: str) -> List[LearningRecord]:
        session = self._session()
        rows = (session.query(db.LearningRecordRow)
                .filter(db.LearningRecordRow.student_id == student_id)
                .order_by(db.LearningRecordRow.id.asc())
                .all())
        session.close()
        return [LearningRecord.from_dict(row.payload) for row in rows]

    def append_learning_record(self, student_id: str, record: LearningRecord) -> None:
        session = self._session()
        session.add(db.LearningRecordRow(
            student_id=student_id,
            task_id=record.task_id,
            target_unit=record.target_unit,
            date=record.date,
            payload=record.to_dict(),
        ))
        session.commit()
        session.close()

    def list_evaluation_records(self, student_id: str) -> List[EvaluationRecord]:
        session = self._session()
        rows = (session.query(db.EvaluationRecordRow)
                .filter(db.EvaluationRecordRow.student_id == student_id)
                .order_by(db.EvaluationRecordRow.id.asc())
                .all())
        session.close()
        return [EvaluationRecord.from_dict(row.payload) for row in rows]

    def append_evaluation_record(self, student_id: str, record: EvaluationRecord) -> None:
        session = self._session()
        session.add(db.EvaluationRecordRow(
            student_id=student_id,
            task_id=record.task_id,
            target_unit=record.target_unit,
            date=record.date,
            payload=record.to_dict(),
        ))
        session.commit()
        session.close()

    def get_confirm_seconds(self, student_id: str) -> float:
        session = self._session()
        settings = session.query(db.StudentSettings).filter_by(student_id=student_id).first()
        session.close()
        return settings.confirm_seconds if settings else DEFAULT_CONFIRM_SECONDS

    def set_confirm_seconds(self, student_id: str, seconds: float) -> None:
        seconds = _validate_seconds(seconds)
        session = self._session()
        settings = session.query(db.StudentSettings).filter_by(student_id=student_id).first()
        if settings is None:
            settings = db.StudentSettings(student_id=student_id)
            session.add(settings)
        settings.confirm_seconds = seconds
        session.commit()
        session.close()


class JsonFileRepository(BaseRepository):
    """
    Repository kept in one JSON document on disk.

    The whole document is rewritten on every change through a temporary file
    and `os.replace`, so readers never see a half-written file.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Dict[str, Any] = self.load()

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"tasks": {}, "students": {}}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        data.setdefault("tasks", {})
        data.setdefault("students", {})
        return data

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".vocab-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _student(self, student_id: str) -> Dict[str, Any]:
        student = self._data["students"].setdefault(student_id, {"name": student_id, "level": ""})
        student.setdefault("assignments", [])
        student.setdefault("learningHistory", [])
        student.setdefault("evaluationHistory", [])
        student.setdefault("settings", {})
        return student

    def add_task(self, task_id: str, title: str, area: str = "vocabulary") -> None:
        if task_id not in self._data["tasks"]:
            self._data["tasks"][task_id] = {"title": title, "area": area, "items": []}
            self.save()

    def add_vocabulary_items(self, task_id: str, items: Sequence[VocabularyItem]) -> int:
        task = self._data["tasks"].setdefault(task_id, {"title": task_id, "area": "vocabulary", "items": []})
        for item in items:
            task["items"].append({
                "unit": item.unit,
                "term": item.term,
                "meaning": item.meaning,
                "pronunciation": item.pronunciation,
            })
        self.save()
        return len(items)

    def get_vocabulary_items(self, task_id: str) -> List[VocabularyItem]:
        task = self._data["tasks"].get(task_id)
        if not task:
            return []
        return [
            VocabularyItem(unit=row["unit"], term=row["term"], meaning=row["meaning"],
                           pronunciation=row.get("pronunciation"), item_id=_item_id(i))
            for i, row in enumerate(task["items"])
        ]

    def add_student(self, student_id: str, name: str, level: str = "") -> None:
        if student_id not in self._data["students"]:
            student = self._student(student_id)
            student["name"] = name
            student["level"] = level
            self.save()

    def list_assignments(self, student_id: str) -> List[Assignment]:
        student = self._data["students"].get(student_id)
        if not student:
            return []
        return [
            Assignment.from_dict(raw, self.get_vocabulary_items(raw["taskId"]))
            for raw in student.get("assignments", [])
        ]

    def save_assignment(self, student_id: str, assignment: Assignment) -> None:
        assignments = self._student(student_id)["assignments"]
        raw = assignment.to_dict()
        for i, existing in enumerate(assignments):
            if existing["taskId"] == assignment.task_id:
                assignments[i] = raw
                break
        else:
            assignments.append(raw)
        self.save()

    def list_learning_records(self, student_id: str) -> List[LearningRecord]:
        student = self._data["students"].get(student_id) or {}
        return [LearningRecord.from_dict(r) for r in student.get("learningHistory", [])]

    def append_learning_record(self, student_id: str, record: LearningRecord) -> None:
        self._student(student_id)["learningHistory"].append(record.to_dict())
        self.save()

    def list_evaluation_records(self, student_id: str) -> List[EvaluationRecord]:
        student = self._data["students"].get(student_id) or {}
        return [EvaluationRecord.from_dict(r) for r in student.get("evaluationHistory", [])]

    def append_evaluation_record(self, student_id: str, record: EvaluationRecord) -> None:
        self._student(student_id)["evaluationHistory"].append(record.to_dict())
        self.save()

    def get_confirm_seconds(self, student_id: str) -> float:
        student = self._data["students"].get(student_id) or {}
        return float(student.get("settings", {}).get("confirmSeconds", DEFAULT_CONFIRM_SECONDS))

    def set_confirm_seconds(self, student_id: str, seconds: float) -> None:
        self._student(student_id)["settings"]["confirmSeconds"] = _validate_seconds(seconds)
        self.save()


def import_vocabulary_csv(repository: BaseRepository, task_id: str, csv_path: str,
                          title: Optional[str] = None) -> int:
    """Import `unit, english, meaning[, pronunciation]` rows into a task.
    Rows missing a unit, term or meaning are skipped.
    Returns the number of imported items."""
    items: List[VocabularyItem] = []
    skipped = 0

    with open(csv_path, "r", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        for line_number, row in enumerate(reader, start=2):
            row = {(k or "").strip().lower(): (v or "").strip() for k, v in row.items()}
            unit = row.get("unit", "")
            term = row.get("english") or row.get("term", "")
            meaning = row.get("meaning") or row.get("korean", "")
            if not unit or not term or not meaning:
                skipped += 1
                if DEBUG_MODE:
                    print(f"   Skipping line {line_number}: {row}")
                continue
            items.append(VocabularyItem(
                unit=unit,
                term=term,
                meaning=meaning,
                pronunciation=row.get("pronunciation") or None,
            ))

    repository.add_task(task_id, title or task_id)
    repository.add_vocabulary_items(task_id, items)
    if skipped:
        print(f"⚠️  Skipped {skipped} incomplete row(s) in {csv_path}")
    print(f"✅ Imported {len(items)} vocabulary items into '{task_id}'")
    return len(items)
