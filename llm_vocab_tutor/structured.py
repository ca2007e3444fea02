import datetime
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

# Weekday keys as stored by the admin screens
KOREAN_WEEKDAYS = {
    "일": "sun",
    "월": "mon",
    "화": "tue",
    "수": "wed",
    "목": "thu",
    "금": "fri",
    "토": "sat",
}


class InvalidAssignmentError(ValueError):
    """An assignment (or session) is configured in a way that makes scheduling meaningless."""


def weekday_key(day: datetime.date) -> str:
    """Return the `sun..sat` key for a date (Python weeks start on Monday)."""
    return WEEKDAYS[(day.weekday() + 1) % 7]


def _coerce_amount(raw: Any) -> int:
    try:
        amount = int(str(raw).strip())
    except (TypeError, ValueError):
        return 0
    return max(0, amount)


def _parse_date(raw: Any) -> datetime.date:
    if isinstance(raw, datetime.datetime):
        return raw.date()
    if isinstance(raw, datetime.date):
        return raw
    return datetime.date.fromisoformat(str(raw)[:10])


@dataclass(frozen=True)
class VocabularyItem:
    unit: str
    term: str
    meaning: str
    pronunciation: Optional[str] = None
    item_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item_id,
            "unit": self.unit,
            "term": self.term,
            "meaning": self.meaning,
            "pronunciation": self.pronunciation,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VocabularyItem":
        # "english"/"korean" are the field names of the spreadsheet export format
        return cls(
            unit=str(data.get("unit") or ""),
            term=str(data.get("term") or data.get("english") or ""),
            meaning=str(data.get("meaning") or data.get("korean") or ""),
            pronunciation=data.get("pronunciation"),
            item_id=data.get("id"),
        )


@dataclass(frozen=True)
class DaySchedule:
    active: bool = False
    daily_amount: int = 0

    @property
    def units(self) -> int:
        """Units this day contributes to the running total."""
        return self.daily_amount if self.active else 0


@dataclass
class WeeklySchedule:
    days: Dict[str, DaySchedule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key in WEEKDAYS:
            self.days.setdefault(key, DaySchedule())

    def for_date(self, day: datetime.date) -> DaySchedule:
        return self.days[weekday_key(day)]

    def has_active_day(self) -> bool:
        return any(d.active for d in self.days.values())

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: {"active": self.days[key].active, "dailyAmount": self.days[key].daily_amount}
            for key in WEEKDAYS
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "WeeklySchedule":
        """Build a schedule from stored JSON.

        Accepts both `active`/`dailyAmount` and the legacy `isActive` keys,
        amounts given as strings, and Korean weekday names.
        """
        days: Dict[str, DaySchedule] = {}
        for raw_key, raw_day in (data or {}).items():
            key = KOREAN_WEEKDAYS.get(raw_key, str(raw_key).lower()[:3])
            if key not in WEEKDAYS:
                continue
            raw_day = raw_day or {}
            active = bool(raw_day.get("active", raw_day.get("isActive", False)))
            amount = raw_day.get("dailyAmount", raw_day.get("daily_amount", 0))
            days[key] = DaySchedule(active=active, daily_amount=_coerce_amount(amount))
        return cls(days=days)

    @classmethod
    def weekdays(cls, daily_amount: int = 1) -> "WeeklySchedule":
        """Monday to Friday active, weekend off."""
        return cls(days={
            key: DaySchedule(active=key not in ("sat", "sun"), daily_amount=daily_amount)
            for key in WEEKDAYS
        })


class AssignmentStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


@dataclass
class Progress:
    completed: int = 0
    total: int = 0

    def advance(self, delta: int) -> None:
        """Add `delta` units, clamped to [0, total]."""
        self.completed = max(0, min(self.total, self.completed + delta))

    @property
    def is_finished(self) -> bool:
        return self.total > 0 and self.completed >= self.total

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.completed / self.total * 100)


@dataclass
class Assignment:
    task_id: str
    start_date: datetime.date
    start_unit: str
    weekly_schedule: WeeklySchedule
    vocabulary_items: List[VocabularyItem] = field(default_factory=list)
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    progress: Progress = field(default_factory=Progress)
    end_date: Optional[datetime.date] = None
    task_title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize without the vocabulary list; items belong to the task store."""
        return {
            "taskId": self.task_id,
            "taskTitle": self.task_title,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "startUnit": self.start_unit,
            "weeklySchedule": self.weekly_schedule.to_dict(),
            "status": self.status.value,
            "progress": {"completed": self.progress.completed, "total": self.progress.total},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any],
                  vocabulary_items: Optional[List[VocabularyItem]] = None) -> "Assignment":
        progress = data.get("progress") or {}
        end_date = data.get("endDate")
        return cls(
            task_id=str(data["taskId"]),
            task_title=str(data.get("taskTitle") or ""),
            start_date=_parse_date(data["startDate"]),
            end_date=_parse_date(end_date) if end_date else None,
            start_unit=str(data.get("startUnit") or ""),
            weekly_schedule=WeeklySchedule.from_dict(data.get("weeklySchedule")),
            vocabulary_items=list(vocabulary_items or []),
            status=AssignmentStatus(data.get("status", "active")),
            progress=Progress(
                completed=int(progress.get("completed", 0)),
                total=int(progress.get("total", 0)),
            ),
        )


class WordStatus(str, enum.Enum):
    MASTERED = "mastered"
    REPEAT = "repeat"
    FORGOT = "forgot"


@dataclass(frozen=True)
class WordState:
    word: VocabularyItem
    status: WordStatus

    def to_dict(self) -> Dict[str, Any]:
        return {"word": self.word.to_dict(), "status": self.status.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WordState":
        status = data.get("status", "forgot")
        # Older records used "complete" for mastered words
        if status == "complete":
            status = "mastered"
        elif status not in {s.value for s in WordStatus}:
            status = "forgot"
        return cls(word=VocabularyItem.from_dict(data["word"]), status=WordStatus(status))


@dataclass
class RoundResult:
    round_number: int
    total_words: int
    mastered_count: int
    repeat_count: int
    forgot_count: int
    word_states: List[WordState] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roundNumber": self.round_number,
            "totalWords": self.total_words,
            "masteredCount": self.mastered_count,
            "repeatCount": self.repeat_count,
            "forgotCount": self.forgot_count,
            "wordStates": [s.to_dict() for s in self.word_states],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoundResult":
        return cls(
            round_number=int(data["roundNumber"]),
            total_words=int(data["totalWords"]),
            mastered_count=int(data.get("masteredCount", 0)),
            repeat_count=int(data.get("repeatCount", 0)),
            forgot_count=int(data.get("forgotCount", 0)),
            word_states=[WordState.from_dict(s) for s in data.get("wordStates", [])],
        )


@dataclass
class LearningSummary:
    total_rounds: int
    total_words: int
    final_mastered_count: int
    completion_rate: int


@dataclass
class LearningRecord:
    date: datetime.date
    task_id: str
    target_unit: Optional[str]
    session_ordinal: int
    is_first_learning: bool
    is_mistake_review: bool
    rounds: List[RoundResult]
    summary: LearningSummary
    mistake_review_ordinal: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "taskId": self.task_id,
            "targetUnit": self.target_unit,
            "sessionOrdinal": self.session_ordinal,
            "isFirstLearning": self.is_first_learning,
            "isMistakeReview": self.is_mistake_review,
            "mistakeReviewOrdinal": self.mistake_review_ordinal,
            "rounds": [r.to_dict() for r in self.rounds],
            "summary": {
                "totalRounds": self.summary.total_rounds,
                "totalWords": self.summary.total_words,
                "finalMasteredCount": self.summary.final_mastered_count,
                "completionRate": self.summary.completion_rate,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LearningRecord":
        summary = data.get("summary") or {}
        return cls(
            date=_parse_date(data["date"]),
            task_id=str(data["taskId"]),
            target_unit=data.get("targetUnit"),
            session_ordinal=int(data.get("sessionOrdinal", 1)),
            is_first_learning=bool(data.get("isFirstLearning", False)),
            is_mistake_review=bool(data.get("isMistakeReview", False)),
            mistake_review_ordinal=data.get("mistakeReviewOrdinal"),
            rounds=[RoundResult.from_dict(r) for r in data.get("rounds", [])],
            summary=LearningSummary(
                total_rounds=int(summary.get("totalRounds", 0)),
                total_words=int(summary.get("totalWords", 0)),
                final_mastered_count=int(summary.get("finalMasteredCount", 0)),
                completion_rate=int(summary.get("completionRate", 0)),
            ),
        )


@dataclass
class EvaluationResult:
    word_id: Optional[str]
    term: str
    user_answer: str
    correct_answer: str
    score: int
    is_correct: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wordId": self.word_id,
            "term": self.term,
            "userAnswer": self.user_answer,
            "correctAnswer": self.correct_answer,
            "score": self.score,
            "isCorrect": self.is_correct,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EvaluationResult":
        return cls(
            word_id=data.get("wordId"),
            term=str(data.get("term") or data.get("word") or ""),
            user_answer=str(data.get("userAnswer", "")),
            correct_answer=str(data.get("correctAnswer", "")),
            score=int(data.get("score", 0)),
            is_correct=bool(data.get("isCorrect", False)),
        )


@dataclass
class EvaluationSummary:
    total_words: int
    correct_words: int
    incorrect_words: int
    accuracy: int
    passed: bool


@dataclass
class EvaluationRecord:
    date: datetime.date
    task_id: str
    target_unit: Optional[str]
    session_ordinal: int
    attempt_number: int
    results: List[EvaluationResult]
    summary: EvaluationSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "taskId": self.task_id,
            "targetUnit": self.target_unit,
            "sessionOrdinal": self.session_ordinal,
            "attemptNumber": self.attempt_number,
            "results": [r.to_dict() for r in self.results],
            "summary": {
                "totalWords": self.summary.total_words,
                "correctWords": self.summary.correct_words,
                "incorrectWords": self.summary.incorrect_words,
                "accuracy": self.summary.accuracy,
                "passed": self.summary.passed,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EvaluationRecord":
        summary = data.get("summary") or {}
        return cls(
            date=_parse_date(data["date"]),
            task_id=str(data["taskId"]),
            target_unit=data.get("targetUnit"),
            session_ordinal=int(data.get("sessionOrdinal", 1)),
            attempt_number=int(data.get("attemptNumber", 1)),
            results=[EvaluationResult.from_dict(r) for r in data.get("results", [])],
            summary=EvaluationSummary(
                total_words=int(summary.get("totalWords", 0)),
                correct_words=int(summary.get("correctWords", 0)),
                incorrect_words=int(summary.get("incorrectWords", 0)),
                accuracy=int(summary.get("accuracy", 0)),
                passed=bool(summary.get("passed", False)),
            ),
        )


JUDGE_SYSTEM_PROMPT = """You are grading a Korean student's English vocabulary test.
The student sees an English word and types its meaning in Korean.
Grade how well the student's answer matches the expected meaning.
Reply with a single integer from 0 to 100 and nothing else."""

JUDGE_PROMPT = """English word: {term}
Expected meaning: {correct_answer}
Student's answer: {user_answer}

Grading rules:
1. The core meaning matches: 100
2. The answer contains the key verb or noun of the expected meaning: 100
   - e.g. "A에게 B를 요구하다" -> "요구하다", "필요하다" are 100
   - e.g. "~을 제공하다" -> "제공하다", "주다" are 100
3. Similar or partially correct meaning: 80-90
4. Completely wrong: 0

Answer with the score only, as a number."""
