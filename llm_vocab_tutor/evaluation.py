import enum
import os
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .learning import CountdownTimer, SessionStateError
from .structured import (
    EvaluationResult,
    EvaluationSummary,
    InvalidAssignmentError,
    VocabularyItem,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

PASS_THRESHOLD = 80
MAX_ROUNDS = 3
AUTO_ADVANCE_SECONDS = 2.0

FALLBACK_CONTAINS_SCORE = 70
FALLBACK_FLOOR_SCORE = 30

# Whitespace, comma, tilde and the common Korean particles 을 를 이 가 에 서 의 도 로
_KEYWORD_SPLIT = re.compile(r"[\s,~을를이가에서의도로]")
_WHITESPACE = re.compile(r"\s+")

SYNONYMS: Dict[str, List[str]] = {
    "요구하다": ["필요하다", "구하다", "원하다", "바라다"],
    "필요하다": ["요구하다", "구하다", "원하다", "바라다"],
    "제공하다": ["주다", "공급하다", "드리다", "건네다"],
    "주다": ["제공하다", "공급하다", "드리다", "건네다"],
    "만들다": ["생성하다", "창조하다", "제작하다", "생산하다"],
    "생성하다": ["만들다", "창조하다", "제작하다", "생산하다"],
}


def normalize(text: str) -> str:
    """Lowercase, trim, drop punctuation and symbols, collapse whitespace."""
    text = unicodedata.normalize("NFC", text or "").lower().strip()
    text = "".join(ch for ch in text if unicodedata.category(ch)[0] not in ("P", "S"))
    return _WHITESPACE.sub(" ", text).strip()


def keywords(text: str) -> List[str]:
    return [token for token in _KEYWORD_SPLIT.split(text.lower()) if len(token) >= 2]


def keyword_match(user_answer: str, correct_answer: str) -> bool:
    """True if any user keyword contains, is contained in, or is a listed synonym of a correct keyword."""
    correct_keywords = keywords(correct_answer)
    for user_kw in keywords(user_answer):
        for correct_kw in correct_keywords:
            if user_kw in correct_kw or correct_kw in user_kw:
                if DEBUG_MODE:
                    print(f"   Keyword match: {user_kw} <-> {correct_kw}")
                return True
            if user_kw in SYNONYMS.get(correct_kw, []) or correct_kw in SYNONYMS.get(user_kw, []):
                if DEBUG_MODE:
                    print(f"   Synonym match: {user_kw} <-> {correct_kw}")
                return True
    return False


def fallback_score(user_answer: str, correct_answer: str) -> int:
    """Local score used when the judge cannot answer; never below the floor."""
    clean_user = normalize(user_answer)
    clean_correct = normalize(correct_answer)
    if clean_user == clean_correct:
        return 100
    if clean_user in clean_correct or clean_correct in clean_user:
        return FALLBACK_CONTAINS_SCORE
    return FALLBACK_FLOOR_SCORE


def clamp_score(score: int) -> int:
    return max(0, min(100, int(score)))


def score_answer(user_answer: str, correct_answer: str, term: str, judge: Optional[Any] = None) -> int:
    """
    Score a free-text answer against the canonical meaning, 0-100.

    Exact match after normalisation and keyword/synonym matches score 100
    without calling the judge. Otherwise the judge decides; when there is no
    judge or it fails in any way, `fallback_score` is used, so this function
    always returns a score.

    Args:
        user_answer: what the student typed
        correct_answer: the canonical meaning
        term: the English word being tested
        judge: object with `score(term, correct_answer, user_answer) -> int`
    """
    clean_user = normalize(user_answer)
    clean_correct = normalize(correct_answer)

    if clean_user == clean_correct:
        return 100

    if keyword_match(clean_user, clean_correct):
        return 100

    if judge is None:
        return fallback_score(user_answer, correct_answer)

    try:
        score = clamp_score(judge.score(term, correct_answer, user_answer))
        if DEBUG_MODE:
            print(f"   Judge score for '{term}': {score}")
        return score
    except Exception as e:
        print(f"❌ Judge unavailable for '{term}': {e} ({type(e).__name__})")
        return fallback_score(user_answer, correct_answer)


def is_correct(score: int) -> bool:
    return score >= PASS_THRESHOLD


def summarize_results(results: Sequence[EvaluationResult]) -> EvaluationSummary:
    """Aggregate results; an evaluation passes only when every word is correct."""
    total = len(results)
    correct = sum(1 for r in results if r.is_correct)
    return EvaluationSummary(
        total_words=total,
        correct_words=correct,
        incorrect_words=total - correct,
        accuracy=round(correct / total * 100) if total else 0,
        passed=total > 0 and correct == total,
    )


def _word_key(word: VocabularyItem) -> str:
    return word.item_id or f"{word.unit}:{word.term}"


class EvaluationState(str, enum.Enum):
    IDLE = "idle"
    ANSWERING = "answering"
    SHOWING_RESULT = "showing_result"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EvaluationSession:
    """
    Active-recall test over a set of words.

    Each answer is scored and shown; the session moves on after
    `auto_advance_seconds` of `tick()` time or an explicit `next_word()`.
    Words scoring below the pass threshold are asked again in the next
    round, for at most `max_rounds` rounds. The latest result per word is
    the one that counts.
    """

    def __init__(self, words: Sequence[VocabularyItem], *,
                 judge: Optional[Any] = None,
                 max_rounds: int = MAX_ROUNDS,
                 auto_advance_seconds: float = AUTO_ADVANCE_SECONDS):
        self.all_words: List[VocabularyItem] = list(words)
        self.judge = judge
        self.max_rounds = max_rounds
        self.timer = CountdownTimer(auto_advance_seconds)
        self.state = EvaluationState.IDLE
        self.round = 0
        self.words: List[VocabularyItem] = []
        self.current_index = 0
        self.current_result: Optional[EvaluationResult] = None
        self._round_results: List[EvaluationResult] = []
        self._latest: Dict[str, EvaluationResult] = {}

    def start(self) -> VocabularyItem:
        if self.state != EvaluationState.IDLE:
            raise SessionStateError(f"Evaluation already {self.state.value}")
        if not self.all_words:
            raise InvalidAssignmentError("An evaluation needs at least one word")
        self._begin_round(1, self.all_words)
        return self.words[0]

    @property
    def current_word(self) -> Optional[VocabularyItem]:
        if self.state in (EvaluationState.ANSWERING, EvaluationState.SHOWING_RESULT):
            return self.words[self.current_index]
        return None

    @property
    def is_finished(self) -> bool:
        return self.state == EvaluationState.COMPLETED

    def submit(self, answer: str) -> EvaluationResult:
        """Score the answer for the current word and start the auto-advance countdown."""
        if self.state != EvaluationState.ANSWERING:
            raise SessionStateError(f"Cannot submit while {self.state.value}")
        if not answer or not answer.strip():
            raise ValueError("Answer is empty")
        word = self.words[self.current_index]
        score = score_answer(answer, word.meaning, word.term, judge=self.judge)
        result = EvaluationResult(
            word_id=word.item_id,
            term=word.term,
            user_answer=answer.strip(),
            correct_answer=word.meaning,
            score=score,
            is_correct=is_correct(score),
        )
        self.current_result = result
        self.state = EvaluationState.SHOWING_RESULT
        if self.timer.start():
            self.next_word()
        return result

    def tick(self, seconds: float) -> EvaluationState:
        if self.state == EvaluationState.SHOWING_RESULT and self.timer.tick(seconds):
            self.next_word()
        return self.state

    def next_word(self) -> None:
        """Leave the shown result and move on (cancels the pending auto-advance)."""
        if self.state != EvaluationState.SHOWING_RESULT or self.current_result is None:
            raise SessionStateError(f"No result to move on from while {self.state.value}")
        self.timer.cancel()
        word = self.words[self.current_index]
        self._round_results.append(self.current_result)
        self._latest[_word_key(word)] = self.current_result
        self.current_result = None
        self.current_index += 1
        if self.current_index < len(self.words):
            self.state = EvaluationState.ANSWERING
            return
        incomplete = [
            w for w, r in zip(self.words, self._round_results) if not r.is_correct
        ]
        if incomplete and self.round < self.max_rounds:
            print(f"🔁 Evaluation round {self.round} done, {len(incomplete)} word(s) to retry")
            self._begin_round(self.round + 1, incomplete)
        else:
            self.state = EvaluationState.COMPLETED

    def cancel(self) -> None:
        self.timer.cancel()
        if self.state != EvaluationState.COMPLETED:
            self.state = EvaluationState.CANCELLED

    @property
    def results(self) -> List[EvaluationResult]:
        """Latest result per word, in the order words were first answered."""
        return list(self._latest.values())

    def summary(self) -> EvaluationSummary:
        return summarize_results(self.results)

    def _begin_round(self, number: int, words: Iterable[VocabularyItem]) -> None:
        self.round = number
        self.words = list(words)
        self.current_index = 0
        self._round_results = []
        self.current_result = None
        self.state = EvaluationState.ANSWERING
