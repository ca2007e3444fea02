import enum
import math
import os
from typing import Dict, List, Optional, Sequence

from .structured import (
    InvalidAssignmentError,
    LearningSummary,
    RoundResult,
    VocabularyItem,
    WordState,
    WordStatus,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

DEFAULT_CONFIRM_SECONDS = 1.5
MAX_ROUNDS = 3


class SessionStateError(ValueError):
    """An action was attempted in a state that does not allow it."""


class CountdownTimer:
    """
    Cancellable countdown driven by the caller.

    Time advances only through `tick()`, in fixed `STEP` increments, so the
    timer never fires on its own into a session that has been closed.
    """

    STEP = 0.1

    def __init__(self, seconds: float):
        if seconds < 0:
            raise ValueError("Timer duration cannot be negative")
        self.seconds = seconds
        # any positive duration lasts at least one step
        self._steps_total = max(1, math.ceil(seconds / self.STEP - 1e-9)) if seconds > 0 else 0
        self._steps_left = 0
        self._carry = 0.0
        self.running = False
        self.paused = False

    @property
    def remaining(self) -> float:
        return round(self._steps_left * self.STEP, 3)

    def start(self) -> bool:
        """Start counting down; returns True if the duration is zero (already expired)."""
        self._steps_left = self._steps_total
        self._carry = 0.0
        self.running = self._steps_left > 0
        return not self.running

    def tick(self, seconds: float) -> bool:
        """Advance by `seconds`; returns True exactly once, when the countdown reaches zero."""
        if not self.running or self.paused:
            return False
        self._carry += seconds
        steps = int(self._carry / self.STEP + 1e-9)
        self._carry -= steps * self.STEP
        self._steps_left = max(0, self._steps_left - steps)
        if self._steps_left == 0:
            self.running = False
            return True
        return False

    def cancel(self) -> None:
        self.running = False
        self._steps_left = 0
        self._carry = 0.0


class Choice(str, enum.Enum):
    KNOW = "circle"
    UNSURE = "triangle"


class SessionState(str, enum.Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LearningSession:
    """
    Multi-round learning session over a fixed set of words.

    Each word is presented, the learner commits "know it" or "unsure", the
    meaning is revealed and a confirmation countdown starts. Before it runs
    out the learner may say "I was wrong", which always records `repeat`.
    When the countdown expires (or `advance()` is called) the first choice
    stands. After the last word of a round, the words not mastered in that
    round form the next round, until nothing is left or `max_rounds` rounds
    have been played.
    """

    def __init__(self, words: Sequence[VocabularyItem], *,
                 confirm_seconds: float = DEFAULT_CONFIRM_SECONDS,
                 max_rounds: int = MAX_ROUNDS,
                 is_mistake_review: bool = False):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.all_words: List[VocabularyItem] = list(words)
        self.max_rounds = max_rounds
        self.is_mistake_review = is_mistake_review
        self.timer = CountdownTimer(confirm_seconds)
        self.state = SessionState.IDLE
        self.round = 0
        self.words: List[VocabularyItem] = []
        self.current_index = 0
        self.rounds: List[RoundResult] = []
        self.pending_choice: Optional[Choice] = None
        self.paused = False
        # position in the current round -> final status for this round
        self._statuses: Dict[int, WordStatus] = {}

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> VocabularyItem:
        """Begin round 1 and return the first word."""
        if self.state != SessionState.IDLE:
            raise SessionStateError(f"Session already {self.state.value}")
        if not self.all_words:
            raise InvalidAssignmentError("A learning session needs at least one word")
        self._begin_round(1, self.all_words)
        return self.words[0]

    def cancel(self) -> None:
        """Close the session; the countdown is discarded and no result is produced."""
        self.timer.cancel()
        self.pending_choice = None
        if self.state != SessionState.COMPLETED:
            self.state = SessionState.CANCELLED

    def pause(self) -> None:
        self.paused = True
        self.timer.paused = True

    def resume(self) -> None:
        self.paused = False
        self.timer.paused = False

    # -- learner actions -------------------------------------------------------

    def choose(self, choice: Choice) -> VocabularyItem:
        """Commit the first choice for the current word and reveal its meaning."""
        self._require(SessionState.PRESENTING)
        word = self.words[self.current_index]
        self.pending_choice = Choice(choice)
        self.state = SessionState.AWAITING_CONFIRMATION
        if self.timer.start():
            self._confirm()
        return word

    def mark_wrong(self) -> None:
        """Override the pending choice: the word goes back for another look."""
        self._require(SessionState.AWAITING_CONFIRMATION)
        self.timer.cancel()
        if DEBUG_MODE:
            print(f"   Override: '{self.words[self.current_index].term}' -> repeat")
        self._record(WordStatus.REPEAT)

    def advance(self) -> None:
        """Confirm the pending choice without waiting for the countdown."""
        self._require(SessionState.AWAITING_CONFIRMATION)
        self.timer.cancel()
        self._confirm()

    def tick(self, seconds: float) -> SessionState:
        """Let `seconds` of real time pass; confirms the pending choice on expiry."""
        if self.state == SessionState.AWAITING_CONFIRMATION and self.timer.tick(seconds):
            self._confirm()
        return self.state

    # -- state inspection ------------------------------------------------------

    @property
    def current_word(self) -> Optional[VocabularyItem]:
        if self.state in (SessionState.PRESENTING, SessionState.AWAITING_CONFIRMATION):
            return self.words[self.current_index]
        return None

    @property
    def is_finished(self) -> bool:
        return self.state == SessionState.COMPLETED

    @property
    def position(self) -> int:
        """1-based position of the current word in its round."""
        return self.current_index + 1

    @property
    def progress_percent(self) -> float:
        if not self.words:
            return 0.0
        return min(self.position, len(self.words)) / len(self.words) * 100

    @property
    def residual_words(self) -> List[VocabularyItem]:
        """Words still not mastered after the last played round."""
        if not self.rounds:
            return list(self.all_words)
        last = self.rounds[-1]
        return [s.word for s in last.word_states if s.status != WordStatus.MASTERED]

    def summary(self) -> LearningSummary:
        total = len(self.all_words)
        mastered = sum(r.mastered_count for r in self.rounds)
        return LearningSummary(
            total_rounds=len(self.rounds),
            total_words=total,
            final_mastered_count=mastered,
            completion_rate=round(mastered / total * 100) if total else 0,
        )

    # -- internals -------------------------------------------------------------

    def _require(self, state: SessionState) -> None:
        if self.state != state:
            raise SessionStateError(
                f"Expected session to be {state.value}, but it is {self.state.value}"
            )

    def _begin_round(self, number: int, words: List[VocabularyItem]) -> None:
        self.round = number
        self.words = list(words)
        self.current_index = 0
        self._statuses = {}
        self.pending_choice = None
        self.timer.cancel()
        self.state = SessionState.PRESENTING

    def _confirm(self) -> None:
        if self.pending_choice == Choice.KNOW:
            self._record(WordStatus.MASTERED)
        else:
            self._record(WordStatus.REPEAT)

    def _record(self, status: WordStatus) -> None:
        self._statuses[self.current_index] = status
        self.pending_choice = None
        self.current_index += 1
        if self.current_index >= len(self.words):
            self._complete_round()
        else:
            self.state = SessionState.PRESENTING

    def _complete_round(self) -> None:
        self.timer.cancel()
        states = [
            WordState(word=word, status=self._statuses.get(i, WordStatus.FORGOT))
            for i, word in enumerate(self.words)
        ]
        result = RoundResult(
            round_number=self.round,
            total_words=len(self.words),
            mastered_count=sum(1 for s in states if s.status == WordStatus.MASTERED),
            repeat_count=sum(1 for s in states if s.status == WordStatus.REPEAT),
            forgot_count=sum(1 for s in states if s.status == WordStatus.FORGOT),
            word_states=states,
        )
        self.rounds.append(result)
        remaining = [s.word for s in states if s.status != WordStatus.MASTERED]
        if DEBUG_MODE:
            print(f"🔁 Round {self.round} done: {result.mastered_count}/{result.total_words} mastered, "
                  f"{len(remaining)} left")
        if not remaining or self.round >= self.max_rounds:
            self.state = SessionState.COMPLETED
            return
        self._begin_round(self.round + 1, remaining)
