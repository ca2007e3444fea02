import pytest

from llm_vocab_tutor.learning import (
    Choice,
    CountdownTimer,
    LearningSession,
    SessionState,
    SessionStateError,
)
from llm_vocab_tutor.structured import InvalidAssignmentError, VocabularyItem, WordStatus


@pytest.fixture
def words():
    return [
        VocabularyItem(unit="1", term="apple", meaning="사과", item_id="word_0"),
        VocabularyItem(unit="1", term="banana", meaning="바나나", item_id="word_1"),
        VocabularyItem(unit="1", term="cherry", meaning="체리", item_id="word_2"),
    ]


def play(session, choice):
    """Answer every remaining word with the same choice and confirm it right away."""
    while session.state == SessionState.PRESENTING:
        session.choose(choice)
        if session.state == SessionState.AWAITING_CONFIRMATION:
            session.advance()


def test_knowing_every_word_converges_in_one_round(words):
    session = LearningSession(words)
    session.start()
    play(session, Choice.KNOW)

    assert session.is_finished
    assert len(session.rounds) == 1
    assert session.rounds[0].mastered_count == session.rounds[0].total_words == 3
    summary = session.summary()
    assert summary.total_rounds == 1
    assert summary.final_mastered_count == 3
    assert summary.completion_rate == 100


def test_unsure_every_time_stops_after_three_rounds(words):
    session = LearningSession(words)
    session.start()
    play(session, Choice.UNSURE)

    assert session.is_finished
    assert [r.round_number for r in session.rounds] == [1, 2, 3]
    assert all(r.repeat_count == 3 for r in session.rounds)
    assert session.residual_words == words
    summary = session.summary()
    assert summary.final_mastered_count == 0
    assert summary.completion_rate == 0


def test_next_round_only_has_words_not_mastered(words):
    session = LearningSession(words)
    session.start()
    for choice in (Choice.KNOW, Choice.UNSURE, Choice.KNOW):
        session.choose(choice)
        session.advance()

    assert session.round == 2
    assert session.words == [words[1]]
    assert session.current_word == words[1]

    session.choose(Choice.KNOW)
    session.advance()
    assert session.is_finished
    assert session.summary().final_mastered_count == 3
    assert session.residual_words == []


def test_marking_wrong_overrides_know(words):
    session = LearningSession(words[:1])
    session.start()
    session.choose(Choice.KNOW)
    session.mark_wrong()

    first_round = session.rounds[0]
    assert first_round.word_states[0].status == WordStatus.REPEAT
    assert first_round.mastered_count == 0
    assert session.round == 2
    assert not session.timer.running


def test_countdown_confirms_the_choice(words):
    session = LearningSession(words[:1], confirm_seconds=1.5)
    session.start()
    session.choose(Choice.KNOW)

    assert session.tick(1.0) == SessionState.AWAITING_CONFIRMATION
    assert session.timer.remaining == pytest.approx(0.5)
    assert session.tick(0.5) == SessionState.COMPLETED
    assert session.rounds[0].word_states[0].status == WordStatus.MASTERED


def test_marking_wrong_after_expiry_is_rejected(words):
    session = LearningSession(words, confirm_seconds=1.0)
    session.start()
    session.choose(Choice.KNOW)
    session.tick(1.0)

    assert session.state == SessionState.PRESENTING
    with pytest.raises(SessionStateError):
        session.mark_wrong()


def test_zero_confirmation_time_confirms_immediately(words):
    session = LearningSession(words[:1], confirm_seconds=0)
    session.start()
    session.choose(Choice.UNSURE)

    assert session.state == SessionState.PRESENTING
    assert session.round == 2


def test_short_confirmation_time_still_waits_one_step(words):
    session = LearningSession(words[:1], confirm_seconds=0.05)
    session.start()
    session.choose(Choice.KNOW)

    assert session.state == SessionState.AWAITING_CONFIRMATION
    session.mark_wrong()
    assert session.rounds[0].word_states[0].status == WordStatus.REPEAT
    assert session.round == 2


def test_countdown_timer_rounds_short_durations_up():
    timer = CountdownTimer(0.05)
    assert timer.start() is False
    assert timer.remaining == pytest.approx(0.1)
    assert timer.tick(0.1) is True

    assert CountdownTimer(0.3).start() is False
    assert CountdownTimer(0).start() is True


def test_pause_freezes_the_countdown(words):
    session = LearningSession(words[:1], confirm_seconds=1.5)
    session.start()
    session.choose(Choice.KNOW)
    session.pause()

    assert session.tick(10) == SessionState.AWAITING_CONFIRMATION

    session.resume()
    assert session.tick(1.5) == SessionState.COMPLETED


def test_cancel_discards_the_session(words):
    session = LearningSession(words)
    session.start()
    session.choose(Choice.KNOW)
    session.cancel()

    assert session.state == SessionState.CANCELLED
    assert not session.timer.running
    assert session.tick(5) == SessionState.CANCELLED
    assert session.rounds == []
    with pytest.raises(SessionStateError):
        session.choose(Choice.KNOW)


def test_session_without_words_is_invalid():
    session = LearningSession([])
    with pytest.raises(InvalidAssignmentError):
        session.start()


def test_cannot_start_twice(words):
    session = LearningSession(words)
    session.start()
    with pytest.raises(SessionStateError):
        session.start()


def test_progress_percent(words):
    session = LearningSession(words)
    session.start()
    assert session.position == 1
    assert session.progress_percent == pytest.approx(100 / 3)


def test_countdown_timer_steps():
    timer = CountdownTimer(0.3)
    assert timer.start() is False
    assert timer.tick(0.05) is False
    assert timer.tick(0.05) is False
    assert timer.remaining == pytest.approx(0.2)
    assert timer.tick(0.2) is True
    # Fires only once
    assert timer.tick(1.0) is False


def test_countdown_timer_cancel():
    timer = CountdownTimer(1.0)
    timer.start()
    timer.cancel()
    assert timer.tick(5.0) is False
    assert timer.remaining == 0


def test_negative_duration_is_rejected():
    with pytest.raises(ValueError):
        CountdownTimer(-1)
