import threading
import time

import llm  # type: ignore
import pytest
from unittest.mock import MagicMock

from llm_vocab_tutor import judge as judge_module
from llm_vocab_tutor.judge import JudgeError, LLMJudge, get_judge, parse_score
from llm_vocab_tutor.structured import JUDGE_SYSTEM_PROMPT


class MockResponse:
    def __init__(self, text_content):
        self.text_content = text_content
    def text(self):
        return self.text_content


@pytest.fixture
def mock_model():
    model = MagicMock()
    model.prompt.return_value = MockResponse("90")
    return model


@pytest.mark.parametrize("reply,expected", [
    ("85", 85),
    (" 100\n", 100),
    ("70점", 70),
    ("95 points.", 95),
    ("150", 100),
])
def test_parse_score(reply, expected):
    assert parse_score(reply) == expected


@pytest.mark.parametrize("reply", ["", "about 80", "80/100", "I would give it 90", "ninety"])
def test_parse_score_rejects_non_integers(reply):
    with pytest.raises(JudgeError):
        parse_score(reply)


def test_judge_prompts_the_model(mock_model):
    judge = LLMJudge(mock_model)
    assert judge.score("require", "A에게 B를 요구하다", "필요로 하다") == 90

    prompt = mock_model.prompt.call_args.args[0]
    assert "require" in prompt
    assert "A에게 B를 요구하다" in prompt
    assert "필요로 하다" in prompt
    assert mock_model.prompt.call_args.kwargs["system"] == JUDGE_SYSTEM_PROMPT


def test_malformed_reply_raises(mock_model):
    mock_model.prompt.return_value = MockResponse("Looks right to me!")
    with pytest.raises(JudgeError):
        LLMJudge(mock_model).score("run", "달리다", "뛰다")


def test_model_error_raises_judge_error(mock_model):
    mock_model.prompt.side_effect = RuntimeError("API key missing")
    with pytest.raises(JudgeError):
        LLMJudge(mock_model).score("run", "달리다", "뛰다")


def test_slow_model_times_out(mock_model):
    def slow_prompt(*args, **kwargs):
        time.sleep(0.5)
        return MockResponse("90")
    mock_model.prompt.side_effect = slow_prompt

    with pytest.raises(JudgeError):
        LLMJudge(mock_model, timeout=0.05).score("run", "달리다", "뛰다")


def test_judge_requires_a_model():
    with pytest.raises(ValueError):
        LLMJudge(None)


def test_get_judge_wraps_llm_model(monkeypatch, mock_model):
    monkeypatch.setattr(llm, "get_model", lambda name: mock_model)
    judge = get_judge("some-model", timeout=3)
    assert isinstance(judge, LLMJudge)
    assert judge.model is mock_model
    assert judge.timeout == 3


def test_get_judge_returns_none_when_model_is_missing(monkeypatch):
    def missing(name):
        raise llm.UnknownModelError(f"Unknown model: {name}")
    monkeypatch.setattr(llm, "get_model", missing)
    assert get_judge("no-such-model") is None


def test_default_model_from_environment():
    assert judge_module.DEFAULT_JUDGE_MODEL
    assert judge_module.DEFAULT_JUDGE_TIMEOUT > 0


def test_hung_request_does_not_hold_the_process(mock_model):
    release = threading.Event()
    called = threading.Event()
    seen = {}

    def hung_prompt(*args, **kwargs):
        seen["thread"] = threading.current_thread()
        called.set()
        release.wait(5)
        return MockResponse("90")
    mock_model.prompt.side_effect = hung_prompt

    with pytest.raises(JudgeError):
        LLMJudge(mock_model, timeout=0.05).score("run", "달리다", "뛰다")

    assert called.wait(1)
    assert seen["thread"].daemon
    assert seen["thread"] is not threading.main_thread()
    release.set()
