import os
import re
import threading
from typing import Any, Optional

from .structured import JUDGE_PROMPT, JUDGE_SYSTEM_PROMPT

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

DEFAULT_JUDGE_MODEL = os.environ.get("LLM_VOCAB_JUDGE_MODEL", "gpt-4o-mini")
DEFAULT_JUDGE_TIMEOUT = float(os.environ.get("LLM_VOCAB_JUDGE_TIMEOUT", "15"))

_INTEGER = re.compile(r"^\s*(-?\d+)\s*(?:점|points?)?\s*\.?\s*$", re.IGNORECASE)


class JudgeError(ValueError):
    """The external judge could not produce a usable score."""


def parse_score(text: str) -> int:
    """Parse a judge reply that must be a bare integer; raises JudgeError otherwise."""
    match = _INTEGER.match(text or "")
    if not match:
        raise JudgeError(f"Judge reply is not an integer: {text!r}")
    return max(0, min(100, int(match.group(1))))


class LLMJudge:
    """
    Scores answers with an `llm` model.

    The model only needs `prompt(text, system=...)` returning an object with
    `text()`, which is what `llm.get_model()` models provide.
    """

    def __init__(self, model: Any, timeout: float = DEFAULT_JUDGE_TIMEOUT):
        if model is None:
            raise ValueError("AI model is required for the judge. Please ensure an API key is configured.")
        self.model = model
        self.timeout = timeout

    def build_prompt(self, term: str, correct_answer: str, user_answer: str) -> str:
        return JUDGE_PROMPT.format(term=term, correct_answer=correct_answer, user_answer=user_answer)

    def _ask(self, prompt: str) -> str:
        response = self.model.prompt(prompt, system=JUDGE_SYSTEM_PROMPT)
        return str(response.text())

    def score(self, term: str, correct_answer: str, user_answer: str) -> int:
        prompt = self.build_prompt(term, correct_answer, user_answer)
        if DEBUG_MODE:
            print("🧠 Judge request:")
            print(f"   Model: {getattr(self.model, 'model_id', getattr(self.model, 'name', 'unknown'))}")
            print(f"   Prompt length: {len(prompt)} characters")

        outcome: dict = {}

        def worker() -> None:
            try:
                outcome["reply"] = self._ask(prompt)
            except Exception as e:
                outcome["error"] = e

        # Daemon thread: a request that never returns must not keep the process alive
        thread = threading.Thread(target=worker, name="vocab-judge", daemon=True)
        thread.start()
        thread.join(self.timeout)
        if thread.is_alive():
            raise JudgeError(f"Judge timed out after {self.timeout}s")
        if "error" in outcome:
            e = outcome["error"]
            raise JudgeError(f"Judge request failed: {e}") from e

        reply = outcome["reply"]
        if DEBUG_MODE:
            print(f"   Judge raw reply: {reply!r}")
        return parse_score(reply.strip())


def get_judge(model_name: Optional[str] = None, timeout: float = DEFAULT_JUDGE_TIMEOUT) -> Optional[LLMJudge]:
    """Resolve a judge through `llm.get_model`; None when the model is unavailable."""
    import llm  # type: ignore

    name = model_name or DEFAULT_JUDGE_MODEL
    try:
        model = llm.get_model(name)
    except Exception as e:
        print(f"⚠️  Judge model '{name}' unavailable, using local scoring: {e}")
        return None
    return LLMJudge(model, timeout=timeout)
