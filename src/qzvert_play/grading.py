"""Subjective answer grading — Google Gemini verdicts with an offline fallback."""

from __future__ import annotations

import json
import logging
import os
from typing import Protocol

from google import genai
from google.genai import types

from qzvert_play.errors import GradingFailure
from qzvert_play.evaluator import SubjectiveGrade

logger = logging.getLogger(__name__)

GRADER_MODEL = os.environ.get("GRADER_MODEL", "gemini-2.5-flash")

GRADER_PROMPT = """\
You grade short free-text answers for a learning quiz.
Compare the learner's answer with the model answer. Accept answers that carry
the same meaning even if worded differently, in any language. Reject answers
that are empty, off-topic or factually wrong.

Reply with JSON only: {"correct": true|false, "score": <number 0..1>}
where score is how complete the answer is.
"""


class SubjectiveGrader(Protocol):
    def grade(
        self, prompt: str, model_answer: str, user_text: str, points: int
    ) -> SubjectiveGrade: ...


class LenientGrader:
    """Any non-blank answer earns full points."""

    def grade(
        self, prompt: str, model_answer: str, user_text: str, points: int
    ) -> SubjectiveGrade:
        if not user_text.strip():
            return SubjectiveGrade(correct=False, points=0)
        return SubjectiveGrade(correct=True, points=points)


class GeminiGrader:
    """Asks Gemini whether a free-text answer matches the model answer."""

    def __init__(self, model: str = GRADER_MODEL, client: genai.Client | None = None) -> None:
        self.model = model
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client()
        return self._client

    def grade(
        self, prompt: str, model_answer: str, user_text: str, points: int
    ) -> SubjectiveGrade:
        if not user_text.strip():
            return SubjectiveGrade(correct=False, points=0)

        message = (
            f"Question: {prompt}\n"
            f"Model answer: {model_answer}\n"
            f"Learner answer: {user_text}"
        )
        config = types.GenerateContentConfig(
            system_instruction=GRADER_PROMPT,
            response_mime_type="application/json",
            temperature=0.0,
        )
        response = self.client.models.generate_content(
            model=self.model,
            contents=message,
            config=config,
        )
        return _parse_verdict(response.text or "", points)


def _parse_verdict(text: str, points: int) -> SubjectiveGrade:
    try:
        verdict = json.loads(text)
        correct = bool(verdict["correct"])
        score = float(verdict.get("score", 1.0 if correct else 0.0))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.error("Unparseable grading verdict: %r", text[:200])
        raise GradingFailure(f"Grader returned an unreadable verdict: {e}") from e

    if not correct:
        return SubjectiveGrade(correct=False, points=0)
    score = min(1.0, max(0.0, score))
    return SubjectiveGrade(correct=True, points=max(1, round(points * score)))


def default_grader() -> SubjectiveGrader:
    """Gemini when an API key is configured, otherwise the lenient grader."""
    if os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"):
        return GeminiGrader()
    logger.warning("GOOGLE_API_KEY not set. Subjective answers use lenient grading.")
    return LenientGrader()
