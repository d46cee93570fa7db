"""Answer evaluation and scoring.

Multiple-choice answers are judged here; subjective answers arrive with a
grade computed elsewhere (see ``grading``) and go through the same scoring
path, including the time bonus.
"""

from __future__ import annotations

import math
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from qzvert_play.activity_models import MultipleChoiceQuestion, Question, SubjectiveQuestion
from qzvert_play.errors import IllegalTransition
from qzvert_play.session_models import AnswerOutcome, SessionConfig


class SubjectiveGrade(BaseModel):
    """Pre-computed verdict for a free-text answer."""

    model_config = ConfigDict(frozen=True)

    correct: bool
    points: int = Field(default=0, ge=0)


class ChoiceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    selected_index: int


class TextResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    grade: SubjectiveGrade


Response = Union[ChoiceResponse, TextResponse]


def time_bonus(base_points: int, remaining: float, total: float, weight: float) -> int:
    """Linear bonus: ``floor(base * remaining / total * weight)``.

    Zero once the countdown has expired or when there is no countdown.
    """
    if total <= 0 or remaining <= 0:
        return 0
    fraction = min(1.0, remaining / total)
    return math.floor(base_points * fraction * weight)


def evaluate_answer(
    question: Question,
    response: Response,
    config: SessionConfig,
    time_left: float | None = None,
) -> AnswerOutcome:
    """Judge one response and work out the points it earns."""
    if isinstance(question, MultipleChoiceQuestion):
        if not isinstance(response, ChoiceResponse):
            raise IllegalTransition("Multiple-choice questions take a selected index")
        if not 0 <= response.selected_index < len(question.options):
            raise IllegalTransition(
                f"Option {response.selected_index} does not exist "
                f"({len(question.options)} options)"
            )
        correct = response.selected_index == question.correct_index
        base = question.points
    elif isinstance(question, SubjectiveQuestion):
        if not isinstance(response, TextResponse):
            raise IllegalTransition("Subjective questions take a text response")
        correct = response.grade.correct
        base = response.grade.points
    else:
        raise TypeError(f"Unsupported question type: {type(question).__name__}")

    timed = config.timer_enabled and time_left is not None
    if timed and time_left <= 0:
        return AnswerOutcome(correct=False, points=0, bonus=0, timed_out=True)
    if not correct:
        return AnswerOutcome(correct=False)

    bonus = 0
    if timed:
        bonus = time_bonus(base, time_left, config.timer_seconds, config.time_bonus_weight)
    return AnswerOutcome(correct=True, points=base + bonus, bonus=bonus)
