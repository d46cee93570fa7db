"""Activity data models — quiz and quest definitions loaded once per play."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from qzvert_play.errors import InvalidDefinition

DEFAULT_POINTS = 100

# Activity ids double as file names
ACTIVITY_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


class ActivityKind(str, Enum):
    """Shape of a playable activity."""

    quiz = "quiz"  # Flat list of questions
    quest = "quest"  # Ordered stages, each a lesson followed by questions


class MultipleChoiceQuestion(BaseModel):
    """Question judged by exact match against ``correct_index``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["multiple_choice"] = "multiple_choice"
    prompt: str
    options: list[str] = Field(min_length=2)
    correct_index: int
    explanation: str = ""
    points: int = Field(default=DEFAULT_POINTS, ge=1)

    @model_validator(mode="after")
    def _check_correct_index(self) -> MultipleChoiceQuestion:
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError(
                f"correct_index {self.correct_index} out of range "
                f"for {len(self.options)} options"
            )
        return self


class SubjectiveQuestion(BaseModel):
    """Free-text question graded against a model answer."""

    model_config = ConfigDict(frozen=True)

    type: Literal["subjective"] = "subjective"
    prompt: str
    model_answer: str
    explanation: str = ""
    points: int = Field(default=DEFAULT_POINTS, ge=1)


Question = Annotated[
    Union[MultipleChoiceQuestion, SubjectiveQuestion],
    Field(discriminator="type"),
]


class Stage(BaseModel):
    """One unit of a quest: a lesson and the questions that follow it."""

    model_config = ConfigDict(frozen=True)

    title: str
    lesson_text: str = ""
    questions: list[Question] = Field(default_factory=list)


class ActivityDefinition(BaseModel):
    """A complete, immutable activity definition."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex[:12], pattern=ACTIVITY_ID_PATTERN
    )
    title: str = "Untitled Activity"
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    kind: ActivityKind = ActivityKind.quiz

    # quiz only
    questions: list[Question] = Field(default_factory=list)
    # quest only
    stages: list[Stage] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_playable(self) -> ActivityDefinition:
        check_playable(self)
        return self

    @property
    def stage_count(self) -> int:
        """Number of stages; a quiz counts as a single implicit stage."""
        if self.kind == ActivityKind.quiz:
            return 1
        return len(self.stages)

    def questions_for(self, stage_index: int) -> list[Question]:
        if self.kind == ActivityKind.quiz:
            if stage_index != 0:
                raise IndexError(f"Quiz has no stage {stage_index}")
            return self.questions
        return self.stages[stage_index].questions

    def stage_title(self, stage_index: int) -> str:
        if self.kind == ActivityKind.quiz:
            return self.title
        return self.stages[stage_index].title

    def is_final_stage(self, stage_index: int) -> bool:
        return stage_index == self.stage_count - 1

    def total_points(self) -> int:
        """Maximum base score, ignoring time bonuses."""
        return sum(
            q.points
            for i in range(self.stage_count)
            for q in self.questions_for(i)
        )


def check_playable(definition: ActivityDefinition) -> None:
    """Raise InvalidDefinition unless every stage has at least one question."""
    if definition.kind == ActivityKind.quiz:
        if definition.stages:
            raise InvalidDefinition("A quiz cannot have stages")
        if not definition.questions:
            raise InvalidDefinition("Quiz has no questions")
        return

    if definition.questions:
        raise InvalidDefinition("A quest keeps its questions inside stages")
    if not definition.stages:
        raise InvalidDefinition("Quest has no stages")
    for i, stage in enumerate(definition.stages):
        if not stage.questions:
            raise InvalidDefinition(f"Stage {i} ({stage.title!r}) has no questions")


# Generator output uses different names for the same things.
_KIND_ALIASES = {
    "quiz": ActivityKind.quiz,
    "smart_quiz": ActivityKind.quiz,
    "quest": ActivityKind.quest,
    "quest_course": ActivityKind.quest,
}

_QUESTION_KEY_ALIASES = {
    "question": "prompt",
    "correct_answer": "correct_index",
}

_QUESTION_TYPES = {"multiple_choice", "subjective"}


def _normalize_question(raw: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise InvalidDefinition(f"Question must be an object, got {type(raw).__name__}")

    data = {}
    for key, value in raw.items():
        data[_QUESTION_KEY_ALIASES.get(key, key)] = value

    qtype = data.get("type") or "multiple_choice"
    if qtype not in _QUESTION_TYPES:
        raise InvalidDefinition(f"Unknown question type: {qtype!r}")
    data["type"] = qtype

    if data.get("points") is None:
        data.pop("points", None)
    return data


def _normalize_questions(raw: Any) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidDefinition("Questions must be a list")
    return [_normalize_question(q) for q in raw]


def normalize_kind(data: dict[str, Any]) -> ActivityKind:
    """Activity kind from a raw record, generator ``type`` taking precedence."""
    raw_kind = data.get("type") or data.get("kind") or "quiz"
    if isinstance(raw_kind, ActivityKind):
        return raw_kind
    kind = _KIND_ALIASES.get(raw_kind) if isinstance(raw_kind, str) else None
    if kind is None:
        raise InvalidDefinition(f"Unknown activity kind: {raw_kind!r}")
    return kind


def parse_activity(data: dict[str, Any]) -> ActivityDefinition:
    """Build an ActivityDefinition from stored or generated JSON.

    Accepts both the canonical field names and the generator formats
    (``smart_quiz``/``quest_course``, ``quizzes``, ``lesson``, ``question``,
    ``correct_answer``). Anything that does not validate raises
    InvalidDefinition.
    """
    if not isinstance(data, dict):
        raise InvalidDefinition("Activity must be a JSON object")

    data = dict(data)
    data["kind"] = normalize_kind(data)
    data.pop("type", None)

    if "quizzes" in data:
        data["questions"] = data.pop("quizzes")
    data["questions"] = _normalize_questions(data.get("questions"))

    stages = []
    for raw_stage in data.get("stages") or []:
        if not isinstance(raw_stage, dict):
            raise InvalidDefinition("Stage must be an object")
        stage = dict(raw_stage)
        if "lesson" in stage:
            stage["lesson_text"] = stage.pop("lesson")
        if "quizzes" in stage:
            stage["questions"] = stage.pop("quizzes")
        stage["questions"] = _normalize_questions(stage.get("questions"))
        stages.append(stage)
    data["stages"] = stages

    try:
        return ActivityDefinition.model_validate(data)
    except ValidationError as e:
        raise InvalidDefinition(str(e)) from e
