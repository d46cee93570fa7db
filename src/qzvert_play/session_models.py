"""Playback session data models: configuration, mutable state, derived views."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Phase(str, Enum):
    """Screen-level state of a playback session."""

    loading = "loading"  # Definition not committed yet
    intro = "intro"
    lesson = "lesson"
    playing = "playing"
    stage_complete = "stage_complete"
    quiz_complete = "quiz_complete"
    quest_complete = "quest_complete"
    game_over = "game_over"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset({Phase.quiz_complete, Phase.quest_complete, Phase.game_over})


class Outcome(str, Enum):
    """How a playthrough ended."""

    completed = "completed"
    failed = "failed"  # Ran out of lives
    aborted = "aborted"  # Left before reaching a terminal phase


class Theme(str, Enum):
    adventure = "adventure"
    space = "space"
    fantasy = "fantasy"
    science = "science"


class SessionConfig(BaseModel):
    """Play settings fixed for the lifetime of one session."""

    model_config = ConfigDict(frozen=True)

    lives_enabled: bool = True
    max_lives: int = Field(default=3, ge=0)
    timer_enabled: bool = False
    timer_seconds: int = Field(default=300, ge=0)  # Per stage
    theme: Theme = Theme.adventure
    # Share of base points paid out as a bonus at full time remaining
    time_bonus_weight: float = Field(default=0.5, ge=0)


class Cursor(BaseModel):
    stage_index: int = 0
    question_index: int = 0


class AnswerOutcome(BaseModel):
    """Verdict for one answer, applied verbatim by the session store."""

    model_config = ConfigDict(frozen=True)

    correct: bool
    points: int = 0  # Base points plus bonus; 0 when incorrect
    bonus: int = 0
    timed_out: bool = False


class AnswerRecord(BaseModel):
    stage_index: int
    question_index: int
    correct: bool
    points: int
    bonus: int = 0
    timed_out: bool = False


class SessionState(BaseModel):
    """Mutable playthrough state. Only SessionStore changes it."""

    cursor: Cursor = Field(default_factory=Cursor)
    lives: int | None = None  # None = unlimited
    score: int = 0
    completed_stages: set[int] = Field(default_factory=set)
    phase: Phase = Phase.intro
    playing: bool = False
    time_left: float | None = None  # None = no timer
    answers: list[AnswerRecord] = Field(default_factory=list)


class StageView(BaseModel):
    """Navigation status of one stage, derived from definition + state."""

    index: int
    title: str
    question_count: int
    locked: bool
    completed: bool
    current: bool


class PlaythroughSummary(BaseModel):
    score: int
    max_score: int
    answered: int
    correct: int
    accuracy: float  # Percent
    stage_accuracy: dict[int, float] = Field(default_factory=dict)
    weakest_stage: int | None = None
