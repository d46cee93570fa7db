"""Session store — single owner of a playthrough's mutable state.

Every operation validates before it mutates, so a raised error leaves the
state exactly as it was. Callers only ever receive deep copies.
"""

from __future__ import annotations

import logging

from qzvert_play.activity_models import ActivityDefinition, ActivityKind, check_playable
from qzvert_play.errors import IllegalTransition, NoMoreStages
from qzvert_play.session_models import (
    AnswerOutcome,
    AnswerRecord,
    Cursor,
    Phase,
    SessionConfig,
    SessionState,
)

logger = logging.getLogger(__name__)


class SessionStore:
    """Holds SessionState for exactly one playthrough."""

    def __init__(self) -> None:
        self._definition: ActivityDefinition | None = None
        self._config: SessionConfig | None = None
        self._state: SessionState | None = None

    # --- Read access ---

    @property
    def definition(self) -> ActivityDefinition:
        self._require_initialized()
        return self._definition

    @property
    def config(self) -> SessionConfig:
        self._require_initialized()
        return self._config

    @property
    def initialized(self) -> bool:
        return self._state is not None

    def snapshot(self) -> SessionState:
        self._require_initialized()
        return self._state.model_copy(deep=True)

    @property
    def state(self) -> SessionState:
        return self.snapshot()

    # --- Operations ---

    def initialize(
        self, definition: ActivityDefinition, config: SessionConfig | None = None
    ) -> SessionState:
        check_playable(definition)
        config = config or SessionConfig()
        self._definition = definition
        self._config = config
        self._state = self._initial_state()
        logger.debug(
            "Session initialized for %s (%s, %d stage(s))",
            definition.id,
            definition.kind.value,
            definition.stage_count,
        )
        return self.snapshot()

    def advance_question(self) -> bool:
        """Move to the next question of the current stage.

        Returns False, changing nothing, when the cursor is already on the
        last question (the caller ends the stage).
        """
        self._require_initialized()
        cursor = self._state.cursor
        total = len(self._definition.questions_for(cursor.stage_index))
        if cursor.question_index >= total - 1:
            return False
        cursor.question_index += 1
        return True

    def advance_stage(self) -> SessionState:
        self._require_initialized()
        if self._definition.kind != ActivityKind.quest:
            raise IllegalTransition("A quiz has no stages to advance through")
        cursor = self._state.cursor
        if cursor.stage_index >= self._definition.stage_count - 1:
            raise NoMoreStages(f"Stage {cursor.stage_index} is the final stage")
        self._state.cursor = Cursor(stage_index=cursor.stage_index + 1)
        self._restart_timer()
        return self.snapshot()

    def enter_stage(self, stage_index: int) -> SessionState:
        """Point the cursor at the first question of ``stage_index``."""
        self._require_initialized()
        self._check_stage_index(stage_index)
        self._state.cursor = Cursor(stage_index=stage_index)
        self._restart_timer()
        return self.snapshot()

    def mark_stage_complete(self, stage_index: int) -> SessionState:
        self._require_initialized()
        self._check_stage_index(stage_index)
        self._state.completed_stages.add(stage_index)
        return self.snapshot()

    def apply_answer_outcome(self, outcome: AnswerOutcome) -> SessionState:
        self._require_initialized()
        if outcome.points < 0 or outcome.bonus < 0:
            raise IllegalTransition("Points are never subtracted")

        state = self._state
        if outcome.correct:
            state.score += outcome.points
        elif self._config.lives_enabled:
            state.lives = max(0, state.lives - 1)

        state.answers.append(
            AnswerRecord(
                stage_index=state.cursor.stage_index,
                question_index=state.cursor.question_index,
                correct=outcome.correct,
                points=outcome.points if outcome.correct else 0,
                bonus=outcome.bonus if outcome.correct else 0,
                timed_out=outcome.timed_out,
            )
        )

        if not outcome.correct and self._config.lives_enabled and state.lives == 0:
            state.phase = Phase.game_over
            state.playing = False
        return self.snapshot()

    def tick(self, elapsed: float) -> SessionState:
        """Run the countdown down by ``elapsed`` seconds, stopping at zero."""
        self._require_initialized()
        if elapsed < 0:
            raise IllegalTransition("Time cannot run backwards")
        if self._state.time_left is not None:
            self._state.time_left = max(0.0, self._state.time_left - elapsed)
        return self.snapshot()

    def set_phase(self, phase: Phase) -> SessionState:
        self._require_initialized()
        self._state.phase = phase
        return self.snapshot()

    def set_playing(self, playing: bool) -> SessionState:
        self._require_initialized()
        self._state.playing = playing
        return self.snapshot()

    def reset(self) -> SessionState:
        """Return to the initial state for the same definition and config."""
        self._require_initialized()
        self._state = self._initial_state()
        return self.snapshot()

    # --- Internals ---

    def _initial_state(self) -> SessionState:
        config = self._config
        return SessionState(
            lives=config.max_lives if config.lives_enabled else None,
            time_left=float(config.timer_seconds) if config.timer_enabled else None,
            phase=Phase.intro,
        )

    def _restart_timer(self) -> None:
        if self._config.timer_enabled:
            self._state.time_left = float(self._config.timer_seconds)

    def _check_stage_index(self, stage_index: int) -> None:
        if not 0 <= stage_index < self._definition.stage_count:
            raise IllegalTransition(
                f"Stage {stage_index} out of range "
                f"(activity has {self._definition.stage_count})"
            )

    def _require_initialized(self) -> None:
        if self._state is None:
            raise IllegalTransition("Session has not been initialized")
