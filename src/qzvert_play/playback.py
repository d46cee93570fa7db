"""Playback state machine — drives a session through its phases.

The machine never touches session fields itself: it reads snapshots from the
SessionStore and issues the store's operations. Every phase change is checked
against TRANSITIONS.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from qzvert_play.activity_models import ActivityDefinition, ActivityKind, Question, Stage
from qzvert_play.errors import (
    ActivityNotFound,
    IllegalTransition,
    InvalidDefinition,
    LoadFailure,
    StageLocked,
)
from qzvert_play.evaluator import Response, evaluate_answer
from qzvert_play.progress_map import build_progress_map, is_stage_locked, summarize
from qzvert_play.session_models import (
    AnswerOutcome,
    Outcome,
    Phase,
    PlaythroughSummary,
    SessionConfig,
    SessionState,
    StageView,
)
from qzvert_play.session_store import SessionStore

logger = logging.getLogger(__name__)

Loader = Callable[[str], Awaitable[ActivityDefinition]]
Recorder = Callable[[str, int, bool], object]

# Allowed phase changes. Anything not listed is an IllegalTransition.
TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.loading: frozenset({Phase.intro}),
    Phase.intro: frozenset({Phase.lesson, Phase.playing}),
    Phase.lesson: frozenset({Phase.playing, Phase.intro}),
    Phase.playing: frozenset(
        {
            Phase.game_over,
            Phase.stage_complete,
            Phase.quiz_complete,
            Phase.quest_complete,
            Phase.intro,
        }
    ),
    Phase.stage_complete: frozenset({Phase.lesson, Phase.intro}),
    Phase.quiz_complete: frozenset({Phase.intro}),
    Phase.quest_complete: frozenset({Phase.intro}),
    Phase.game_over: frozenset({Phase.intro}),
}


class PlaybackMachine:
    """One playback screen's worth of session logic."""

    def __init__(
        self,
        store: SessionStore | None = None,
        recorder: Recorder | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store or SessionStore()
        self.recorder = recorder
        self.clock = clock
        self.activity_id: str | None = None
        self._requested_id: str | None = None
        self._last_tick: float | None = None

    # --- Loading ---

    async def load(
        self,
        activity_id: str,
        loader: Loader,
        config: SessionConfig | None = None,
    ) -> bool:
        """Fetch and commit an activity.

        Returns False when a newer request (or quit()) superseded this one
        while the fetch was in flight; the late result is dropped.
        """
        self._requested_id = activity_id
        try:
            definition = await loader(activity_id)
        except (ActivityNotFound, InvalidDefinition):
            raise
        except OSError as e:
            raise LoadFailure(f"Could not load activity {activity_id}: {e}") from e

        if self._requested_id != activity_id:
            logger.info(
                "Dropping stale load of %s (active request: %s)",
                activity_id,
                self._requested_id,
            )
            return False

        self.attach(definition, config, activity_id=activity_id)
        return True

    def attach(
        self,
        definition: ActivityDefinition,
        config: SessionConfig | None = None,
        activity_id: str | None = None,
    ) -> SessionState:
        """Start a session on an already-loaded definition."""
        state = self.store.initialize(definition, config)
        self.activity_id = activity_id or definition.id
        self._requested_id = self.activity_id
        self._last_tick = None
        logger.info("Session ready: %s (%s)", definition.title, definition.kind.value)
        return state

    # --- Queries ---

    def current_phase(self) -> Phase:
        if not self.store.initialized:
            return Phase.loading
        return self.store.snapshot().phase

    @property
    def definition(self) -> ActivityDefinition:
        return self.store.definition

    @property
    def state(self) -> SessionState:
        return self.store.snapshot()

    def progress_map(self) -> list[StageView]:
        return build_progress_map(self.store.definition, self.store.snapshot())

    def current_stage(self) -> Stage | None:
        definition = self.store.definition
        if definition.kind != ActivityKind.quest:
            return None
        return definition.stages[self.store.snapshot().cursor.stage_index]

    def current_question(self) -> Question:
        cursor = self.store.snapshot().cursor
        return self.store.definition.questions_for(cursor.stage_index)[
            cursor.question_index
        ]

    def summary(self) -> PlaythroughSummary:
        return summarize(self.store.definition, self.store.snapshot())

    @property
    def outcome(self) -> Outcome | None:
        """Terminal outcome, or None while the session is still open."""
        phase = self.current_phase()
        if phase == Phase.game_over:
            return Outcome.failed
        if phase in (Phase.quiz_complete, Phase.quest_complete):
            return Outcome.completed
        return None

    # --- Actions ---

    def start(self) -> SessionState:
        """Leave the intro: lesson of the current stage for a quest, straight
        into questions for a quiz."""
        self._require_phase(Phase.intro)
        definition = self.store.definition
        if definition.kind == ActivityKind.quiz:
            self.store.enter_stage(0)
            self._transition(Phase.playing)
            self._last_tick = self.clock()
        else:
            self.store.enter_stage(self.store.snapshot().cursor.stage_index)
            self._transition(Phase.lesson)
        return self.store.set_playing(True)

    def select_stage(self, stage_index: int) -> SessionState:
        """Open the lesson of a stage picked from the progress map."""
        self._require_phase(Phase.intro, Phase.stage_complete)
        if self.store.definition.kind != ActivityKind.quest:
            raise IllegalTransition("A quiz has no stages to select")
        if not 0 <= stage_index < self.store.definition.stage_count:
            raise IllegalTransition(f"Stage {stage_index} does not exist")
        if is_stage_locked(stage_index, self.store.snapshot()):
            raise StageLocked(f"Stage {stage_index} is locked")

        self._check(Phase.lesson)
        self.store.enter_stage(stage_index)
        self._transition(Phase.lesson)
        return self.store.set_playing(True)

    def begin_stage(self) -> SessionState:
        """Finish reading the lesson and start the stage's questions."""
        self._require_phase(Phase.lesson)
        state = self._transition(Phase.playing)
        self._last_tick = self.clock()
        return state

    def tick(self, elapsed: float) -> SessionState:
        """Countdown callback; only runs down while questions are on screen."""
        if self.current_phase() != Phase.playing:
            return self.store.snapshot()
        self._last_tick = self.clock()
        return self.store.tick(elapsed)

    def submit_answer(
        self, response: Response, answered_at: float | None = None
    ) -> AnswerOutcome:
        """Score the question on screen and move on.

        ``answered_at`` is the clock reading when the player answered. Pass it
        when grading happens between the answer and this call; otherwise the
        current clock reading is used.
        """
        self._require_phase(Phase.playing)
        definition = self.store.definition
        now, elapsed = self._elapsed(answered_at)
        time_left = self.store.snapshot().time_left
        if time_left is not None:
            time_left = max(0.0, time_left - elapsed)

        # A rejected response must leave the countdown untouched
        outcome = evaluate_answer(
            self.current_question(), response, self.store.config, time_left
        )
        # Grading time is not charged to the next question
        self._last_tick = max(now, self.clock())
        self.store.tick(elapsed)
        state = self.store.apply_answer_outcome(outcome)

        # Failure is evaluated before completion
        if state.phase == Phase.game_over:
            self._check(Phase.game_over, current=Phase.playing)
            self._enter_terminal(Phase.game_over)
            return outcome

        if self.store.advance_question():
            return outcome

        stage_index = state.cursor.stage_index
        if definition.kind == ActivityKind.quiz:
            self._transition(Phase.quiz_complete)
        elif definition.is_final_stage(stage_index):
            self.store.mark_stage_complete(stage_index)
            self._transition(Phase.quest_complete)
        else:
            self.store.mark_stage_complete(stage_index)
            self._transition(Phase.stage_complete)
        return outcome

    def next_stage(self) -> SessionState:
        self._require_phase(Phase.stage_complete)
        self._check(Phase.lesson)
        previous = self.store.snapshot().cursor.stage_index
        self.store.mark_stage_complete(previous)
        self.store.advance_stage()
        return self._transition(Phase.lesson)

    def reset(self) -> SessionState:
        """Play again from the intro with the same activity and settings."""
        phase = self.current_phase()
        if phase == Phase.loading:
            raise IllegalTransition("Nothing to reset before an activity is loaded")
        if phase != Phase.intro:
            self._check(Phase.intro)
        self._last_tick = None
        return self.store.reset()

    def quit(self) -> Outcome:
        """Navigate away. Any in-flight load is abandoned."""
        outcome = self.outcome or Outcome.aborted
        self._requested_id = None
        self.activity_id = None
        self.store = SessionStore()
        self._last_tick = None
        return outcome

    # --- Internals ---

    def _elapsed(self, at: float | None = None) -> tuple[float, float]:
        now = self.clock() if at is None else at
        if self._last_tick is None:
            return now, 0.0
        return now, max(0.0, now - self._last_tick)

    def _require_phase(self, *allowed: Phase) -> None:
        phase = self.current_phase()
        if phase not in allowed:
            names = ", ".join(p.value for p in allowed)
            raise IllegalTransition(f"Action needs phase {names}; session is in {phase.value}")

    def _check(self, target: Phase, current: Phase | None = None) -> None:
        current = current or self.current_phase()
        if target not in TRANSITIONS[current]:
            raise IllegalTransition(f"{current.value} -> {target.value} is not allowed")

    def _transition(self, target: Phase) -> SessionState:
        self._check(target)
        state = self.store.set_phase(target)
        if target.is_terminal:
            state = self._enter_terminal(target)
        return state

    def _enter_terminal(self, phase: Phase) -> SessionState:
        state = self.store.set_playing(False)
        logger.info(
            "Session %s ended in %s with score %d", self.activity_id, phase.value, state.score
        )
        self._record(state.score, completed=phase != Phase.game_over)
        return state

    def _record(self, score: int, completed: bool) -> None:
        if self.recorder is None:
            return
        try:
            self.recorder(self.activity_id, score, completed)
        except Exception:
            logger.exception("Recording playthrough of %s failed", self.activity_id)
