"""Open play sessions shared by the HTTP and MCP surfaces.

Each session id owns exactly one PlaybackMachine. Views built here never
reveal correct answers for questions that have not been answered yet.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from qzvert_play.activity_models import MultipleChoiceQuestion, Question, SubjectiveQuestion
from qzvert_play.errors import IllegalTransition, SessionNotFound
from qzvert_play.evaluator import ChoiceResponse, TextResponse
from qzvert_play.grading import SubjectiveGrader
from qzvert_play.playback import PlaybackMachine
from qzvert_play.session_models import Phase, SessionConfig
from qzvert_play.storage import ActivityStore, ResultsLog

logger = logging.getLogger(__name__)


# Idle sessions are dropped after this many seconds (override with SESSION_TTL)
SESSION_TTL = float(os.environ.get("SESSION_TTL", 3600))


class _OpenSession:
    """A machine plus the lock that serializes actions on it."""

    def __init__(self, machine: PlaybackMachine, now: float) -> None:
        self.machine = machine
        self.lock = threading.Lock()
        self.last_used = now


class SessionRegistry:
    """In-memory map of session id -> PlaybackMachine.

    Actions on one session run one at a time under its lock. Sessions idle for
    longer than ``ttl`` seconds are evicted as if the player had quit.
    """

    def __init__(
        self,
        store: ActivityStore,
        results: ResultsLog | None = None,
        clock: Callable[[], float] = time.monotonic,
        ttl: float = SESSION_TTL,
    ) -> None:
        self.store = store
        self.results = results
        self.clock = clock
        self.ttl = ttl
        self._sessions: dict[str, _OpenSession] = {}
        self._guard = threading.Lock()

    async def open(
        self, activity_id: str, config: SessionConfig | None = None
    ) -> tuple[str, PlaybackMachine]:
        self.evict_idle()
        recorder = self.results.record_playthrough if self.results else None
        machine = PlaybackMachine(recorder=recorder, clock=self.clock)
        await machine.load(activity_id, self.store.load_async, config)
        session_id = uuid.uuid4().hex[:12]
        with self._guard:
            self._sessions[session_id] = _OpenSession(machine, self.clock())
        logger.info("Opened play session %s for %s", session_id, activity_id)
        return session_id, machine

    def _entry(self, session_id: str) -> _OpenSession:
        self.evict_idle()
        with self._guard:
            try:
                return self._sessions[session_id]
            except KeyError:
                raise SessionNotFound(session_id) from None

    @contextmanager
    def use(self, session_id: str) -> Iterator[PlaybackMachine]:
        """Hold the session's lock for one action and its view."""
        entry = self._entry(session_id)
        with entry.lock:
            entry.last_used = self.clock()
            yield entry.machine
            entry.last_used = self.clock()

    def close(self, session_id: str) -> str:
        with self._guard:
            entry = self._sessions.pop(session_id, None)
        if entry is None:
            raise SessionNotFound(session_id)
        with entry.lock:
            return entry.machine.quit().value

    def evict_idle(self) -> list[str]:
        """Quit and drop sessions idle for longer than the TTL."""
        cutoff = self.clock() - self.ttl
        with self._guard:
            idle = [
                sid
                for sid, entry in self._sessions.items()
                if entry.last_used < cutoff and not entry.lock.locked()
            ]
            evicted = [self._sessions.pop(sid) for sid in idle]
        for sid, entry in zip(idle, evicted):
            outcome = entry.machine.quit()
            logger.info("Evicted idle play session %s (%s)", sid, outcome.value)
        return idle

    def __len__(self) -> int:
        return len(self._sessions)


def question_view(question: Question) -> dict[str, Any]:
    """Question as shown to the player (no answer key)."""
    view: dict[str, Any] = {
        "type": question.type,
        "prompt": question.prompt,
        "points": question.points,
    }
    if isinstance(question, MultipleChoiceQuestion):
        view["options"] = list(question.options)
    return view


def session_view(session_id: str, machine: PlaybackMachine) -> dict[str, Any]:
    definition = machine.definition
    state = machine.state
    phase = state.phase

    view: dict[str, Any] = {
        "session_id": session_id,
        "activity_id": machine.activity_id,
        "title": definition.title,
        "kind": definition.kind.value,
        "phase": phase.value,
        "score": state.score,
        "lives": state.lives,
        "time_left": state.time_left,
        "cursor": state.cursor.model_dump(),
        "completed_stages": sorted(state.completed_stages),
        "progress_map": [s.model_dump() for s in machine.progress_map()],
        "outcome": machine.outcome.value if machine.outcome else None,
    }

    stage = machine.current_stage()
    if stage is not None and phase in (Phase.lesson, Phase.playing):
        view["stage"] = {"title": stage.title, "lesson_text": stage.lesson_text}

    if phase == Phase.playing:
        questions = definition.questions_for(state.cursor.stage_index)
        view["question"] = question_view(machine.current_question())
        view["question_number"] = state.cursor.question_index + 1
        view["question_total"] = len(questions)
    return view


def answer_current(
    machine: PlaybackMachine,
    grader: SubjectiveGrader,
    selected_index: int | None = None,
    text: str | None = None,
) -> dict[str, Any]:
    """Grade and submit an answer to the question on screen.

    Returns the verdict plus the answer key for feedback. The answer time is
    taken before grading, so grader latency never runs down the countdown.
    Callers hold the session lock (SessionRegistry.use).
    """
    if machine.current_phase() != Phase.playing:
        raise IllegalTransition("No question is being played")

    question = machine.current_question()
    answered_at = machine.clock()
    if isinstance(question, SubjectiveQuestion):
        if text is None:
            raise IllegalTransition("Subjective questions take a text answer")
        grade = grader.grade(question.prompt, question.model_answer, text, question.points)
        outcome = machine.submit_answer(TextResponse(text=text, grade=grade), answered_at)
        key: dict[str, Any] = {"model_answer": question.model_answer}
    else:
        if selected_index is None:
            raise IllegalTransition("Multiple-choice questions take a selected_index")
        outcome = machine.submit_answer(
            ChoiceResponse(selected_index=selected_index), answered_at
        )
        key = {"correct_index": question.correct_index}

    return {
        **outcome.model_dump(),
        **key,
        "explanation": question.explanation,
        "phase": machine.current_phase().value,
    }
