"""MCP tools for playing an activity turn by turn."""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from qzvert_play.grading import SubjectiveGrader
from qzvert_play.session_models import SessionConfig
from qzvert_play.sessions import SessionRegistry, answer_current, session_view


def register(mcp: FastMCP, registry: SessionRegistry, grader: SubjectiveGrader) -> None:
    @mcp.tool()
    async def open_play_session(
        activity_id: str,
        lives_enabled: bool = True,
        max_lives: int = 3,
        timer_enabled: bool = False,
        timer_seconds: int = 300,
    ) -> dict:
        """Load an activity and open a play session on its intro screen.

        Args:
            activity_id: Id of a saved activity (see list_activities)
            lives_enabled: Lose a life per wrong answer; game over at zero
            max_lives: Lives at the start of the session
            timer_enabled: Count down per stage and pay a time bonus
            timer_seconds: Countdown length for each stage
        """
        config = SessionConfig(
            lives_enabled=lives_enabled,
            max_lives=max_lives,
            timer_enabled=timer_enabled,
            timer_seconds=timer_seconds,
        )
        session_id, machine = await registry.open(activity_id, config)
        return session_view(session_id, machine)

    @mcp.tool()
    def get_play_session(session_id: str) -> dict:
        """Current phase, score, lives, progress map and question on screen."""
        with registry.use(session_id) as machine:
            return session_view(session_id, machine)

    @mcp.tool()
    def start_play(session_id: str) -> dict:
        """Leave the intro: a quiz goes straight to its questions, a quest
        opens the lesson of its current stage."""
        with registry.use(session_id) as machine:
            machine.start()
            return session_view(session_id, machine)

    @mcp.tool()
    def select_stage(session_id: str, stage_index: int) -> dict:
        """Open the lesson of an unlocked quest stage.

        Args:
            session_id: Play session id
            stage_index: 0-based stage index from the progress map
        """
        with registry.use(session_id) as machine:
            machine.select_stage(stage_index)
            return session_view(session_id, machine)

    @mcp.tool()
    def begin_stage(session_id: str) -> dict:
        """Finish the lesson and start the stage's questions."""
        with registry.use(session_id) as machine:
            machine.begin_stage()
            return session_view(session_id, machine)

    @mcp.tool()
    def answer_question(
        session_id: str,
        selected_index: int | None = None,
        text: str | None = None,
    ) -> dict:
        """Answer the question on screen.

        Args:
            session_id: Play session id
            selected_index: 0-based option for multiple-choice questions
            text: Free-text answer for subjective questions
        """
        with registry.use(session_id) as machine:
            result = answer_current(machine, grader, selected_index, text)
            return {"result": result, "session": session_view(session_id, machine)}

    @mcp.tool()
    def next_stage(session_id: str) -> dict:
        """Continue from a completed stage to the next stage's lesson."""
        with registry.use(session_id) as machine:
            machine.next_stage()
            return session_view(session_id, machine)

    @mcp.tool()
    def reset_play(session_id: str) -> dict:
        """Play again from the intro with the same settings."""
        with registry.use(session_id) as machine:
            machine.reset()
            return session_view(session_id, machine)

    @mcp.tool()
    def play_summary(session_id: str) -> dict:
        """Score, accuracy per stage and the weakest stage so far."""
        with registry.use(session_id) as machine:
            return machine.summary().model_dump()

    @mcp.tool()
    def close_play_session(session_id: str) -> dict:
        """Leave a play session. Returns how it ended."""
        return {"outcome": registry.close(session_id)}
