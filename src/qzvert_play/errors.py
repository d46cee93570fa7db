"""Error taxonomy for activity playback."""

from __future__ import annotations


class PlaybackError(Exception):
    """Base class for everything the playback engine raises."""


class InvalidDefinition(PlaybackError, ValueError):
    """Activity content is malformed or empty; a session cannot start."""


class ActivityNotFound(PlaybackError):
    """No activity exists under the requested id."""

    def __init__(self, activity_id: str) -> None:
        super().__init__(f"Activity not found: {activity_id}")
        self.activity_id = activity_id


class LoadFailure(PlaybackError):
    """Backend or I/O failure while fetching an activity. Retryable."""


class IllegalTransition(PlaybackError):
    """An action was requested that is not legal in the current phase."""


class NoMoreStages(IllegalTransition):
    """advance_stage() was called on the final stage."""


class StageLocked(IllegalTransition):
    """The requested stage has not been unlocked yet."""


class GradingFailure(PlaybackError):
    """The subjective grader could not produce a verdict."""


class SessionNotFound(PlaybackError):
    """No open play session under the requested id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Play session not found: {session_id}")
        self.session_id = session_id
