"""FastAPI HTTP layer for activity storage and play sessions."""

from __future__ import annotations

import hmac
import logging
import os
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from qzvert_play.activity_models import parse_activity
from qzvert_play.errors import (
    ActivityNotFound,
    GradingFailure,
    IllegalTransition,
    InvalidDefinition,
    LoadFailure,
    PlaybackError,
    SessionNotFound,
)
from qzvert_play.grading import default_grader
from qzvert_play.session_models import SessionConfig
from qzvert_play.sessions import SessionRegistry, answer_current, session_view
from qzvert_play.storage import ActivityStore, ResultsLog

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="QzVert Play API",
    description="Quiz and quest playback with lives, timers and stage unlocking",
    version="0.1.0",
)

API_KEY = os.getenv("API_KEY")
if not API_KEY:
    logger.warning("API_KEY not set. All requests will be allowed.")


@app.middleware("http")
async def verify_api_key(request: Request, call_next):
    if API_KEY and request.url.path != "/health":
        key = request.headers.get("x-api-key", "")
        if not hmac.compare_digest(key, API_KEY):
            return JSONResponse(status_code=401, content={"detail": "Invalid API key"})
    return await call_next(request)


# Most specific first; the first isinstance match wins
_ERROR_STATUS: list[tuple[type[PlaybackError], int]] = [
    (ActivityNotFound, 404),
    (SessionNotFound, 404),
    (InvalidDefinition, 422),
    (IllegalTransition, 409),
    (LoadFailure, 503),
    (GradingFailure, 502),
]


@app.exception_handler(PlaybackError)
async def playback_error_handler(request: Request, exc: PlaybackError):
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.get("/health")
def health():
    """Unauthenticated health check."""
    return {"status": "ok"}


activity_store = ActivityStore()
results_log = ResultsLog()
registry = SessionRegistry(activity_store, results_log)
grader = default_grader()


# --- Request models ---


class PlayRequest(BaseModel):
    activity_id: str
    config: SessionConfig | None = None


class AnswerRequest(BaseModel):
    selected_index: int | None = None
    text: str | None = None


# --- Activity endpoints ---


@app.get("/api/activities")
def list_activities():
    """List all saved activities."""
    return activity_store.list_all()


@app.post("/api/activities")
def create_activity(data: dict[str, Any]):
    """Validate and save an activity (canonical or generator format)."""
    activity = parse_activity(data)
    return activity_store.save(activity).model_dump(mode="json")


@app.get("/api/activities/{activity_id}")
def get_activity(activity_id: str):
    """Load an activity by ID."""
    try:
        return activity_store.load(activity_id).model_dump(mode="json")
    except ActivityNotFound:
        raise HTTPException(status_code=404, detail=f"Activity not found: {activity_id}")


@app.put("/api/activities/{activity_id}")
def update_activity(activity_id: str, data: dict[str, Any]):
    """Replace an existing activity."""
    activity = parse_activity({**data, "id": activity_id})
    return activity_store.save(activity).model_dump(mode="json")


@app.delete("/api/activities/{activity_id}")
def delete_activity(activity_id: str):
    """Delete an activity."""
    activity_store.delete(activity_id)
    return {"status": "deleted"}


# --- Play session endpoints ---


@app.post("/api/play")
async def open_session(req: PlayRequest):
    """Load an activity and open a play session on its intro screen."""
    session_id, machine = await registry.open(req.activity_id, req.config)
    return session_view(session_id, machine)


@app.get("/api/play/{session_id}")
def get_session(session_id: str):
    with registry.use(session_id) as machine:
        return session_view(session_id, machine)


@app.post("/api/play/{session_id}/start")
def start_session(session_id: str):
    """Start Quiz / Begin Quest."""
    with registry.use(session_id) as machine:
        machine.start()
        return session_view(session_id, machine)


@app.post("/api/play/{session_id}/stages/{stage_index}/select")
def select_stage(session_id: str, stage_index: int):
    """Open a stage from the progress map."""
    with registry.use(session_id) as machine:
        machine.select_stage(stage_index)
        return session_view(session_id, machine)


@app.post("/api/play/{session_id}/begin")
def begin_stage(session_id: str):
    """Leave the lesson and start answering."""
    with registry.use(session_id) as machine:
        machine.begin_stage()
        return session_view(session_id, machine)


@app.post("/api/play/{session_id}/answer")
def answer_question(session_id: str, req: AnswerRequest):
    """Answer the current question; returns the verdict and the next view."""
    with registry.use(session_id) as machine:
        result = answer_current(machine, grader, req.selected_index, req.text)
        return {"result": result, "session": session_view(session_id, machine)}


@app.post("/api/play/{session_id}/next-stage")
def next_stage(session_id: str):
    with registry.use(session_id) as machine:
        machine.next_stage()
        return session_view(session_id, machine)


@app.post("/api/play/{session_id}/reset")
def reset_session(session_id: str):
    """Play again from the intro."""
    with registry.use(session_id) as machine:
        machine.reset()
        return session_view(session_id, machine)


@app.get("/api/play/{session_id}/summary")
def session_summary(session_id: str):
    with registry.use(session_id) as machine:
        return machine.summary().model_dump()


@app.delete("/api/play/{session_id}")
def quit_session(session_id: str):
    """Leave the session; it cannot be resumed."""
    return {"status": "closed", "outcome": registry.close(session_id)}


# --- Results ---


@app.get("/api/results")
def list_results(activity_id: str | None = None):
    """Finished playthroughs, optionally for one activity."""
    return [r.model_dump(mode="json") for r in results_log.list_results(activity_id)]


def main():
    """Run the API server."""
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
