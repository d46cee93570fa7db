"""JSON file storage for activity definitions and finished playthroughs."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from qzvert_play.activity_models import (
    ACTIVITY_ID_PATTERN,
    ActivityDefinition,
    normalize_kind,
    parse_activity,
)
from qzvert_play.errors import ActivityNotFound, InvalidDefinition

logger = logging.getLogger(__name__)

# Default storage directories (override with ACTIVITY_DIR / RESULTS_DIR env vars)
_DATA_ROOT = Path(__file__).parent.parent.parent / "data"
ACTIVITY_DIR = Path(os.environ.get("ACTIVITY_DIR", _DATA_ROOT / "activities"))
RESULTS_DIR = Path(os.environ.get("RESULTS_DIR", _DATA_ROOT / "results"))


class ActivityStore:
    """JSON file-based activity storage; also the playback content loader."""

    def __init__(self, directory: Path = ACTIVITY_DIR) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, activity_id: str) -> Path:
        # Ids that could leave the directory never name a stored activity
        if not re.fullmatch(ACTIVITY_ID_PATTERN, activity_id):
            raise ActivityNotFound(activity_id)
        return self.directory / f"{activity_id}.json"

    def save(self, activity: ActivityDefinition) -> ActivityDefinition:
        path = self._path(activity.id)
        path.write_text(
            json.dumps(activity.model_dump(mode="json"), indent=2, ensure_ascii=False)
        )
        return activity

    def load(self, activity_id: str) -> ActivityDefinition:
        path = self._path(activity_id)
        if not path.exists():
            raise ActivityNotFound(activity_id)
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise InvalidDefinition(f"Activity {activity_id} is not valid JSON: {e}") from e
        if isinstance(data, dict):
            data.setdefault("id", activity_id)
        return parse_activity(data)

    async def load_async(self, activity_id: str) -> ActivityDefinition:
        """Loader for PlaybackMachine.load; file I/O runs off the event loop."""
        return await asyncio.to_thread(self.load, activity_id)

    def delete(self, activity_id: str) -> None:
        path = self._path(activity_id)
        if path.exists():
            path.unlink()

    def list_all(self) -> list[dict[str, str]]:
        activities = []
        for p in sorted(self.directory.glob("*.json")):
            try:
                data = json.loads(p.read_text())
                activities.append(
                    {
                        "id": data.get("id", p.stem),
                        "title": data.get("title", "Untitled"),
                        "kind": normalize_kind(data).value,
                    }
                )
            except (json.JSONDecodeError, AttributeError, InvalidDefinition):
                logger.warning("Skipping unreadable activity file %s", p.name)
                continue
        return activities


class PlaythroughRecord(BaseModel):
    activity_id: str
    score: int
    completed: bool
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ResultsLog:
    """Append-only JSON-lines log of finished playthroughs."""

    def __init__(self, directory: Path = RESULTS_DIR) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path = self.directory / "playthroughs.jsonl"

    def record_playthrough(self, activity_id: str, final_score: int, completed: bool) -> None:
        record = PlaythroughRecord(
            activity_id=activity_id, score=final_score, completed=completed
        )
        with self.path.open("a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")
        logger.info(
            "Recorded playthrough of %s: score=%d completed=%s",
            activity_id,
            final_score,
            completed,
        )

    def list_results(self, activity_id: str | None = None) -> list[PlaythroughRecord]:
        if not self.path.exists():
            return []
        records = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            record = PlaythroughRecord.model_validate_json(line)
            if activity_id is None or record.activity_id == activity_id:
                records.append(record)
        return records
