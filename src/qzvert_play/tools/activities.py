"""MCP tools for browsing, validating and saving activities."""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from qzvert_play.activity_models import ActivityDefinition, parse_activity
from qzvert_play.storage import ActivityStore


def describe_activity(activity: ActivityDefinition) -> dict[str, Any]:
    """Shape and point totals of an activity, without its answer key."""
    stages = [
        {
            "index": i,
            "title": activity.stage_title(i),
            "questions": len(activity.questions_for(i)),
            "points": sum(q.points for q in activity.questions_for(i)),
        }
        for i in range(activity.stage_count)
    ]
    return {
        "id": activity.id,
        "title": activity.title,
        "kind": activity.kind.value,
        "stage_count": activity.stage_count,
        "question_count": sum(s["questions"] for s in stages),
        "total_points": activity.total_points(),
        "stages": stages,
    }


def register(mcp: FastMCP, store: ActivityStore) -> None:
    @mcp.tool()
    def list_activities() -> list[dict]:
        """List saved quizzes and quests with their ids and kinds."""
        return store.list_all()

    @mcp.tool()
    def validate_activity(activity: dict) -> dict:
        """Check an activity definition without saving it.

        Accepts the canonical format ({"kind": "quiz"|"quest", "questions": [...],
        "stages": [...]}) as well as generator output ({"type": "smart_quiz" |
        "quest_course", "quizzes": [...], "stages": [{"lesson": ...}]}).

        Multiple-choice questions need at least two options and a valid
        correct index; every stage needs at least one question. Points default
        to 100 per question.

        Args:
            activity: The activity definition as a JSON object
        """
        return describe_activity(parse_activity(activity))

    @mcp.tool()
    def save_activity(activity: dict) -> dict:
        """Validate and store an activity so it can be played.

        Args:
            activity: The activity definition as a JSON object
        """
        saved = store.save(parse_activity(activity))
        return describe_activity(saved)
