"""Progress map and playthrough summary — pure views over a session."""

from __future__ import annotations

from qzvert_play.activity_models import ActivityDefinition, ActivityKind
from qzvert_play.session_models import PlaythroughSummary, SessionState, StageView


def is_stage_locked(stage_index: int, state: SessionState) -> bool:
    """A stage opens once its predecessor is done; the current one is always open."""
    return (
        stage_index > 0
        and (stage_index - 1) not in state.completed_stages
        and stage_index != state.cursor.stage_index
    )


def build_progress_map(
    definition: ActivityDefinition, state: SessionState
) -> list[StageView]:
    return [
        StageView(
            index=i,
            title=definition.stage_title(i),
            question_count=len(definition.questions_for(i)),
            locked=is_stage_locked(i, state),
            completed=i in state.completed_stages,
            current=i == state.cursor.stage_index,
        )
        for i in range(definition.stage_count)
    ]


def summarize(definition: ActivityDefinition, state: SessionState) -> PlaythroughSummary:
    """Accuracy overall and per stage, plus the weakest answered stage."""
    answered = len(state.answers)
    correct = sum(1 for a in state.answers if a.correct)

    per_stage: dict[int, list[int]] = {}
    for record in state.answers:
        tally = per_stage.setdefault(record.stage_index, [0, 0])
        tally[0] += 1 if record.correct else 0
        tally[1] += 1
    stage_accuracy = {
        i: round(100.0 * right / total, 1)
        for i, (right, total) in sorted(per_stage.items())
    }

    weakest = None
    if definition.kind == ActivityKind.quest and stage_accuracy:
        # min() keeps the first of equal values, so ties go to the earliest stage
        weakest = min(stage_accuracy, key=lambda i: stage_accuracy[i])

    return PlaythroughSummary(
        score=state.score,
        max_score=definition.total_points(),
        answered=answered,
        correct=correct,
        accuracy=round(100.0 * correct / answered, 1) if answered else 0.0,
        stage_accuracy=stage_accuracy,
        weakest_stage=weakest,
    )
