"""Shared activity fixtures."""

import pytest

from qzvert_play.activity_models import (
    ActivityDefinition,
    ActivityKind,
    MultipleChoiceQuestion,
    Stage,
    SubjectiveQuestion,
)


def _mc(prompt: str, correct: int = 0, points: int = 100) -> MultipleChoiceQuestion:
    return MultipleChoiceQuestion(
        prompt=prompt,
        options=["first", "second", "third"],
        correct_index=correct,
        explanation=f"Because of {prompt}",
        points=points,
    )


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def quiz():
    """Three multiple-choice questions worth 100, 200 and 300 points."""
    return ActivityDefinition(
        id="quiz01",
        title="Capitals",
        kind=ActivityKind.quiz,
        questions=[
            _mc("France", correct=1, points=100),
            _mc("Japan", correct=2, points=200),
            _mc("Peru", correct=0, points=300),
        ],
    )


@pytest.fixture
def quest():
    """Two stages, two multiple-choice questions each."""
    return ActivityDefinition(
        id="quest01",
        title="Photosynthesis",
        kind=ActivityKind.quest,
        stages=[
            Stage(
                title="Light",
                lesson_text="Plants absorb light.",
                questions=[_mc("Colour", correct=0), _mc("Organelle", correct=1)],
            ),
            Stage(
                title="Sugar",
                lesson_text="Plants make glucose.",
                questions=[_mc("Product", correct=2), _mc("Gas", correct=1)],
            ),
        ],
    )


@pytest.fixture
def long_quest():
    """Four single-question stages."""
    return ActivityDefinition(
        id="quest02",
        title="Rivers",
        kind=ActivityKind.quest,
        stages=[
            Stage(title=f"Stage {i}", lesson_text="...", questions=[_mc(f"Q{i}")])
            for i in range(4)
        ],
    )


@pytest.fixture
def mixed_quiz():
    """One multiple-choice and one subjective question."""
    return ActivityDefinition(
        id="quiz02",
        title="Mixed",
        kind=ActivityKind.quiz,
        questions=[
            _mc("Pick one", correct=1),
            SubjectiveQuestion(
                prompt="Explain osmosis",
                model_answer="Water moves across a membrane toward higher solute concentration",
                points=150,
            ),
        ],
    )
