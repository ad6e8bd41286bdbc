from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from tools import MathTools

if TYPE_CHECKING:
    from session_service import WorkoutSession


class SessionSummary(BaseModel):
    """Totals derived from a workout session."""

    model_config = ConfigDict(frozen=True)

    workout_title: str
    workout_type: str
    exercise_count: int
    total_completed_sets: int
    total_volume: float
    completed_exercise_count: int
    partial_exercise_count: int
    skipped_exercise_count: int
    duration_seconds: int
    duration_minutes: int
    finished_early: bool


def session_summary(session: "WorkoutSession") -> SessionSummary:
    """Compute completion totals for ``session``.

    Nothing is cached: every call walks the recorded progress again. An
    exercise counts as completed once its recorded sets reach the prescribed
    number; exercises with fewer recorded sets count as partial.
    """
    plan = session.plan
    exercises = plan.exercises if plan else []
    total_sets = 0
    completed = 0
    partial = 0
    skipped = 0
    pairs: list[tuple[int, float]] = []
    for entry in session.progress:
        n_sets = len(entry.completed_sets)
        total_sets += n_sets
        pairs.extend((s.reps, s.weight_kg) for s in entry.completed_sets)
        if entry.skipped:
            skipped += 1
        elif n_sets >= exercises[entry.exercise_index].prescribed_sets:
            completed += 1
        elif n_sets > 0:
            partial += 1
    duration = int(session.elapsed_seconds)
    return SessionSummary(
        workout_title=plan.title if plan else "",
        workout_type=plan.workout_type if plan else "",
        exercise_count=len(exercises),
        total_completed_sets=total_sets,
        total_volume=MathTools.volume(pairs),
        completed_exercise_count=completed,
        partial_exercise_count=partial,
        skipped_exercise_count=skipped,
        duration_seconds=duration,
        duration_minutes=MathTools.seconds_to_minutes(duration),
        finished_early=bool(getattr(session, "finished_early", False)),
    )
