"""Writes a finished workout session to the backend.

Two writes are issued on completion: the per-exercise logs (replacing the
day's rows) and the daily-aggregate upsert carrying the workout flag, type and
duration. Each write succeeds or fails on its own and failures come back as
data instead of exceptions.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field

from client import TrackerClient
from errors import InputError, PersistenceError
from session_service import WorkoutSession

logger = logging.getLogger(__name__)

EXERCISE_LOGS = "exercise_logs"
DAILY_LOG = "daily_log"

FAILURE_MESSAGES = {
    EXERCISE_LOGS: "Your sets could not be saved",
    DAILY_LOG: "Your daily log could not be updated",
}


class WriteOutcome(BaseModel):
    name: str
    ok: bool
    payload: dict
    error: Optional[str] = None
    response: Any = None


class PersistenceResult(BaseModel):
    outcomes: List[WriteOutcome] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failed(self) -> list[WriteOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def messages(self) -> list[str]:
        """User-facing notices, one per failed write."""
        if self.ok:
            return ["Workout saved"]
        return [f"{FAILURE_MESSAGES[o.name]}: {o.error}" for o in self.failed]


class SessionPersistenceService:
    """Persist completed :class:`WorkoutSession` objects through a :class:`TrackerClient`."""

    def __init__(
        self, client: TrackerClient, workout_type_default: str = "strength"
    ) -> None:
        self.client = client
        self.workout_type_default = workout_type_default
        self.last_result: PersistenceResult | None = None
        self.thread: threading.Thread | None = None

    @staticmethod
    def build_exercise_log_request(session: WorkoutSession) -> dict:
        plan = session.plan
        if plan is None:
            raise InputError("session has no workout plan")
        exercises = []
        for idx, (exercise, progress) in enumerate(zip(plan.exercises, session.progress)):
            exercises.append(
                {
                    "name": exercise.name,
                    "sets": exercise.prescribed_sets,
                    "reps": exercise.rep_range or None,
                    "rir": exercise.target_rir,
                    "notes": exercise.notes,
                    "exerciseOrder": idx,
                    "completedSets": len(progress.completed_sets),
                    "setDetails": [
                        s.model_dump(by_alias=True) for s in progress.completed_sets
                    ],
                    "skipped": progress.skipped,
                }
            )
        return {
            "logDate": session.log_date,
            "workoutTemplateId": plan.template_id,
            "exercises": exercises,
        }

    def build_daily_log_request(self, session: WorkoutSession) -> dict:
        if session.plan is None:
            raise InputError("session has no workout plan")
        summary = session.summary or session.totals()
        return {
            "logDate": session.log_date,
            "workoutCompleted": True,
            "workoutType": session.plan.workout_type or self.workout_type_default,
            "workoutDurationMinutes": summary.duration_minutes,
        }

    def _write(self, name: str, payload: dict) -> WriteOutcome:
        try:
            if name == EXERCISE_LOGS:
                response = self.client.bulk_exercise_logs(payload)
            else:
                response = self.client.upsert_daily_log(payload)
        except Exception as e:
            error = PersistenceError(name, e)
            logger.warning("%s (%s)", error, type(e).__name__)
            return WriteOutcome(name=name, ok=False, payload=payload, error=str(e))
        logger.debug("%s written for %s", name, payload.get("logDate"))
        return WriteOutcome(name=name, ok=True, payload=payload, response=response)

    def persist(self, session: WorkoutSession) -> PersistenceResult:
        """Issue both completion writes; neither failure prevents the other."""
        writes = [
            (EXERCISE_LOGS, self.build_exercise_log_request(session)),
            (DAILY_LOG, self.build_daily_log_request(session)),
        ]
        result = PersistenceResult(
            outcomes=[self._write(name, payload) for name, payload in writes]
        )
        self.last_result = result
        if not result.ok:
            logger.warning(
                "Workout persisted with %d failed write(s)", len(result.failed)
            )
        return result

    def retry(self, result: PersistenceResult) -> PersistenceResult:
        """Re-issue only the failed writes of ``result``."""
        outcomes = [
            o if o.ok else self._write(o.name, o.payload) for o in result.outcomes
        ]
        retried = PersistenceResult(outcomes=outcomes)
        self.last_result = retried
        return retried

    def persist_in_background(
        self,
        session: WorkoutSession,
        callback: Callable[[PersistenceResult], Any] | None = None,
    ) -> threading.Thread:
        def run() -> None:
            result = self.persist(session)
            if callback is not None:
                try:
                    callback(result)
                except Exception:
                    logger.exception("Persistence callback failed")

        thread = threading.Thread(target=run, name="session-persist", daemon=True)
        thread.start()
        return thread

    def attach(
        self,
        session: WorkoutSession,
        callback: Callable[[PersistenceResult], Any] | None = None,
    ) -> None:
        """Persist ``session`` in the background once it completes."""

        def on_complete(summary, completed: WorkoutSession) -> None:
            self.thread = self.persist_in_background(completed, callback)

        session.on_complete = on_complete
