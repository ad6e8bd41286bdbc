"""Guided workout session: plan traversal with interleaved rest periods.

``WorkoutSession`` owns two periodic tasks (the elapsed-time ticker and the
rest countdown). Commands never raise; anything invalid for the current phase
or addressed to a stale cursor is ignored and reported as ``False``.
"""

from __future__ import annotations

import datetime
import logging
import math
import threading
import time
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from errors import StaleEventError
from plan_loader import load_plan
from rest_timer import DEFAULT_TICK_INTERVAL, RepeatingTask, RestTimer
from schemas import Exercise, SetLog, WorkoutPlan
from stats_service import SessionSummary, session_summary

logger = logging.getLogger(__name__)

DEFAULT_REST_SECONDS = 90
REST_TIME_OPTIONS = (30, 60, 90, 120, 180)


class SessionPhase(str, Enum):
    idle = "idle"
    active = "active"
    resting = "resting"
    complete = "complete"


class ExerciseProgress(BaseModel):
    exercise_index: int
    exercise_name: str
    completed_sets: List[SetLog] = Field(default_factory=list)
    skipped: bool = False


class SessionState(BaseModel):
    """Read-only projection handed to the UI."""

    model_config = ConfigDict(frozen=True)

    phase: SessionPhase
    current_exercise_index: int
    current_set_index: int
    current_exercise: Optional[Exercise] = None
    next_exercise: Optional[Exercise] = None
    resting: bool
    rest_paused: bool
    rest_seconds_remaining: int
    elapsed_seconds: int
    started_at: Optional[float] = None
    progress: List[ExerciseProgress]


class WorkoutSession:
    """State machine guiding a user through a :class:`WorkoutPlan`."""

    def __init__(
        self,
        plan: WorkoutPlan | None,
        rest_seconds: int = DEFAULT_REST_SECONDS,
        tick_interval: float | None = DEFAULT_TICK_INTERVAL,
        log_date: str | None = None,
        on_complete: Callable[[SessionSummary, "WorkoutSession"], Any] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if rest_seconds <= 0:
            raise ValueError("rest_seconds must be positive")
        self.plan = plan
        self.rest_seconds = int(rest_seconds)
        self.log_date = log_date or datetime.date.today().isoformat()
        self.on_complete = on_complete
        self.clock = clock
        self.phase = SessionPhase.idle
        self.current_exercise_index = 0
        self.current_set_index = 1
        self.elapsed_seconds = 0
        self.started_at: float | None = None
        self.finished_early = False
        self.summary: SessionSummary | None = None
        self.progress: list[ExerciseProgress] = []
        if plan is not None:
            self.progress = [
                ExerciseProgress(exercise_index=idx, exercise_name=ex.name)
                for idx, ex in enumerate(plan.exercises)
            ]
        self._lock = threading.RLock()
        self._closed = False
        self._rest_generation: int | None = None
        self._elapsed = RepeatingTask(
            self._on_elapsed_tick, tick_interval, name="elapsed-ticker"
        )
        self.rest_timer = RestTimer(self._on_rest_complete, tick_interval)

    @classmethod
    def from_payload(cls, raw: str | None, **kwargs) -> "WorkoutSession":
        """Create a session from a URL-embedded plan; invalid input yields idle."""
        return cls(load_plan(payload=raw), **kwargs)

    @classmethod
    def from_template(cls, template: Any, **kwargs) -> "WorkoutSession":
        """Create a session from a fetched template object; invalid input yields idle."""
        return cls(load_plan(template=template), **kwargs)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def exercises(self) -> list[Exercise]:
        return list(self.plan.exercises) if self.plan else []

    @property
    def current_exercise(self) -> Exercise | None:
        if self.phase in (SessionPhase.idle, SessionPhase.complete) or not self.plan:
            return None
        return self.plan.exercises[self.current_exercise_index]

    @property
    def next_exercise(self) -> Exercise | None:
        """Return the exercise of the set that follows the current one."""
        exercise = self.current_exercise
        if exercise is None:
            return None
        if self.current_set_index < exercise.prescribed_sets:
            return exercise
        idx = self.current_exercise_index + 1
        if idx < len(self.plan.exercises):
            return self.plan.exercises[idx]
        return None

    @property
    def is_last_exercise(self) -> bool:
        return bool(self.plan) and self.current_exercise_index == len(self.plan.exercises) - 1

    @property
    def resting(self) -> bool:
        return self.phase == SessionPhase.resting

    @property
    def rest_seconds_remaining(self) -> int:
        return self.rest_timer.seconds_remaining if self.resting else 0

    @property
    def rest_paused(self) -> bool:
        return self.resting and self.rest_timer.paused

    def snapshot(self) -> SessionState:
        with self._lock:
            return SessionState(
                phase=self.phase,
                current_exercise_index=self.current_exercise_index,
                current_set_index=self.current_set_index,
                current_exercise=self.current_exercise,
                next_exercise=self.next_exercise,
                resting=self.resting,
                rest_paused=self.rest_paused,
                rest_seconds_remaining=self.rest_seconds_remaining,
                elapsed_seconds=self.elapsed_seconds,
                started_at=self.started_at,
                progress=[p.model_copy(deep=True) for p in self.progress],
            )

    def totals(self) -> SessionSummary:
        """Return the live completion totals."""
        with self._lock:
            return session_summary(self)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Enter the first set of the first exercise and start the clock."""
        with self._lock:
            if self.phase != SessionPhase.idle or self.plan is None or self._closed:
                return False
            self.phase = SessionPhase.active
            self.started_at = self.clock()
            self._elapsed.start()
            logger.info(
                "Started workout '%s' with %d exercises",
                self.plan.title,
                len(self.plan.exercises),
            )
            return True

    def tick(self) -> None:
        """Advance both periodic tasks by one step when driven headlessly."""
        self._elapsed.tick()
        self.rest_timer.tick()

    def teardown(self) -> None:
        """Cancel both periodic tasks without changing the session phase."""
        with self._lock:
            self._closed = True
            self._stop_tasks()

    def set_rest_duration(self, seconds: int) -> None:
        """Set the length of rest periods started from now on."""
        if seconds <= 0:
            raise ValueError("rest duration must be positive")
        with self._lock:
            self.rest_seconds = int(seconds)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def complete_set(
        self,
        set_log: SetLog | dict,
        exercise_index: int | None = None,
        set_index: int | None = None,
    ) -> bool:
        """Record the current set and move to rest, the next exercise or completion."""
        with self._lock:
            if not self._accepts(SessionPhase.active, command="complete_set"):
                return False
            if not self._cursor_matches(exercise_index, set_index):
                return False
            if not isinstance(set_log, SetLog):
                try:
                    set_log = SetLog.model_validate(set_log)
                except ValidationError as e:
                    logger.warning("Ignoring invalid set: %s", e.errors()[0]["msg"])
                    return False
            exercise = self.plan.exercises[self.current_exercise_index]
            self.progress[self.current_exercise_index].completed_sets.append(set_log)
            logger.debug(
                "Completed set %d/%d of %s",
                self.current_set_index,
                exercise.prescribed_sets,
                exercise.name,
            )
            if self.current_set_index < exercise.prescribed_sets:
                self.current_set_index += 1
                self._enter_rest()
            elif self.is_last_exercise:
                self._complete(early=False)
            else:
                self._advance_exercise()
                self._enter_rest()
            return True

    def skip_exercise(self, exercise_index: int | None = None) -> bool:
        """Abandon the exercise under the cursor and move on without rest.

        An exercise that already has completed sets keeps them and is not
        marked as skipped.
        """
        with self._lock:
            if not self._accepts(
                SessionPhase.active, SessionPhase.resting, command="skip_exercise"
            ):
                return False
            if not self._cursor_matches(exercise_index, None):
                return False
            if self.phase == SessionPhase.resting:
                self._cancel_rest()
            entry = self.progress[self.current_exercise_index]
            if not entry.completed_sets:
                entry.skipped = True
            logger.debug(
                "Skipped %s (%d sets kept)", entry.exercise_name, len(entry.completed_sets)
            )
            if self.is_last_exercise:
                self._complete(early=False)
            else:
                self._advance_exercise()
                self.phase = SessionPhase.active
            return True

    def adjust_rest(self, delta_seconds: int) -> bool:
        if (
            isinstance(delta_seconds, bool)
            or not isinstance(delta_seconds, (int, float))
            or not math.isfinite(delta_seconds)
        ):
            logger.warning("Ignoring rest adjustment of %r", delta_seconds)
            return False
        with self._lock:
            if not self._accepts(SessionPhase.resting, command="adjust_rest"):
                return False
            return self.rest_timer.adjust(delta_seconds)

    def pause_rest(self) -> bool:
        with self._lock:
            if not self._accepts(SessionPhase.resting, command="pause_rest"):
                return False
            return self.rest_timer.pause()

    def resume_rest(self) -> bool:
        with self._lock:
            if not self._accepts(SessionPhase.resting, command="resume_rest"):
                return False
            return self.rest_timer.resume()

    def skip_rest(self) -> bool:
        """End the current rest now, through the same path as the countdown."""
        with self._lock:
            if not self._accepts(SessionPhase.resting, command="skip_rest"):
                return False
            return self.rest_timer.skip()

    def finish(self) -> bool:
        """End the session early, keeping whatever progress was recorded."""
        with self._lock:
            if not self._accepts(
                SessionPhase.active, SessionPhase.resting, command="finish"
            ):
                return False
            self._complete(early=True)
            return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accepts(self, *phases: SessionPhase, command: str) -> bool:
        if self._closed or self.phase not in phases:
            logger.debug("Ignoring %s in phase %s", command, self.phase.value)
            return False
        return True

    def _check_cursor(self, exercise_index: int | None, set_index: int | None) -> None:
        expected = (
            self.current_exercise_index if exercise_index is None else exercise_index,
            self.current_set_index if set_index is None else set_index,
        )
        actual = (self.current_exercise_index, self.current_set_index)
        if expected != actual:
            raise StaleEventError(expected, actual)

    def _cursor_matches(self, exercise_index: int | None, set_index: int | None) -> bool:
        try:
            self._check_cursor(exercise_index, set_index)
        except StaleEventError as e:
            logger.debug("Dropping %s", e)
            return False
        return True

    def _advance_exercise(self) -> None:
        self.current_exercise_index += 1
        self.current_set_index = 1

    def _enter_rest(self) -> None:
        self.phase = SessionPhase.resting
        self._rest_generation = self.rest_timer.start(self.rest_seconds)

    def _cancel_rest(self) -> None:
        self._rest_generation = None
        self.rest_timer.stop()

    def _on_rest_complete(self, generation: int) -> None:
        with self._lock:
            if (
                self._closed
                or self.phase != SessionPhase.resting
                or generation != self._rest_generation
            ):
                logger.debug("Dropping stale rest completion %d", generation)
                return
            self._rest_generation = None
            self.phase = SessionPhase.active

    def _on_elapsed_tick(self) -> None:
        with self._lock:
            if self._closed or self.phase not in (SessionPhase.active, SessionPhase.resting):
                return
            wall = int(self.clock() - self.started_at) if self.started_at else 0
            self.elapsed_seconds = max(self.elapsed_seconds + 1, wall)

    def _stop_tasks(self) -> None:
        self._elapsed.stop()
        self._cancel_rest()

    def _complete(self, early: bool) -> None:
        self._stop_tasks()
        self.phase = SessionPhase.complete
        self.finished_early = early
        self.summary = session_summary(self)
        logger.info(
            "Workout '%s' complete%s: %d sets, %.1f kg volume, %ds",
            self.plan.title,
            " (finished early)" if early else "",
            self.summary.total_completed_sets,
            self.summary.total_volume,
            self.summary.duration_seconds,
        )
        if self.on_complete is not None:
            try:
                self.on_complete(self.summary, self)
            except Exception:
                logger.exception("Completion hook failed")
