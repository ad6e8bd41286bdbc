"""Owned periodic tasks for a workout session.

``RepeatingTask`` is a small start/pause/resume/stop ticker that either runs on
its own daemon thread or, with ``interval=None``, is ticked by its host. The
rest countdown builds on it.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from tools import MathTools

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 1.0


class RepeatingTask:
    """Call ``callback`` once per ``interval`` seconds while started and unpaused."""

    def __init__(
        self,
        callback: Callable[[], None],
        interval: float | None = DEFAULT_TICK_INTERVAL,
        name: str = "ticker",
    ) -> None:
        if interval is not None and interval <= 0:
            raise ValueError("interval must be positive")
        self.callback = callback
        self.interval = interval
        self.name = name
        self.running = False
        self.paused = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self.paused = False
        if self.interval is None:
            return
        stop = threading.Event()
        self._stop = stop
        self._thread = threading.Thread(
            target=self._run, args=(stop,), name=self.name, daemon=True
        )
        self._thread.start()

    def _run(self, stop: threading.Event) -> None:
        while not stop.wait(self.interval):
            if stop.is_set():
                break
            try:
                self.tick()
            except Exception:
                logger.exception("Tick of %s failed", self.name)

    def tick(self) -> bool:
        """Run the callback once if the task is live; return whether it ran."""
        if not self.running or self.paused:
            return False
        self.callback()
        return True

    def pause(self) -> None:
        if self.running:
            self.paused = True

    def resume(self) -> None:
        if self.running:
            self.paused = False

    def stop(self) -> None:
        """Stop ticking. Safe to call repeatedly and from the ticking thread."""
        self.running = False
        self.paused = False
        self._stop.set()


class RestTimer:
    """Cancellable rest countdown clamped at zero.

    Every :meth:`start` opens a new generation. ``on_complete`` receives the
    generation that reached zero and is called at most once per generation.
    """

    def __init__(
        self,
        on_complete: Callable[[int], None],
        interval: float | None = DEFAULT_TICK_INTERVAL,
    ) -> None:
        self.on_complete = on_complete
        self.interval = interval
        self.seconds_remaining = 0
        self.generation = 0
        self.active = False
        self._fired = True
        self._lock = threading.RLock()
        self._task = RepeatingTask(lambda: None, interval, name="rest-timer")

    @property
    def paused(self) -> bool:
        return self.active and self._task.paused

    def start(self, seconds: int) -> int:
        """Begin a new countdown of ``seconds`` and return its generation."""
        with self._lock:
            self._task.stop()
            self.generation += 1
            generation = self.generation
            self.seconds_remaining = int(MathTools.clamp_min(seconds))
            self.active = True
            self._fired = False
            self._task = RepeatingTask(
                lambda: self._on_tick(generation),
                self.interval,
                name=f"rest-timer-{generation}",
            )
            self._task.start()
            return generation

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            if generation != self.generation or not self.active or self._fired:
                return
            if self.seconds_remaining > 0:
                self.seconds_remaining -= 1
            if self.seconds_remaining > 0:
                return
            self._finish()
        self.on_complete(generation)

    def _finish(self) -> None:
        self._fired = True
        self.active = False
        self._task.stop()

    def tick(self) -> bool:
        """Advance the countdown by one second when driven by the host."""
        return self._task.tick()

    def adjust(self, delta_seconds: int) -> bool:
        with self._lock:
            if not self.active:
                return False
            self.seconds_remaining = int(
                MathTools.clamp_min(self.seconds_remaining + delta_seconds)
            )
            return True

    def pause(self) -> bool:
        with self._lock:
            if not self.active:
                return False
            self._task.pause()
            return True

    def resume(self) -> bool:
        with self._lock:
            if not self.active:
                return False
            self._task.resume()
            return True

    def skip(self) -> bool:
        """Force the countdown to zero and fire completion synchronously."""
        with self._lock:
            if not self.active or self._fired:
                return False
            self.seconds_remaining = 0
            generation = self.generation
            self._finish()
        self.on_complete(generation)
        return True

    def stop(self) -> None:
        """Tear the countdown down without firing completion."""
        with self._lock:
            self.active = False
            self._fired = True
            self.seconds_remaining = 0
            self._task.stop()
