import math
from typing import Iterable, Tuple


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    @staticmethod
    def clamp_min(value: float, min_value: float = 0) -> float:
        """Return ``value`` raised to ``min_value`` when below it."""
        return max(min_value, value)

    @staticmethod
    def volume(sets: Iterable[Tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * (weight or 0.0)
        return vol

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves rounded up."""
        return int(math.floor(value + 0.5))

    @classmethod
    def seconds_to_minutes(cls, seconds: float) -> int:
        """Return ``seconds`` as whole minutes, rounding halves up."""
        if seconds < 0:
            raise ValueError("seconds must be non-negative")
        return cls.round_half_up(seconds / 60)
