class TrackerError(Exception):
    """Base class for workout tracker errors."""


class InputError(TrackerError):
    """Raised when a workout plan is missing or fails validation."""


class StaleEventError(TrackerError):
    """Raised when a command's cursor no longer matches the session cursor."""

    def __init__(self, expected: tuple, actual: tuple) -> None:
        super().__init__(f"stale event for cursor {expected}, session is at {actual}")
        self.expected = expected
        self.actual = actual


class PersistenceError(TrackerError):
    """Raised when one of the finish-time writes fails."""

    def __init__(self, write: str, cause: Exception | str) -> None:
        super().__init__(f"{write} failed: {cause}")
        self.write = write
        self.cause = cause
