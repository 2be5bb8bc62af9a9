"""
Custom exceptions for winsweep.
"""


class WinsweepError(Exception):
    """Base exception for winsweep errors."""
    pass


class NotFoundError(WinsweepError, KeyError):
    """Raised when a task id is not present in the registry."""

    def __init__(self, task_id: str):
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Unknown cleanup task: {self.task_id}"


class DuplicateTaskError(WinsweepError):
    """Raised when a task id is registered twice."""
    pass


class NoTasksSelectedError(WinsweepError):
    """Raised when a run is requested with an empty selection."""

    def __init__(self, message: str = "Select at least one cleanup option."):
        super().__init__(message)


class MeasurementError(WinsweepError):
    """Raised when free space on the target volume cannot be read."""
    pass
