from .exceptions import (
    DuplicateTaskError,
    MeasurementError,
    NoTasksSelectedError,
    NotFoundError,
    WinsweepError,
)

__version__ = "0.1.0"

# "main" stays out to keep the CLI import lazy
__all__ = [
    "WinsweepError",
    "NotFoundError",
    "DuplicateTaskError",
    "NoTasksSelectedError",
    "MeasurementError",
]
