"""
Free space measurement on the system volume.

The reclaimed figure is the free space delta observed across the run window,
not the bytes a run specifically freed. Other processes writing to the volume
during the run skew it either way.
"""

import logging
import os
import sys

import psutil

from winsweep.exceptions import MeasurementError

logger = logging.getLogger(__name__)

_UNITS = ("B", "KB", "MB", "GB", "TB")


def system_volume_root() -> str:
    """Return the root of the volume holding the operating system."""
    if sys.platform == "win32":
        drive = os.environ.get("SystemDrive", "C:")
        return drive.rstrip("\\/") + "\\"
    return "/"


class FreeSpaceMeter:
    """Reads available bytes on one volume."""

    def __init__(self, root: str | None = None) -> None:
        self.root = root or system_volume_root()

    def free_bytes(self) -> int:
        """
        Read the available free space.

        Raises:
            MeasurementError: If the volume cannot be read.
        """
        try:
            usage = psutil.disk_usage(self.root)
        except OSError as e:
            raise MeasurementError(f"Cannot read free space on {self.root}: {e}") from e
        logger.debug("Free space on %s: %d bytes", self.root, usage.free)
        return int(usage.free)

    def __call__(self) -> int:
        return self.free_bytes()


def reclaimed_bytes(before: int, after: int) -> int:
    """Free space gained between two readings, clamped to zero."""
    return max(0, after - before)


def format_bytes(num_bytes: int) -> str:
    """
    Format a byte count for display.

    Example:
        >>> format_bytes(50_000_000)
        '47.68 MB'
    """
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[unit]}"
