"""
Cleanup module for winsweep.

This module provides the cleanup engine:
- A registry of named cleanup tasks in canonical order
- A coordinator that runs a selection sequentially and measures reclaimed space
- A gate that asks applications holding files open to close first
- The built-in catalogue of Windows cleanup tasks
"""

from winsweep.cleanup.catalogue import build_default_registry
from winsweep.cleanup.coordinator import RunCoordinator, RunHandle, RunState, Summary
from winsweep.cleanup.registry import Category, Task, TaskRegistry
from winsweep.cleanup.space import FreeSpaceMeter, format_bytes

__all__ = [
    "build_default_registry",
    "RunCoordinator",
    "RunHandle",
    "RunState",
    "Summary",
    "Category",
    "Task",
    "TaskRegistry",
    "FreeSpaceMeter",
    "format_bytes",
]
