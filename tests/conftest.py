"""Pytest configuration for the `tests/` suite.

Shared fixtures: an isolated WINSWEEP_HOME, a small registry whose tasks
record their invocations, and a scripted free-space meter.
"""

from __future__ import annotations

import sys

import psutil
import pytest

from winsweep.cleanup.registry import Category, TaskRegistry


class ScriptedMeter:
    """Free-space meter returning preset readings in order."""

    def __init__(self, *readings: int):
        self.readings = list(readings)
        self.calls = 0

    def __call__(self) -> int:
        self.calls += 1
        return self.readings.pop(0)


@pytest.fixture(autouse=True)
def winsweep_home(tmp_path, monkeypatch):
    """Keep settings out of the real home directory."""
    home = tmp_path / "winsweep-home"
    monkeypatch.setenv("WINSWEEP_HOME", str(home))
    for name in ("WINSWEEP_TASK_TIMEOUT", "WINSWEEP_CLOSE_TIMEOUT", "WINSWEEP_VOLUME"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def invocations() -> list[str]:
    return []


@pytest.fixture
def abc_registry(invocations) -> TaskRegistry:
    """Registry with tasks A, B, C declared in that order."""
    registry = TaskRegistry()
    for task_id, category in (
        ("A", Category.QUICK),
        ("B", Category.PRIVACY),
        ("C", Category.QUICK),
    ):
        registry.register(
            task_id,
            f"Running {task_id}...",
            lambda task_id=task_id: invocations.append(task_id),
            category=category,
        )
    return registry


@pytest.fixture
def scripted_meter():
    return ScriptedMeter


@pytest.fixture
def sleeper_cmd() -> list[str]:
    """A child process that runs for 30s unless killed."""
    return [sys.executable, "-c", "import time; time.sleep(30)"]


@pytest.fixture
def live_sleepers():
    """Returns the children of the test process still running sleeper_cmd."""

    def find() -> list[psutil.Process]:
        found = []
        for proc in psutil.Process().children(recursive=True):
            try:
                if proc.status() == psutil.STATUS_ZOMBIE:
                    continue
                if "time.sleep(30)" in " ".join(proc.cmdline()):
                    found.append(proc)
            except psutil.Error:
                continue
        return found

    return find
