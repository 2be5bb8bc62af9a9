"""
Process-liveness gate.

Some tasks touch files owned by running applications (browser profiles).
Before such a run the caller can look for those applications and ask them to
close. This is a courtesy, not a precondition: the run goes ahead whether or
not they exit, and later deletions skip files that are still locked.
"""

import logging
from collections.abc import Iterable

import psutil

from winsweep.cleanup.registry import Task

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_TIMEOUT = 4.0

BROWSER_PROCESSES = (
    "chrome",
    "msedge",
    "brave",
    "vivaldi",
    "opera",
    "arc",
    "firefox",
    "waterfox",
    "palemoon",
)


def normalize_name(name: str) -> str:
    """Lower-case a process name and drop a trailing .exe."""
    name = name.strip().lower()
    if name.endswith(".exe"):
        name = name[:-4]
    return name


def locking_process_names(tasks: Iterable[Task]) -> set[str]:
    """Collect the process names declared by the given tasks."""
    names: set[str] = set()
    for task in tasks:
        names.update(normalize_name(n) for n in task.locking_processes)
    return names


def find_running(names: Iterable[str]) -> list[psutil.Process]:
    """Return live processes whose name matches one of names."""
    wanted = {normalize_name(n) for n in names}
    if not wanted:
        return []

    running = []
    for proc in psutil.process_iter(["name"]):
        try:
            name = proc.info.get("name") or ""
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if normalize_name(name) in wanted:
            running.append(proc)
    return running


def distinct_names(procs: Iterable[psutil.Process]) -> list[str]:
    """Sorted, de-duplicated display names of processes."""
    names = set()
    for proc in procs:
        try:
            names.add(normalize_name(proc.info.get("name") or proc.name()))
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return sorted(names)


def close_processes(
    procs: Iterable[psutil.Process],
    timeout: float = DEFAULT_CLOSE_TIMEOUT,
) -> list[psutil.Process]:
    """
    Ask processes to close and wait a bounded time for them to exit.

    Args:
        procs: Processes to close.
        timeout: Seconds to wait for all of them together.

    Returns:
        Processes still alive after the wait. Not an error.
    """
    asked = []
    for proc in procs:
        try:
            proc.terminate()
            asked.append(proc)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.debug("Not allowed to close pid %s", proc.pid)
            asked.append(proc)

    if not asked:
        return []

    _, alive = psutil.wait_procs(asked, timeout=timeout)
    if alive:
        logger.info("%d process(es) still running after %.0fs", len(alive), timeout)
    return list(alive)
