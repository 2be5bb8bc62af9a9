"""
Best-effort cleanup primitives.

Every helper here absorbs its own failures: a locked file, a missing path, an
access-denied registry hive or an absent system tool is skipped and the helper
moves on. Cleanup tasks are composed from these helpers and wrapped with
best_effort() so nothing escapes to the RunCoordinator.
"""

import contextlib
import fnmatch
import functools
import logging
import os
import shutil
import stat
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 300.0

# Hide the console window of spawned system tools on Windows.
_CREATE_NO_WINDOW = 0x08000000 if sys.platform == "win32" else 0

PathLike = str | os.PathLike[str] | None


@dataclass(frozen=True)
class Outcome:
    """Result of one attempt. Built internally and dropped after logging."""

    name: str
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def attempt(fn: Callable[[], object], name: str | None = None) -> Outcome:
    """Run fn and capture any exception as an Outcome."""
    label = name or getattr(fn, "__name__", repr(fn))
    try:
        fn()
    except Exception as e:
        return Outcome(label, e)
    return Outcome(label)


def best_effort(fn: Callable[[], object]) -> Callable[[], None]:
    """
    Wrap a callable into a task action that cannot raise.

    The attempt is recorded as an Outcome, logged, and discarded. Wrapping an
    already wrapped action returns it unchanged.
    """
    if getattr(fn, "__best_effort__", False):
        return fn  # type: ignore[return-value]

    @functools.wraps(fn)
    def action() -> None:
        outcome = attempt(fn)
        if not outcome.ok:
            logger.debug("%s failed: %s", outcome.name, outcome.error)

    action.__best_effort__ = True  # type: ignore[attr-defined]
    return action


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


def is_link(path: PathLike) -> bool:
    """
    True for symlinks, junctions and other reparse points.

    Deleting through one of these would reach files outside the tree being
    cleaned, so callers remove the link itself and never descend into it.
    """
    if not path:
        return False
    try:
        st = os.lstat(path)
    except OSError:
        return False
    if stat.S_ISLNK(st.st_mode):
        return True
    return bool(getattr(st, "st_file_attributes", 0) & stat.FILE_ATTRIBUTE_REPARSE_POINT)


def remove_link(path: PathLike) -> bool:
    """Remove a link without touching its target. Returns True if it was removed."""
    if not path:
        return False
    try:
        os.unlink(path)
        return True
    except OSError:
        pass
    # Directory symlinks and junctions on Windows only go through rmdir.
    try:
        os.rmdir(path)
        return True
    except OSError as e:
        logger.debug("Could not remove link %s: %s", path, e)
        return False


def try_delete_file(path: PathLike) -> bool:
    """Delete a single file if it exists. Returns True if it was removed."""
    if not path:
        return False
    try:
        p = Path(path)
        if p.is_file() or p.is_symlink():
            p.unlink()
            return True
    except OSError as e:
        logger.debug("Could not delete %s: %s", path, e)
    return False


def try_delete_directory(path: PathLike) -> bool:
    """Delete a directory tree if it exists. Returns True if it was removed."""
    if not path:
        return False
    p = Path(path)
    if is_link(p):
        return remove_link(p)
    if not p.is_dir():
        return False
    try:
        shutil.rmtree(p)
        return True
    except OSError as e:
        logger.debug("Could not delete %s: %s", path, e)
        return False


def delete_directory_contents(path: PathLike) -> None:
    """
    Empty a directory but keep the directory itself.

    Files and links go first. Links are removed without following them. A
    subdirectory that cannot be removed as a whole is emptied recursively
    instead, so files that are not in use still go.
    """
    if not path:
        return
    p = Path(path)
    try:
        entries = list(p.iterdir())
    except OSError as e:
        logger.debug("Could not list %s: %s", path, e)
        return

    subdirs = []
    for entry in entries:
        if is_link(entry):
            remove_link(entry)
        elif entry.is_dir():
            subdirs.append(entry)
        else:
            try_delete_file(entry)

    for entry in subdirs:
        if not try_delete_directory(entry):
            delete_directory_contents(entry)


def delete_directory_targets(paths: Iterable[PathLike]) -> None:
    """Empty each existing directory in paths. Blank entries are skipped."""
    seen: set[str] = set()
    for path in paths:
        if not path:
            continue
        key = os.path.normcase(os.fspath(path))
        if key in seen:
            continue
        seen.add(key)
        if Path(path).is_dir():
            delete_directory_contents(path)


def delete_files_by_pattern(directory: PathLike, pattern: str) -> int:
    """Delete files directly under directory matching a glob pattern."""
    if not directory:
        return 0
    removed = 0
    try:
        names = os.listdir(directory)
    except OSError:
        return 0
    for name in names:
        if fnmatch.fnmatch(name.lower(), pattern.lower()):
            if try_delete_file(Path(directory) / name):
                removed += 1
    return removed


def remove_empty_directories(root: PathLike, skip: Iterable[PathLike] = ()) -> int:
    """
    Remove empty directories below root, bottom-up.

    Directories in skip, and everything beneath them, are never touched.
    Root itself is kept.
    """
    if not root:
        return 0
    skipped = {os.path.normcase(os.path.normpath(os.fspath(s))) for s in skip if s}
    removed = 0

    def scan(directory: str) -> None:
        nonlocal removed
        if os.path.normcase(os.path.normpath(directory)) in skipped:
            return
        try:
            with os.scandir(directory) as it:
                subdirs = [e.path for e in it if _is_real_dir(e)]
        except OSError:
            return
        for sub in subdirs:
            scan(sub)
        try:
            if not os.listdir(directory):
                os.rmdir(directory)
                removed += 1
        except OSError:
            pass

    try:
        with os.scandir(root) as it:
            top = [e.path for e in it if _is_real_dir(e)]
    except OSError:
        return 0
    for directory in top:
        scan(directory)
    return removed


def _is_real_dir(entry: os.DirEntry) -> bool:
    return entry.is_dir(follow_symlinks=False) and not is_link(entry.path)


# ---------------------------------------------------------------------------
# External tools
# ---------------------------------------------------------------------------


class TaskBudget:
    """
    Time budget of one task and the tools it has running.

    The coordinator binds a budget to the thread that runs a task. run_tool
    never waits past the budget's deadline, and expire() kills whatever the
    task still has running so nothing outlives the task's slot.

    Args:
        seconds (float | None): Budget for the whole task, None for no limit.
    """

    def __init__(self, seconds: float | None = None) -> None:
        self.deadline = None if seconds is None else time.monotonic() + seconds
        self.expired = False
        self._running: set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def limit(self, timeout: float | None) -> float | None:
        """The tighter of timeout and the time left."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def track(self, proc: subprocess.Popen) -> None:
        with self._lock:
            if not self.expired:
                self._running.add(proc)
                return
        kill_process_tree(proc.pid)

    def untrack(self, proc: subprocess.Popen) -> None:
        with self._lock:
            self._running.discard(proc)

    def expire(self) -> int:
        """
        Refuse new tools and kill the running ones with their children.

        Returns:
            int: Number of tools that were still running.
        """
        with self._lock:
            self.expired = True
            running = list(self._running)
        for proc in running:
            kill_process_tree(proc.pid)
        return len(running)


_bound = threading.local()


@contextlib.contextmanager
def bound_to(budget: TaskBudget) -> Iterator[TaskBudget]:
    """Make budget apply to run_tool calls made on this thread."""
    previous = getattr(_bound, "budget", None)
    _bound.budget = budget
    try:
        yield budget
    finally:
        _bound.budget = previous


def current_budget() -> TaskBudget | None:
    return getattr(_bound, "budget", None)


def kill_process_tree(pid: int, timeout: float = 5.0) -> None:
    """Kill a process and its descendants, children first."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    try:
        procs = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        procs = []
    procs.append(parent)
    for proc in procs:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    psutil.wait_procs(procs, timeout=timeout)


def run_tool(
    executable: str,
    *args: str,
    timeout: float | None = DEFAULT_TOOL_TIMEOUT,
    capture: bool = False,
) -> subprocess.CompletedProcess | None:
    """
    Run a system tool without a console window and wait for it.

    The wait is cut short by the budget of the task running on this thread,
    if any. A tool that runs out of time is killed along with its children.

    Returns:
        The completed process, or None if the tool is missing, failed to
        start, or ran out of time.
    """
    cmd = [executable, *args]
    budget = current_budget()
    if budget is not None and budget.expired:
        logger.debug("Not starting %s, task is out of time", executable)
        return None
    limit = timeout if budget is None else budget.limit(timeout)
    if limit is not None and limit <= 0:
        logger.warning("Not starting %s, task is out of time", executable)
        return None

    pipe = subprocess.PIPE if capture else None
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=pipe,
            stderr=pipe,
            text=True,
            creationflags=_CREATE_NO_WINDOW,
        )
    except OSError as e:
        logger.debug("Could not run %s: %s", executable, e)
        return None

    if budget is not None:
        budget.track(proc)
    try:
        stdout, stderr = proc.communicate(timeout=limit)
    except subprocess.TimeoutExpired:
        kill_process_tree(proc.pid)
        proc.communicate()
        logger.warning("%s timed out after %.0fs", executable, limit)
        return None
    finally:
        if budget is not None:
            budget.untrack(proc)

    if proc.returncode != 0:
        logger.debug("%s exited with %d", " ".join(cmd), proc.returncode)
    return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)


def extract_executable_path(command: str) -> str:
    """
    Pull the executable path out of a command line.

    Quoted paths are unquoted. Otherwise the first token is used, cut after
    ".exe" when present.

    Example:
        >>> extract_executable_path('"C:\\\\App\\\\app.exe" --flag')
        'C:\\\\App\\\\app.exe'
    """
    if not command or not command.strip():
        return ""
    trimmed = command.strip()
    if trimmed.startswith('"'):
        end = trimmed.find('"', 1)
        if end > 1:
            return trimmed[1:end]
    space = trimmed.find(" ")
    candidate = trimmed[:space] if space > 0 else trimmed
    exe_index = candidate.lower().find(".exe")
    if exe_index >= 0:
        return candidate[: exe_index + 4]
    return candidate


# ---------------------------------------------------------------------------
# Registry (Windows only; no-ops elsewhere)
# ---------------------------------------------------------------------------


def _winreg():
    if sys.platform != "win32":
        return None
    import winreg

    return winreg


def _hive(name: str):
    reg = _winreg()
    if reg is None:
        return None
    return {
        "HKCU": reg.HKEY_CURRENT_USER,
        "HKLM": reg.HKEY_LOCAL_MACHINE,
        "HKCR": reg.HKEY_CLASSES_ROOT,
    }[name]


def registry_value_names(hive: str, subkey: str, view: int = 0) -> list[str]:
    reg = _winreg()
    if reg is None:
        return []
    try:
        with reg.OpenKey(_hive(hive), subkey, 0, reg.KEY_READ | view) as key:
            names = []
            index = 0
            while True:
                try:
                    names.append(reg.EnumValue(key, index)[0])
                except OSError:
                    break
                index += 1
            return names
    except OSError:
        return []


def registry_subkey_names(hive: str, subkey: str, view: int = 0) -> list[str]:
    reg = _winreg()
    if reg is None:
        return []
    try:
        with reg.OpenKey(_hive(hive), subkey, 0, reg.KEY_READ | view) as key:
            names = []
            index = 0
            while True:
                try:
                    names.append(reg.EnumKey(key, index))
                except OSError:
                    break
                index += 1
            return names
    except OSError:
        return []


def read_registry_value(hive: str, subkey: str, name: str = "", view: int = 0) -> str | None:
    """Read a value as a string. Empty name reads the default value."""
    reg = _winreg()
    if reg is None:
        return None
    try:
        with reg.OpenKey(_hive(hive), subkey, 0, reg.KEY_READ | view) as key:
            value, _ = reg.QueryValueEx(key, name)
    except OSError:
        return None
    return None if value is None else str(value)


def registry_key_exists(hive: str, subkey: str) -> bool:
    reg = _winreg()
    if reg is None:
        return False
    try:
        with reg.OpenKey(_hive(hive), subkey):
            return True
    except OSError:
        return False


def delete_registry_value(hive: str, subkey: str, name: str, view: int = 0) -> bool:
    reg = _winreg()
    if reg is None:
        return False
    try:
        with reg.OpenKey(_hive(hive), subkey, 0, reg.KEY_SET_VALUE | view) as key:
            reg.DeleteValue(key, name)
        return True
    except OSError:
        return False


def clear_registry_values(hive: str, subkey: str, keep: Iterable[str] = ()) -> int:
    """Delete every value under a key except those named in keep."""
    kept = {k.lower() for k in keep}
    removed = 0
    for name in registry_value_names(hive, subkey):
        if name.lower() in kept:
            continue
        if delete_registry_value(hive, subkey, name):
            removed += 1
    return removed


def delete_registry_tree(hive: str, subkey: str, view: int = 0) -> bool:
    """Delete a key and everything beneath it."""
    reg = _winreg()
    if reg is None:
        return False
    for child in registry_subkey_names(hive, subkey, view):
        delete_registry_tree(hive, f"{subkey}\\{child}", view)
    try:
        reg.DeleteKeyEx(_hive(hive), subkey, reg.KEY_WOW64_64KEY if view == 0 else view, 0)
        return True
    except OSError:
        return False


def delete_registry_subkeys(hive: str, subkey: str) -> int:
    """Delete every child key of a key."""
    removed = 0
    for child in registry_subkey_names(hive, subkey):
        if delete_registry_tree(hive, f"{subkey}\\{child}"):
            removed += 1
    return removed


def registry_view_32() -> int:
    reg = _winreg()
    return 0 if reg is None else reg.KEY_WOW64_32KEY
