"""
Persisted task selection and runtime options.

The selection is stored as a flat JSON object of booleans, one per task id:

    {"remove_junk_files": true, "flush_dns_cache": false, ...}

Loading never fails. A missing, unreadable or malformed file yields the
defaults, and entries that are unknown or not booleans are ignored.
"""

import json
import logging
import math
import os
import threading
from collections.abc import Iterable, Iterator
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from winsweep.exceptions import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TASK_TIMEOUT = 600.0
DEFAULT_CLOSE_TIMEOUT = 4.0


def winsweep_home() -> Path:
    """Directory holding winsweep state. Overridable with WINSWEEP_HOME."""
    override = os.environ.get("WINSWEEP_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".winsweep"


def settings_path() -> Path:
    return winsweep_home() / "settings.json"


@dataclass
class CleanerSettings:
    """
    One flag per cleanup task. Field order is the canonical task order.
    """

    # Quick Cleanup
    remove_junk_files: bool = False
    clean_system_temporary_files: bool = False
    empty_recycle_bin: bool = False
    wipe_browser_data: bool = False
    clear_file_history: bool = False
    # Privacy
    remove_windows_defender_history: bool = False
    clear_user_assist_data: bool = False
    clear_typed_paths: bool = False
    clear_recent_apps: bool = False
    clear_clipboard_history: bool = False
    clear_mru_lists: bool = False
    # System Maintenance
    clear_visual_cache: bool = False
    clear_font_cache: bool = False
    clear_windows_store_cache: bool = False
    clean_component_store: bool = False
    clean_windows_update: bool = False
    # Logs
    remove_diagnostics_and_error_reports: bool = False
    clear_event_logs: bool = False
    clear_windows_setup_logs: bool = False
    clear_crash_dumps: bool = False
    clear_performance_monitor_data: bool = False
    clear_cbs_logs: bool = False
    # Network
    flush_dns_cache: bool = False
    clear_netbios_cache: bool = False
    clear_arp_cache: bool = False
    clear_windows_networking_cache: bool = False
    clear_network_location_cache: bool = False
    clear_bits_queue: bool = False
    # Registry
    clean_registry: bool = False
    clean_file_extension_associations: bool = False
    clean_uninstall_entries: bool = False
    clean_shared_dlls: bool = False
    clean_com_registrations: bool = False
    clear_mui_cache: bool = False
    # Advanced
    remove_empty_directories: bool = False
    remove_broken_shortcuts: bool = False
    remove_windows_old: bool = False
    clean_driver_store: bool = False
    clean_windows_installer_cache: bool = False
    disable_hibernation: bool = False
    clean_system_restore_points: bool = False
    rebuild_search_index: bool = False

    @classmethod
    def task_ids(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def selection(self) -> Iterator[str]:
        """Yield enabled task ids in canonical order."""
        for name, enabled in asdict(self).items():
            if enabled:
                yield name

    def enable(self, task_ids: Iterable[str]) -> None:
        self._set(task_ids, True)

    def disable(self, task_ids: Iterable[str]) -> None:
        self._set(task_ids, False)

    def _set(self, task_ids: Iterable[str], value: bool) -> None:
        ids = list(task_ids)
        known = set(self.task_ids())
        for task_id in ids:
            if task_id not in known:
                raise NotFoundError(task_id)
        for task_id in ids:
            setattr(self, task_id, value)

    @classmethod
    def load(cls, path: Path | None = None) -> "CleanerSettings":
        """Read settings from disk, falling back to defaults."""
        path = path or settings_path()
        settings = cls()
        if not path.exists():
            return settings

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)
            return settings

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed settings file %s", path)
            return settings

        known = set(cls.task_ids())
        for key, value in data.items():
            if key in known and isinstance(value, bool):
                setattr(settings, key, value)
        return settings

    def save(self, path: Path | None = None) -> bool:
        """
        Write settings to disk.

        Returns:
            bool: False if the file could not be written. Not raised.
        """
        path = path or settings_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(asdict(self), f, indent=2)
        except OSError as e:
            logger.warning("Could not save settings to %s: %s", path, e)
            return False
        return True


@dataclass
class RuntimeOptions:
    """
    Options read from the environment.

    Args:
        task_timeout (float | None): Seconds a task may run, None for no limit.
        close_timeout (float): Seconds to wait for locking apps to exit.
        volume (str | None): Volume root to measure, None for the system volume.
    """

    task_timeout: float | None = DEFAULT_TASK_TIMEOUT
    close_timeout: float = DEFAULT_CLOSE_TIMEOUT
    volume: str | None = None

    @classmethod
    def from_env(cls) -> "RuntimeOptions":
        task_timeout: float | None = _env_float("WINSWEEP_TASK_TIMEOUT", DEFAULT_TASK_TIMEOUT)
        if task_timeout == 0:
            task_timeout = None
        close_timeout = _env_float("WINSWEEP_CLOSE_TIMEOUT", DEFAULT_CLOSE_TIMEOUT)
        volume = os.environ.get("WINSWEEP_VOLUME", "").strip() or None
        return cls(task_timeout=task_timeout, close_timeout=close_timeout, volume=volume)


def parse_seconds(raw: str) -> float:
    """
    Parse a duration in seconds.

    Raises:
        ValueError: Not a number, negative, not finite, or too large to wait on.
    """
    value = float(raw)
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"expected a non-negative number of seconds, got {raw!r}")
    if value > threading.TIMEOUT_MAX:
        raise ValueError(f"{raw!r} seconds is longer than this platform can wait")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return parse_seconds(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default
