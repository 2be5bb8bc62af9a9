"""
Well-known Windows folder locations.

Each helper returns None when the location cannot be resolved, which happens
on non-Windows hosts and under stripped-down service environments. Cleanup
primitives treat None as "nothing to do".
"""

import os
import tempfile
from pathlib import Path


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name, "").strip()
    return Path(value) if value else None


def _join(base: Path | None, *parts: str) -> Path | None:
    return base.joinpath(*parts) if base is not None else None


def local_appdata() -> Path | None:
    return _env_path("LOCALAPPDATA")


def roaming_appdata() -> Path | None:
    return _env_path("APPDATA")


def program_data() -> Path | None:
    return _env_path("ProgramData") or _env_path("ALLUSERSPROFILE")


def system_root() -> Path | None:
    return _env_path("SystemRoot") or _env_path("windir")


def system_drive() -> Path | None:
    drive = os.environ.get("SystemDrive", "").strip()
    return Path(drive.rstrip("\\/") + "\\") if drive else None


def user_temp() -> Path:
    return Path(tempfile.gettempdir())


def desktop() -> Path | None:
    return _join(_env_path("USERPROFILE"), "Desktop")


def start_menu() -> Path | None:
    return _join(roaming_appdata(), "Microsoft", "Windows", "Start Menu")


def common_start_menu() -> Path | None:
    return _join(program_data(), "Microsoft", "Windows", "Start Menu")


def quick_launch() -> Path | None:
    return _join(roaming_appdata(), "Microsoft", "Internet Explorer", "Quick Launch")


def recent_items() -> Path | None:
    return _join(roaming_appdata(), "Microsoft", "Windows", "Recent")


def under(base: Path | None, *parts: str) -> Path | None:
    """Join parts onto a base that may be unresolved."""
    return _join(base, *parts)
