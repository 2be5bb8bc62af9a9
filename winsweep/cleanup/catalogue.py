"""
Built-in Windows cleanup tasks.

Each routine below is a plain function composed from the best-effort helpers
in winsweep.cleanup.actions. build_default_registry() declares them in the
canonical order, grouped by category the same way the CLI lists them.
"""

import logging
import os
import sys
import time
from pathlib import Path

from winsweep.cleanup import winpaths
from winsweep.cleanup.actions import (
    clear_registry_values,
    delete_directory_contents,
    delete_directory_targets,
    delete_files_by_pattern,
    delete_registry_subkeys,
    delete_registry_tree,
    delete_registry_value,
    extract_executable_path,
    read_registry_value,
    registry_key_exists,
    registry_subkey_names,
    registry_value_names,
    registry_view_32,
    remove_empty_directories,
    run_tool,
    try_delete_directory,
    try_delete_file,
)
from winsweep.cleanup.processes import BROWSER_PROCESSES
from winsweep.cleanup.registry import Category, TaskRegistry

logger = logging.getLogger(__name__)

under = winpaths.under

EXPLORER_KEY = r"Software\Microsoft\Windows\CurrentVersion\Explorer"
RUN_KEYS = (
    r"Software\Microsoft\Windows\CurrentVersion\Run",
    r"Software\Microsoft\Windows\CurrentVersion\RunOnce",
)
MRU_KEYS = (
    EXPLORER_KEY + r"\ComDlg32\LastVisitedPidlMRU",
    EXPLORER_KEY + r"\ComDlg32\OpenSavePidlMRU",
    EXPLORER_KEY + r"\RecentDocs",
    EXPLORER_KEY + r"\RunMRU",
    EXPLORER_KEY + r"\Map Network Drive MRU",
)
UNINSTALL_KEYS = (
    r"Software\Microsoft\Windows\CurrentVersion\Uninstall",
    r"Software\Wow6432Node\Microsoft\Windows\CurrentVersion\Uninstall",
)
EVENT_LOGS = ("Application", "System", "Security")
DEFENDER_LOGS = (
    "Microsoft-Windows-Windows Defender/Operational",
    "Microsoft-Windows-Windows Defender/WHC",
)

# SHEmptyRecycleBin flags: no confirmation, no progress UI, no sound.
_RECYCLE_FLAGS = 0x1 | 0x2 | 0x4


# ---------------------------------------------------------------------------
# Quick Cleanup
# ---------------------------------------------------------------------------


def remove_junk_files() -> None:
    """User-scoped temp folders."""
    delete_directory_targets([winpaths.user_temp(), under(winpaths.local_appdata(), "Temp")])


def clean_system_temporary_files() -> None:
    """System temp, prefetch and update download caches."""
    root = winpaths.system_root()
    delete_directory_targets(
        [
            under(winpaths.local_appdata(), "Microsoft", "Windows", "INetCache"),
            under(root, "Temp"),
            under(root, "Prefetch"),
            under(root, "SoftwareDistribution", "Download"),
            under(root, "Downloaded Program Files"),
            under(winpaths.program_data(), "Microsoft", "Windows", "DeliveryOptimization", "Cache"),
        ]
    )


def empty_recycle_bin() -> None:
    if sys.platform != "win32":
        return
    import ctypes

    drive = winpaths.system_drive() or Path("C:\\")
    ctypes.windll.shell32.SHEmptyRecycleBinW(None, str(drive), _RECYCLE_FLAGS)


def wipe_browser_data() -> None:
    """
    History, caches, local storage and crash reports of Chromium and Firefox
    family browsers. Cookie and login databases are left alone.
    """
    local = winpaths.local_appdata()
    roaming = winpaths.roaming_appdata()

    for root in (
        under(local, "Google", "Chrome", "User Data"),
        under(local, "Microsoft", "Edge", "User Data"),
        under(local, "BraveSoftware", "Brave-Browser", "User Data"),
        under(local, "Vivaldi", "User Data"),
        under(roaming, "Opera Software", "Opera Stable"),
        under(roaming, "Opera Software", "Opera GX Stable"),
        under(local, "Opera Software", "Opera Stable"),
        under(local, "Opera Software", "Opera GX Stable"),
        under(local, "Arc", "User Data"),
    ):
        clean_chromium_root(root)

    packages = under(local, "Packages")
    if packages is not None and packages.is_dir():
        for package in packages.glob("TheBrowserCompany.Arc*"):
            clean_chromium_root(package / "LocalCache" / "Local" / "Arc" / "User Data")

    for name in (("Mozilla", "Firefox"), ("Waterfox",), ("Pale Moon",)):
        clean_firefox_profiles(under(roaming, *name, "Profiles"))


def clear_file_history() -> None:
    """Recent documents, jump lists and the Run dialog history."""
    recent = winpaths.recent_items()
    if recent is not None and recent.is_dir():
        delete_directory_contents(recent)
        delete_directory_targets(
            [recent / "AutomaticDestinations", recent / "CustomDestinations"]
        )
    clear_registry_values("HKCU", EXPLORER_KEY + r"\RunMRU", keep=("MRUList",))


# ---------------------------------------------------------------------------
# Privacy
# ---------------------------------------------------------------------------


def clear_windows_defender_history() -> None:
    defender = under(winpaths.program_data(), "Microsoft", "Windows Defender")
    delete_directory_targets([under(defender, "Scans", "History"), under(defender, "Support")])
    for channel in DEFENDER_LOGS:
        run_tool("wevtutil.exe", "cl", channel)


def clear_user_assist_data() -> None:
    base = EXPLORER_KEY + r"\UserAssist"
    for guid in registry_subkey_names("HKCU", base):
        clear_registry_values("HKCU", f"{base}\\{guid}\\Count")


def clear_typed_paths() -> None:
    clear_registry_values("HKCU", EXPLORER_KEY + r"\TypedPaths")


def clear_recent_apps() -> None:
    delete_registry_value("HKCU", EXPLORER_KEY + r"\StartPage", "StartMenu_Start_Time")
    delete_directory_targets(
        [under(winpaths.local_appdata(), "Microsoft", "Windows", "Recent", "AutomaticDestinations")]
    )


def clear_clipboard_history() -> None:
    delete_directory_targets([under(winpaths.local_appdata(), "Microsoft", "Windows", "Clipboard")])


def clear_mru_lists() -> None:
    for key in MRU_KEYS:
        clear_registry_values("HKCU", key, keep=("MRUList",))


# ---------------------------------------------------------------------------
# System Maintenance
# ---------------------------------------------------------------------------


def clear_visual_cache() -> None:
    """Icon and thumbnail cache databases."""
    local = winpaths.local_appdata()
    try_delete_file(under(local, "IconCache.db"))
    explorer = under(local, "Microsoft", "Windows", "Explorer")
    delete_files_by_pattern(explorer, "iconcache*.db")
    delete_files_by_pattern(explorer, "thumbcache*.db")
    run_tool("ie4uinit.exe", "-ClearIconCache")


def clear_font_cache() -> None:
    run_tool("sc.exe", "stop", "FontCache")
    time.sleep(1)
    cache = under(winpaths.system_root(), "ServiceProfiles", "LocalService", "AppData", "Local")
    delete_files_by_pattern(cache, "*FontCache*.dat")
    delete_files_by_pattern(cache, "FNTCACHE.DAT")
    run_tool("sc.exe", "start", "FontCache")


def clear_windows_store_cache() -> None:
    run_tool("wsreset.exe")


def clean_component_store() -> None:
    run_tool("dism.exe", "/Online", "/Cleanup-Image", "/StartComponentCleanup", "/Quiet", timeout=None)


def clean_windows_update() -> None:
    """Superseded update packages. Installed updates can no longer be uninstalled."""
    run_tool(
        "dism.exe",
        "/Online",
        "/Cleanup-Image",
        "/StartComponentCleanup",
        "/ResetBase",
        "/Quiet",
        timeout=None,
    )


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


def remove_diagnostics_and_error_reports() -> None:
    local = winpaths.local_appdata()
    delete_directory_targets(
        [
            under(local, "D3DSCache"),
            under(local, "Microsoft", "Windows", "WER"),
            under(winpaths.program_data(), "Microsoft", "Windows", "WER"),
            under(winpaths.system_root(), "Logs"),
        ]
    )


def clear_event_logs() -> None:
    for log in EVENT_LOGS:
        run_tool("wevtutil.exe", "cl", log)


def clear_windows_setup_logs() -> None:
    root = winpaths.system_root()
    delete_directory_targets([under(root, "Panther")])
    try_delete_file(under(root, "inf", "setupapi.dev.log"))
    try_delete_file(under(root, "inf", "setupapi.app.log"))


def clear_crash_dumps() -> None:
    root = winpaths.system_root()
    try_delete_file(under(root, "MEMORY.DMP"))
    delete_directory_targets(
        [under(root, "Minidump"), under(winpaths.local_appdata(), "CrashDumps")]
    )


def clear_performance_monitor_data() -> None:
    delete_directory_targets([under(winpaths.program_data(), "Microsoft", "Windows", "PLA")])


def clear_cbs_logs() -> None:
    delete_directory_targets([under(winpaths.system_root(), "Logs", "CBS")])


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


def flush_dns_cache() -> None:
    run_tool("ipconfig.exe", "/flushdns")


def clear_netbios_cache() -> None:
    run_tool("nbtstat.exe", "-R")


def clear_arp_cache() -> None:
    run_tool("arp.exe", "-d", "*")


def clear_windows_networking_cache() -> None:
    """Mapped SMB connections, stored credentials and the offline files cache."""
    run_tool("net.exe", "use", "*", "/delete", "/y")
    clear_stored_credentials()
    delete_directory_targets([under(winpaths.system_root(), "CSC")])


def clear_network_location_cache() -> None:
    delete_registry_subkeys(
        "HKLM", r"SOFTWARE\Microsoft\Windows NT\CurrentVersion\NetworkList\Profiles"
    )


def clear_bits_queue() -> None:
    run_tool("bitsadmin.exe", "/reset", "/allusers")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def clean_registry_run_entries() -> None:
    """Run/RunOnce values pointing at executables that no longer exist."""
    for hive, view in (("HKCU", 0), ("HKLM", 0), ("HKLM", registry_view_32())):
        for key in RUN_KEYS:
            for name in registry_value_names(hive, key, view):
                command = read_registry_value(hive, key, name, view)
                if is_dangling_command(command):
                    delete_registry_value(hive, key, name, view)


def clean_file_extension_associations() -> None:
    """Per-user extension keys whose ProgID is gone."""
    classes = r"Software\Classes"
    for name in registry_subkey_names("HKCU", classes):
        if not name.startswith("."):
            continue
        prog_id = read_registry_value("HKCU", f"{classes}\\{name}")
        if prog_id and prog_id.strip() and not registry_key_exists("HKCU", f"{classes}\\{prog_id}"):
            delete_registry_tree("HKCU", f"{classes}\\{name}")


def clean_uninstall_entries() -> None:
    for base in UNINSTALL_KEYS:
        for app in registry_subkey_names("HKLM", base):
            command = read_registry_value("HKLM", f"{base}\\{app}", "UninstallString")
            if is_dangling_command(command):
                delete_registry_tree("HKLM", f"{base}\\{app}")


def clean_shared_dlls() -> None:
    key = r"Software\Microsoft\Windows\CurrentVersion\SharedDLLs"
    for name in registry_value_names("HKLM", key):
        if not Path(name).is_file():
            delete_registry_value("HKLM", key, name)


def clean_com_registrations() -> None:
    """CLSIDs whose in-process server DLL is gone."""
    for clsid in registry_subkey_names("HKCR", "CLSID"):
        server = read_registry_value("HKCR", f"CLSID\\{clsid}\\InprocServer32")
        if server and server.strip() and not Path(os.path.expandvars(server)).is_file():
            delete_registry_tree("HKCR", f"CLSID\\{clsid}")


def clear_mui_cache() -> None:
    clear_registry_values(
        "HKCU", r"Software\Classes\Local Settings\Software\Microsoft\Windows\Shell\MuiCache"
    )


# ---------------------------------------------------------------------------
# Advanced
# ---------------------------------------------------------------------------


def remove_empty_directories_on_system_drive() -> None:
    root = winpaths.system_drive()
    if root is None:
        return
    skip = [
        root,
        root / "Windows",
        root / "Program Files",
        root / "Program Files (x86)",
        root / "ProgramData",
        root / "Users",
        root / "$Recycle.Bin",
        root / "System Volume Information",
    ]
    removed = remove_empty_directories(root, skip=skip)
    logger.debug("Removed %d empty directories", removed)


def remove_broken_shortcuts() -> None:
    for folder in (
        winpaths.desktop(),
        winpaths.start_menu(),
        winpaths.common_start_menu(),
        winpaths.quick_launch(),
    ):
        if folder is None or not folder.is_dir():
            continue
        for link in folder.rglob("*.lnk"):
            target = shortcut_target(link)
            if not target or not Path(target).exists():
                try_delete_file(link)


def remove_windows_old() -> None:
    try_delete_directory(under(winpaths.system_drive(), "Windows.old"))


def clean_driver_store() -> None:
    run_tool("pnputil.exe", "/delete-driver", "*", "/uninstall", "/force", timeout=None)


def clean_windows_installer_cache() -> None:
    delete_directory_targets([under(winpaths.system_root(), "Installer", "$PatchCache$")])


def disable_hibernation() -> None:
    run_tool("powercfg.exe", "/hibernate", "off")


def clean_system_restore_points() -> None:
    drive = str(winpaths.system_drive() or "C:\\").rstrip("\\")
    run_tool("vssadmin.exe", "delete", "shadows", f"/for={drive}", "/oldest", "/quiet", timeout=None)


def rebuild_search_index() -> None:
    run_tool("sc.exe", "stop", "WSearch")
    time.sleep(2)
    delete_directory_targets(
        [under(winpaths.program_data(), "Microsoft", "Search", "Data", "Applications", "Windows")]
    )
    run_tool("sc.exe", "start", "WSearch")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CHROMIUM_PROFILE_MARKERS = ("History", "Web Data")
_CHROMIUM_PROFILE_DIRS = ("Local Storage", "Session Storage", "Extensions")


def is_dangling_command(command: str | None) -> bool:
    """True when a command line names an executable that does not exist."""
    if not command or not command.strip():
        return False
    exe = extract_executable_path(command)
    return bool(exe) and not Path(exe).is_file()


def looks_like_chromium_profile(path: Path) -> bool:
    return any((path / m).is_file() for m in _CHROMIUM_PROFILE_MARKERS) or any(
        (path / d).is_dir() for d in _CHROMIUM_PROFILE_DIRS
    )


def clean_chromium_root(user_data: Path | None) -> None:
    if user_data is None or not user_data.is_dir():
        return

    profiles = []
    for entry in user_data.iterdir():
        name = entry.name.lower()
        if entry.is_dir() and (
            name in ("default", "guest profile", "system profile") or name.startswith("profile ")
        ):
            profiles.append(entry)

    # Opera and some Arc installs keep the profile in the root itself.
    if not profiles or looks_like_chromium_profile(user_data):
        profiles.append(user_data)

    for profile in profiles:
        clean_chromium_profile(profile)

    try_delete_directory(user_data / "Crash Reports")
    try_delete_directory(user_data / "Crashpad")


def clean_chromium_profile(profile: Path) -> None:
    for name in ("History", "History-journal", "History Provider Cache", "Web Data", "Web Data-journal"):
        try_delete_file(profile / name)

    for parts in (
        ("Cache",),
        ("Code Cache",),
        ("GPUCache",),
        ("Media Cache",),
        ("Service Worker", "CacheStorage"),
        ("Service Worker", "ScriptCache"),
        ("Local Storage",),
        ("Session Storage",),
        ("Crash Reports",),
        ("Crashpad",),
    ):
        try_delete_directory(profile.joinpath(*parts))

    extensions = profile / "Extensions"
    if extensions.is_dir():
        for ext in extensions.iterdir():
            if not ext.is_dir():
                continue
            for version in ext.iterdir():
                if version.is_dir():
                    try_delete_directory(version / "Cache")
                    try_delete_file(version / "_metadata" / "verified_contents.json")

    try_delete_file(profile / "Download Service" / "downloads.json")


def clean_firefox_profiles(profiles_root: Path | None) -> None:
    if profiles_root is None or not profiles_root.is_dir():
        return
    for profile in profiles_root.iterdir():
        if not profile.is_dir():
            continue
        for name in (
            "downloads.sqlite",
            "downloads.json",
            "formhistory.sqlite",
            "webappsstore.sqlite",
            "places.sqlite",
            "places.sqlite-shm",
            "places.sqlite-wal",
        ):
            try_delete_file(profile / name)
        for parts in (("cache2",), ("storage", "default"), ("extension-data",), ("crashes",), ("minidumps",)):
            try_delete_directory(profile.joinpath(*parts))


def shortcut_target(link: Path) -> str | None:
    """Resolve a .lnk target through the WScript.Shell COM object."""
    escaped = str(link).replace("'", "''")
    result = run_tool(
        "powershell.exe",
        "-NoProfile",
        "-NonInteractive",
        "-Command",
        f"(New-Object -ComObject WScript.Shell).CreateShortcut('{escaped}').TargetPath",
        timeout=30,
        capture=True,
    )
    if result is None or result.returncode != 0:
        # Unknown is not the same as broken.
        return str(link)
    return (result.stdout or "").strip() or None


def clear_stored_credentials() -> None:
    result = run_tool("cmdkey.exe", "/list", capture=True)
    if result is None:
        return
    targets = []
    for line in (result.stdout or "").splitlines():
        line = line.strip()
        if line.lower().startswith("target:"):
            target = line[len("target:"):].strip()
            if target and target.lower() not in (t.lower() for t in targets):
                targets.append(target)
    for target in targets:
        run_tool("cmdkey.exe", f"/delete:{target}")


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

DEFAULT_TASKS = (
    # Quick Cleanup
    ("remove_junk_files", "Removing user temp files...", remove_junk_files, Category.QUICK),
    ("clean_system_temporary_files", "Cleaning system temp/update caches...", clean_system_temporary_files, Category.QUICK),
    ("empty_recycle_bin", "Emptying recycle bin...", empty_recycle_bin, Category.QUICK),
    ("wipe_browser_data", "Wiping browser data...", wipe_browser_data, Category.QUICK),
    ("clear_file_history", "Clearing Explorer history...", clear_file_history, Category.QUICK),
    # Privacy
    ("remove_windows_defender_history", "Clearing Defender history...", clear_windows_defender_history, Category.PRIVACY),
    ("clear_user_assist_data", "Clearing UserAssist data...", clear_user_assist_data, Category.PRIVACY),
    ("clear_typed_paths", "Clearing typed paths...", clear_typed_paths, Category.PRIVACY),
    ("clear_recent_apps", "Clearing recent apps...", clear_recent_apps, Category.PRIVACY),
    ("clear_clipboard_history", "Clearing clipboard history...", clear_clipboard_history, Category.PRIVACY),
    ("clear_mru_lists", "Clearing MRU lists...", clear_mru_lists, Category.PRIVACY),
    # System Maintenance
    ("clear_visual_cache", "Clearing icon/thumbnail cache...", clear_visual_cache, Category.SYSTEM),
    ("clear_font_cache", "Clearing font cache...", clear_font_cache, Category.SYSTEM),
    ("clear_windows_store_cache", "Clearing Store cache...", clear_windows_store_cache, Category.SYSTEM),
    ("clean_component_store", "Cleaning component store...", clean_component_store, Category.SYSTEM),
    ("clean_windows_update", "Cleaning Windows Update...", clean_windows_update, Category.SYSTEM),
    # Logs
    ("remove_diagnostics_and_error_reports", "Removing diagnostics/error reports...", remove_diagnostics_and_error_reports, Category.LOGS),
    ("clear_event_logs", "Clearing event logs...", clear_event_logs, Category.LOGS),
    ("clear_windows_setup_logs", "Clearing setup logs...", clear_windows_setup_logs, Category.LOGS),
    ("clear_crash_dumps", "Clearing crash dumps...", clear_crash_dumps, Category.LOGS),
    ("clear_performance_monitor_data", "Clearing performance data...", clear_performance_monitor_data, Category.LOGS),
    ("clear_cbs_logs", "Clearing CBS logs...", clear_cbs_logs, Category.LOGS),
    # Network
    ("flush_dns_cache", "Flushing DNS cache...", flush_dns_cache, Category.NETWORK),
    ("clear_netbios_cache", "Clearing NetBIOS cache...", clear_netbios_cache, Category.NETWORK),
    ("clear_arp_cache", "Clearing ARP cache...", clear_arp_cache, Category.NETWORK),
    ("clear_windows_networking_cache", "Clearing network cache...", clear_windows_networking_cache, Category.NETWORK),
    ("clear_network_location_cache", "Clearing network location cache...", clear_network_location_cache, Category.NETWORK),
    ("clear_bits_queue", "Clearing BITS queue...", clear_bits_queue, Category.NETWORK),
    # Registry
    ("clean_registry", "Cleaning registry run entries...", clean_registry_run_entries, Category.REGISTRY),
    ("clean_file_extension_associations", "Cleaning file associations...", clean_file_extension_associations, Category.REGISTRY),
    ("clean_uninstall_entries", "Cleaning uninstall entries...", clean_uninstall_entries, Category.REGISTRY),
    ("clean_shared_dlls", "Cleaning shared DLLs...", clean_shared_dlls, Category.REGISTRY),
    ("clean_com_registrations", "Cleaning COM registrations...", clean_com_registrations, Category.REGISTRY),
    ("clear_mui_cache", "Clearing MUI cache...", clear_mui_cache, Category.REGISTRY),
    # Advanced
    ("remove_empty_directories", "Removing empty directories...", remove_empty_directories_on_system_drive, Category.ADVANCED),
    ("remove_broken_shortcuts", "Removing broken shortcuts...", remove_broken_shortcuts, Category.ADVANCED),
    ("remove_windows_old", "Removing Windows.old...", remove_windows_old, Category.ADVANCED),
    ("clean_driver_store", "Cleaning driver store...", clean_driver_store, Category.ADVANCED),
    ("clean_windows_installer_cache", "Cleaning installer cache...", clean_windows_installer_cache, Category.ADVANCED),
    ("disable_hibernation", "Disabling hibernation...", disable_hibernation, Category.ADVANCED),
    ("clean_system_restore_points", "Cleaning restore points...", clean_system_restore_points, Category.ADVANCED),
    ("rebuild_search_index", "Rebuilding search index...", rebuild_search_index, Category.ADVANCED),
)

LOCKING_PROCESSES = {
    "wipe_browser_data": BROWSER_PROCESSES,
}


def build_default_registry() -> TaskRegistry:
    """Create a registry holding every built-in task in canonical order."""
    registry = TaskRegistry()
    for task_id, label, action, category in DEFAULT_TASKS:
        registry.register(
            task_id,
            label,
            action,
            category=category,
            locking_processes=LOCKING_PROCESSES.get(task_id, ()),
        )
    return registry
