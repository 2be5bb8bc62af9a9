from unittest.mock import MagicMock, patch

import psutil
import pytest

from winsweep.cleanup.processes import (
    BROWSER_PROCESSES,
    close_processes,
    distinct_names,
    find_running,
    locking_process_names,
    normalize_name,
)
from winsweep.cleanup.registry import TaskRegistry


def make_proc(name: str, pid: int = 1) -> MagicMock:
    proc = MagicMock(spec=psutil.Process)
    proc.pid = pid
    proc.info = {"name": name}
    proc.name.return_value = name
    return proc


class TestNames:
    @pytest.mark.parametrize(
        "raw,expected",
        [("chrome.exe", "chrome"), ("MSEdge.EXE", "msedge"), (" firefox ", "firefox")],
    )
    def test_normalize(self, raw, expected):
        assert normalize_name(raw) == expected

    def test_locking_names_from_tasks(self):
        registry = TaskRegistry()
        registry.register("web", "Web...", lambda: None, locking_processes=["Chrome.exe", "firefox"])
        registry.register("dns", "DNS...", lambda: None)

        assert locking_process_names(registry) == {"chrome", "firefox"}

    def test_browser_list(self):
        assert set(BROWSER_PROCESSES) == {
            "chrome",
            "msedge",
            "brave",
            "vivaldi",
            "opera",
            "arc",
            "firefox",
            "waterfox",
            "palemoon",
        }


class TestFindRunning:
    """Test cases for process discovery."""

    @patch("winsweep.cleanup.processes.psutil.process_iter")
    def test_matches_case_insensitive(self, mock_iter):
        chrome = make_proc("chrome.exe", 10)
        notepad = make_proc("notepad.exe", 11)
        edge = make_proc("MSEDGE.EXE", 12)
        mock_iter.return_value = [chrome, notepad, edge]

        running = find_running(["chrome", "msedge"])

        assert running == [chrome, edge]
        mock_iter.assert_called_once_with(["name"])

    @patch("winsweep.cleanup.processes.psutil.process_iter")
    def test_no_names_skips_scan(self, mock_iter):
        assert find_running([]) == []
        mock_iter.assert_not_called()

    @patch("winsweep.cleanup.processes.psutil.process_iter")
    def test_missing_name_ignored(self, mock_iter):
        mock_iter.return_value = [make_proc(None)]

        assert find_running(["chrome"]) == []

    def test_distinct_names(self):
        procs = [make_proc("chrome.exe", 1), make_proc("chrome.exe", 2), make_proc("brave.exe", 3)]

        assert distinct_names(procs) == ["brave", "chrome"]


class TestCloseProcesses:
    """Test cases for the close request."""

    @patch("winsweep.cleanup.processes.psutil.wait_procs")
    def test_terminates_and_waits(self, mock_wait):
        a, b = make_proc("chrome.exe", 1), make_proc("firefox.exe", 2)
        mock_wait.return_value = ([a, b], [])

        alive = close_processes([a, b], timeout=4.0)

        assert alive == []
        a.terminate.assert_called_once()
        b.terminate.assert_called_once()
        mock_wait.assert_called_once_with([a, b], timeout=4.0)

    @patch("winsweep.cleanup.processes.psutil.wait_procs")
    def test_returns_survivors(self, mock_wait):
        a = make_proc("chrome.exe", 1)
        mock_wait.return_value = ([], [a])

        assert close_processes([a], timeout=0.1) == [a]

    @patch("winsweep.cleanup.processes.psutil.wait_procs")
    def test_gone_and_denied_are_absorbed(self, mock_wait):
        gone = make_proc("chrome.exe", 1)
        gone.terminate.side_effect = psutil.NoSuchProcess(1)
        denied = make_proc("msedge.exe", 2)
        denied.terminate.side_effect = psutil.AccessDenied(2)
        mock_wait.return_value = ([], [denied])

        alive = close_processes([gone, denied])

        assert alive == [denied]
        mock_wait.assert_called_once_with([denied], timeout=4.0)

    @patch("winsweep.cleanup.processes.psutil.wait_procs")
    def test_nothing_to_close(self, mock_wait):
        assert close_processes([]) == []
        mock_wait.assert_not_called()
