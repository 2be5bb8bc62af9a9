import os
import stat
import subprocess
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psutil
import pytest

from winsweep.cleanup import actions
from winsweep.cleanup.actions import (
    Outcome,
    TaskBudget,
    attempt,
    best_effort,
    bound_to,
    clear_registry_values,
    current_budget,
    delete_directory_contents,
    delete_directory_targets,
    delete_files_by_pattern,
    extract_executable_path,
    is_link,
    kill_process_tree,
    remove_empty_directories,
    run_tool,
    try_delete_directory,
    try_delete_file,
)


class TestBestEffort:
    """Test cases for the error-absorbing action wrapper."""

    def test_attempt_captures_error(self):
        def boom():
            raise RuntimeError("nope")

        outcome = attempt(boom)

        assert isinstance(outcome, Outcome)
        assert not outcome.ok
        assert outcome.name == "boom"
        assert isinstance(outcome.error, RuntimeError)

    def test_attempt_ok(self):
        assert attempt(lambda: None, name="noop") == Outcome("noop")

    def test_wrapped_action_returns_none(self):
        def boom():
            raise OSError("locked")

        action = best_effort(boom)

        assert action() is None
        assert action.__name__ == "boom"

    def test_wrapping_is_idempotent(self):
        action = best_effort(lambda: None)

        assert best_effort(action) is action


class TestFilesystem:
    """Test cases for filesystem primitives."""

    def test_try_delete_file(self, tmp_path):
        target = tmp_path / "junk.tmp"
        target.write_text("x")

        assert try_delete_file(target) is True
        assert not target.exists()
        assert try_delete_file(target) is False
        assert try_delete_file(None) is False

    def test_try_delete_directory(self, tmp_path):
        target = tmp_path / "cache"
        (target / "nested").mkdir(parents=True)
        (target / "nested" / "a.bin").write_bytes(b"1")

        assert try_delete_directory(target) is True
        assert not target.exists()
        assert try_delete_directory(target) is False

    def test_delete_directory_contents_keeps_root(self, tmp_path):
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "sub" / "deeper").mkdir(parents=True)
        (tmp_path / "sub" / "deeper" / "b.txt").write_text("b")

        delete_directory_contents(tmp_path)

        assert tmp_path.is_dir()
        assert list(tmp_path.iterdir()) == []

    def test_delete_directory_contents_empties_stuck_subdir(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "file.txt").write_text("x")

        with patch.object(actions, "try_delete_directory", return_value=False):
            delete_directory_contents(tmp_path)

        assert sub.is_dir()
        assert list(sub.iterdir()) == []

    def test_delete_directory_contents_missing_dir(self, tmp_path):
        delete_directory_contents(tmp_path / "missing")

    def test_delete_directory_targets_skips_blanks(self, tmp_path):
        one = tmp_path / "one"
        one.mkdir()
        (one / "f").write_text("x")

        delete_directory_targets([None, "", one, one, tmp_path / "missing"])

        assert one.is_dir()
        assert list(one.iterdir()) == []

    def test_delete_files_by_pattern(self, tmp_path):
        (tmp_path / "iconcache_32.db").write_text("x")
        (tmp_path / "IconCache_48.DB").write_text("x")
        (tmp_path / "thumbcache_96.db").write_text("x")

        removed = delete_files_by_pattern(tmp_path, "iconcache*.db")

        assert removed == 2
        assert [p.name for p in tmp_path.iterdir()] == ["thumbcache_96.db"]

    def test_delete_files_by_pattern_missing_dir(self, tmp_path):
        assert delete_files_by_pattern(tmp_path / "missing", "*") == 0

    def test_remove_empty_directories(self, tmp_path):
        (tmp_path / "empty" / "also_empty").mkdir(parents=True)
        (tmp_path / "full").mkdir()
        (tmp_path / "full" / "keep.txt").write_text("x")
        (tmp_path / "protected" / "empty").mkdir(parents=True)

        removed = remove_empty_directories(tmp_path, skip=[tmp_path / "protected"])

        assert removed == 2
        assert not (tmp_path / "empty").exists()
        assert (tmp_path / "full" / "keep.txt").exists()
        assert (tmp_path / "protected" / "empty").is_dir()
        assert tmp_path.is_dir()

    def test_linked_directory_is_unlinked_not_emptied(self, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "keep.txt").write_text("x")
        root = tmp_path / "root"
        root.mkdir()
        (root / "link").symlink_to(outside, target_is_directory=True)

        delete_directory_contents(root)

        assert list(root.iterdir()) == []
        assert (outside / "keep.txt").exists()

    def test_junction_is_never_descended(self, tmp_path):
        root = tmp_path / "root"
        junction = root / "junction"
        junction.mkdir(parents=True)
        (junction / "keep.txt").write_text("x")
        real_is_link = actions.is_link

        def junction_aware(path):
            return os.path.basename(path) == "junction" or real_is_link(path)

        with patch.object(actions, "is_link", side_effect=junction_aware), \
                patch.object(actions, "try_delete_directory", return_value=False), \
                patch.object(actions.os, "unlink", side_effect=OSError("is a directory")), \
                patch.object(actions.os, "rmdir", side_effect=OSError("in use")) as mock_rmdir:
            delete_directory_contents(root)

        mock_rmdir.assert_called_once_with(junction)
        assert (junction / "keep.txt").exists()

    def test_reparse_point_counts_as_link(self, tmp_path):
        junction_stat = SimpleNamespace(
            st_mode=stat.S_IFDIR, st_file_attributes=stat.FILE_ATTRIBUTE_REPARSE_POINT
        )

        with patch.object(actions.os, "lstat", return_value=junction_stat):
            assert is_link(tmp_path) is True

    def test_plain_directory_is_not_a_link(self, tmp_path):
        assert is_link(tmp_path) is False
        assert is_link(tmp_path / "missing") is False
        assert is_link(None) is False

    def test_remove_empty_directories_ignores_links(self, tmp_path):
        outside = tmp_path / "outside"
        (outside / "empty").mkdir(parents=True)
        root = tmp_path / "root"
        root.mkdir()
        (root / "link").symlink_to(outside, target_is_directory=True)

        assert remove_empty_directories(root) == 0
        assert (outside / "empty").is_dir()


class TestRunTool:
    """Test cases for external tool invocation."""

    @pytest.fixture
    def popen(self):
        with patch("winsweep.cleanup.actions.subprocess.Popen") as mock_popen:
            proc = mock_popen.return_value
            proc.pid = 4321
            proc.returncode = 0
            proc.communicate.return_value = (None, None)
            yield mock_popen

    def test_runs_with_bounded_wait(self, popen):
        result = run_tool("ipconfig.exe", "/flushdns", timeout=30)

        assert result.args == ["ipconfig.exe", "/flushdns"]
        assert result.returncode == 0
        args, kwargs = popen.call_args
        assert args[0] == ["ipconfig.exe", "/flushdns"]
        assert kwargs["stdin"] == subprocess.DEVNULL
        assert kwargs["stdout"] is None
        popen.return_value.communicate.assert_called_once_with(timeout=30)

    def test_capture(self, popen):
        popen.return_value.communicate.return_value = ("out", "")

        result = run_tool("powershell.exe", "-Command", "x", capture=True)

        assert popen.call_args.kwargs["stdout"] == subprocess.PIPE
        assert result.stdout == "out"

    def test_timeout_kills_tool_and_returns_none(self, popen):
        popen.return_value.communicate.side_effect = [
            subprocess.TimeoutExpired("dism.exe", 1),
            (None, None),
        ]

        with patch("winsweep.cleanup.actions.kill_process_tree") as mock_kill:
            assert run_tool("dism.exe", timeout=1) is None

        mock_kill.assert_called_once_with(4321)

    def test_missing_tool_returns_none(self, popen):
        popen.side_effect = FileNotFoundError("wevtutil.exe")

        assert run_tool("wevtutil.exe", "cl", "System") is None

    def test_nonzero_exit_still_returned(self, popen):
        popen.return_value.returncode = 5

        assert run_tool("sc.exe", "stop", "FontCache").returncode == 5

    def test_unbounded_tool_waits_at_most_the_task_budget(self, popen):
        with bound_to(TaskBudget(20)):
            run_tool("dism.exe", "/Online", timeout=None)

        waited = popen.return_value.communicate.call_args.kwargs["timeout"]
        assert 0 < waited <= 20

    def test_expired_budget_starts_nothing(self, popen):
        budget = TaskBudget(20)
        budget.expire()

        with bound_to(budget):
            assert run_tool("vssadmin.exe", "list", "shadows") is None

        popen.assert_not_called()

    def test_budget_unbound_after_block(self):
        with bound_to(TaskBudget(5)) as budget:
            assert current_budget() is budget

        assert current_budget() is None

    def test_real_tool_killed_when_budget_runs_out(self, sleeper_cmd, live_sleepers):
        start = time.monotonic()

        with bound_to(TaskBudget(0.5)):
            result = run_tool(*sleeper_cmd, timeout=None)

        assert result is None
        assert time.monotonic() - start < 10
        assert live_sleepers() == []


class TestTaskBudget:
    def test_limit_takes_the_tighter_bound(self):
        assert TaskBudget(None).limit(30) == 30
        assert TaskBudget(None).limit(None) is None
        assert TaskBudget(100).limit(30) == 30
        assert TaskBudget(10).limit(None) <= 10

    def test_expire_kills_running_tools(self):
        budget = TaskBudget(60)
        proc = MagicMock(pid=99)
        budget.track(proc)

        with patch("winsweep.cleanup.actions.kill_process_tree") as mock_kill:
            assert budget.expire() == 1

        mock_kill.assert_called_once_with(99)
        assert budget.expired is True

    def test_tool_started_after_expiry_is_killed(self):
        budget = TaskBudget(60)
        budget.expire()

        with patch("winsweep.cleanup.actions.kill_process_tree") as mock_kill:
            budget.track(MagicMock(pid=7))

        mock_kill.assert_called_once_with(7)


class TestKillProcessTree:
    @patch("winsweep.cleanup.actions.psutil")
    def test_kills_children_then_parent(self, mock_psutil):
        child = MagicMock()
        parent = mock_psutil.Process.return_value
        parent.children.return_value = [child]

        kill_process_tree(10)

        child.kill.assert_called_once()
        parent.kill.assert_called_once()
        mock_psutil.wait_procs.assert_called_once_with([child, parent], timeout=5.0)

    def test_gone_process_ignored(self):
        with patch("winsweep.cleanup.actions.psutil.Process", side_effect=psutil.NoSuchProcess(10)):
            kill_process_tree(10)


class TestExtractExecutablePath:
    @pytest.mark.parametrize(
        "command,expected",
        [
            ('"C:\\Program Files\\App\\app.exe" --minimized', "C:\\Program Files\\App\\app.exe"),
            ("C:\\Tools\\tool.exe /silent", "C:\\Tools\\tool.exe"),
            ("C:\\Tools\\tool.exe,0", "C:\\Tools\\tool.exe"),
            ("rundll32", "rundll32"),
            ("   ", ""),
            ("", ""),
        ],
    )
    def test_extract(self, command, expected):
        assert extract_executable_path(command) == expected


class TestRegistryOffWindows:
    """Registry helpers are no-ops when winreg is unavailable."""

    def test_clear_values_noop(self, monkeypatch):
        monkeypatch.setattr(actions, "_winreg", lambda: None)

        assert clear_registry_values("HKCU", r"Software\Test") == 0
        assert actions.registry_subkey_names("HKCU", r"Software\Test") == []
        assert actions.read_registry_value("HKCU", r"Software\Test", "x") is None
        assert actions.delete_registry_tree("HKCU", r"Software\Test") is False
        assert actions.registry_view_32() == 0
