"""Clean command handler for winsweep CLI.

Runs the selected cleanup tasks with a live progress bar and reports the
number of tasks completed and the free space reclaimed.
"""

import argparse
import logging
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm
from rich.table import Table

from winsweep.branding import cx_print
from winsweep.cleanup.catalogue import build_default_registry
from winsweep.cleanup.coordinator import IDLE_LABEL, RunCoordinator, Summary
from winsweep.cleanup.processes import (
    close_processes,
    distinct_names,
    find_running,
    locking_process_names,
)
from winsweep.cleanup.registry import Task, TaskRegistry
from winsweep.cleanup.space import FreeSpaceMeter, format_bytes
from winsweep.cli.handlers.tasks import resolve_selection
from winsweep.config import CleanerSettings, RuntimeOptions, parse_seconds
from winsweep.exceptions import MeasurementError, NoTasksSelectedError, NotFoundError

logger = logging.getLogger(__name__)

console = Console()

CONFIRM_PROMPT = (
    "The selected operations will modify files, caches, and/or the registry. "
    "Changes cannot be undone.\n\nContinue?"
)

_POLL_INTERVAL = 0.2


class CleanHandler:
    """Handler for clean command."""

    def __init__(
        self,
        verbose: bool = False,
        registry: TaskRegistry | None = None,
        settings_path: Path | None = None,
    ):
        self.verbose = verbose
        self.registry = registry or build_default_registry()
        self.settings_path = settings_path

    def clean(self, args: argparse.Namespace) -> int:
        """Handle clean command."""
        try:
            tasks = self._selected_tasks(args)
        except (NotFoundError, ValueError) as e:
            cx_print(str(e), "error")
            return 1
        except NoTasksSelectedError as e:
            cx_print(str(e), "info")
            return 1

        if getattr(args, "dry_run", False):
            self._show_plan(tasks)
            console.print("\nDry run - no changes made", style="blue")
            return 0

        assume_yes = getattr(args, "yes", False)
        if not assume_yes and not Confirm.ask(CONFIRM_PROMPT, default=False):
            console.print("Cancelled")
            return 0

        options = RuntimeOptions.from_env()
        if not getattr(args, "no_close_apps", False):
            self._close_locking_apps(tasks, options.close_timeout, assume_yes)

        timeout = getattr(args, "timeout", None)
        task_timeout = options.task_timeout if timeout is None else (timeout or None)

        coordinator = RunCoordinator(
            self.registry,
            meter=FreeSpaceMeter(options.volume),
            task_timeout=task_timeout,
        )

        try:
            summary = self._run(coordinator, [t.id for t in tasks])
        except NoTasksSelectedError as e:
            cx_print(str(e), "info")
            return 1
        except MeasurementError as e:
            logger.debug("Measurement failed", exc_info=True)
            cx_print(f"Cleanup failed: {e}", "error")
            return 1

        self._show_summary(summary)
        return 130 if summary.cancelled else 0

    def _selected_tasks(self, args: argparse.Namespace) -> list[Task]:
        ids = getattr(args, "ids", None) or ()
        select_all = getattr(args, "all", False)
        category = getattr(args, "category", None)

        if ids or select_all or category:
            selection = resolve_selection(self.registry, ids, select_all, category)
        else:
            selection = list(CleanerSettings.load(self.settings_path).selection())

        if not selection:
            raise NoTasksSelectedError()
        return self.registry.ordered(selection)

    def _close_locking_apps(self, tasks: list[Task], timeout: float, assume_yes: bool) -> None:
        """Offer to close apps that hold files the run will touch."""
        running = find_running(locking_process_names(tasks))
        if not running:
            return

        names = ", ".join(distinct_names(running))
        prompt = f"These apps are running and may lock files: {names}\n\nClose them now?"
        if not assume_yes and not Confirm.ask(prompt, default=True):
            cx_print("Continuing with apps open; locked files will be skipped", "warning")
            return

        cx_print(f"Closing {names}...", "thinking")
        still_running = close_processes(running, timeout=timeout)
        if still_running:
            cx_print(
                f"Still running: {', '.join(distinct_names(still_running))}; continuing anyway",
                "warning",
            )

    def _run(self, coordinator: RunCoordinator, selection: list[str]) -> Summary:
        """Run on a background thread while the main thread renders progress."""
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.description}[/bold cyan]"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as progress:
            bar = progress.add_task(IDLE_LABEL, total=len(selection))

            def on_progress(label: str, completed: int, total: int) -> None:
                progress.update(bar, description=label, completed=completed, total=total)

            handle = coordinator.start(selection, on_progress)
            try:
                summary = _wait(handle)
            except KeyboardInterrupt:
                handle.cancel()
                progress.update(bar, description="Cancelling after the current task...")
                summary = _wait(handle)

        return summary

    def _show_plan(self, tasks: list[Task]) -> None:
        table = Table(title="Planned Cleanup")
        table.add_column("#", style="dim", justify="right")
        table.add_column("ID", style="cyan")
        table.add_column("Category")
        table.add_column("Description")
        for i, task in enumerate(tasks, 1):
            table.add_row(str(i), task.id, task.category.value, task.label.rstrip("."))
        console.print(table)

    def _show_summary(self, summary: Summary) -> None:
        lines = [
            f"Tasks completed: {summary.tasks_completed}",
            f"Space reclaimed: {format_bytes(summary.space_reclaimed)}",
        ]
        if summary.timed_out:
            lines.append(f"[yellow]Timed out: {', '.join(summary.timed_out)}[/yellow]")

        if summary.cancelled:
            title, style = "Cleanup cancelled", "yellow"
        else:
            title, style = "Cleanup complete", "green"

        console.print(Panel("\n".join(lines), title=title, border_style=style, expand=False))


def _wait(handle) -> Summary:
    summary = None
    while summary is None:
        summary = handle.wait(_POLL_INTERVAL)
    return summary


def seconds(value: str) -> float:
    """argparse type for a non-negative, finite number of seconds."""
    try:
        return parse_seconds(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def add_clean_parser(subparsers) -> argparse.ArgumentParser:
    """Add clean parser to subparsers."""
    clean_parser = subparsers.add_parser("clean", help="Run cleanup tasks")
    clean_parser.add_argument(
        "ids", nargs="*", help="Task ids to run (default: saved selection)"
    )
    clean_parser.add_argument("--all", action="store_true", help="Run every task")
    clean_parser.add_argument("--category", help="Run every task in a category")
    clean_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompts")
    clean_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would run and exit"
    )
    clean_parser.add_argument(
        "--timeout",
        type=seconds,
        metavar="S",
        help="Seconds a single task may run before its tools are stopped (0 for no limit)",
    )
    clean_parser.add_argument(
        "--no-close-apps",
        action="store_true",
        help="Do not offer to close apps that may lock files",
    )

    return clean_parser
