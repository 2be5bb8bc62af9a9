"""Task selection command handlers for winsweep CLI.

Provides list, select and deselect over the saved task selection.
"""

import argparse
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console
from rich.table import Table

from winsweep.branding import cx_print
from winsweep.cleanup.catalogue import build_default_registry
from winsweep.cleanup.registry import Category, TaskRegistry
from winsweep.config import CleanerSettings
from winsweep.exceptions import NotFoundError

console = Console()


def resolve_selection(
    registry: TaskRegistry,
    ids: Iterable[str] = (),
    select_all: bool = False,
    category: str | None = None,
) -> list[str]:
    """
    Turn CLI selection arguments into task ids in canonical order.

    Raises:
        NotFoundError: If an id is not registered.
        ValueError: If the category name is unknown.
    """
    if select_all:
        return list(registry.ids())

    wanted = set(ids)
    if category:
        group = Category.parse(category)
        wanted.update(task.id for task in registry if task.category is group)
    return [task.id for task in registry.ordered(wanted)]


class TasksHandler:
    """Handler for list, select and deselect commands."""

    def __init__(
        self,
        verbose: bool = False,
        registry: TaskRegistry | None = None,
        settings_path: Path | None = None,
    ):
        self.verbose = verbose
        self.registry = registry or build_default_registry()
        self.settings_path = settings_path

    def list_tasks(self, args: argparse.Namespace) -> int:
        """Show the catalogue grouped by category."""
        settings = CleanerSettings.load(self.settings_path)
        selected = set(settings.selection())
        only_selected = getattr(args, "selected", False)

        table = Table(title="Cleanup Tasks")
        table.add_column("", width=1)
        table.add_column("ID", style="cyan")
        table.add_column("Description")

        shown = 0
        for category, tasks in self.registry.by_category().items():
            rows = [t for t in tasks if not only_selected or t.id in selected]
            if not rows:
                continue
            table.add_section()
            table.add_row("", f"[bold]{category.value}[/bold]", "")
            for task in rows:
                mark = "[green]✓[/green]" if task.id in selected else ""
                table.add_row(mark, task.id, task.label.rstrip("."))
                shown += 1

        if only_selected and shown == 0:
            cx_print("No tasks selected. Use 'winsweep select' to pick some.", "info")
            return 0

        console.print(table)
        console.print(f"[dim]{len(selected)} of {len(self.registry)} tasks selected[/dim]")
        return 0

    def select(self, args: argparse.Namespace) -> int:
        """Enable tasks in the saved selection."""
        return self._update(args, enable=True)

    def deselect(self, args: argparse.Namespace) -> int:
        """Disable tasks in the saved selection."""
        return self._update(args, enable=False)

    def _update(self, args: argparse.Namespace, enable: bool) -> int:
        try:
            ids = resolve_selection(
                self.registry,
                getattr(args, "ids", None) or (),
                getattr(args, "all", False),
                getattr(args, "category", None),
            )
        except (NotFoundError, ValueError) as e:
            cx_print(str(e), "error")
            return 1

        if not ids:
            cx_print("Specify task ids, --all or --category", "error")
            return 1

        settings = CleanerSettings.load(self.settings_path)
        if enable:
            settings.enable(ids)
        else:
            settings.disable(ids)

        if not settings.save(self.settings_path):
            cx_print("Could not save settings", "error")
            return 1

        verb = "Selected" if enable else "Deselected"
        cx_print(f"{verb} {len(ids)} task(s)", "success")
        if self.verbose:
            for task_id in ids:
                console.print(f"  [dim]{task_id}[/dim]")
        return 0


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("ids", nargs="*", help="Task ids (see 'winsweep list')")
    parser.add_argument("--all", action="store_true", help="Every task")
    parser.add_argument(
        "--category",
        help="Every task in a category (e.g. privacy, logs, 'System Maintenance')",
    )


def add_list_parser(subparsers) -> argparse.ArgumentParser:
    """Add list parser to subparsers."""
    list_parser = subparsers.add_parser("list", help="Show cleanup tasks")
    list_parser.add_argument("--selected", action="store_true", help="Only saved selection")
    return list_parser


def add_select_parser(subparsers) -> argparse.ArgumentParser:
    """Add select parser to subparsers."""
    select_parser = subparsers.add_parser("select", help="Add tasks to the saved selection")
    _add_selection_arguments(select_parser)
    return select_parser


def add_deselect_parser(subparsers) -> argparse.ArgumentParser:
    """Add deselect parser to subparsers."""
    deselect_parser = subparsers.add_parser(
        "deselect", help="Remove tasks from the saved selection"
    )
    _add_selection_arguments(deselect_parser)
    return deselect_parser
