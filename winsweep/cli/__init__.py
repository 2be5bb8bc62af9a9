"""winsweep CLI - Main package.

This module provides the WinsweepCLI facade. Commands are implemented by
handler classes in winsweep.cli.handlers.
"""

import argparse

from winsweep.cli.handlers import CleanHandler, TasksHandler


class WinsweepCLI:
    """Facade class for winsweep CLI - delegates to modular handlers."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._tasks_handler = TasksHandler(verbose=verbose)
        self._clean_handler = CleanHandler(
            verbose=verbose, registry=self._tasks_handler.registry
        )

    # Delegate methods to handlers

    def list_tasks(self, args: argparse.Namespace) -> int:
        """Handle list command."""
        return self._tasks_handler.list_tasks(args)

    def select(self, args: argparse.Namespace) -> int:
        """Handle select command."""
        return self._tasks_handler.select(args)

    def deselect(self, args: argparse.Namespace) -> int:
        """Handle deselect command."""
        return self._tasks_handler.deselect(args)

    def clean(self, args: argparse.Namespace) -> int:
        """Handle clean command."""
        return self._clean_handler.clean(args)

    @staticmethod
    def create_parser() -> argparse.ArgumentParser:
        """Create the argument parser with all subcommands."""
        from winsweep.cli.handlers import (
            add_clean_parser,
            add_deselect_parser,
            add_list_parser,
            add_select_parser,
        )

        parser = argparse.ArgumentParser(
            prog="winsweep",
            description="Windows cleanup and privacy maintenance",
        )
        parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")

        subparsers = parser.add_subparsers(dest="command")

        add_list_parser(subparsers)
        add_select_parser(subparsers)
        add_deselect_parser(subparsers)
        add_clean_parser(subparsers)

        return parser

    def dispatch(self, args: argparse.Namespace) -> int:
        """Dispatch command to appropriate handler.

        Returns exit code (0 for success, 1 for failure).
        """
        command = getattr(args, "command", None)

        command_handlers = {
            "list": self.list_tasks,
            "select": self.select,
            "deselect": self.deselect,
            "clean": self.clean,
        }

        if command in command_handlers:
            return command_handlers[command](args)

        from winsweep.branding import cx_print
        cx_print(f"Unknown command '{command}'", "error")
        return 1


__all__ = ["WinsweepCLI"]
