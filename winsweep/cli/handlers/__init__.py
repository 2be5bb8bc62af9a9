"""winsweep CLI Handlers.

Modular command handlers for winsweep CLI.
"""

from winsweep.cli.handlers.clean import CleanHandler, add_clean_parser
from winsweep.cli.handlers.tasks import (
    TasksHandler,
    add_deselect_parser,
    add_list_parser,
    add_select_parser,
)

__all__ = [
    # Clean
    "CleanHandler",
    "add_clean_parser",
    # Tasks
    "TasksHandler",
    "add_list_parser",
    "add_select_parser",
    "add_deselect_parser",
]
