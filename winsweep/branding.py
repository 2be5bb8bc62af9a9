"""
Console output helpers shared by the winsweep CLI.
"""

from rich.console import Console
from rich.panel import Panel

VERSION = "0.1.0"

console = Console()

_STATUS_STYLES = {
    "info": ("cyan", "•"),
    "success": ("green", "✓"),
    "warning": ("yellow", "!"),
    "error": ("red", "✗"),
    "thinking": ("magenta", "…"),
}


def cx_print(message: str, status: str = "info") -> None:
    """Print a status-prefixed line."""
    style, icon = _STATUS_STYLES.get(status, _STATUS_STYLES["info"])
    console.print(f"[{style}]{icon}[/{style}] {message}")


def show_banner() -> None:
    console.print(
        Panel(
            f"[bold]winsweep[/bold] [dim]v{VERSION}[/dim]\nWindows cleanup and privacy maintenance",
            border_style="blue",
            expand=False,
        )
    )
