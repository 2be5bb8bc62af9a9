"""winsweep CLI - Main entry point.

This is the main entry point for the winsweep CLI. It uses the WinsweepCLI
facade from winsweep.cli which delegates to modular handlers.
"""

import logging
import sys

from winsweep.branding import VERSION, console, show_banner

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure the root logger once for the whole process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )
    # Suppress noisy log messages
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("markdown_it").setLevel(logging.WARNING)


def show_rich_help():
    """Show rich help when no command is provided."""
    from rich.markdown import Markdown
    from rich.panel import Panel

    help_text = """
# winsweep

**Windows cleanup and privacy maintenance**

## Quick Start
```bash
winsweep list                      # Show all cleanup tasks
winsweep select --category quick  # Save a selection
winsweep clean                     # Run the saved selection
```

## Commands
- `list`      - Show cleanup tasks and the saved selection
- `select`    - Add tasks to the saved selection
- `deselect`  - Remove tasks from the saved selection
- `clean`     - Run cleanup tasks

## Help
- `winsweep --help`       - Show all commands
- `winsweep <cmd> --help` - Show command-specific help
"""
    show_banner()
    console.print(Markdown(help_text))


def main(argv: list[str] | None = None) -> int:
    """Main entry point for winsweep CLI."""
    from winsweep.cli import WinsweepCLI

    parser = WinsweepCLI.create_parser()
    parser.add_argument("--version", "-V", action="version", version=f"winsweep {VERSION}")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not args.command:
        show_rich_help()
        return 0

    try:
        cli = WinsweepCLI(verbose=args.verbose)
        result = cli.dispatch(args)
        return result if result is not None else 0
    except KeyboardInterrupt:
        console.print("\nInterrupted")
        return 130
    except Exception as e:
        console.print(f"Error: {e}", style="red")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
