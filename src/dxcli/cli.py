"""dxcli CLI — the `dx` entry point.

Usage:
    dx                          Show available commands
    dx help                     Show available commands
    dx <command> [args...]      Run a project command, forwarding args
    dx .install-commands [url]  Install commands from a git repository
    dx .install-globally        Install the dx launcher for this user
    dx .update                  Update this project's dxcli installation
"""

from __future__ import annotations

import logging
import sys

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import __version__
from .config import load_settings
from .dispatcher import Dispatcher

console = Console()


def setup_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                show_time=False,
                show_path=False,
                markup=False,
            )
        ],
    )


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
    add_help_option=False,
)
@click.version_option(__version__, prog_name="dx")
@click.argument("argv", nargs=-1, type=click.UNPROCESSED)
def main(argv: tuple[str, ...]) -> None:
    """Developer Experience CLI.

    Runs project commands from the nearest .dxcli installation and its
    ancestors. Everything after the command name is passed through.
    """
    try:
        settings = load_settings()
    except ValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"])
            console.print(f"[red]Error:[/red] Invalid DXCLI_{field.upper()}: {escape(error['msg'])}")
        sys.exit(1)
    setup_logging(settings.log_level)

    dispatcher = Dispatcher(console=console, settings=settings)
    sys.exit(dispatcher.dispatch(list(argv)))


if __name__ == "__main__":
    main()
