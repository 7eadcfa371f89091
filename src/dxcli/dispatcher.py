"""dxcli Dispatcher — turn `dx <name> [args...]` into an action.

    dx | dx help          -> help listing
    dx .<metacommand> ... -> built-in administrative operation
    dx <command> ...      -> run the stacked command file, forwarding args

Unknown names fail with an optional "did you mean" suggestion followed
by the help listing.
"""

from __future__ import annotations

import difflib
import enum
import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from . import RC_FILE
from .config import Settings, load_settings
from .errors import (
    BatchPartialFailure,
    DxcliError,
    InvalidSourceError,
    NoInstallationFound,
    UnknownCommand,
    UnknownMetacommand,
)
from .locator import create_installation, nearest_installation
from .models import METACOMMAND_PREFIX, METACOMMANDS, CommandEntry, CommandTable, Metacommand
from .registry import StackedRegistry
from .remote import CommandInstaller, require_tool
from .updater import SelfUpdater
from .wrapper import install_launcher

logger = logging.getLogger("dxcli.dispatcher")

SUGGESTION_CUTOFF = 0.75


class DispatchState(str, enum.Enum):
    """Where the dispatcher is in handling one invocation."""

    IDLE = "idle"
    RESOLVING_NAME = "resolving_name"
    RUNNING_METACOMMAND = "running_metacommand"
    RUNNING_SUBCOMMAND = "running_subcommand"
    SHOWING_HELP = "showing_help"
    FAILED = "failed"


def suggest(name: str, candidates: Iterable[str], cutoff: float = SUGGESTION_CUTOFF) -> Optional[str]:
    """Return the known name most similar to `name`, if any is close enough.

    A name typed without the metacommand prefix is also compared with
    the prefix added, so `isntall-commands` finds `.install-commands`.
    """
    known = list(candidates)
    probes = [name]
    if not name.startswith(METACOMMAND_PREFIX):
        probes.append(METACOMMAND_PREFIX + name)

    best: Optional[str] = None
    best_score = 0.0
    for probe in probes:
        for match in difflib.get_close_matches(probe, known, n=1, cutoff=cutoff):
            score = difflib.SequenceMatcher(None, probe, match).ratio()
            if score > best_score:
                best, best_score = match, score
    return best


def command_line(path: Path, args: Sequence[str]) -> list[str]:
    """argv used to run a command file.

    Executable files run directly and pick their interpreter from the
    shebang. Shell scripts without the execute bit run through bash.
    """
    if path.suffix == ".sh" and not os.access(path, os.X_OK):
        return ["bash", str(path), *args]
    return [str(path), *args]


def render_help(
    console: Console,
    table: CommandTable,
    metacommands: Sequence[Metacommand] = METACOMMANDS,
    found: bool = True,
) -> None:
    """Print the command listing, aligned to the longest name in either section."""
    commands = [(e.name, e.record.description) for e in table.sorted_entries()]
    metas = sorted((m.name, m.description) for m in metacommands)
    padding = max((len(name) for name, _ in commands + metas), default=0) + 2

    console.print("Developer Experience CLI\n", highlight=False)
    console.print("Usage: dx <subcommand>", highlight=False, markup=False)

    if not found:
        console.print("\n[dim]No dxcli installation found in this directory or any parent.[/dim]")
    for title, rows in (("Available subcommands", commands), ("Metacommands", metas)):
        if not rows:
            continue
        console.print(f"\n{title}:", highlight=False)
        for name, description in rows:
            console.print(f"    {name.ljust(padding)} {description}", highlight=False, markup=False)
    console.print()


class Dispatcher:
    """Handles one `dx` invocation.

    Args:
        console: Where user-facing output goes.
        settings: Environment settings (default: load_settings()).
        start: Directory to resolve installations from (default: cwd).
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        settings: Optional[Settings] = None,
        start: Optional[Path] = None,
    ) -> None:
        self.console = console or Console()
        self.settings = settings or load_settings()
        self.start = (start or Path.cwd()).resolve()
        self.state = DispatchState.IDLE
        self.registry = StackedRegistry(self.start)
        self._metacommands: dict[str, Callable[[list[str]], int]] = {
            ".install-commands": self._install_commands,
            ".install-globally": self._install_globally,
            ".update": self._update,
        }

    def dispatch(self, argv: Sequence[str]) -> int:
        """Run the requested name and return the process exit code."""
        self.state = DispatchState.RESOLVING_NAME
        table = self.registry.table()

        if not argv or argv[0] == "help":
            self.state = DispatchState.SHOWING_HELP
            render_help(self.console, table, found=self.registry.found)
            return 0

        name, args = argv[0], list(argv[1:])
        try:
            if name.startswith(METACOMMAND_PREFIX):
                return self.run_metacommand(name, args, table)
            return self.run_subcommand(name, args, table)
        except UnknownCommand as exc:
            self.state = DispatchState.FAILED
            self.console.print(f"[red]{escape(str(exc))}[/red]")
            if exc.suggestion:
                self.console.print(f"[yellow]Did you mean '{escape(exc.suggestion)}'?[/yellow]\n")
            render_help(self.console, table, found=self.registry.found)
            return 1
        except DxcliError as exc:
            self.state = DispatchState.FAILED
            self.console.print(f"[red]Error:[/red] {escape(str(exc))}")
            return 1

    def known_names(self, table: CommandTable) -> list[str]:
        return table.names() + [m.name for m in METACOMMANDS]

    def run_metacommand(self, name: str, args: list[str], table: CommandTable) -> int:
        """Run a built-in metacommand.

        Raises:
            UnknownMetacommand: If `name` is not a metacommand.
        """
        meta = next((m for m in METACOMMANDS if m.name == name), None)
        if meta is None:
            raise UnknownMetacommand(name, suggest(name, self.known_names(table)))

        self.state = DispatchState.RUNNING_METACOMMAND
        logger.info("Running: %s", meta.description)
        return self._metacommands[name](args)

    def run_subcommand(self, name: str, args: list[str], table: CommandTable) -> int:
        """Run a stacked command and return its exit code.

        Raises:
            NoInstallationFound: If there is no installation anywhere.
            UnknownCommand: If no installation defines `name`.
        """
        if not self.registry.found:
            raise NoInstallationFound(str(self.start))

        entry = self.registry.find(name)
        if entry is None:
            raise UnknownCommand(name, suggest(name, self.known_names(table)))

        self.check_required_tools()
        self.state = DispatchState.RUNNING_SUBCOMMAND
        return self._execute(entry, args)

    def check_required_tools(self) -> None:
        """Ensure every tool required by a located installation is on PATH.

        Raises:
            MissingRequiredTool: For the first missing tool.
            InvalidSourceError: If an installation's dxcli.yaml is invalid.
        """
        for installation in self.registry.installations:
            try:
                manifest = installation.manifest()
            except ValueError as exc:
                raise InvalidSourceError(f"Invalid {installation.manifest_path}: {exc}") from exc
            for tool in manifest.required_tools:
                require_tool(tool)

    def _execute(self, entry: CommandEntry, args: list[str]) -> int:
        record = entry.record
        logger.info("Running: %s", record.description or record.name)
        try:
            completed = subprocess.run(command_line(record.path, args))
        except OSError as exc:
            raise DxcliError(f"Failed to run {record.path}: {exc}") from exc

        # Killed by a signal: report it the way shells do.
        if completed.returncode < 0:
            return 128 - completed.returncode
        return completed.returncode

    def _install_commands(self, args: list[str]) -> int:
        if len(args) > 1:
            self.console.print("[red]Usage:[/red] dx .install-commands [git-repository-url]")
            return 1

        if self.registry.found:
            installation = self.registry.nearest()
        else:
            if not args and not (self.start / RC_FILE).exists():
                raise InvalidSourceError(
                    "No repository URL provided and no .dxclirc file found. "
                    "Usage: dx .install-commands <git-repository-url>"
                )
            installation = create_installation(self.start)

        installer = CommandInstaller(
            installation, git=self.settings.git, timeout=self.settings.git_timeout
        )

        if args:
            count = installer.install_from_source(args[0])
            self.console.print(f"[green]Installed:[/green] {count} subcommands from {escape(args[0])}")
            return 0

        result = installer.install_from_config()
        for source, count in result.succeeded.items():
            self.console.print(f"[green]Installed:[/green] {count} subcommands from {escape(source)}")
        for source, message in result.failed.items():
            self.console.print(f"[red]Failed:[/red] {escape(source)}: {escape(message)}")
        try:
            result.raise_for_failures()
        except BatchPartialFailure as exc:
            if not result.ok:
                raise
            self.console.print(f"[yellow]Warning:[/yellow] {escape(str(exc))}")
        return 0

    def _install_globally(self, args: list[str]) -> int:
        target = install_launcher(self.settings.bin_dir)
        self.console.print(f"[green]dx launcher installed:[/green] {target}")
        self.console.print("You can now use 'dx' from any directory within your project")
        return 0

    def _update(self, args: list[str]) -> int:
        installation = nearest_installation(self.start)
        updater = SelfUpdater(
            installation,
            source=self.settings.update_source,
            git=self.settings.git,
            timeout=self.settings.git_timeout,
        )
        launched = updater.update()
        self.console.print(
            f"[green]Update started[/green] in the background (pid {launched.pid})."
        )
        self.console.print(f"  Log: {launched.log_path}")
        self.console.print("  The log names the backup of your current installation.")
        return 0
