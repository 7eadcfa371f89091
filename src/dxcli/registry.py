"""dxcli Registry — merge the command sets of stacked installations.

Given the installations above a directory (nearest first), every
command name resolves to the record of the nearest installation that
defines it:

    /proj/.dxcli/subcommands/         build, lint
    /proj/sub/.dxcli/subcommands/     build, test

    from /proj/sub:  build -> /proj/sub, lint -> /proj, test -> /proj/sub
    from /proj:      build -> /proj, lint -> /proj

The table is rebuilt on every invocation; nothing is cached.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .errors import NoInstallationFound
from .locator import find_installations
from .metadata import parse_command_file
from .models import CommandEntry, CommandRecord, CommandTable, Installation

logger = logging.getLogger("dxcli.registry")


def command_files(directory: Path) -> list[Path]:
    """List candidate command files in a subcommands directory.

    Hidden files and subdirectories are skipped. Sorted by filename so
    the result is independent of filesystem enumeration order.
    """
    if not directory.is_dir():
        return []
    return sorted(
        entry for entry in directory.iterdir()
        if entry.is_file() and not entry.name.startswith(".")
    )


def scan_installation(installation: Installation) -> list[CommandRecord]:
    """Parse every recognized command of one installation.

    Within an installation, a name declared by more than one file
    resolves to the first file in filename order; the others are
    dropped with a warning.

    Args:
        installation: The installation to scan.

    Returns:
        list[CommandRecord]: One record per distinct name.
    """
    records: dict[str, CommandRecord] = {}
    for path in command_files(installation.subcommands_dir):
        record = parse_command_file(path)
        if record is None:
            continue
        if record.name in records:
            logger.warning(
                "Duplicate command '%s' in %s: using %s, ignoring %s",
                record.name,
                installation.subcommands_dir,
                records[record.name].path.name,
                path.name,
            )
            continue
        records[record.name] = record
    return list(records.values())


def resolve_table(installations: Iterable[Installation]) -> CommandTable:
    """Build the stacked command table.

    Args:
        installations: Installations ordered nearest first.

    Returns:
        CommandTable: For each name, the entry from the nearest installation.
    """
    entries: dict[str, CommandEntry] = {}
    for installation in installations:
        for record in scan_installation(installation):
            # Nearer installations were visited first and keep their entry.
            if record.name not in entries:
                entries[record.name] = CommandEntry(record=record, installation=installation)
    return CommandTable(entries=entries)


class StackedRegistry:
    """The installations and merged command table seen from one directory.

    Args:
        start: Directory to resolve from (default: current working directory).
    """

    def __init__(self, start: Optional[Path] = None) -> None:
        self.start = (start or Path.cwd()).resolve()
        self.installations = find_installations(self.start)

    @property
    def found(self) -> bool:
        """Whether any installation exists above the start directory."""
        return bool(self.installations)

    def nearest(self) -> Installation:
        """The installation closest to the start directory.

        Raises:
            NoInstallationFound: If there is none.
        """
        if not self.installations:
            raise NoInstallationFound(str(self.start))
        return self.installations[0]

    def table(self) -> CommandTable:
        """Resolve the stacked command table."""
        return resolve_table(self.installations)

    def find(self, name: str) -> Optional[CommandEntry]:
        """Look up a single command by name."""
        return self.table().get(name)
