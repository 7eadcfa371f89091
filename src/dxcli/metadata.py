"""dxcli Metadata — read and stamp the header block of command files.

A command file announces itself with a header near the top:

    #!/usr/bin/env bash
    #@metadata-start
    #@name build
    #@description Build the project
    #@source-location https://github.com/acme/dx-commands.git
    #@source-revision 4f1c2e...
    #@metadata-end

Parsing is line-oriented text processing only; command files are never
executed or imported to read their metadata.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import CommandRecord, Provenance

logger = logging.getLogger("dxcli.metadata")

START_MARKER = "#@metadata-start"
END_MARKER = "#@metadata-end"
FIELD_PREFIX = "#@"

# The start marker must appear within this many lines of the top of the file.
HEADER_SCAN_LINES = 50

SOURCE_LOCATION = "source-location"
SOURCE_REVISION = "source-revision"

# Field names written by earlier shell-based releases.
LEGACY_ALIASES = {
    "source-repo": SOURCE_LOCATION,
    "source-commit-id": SOURCE_REVISION,
}
PROVENANCE_FIELDS = frozenset({SOURCE_LOCATION, SOURCE_REVISION, *LEGACY_ALIASES})


def _field(line: str) -> Optional[tuple[str, str]]:
    """Split a `#@key value` line into (key, value)."""
    stripped = line.strip()
    if not stripped.startswith(FIELD_PREFIX):
        return None
    key, _, value = stripped[len(FIELD_PREFIX):].partition(" ")
    return key, value.strip()


def _find_header(lines: list[str]) -> tuple[Optional[int], Optional[int]]:
    """Locate the start and end marker line indexes.

    Returns:
        (start, end): start is None when there is no header at all;
        end is None when the header is never closed.
    """
    start = None
    for i, line in enumerate(lines[:HEADER_SCAN_LINES]):
        if line.strip() == START_MARKER:
            start = i
            break
    if start is None:
        return None, None

    for j in range(start + 1, len(lines)):
        if lines[j].strip() == END_MARKER:
            return start, j
    return start, None


def parse_header(text: str) -> Optional[dict[str, str]]:
    """Extract the header fields from command file text.

    Legacy provenance field names are mapped onto the current ones; when
    both spellings are present the current one wins. Unknown fields are
    kept as-is so callers can ignore them.

    Args:
        text: Full text of the command file.

    Returns:
        dict of field -> value, or None if there is no complete header.
    """
    lines = text.splitlines()
    start, end = _find_header(lines)
    if start is None or end is None:
        return None

    fields: dict[str, str] = {}
    legacy: dict[str, str] = {}
    for line in lines[start + 1:end]:
        parsed = _field(line)
        if parsed is None:
            continue
        key, value = parsed
        if key in LEGACY_ALIASES:
            legacy.setdefault(LEGACY_ALIASES[key], value)
        else:
            fields.setdefault(key, value)

    for key, value in legacy.items():
        fields.setdefault(key, value)
    return fields


def parse_command_file(path: Path) -> Optional[CommandRecord]:
    """Parse a command file's header into a CommandRecord.

    Args:
        path: Path to the command file.

    Returns:
        CommandRecord, or None if the file is not a recognized command
        (no header, unclosed header, missing or invalid name, unreadable).
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Skipping unreadable file %s: %s", path, exc)
        return None

    fields = parse_header(text)
    if fields is None:
        logger.debug("No metadata header in %s", path)
        return None
    if not fields.get("name"):
        logger.debug("Metadata header without a name in %s", path)
        return None

    provenance = None
    if fields.get(SOURCE_LOCATION):
        provenance = Provenance(
            source_location=fields[SOURCE_LOCATION],
            revision_id=fields.get(SOURCE_REVISION, ""),
        )

    try:
        return CommandRecord(
            name=fields["name"],
            description=fields.get("description", ""),
            provenance=provenance,
            path=path,
        )
    except ValidationError as exc:
        logger.debug("Invalid metadata in %s: %s", path, exc)
        return None


def inject_provenance(path: Path, source_location: str, revision_id: str) -> bool:
    """Stamp a command file with where it was installed from.

    Existing provenance lines inside the header are removed first, then
    the new ones go immediately before the end marker. A file without a
    header gets a fresh one as its first non-shebang lines. Running this
    twice with the same arguments leaves the file byte-identical.

    Args:
        path: The command file to rewrite in place.
        source_location: Source reference the file was installed from.
        revision_id: Revision of the fetched snapshot.

    Returns:
        bool: False if the file was left untouched because its header is
        unclosed or starts too far down to be recognized.
    """
    text = path.read_bytes().decode("utf-8")
    lines = text.splitlines(keepends=True)
    newline = "\r\n" if lines and lines[0].endswith("\r\n") else "\n"

    stamp = [
        f"{FIELD_PREFIX}{SOURCE_LOCATION} {source_location}{newline}",
        f"{FIELD_PREFIX}{SOURCE_REVISION} {revision_id}{newline}",
    ]

    start, end = _find_header(lines)
    if start is not None and end is None:
        logger.warning("Unclosed metadata header in %s, provenance not recorded", path)
        return False
    if start is None and any(line.strip() == START_MARKER for line in lines):
        logger.warning(
            "Metadata header in %s starts after line %d, provenance not recorded",
            path, HEADER_SCAN_LINES,
        )
        return False

    if start is not None and end is not None:
        header = [
            line for line in lines[start + 1:end]
            if (_field(line) or ("", ""))[0] not in PROVENANCE_FIELDS
        ]
        lines = lines[:start + 1] + header + stamp + lines[end:]
    else:
        at = 1 if lines and lines[0].startswith("#!") else 0
        if at and not lines[0].endswith(("\n", "\r")):
            lines[0] += newline
        block = [f"{START_MARKER}{newline}", *stamp, f"{END_MARKER}{newline}"]
        lines = lines[:at] + block + lines[at:]

    path.write_bytes("".join(lines).encode("utf-8"))
    return True
