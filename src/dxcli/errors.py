"""dxcli error kinds.

Every error derives from DxcliError so the CLI can report them uniformly,
and from the builtin exception that best describes it so callers that
only know about builtins still catch them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .remote import BatchResult


class DxcliError(Exception):
    """Base class for all dxcli failures."""


class NoInstallationFound(DxcliError, FileNotFoundError):
    """No `.dxcli` installation exists in the directory or any ancestor."""

    def __init__(self, start: str) -> None:
        super().__init__(
            f"No dxcli installation found in {start} or any parent directory"
        )
        self.start = start


class FetchError(DxcliError, ConnectionError):
    """Fetching a remote source failed (network or tool failure)."""


class InvalidSourceError(DxcliError, ValueError):
    """A fetched source or config file lacks the expected structure."""


class UnknownCommand(DxcliError, LookupError):
    """The requested name is not in the stacked command table."""

    kind = "command"

    def __init__(self, name: str, suggestion: Optional[str] = None) -> None:
        super().__init__(f"Unknown {self.kind}: {name}")
        self.name = name
        self.suggestion = suggestion


class UnknownMetacommand(UnknownCommand):
    """The requested `.`-prefixed name is not a built-in metacommand."""

    kind = "metacommand"


class MissingRequiredTool(DxcliError, RuntimeError):
    """An executable required before dispatch is not on PATH."""

    def __init__(self, tool: str) -> None:
        super().__init__(f"Required command not found on PATH: {tool}")
        self.tool = tool


class BatchPartialFailure(DxcliError, RuntimeError):
    """Some sources of a batch install failed."""

    def __init__(self, result: "BatchResult") -> None:
        failed = ", ".join(result.failed)
        super().__init__(
            f"{len(result.failed)} of {result.total} sources failed: {failed}"
        )
        self.result = result
