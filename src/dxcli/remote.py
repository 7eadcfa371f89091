"""dxcli Remote — install command sets from git repositories.

A command source is any git repository with a top-level `subcommands/`
directory:

    dx-commands/
        subcommands/
            build.sh
            deploy.sh

Installing copies those files into the local installation's
`subcommands/`, overwriting same-named files, and stamps each with the
repository URL and the commit it was fetched at.

Batch mode reads sources from the project's .dxclirc:

    [install-commands]
    https://github.com/acme/dx-commands.git
    # https://github.com/acme/experimental.git
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from . import SUBCOMMANDS_DIR
from .config import INSTALL_COMMANDS_SECTION, read_rc_section
from .errors import (
    BatchPartialFailure,
    DxcliError,
    FetchError,
    InvalidSourceError,
    MissingRequiredTool,
)
from .metadata import inject_provenance, parse_command_file
from .models import Installation
from .registry import command_files

logger = logging.getLogger("dxcli.remote")

DEFAULT_GIT_TIMEOUT = 300


def require_tool(name: str) -> str:
    """Return the full path of an executable on PATH.

    Raises:
        MissingRequiredTool: If it can't be found.
    """
    found = shutil.which(name)
    if found is None:
        raise MissingRequiredTool(name)
    return found


def make_executable(path: Path) -> None:
    """Add execute permission wherever read permission is set."""
    mode = path.stat().st_mode
    if mode & stat.S_IRUSR:
        mode |= stat.S_IXUSR
    if mode & stat.S_IRGRP:
        mode |= stat.S_IXGRP
    if mode & stat.S_IROTH:
        mode |= stat.S_IXOTH
    os.chmod(path, mode)


def git_clone(
    url: str,
    dest: Path,
    git: str = "git",
    depth: Optional[int] = None,
    timeout: int = DEFAULT_GIT_TIMEOUT,
) -> None:
    """Clone a repository into `dest`.

    Raises:
        FetchError: If git fails, times out or can't be started.
    """
    cmd = [git, "clone"]
    if depth is not None:
        cmd += ["--depth", str(depth)]
    cmd += [url, str(dest)]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise FetchError(f"git clone timed out after {timeout}s: {url}") from exc
    except OSError as exc:
        raise FetchError(f"Failed to run {git}: {exc}") from exc

    if result.returncode != 0:
        raise FetchError(f"git clone failed for {url}: {result.stderr.strip()}")


def git_revision(repo: Path, git: str = "git") -> str:
    """Return the commit id checked out in `repo`.

    Raises:
        FetchError: If the revision can't be resolved.
    """
    try:
        result = subprocess.run(
            [git, "-C", str(repo), "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise FetchError(f"Failed to resolve revision of {repo}: {exc}") from exc

    if result.returncode != 0:
        raise FetchError(f"git rev-parse failed: {result.stderr.strip()}")
    return result.stdout.strip()


class BatchResult(BaseModel):
    """Per-source outcome of a batch install."""

    succeeded: dict[str, int] = Field(
        default_factory=dict, description="Source -> number of commands installed"
    )
    failed: dict[str, str] = Field(
        default_factory=dict, description="Source -> error message"
    )

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        """True if at least one source was installed."""
        return bool(self.succeeded)

    def raise_for_failures(self) -> None:
        """Raise BatchPartialFailure if any source failed."""
        if self.failed:
            raise BatchPartialFailure(self)


class CommandInstaller:
    """Installs remote command sets into one installation.

    Args:
        installation: The installation receiving the commands.
        git: Fetch tool executable.
        timeout: Seconds before a clone is abandoned.
    """

    def __init__(
        self,
        installation: Installation,
        git: str = "git",
        timeout: int = DEFAULT_GIT_TIMEOUT,
    ) -> None:
        self.installation = installation
        self.git = git
        self.timeout = timeout

    def install_from_source(self, source: str) -> int:
        """Fetch a repository and install its subcommands.

        Args:
            source: Git repository URL (or local path git can clone).

        Returns:
            int: Number of command files installed.

        Raises:
            MissingRequiredTool: If git isn't available.
            FetchError: If the clone fails.
            InvalidSourceError: If the repository has no subcommands/ or
                declares the same command name twice.
        """
        require_tool(self.git)

        tmp = Path(tempfile.mkdtemp(prefix="dxcli-install-"))
        try:
            logger.info("Cloning repository %s...", source)
            git_clone(source, tmp, git=self.git, timeout=self.timeout)
            revision = git_revision(tmp, git=self.git)

            fetched = tmp / SUBCOMMANDS_DIR
            if not fetched.is_dir():
                raise InvalidSourceError(f"No {SUBCOMMANDS_DIR} directory found in {source}")

            files = command_files(fetched)
            self._check_unique_names(files, source)

            dest = self.installation.subcommands_dir
            dest.mkdir(parents=True, exist_ok=True)

            logger.info("Installing subcommands...")
            for path in files:
                target = dest / path.name
                shutil.copy2(path, target)
                try:
                    inject_provenance(target, source, revision)
                except UnicodeDecodeError:
                    logger.debug("Not stamping non-text file %s", target)
                make_executable(target)

            logger.info(
                "Successfully installed %d subcommands from %s (commit: %s)",
                len(files), source, revision,
            )
            return len(files)
        finally:
            shutil.rmtree(tmp, ignore_errors=True)

    def install_from_config(self, rc_path: Optional[Path] = None) -> BatchResult:
        """Install every source listed in the [install-commands] section.

        A failing source is logged and recorded; the remaining sources
        are still attempted.

        Args:
            rc_path: The .dxclirc file (default: the project root's).

        Returns:
            BatchResult: Per-source outcomes.

        Raises:
            InvalidSourceError: If the file is missing or lists no sources.
            MissingRequiredTool: If git isn't available.
        """
        rc = rc_path or self.installation.rc_path
        try:
            sources = read_rc_section(rc, INSTALL_COMMANDS_SECTION)
        except FileNotFoundError as exc:
            raise InvalidSourceError(
                f"No repository URL provided and no .dxclirc file found at {rc}"
            ) from exc

        if not sources:
            raise InvalidSourceError(
                f"No repository URLs found in the [{INSTALL_COMMANDS_SECTION}] section of {rc}"
            )

        require_tool(self.git)
        logger.info("Found %d source(s) in [%s]", len(sources), INSTALL_COMMANDS_SECTION)

        result = BatchResult()
        for source in sources:
            logger.info("Installing commands from: %s", source)
            try:
                result.succeeded[source] = self.install_from_source(source)
            except DxcliError as exc:
                logger.error("Failed to install commands from %s: %s", source, exc)
                result.failed[source] = str(exc)
        return result

    @staticmethod
    def _check_unique_names(files: list[Path], source: str) -> None:
        """Reject a source whose files declare the same command twice."""
        seen: dict[str, str] = {}
        for path in files:
            record = parse_command_file(path)
            if record is None:
                continue
            if record.name in seen:
                raise InvalidSourceError(
                    f"Command '{record.name}' is declared by both {seen[record.name]} "
                    f"and {path.name} in {source}"
                )
            seen[record.name] = path.name
