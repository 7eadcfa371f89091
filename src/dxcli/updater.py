"""dxcli Updater — replace an installation's control tree with the latest upstream.

The update runs in two phases:

  1. In this process: shallow-clone the update source into a temp dir.
     Any failure here aborts before anything is modified.
  2. In a detached process: back up `.dxcli/`, park the preserved paths,
     copy the fetched tree over, put the preserved paths back, fix
     permissions, then delete the fetch dir and the worker script.

Phase 2 runs from a standalone copy of `_update_worker.py` written to
the system temp dir, with everything it needs passed on its command
line. The initiating process does not wait for it; its output goes to
a log file next to the script.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from . import CONTROL_DIR, _update_worker
from .errors import DxcliError, InvalidSourceError
from .models import Installation
from .remote import DEFAULT_GIT_TIMEOUT, git_clone, make_executable, require_tool

logger = logging.getLogger("dxcli.updater")


class UpdateLaunch(BaseModel):
    """Handle on a started background update."""

    pid: int
    script: Path
    log_path: Path
    fetch_dir: Path


def worker_source() -> str:
    """Source text of the standalone update procedure."""
    return Path(_update_worker.__file__).read_text()


class SelfUpdater:
    """Updates one installation from its upstream repository.

    Args:
        installation: The installation to update.
        source: Git URL to update from (default: the manifest's update_source).
        git: Fetch tool executable.
        timeout: Seconds before the clone is abandoned.
    """

    def __init__(
        self,
        installation: Installation,
        source: Optional[str] = None,
        git: str = "git",
        timeout: int = DEFAULT_GIT_TIMEOUT,
    ) -> None:
        try:
            manifest = installation.manifest()
        except ValueError as exc:
            raise InvalidSourceError(f"Invalid {installation.manifest_path}: {exc}") from exc
        self.installation = installation
        self.source = source or manifest.update_source
        self.preserve = list(manifest.preserve)
        self.git = git
        self.timeout = timeout

    def fetch(self) -> Path:
        """Shallow-clone the update source into a new temp dir.

        Returns:
            Path: The clone. It contains a `.dxcli/` directory.

        Raises:
            MissingRequiredTool: If git isn't available.
            FetchError: If the clone fails.
            InvalidSourceError: If the clone has no `.dxcli/` directory.
        """
        require_tool(self.git)
        fetch_dir = Path(tempfile.mkdtemp(prefix="dxcli-update-"))
        try:
            logger.info("Fetching latest version from %s...", self.source)
            git_clone(self.source, fetch_dir, git=self.git, depth=1, timeout=self.timeout)
            if not (fetch_dir / CONTROL_DIR).is_dir():
                raise InvalidSourceError(f"No {CONTROL_DIR} directory found in {self.source}")
        except DxcliError:
            shutil.rmtree(fetch_dir, ignore_errors=True)
            raise
        return fetch_dir

    def write_worker(self) -> Path:
        """Persist the standalone update procedure outside the installation."""
        stamp = f"{int(time.time())}_{os.getpid()}"
        script = Path(tempfile.gettempdir()) / f"dxcli_update_{stamp}.py"
        script.write_text(worker_source())
        make_executable(script)
        return script

    def worker_command(self, script: Path, fetch_dir: Path) -> list[str]:
        """Command line of the background update process."""
        cmd = [
            sys.executable,
            str(script),
            str(self.installation.control_dir),
            str(fetch_dir),
            self.source,
        ]
        for item in self.preserve:
            cmd += ["--preserve", item]
        return cmd

    def launch(self, script: Path, fetch_dir: Path) -> UpdateLaunch:
        """Start the update procedure as a detached process and return at once."""
        log_path = script.with_suffix(".log")
        with open(log_path, "ab") as log:
            proc = subprocess.Popen(
                self.worker_command(script, fetch_dir),
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                close_fds=True,
            )
        return UpdateLaunch(pid=proc.pid, script=script, log_path=log_path, fetch_dir=fetch_dir)

    def update(self) -> UpdateLaunch:
        """Fetch the latest control tree and start replacing it in the background.

        Completion is not observable from here; check the log file or the
        backup directory it names.

        Returns:
            UpdateLaunch: pid, script and log file of the background process.
        """
        logger.info("Updating dxcli installation at %s...", self.installation.control_dir)
        fetch_dir = self.fetch()
        try:
            script = self.write_worker()
        except OSError:
            shutil.rmtree(fetch_dir, ignore_errors=True)
            raise
        logger.info("Launching update process...")
        launched = self.launch(script, fetch_dir)
        logger.info("Update process %d started in the background", launched.pid)
        return launched
