"""Global `dx` launcher — lets `dx` run from any directory inside a project."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from .remote import make_executable

logger = logging.getLogger("dxcli.wrapper")

LAUNCHER_NAME = "dx"


def launcher_script(python: str = sys.executable) -> str:
    """Shell launcher that runs dxcli with the given interpreter."""
    return (
        "#!/bin/sh\n"
        "# Installed by 'dx .install-globally'\n"
        f'exec "{python}" -m dxcli "$@"\n'
    )


def install_launcher(bin_dir: Path, python: str = sys.executable) -> Path:
    """Write the `dx` launcher into `bin_dir`.

    Shell rc files are never edited; a warning is logged when `bin_dir`
    is not on PATH.

    Args:
        bin_dir: Directory to write the launcher to (created if missing).
        python: Interpreter the launcher execs.

    Returns:
        Path: The launcher path.
    """
    bin_dir.mkdir(parents=True, exist_ok=True)
    target = bin_dir / LAUNCHER_NAME
    target.write_text(launcher_script(python))
    make_executable(target)

    path_dirs = [Path(p).expanduser() for p in os.environ.get("PATH", "").split(os.pathsep) if p]
    if bin_dir.expanduser() not in path_dirs:
        logger.warning("%s is not on your PATH; add it to your shell configuration", bin_dir)
    return target
