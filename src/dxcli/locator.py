"""dxcli Locator — find the installations that apply to a directory.

Layout of one installation:
    project/
        .dxclirc                # optional batch config
        .dxcli/
            dxcli.yaml          # marker + installation settings
            subcommands/
                build.sh
                test.sh
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from . import CONTROL_DIR, MANIFEST_FILE
from .errors import NoInstallationFound
from .models import Installation, InstallationManifest, generate_installation_yaml

logger = logging.getLogger("dxcli.locator")


def find_installations(start: Optional[Path] = None) -> list[Installation]:
    """Collect every installation from `start` up to the filesystem root.

    Args:
        start: Directory to start from (default: current working directory).

    Returns:
        list[Installation]: Nearest first. Empty if there is none anywhere.
    """
    here = (start or Path.cwd()).resolve()
    found: list[Installation] = []
    for directory in (here, *here.parents):
        control_dir = directory / CONTROL_DIR
        if (control_dir / MANIFEST_FILE).is_file():
            found.append(Installation(control_dir=control_dir))
    logger.debug("Found %d installation(s) above %s", len(found), here)
    return found


def nearest_installation(start: Optional[Path] = None) -> Installation:
    """Return the installation closest to `start`.

    Raises:
        NoInstallationFound: If no ancestor hosts an installation.
    """
    installations = find_installations(start)
    if not installations:
        raise NoInstallationFound(str(start or Path.cwd()))
    return installations[0]


def create_installation(
    project_root: Path,
    manifest: Optional[InstallationManifest] = None,
) -> Installation:
    """Create a local installation in `project_root`.

    Existing files are left alone, so this is safe to call on a directory
    that is already an installation.

    Args:
        project_root: Directory that will host `.dxcli/`.
        manifest: Settings to write (default: built-in defaults).

    Returns:
        Installation: The (possibly pre-existing) installation.
    """
    installation = Installation(control_dir=project_root.resolve() / CONTROL_DIR)
    installation.subcommands_dir.mkdir(parents=True, exist_ok=True)
    if not installation.manifest_path.exists():
        installation.manifest_path.write_text(
            generate_installation_yaml(manifest or InstallationManifest())
        )
        logger.info("Created dxcli installation at %s", installation.control_dir)
    return installation
