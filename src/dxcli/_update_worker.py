"""Standalone dxcli update procedure.

The updater copies this file out of the package and runs it as a
detached process, so it may only use the standard library and must not
import the dxcli package: the files it replaces can be the ones the initiating
process was loaded from.

Usage:
    python dxcli_update_<stamp>.py CONTROL_DIR FETCH_DIR SOURCE [--preserve PATH ...]
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import stat
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger("dxcli.update")

CONTROL_DIR = ".dxcli"
SUBCOMMANDS_DIR = "subcommands"


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def backup(control_dir: Path) -> Path:
    """Copy the control tree to a fresh timestamped backup directory."""
    backup_dir = Path(tempfile.mkdtemp()) / f"dxcli-backup-{time.strftime('%Y%m%d%H%M%S')}"
    backup_dir.mkdir(parents=True)
    shutil.copytree(control_dir, backup_dir / control_dir.name, symlinks=True)
    return backup_dir


def restore_permissions(subcommands_dir: Path) -> None:
    """Make every command file executable."""
    if not subcommands_dir.is_dir():
        return
    for path in subcommands_dir.iterdir():
        if path.is_file():
            mode = path.stat().st_mode
            os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def apply_update(control_dir: Path, fetch_dir: Path, preserve: list[str]) -> Path:
    """Replace the control tree with the fetched one, keeping preserved paths.

    Args:
        control_dir: The installation's `.dxcli` directory.
        fetch_dir: Clone of the update source; must contain `.dxcli/`.
        preserve: Control-tree-relative paths to carry over unchanged.

    Returns:
        Path: The backup directory.
    """
    fetched = fetch_dir / CONTROL_DIR
    if not fetched.is_dir():
        raise FileNotFoundError(f"No {CONTROL_DIR} directory in {fetch_dir}")

    backup_dir = backup(control_dir)
    logger.info("Created backup of current installation at %s", backup_dir)

    held: list[tuple[str, Path]] = []
    for item in preserve:
        source = control_dir / item
        if source.exists() or source.is_symlink():
            logger.info("Preserving your custom %s...", item)
            parked = fetch_dir / f"{item.replace('/', '_')}.preserved"
            _remove(parked)
            shutil.move(str(source), str(parked))
            held.append((item, parked))

    logger.info("Installing updated files...")
    shutil.copytree(fetched, control_dir, symlinks=True, dirs_exist_ok=True)

    for item, parked in held:
        logger.info("Restoring your custom %s...", item)
        target = control_dir / item
        _remove(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(parked), str(target))

    restore_permissions(control_dir / SUBCOMMANDS_DIR)
    return backup_dir


def main(argv: Optional[list[str]] = None, script: Optional[Path] = None) -> int:
    """Apply the update, then remove the fetch directory and `script`."""
    parser = argparse.ArgumentParser(description="Apply a fetched dxcli update.")
    parser.add_argument("control_dir", type=Path)
    parser.add_argument("fetch_dir", type=Path)
    parser.add_argument("source")
    parser.add_argument("--preserve", action="append", default=[])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        stream=sys.stderr,
    )

    status = 0
    try:
        logger.info("Updating %s from %s", args.control_dir, args.source)
        backup_dir = apply_update(args.control_dir, args.fetch_dir, args.preserve)
        logger.info("dxcli has been successfully updated!")
        logger.info("Your previous installation was backed up to %s", backup_dir)
        logger.info("If you encounter any issues, you can restore from the backup.")
    except Exception:
        logger.exception("Update of %s failed", args.control_dir)
        status = 1
    finally:
        shutil.rmtree(args.fetch_dir, ignore_errors=True)
        if script is not None:
            script.unlink(missing_ok=True)
    return status


if __name__ == "__main__":
    sys.exit(main(script=Path(__file__)))
