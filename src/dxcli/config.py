"""Configuration loading from environment variables and the .dxclirc file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

INSTALL_COMMANDS_SECTION = "install-commands"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """Process-wide settings, read from the environment."""

    log_level: str = Field(default="INFO", description="Root log level")
    git: str = Field(default="git", description="Fetch tool executable")
    git_timeout: int = Field(default=300, description="Seconds before a clone is abandoned")
    update_source: Optional[str] = Field(
        default=None, description="Overrides the installation's update_source"
    )
    bin_dir: Path = Field(
        default_factory=lambda: Path("~/.local/bin").expanduser(),
        description="Where .install-globally writes the dx launcher",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{v}', expected one of: {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("git_timeout")
    @classmethod
    def validate_git_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"git_timeout must be positive: got {v}")
        return v


def load_settings(environ: Optional[dict[str, str]] = None) -> Settings:
    """Load settings from DXCLI_* environment variables.

    Priority: environment variables > defaults.

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value.
    """
    env = os.environ if environ is None else environ
    data: dict = {}
    if env.get("DXCLI_LOG_LEVEL"):
        data["log_level"] = env["DXCLI_LOG_LEVEL"]
    if env.get("DXCLI_GIT"):
        data["git"] = env["DXCLI_GIT"]
    if env.get("DXCLI_GIT_TIMEOUT"):
        data["git_timeout"] = env["DXCLI_GIT_TIMEOUT"]
    if env.get("DXCLI_UPDATE_SOURCE"):
        data["update_source"] = env["DXCLI_UPDATE_SOURCE"]
    if env.get("DXCLI_BIN_DIR"):
        data["bin_dir"] = Path(env["DXCLI_BIN_DIR"]).expanduser()
    return Settings.model_validate(data)


def read_rc_section(path: Path, section: str) -> list[str]:
    """Return the entries listed under `[section]` in a .dxclirc file.

    The file is INI-like but entries are bare values (git URLs contain
    ':' and '=' so configparser can't read them). Blank lines and lines
    starting with '#' are skipped, surrounding whitespace is stripped.

    Args:
        path: Path to the .dxclirc file.
        section: Section name without brackets.

    Returns:
        list[str]: Entries in file order. Empty if the section is absent.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    if not path.exists():
        raise FileNotFoundError(f".dxclirc not found: {path}")

    entries: list[str] = []
    in_section = False
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            in_section = line[1:-1].strip() == section
            continue
        if in_section:
            entries.append(line)
    return entries
