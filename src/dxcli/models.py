"""dxcli data models — command records, installations and the dxcli.yaml schema.

An installation is a `.dxcli/` control directory holding:
  - dxcli.yaml: the installation marker and its settings
  - subcommands/: a flat set of executable command files
  - whatever else the upstream control tree ships
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import MANIFEST_FILE, RC_FILE, SUBCOMMANDS_DIR

DEFAULT_UPDATE_SOURCE = "https://github.com/Enterprise-Tooling-for-Symfony/dxcli.git"
METACOMMAND_PREFIX = "."


class Provenance(BaseModel):
    """Where an installed command file came from."""

    model_config = ConfigDict(frozen=True)

    source_location: str = Field(description="Source reference the file was installed from")
    revision_id: str = Field(default="", description="Revision of the fetched snapshot")


class CommandRecord(BaseModel):
    """A command parsed from the metadata header of a command file."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Name the command is invoked by")
    description: str = Field(default="", description="One-line help text")
    provenance: Optional[Provenance] = None
    path: Path = Field(description="The command file the record was parsed from")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject empty names and names that would shadow metacommands."""
        v = v.strip()
        if not v or any(c.isspace() for c in v):
            raise ValueError(f"Command name must be a single word: got '{v}'")
        if v.startswith(METACOMMAND_PREFIX):
            raise ValueError(f"Command name may not start with '{METACOMMAND_PREFIX}': got '{v}'")
        return v


class InstallationManifest(BaseModel):
    """Settings of one installation — parsed from .dxcli/dxcli.yaml."""

    update_source: str = Field(
        default=DEFAULT_UPDATE_SOURCE,
        description="Git repository the control tree is updated from",
    )
    preserve: list[str] = Field(
        default_factory=lambda: [SUBCOMMANDS_DIR],
        description="Control-tree paths kept across updates",
    )
    required_tools: list[str] = Field(
        default_factory=list,
        description="Executables that must be on PATH before dispatch",
    )

    @field_validator("preserve")
    @classmethod
    def validate_preserve(cls, v: list[str]) -> list[str]:
        """Preserved paths must stay inside the control directory."""
        for item in v:
            parts = Path(item).parts
            if not item or Path(item).is_absolute() or ".." in parts:
                raise ValueError(f"Preserved path must be relative to the control directory: '{item}'")
        return v


class Installation(BaseModel):
    """A project directory hosting a `.dxcli` control directory."""

    model_config = ConfigDict(frozen=True)

    control_dir: Path

    @property
    def project_root(self) -> Path:
        return self.control_dir.parent

    @property
    def manifest_path(self) -> Path:
        return self.control_dir / MANIFEST_FILE

    @property
    def subcommands_dir(self) -> Path:
        return self.control_dir / SUBCOMMANDS_DIR

    @property
    def rc_path(self) -> Path:
        """The batch config file, kept at the project root."""
        return self.project_root / RC_FILE

    def manifest(self) -> InstallationManifest:
        """Load dxcli.yaml, falling back to defaults when it is empty."""
        return parse_installation_yaml(self.manifest_path)


class CommandEntry(BaseModel):
    """A winning command record and the installation that owns it."""

    model_config = ConfigDict(frozen=True)

    record: CommandRecord
    installation: Installation

    @property
    def name(self) -> str:
        return self.record.name


class CommandTable(BaseModel):
    """Name -> winning command entry for one invocation."""

    entries: dict[str, CommandEntry] = Field(default_factory=dict)

    def get(self, name: str) -> Optional[CommandEntry]:
        return self.entries.get(name)

    def names(self) -> list[str]:
        return sorted(self.entries)

    def sorted_entries(self) -> list[CommandEntry]:
        """Entries sorted by name, for help output."""
        return [self.entries[name] for name in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)


class Metacommand(BaseModel):
    """A built-in administrative operation, not subject to stacking."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.startswith(METACOMMAND_PREFIX):
            raise ValueError(f"Metacommand names start with '{METACOMMAND_PREFIX}': got '{v}'")
        return v


METACOMMANDS: tuple[Metacommand, ...] = (
    Metacommand(name=".install-commands", description="Install subcommands from a git repository"),
    Metacommand(name=".install-globally", description="Install the dx launcher globally (run once per user)"),
    Metacommand(name=".update", description="Update the dxcli installation in the current project"),
)


def parse_installation_yaml(path: Path) -> InstallationManifest:
    """Parse a dxcli.yaml file into an InstallationManifest.

    Args:
        path: Path to the dxcli.yaml file.

    Returns:
        InstallationManifest: The parsed manifest. An empty file yields defaults.

    Raises:
        FileNotFoundError: If dxcli.yaml doesn't exist.
        ValueError: If the YAML is malformed, not a mapping, or has invalid fields.
    """
    if not path.exists():
        raise FileNotFoundError(f"dxcli.yaml not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid dxcli.yaml: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"dxcli.yaml must be a YAML mapping, got {type(raw).__name__}")

    return InstallationManifest.model_validate(raw)


def generate_installation_yaml(manifest: InstallationManifest) -> str:
    """Serialize an InstallationManifest back to YAML.

    Args:
        manifest: The manifest to serialize.

    Returns:
        str: YAML string representation.
    """
    data = manifest.model_dump(exclude_none=True)
    return yaml.dump(data, default_flow_style=False, sort_keys=False)
