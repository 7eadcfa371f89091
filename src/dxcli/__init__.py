"""dxcli — project-scoped developer experience commands.

Each project directory may carry a `.dxcli/` installation with its own
subcommands. Nested directories inherit the commands of every ancestor
installation, and the nearest installation wins on name collisions.
"""

__version__ = "0.1.0"

CONTROL_DIR = ".dxcli"
MANIFEST_FILE = "dxcli.yaml"
SUBCOMMANDS_DIR = "subcommands"
RC_FILE = ".dxclirc"
