"""Allow `python -m dxcli`."""

from .cli import main

main(prog_name="dx")
