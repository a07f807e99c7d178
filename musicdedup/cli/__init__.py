"""musicdedup CLI Package.

Command-line interface for fuzzy duplicate detection over music
metadata snapshots.

Usage:
    python -m musicdedup.cli validate config/dedup_config.yaml
    python -m musicdedup.cli scan records.json --config config/dedup_config.yaml
    python -m musicdedup.cli compare records.json 12 57
"""

import typer

from musicdedup.cli.compare import compare_command
from musicdedup.cli.scan import scan_command
from musicdedup.cli.validate import validate_command

app = typer.Typer(help="musicdedup: fuzzy duplicate detection for music libraries")

app.command(name="scan")(scan_command)
app.command(name="validate")(validate_command)
app.command(name="compare")(compare_command)

__all__ = [
    "app",
    "scan_command",
    "validate_command",
    "compare_command",
]
