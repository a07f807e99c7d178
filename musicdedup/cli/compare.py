"""Compare command: similarity breakdown for two records of a snapshot."""

from pathlib import Path
from typing import Optional

import typer

from musicdedup.cli.utils import (
    display_error,
    display_success,
    display_warning,
    handle_errors,
    load_records,
    resolve_run_settings,
)
from musicdedup.models.config import MatchProfile
from musicdedup.services.field_comparators import breakdown, evaluate_pair


@handle_errors
def compare_command(
    records_path: Path = typer.Argument(..., help="JSON snapshot of music records"),
    first: str = typer.Argument(..., help="Id or file path of the first record"),
    second: str = typer.Argument(..., help="Id or file path of the second record"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to settings YAML"
    ),
    profile: Optional[MatchProfile] = typer.Option(
        None, "--profile", "-p", help="Matching profile (overrides the settings file)"
    ),
):
    """Show how two records score against each other."""
    match_config, _ = resolve_run_settings(config_path, profile, None)
    records = load_records(records_path)

    by_ref = {}
    for record in records:
        if record.id is not None:
            by_ref.setdefault(str(record.id), record)
        if record.file_path:
            by_ref.setdefault(record.file_path, record)

    missing = [ref for ref in (first, second) if ref not in by_ref]
    if missing:
        display_error(f"Record not found: {', '.join(missing)}")
        raise typer.Exit(code=1)

    a, b = by_ref[first], by_ref[second]
    pair = evaluate_pair(a, b, match_config)

    typer.echo(breakdown(a, b, match_config))
    if pair.is_duplicate:
        display_success(
            f"Duplicate: {pair.matching_fields} fields matched"
            f" (minimum {match_config.minimum_fields_matching})"
        )
    else:
        display_warning(
            f"Not a duplicate: {pair.matching_fields} fields matched"
            f" (minimum {match_config.minimum_fields_matching})"
        )
