"""Scan command: detect duplicates in a JSON record snapshot.

Runs a full detection and displays groups and directory conflicts.
"""

import json
from pathlib import Path
from typing import Dict, Optional

import typer

from musicdedup.cli.utils import (
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_records,
    resolve_run_settings,
)
from musicdedup.models.config import MatchProfile
from musicdedup.models.dedup import DetectionResult, ProgressUpdate
from musicdedup.models.record import RecordKey
from musicdedup.services.duplicate_detector import DuplicateDetector


@handle_errors
def scan_command(
    records_path: Path = typer.Argument(..., help="JSON snapshot of music records"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to settings YAML"
    ),
    profile: Optional[MatchProfile] = typer.Option(
        None, "--profile", "-p", help="Matching profile (overrides the settings file)"
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, max=64, help="Comparison worker threads"
    ),
    show_progress: bool = typer.Option(
        False, "--progress", help="Print progress while comparing"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print the result summary as JSON"
    ),
):
    """Detect duplicate records and propose directory conflict resolutions."""
    match_config, pool = resolve_run_settings(config_path, profile, workers)
    records = load_records(records_path)

    if not json_output:
        display_info(f"Scanning {len(records)} records ({match_config.name} profile)...")

    def on_progress(update: ProgressUpdate) -> None:
        typer.echo(
            f"  {update.percent_complete:3d}% "
            f"({update.comparisons_completed}/{update.comparisons_total} comparisons, "
            f"{update.pairs_found} duplicates)"
        )

    detector = DuplicateDetector(match_config, pool=pool)
    result = detector.detect(
        records, progress=on_progress if show_progress and not json_output else None
    )

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    paths = {r.key: r.file_path for r in records if r.key is not None}
    _display_result(result, paths)


def _display_result(result: DetectionResult, paths: Dict[RecordKey, Optional[str]]) -> None:
    """Display detection results."""
    stats = result.stats

    if result.incomplete:
        display_warning("Scan was cancelled; results are incomplete")

    summary = result.skipped_summary()
    if summary:
        display_warning(summary)

    display_success(
        f"Compared {stats.comparisons_completed} pairs in "
        f"{stats.duration_seconds:.2f}s: {len(result.pairs)} duplicate pairs, "
        f"{len(result.groups)} groups"
    )
    if stats.scoring_errors:
        display_warning(f"{stats.scoring_errors} comparisons failed and were skipped")

    for group in result.groups:
        typer.echo(f"\nGroup {group.group_id} ({group.size} files):")
        for key in group.member_ids:
            typer.echo(f"  - {paths.get(key) or key}")

    if not result.conflicts:
        return

    typer.echo("\nDirectory conflicts:")
    for conflict in result.conflicts:
        typer.echo(f"\n  {conflict.directory} (group {conflict.group_id})")
        typer.echo(f"    keep:   {paths.get(conflict.keep_id) or conflict.keep_id}")
        for key in conflict.remove_ids:
            typer.echo(f"    remove: {paths.get(key) or key}")
        typer.echo(f"    reason: {conflict.reason}")
