"""Validate command for detection settings files."""

from pathlib import Path

import typer

from musicdedup.cli.utils import display_error, display_info, display_success, handle_errors
from musicdedup.services.config_manager import ConfigManager


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Settings file to validate"),
):
    """Validate a settings file and show the resulting matching configuration."""
    try:
        manager = ConfigManager(config_path=str(config_path))
        match_config = manager.load_match_config()
    except Exception as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)

    display_success("Configuration is valid!")
    display_info(match_config.summary())
