"""Shared CLI utilities.

Provides common functionality for all CLI commands.
"""

import functools
import json
from pathlib import Path
from typing import Callable, List, Optional, Tuple, TypeVar

import structlog
import typer
from pydantic import TypeAdapter, ValidationError

from musicdedup.models.concurrency import WorkerPoolConfig
from musicdedup.models.config import DedupSettings, FuzzyMatchConfig, MatchProfile
from musicdedup.models.record import MusicRecord
from musicdedup.observability.logging import configure_logging
from musicdedup.services.config_manager import ConfigManager
from musicdedup.utils.exceptions import ConfigurationError, ConfigValidationError

# Configure structured logging
configure_logging()
logger = structlog.get_logger()

# Type variable for decorator
F = TypeVar("F", bound=Callable)

_RECORDS_ADAPTER = TypeAdapter(List[MusicRecord])


def load_settings(config_path: Optional[Path]) -> DedupSettings:
    """Load settings from a file, or defaults when no file is given.

    Raises:
        typer.Exit: If the settings file is missing or invalid.
    """
    if config_path is None:
        return DedupSettings()

    manager = ConfigManager(config_path=str(config_path))
    try:
        settings = manager.load_settings()
    except (FileNotFoundError, ConfigValidationError) as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    configure_logging(
        level=settings.logging.level, json_output=settings.logging.json_output
    )
    return settings


def resolve_run_settings(
    config_path: Optional[Path],
    profile: Optional[MatchProfile],
    workers: Optional[int],
) -> Tuple[FuzzyMatchConfig, WorkerPoolConfig]:
    """Combine the settings file with command-line overrides."""
    settings = load_settings(config_path)
    if profile is not None:
        settings = settings.model_copy(update={"profile": profile})

    try:
        match_config = settings.build_match_config()
        pool = settings.workers
        if workers is not None:
            pool = WorkerPoolConfig(**{**pool.model_dump(), "max_workers": workers})
    except (ConfigurationError, ValidationError) as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return match_config, pool


def load_records(records_path: Path) -> List[MusicRecord]:
    """Read a JSON snapshot of records.

    Accepts either a list of records or an object with a "records" list.
    """
    if not records_path.exists():
        raise FileNotFoundError(f"Records file not found: {records_path}")

    with open(records_path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("records", [])

    records = _RECORDS_ADAPTER.validate_python(data)
    logger.info("records_loaded", path=str(records_path), count=len(records))
    return records


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling.

    Catches exceptions and displays user-friendly error messages.

    Args:
        func: Function to wrap.

    Returns:
        Wrapped function with error handling.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)


def display_info(message: str) -> None:
    """Display an info message.

    Args:
        message: Message to display.
    """
    typer.secho(message, fg=typer.colors.CYAN)
