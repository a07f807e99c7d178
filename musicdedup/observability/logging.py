"""structlog setup for detection runs.

Every entry carries the run_id of the detection it was emitted from, so
the shard workers, the progress dispatcher and the scan service can be
followed through one interleaved stream. Scan-wide fields (record count,
match profile) are bound once per scan with bind_context() and dropped
again with clear_context() when the scan ends.

    configure_logging(level="DEBUG", json_output=False)
    get_logger("duplicate_detector").info("detection_started", records=1200)
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from musicdedup.observability.context import get_run_id

NO_RUN = "none"


def add_run_id_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Stamp the active run_id on an entry, or "none" outside a run.

    A run_id passed explicitly to the log call is left alone.
    """
    event_dict.setdefault("run_id", get_run_id() or NO_RUN)
    return event_dict


def _renderer(json_output: bool) -> Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Install the processor chain used by the CLI and the services.

    Args:
        level: Minimum level name; unknown names fall back to INFO.
        json_output: One JSON object per line when True, colored console
            lines otherwise.
        add_timestamp: Prefix entries with an ISO-8601 timestamp.
    """
    threshold = logging.getLevelName(level.upper())
    if not isinstance(threshold, int):
        threshold = logging.INFO

    chain: list[Processor] = [structlog.contextvars.merge_contextvars, add_run_id_processor]
    chain += [
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if add_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso"))
    chain.append(_renderer(json_output))

    structlog.configure(
        processors=chain,
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: Optional[str] = None, **initial_context: Any) -> Any:
    """Logger bound to a component name plus any fixed fields."""
    fields = dict(initial_context)
    if component:
        fields["component"] = component
    logger = structlog.get_logger()
    return logger.bind(**fields) if fields else logger


def bind_context(**context: Any) -> None:
    """Attach fields to every entry logged from this context."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
