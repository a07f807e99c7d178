"""Observability for duplicate detection.

Provides:
- Run ID context management for correlating log entries
- Structured logging (structlog) with run ID propagation
- Prometheus metrics for comparisons, cache usage and run duration
"""

from musicdedup.observability.context import (
    set_run_id,
    get_run_id,
    clear_run_id,
    run_id_context,
)
from musicdedup.observability.logging import (
    get_logger,
    configure_logging,
    add_run_id_processor,
    bind_context,
    clear_context,
)
from musicdedup.observability.metrics import (
    COMPARISONS_TOTAL,
    DETECTION_RUNS,
    CACHE_OPERATIONS,
    RECORDS_SKIPPED,
    ACTIVE_WORKERS,
    DETECTION_DURATION,
    GROUP_SIZE,
    get_metrics_text,
)

__all__ = [
    # Context
    "set_run_id",
    "get_run_id",
    "clear_run_id",
    "run_id_context",
    # Logging
    "get_logger",
    "configure_logging",
    "add_run_id_processor",
    "bind_context",
    "clear_context",
    # Metrics
    "COMPARISONS_TOTAL",
    "DETECTION_RUNS",
    "CACHE_OPERATIONS",
    "RECORDS_SKIPPED",
    "ACTIVE_WORKERS",
    "DETECTION_DURATION",
    "GROUP_SIZE",
    "get_metrics_text",
]
