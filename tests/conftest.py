"""Configure structured logging before test modules import the services.

Module-level loggers bound at import time (e.g. in duplicate_detector)
keep whatever structlog configuration is active then, so configure it
first, the same way the CLI does on import.
"""

from musicdedup.observability.logging import configure_logging

configure_logging()
