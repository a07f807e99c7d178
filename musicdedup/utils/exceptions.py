"""Custom exceptions for duplicate detection.

This module defines the exception hierarchy for the detection core:
- Base exception for all detection errors
- Configuration errors (rejected before any comparison starts)
- Run lifecycle errors (already running, fatal failure)
- Per-pair scoring errors (contained, never abort a run)

All exceptions inherit from DedupError to allow catching every
detection-related error in a single except block when needed.
"""

from typing import Optional


class DedupError(Exception):
    """Base exception for all duplicate detection errors

    Use this to catch any error raised by the detection core:
    ```python
    try:
        result = detector.detect(records)
    except DedupError as e:
        logger.error("detection_failed", error=str(e))
    ```
    """

    pass


class ConfigurationError(DedupError):
    """Matching configuration is invalid

    Raised when:
    - A similarity threshold is outside 0-100
    - minimum_fields_matching is outside 1-4
    - A tolerance is negative

    Raised synchronously, before any comparison starts.
    """

    pass


class ConfigValidationError(ConfigurationError):
    """Configuration file could not be loaded or validated"""

    pass


class DetectionAlreadyRunningError(DedupError):
    """A detection run is already active for this detector or session

    Callers decide whether to queue the request or reject it.
    """

    def __init__(self, message: str, run_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.run_id = run_id


class DetectionFailedError(DedupError):
    """Detection run failed as a whole

    Raised only for resource exhaustion (e.g. MemoryError while
    comparing or grouping). Per-record and per-pair problems never
    surface through this exception.
    """

    def __init__(self, message: str, run_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.run_id = run_id


class InternalScoringError(DedupError):
    """Unexpected failure while scoring a single pair

    Always caught by the detector: the pair is logged, counted and
    treated as not-duplicate.
    """

    def __init__(self, message: str, first_key: object, second_key: object) -> None:
        super().__init__(f"{message} ({first_key!r} vs {second_key!r})")
        self.first_key = first_key
        self.second_key = second_key
