"""Run ID context for correlating log entries of one detection run.

Worker threads do not inherit ContextVar values from the thread that
submitted them, so the detector captures the run ID and re-enters
run_id_context() inside each shard.

Usage:
    from musicdedup.observability.context import run_id_context, get_run_id

    with run_id_context() as run_id:
        detector.detect(records)   # every log entry carries run_id
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

_run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def new_run_id() -> str:
    """Generate a fresh run identifier."""
    return uuid.uuid4().hex[:12]


def set_run_id(run_id: Optional[str] = None) -> str:
    """Set the run ID for the current context, generating one if needed.

    Returns:
        The run ID that was set.
    """
    if run_id is None:
        run_id = new_run_id()
    _run_id_var.set(run_id)
    return run_id


def get_run_id() -> Optional[str]:
    """Get the current run ID, or None outside a run."""
    return _run_id_var.get()


def clear_run_id() -> None:
    _run_id_var.set(None)


@contextmanager
def run_id_context(run_id: Optional[str] = None) -> Generator[str, None, None]:
    """Scope a run ID, restoring the previous value on exit.

    Args:
        run_id: Optional run ID. If None, one is generated.

    Yields:
        The run ID in effect inside the block.
    """
    if run_id is None:
        run_id = new_run_id()
    token = _run_id_var.set(run_id)
    try:
        yield run_id
    finally:
        _run_id_var.reset(token)
