"""Concurrency configuration models.

Defines worker pool settings and batch sizes for sharded pairwise
comparison.
"""

from pydantic import BaseModel, Field


class WorkerPoolConfig(BaseModel):
    """Worker pool configuration for parallel comparison"""

    # Worker pool settings
    max_workers: int = Field(default=4, ge=1, le=64)

    # Comparisons performed between progress reports / cancellation checks
    batch_size: int = Field(default=500, ge=1, le=100_000)

    # Progress queue settings (updates beyond this are dropped, never blocked on)
    progress_queue_size: int = Field(default=1000, ge=1, le=100_000)


class WorkerStats(BaseModel):
    """Statistics for a single comparison shard"""

    worker_id: int
    batches_completed: int = 0
    comparisons_completed: int = 0
    pairs_found: int = 0
    total_duration_seconds: float = 0.0
