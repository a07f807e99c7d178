"""Prometheus metrics definitions for duplicate detection.

Defines counters, gauges, and histograms for monitoring:
- Pairwise comparison throughput and outcomes
- Similarity cache usage
- Skipped records and contained scoring errors
- Worker pool status and run duration

Usage:
    from musicdedup.observability.metrics import (
        COMPARISONS_TOTAL,
        DETECTION_DURATION,
    )

    # Increment counter
    COMPARISONS_TOTAL.labels(outcome="duplicate").inc()

    # Track histogram
    with DETECTION_DURATION.time():
        detector.detect(records)
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# Custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS - Monotonically increasing values
# =============================================================================

COMPARISONS_TOTAL = Counter(
    name="musicdedup_comparisons_total",
    documentation="Total pairwise comparisons",
    labelnames=["outcome"],  # duplicate, distinct, cache_hit, error
    registry=REGISTRY,
)

DETECTION_RUNS = Counter(
    name="musicdedup_detection_runs_total",
    documentation="Total detection runs by final status",
    labelnames=["status"],  # completed, cancelled, failed
    registry=REGISTRY,
)

CACHE_OPERATIONS = Counter(
    name="musicdedup_cache_operations_total",
    documentation="Total similarity cache operations",
    labelnames=["operation"],  # hit, miss, set
    registry=REGISTRY,
)

RECORDS_SKIPPED = Counter(
    name="musicdedup_records_skipped_total",
    documentation="Records skipped because of missing or conflicting data",
    labelnames=["reason"],  # missing_path, duplicate_key
    registry=REGISTRY,
)

# =============================================================================
# GAUGES - Values that can go up and down
# =============================================================================

ACTIVE_WORKERS = Gauge(
    name="musicdedup_active_workers",
    documentation="Number of comparison shards currently running",
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS - Distribution of values
# =============================================================================

DETECTION_DURATION = Histogram(
    name="musicdedup_detection_duration_seconds",
    documentation="Detection run duration in seconds",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, float("inf")),
    registry=REGISTRY,
)

GROUP_SIZE = Histogram(
    name="musicdedup_group_size",
    documentation="Number of records per duplicate group",
    buckets=(2, 3, 4, 5, 8, 13, 21, float("inf")),
    registry=REGISTRY,
)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_metrics_text() -> bytes:
    """Generate Prometheus metrics in text format.

    Returns:
        UTF-8 encoded metrics in Prometheus exposition format.
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics response."""
    return CONTENT_TYPE_LATEST
