"""
Prometheus metrics for the message persistence subsystem

Counts writes per store and operation, recoverable conditions (lookup
misses, extraction failures) and batch outcomes so the router's
retry/dead-letter policy can be tuned against real traffic.
"""
import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# STORE METRICS
# =======================

# store: received, cdm; operation: create, update
messages_persisted_total = Counter(
    name="persistence_messages_persisted_total",
    documentation="Total number of messages written by a store",
    labelnames=["store", "operation"],
    registry=REGISTRY,
)

# error_type: validation, storage
persistence_errors_total = Counter(
    name="persistence_errors_total",
    documentation="Total number of failed single-item writes",
    labelnames=["store", "error_type"],
    registry=REGISTRY,
)

lookup_misses_total = Counter(
    name="persistence_lookup_misses_total",
    documentation="Updates that found no stored record and fell back to create",
    labelnames=["store"],
    registry=REGISTRY,
)

extraction_failures_total = Counter(
    name="persistence_extraction_failures_total",
    documentation="Payload fields that could not be extracted",
    labelnames=["field_name"],
    registry=REGISTRY,
)

write_duration_seconds = Histogram(
    name="persistence_write_duration_seconds",
    documentation="Time spent in a single store write",
    labelnames=["store", "operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
    registry=REGISTRY,
)

# =======================
# BATCH METRICS
# =======================

# mode: per_item, bulk; status: SUCCESS, PARTIAL_SUCCESS, FAILED
batches_processed_total = Counter(
    name="persistence_batches_processed_total",
    documentation="Total number of batches processed",
    labelnames=["mode", "status"],
    registry=REGISTRY,
)

batch_size = Histogram(
    name="persistence_batch_size_items",
    documentation="Number of items in each batch",
    labelnames=["mode"],
    buckets=[1, 10, 50, 100, 500, 1000, 5000],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Render the registry in Prometheus text format"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager timing a block into a labelled histogram

    Usage:
        with track_duration(write_duration_seconds, store="cdm", operation="create"):
            ...
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


def record_batch_outcome(mode: str, total: int, status: str) -> None:
    """
    Record size and final status of a processed batch

    Args:
        mode: Batch mode ("per_item" or "bulk")
        total: Number of items in the batch
        status: Overall batch status
    """
    observe_histogram(batch_size, total, mode=mode)
    increment_counter(batches_processed_total, mode=mode, status=status)
