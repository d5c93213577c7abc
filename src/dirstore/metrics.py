"""Prometheus metrics definitions for DirStore.

All custom metrics use the ``dirstore_`` prefix. These are operation-level
counters; ``prometheus-fastapi-instrumentator`` adds the HTTP-level request
count, duration and size metrics.

Counters reset to zero on restart. Prometheus handles gaps via ``rate()``.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

s3_operations_total: Counter | None = None
bytes_received_total: Counter | None = None
bytes_sent_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Called once when metrics are enabled. When metrics are disabled the
    module-level references stay ``None`` and nothing is registered in the
    global registry.
    """
    global _initialized
    global s3_operations_total, bytes_received_total, bytes_sent_total

    if _initialized:
        return

    s3_operations_total = Counter(
        "dirstore_s3_operations_total",
        "Total S3 operations by type and outcome",
        ["operation", "status"],
    )

    bytes_received_total = Counter(
        "dirstore_bytes_received_total",
        "Total bytes received in request bodies",
    )

    bytes_sent_total = Counter(
        "dirstore_bytes_sent_total",
        "Total bytes sent in response bodies",
    )

    _initialized = True


def record_operation(operation: str, status: int) -> None:
    """Count one completed S3 operation. No-op when metrics are disabled."""
    if s3_operations_total is not None:
        s3_operations_total.labels(operation=operation, status=str(status)).inc()
