from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram, start_http_server

# 低基数标签：operation 取固定的操作名，不带对象 key
OPERATIONS = Counter(
    "storage_operations_total",
    "Total storage facade operations",
    ["operation", "outcome"],
)

LATENCY = Histogram(
    "storage_operation_duration_seconds",
    "Storage operation latency in seconds",
    ["operation"],
)

MULTIPART_PARTS = Counter(
    "storage_multipart_parts_total",
    "Multipart parts uploaded",
    ["outcome"],
)

MULTIPART_ABORTS = Counter(
    "storage_multipart_aborts_total",
    "Multipart sessions aborted",
    ["outcome"],
)


@contextmanager
def track(operation: str, *, enabled: bool = True) -> Iterator[None]:
    """Count and time one storage operation."""
    if not enabled:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    except Exception:
        OPERATIONS.labels(operation=operation, outcome="error").inc()
        raise
    else:
        OPERATIONS.labels(operation=operation, outcome="ok").inc()
    finally:
        LATENCY.labels(operation=operation).observe(time.perf_counter() - start)


def serve_metrics(port: int, addr: str = "0.0.0.0") -> None:
    """Expose /metrics over HTTP for long-running processes."""
    start_http_server(port, addr=addr)
