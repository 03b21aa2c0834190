import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram, make_asgi_app

# Route label uses the template (/api/v1/objects/{id}) to keep cardinality low
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

STORE_CALLS = Counter(
    "object_store_calls_total",
    "Calls made to the object store",
    ["operation", "outcome"],
)

STORE_LATENCY = Histogram(
    "object_store_call_duration_seconds",
    "Object store call latency in seconds",
    ["operation"],
)


@contextmanager
def observe_store_call(operation: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except Exception:
        STORE_CALLS.labels(operation, "error").inc()
        raise
    else:
        STORE_CALLS.labels(operation, "ok").inc()
    finally:
        STORE_LATENCY.labels(operation).observe(time.perf_counter() - start)


metrics_app = make_asgi_app()
