"""
Process-wide counters for the API.

Everything is registered on `registry` rather than the prometheus_client
default registry so tests can read values without cross-talk from other
libraries. Exposing the registry for scraping is left to the deployment.
"""
from prometheus_client import CollectorRegistry, Counter, Histogram

registry = CollectorRegistry()

http_request_duration = Histogram(
    "http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    ["method", "route", "status_code"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 2, 5),
    registry=registry,
)

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "route", "status_code"],
    registry=registry,
)

orders_created_total = Counter(
    "orders_created_total",
    "Total number of orders created",
    registry=registry,
)

products_viewed_total = Counter(
    "products_viewed_total",
    "Total number of product views",
    ["product_id"],
    registry=registry,
)

users_registered_total = Counter(
    "users_registered_total",
    "Total number of users registered",
    registry=registry,
)

auth_failures_total = Counter(
    "auth_failures_total",
    "Total number of authentication failures",
    ["reason"],
    registry=registry,
)


def sample(name: str, labels=None) -> float:
    """Current value of a sample, 0.0 when it was never recorded."""
    value = registry.get_sample_value(name, labels or {})
    return value or 0.0
