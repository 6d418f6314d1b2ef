"""
Prometheus metrics for admission dispatch.

Metrics live in a dedicated registry served on the webhook server's
``/metrics`` path.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

METRICS_REGISTRY = CollectorRegistry()

ADMISSION_REQUESTS_TOTAL = Counter(
    "eirinix_admission_requests_total",
    "Total number of admission requests handled by extensions",
    ["extension", "webhook_id", "result"],
    registry=METRICS_REGISTRY,
)

ADMISSION_DURATION = Histogram(
    "eirinix_admission_duration_seconds",
    "Time spent producing an admission decision",
    ["extension"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
    registry=METRICS_REGISTRY,
)

DECODE_ERRORS_TOTAL = Counter(
    "eirinix_decode_errors_total",
    "Admission requests whose object did not decode to a Pod",
    ["extension"],
    registry=METRICS_REGISTRY,
)

REGISTERED_WEBHOOKS = Gauge(
    "eirinix_registered_webhooks",
    "Number of extension webhooks registered with the API server",
    registry=METRICS_REGISTRY,
)


def record_admission(
    extension: str, webhook_id: str, result: str, duration: float
) -> None:
    """
    Record one admission decision.

    Args:
        extension: Name of the extension that produced the decision
        webhook_id: Identifier of the webhook ("" before registration)
        result: allowed, patched, denied or errored
        duration: Seconds spent in the adapter
    """
    ADMISSION_REQUESTS_TOTAL.labels(
        extension=extension, webhook_id=webhook_id, result=result
    ).inc()
    ADMISSION_DURATION.labels(extension=extension).observe(duration)
