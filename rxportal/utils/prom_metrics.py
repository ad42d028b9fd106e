"""
Prometheus metrics registration and helpers.

Exports:
- observe_request(...): record HTTP request metrics
- observe_payment(...): record a payment processor attempt and its outcome
- observe_document(...): record statement/invoice PDF generation
- observe_email(...): record outbound email results
- metrics_latest(): return text exposition from correct registry (handles multiprocess)
- CONTENT_TYPE_LATEST: correct Prometheus content type
"""

import os
from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess


REQUEST_COUNTER = Counter(
    'rx_http_requests_total', 'Total HTTP requests', ['endpoint', 'status']
)

REQUEST_LATENCY = Histogram(
    'rx_http_request_latency_seconds', 'HTTP request latency seconds', ['endpoint']
)

PAYMENT_ATTEMPTS = Counter(
    'rx_payment_attempts_total', 'Payment processor calls', ['processor', 'method', 'outcome']
)

PAYMENT_LATENCY = Histogram(
    'rx_payment_latency_seconds', 'Payment processor round trip seconds', ['processor']
)

DOCUMENTS_GENERATED = Counter(
    'rx_documents_generated_total', 'PDF documents generated', ['kind', 'outcome']
)

EMAILS_SENT = Counter(
    'rx_emails_total', 'Outbound emails', ['email_type', 'outcome']
)


def observe_request(endpoint: str, status: int, latency_seconds: float) -> None:
    REQUEST_COUNTER.labels(endpoint=endpoint, status=str(status)).inc()
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency_seconds)


def observe_payment(processor: str, method: str, success: bool, latency_seconds: float = None) -> None:
    PAYMENT_ATTEMPTS.labels(processor=processor, method=method,
                            outcome='success' if success else 'failure').inc()
    if latency_seconds is not None:
        PAYMENT_LATENCY.labels(processor=processor).observe(latency_seconds)


def observe_document(kind: str, success: bool) -> None:
    DOCUMENTS_GENERATED.labels(kind=kind, outcome='success' if success else 'failure').inc()


def observe_email(email_type: str, success: bool) -> None:
    EMAILS_SENT.labels(email_type=email_type or 'transactional',
                       outcome='sent' if success else 'failed').inc()


def metrics_latest() -> bytes:
    """Return the Prometheus text exposition, multiprocess-aware if configured."""
    prom_mp_dir = os.getenv('PROMETHEUS_MULTIPROC_DIR')
    if prom_mp_dir:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return generate_latest(registry)
    return generate_latest()
