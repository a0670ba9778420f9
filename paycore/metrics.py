"""Metrics facade.

Service code should ONLY call the semantic helpers here so we can change
the backend freely.

Metrics:
- checkout_orders_created_total         Paid orders created, by plan
- checkout_free_activations_total       Free plan activations
- checkout_order_failures_total         Order creation failures, by reason
- payment_verification_outcomes_total   Terminal verification states, by outcome
- payment_verification_retries_total    Scheduled verification retries
- payment_verification_latency_seconds  Time from first verify call to terminal state
- admin_payment_exports_total           Ledger exports
- admin_payment_export_rows_total       Rows written by ledger exports
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Histogram

logger = logging.getLogger("metrics")

_ORDERS_CREATED = Counter("checkout_orders_created_total", "Paid orders created", ["plan"])
_FREE_ACTIVATIONS = Counter("checkout_free_activations_total", "Free plan activations")
_ORDER_FAILURES = Counter("checkout_order_failures_total", "Order creation failures", ["reason"])
_VERIFY_OUTCOMES = Counter(
    "payment_verification_outcomes_total", "Terminal payment verification states", ["outcome"]
)
_VERIFY_RETRIES = Counter("payment_verification_retries_total", "Scheduled verification retries")
_VERIFY_LATENCY = Histogram(
    "payment_verification_latency_seconds",
    "Latency from first verification request to a terminal state",
    buckets=(1, 3, 5, 10, 15, 30, 45, 60, 90, 120, 180, 300),
)
_EXPORTS = Counter("admin_payment_exports_total", "Admin payment exports")
_EXPORT_ROWS = Counter("admin_payment_export_rows_total", "Rows written by admin payment exports")


def order_created(plan: str):
    _ORDERS_CREATED.labels(plan=plan).inc()


def free_plan_activated():
    _FREE_ACTIVATIONS.inc()


def order_failed(reason: str):
    _ORDER_FAILURES.labels(reason=reason).inc()


def verification_finished(outcome: str, latency_seconds: float | None = None):
    _VERIFY_OUTCOMES.labels(outcome=outcome).inc()
    if latency_seconds is not None:
        _VERIFY_LATENCY.observe(latency_seconds)
    logger.debug("verification outcome=%s latency=%s", outcome, latency_seconds)


def verification_retry_scheduled():
    _VERIFY_RETRIES.inc()


def payments_exported(rows: int):
    _EXPORTS.inc()
    _EXPORT_ROWS.inc(rows)
