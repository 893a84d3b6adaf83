"""Prometheus metrics for the order service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

# Order transactions -----------------------------------------------------------------------
ORDERS_CREATED_TOTAL: Final = Counter(
    "orders_created_total",
    "Orders committed from a cart.",
)

ORDER_CREATION_FAILURES_TOTAL: Final = Counter(
    "order_creation_failures_total",
    "Order creation attempts aborted, by error kind.",
    labelnames=("kind",),
)

ORDER_STATUS_CHANGES_TOTAL: Final = Counter(
    "order_status_changes_total",
    "Order status updates committed, by target status.",
    labelnames=("status",),
)

ORDERS_CANCELLED_TOTAL: Final = Counter(
    "orders_cancelled_total",
    "Orders cancelled with stock and coupon compensation.",
)

ORDER_TRANSACTION_SECONDS: Final = Histogram(
    "order_transaction_seconds",
    "Time spent inside order transactions.",
    labelnames=("operation",),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

# Coupons ----------------------------------------------------------------------------------
COUPON_REDEMPTIONS_TOTAL: Final = Counter(
    "coupon_redemptions_total",
    "Coupons redeemed by committed orders.",
)

COUPON_RELEASES_TOTAL: Final = Counter(
    "coupon_releases_total",
    "Coupon redemptions released by order cancellation.",
)

# Post-commit side effects -----------------------------------------------------------------
ORDER_SIDE_EFFECT_FAILURES_TOTAL: Final = Counter(
    "order_side_effect_failures_total",
    "Post-commit notification or cache calls that failed and were skipped.",
    labelnames=("collaborator",),
)

ORDER_CACHE_EVENTS_TOTAL: Final = Counter(
    "order_cache_events_total",
    "Order listing cache outcomes.",
    labelnames=("event",),
)
