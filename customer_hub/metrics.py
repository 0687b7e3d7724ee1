"""Prometheus collectors for the login workflow."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_OUTCOMES = Counter(
    "customer_hub_login_total",
    "Card login attempts by outcome.",
    ["outcome"],
)
