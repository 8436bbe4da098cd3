"""Prometheus counters for authentication outcomes."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "auth_login_total",
    "Login attempts by outcome.",
    ["outcome"],
)

TOKEN_REFRESHES = Counter(
    "auth_token_refresh_total",
    "Access token refreshes by outcome.",
    ["outcome"],
)

REGISTRATIONS = Counter(
    "auth_registrations_total",
    "Accounts created through registration.",
)
