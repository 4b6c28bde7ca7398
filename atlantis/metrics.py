"""Prometheus counters for the authentication flows."""

from __future__ import annotations

from prometheus_client import REGISTRY, Counter


def _get_or_create_metric(metric_cls, name: str, documentation: str, labelnames):
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, documentation, labelnames=labelnames)


LOGIN_ATTEMPTS_TOTAL = _get_or_create_metric(
    Counter,
    "atlantis_login_attempts_total",
    "Login attempts by role and outcome",
    ("role", "outcome"),
)

AUDIT_ENTRIES_TOTAL = _get_or_create_metric(
    Counter,
    "atlantis_audit_entries_total",
    "Audit log entries appended",
    ("action",),
)


__all__ = ["LOGIN_ATTEMPTS_TOTAL", "AUDIT_ENTRIES_TOTAL"]
