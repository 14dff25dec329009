"""Prometheus metric definitions for the experiment management service."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# --- Experiments ---

experiment_mutations_total = Counter(
    "xpmanager_experiment_mutations_total",
    "Total committed experiment mutations",
    labelnames=["operation"],
)

# --- Validation ---

orthogonality_conflicts_total = Counter(
    "xpmanager_orthogonality_conflicts_total",
    "Experiments rejected for overlapping another experiment's audience",
    labelnames=["tier"],
)

custom_validation_duration_seconds = Histogram(
    "xpmanager_custom_validation_duration_seconds",
    "Time spent running treatment schema and external rule validation",
    labelnames=["operation"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

custom_validation_failures_total = Counter(
    "xpmanager_custom_validation_failures_total",
    "Custom validation runs that returned an error",
    labelnames=["operation"],
)
