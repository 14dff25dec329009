"""Experiment management with tier-scoped orthogonality validation."""

__version__ = "0.1.0"
