"""Error kinds surfaced by the experiment services."""

from __future__ import annotations


class XPError(Exception):
    """Base class for errors raised by xpmanager services."""


class BadInputError(XPError):
    """Malformed request or a failed validation (orthogonality, segmenters, rules)."""


class NotFoundError(XPError):
    """Referenced entity does not exist in the project."""


class InternalError(XPError):
    """A collaborator broke its contract, e.g. returned no paging metadata."""
