"""Time window arithmetic for experiment scheduling.

Stored experiment windows are half-open ``[start, end)``. A window whose
start equals its end is an *instant*; callers pass one to ask "which
experiments are live at time T", and an instant is tested with
closed-inclusive containment so that it still matches at either boundary
of a stored window.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    @property
    def is_instant(self) -> bool:
        return self.start == self.end

    def contains_instant(self, instant: datetime) -> bool:
        """Closed-inclusive containment: ``start <= instant <= end``."""
        return self.start <= instant <= self.end


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    """Return True if the two windows could be live at the same time.

    For two proper windows one of the following must hold:

    * ``a.start`` lies within ``[b.start, b.end)``
    * ``a.end`` lies within ``(b.start, b.end)``
    * ``b`` lies entirely within ``[a.start, a.end]``

    which reduces to ``a.start < b.end and b.start < a.end`` and is
    therefore symmetric.
    """
    if a.is_instant:
        return b.contains_instant(a.start)
    if b.is_instant:
        return a.contains_instant(b.start)
    return (
        b.start <= a.start < b.end
        or b.start < a.end < b.end
        or (a.start <= b.start and b.end <= a.end)
    )
