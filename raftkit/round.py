"""Catch-up rounds used to decide when a nonvoter may be promoted."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

_UNITS = (
    ("h", 3600 * 10**9),
    ("m", 60 * 10**9),
)


def _fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if rest == 0:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{str(rest).rjust(digits, '0').rstrip('0')}"


def _format_duration(seconds: float) -> str:
    ns = round(seconds * 1e9)
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns == 0:
        return "0s"
    if ns < 10**3:
        return f"{sign}{ns}ns"
    if ns < 10**6:
        return f"{sign}{_fraction(ns, 10**3)}µs"
    if ns < 10**9:
        return f"{sign}{_fraction(ns, 10**6)}ms"
    parts = []
    for suffix, unit in _UNITS:
        count, ns = divmod(ns, unit)
        if count or parts:
            parts.append(f"{count}{suffix}")
    parts.append(f"{_fraction(ns, 10**9)}s")
    return sign + "".join(parts)


@dataclass
class Round:
    """One replication round: log up to ``last_index`` sent to a nonvoter.

    ``start`` and ``end`` are monotonic clock readings in seconds; ``end`` is
    None until the round is finished.
    """

    ordinal: int = 0
    start: Optional[float] = None
    end: Optional[float] = None
    last_index: int = 0

    def begin(self, last_index: int) -> None:
        """Start the next round, aiming at ``last_index``."""
        self.ordinal += 1
        self.start = time.monotonic()
        self.last_index = last_index

    def finish(self) -> None:
        self.end = time.monotonic()

    def finished(self) -> bool:
        return self.end is not None

    def duration(self) -> float:
        """Seconds between start and end; zero while either is unset."""
        if self.end is None or self.start is None:
            return 0.0
        return self.end - self.start

    def __str__(self) -> str:
        if self.finished():
            return (
                f"round{{#{self.ordinal} {_format_duration(self.duration())} "
                f"lastIndex: {self.last_index}}}"
            )
        return f"round{{#{self.ordinal} lastIndex: {self.last_index}}}"