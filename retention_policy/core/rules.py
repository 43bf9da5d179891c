"""
Fixed-length retention rules.

A rule is one tier of a retention schedule: keep one timestamp per
``interval`` seconds, going back ``span`` seconds from the reference instant.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, Protocol

from retention_policy.config import validate_reach_factor
from retention_policy.errors import InvalidRule

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY


class WindowSchedule(Protocol):
    """Anything the rule walker can step backward through."""

    reach_factor: float | None

    def window_edges(self, reference: float) -> Iterator[float]:
        """Yield ``reference`` followed by successively older window edges."""
        ...

    def final_epoch(self, reference: float) -> float:
        """Instant at which the walk stops."""
        ...


def _seconds(value, what: str) -> float:
    if isinstance(value, bool):
        raise InvalidRule(f"{what} must be a number of seconds, got {value!r}")
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidRule(f"{what} must be a number of seconds, got {value!r}") from e
    if math.isnan(seconds) or math.isinf(seconds):
        raise InvalidRule(f"{what} must be finite, got {value!r}")
    return seconds


@dataclass(frozen=True)
class RetentionRule:
    """
    A retention tier with fixed-length windows.

    Attributes:
        interval: Spacing between desired keepers, in seconds (> 0)
        span: How far back from the reference the rule applies, in seconds (>= 0)
        reach_factor: Optional override of the engine's default reach factor
    """

    interval: float
    span: float
    reach_factor: float | None = None

    def __post_init__(self) -> None:
        """Validate the rule after initialization."""
        interval = _seconds(self.interval, "interval")
        span = _seconds(self.span, "span")
        if interval <= 0:
            raise InvalidRule(f"interval must be positive, got {self.interval!r}")
        if span < 0:
            raise InvalidRule(f"span must be >= 0, got {self.span!r}")
        object.__setattr__(self, "interval", interval)
        object.__setattr__(self, "span", span)
        if self.reach_factor is not None:
            object.__setattr__(self, "reach_factor", validate_reach_factor(self.reach_factor))

    def window_edges(self, reference: float) -> Iterator[float]:
        k = 0
        while True:
            yield reference - k * self.interval
            k += 1

    def final_epoch(self, reference: float) -> float:
        return reference - self.span

    def window_count(self) -> int:
        """Number of windows the rule walks when candidates never run out."""
        if self.span <= 0:
            return 0
        return math.ceil(self.span / self.interval)

    def to_dict(self) -> dict[str, float | None]:
        """Convert to dictionary for serialization."""
        return {
            "interval": self.interval,
            "span": self.span,
            "reach_factor": self.reach_factor,
        }
