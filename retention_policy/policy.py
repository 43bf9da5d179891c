"""
Calendar-aware retention policies.

Usage:
    from retention_policy import RetentionPolicy

    policy = RetentionPolicy(
        retain=[
            {"interval": {"hours": 6}, "duration": {"months": 3}},
            {"interval": {"days": 1}, "duration": {"months": 6}},
            {"interval": {"days": 7}, "duration": {"months": 9}},
        ],
        time_zone="America/New_York",
    )

    dates = ["2018-01-01 03:23:00", "2018-01-01 09:45:00", ...]
    pruned = policy.prune(dates)
    for stamp in pruned:
        ...  # delete the backup taken at `stamp`

Windows are laid out with calendar arithmetic in the policy's time zone, so
"one per month" follows real month lengths and DST changes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from loguru import logger

from retention_policy.config import EngineConfig, validate_reach_factor
from retention_policy.core.engine import PartitionResult, RetentionEngine
from retention_policy.core.rules import RetentionRule, WindowSchedule
from retention_policy.dates import (
    Duration,
    default_reference,
    describe_duration,
    instant_to_timestamp,
    is_backward_step,
    parse_duration,
    subtract,
    timestamp_to_instant,
    to_instant,
    validate_time_zone,
)
from retention_policy.errors import InvalidRule

_RULE_KEYS = ("interval", "duration", "reach_factor")
_POLICY_KEYS = ("retain", "time_zone", "reach_factor", "reference_date", "auto_sync")


@dataclass(frozen=True)
class CalendarRule:
    """
    A retention tier measured in calendar units.

    Attributes:
        interval: Spacing between keepers (anything parse_duration accepts)
        duration: How far back from the reference the rule applies
        reach_factor: Optional override of the engine's default reach factor
        time_zone: Zone whose wall clock the calendar arithmetic follows
    """

    interval: Duration
    duration: Duration
    reach_factor: float | None = None
    time_zone: str = "UTC"

    def __post_init__(self) -> None:
        """Parse and validate the durations."""
        interval = parse_duration(self.interval)
        duration = parse_duration(self.duration)
        if not is_backward_step(interval):
            raise InvalidRule(f"interval must be positive, got {describe_duration(interval)}")
        if is_backward_step(-duration):
            raise InvalidRule(f"duration must not be negative, got {describe_duration(duration)}")
        object.__setattr__(self, "interval", interval)
        object.__setattr__(self, "duration", duration)
        if self.reach_factor is not None:
            validate_reach_factor(self.reach_factor)
        validate_time_zone(self.time_zone)

    def window_edges(self, reference: float) -> Iterator[float]:
        start = instant_to_timestamp(reference, self.time_zone)
        yield reference
        k = 1
        while True:
            yield timestamp_to_instant(subtract(start, self.interval * k))
            k += 1

    def final_epoch(self, reference: float) -> float:
        start = instant_to_timestamp(reference, self.time_zone)
        return timestamp_to_instant(subtract(start, self.duration))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "interval": describe_duration(self.interval),
            "duration": describe_duration(self.duration),
            "reach_factor": self.reach_factor,
        }


def build_rule(spec: Any, time_zone: str = "UTC") -> WindowSchedule:
    """
    Turn one entry of a ``retain`` list into a rule.

    Args:
        spec: RetentionRule, CalendarRule, or a mapping with ``interval``,
            ``duration`` and optional ``reach_factor`` keys
        time_zone: Zone for calendar arithmetic of mapping specs

    Returns:
        A rule the engine can walk

    Raises:
        InvalidRule: If the spec is malformed
    """
    if isinstance(spec, (RetentionRule, CalendarRule)):
        return spec
    if not isinstance(spec, Mapping):
        raise InvalidRule(f"Retention rule must be a mapping, got {spec!r}")

    unknown = set(spec) - set(_RULE_KEYS)
    if unknown:
        raise InvalidRule(
            f"Unknown retention rule keys {sorted(unknown)}. Valid keys: {', '.join(_RULE_KEYS)}"
        )
    missing = [key for key in ("interval", "duration") if key not in spec]
    if missing:
        raise InvalidRule(f"Retention rule is missing {', '.join(missing)}: {dict(spec)!r}")

    return CalendarRule(
        interval=spec["interval"],
        duration=spec["duration"],
        reach_factor=spec.get("reach_factor"),
        time_zone=time_zone,
    )


class RetentionPolicy:
    """
    Decides which dated backups to keep under a tiered schedule.

    Accepts timestamps in any form the dates module understands and hands
    the caller's original objects back, split into kept and pruned.
    """

    def __init__(
        self,
        retain: Sequence[Any],
        time_zone: str | None = None,
        reach_factor: float | None = None,
        reference_date: Any = None,
        auto_sync: bool | None = None,
        config: EngineConfig | None = None,
    ):
        """
        Initialize the policy.

        Args:
            retain: Retention tiers (see build_rule)
            time_zone: Overrides config.time_zone
            reach_factor: Overrides config.default_reach_factor
            reference_date: Fixed instant to walk back from (defaults to the
                start of tomorrow in ``time_zone``)
            auto_sync: Overrides config.auto_sync
            config: Base configuration (defaults to EngineConfig())

        Raises:
            InvalidRule: If a rule or setting is invalid
        """
        if isinstance(retain, (str, Mapping)) or not isinstance(retain, Sequence):
            raise InvalidRule("retain must be a list of retention rules")

        base = config or EngineConfig()
        self._config = base.with_overrides(
            default_reach_factor=reach_factor,
            auto_sync=auto_sync,
            time_zone=time_zone,
        )
        validate_time_zone(self._config.time_zone)

        self._rules = tuple(build_rule(spec, self._config.time_zone) for spec in retain)
        self.reference_date = reference_date
        self._engine = RetentionEngine(self._rules, self._config)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], config: EngineConfig | None = None) -> RetentionPolicy:
        """
        Build a policy from a plain configuration mapping.

        Args:
            data: Mapping with ``retain`` and optional ``time_zone``,
                ``reach_factor``, ``reference_date`` and ``auto_sync`` keys
            config: Base configuration the mapping overrides

        Returns:
            RetentionPolicy
        """
        if not isinstance(data, Mapping):
            raise InvalidRule(f"Policy configuration must be a mapping, got {type(data).__name__}")
        unknown = set(data) - set(_POLICY_KEYS)
        if unknown:
            raise InvalidRule(
                f"Unknown policy keys {sorted(unknown)}. Valid keys: {', '.join(_POLICY_KEYS)}"
            )
        if "retain" not in data:
            raise InvalidRule("Policy configuration needs a 'retain' list")
        return cls(
            retain=data["retain"],
            time_zone=data.get("time_zone"),
            reach_factor=data.get("reach_factor"),
            reference_date=data.get("reference_date"),
            auto_sync=data.get("auto_sync"),
            config=config,
        )

    @property
    def rules(self) -> tuple[WindowSchedule, ...]:
        return self._rules

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def time_zone(self) -> str:
        return self._config.time_zone

    def reference_instant(self) -> int | float:
        """Reference date in epoch seconds, defaulting to the start of tomorrow."""
        if self.reference_date is None:
            return timestamp_to_instant(default_reference(self.time_zone))
        return to_instant(self.reference_date, self.time_zone)

    def to_instant(self, value: Any) -> int | float:
        """Epoch seconds of a timestamp, naive values read in the policy's zone."""
        return to_instant(value, self.time_zone)

    def select(self, dates: Sequence[Any]) -> PartitionResult:
        """
        Decide which dates to keep without modifying the list.

        Args:
            dates: Timestamps in any supported representation

        Returns:
            PartitionResult with kept and discarded dates in original order

        Raises:
            InvalidTimestamp: If the reference or any date cannot be interpreted
        """
        reference = self.reference_instant()
        logger.debug(
            f"Applying {len(self._rules)} retention rules to {len(dates)} dates "
            f"back from {instant_to_timestamp(reference, self.time_zone)}"
        )
        return self._engine.select(dates, reference, self.to_instant)

    def prune(self, dates: list[Any]) -> list[Any]:
        """
        Remove the dates that no rule keeps.

        ``dates`` is modified in place to hold only the keepers.

        Args:
            dates: Mutable list of timestamps in any supported representation

        Returns:
            Pruned dates, in original order
        """
        result = self.select(dates)
        dates[:] = result.kept
        return result.discarded

    def describe(self) -> dict[str, Any]:
        """Summary of the policy for logging and reporting."""
        reference = self.reference_date
        return {
            "time_zone": self.time_zone,
            "reach_factor": self._config.default_reach_factor,
            "auto_sync": self._config.auto_sync,
            "reference_date": None if reference is None else str(reference),
            "retain": [rule.to_dict() for rule in self._rules],
        }
