"""
Retention engine: partitions timestamps into keepers and discards.

Usage:
    from retention_policy.core import DAY, HOUR, RetentionEngine, RetentionRule

    engine = RetentionEngine([
        RetentionRule(interval=6 * HOUR, span=14 * DAY),
        RetentionRule(interval=DAY, span=60 * DAY),
    ])
    discarded = engine.partition(snapshot_times, reference=now)
    # snapshot_times now only holds the keepers, in their original order
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from loguru import logger

from retention_policy.config import EngineConfig
from retention_policy.core.rules import RetentionRule, WindowSchedule
from retention_policy.core.walker import mark_for_retention
from retention_policy.errors import InvalidRule, InvalidTimestamp

ToInstant = Callable[[Any], float]


@dataclass(slots=True)
class Candidate:
    """
    One timestamp under consideration.

    Attributes:
        instant: Epoch seconds
        original_index: Position in the caller's list
        keep: Whether any rule wants to keep it
        marked_by: Index of the first rule that marked it
    """

    instant: float
    original_index: int
    keep: bool = False
    marked_by: int | None = None


@dataclass(frozen=True)
class PartitionResult:
    """
    Outcome of a partition.

    Attributes:
        kept: Caller elements to keep, in original order
        discarded: Caller elements to discard, in original order
        rule_counts: Number of keepers each rule was first to mark
    """

    kept: list[Any]
    discarded: list[Any]
    rule_counts: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.kept) + len(self.discarded)

    def to_dict(self) -> dict[str, Any]:
        """Summary for logging and reporting."""
        return {
            "total": self.total,
            "kept": len(self.kept),
            "discarded": len(self.discarded),
            "rule_counts": list(self.rule_counts),
        }


def numeric_instant(value: Any) -> float:
    """Accept real numbers as epoch seconds; reject everything else."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidTimestamp(value, "expected epoch seconds")
    if value != value:
        raise InvalidTimestamp(value, "NaN is not an instant")
    return value


def order_candidates(items: Sequence[Any], to_instant: ToInstant | None = None) -> list[Candidate]:
    """
    Build the candidate list sorted by ascending instant.

    Equal instants keep their original relative order.

    Args:
        items: Caller's timestamps, in any representation ``to_instant`` understands
        to_instant: Coercion to epoch seconds (defaults to numbers only)

    Returns:
        Sorted list of Candidate

    Raises:
        InvalidTimestamp: If any element cannot be coerced
    """
    coerce = to_instant or numeric_instant
    candidates = []
    for index, item in enumerate(items):
        try:
            instant = coerce(item)
        except InvalidTimestamp:
            logger.warning(f"Rejecting candidate #{index}: {item!r}")
            raise
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Rejecting candidate #{index}: {item!r} ({e})")
            raise InvalidTimestamp(item, str(e)) from e
        candidates.append(Candidate(instant=instant, original_index=index))

    candidates.sort(key=lambda c: c.instant)
    return candidates


def merge_partition(items: Sequence[Any], candidates: Sequence[Candidate]) -> tuple[list[Any], list[Any]]:
    """
    Split the caller's items by the keep flags of their candidates.

    Args:
        items: Caller's original list
        candidates: Candidates built from ``items`` after all rules ran

    Returns:
        Tuple of (kept, discarded), both in original order
    """
    keep = [False] * len(items)
    for candidate in candidates:
        keep[candidate.original_index] = candidate.keep

    kept, discarded = [], []
    for index, item in enumerate(items):
        (kept if keep[index] else discarded).append(item)
    return kept, discarded


class RetentionEngine:
    """
    Applies an ordered set of retention rules to lists of timestamps.

    Rules are evaluated independently over the same candidate list, and a
    candidate is kept if any rule marks it. The engine holds no per-call
    state, so one instance may serve concurrent calls.
    """

    def __init__(
        self,
        rules: Sequence[WindowSchedule],
        config: EngineConfig | None = None,
    ):
        """
        Initialize the retention engine.

        Args:
            rules: Retention tiers, evaluated in order
            config: Engine configuration (defaults to EngineConfig())

        Raises:
            InvalidRule: If a rule does not provide window edges
        """
        for index, rule in enumerate(rules):
            if not callable(getattr(rule, "window_edges", None)) or not callable(
                getattr(rule, "final_epoch", None)
            ):
                raise InvalidRule(f"Rule #{index} is not a retention rule: {rule!r}")
        self._rules = tuple(rules)
        self._config = config or EngineConfig()
        logger.info(
            f"Retention engine initialized with {len(self._rules)} rules "
            f"(reach_factor={self._config.default_reach_factor}, "
            f"auto_sync={self._config.auto_sync})"
        )

    @property
    def rules(self) -> tuple[WindowSchedule, ...]:
        return self._rules

    @property
    def config(self) -> EngineConfig:
        return self._config

    def reach_factor_for(self, rule: WindowSchedule) -> float:
        """Reach factor of a rule, falling back to the configured default."""
        factor = getattr(rule, "reach_factor", None)
        return self._config.default_reach_factor if factor is None else factor

    def mark(self, candidates: Sequence[Candidate], reference: float) -> list[int]:
        """
        Run every rule over already ordered candidates.

        Args:
            candidates: Candidates sorted by ascending instant
            reference: Instant all rules step backward from

        Returns:
            Number of keepers each rule was first to mark
        """
        for index, rule in enumerate(self._rules):
            mark_for_retention(
                candidates,
                rule.window_edges(reference),
                rule.final_epoch(reference),
                self.reach_factor_for(rule),
                auto_sync=self._config.auto_sync,
                rule_index=index,
            )

        counts = [0] * len(self._rules)
        for candidate in candidates:
            if candidate.marked_by is not None:
                counts[candidate.marked_by] += 1
        return counts

    def select(
        self,
        items: Sequence[Any],
        reference: float,
        to_instant: ToInstant | None = None,
    ) -> PartitionResult:
        """
        Decide which items to keep without modifying them.

        Args:
            items: Timestamps in any representation ``to_instant`` understands
            reference: Instant all rules step backward from, in epoch seconds
            to_instant: Coercion to epoch seconds (defaults to numbers only)

        Returns:
            PartitionResult with kept and discarded items in original order

        Raises:
            InvalidTimestamp: If the reference or any item cannot be coerced
        """
        reference = numeric_instant(reference)
        candidates = order_candidates(items, to_instant)
        rule_counts = self.mark(candidates, reference)
        kept, discarded = merge_partition(items, candidates)

        result = PartitionResult(kept=kept, discarded=discarded, rule_counts=rule_counts)
        logger.info(
            f"Retention partition: kept={len(kept)}, discarded={len(discarded)}, "
            f"per_rule={rule_counts}"
        )
        return result

    def partition(
        self,
        items: list[Any],
        reference: float,
        to_instant: ToInstant | None = None,
    ) -> list[Any]:
        """
        Reduce ``items`` in place to the keepers and return the discards.

        Args:
            items: Mutable list of timestamps; replaced by the kept subset
            reference: Instant all rules step backward from, in epoch seconds
            to_instant: Coercion to epoch seconds (defaults to numbers only)

        Returns:
            Discarded items, in original order
        """
        result = self.select(items, reference, to_instant)
        items[:] = result.kept
        return result.discarded


def partition(
    items: list[Any],
    rules: Sequence[WindowSchedule],
    reference: float,
    default_reach_factor: float = 0.5,
    auto_sync: bool = False,
    to_instant: ToInstant | None = None,
) -> list[Any]:
    """
    Partition ``items`` with a one-off engine.

    Args:
        items: Mutable list of timestamps; replaced by the kept subset
        rules: Retention tiers, evaluated in order
        reference: Instant all rules step backward from, in epoch seconds
        default_reach_factor: Reach factor for rules without their own
        auto_sync: Let goals drift toward the instants actually found
        to_instant: Coercion to epoch seconds (defaults to numbers only)

    Returns:
        Discarded items, in original order
    """
    config = EngineConfig(default_reach_factor=default_reach_factor, auto_sync=auto_sync)
    return RetentionEngine(rules, config).partition(items, reference, to_instant)


__all__ = [
    "Candidate",
    "PartitionResult",
    "RetentionEngine",
    "RetentionRule",
    "merge_partition",
    "numeric_instant",
    "order_candidates",
    "partition",
]
