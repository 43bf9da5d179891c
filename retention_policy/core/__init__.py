"""
Core retention-marking algorithm.

Works purely on numeric instants (epoch seconds). Calendar durations and
date parsing are handled by retention_policy.dates and retention_policy.policy.
"""

from retention_policy.core.engine import (
    Candidate,
    PartitionResult,
    RetentionEngine,
    merge_partition,
    numeric_instant,
    order_candidates,
    partition,
)
from retention_policy.core.rules import DAY, HOUR, MINUTE, WEEK, RetentionRule, WindowSchedule
from retention_policy.core.walker import DRIFT_DECAY, mark_for_retention

__all__ = [
    "Candidate",
    "PartitionResult",
    "RetentionEngine",
    "RetentionRule",
    "WindowSchedule",
    "merge_partition",
    "mark_for_retention",
    "numeric_instant",
    "order_candidates",
    "partition",
    "DRIFT_DECAY",
    "MINUTE",
    "HOUR",
    "DAY",
    "WEEK",
]
