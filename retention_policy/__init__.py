"""
retention-policy - tiered retention for dated backups

Decides which snapshot timestamps to keep under a schedule such as "one every
6 hours for 3 months, one a day for 6 months, one a week for 9 months",
tolerating backups that run late or skip a beat.
"""

try:
    from importlib.metadata import version

    __version__ = version("retention-policy")
except Exception:
    __version__ = "0.0.0"  # Fallback for development

from retention_policy.config import EngineConfig
from retention_policy.core import PartitionResult, RetentionEngine, RetentionRule, partition
from retention_policy.errors import InvalidRule, InvalidTimestamp, RetentionPolicyError
from retention_policy.policy import CalendarRule, RetentionPolicy

__all__ = [
    "CalendarRule",
    "EngineConfig",
    "InvalidRule",
    "InvalidTimestamp",
    "PartitionResult",
    "RetentionEngine",
    "RetentionPolicy",
    "RetentionPolicyError",
    "RetentionRule",
    "partition",
]
