"""
Engine configuration for retention policies.

Configuration is an explicit value passed to the engine at construction.
Defaults can be overridden from the environment:

    RETENTION_REACH_FACTOR   search radius multiplier (default 0.5)
    RETENTION_AUTO_SYNC      follow the observed backup cadence (default off)
    RETENTION_TIME_ZONE      zone for naive dates and calendar math (default UTC)
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, replace
from typing import Any

from loguru import logger

from retention_policy.errors import InvalidRule

DEFAULT_REACH_FACTOR = 0.5
DEFAULT_TIME_ZONE = "UTC"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def validate_reach_factor(value: Any, what: str = "reach_factor") -> float:
    """
    Check that a reach factor is a finite, non-negative number.

    Args:
        value: Candidate reach factor
        what: Name used in the error message

    Returns:
        The reach factor as a float

    Raises:
        InvalidRule: If the value is not a number or is negative
    """
    if isinstance(value, bool):
        raise InvalidRule(f"{what} must be a number, got {value!r}")
    try:
        factor = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidRule(f"{what} must be a number, got {value!r}") from e
    if math.isnan(factor) or math.isinf(factor) or factor < 0:
        raise InvalidRule(f"{what} must be a finite number >= 0, got {value!r}")
    return factor


def _parse_bool(raw: str, env_var: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise InvalidRule(f"{env_var} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration for the retention engine.

    Attributes:
        default_reach_factor: Search radius multiplier for rules without their own
        auto_sync: Whether goals drift toward the cadence of matched timestamps
        time_zone: Zone used to interpret naive dates and for calendar arithmetic
    """

    default_reach_factor: float = DEFAULT_REACH_FACTOR
    auto_sync: bool = False
    time_zone: str = DEFAULT_TIME_ZONE

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        factor = validate_reach_factor(self.default_reach_factor, "default_reach_factor")
        object.__setattr__(self, "default_reach_factor", factor)
        if not isinstance(self.time_zone, str) or not self.time_zone.strip():
            raise InvalidRule(f"time_zone must be a non-empty string, got {self.time_zone!r}")

    @classmethod
    def from_env(cls, **overrides: Any) -> EngineConfig:
        """
        Build a configuration from RETENTION_* environment variables.

        Args:
            **overrides: Field values that take precedence over the environment

        Returns:
            New EngineConfig

        Raises:
            InvalidRule: If an environment variable holds an invalid value
        """
        values: dict[str, Any] = {}

        reach = os.getenv("RETENTION_REACH_FACTOR")
        if reach is not None and reach.strip():
            values["default_reach_factor"] = validate_reach_factor(
                reach.strip(), "RETENTION_REACH_FACTOR"
            )

        auto_sync = os.getenv("RETENTION_AUTO_SYNC")
        if auto_sync is not None:
            values["auto_sync"] = _parse_bool(auto_sync, "RETENTION_AUTO_SYNC")

        time_zone = os.getenv("RETENTION_TIME_ZONE")
        if time_zone and time_zone.strip():
            values["time_zone"] = time_zone.strip()

        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)
        logger.debug(f"Loaded engine config from environment: {config.to_dict()}")
        return config

    def with_overrides(self, **overrides: Any) -> EngineConfig:
        """Return a copy with the given non-None fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "default_reach_factor": self.default_reach_factor,
            "auto_sync": self.auto_sync,
            "time_zone": self.time_zone,
        }
