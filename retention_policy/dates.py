"""
Timestamp coercion and calendar arithmetic.

Turns the many ways callers spell a point in time (epoch numbers, datetime
and date objects, pandas Timestamps, numpy datetime64, free-text strings)
into epoch seconds, and turns duration specs (``{"months": 3}``, ``"6h"``,
``timedelta(days=1)``) into pandas offsets that can be subtracted from a
zone-aware Timestamp.
"""

from __future__ import annotations

import numbers
import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any, Union

import pandas as pd
from loguru import logger

from retention_policy.errors import InvalidRule, InvalidTimestamp

Duration = Union[pd.DateOffset, pd.Timedelta]

# Keyword arguments accepted by pd.DateOffset in a duration mapping
CALENDAR_UNITS = ("years", "months", "weeks", "days", "hours", "minutes", "seconds")

_UNIT_ALIASES = {
    "y": "years",
    "yr": "years",
    "yrs": "years",
    "year": "years",
    "years": "years",
    "mo": "months",
    "mon": "months",
    "month": "months",
    "months": "months",
    "w": "weeks",
    "wk": "weeks",
    "week": "weeks",
    "weeks": "weeks",
    "d": "days",
    "day": "days",
    "days": "days",
    "h": "hours",
    "hr": "hours",
    "hour": "hours",
    "hours": "hours",
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "s": "seconds",
    "sec": "seconds",
    "second": "seconds",
    "seconds": "seconds",
}

_DURATION_TERM = re.compile(r"(\d+)\s*([a-zA-Z]+)")

# Anchor used to check that a duration moves time backward
_PROBE = pd.Timestamp("2000-03-31 12:00", tz="UTC")


def _localize(ts: pd.Timestamp, time_zone: str) -> pd.Timestamp:
    if ts.tzinfo is None:
        return ts.tz_localize(time_zone, ambiguous=True, nonexistent="shift_forward")
    return ts.tz_convert(time_zone)


def to_timestamp(value: Any, time_zone: str = "UTC") -> pd.Timestamp:
    """
    Coerce a timestamp-like value to a zone-aware pandas Timestamp.

    Numbers are epoch seconds. Naive datetimes and strings are interpreted in
    ``time_zone``; aware values are converted to it.

    Args:
        value: Number, str, datetime, date, pd.Timestamp or np.datetime64
        time_zone: IANA zone name (e.g. 'UTC', 'America/New_York')

    Returns:
        pd.Timestamp in ``time_zone``

    Raises:
        InvalidTimestamp: If the value cannot be interpreted
    """
    if value is None or isinstance(value, bool):
        raise InvalidTimestamp(value, "unsupported type")

    try:
        if isinstance(value, numbers.Real):
            ts = pd.Timestamp(float(value), unit="s", tz="UTC")
        elif isinstance(value, str):
            if not value.strip():
                raise InvalidTimestamp(value, "empty string")
            ts = pd.Timestamp(value.strip())
        elif isinstance(value, (datetime, date, pd.Timestamp)) or hasattr(value, "dtype"):
            ts = pd.Timestamp(value)
        else:
            raise InvalidTimestamp(value, f"unsupported type {type(value).__name__}")
    except InvalidTimestamp:
        raise
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidTimestamp(value, str(e)) from e

    if ts is pd.NaT:
        raise InvalidTimestamp(value, "not a time")

    try:
        return _localize(ts, time_zone)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Failed to place {value!r} in time zone {time_zone}: {e}")
        raise InvalidTimestamp(value, f"time zone {time_zone!r}: {e}") from e


def timestamp_to_instant(ts: pd.Timestamp) -> int | float:
    """Epoch seconds of a zone-aware Timestamp, as int when whole."""
    seconds = ts.timestamp()
    return int(seconds) if float(seconds).is_integer() else seconds


def to_instant(value: Any, time_zone: str = "UTC") -> int | float:
    """
    Coerce a timestamp-like value to epoch seconds.

    Numbers pass through unchanged; everything else goes through to_timestamp.

    Args:
        value: Any value accepted by to_timestamp
        time_zone: Zone used for naive values

    Returns:
        Epoch seconds

    Raises:
        InvalidTimestamp: If the value cannot be interpreted
    """
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        if value != value:
            raise InvalidTimestamp(value, "NaN is not an instant")
        return value
    return timestamp_to_instant(to_timestamp(value, time_zone))


def instant_to_timestamp(instant: float, time_zone: str = "UTC") -> pd.Timestamp:
    """Convert epoch seconds back to a Timestamp in ``time_zone``."""
    return pd.Timestamp(float(instant), unit="s", tz="UTC").tz_convert(time_zone)


def _parse_duration_string(text: str) -> Duration:
    terms = _DURATION_TERM.findall(text)
    leftover = _DURATION_TERM.sub("", text).replace(",", "").replace("and", "").strip()
    if terms and not leftover:
        kwargs: dict[str, int] = {}
        for amount, unit in terms:
            name = _UNIT_ALIASES.get(unit.lower())
            if name is None:
                break
            kwargs[name] = kwargs.get(name, 0) + int(amount)
        else:
            return parse_duration(kwargs)

    # Fall back to pandas' own timedelta syntax ("1 days 02:00:00", "P1DT2H")
    try:
        delta = pd.Timedelta(text)
    except (TypeError, ValueError) as e:
        raise InvalidRule(f"Cannot parse duration {text!r}") from e
    if delta is pd.NaT:
        raise InvalidRule(f"Cannot parse duration {text!r}")
    return delta


def parse_duration(spec: Any) -> Duration:
    """
    Interpret a duration spec.

    Calendar units (years, months, weeks, days) produce a pd.DateOffset applied
    on the wall clock, so its length depends on the date it is applied to.
    Clock units (hours, minutes, seconds) produce a fixed pd.Timedelta.

    Args:
        spec: Seconds as a number, timedelta, pd.Timedelta, pd.DateOffset,
            a mapping such as {"months": 3, "days": 2}, or a string such as
            "6h", "1 day", "3 months", "1 year 6 months"

    Returns:
        pd.DateOffset or pd.Timedelta

    Raises:
        InvalidRule: If the spec cannot be interpreted
    """
    if isinstance(spec, bool) or spec is None:
        raise InvalidRule(f"Invalid duration: {spec!r}")
    if isinstance(spec, pd.DateOffset):
        return spec
    if isinstance(spec, (pd.Timedelta, timedelta)):
        return pd.Timedelta(spec)
    if isinstance(spec, numbers.Real):
        return pd.Timedelta(seconds=float(spec))
    if isinstance(spec, str):
        if not spec.strip():
            raise InvalidRule("Invalid duration: empty string")
        return _parse_duration_string(spec.strip())
    if isinstance(spec, Mapping):
        unknown = set(spec) - set(CALENDAR_UNITS)
        if unknown:
            raise InvalidRule(
                f"Unknown duration units {sorted(unknown)}. "
                f"Valid units: {', '.join(CALENDAR_UNITS)}"
            )
        if not spec:
            raise InvalidRule("Invalid duration: empty mapping")
        for unit, amount in spec.items():
            if isinstance(amount, bool) or not isinstance(amount, numbers.Integral):
                raise InvalidRule(f"Duration unit {unit!r} needs a whole number, got {amount!r}")
        kwargs = {k: int(v) for k, v in spec.items()}
        try:
            # Day-based units follow the wall clock like months do
            if any(unit in spec for unit in ("years", "months", "weeks", "days")):
                return pd.DateOffset(**kwargs)
            return pd.Timedelta(**kwargs)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidRule(f"Invalid duration {dict(spec)!r}: {e}") from e
    raise InvalidRule(f"Invalid duration: {spec!r}")


def is_backward_step(duration: Duration) -> bool:
    """Whether subtracting ``duration`` moves a date strictly into the past."""
    return (_PROBE - duration) < _PROBE


def subtract(ts: pd.Timestamp, duration: Duration) -> pd.Timestamp:
    """
    Subtract a duration from a zone-aware Timestamp.

    Calendar offsets are applied on the wall clock of the Timestamp's zone, so
    "1 month before 2018-04-15 00:00 America/New_York" is 2018-03-15 00:00
    local time even though a DST change lies in between.
    """
    if isinstance(duration, pd.DateOffset) and ts.tzinfo is not None:
        wall = ts.tz_localize(None) - duration
        return wall.tz_localize(ts.tzinfo, ambiguous=True, nonexistent="shift_forward")
    return ts - duration


def describe_duration(duration: Duration) -> str:
    """Human readable form of a parsed duration."""
    if isinstance(duration, pd.Timedelta):
        return str(duration)
    parts = [f"{v} {k}" for k, v in duration.kwds.items() if v]
    return ", ".join(parts) if parts else "0 seconds"


def default_reference(time_zone: str = "UTC", now: Any = None) -> pd.Timestamp:
    """
    Default reference date: now rounded up to the next day boundary.

    Using the start of tomorrow keeps the windows aligned to calendar days no
    matter what time of day the pruning runs.

    Args:
        time_zone: Zone whose midnight is used
        now: Override for the current time

    Returns:
        Midnight at the start of the next day in ``time_zone``
    """
    current = pd.Timestamp.now(tz=time_zone) if now is None else to_timestamp(now, time_zone)
    tomorrow = current.tz_localize(None).normalize() + pd.Timedelta(days=1)
    return tomorrow.tz_localize(time_zone, ambiguous=True, nonexistent="shift_forward")


def validate_time_zone(time_zone: str) -> str:
    """
    Check that pandas knows the time zone.

    Raises:
        InvalidRule: If the zone name is unknown
    """
    try:
        pd.Timestamp("2000-01-01").tz_localize(time_zone)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidRule(f"Unknown time zone: {time_zone!r}") from e
    return time_zone
