"""
Shared fixtures for retention policy tests.

The reference instant used throughout is 2018-01-01T00:00:00Z.
"""

import random

import pytest

from retention_policy.core import DAY, HOUR

REFERENCE = 1514764800  # 2018-01-01T00:00:00Z


@pytest.fixture
def reference():
    """Fixed reference instant all rules walk back from."""
    return REFERENCE


@pytest.fixture
def hourly_year():
    """One snapshot per hour for a year before the reference, newest first."""
    return [REFERENCE - h * HOUR for h in range(1, 365 * 24 + 1)]


@pytest.fixture
def jittered_snapshots():
    """
    Snapshots roughly every 4 hours for 90 days with up to 90 minutes of jitter
    and occasional missed runs, in arbitrary order.
    """
    rng = random.Random(20180101)
    stamps = []
    t = REFERENCE - 2 * HOUR
    while t > REFERENCE - 90 * DAY:
        if rng.random() > 0.1:
            stamps.append(t + rng.randint(-90, 90) * 60)
        t -= 4 * HOUR
    rng.shuffle(stamps)
    return stamps
