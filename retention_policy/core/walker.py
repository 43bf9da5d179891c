"""
Rule walker: marks the keepers for a single retention rule.

The walk steps backward from the reference instant one window at a time.
Each window has an idealized goal in its middle. Any candidate inside the
window, widened by ``radius`` on both sides, may stand in for the goal; the
one nearest the goal is marked as a keeper. Candidates are sorted ascending,
so the walk moves down the list while windows move back in time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, Sequence

from loguru import logger

if TYPE_CHECKING:
    from retention_policy.core.engine import Candidate

# Fraction of the drift kept after every window step.
DRIFT_DECAY = 7 / 8


def mark_for_retention(
    candidates: Sequence[Candidate],
    edges: Iterator[float],
    final_epoch: float,
    reach_factor: float,
    auto_sync: bool = False,
    rule_index: int | None = None,
) -> int:
    """
    Mark the best candidate of every window of one rule as a keeper.

    Args:
        candidates: Candidates sorted by ascending instant
        edges: Window edges, starting with the reference instant and moving back
        final_epoch: The walk stops once a window's recent edge reaches this
        reach_factor: Radius as a fraction of half the window length
        auto_sync: Let goals drift toward the instants actually found
        rule_index: Recorded as ``marked_by`` on candidates this rule marks first

    Returns:
        Number of windows in which a keeper was found
    """
    search_floor = len(candidates) - 1
    epoch = next(edges)
    drift = 0.0
    found = 0
    windows = 0

    while epoch > final_epoch and search_floor >= 0:
        next_epoch = next(edges)
        radius = (epoch - next_epoch) / 2 * reach_factor
        goal = (epoch + next_epoch) / 2 + drift
        windows += 1

        oldest = next_epoch + drift - radius
        newest = epoch + drift + radius

        best = None
        i = search_floor
        while i >= 0 and candidates[i].instant > oldest:
            candidate = candidates[i]
            if candidate.instant <= newest and (
                best is None or abs(candidate.instant - goal) < abs(best.instant - goal)
            ):
                best = candidate
            # Too recent for the next window as well
            if candidate.instant > next_epoch + drift + radius:
                search_floor = i - 1
            i -= 1

        if best is not None:
            best.keep = True
            if best.marked_by is None:
                best.marked_by = rule_index
            found += 1
            if auto_sync:
                drift += (best.instant - goal) / 2

        epoch = next_epoch
        if drift:
            drift = int(drift * DRIFT_DECAY)

    logger.debug(
        f"Rule {rule_index}: {found} keepers in {windows} windows "
        f"(reach_factor={reach_factor}, auto_sync={auto_sync})"
    )
    return found
