"""
Tests for the retention engine.

Tests cover:
- Candidate ordering and coercion failures
- Merging keep flags back into the caller's order
- RetentionEngine.partition / select and the partition() helper
- Partition properties (completeness, order, monotonicity, idempotence)
- Multi-tier schedules over a year of hourly snapshots
"""

import math
import random

import pytest

from retention_policy.config import EngineConfig
from retention_policy.core import (
    DAY,
    HOUR,
    WEEK,
    Candidate,
    PartitionResult,
    RetentionEngine,
    RetentionRule,
    merge_partition,
    numeric_instant,
    order_candidates,
    partition,
)
from retention_policy.errors import InvalidRule, InvalidTimestamp


def _is_subsequence(part, whole):
    it = iter(whole)
    return all(any(x is y for y in it) for x in part)


class TestOrderCandidates:
    """Tests for building the sorted candidate list."""

    def test_sorted_ascending_with_original_index(self):
        """Candidates are sorted by instant and remember their position."""
        candidates = order_candidates([30, 10, 20])

        assert [c.instant for c in candidates] == [10, 20, 30]
        assert [c.original_index for c in candidates] == [1, 2, 0]
        assert not any(c.keep for c in candidates)

    def test_equal_instants_keep_original_order(self):
        """Ties are broken by original position."""
        candidates = order_candidates([5, 1, 5, 5])

        assert [c.original_index for c in candidates] == [1, 0, 2, 3]

    def test_custom_coercion(self):
        """A coercion callable maps arbitrary items to instants."""
        items = [{"t": 3}, {"t": 1}]

        candidates = order_candidates(items, lambda item: item["t"])

        assert [c.original_index for c in candidates] == [1, 0]

    def test_non_numeric_rejected_without_coercion(self):
        """Only numbers are accepted when no coercion is given."""
        with pytest.raises(InvalidTimestamp):
            order_candidates([1, "2018-01-01"])

    def test_coercion_errors_wrapped(self):
        """Errors from the coercion callable surface as InvalidTimestamp."""

        def broken(item):
            raise TypeError("nope")

        with pytest.raises(InvalidTimestamp) as exc_info:
            order_candidates([1], broken)

        assert exc_info.value.value == 1
        assert isinstance(exc_info.value.__cause__, TypeError)


class TestNumericInstant:
    """Tests for the default numeric coercion."""

    def test_accepts_int_and_float(self):
        """Integers and floats pass through unchanged."""
        assert numeric_instant(1514764800) == 1514764800
        assert numeric_instant(1.5) == 1.5

    @pytest.mark.parametrize("value", [True, None, "1", math.nan])
    def test_rejects_non_instants(self, value):
        """Booleans, None, strings and NaN are rejected."""
        with pytest.raises(InvalidTimestamp):
            numeric_instant(value)


class TestMergePartition:
    """Tests for splitting items by keep flags."""

    def test_split_preserves_original_order(self):
        """Kept and discarded items come back in caller order."""
        items = ["a", "b", "c", "d"]
        candidates = [
            Candidate(instant=2, original_index=3, keep=True),
            Candidate(instant=1, original_index=0, keep=False),
            Candidate(instant=3, original_index=1, keep=True),
            Candidate(instant=4, original_index=2, keep=False),
        ]

        kept, discarded = merge_partition(items, candidates)

        assert kept == ["b", "d"]
        assert discarded == ["a", "c"]


class TestRetentionEngine:
    """Tests for RetentionEngine."""

    def test_default_config(self):
        """Engine defaults to a 0.5 reach factor with auto-sync off."""
        engine = RetentionEngine([RetentionRule(DAY, 10 * DAY)])

        assert engine.config.default_reach_factor == 0.5
        assert engine.config.auto_sync is False
        assert len(engine.rules) == 1

    def test_rules_stored_as_tuple(self):
        """Rules cannot be mutated through the engine."""
        rules = [RetentionRule(DAY, 10 * DAY)]
        engine = RetentionEngine(rules)
        rules.append(RetentionRule(HOUR, DAY))

        assert isinstance(engine.rules, tuple)
        assert len(engine.rules) == 1

    def test_rejects_non_rules(self):
        """Objects without window edges are not accepted as rules."""
        with pytest.raises(InvalidRule):
            RetentionEngine([{"interval": DAY, "span": DAY}])

    def test_reach_factor_fallback(self):
        """Rules without their own reach factor use the configured default."""
        engine = RetentionEngine([], EngineConfig(default_reach_factor=0.3))

        assert engine.reach_factor_for(RetentionRule(DAY, DAY)) == 0.3
        assert engine.reach_factor_for(RetentionRule(DAY, DAY, reach_factor=0)) == 0

    def test_partition_mutates_in_place(self, reference):
        """The caller's list is reduced to the keepers; discards are returned."""
        keeper = reference - 12 * HOUR
        loser = reference - 13 * HOUR
        stale = reference - 30 * DAY
        items = [stale, loser, keeper]
        original = items

        engine = RetentionEngine([RetentionRule(DAY, 10 * DAY)])
        discarded = engine.partition(items, reference)

        assert items is original
        assert items == [keeper]
        assert discarded == [stale, loser]

    def test_select_does_not_mutate(self, reference):
        """select() leaves the input alone and reports per-rule counts."""
        items = [reference - 12 * HOUR, reference - 12 * HOUR - 30 * 60]
        engine = RetentionEngine(
            [RetentionRule(DAY, 10 * DAY), RetentionRule(HOUR, DAY, reach_factor=0)]
        )

        result = engine.select(items, reference)

        assert isinstance(result, PartitionResult)
        assert items == [reference - 12 * HOUR, reference - 12 * HOUR - 30 * 60]
        assert result.kept == items
        assert result.discarded == []
        assert result.rule_counts == [1, 1]
        assert result.to_dict() == {
            "total": 2,
            "kept": 2,
            "discarded": 0,
            "rule_counts": [1, 1],
        }

    def test_invalid_timestamp_leaves_list_untouched(self, reference):
        """A bad element aborts the call before anything is partitioned."""
        items = [reference - 12 * HOUR, "yesterday", reference - 36 * HOUR]
        engine = RetentionEngine([RetentionRule(DAY, 10 * DAY)])

        with pytest.raises(InvalidTimestamp):
            engine.partition(items, reference)

        assert items == [reference - 12 * HOUR, "yesterday", reference - 36 * HOUR]

    def test_invalid_reference(self):
        """A non-numeric reference is rejected."""
        engine = RetentionEngine([RetentionRule(DAY, DAY)])

        with pytest.raises(InvalidTimestamp):
            engine.select([1, 2], "2018-01-01")

    def test_no_rules_discards_everything(self, reference):
        """Without rules nothing is kept."""
        items = [reference - HOUR, reference - DAY]

        discarded = RetentionEngine([]).partition(items, reference)

        assert items == []
        assert discarded == [reference - HOUR, reference - DAY]

    def test_original_objects_pass_through(self, reference):
        """Kept and discarded lists contain the caller's own objects."""
        keep = {"name": "nightly-1", "t": reference - 12 * HOUR}
        drop = {"name": "nightly-2", "t": reference - 14 * HOUR}
        items = [drop, keep]

        discarded = RetentionEngine([RetentionRule(DAY, DAY)]).partition(
            items, reference, to_instant=lambda item: item["t"]
        )

        assert items[0] is keep
        assert discarded[0] is drop

    def test_partition_helper(self, reference):
        """partition() builds a one-off engine with the given settings."""
        items = [reference - h * HOUR for h in range(48)]

        discarded = partition(items, [RetentionRule(DAY, 10 * DAY)], reference, default_reach_factor=0)

        assert items == [reference - 12 * HOUR, reference - 36 * HOUR]
        assert len(discarded) == 46

    def test_nightly_backups_late_in_the_day_kept(self, reference):
        """Backups taken at 23:00 each night are all kept by a daily rule."""
        items = [reference - (24 * k + 1) * HOUR for k in range(10)]

        discarded = partition(items, [RetentionRule(DAY, 10 * DAY)], reference)

        assert discarded == []
        assert len(items) == 10

    def test_string_rule_values_usable(self, reference):
        """Numeric strings given to a rule are converted before any walk."""
        items = [reference - 30 * 60]

        discarded = partition(items, [RetentionRule("3600", "86400")], reference)

        assert discarded == []
        assert items == [reference - 30 * 60]

    def test_partition_helper_rejects_negative_reach(self, reference):
        """A negative default reach factor is an invalid rule setup."""
        with pytest.raises(InvalidRule):
            partition([reference], [RetentionRule(DAY, DAY)], reference, default_reach_factor=-1)


class TestPartitionProperties:
    """Properties every partition must satisfy."""

    @pytest.fixture
    def rules(self):
        return [
            RetentionRule(6 * HOUR, 7 * DAY),
            RetentionRule(DAY, 30 * DAY),
            RetentionRule(WEEK, 90 * DAY, reach_factor=0.8),
        ]

    def test_completeness_and_order(self, reference, rules, jittered_snapshots):
        """Kept and discarded together are the input, each in input order."""
        items = list(jittered_snapshots)

        result = RetentionEngine(rules).select(items, reference)

        assert sorted(result.kept + result.discarded) == sorted(items)
        assert len(result.kept) + len(result.discarded) == len(items)
        assert _is_subsequence(result.kept, items)
        assert _is_subsequence(result.discarded, items)

    def test_adding_rules_never_removes_keepers(self, reference, rules, jittered_snapshots):
        """Each additional rule can only grow the kept set."""
        previous = set()
        for count in range(1, len(rules) + 1):
            kept = set(RetentionEngine(rules[:count]).select(jittered_snapshots, reference).kept)
            assert previous <= kept
            previous = kept

    @pytest.mark.parametrize("auto_sync", [False, True])
    def test_idempotent_on_kept_set(self, reference, rules, jittered_snapshots, auto_sync):
        """Pruning an already pruned list keeps everything."""
        engine = RetentionEngine(rules, EngineConfig(auto_sync=auto_sync))
        items = list(jittered_snapshots)
        engine.partition(items, reference)
        kept_once = list(items)

        discarded = engine.partition(items, reference)

        assert discarded == []
        assert items == kept_once

    def test_rule_order_does_not_change_kept_set(self, reference, rules, jittered_snapshots):
        """Rule order only changes which rule gets credit."""
        forward = RetentionEngine(rules).select(jittered_snapshots, reference)
        backward = RetentionEngine(list(reversed(rules))).select(jittered_snapshots, reference)

        assert forward.kept == backward.kept
        assert sum(forward.rule_counts) == sum(backward.rule_counts) == len(forward.kept)

    def test_shuffled_input_same_decision(self, reference, rules, jittered_snapshots):
        """The kept set does not depend on input order."""
        shuffled = list(jittered_snapshots)
        random.Random(7).shuffle(shuffled)

        a = RetentionEngine(rules).select(jittered_snapshots, reference)
        b = RetentionEngine(rules).select(shuffled, reference)

        assert set(a.kept) == set(b.kept)


class TestMultiTier:
    """A three-tier schedule over a year of hourly snapshots."""

    RULES = [
        RetentionRule(6 * HOUR, 14 * DAY),
        RetentionRule(DAY, 60 * DAY),
        RetentionRule(WEEK, 365 * DAY),
    ]

    def test_each_tier_keeps_one_per_window(self, reference, hourly_year):
        """Every tier on its own keeps one snapshot per window with data."""
        counts = [len(RetentionEngine([rule]).select(hourly_year, reference).kept) for rule in self.RULES]

        # The 53rd weekly window reaches back to the oldest snapshot.
        assert counts == [56, 60, 53]

    def test_kept_set_is_union_of_tiers(self, reference, hourly_year):
        """The combined kept set is the union of what each tier keeps."""
        union = set()
        for rule in self.RULES:
            union |= set(RetentionEngine([rule]).select(hourly_year, reference).kept)

        result = RetentionEngine(self.RULES).select(hourly_year, reference)

        assert set(result.kept) == union
        # Weekly goals coincide with daily goals during the first 60 days.
        assert len(result.kept) == 56 + 60 + 53 - 9
        assert result.rule_counts == [56, 60, 44]

    def test_keepers_inside_a_widened_window(self, reference, hourly_year):
        """Every keeper lies inside one of its rule's windows widened by the radius."""
        result = RetentionEngine(self.RULES).select(hourly_year, reference)

        def in_window(instant, rule):
            radius = rule.interval / 2 * 0.5
            k = 0
            while reference - k * rule.interval > reference - rule.span:
                newest = reference - k * rule.interval
                oldest = newest - rule.interval
                if oldest - radius < instant <= newest + radius:
                    return True
                k += 1
            return False

        for instant in result.kept:
            assert any(in_window(instant, rule) for rule in self.RULES)

    def test_goal_hits_with_hourly_data(self, reference, hourly_year):
        """Within the data, every daily keeper sits exactly on a window midpoint."""
        daily = RetentionEngine([self.RULES[1]]).select(hourly_year, reference)

        assert sorted(daily.kept) == sorted(reference - (24 * k + 12) * HOUR for k in range(60))
