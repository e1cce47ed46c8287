"""Tests for chart bucketing and aggregation."""

import random

import pytest
from botwatch.dashboard import charts
from botwatch.dashboard.metrics import MetricEvent


def ev(ts, value=None):
    return MetricEvent("e", ts, value)


class TestComputeBuckets:
    def test_even_split(self):
        buckets = charts.compute_buckets(0, 180, 3, 1)
        assert [(b.start, b.end) for b in buckets] == [(0, 60), (60, 120), (120, 180)]

    def test_min_width_reduces_bucket_count(self):
        buckets = charts.compute_buckets(0, 100, 100, 10)
        assert len(buckets) == 10
        assert all(b.end - b.start == 10 for b in buckets)

    def test_zero_length_range_yields_one_bucket(self):
        buckets = charts.compute_buckets(50, 50, 100, 1)
        assert len(buckets) == 1
        assert buckets[0].start == 50

    def test_range_shorter_than_min_width(self):
        buckets = charts.compute_buckets(0, 5, 10, 60)
        assert len(buckets) == 1
        assert buckets[0].end - buckets[0].start == 60

    @pytest.mark.parametrize("bad", [(0, 1), (10, 0)])
    def test_rejects_non_positive_arguments(self, bad):
        num_buckets, min_secs = bad
        with pytest.raises(ValueError):
            charts.compute_buckets(0, 100, num_buckets, min_secs)

    def test_widths_uniform_and_at_least_minimum(self):
        rng = random.Random(7)
        for _ in range(200):
            start = rng.uniform(0, 1e9)
            end = start + rng.uniform(0, 8 * 86400)
            n = rng.randint(1, 200)
            min_secs = rng.randint(1, 600)
            buckets = charts.compute_buckets(start, end, n, min_secs)
            widths = {b.end - b.start for b in buckets}
            assert len(buckets) >= 1
            assert len({round(w, 3) for w in widths}) == 1
            assert min(widths) >= min_secs - 1e-6


class TestBucketEvents:
    def test_assigns_by_offset(self):
        bucketed = charts.bucket_events([ev(0), ev(59), ev(60), ev(130)], 0, 180, 3, 1)
        assert [len(events) for _, events in bucketed] == [2, 1, 1]
        assert [ts for ts, _ in bucketed] == [0, 60, 120]

    def test_event_on_end_is_clamped_into_last_bucket(self):
        bucketed = charts.bucket_events([ev(180), ev(500)], 0, 180, 3, 1)
        assert [len(events) for _, events in bucketed] == [0, 0, 2]

    def test_events_before_start_are_dropped(self):
        bucketed = charts.bucket_events([ev(-1), ev(10)], 0, 180, 3, 1)
        assert sum(len(events) for _, events in bucketed) == 1

    def test_every_event_counted_once(self):
        rng = random.Random(11)
        start, end = 1000.0, 1000.0 + 86400
        events = [ev(rng.uniform(start - 3600, end + 3600)) for _ in range(500)]
        bucketed = charts.bucket_events(events, start, end, 100, 1)
        in_buckets = sum(len(b) for _, b in bucketed)
        dropped = sum(1 for e in events if e.timestamp < start)
        assert in_buckets + dropped == len(events)
        in_range = [e for e in events if start <= e.timestamp <= end]
        placed = {id(e) for _, b in bucketed for e in b}
        assert all(id(e) in placed for e in in_range)


class TestAggregation:
    @pytest.fixture
    def bucketed(self):
        return [
            (0, [ev(1, 2.0), ev(2, 4.0), ev(3)]),
            (60, [ev(61)]),
            (120, []),
        ]

    def test_count(self, bucketed):
        assert charts.aggregate_count(bucketed) == [(0, 3.0), (60, 1.0), (120, 0.0)]

    def test_sum_skips_valueless(self, bucketed):
        assert charts.aggregate_sum(bucketed) == [(0, 6.0), (60, 0.0), (120, 0.0)]

    def test_average_of_present_values(self, bucketed):
        assert charts.aggregate_average(bucketed)[0] == (0, 3.0)

    def test_average_without_values_is_zero(self, bucketed):
        series = charts.aggregate_average(bucketed)
        assert series[1] == (60, 0.0)
        assert series[2] == (120, 0.0)


class TestUptime:
    def test_all_buckets_online(self):
        result = charts.uptime_buckets([0, 60, 130], 0, 180, 3)
        assert result == [(0, True), (60, True), (120, True)]

    def test_gap_is_offline(self):
        result = charts.uptime_buckets([10, 130], 0, 180, 3)
        assert [up for _, up in result] == [True, False, True]

    def test_heartbeat_on_final_end_counts(self):
        result = charts.uptime_buckets([180], 0, 180, 3)
        assert [up for _, up in result] == [False, False, True]

    def test_heartbeat_on_inner_boundary_goes_to_next_bucket(self):
        result = charts.uptime_buckets([60], 0, 180, 3)
        assert [up for _, up in result] == [False, True, False]

    def test_any_heartbeats(self):
        assert charts.any_heartbeats([5], 0, 10)
        assert charts.any_heartbeats([10], 0, 10)
        assert not charts.any_heartbeats([11, -1], 0, 10)
