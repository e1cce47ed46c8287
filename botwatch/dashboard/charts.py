"""Time bucketing and aggregation for chart series.

All functions are pure. Times are epoch seconds; bucket widths are whole
seconds. A range is split into equal ``[start, end)`` buckets, and events
are aggregated per bucket into ``(bucket_start, value)`` points.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from botwatch.dashboard.metrics import MetricEvent

Bucketed = list[tuple[float, list[MetricEvent]]]
Series = list[tuple[float, float]]


@dataclass(frozen=True)
class TimeBucket:
    start: float
    end: float


def bucket_seconds(start: float, end: float, num_buckets: int, min_bucket_seconds: int) -> int:
    """Width in whole seconds of each bucket for the given range."""
    if num_buckets < 1:
        raise ValueError(f"num_buckets must be >= 1, got {num_buckets}")
    if min_bucket_seconds < 1:
        raise ValueError(f"min_bucket_seconds must be >= 1, got {min_bucket_seconds}")
    return max(total_seconds(start, end) // num_buckets, min_bucket_seconds)


def total_seconds(start: float, end: float) -> int:
    """Whole seconds in the range, tolerating float noise from epoch arithmetic."""
    return int(end - start + 1e-6)


def compute_buckets(
    start: float, end: float, num_buckets: int, min_bucket_seconds: int
) -> list[TimeBucket]:
    """Divide ``[start, end]`` into up to ``num_buckets`` equal buckets.

    Buckets are never narrower than ``min_bucket_seconds``; if the range is
    too short for the requested count, fewer and wider buckets come back.
    At least one bucket is always returned, even for an empty range.
    """
    width = bucket_seconds(start, end, num_buckets, min_bucket_seconds)
    count = max(total_seconds(start, end) // width, 1)
    return [TimeBucket(start + width * i, start + width * (i + 1)) for i in range(count)]


def bucket_events(
    events: Iterable[MetricEvent],
    start: float,
    end: float,
    num_buckets: int,
    min_bucket_seconds: int,
) -> Bucketed:
    """Assign events to the buckets of ``compute_buckets``.

    Events before ``start`` are skipped. Events at or past the last bucket's
    end are clamped into the last bucket.
    """
    buckets = compute_buckets(start, end, num_buckets, min_bucket_seconds)
    width = bucket_seconds(start, end, num_buckets, min_bucket_seconds)
    last = len(buckets) - 1

    result: Bucketed = [(b.start, []) for b in buckets]
    for event in events:
        offset = event.timestamp - start
        if offset < 0:
            continue
        idx = min(int(offset // width), last)
        result[idx][1].append(event)
    return result


def aggregate_count(buckets: Bucketed) -> Series:
    return [(ts, float(len(events))) for ts, events in buckets]


def aggregate_sum(buckets: Bucketed) -> Series:
    """Sum of values per bucket; valueless events are skipped."""
    return [
        (ts, float(sum(e.value for e in events if e.value is not None)))
        for ts, events in buckets
    ]


def aggregate_average(buckets: Bucketed) -> Series:
    """Mean of values per bucket; a bucket with no values averages to 0."""
    series = []
    for ts, events in buckets:
        values = [e.value for e in events if e.value is not None]
        avg = sum(values) / len(values) if values else 0.0
        series.append((ts, avg))
    return series


def uptime_buckets(
    heartbeats: Sequence[float], start: float, end: float, num_buckets: int
) -> list[tuple[float, bool]]:
    """Whether each bucket saw at least one heartbeat.

    Buckets are half-open, except that a heartbeat exactly on the final
    bucket's end also marks the final bucket.
    """
    buckets = compute_buckets(start, end, num_buckets, 1)
    seen = [False] * len(buckets)
    for ts in heartbeats:
        for i, bucket in enumerate(buckets):
            if bucket.start <= ts < bucket.end:
                seen[i] = True
                break
    last = buckets[-1]
    if any(ts == last.end for ts in heartbeats):
        seen[-1] = True
    return [(b.start, has) for b, has in zip(buckets, seen)]


def any_heartbeats(heartbeats: Iterable[float], start: float, end: float) -> bool:
    return any(start <= ts <= end for ts in heartbeats)
