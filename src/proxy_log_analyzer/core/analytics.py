"""
Log analytics aggregation engine

Turns a batch of proxy log entries into the statistics bundle shown on the
summary page: volume counters, distributions, time trends, recurring
patterns and the user, IP and URL security heuristics.
"""

import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Type, TypeVar

from ..parsers.base import LogEntry
from ..utils.constants import DAY_NAMES, RANKED_LIST_LIMIT
from ..utils.helpers import percentage
from .heuristics import DEFAULT_HEURISTICS, HeuristicTables, is_blocked
from .results import (
    ActionCount,
    AnalyticsBundle,
    CategoryCount,
    PatternPoint,
    Patterns,
    ResponseTimeStats,
    TrendPoint,
)
from .security import (
    ip_security_analytics,
    url_security_analytics,
    user_security_analytics,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", ActionCount, CategoryCount)


def utc_now() -> datetime:
    """Current instant as naive UTC, matching stored timestamps"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def calculate_analytics(
    logs: Iterable[LogEntry],
    tables: HeuristicTables = DEFAULT_HEURISTICS,
    now: Optional[datetime] = None,
) -> AnalyticsBundle:
    """Compute the analytics bundle for a log batch

    Args:
        logs: Log entries to summarize
        tables: Heuristic lookup tables
        now: Reference instant for relative display strings only

    Returns:
        A fresh AnalyticsBundle; zeroed when ``logs`` is empty
    """
    logs = list(logs)
    now = now or utc_now()

    if not logs:
        return AnalyticsBundle(
            generated_at=now,
            patterns=calculate_patterns(logs),
        )

    total = len(logs)
    blocked = sum(1 for entry in logs if is_blocked(entry.action))
    unique_ips = len({entry.source_ip for entry in logs})
    unique_users = len({entry.user_id for entry in logs})

    bundle = AnalyticsBundle(
        generated_at=now,
        total_events=total,
        blocked_requests=blocked,
        block_rate=percentage(blocked, total),
        unique_ips=unique_ips,
        unique_users=unique_users,
        avg_events_per_ip=round(total / unique_ips, 1) if unique_ips else 0.0,
        avg_events_per_user=round(total / unique_users, 1) if unique_users else 0.0,
        action_distribution=distribution(
            Counter(entry.action for entry in logs), total, ActionCount, "action"
        ),
        top_categories=distribution(
            Counter(entry.category or "Uncategorized" for entry in logs),
            total,
            CategoryCount,
            "category",
        ),
        response_time=response_time_stats(logs),
        time_trends=calculate_time_trends(logs),
        patterns=calculate_patterns(logs),
        user_security_analytics=user_security_analytics(logs, tables),
        ip_security_analytics=ip_security_analytics(logs, tables, now),
        url_security_analytics=url_security_analytics(logs, tables),
    )

    logger.debug(
        f"Analytics computed for {total} entries: "
        f"{blocked} blocked, {unique_ips} IPs, {unique_users} users"
    )
    return bundle


def distribution(counts: Counter, total: int, item_type: Type[T], key: str) -> List[T]:
    """Rank counted values by count, keeping first-seen order on ties

    Args:
        counts: Occurrences per value
        total: Entry count the percentages are relative to
        item_type: Model to build for each ranked value
        key: Field of `item_type` that holds the value
    """
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        item_type(**{key: value, "count": count, "percentage": percentage(count, total)})
        for value, count in ranked[:RANKED_LIST_LIMIT]
    ]


def response_time_stats(logs: List[LogEntry]) -> ResponseTimeStats:
    values = [entry.response_time for entry in logs if entry.response_time is not None]
    if not values:
        return ResponseTimeStats()
    return ResponseTimeStats(
        min=min(values),
        max=max(values),
        avg=int(math.floor(sum(values) / len(values) + 0.5)),
    )


def calculate_time_trends(logs: List[LogEntry]) -> List[TrendPoint]:
    """Event counts per calendar hour, oldest first

    Buckets are keyed by the truncated instant rather than the display
    label so ordering holds across day and month boundaries.
    """
    buckets = Counter(
        entry.timestamp.replace(minute=0, second=0, microsecond=0) for entry in logs
    )
    return [
        TrendPoint(bucket=bucket, display_label=bucket.strftime("%b %d, %H:00"), count=count)
        for bucket, count in sorted(buckets.items())
    ]


def day_of_week(timestamp: datetime) -> int:
    """Day index with 0 = Sunday"""
    return (timestamp.weekday() + 1) % 7


def week_start(timestamp: datetime) -> datetime:
    """Midnight of the Sunday starting the timestamp's week"""
    day = timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    return day - timedelta(days=day_of_week(timestamp))


def calculate_patterns(logs: List[LogEntry]) -> Patterns:
    """Hourly, daily and weekly activity patterns"""
    hourly = [PatternPoint(period=f"{hour:02d}:00") for hour in range(24)]
    daily = [PatternPoint(period=name) for name in DAY_NAMES]
    weekly: Dict[datetime, List[int]] = defaultdict(lambda: [0, 0])

    for entry in logs:
        blocked = 1 if is_blocked(entry.action) else 0

        slot = hourly[entry.timestamp.hour]
        slot.count += 1
        slot.blocked_count += blocked

        slot = daily[day_of_week(entry.timestamp)]
        slot.count += 1
        slot.blocked_count += blocked

        counts = weekly[week_start(entry.timestamp)]
        counts[0] += 1
        counts[1] += blocked

    return Patterns(
        hourly=hourly,
        daily=daily,
        weekly=[
            PatternPoint(period=start.date().isoformat(), count=count, blocked_count=blocked)
            for start, (count, blocked) in sorted(weekly.items())
        ],
    )
