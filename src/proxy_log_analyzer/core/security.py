"""
User, IP and URL security heuristics

Each analysis folds the batch into per-key accumulators once and then
scores them with the additive rules in ``utils.constants``. Ranked
results use stable sorts so ties keep the order keys were first seen.
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Set

from ..parsers.base import LogEntry
from ..utils import constants
from ..utils.helpers import hostname_of, path_of, percentage
from ..utils.string_utils import format_time_ago
from .heuristics import HeuristicTables, is_after_hours, is_blocked
from .results import (
    AbnormalAccess,
    BlockedUrl,
    FailedLogin,
    FrequentUrl,
    GeolocationAnomaly,
    HighFrequencyIP,
    IPSecurityAnalytics,
    SuspiciousActivity,
    SuspiciousIP,
    UrlSecurityAnalytics,
    UserSecurityAnalytics,
)

THREAT_RANK = {"Critical": 4, "High": 3, "Medium": 2, "Low": 1}


def _ranked(items: list, key) -> list:
    return sorted(items, key=key, reverse=True)[:constants.RANKED_LIST_LIMIT]


@dataclass
class UserActivity:
    total: int = 0
    blocked: int = 0
    after_hours: int = 0
    resources: Set[str] = field(default_factory=set)
    # Insertion ordered so reported samples are the first ones seen
    sensitive: Dict[str, None] = field(default_factory=dict)


@dataclass
class IPActivity:
    total: int = 0
    blocked: int = 0
    restricted: int = 0
    timestamps: List[datetime] = field(default_factory=list)


@dataclass
class CountryActivity:
    requests: int = 0
    off_hours: bool = False
    ips: Dict[str, None] = field(default_factory=dict)


@dataclass
class DomainActivity:
    total: int = 0
    users: Set[str] = field(default_factory=set)


def user_security_analytics(logs: List[LogEntry], tables: HeuristicTables) -> UserSecurityAnalytics:
    users: Dict[str, UserActivity] = defaultdict(UserActivity)
    for entry in logs:
        activity = users[entry.user_id]
        activity.total += 1
        if is_blocked(entry.action):
            activity.blocked += 1
        if is_after_hours(entry.timestamp.hour):
            activity.after_hours += 1
        activity.resources.add(entry.destination_url)
        if tables.is_sensitive(entry.destination_url):
            activity.sensitive[entry.destination_url] = None

    return UserSecurityAnalytics(
        failed_logins=failed_logins(users),
        suspicious_activity=suspicious_activity(users),
        abnormal_access=abnormal_access(users),
    )


def failed_logins(users: Dict[str, UserActivity]) -> List[FailedLogin]:
    """Estimate failed logins as a fixed share of blocked requests"""
    results = []
    for user_id, activity in users.items():
        # round() first so float noise cannot drop an exact product below its integer
        estimate = math.floor(round(activity.blocked * constants.FAILED_LOGIN_RATIO, 9))
        if estimate < constants.FAILED_LOGIN_MIN:
            continue

        if estimate > 10:
            risk_level = "Critical"
        elif estimate > 5:
            risk_level = "High"
        else:
            risk_level = "Medium"

        results.append(FailedLogin(
            user_id=user_id,
            failed_attempts=estimate,
            blocked_requests=activity.blocked,
            total_requests=activity.total,
            risk_level=risk_level,
        ))
    return _ranked(results, key=lambda item: item.failed_attempts)


def suspicious_activity(users: Dict[str, UserActivity]) -> List[SuspiciousActivity]:
    results = []
    for user_id, activity in users.items():
        blocked_ratio = activity.blocked / activity.total * 100
        score = 0
        indicators = []

        if activity.total > 50:
            score += 2
            indicators.append("High request volume")
        if activity.total > 100:
            score += 2
            indicators.append("Very high request volume")
        if blocked_ratio > 30:
            score += 3
            indicators.append("High block rate")
        if blocked_ratio > 50:
            score += 2
            indicators.append("Majority of requests blocked")
        if len(activity.resources) > 20:
            score += 2
            indicators.append("Wide range of resources accessed")
        if activity.sensitive:
            score += 1
            indicators.append("Sensitive resource access")

        score = min(score, constants.MAX_RISK_SCORE)
        if score < constants.SUSPICIOUS_ACTIVITY_MIN_SCORE:
            continue

        results.append(SuspiciousActivity(
            user_id=user_id,
            risk_score=score,
            total_requests=activity.total,
            blocked_percentage=percentage(activity.blocked, activity.total),
            unique_resources=len(activity.resources),
            indicators=indicators,
        ))
    return _ranked(results, key=lambda item: item.risk_score)


def abnormal_access(users: Dict[str, UserActivity]) -> List[AbnormalAccess]:
    results = []
    for user_id, activity in users.items():
        if not activity.sensitive:
            continue

        after_hours_ratio = activity.after_hours / activity.total
        results.append(AbnormalAccess(
            user_id=user_id,
            sensitive_resources=len(activity.sensitive),
            resources=list(activity.sensitive)[:5],
            total_requests=activity.total,
            after_hours_percentage=percentage(activity.after_hours, activity.total),
            time_pattern="After hours" if after_hours_ratio > 0.3 else "Business hours",
        ))
    return _ranked(results, key=lambda item: item.sensitive_resources)


def ip_security_analytics(
    logs: List[LogEntry], tables: HeuristicTables, now: datetime
) -> IPSecurityAnalytics:
    ips: Dict[str, IPActivity] = defaultdict(IPActivity)
    for entry in logs:
        activity = ips[entry.source_ip]
        activity.total += 1
        if is_blocked(entry.action):
            activity.blocked += 1
        path = path_of(entry.destination_url)
        if path is not None and tables.is_restricted(path):
            activity.restricted += 1
        activity.timestamps.append(entry.timestamp)

    return IPSecurityAnalytics(
        geolocation_anomalies=geolocation_anomalies(logs, tables),
        suspicious_ips=suspicious_ips(ips, now),
        high_frequency_ips=high_frequency_ips(ips),
    )


def geolocation_anomalies(logs: List[LogEntry], tables: HeuristicTables) -> List[GeolocationAnomaly]:
    countries: Dict[str, CountryActivity] = defaultdict(CountryActivity)
    for entry in logs:
        country = tables.country_for(entry.source_ip)
        if country in tables.excluded_countries:
            continue
        activity = countries[country]
        activity.requests += 1
        activity.ips[entry.source_ip] = None
        if is_after_hours(entry.timestamp.hour):
            activity.off_hours = True

    results = []
    for country, activity in countries.items():
        score = 3
        if country in tables.flagged_countries:
            score += 4
        if activity.requests > 10:
            score += 2
        if activity.off_hours:
            score += 1
        if len(activity.ips) >= 3:
            score += 1

        results.append(GeolocationAnomaly(
            country=country,
            ip_addresses=list(activity.ips),
            unique_ips=len(activity.ips),
            request_count=activity.requests,
            risk_score=min(score, constants.MAX_RISK_SCORE),
        ))
    return _ranked(results, key=lambda item: item.risk_score)


def threat_level(blocked_ratio: float, restricted: int) -> str:
    if blocked_ratio > 50 or restricted > 3:
        return "Critical"
    if blocked_ratio > 30 or restricted > 1:
        return "High"
    if blocked_ratio > 10:
        return "Medium"
    return "Low"


def suspicious_ips(ips: Dict[str, IPActivity], now: datetime) -> List[SuspiciousIP]:
    results = []
    for ip_address, activity in ips.items():
        blocked_ratio = activity.blocked / activity.total * 100
        if not (blocked_ratio > 20 or activity.restricted > 0):
            continue

        last_seen = max(activity.timestamps)
        results.append(SuspiciousIP(
            ip_address=ip_address,
            total_requests=activity.total,
            blocked_requests=activity.blocked,
            blocked_percentage=percentage(activity.blocked, activity.total),
            restricted_attempts=activity.restricted,
            threat_level=threat_level(blocked_ratio, activity.restricted),
            last_seen=format_time_ago((now - last_seen).total_seconds()),
        ))
    return _ranked(results, key=lambda item: THREAT_RANK[item.threat_level])


def is_regular(intervals: List[float]) -> bool:
    """True when every interval is within tolerance of the mean interval"""
    mean = sum(intervals) / len(intervals)
    tolerance = mean * constants.REGULAR_INTERVAL_TOLERANCE
    return all(abs(interval - mean) <= tolerance for interval in intervals)


def high_frequency_ips(ips: Dict[str, IPActivity]) -> List[HighFrequencyIP]:
    results = []
    for ip_address, activity in ips.items():
        if activity.total < constants.HIGH_FREQUENCY_MIN_REQUESTS:
            continue

        timestamps = sorted(activity.timestamps)
        span_seconds = (timestamps[-1] - timestamps[0]).total_seconds()
        if span_seconds <= 0:
            continue

        span_minutes = span_seconds / 60
        rate = round(len(timestamps) / span_minutes, 1)
        if rate <= constants.HIGH_FREQUENCY_MIN_RPM:
            continue

        intervals = [
            (later - earlier).total_seconds()
            for earlier, later in zip(timestamps, timestamps[1:])
        ]
        regular = is_regular(intervals)

        probability = 0
        if rate > 2:
            probability += 30
        if rate > 5:
            probability += 40
        if regular:
            probability += 30

        results.append(HighFrequencyIP(
            ip_address=ip_address,
            request_count=len(timestamps),
            requests_per_minute=rate,
            time_span_minutes=round(span_minutes, 1),
            pattern="Regular intervals" if regular else "Irregular intervals",
            bot_probability=min(probability, constants.MAX_BOT_PROBABILITY),
        ))
    return _ranked(results, key=lambda item: item.requests_per_minute)


def url_security_analytics(logs: List[LogEntry], tables: HeuristicTables) -> UrlSecurityAnalytics:
    blocked: Dict[str, DomainActivity] = defaultdict(DomainActivity)
    domains: Dict[str, DomainActivity] = defaultdict(DomainActivity)

    for entry in logs:
        hostname = hostname_of(entry.destination_url)
        if hostname is None:
            continue

        activity = domains[hostname]
        activity.total += 1
        activity.users.add(entry.user_id)

        if is_blocked(entry.action):
            activity = blocked[hostname]
            activity.total += 1
            activity.users.add(entry.user_id)

    return UrlSecurityAnalytics(
        blocked_urls=blocked_urls(blocked, tables),
        frequent_urls=frequent_urls(domains, tables),
    )


def blocked_urls(blocked: Dict[str, DomainActivity], tables: HeuristicTables) -> List[BlockedUrl]:
    results = []
    for hostname, activity in blocked.items():
        category, severity = tables.threat_category_for(hostname)
        results.append(BlockedUrl(
            domain=hostname,
            block_count=activity.total,
            unique_users=len(activity.users),
            threat_category=category,
            severity=severity,
        ))
    return _ranked(results, key=lambda item: item.block_count)


def frequent_urls(domains: Dict[str, DomainActivity], tables: HeuristicTables) -> List[FrequentUrl]:
    if not domains:
        return []

    mean = sum(activity.total for activity in domains.values()) / len(domains)

    results = []
    for hostname, activity in domains.items():
        if activity.total < constants.FREQUENT_URL_MIN_ACCESSES:
            continue

        category = tables.domain_category_for(hostname)
        per_user = activity.total / len(activity.users)

        score = 0
        if activity.total > mean * 3:
            score += 3
        elif activity.total > mean * 2:
            score += 2
        if per_user > 20:
            score += 3
        elif per_user > 10:
            score += 2
        if category in tables.leisure_categories and activity.total > mean:
            score += 1
        if len(hostname) > 20 or "-" in hostname or "_" in hostname:
            score += 1

        results.append(FrequentUrl(
            domain=hostname,
            total_accesses=activity.total,
            unique_users=len(activity.users),
            accesses_per_user=round(per_user, 1),
            category=category,
            anomaly_score=min(score, constants.MAX_RISK_SCORE),
        ))
    return _ranked(results, key=lambda item: item.total_accesses)
