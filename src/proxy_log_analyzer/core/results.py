from datetime import datetime
from typing import List

from pydantic import Field

from ..utils.schema import CamelModel


class ActionCount(CamelModel):
    action: str
    count: int
    percentage: int


class CategoryCount(CamelModel):
    category: str
    count: int
    percentage: int


class ResponseTimeStats(CamelModel):
    min: int = 0
    max: int = 0
    avg: int = 0


class TrendPoint(CamelModel):
    bucket: datetime
    display_label: str
    count: int


class PatternPoint(CamelModel):
    period: str
    count: int = 0
    blocked_count: int = 0


class Patterns(CamelModel):
    hourly: List[PatternPoint] = Field(default_factory=list)
    daily: List[PatternPoint] = Field(default_factory=list)
    weekly: List[PatternPoint] = Field(default_factory=list)


class FailedLogin(CamelModel):
    user_id: str
    failed_attempts: int
    blocked_requests: int
    total_requests: int
    risk_level: str


class SuspiciousActivity(CamelModel):
    user_id: str
    risk_score: int
    total_requests: int
    blocked_percentage: int
    unique_resources: int
    indicators: List[str] = Field(default_factory=list)


class AbnormalAccess(CamelModel):
    user_id: str
    sensitive_resources: int
    resources: List[str] = Field(default_factory=list)
    total_requests: int
    after_hours_percentage: int
    time_pattern: str


class UserSecurityAnalytics(CamelModel):
    failed_logins: List[FailedLogin] = Field(default_factory=list)
    suspicious_activity: List[SuspiciousActivity] = Field(default_factory=list)
    abnormal_access: List[AbnormalAccess] = Field(default_factory=list)


class GeolocationAnomaly(CamelModel):
    country: str
    ip_addresses: List[str] = Field(default_factory=list)
    unique_ips: int = Field(alias="uniqueIPs")
    request_count: int
    risk_score: int


class SuspiciousIP(CamelModel):
    ip_address: str
    total_requests: int
    blocked_requests: int
    blocked_percentage: int
    restricted_attempts: int
    threat_level: str
    last_seen: str


class HighFrequencyIP(CamelModel):
    ip_address: str
    request_count: int
    requests_per_minute: float
    time_span_minutes: float
    pattern: str
    bot_probability: int


class IPSecurityAnalytics(CamelModel):
    geolocation_anomalies: List[GeolocationAnomaly] = Field(default_factory=list)
    suspicious_ips: List[SuspiciousIP] = Field(default_factory=list, alias="suspiciousIPs")
    high_frequency_ips: List[HighFrequencyIP] = Field(
        default_factory=list, alias="highFrequencyIPs"
    )


class BlockedUrl(CamelModel):
    domain: str
    block_count: int
    unique_users: int
    threat_category: str
    severity: str


class FrequentUrl(CamelModel):
    domain: str
    total_accesses: int
    unique_users: int
    accesses_per_user: float
    category: str
    anomaly_score: int


class UrlSecurityAnalytics(CamelModel):
    blocked_urls: List[BlockedUrl] = Field(default_factory=list)
    frequent_urls: List[FrequentUrl] = Field(default_factory=list)


class AnalyticsBundle(CamelModel):
    """Statistics derived from one log batch; recomputed on every request"""

    generated_at: datetime
    total_events: int = 0
    blocked_requests: int = 0
    block_rate: int = 0
    unique_ips: int = Field(default=0, alias="uniqueIPs")
    unique_users: int = 0
    avg_events_per_ip: float = Field(default=0.0, alias="avgEventsPerIP")
    avg_events_per_user: float = 0.0
    action_distribution: List[ActionCount] = Field(default_factory=list)
    top_categories: List[CategoryCount] = Field(default_factory=list)
    response_time: ResponseTimeStats = Field(default_factory=ResponseTimeStats)
    time_trends: List[TrendPoint] = Field(default_factory=list)
    patterns: Patterns = Field(default_factory=Patterns)
    user_security_analytics: UserSecurityAnalytics = Field(default_factory=UserSecurityAnalytics)
    ip_security_analytics: IPSecurityAnalytics = Field(default_factory=IPSecurityAnalytics)
    url_security_analytics: UrlSecurityAnalytics = Field(default_factory=UrlSecurityAnalytics)
