from datetime import datetime, timedelta

import pytest

from proxy_log_analyzer.core.analytics import calculate_analytics
from proxy_log_analyzer.core.heuristics import DEFAULT_HEURISTICS, HeuristicTables
from proxy_log_analyzer.core.security import (
    ip_security_analytics,
    is_regular,
    threat_level,
    url_security_analytics,
    user_security_analytics,
)

NOW = datetime(2025, 6, 15, 12, 0)
MIDDAY = datetime(2025, 6, 15, 11, 0)


@pytest.fixture
def synthetic_tables():
    """Tiny tables so tests do not depend on the default heuristics"""
    return HeuristicTables(
        country_prefixes=[("10.", "Internal Network"), ("7.", "Atlantis"), ("9.", "Mordor")],
        excluded_countries=frozenset({"Internal Network", "Unknown"}),
        flagged_countries=frozenset({"Mordor"}),
        sensitive_keywords=("secret",),
        restricted_paths=("/vault",),
        threat_categories=[(("evil",), "Evil", "Critical")],
        default_threat_category=("Other Threat", "Low"),
        domain_categories=[(("video",), "Entertainment")],
        default_domain_category="Work",
        leisure_categories=frozenset({"Entertainment"}),
    )


class TestHeuristicTables:
    """Test the default lookup tables"""

    @pytest.mark.parametrize("ip,country", [
        ("192.168.1.10", "Internal Network"),
        ("8.8.8.8", "USA"),
        ("95.10.0.1", "Russia"),
        ("36.1.2.3", "China"),
        ("41.0.0.1", "Nigeria"),
        ("250.1.1.1", "Unknown"),
    ])
    def test_country_for(self, ip, country):
        assert DEFAULT_HEURISTICS.country_for(ip) == country

    @pytest.mark.parametrize("hostname,expected", [
        ("phish-bank.com", ("Phishing", "High")),
        ("free-malware.net", ("Malware", "Critical")),
        ("anon-proxy.org", ("Suspicious", "Medium")),
        ("spamhub.biz", ("Advertisement", "Low")),
        ("example.com", ("Policy Violation", "Medium")),
    ])
    def test_threat_category_for(self, hostname, expected):
        assert DEFAULT_HEURISTICS.threat_category_for(hostname) == expected

    def test_sensitive_match_is_case_insensitive(self):
        assert DEFAULT_HEURISTICS.is_sensitive("https://intranet.example.com/Finance/Q3")
        assert not DEFAULT_HEURISTICS.is_sensitive("https://news.example.com/today")


class TestFailedLogins:
    """Test the failed login estimate"""

    def test_below_minimum_is_excluded(self, make_entry):
        # floor(9 * 0.3) = 2
        logs = [make_entry(user_id="alice", action="BLOCK") for _ in range(9)]

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        assert result.failed_logins == []

    @pytest.mark.parametrize("blocked,attempts,risk_level", [
        (10, 3, "Medium"),
        (20, 6, "High"),
        (40, 12, "Critical"),
    ])
    def test_risk_levels(self, make_entry, blocked, attempts, risk_level):
        logs = [make_entry(user_id="alice", action="BLOCK") for _ in range(blocked)]
        logs.append(make_entry(user_id="alice", action="ALLOW"))

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        assert len(result.failed_logins) == 1
        item = result.failed_logins[0]
        assert item.failed_attempts == attempts
        assert item.risk_level == risk_level
        assert item.blocked_requests == blocked
        assert item.total_requests == blocked + 1

    def test_sorted_by_estimate(self, make_entry):
        logs = [make_entry(user_id="small", action="BLOCK") for _ in range(10)]
        logs += [make_entry(user_id="large", action="BLOCK") for _ in range(30)]

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        assert [item.user_id for item in result.failed_logins] == ["large", "small"]


class TestSuspiciousActivity:
    """Test the additive user risk score"""

    def test_high_block_rate(self, make_entry):
        logs = [make_entry(user_id="bob", action="BLOCK") for _ in range(3)]
        logs.append(make_entry(user_id="bob", action="ALLOW"))

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        item = result.suspicious_activity[0]
        # 75% blocked: +3 for >30% and +2 for >50%
        assert item.risk_score == 5
        assert item.blocked_percentage == 75
        assert item.indicators == ["High block rate", "Majority of requests blocked"]

    def test_low_score_not_reported(self, make_entry):
        logs = [make_entry(user_id="carol", destination_url="https://example.com/admin")]

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        assert result.suspicious_activity == []

    def test_score_is_capped(self, make_entry):
        logs = [
            make_entry(
                user_id="mallory",
                action="BLOCK",
                destination_url=f"https://example.com/admin/{i}",
            )
            for i in range(120)
        ]

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        assert result.suspicious_activity[0].risk_score == 10
        assert result.suspicious_activity[0].unique_resources == 120


class TestAbnormalAccess:
    """Test sensitive resource access"""

    def test_after_hours_pattern(self, make_entry):
        logs = [
            make_entry(user_id="dave", destination_url="https://hr.example.com/payroll",
                       timestamp=datetime(2025, 6, 15, 23, 0)),
            make_entry(user_id="dave", destination_url="https://example.com/",
                       timestamp=datetime(2025, 6, 15, 3, 0)),
            make_entry(user_id="dave", destination_url="https://example.com/",
                       timestamp=MIDDAY),
        ]

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        item = result.abnormal_access[0]
        assert item.user_id == "dave"
        assert item.sensitive_resources == 1
        assert item.resources == ["https://hr.example.com/payroll"]
        assert item.after_hours_percentage == 67
        assert item.time_pattern == "After hours"

    def test_business_hours_pattern(self, make_entry):
        logs = [
            make_entry(user_id="erin", destination_url="https://example.com/reports", timestamp=MIDDAY),
            make_entry(user_id="erin", destination_url="https://example.com/", timestamp=datetime(2025, 6, 15, 6, 0)),
        ]

        result = user_security_analytics(logs, DEFAULT_HEURISTICS)

        assert result.abnormal_access[0].time_pattern == "Business hours"

    def test_users_without_sensitive_access_excluded(self, make_entry):
        result = user_security_analytics([make_entry(user_id="frank")], DEFAULT_HEURISTICS)

        assert result.abnormal_access == []

    def test_synthetic_keywords(self, make_entry, synthetic_tables):
        logs = [make_entry(destination_url="https://example.com/secret"),
                make_entry(destination_url="https://example.com/admin")]

        result = user_security_analytics(logs, synthetic_tables)

        assert result.abnormal_access[0].resources == ["https://example.com/secret"]


class TestGeolocation:
    """Test country level anomalies"""

    def test_excluded_countries(self, make_entry):
        logs = [
            make_entry(source_ip="192.168.1.1"),
            make_entry(source_ip="8.8.8.8"),
            make_entry(source_ip="250.0.0.1"),
        ]

        result = ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW)

        assert result.geolocation_anomalies == []

    def test_flagged_country_score(self, make_entry):
        logs = [make_entry(source_ip=f"95.0.0.{i}", timestamp=MIDDAY) for i in range(3)]
        logs += [make_entry(source_ip="95.0.0.1", timestamp=MIDDAY) for _ in range(8)]
        logs.append(make_entry(source_ip="95.0.0.1", timestamp=datetime(2025, 6, 15, 2, 0)))

        result = ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW)

        item = result.geolocation_anomalies[0]
        assert item.country == "Russia"
        assert item.unique_ips == 3
        assert item.request_count == 12
        # 3 base + 4 flagged + 2 volume + 1 off hours + 1 distinct IPs, capped
        assert item.risk_score == 10

    def test_ordering_by_score(self, make_entry, synthetic_tables):
        logs = [
            make_entry(source_ip="7.0.0.1", timestamp=MIDDAY),
            make_entry(source_ip="9.0.0.1", timestamp=MIDDAY),
            make_entry(source_ip="10.0.0.1", timestamp=MIDDAY),
        ]

        result = ip_security_analytics(logs, synthetic_tables, NOW)

        assert [(item.country, item.risk_score) for item in result.geolocation_anomalies] == [
            ("Mordor", 7),
            ("Atlantis", 3),
        ]


class TestSuspiciousIPs:
    """Test per-IP threat levels"""

    @pytest.mark.parametrize("blocked_ratio,restricted,level", [
        (60, 0, "Critical"),
        (0, 4, "Critical"),
        (40, 0, "High"),
        (0, 2, "High"),
        (15, 0, "Medium"),
        (5, 1, "Low"),
    ])
    def test_threat_level(self, blocked_ratio, restricted, level):
        assert threat_level(blocked_ratio, restricted) == level

    def test_reported_and_sorted_by_threat(self, make_entry):
        logs = [
            # 1 restricted attempt, nothing blocked: Low
            make_entry(source_ip="1.1.1.1", destination_url="https://example.com/config/app"),
            make_entry(source_ip="1.1.1.1"),
            # all blocked: Critical
            make_entry(source_ip="2.2.2.2", action="BLOCK", timestamp=NOW - timedelta(hours=3)),
            # clean IP: not reported
            make_entry(source_ip="3.3.3.3"),
        ]

        result = ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW)

        assert [(item.ip_address, item.threat_level) for item in result.suspicious_ips] == [
            ("2.2.2.2", "Critical"),
            ("1.1.1.1", "Low"),
        ]
        assert result.suspicious_ips[0].last_seen == "3h ago"
        assert result.suspicious_ips[1].restricted_attempts == 1

    def test_malformed_url_has_no_restricted_path(self, make_entry):
        logs = [make_entry(source_ip="4.4.4.4", destination_url="unknown")]

        result = ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW)

        assert result.suspicious_ips == []


class TestHighFrequency:
    """Test bot-like request rates"""

    def test_regular_interval_bot(self, make_entry):
        logs = [
            make_entry(source_ip="6.6.6.6", timestamp=MIDDAY + timedelta(seconds=10 * i))
            for i in range(6)
        ]

        result = ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW)

        item = result.high_frequency_ips[0]
        assert item.request_count == 6
        assert item.requests_per_minute == 7.2
        assert item.time_span_minutes == 0.8
        assert item.pattern == "Regular intervals"
        assert item.bot_probability >= 60
        assert item.bot_probability == 100

    def test_irregular_intervals(self, make_entry):
        offsets = [0, 1, 2, 3, 40]
        logs = [
            make_entry(source_ip="6.6.6.6", timestamp=MIDDAY + timedelta(seconds=s))
            for s in offsets
        ]

        item = ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW).high_frequency_ips[0]

        assert item.pattern == "Irregular intervals"
        assert item.requests_per_minute == 7.5
        assert item.bot_probability == 70

    def test_too_few_requests(self, make_entry):
        logs = [make_entry(source_ip="6.6.6.6", timestamp=MIDDAY + timedelta(seconds=i)) for i in range(4)]

        assert ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW).high_frequency_ips == []

    def test_zero_span(self, make_entry):
        logs = [make_entry(source_ip="6.6.6.6", timestamp=MIDDAY) for _ in range(10)]

        assert ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW).high_frequency_ips == []

    def test_slow_rate_not_reported(self, make_entry):
        logs = [
            make_entry(source_ip="6.6.6.6", timestamp=MIDDAY + timedelta(minutes=10 * i))
            for i in range(5)
        ]

        assert ip_security_analytics(logs, DEFAULT_HEURISTICS, NOW).high_frequency_ips == []

    def test_is_regular(self):
        assert is_regular([10.0, 10.0, 12.0])
        assert not is_regular([1.0, 1.0, 10.0])


class TestUrlSecurity:
    """Test blocked and frequent domain analysis"""

    def test_blocked_urls(self, make_entry):
        logs = [
            make_entry(destination_url="https://phish-login.com/a", action="BLOCK", user_id="a"),
            make_entry(destination_url="https://phish-login.com/b", action="BLOCK", user_id="b"),
            make_entry(destination_url="https://virus-drop.net/", action="BLOCKED", user_id="a"),
            make_entry(destination_url="https://example.com/", action="ALLOW"),
            make_entry(destination_url="not a url", action="BLOCK"),
        ]

        result = url_security_analytics(logs, DEFAULT_HEURISTICS)

        assert [(item.domain, item.block_count, item.unique_users, item.threat_category, item.severity)
                for item in result.blocked_urls] == [
            ("phish-login.com", 2, 2, "Phishing", "High"),
            ("virus-drop.net", 1, 1, "Malware", "Critical"),
        ]

    def test_frequent_urls(self, make_entry):
        logs = [make_entry(destination_url="https://youtube.com/watch", user_id="viewer") for _ in range(30)]
        logs += [make_entry(destination_url=f"https://site{i}.com/") for i in range(5)]

        result = url_security_analytics(logs, DEFAULT_HEURISTICS)

        assert len(result.frequent_urls) == 1
        item = result.frequent_urls[0]
        assert item.domain == "youtube.com"
        assert item.category == "Entertainment"
        assert item.accesses_per_user == 30.0
        # mean is 35/6: >3x volume +3, >20 per user +3, leisure above mean +1
        assert item.anomaly_score == 7

    def test_suspicious_hostname(self, make_entry, synthetic_tables):
        logs = [make_entry(destination_url="https://my_weird_host.example/", user_id=f"u{i}") for i in range(5)]

        item = url_security_analytics(logs, synthetic_tables).frequent_urls[0]

        assert item.category == "Work"
        assert item.anomaly_score == 1

    def test_lists_truncated(self, make_entry):
        logs = [
            make_entry(destination_url=f"https://blocked{i}.com/", action="BLOCK")
            for i in range(15)
        ]

        result = calculate_analytics(logs, now=NOW).url_security_analytics

        assert len(result.blocked_urls) == 10
        assert result.blocked_urls[0].domain == "blocked0.com"
