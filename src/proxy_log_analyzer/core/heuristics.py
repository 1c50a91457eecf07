from dataclasses import dataclass, field
from typing import FrozenSet, Sequence, Tuple

from ..utils import constants


@dataclass(frozen=True)
class HeuristicTables:
    """Lookup tables driving the security heuristics

    Plain data, so tests can pass synthetic tables and a real
    geolocation or categorization service can replace them later.
    """

    country_prefixes: Sequence[Tuple[str, str]] = field(
        default_factory=lambda: list(constants.COUNTRY_PREFIXES)
    )
    excluded_countries: FrozenSet[str] = constants.EXCLUDED_COUNTRIES
    flagged_countries: FrozenSet[str] = constants.FLAGGED_COUNTRIES
    sensitive_keywords: Sequence[str] = constants.SENSITIVE_KEYWORDS
    restricted_paths: Sequence[str] = constants.RESTRICTED_PATHS
    threat_categories: Sequence[Tuple[Tuple[str, ...], str, str]] = field(
        default_factory=lambda: list(constants.THREAT_CATEGORIES)
    )
    default_threat_category: Tuple[str, str] = constants.DEFAULT_THREAT_CATEGORY
    domain_categories: Sequence[Tuple[Tuple[str, ...], str]] = field(
        default_factory=lambda: list(constants.DOMAIN_CATEGORIES)
    )
    default_domain_category: str = constants.DEFAULT_DOMAIN_CATEGORY
    leisure_categories: FrozenSet[str] = constants.LEISURE_CATEGORIES

    def country_for(self, ip: str) -> str:
        for prefix, country in self.country_prefixes:
            if ip.startswith(prefix):
                return country
        return "Unknown"

    def is_sensitive(self, url: str) -> bool:
        lowered = url.lower()
        return any(keyword in lowered for keyword in self.sensitive_keywords)

    def is_restricted(self, path: str) -> bool:
        lowered = path.lower()
        return any(restricted in lowered for restricted in self.restricted_paths)

    def threat_category_for(self, hostname: str) -> Tuple[str, str]:
        for keywords, category, severity in self.threat_categories:
            if any(keyword in hostname for keyword in keywords):
                return category, severity
        return self.default_threat_category

    def domain_category_for(self, hostname: str) -> str:
        for keywords, category in self.domain_categories:
            if any(keyword in hostname for keyword in keywords):
                return category
        return self.default_domain_category


DEFAULT_HEURISTICS = HeuristicTables()


def is_blocked(action: str) -> bool:
    return action.upper() in constants.BLOCKED_ACTIONS


def is_after_hours(hour: int) -> bool:
    start, end = constants.BUSINESS_HOURS
    return hour < start or hour >= end
