import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


class ProxyLogError(Exception):
    """Base exception for proxy log analyzer errors"""

    pass


def parse_timestamp(timestamp_str: str, formats: List[str]) -> datetime:
    """Parse timestamp string using multiple formats.

    Args:
        timestamp_str: Timestamp string to parse
        formats: List of format strings to try

    Returns:
        Parsed datetime object

    Raises:
        ValueError: If timestamp cannot be parsed with any format
    """
    for fmt in formats:
        try:
            return datetime.strptime(timestamp_str, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unable to parse timestamp: {timestamp_str}")


def to_naive_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC.

    Args:
        dt: Datetime object

    Returns:
        Naive datetime in UTC
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def safe_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Safely convert value to integer.

    Args:
        value: Value to convert
        default: Default value if conversion fails

    Returns:
        Converted integer or default value
    """
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def parse_bool(value: Any) -> bool:
    """Interpret common truthy strings ("true", "yes", "1", "on")"""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "on")
    return bool(value)


def percentage(part: float, whole: float) -> int:
    """Integer percentage rounded half up; 0 when whole is 0"""
    if not whole:
        return 0
    return int(math.floor(part / whole * 100 + 0.5))


def hostname_of(url: str) -> Optional[str]:
    """Extract the lower-cased hostname of a URL.

    Args:
        url: URL string

    Returns:
        Hostname, or None if the URL is malformed or has no host
    """
    try:
        return urlsplit(url).hostname or None
    except ValueError:
        return None


def path_of(url: str) -> Optional[str]:
    """Extract the path of a URL, or None if the URL is malformed"""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts.path


def merge_dicts(dict1: Dict, dict2: Dict) -> Dict:
    """Deep merge two dictionaries.

    Args:
        dict1: First dictionary
        dict2: Second dictionary

    Returns:
        Merged dictionary
    """
    merged = dict1.copy()

    for key, value in dict2.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value

    return merged


def format_bytes(size: float) -> str:
    """Format byte size to human readable string.

    Args:
        size: Size in bytes

    Returns:
        Formatted string
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024:
            return f"{size:.2f}{unit}"
        size /= 1024
    return f"{size:.2f}PB"
