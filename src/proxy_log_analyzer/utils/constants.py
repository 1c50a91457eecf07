from typing import Dict, List, Tuple

# Upload settings
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB
SUPPORTED_FORMATS = ("csv", "txt")

# Timestamp formats accepted in uploaded files
TIMESTAMP_FORMATS = [
    # ISO formats
    "%Y-%m-%dT%H:%M:%S.%fZ",  # 2025-06-15T23:48:09.144866Z
    "%Y-%m-%dT%H:%M:%SZ",  # 2025-06-15T23:48:09Z
    "%Y-%m-%dT%H:%M:%S.%f%z",  # 2025-06-15T23:48:09.144+00:00
    "%Y-%m-%dT%H:%M:%S%z",  # 2025-06-15T23:48:09+0000
    "%Y-%m-%dT%H:%M:%S.%f",  # 2025-06-15T23:48:09.144866
    "%Y-%m-%dT%H:%M:%S",  # 2025-06-15T23:48:09
    # Proxy text formats
    "%Y-%m-%d %H:%M:%S.%f",  # 2025-06-15 23:48:09.144866
    "%Y-%m-%d %H:%M:%S",  # 2025-06-15 23:48:09
    "%Y/%m/%d %H:%M:%S",  # 2025/06/15 23:48:09
    "%Y-%m-%d",  # 2025-06-15
]

# Registered log types: id -> (name, table name)
LOG_TYPES: Dict[int, Tuple[str, str]] = {
    1: ("ZScaler Web Proxy Log", "proxy_logs"),
}

# Actions
BLOCKED_ACTIONS = frozenset({"BLOCK", "BLOCKED", "DENY", "DENIED"})
FLAGGED_ACTIONS = frozenset({"FLAGGED"})

# Analytics limits
RANKED_LIST_LIMIT = 10
BUSINESS_HOURS = (6, 22)  # [start, end) local hours
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Placeholder scoring constants, pending product-defined thresholds
FAILED_LOGIN_RATIO = 0.3
FAILED_LOGIN_MIN = 3
SUSPICIOUS_ACTIVITY_MIN_SCORE = 3
MAX_RISK_SCORE = 10
MAX_BOT_PROBABILITY = 100
HIGH_FREQUENCY_MIN_REQUESTS = 5
HIGH_FREQUENCY_MIN_RPM = 1
REGULAR_INTERVAL_TOLERANCE = 0.3
FREQUENT_URL_MIN_ACCESSES = 5

# Country inferred from IP prefix; first match wins.
COUNTRY_PREFIXES: List[Tuple[str, str]] = [
    ("10.", "Internal Network"),
    ("192.168.", "Internal Network"),
    ("172.16.", "Internal Network"),
    ("127.", "Internal Network"),
    ("8.", "USA"),
    ("12.", "USA"),
    ("24.", "USA"),
    ("50.", "USA"),
    ("66.", "USA"),
    ("5.", "Russia"),
    ("31.", "Russia"),
    ("95.", "Russia"),
    ("1.", "China"),
    ("36.", "China"),
    ("58.", "China"),
    ("41.", "Nigeria"),
    ("105.", "Nigeria"),
    ("197.", "Nigeria"),
    ("77.", "United Kingdom"),
    ("81.", "Germany"),
    ("124.", "Japan"),
    ("177.", "Brazil"),
    ("185.", "Netherlands"),
    ("203.", "Australia"),
]
EXCLUDED_COUNTRIES = frozenset({"Internal Network", "USA", "Unknown"})
FLAGGED_COUNTRIES = frozenset({"Russia", "China", "Nigeria"})

SENSITIVE_KEYWORDS = (
    "admin",
    "hr",
    "finance",
    "payroll",
    "confidential",
    "reports",
    "management",
    "executive",
    "board",
)

RESTRICTED_PATHS = ("/admin", "/api/admin", "/config", "/backup")

# (hostname keywords, threat category, severity); first match wins
THREAT_CATEGORIES: List[Tuple[Tuple[str, ...], str, str]] = [
    (("phish", "scam", "fake"), "Phishing", "High"),
    (("malware", "virus", "trojan"), "Malware", "Critical"),
    (("suspicious", "proxy", "anon"), "Suspicious", "Medium"),
    (("ad", "spam"), "Advertisement", "Low"),
]
DEFAULT_THREAT_CATEGORY = ("Policy Violation", "Medium")

# (hostname keywords, domain category); first match wins
DOMAIN_CATEGORIES: List[Tuple[Tuple[str, ...], str]] = [
    (("facebook", "twitter", "instagram", "linkedin", "tiktok", "reddit", "social"), "Social Media"),
    (("news", "cnn", "bbc", "times", "media"), "News/Media"),
    (("amazon", "ebay", "shop", "store", "cart"), "E-commerce"),
    (("aws", "azure", "cloud", "drive", "dropbox", "storage"), "Cloud Service"),
    (("youtube", "netflix", "spotify", "game", "stream", "video"), "Entertainment"),
]
DEFAULT_DOMAIN_CATEGORY = "Business"
LEISURE_CATEGORIES = frozenset({"Entertainment", "Social Media"})

# Anomaly detection prompts
SYSTEM_PROMPT_FILE = "anomaly-detection-system.txt"
USER_TEMPLATE_FILE = "anomaly-detection-user-template.txt"

# Log flow windows
FLOW_TIME_RANGES = {
    "1h": 3600,
    "6h": 21600,
    "24h": 86400,
    "7d": 604800,
}

# Default configuration
DEFAULT_CONFIG = {
    "server": {
        "host": "0.0.0.0",
        "port": 8000,
    },
    "database": {
        "url": "sqlite:///./proxy_logs.db",
        "echo": False,
    },
    "auth": {
        "enabled": True,
        "session_secret": "dev-session-secret",
        "session_max_age": 7 * 24 * 60 * 60,
        "login_redirect": "/",
    },
    "upload": {
        "max_bytes": MAX_UPLOAD_BYTES,
    },
    "llm": {
        "api_key": None,
        "model": "gpt-4o",
        "base_url": "https://api.openai.com/v1",
        "timeout": None,
    },
    "anomaly": {
        "prompts_dir": None,
        "max_logs": 500,
        "temperature": 0.2,
        "max_tokens": 2000,
    },
    "logging": {
        "level": "INFO",
        "json_format": False,
        "file": None,
    },
}

# Environment variable mapping
ENV_VARS = {
    "DATABASE_URL": ("database.url", str),
    "PROXYLOG_DATABASE_URL": ("database.url", str),
    "SESSION_SECRET": ("auth.session_secret", str),
    "PROXYLOG_AUTH_ENABLED": ("auth.enabled", bool),
    "OPENAI_API_KEY": ("llm.api_key", str),
    "OPENAI_MODEL": ("llm.model", str),
    "OPENAI_BASE_URL": ("llm.base_url", str),
    "PROXYLOG_LOG_LEVEL": ("logging.level", str),
    "PROXYLOG_HOST": ("server.host", str),
    "PROXYLOG_PORT": ("server.port", int),
    "PROXYLOG_MAX_UPLOAD_BYTES": ("upload.max_bytes", int),
    "PROXYLOG_ANOMALY_MAX_LOGS": ("anomaly.max_logs", int),
}
