import re
from typing import Iterator, List, Optional, Tuple

from .base import BaseParser, LogEntry, ParserError, ParserFactory

ZSCALER_LOG_TYPE_ID = 1

RESPONSE_TIME_TOKEN = re.compile(r"^(\d+)ms$")


class ZscalerParser(BaseParser):
    """Parser for ZScaler web proxy logs exported as CSV or whitespace-delimited text

    CSV columns: timestamp, sourceIp, userId, destinationUrl, action[, category[, responseTime]]
    Text lines:  2025-06-15 23:48:09.144866 203.146.68.57 user35 http://example1.com/page2 ALLOW Malware 57ms
    """

    formats = ("csv", "txt")

    CSV_MIN_FIELDS = 5
    TXT_MIN_TOKENS = 7
    DEFAULT_CATEGORY = "Other"

    def iter_lines(self, content: str, fmt: str) -> Iterator[Tuple[int, str]]:
        lines = super().iter_lines(content, fmt)
        if fmt == "csv":
            # Header row
            next(lines, None)
        yield from lines

    def parse_line(self, line: str, fmt: str, company_id: int) -> LogEntry:
        if fmt == "csv":
            return self._parse_csv_line(line, company_id)
        return self._parse_txt_line(line, company_id)

    def _parse_csv_line(self, line: str, company_id: int) -> LogEntry:
        fields = [f.strip().replace('"', "").strip() for f in line.split(",")]
        if len(fields) < self.CSV_MIN_FIELDS:
            raise ParserError(
                f"Expected at least {self.CSV_MIN_FIELDS} fields, got {len(fields)}"
            )

        category = _field(fields, 5)
        response_time = _field(fields, 6)

        return LogEntry(
            timestamp=fields[0],
            source_ip=fields[1] or "0.0.0.0",
            user_id=fields[2] or "unknown",
            destination_url=fields[3] or "unknown",
            action=fields[4] or "UNKNOWN",
            category=category or self.DEFAULT_CATEGORY,
            response_time=_parse_response_time(response_time),
            company_id=company_id,
        )

    def _parse_txt_line(self, line: str, company_id: int) -> LogEntry:
        parts = line.split()
        if len(parts) < self.TXT_MIN_TOKENS:
            raise ParserError(
                f"Expected at least {self.TXT_MIN_TOKENS} tokens, got {len(parts)}"
            )

        date, time, source_ip, user_id, destination_url, action = parts[:6]

        # Response time is the last token only when it looks like "493ms"
        response_time = None
        category_end = len(parts)
        match = RESPONSE_TIME_TOKEN.match(parts[-1])
        if match:
            response_time = int(match.group(1))
            category_end -= 1

        category_parts = parts[6:category_end]

        return LogEntry(
            timestamp=f"{date} {time}",
            source_ip=source_ip,
            user_id=user_id,
            destination_url=destination_url,
            action=action,
            category=" ".join(category_parts) if category_parts else self.DEFAULT_CATEGORY,
            response_time=response_time,
            company_id=company_id,
        )


def _field(fields: List[str], index: int) -> Optional[str]:
    if index < len(fields) and fields[index]:
        return fields[index]
    return None


def _parse_response_time(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    if value.lower().endswith("ms"):
        value = value[:-2].strip()
    try:
        return int(value)
    except ValueError:
        raise ParserError(f"Invalid response time: {value}") from None


def register_with_parser_factory(factory: ParserFactory) -> None:
    """Register the ZScaler parser under its log type id"""
    factory.register_parser(ZSCALER_LOG_TYPE_ID, ZscalerParser)
