import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import ConfigDict, Field, ValidationError, field_validator

from ..utils.constants import LOG_TYPES, TIMESTAMP_FORMATS
from ..utils.helpers import ProxyLogError, parse_timestamp, to_naive_utc
from ..utils.schema import CamelModel

logger = logging.getLogger(__name__)


class LogEntry(CamelModel):
    """Standardized web proxy log record"""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    timestamp: datetime
    source_ip: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    destination_url: str = Field(min_length=1)
    action: str = Field(min_length=1)
    category: Optional[str] = None
    response_time: Optional[int] = Field(default=None, ge=0)
    company_id: Optional[int] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value):
        if isinstance(value, str):
            value = parse_timestamp(value.strip(), TIMESTAMP_FORMATS)
        return value

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @field_validator("action")
    @classmethod
    def _normalize_action(cls, value: str) -> str:
        return value.strip().upper()


@dataclass
class ParseResult:
    """Records parsed from one uploaded file"""

    logs: List[LogEntry] = field(default_factory=list)
    parse_errors: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.logs)


class ParserError(ProxyLogError):
    """Raised when a log line or file cannot be parsed"""

    pass


class UnknownLogTypeError(ParserError):
    """Raised when no parser is registered for a log type id"""

    pass


class UnsupportedFormatError(ParserError):
    """Raised when a parser has no branch for the requested file format"""

    pass


class BaseParser(ABC):
    """Abstract base class for all upload parsers"""

    #: File formats this parser understands
    formats: tuple = ()

    def parse(self, content: str, fmt: str, company_id: int) -> ParseResult:
        """Parse a file's raw text into validated log entries

        Args:
            content: Raw file content
            fmt: File format ("csv" or "txt")
            company_id: Company the records belong to

        Returns:
            ParseResult with surviving records in input order

        Raises:
            UnsupportedFormatError: If the parser has no branch for ``fmt``
        """
        fmt = (fmt or "").strip().lower()
        if fmt not in self.formats:
            raise UnsupportedFormatError(
                f"{type(self).__name__} does not support format: {fmt or '<empty>'}"
            )

        result = ParseResult()
        for line_number, line in self.iter_lines(content, fmt):
            try:
                entry = self.parse_line(line, fmt, company_id)
            except (ParserError, ValidationError, ValueError) as e:
                message = f"Line {line_number}: {_error_summary(e)}"
                logger.warning(f"Skipping invalid log entry: {message}")
                result.parse_errors.append(message)
                continue
            result.logs.append(entry)

        return result

    def iter_lines(self, content: str, fmt: str):
        """Yield (line number, line) pairs for every non-blank line"""
        for line_number, line in enumerate(content.splitlines(), 1):
            if line.strip():
                yield line_number, line

    @abstractmethod
    def parse_line(self, line: str, fmt: str, company_id: int) -> LogEntry:
        """Parse a single line into a LogEntry

        Raises:
            ParserError: If the line does not have the expected shape
            ValidationError: If the record fails schema validation
        """
        pass


def _error_summary(error: Exception) -> str:
    if isinstance(error, ValidationError):
        return "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in error.errors()
        )
    return str(error)


@dataclass(frozen=True)
class LogTypeDefinition:
    id: int
    name: str
    table_name: str


class ParserFactory:
    """Registry mapping log type ids to parser classes"""

    def __init__(self):
        self._parsers: Dict[int, Callable[[], BaseParser]] = {}
        self._log_types: Dict[int, LogTypeDefinition] = {}

    def register_parser(
        self,
        log_type_id: int,
        parser_class: Callable[[], BaseParser],
        name: Optional[str] = None,
        table_name: Optional[str] = None,
    ) -> None:
        """Register a parser for a log type

        Args:
            log_type_id: Unique log type id
            parser_class: Parser class (or zero-argument factory) to register
            name: Display name of the log type
            table_name: Storage table holding records of this type
        """
        default_name, default_table = LOG_TYPES.get(log_type_id, (None, None))
        self._parsers[log_type_id] = parser_class
        self._log_types[log_type_id] = LogTypeDefinition(
            id=log_type_id,
            name=name or default_name or getattr(parser_class, "__name__", str(log_type_id)),
            table_name=table_name or default_table or "proxy_logs",
        )

    def get_log_type(self, log_type_id: int) -> LogTypeDefinition:
        try:
            return self._log_types[log_type_id]
        except KeyError:
            raise UnknownLogTypeError(f"Unknown log type ID: {log_type_id}") from None

    def log_types(self) -> List[LogTypeDefinition]:
        return list(self._log_types.values())

    def get_parser(self, log_type_id: int) -> BaseParser:
        """Get a parser instance by log type id

        Raises:
            UnknownLogTypeError: If no parser is registered for the id
        """
        log_type = self.get_log_type(log_type_id)
        logger.debug(f"Using parser for log type {log_type.id} ({log_type.name})")
        return self._parsers[log_type_id]()

    def parse(
        self, content: str, fmt: str, company_id: int, log_type_id: int
    ) -> ParseResult:
        """Parse uploaded content with the parser registered for ``log_type_id``"""
        parser = self.get_parser(log_type_id)
        result = parser.parse(content, fmt, company_id)
        logger.info(
            f"Parsed {len(result.logs)} records "
            f"({len(result.parse_errors)} skipped) for log type {log_type_id}"
        )
        return result
