from typing import Optional

from .base import ParseResult, ParserFactory
from .zscaler import register_with_parser_factory as register_zscaler


def create_parser_factory() -> ParserFactory:
    """Create a factory with every built-in log type registered"""
    factory = ParserFactory()
    register_zscaler(factory)
    # Register further log types here as they are implemented
    return factory


def parse_log_file(
    content: str,
    fmt: str,
    company_id: int,
    log_type_id: int,
    factory: Optional[ParserFactory] = None,
) -> ParseResult:
    """Parse one uploaded file with the parser registered for its log type

    Args:
        content: Raw file text
        fmt: "csv" or "txt"
        company_id: Company the records belong to
        log_type_id: Registered log type id

    Returns:
        ParseResult with the valid records and per-line errors

    Raises:
        UnknownLogTypeError: If the log type id is not registered
        UnsupportedFormatError: If the parser cannot handle ``fmt``
    """
    factory = factory or create_parser_factory()
    return factory.parse(content, fmt, company_id, log_type_id)
