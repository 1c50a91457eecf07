import json
import logging
import logging.handlers
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Union

DEFAULT_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def __init__(
        self,
        timestamp_format: str = "%Y-%m-%d %H:%M:%S.%f",
        **kwargs
    ):
        """Initialize formatter.

        Args:
            timestamp_format: Timestamp format string
            **kwargs: Additional fields to include in every record
        """
        super().__init__()
        self.timestamp_format = timestamp_format
        self.additional_fields = kwargs

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted string
        """
        data = {
            'timestamp': datetime.fromtimestamp(record.created).strftime(
                self.timestamp_format
            ),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno
        }

        if record.exc_info:
            data['exception'] = self.formatException(record.exc_info)

        data.update(self.additional_fields)

        # Fields passed with logger.info(..., extra={"extra_fields": {...}})
        extra_fields = getattr(record, 'extra_fields', None)
        if isinstance(extra_fields, dict):
            data.update(extra_fields)

        return json.dumps(data, default=str)


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    json_format: bool = False,
    **kwargs
) -> List[logging.Handler]:
    """Set up logging for the API server.

    Args:
        level: Log level
        log_file: Optional log file path
        json_format: Whether to use JSON formatting
        **kwargs: Additional fields for JSON formatter

    Returns:
        Handlers installed on the root logger
    """
    if isinstance(level, str):
        level = level.upper()

    def make_formatter() -> logging.Formatter:
        if json_format:
            return JsonFormatter(**kwargs)
        return logging.Formatter(DEFAULT_FORMAT)

    handlers: List[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(make_formatter())
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(make_formatter())
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for handler in handlers:
        root_logger.addHandler(handler)

    return handlers


@contextmanager
def log_duration(
    logger: Union[str, logging.Logger],
    message: str,
    level: int = logging.INFO
) -> Iterator[None]:
    """Log duration of code block.

    Args:
        logger: Logger name or instance
        message: Message template with {duration}
        level: Log level
    """
    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    start = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start
        logger.log(level, message.format(duration=f"{duration:.3f}s"))
