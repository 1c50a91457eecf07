import gzip
import logging
from pathlib import Path
from typing import Optional, Union

from ..utils.constants import SUPPORTED_FORMATS
from ..utils.helpers import ProxyLogError

logger = logging.getLogger(__name__)


class ReaderError(ProxyLogError):
    """Raised when a log file cannot be read"""


class LogReader:
    """Reads exported proxy log files from disk"""

    def __init__(self, encoding: str = "utf-8", max_bytes: Optional[int] = None):
        """Initialize the log reader

        Args:
            encoding: Text encoding of the files
            max_bytes: Reject files larger than this many bytes
        """
        self.encoding = encoding
        self.max_bytes = max_bytes

    def read_text(self, file_path: Union[str, Path]) -> str:
        """Read a whole log file, transparently decompressing ``.gz``

        Raises:
            ReaderError: If the file cannot be read or is too large
        """
        path = Path(file_path)
        try:
            if path.suffix == ".gz":
                with gzip.open(path, "rb") as f:
                    data = f.read()
            else:
                data = path.read_bytes()
        except OSError as e:
            raise ReaderError(f"Error reading file {path}: {e}") from e

        if self.max_bytes and len(data) > self.max_bytes:
            raise ReaderError(
                f"File {path.name} is {len(data)} bytes, limit is {self.max_bytes}"
            )

        logger.debug(f"Read {len(data)} bytes from {path}")
        return data.decode(self.encoding, errors="replace")

    @staticmethod
    def detect_format(file_path: Union[str, Path]) -> str:
        """Guess the upload format from the file name ("csv" or "txt")"""
        suffixes = [s.lstrip(".").lower() for s in Path(file_path).suffixes]
        if suffixes and suffixes[-1] == "gz":
            suffixes.pop()
        if suffixes and suffixes[-1] in SUPPORTED_FORMATS:
            return suffixes[-1]
        return "txt"
