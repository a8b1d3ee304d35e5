"""
Ingestion of archived device responses.

When response archiving is enabled, the device client writes every response
body to ``response_<YYYY-mm-dd_HH-MM-SS.fff>_<name>.txt``. This module reads
the archived log-page responses back, so a history can be rebuilt or
back-filled by replaying them through the normalizer and merge engine.

Design:
- Files are replayed in the order they were captured (timestamp in the name)
- Each file yields one batch, in device order (newest first)
- Unreadable or malformed files are logged and skipped
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Tuple, Union

from fritzlog.core.exceptions import DataValidationError
from fritzlog.data.parsers import ParsingError, parse_log_response
from fritzlog.data.schema import RawLogEntry

logger = logging.getLogger(__name__)

RESPONSE_FILE_PATTERN = re.compile(
    r"^response_(?P<stamp>\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.\d{3})_(?P<name>.+)\.txt$"
)
RESPONSE_STAMP_FORMAT = "%Y-%m-%d_%H-%M-%S.%f"


class LogIngestionError(DataValidationError):
    """Raised when an archive directory cannot be read."""
    pass


def response_filename(captured_at: datetime, name: str) -> str:
    """Name under which a response captured at ``captured_at`` is archived."""
    stamp = captured_at.strftime("%Y-%m-%d_%H-%M-%S.") + f"{captured_at.microsecond // 1000:03d}"
    return f"response_{stamp}_{name}.txt"


class SavedResponseSource:
    """
    Reads archived log responses from a directory.

    Example:
        source = SavedResponseSource("responses/")
        for path, entries in source.ingest():
            ...
    """

    def __init__(self, directory: Union[str, Path], name: str = "logs", encoding: str = "utf-8"):
        """
        Args:
            directory: Archive directory
            name: Request name whose responses hold log feeds
            encoding: File encoding

        Raises:
            LogIngestionError: If the directory does not exist
        """
        self.directory = Path(directory)
        self.name = name
        self.encoding = encoding

        if not self.directory.is_dir():
            raise LogIngestionError(f"Response archive not found: {self.directory}")

    def files(self) -> List[Path]:
        """Archived log responses, oldest capture first."""
        found: List[Tuple[datetime, Path]] = []
        for path in self.directory.iterdir():
            match = RESPONSE_FILE_PATTERN.match(path.name)
            if match is None or match.group("name") != self.name:
                continue
            try:
                captured_at = datetime.strptime(match.group("stamp"), RESPONSE_STAMP_FORMAT)
            except ValueError as e:
                logger.warning(f"Skipping {path}: bad capture time: {e}")
                continue
            found.append((captured_at, path))

        found.sort()
        return [path for _, path in found]

    def ingest(self) -> Iterator[Tuple[Path, List[RawLogEntry]]]:
        """
        Yield (path, raw entries) per archived response.

        Notes:
            - Entries are in device order (newest first)
            - Files that cannot be read or parsed are skipped with a warning
        """
        for path in self.files():
            try:
                text = path.read_text(encoding=self.encoding)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Error reading {path}: {e}")
                continue

            try:
                entries = parse_log_response(text)
            except ParsingError as e:
                logger.warning(f"Skipping {path}: {e}")
                continue

            yield path, entries
