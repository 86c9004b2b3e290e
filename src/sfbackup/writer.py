from __future__ import annotations

import csv
import logging
from typing import Any, Mapping, Optional, Sequence

from .exceptions import ExportError
from .records import get_path, to_text

_logger = logging.getLogger(__name__)


class CsvWriter:
    """Writes records to one CSV file in a fixed column order.

    Usable as a context manager; the file is closed on error too, and any
    rows written so far stay on disk.
    """

    def __init__(self, path: str, columns: Sequence[str]) -> None:
        self.path = path
        self.columns = list(columns)
        self.rows = 0
        try:
            self._file: Optional[Any] = open(path, "w", newline="", encoding="utf-8")
        except OSError as e:
            raise ExportError(f"failed to create file: {path}: {e}") from e
        self._writer = csv.writer(self._file)
        self._writerow(self.columns)

    def write(self, record: Mapping[str, Any]) -> None:
        self._writerow([to_text(get_path(record, c)) for c in self.columns])
        self.rows += 1

    def close(self) -> None:
        if self._file is None:
            return
        f, self._file = self._file, None
        try:
            f.flush()
        except OSError as e:
            f.close()
            raise ExportError(f"failed to flush file: {self.path}: {e}") from e
        try:
            f.close()
        except OSError as e:
            raise ExportError(f"failed to close file: {self.path}: {e}") from e

    def _writerow(self, row: Sequence[str]) -> None:
        try:
            self._writer.writerow(row)
        except OSError as e:
            raise ExportError(f"write to file failed: {self.path}: {e}") from e

    def __enter__(self) -> CsvWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        # already failing; don't mask the original error with a close error
        try:
            self.close()
        except ExportError:
            _logger.debug("Ignoring close error on %s after failure", self.path)
