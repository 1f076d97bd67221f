"""
CSV output of the exports.

A CsvStreamWriter owns one output file from its creation to its closing:

    Idle -> HeaderWritten -> Streaming -> Closed

Any error before Closed moves it to Failed, which is terminal: the file is
closed and its partial content is left on disk for the caller to deal with.
"""

import csv
import logging
import tempfile
from enum import Enum
from pathlib import Path
from typing import AsyncIterable, Iterable

from .. import config
from .exceptions import ExportIOError
from .header import HeaderMapper
from .models import HeaderSpec, ResultChunk

logger = logging.getLogger(__name__)


class WriterState(Enum):
    IDLE = "idle"
    HEADER_WRITTEN = "header_written"
    STREAMING = "streaming"
    CLOSED = "closed"
    FAILED = "failed"


class CsvStreamWriter:
    """Writes a label row then CSV records to a new, uniquely named file."""

    def __init__(self, directory: str | Path | None = None, prefix: str | None = None):
        self.directory = directory or config.EXPORT_DIR or tempfile.gettempdir()
        self.prefix = prefix or config.EXPORT_PREFIX
        self.state = WriterState.IDLE
        self.path: Path | None = None
        self.rows_written = 0
        self._file = None
        self._writer = None

    def _check_state(self, *allowed: WriterState) -> None:
        if self.state not in allowed:
            raise RuntimeError(f"Can't do this on a writer in state '{self.state.value}'")

    def open(self, labels: list[str]) -> Path:
        """Create the output file and write the label row."""
        self._check_state(WriterState.IDLE)
        try:
            self._file = tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                newline="",
                prefix=self.prefix,
                suffix=".csv",
                dir=self.directory,
                delete=False,
            )
        except OSError as e:
            self.state = WriterState.FAILED
            raise ExportIOError(f"can't create the output file in {self.directory}: {e}") from e
        self.path = Path(self._file.name)
        self._writer = csv.writer(self._file, lineterminator="\r\n")
        self._write([labels])
        self.state = WriterState.HEADER_WRITTEN
        logger.debug(f"Opened {self.path}")
        return self.path

    def write_rows(self, rows: Iterable[list[str]]) -> None:
        self._check_state(WriterState.HEADER_WRITTEN, WriterState.STREAMING)
        self.state = WriterState.STREAMING
        self.rows_written += self._write(rows)

    def _write(self, rows: Iterable[list[str]]) -> int:
        count = 0
        try:
            for row in rows:
                self._writer.writerow(row)
                count += 1
        except OSError as e:
            self.fail()
            raise ExportIOError(f"can't write to {self.path}: {e}", self.path) from e
        return count

    def close(self) -> Path:
        """Flush and close the file, return its path."""
        self._check_state(WriterState.HEADER_WRITTEN, WriterState.STREAMING)
        try:
            self._file.close()
        except OSError as e:
            self.state = WriterState.FAILED
            raise ExportIOError(f"can't close {self.path}: {e}", self.path) from e
        self.state = WriterState.CLOSED
        logger.debug(f"Closed {self.path} after {self.rows_written} rows")
        return self.path

    def fail(self) -> None:
        """Close the file after an error, leaving what was written so far."""
        if self.state in [WriterState.CLOSED, WriterState.FAILED]:
            return
        self.state = WriterState.FAILED
        if self._file is not None:
            try:
                self._file.close()
            except OSError:
                logger.warning(f"Couldn't close {self.path} after a failure", exc_info=True)

    async def export(
        self, header_spec: HeaderSpec, chunk_producer: AsyncIterable[ResultChunk]
    ) -> Path:
        """Write the whole export: labels, every chunk of `chunk_producer`, then close."""
        mapper = HeaderMapper(header_spec)
        self.open(mapper.label_row())
        try:
            async for chunk in chunk_producer:
                self.write_rows(mapper.project(chunk, offset=self.rows_written))
        except BaseException:
            self.fail()
            raise
        return self.close()
