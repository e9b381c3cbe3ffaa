"""Output writers for exported audit rows.

Defines the ``OutputWriter`` protocol and ``CsvWriter``, which appends rows
to a single per-table CSV file.

Unlike a snapshot writer there is no write-then-rename step: the export
file is append-only and each run only adds lines after the last one.  A
crash mid-write leaves a valid prefix plus at most one partial line, which
the next run closes off before appending (see :meth:`CsvWriter.write`).
"""

from __future__ import annotations

import csv
import logging
import os
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

from .errors import FileIOError

logger = logging.getLogger(__name__)


def column_names(description: Optional[Sequence[Tuple[Any, ...]]]) -> List[str]:
    """Return the column names from a DB-API ``cursor.description``."""
    return [col[0] for col in description or ()]


def _format_value(value: Any) -> Any:
    """Render *value* for the csv module; bytes are decoded, not repr'd."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def _ends_with_newline(path: str) -> bool:
    """True if *path* is empty or its last byte is ``\\n``."""
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        if f.tell() == 0:
            return True
        f.seek(-1, os.SEEK_END)
        return f.read(1) == b"\n"


class OutputWriter(Protocol):
    """Protocol that any output backend must satisfy."""

    @property
    def file_type(self) -> str:
        """File extension/type produced by this writer (e.g. ``csv``)."""
        ...

    def write(
        self,
        rows: Iterable,
        description: Sequence[Tuple[Any, ...]],
        path: str,
        *,
        append: bool,
    ) -> int:
        """Write *rows* (with column metadata in *description*) to *path*.

        When *append* is false the file is created (or truncated) and a
        header row is written first.  Returns the number of data rows.
        """
        ...  # pragma: no cover


class CsvWriter:
    """Write rows as CSV: minimal quoting, embedded quotes doubled.

    ``None`` becomes an empty field.  Lines end with ``\\n`` regardless of
    platform.
    """

    def __init__(
        self,
        delimiter: str = ",",
        quotechar: str = '"',
        encoding: str = "utf-8",
    ) -> None:
        self.delimiter = delimiter
        self.quotechar = quotechar
        self.encoding = encoding

    @property
    def file_type(self) -> str:
        return "csv"

    def write(
        self,
        rows: Iterable,
        description: Sequence[Tuple[Any, ...]],
        path: str,
        *,
        append: bool,
    ) -> int:
        needs_terminator = False
        if append and os.path.exists(path):
            try:
                needs_terminator = not _ends_with_newline(path)
            except OSError as exc:
                raise FileIOError(f"Unable to open file {path} for reading: {exc}") from exc
            if needs_terminator:
                logger.warning(
                    "%s ends with a partial line; starting new rows on a fresh line",
                    path,
                )

        try:
            f = open(path, "a" if append else "w", newline="", encoding=self.encoding)
        except OSError as exc:
            raise FileIOError(f"Unable to open file {path} for writing: {exc}") from exc

        row_count = 0
        with f:
            out = csv.writer(
                f,
                delimiter=self.delimiter,
                quotechar=self.quotechar,
                doublequote=True,
                quoting=csv.QUOTE_MINIMAL,
                lineterminator="\n",
            )
            try:
                if needs_terminator:
                    f.write("\n")
                if not append:
                    out.writerow(column_names(description))
                for row in rows:
                    out.writerow([_format_value(v) for v in row])
                    row_count += 1
            except OSError as exc:
                raise FileIOError(f"Failed writing {path} after {row_count} row(s): {exc}") from exc

        logger.debug("Wrote %d row(s) to %s", row_count, path)
        return row_count
