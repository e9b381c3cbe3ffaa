"""Resume point discovery from an existing export file.

The export file is the only state this tool keeps: the trailing field of
its last line is the highest ``audit_pk`` already exported.  Export files
grow without bound, so only the tail is read, in fixed-size chunks walking
backwards from the end of the file.
"""

from __future__ import annotations

import csv
import logging
import os
import re

from ._constants import MIN_DATA_FIELDS, NO_PRIOR_EXPORT
from .errors import FileIOError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 8192
_PK_RE = re.compile(r"[0-9]+")


def read_last_line(path: str, chunk_size: int = _CHUNK_SIZE) -> str:
    """Return the final line of *path* without its line terminator.

    A single trailing ``\\n`` (or ``\\r\\n``) closes the last line rather
    than starting an empty one.  Returns ``""`` for an empty file.
    """
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        pos = f.tell()
        buf = b""
        while pos > 0:
            step = min(chunk_size, pos)
            pos -= step
            f.seek(pos)
            buf = f.read(step) + buf
            body = buf[:-1] if buf.endswith(b"\n") else buf
            idx = body.rfind(b"\n")
            if idx >= 0:
                return _decode(body[idx + 1:])
        body = buf[:-1] if buf.endswith(b"\n") else buf
        return _decode(body)


def _decode(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


def parse_resume_point(line: str) -> int:
    """Return the ``audit_pk`` encoded in *line*, or ``-1``.

    A header line, a short line, or a non-numeric trailing field all mean
    "nothing exported yet": re-exporting is preferred over skipping rows.
    """
    if not line:
        return NO_PRIOR_EXPORT
    try:
        fields = next(csv.reader([line]))
    except (csv.Error, StopIteration):
        return NO_PRIOR_EXPORT
    if len(fields) < MIN_DATA_FIELDS:
        return NO_PRIOR_EXPORT
    tail = fields[-1].strip()
    if not _PK_RE.fullmatch(tail):
        return NO_PRIOR_EXPORT
    return int(tail)


def locate(path: str) -> int:
    """Return the last exported ``audit_pk`` recorded in *path*, or ``-1``.

    Raises :class:`~cdc_audit_sync.errors.FileIOError` if the file exists
    but cannot be read.
    """
    if not os.path.exists(path):
        logger.debug("No export file at %s", path)
        return NO_PRIOR_EXPORT
    try:
        line = read_last_line(path)
    except OSError as exc:
        raise FileIOError(f"Unable to open file {path} for reading: {exc}") from exc
    pk = parse_resume_point(line)
    logger.debug("Resume point for %s: %d", path, pk)
    return pk
