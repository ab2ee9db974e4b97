"""
Errors raised while reading a database export.

Every failure surfaced by the loader is a ``DumpError``. The subclass (and the
``kind`` attribute) tells the caller what went wrong:

- ``ArchiveIOError``: the archive could not be opened or read.
- ``ArchiveFormatError``: the gzip/tar container is corrupt or truncated.
- ``RowTokenizeError``: a table's delimited text is malformed.
- ``FieldDecodeError``: a cell was rejected by its field codec.
- ``SchemaMismatchError``: a table header has an unknown or missing column.
- ``UnrecognizedTableError``: strict mode met a table file it does not know.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    IO = "io"
    ARCHIVE = "archive"
    TOKENIZE = "tokenize"
    FIELD = "field"
    SCHEMA = "schema"
    UNRECOGNIZED_TABLE = "unrecognized_table"


class CodecError(ValueError):
    """
    A single cell failed to decode.

    Raised by the pure codecs in ``dbdump.domain.codecs``; the record decoder
    turns it into a ``FieldDecodeError`` carrying the table name.
    """

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column


class DumpError(Exception):
    """Base class for every error raised while loading an export."""

    kind: ErrorKind = ErrorKind.IO

    def __init__(self, message: str, table: Optional[str] = None, column: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.table = table
        self.column = column

    def __str__(self) -> str:
        location = ""
        if self.table and self.column:
            location = f"{self.table}.csv, column {self.column}: "
        elif self.table:
            location = f"{self.table}.csv: "
        return f"{location}{self.message}"


class ArchiveIOError(DumpError):
    kind = ErrorKind.IO


class ArchiveFormatError(DumpError):
    kind = ErrorKind.ARCHIVE


class RowTokenizeError(DumpError):
    kind = ErrorKind.TOKENIZE


class FieldDecodeError(DumpError):
    kind = ErrorKind.FIELD


class SchemaMismatchError(DumpError):
    kind = ErrorKind.SCHEMA


class UnrecognizedTableError(DumpError):
    kind = ErrorKind.UNRECOGNIZED_TABLE
