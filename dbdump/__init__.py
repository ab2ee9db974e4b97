"""
Streaming loader for the crates.io database export.

    from dbdump import Loader

    names = {}
    Loader().crates(lambda row: names.__setitem__(row.id, row.name)).load("db-dump.tar.gz")
"""
from dbdump.core.errors import (
    ArchiveFormatError,
    ArchiveIOError,
    CodecError,
    DumpError,
    ErrorKind,
    FieldDecodeError,
    RowTokenizeError,
    SchemaMismatchError,
    UnrecognizedTableError,
)
from dbdump.data.index import DumpIndex
from dbdump.data.loader import Loader, load_all
from dbdump.domain.models import DbDump
from dbdump.domain.tables import Table

__version__ = "0.1.0"

__all__ = [
    "ArchiveFormatError",
    "ArchiveIOError",
    "CodecError",
    "DbDump",
    "DumpError",
    "DumpIndex",
    "ErrorKind",
    "FieldDecodeError",
    "Loader",
    "RowTokenizeError",
    "SchemaMismatchError",
    "Table",
    "UnrecognizedTableError",
    "load_all",
]
