"""
Stream the crates.io database export table by table.

The export is a ``.tar.gz`` holding one CSV file per table under a
timestamp-named directory::

    2024-01-01-020047/data/crates.csv
    2024-01-01-020047/data/versions.csv
    ...

``Loader`` decodes only the tables a callback was registered for, hands each
record to that callback as soon as it is decoded, and stops reading the
archive once every registered table has been delivered.
"""
from __future__ import annotations

import codecs
import csv
import logging
import tarfile
import zlib
from os import PathLike
from typing import Callable, Dict, Iterator, List, Set, Union

from dbdump.core.errors import (
    ArchiveFormatError,
    ArchiveIOError,
    DumpError,
    RowTokenizeError,
    UnrecognizedTableError,
)
from dbdump.data.decoder import RecordDecoder
from dbdump.domain.models import (
    CategoryRow,
    CrateCategoryRow,
    CrateDownloadsRow,
    CrateKeywordRow,
    CrateOwnerRow,
    CrateRow,
    DbDump,
    DefaultVersionRow,
    DeletedCrateRow,
    DependencyRow,
    KeywordRow,
    MetadataRow,
    Record,
    ReservedCrateNameRow,
    TeamRow,
    UserRow,
    VersionDownloadsRow,
    VersionRow,
)
from dbdump.domain.tables import TABLE_SPECS, Table, is_retired, table_for_entry

logger = logging.getLogger(__name__)

Callback = Callable[[Record], None]
StrPath = Union[str, "PathLike[str]"]

# crates.csv carries full READMEs, far beyond the csv module's 128 KiB default.
# The limit is process-wide; it is raised once, when this module is imported.
CSV_FIELD_SIZE_LIMIT = 1 << 30
csv.field_size_limit(max(csv.field_size_limit(), CSV_FIELD_SIZE_LIMIT))

_ARCHIVE_FORMAT_ERRORS = (tarfile.TarError, zlib.error, EOFError)


class Loader:
    """
    Selective, streaming reader for one export archive.

    Register a callback per table of interest, then call ``load``. Tables
    without a callback are skipped without decoding a single row.

    Example::

        downloads = {}
        Loader().version_downloads(
            lambda row: downloads.__setitem__(row.date, downloads.get(row.date, 0) + row.downloads)
        ).load("db-dump.tar.gz")

    Args:
        strict: Raise ``UnrecognizedTableError`` for CSV files that match no
            known table instead of logging a warning.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._callbacks: Dict[Table, Callback] = {}

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    def register(self, table: Union[Table, str], callback: Callback) -> Loader:
        """Deliver every row of ``table`` to ``callback``; replaces any earlier callback."""
        self._callbacks[Table(table)] = callback
        return self

    @property
    def registered_tables(self) -> List[Table]:
        return list(self._callbacks)

    def categories(self, callback: Callable[[CategoryRow], None]) -> Loader:
        return self.register(Table.CATEGORIES, callback)

    def crate_downloads(self, callback: Callable[[CrateDownloadsRow], None]) -> Loader:
        return self.register(Table.CRATE_DOWNLOADS, callback)

    def crate_owners(self, callback: Callable[[CrateOwnerRow], None]) -> Loader:
        return self.register(Table.CRATE_OWNERS, callback)

    def crates(self, callback: Callable[[CrateRow], None]) -> Loader:
        return self.register(Table.CRATES, callback)

    def crates_categories(self, callback: Callable[[CrateCategoryRow], None]) -> Loader:
        return self.register(Table.CRATES_CATEGORIES, callback)

    def crates_keywords(self, callback: Callable[[CrateKeywordRow], None]) -> Loader:
        return self.register(Table.CRATES_KEYWORDS, callback)

    def default_versions(self, callback: Callable[[DefaultVersionRow], None]) -> Loader:
        return self.register(Table.DEFAULT_VERSIONS, callback)

    def deleted_crates(self, callback: Callable[[DeletedCrateRow], None]) -> Loader:
        return self.register(Table.DELETED_CRATES, callback)

    def dependencies(self, callback: Callable[[DependencyRow], None]) -> Loader:
        return self.register(Table.DEPENDENCIES, callback)

    def keywords(self, callback: Callable[[KeywordRow], None]) -> Loader:
        return self.register(Table.KEYWORDS, callback)

    def metadata(self, callback: Callable[[MetadataRow], None]) -> Loader:
        return self.register(Table.METADATA, callback)

    def reserved_crate_names(self, callback: Callable[[ReservedCrateNameRow], None]) -> Loader:
        return self.register(Table.RESERVED_CRATE_NAMES, callback)

    def teams(self, callback: Callable[[TeamRow], None]) -> Loader:
        return self.register(Table.TEAMS, callback)

    def users(self, callback: Callable[[UserRow], None]) -> Loader:
        return self.register(Table.USERS, callback)

    def version_downloads(self, callback: Callable[[VersionDownloadsRow], None]) -> Loader:
        return self.register(Table.VERSION_DOWNLOADS, callback)

    def versions(self, callback: Callable[[VersionRow], None]) -> Loader:
        return self.register(Table.VERSIONS, callback)

    # -----------------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------------

    def load(self, path: StrPath) -> None:
        """
        Read the archive at ``path`` and feed the registered callbacks.

        Raises:
            DumpError: on the first I/O, archive, CSV or decode failure.
                Rows already delivered to callbacks stay delivered.
        """
        pending: Set[Table] = set(self._callbacks)
        logger.debug(f"Loading {path} for tables: {', '.join(sorted(t.value for t in pending)) or '(none)'}")

        with _open_archive(path) as archive:
            entries = iter(archive)
            while pending:
                member = _next_member(entries, path)
                if member is None:
                    break
                if not member.isfile() or not member.name.endswith(".csv"):
                    logger.debug(f"Skipping non-CSV entry: {member.name}")
                    continue

                table = table_for_entry(member.name)
                if table is None:
                    self._unrecognized(member.name)
                    continue
                if table not in pending:
                    logger.debug(f"Skipping {member.name}: no pending callback for {table.value}")
                    continue

                count = self._read_table(archive, member, table)
                pending.discard(table)
                logger.info(f"Decoded {count} rows from {table.value}.csv")

            if not pending:
                logger.info("All registered tables delivered; stopping early")
            else:
                missing = ", ".join(sorted(t.value for t in pending))
                logger.warning(f"Archive {path} has no data for registered tables: {missing}")

    def _unrecognized(self, entry_name: str) -> None:
        if is_retired(entry_name):
            logger.debug(f"Skipping retired table: {entry_name}")
            return
        if self.strict:
            logger.error(f"Unrecognized table file in strict mode: {entry_name}")
            raise UnrecognizedTableError(f"unrecognized table file: {entry_name}")
        logger.warning(f"Skipping unrecognized table file: {entry_name}")

    def _read_table(self, archive: tarfile.TarFile, member: tarfile.TarInfo, table: Table) -> int:
        callback = self._callbacks[table]
        count = 0
        for record in _decode_entry(archive, member, table):
            callback(record)
            count += 1
        return count


def _decode_entry(archive: tarfile.TarFile, member: tarfile.TarInfo, table: Table) -> Iterator[Record]:
    """Yield the decoded rows of one table entry; callbacks run outside the error mapping."""
    name = table.value
    line = 1
    try:
        stream = archive.extractfile(member)
        # Stream-mode members cannot seek, so decode line by line instead of wrapping.
        reader = csv.reader(codecs.iterdecode(stream, "utf-8"), strict=True)
        headers = next(reader, None)
        if headers is None:
            logger.debug(f"{name}.csv is empty")
            return
        decoder = RecordDecoder(TABLE_SPECS[table], headers)

        for values in reader:
            line = reader.line_num
            if not values:
                continue
            if len(values) != len(headers):
                raise RowTokenizeError(
                    f"line {line}: found record with {len(values)} fields, "
                    f"but the header has {len(headers)} fields",
                    table=name,
                )
            yield decoder.decode(values)
    except DumpError as e:
        logger.error(f"Failed to decode {name}.csv near line {line}: {e}", exc_info=True)
        raise
    except csv.Error as e:
        logger.error(f"Malformed CSV in {name}.csv near line {line}: {e}", exc_info=True)
        raise RowTokenizeError(f"line {line}: {e}", table=name) from e
    except UnicodeDecodeError as e:
        logger.error(f"Invalid UTF-8 in {name}.csv near line {line}: {e}", exc_info=True)
        raise RowTokenizeError(f"line {line}: invalid UTF-8: {e}", table=name) from e
    except _ARCHIVE_FORMAT_ERRORS as e:
        logger.error(f"Corrupt archive while reading {name}.csv: {e}", exc_info=True)
        raise ArchiveFormatError(f"corrupt archive: {e}", table=name) from e
    except OSError as e:
        logger.error(f"I/O error while reading {name}.csv: {e}", exc_info=True)
        raise ArchiveIOError(f"failed to read archive: {e}", table=name) from e


def _open_archive(path: StrPath) -> tarfile.TarFile:
    try:
        return tarfile.open(path, mode="r|gz")
    except _ARCHIVE_FORMAT_ERRORS as e:
        logger.error(f"Not a gzip-compressed tar archive: {path}: {e}", exc_info=True)
        raise ArchiveFormatError(f"failed to open archive {path}: {e}") from e
    except OSError as e:
        logger.error(f"Failed to open archive {path}: {e}", exc_info=True)
        raise ArchiveIOError(f"failed to open archive {path}: {e}") from e


def _next_member(entries, path: StrPath):
    try:
        return next(entries, None)
    except _ARCHIVE_FORMAT_ERRORS as e:
        logger.error(f"Corrupt archive {path}: {e}", exc_info=True)
        raise ArchiveFormatError(f"corrupt archive {path}: {e}") from e
    except OSError as e:
        logger.error(f"Failed to read archive {path}: {e}", exc_info=True)
        raise ArchiveIOError(f"failed to read archive {path}: {e}") from e


def load_all(path: StrPath, strict: bool = False) -> DbDump:
    """
    Load every table of the export into memory.

    Needs several gigabytes of RAM for a real export; prefer ``Loader`` with
    only the tables you need.
    """
    tables: Dict[str, list] = {spec.table.value: [] for spec in TABLE_SPECS.values() if spec.table is not Table.METADATA}
    metadata: List[MetadataRow] = []

    loader = Loader(strict=strict)
    for table, rows in tables.items():
        loader.register(table, rows.append)
    loader.metadata(metadata.append)
    loader.load(path)

    if metadata:
        tables["metadata"] = metadata[-1]
    return DbDump.model_construct(**tables)
