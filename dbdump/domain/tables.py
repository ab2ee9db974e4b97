"""
The tables of the export and how to decode each of them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, FrozenSet, Optional, Type

from dbdump.domain.models import (
    CategoryRow,
    CrateCategoryRow,
    CrateDownloadsRow,
    CrateKeywordRow,
    CrateOwnerRow,
    CrateRow,
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


class Table(str, Enum):
    CATEGORIES = "categories"
    CRATE_DOWNLOADS = "crate_downloads"
    CRATE_OWNERS = "crate_owners"
    CRATES = "crates"
    CRATES_CATEGORIES = "crates_categories"
    CRATES_KEYWORDS = "crates_keywords"
    DEFAULT_VERSIONS = "default_versions"
    DELETED_CRATES = "deleted_crates"
    DEPENDENCIES = "dependencies"
    KEYWORDS = "keywords"
    METADATA = "metadata"
    RESERVED_CRATE_NAMES = "reserved_crate_names"
    TEAMS = "teams"
    USERS = "users"
    VERSION_DOWNLOADS = "version_downloads"
    VERSIONS = "versions"

    @property
    def file_name(self) -> str:
        return f"{self.value}.csv"


@dataclass(frozen=True)
class TableSpec:
    """
    Decoding rules for one table.

    Args:
        table: Which table this describes
        model: Record model each row decodes into
        ignored_columns: Columns accepted in the header but never decoded
        consumed_columns: Required header columns that are not model fields
            but are folded into one by the model's own validator
    """
    table: Table
    model: Type[Record]
    ignored_columns: FrozenSet[str] = field(default_factory=frozenset)
    consumed_columns: FrozenSet[str] = field(default_factory=frozenset)


TABLE_SPECS: Dict[Table, TableSpec] = {
    spec.table: spec
    for spec in (
        TableSpec(Table.CATEGORIES, CategoryRow),
        TableSpec(Table.CRATE_DOWNLOADS, CrateDownloadsRow),
        TableSpec(Table.CRATE_OWNERS, CrateOwnerRow, consumed_columns=frozenset({"owner_kind"})),
        TableSpec(Table.CRATES, CrateRow, ignored_columns=frozenset({"textsearchable_index_col"})),
        TableSpec(Table.CRATES_CATEGORIES, CrateCategoryRow),
        TableSpec(Table.CRATES_KEYWORDS, CrateKeywordRow),
        TableSpec(Table.DEFAULT_VERSIONS, DefaultVersionRow),
        TableSpec(Table.DELETED_CRATES, DeletedCrateRow),
        TableSpec(Table.DEPENDENCIES, DependencyRow),
        TableSpec(Table.KEYWORDS, KeywordRow),
        TableSpec(Table.METADATA, MetadataRow),
        TableSpec(Table.RESERVED_CRATE_NAMES, ReservedCrateNameRow),
        TableSpec(Table.TEAMS, TeamRow),
        TableSpec(Table.USERS, UserRow),
        TableSpec(Table.VERSION_DOWNLOADS, VersionDownloadsRow),
        TableSpec(Table.VERSIONS, VersionRow, ignored_columns=frozenset({"num_no_build"})),
    )
}

# Tables that older exports still ship but that are no longer decoded. They are
# skipped without a diagnostic, even in strict mode.
RETIRED_TABLE_FILES: FrozenSet[str] = frozenset({
    "badges.csv",
    "version_authors.csv",
})

_TABLES_BY_FILE_NAME: Dict[str, Table] = {table.file_name: table for table in Table}


def table_for_entry(entry_name: str) -> Optional[Table]:
    """
    Resolve an archive entry such as ``2024-01-01-020047/data/crates.csv``.

    Matching is on the final path component, so ``deleted_crates.csv`` is
    never mistaken for ``crates.csv``.
    """
    return _TABLES_BY_FILE_NAME.get(PurePosixPath(entry_name).name)


def is_retired(entry_name: str) -> bool:
    return PurePosixPath(entry_name).name in RETIRED_TABLE_FILES
