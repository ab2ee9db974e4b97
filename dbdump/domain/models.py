"""
Pydantic models for the crates.io database export.

One record model per table, plus the ``DbDump`` aggregate returned by
``load_all``. Records are frozen and reject unknown fields.

Every field that is not plain text is annotated with the codec that decodes
it from its CSV cell. Codecs only run on ``str`` input, so records can also be
built directly from already-typed values. A field with a default is allowed
to be missing from the table header; every other field is required.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import IntEnum
from typing import Annotated, Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from semver import Version

from dbdump.core.errors import CodecError
from dbdump.domain import codecs
from dbdump.domain.codecs import DependencyKind
from dbdump.domain.ids import (
    CategoryId,
    CrateId,
    DeletedCrateId,
    DependencyId,
    KeywordId,
    RowId,
    TeamId,
    UserId,
    VersionId,
)
from dbdump.domain.semver_req import VersionReq


def _text(codec: Callable[[str], Any]) -> BeforeValidator:
    """Run ``codec`` on CSV text and let typed values through untouched."""

    def validate(value: Any) -> Any:
        if isinstance(value, str):
            return codec(value)
        return value

    return BeforeValidator(validate)


U16 = Annotated[int, _text(codecs.parse_u16)]
U32 = Annotated[int, _text(codecs.parse_u32)]
U64 = Annotated[int, _text(codecs.parse_u64)]
I32 = Annotated[int, _text(codecs.parse_i32)]
OptU16 = Annotated[Optional[int], _text(codecs.optional(codecs.parse_u16))]
OptU32 = Annotated[Optional[int], _text(codecs.optional(codecs.parse_u32))]
OptU64 = Annotated[Optional[int], _text(codecs.optional(codecs.parse_u64))]
OptStr = Annotated[Optional[str], _text(codecs.empty_as_none)]
Flag = Annotated[bool, _text(codecs.parse_bool)]
Timestamp = Annotated[datetime, _text(codecs.parse_timestamp)]
Day = Annotated[date, _text(codecs.parse_date)]
OptUserId = Annotated[Optional[UserId], _text(codecs.empty_as_none)]


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------


class Record(BaseModel):
    """One decoded row of one table."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)


class KeyedRecord(Record):
    """
    A row with an ``id`` primary key.

    Hashing and ordering use the key alone, so keyed rows can live in sets and
    sort in id order.
    """

    id: RowId

    def __hash__(self) -> int:
        return hash(self.id)

    def __lt__(self, other: KeyedRecord) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.id < other.id


# ---------------------------------------------------------------------------
# Crates
# ---------------------------------------------------------------------------


class CrateRow(KeyedRecord):
    """crates.csv"""

    id: CrateId
    name: str
    updated_at: Timestamp
    created_at: Timestamp
    downloads: OptU64 = Field(
        default=None,
        description="Total downloads; newer exports move this to crate_downloads.csv.",
    )
    description: str
    homepage: OptStr
    documentation: OptStr
    readme: OptStr
    repository: OptStr
    max_upload_size: OptU64 = Field(default=None, description="Per-crate upload size override in bytes.")
    max_features: OptU16 = Field(default=None, description="Per-crate override of the feature count limit.")


class CrateDownloadsRow(Record):
    """crate_downloads.csv"""

    crate_id: CrateId
    downloads: U64


class OwnerKind(IntEnum):
    USER = 0
    TEAM = 1


def _parse_owner_kind(text: str) -> OwnerKind:
    try:
        return codecs.parse_enum(text, OwnerKind, "owner kind (0, 1)")
    except CodecError as e:
        raise CodecError(f"unrecognized crate_owners.csv owner_kind: {text}", column="owner_kind") from e


class CrateOwnerRow(Record):
    """
    crate_owners.csv

    The table stores the owner as a number plus an ``owner_kind`` column; the
    pair is folded into a single ``UserId`` or ``TeamId``.
    """

    crate_id: CrateId
    owner_id: Union[UserId, TeamId]
    created_at: Timestamp
    created_by: OptUserId

    @model_validator(mode="before")
    @classmethod
    def _typed_owner(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "owner_kind" not in data:
            return data
        data = dict(data)
        raw_kind = data.pop("owner_kind")
        kind = raw_kind if isinstance(raw_kind, OwnerKind) else _parse_owner_kind(str(raw_kind))
        id_type = UserId if kind is OwnerKind.USER else TeamId
        try:
            data["owner_id"] = id_type._coerce(data.get("owner_id"))
        except (CodecError, ValueError) as e:
            raise CodecError(str(e), column="owner_id") from e
        return data


class DefaultVersionRow(Record):
    """default_versions.csv"""

    crate_id: CrateId
    version_id: VersionId


class DeletedCrateRow(KeyedRecord):
    """deleted_crates.csv"""

    id: DeletedCrateId
    name: str
    created_at: Timestamp
    deleted_at: Timestamp
    deleted_by: OptUserId
    message: str
    available_at: Timestamp = Field(description="When the name may be claimed again.")


class ReservedCrateNameRow(Record):
    """reserved_crate_names.csv"""

    name: str


# ---------------------------------------------------------------------------
# Categories and keywords
# ---------------------------------------------------------------------------


class CategoryRow(KeyedRecord):
    """categories.csv"""

    id: CategoryId
    category: str
    slug: str
    description: str
    crates_cnt: U32
    created_at: Timestamp
    path: str = Field(description="Dotted ltree path of the category, e.g. 'root.web_programming.http_server'.")


class CrateCategoryRow(Record):
    """crates_categories.csv"""

    crate_id: CrateId
    category_id: CategoryId


class KeywordRow(KeyedRecord):
    """keywords.csv"""

    id: KeywordId
    keyword: str
    crates_cnt: U32
    created_at: Timestamp


class CrateKeywordRow(Record):
    """crates_keywords.csv"""

    crate_id: CrateId
    keyword_id: KeywordId


# ---------------------------------------------------------------------------
# Versions and dependencies
# ---------------------------------------------------------------------------


class VersionRow(KeyedRecord):
    """versions.csv"""

    id: VersionId
    crate_id: CrateId
    num: Annotated[Version, _text(codecs.parse_version)]
    updated_at: Timestamp
    created_at: Timestamp
    downloads: U64
    features: Annotated[Dict[str, List[str]], _text(codecs.parse_features_map)]
    yanked: Flag
    license: str
    crate_size: OptU64
    published_by: OptUserId
    checksum: Annotated[Optional[bytes], _text(codecs.parse_checksum)] = Field(
        default=None,
        description="SHA-256 of the .crate file.",
    )
    links: OptStr = Field(default=None, description="Native library named by the `links` manifest key.")
    rust_version: Annotated[Optional[Version], _text(codecs.parse_rust_version)] = Field(
        default=None,
        description="Minimum supported compiler version, when it reduces to a single version.",
    )
    has_lib: Annotated[bool, _text(codecs.parse_has_lib)] = False
    bin_names: Annotated[List[str], _text(codecs.parse_bin_names)] = Field(default_factory=list)
    edition: OptU16 = None
    description: OptStr = None
    homepage: OptStr = None
    documentation: OptStr = None
    repository: OptStr = None
    categories: Annotated[List[str], _text(codecs.parse_categories)] = Field(default_factory=list)
    keywords: Annotated[List[str], _text(codecs.parse_keywords)] = Field(default_factory=list)


class VersionDownloadsRow(Record):
    """version_downloads.csv"""

    version_id: VersionId
    downloads: U64
    date: Day


class DependencyRow(KeyedRecord):
    """dependencies.csv"""

    id: DependencyId
    version_id: VersionId = Field(description="The version that declares the dependency.")
    crate_id: CrateId = Field(description="The crate being depended on.")
    req: Annotated[VersionReq, _text(codecs.parse_version_req)]
    optional: Flag
    default_features: Flag
    features: Annotated[List[str], _text(codecs.parse_features_set)]
    target: str
    kind: Annotated[DependencyKind, _text(codecs.parse_dependency_kind)]
    explicit_name: OptStr = Field(default=None, description="Rename given with `package = ...`.")


# ---------------------------------------------------------------------------
# Users and teams
# ---------------------------------------------------------------------------


class UserRow(KeyedRecord):
    """users.csv"""

    id: UserId
    gh_login: str
    name: OptStr
    gh_avatar: str
    gh_id: I32


class TeamRow(KeyedRecord):
    """teams.csv"""

    id: TeamId
    login: str = Field(description="Team login of the form 'github:org:team'.")
    github_id: U32
    name: str
    avatar: str
    org_id: OptU32 = None


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class MetadataRow(Record):
    """metadata.csv"""

    total_downloads: U64


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


class DbDump(BaseModel):
    """
    Every table of one export, fully loaded into memory.

    Built by ``load_all``. Rows keep archive order.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    categories: List[CategoryRow] = Field(default_factory=list)
    crate_downloads: List[CrateDownloadsRow] = Field(default_factory=list)
    crate_owners: List[CrateOwnerRow] = Field(default_factory=list)
    crates: List[CrateRow] = Field(default_factory=list)
    crates_categories: List[CrateCategoryRow] = Field(default_factory=list)
    crates_keywords: List[CrateKeywordRow] = Field(default_factory=list)
    default_versions: List[DefaultVersionRow] = Field(default_factory=list)
    deleted_crates: List[DeletedCrateRow] = Field(default_factory=list)
    dependencies: List[DependencyRow] = Field(default_factory=list)
    keywords: List[KeywordRow] = Field(default_factory=list)
    metadata: MetadataRow = Field(default_factory=lambda: MetadataRow(total_downloads=0))
    reserved_crate_names: List[ReservedCrateNameRow] = Field(default_factory=list)
    teams: List[TeamRow] = Field(default_factory=list)
    users: List[UserRow] = Field(default_factory=list)
    version_downloads: List[VersionDownloadsRow] = Field(default_factory=list)
    versions: List[VersionRow] = Field(default_factory=list)

    def index(self):
        """Build a lazy id lookup over this dump; see ``DumpIndex``."""
        from dbdump.data.index import DumpIndex

        return DumpIndex(self)
