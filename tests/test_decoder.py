from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from semver import Version

from dbdump.core.errors import FieldDecodeError, SchemaMismatchError
from dbdump.data.decoder import RecordDecoder
from dbdump.domain.ids import CrateId, TeamId, UserId, VersionId
from dbdump.domain.models import CrateOwnerRow, VersionRow
from dbdump.domain.tables import TABLE_SPECS, Table
from tests.helpers import CHECKSUM

MINIMAL_VERSION = {
    "id": "11",
    "crate_id": "1",
    "num": "1.0.0",
    "updated_at": "2024-01-01 00:00:00",
    "created_at": "2024-01-01 00:00:00",
    "downloads": "5",
    "features": "{}",
    "yanked": "f",
    "license": "MIT",
    "crate_size": "",
    "published_by": "",
}


def decoder_for(table, headers):
    return RecordDecoder(TABLE_SPECS[table], headers)


def decode(table, row):
    return decoder_for(table, list(row)).decode(list(row.values()))


class TestHeader:
    def test_unknown_column(self):
        with pytest.raises(SchemaMismatchError) as excinfo:
            decoder_for(Table.KEYWORDS, ["id", "keyword", "crates_cnt", "created_at", "sparkle"])
        assert excinfo.value.table == "keywords"
        assert excinfo.value.column == "sparkle"

    def test_missing_required_column(self):
        with pytest.raises(SchemaMismatchError) as excinfo:
            decoder_for(Table.KEYWORDS, ["id", "keyword", "created_at"])
        assert excinfo.value.column == "crates_cnt"

    def test_duplicate_column(self):
        with pytest.raises(SchemaMismatchError, match="duplicate"):
            decoder_for(Table.RESERVED_CRATE_NAMES, ["name", "name"])

    def test_consumed_column_is_required(self):
        with pytest.raises(SchemaMismatchError) as excinfo:
            decoder_for(Table.CRATE_OWNERS, ["crate_id", "owner_id", "created_at", "created_by"])
        assert excinfo.value.column == "owner_kind"

    def test_column_order_is_free(self):
        row = decode(Table.TEAMS, {
            "org_id": "",
            "avatar": "https://a/1",
            "name": "publish",
            "github_id": "9",
            "login": "github:org:publish",
            "id": "3",
        })
        assert row.id == TeamId(3)
        assert row.org_id is None


class TestDefaults:
    def test_late_columns_may_be_absent(self):
        row = decode(Table.VERSIONS, MINIMAL_VERSION)
        assert row.has_lib is False
        assert row.bin_names == []
        assert row.categories == []
        assert row.keywords == []
        assert row.checksum is None
        assert row.rust_version is None
        assert row.links is None
        assert row.edition is None

    def test_late_columns_decode_when_present(self):
        row = decode(Table.VERSIONS, {
            **MINIMAL_VERSION,
            "checksum": CHECKSUM,
            "rust_version": "1.60",
            "has_lib": "t",
            "bin_names": "{a,b}",
            "edition": "2021",
            "categories": "{parsing}",
            "keywords": "{}",
        })
        assert row.checksum == bytes.fromhex(CHECKSUM)
        assert row.rust_version == Version(1, 60, 0)
        assert row.has_lib is True
        assert row.bin_names == ["a", "b"]
        assert row.edition == 2021
        assert row.categories == ["parsing"]

    def test_ignored_columns_are_not_decoded(self):
        row = decode(Table.VERSIONS, {**MINIMAL_VERSION, "num_no_build": "not a version at all"})
        assert row.num == Version(1, 0, 0)

    def test_optional_cells(self):
        row = decode(Table.VERSIONS, {**MINIMAL_VERSION, "crate_size": "1024", "published_by": "7"})
        assert row.crate_size == 1024
        assert row.published_by == UserId(7)


class TestFieldErrors:
    def test_error_names_table_and_column(self):
        with pytest.raises(FieldDecodeError) as excinfo:
            decode(Table.VERSIONS, {**MINIMAL_VERSION, "yanked": "yes"})
        error = excinfo.value
        assert error.table == "versions"
        assert error.column == "yanked"
        assert "'t' or 'f'" in str(error)
        assert "versions.csv" in str(error)

    def test_bad_identifier(self):
        with pytest.raises(FieldDecodeError) as excinfo:
            decode(Table.VERSIONS, {**MINIMAL_VERSION, "crate_id": "x1"})
        assert excinfo.value.column == "crate_id"

    def test_bad_version(self):
        with pytest.raises(FieldDecodeError) as excinfo:
            decode(Table.VERSIONS, {**MINIMAL_VERSION, "num": "1.0"})
        assert excinfo.value.column == "num"


class TestCrateOwners:
    def owner(self, kind, owner_id="5"):
        return decode(Table.CRATE_OWNERS, {
            "crate_id": "1",
            "owner_id": owner_id,
            "created_at": "2020-01-01 00:00:00",
            "created_by": "",
            "owner_kind": kind,
        })

    def test_user_owner(self):
        row = self.owner("0")
        assert row.owner_id == UserId(5)
        assert row.owner_id != TeamId(5)
        assert row.created_by is None

    def test_team_owner(self):
        assert self.owner("1").owner_id == TeamId(5)

    def test_unknown_kind(self):
        with pytest.raises(FieldDecodeError) as excinfo:
            self.owner("2")
        assert excinfo.value.column == "owner_kind"
        assert "unrecognized crate_owners.csv owner_kind" in str(excinfo.value)

    def test_bad_owner_id(self):
        with pytest.raises(FieldDecodeError) as excinfo:
            self.owner("0", owner_id="abc")
        assert excinfo.value.column == "owner_id"

    def test_typed_construction(self):
        row = CrateOwnerRow(
            crate_id=CrateId(1),
            owner_id=TeamId(2),
            created_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
            created_by=None,
        )
        assert row.owner_id == TeamId(2)


class TestRecords:
    def test_records_are_frozen(self):
        row = decode(Table.VERSIONS, MINIMAL_VERSION)
        with pytest.raises(ValidationError):
            row.yanked = True

    def test_ids_are_distinct_per_table(self):
        row = decode(Table.VERSIONS, MINIMAL_VERSION)
        assert row.crate_id == CrateId(1)
        assert row.crate_id != VersionId(1)
        assert row.id == VersionId(11)

    def test_keyed_rows_hash_and_sort_by_id(self):
        first = decode(Table.VERSIONS, MINIMAL_VERSION)
        second = decode(Table.VERSIONS, {**MINIMAL_VERSION, "id": "12"})
        assert sorted([second, first]) == [first, second]
        assert hash(first) == hash(VersionRow.model_validate(MINIMAL_VERSION))
        assert len({first, second, decode(Table.VERSIONS, MINIMAL_VERSION)}) == 2
