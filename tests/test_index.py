import threading

import pytest

from dbdump.data.index import DumpIndex
from dbdump.data.loader import load_all
from dbdump.domain.ids import (
    CategoryId,
    CrateId,
    DeletedCrateId,
    DependencyId,
    KeywordId,
    TeamId,
    UserId,
    VersionId,
)


@pytest.fixture
def dump(sample_dump):
    return load_all(sample_dump)


@pytest.fixture
def index(dump):
    return dump.index()


class TestLookups:
    def test_every_table(self, index):
        assert index.crate(CrateId(2)).name == "serde"
        assert str(index.version(VersionId(31)).num) == "1.0.0"
        assert index.user(UserId(1)).gh_login == "dtolnay"
        assert index.team(TeamId(1)).login == "github:serde-rs:publish"
        assert index.category(CategoryId(1)).slug == "parsing"
        assert index.keyword(KeywordId(1)).keyword == "parser"
        assert index.deleted_crate(DeletedCrateId(1)).name == "old-crate"

    def test_returns_the_loaded_row_itself(self, dump, index):
        first = index.crate(CrateId(1))
        assert first is dump.crates[0]
        assert index.crate(CrateId(1)) is first

    def test_generic_lookup_dispatches_on_id_type(self, index):
        assert index.lookup(CrateId(1)).name == "syn"
        assert index.lookup(UserId(1)).gh_login == "dtolnay"

    def test_following_references(self, dump, index):
        dependency = dump.dependencies[0]
        dependent = index.version(dependency.version_id)
        assert index.crate(dependent.crate_id).name == "my-app"
        assert index.crate(dependency.crate_id).name == "syn"


class TestMisses:
    def test_missing_id(self, index):
        with pytest.raises(KeyError, match="no such crate id=99"):
            index.crate(CrateId(99))

    def test_wrong_id_type(self, index):
        with pytest.raises(TypeError):
            index.crate(VersionId(1))

    def test_unindexed_id_type(self, index):
        with pytest.raises(TypeError):
            index.lookup(DependencyId(1))


class TestLaziness:
    def test_maps_are_built_on_first_use(self, index):
        assert index.built_tables == []
        index.user(UserId(1))
        index.crate(CrateId(1))
        assert index.built_tables == ["crates", "users"]

    def test_each_map_is_built_once(self, index, monkeypatch):
        built = []
        original = DumpIndex._build_positions

        def counting(self, rows):
            built.append(len(rows))
            return original(self, rows)

        monkeypatch.setattr(DumpIndex, "_build_positions", counting)

        def look_up_all():
            for _ in range(50):
                index.crate(CrateId(3))

        threads = [threading.Thread(target=look_up_all) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert built == [3]

    def test_indexes_are_independent(self, dump):
        first, second = DumpIndex(dump), DumpIndex(dump)
        first.crate(CrateId(1))
        assert second.built_tables == []
