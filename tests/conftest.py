import pytest

from tests.helpers import sample_entries, write_dump


@pytest.fixture
def make_dump(tmp_path):
    def make(entries, name="db-dump.tar.gz"):
        return write_dump(tmp_path / name, entries)

    return make


@pytest.fixture
def sample_dump(make_dump):
    """Every table of the sample export, plus a README and a retired table."""
    entries = [("2024-01-02-020047/README.md", "# crates.io database dump\n")]
    entries.append(("2024-01-02-020047/data/badges.csv", "crate_id,badge_type,attributes\n"))
    entries.extend(sample_entries())
    return make_dump(entries)
