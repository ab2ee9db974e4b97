import csv
import io
import tarfile
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

DUMP_DIR = "2024-01-02-020047/data"

CHECKSUM = "0123456789abcdef" * 4


def csv_text(header: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(row)
    return buf.getvalue()


def write_dump(path: Path, entries: List[Tuple[str, Union[str, bytes]]]) -> Path:
    """Write a .tar.gz holding ``entries`` in order; names are used verbatim."""
    with tarfile.open(path, "w:gz") as tar:
        for name, content in entries:
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


CRATES_HEADER = [
    "id", "name", "updated_at", "created_at", "downloads", "description", "homepage",
    "documentation", "readme", "textsearchable_index_col", "repository", "max_upload_size",
]

VERSIONS_HEADER = [
    "id", "crate_id", "num", "updated_at", "created_at", "downloads", "features", "yanked",
    "license", "crate_size", "published_by", "checksum", "links", "rust_version", "has_lib",
    "bin_names", "edition", "description", "homepage", "documentation", "repository",
    "categories", "keywords", "num_no_build",
]

SAMPLE_TABLES = {
    "categories": csv_text(
        ["id", "category", "slug", "description", "crates_cnt", "created_at", "path"],
        [[1, "Parsing tools", "parsing", "Parsers", 42, "2017-01-17 19:13:05.112025", "root.parsing"]],
    ),
    "crate_downloads": csv_text(["crate_id", "downloads"], [[1, 5000], [2, 300]]),
    "crate_owners": csv_text(
        ["crate_id", "owner_id", "created_at", "created_by", "owner_kind"],
        [
            [1, 1, "2018-01-01 00:00:00", "", 0],
            [2, 1, "2018-01-01 00:00:00", 1, 1],
            [3, 2, "2020-01-01 00:00:00", 2, 0],
        ],
    ),
    "crates": csv_text(
        CRATES_HEADER,
        [
            [1, "syn", "2024-01-01 00:00:00", "2016-09-07 14:42:11.17+00", 1000, "Parser for Rust source code",
             "", "https://docs.rs/syn", "", "'pars':1", "https://github.com/dtolnay/syn", ""],
            [2, "serde", "2024-01-01 00:00:00", "2014-12-05 20:20:39.487502", 2000, "Serialization framework",
             "https://serde.rs", "", "", "", "https://github.com/serde-rs/serde", "20971520"],
            [3, "my-app", "2024-01-02 00:00:00", "2020-01-01 00:00:00", 7, "", "", "", "", "", "", ""],
        ],
    ),
    "crates_categories": csv_text(["crate_id", "category_id"], [[1, 1]]),
    "crates_keywords": csv_text(["crate_id", "keyword_id"], [[1, 1]]),
    "default_versions": csv_text(["crate_id", "version_id"], [[1, 11], [2, 21], [3, 31]]),
    "deleted_crates": csv_text(
        ["id", "name", "created_at", "deleted_at", "deleted_by", "message", "available_at"],
        [[1, "old-crate", "2019-01-01 00:00:00", "2024-01-02 03:04:05.5+00", 2, "oops", "2024-02-01 00:00:00"]],
    ),
    "dependencies": csv_text(
        ["id", "version_id", "crate_id", "req", "optional", "default_features", "features", "target", "kind",
         "explicit_name"],
        [
            [1, 31, 1, "^2.0", "f", "t", "{full,extra-traits}", "", 0, ""],
            [2, 31, 2, "^1.0.100", "f", "t", "{}", "", 0, ""],
            [3, 31, 1, "^2", "f", "t", "{}", "", 2, ""],
            [4, 21, 1, "~2.0-2.2", "t", "f", "{}", "cfg(unix)", 1, "syn2"],
            [5, 30, 2, "^0.9", "f", "t", "{}", "", 0, ""],
        ],
    ),
    "keywords": csv_text(
        ["id", "keyword", "crates_cnt", "created_at"],
        [[1, "parser", 10, "2014-11-20 00:00:00"]],
    ),
    "metadata": csv_text(["total_downloads"], [[123456]]),
    "reserved_crate_names": csv_text(["name"], [["std"]]),
    "teams": csv_text(
        ["id", "login", "github_id", "name", "avatar", "org_id"],
        [[1, "github:serde-rs:publish", 123, "publish", "https://avatars.example/1", 456]],
    ),
    "users": csv_text(
        ["id", "gh_login", "name", "gh_avatar", "gh_id"],
        [
            [1, "dtolnay", "David Tolnay", "https://avatars.example/u1", 1940490],
            [2, "someone", "", "https://avatars.example/u2", -1],
        ],
    ),
    "version_downloads": csv_text(
        ["version_id", "downloads", "date"],
        [[11, 100, "2024-01-01"], [11, 50, "2024-01-02"], [21, 30, "2024-01-01"], [31, 7, "2024-01-02"]],
    ),
    "versions": csv_text(
        VERSIONS_HEADER,
        [
            [11, 1, "2.0.48", "2024-01-01 00:00:00", "2023-12-30 10:00:00.5+00", 1000,
             '{"derive":[],"default":["derive"]}', "f", "MIT OR Apache-2.0", 250000, 1, CHECKSUM, "",
             "1.56", "t", "{}", 2021, "Parser", "", "https://docs.rs/syn", "https://github.com/dtolnay/syn",
             "{parsing}", "{parser,syntax}", "2.0.48"],
            [21, 2, "1.0.195", "2024-01-01 12:00:00", "2024-01-01 12:00:00", 2000, "{}", "f", "MIT", "", "",
             "", "", "", "", "", "", "", "", "", "", "{}", "{}", ""],
            [30, 3, "0.4.0-alpha.01", "2020-01-01 00:00:00", "2020-01-01 00:00:00", 0, "{}", "t", "MIT", "",
             "", "", "", "", "", "", "", "", "", "", "", "{}", "{}", ""],
            [31, 3, "1.0.0", "2024-01-02 00:00:00", "2024-01-02 00:00:00", 7, "{}", "f", "MIT", 1024, 2, "",
             "ring", ">=1.70, <2", "f", "{my-app}", 2021, "", "", "", "", "{}", "{}", ""],
        ],
    ),
}


def sample_entries(tables=None) -> List[Tuple[str, str]]:
    names = tables if tables is not None else sorted(SAMPLE_TABLES)
    return [(f"{DUMP_DIR}/{name}.csv", SAMPLE_TABLES[name]) for name in names]
