"""
Analyses over an export, each reading only the tables it needs.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from semver import Version

from dbdump.data.loader import Loader, StrPath
from dbdump.domain.ids import CrateId, UserId, VersionId
from dbdump.domain.models import CrateOwnerRow, DependencyRow, VersionRow

logger = logging.getLogger(__name__)

# Weekdays (Monday is 0) counted by industry_coefficients. Mondays and Fridays
# are left out since downloaders in other time zones straddle the UTC boundary.
_WEEKDAYS = frozenset({1, 2, 3})
_WEEKEND = frozenset({5, 6})


def total_downloads_by_day(path: StrPath, strict: bool = False) -> Dict[date, int]:
    """Downloads across all crates, per day, in date order."""
    downloads: Dict[date, int] = {}

    def add(row) -> None:
        downloads[row.date] = downloads.get(row.date, 0) + row.downloads

    Loader(strict=strict).version_downloads(add).load(path)
    return dict(sorted(downloads.items()))


def crate_downloads_by_day(path: StrPath, crate_name: str, strict: bool = False) -> Dict[date, int]:
    """
    Downloads of one crate across all its versions, per day.

    Raises:
        LookupError: if no crate has that name
    """
    crate_id: Optional[CrateId] = None
    version_crates: Dict[VersionId, CrateId] = {}
    stats: List[Tuple[VersionId, date, int]] = []

    def on_crate(row) -> None:
        nonlocal crate_id
        if row.name == crate_name:
            crate_id = row.id

    (
        Loader(strict=strict)
        .crates(on_crate)
        .versions(lambda row: version_crates.__setitem__(row.id, row.crate_id))
        .version_downloads(lambda row: stats.append((row.version_id, row.date, row.downloads)))
        .load(path)
    )

    if crate_id is None:
        raise LookupError(f"no such crate: {crate_name}")

    version_ids = {v for v, c in version_crates.items() if c == crate_id}
    downloads: Dict[date, int] = {}
    for version_id, day, count in stats:
        if version_id in version_ids:
            downloads[day] = downloads.get(day, 0) + count
    return dict(sorted(downloads.items()))


def _most_recent_versions(versions: Iterable[VersionRow]) -> Set[VersionId]:
    latest: Dict[CrateId, VersionRow] = {}
    for version in versions:
        current = latest.get(version.crate_id)
        if current is None or version.created_at > current.created_at:
            latest[version.crate_id] = version
    return {version.id for version in latest.values()}


def top_depended_crates(path: StrPath, limit: int = 12, strict: bool = False) -> List[Tuple[str, int]]:
    """
    The crates most often depended on by the latest version of other crates.

    A version that depends on the same crate more than once (say as a normal
    and a dev-dependency) counts once.
    """
    names: Dict[CrateId, str] = {}
    versions: List[VersionRow] = []
    dependencies: List[DependencyRow] = []
    (
        Loader(strict=strict)
        .crates(lambda row: names.__setitem__(row.id, row.name))
        .versions(versions.append)
        .dependencies(dependencies.append)
        .load(path)
    )

    most_recent = _most_recent_versions(versions)
    edges: Set[Tuple[VersionId, CrateId]] = set()
    counts: Dict[CrateId, int] = {}
    for dep in dependencies:
        edge = (dep.version_id, dep.crate_id)
        if dep.version_id in most_recent and edge not in edges:
            edges.add(edge)
            counts[dep.crate_id] = counts.get(dep.crate_id, 0) + 1

    ranked = sorted(
        ((names.get(crate_id, str(crate_id)), count) for crate_id, count in counts.items()),
        key=lambda item: (-item[1], item[0]),
    )
    return ranked[:limit]


def user_dependents(path: StrPath, login: str, strict: bool = False) -> Tuple[int, int]:
    """
    How many crates' latest version depends directly on a crate owned by ``login``.

    Returns:
        ``(dependent crates, total crates)``

    Raises:
        LookupError: if no user has that GitHub login
    """
    user_id: Optional[UserId] = None
    crate_count = 0
    owners: List[CrateOwnerRow] = []
    versions: List[VersionRow] = []
    dependencies: List[DependencyRow] = []

    def on_user(row) -> None:
        nonlocal user_id
        if row.gh_login == login:
            user_id = row.id

    def on_crate(row) -> None:
        nonlocal crate_count
        crate_count += 1

    (
        Loader(strict=strict)
        .users(on_user)
        .crates(on_crate)
        .crate_owners(owners.append)
        .versions(versions.append)
        .dependencies(dependencies.append)
        .load(path)
    )

    their_crates = _owned_by(owners, user_id, login)
    most_recent = _most_recent_versions(versions)
    dependents = {
        dep.version_id
        for dep in dependencies
        if dep.crate_id in their_crates and dep.version_id in most_recent
    }
    logger.debug(f"{login} owns {len(their_crates)} crates")
    return len(dependents), crate_count


def find_published_at(path: StrPath, instants: Iterable[datetime], strict: bool = False) -> List[Tuple[str, Version]]:
    """Which crate versions were published at exactly one of ``instants``."""
    wanted = set(instants)
    names: Dict[CrateId, str] = {}
    matches: List[Tuple[CrateId, Version]] = []
    (
        Loader(strict=strict)
        .crates(lambda row: names.__setitem__(row.id, row.name))
        .versions(lambda row: matches.append((row.crate_id, row.num)) if row.created_at in wanted else None)
        .load(path)
    )
    return [(names.get(crate_id, str(crate_id)), num) for crate_id, num in matches]


def _owned_by(owners: Iterable[CrateOwnerRow], user_id: Optional[UserId], login: str) -> Set[CrateId]:
    if user_id is None:
        raise LookupError(f"no such user: {login}")
    return {owner.crate_id for owner in owners if owner.owner_id == user_id}


def user_download_share(path: StrPath, login: str, strict: bool = False) -> Dict[date, float]:
    """
    Per day, the fraction of all downloads that went to crates owned by ``login``.

    Days on which none of the user's crates were downloaded are left out.

    Raises:
        LookupError: if no user has that GitHub login
    """
    user_id: Optional[UserId] = None
    owners: List[CrateOwnerRow] = []
    version_crates: Dict[VersionId, CrateId] = {}
    theirs: Dict[date, int] = {}
    totals: Dict[date, int] = {}
    stats: List[Tuple[VersionId, date, int]] = []

    def on_user(row) -> None:
        nonlocal user_id
        if row.gh_login == login:
            user_id = row.id

    (
        Loader(strict=strict)
        .users(on_user)
        .crate_owners(owners.append)
        .versions(lambda row: version_crates.__setitem__(row.id, row.crate_id))
        .version_downloads(lambda row: stats.append((row.version_id, row.date, row.downloads)))
        .load(path)
    )

    their_crates = _owned_by(owners, user_id, login)
    their_versions = {v for v, c in version_crates.items() if c in their_crates}
    for version_id, day, count in stats:
        totals[day] = totals.get(day, 0) + count
        if version_id in their_versions:
            theirs[day] = theirs.get(day, 0) + count

    return {day: theirs[day] / totals[day] for day in sorted(theirs) if theirs[day] > 0}


def user_dependency_share_over_time(
    path: StrPath, login: str, strict: bool = False
) -> Tuple[List[Tuple[datetime, float]], int, int]:
    """
    How the share of dependencies pointing at ``login``'s crates changed over time.

    Versions are replayed in publication order, skipping yanked ones. At each
    step only the latest version of every crate contributes its dependency
    declarations. A point is recorded whenever the percentage moves.

    Returns:
        ``(points, their dependencies, all dependencies)`` where each point is
        ``(published at, percent)`` and the counts describe the final state

    Raises:
        LookupError: if no user has that GitHub login
    """
    user_id: Optional[UserId] = None
    owners: List[CrateOwnerRow] = []
    dependencies: Dict[VersionId, List[DependencyRow]] = {}
    versions: List[VersionRow] = []

    def on_user(row) -> None:
        nonlocal user_id
        if row.gh_login == login:
            user_id = row.id

    (
        Loader(strict=strict)
        .users(on_user)
        .crate_owners(owners.append)
        .dependencies(lambda row: dependencies.setdefault(row.version_id, []).append(row))
        .versions(lambda row: None if row.yanked else versions.append(row))
        .load(path)
    )

    their_crates = _owned_by(owners, user_id, login)
    versions.sort(key=lambda v: v.created_at)

    total_deps = 0
    their_deps = 0
    last_ratio = 0.0
    latest: Dict[CrateId, VersionId] = {}
    points: List[Tuple[datetime, float]] = []
    for version in versions:
        previous = latest.get(version.crate_id)
        latest[version.crate_id] = version.id
        if previous is not None:
            for dep in dependencies.get(previous, ()):
                total_deps -= 1
                their_deps -= dep.crate_id in their_crates
        for dep in dependencies.get(version.id, ()):
            total_deps += 1
            their_deps += dep.crate_id in their_crates

        if total_deps:
            ratio = their_deps / total_deps
            if not last_ratio * 0.99999 <= ratio <= last_ratio * 1.00001:
                points.append((version.created_at, ratio * 100.0))
                last_ratio = ratio

    return points, their_deps, total_deps


def industry_coefficients(
    path: StrPath,
    cutoff: int = 1_000_000,
    include: Sequence[str] = (),
    strict: bool = False,
) -> List[Tuple[str, float]]:
    """
    Weekday vs weekend download ratio per crate, relative to the ratio of all crates.

    Only the six weeks before the most recent day in the export count, and
    that last day is dropped because it is partial. Tuesday to Thursday count
    as weekdays, Saturday and Sunday as weekend. A crate is reported when it
    has weekend downloads and either reaches ``cutoff`` downloads in the
    window or is named in ``include``.

    Returns:
        ``(crate name, coefficient minus the overall mean)``, highest first.
        A high value means the crate is mostly downloaded on working days.
    """
    names: Dict[CrateId, str] = {}
    version_crates: Dict[VersionId, CrateId] = {}
    stats: List[Tuple[VersionId, date, int]] = []
    (
        Loader(strict=strict)
        .crates(lambda row: names.__setitem__(row.id, row.name))
        .versions(lambda row: version_crates.__setitem__(row.id, row.crate_id))
        .version_downloads(lambda row: stats.append((row.version_id, row.date, row.downloads)))
        .load(path)
    )
    if not stats:
        logger.warning("Export has no version downloads")
        return []

    max_date = max(day for _, day, _ in stats)
    start_date = max_date - timedelta(weeks=6)

    weekday: Dict[CrateId, int] = {}
    weekend: Dict[CrateId, int] = {}
    for version_id, day, count in stats:
        if not start_date <= day < max_date:
            continue
        crate_id = version_crates[version_id]
        if day.weekday() in _WEEKDAYS:
            weekday[crate_id] = weekday.get(crate_id, 0) + count
            weekend.setdefault(crate_id, 0)
        elif day.weekday() in _WEEKEND:
            weekend[crate_id] = weekend.get(crate_id, 0) + count
            weekday.setdefault(crate_id, 0)

    total_weekend = sum(weekend.values())
    if not total_weekend:
        return []
    mean = sum(weekday.values()) / total_weekend

    wanted = set(include)
    coefficients = [
        (names[crate_id], weekday[crate_id] / weekend[crate_id])
        for crate_id in weekend
        if weekend[crate_id] > 0
        and (weekday[crate_id] + weekend[crate_id] >= cutoff or names[crate_id] in wanted)
    ]
    coefficients.sort(key=lambda item: item[1], reverse=True)
    return [(name, coefficient - mean) for name, coefficient in coefficients]
