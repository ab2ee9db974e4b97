"""
Id lookups over a fully loaded export.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Sequence

from dbdump.domain.ids import (
    CategoryId,
    CrateId,
    DeletedCrateId,
    KeywordId,
    RowId,
    TeamId,
    UserId,
    VersionId,
)
from dbdump.domain.models import (
    CategoryRow,
    CrateRow,
    DbDump,
    DeletedCrateRow,
    KeyedRecord,
    KeywordRow,
    TeamRow,
    UserRow,
    VersionRow,
)

logger = logging.getLogger(__name__)

# id type -> (DbDump attribute, label used in error messages)
_TABLES_BY_ID_TYPE = {
    CategoryId: ("categories", "category"),
    CrateId: ("crates", "crate"),
    DeletedCrateId: ("deleted_crates", "deleted crate"),
    KeywordId: ("keywords", "keyword"),
    TeamId: ("teams", "team"),
    UserId: ("users", "user"),
    VersionId: ("versions", "version"),
}


class DumpIndex:
    """
    Lazily built id -> row lookups over a ``DbDump``.

    Each table's map (id -> position in the dump's row list) is built on the
    first lookup into that table and reused afterwards. The index reads the
    dump's lists in place and never copies rows, so the lists must not be
    modified once the index is in use.

    A missing id raises ``KeyError``: every id in an export refers to a row in
    the same export, so a miss means the data is inconsistent.
    """

    def __init__(self, dump: DbDump):
        self.dump = dump
        self._positions: Dict[str, Dict[RowId, int]] = {}
        self._lock = threading.Lock()

    def _rows(self, attribute: str) -> Sequence[KeyedRecord]:
        return getattr(self.dump, attribute)

    def _build_positions(self, rows: Sequence[KeyedRecord]) -> Dict[RowId, int]:
        return {row.id: position for position, row in enumerate(rows)}

    def _positions_for(self, attribute: str) -> Dict[RowId, int]:
        positions = self._positions.get(attribute)
        if positions is None:
            with self._lock:
                positions = self._positions.get(attribute)
                if positions is None:
                    rows = self._rows(attribute)
                    positions = self._build_positions(rows)
                    self._positions[attribute] = positions
                    logger.debug(f"Indexed {len(positions)} rows of {attribute}")
        return positions

    def lookup(self, row_id: RowId) -> KeyedRecord:
        """Find the row for any supported id type."""
        try:
            attribute, label = _TABLES_BY_ID_TYPE[type(row_id)]
        except KeyError:
            raise TypeError(f"no index for {type(row_id).__name__}") from None
        position = self._positions_for(attribute).get(row_id)
        if position is None:
            raise KeyError(f"no such {label} id={row_id.value}")
        return self._rows(attribute)[position]

    def _typed(self, row_id: RowId, id_type: type) -> KeyedRecord:
        if type(row_id) is not id_type:
            raise TypeError(f"expected {id_type.__name__}, got {type(row_id).__name__}")
        return self.lookup(row_id)

    def category(self, category_id: CategoryId) -> CategoryRow:
        return self._typed(category_id, CategoryId)

    def crate(self, crate_id: CrateId) -> CrateRow:
        return self._typed(crate_id, CrateId)

    def deleted_crate(self, deleted_crate_id: DeletedCrateId) -> DeletedCrateRow:
        return self._typed(deleted_crate_id, DeletedCrateId)

    def keyword(self, keyword_id: KeywordId) -> KeywordRow:
        return self._typed(keyword_id, KeywordId)

    def team(self, team_id: TeamId) -> TeamRow:
        return self._typed(team_id, TeamId)

    def user(self, user_id: UserId) -> UserRow:
        return self._typed(user_id, UserId)

    def version(self, version_id: VersionId) -> VersionRow:
        return self._typed(version_id, VersionId)

    @property
    def built_tables(self) -> List[str]:
        """Tables whose lookup map has been built so far."""
        return sorted(self._positions)
