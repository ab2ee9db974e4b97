"""
Turn one CSV row of a table into its typed record.
"""
from __future__ import annotations

import logging
from typing import Dict, List

from pydantic import ValidationError

from dbdump.core.errors import CodecError, DumpError, FieldDecodeError, SchemaMismatchError
from dbdump.domain.models import Record
from dbdump.domain.tables import TableSpec

logger = logging.getLogger(__name__)


class RecordDecoder:
    """
    Decodes the rows of one table, given that table's header.

    The header is checked once, up front: a column the record model does not
    know, a duplicated column, or a missing required column is a
    ``SchemaMismatchError`` before any row is read. Columns whose field has a
    default may be absent.
    """

    def __init__(self, spec: TableSpec, headers: List[str]):
        self.spec = spec
        self.table = spec.table.value
        self.headers = list(headers)

        fields = spec.model.model_fields
        known = set(fields) | spec.ignored_columns | spec.consumed_columns

        seen = set()
        for column in self.headers:
            if column not in known:
                expected = ", ".join(sorted(set(fields) | spec.consumed_columns))
                raise SchemaMismatchError(
                    f"unknown field `{column}`, expected one of {expected}",
                    table=self.table,
                    column=column,
                )
            if column in seen:
                raise SchemaMismatchError(f"duplicate field `{column}`", table=self.table, column=column)
            seen.add(column)

        required = [name for name, info in fields.items() if info.is_required()]
        for column in required + sorted(spec.consumed_columns):
            if column not in seen:
                raise SchemaMismatchError(f"missing field `{column}`", table=self.table, column=column)

        self._positions = [
            (i, column) for i, column in enumerate(self.headers) if column not in spec.ignored_columns
        ]
        logger.debug(f"Decoding {self.table}.csv with columns: {', '.join(self.headers)}")

    def decode(self, values: List[str]) -> Record:
        """
        Decode one row whose values line up with the header.

        Raises:
            FieldDecodeError: if a cell is rejected by its codec
        """
        row: Dict[str, str] = {column: values[i] for i, column in self._positions}
        try:
            return self.spec.model.model_validate(row)
        except ValidationError as e:
            raise self._translate(e) from e

    def _translate(self, error: ValidationError) -> DumpError:
        details = error.errors()[0]
        loc = details.get("loc") or ()
        column = str(loc[0]) if loc else None

        cause = (details.get("ctx") or {}).get("error")
        if isinstance(cause, CodecError) and cause.column:
            column = cause.column
        message = str(cause) if isinstance(cause, Exception) else details.get("msg", str(error))

        if details.get("type") in ("missing", "extra_forbidden"):
            return SchemaMismatchError(message, table=self.table, column=column)
        return FieldDecodeError(message, table=self.table, column=column)
