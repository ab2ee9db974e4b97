"""
Primary-key identifier types.

Each table with a primary key gets its own identifier type wrapping a u32, so
a ``CrateId`` never compares equal to a ``VersionId`` with the same number.
The types plug into pydantic directly: a field annotated ``CrateId`` accepts a
``CrateId``, a plain ``int`` or the decimal text of a CSV cell.
"""
from __future__ import annotations

from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

from dbdump.core.errors import CodecError
from dbdump.domain.codecs import parse_u32


class RowId:
    """Base class for the identifier types; not used on its own."""

    __slots__ = ("value",)

    def __init__(self, value: int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{type(self).__name__} requires an int, got {type(value).__name__}")
        if not 0 <= value < 1 << 32:
            raise ValueError(f"{type(self).__name__} out of range: {value}")
        object.__setattr__(self, "value", value)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value})"

    def __str__(self) -> str:
        return str(self.value)

    def __int__(self) -> int:
        return self.value

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.value))

    def __lt__(self, other: RowId) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other: RowId) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other: RowId) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other: RowId) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.value >= other.value

    def __reduce__(self):
        return (type(self), (self.value,))

    @classmethod
    def _coerce(cls, value: Any) -> RowId:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(parse_u32(value))
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        raise CodecError(f"expected {cls.__name__}, got {type(value).__name__}")

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._coerce,
            serialization=core_schema.plain_serializer_function_ser_schema(int),
        )


class CategoryId(RowId):
    __slots__ = ()


class CrateId(RowId):
    __slots__ = ()


class DeletedCrateId(RowId):
    __slots__ = ()


class DependencyId(RowId):
    __slots__ = ()


class KeywordId(RowId):
    __slots__ = ()


class TeamId(RowId):
    __slots__ = ()


class UserId(RowId):
    __slots__ = ()


class VersionId(RowId):
    __slots__ = ()
