"""
Field codecs for the crates.io database export.

Each codec takes the raw text of one CSV cell and returns a typed value, or
raises ``CodecError``. The export's encodings are Postgres ``COPY`` output,
not standard formats:

- timestamps have no ``T`` separator and may carry a ``+00`` suffix
- booleans are ``t``/``f``
- arrays are ``{a,b,c}`` with no quoting
- a handful of historical version strings are not valid semver

These functions do no I/O and keep no state.
"""
from __future__ import annotations

import json
from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import Callable, Dict, List, Optional, Type, TypeVar

from semver import Version

from dbdump.core.errors import CodecError
from dbdump.domain.semver_req import Op, VersionReq

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

# Historical data-entry mistakes that crates.io will serve forever.
VERSION_COMPAT: Dict[str, str] = {
    "0.0.1-001": "0.0.1-1",
    "0.3.0-alpha.01": "0.3.0-alpha.1",
    "0.4.0-alpha.00": "0.4.0-alpha.0",
    "0.4.0-alpha.01": "0.4.0-alpha.1",
}

VERSION_REQ_COMPAT: Dict[str, str] = {
    "^0-.11.0": "^0.11.0",
    "^0.1-alpha.0": "^0.1.0-alpha.0",
    "^0.51-oldsyn": "^0.51.1-oldsyn",
    "~2.0-2.2": ">=2.0, <=2.2",
}


class DependencyKind(IntEnum):
    NORMAL = 0
    BUILD = 1
    DEV = 2


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def _digits(text: str) -> Optional[int]:
    if text and text.isascii() and text.isdigit():
        return int(text)
    return None


def parse_unsigned(text: str, bits: int = 64) -> int:
    """Decode an unsigned integer that must fit in ``bits`` bits."""
    value = _digits(text)
    if value is None:
        raise CodecError(f"invalid digit found in string, expected u{bits}: {text!r}")
    if value >= 1 << bits:
        raise CodecError(f"number too large to fit in u{bits}: {text!r}")
    return value


def parse_u16(text: str) -> int:
    return parse_unsigned(text, 16)


def parse_u32(text: str) -> int:
    return parse_unsigned(text, 32)


def parse_u64(text: str) -> int:
    return parse_unsigned(text, 64)


def parse_i32(text: str) -> int:
    """Decode a signed 32-bit integer, as used for GitHub user ids."""
    negative = text.startswith("-")
    value = _digits(text[1:] if negative else text)
    if value is None:
        raise CodecError(f"invalid digit found in string, expected i32: {text!r}")
    if negative:
        value = -value
    if not -(1 << 31) <= value < 1 << 31:
        raise CodecError(f"number out of range for i32: {text!r}")
    return value


def parse_bool(text: str) -> bool:
    if text == "t":
        return True
    if text == "f":
        return False
    raise CodecError(f"invalid value: {text!r}, expected 't' or 'f'")


def parse_has_lib(text: str) -> bool:
    """Boolean column added late: an empty cell means ``False``."""
    if text == "":
        return False
    return parse_bool(text)


def empty_as_none(text: str) -> Optional[str]:
    return text if text else None


def optional(codec: Callable[[str], T]) -> Callable[[str], Optional[T]]:
    """Wrap ``codec`` so that an empty cell decodes to ``None``."""

    def decode(text: str) -> Optional[T]:
        if text == "":
            return None
        return codec(text)

    decode.__name__ = f"optional_{codec.__name__}"
    return decode


def parse_enum(text: str, enum_type: Type[E], expecting: str) -> E:
    """Decode a small integer and map it onto a member of ``enum_type``."""
    value = _digits(text)
    if value is not None:
        for member in enum_type:
            if member.value == value:
                return member
    raise CodecError(f"invalid value: integer {text!r}, expected {expecting}")


def parse_dependency_kind(text: str) -> DependencyKind:
    return parse_enum(text, DependencyKind, "dependency kind (0, 1, 2)")


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------

_DATE_EXPECTING = "date in format 'YYYY-MM-DD'"
_DATETIME_EXPECTING = "datetime in format 'YYYY-MM-DD HH:MM:SS.SSSSSS'"


def _date_parts(text: str, expecting: str) -> tuple:
    if len(text) < 10 or text[4] != "-" or text[7] != "-":
        raise CodecError(f"invalid value: {text!r}, expected {expecting}")
    year, month, day = _digits(text[0:4]), _digits(text[5:7]), _digits(text[8:10])
    if year is None or month is None or day is None:
        raise CodecError(f"invalid value: {text!r}, expected {expecting}")
    return year, month, day


def parse_date(text: str) -> date:
    """Decode ``YYYY-MM-DD``."""
    if len(text) != 10:
        raise CodecError(f"invalid value: {text!r}, expected {_DATE_EXPECTING}")
    year, month, day = _date_parts(text, _DATE_EXPECTING)
    try:
        return date(year, month, day)
    except ValueError as e:
        raise CodecError(f"invalid value: {text!r}, expected {_DATE_EXPECTING}") from e


def parse_timestamp(text: str) -> datetime:
    """
    Decode ``YYYY-MM-DD HH:MM:SS[.ffffff][+00]`` as a UTC datetime.

    Fractional seconds of 1 to 6 digits are right-padded, so ``.99`` is
    990000 microseconds.
    """
    original = text
    if text.endswith("+00"):
        text = text[:-3]

    def invalid() -> CodecError:
        return CodecError(f"invalid value: {original!r}, expected {_DATETIME_EXPECTING}")

    if len(text) < 19 or text[10] != " " or text[13] != ":" or text[16] != ":":
        raise invalid()
    year, month, day = _date_parts(text, _DATETIME_EXPECTING)
    hour, minute, second = _digits(text[11:13]), _digits(text[14:16]), _digits(text[17:19])
    if hour is None or minute is None or second is None:
        raise invalid()

    microsecond = 0
    if len(text) > 19:
        if text[19] != "." or len(text) > 26:
            raise invalid()
        fraction = _digits(text[20:])
        if fraction is None:
            raise invalid()
        microsecond = fraction * 10 ** (26 - len(text))

    try:
        return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=timezone.utc)
    except ValueError as e:
        raise invalid() from e


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def parse_set(text: str, expecting: str = "set") -> List[str]:
    """Decode a Postgres array literal such as ``{a,b,c}``."""
    if len(text) >= 2 and text[0] == "{" and text[-1] == "}":
        inner = text[1:-1]
        if not inner:
            return []
        return inner.split(",")
    raise CodecError(f"invalid value: {text!r}, expected {expecting}")


def parse_optional_set(text: str, expecting: str = "set") -> List[str]:
    """Like ``parse_set`` but an empty cell is an empty set."""
    if text == "":
        return []
    return parse_set(text, expecting)


def parse_features_set(text: str) -> List[str]:
    return parse_set(text, "features set")


def parse_bin_names(text: str) -> List[str]:
    return parse_optional_set(text, "binary names set")


def parse_categories(text: str) -> List[str]:
    return parse_set(text, "categories set")


def parse_keywords(text: str) -> List[str]:
    return parse_set(text, "keywords set")


def parse_features_map(text: str) -> Dict[str, List[str]]:
    """Decode the JSON object of feature name to enabled features."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CodecError(f"invalid features map: {e}") from e
    if not isinstance(data, dict):
        raise CodecError(f"invalid type: expected features map, found {type(data).__name__}")
    features: Dict[str, List[str]] = {}
    for name in sorted(data):
        values = data[name]
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise CodecError(f"invalid features map: {name!r} must map to a list of strings")
        features[name] = values
    return features


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


def parse_version(text: str) -> Version:
    """Decode a semver version, accepting the known historical typos."""
    try:
        return Version.parse(text)
    except ValueError as e:
        corrected = VERSION_COMPAT.get(text)
        if corrected is None:
            raise CodecError(f"{e}: {text}") from e
        return Version.parse(corrected)


def parse_version_req(text: str) -> VersionReq:
    """Decode a dependency requirement, accepting the known historical typos."""
    try:
        return VersionReq.parse(text)
    except CodecError:
        corrected = VERSION_REQ_COMPAT.get(text)
        if corrected is None:
            raise
        return VersionReq.parse(corrected)


def parse_rust_version(text: str) -> Optional[Version]:
    """
    Decode the minimum supported compiler version.

    Only a single caret comparator (which is what a bare ``1.56`` parses as)
    yields a version; ranges, wildcards and other operators yield ``None``.
    """
    if text == "":
        return None
    req = VersionReq.parse(text)
    if len(req.comparators) != 1:
        return None
    comparator = req.comparators[0]
    if comparator.op is not Op.CARET:
        return None
    return Version(
        comparator.major,
        comparator.minor or 0,
        comparator.patch or 0,
        prerelease=comparator.pre,
    )


def parse_checksum(text: str) -> Optional[bytes]:
    """Decode a SHA-256 digest written as 64 hex characters; empty means absent."""
    if text == "":
        return None
    if len(text) != 64 or not all(c in _HEX_DIGITS for c in text):
        raise CodecError(f"invalid value: {text!r}, expected checksum as 64-character hex string")
    return bytes.fromhex(text)
