"""
Cargo-style version requirements.

``semver.Version`` covers concrete versions; the requirement syntax used by
Cargo manifests (``^1.2``, ``~0.3.1``, ``>=1.0, <2``, ``1.*``) has no Python
counterpart, so it is parsed here into a list of comparators.

Grammar, per comparator::

    [op] major[.minor[.patch[-pre][+build]]]

with ``op`` one of ``= > >= < <= ~ ^`` (no op means ``^``), and ``*``/``x``/``X``
standing in for any missing part. A requirement consisting of a lone ``*``
matches every version and has no comparators.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from semver import Version

from dbdump.core.errors import CodecError


class Op(str, Enum):
    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = "*"


_WILDCARDS = ("*", "x", "X")

_COMPARATOR_RE = re.compile(
    r"""
    (?P<op>>=|<=|>|<|=|~|\^)?
    \ *
    (?P<major>[^.+\-\ ]+)
    (?:\.(?P<minor>[^.+\-\ ]+))?
    (?:\.(?P<patch>[^.+\-\ ]+))?
    (?:-(?P<pre>[^+\ ]*))?
    (?:\+(?P<build>[^\ ]*))?
    """,
    re.VERBOSE,
)

_IDENTIFIER_RE = re.compile(r"[0-9A-Za-z-]+")


class Comparator(BaseModel):
    """One ``op version`` clause of a requirement. Missing parts are ``None``."""

    model_config = ConfigDict(frozen=True)

    op: Op = Field(description="Comparison operator")
    major: int = Field(description="Major version number")
    minor: Optional[int] = Field(default=None, description="Minor version number, if given")
    patch: Optional[int] = Field(default=None, description="Patch version number, if given")
    pre: Optional[str] = Field(default=None, description="Pre-release identifiers, if given")

    def __str__(self) -> str:
        if self.op is Op.WILDCARD:
            if self.minor is None:
                return f"{self.major}.*"
            return f"{self.major}.{self.minor}.*"
        text = f"{self.op.value}{self.major}"
        if self.minor is not None:
            text += f".{self.minor}"
            if self.patch is not None:
                text += f".{self.patch}"
                if self.pre:
                    text += f"-{self.pre}"
        return text

    def matches(self, version: Version) -> bool:
        if self.op is Op.EXACT or self.op is Op.WILDCARD:
            return self._matches_exact(version)
        if self.op is Op.GREATER:
            return self._matches_greater(version)
        if self.op is Op.GREATER_EQ:
            return self._matches_exact(version) or self._matches_greater(version)
        if self.op is Op.LESS:
            return self._matches_less(version)
        if self.op is Op.LESS_EQ:
            return self._matches_exact(version) or self._matches_less(version)
        if self.op is Op.TILDE:
            return self._matches_tilde(version)
        return self._matches_caret(version)

    def _pre_cmp(self, version: Version) -> int:
        """Compare the pre-release part of ``version`` against this comparator's."""
        ours = Version(0, 0, 0, prerelease=self.pre or None)
        theirs = Version(0, 0, 0, prerelease=version.prerelease or None)
        return theirs.compare(ours)

    def _matches_exact(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is not None and version.minor != self.minor:
            return False
        if self.patch is not None and version.patch != self.patch:
            return False
        if self.op is Op.WILDCARD:
            return True
        return self._pre_cmp(version) == 0

    def _matches_greater(self, version: Version) -> bool:
        if version.major != self.major:
            return version.major > self.major
        if self.minor is None:
            return False
        if version.minor != self.minor:
            return version.minor > self.minor
        if self.patch is None:
            return False
        if version.patch != self.patch:
            return version.patch > self.patch
        return self._pre_cmp(version) > 0

    def _matches_less(self, version: Version) -> bool:
        if version.major != self.major:
            return version.major < self.major
        if self.minor is None:
            return False
        if version.minor != self.minor:
            return version.minor < self.minor
        if self.patch is None:
            return False
        if version.patch != self.patch:
            return version.patch < self.patch
        return self._pre_cmp(version) < 0

    def _matches_tilde(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is not None and version.minor != self.minor:
            return False
        if self.patch is not None and version.patch != self.patch:
            return version.patch > self.patch
        return self._pre_cmp(version) >= 0

    def _matches_caret(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            if self.major > 0:
                return version.minor >= self.minor
            return version.minor == self.minor
        if self.major > 0:
            if version.minor != self.minor:
                return version.minor > self.minor
            if version.patch != self.patch:
                return version.patch > self.patch
        elif self.minor > 0:
            if version.minor != self.minor:
                return False
            if version.patch != self.patch:
                return version.patch > self.patch
        elif version.minor != self.minor or version.patch != self.patch:
            return False
        return self._pre_cmp(version) >= 0


class VersionReq(BaseModel):
    """A comma-separated list of comparators that must all match."""

    model_config = ConfigDict(frozen=True)

    comparators: Tuple[Comparator, ...] = Field(default=(), description="Comparators, all of which must match")

    def __str__(self) -> str:
        if not self.comparators:
            return "*"
        return ", ".join(str(c) for c in self.comparators)

    @classmethod
    def parse(cls, text: str) -> VersionReq:
        """
        Parse a Cargo requirement string.

        Raises:
            CodecError: if the text is not a valid requirement
        """
        stripped = text.strip(" ")
        if stripped in _WILDCARDS:
            return cls()
        comparators = []
        for part in stripped.split(","):
            comparators.append(_parse_comparator(part.strip(" "), text))
        return cls(comparators=tuple(comparators))

    def matches(self, version: Version) -> bool:
        """
        Whether ``version`` satisfies every comparator.

        A pre-release version only matches if some comparator names the same
        ``major.minor.patch`` with a pre-release of its own.
        """
        if not all(c.matches(version) for c in self.comparators):
            return False
        if not version.prerelease:
            return True
        for c in self.comparators:
            if (
                c.pre
                and c.major == version.major
                and c.minor == version.minor
                and c.patch == version.patch
            ):
                return True
        return False


def _parse_number(part: str, position: str, text: str) -> int:
    if not (part.isascii() and part.isdigit()):
        raise CodecError(f"unexpected character in {position} version number: {text}")
    if len(part) > 1 and part[0] == "0":
        raise CodecError(f"invalid leading zero in {position} version number: {text}")
    value = int(part)
    if value >= 2 ** 64:
        raise CodecError(f"value of {position} version number exceeds u64::MAX: {text}")
    return value


def _check_identifiers(identifiers: str, what: str, text: str, allow_leading_zero: bool) -> None:
    for identifier in identifiers.split("."):
        if not identifier:
            raise CodecError(f"empty identifier segment in {what}: {text}")
        if not _IDENTIFIER_RE.fullmatch(identifier):
            raise CodecError(f"unexpected character in {what} identifier: {text}")
        if (
            not allow_leading_zero
            and identifier.isdigit()
            and len(identifier) > 1
            and identifier[0] == "0"
        ):
            raise CodecError(f"invalid leading zero in {what} identifier: {text}")


def _parse_comparator(part: str, text: str) -> Comparator:
    if not part:
        raise CodecError(f"unexpected end of input while parsing major version number: {text!r}")
    match = _COMPARATOR_RE.fullmatch(part)
    if match is None:
        raise CodecError(f"unexpected character in version requirement: {text}")

    op = Op(match.group("op")) if match.group("op") else None
    raw_major, raw_minor, raw_patch = match.group("major", "minor", "patch")
    pre, build = match.group("pre", "build")

    if raw_major in _WILDCARDS:
        raise CodecError(f"wildcard req must be the only comparator: {text}")
    major = _parse_number(raw_major, "major", text)

    wildcard = False
    minor: Optional[int] = None
    patch: Optional[int] = None
    if raw_minor is not None:
        if raw_minor in _WILDCARDS:
            wildcard = True
        else:
            minor = _parse_number(raw_minor, "minor", text)
    if raw_patch is not None:
        if raw_patch in _WILDCARDS:
            wildcard = True
        elif wildcard:
            raise CodecError(f"unexpected character after wildcard in version req: {text}")
        else:
            patch = _parse_number(raw_patch, "patch", text)

    if pre is not None or build is not None:
        if patch is None:
            position = "minor" if raw_minor is not None else "major"
            raise CodecError(f"unexpected character after {position} version number: {text}")
        if pre is not None:
            _check_identifiers(pre, "pre-release", text, allow_leading_zero=False)
        if build is not None:
            _check_identifiers(build, "build metadata", text, allow_leading_zero=True)

    if wildcard and op in (None, Op.EXACT):
        op = Op.WILDCARD
    elif op is None:
        op = Op.CARET
    return Comparator(op=op, major=major, minor=minor, patch=patch, pre=pre or None)
