"""
Tolerant version comparison for site and library versions.

Version tokens seen on deployed sites are not always clean semantic
versions: release candidates (``0.6.0-rc1``), git-describe output
(``0.5.3-4-g1a2b3c4``), a leading ``v`` or a missing patch component all
occur.  Tokens are parsed with ``packaging``; only the numeric
``major.minor.patch`` release takes part in ordering, and everything after
it is a qualifier.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from packaging.version import InvalidVersion, Version

__all__ = [
    "NAMING_THRESHOLD",
    "Relation",
    "SiteVersion",
    "compare",
    "equivalent",
    "less_recent_than",
    "more_recent_than",
    "parse_version",
]

# Sites recorded before this version still use the legacy object names.
NAMING_THRESHOLD = "0.5.0"


class Relation(enum.Enum):
    """How version *a* relates to version *b*."""

    LESS = "less"
    MORE = "more"
    EQUIVALENT = "equivalent"
    EQUAL = "equal"


@dataclass(frozen=True)
class SiteVersion:
    raw: str
    major: int = 0
    minor: int = 0
    patch: int = 0
    qualifier: str = ""

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def undefined(self) -> bool:
        return self.core == (0, 0, 0)


def _qualifier(text: str, version: Version) -> str:
    """The part of *text* after the release, as written on the site."""
    base = version.base_version
    bare = text[1:] if text[:1] in ("v", "V") else text
    if bare.startswith(base):
        return bare[len(base):]
    # Non-canonical spelling such as 0.06.0: use the normalised suffix.
    return str(version)[len(base):]


def _from_version(raw: str, text: str, version: Version) -> SiteVersion:
    major, minor, patch = (tuple(version.release) + (0, 0, 0))[:3]
    return SiteVersion(
        raw=raw,
        major=major,
        minor=minor,
        patch=patch,
        qualifier=_qualifier(text, version),
    )


def parse_version(token: str) -> SiteVersion:
    """Parse *token*; an unparseable token yields an undefined version."""
    raw = (token or "").strip()
    try:
        return _from_version(raw, raw, Version(raw))
    except InvalidVersion:
        pass
    # git-describe output (0.5.3-4-g1a2b3c4) is not a PEP 440 version, but
    # its part before the first dash is.
    head, sep, _ = raw.partition("-")
    if sep:
        try:
            return _from_version(raw, raw, Version(head))
        except InvalidVersion:
            pass
    return SiteVersion(raw=raw)


def compare(a: str, b: str) -> Relation:
    """Compare two version tokens.

    An undefined version (unparseable, or ``0.0.0``) is never ordered
    relative to anything else.
    """
    va, vb = parse_version(a), parse_version(b)
    if va.raw == vb.raw:
        return Relation.EQUAL
    if va.undefined or vb.undefined or va.core == vb.core:
        return Relation.EQUIVALENT
    return Relation.LESS if va.core < vb.core else Relation.MORE


def less_recent_than(a: str, b: str) -> bool:
    return compare(a, b) is Relation.LESS


def more_recent_than(a: str, b: str) -> bool:
    return compare(a, b) is Relation.MORE


def equivalent(a: str, b: str) -> bool:
    """Same numeric version, different token (e.g. ``0.6.0-rc1`` / ``0.6.0``)."""
    return compare(a, b) is Relation.EQUIVALENT
