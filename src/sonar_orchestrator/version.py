"""SonarQube version strings: parsing and ordering.

Handles the formats published by SonarSource::

    9.9
    9.9.0.65466
    7.3-SNAPSHOT
    10.0.0-M1.1234
"""
from __future__ import annotations

import re
from functools import total_ordering

_VERSION_RE = re.compile(
    r"(?P<major>\d+)"
    r"(\.(?P<minor>\d+))?"
    r"(\.(?P<patch>\d+))?"
    r"(-(?P<qualifier>[A-Za-z0-9_-]+))?"
    r"(\.(?P<build>\d+))?"
)


@total_ordering
class Version:
    """A parsed version. The original string is kept for display."""

    def __init__(self, text: str):
        m = _VERSION_RE.search(text)
        if m is None:
            raise ValueError(f"Version string cannot be parsed: {text!r}")
        self._text = text
        self.major = int(m.group("major"))
        self.minor = int(m.group("minor") or 0)
        self.patch = int(m.group("patch") or 0)
        self.build_number = int(m.group("build") or 0)
        self.qualifier: str | None = m.group("qualifier")

    def _release_key(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return (
            self._release_key() == other._release_key()
            and self.build_number == other.build_number
            and self.qualifier == other.qualifier
        )

    def __hash__(self) -> int:
        return hash((self._release_key(), self.build_number, self.qualifier))

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        if self._release_key() != other._release_key():
            return self._release_key() < other._release_key()
        if self.qualifier == other.qualifier:
            return self.build_number < other.build_number
        # A release sorts after any qualified build of the same number.
        if self.qualifier is None:
            return False
        if other.qualifier is None:
            return True
        return self.qualifier.lower() < other.qualifier.lower()

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"Version({self._text!r})"

    def is_greater_than_or_equals(self, major: int, minor: int) -> bool:
        """Compare only major and minor, ignoring patch, qualifier and build."""
        return (self.major, self.minor) >= (major, minor)


def parse_version(text: str) -> Version | None:
    """Return a ``Version`` for *text*, or ``None`` if it does not parse."""
    try:
        return Version(text)
    except ValueError:
        return None
