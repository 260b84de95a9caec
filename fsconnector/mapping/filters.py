"""Glob-based inclusion/exclusion filters over projection-relative paths.

Patterns use ``/`` separators regardless of platform. ``*`` and ``?`` stay
within one path component, ``**`` spans components, and a trailing ``/**``
requires at least one component below its prefix. Patterns without a ``/``
are matched against the leaf name at any depth.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass


def _translate(pattern: str) -> str:
    """Translate one glob pattern into an anchored regular-expression body."""
    out: list[str] = []
    idx = 0
    size = len(pattern)
    while idx < size:
        if pattern.startswith("**/", idx):
            out.append("(?:[^/]+/)*")
            idx += 3
        elif pattern.startswith("/**", idx) and idx + 3 == size:
            out.append("/.+")
            idx += 3
        elif pattern.startswith("**", idx):
            out.append(".*")
            idx += 2
        elif pattern[idx] == "*":
            out.append("[^/]*")
            idx += 1
        elif pattern[idx] == "?":
            out.append("[^/]")
            idx += 1
        else:
            out.append(re.escape(pattern[idx]))
            idx += 1
    return "".join(out)


@dataclass(frozen=True)
class GlobPattern:
    """Compiled glob with helpers for whole-path and prefix matching.

    ``segments`` holds one compiled regex per pattern component, or ``None``
    for a ``**`` component, so directories can be checked as possible
    ancestors of a match without listing their contents.
    """

    text: str
    regex: re.Pattern[str]
    anchored: bool
    segments: tuple[re.Pattern[str] | None, ...]

    @classmethod
    def compile(cls, text: str) -> GlobPattern:
        cleaned = text.strip().strip("/")
        if not cleaned:
            raise ValueError(f"empty filter pattern: {text!r}")
        anchored = "/" in cleaned
        segments = tuple(
            None if part == "**" else re.compile(_translate(part) + r"\Z")
            for part in cleaned.split("/")
        )
        return cls(
            text=cleaned,
            regex=re.compile(_translate(cleaned) + r"\Z"),
            anchored=anchored,
            segments=segments,
        )

    def matches(self, relative_path: str) -> bool:
        if not relative_path:
            return False
        if self.anchored:
            return self.regex.match(relative_path) is not None
        return self.regex.match(relative_path.rsplit("/", 1)[-1]) is not None

    def may_contain(self, relative_dir: str) -> bool:
        """Return whether something below ``relative_dir`` could match."""
        if not self.anchored or not relative_dir:
            return True
        for idx, part in enumerate(relative_dir.split("/")):
            if idx >= len(self.segments):
                return False
            segment = self.segments[idx]
            if segment is None:
                return True
            if segment.match(part) is None:
                return False
        return True


class PathFilter:
    """Set of glob patterns treated as one filter."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self.patterns: tuple[GlobPattern, ...] = tuple(GlobPattern.compile(p) for p in patterns)

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def __repr__(self) -> str:
        return f"PathFilter({[p.text for p in self.patterns]!r})"

    def matches(self, relative_path: str) -> bool:
        return any(pattern.matches(relative_path) for pattern in self.patterns)

    def matches_self_or_ancestor(self, relative_path: str) -> bool:
        """Return whether ``relative_path`` or any of its ancestors matches."""
        parts = relative_path.split("/") if relative_path else []
        for end in range(1, len(parts) + 1):
            if self.matches("/".join(parts[:end])):
                return True
        return False

    def may_contain(self, relative_dir: str) -> bool:
        return any(pattern.may_contain(relative_dir) for pattern in self.patterns)


def is_visible(
    relative_path: str,
    is_dir: bool,
    inclusion: PathFilter,
    exclusion: PathFilter,
) -> bool:
    """Apply inclusion then exclusion to one relative path.

    The empty path is the projection root and is always visible.
    """
    if not relative_path:
        return True
    if inclusion:
        included = inclusion.matches_self_or_ancestor(relative_path) or (
            is_dir and inclusion.may_contain(relative_path)
        )
        if not included:
            return False
    if exclusion and exclusion.matches_self_or_ancestor(relative_path):
        return False
    return True


__all__ = [
    "GlobPattern",
    "PathFilter",
    "is_visible",
]
