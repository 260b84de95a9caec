"""Deterministic, paged enumeration of projected directory children."""

from __future__ import annotations

import base64
import binascii
import json
import os
from collections.abc import Iterable
from dataclasses import dataclass

from .mapping.path_mapper import PathMapper


def child_sort_key(name: str) -> tuple[str, str]:
    """Sort case-insensitively, breaking ties by the exact name."""
    return (name.casefold(), name)


def encode_page_token(after: str) -> str:
    payload = json.dumps({"after": after}, ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_page_token(token: str) -> str:
    """Return the last child name served before ``token``; ``ValueError`` when malformed."""
    padding = "=" * (-len(token) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(token + padding).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"invalid page token: {token!r}") from exc
    after = payload.get("after") if isinstance(payload, dict) else None
    if not isinstance(after, str):
        raise ValueError(f"invalid page token: {token!r}")
    return after


@dataclass(frozen=True)
class ChildPage:
    names: list[str]
    next_token: str | None


class DirectoryPager:
    """List visible children of a projected directory.

    Sidecars, temporary files and filtered-out entries never appear. Tokens
    carry the last name served (keyset paging), so children added or removed
    before the cursor between calls neither repeat nor shift later pages.
    """

    def __init__(self, mapper: PathMapper, page_size: int | None = None) -> None:
        self.mapper = mapper
        self.page_size = page_size if page_size and page_size > 0 else None

    def children(self, relative_dir: str) -> list[str]:
        """Return all visible child names of ``relative_dir`` in sort order.

        Raises ``FileNotFoundError``/``NotADirectoryError`` when the directory
        does not resolve, and lets other ``OSError`` s propagate.
        """
        directory = self.mapper.resolve(relative_dir)
        if directory is None:
            raise FileNotFoundError(f"no visible directory at {relative_dir!r}")
        if not directory.is_dir():
            raise NotADirectoryError(f"not a directory: {relative_dir!r}")

        prefix = f"{relative_dir}/" if relative_dir else ""
        names: list[str] = []
        with os.scandir(directory) as entries:
            for entry in entries:
                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                except OSError:
                    is_dir = False
                if not self.mapper.is_visible(prefix + entry.name, is_dir):
                    continue
                names.append(entry.name)
        names.sort(key=child_sort_key)
        return names

    def page(
        self,
        relative_dir: str,
        page_token: str | None = None,
        page_size: int | None = None,
    ) -> ChildPage:
        """Return one page of children plus the token for the next one."""
        size = page_size if page_size and page_size > 0 else self.page_size
        return page_names(self.children(relative_dir), page_token, size)


def page_names(
    names: Iterable[str],
    page_token: str | None = None,
    page_size: int | None = None,
) -> ChildPage:
    """Cut the page after ``page_token`` out of ``names``; 0/None size serves everything."""
    ordered = sorted(names, key=child_sort_key)
    if page_token:
        cursor = child_sort_key(decode_page_token(page_token))
        ordered = [name for name in ordered if child_sort_key(name) > cursor]
    if not page_size or page_size <= 0 or len(ordered) <= page_size:
        return ChildPage(names=ordered, next_token=None)
    served = ordered[:page_size]
    return ChildPage(names=served, next_token=encode_page_token(served[-1]))


__all__ = [
    "ChildPage",
    "DirectoryPager",
    "child_sort_key",
    "decode_page_token",
    "encode_page_token",
    "page_names",
]
