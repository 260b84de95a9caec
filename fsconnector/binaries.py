"""Binary handles for projected file content.

Two strategies produce handles for native files:

- location-addressed: the handle keys the native path; bytes are streamed
  from disk on demand and the checksum is cached only on the handle.
- content-addressed: the handle keys the SHA-1 of the bytes. Small files
  are digested when the handle is created, large ones on first request.
  Digests are remembered per ``(path, size, mtime_ns)`` so re-resolving an
  unchanged file does not read it again.

``InternalBinary`` is the in-memory counterpart used by the host tree for
content that no longer belongs to any projection.
"""

from __future__ import annotations

import hashlib
import io
import logging
import os
import threading
from collections import OrderedDict
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from .errors import StaleHandle
from .model.types import DEFAULT_LARGE_FILE_THRESHOLD, BinaryStrategyKind

log = logging.getLogger(__name__)

BLOCK_SIZE = 131072
DIGEST_CACHE_MAX = 4096


def iter_file_blocks(handle: BinaryIO, block_size: int = BLOCK_SIZE) -> Iterator[bytes]:
    while True:
        block = handle.read(block_size)
        if not block:
            return
        yield block


def file_digest(path: Path) -> str:
    """Return the SHA-1 hex digest of ``path`` read in fixed-size blocks."""
    digest = hashlib.sha1()
    with open(path, "rb") as handle:
        for block in iter_file_blocks(handle):
            digest.update(block)
    return digest.hexdigest()


class DigestCache:
    """Bounded LRU of content digests keyed by file identity and stat state."""

    def __init__(self, max_entries: int = DIGEST_CACHE_MAX) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[tuple[str, int, int], str] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: tuple[str, int, int]) -> str | None:
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
            return value

    def put(self, key: tuple[str, int, int], digest: str) -> None:
        with self._lock:
            self._entries[key] = digest
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class BinaryHandle:
    """Reference to the bytes of one native file.

    A handle never holds the bytes. Its checksum is computed at most once
    per handle; later calls return the cached hex string.
    """

    external = True

    def __init__(
        self,
        strategy_kind: BinaryStrategyKind,
        path: Path,
        size: int,
        mtime_ns: int,
        checksum: str | None = None,
        digest_cache: DigestCache | None = None,
    ) -> None:
        self.strategy_kind = strategy_kind
        self.path = path
        self.size = size
        self.mtime_ns = mtime_ns
        self._checksum = checksum
        self._digest_cache = digest_cache
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"BinaryHandle({self.strategy_kind.value}, {str(self.path)!r}, size={self.size})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BinaryHandle) or other.strategy_kind != self.strategy_kind:
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash((self.strategy_kind, self.key))

    @property
    def key(self) -> str:
        if self.strategy_kind == BinaryStrategyKind.CONTENT:
            return self.checksum()
        return str(self.path)

    @property
    def checksum_cached(self) -> bool:
        return self._checksum is not None

    def _identity(self) -> tuple[str, int, int]:
        return (str(self.path), self.size, self.mtime_ns)

    def checksum(self) -> str:
        with self._lock:
            if self._checksum is not None:
                return self._checksum
            if self._digest_cache is not None:
                cached = self._digest_cache.get(self._identity())
                if cached is not None:
                    self._checksum = cached
                    return cached
            self._ensure_current()
            try:
                digest = file_digest(self.path)
            except FileNotFoundError as exc:
                raise StaleHandle(f"binary source vanished: {self.path}", path=self.path) from exc
            if self._digest_cache is not None:
                self._digest_cache.put(self._identity(), digest)
            log.debug("digested %s (%d bytes)", self.path, self.size)
            self._checksum = digest
            return digest

    def _ensure_current(self) -> None:
        try:
            st = self.path.stat()
        except FileNotFoundError as exc:
            raise StaleHandle(f"binary source vanished: {self.path}", path=self.path) from exc
        if self.strategy_kind == BinaryStrategyKind.CONTENT and (
            st.st_size != self.size or st.st_mtime_ns != self.mtime_ns
        ):
            raise StaleHandle(f"binary source changed since resolution: {self.path}", path=self.path)

    def open(self) -> BinaryIO:
        """Open a fresh read stream over the native bytes."""
        self._ensure_current()
        try:
            return open(self.path, "rb")
        except FileNotFoundError as exc:
            raise StaleHandle(f"binary source vanished: {self.path}", path=self.path) from exc

    def read_bytes(self) -> bytes:
        with self.open() as stream:
            return stream.read()


class InternalBinary:
    """Bytes held by the host tree itself rather than by a projection."""

    external = False
    strategy_kind = None

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._checksum: str | None = None

    @classmethod
    def from_stream(cls, stream: BinaryIO) -> InternalBinary:
        return cls(b"".join(iter_file_blocks(stream)))

    def __repr__(self) -> str:
        return f"InternalBinary(size={self.size})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InternalBinary):
            return NotImplemented
        return self._data == other._data

    def __hash__(self) -> int:
        return hash(self.checksum())

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def key(self) -> str:
        return self.checksum()

    def checksum(self) -> str:
        if self._checksum is None:
            self._checksum = hashlib.sha1(self._data).hexdigest()
        return self._checksum

    def open(self) -> BinaryIO:
        return io.BytesIO(self._data)

    def read_bytes(self) -> bytes:
        return self._data


class BinaryContentStrategy:
    """Produce handles for native files according to one strategy kind."""

    def __init__(
        self,
        kind: BinaryStrategyKind | str = BinaryStrategyKind.CONTENT,
        large_file_threshold: int = DEFAULT_LARGE_FILE_THRESHOLD,
        digest_cache: DigestCache | None = None,
    ) -> None:
        self.kind = BinaryStrategyKind(kind)
        self.large_file_threshold = max(0, int(large_file_threshold))
        if self.kind == BinaryStrategyKind.CONTENT:
            self.digest_cache: DigestCache | None = digest_cache or DigestCache()
        else:
            self.digest_cache = None

    def handle_for(self, native_file: Path) -> BinaryHandle:
        """Create a handle for ``native_file``; raises ``OSError`` when unreadable."""
        st = os.stat(native_file)
        handle = BinaryHandle(
            self.kind,
            Path(native_file),
            size=int(st.st_size),
            mtime_ns=int(st.st_mtime_ns),
            digest_cache=self.digest_cache,
        )
        if self.kind == BinaryStrategyKind.CONTENT and handle.size < self.large_file_threshold:
            handle.checksum()
        return handle

    def stream_of(self, handle: BinaryHandle | InternalBinary) -> BinaryIO:
        return handle.open()

    def checksum_of(self, handle: BinaryHandle | InternalBinary) -> str:
        return handle.checksum()


__all__ = [
    "BLOCK_SIZE",
    "DIGEST_CACHE_MAX",
    "iter_file_blocks",
    "file_digest",
    "DigestCache",
    "BinaryHandle",
    "InternalBinary",
    "BinaryContentStrategy",
]
