"""Bidirectional mapping between native paths and logical node addresses.

One ``PathMapper`` serves one projection. Relative paths are always
``/``-separated and never start with a slash; the empty string is the
projection root.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath

from ..model.types import Projection, is_within_address, join_address, normalize_address, relative_address
from .filters import PathFilter, is_visible


def projection_id_prefix(projection_name: str) -> str:
    """Return the short stable token that prefixes every node id of a projection."""
    digest = hashlib.blake2b(projection_name.encode("utf-8"), digest_size=4)
    return digest.hexdigest()


class PathMapper:
    """Resolve, filter and address native entries of one projection."""

    def __init__(
        self,
        projection_name: str,
        native_root: Path,
        mount_address: str,
        inclusion: Iterable[str] = (),
        exclusion: Iterable[str] = (),
        is_reserved_name: Callable[[str], bool] | None = None,
    ) -> None:
        self.projection_name = projection_name
        self.native_root = Path(native_root).resolve()
        self.mount_address = normalize_address(mount_address)
        self.inclusion = PathFilter(inclusion)
        self.exclusion = PathFilter(exclusion)
        self._is_reserved_name = is_reserved_name or (lambda _name: False)
        self._id_prefix = projection_id_prefix(projection_name)

    @classmethod
    def for_projection(
        cls,
        projection: Projection,
        is_reserved_name: Callable[[str], bool] | None = None,
    ) -> PathMapper:
        return cls(
            projection.name,
            projection.native_root,
            projection.mount_address,
            inclusion=projection.inclusion_filter,
            exclusion=projection.exclusion_filter,
            is_reserved_name=is_reserved_name,
        )

    # Relative paths ---------------------------------------------------

    @staticmethod
    def normalize_relative(relative_path: str) -> str | None:
        """Canonicalize ``relative_path``; ``None`` when it escapes the root."""
        parts: list[str] = []
        for part in relative_path.replace("\\", "/").split("/"):
            if not part or part == ".":
                continue
            if part == "..":
                return None
            parts.append(part)
        return "/".join(parts)

    def native_path_for(self, relative_path: str) -> Path:
        """Return the native path for ``relative_path`` without any checks."""
        if not relative_path:
            return self.native_root
        return self.native_root.joinpath(*relative_path.split("/"))

    def relative_path_of(self, native_path: Path) -> str | None:
        """Return the relative path of ``native_path`` or ``None`` when outside the root."""
        path = Path(native_path)
        if not path.is_absolute():
            path = self.native_root / path
        try:
            relative = path.relative_to(self.native_root)
        except ValueError:
            try:
                relative = path.resolve().relative_to(self.native_root)
            except (ValueError, OSError):
                return None
        return PurePosixPath(*relative.parts).as_posix() if relative.parts else ""

    # Visibility -------------------------------------------------------

    def is_reserved(self, relative_path: str) -> bool:
        """Return whether any component of ``relative_path`` is a reserved artifact name."""
        return any(self._is_reserved_name(part) for part in relative_path.split("/") if part)

    def is_visible(self, relative_path: str, is_dir: bool) -> bool:
        if not relative_path:
            return True
        if self.is_reserved(relative_path):
            return False
        return is_visible(relative_path, is_dir, self.inclusion, self.exclusion)

    def resolve(self, relative_path: str) -> Path | None:
        """Return the native path for a visible, existing entry, else ``None``."""
        normalized = self.normalize_relative(relative_path)
        if normalized is None:
            return None
        native = self.native_path_for(normalized)
        if not normalized:
            return native if native.is_dir() else None
        try:
            is_dir = native.is_dir()
            exists = is_dir or native.is_file()
        except OSError:
            return None
        if not exists:
            return None
        if not self.is_visible(normalized, is_dir):
            return None
        return native

    # Addresses --------------------------------------------------------

    def address_for(self, relative_path: str) -> str:
        return join_address(self.mount_address, relative_path)

    def to_logical_address(self, native_path: Path) -> str | None:
        relative = self.relative_path_of(native_path)
        if relative is None:
            return None
        return self.address_for(relative)

    def owns_address(self, address: str) -> bool:
        return is_within_address(address, self.mount_address)

    def relative_path_for_address(self, address: str) -> str | None:
        if not self.owns_address(address):
            return None
        return self.normalize_relative(relative_address(address, self.mount_address))

    # Identifiers ------------------------------------------------------

    def node_id(self, relative_path: str) -> str:
        """Return the stable identifier for ``relative_path``.

        The id is derived only from the projection name and the relative
        path, so it survives restarts and can be decoded without an index.
        """
        encoded = base64.urlsafe_b64encode(relative_path.encode("utf-8")).decode("ascii").rstrip("=")
        return f"{self._id_prefix}:{encoded}"

    def owns_id(self, identifier: str) -> bool:
        return identifier.startswith(self._id_prefix + ":")

    def relative_path_for_id(self, identifier: str) -> str | None:
        if not self.owns_id(identifier):
            return None
        encoded = identifier[len(self._id_prefix) + 1:]
        padding = "=" * (-len(encoded) % 4)
        try:
            decoded = base64.urlsafe_b64decode(encoded + padding).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return None
        return self.normalize_relative(decoded)


__all__ = [
    "PathMapper",
    "projection_id_prefix",
]
