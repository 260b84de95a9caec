"""Write-temp-then-rename helpers for sidecar and config files."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

TEMP_SUFFIX = ".tmp"


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` so readers see either old or new content.

    The temporary file lives next to ``path`` (same filesystem) and is named
    ``.<name>.<random>.tmp``.
    """
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=TEMP_SUFFIX)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def is_temp_name_for(name: str, marker: str) -> bool:
    """Return whether ``name`` is a temporary file written for a ``marker``-named target."""
    return name.startswith(".") and name.endswith(TEMP_SUFFIX) and marker in name


__all__ = [
    "TEMP_SUFFIX",
    "atomic_write_bytes",
    "is_temp_name_for",
]
