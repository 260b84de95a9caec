"""Side-store for node properties that plain file bytes cannot carry."""

from __future__ import annotations

from .atomic import atomic_write_bytes
from .codecs import dump_json, dump_legacy, load_json, load_legacy, validate_properties
from .store import (
    JSON_SIDECAR,
    LEGACY_SIDECAR,
    SIDECAR_FORMATS,
    SIDECAR_MARKER,
    ExtraPropertyStore,
    SidecarFormat,
)

__all__ = [
    "atomic_write_bytes",
    "dump_json",
    "dump_legacy",
    "load_json",
    "load_legacy",
    "validate_properties",
    "JSON_SIDECAR",
    "LEGACY_SIDECAR",
    "SIDECAR_FORMATS",
    "SIDECAR_MARKER",
    "ExtraPropertyStore",
    "SidecarFormat",
]
