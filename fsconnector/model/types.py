"""Domain datatypes for projections, node views and change events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..binaries import BinaryHandle, InternalBinary

CONTENT_NODE_NAME = "jcr:content"
PRIMARY_TYPE = "jcr:primaryType"
CREATED = "jcr:created"
LAST_MODIFIED = "jcr:lastModified"
DATA = "jcr:data"
MIME_TYPE = "jcr:mimeType"

FOLDER_TYPE = "nt:folder"
FILE_TYPE = "nt:file"
RESOURCE_TYPE = "nt:resource"

# Properties derived from the native entry itself; everything else is "extra".
BUILTIN_PROPERTIES = frozenset({PRIMARY_TYPE, CREATED, LAST_MODIFIED, DATA, MIME_TYPE})

DEFAULT_PAGE_SIZE = 100
DEFAULT_LARGE_FILE_THRESHOLD = 10 * 1024 * 1024

PropertyScalar = str | int | float | bool
PropertyValue = PropertyScalar | list[PropertyScalar]


class ExtraPropertyStoreKind(str, Enum):
    """Closed set of extra-property persistence strategies."""

    NONE = "none"
    JSON = "json"
    LEGACY = "legacy"


class BinaryStrategyKind(str, Enum):
    """How a file's bytes are referenced by its binary handle."""

    LOCATION = "location"
    CONTENT = "content"


class ChangeKind(str, Enum):
    NODE_ADDED = "NodeAdded"
    NODE_REMOVED = "NodeRemoved"
    PROPERTY_CHANGED = "PropertyChanged"


@dataclass(frozen=True)
class Projection:
    """One configured mount of a native directory subtree.

    ``inclusion_filter`` and ``exclusion_filter`` hold glob patterns over
    relative paths; an empty tuple disables the filter.
    """

    name: str
    mount_address: str
    native_root: Path
    read_only: bool = False
    inclusion_filter: tuple[str, ...] = ()
    exclusion_filter: tuple[str, ...] = ()
    extra_properties: ExtraPropertyStoreKind = ExtraPropertyStoreKind.JSON
    binary_strategy: BinaryStrategyKind = BinaryStrategyKind.CONTENT
    page_size: int = DEFAULT_PAGE_SIZE
    large_file_threshold: int = DEFAULT_LARGE_FILE_THRESHOLD
    monitor: bool = False


@dataclass(frozen=True)
class ContentNode:
    """Resource child of a file node carrying the binary payload."""

    address: str
    last_modified: int
    binary: BinaryHandle | InternalBinary
    mime_type: str | None = None
    properties: dict[str, PropertyValue] = field(default_factory=dict)

    @property
    def primary_type(self) -> str:
        return RESOURCE_TYPE


@dataclass(frozen=True)
class FolderNode:
    identifier: str
    address: str
    native_path: Path | None
    created: int
    properties: dict[str, PropertyValue] = field(default_factory=dict)
    external: bool = True

    @property
    def primary_type(self) -> str:
        return FOLDER_TYPE

    @property
    def name(self) -> str:
        return address_name(self.address)


@dataclass(frozen=True)
class FileNode:
    identifier: str
    address: str
    native_path: Path | None
    created: int
    content: ContentNode
    properties: dict[str, PropertyValue] = field(default_factory=dict)
    external: bool = True

    @property
    def primary_type(self) -> str:
        return FILE_TYPE

    @property
    def name(self) -> str:
        return address_name(self.address)


LogicalNode = FolderNode | FileNode


@dataclass(frozen=True)
class ChangeEvent:
    """One addressed change notification.

    For ``PROPERTY_CHANGED`` the address points at the property location
    (for example ``.../jcr:content/jcr:data``), not at the owning node.
    """

    kind: ChangeKind
    logical_address: str
    native_path: Path
    timestamp: float


def normalize_address(address: str) -> str:
    """Return ``address`` as an absolute, slash-separated path without a trailing slash."""
    parts = [part for part in address.split("/") if part and part != "."]
    return "/" + "/".join(parts)


def join_address(base: str, *segments: str) -> str:
    parts = [normalize_address(base).rstrip("/")]
    for segment in segments:
        segment = segment.strip("/")
        if segment:
            parts.append(segment)
    return normalize_address("/".join(parts))


def address_name(address: str) -> str:
    return normalize_address(address).rsplit("/", 1)[-1]


def parent_address(address: str) -> str:
    head = normalize_address(address).rsplit("/", 1)[0]
    return head or "/"


def is_within_address(address: str, base: str) -> bool:
    """Return whether ``address`` is ``base`` or lies below it."""
    address = normalize_address(address)
    base = normalize_address(base)
    if base == "/":
        return True
    return address == base or address.startswith(base + "/")


def relative_address(address: str, base: str) -> str:
    """Return the slash-separated remainder of ``address`` below ``base``."""
    address = normalize_address(address)
    base = normalize_address(base)
    if base == "/":
        return address.lstrip("/")
    return address[len(base):].lstrip("/")


__all__ = [
    "CONTENT_NODE_NAME",
    "PRIMARY_TYPE",
    "CREATED",
    "LAST_MODIFIED",
    "DATA",
    "MIME_TYPE",
    "FOLDER_TYPE",
    "FILE_TYPE",
    "RESOURCE_TYPE",
    "BUILTIN_PROPERTIES",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_LARGE_FILE_THRESHOLD",
    "PropertyScalar",
    "PropertyValue",
    "ExtraPropertyStoreKind",
    "BinaryStrategyKind",
    "ChangeKind",
    "Projection",
    "ContentNode",
    "FolderNode",
    "FileNode",
    "LogicalNode",
    "ChangeEvent",
    "normalize_address",
    "join_address",
    "address_name",
    "parent_address",
    "is_within_address",
    "relative_address",
]
