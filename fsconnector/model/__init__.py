"""Node-view, projection and change-event datatypes.

Everything here is derived on demand from native filesystem entries; none
of these objects is persisted on its own.
"""

from __future__ import annotations

from .types import (
    BUILTIN_PROPERTIES,
    CONTENT_NODE_NAME,
    CREATED,
    DATA,
    DEFAULT_LARGE_FILE_THRESHOLD,
    DEFAULT_PAGE_SIZE,
    FILE_TYPE,
    FOLDER_TYPE,
    LAST_MODIFIED,
    MIME_TYPE,
    PRIMARY_TYPE,
    RESOURCE_TYPE,
    BinaryStrategyKind,
    ChangeEvent,
    ChangeKind,
    ContentNode,
    ExtraPropertyStoreKind,
    FileNode,
    FolderNode,
    LogicalNode,
    Projection,
    PropertyScalar,
    PropertyValue,
    address_name,
    is_within_address,
    join_address,
    normalize_address,
    parent_address,
    relative_address,
)

__all__ = [
    "BUILTIN_PROPERTIES",
    "CONTENT_NODE_NAME",
    "CREATED",
    "DATA",
    "DEFAULT_LARGE_FILE_THRESHOLD",
    "DEFAULT_PAGE_SIZE",
    "FILE_TYPE",
    "FOLDER_TYPE",
    "LAST_MODIFIED",
    "MIME_TYPE",
    "PRIMARY_TYPE",
    "RESOURCE_TYPE",
    "BinaryStrategyKind",
    "ChangeEvent",
    "ChangeKind",
    "ContentNode",
    "ExtraPropertyStoreKind",
    "FileNode",
    "FolderNode",
    "LogicalNode",
    "Projection",
    "PropertyScalar",
    "PropertyValue",
    "address_name",
    "is_within_address",
    "join_address",
    "normalize_address",
    "parent_address",
    "relative_address",
]
