"""Minimal in-memory host tree for content that lives outside any projection."""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import BinaryIO

from .binaries import BinaryHandle, InternalBinary
from .connector import NodeContent, split_extra_properties
from .errors import NodeNotFound, UnsupportedOperation
from .model.types import (
    CONTENT_NODE_NAME,
    CREATED,
    DATA,
    FILE_TYPE,
    FOLDER_TYPE,
    LAST_MODIFIED,
    MIME_TYPE,
    PRIMARY_TYPE,
    RESOURCE_TYPE,
    ContentNode,
    FileNode,
    FolderNode,
    LogicalNode,
    PropertyValue,
    address_name,
    is_within_address,
    join_address,
    normalize_address,
    parent_address,
)
from .pager import ChildPage, page_names


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def to_internal_binary(binary: bytes | BinaryHandle | InternalBinary | BinaryIO) -> InternalBinary:
    """Materialize any binary source into bytes owned by the host tree."""
    if isinstance(binary, InternalBinary):
        return binary
    if isinstance(binary, (bytes, bytearray)):
        return InternalBinary(bytes(binary))
    if isinstance(binary, BinaryHandle):
        with binary.open() as stream:
            return InternalBinary.from_stream(stream)
    return InternalBinary.from_stream(binary)


@dataclass
class _HostEntry:
    identifier: str
    primary_type: str
    created: int
    properties: dict[str, PropertyValue] = field(default_factory=dict)
    binary: InternalBinary | None = None
    last_modified: int = 0
    mime_type: str | None = None
    resource_properties: dict[str, PropertyValue] = field(default_factory=dict)


class MemoryHostStore:
    """Folders and files held in memory, addressed like projected nodes.

    Every node here is internal: binaries are ``InternalBinary`` values and
    views carry ``external=False``.
    """

    read_only = False

    def __init__(self) -> None:
        self._entries: dict[str, _HostEntry] = {
            "/": _HostEntry(uuid.uuid4().hex, FOLDER_TYPE, _now_millis()),
        }
        self._ids: dict[str, str] = {self._entries["/"].identifier: "/"}
        self._lock = threading.RLock()

    def owns_address(self, address: str) -> bool:
        return True

    def _split(self, address: str) -> tuple[str, bool]:
        address = normalize_address(address)
        if address != "/" and address_name(address) == CONTENT_NODE_NAME:
            return parent_address(address), True
        return address, False

    def _view(self, address: str, entry: _HostEntry) -> LogicalNode:
        if entry.primary_type == FOLDER_TYPE:
            return FolderNode(
                identifier=entry.identifier,
                address=address,
                native_path=None,
                created=entry.created,
                properties=dict(entry.properties),
                external=False,
            )
        content = ContentNode(
            address=join_address(address, CONTENT_NODE_NAME),
            last_modified=entry.last_modified,
            binary=entry.binary or InternalBinary(b""),
            mime_type=entry.mime_type,
            properties=dict(entry.resource_properties),
        )
        return FileNode(
            identifier=entry.identifier,
            address=address,
            native_path=None,
            created=entry.created,
            content=content,
            properties=dict(entry.properties),
            external=False,
        )

    def lookup_by_address(self, address: str) -> LogicalNode | ContentNode | None:
        path, content = self._split(address)
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                return None
            node = self._view(path, entry)
        if content:
            return node.content if isinstance(node, FileNode) else None
        return node

    def lookup_by_id(self, identifier: str) -> LogicalNode | None:
        with self._lock:
            address = self._ids.get(identifier)
        if address is None:
            return None
        node = self.lookup_by_address(address)
        return node if isinstance(node, (FolderNode, FileNode)) else None

    def child_names(self, address: str) -> list[str]:
        path, content = self._split(address)
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                raise NodeNotFound(f"no node at {address}", address=address)
            if content:
                return []
            if entry.primary_type == FILE_TYPE:
                return [CONTENT_NODE_NAME]
            return [address_name(other) for other in self._entries if other != "/" and parent_address(other) == path]

    def children(
        self,
        address: str,
        page_token: str | None = None,
        page_size: int | None = None,
    ) -> ChildPage:
        return page_names(self.child_names(address), page_token, page_size)

    def read(self, address: str) -> NodeContent:
        node = self.lookup_by_address(address)
        if node is None:
            raise NodeNotFound(f"no node at {address}", address=address)
        if isinstance(node, ContentNode):
            properties: dict[str, PropertyValue] = dict(node.properties)
            properties[PRIMARY_TYPE] = RESOURCE_TYPE
            properties[LAST_MODIFIED] = node.last_modified
            if node.mime_type:
                properties[MIME_TYPE] = node.mime_type
            return NodeContent(node.address, RESOURCE_TYPE, properties, node.binary, external=False)
        properties = dict(node.properties)
        properties[PRIMARY_TYPE] = node.primary_type
        properties[CREATED] = node.created
        binary = node.content.binary if isinstance(node, FileNode) else None
        return NodeContent(node.address, node.primary_type, properties, binary, external=False)

    def write(
        self,
        address: str,
        properties: Mapping[str, object] | None = None,
        binary: bytes | BinaryHandle | InternalBinary | BinaryIO | None = None,
    ) -> LogicalNode | ContentNode:
        properties = dict(properties or {})
        if binary is None and DATA in properties:
            binary = properties.pop(DATA)  # type: ignore[assignment]
        extras = split_extra_properties(properties)
        path, content = self._split(address)
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                if content:
                    raise NodeNotFound(f"no file owns {address}", address=address)
                entry = self._create(path, properties.get(PRIMARY_TYPE), binary is not None)
            if binary is not None:
                if entry.primary_type != FILE_TYPE:
                    raise UnsupportedOperation(f"folder {address} cannot hold binary content", address=address)
                entry.binary = to_internal_binary(binary)
                entry.last_modified = _now_millis()
            if MIME_TYPE in properties and entry.primary_type == FILE_TYPE:
                entry.mime_type = str(properties[MIME_TYPE])
            target = entry.resource_properties if content else entry.properties
            for name, value in extras.items():
                if value is None:
                    target.pop(name, None)
                else:
                    target[name] = value  # type: ignore[assignment]
        node = self.lookup_by_address(address)
        if node is None:
            raise NodeNotFound(f"{address} vanished after write", address=address)
        return node

    def _create(self, path: str, primary_type: object, has_binary: bool) -> _HostEntry:
        parent = self._entries.get(parent_address(path))
        if parent is None or parent.primary_type != FOLDER_TYPE:
            raise NodeNotFound(f"parent of {path} does not exist", address=path)
        if primary_type is None:
            primary_type = FILE_TYPE if has_binary else FOLDER_TYPE
        if primary_type not in (FOLDER_TYPE, FILE_TYPE):
            raise UnsupportedOperation(f"cannot create {primary_type} nodes", address=path)
        now = _now_millis()
        entry = _HostEntry(uuid.uuid4().hex, str(primary_type), now, last_modified=now)
        if entry.primary_type == FILE_TYPE:
            entry.binary = InternalBinary(b"")
        self._entries[path] = entry
        self._ids[entry.identifier] = path
        return entry

    def create_folder(self, address: str) -> LogicalNode:
        node = self.write(address, {PRIMARY_TYPE: FOLDER_TYPE})
        if not isinstance(node, FolderNode):
            raise UnsupportedOperation(f"{address} is not a folder", address=address)
        return node

    def ensure_folders(self, address: str) -> None:
        """Create ``address`` and its missing ancestors as folders."""
        address = normalize_address(address)
        if address == "/":
            return
        with self._lock:
            self.ensure_folders(parent_address(address))
            if address not in self._entries:
                self._create(address, FOLDER_TYPE, False)

    def remove(self, address: str) -> None:
        path, content = self._split(address)
        if path == "/" or content:
            raise UnsupportedOperation(f"cannot remove {address}", address=address)
        with self._lock:
            if path not in self._entries:
                raise NodeNotFound(f"no node at {address}", address=address)
            for doomed in [other for other in self._entries if is_within_address(other, path)]:
                entry = self._entries.pop(doomed)
                self._ids.pop(entry.identifier, None)

    def move(self, source: str, target: str) -> LogicalNode:
        source_path, _ = self._split(source)
        target_path, _ = self._split(target)
        with self._lock:
            if source_path not in self._entries or source_path == "/":
                raise NodeNotFound(f"no node at {source}", address=source)
            if target_path in self._entries:
                raise UnsupportedOperation(f"{target} already exists", address=target)
            if is_within_address(target_path, source_path):
                raise UnsupportedOperation(f"cannot move {source} into itself", address=target)
            parent = self._entries.get(parent_address(target_path))
            if parent is None or parent.primary_type != FOLDER_TYPE:
                raise NodeNotFound(f"parent of {target} does not exist", address=target)
            moved = [other for other in self._entries if is_within_address(other, source_path)]
            for old in moved:
                new = target_path + old[len(source_path):]
                entry = self._entries.pop(old)
                self._entries[new] = entry
                self._ids[entry.identifier] = new
        node = self.lookup_by_address(target_path)
        if not isinstance(node, (FolderNode, FileNode)):
            raise NodeNotFound(f"no node at {target}", address=target)
        return node


__all__ = [
    "MemoryHostStore",
    "to_internal_binary",
]
