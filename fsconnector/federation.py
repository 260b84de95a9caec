"""Several projections and the host tree behind one node-view protocol.

Addresses route to the projection whose mount address is the longest
prefix; everything else belongs to the host tree. Copy and move work
across those boundaries:

- projection -> host: bytes are materialized as ``InternalBinary`` and the
  copy is no longer tagged as external.
- host -> projection: bytes are written to the native file and extra
  properties go through the projection's side-store.
- projection -> other projection: copy, then delete the source for moves.
  Moves between projections over the same or nested native roots rename
  the native entry instead.

Copies never overwrite an existing target; that raises ``IOFailure``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from typing import BinaryIO

from .binaries import BinaryHandle, InternalBinary
from .connector import NodeContent, ProjectionConnector, split_extra_properties
from .errors import ConfigurationError, IOFailure, NodeNotFound, ReadOnlyViolation
from .host import MemoryHostStore
from .model.types import (
    CONTENT_NODE_NAME,
    FILE_TYPE,
    FOLDER_TYPE,
    MIME_TYPE,
    PRIMARY_TYPE,
    ChangeEvent,
    ContentNode,
    FileNode,
    FolderNode,
    LogicalNode,
    Projection,
    address_name,
    join_address,
    normalize_address,
    parent_address,
)
from .monitor.monitor import ChangeMonitor, Subscription
from .pager import ChildPage, page_names

log = logging.getLogger(__name__)

NodeView = ProjectionConnector | MemoryHostStore


def iter_child_names(view: NodeView | Federation, address: str) -> Iterator[str]:
    """Yield every child name of ``address``, following page tokens."""
    token: str | None = None
    while True:
        page = view.children(address, token)
        yield from page.names
        if page.next_token is None:
            return
        token = page.next_token


def _can_rename(source_view: NodeView, target_view: NodeView) -> bool:
    """Whether a move between two views can be a native rename."""
    return (
        isinstance(source_view, ProjectionConnector)
        and isinstance(target_view, ProjectionConnector)
        and source_view.store.kind == target_view.store.kind
        and target_view.shares_native_tree(source_view)
    )


class Federation:
    """Route node operations to projections or the host tree."""

    def __init__(
        self,
        host: MemoryHostStore | None = None,
        *,
        monitor: ChangeMonitor | None = None,
    ) -> None:
        self.host = host or MemoryHostStore()
        self.monitor = monitor or ChangeMonitor()
        self._connectors: dict[str, ProjectionConnector] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> Federation:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    # Mounts ------------------------------------------------------------

    def mount(self, projection: Projection) -> ProjectionConnector:
        """Mount ``projection``; exactly one projection may own a mount address."""
        mount_address = normalize_address(projection.mount_address)
        with self._lock:
            if mount_address in self._connectors:
                raise ConfigurationError(
                    f"mount address {mount_address} is already owned by "
                    f"{self._connectors[mount_address].name!r}",
                    address=mount_address,
                )
            if any(connector.name == projection.name for connector in self._connectors.values()):
                raise ConfigurationError(f"duplicate projection name {projection.name!r}", address=mount_address)
            connector = ProjectionConnector(projection, monitor=self.monitor)
            self._connectors[mount_address] = connector
        if mount_address != "/":
            self.host.ensure_folders(parent_address(mount_address))
        return connector

    def unmount(self, mount_address: str) -> None:
        with self._lock:
            connector = self._connectors.pop(normalize_address(mount_address), None)
        if connector is None:
            raise NodeNotFound(f"nothing mounted at {mount_address}", address=mount_address)
        connector.close()

    def connectors(self) -> list[ProjectionConnector]:
        with self._lock:
            return [self._connectors[key] for key in sorted(self._connectors)]

    def connector_for(self, address: str) -> ProjectionConnector | None:
        """Return the projection with the longest mount prefix of ``address``."""
        with self._lock:
            candidates = [c for c in self._connectors.values() if c.owns_address(address)]
        if not candidates:
            return None
        return max(candidates, key=lambda connector: len(connector.mount_address))

    def route(self, address: str) -> NodeView:
        return self.connector_for(address) or self.host

    def _mount_names_below(self, address: str) -> list[str]:
        address = normalize_address(address)
        with self._lock:
            mounts = list(self._connectors)
        return [address_name(mount) for mount in mounts if mount != "/" and parent_address(mount) == address]

    # Node-view protocol ------------------------------------------------

    def lookup_by_address(self, address: str) -> LogicalNode | ContentNode | None:
        return self.route(address).lookup_by_address(address)

    def lookup_by_id(self, identifier: str) -> LogicalNode | None:
        for connector in self.connectors():
            if connector.owns_id(identifier):
                return connector.lookup_by_id(identifier)
        return self.host.lookup_by_id(identifier)

    def children(
        self,
        address: str,
        page_token: str | None = None,
        page_size: int | None = None,
    ) -> ChildPage:
        view = self.route(address)
        if isinstance(view, ProjectionConnector):
            return view.children(address, page_token, page_size)
        names = set(self.host.child_names(address))
        names.update(self._mount_names_below(address))
        return page_names(names, page_token, page_size)

    def iter_children(self, address: str) -> Iterator[str]:
        return iter_child_names(self, address)

    def read(self, address: str) -> NodeContent:
        return self.route(address).read(address)

    def write(
        self,
        address: str,
        properties: Mapping[str, object] | None = None,
        binary: bytes | BinaryHandle | InternalBinary | BinaryIO | None = None,
    ) -> LogicalNode | ContentNode:
        return self.route(address).write(address, properties, binary)

    def create_folder(self, address: str) -> LogicalNode:
        return self.route(address).create_folder(address)

    def remove(self, address: str) -> None:
        self.route(address).remove(address)

    def copy(self, source: str, target: str) -> LogicalNode:
        source_view = self.route(source)
        target_view = self.route(target)
        if target_view.read_only:
            raise ReadOnlyViolation(f"cannot copy into read-only {target}", address=target)
        if source_view is target_view and isinstance(source_view, ProjectionConnector):
            return source_view.copy(source, target)
        log.debug("copying %s -> %s across boundary", source, target)
        return self._copy_tree(source_view, source, target_view, target)

    def move(self, source: str, target: str) -> LogicalNode:
        source_view = self.route(source)
        target_view = self.route(target)
        if source_view.read_only:
            raise ReadOnlyViolation(f"cannot move out of read-only {source}", address=source)
        if target_view.read_only:
            raise ReadOnlyViolation(f"cannot move into read-only {target}", address=target)
        if source_view is target_view:
            return source_view.move(source, target)
        if _can_rename(source_view, target_view):
            return target_view.move_from(source_view, source, target)
        node = self._copy_tree(source_view, source, target_view, target)
        source_view.remove(source)
        return node

    def _copy_tree(self, source_view: NodeView, source: str, target_view: NodeView, target: str) -> LogicalNode:
        if target_view.lookup_by_address(target) is not None:
            raise IOFailure(f"{target} already exists", address=target)
        content = source_view.read(source)
        extras = split_extra_properties(content.properties)
        if content.primary_type == FOLDER_TYPE:
            node = target_view.write(target, {**extras, PRIMARY_TYPE: FOLDER_TYPE})
            for name in list(iter_child_names(source_view, source)):
                self._copy_tree(source_view, join_address(source, name), target_view, join_address(node.address, name))
        elif content.primary_type == FILE_TYPE:
            resource = source_view.read(join_address(source, CONTENT_NODE_NAME))
            properties = {**extras, PRIMARY_TYPE: FILE_TYPE}
            if MIME_TYPE in resource.properties:
                properties[MIME_TYPE] = resource.properties[MIME_TYPE]
            node = target_view.write(target, properties, resource.binary)
            resource_extras = split_extra_properties(resource.properties)
            if resource_extras:
                target_view.write(join_address(node.address, CONTENT_NODE_NAME), resource_extras)
        else:
            raise NodeNotFound(f"{source} is not a folder or file", address=source)
        if not isinstance(node, (FolderNode, FileNode)):
            raise NodeNotFound(f"no node at {target}", address=target)
        return node

    # Monitoring --------------------------------------------------------

    def subscribe(self, callback: Callable[[ChangeEvent], None] | None = None) -> Subscription:
        return self.monitor.subscribe(callback)

    def close(self) -> None:
        self.monitor.stop()
        with self._lock:
            self._connectors.clear()


__all__ = [
    "Federation",
    "NodeView",
    "iter_child_names",
]
