"""One projection of a native directory subtree into the logical node tree.

``ProjectionConnector`` composes the path mapper, the extra-property store,
the binary strategy and the directory pager for a single mount. It is the
only layer that turns ``OSError`` into the host-facing errors of
``fsconnector.errors``.
"""

from __future__ import annotations

import contextlib
import logging
import mimetypes
import os
import shutil
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from .binaries import BinaryContentStrategy, BinaryHandle, InternalBinary, iter_file_blocks
from .errors import (
    ConfigurationError,
    IOFailure,
    NodeNotFound,
    ReadOnlyViolation,
    StaleHandle,
    UnsupportedOperation,
)
from .extra_properties.store import ExtraPropertyStore
from .mapping.path_mapper import PathMapper
from .model.types import (
    BUILTIN_PROPERTIES,
    CONTENT_NODE_NAME,
    CREATED,
    DATA,
    FILE_TYPE,
    FOLDER_TYPE,
    LAST_MODIFIED,
    MIME_TYPE,
    PRIMARY_TYPE,
    RESOURCE_TYPE,
    ChangeEvent,
    ContentNode,
    FileNode,
    FolderNode,
    LogicalNode,
    Projection,
    PropertyValue,
    join_address,
)
from .monitor.monitor import ChangeMonitor, MonitorState, Subscription
from .pager import ChildPage, DirectoryPager

log = logging.getLogger(__name__)

BinarySource = bytes | BinaryHandle | InternalBinary | BinaryIO


def _millis(mtime_ns: int) -> int:
    return int(mtime_ns) // 1_000_000


def native_name(name: str) -> str:
    """Drop a namespace prefix (``ms_test:test`` -> ``test``) from a new entry name."""
    if name == CONTENT_NODE_NAME or ":" not in name:
        return name
    return name.split(":", 1)[1]


def split_extra_properties(properties: Mapping[str, object]) -> dict[str, object | None]:
    return {name: value for name, value in properties.items() if name not in BUILTIN_PROPERTIES}


@dataclass(frozen=True)
class NodeContent:
    """Result of ``read``: every property of a node plus its binary, if any."""

    address: str
    primary_type: str
    properties: dict[str, PropertyValue] = field(default_factory=dict)
    binary: BinaryHandle | InternalBinary | None = None
    external: bool = True


class ProjectionConnector:
    """Node-view protocol over one projection."""

    def __init__(
        self,
        projection: Projection,
        *,
        monitor: ChangeMonitor | None = None,
        binaries: BinaryContentStrategy | None = None,
    ) -> None:
        root = Path(projection.native_root)
        if not root.is_dir():
            raise ConfigurationError(
                f"projection {projection.name!r}: native root {root} is not a readable directory",
                address=projection.mount_address,
                path=root,
            )
        if not os.access(root, os.R_OK | os.X_OK):
            raise ConfigurationError(
                f"projection {projection.name!r}: native root {root} is not readable",
                address=projection.mount_address,
                path=root,
            )
        self.projection = projection
        self.store = ExtraPropertyStore(projection.extra_properties, root)
        self.mapper = PathMapper.for_projection(projection, self.store.is_reserved_name)
        self.binaries = binaries or BinaryContentStrategy(
            projection.binary_strategy,
            projection.large_file_threshold,
        )
        self.pager = DirectoryPager(self.mapper, projection.page_size)
        self.monitor = monitor or ChangeMonitor()
        log.info(
            "mounted projection %s at %s -> %s%s",
            projection.name,
            self.mount_address,
            self.native_root,
            " (read-only)" if projection.read_only else "",
        )
        if projection.monitor:
            self.start_monitoring()

    def __enter__(self) -> ProjectionConnector:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def name(self) -> str:
        return self.projection.name

    @property
    def mount_address(self) -> str:
        return self.mapper.mount_address

    @property
    def native_root(self) -> Path:
        return self.mapper.native_root

    @property
    def read_only(self) -> bool:
        return self.projection.read_only

    def owns_address(self, address: str) -> bool:
        return self.mapper.owns_address(address)

    def owns_id(self, identifier: str) -> bool:
        return self.mapper.owns_id(identifier)

    # Address helpers ---------------------------------------------------

    def _locate(self, address: str) -> tuple[str, bool] | None:
        """Split ``address`` into ``(relative_path, is_content_node)``."""
        relative = self.mapper.relative_path_for_address(address)
        if relative is None:
            return None
        head, _, leaf = relative.rpartition("/")
        if relative and leaf == CONTENT_NODE_NAME:
            return head, True
        return relative, False

    def _require(self, address: str) -> tuple[str, bool, Path]:
        located = self._locate(address)
        if located is None:
            raise NodeNotFound(f"no node at {address}", address=address)
        relative, content = located
        native = self.mapper.resolve(relative)
        if native is None or (content and not native.is_file()):
            raise NodeNotFound(f"no node at {address}", address=address)
        return relative, content, native

    def _require_writable(self, address: str) -> None:
        if self.projection.read_only:
            raise ReadOnlyViolation(
                f"projection {self.projection.name!r} is read-only",
                address=address,
            )

    @contextlib.contextmanager
    def _translate_os_errors(self, address: str) -> Iterator[None]:
        try:
            yield
        except FileNotFoundError as exc:
            raise NodeNotFound(f"no node at {address}", address=address, path=_error_path(exc)) from exc
        except OSError as exc:
            raise IOFailure(f"{address}: {exc}", address=address, path=_error_path(exc)) from exc

    # Node views --------------------------------------------------------

    def _node_for(self, relative: str, native: Path) -> LogicalNode:
        st = native.stat()
        address = self.mapper.address_for(relative)
        identifier = self.mapper.node_id(relative)
        properties = self.store.get(relative)
        if native.is_dir():
            return FolderNode(
                identifier=identifier,
                address=address,
                native_path=native,
                created=_millis(st.st_mtime_ns),
                properties=properties,
            )
        content = ContentNode(
            address=join_address(address, CONTENT_NODE_NAME),
            last_modified=_millis(st.st_mtime_ns),
            binary=self.binaries.handle_for(native),
            mime_type=mimetypes.guess_type(native.name)[0],
            properties=self.store.get(relative, resource=True),
        )
        return FileNode(
            identifier=identifier,
            address=address,
            native_path=native,
            created=_millis(st.st_mtime_ns),
            content=content,
            properties=properties,
        )

    def lookup_by_address(self, address: str) -> LogicalNode | ContentNode | None:
        """Return the node at ``address``; a ``jcr:content`` address yields the content node."""
        located = self._locate(address)
        if located is None:
            return None
        relative, content = located
        native = self.mapper.resolve(relative)
        if native is None:
            return None
        try:
            node = self._node_for(relative, native)
        except (FileNotFoundError, StaleHandle):
            return None
        except OSError as exc:
            raise IOFailure(f"{address}: {exc}", address=address, path=native) from exc
        if content:
            return node.content if isinstance(node, FileNode) else None
        log.debug("resolved %s -> %s", address, native)
        return node

    def lookup_by_id(self, identifier: str) -> LogicalNode | None:
        relative = self.mapper.relative_path_for_id(identifier)
        if relative is None:
            return None
        node = self.lookup_by_address(self.mapper.address_for(relative))
        return node if isinstance(node, (FolderNode, FileNode)) else None

    def children(
        self,
        address: str,
        page_token: str | None = None,
        page_size: int | None = None,
    ) -> ChildPage:
        """Return one page of child names; a file's only child is its content node."""
        relative, content, native = self._require(address)
        if content:
            return ChildPage(names=[], next_token=None)
        if native.is_file():
            return ChildPage(names=[CONTENT_NODE_NAME], next_token=None)
        with self._translate_os_errors(address):
            return self.pager.page(relative, page_token, page_size)

    def read(self, address: str) -> NodeContent:
        """Return builtin and extra properties of a node plus its binary handle."""
        node = self.lookup_by_address(address)
        if node is None:
            raise NodeNotFound(f"no node at {address}", address=address)
        if isinstance(node, ContentNode):
            properties: dict[str, PropertyValue] = dict(node.properties)
            properties[PRIMARY_TYPE] = RESOURCE_TYPE
            properties[LAST_MODIFIED] = node.last_modified
            if node.mime_type:
                properties[MIME_TYPE] = node.mime_type
            return NodeContent(node.address, RESOURCE_TYPE, properties, node.binary)
        properties = dict(node.properties)
        properties[PRIMARY_TYPE] = node.primary_type
        properties[CREATED] = node.created
        binary = node.content.binary if isinstance(node, FileNode) else None
        return NodeContent(node.address, node.primary_type, properties, binary)

    def open_binary(self, address: str) -> BinaryIO:
        content = self.read(address)
        if content.binary is None:
            raise NodeNotFound(f"no binary content at {address}", address=address)
        with self._translate_os_errors(address):
            return content.binary.open()

    def checksum(self, address: str) -> str:
        content = self.read(address)
        if content.binary is None:
            raise NodeNotFound(f"no binary content at {address}", address=address)
        with self._translate_os_errors(address):
            return self.binaries.checksum_of(content.binary)

    # Mutations ---------------------------------------------------------

    def write(
        self,
        address: str,
        properties: Mapping[str, object] | None = None,
        binary: BinarySource | None = None,
    ) -> LogicalNode | ContentNode:
        """Create or update the node at ``address``.

        New entries need an existing parent folder. ``jcr:primaryType``
        selects folder or file for new entries; without it a binary makes a
        file and anything else a folder. Extra properties are merged into the
        side-store, ``None`` values delete them.
        """
        self._require_writable(address)
        properties = dict(properties or {})
        if binary is None and DATA in properties:
            binary = properties.pop(DATA)  # type: ignore[assignment]
        extras = split_extra_properties(properties)
        if extras and not self.store.supports_properties:
            raise UnsupportedOperation(
                f"projection {self.projection.name!r} cannot store {sorted(extras)}",
                address=address,
            )
        located = self._locate(address)
        if located is None:
            raise NodeNotFound(f"{address} is outside projection {self.projection.name!r}", address=address)
        relative, content = located

        with self._translate_os_errors(address):
            native = self.mapper.resolve(relative)
            if native is None:
                if content:
                    raise NodeNotFound(f"no file owns {address}", address=address)
                relative, native = self._create_entry(address, relative, properties.get(PRIMARY_TYPE), binary)
            else:
                self._check_primary_type(address, native, content, properties.get(PRIMARY_TYPE))
            if binary is not None:
                if native.is_dir():
                    raise UnsupportedOperation(f"folder {address} cannot hold binary content", address=address)
                _write_binary(native, binary)
            if extras:
                self.store.update(relative, extras, resource=content)
        log.debug("wrote %s (%d extra properties)", address, len(extras))
        result_address = self.mapper.address_for(relative)
        if content:
            result_address = join_address(result_address, CONTENT_NODE_NAME)
        node = self.lookup_by_address(result_address)
        if node is None:
            raise NodeNotFound(f"{address} vanished after write", address=address)
        return node

    @staticmethod
    def _check_primary_type(address: str, native: Path, content: bool, requested: object) -> None:
        if requested is None:
            return
        if content:
            expected = RESOURCE_TYPE
        else:
            expected = FOLDER_TYPE if native.is_dir() else FILE_TYPE
        if requested != expected:
            raise UnsupportedOperation(f"cannot change {address} from {expected} to {requested}", address=address)

    def _create_entry(
        self,
        address: str,
        relative: str,
        primary_type: object,
        binary: BinarySource | None,
    ) -> tuple[str, Path]:
        if not relative:
            raise NodeNotFound(f"no node at {address}", address=address)
        parent, _, leaf = relative.rpartition("/")
        parent_native = self.mapper.resolve(parent)
        if parent_native is None or not parent_native.is_dir():
            raise NodeNotFound(f"parent of {address} does not exist", address=address)
        if primary_type is None:
            primary_type = FILE_TYPE if binary is not None else FOLDER_TYPE
        if primary_type not in (FOLDER_TYPE, FILE_TYPE):
            raise UnsupportedOperation(f"cannot create {primary_type} nodes", address=address)
        is_dir = primary_type == FOLDER_TYPE
        relative = f"{parent}/{native_name(leaf)}" if parent else native_name(leaf)
        native = self.mapper.native_path_for(relative)
        if not self.mapper.is_visible(relative, is_dir):
            raise UnsupportedOperation(f"{address} is reserved or filtered out", address=address)
        if native.exists():
            raise IOFailure(f"{address}: native entry {native} already exists", address=address, path=native)
        if is_dir:
            native.mkdir()
        else:
            native.touch(exist_ok=False)
        log.debug("created %s %s", primary_type, native)
        return relative, native

    def create_folder(self, address: str) -> LogicalNode:
        node = self.write(address, {PRIMARY_TYPE: FOLDER_TYPE})
        return self._require_node(node.address)

    def remove(self, address: str) -> None:
        self._require_writable(address)
        relative, content, native = self._require(address)
        if not relative or content:
            raise UnsupportedOperation(f"cannot remove {address}", address=address)
        with self._translate_os_errors(address):
            if native.is_dir():
                shutil.rmtree(native)
            else:
                native.unlink()
            self.store.remove(relative)
        log.debug("removed %s", address)

    def _prepare_transfer(
        self,
        source: str,
        target: str,
        origin: ProjectionConnector | None = None,
    ) -> tuple[str, Path, str, Path]:
        """Validate moving ``source`` of ``origin`` (default: this projection) to ``target`` here."""
        origin = origin or self
        self._require_writable(target)
        source_relative, content, source_native = origin._require(source)
        if not source_relative or content:
            raise UnsupportedOperation(f"cannot transfer {source}", address=source)
        located = self._locate(target)
        if located is None or located[1] or not located[0]:
            raise UnsupportedOperation(f"cannot transfer onto {target}", address=target)
        parent, _, leaf = located[0].rpartition("/")
        parent_native = self.mapper.resolve(parent)
        if parent_native is None or not parent_native.is_dir():
            raise NodeNotFound(f"parent of {target} does not exist", address=target)
        target_relative = f"{parent}/{native_name(leaf)}" if parent else native_name(leaf)
        target_native = self.mapper.native_path_for(target_relative)
        if target_native == source_native or target_native.is_relative_to(source_native):
            raise UnsupportedOperation(f"cannot transfer {source} into itself", address=target)
        if not self.mapper.is_visible(target_relative, source_native.is_dir()):
            raise UnsupportedOperation(f"{target} is reserved or filtered out", address=target)
        if target_native.exists():
            raise IOFailure(f"{target}: native entry {target_native} already exists", address=target, path=target_native)
        return source_relative, source_native, target_relative, target_native

    def copy(self, source: str, target: str) -> LogicalNode:
        """Duplicate native bytes and extra properties within this projection."""
        source_relative, source_native, target_relative, target_native = self._prepare_transfer(source, target)
        with self._translate_os_errors(source):
            if source_native.is_dir():
                shutil.copytree(source_native, target_native)
            else:
                shutil.copy2(source_native, target_native)
            self.store.copy(source_relative, target_relative)
        log.debug("copied %s -> %s", source, target)
        return self._require_node(self.mapper.address_for(target_relative))

    def move(self, source: str, target: str) -> LogicalNode:
        """Rename the native entry and its sidecars without rewriting bytes."""
        source_relative, _, target_relative, target_native = self._prepare_transfer(source, target)
        with self._translate_os_errors(source):
            os.replace(self.mapper.native_path_for(source_relative), target_native)
            self.store.move(source_relative, target_relative)
        log.debug("moved %s -> %s", source, target)
        return self._require_node(self.mapper.address_for(target_relative))

    def shares_native_tree(self, other: ProjectionConnector) -> bool:
        """Return whether both native roots are equal or nested, so entries can be renamed between them."""
        return (
            self.native_root == other.native_root
            or self.native_root.is_relative_to(other.native_root)
            or other.native_root.is_relative_to(self.native_root)
        )

    def move_from(self, origin: ProjectionConnector, source: str, target: str) -> LogicalNode:
        """Rename ``source`` of ``origin`` into this projection at ``target``.

        Both projections must share a native tree and a sidecar kind; extra
        properties follow the entry into this projection's side-store.
        """
        origin._require_writable(source)
        source_relative, source_native, target_relative, target_native = self._prepare_transfer(
            source,
            target,
            origin,
        )
        with self._translate_os_errors(source):
            extras = [(resource, origin.store.get(source_relative, resource)) for resource in (False, True)]
            os.replace(source_native, target_native)
            for resource, properties in extras:
                if properties:
                    self.store.set(target_relative, properties, resource)
            origin.store.remove(source_relative)
        log.debug("moved %s -> %s by native rename", source, target)
        return self._require_node(self.mapper.address_for(target_relative))

    def _require_node(self, address: str) -> LogicalNode:
        node = self.lookup_by_address(address)
        if not isinstance(node, (FolderNode, FileNode)):
            raise NodeNotFound(f"no node at {address}", address=address)
        return node

    # Monitoring --------------------------------------------------------

    def start_monitoring(self) -> None:
        self.monitor.start(self.native_root, self.mapper, self.store)

    def stop_monitoring(self) -> None:
        self.monitor.stop(self.native_root, mount_address=self.mount_address)

    @property
    def monitor_state(self) -> MonitorState:
        return self.monitor.state(self.native_root, self.mount_address)

    def subscribe(self, callback: Callable[[ChangeEvent], None] | None = None) -> Subscription:
        return self.monitor.subscribe(callback)

    def close(self) -> None:
        if self.monitor_state != MonitorState.STOPPED:
            self.stop_monitoring()


def _error_path(exc: OSError) -> Path | None:
    return Path(exc.filename) if exc.filename else None


def _write_binary(native: Path, binary: BinarySource) -> None:
    if isinstance(binary, (bytes, bytearray)):
        native.write_bytes(bytes(binary))
        return
    if isinstance(binary, (BinaryHandle, InternalBinary)):
        if isinstance(binary, BinaryHandle) and binary.path == native:
            return
        source = binary.open()
    else:
        source = contextlib.nullcontext(binary)
    with source as stream, open(native, "wb") as out:
        for block in iter_file_blocks(stream):
            out.write(block)


__all__ = [
    "NodeContent",
    "ProjectionConnector",
    "native_name",
    "split_extra_properties",
]
