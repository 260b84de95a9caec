"""Filesystem change monitor translating native events into change events.

Each watched root owns one watchdog observer, one ``WatchRegistry`` of
non-recursive directory watches and one delivery thread. Native callbacks
only classify events and push them onto a bounded queue; subscribers are
invoked from the delivery thread.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from enum import Enum
from pathlib import Path
from queue import Empty, Full, Queue

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from ..errors import MonitorError
from ..extra_properties.store import ExtraPropertyStore
from ..mapping.path_mapper import PathMapper
from ..model.types import (
    CONTENT_NODE_NAME,
    DATA,
    LAST_MODIFIED,
    ChangeEvent,
    ChangeKind,
    ExtraPropertyStoreKind,
    join_address,
    normalize_address,
)
from .registry import WatchRegistry

log = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1024
QUEUE_POLL_SECONDS = 0.1
DEFAULT_STOP_TIMEOUT_SECONDS = 2.0
DEFAULT_ERROR_HISTORY = 256

ChangeCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[MonitorError], None]


class MonitorState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    WATCHING = "watching"


class Subscription:
    """Handle for one subscriber.

    Without a callback the subscription buffers events itself; read them
    with ``get``/``drain`` or by iterating.
    """

    def __init__(self, monitor: ChangeMonitor, callback: ChangeCallback | None = None) -> None:
        self._monitor = monitor
        self._buffer: Queue[ChangeEvent] | None = None
        if callback is None:
            self._buffer = Queue()
            callback = self._buffer.put
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        self.active = False
        self._monitor._remove_subscription(self)

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        if self._buffer is None:
            raise RuntimeError("subscription delivers to a callback")
        try:
            return self._buffer.get(timeout=timeout)
        except Empty:
            return None

    def drain(self) -> list[ChangeEvent]:
        out: list[ChangeEvent] = []
        while True:
            event = self.get(timeout=0) if self._buffer is not None else None
            if event is None:
                return out
            out.append(event)

    def __iter__(self) -> Iterator[ChangeEvent]:
        while self.active:
            event = self.get(timeout=QUEUE_POLL_SECONDS)
            if event is not None:
                yield event


class _RootEventHandler(FileSystemEventHandler):
    def __init__(self, watched: _WatchedRoot) -> None:
        super().__init__()
        self._watched = watched

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._watched.handle_native_event(event)


class _WatchedRoot:
    """Monitoring state for one native root."""

    def __init__(
        self,
        monitor: ChangeMonitor,
        mapper: PathMapper,
        store: ExtraPropertyStore,
        queue_size: int,
        observer_factory: Callable[[], BaseObserver],
    ) -> None:
        self.monitor = monitor
        self.mapper = mapper
        self.store = store
        self.root = mapper.native_root
        self.state = MonitorState.STOPPED
        self._queue: Queue[ChangeEvent] = Queue(maxsize=max(1, queue_size))
        self._observer = observer_factory()
        self._registry = WatchRegistry(self._observer, _RootEventHandler(self))
        self._known: set[str] = set()
        self._known_lock = threading.Lock()
        self._stopping = threading.Event()
        self._delivery: threading.Thread | None = None

    # Lifecycle --------------------------------------------------------

    def start(self) -> None:
        self.state = MonitorState.STARTING
        # A running observer starts each emitter inside schedule(), so a
        # failing sub-directory watch surfaces in _register_directory.
        self._observer.start()
        try:
            self._registry.add(self.root)
        except OSError as exc:
            raise MonitorError(f"cannot watch {self.root}: {exc}", path=self.root) from exc
        self._register_tree(self.root, emit=False)
        self._delivery = threading.Thread(
            target=self._deliver_loop,
            name=f"fsconnector-monitor-{self.mapper.projection_name}",
            daemon=True,
        )
        self._delivery.start()
        self.state = MonitorState.WATCHING
        log.info("monitoring %s (%d directories)", self.root, len(self._registry))

    def stop(self, timeout: float) -> None:
        self._stopping.set()
        self._registry.clear()
        self._observer.stop()
        if self._observer.is_alive() and threading.current_thread() is not self._observer:
            self._observer.join(timeout)
        if self._delivery is not None and threading.current_thread() is not self._delivery:
            self._delivery.join(timeout)
        self.state = MonitorState.STOPPED
        log.info("stopped monitoring %s", self.root)

    def watched_directories(self) -> list[Path]:
        return self._registry.paths()

    # Native callbacks (observer thread) -------------------------------

    def handle_native_event(self, event: FileSystemEvent) -> None:
        if self._stopping.is_set():
            return
        src = Path(os.fsdecode(event.src_path))
        if event.event_type == EVENT_TYPE_CREATED:
            self._on_created(src, event.is_directory)
        elif event.event_type == EVENT_TYPE_DELETED:
            self._on_deleted(src, event.is_directory)
        elif event.event_type == EVENT_TYPE_MODIFIED:
            if not event.is_directory:
                self._on_modified(src)
        elif event.event_type == EVENT_TYPE_MOVED:
            self._on_deleted(src, event.is_directory)
            self._on_created(Path(os.fsdecode(event.dest_path)), event.is_directory)

    def _relative_node_path(self, native: Path) -> str | None:
        """Return the relative path for a node event, or ``None`` to drop it."""
        relative = self.mapper.relative_path_of(native)
        if not relative:
            return None
        if self.mapper.is_reserved(relative):
            return None
        return relative

    def _sidecar_owner(self, native: Path) -> tuple[str, bool] | None:
        relative = self.mapper.relative_path_of(native)
        if relative is None or self.store.is_temp_name(native.name):
            return None
        if not self.store.is_reserved_name(native.name):
            return None
        return self.store.owner_of_sidecar(relative)

    def _on_created(self, native: Path, is_dir: bool) -> None:
        if self._emit_sidecar_change(native):
            return
        relative = self._relative_node_path(native)
        if relative is None or not self.mapper.is_visible(relative, is_dir):
            return
        if is_dir:
            # Watch before announcing so nothing created inside is missed.
            self._register_directory(native)
        if self._remember(relative):
            self._emit(ChangeKind.NODE_ADDED, self.mapper.address_for(relative), native)
        if is_dir:
            self._scan_new_directory(native)

    def _on_deleted(self, native: Path, is_dir: bool) -> None:
        if self._emit_sidecar_change(native):
            return
        relative = self._relative_node_path(native)
        if relative is None:
            return
        self._registry.remove_tree(native)
        if self._forget(relative):
            self._emit(ChangeKind.NODE_REMOVED, self.mapper.address_for(relative), native)

    def _on_modified(self, native: Path) -> None:
        if self._emit_sidecar_change(native):
            return
        relative = self._relative_node_path(native)
        if relative is None or not self.mapper.is_visible(relative, False):
            return
        if self._remember(relative):
            self._emit(ChangeKind.NODE_ADDED, self.mapper.address_for(relative), native)
        content = join_address(self.mapper.address_for(relative), CONTENT_NODE_NAME)
        self._emit(ChangeKind.PROPERTY_CHANGED, join_address(content, DATA), native)
        self._emit(ChangeKind.PROPERTY_CHANGED, join_address(content, LAST_MODIFIED), native)

    def _emit_sidecar_change(self, native: Path) -> bool:
        """Report sidecar writes as property changes on the owner; ``True`` when handled."""
        if self.store.is_temp_name(native.name):
            return True
        owner = self._sidecar_owner(native)
        if owner is None:
            return False
        owner_path, resource = owner
        owner_native = self.mapper.native_path_for(owner_path)
        if not self.mapper.is_visible(owner_path, owner_native.is_dir()):
            return True
        address = self.mapper.address_for(owner_path)
        if resource:
            address = join_address(address, CONTENT_NODE_NAME)
        self._emit(ChangeKind.PROPERTY_CHANGED, address, native)
        return True

    # Registration -----------------------------------------------------

    def _register_directory(self, directory: Path) -> bool:
        try:
            self._registry.add(directory)
        except OSError as exc:
            self.monitor._report_error(
                MonitorError(f"cannot watch {directory}: {exc}", path=directory),
            )
            return False
        return True

    def _register_tree(self, top: Path, *, emit: bool) -> None:
        """Watch ``top`` and every visible directory below it, seeding known entries."""
        self._register_directory(top)
        for current, dirnames, filenames in os.walk(top, onerror=self._walk_error):
            current_path = Path(current)
            kept_dirs: list[str] = []
            for name in dirnames:
                native = current_path / name
                relative = self._relative_node_path(native)
                if relative is None or not self.mapper.is_visible(relative, True):
                    continue
                kept_dirs.append(name)
                self._register_directory(native)
                if self._remember(relative) and emit:
                    self._emit(ChangeKind.NODE_ADDED, self.mapper.address_for(relative), native)
            dirnames[:] = kept_dirs
            for name in filenames:
                native = current_path / name
                relative = self._relative_node_path(native)
                if relative is None or not self.mapper.is_visible(relative, False):
                    continue
                if self._remember(relative) and emit:
                    self._emit(ChangeKind.NODE_ADDED, self.mapper.address_for(relative), native)

    def _scan_new_directory(self, directory: Path) -> None:
        self._register_tree(directory, emit=True)

    def _walk_error(self, exc: OSError) -> None:
        path = Path(exc.filename) if exc.filename else None
        self.monitor._report_error(MonitorError(f"cannot scan {path}: {exc}", path=path))

    # Known entries ----------------------------------------------------

    def _remember(self, relative: str) -> bool:
        with self._known_lock:
            if relative in self._known:
                return False
            self._known.add(relative)
            return True

    def _forget(self, relative: str) -> bool:
        prefix = relative + "/"
        with self._known_lock:
            present = relative in self._known
            self._known.discard(relative)
            self._known = {path for path in self._known if not path.startswith(prefix)}
        return present

    # Delivery ---------------------------------------------------------

    def _emit(self, kind: ChangeKind, address: str, native: Path) -> None:
        event = ChangeEvent(kind=kind, logical_address=address, native_path=native, timestamp=time.time())
        log.debug("%s %s", kind.value, address)
        while not self._stopping.is_set():
            try:
                self._queue.put(event, timeout=QUEUE_POLL_SECONDS)
                return
            except Full:
                continue

    def _deliver_loop(self) -> None:
        while True:
            try:
                event = self._queue.get(timeout=QUEUE_POLL_SECONDS)
            except Empty:
                if self._stopping.is_set():
                    return
                continue
            self.monitor._deliver(event)


class ChangeMonitor:
    """Watch native roots and fan change events out to subscribers.

    Watches are keyed by ``(native root, mount address)``: two projections
    of the same directory each get their own observer and their own
    logical addresses.
    """

    def __init__(
        self,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        observer_factory: Callable[[], BaseObserver] = Observer,
        error_history: int = DEFAULT_ERROR_HISTORY,
    ) -> None:
        self.queue_size = queue_size
        self._observer_factory = observer_factory
        self._roots: dict[tuple[Path, str], _WatchedRoot] = {}
        self._roots_lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._error_listeners: list[ErrorCallback] = []
        self._subscribers_lock = threading.Lock()
        self.errors: deque[MonitorError] = deque(maxlen=error_history)

    def __enter__(self) -> ChangeMonitor:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    # Lifecycle --------------------------------------------------------

    def _matching(self, root: Path, mount_address: str | None) -> list[tuple[Path, str]]:
        root = Path(root).resolve()
        mount = None if mount_address is None else normalize_address(mount_address)
        return sorted(
            (key for key in self._roots if key[0] == root and (mount is None or key[1] == mount)),
            key=lambda key: key[1],
        )

    def start(
        self,
        root: Path,
        mapper: PathMapper | None = None,
        store: ExtraPropertyStore | None = None,
    ) -> None:
        """Begin watching ``root`` for ``mapper``'s mount; a no-op when already watched.

        ``mapper`` defines filtering and logical addresses; by default the
        root is mapped to ``/`` without filters. Raises ``MonitorError``
        when the root itself cannot be watched.
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise NotADirectoryError(f"cannot monitor {root}: not a directory")
        if mapper is None:
            mapper = PathMapper(str(root), root, "/")
        if store is None:
            store = ExtraPropertyStore(ExtraPropertyStoreKind.NONE, root)
        key = (root, mapper.mount_address)
        with self._roots_lock:
            existing = self._roots.get(key)
            if existing is not None and existing.state != MonitorState.STOPPED:
                return
            watched = _WatchedRoot(self, mapper, store, self.queue_size, self._observer_factory)
            self._roots[key] = watched
            try:
                watched.start()
            except Exception:
                del self._roots[key]
                watched.stop(DEFAULT_STOP_TIMEOUT_SECONDS)
                raise

    def stop(
        self,
        root: Path | None = None,
        timeout: float = DEFAULT_STOP_TIMEOUT_SECONDS,
        *,
        mount_address: str | None = None,
    ) -> None:
        """Stop watches of ``root`` (one mount when given), or everything when ``root`` is ``None``."""
        with self._roots_lock:
            if root is None:
                targets = list(self._roots.values())
                self._roots.clear()
            else:
                targets = [self._roots.pop(key) for key in self._matching(root, mount_address)]
        for watched in targets:
            watched.stop(timeout)

    def state(self, root: Path, mount_address: str | None = None) -> MonitorState:
        with self._roots_lock:
            keys = self._matching(root, mount_address)
            states = [self._roots[key].state for key in keys]
        if MonitorState.WATCHING in states:
            return MonitorState.WATCHING
        return states[0] if states else MonitorState.STOPPED

    def watched_roots(self) -> list[Path]:
        with self._roots_lock:
            return sorted({key[0] for key in self._roots}, key=str)

    def watched_directories(self, root: Path, mount_address: str | None = None) -> list[Path]:
        with self._roots_lock:
            watched = [self._roots[key] for key in self._matching(root, mount_address)]
        directories: set[Path] = set()
        for entry in watched:
            directories.update(entry.watched_directories())
        return sorted(directories, key=str)

    # Subscribers ------------------------------------------------------

    def subscribe(self, callback: ChangeCallback | None = None) -> Subscription:
        subscription = Subscription(self, callback)
        with self._subscribers_lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        with self._subscribers_lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def add_error_listener(self, callback: ErrorCallback) -> None:
        with self._subscribers_lock:
            self._error_listeners.append(callback)

    def _deliver(self, event: ChangeEvent) -> None:
        with self._subscribers_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if not subscription.active:
                continue
            try:
                subscription.callback(event)
            except Exception:
                log.exception("change subscriber failed for %s", event.logical_address)

    def _report_error(self, error: MonitorError) -> None:
        log.warning("%s", error)
        with self._subscribers_lock:
            self.errors.append(error)
            listeners = list(self._error_listeners)
        for listener in listeners:
            try:
                listener(error)
            except Exception:
                log.exception("monitor error listener failed")


__all__ = [
    "DEFAULT_ERROR_HISTORY",
    "DEFAULT_QUEUE_SIZE",
    "MonitorState",
    "Subscription",
    "ChangeMonitor",
]
