"""Lock-guarded table of per-directory native watches for one watched root."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers.api import BaseObserver, ObservedWatch

log = logging.getLogger(__name__)


class WatchRegistry:
    """Map native directories to their non-recursive watchdog watches.

    Registration and removal may race between the thread that starts or
    stops monitoring and the observer thread that extends coverage to new
    sub-directories; every table access happens under one lock.
    """

    def __init__(self, observer: BaseObserver, handler: FileSystemEventHandler) -> None:
        self._observer = observer
        self._handler = handler
        self._watches: dict[Path, ObservedWatch] = {}
        self._lock = threading.Lock()

    def __contains__(self, directory: object) -> bool:
        with self._lock:
            return directory in self._watches

    def __len__(self) -> int:
        with self._lock:
            return len(self._watches)

    def paths(self) -> list[Path]:
        with self._lock:
            return sorted(self._watches, key=str)

    def add(self, directory: Path) -> bool:
        """Watch ``directory``; returns ``False`` when already watched.

        Raises ``OSError`` when the native watch cannot be registered.
        """
        with self._lock:
            if directory in self._watches:
                return False
            watch = self._observer.schedule(self._handler, str(directory), recursive=False)
            self._watches[directory] = watch
        log.debug("watching %s", directory)
        return True

    def remove_tree(self, directory: Path) -> list[Path]:
        """Drop watches for ``directory`` and everything below it."""
        with self._lock:
            doomed = [
                path for path in self._watches
                if path == directory or path.is_relative_to(directory)
            ]
            watches = [self._watches.pop(path) for path in doomed]
        for watch in watches:
            self._unschedule(watch)
        return doomed

    def clear(self) -> None:
        with self._lock:
            watches = list(self._watches.values())
            self._watches.clear()
        for watch in watches:
            self._unschedule(watch)

    def _unschedule(self, watch: ObservedWatch) -> None:
        # The emitter of a deleted directory stops itself; unscheduling it
        # afterwards reports the watch as unknown.
        try:
            self._observer.unschedule(watch)
        except (KeyError, OSError) as exc:
            log.debug("watch for %s already gone: %s", watch.path, exc)


__all__ = ["WatchRegistry"]
