"""Extra-property side-store selected per projection.

The store is one class dispatching over a closed set of kinds
(``none | json | legacy``). The sidecar kinds keep one file per owner next
to the owner: ``<dir>/<name><extension>`` for the owner node itself and
``<dir>/<name><resource_extension>`` for its content node. The projection
root keeps its sidecars inside the root, named by the bare extension.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from ..errors import UnsupportedOperation
from ..model.types import ExtraPropertyStoreKind, PropertyValue
from .atomic import atomic_write_bytes, is_temp_name_for
from .codecs import dump_json, dump_legacy, load_json, load_legacy, validate_properties

log = logging.getLogger(__name__)

SIDECAR_MARKER = ".modeshape"


@dataclass(frozen=True)
class SidecarFormat:
    """File naming and serialization for one sidecar kind."""

    kind: ExtraPropertyStoreKind
    extension: str
    resource_extension: str
    dump: Callable[[Mapping[str, PropertyValue]], bytes]
    load: Callable[[bytes], dict[str, PropertyValue]]


JSON_SIDECAR = SidecarFormat(
    kind=ExtraPropertyStoreKind.JSON,
    extension=".modeshape.json",
    resource_extension=".modeshape.content.json",
    dump=dump_json,
    load=load_json,
)

LEGACY_SIDECAR = SidecarFormat(
    kind=ExtraPropertyStoreKind.LEGACY,
    extension=".modeshape",
    resource_extension=".content.modeshape",
    dump=dump_legacy,
    load=load_legacy,
)

SIDECAR_FORMATS: dict[ExtraPropertyStoreKind, SidecarFormat] = {
    ExtraPropertyStoreKind.JSON: JSON_SIDECAR,
    ExtraPropertyStoreKind.LEGACY: LEGACY_SIDECAR,
}


class ExtraPropertyStore:
    """Persist properties that plain file bytes cannot carry.

    Properties are keyed by the owner's projection-relative path; the
    ``resource`` flag selects the owner's content node instead of the owner
    itself. Failures of the underlying filesystem propagate as ``OSError``.
    """

    def __init__(self, kind: ExtraPropertyStoreKind | str, native_root: Path) -> None:
        self.kind = ExtraPropertyStoreKind(kind)
        self.native_root = Path(native_root).resolve()
        self.format: SidecarFormat | None = SIDECAR_FORMATS.get(self.kind)

    @property
    def supports_properties(self) -> bool:
        return self.format is not None

    # Naming -----------------------------------------------------------

    def is_reserved_name(self, name: str) -> bool:
        """Return whether ``name`` is a sidecar or sidecar temp file of this kind."""
        fmt = self.format
        if fmt is None:
            return False
        if name.endswith(fmt.extension) or name.endswith(fmt.resource_extension):
            return True
        return is_temp_name_for(name, SIDECAR_MARKER)

    def is_temp_name(self, name: str) -> bool:
        return self.format is not None and is_temp_name_for(name, SIDECAR_MARKER)

    def owner_of_sidecar(self, relative_path: str) -> tuple[str, bool] | None:
        """Map a sidecar's relative path to ``(owner_relative_path, resource)``."""
        fmt = self.format
        if fmt is None or not relative_path:
            return None
        parent, _, name = relative_path.rpartition("/")
        for extension, resource in ((fmt.resource_extension, True), (fmt.extension, False)):
            if not name.endswith(extension):
                continue
            owner_name = name[: -len(extension)]
            if not owner_name:
                # Root sidecars live directly inside the root.
                return ("", resource) if not parent else None
            return (f"{parent}/{owner_name}" if parent else owner_name, resource)
        return None

    def sidecar_path(self, relative_path: str, resource: bool = False) -> Path:
        fmt = self.format
        if fmt is None:
            raise UnsupportedOperation(f"extra properties are disabled ({self.kind.value})")
        extension = fmt.resource_extension if resource else fmt.extension
        if not relative_path:
            return self.native_root / extension
        owner = self.native_root.joinpath(*relative_path.split("/"))
        return owner.with_name(owner.name + extension)

    def sidecar_paths(self, relative_path: str) -> list[Path]:
        if self.format is None:
            return []
        return [self.sidecar_path(relative_path, False), self.sidecar_path(relative_path, True)]

    # Contract ---------------------------------------------------------

    def get(self, relative_path: str, resource: bool = False) -> dict[str, PropertyValue]:
        """Return stored properties for the owner, or an empty dict."""
        fmt = self.format
        if fmt is None:
            return {}
        path = self.sidecar_path(relative_path, resource)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return {}
        try:
            return fmt.load(data)
        except ValueError as exc:
            log.warning("ignoring unreadable sidecar %s: %s", path, exc)
            return {}

    def set(
        self,
        relative_path: str,
        properties: Mapping[str, object],
        resource: bool = False,
    ) -> None:
        """Replace the owner's stored properties; an empty mapping removes them."""
        fmt = self.format
        if fmt is None:
            if properties:
                raise UnsupportedOperation(
                    f"cannot store extra properties {sorted(properties)} with store kind 'none'",
                )
            return
        cleaned = validate_properties(properties)
        path = self.sidecar_path(relative_path, resource)
        if not cleaned:
            self._unlink(path)
            return
        atomic_write_bytes(path, fmt.dump(cleaned))
        log.debug("wrote %d extra properties to %s", len(cleaned), path)

    def update(
        self,
        relative_path: str,
        changes: Mapping[str, object | None],
        resource: bool = False,
    ) -> dict[str, PropertyValue]:
        """Merge ``changes`` into stored properties; ``None`` values delete names."""
        current = self.get(relative_path, resource)
        for name, value in changes.items():
            if value is None:
                current.pop(name, None)
            else:
                current[name] = value  # type: ignore[assignment]
        self.set(relative_path, current, resource)
        return current

    def remove(self, relative_path: str) -> None:
        """Remove both sidecars of an owner. Missing sidecars are fine."""
        for path in self.sidecar_paths(relative_path):
            self._unlink(path)

    def move(self, source: str, target: str) -> None:
        """Rename the owner's sidecars after the owner itself was renamed."""
        if self.format is None:
            return
        for resource in (False, True):
            try:
                os.replace(self.sidecar_path(source, resource), self.sidecar_path(target, resource))
            except FileNotFoundError:
                continue

    def copy(self, source: str, target: str) -> None:
        if self.format is None:
            return
        for resource in (False, True):
            try:
                data = self.sidecar_path(source, resource).read_bytes()
            except FileNotFoundError:
                continue
            atomic_write_bytes(self.sidecar_path(target, resource), data)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


__all__ = [
    "SIDECAR_MARKER",
    "SidecarFormat",
    "JSON_SIDECAR",
    "LEGACY_SIDECAR",
    "SIDECAR_FORMATS",
    "ExtraPropertyStore",
]
