"""Persistent JSON configuration of projections.

The config file lives in the per-user config directory. Reading is
defensive: a missing or malformed file yields no projections, and malformed
projection entries are skipped with a warning.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir

from .errors import ConfigurationError
from .extra_properties.atomic import atomic_write_bytes
from .model.types import (
    DEFAULT_LARGE_FILE_THRESHOLD,
    DEFAULT_PAGE_SIZE,
    BinaryStrategyKind,
    ExtraPropertyStoreKind,
    Projection,
    normalize_address,
)

log = logging.getLogger(__name__)

APP_NAME = "fsconnector"
CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_PATH = DEFAULT_CONFIG_PATH

# camelCase names used by host-side mount configuration.
KEY_ALIASES = {
    "mountAddress": "mount_address",
    "nativeRootPath": "native_root",
    "native_root_path": "native_root",
    "readOnly": "read_only",
    "inclusionFilter": "inclusion_filter",
    "exclusionFilter": "exclusion_filter",
    "extraPropertyStoreKind": "extra_properties",
    "extra_property_store_kind": "extra_properties",
    "binaryStrategyKind": "binary_strategy",
    "binary_strategy_kind": "binary_strategy",
    "pagingPageSize": "page_size",
    "largeFileThreshold": "large_file_threshold",
}


def load_config(path: Path | None = None) -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    config_path = path or CONFIG_PATH
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        log.warning("ignoring unreadable config %s: %s", config_path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object], path: Path | None = None) -> None:
    """Persist config data as pretty-printed JSON, replacing the file atomically."""
    config_path = path or CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_bytes(config_path, (json.dumps(data, indent=2) + "\n").encode("utf-8"))


def _patterns(value: object, key: str) -> tuple[str, ...]:
    """Accept one glob string or a list of glob strings."""
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(item for item in value if item)
    raise ConfigurationError(f"{key} must be a glob string or a list of glob strings")


def _positive_int(value: object, key: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(f"{key} must be a non-negative integer, got {value!r}")
    return value


def _flag(value: object, key: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a boolean, got {value!r}")
    return value


@dataclass(frozen=True)
class ProjectionConfig:
    """Validated mount configuration, convertible into a ``Projection``."""

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

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> ProjectionConfig:
        """Validate one config entry; raises ``ConfigurationError`` when malformed."""
        data = {KEY_ALIASES.get(key, key): value for key, value in raw.items()}
        name = data.get("name")
        mount_address = data.get("mount_address")
        native_root = data.get("native_root")
        if not isinstance(name, str) or not name:
            raise ConfigurationError("projection needs a non-empty 'name'")
        if not isinstance(mount_address, str) or not mount_address.startswith("/"):
            raise ConfigurationError(f"projection {name!r} needs an absolute 'mount_address'")
        if not isinstance(native_root, str) or not native_root:
            raise ConfigurationError(f"projection {name!r} needs a 'native_root' path")
        try:
            extra_properties = ExtraPropertyStoreKind(data.get("extra_properties") or "json")
            binary_strategy = BinaryStrategyKind(data.get("binary_strategy") or "content")
        except ValueError as exc:
            raise ConfigurationError(f"projection {name!r}: {exc}") from exc
        return cls(
            name=name,
            mount_address=normalize_address(mount_address),
            native_root=Path(native_root).expanduser(),
            read_only=_flag(data.get("read_only"), "read_only"),
            inclusion_filter=_patterns(data.get("inclusion_filter"), "inclusion_filter"),
            exclusion_filter=_patterns(data.get("exclusion_filter"), "exclusion_filter"),
            extra_properties=extra_properties,
            binary_strategy=binary_strategy,
            page_size=_positive_int(data.get("page_size"), "page_size", DEFAULT_PAGE_SIZE),
            large_file_threshold=_positive_int(
                data.get("large_file_threshold"),
                "large_file_threshold",
                DEFAULT_LARGE_FILE_THRESHOLD,
            ),
            monitor=_flag(data.get("monitor"), "monitor"),
        )

    def to_projection(self) -> Projection:
        return Projection(
            name=self.name,
            mount_address=self.mount_address,
            native_root=self.native_root,
            read_only=self.read_only,
            inclusion_filter=self.inclusion_filter,
            exclusion_filter=self.exclusion_filter,
            extra_properties=self.extra_properties,
            binary_strategy=self.binary_strategy,
            page_size=self.page_size,
            large_file_threshold=self.large_file_threshold,
            monitor=self.monitor,
        )

    def to_mapping(self) -> dict[str, object]:
        return {
            "name": self.name,
            "mount_address": self.mount_address,
            "native_root": str(self.native_root),
            "read_only": self.read_only,
            "inclusion_filter": list(self.inclusion_filter),
            "exclusion_filter": list(self.exclusion_filter),
            "extra_properties": self.extra_properties.value,
            "binary_strategy": self.binary_strategy.value,
            "page_size": self.page_size,
            "large_file_threshold": self.large_file_threshold,
            "monitor": self.monitor,
        }


def load_projection_configs(path: Path | None = None) -> list[ProjectionConfig]:
    """Return valid projection entries; malformed ones are logged and skipped."""
    raw_entries = load_config(path).get("projections")
    if not isinstance(raw_entries, list):
        return []
    configs: list[ProjectionConfig] = []
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            log.warning("skipping projection entry %d: not an object", index)
            continue
        try:
            configs.append(ProjectionConfig.from_mapping(raw))
        except ConfigurationError as exc:
            log.warning("skipping projection entry %d: %s", index, exc)
    return configs


def save_projection_configs(configs: list[ProjectionConfig], path: Path | None = None) -> None:
    config = load_config(path)
    config["projections"] = [entry.to_mapping() for entry in configs]
    save_config(config, path)


__all__ = [
    "APP_NAME",
    "CONFIG_FILENAME",
    "CONFIG_PATH",
    "DEFAULT_CONFIG_PATH",
    "ProjectionConfig",
    "load_config",
    "save_config",
    "load_projection_configs",
    "save_projection_configs",
]
