"""Error taxonomy shared by every connector layer.

Lower layers raise plain ``OSError``; ``ProjectionConnector`` is the only
place that converts those into the host-facing errors defined here.
"""

from __future__ import annotations

from pathlib import Path


class ConnectorError(Exception):
    """Base class for all connector failures."""

    def __init__(self, message: str, *, address: str | None = None, path: Path | None = None) -> None:
        super().__init__(message)
        self.address = address
        self.path = path


class NodeNotFound(ConnectorError):
    """No native entry at the resolved path, or the path is filtered out."""


class ReadOnlyViolation(ConnectorError):
    """A mutating call reached a read-only projection."""


class IOFailure(ConnectorError):
    """The underlying disk operation failed."""


class UnsupportedOperation(ConnectorError):
    """Extra-property write against a projection without a property store."""


class StaleHandle(ConnectorError):
    """A binary handle no longer resolves to the bytes it was created for."""


class ConfigurationError(ConnectorError):
    """Projection configuration is invalid or conflicts with another mount."""


class MonitorError(ConnectorError):
    """A watch could not be registered for a directory under a watched root."""


__all__ = [
    "ConnectorError",
    "NodeNotFound",
    "ReadOnlyViolation",
    "IOFailure",
    "UnsupportedOperation",
    "StaleHandle",
    "ConfigurationError",
    "MonitorError",
]
