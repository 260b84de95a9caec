"""Public package surface for fsconnector.

Projects native directory subtrees into a logical node tree. Exports the
connector, the federation and the model types; ``main`` runs the CLI.
"""

from __future__ import annotations

from .connector import NodeContent, ProjectionConnector
from .errors import (
    ConfigurationError,
    ConnectorError,
    IOFailure,
    MonitorError,
    NodeNotFound,
    ReadOnlyViolation,
    StaleHandle,
    UnsupportedOperation,
)
from .federation import Federation
from .host import MemoryHostStore
from .model import (
    BinaryStrategyKind,
    ChangeEvent,
    ChangeKind,
    ExtraPropertyStoreKind,
    Projection,
)
from .monitor import ChangeMonitor, MonitorState


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)


__all__ = [
    "main",
    "NodeContent",
    "ProjectionConnector",
    "Federation",
    "MemoryHostStore",
    "ChangeMonitor",
    "MonitorState",
    "BinaryStrategyKind",
    "ChangeEvent",
    "ChangeKind",
    "ExtraPropertyStoreKind",
    "Projection",
    "ConnectorError",
    "ConfigurationError",
    "IOFailure",
    "MonitorError",
    "NodeNotFound",
    "ReadOnlyViolation",
    "StaleHandle",
    "UnsupportedOperation",
]
