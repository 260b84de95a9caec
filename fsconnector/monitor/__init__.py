"""Native filesystem change monitoring."""

from __future__ import annotations

from .monitor import DEFAULT_QUEUE_SIZE, ChangeMonitor, MonitorState, Subscription
from .registry import WatchRegistry

__all__ = [
    "DEFAULT_QUEUE_SIZE",
    "ChangeMonitor",
    "MonitorState",
    "Subscription",
    "WatchRegistry",
]
