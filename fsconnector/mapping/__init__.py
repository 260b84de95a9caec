"""Path-to-node identity mapping and inclusion/exclusion filtering."""

from __future__ import annotations

from .filters import GlobPattern, PathFilter, is_visible
from .path_mapper import PathMapper, projection_id_prefix

__all__ = [
    "GlobPattern",
    "PathFilter",
    "is_visible",
    "PathMapper",
    "projection_id_prefix",
]
