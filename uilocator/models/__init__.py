"""Data models for uilocator."""

from uilocator.models.hierarchy import (
    Bounds,
    ElementMetadata,
    HierarchyNode,
    LocatorCandidate,
    LocatorStrategy,
)

__all__ = [
    "Bounds",
    "ElementMetadata",
    "HierarchyNode",
    "LocatorCandidate",
    "LocatorStrategy",
]
