"""UI hierarchy data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

LocatorStrategy = Literal["accessibilityId", "id", "text", "xpath"]


@dataclass(frozen=True)
class Bounds:
    """Element rectangle parsed from a "[x1,y1][x2,y2]" bounds attribute."""

    x1: int
    y1: int
    x2: int
    y2: int
    width: int
    height: int
    area: int
    cx: int
    cy: int

    @classmethod
    def from_corners(cls, x1: int, y1: int, x2: int, y2: int) -> Bounds:
        """Build bounds from two corners.

        Width and height are floored at 0 so inverted corners never
        produce a negative size.
        """
        width = max(0, x2 - x1)
        height = max(0, y2 - y1)
        return cls(
            x1=x1,
            y1=y1,
            x2=x2,
            y2=y2,
            width=width,
            height=height,
            area=width * height,
            cx=(x1 + x2) // 2,
            cy=(y1 + y2) // 2,
        )


@dataclass
class HierarchyNode:
    """Single node of a parsed hierarchy.

    Nodes live in a flat list; relationships are index references into
    that list, so the structure is acyclic by construction.
    """

    index: int
    parent_index: int
    depth: int
    attrs: dict[str, str] = field(default_factory=dict)
    bounds: Bounds | None = None

    def attr(self, key: str) -> str:
        """Get attribute value, empty string when missing."""
        value = self.attrs.get(key)
        return "" if value is None else str(value)

    def flag(self, key: str) -> bool:
        """Check a "true"/"false" attribute."""
        return self.attr(key) == "true"


@dataclass
class ElementMetadata:
    """Normalized projection of node attributes.

    Every field is a string and defaults to "" (never None).
    """

    resource_id: str = ""
    text: str = ""
    class_name: str = ""
    content_desc: str = ""
    bounds: str = ""
    clickable: str = ""
    enabled: str = ""
    focusable: str = ""
    focused: str = ""
    editable: str = ""
    scrollable: str = ""
    visible_to_user: str = ""
    package: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElementMetadata:
        """Build metadata from a dict with snake_case, camelCase or recorded-step keys.

        The first non-empty value wins when several keys name the same field.
        """
        aliases = {
            "resourceId": "resource_id",
            "elementId": "resource_id",
            "elementText": "text",
            "elementClass": "class_name",
            "elementContentDesc": "content_desc",
            "resource-id": "resource_id",
            "class": "class_name",
            "contentDesc": "content_desc",
            "content-desc": "content_desc",
            "visibleToUser": "visible_to_user",
            "visible-to-user": "visible_to_user",
        }
        known = set(cls.__dataclass_fields__)
        values: dict[str, str] = {}
        for key, value in data.items():
            name = aliases.get(key, key)
            if name in known and value is not None and not values.get(name):
                values[name] = str(value)
        return cls(**values)


@dataclass
class LocatorCandidate:
    """A proposed element locator with its reliability score."""

    strategy: LocatorStrategy
    value: str
    score: float
    source: str = "inspector"
    reason: str = ""
    match_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "value": self.value,
            "score": self.score,
            "source": self.source,
            "reason": self.reason,
            "matchCount": self.match_count,
        }
