"""Point inspection: hierarchy -> element -> ranked locator bundle."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from uilocator.core.fingerprint import element_fingerprint, to_element_metadata
from uilocator.core.hierarchy_controller import HierarchyController
from uilocator.core.hierarchy_parser import parse_hierarchy
from uilocator.core.locator_scorer import (
    DEFAULT_RULES,
    DynamicTextRules,
    score_locator_candidates,
)
from uilocator.core.point_resolver import DEFAULT_RADIUS, resolve_at
from uilocator.core.xpath_builder import find_xpath_matches, score_xpath_candidates
from uilocator.models.hierarchy import ElementMetadata, HierarchyNode, LocatorCandidate

logger = logging.getLogger(__name__)

INSPECT_TOLERANCE = 8
BUNDLE_VERSION = 1
MAX_FALLBACKS = 4


@dataclass
class InspectionResult:
    """Outcome of inspecting a screen point."""

    x: float
    y: float
    device_id: str | None
    element: ElementMetadata | None = None
    fingerprint: str = ""
    locators: list[LocatorCandidate] = field(default_factory=list)
    best: LocatorCandidate | None = None
    reliability: int = 0
    resolved_by: str = "coordinates"
    node_count: int = 0
    hierarchy_available: bool = False

    @property
    def smart_xpath(self) -> str:
        """Best XPath locator value, or "" if none was produced."""
        for locator in self.locators:
            if locator.strategy == "xpath":
                return locator.value
        return ""

    @property
    def bundle(self) -> dict[str, Any] | None:
        """Portable locator bundle: primary plus a few fallbacks."""
        if self.best is None:
            return None
        return {
            "version": BUNDLE_VERSION,
            "fingerprint": self.fingerprint,
            "primary": self.best.to_dict(),
            "fallbacks": [loc.to_dict() for loc in self.locators[1:1 + MAX_FALLBACKS]],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "deviceId": self.device_id,
            "element": self.element.to_dict() if self.element else None,
            "elementFingerprint": self.fingerprint,
            "locatorBundle": self.bundle,
            "locators": [loc.to_dict() for loc in self.locators],
            "best": self.best.to_dict() if self.best else None,
            "reliabilityScore": self.reliability,
            "smartXPath": self.smart_xpath,
            "resolvedBy": self.resolved_by,
            "nodeCount": self.node_count,
            "hierarchyAvailable": self.hierarchy_available,
        }


def _as_coordinate(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} coordinate must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} coordinate must be numeric, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"{name} coordinate must be finite, got {value!r}")
    return number


def _parent_resource_id(nodes: list[HierarchyNode], node: HierarchyNode) -> str:
    """Nearest ancestor resource-id, used as an XPath anchor."""
    index = node.parent_index
    while 0 <= index < len(nodes):
        parent = nodes[index]
        rid = parent.attr("resource-id")
        if rid:
            return rid
        index = parent.parent_index
    return ""


def merge_locators(*groups: list[LocatorCandidate]) -> list[LocatorCandidate]:
    """Concatenate locator lists, drop empty and duplicate (strategy, value) pairs, best first."""
    merged: list[LocatorCandidate] = []
    seen: set[tuple[str, str]] = set()
    for group in groups:
        for candidate in group:
            key = (candidate.strategy, candidate.value)
            if not candidate.value or key in seen:
                continue
            seen.add(key)
            merged.append(candidate)
    merged.sort(key=lambda c: c.score, reverse=True)
    return merged


def reliability_score(best: LocatorCandidate | None, has_element: bool) -> int:
    raw = (best.score if best else 0) * 0.9 + (10 if has_element else 0)
    return max(0, min(100, math.floor(raw + 0.5)))


class Inspector:
    """Turn a tap coordinate into element metadata and ranked locators.

    Usage:
        inspector = Inspector(HierarchyController(DeviceBridge()))
        result = inspector.inspect_at_point(540, 1200, device_id="emulator-5554")
        print(result.best.value if result.best else "no locator")
    """

    def __init__(
        self,
        controller: HierarchyController,
        tolerance: float = INSPECT_TOLERANCE,
        radius: float = DEFAULT_RADIUS,
        rules: DynamicTextRules = DEFAULT_RULES,
    ):
        self.controller = controller
        self.tolerance = tolerance
        self.radius = radius
        self.rules = rules

    def inspect_at_point(
        self,
        x: Any,
        y: Any,
        device_id: str | None = None,
        prefer_xpath: bool = False,
    ) -> InspectionResult:
        """Inspect the element under (x, y).

        Args:
            x: X coordinate in pixels
            y: Y coordinate in pixels
            device_id: adb serial, or None for the default device
            prefer_xpath: Re-resolve the element through a unique XPath
                match when one exists

        Returns:
            InspectionResult. When no hierarchy is available the result is
            empty with reliability 0.

        Raises:
            ValueError: If a coordinate is not numeric
        """
        px = _as_coordinate(x, "x")
        py = _as_coordinate(y, "y")

        xml = self.controller.acquire(device_id)
        if xml is None:
            logger.info("No hierarchy for inspection at (%s, %s)", px, py)
            return InspectionResult(x=px, y=py, device_id=device_id)

        nodes = parse_hierarchy(xml)
        node = resolve_at(nodes, px, py, tolerance=self.tolerance, radius=self.radius)
        element = to_element_metadata(node.attrs) if node else None
        parent_rid = _parent_resource_id(nodes, node) if node else ""
        resolved_by = "coordinates"

        xpath_locators = score_xpath_candidates(element, nodes, parent_rid)
        if prefer_xpath:
            unique = next((loc for loc in xpath_locators if loc.match_count == 1), None)
            if unique is not None:
                matches = find_xpath_matches(nodes, unique.value)
                if len(matches) == 1:
                    node = matches[0]
                    element = to_element_metadata(node.attrs)
                    parent_rid = _parent_resource_id(nodes, node)
                    resolved_by = "xpath"
                    xpath_locators = score_xpath_candidates(element, nodes, parent_rid)

        base_locators = score_locator_candidates(element, nodes, self.rules)
        merged = merge_locators(base_locators, xpath_locators)
        best = merged[0] if merged else None

        result = InspectionResult(
            x=px,
            y=py,
            device_id=device_id,
            element=element,
            fingerprint=element_fingerprint(element) if element else "",
            locators=merged,
            best=best,
            reliability=reliability_score(best, element is not None),
            resolved_by=resolved_by,
            node_count=len(nodes),
            hierarchy_available=True,
        )
        logger.debug(
            "Inspected (%s, %s): %d nodes, best=%s, reliability=%d",
            px, py, len(nodes), best.value if best else None, result.reliability,
        )
        return result
