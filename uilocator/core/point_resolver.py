"""Resolve a tap coordinate to the most plausible hierarchy node."""

import math

from uilocator.models.hierarchy import HierarchyNode

DEFAULT_TOLERANCE = 6
DEFAULT_RADIUS = 28


def _is_visible(node: HierarchyNode) -> bool:
    return node.flag("visible-to-user") or node.flag("visibleToUser")


def _is_interactive(node: HierarchyNode) -> bool:
    return node.flag("clickable") or node.flag("focusable") or node.flag("editable")


def quality_score(node: HierarchyNode) -> int:
    """Bonus for attributes that make an element identifiable."""
    score = 0
    if node.attr("resource-id"):
        score += 25
    if node.attr("content-desc"):
        score += 20
    if node.attr("text"):
        score += 10
    return score


def _containment_score(node: HierarchyNode) -> float:
    score: float = 0
    if _is_visible(node):
        score += 20
    if _is_interactive(node):
        score += 30
    if node.flag("editable"):
        score += 10
    score += quality_score(node)
    score += min(node.depth, 10) * 2
    # Prefer smaller elements without letting size dominate
    score -= min(node.bounds.area / 10000, 30)
    return score


def _distance_to_box(node: HierarchyNode, x: float, y: float) -> float:
    b = node.bounds
    dx = b.x1 - x if x < b.x1 else (x - b.x2 if x > b.x2 else 0)
    dy = b.y1 - y if y < b.y1 else (y - b.y2 if y > b.y2 else 0)
    return math.hypot(dx, dy)


def resolve_at(
    nodes: list[HierarchyNode],
    x: float,
    y: float,
    tolerance: float = DEFAULT_TOLERANCE,
    radius: float = DEFAULT_RADIUS,
) -> HierarchyNode | None:
    """Find the node a tap at (x, y) most likely targeted.

    First pass scores every node whose box (grown by ``tolerance``)
    contains the point, favouring small, deep, interactive and
    well-identified nodes. Only when nothing contains the point, a second
    pass picks the best node within ``radius`` of the point, penalised by
    distance.

    Args:
        nodes: Parsed hierarchy
        x: X coordinate in pixels
        y: Y coordinate in pixels
        tolerance: Pixels added to every side of a box in the first pass
        radius: Maximum distance from a box edge in the second pass

    Returns:
        Best node or None. Ties go to the earlier node in document order.
    """
    best: HierarchyNode | None = None
    best_score = -math.inf

    for node in nodes:
        b = node.bounds
        if b is None:
            continue
        if not (b.x1 - tolerance <= x <= b.x2 + tolerance and b.y1 - tolerance <= y <= b.y2 + tolerance):
            continue
        score = _containment_score(node)
        if score > best_score:
            best_score = score
            best = node

    if best is not None:
        return best

    for node in nodes:
        if node.bounds is None:
            continue
        dist = _distance_to_box(node, x, y)
        if dist > radius:
            continue

        score: float = 0
        if _is_visible(node):
            score += 10
        if _is_interactive(node):
            score += 15
        score += quality_score(node)
        score -= dist
        score += min(node.depth, 10)

        if score > best_score:
            best_score = score
            best = node

    return best
