"""Parse uiautomator hierarchy markup into a flat, indexed node list."""

import re

from uilocator.models.hierarchy import Bounds, HierarchyNode

ROOT_OPEN = "<hierarchy"
ROOT_CLOSE = "</hierarchy>"
XML_DECLARATION = "<?xml"

_BOUNDS_RE = re.compile(r"\[(\d+),(\d+)\]\[(\d+),(\d+)\]")
_ATTR_RE = re.compile(r'([a-zA-Z0-9_-]+)="([^"]*)"')
_NODE_TAG_RE = re.compile(r"</?node\b[^>]*>")


def sanitize_hierarchy_xml(raw: str | None) -> str:
    """Strip shell noise around a hierarchy dump.

    Keeps everything from the XML declaration (or the root element when
    there is no declaration) up to the last complete root closing tag.
    Output without either start marker is returned unchanged.
    """
    s = "" if raw is None else str(raw)
    start = s.find(XML_DECLARATION)
    if start < 0:
        start = s.find(ROOT_OPEN)
    if start < 0:
        return s
    end = s.rfind(ROOT_CLOSE)
    if end < start:
        return s[start:]
    return s[start:end + len(ROOT_CLOSE)]


def has_hierarchy_root(xml: str | None) -> bool:
    """Check that a capture contains the hierarchy root element."""
    return bool(xml) and ROOT_OPEN in xml


def parse_bounds(bounds_str: str | None) -> Bounds | None:
    """Parse bounds string like '[0,0][1080,2340]'.

    Returns:
        Bounds, or None when absent or malformed
    """
    if not bounds_str:
        return None
    match = _BOUNDS_RE.search(str(bounds_str))
    if not match:
        return None
    x1, y1, x2, y2 = (int(g) for g in match.groups())
    return Bounds.from_corners(x1, y1, x2, y2)


def parse_node_attributes(tag: str) -> dict[str, str]:
    """Extract key="value" pairs from a single tag.

    No entity decoding is performed; values are kept as they appear.
    """
    return {key: value for key, value in _ATTR_RE.findall(tag)}


def parse_hierarchy(markup: str | None) -> list[HierarchyNode]:
    """Parse hierarchy markup in one linear scan.

    Args:
        markup: Sanitized uiautomator XML

    Returns:
        Nodes in document order, indices starting at 0. Empty for empty
        or non-text input.
    """
    nodes: list[HierarchyNode] = []
    if not markup or not isinstance(markup, str):
        return nodes

    stack: list[int] = []
    for match in _NODE_TAG_RE.finditer(markup):
        tag = match.group(0)

        if tag.startswith("</"):
            # Stray closing tags are ignored
            if stack:
                stack.pop()
            continue

        attrs = parse_node_attributes(tag)
        node = HierarchyNode(
            index=len(nodes),
            parent_index=stack[-1] if stack else -1,
            depth=len(stack),
            attrs=attrs,
            bounds=parse_bounds(attrs.get("bounds")),
        )
        nodes.append(node)

        if not tag.endswith("/>"):
            stack.append(node.index)

    return nodes
