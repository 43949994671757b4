"""Position-tolerant element fingerprints for cross-run re-identification."""

from __future__ import annotations

import hashlib
import math
from typing import Any

from uilocator.core.hierarchy_parser import parse_bounds
from uilocator.core.locator_scorer import normalize_text
from uilocator.models.hierarchy import Bounds, ElementMetadata

DEFAULT_BUCKET_SIZE = 50


def to_element_metadata(attrs: dict[str, Any] | None) -> ElementMetadata:
    """Project raw node attributes onto ElementMetadata.

    Accepts both uiautomator (``resource-id``) and camelCase
    (``resourceId``) keys. Missing values become "".
    """
    attrs = attrs or {}

    def pick(*keys: str) -> str:
        for key in keys:
            value = attrs.get(key)
            if value:
                return str(value)
        return ""

    return ElementMetadata(
        resource_id=pick("resource-id", "resourceId"),
        text=pick("text"),
        class_name=pick("class"),
        content_desc=pick("content-desc", "contentDesc"),
        bounds=pick("bounds"),
        clickable=pick("clickable"),
        enabled=pick("enabled"),
        focusable=pick("focusable"),
        focused=pick("focused"),
        editable=pick("editable"),
        scrollable=pick("scrollable"),
        visible_to_user=pick("visible-to-user", "visibleToUser"),
        package=pick("package"),
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_bounds_bucket(bounds: Bounds | None, bucket_size: int = DEFAULT_BUCKET_SIZE) -> str:
    """Snap the element center to a grid so small jitter keeps the same cell."""
    if bounds is None:
        return ""
    bx = _round_half_up(bounds.cx / bucket_size) * bucket_size
    by = _round_half_up(bounds.cy / bucket_size) * bucket_size
    return f"{bx},{by}"


def fingerprint_key(metadata: ElementMetadata, bucket_size: int = DEFAULT_BUCKET_SIZE) -> str:
    """Composite identity key: class|resource-id|content-desc|text|bucket."""
    bucket = compute_bounds_bucket(parse_bounds(metadata.bounds), bucket_size)
    return "|".join([
        metadata.class_name or "",
        metadata.resource_id or "",
        metadata.content_desc or "",
        normalize_text(metadata.text),
        bucket,
    ])


def element_fingerprint(metadata: ElementMetadata, bucket_size: int = DEFAULT_BUCKET_SIZE) -> str:
    """SHA-256 hex digest of the element's composite identity key."""
    key = fingerprint_key(metadata, bucket_size)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
