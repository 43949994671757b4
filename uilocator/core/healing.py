"""Re-find a previously recorded element in a changed hierarchy."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from uilocator.core.fingerprint import compute_bounds_bucket
from uilocator.core.hierarchy_parser import parse_bounds
from uilocator.core.locator_scorer import normalize_text
from uilocator.models.hierarchy import ElementMetadata, HierarchyNode

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 60

CONTENT_DESC_EXACT = 100
CONTENT_DESC_FUZZY = 70
RESOURCE_ID_EXACT = 95
RESOURCE_ID_FUZZY = 65
TEXT_FUZZY = 60
CLASS_EXACT = 20
CLASS_PARTIAL = 10
BUCKET_MATCH = 25


@dataclass
class HealingMatch:
    """Best candidate node for a recorded element."""

    node: HierarchyNode
    score: int


def levenshtein(a: str, b: str) -> int:
    """Edit distance with a single rolling row."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    row = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        prev = row[0]
        row[0] = i
        for j, cb in enumerate(b, start=1):
            current = row[j]
            row[j] = min(row[j] + 1, row[j - 1] + 1, prev + (ca != cb))
            prev = current
    return row[-1]


def similarity(a: str, b: str) -> float:
    """1.0 for identical strings, 0.0 when either is empty."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return 1 - levenshtein(a, b) / max(len(a), len(b))


def token_jaccard(a: str, b: str) -> float:
    tokens_a = set(normalize_text(a).lower().split())
    tokens_b = set(normalize_text(b).lower().split())
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def _bucket(bounds_str: str) -> str:
    return compute_bounds_bucket(parse_bounds(bounds_str))


def _target_fields(target: ElementMetadata | dict[str, Any]) -> tuple[str, str, str, str, str]:
    if isinstance(target, dict):
        bucket = str(target.get("boundsBucket") or target.get("bounds_bucket") or "")
        metadata = ElementMetadata.from_dict(target)
    else:
        bucket = ""
        metadata = target
    if not bucket:
        bucket = _bucket(metadata.bounds)
    return (
        metadata.resource_id,
        metadata.content_desc,
        normalize_text(metadata.text),
        metadata.class_name,
        bucket,
    )


class LocatorHealingEngine:
    """Score hierarchy nodes against a recorded element and pick the closest.

    Content-desc and resource-id dominate, then fuzzy text, class and
    on-screen region. Matches below ``threshold`` are rejected.
    """

    def __init__(self, enabled: bool = True, threshold: int = DEFAULT_THRESHOLD):
        self.enabled = enabled
        self.threshold = threshold

    def score_node(
        self,
        node: HierarchyNode,
        target: tuple[str, str, str, str, str],
    ) -> int:
        target_id, target_cd, target_text, target_class, target_bucket = target
        rid = node.attr("resource-id")
        cd = node.attr("content-desc")
        txt = normalize_text(node.attr("text"))
        cls = node.attr("class")

        score = 0
        if target_cd and cd:
            if cd == target_cd:
                score += CONTENT_DESC_EXACT
            else:
                score += math.floor(similarity(cd, target_cd) * CONTENT_DESC_FUZZY)
        if target_id and rid:
            if rid == target_id:
                score += RESOURCE_ID_EXACT
            else:
                score += math.floor(similarity(rid, target_id) * RESOURCE_ID_FUZZY)
        if target_text and txt:
            best_text = max(token_jaccard(txt, target_text), similarity(txt, target_text))
            score += math.floor(best_text * TEXT_FUZZY)
        if target_class and cls:
            if cls == target_class:
                score += CLASS_EXACT
            elif target_class in cls or cls in target_class:
                score += CLASS_PARTIAL
        if target_bucket:
            bucket = _bucket(node.attr("bounds"))
            if bucket and bucket == target_bucket:
                score += BUCKET_MATCH
        return score

    def rank_best_match(
        self,
        target: ElementMetadata | dict[str, Any] | None,
        nodes: list[HierarchyNode],
    ) -> HealingMatch | None:
        """Find the node that best matches a recorded element.

        Args:
            target: Recorded element metadata (dataclass or dict with
                snake_case/camelCase keys, optionally ``boundsBucket``)
            nodes: Current hierarchy

        Returns:
            HealingMatch, or None when disabled, nothing scores, or the
            best score is below threshold. Ties keep the earlier node.
        """
        if not self.enabled or not target or not nodes:
            return None

        fields = _target_fields(target)
        best: HealingMatch | None = None
        for node in nodes:
            score = self.score_node(node, fields)
            if score > (best.score if best else 0):
                best = HealingMatch(node=node, score=score)

        if best is None or best.score < self.threshold:
            logger.debug(
                "No healing match above threshold %d (best=%s)",
                self.threshold,
                best.score if best else None,
            )
            return None
        return best
