"""Generate and rank element locators from node metadata."""

from __future__ import annotations

import re
from dataclasses import dataclass

from uilocator.models.hierarchy import ElementMetadata, HierarchyNode, LocatorCandidate

_WHITESPACE_RE = re.compile(r"\s+")

ACCESSIBILITY_ID_SCORE = 95
RESOURCE_ID_SCORE = 92
TEXT_SCORE = 70
SHORT_TEXT_SCORE = 30
LONG_TEXT_SCORE = 55
LONG_TEXT_LENGTH = 60
DYNAMIC_TEXT_PENALTY = 15
TEXT_SCORE_MIN = 10
TEXT_SCORE_MAX = 80

UNIQUE_BONUS = 10
FEW_MATCHES_PENALTY = 3
MANY_MATCHES_PENALTY = 10
MANY_MATCHES = 5


@dataclass(frozen=True)
class DynamicTextRules:
    """When text is considered too volatile to locate by.

    The thresholds are empirical; override them per app if counters,
    prices or timestamps slip through.
    """

    digit_ratio_threshold: float = 0.25
    digit_run_length: int = 4

    def looks_dynamic(self, text: str) -> bool:
        s = normalize_text(text)
        if not s:
            return True
        digits = sum("0" <= ch <= "9" for ch in s)
        if digits / max(1, len(s)) > self.digit_ratio_threshold:
            return True
        run = 0
        for ch in s:
            run = run + 1 if "0" <= ch <= "9" else 0
            if run >= self.digit_run_length:
                return True
        return False


DEFAULT_RULES = DynamicTextRules()


def normalize_text(text: str | None) -> str:
    """Trim and collapse internal whitespace runs to single spaces."""
    if text is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(text).strip())


def looks_dynamic_text(text: str, rules: DynamicTextRules = DEFAULT_RULES) -> bool:
    return rules.looks_dynamic(text)


def _text_score(text: str, dynamic: bool) -> int:
    base = TEXT_SCORE
    if len(text) < 2:
        base = SHORT_TEXT_SCORE
    if len(text) > LONG_TEXT_LENGTH:
        base = LONG_TEXT_SCORE
    if dynamic:
        base -= DYNAMIC_TEXT_PENALTY
    return max(TEXT_SCORE_MIN, min(TEXT_SCORE_MAX, base))


def uniqueness_adjustment(match_count: int) -> int:
    """Score delta for how many nodes a locator would hit."""
    if match_count == 1:
        return UNIQUE_BONUS
    if match_count >= MANY_MATCHES:
        return -MANY_MATCHES_PENALTY
    if match_count >= 2:
        return -FEW_MATCHES_PENALTY
    return 0


def count_matches(nodes: list[HierarchyNode], candidate: LocatorCandidate) -> int:
    """Count nodes an id/accessibilityId/text locator would match exactly.

    XPath candidates are not evaluated here and always count 0.
    """
    value = candidate.value or ""
    if not value:
        return 0

    count = 0
    for node in nodes:
        if candidate.strategy == "id":
            if node.attr("resource-id") == value:
                count += 1
        elif candidate.strategy == "accessibilityId":
            if node.attr("content-desc") == value:
                count += 1
        elif candidate.strategy == "text":
            if normalize_text(node.attr("text")) == value:
                count += 1
    return count


def score_locator_candidates(
    metadata: ElementMetadata | None,
    nodes: list[HierarchyNode] | None = None,
    rules: DynamicTextRules = DEFAULT_RULES,
) -> list[LocatorCandidate]:
    """Propose locators for an element, best first.

    Args:
        metadata: Element to locate
        nodes: Full hierarchy, used to reward locators that are unique
        rules: Dynamic-text thresholds

    Returns:
        Candidates sorted by descending score
    """
    candidates: list[LocatorCandidate] = []
    if metadata is None:
        return candidates

    content_desc = metadata.content_desc or ""
    resource_id = metadata.resource_id or ""
    text = normalize_text(metadata.text)

    if content_desc:
        candidates.append(LocatorCandidate(
            strategy="accessibilityId",
            value=content_desc,
            score=ACCESSIBILITY_ID_SCORE,
            reason="content-desc present",
        ))
    if resource_id:
        candidates.append(LocatorCandidate(
            strategy="id",
            value=resource_id,
            score=RESOURCE_ID_SCORE,
            reason="resource-id present",
        ))
    if text:
        dynamic = rules.looks_dynamic(text)
        candidates.append(LocatorCandidate(
            strategy="text",
            value=text,
            score=_text_score(text, dynamic),
            reason="text looks dynamic" if dynamic else "text present",
        ))

    if nodes:
        for candidate in candidates:
            match_count = count_matches(nodes, candidate)
            adjusted = candidate.score + uniqueness_adjustment(match_count)
            candidate.score = max(0, min(100, adjusted))
            candidate.match_count = match_count

    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates
