"""Attribute-anchored XPath locators and a lightweight matcher for them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from uilocator.core.locator_scorer import (
    MANY_MATCHES,
    MANY_MATCHES_PENALTY,
    UNIQUE_BONUS,
    normalize_text,
)
from uilocator.models.hierarchy import ElementMetadata, HierarchyNode, LocatorCandidate

EXACT_TEXT_MAX_LENGTH = 40
PARTIAL_TEXT_LENGTH = 24

_LITERAL = r"""(concat\([^)]+\)|"[^"]*"|'[^']*')"""
_EQ_RE = re.compile(r"@([a-zA-Z-]+)\s*=\s*" + _LITERAL)
_CONTAINS_RE = re.compile(r"contains\(\s*@([a-zA-Z-]+)\s*,\s*" + _LITERAL + r"\s*\)")
_CONCAT_PART_RE = re.compile(r"""'[^']*'|"[^"]*\"""")


@dataclass
class XPathCandidate:
    """Raw XPath proposal before uniqueness scoring."""

    value: str
    score: int
    reason: str


@dataclass
class XPathCriteria:
    """Attribute constraints extracted from an XPath expression."""

    eq: dict[str, str] = field(default_factory=dict)
    contains: dict[str, str] = field(default_factory=dict)

    def matches(self, attrs: dict[str, str]) -> bool:
        for key, value in self.eq.items():
            if str(attrs.get(key) or "") != value:
                return False
        for key, value in self.contains.items():
            if value not in str(attrs.get(key) or ""):
                return False
        return True


def xpath_literal(value: str) -> str:
    """Quote a string for XPath 1.0, using concat() when it holds both quote kinds."""
    s = value or ""
    if '"' not in s:
        return f'"{s}"'
    if "'" not in s:
        return f"'{s}'"
    parts = s.split('"')
    pieces: list[str] = []
    for i, part in enumerate(parts):
        if part:
            pieces.append(f'"{part}"')
        if i != len(parts) - 1:
            pieces.append("'\"'")
    return f"concat({', '.join(pieces)})"


def decode_xpath_literal(raw: str) -> str:
    value = (raw or "").strip()
    if value.startswith("concat(") and value.endswith(")"):
        return "".join(p[1:-1] for p in _CONCAT_PART_RE.findall(value[7:-1]))
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _looks_dynamic(text: str) -> bool:
    # Stricter than the text locator heuristic: only pure numbers or
    # digit-heavy strings are excluded from XPath.
    s = normalize_text(text)
    if not s:
        return True
    digits = sum("0" <= ch <= "9" for ch in s)
    if digits / max(1, len(s)) > 0.25:
        return True
    return s.isdigit()


def _anchored(class_name: str, clause: str) -> str:
    clauses = []
    if class_name:
        clauses.append(f"@class={xpath_literal(class_name)}")
    clauses.append(clause)
    return f"//*[{' and '.join(clauses)}]"


def build_xpath_candidates(
    metadata: ElementMetadata | None,
    parent_resource_id: str = "",
) -> list[XPathCandidate]:
    """Build XPath proposals, strongest anchor first.

    Args:
        metadata: Element to locate
        parent_resource_id: Optional resource-id of an ancestor to anchor on

    Returns:
        Candidates de-duplicated by value, sorted by descending score
    """
    candidates: list[XPathCandidate] = []
    if metadata is None:
        return candidates

    cls = metadata.class_name or ""
    rid = metadata.resource_id or ""
    cd = metadata.content_desc or ""
    txt = normalize_text(metadata.text)

    if rid:
        rid_clause = f"@resource-id={xpath_literal(rid)}"
        candidates.append(XPathCandidate(_anchored(cls, rid_clause), 85, "resource-id anchored"))
        candidates.append(XPathCandidate(f"//*[{rid_clause}]", 82, "resource-id only"))

    if cd:
        cd_clause = f"@content-desc={xpath_literal(cd)}"
        candidates.append(XPathCandidate(_anchored(cls, cd_clause), 80, "content-desc anchored"))
        candidates.append(XPathCandidate(f"//*[{cd_clause}]", 78, "content-desc only"))

    if txt and not _looks_dynamic(txt):
        if len(txt) <= EXACT_TEXT_MAX_LENGTH:
            candidates.append(XPathCandidate(
                _anchored(cls, f"@text={xpath_literal(txt)}"), 68, "exact text"
            ))
        else:
            part = txt[:PARTIAL_TEXT_LENGTH]
            candidates.append(XPathCandidate(
                _anchored(cls, f"contains(@text, {xpath_literal(part)})"), 60, "partial text"
            ))

    if parent_resource_id and (rid or cd or txt):
        if rid:
            child = f"@resource-id={xpath_literal(rid)}"
        elif cd:
            child = f"@content-desc={xpath_literal(cd)}"
        else:
            child = f"@text={xpath_literal(txt)}"
        child_path = _anchored(cls, child)[len("//*"):]
        candidates.append(XPathCandidate(
            f"//*[@resource-id={xpath_literal(parent_resource_id)}]//*{child_path}",
            72,
            "parent anchor",
        ))

    seen: set[str] = set()
    unique: list[XPathCandidate] = []
    for candidate in candidates:
        if candidate.value in seen:
            continue
        seen.add(candidate.value)
        unique.append(candidate)
    unique.sort(key=lambda c: c.score, reverse=True)
    return unique


def parse_xpath_criteria(xpath: str) -> XPathCriteria:
    """Extract @attr=literal and contains(@attr, literal) clauses.

    Structural parts (axes, ancestors, positions) are ignored, so a match
    here is an estimate of what a real XPath engine would return.
    """
    criteria = XPathCriteria()
    s = xpath or ""
    for attr, literal in _CONTAINS_RE.findall(s):
        criteria.contains[attr] = decode_xpath_literal(literal)
    # Drop contains() clauses so their @attr is not read as equality
    stripped = _CONTAINS_RE.sub("", s)
    for attr, literal in _EQ_RE.findall(stripped):
        criteria.eq[attr] = decode_xpath_literal(literal)
    return criteria


def find_xpath_matches(nodes: list[HierarchyNode], xpath: str) -> list[HierarchyNode]:
    criteria = parse_xpath_criteria(xpath)
    return [node for node in nodes if criteria.matches(node.attrs)]


def score_xpath_candidates(
    metadata: ElementMetadata | None,
    nodes: list[HierarchyNode] | None = None,
    parent_resource_id: str = "",
) -> list[LocatorCandidate]:
    """Build XPath locators and adjust them for uniqueness in the hierarchy."""
    locators: list[LocatorCandidate] = []
    for candidate in build_xpath_candidates(metadata, parent_resource_id):
        match_count = len(find_xpath_matches(nodes, candidate.value)) if nodes else 0
        score = candidate.score
        if match_count == 1:
            score += UNIQUE_BONUS
        elif match_count >= MANY_MATCHES:
            score -= MANY_MATCHES_PENALTY
        locators.append(LocatorCandidate(
            strategy="xpath",
            value=candidate.value,
            score=max(0, min(100, score)),
            reason=candidate.reason,
            match_count=match_count,
        ))
    return locators
