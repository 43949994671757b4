"""Tests for locator candidate generation and scoring."""

import pytest

from uilocator.core.hierarchy_parser import parse_hierarchy
from uilocator.core.locator_scorer import (
    DynamicTextRules,
    count_matches,
    looks_dynamic_text,
    normalize_text,
    score_locator_candidates,
    uniqueness_adjustment,
)
from uilocator.models.hierarchy import ElementMetadata, LocatorCandidate


def _nodes_with_ids(*ids: str):
    body = "".join(f'<node resource-id="{rid}" bounds="[0,0][10,10]"/>' for rid in ids)
    return parse_hierarchy(f"<hierarchy>{body}</hierarchy>")


class TestNormalizeText:
    """Test normalize_text()."""

    def test_collapses_whitespace(self):
        assert normalize_text("  Log \n\t in ") == "Log in"

    def test_none_is_empty(self):
        assert normalize_text(None) == ""


class TestLooksDynamicText:
    """Test the dynamic-text heuristic."""

    @pytest.mark.parametrize("text", ["12:30", "Order 12345", "$19.99", "", "   "])
    def test_dynamic(self, text):
        assert looks_dynamic_text(text) is True

    @pytest.mark.parametrize("text", ["Log in", "Item 1", "Settings", "Step 2 of 3"])
    def test_static(self, text):
        assert looks_dynamic_text(text) is False

    def test_rules_are_overridable(self):
        strict = DynamicTextRules(digit_ratio_threshold=0.1, digit_run_length=2)

        assert looks_dynamic_text("Item 1") is False
        assert looks_dynamic_text("Item 1", strict) is True
        assert looks_dynamic_text("Room 42 abcdefghijklmnop", strict) is True


class TestUniquenessAdjustment:
    """Test uniqueness_adjustment()."""

    @pytest.mark.parametrize("count,delta", [(0, 0), (1, 10), (2, -3), (4, -3), (5, -10), (50, -10)])
    def test_deltas(self, count, delta):
        assert uniqueness_adjustment(count) == delta


class TestCountMatches:
    """Test count_matches()."""

    def test_counts_by_strategy(self):
        nodes = parse_hierarchy(
            '<hierarchy>'
            '<node resource-id="a" content-desc="Back" text=" OK " bounds="[0,0][1,1]"/>'
            '<node resource-id="a" text="OK" bounds="[0,0][1,1]"/>'
            '</hierarchy>'
        )

        assert count_matches(nodes, LocatorCandidate("id", "a", 0)) == 2
        assert count_matches(nodes, LocatorCandidate("accessibilityId", "Back", 0)) == 1
        assert count_matches(nodes, LocatorCandidate("text", "OK", 0)) == 2

    def test_xpath_and_empty_value_count_zero(self):
        nodes = _nodes_with_ids("a")

        assert count_matches(nodes, LocatorCandidate("xpath", "//*[@resource-id='a']", 0)) == 0
        assert count_matches(nodes, LocatorCandidate("id", "", 0)) == 0


class TestScoreLocatorCandidates:
    """Test score_locator_candidates()."""

    def test_resource_id_candidate_scores_high(self):
        nodes = parse_hierarchy(
            '<hierarchy><node index="0" bounds="[0,0][100,50]" resource-id="btn1" '
            'text="" clickable="true"/></hierarchy>'
        )
        metadata = ElementMetadata(resource_id="btn1", bounds="[0,0][100,50]")

        candidates = score_locator_candidates(metadata, nodes)

        assert len(candidates) == 1
        assert candidates[0].strategy == "id"
        assert candidates[0].value == "btn1"
        assert candidates[0].score >= 90
        assert candidates[0].match_count == 1

    def test_base_ordering_without_nodes(self):
        metadata = ElementMetadata(resource_id="com.app:id/ok", content_desc="Confirm", text="OK")

        candidates = score_locator_candidates(metadata)

        assert [(c.strategy, c.score) for c in candidates] == [
            ("accessibilityId", 95),
            ("id", 92),
            ("text", 70),
        ]
        assert all(c.match_count is None for c in candidates)

    def test_uniqueness_is_monotonic(self):
        metadata = ElementMetadata(resource_id="row")

        unique = score_locator_candidates(metadata, _nodes_with_ids("row"))[0].score
        few = score_locator_candidates(metadata, _nodes_with_ids("row", "row", "row"))[0].score
        many = score_locator_candidates(metadata, _nodes_with_ids(*["row"] * 6))[0].score

        assert unique == 100
        assert few == 89
        assert many == 82
        assert unique > few > many

    def test_text_score_variants(self):
        def text_score(text):
            return score_locator_candidates(ElementMetadata(text=text))[0].score

        assert text_score("Log in") == 70
        assert text_score("A") == 30
        assert text_score("x" * 61) == 55
        assert text_score("Order 12345") == 55
        assert text_score("7") == 15

    def test_dynamic_text_reason(self):
        candidate = score_locator_candidates(ElementMetadata(text="12:45"))[0]
        assert candidate.reason == "text looks dynamic"

    def test_text_value_is_normalized(self):
        candidate = score_locator_candidates(ElementMetadata(text="  Sign \n up "))[0]
        assert candidate.value == "Sign up"

    def test_scores_stay_in_range(self):
        metadata = ElementMetadata(resource_id="a", content_desc="b", text="c")
        nodes = parse_hierarchy(
            '<hierarchy><node resource-id="a" content-desc="b" text="c" bounds="[0,0][1,1]"/></hierarchy>'
        )

        for candidate in score_locator_candidates(metadata, nodes):
            assert 0 <= candidate.score <= 100

    def test_empty_metadata(self):
        assert score_locator_candidates(None) == []
        assert score_locator_candidates(ElementMetadata()) == []
