"""Tests for the locator healing engine."""

import pytest

from uilocator.core.healing import (
    LocatorHealingEngine,
    levenshtein,
    similarity,
    token_jaccard,
)
from uilocator.core.hierarchy_parser import parse_hierarchy
from uilocator.models.hierarchy import ElementMetadata

SCREEN = """<hierarchy>
<node class="android.widget.FrameLayout" bounds="[0,0][1080,2340]">
  <node class="android.widget.Button" resource-id="com.app:id/sign_in" text="Sign in"
        bounds="[100,300][500,400]" />
  <node class="android.widget.ImageButton" content-desc="Open menu" bounds="[0,0][100,100]" />
  <node class="android.widget.TextView" text="Forgot password?" bounds="[100,500][500,560]" />
</node>
</hierarchy>"""


class TestStringMetrics:
    """Test levenshtein(), similarity() and token_jaccard()."""

    @pytest.mark.parametrize("a,b,expected", [
        ("kitten", "sitting", 3),
        ("", "abc", 3),
        ("abc", "", 3),
        ("same", "same", 0),
        ("flaw", "lawn", 2),
    ])
    def test_levenshtein(self, a, b, expected):
        assert levenshtein(a, b) == expected

    def test_similarity(self):
        assert similarity("abc", "abc") == 1.0
        assert similarity("abc", "abd") == pytest.approx(2 / 3)
        assert similarity("", "abc") == 0.0

    def test_token_jaccard(self):
        assert token_jaccard("Log in", "log  IN now") == pytest.approx(2 / 3)
        assert token_jaccard("", "x") == 0.0


class TestRankBestMatch:
    """Test LocatorHealingEngine.rank_best_match()."""

    def test_exact_match(self):
        nodes = parse_hierarchy(SCREEN)
        target = ElementMetadata(
            class_name="android.widget.Button",
            resource_id="com.app:id/sign_in",
            text="Sign in",
            bounds="[100,300][500,400]",
        )

        match = LocatorHealingEngine().rank_best_match(target, nodes)

        assert match.node is nodes[1]
        assert match.score == 95 + 60 + 20 + 25

    def test_renamed_element_is_found(self):
        nodes = parse_hierarchy(SCREEN)
        target = ElementMetadata(
            class_name="android.widget.Button",
            resource_id="com.app:id/login",
            text="Log in",
            bounds="[110,310][510,410]",
        )

        match = LocatorHealingEngine().rank_best_match(target, nodes)

        assert match.node.attr("resource-id") == "com.app:id/sign_in"
        assert match.score >= 60

    def test_content_desc_dominates(self):
        nodes = parse_hierarchy(SCREEN)

        match = LocatorHealingEngine().rank_best_match({"contentDesc": "Open menu"}, nodes)

        assert match.node.attr("class") == "android.widget.ImageButton"
        assert match.score == 100

    def test_dict_target_with_bucket(self):
        nodes = parse_hierarchy(SCREEN)
        target = {"class": "android.widget.TextView", "text": "Forgot your password?",
                  "boundsBucket": "300,550"}

        match = LocatorHealingEngine().rank_best_match(target, nodes)

        assert match.node.attr("text") == "Forgot password?"

    def test_below_threshold(self):
        nodes = parse_hierarchy(SCREEN)
        target = ElementMetadata(class_name="android.widget.Button", bounds="[100,300][500,400]")

        # class 20 + bucket 25 = 45
        assert LocatorHealingEngine(threshold=60).rank_best_match(target, nodes) is None
        assert LocatorHealingEngine(threshold=45).rank_best_match(target, nodes).score == 45

    def test_disabled(self):
        nodes = parse_hierarchy(SCREEN)
        target = ElementMetadata(resource_id="com.app:id/sign_in")

        assert LocatorHealingEngine(enabled=False).rank_best_match(target, nodes) is None

    def test_empty_inputs(self):
        engine = LocatorHealingEngine()

        assert engine.rank_best_match(None, parse_hierarchy(SCREEN)) is None
        assert engine.rank_best_match(ElementMetadata(resource_id="x"), []) is None

    def test_tie_keeps_first_node(self):
        nodes = parse_hierarchy(
            '<hierarchy><node content-desc="Play" bounds="[0,0][10,10]"/>'
            '<node content-desc="Play" bounds="[0,0][10,10]"/></hierarchy>'
        )

        match = LocatorHealingEngine().rank_best_match({"content-desc": "Play"}, nodes)

        assert match.node is nodes[0]


class TestTargetAliases:
    """Recorded-step key names reach the same fields as metadata keys."""

    def test_recorded_step_keys(self):
        metadata = ElementMetadata.from_dict({
            "elementId": "com.app:id/login",
            "elementText": "Log in",
            "elementClass": "android.widget.Button",
            "elementContentDesc": "Sign in",
        })

        assert metadata.resource_id == "com.app:id/login"
        assert metadata.text == "Log in"
        assert metadata.class_name == "android.widget.Button"
        assert metadata.content_desc == "Sign in"

    def test_empty_value_does_not_hide_later_alias(self):
        metadata = ElementMetadata.from_dict({"resource_id": "", "resourceId": "com.app:id/login"})

        assert metadata.resource_id == "com.app:id/login"

    def test_first_non_empty_value_wins(self):
        metadata = ElementMetadata.from_dict({"text": "First", "elementText": "Second"})

        assert metadata.text == "First"

    def test_heals_recorded_step(self):
        nodes = parse_hierarchy(SCREEN)

        match = LocatorHealingEngine().rank_best_match(
            {"elementId": "com.app:id/sign_in", "elementText": "Sign in"}, nodes
        )

        assert match is not None
        assert match.node.attr("resource-id") == "com.app:id/sign_in"
