"""Tests for the point inspector."""

from unittest.mock import MagicMock

import pytest

from uilocator.core.fingerprint import element_fingerprint
from uilocator.core.inspector import Inspector, merge_locators, reliability_score
from uilocator.models.hierarchy import LocatorCandidate

SCREEN = """<?xml version='1.0' encoding='UTF-8'?>
<hierarchy rotation="0">
<node class="android.widget.FrameLayout" bounds="[0,0][1080,2340]" visible-to-user="true">
  <node class="android.widget.LinearLayout" resource-id="com.app:id/form" bounds="[0,200][1080,600]">
    <node class="android.widget.Button" resource-id="com.app:id/login" text="Log in"
          clickable="true" visible-to-user="true" bounds="[100,300][500,400]" />
  </node>
  <node class="android.widget.TextView" text="Welcome" bounds="[0,1000][1080,1100]" />
  <node class="android.widget.TextView" text="Welcome" bounds="[0,1200][1080,1300]" />
</node>
</hierarchy>"""


def _inspector(xml=SCREEN):
    controller = MagicMock()
    controller.acquire.return_value = xml
    return Inspector(controller), controller


class TestReliabilityScore:
    """Test reliability_score()."""

    def test_rounds_half_up(self):
        assert reliability_score(LocatorCandidate("text", "x", 45), True) == 51

    def test_clamped(self):
        assert reliability_score(LocatorCandidate("id", "x", 100), True) == 100
        assert reliability_score(None, False) == 0


class TestMergeLocators:
    """Test merge_locators()."""

    def test_dedupes_and_sorts(self):
        merged = merge_locators(
            [LocatorCandidate("id", "a", 80), LocatorCandidate("text", "", 99)],
            [LocatorCandidate("id", "a", 90), LocatorCandidate("xpath", "//*", 85)],
        )

        assert [(c.strategy, c.value, c.score) for c in merged] == [
            ("xpath", "//*", 85),
            ("id", "a", 80),
        ]


class TestInspectAtPoint:
    """Test Inspector.inspect_at_point()."""

    def test_resolves_button(self):
        inspector, controller = _inspector()

        result = inspector.inspect_at_point(300, 350, device_id="emulator-5554")

        controller.acquire.assert_called_once_with("emulator-5554")
        assert result.element.resource_id == "com.app:id/login"
        assert result.resolved_by == "coordinates"
        assert result.node_count == 5
        assert result.best.strategy == "id"
        assert result.best.score == 100
        assert result.reliability == 100
        assert result.fingerprint == element_fingerprint(result.element)

    def test_locators_sorted_and_unique(self):
        inspector, _ = _inspector()

        result = inspector.inspect_at_point(300, 350)

        scores = [loc.score for loc in result.locators]
        assert scores == sorted(scores, reverse=True)
        keys = [(loc.strategy, loc.value) for loc in result.locators]
        assert len(keys) == len(set(keys))
        assert any(loc.reason == "parent anchor" for loc in result.locators)

    def test_bundle(self):
        inspector, _ = _inspector()

        result = inspector.inspect_at_point(300, 350)
        bundle = result.bundle

        assert bundle["version"] == 1
        assert bundle["fingerprint"] == result.fingerprint
        assert bundle["primary"]["value"] == "com.app:id/login"
        assert len(bundle["fallbacks"]) == 4
        assert bundle["fallbacks"][0] == result.locators[1].to_dict()

    def test_smart_xpath_is_best_xpath(self):
        inspector, _ = _inspector()

        result = inspector.inspect_at_point(300, 350)

        assert result.smart_xpath == (
            '//*[@class="android.widget.Button" and @resource-id="com.app:id/login"]'
        )

    def test_prefer_xpath_resolves_through_unique_match(self):
        inspector, _ = _inspector()

        result = inspector.inspect_at_point(300, 350, prefer_xpath=True)

        assert result.resolved_by == "xpath"
        assert result.element.resource_id == "com.app:id/login"

    def test_prefer_xpath_without_unique_match(self):
        inspector, _ = _inspector()

        result = inspector.inspect_at_point(540, 1050, prefer_xpath=True)

        assert result.element.text == "Welcome"
        assert result.resolved_by == "coordinates"

    def test_duplicate_text_lowers_score(self):
        inspector, _ = _inspector()

        result = inspector.inspect_at_point(540, 1050)

        text = next(loc for loc in result.locators if loc.strategy == "text")
        assert text.match_count == 2
        assert text.score == 67

    def test_no_hierarchy(self):
        inspector, _ = _inspector(xml=None)

        result = inspector.inspect_at_point(10, 10)

        assert result.element is None
        assert result.locators == []
        assert result.reliability == 0
        assert result.bundle is None
        assert result.node_count == 0
        assert result.hierarchy_available is False

    def test_no_element_near_point(self):
        xml = '<hierarchy><node text="x" bounds="[0,0][10,10]"/></hierarchy>'
        inspector, _ = _inspector(xml=xml)

        result = inspector.inspect_at_point(900, 900)

        assert result.element is None
        assert result.reliability == 0
        assert result.node_count == 1

    def test_accepts_numeric_strings(self):
        inspector, _ = _inspector()

        result = inspector.inspect_at_point("300", "350.5")

        assert result.x == 300.0
        assert result.y == 350.5

    @pytest.mark.parametrize("x,y", [("abc", 1), (None, 1), (1, float("nan")), (True, 1)])
    def test_rejects_non_numeric(self, x, y):
        inspector, controller = _inspector()

        with pytest.raises(ValueError):
            inspector.inspect_at_point(x, y)
        controller.acquire.assert_not_called()

    def test_to_dict_keys(self):
        inspector, _ = _inspector()

        data = inspector.inspect_at_point(300, 350).to_dict()

        assert data["reliabilityScore"] == 100
        assert data["locatorBundle"]["primary"]["strategy"] == "id"
        assert data["element"]["resource_id"] == "com.app:id/login"
        assert data["hierarchyAvailable"] is True

    def test_empty_hierarchy_is_available(self):
        inspector, _ = _inspector(xml='<hierarchy rotation="0"></hierarchy>')

        result = inspector.inspect_at_point(10, 10)

        assert result.hierarchy_available is True
        assert result.node_count == 0
        assert result.element is None
