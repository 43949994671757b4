"""Tests for hierarchy sanitizing and parsing."""

from uilocator.core.hierarchy_parser import (
    has_hierarchy_root,
    parse_bounds,
    parse_hierarchy,
    parse_node_attributes,
    sanitize_hierarchy_xml,
)
from uilocator.models.hierarchy import Bounds

SINGLE_BUTTON = (
    '<hierarchy><node index="0" bounds="[0,0][100,50]" resource-id="btn1" '
    'text="" clickable="true"/></hierarchy>'
)

NESTED = """<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<hierarchy rotation="0">
  <node index="0" class="android.widget.FrameLayout" bounds="[0,0][1080,2340]">
    <node index="0" class="android.widget.LinearLayout" bounds="[0,100][1080,400]">
      <node index="0" class="android.widget.Button" text="OK" bounds="[10,110][200,190]" />
      <node index="1" class="android.widget.Button" text="Cancel" bounds="[210,110][400,190]" />
    </node>
    <node index="1" class="android.widget.TextView" text="Footer" bounds="[0,2000][1080,2340]" />
  </node>
</hierarchy>"""


class TestSanitize:
    """Test sanitize_hierarchy_xml()."""

    def test_strips_leading_and_trailing_noise(self):
        raw = "UI hierchary dumped to: /dev/tty\n<?xml version='1.0'?><hierarchy></hierarchy>\nextra"
        assert sanitize_hierarchy_xml(raw) == "<?xml version='1.0'?><hierarchy></hierarchy>"

    def test_starts_at_root_without_declaration(self):
        raw = "noise<hierarchy rotation=\"0\"></hierarchy>"
        assert sanitize_hierarchy_xml(raw) == '<hierarchy rotation="0"></hierarchy>'

    def test_truncates_after_last_closing_tag(self):
        raw = "<hierarchy><node/></hierarchy>garbage</hierarchy>tail"
        assert sanitize_hierarchy_xml(raw) == "<hierarchy><node/></hierarchy>garbage</hierarchy>"

    def test_returns_input_without_markers(self):
        assert sanitize_hierarchy_xml("ERROR: could not get idle state.") == (
            "ERROR: could not get idle state."
        )

    def test_keeps_tail_when_root_never_closes(self):
        assert sanitize_hierarchy_xml("xx<hierarchy><node") == "<hierarchy><node"

    def test_none_becomes_empty(self):
        assert sanitize_hierarchy_xml(None) == ""


class TestHasHierarchyRoot:
    """Test has_hierarchy_root()."""

    def test_detects_root(self):
        assert has_hierarchy_root("<hierarchy rotation=\"0\">") is True

    def test_rejects_empty_and_other_markup(self):
        assert has_hierarchy_root("") is False
        assert has_hierarchy_root(None) is False
        assert has_hierarchy_root("<html></html>") is False


class TestParseBounds:
    """Test parse_bounds()."""

    def test_derived_values(self):
        assert parse_bounds("[0,0][100,50]") == Bounds(
            x1=0, y1=0, x2=100, y2=50, width=100, height=50, area=5000, cx=50, cy=25
        )

    def test_center_uses_floor_division(self):
        bounds = parse_bounds("[0,0][5,3]")
        assert bounds.cx == 2
        assert bounds.cy == 1

    def test_inverted_bounds_have_zero_size(self):
        bounds = parse_bounds("[100,100][50,40]")
        assert bounds.width == 0
        assert bounds.height == 0
        assert bounds.area == 0

    def test_malformed_returns_none(self):
        assert parse_bounds("") is None
        assert parse_bounds(None) is None
        assert parse_bounds("[0,0][abc,10]") is None
        assert parse_bounds("0,0,10,10") is None


class TestParseNodeAttributes:
    """Test parse_node_attributes()."""

    def test_extracts_hyphenated_keys(self):
        tag = '<node resource-id="com.app:id/ok" content-desc="Confirm" text="" />'
        assert parse_node_attributes(tag) == {
            "resource-id": "com.app:id/ok",
            "content-desc": "Confirm",
            "text": "",
        }

    def test_entities_are_not_decoded(self):
        attrs = parse_node_attributes('<node text="Tom &amp; Jerry" />')
        assert attrs["text"] == "Tom &amp; Jerry"


class TestParseHierarchy:
    """Test parse_hierarchy()."""

    def test_single_self_closing_node(self):
        nodes = parse_hierarchy(SINGLE_BUTTON)

        assert len(nodes) == 1
        node = nodes[0]
        assert node.index == 0
        assert node.parent_index == -1
        assert node.depth == 0
        assert node.attr("resource-id") == "btn1"
        assert node.flag("clickable") is True
        assert node.bounds.area == 5000

    def test_parent_links_and_depth(self):
        nodes = parse_hierarchy(NESTED)

        assert [n.attr("class").rsplit(".", 1)[-1] for n in nodes] == [
            "FrameLayout", "LinearLayout", "Button", "Button", "TextView",
        ]
        assert [n.parent_index for n in nodes] == [-1, 0, 1, 1, 0]
        assert [n.depth for n in nodes] == [0, 1, 2, 2, 1]

    def test_parent_always_precedes_child(self):
        nodes = parse_hierarchy(NESTED)

        for i, node in enumerate(nodes):
            assert node.index == i
            assert node.parent_index < node.index

    def test_stray_closing_tag_is_ignored(self):
        markup = '</node><hierarchy><node index="0" bounds="[0,0][1,1]"></node></node></hierarchy>'
        nodes = parse_hierarchy(markup)

        assert len(nodes) == 1
        assert nodes[0].parent_index == -1

    def test_missing_bounds_gives_none(self):
        nodes = parse_hierarchy('<hierarchy><node text="x"/></hierarchy>')
        assert nodes[0].bounds is None

    def test_empty_input(self):
        assert parse_hierarchy("") == []
        assert parse_hierarchy(None) == []
