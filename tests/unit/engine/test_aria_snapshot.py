"""
Tests for ARIA snapshot parsing and scoring.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import MockNode, MockPage
from nl_step_engine.engine.aria_snapshot import (
    SnapshotCache,
    parse_line,
    parse_properties,
    parse_snapshot,
    rank_nodes,
    score_node,
)
from nl_step_engine.engine.types import AccessibilityNode, ElementTarget


class TestParseLine:
    """Test single-line parsing."""

    def test_heading_with_properties(self):
        """Name and bracketed properties are split."""
        node = parse_line('- heading "Dashboard" [level=1]')
        assert node.role == "heading"
        assert node.name == "Dashboard"
        assert node.level == 0
        assert node.properties == {"level": "1"}

    def test_indented_line(self):
        """Two spaces of indent is one level."""
        node = parse_line('  - link "Home"', 3)
        assert node.role == "link"
        assert node.name == "Home"
        assert node.level == 1
        assert node.line_index == 3

    def test_container_with_colon(self):
        """A trailing colon is not part of the name."""
        node = parse_line('- navigation "Main Menu":')
        assert node.name == "Main Menu"
        assert node.properties == {}

    def test_flag_property(self):
        """Bare properties read as 'true'."""
        node = parse_line('- checkbox "Remember me" [checked]')
        assert node.properties == {"checked": "true"}

    def test_text_node(self):
        """Text nodes carry the content after the colon."""
        node = parse_line("- text: Welcome back")
        assert node.role == "text"
        assert node.name == "Welcome back"

    def test_unnamed_role(self):
        """A role without a name parses with an empty name."""
        node = parse_line("- list")
        assert node.role == "list"
        assert node.name == ""

    def test_non_node_line(self):
        """Lines without a leading dash are skipped."""
        assert parse_line("  /url: /home") is None


class TestParseProperties:
    """Test property parsing."""

    def test_mixed(self):
        """Key-value pairs and flags."""
        assert parse_properties("level=2, expanded") == {"level": "2", "expanded": "true"}

    def test_empty(self):
        """Nothing to parse."""
        assert parse_properties(None) == {}
        assert parse_properties("") == {}


class TestParseSnapshot:
    """Test whole-snapshot parsing."""

    def test_nodes_in_order(self):
        """Blank and non-node lines are dropped."""
        snapshot = '\n'.join([
            '- heading "Dashboard" [level=1]',
            '',
            '- navigation "Main Menu":',
            '  - link "Home"',
            '    - /url: /home',
            '- button "Submit"',
        ])
        nodes = parse_snapshot(snapshot)
        assert [n.name for n in nodes] == ["Dashboard", "Main Menu", "Home", "Submit"]
        assert [n.level for n in nodes] == [0, 0, 1, 0]
        assert [n.line_index for n in nodes] == [0, 1, 2, 4]

    def test_empty(self):
        """An empty snapshot has no nodes."""
        assert parse_snapshot("") == []


class TestScoring:
    """Test node scoring and ranking."""

    def test_exact_match(self):
        """Role, name and descriptor all agree."""
        node = AccessibilityNode(role="button", name="Submit", level=0)
        target = ElementTarget(element_type="button", descriptors=["Submit"])
        score = score_node(node, "Submit", ["button"], target)
        assert score.total == pytest.approx(0.95)
        assert score.breakdown["role"] == 1.0
        assert score.breakdown["name"] == 1.0

    def test_wrong_role_scores_lower(self):
        """A same-named node of another role ranks below."""
        target = ElementTarget(descriptors=["Submit"])
        button = score_node(AccessibilityNode(role="button", name="Submit", level=0), "Submit", ["button"], target)
        heading = score_node(AccessibilityNode(role="heading", name="Submit", level=0), "Submit", ["button"], target)
        assert heading.total < button.total

    def test_containment_floor(self):
        """A name containing the search text scores at least 0.85 on name."""
        node = AccessibilityNode(role="button", name="Submit order now", level=0)
        score = score_node(node, "Submit", ["button"], ElementTarget(descriptors=["Submit"]))
        assert score.breakdown["name"] >= 0.85

    def test_ordinal_position_score(self):
        """An ordinal raises the position component."""
        node = AccessibilityNode(role="button", name="Save", level=0)
        score = score_node(node, "Save", ["button"], ElementTarget(descriptors=["Save"], ordinal=2))
        assert score.breakdown["position"] == 0.7

    def test_rank_filters_and_sorts(self):
        """Weak nodes are dropped and the best comes first."""
        nodes = [
            AccessibilityNode(role="heading", name="Overview", level=0),
            AccessibilityNode(role="button", name="Submit order", level=0),
            AccessibilityNode(role="button", name="Submit", level=0),
        ]
        ranked = rank_nodes(nodes, "Submit", ["button"], ElementTarget(descriptors=["Submit"]))
        assert [s.node.name for s in ranked] == ["Submit", "Submit order"]


class TestSnapshotCache:
    """Test the per-URL snapshot cache."""

    @pytest.mark.asyncio
    async def test_reused_within_ttl(self):
        """A second call on the same URL returns the cached text."""
        page = MockPage(nodes=[MockNode(role="button", name="Save")])
        cache = SnapshotCache(ttl_ms=60000)

        first = await cache.get(page)
        page.snapshot = '- button "Changed"'
        assert await cache.get(page) == first == '- button "Save"'

    @pytest.mark.asyncio
    async def test_invalidate(self):
        """Invalidation forces a fresh snapshot."""
        page = MockPage(nodes=[MockNode(role="button", name="Save")])
        cache = SnapshotCache(ttl_ms=60000)
        await cache.get(page)
        page.snapshot = '- button "Changed"'
        cache.invalidate()
        assert await cache.get(page) == '- button "Changed"'

    @pytest.mark.asyncio
    async def test_url_change(self):
        """Navigation invalidates implicitly."""
        page = MockPage(nodes=[MockNode(role="button", name="Save")])
        cache = SnapshotCache(ttl_ms=60000)
        await cache.get(page)
        page.snapshot = '- button "Changed"'
        page.url = "https://example.com/other"
        assert await cache.get(page) == '- button "Changed"'

    @pytest.mark.asyncio
    async def test_driver_failure(self):
        """A failing snapshot call gives None."""
        page = MagicMock()
        page.url = "https://example.com/"
        page.locator.return_value.aria_snapshot = AsyncMock(side_effect=Exception("detached"))
        assert await SnapshotCache().get(page) is None
