"""
Tests for the multi-strategy element resolver.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import MockNode, MockPage
from nl_step_engine.engine.accessibility_matcher import AccessibilityMatcher, select_by_ordinal
from nl_step_engine.engine.types import ElementTarget, MatchMethod
from nl_step_engine.exceptions import OrdinalOutOfRangeError


@pytest.fixture
def matcher():
    return AccessibilityMatcher(confidence_threshold=0.6, a11y_cache_ttl_ms=0)


def _save_page() -> MockPage:
    return MockPage(nodes=[
        MockNode(role="button", name="Save", tag="button"),
        MockNode(role="button", name="Save", tag="button"),
    ])


class TestAccessibilityTree:
    """Test the snapshot strategy."""

    @pytest.mark.asyncio
    async def test_exact_button(self, matcher, login_page):
        """A uniquely named button resolves from the tree."""
        target = ElementTarget(element_type="button", descriptors=["Login"])
        match = await matcher.find_element(login_page, target, "click")

        assert match.method == MatchMethod.ACCESSIBILITY_TREE
        assert match.confidence == pytest.approx(0.95)
        assert match.locator.nodes[0].attrs["id"] == "login-btn"
        assert match.description == 'button[name="Login"]'

    @pytest.mark.asyncio
    async def test_fill_target(self, matcher, login_page):
        """Fill intents look for text boxes."""
        match = await matcher.find_element(login_page, ElementTarget(descriptors=["Username"]), "fill")
        assert match.locator.nodes[0].name == "Username"

    @pytest.mark.asyncio
    async def test_ambiguous_takes_first_with_penalty(self, matcher):
        """Two equal matches without cues: first one, lower confidence."""
        page = _save_page()
        match = await matcher.find_element(page, ElementTarget(element_type="button", descriptors=["Save"]), "click")

        assert match.locator.nodes[0] is page.nodes[0]
        assert match.confidence == pytest.approx(0.80)
        assert await match.broad_locator.count() == 2
        assert "(2 matches)" in match.description

    @pytest.mark.asyncio
    async def test_ordinal(self, matcher):
        """An ordinal narrows to that match."""
        page = _save_page()
        target = ElementTarget(element_type="button", descriptors=["Save"], ordinal=2)
        match = await matcher.find_element(page, target, "click")
        assert match.locator.nodes[0] is page.nodes[1]

    @pytest.mark.asyncio
    async def test_ordinal_out_of_range(self, matcher):
        """An ordinal beyond every strategy's matches raises."""
        target = ElementTarget(element_type="button", descriptors=["Save"], ordinal=3)
        with pytest.raises(OrdinalOutOfRangeError) as exc_info:
            await matcher.find_element(_save_page(), target, "click")
        assert exc_info.value.count == 2


class TestFallbackStrategies:
    """Test the strategies after the tree."""

    @pytest.mark.asyncio
    async def test_semantic_when_snapshot_empty(self, matcher, login_page):
        """Without a snapshot the role locator is used."""
        page = MockPage(nodes=login_page.nodes, snapshot="")
        match = await matcher.find_element(page, ElementTarget(element_type="button", descriptors=["Login"]), "click")
        assert match.method == MatchMethod.SEMANTIC_LOCATOR
        assert match.confidence == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_text_node_for_assertion(self, matcher):
        """A plain text node resolves by text."""
        page = MockPage(nodes=[MockNode(name="Welcome back", tag="p")])
        match = await matcher.find_element(page, ElementTarget(descriptors=["Welcome back"]), "verify-visible")
        assert match.method == MatchMethod.TEXT_SEARCH
        assert match.confidence == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_assertion_rejects_weak_alternative(self, matcher):
        """Assertions do not accept below-threshold matches."""
        page = MockPage(nodes=[MockNode(name="Welcome back", tag="p"), MockNode(name="Welcome back", tag="p")])
        assert await matcher.find_element(page, ElementTarget(descriptors=["Welcome back"]), "verify-visible") is None

    @pytest.mark.asyncio
    async def test_action_accepts_relaxed_alternative(self, matcher):
        """Actions accept the best alternative at 75% of the threshold."""
        page = MockPage(nodes=[MockNode(name="Welcome back", tag="p"), MockNode(name="Welcome back", tag="p")])
        match = await matcher.find_element(page, ElementTarget(descriptors=["Welcome back"]), "click")
        assert match.method == MatchMethod.TEXT_SEARCH
        assert match.confidence == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_frame_search(self, matcher):
        """Child frames are searched last."""
        page = MockPage(nodes=[MockNode(role="heading", name="Checkout", tag="h1")])
        page.add_frame("payment", "https://pay.example.com", [MockNode(role="button", name="Pay", tag="button")])

        match = await matcher.find_element(page, ElementTarget(element_type="button", descriptors=["Pay"]), "click")

        assert match.description.startswith("frame[payment] > ")
        assert match.locator.nodes[0].name == "Pay"

    @pytest.mark.asyncio
    async def test_nothing_to_search(self, matcher, login_page):
        """No text and no element type gives None."""
        assert await matcher.find_element(login_page, ElementTarget(), "click") is None

    @pytest.mark.asyncio
    async def test_not_found_for_assertion(self, matcher, login_page):
        """An absent element gives None when only weak role matches exist."""
        target = ElementTarget(element_type="button", descriptors=["Delete account"])
        assert await matcher.find_element(login_page, target, "verify-visible") is None


class TestRoleSearch:
    """Test role search text matching."""

    @pytest.fixture
    def page(self):
        return MockPage(nodes=[
            MockNode(role="button", name="Cancel", tag="button"),
            MockNode(role="button", name="Save", tag="button"),
            MockNode(role="button", name="Save", tag="button"),
        ])

    @pytest.mark.asyncio
    async def test_ordinal_among_text_hits(self, matcher, page):
        """The ordinal counts only text-matching nodes."""
        target = ElementTarget(element_type="button", descriptors=["Save"], ordinal=2)
        match = await matcher._match_role(page, target, "click", "Save", ["button"])
        assert match.locator.nodes[0] is page.nodes[2]
        assert match.confidence == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_ordinal_beyond_text_hits(self, matcher, page):
        """Too few text hits for the ordinal raises."""
        target = ElementTarget(element_type="button", descriptors=["Save"], ordinal=3)
        with pytest.raises(OrdinalOutOfRangeError):
            await matcher._match_role(page, target, "click", "Save", ["button"])

    @pytest.mark.asyncio
    async def test_ambiguous_without_text_rejected(self, matcher, page):
        """Many role nodes and no text match is not a match."""
        target = ElementTarget(element_type="button", descriptors=["Zzz"])
        assert await matcher._match_role(page, target, "click", "Zzz", ["button"]) is None


class TestTableRow:
    """Test row-scoped resolution."""

    @staticmethod
    def _page(row_count: int, table_found: bool = True):
        button = MagicMock()
        button.count = AsyncMock(return_value=1)
        row = MagicMock()
        row.get_by_role.return_value = button
        rows = MagicMock()
        rows.count = AsyncMock(return_value=row_count)
        rows.nth.return_value = row
        table = MagicMock()
        table.locator.return_value = rows
        candidate = MagicMock()
        candidate.count = AsyncMock(return_value=1 if table_found else 0)
        candidate.first = table
        page = MagicMock()
        page.get_by_role.return_value = candidate
        page.locator.return_value.filter.return_value.count = AsyncMock(return_value=0)
        return page, rows, button

    @pytest.mark.asyncio
    async def test_row_match(self, matcher):
        """The element is resolved inside the requested row."""
        page, rows, button = self._page(3)
        target = ElementTarget(element_type="button", descriptors=["Edit"])

        match = await matcher.find_in_table_row(page, target, "click", 2, "Users")

        rows.nth.assert_called_with(1)
        assert match.locator is button.first
        assert match.confidence == pytest.approx(0.8)
        assert "Users row 2" in match.description

    @pytest.mark.asyncio
    async def test_row_out_of_range(self, matcher):
        """A row past the end raises."""
        page, _, _ = self._page(3)
        with pytest.raises(OrdinalOutOfRangeError):
            await matcher.find_in_table_row(page, ElementTarget(descriptors=["Edit"]), "click", 5, "Users")

    @pytest.mark.asyncio
    async def test_no_table(self, matcher):
        """A missing table gives None."""
        page, _, _ = self._page(3, table_found=False)
        assert await matcher.find_in_table_row(page, ElementTarget(descriptors=["Edit"]), "click", 1, "Users") is None


class TestFindTable:
    """Test whole-table resolution."""

    @staticmethod
    def _tables(*names: str) -> MockPage:
        return MockPage(nodes=[MockNode(role="table", name=name, tag="table") for name in names])

    @pytest.mark.asyncio
    async def test_by_name(self, matcher):
        """The table is found by accessible name."""
        match = await matcher.find_table(self._tables("Orders", "Users"), "Users")
        assert match.locator.node.name == "Users"
        assert match.method == MatchMethod.SEMANTIC_LOCATOR
        assert match.confidence == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_first_table_without_name(self, matcher):
        """No name picks the first table."""
        match = await matcher.find_table(self._tables("Orders", "Users"))
        assert match.locator.node.name == "Orders"

    @pytest.mark.asyncio
    async def test_unknown_name_uses_only_table(self, matcher):
        """A single table on the page is used when the name does not match."""
        match = await matcher.find_table(self._tables("Users"), "Accounts")
        assert match.locator.node.name == "Users"
        assert match.confidence == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_unknown_name_among_several(self, matcher):
        """With several tables an unknown name resolves to nothing."""
        assert await matcher.find_table(self._tables("Orders", "Users"), "Accounts") is None


class TestSelectByOrdinal:
    """Test ordinal narrowing."""

    def test_ordinals(self):
        """None is first, -1 is last, n is nth(n-1)."""
        page = MockPage(nodes=[MockNode(name="a"), MockNode(name="b"), MockNode(name="c")])
        locator = page.locator("div")
        assert select_by_ordinal(locator, 3, None).nodes[0].name == "a"
        assert select_by_ordinal(locator, 3, -1).nodes[0].name == "c"
        assert select_by_ordinal(locator, 3, 2).nodes[0].name == "b"

    def test_out_of_range(self):
        """An ordinal past the count raises."""
        page = MockPage(nodes=[MockNode(name="a"), MockNode(name="b")])
        with pytest.raises(OrdinalOutOfRangeError):
            select_by_ordinal(page.locator("div"), 2, 5)
