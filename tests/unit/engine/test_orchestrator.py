"""
Tests for the StepEngine orchestrator.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import MockNode, MockPage
from nl_step_engine.engine.action_executor import ActionExecutor
from nl_step_engine.engine.error_recovery import ErrorRecovery
from nl_step_engine.engine.fingerprint import generate_key
from nl_step_engine.engine.orchestrator import StepEngine, url_pattern
from nl_step_engine.engine.types import AlternativeMatch, MatchedElement, MatchMethod
from nl_step_engine.exceptions import (
    ConfigurationError,
    ElementResolutionError,
    StepExecutionError,
    StepParseError,
    StepValidationError,
)
from nl_step_engine.utils.retry import RetryConfig

NO_DELAY = RetryConfig(initial_delay_ms=0, max_delay_ms=0)


@pytest.fixture
def engine(settings):
    engine = StepEngine(settings=settings, resolution_retry=NO_DELAY)
    yield engine
    engine.close()


class TestUrlPattern:
    """Test page identity."""

    def test_drops_query_and_fragment(self):
        """Only scheme, host and path remain."""
        assert url_pattern("https://example.com/app?x=1#top") == "https://example.com/app"


class TestRunValidation:
    """Test checks made before parsing."""

    @pytest.mark.asyncio
    async def test_disabled(self, settings, login_page):
        """A disabled engine refuses to run."""
        engine = StepEngine(settings=settings.merge_with({"engine": {"enabled": False}}))
        with pytest.raises(ConfigurationError):
            await engine.run("Click Login", login_page)

    @pytest.mark.asyncio
    async def test_no_page(self, engine):
        """A page is required."""
        with pytest.raises(StepValidationError):
            await engine.run("Click Login", None)

    @pytest.mark.asyncio
    async def test_empty_instruction(self, engine, login_page):
        """Blank instructions fail to parse."""
        with pytest.raises(StepParseError):
            await engine.run("   ", login_page)

    @pytest.mark.asyncio
    async def test_closed_page(self, engine, login_page):
        """Closed pages are rejected."""
        login_page.closed = True
        with pytest.raises(StepValidationError, match="closed"):
            await engine.run("Click Login", login_page)

    @pytest.mark.asyncio
    async def test_unparseable(self, engine, login_page):
        """Nonsense raises StepParseError."""
        with pytest.raises(StepParseError):
            await engine.run("Lorem ipsum dolor", login_page)


class TestSingleSteps:
    """Test return contracts of single steps."""

    @pytest.mark.asyncio
    async def test_action_returns_none(self, engine, login_page):
        """Actions return None and act on the page."""
        assert await engine.run("Click the Login button", login_page) is None
        assert ("click", "Login") in login_page.actions

    @pytest.mark.asyncio
    async def test_fill(self, engine, login_page):
        """Quoted values are typed into the resolved field."""
        await engine.run("Type 'alice' in the Username field", login_page)
        assert login_page.nodes[1].value == "alice"

    @pytest.mark.asyncio
    async def test_assertion_returns_true(self, engine, login_page):
        """Passing assertions return True."""
        assert await engine.run("Verify the Login button is visible", login_page) is True

    @pytest.mark.asyncio
    async def test_query_returns_value(self, engine, login_page):
        """Queries return the queried value."""
        assert await engine.run("Get the text from the heading", login_page) == "Sign in"
        assert await engine.run("Get the current URL", login_page) == login_page.url

    @pytest.mark.asyncio
    async def test_absent_element_passes_absence_check(self, engine, login_page):
        """Hidden checks pass when the element is not there at all."""
        assert await engine.run("Verify the Spinner is not visible", login_page) is True

    @pytest.mark.asyncio
    async def test_unresolvable_element(self, engine, login_page):
        """Missing targets raise after every attempt."""
        with pytest.raises(ElementResolutionError) as exc_info:
            await engine.run("Verify the Zebra link is visible", login_page)
        assert exc_info.value.attempts == 4

    @pytest.mark.asyncio
    async def test_execution_failure(self, engine):
        """A driver failure raises StepExecutionError."""
        page = MockPage(nodes=[MockNode(role="button", name="Save", tag="button", fail_with="Element is detached")])
        with pytest.raises(StepExecutionError) as exc_info:
            await engine.run("Click the Save button", page)
        assert exc_info.value.intent == "click"
        assert exc_info.value.method == "accessibility-tree"

    @pytest.mark.asyncio
    async def test_screenshot_on_failure(self, settings):
        """A failure screenshot is taken when enabled."""
        engine = StepEngine(
            settings=settings.merge_with({"engine": {"screenshot_on_failure": True}}),
            resolution_retry=NO_DELAY,
        )
        page = MockPage(nodes=[])
        with pytest.raises(ElementResolutionError):
            await engine.run("Click the Save button", page)
        page.screenshot.assert_awaited_once()


class TestLearning:
    """Test cache learning and self-healing."""

    @pytest.mark.asyncio
    async def test_success_is_cached(self, engine, login_page):
        """A resolved element is fingerprinted and counted."""
        await engine.run("Click the Login button", login_page)

        assert len(engine.cache) == 1
        stats = engine.cache.get_page_stats(url_pattern(login_page.url))
        assert stats.successful_matches == 1

    @pytest.mark.asyncio
    async def test_second_run_uses_fingerprint(self, engine, login_page):
        """The cached fingerprint resolves the same element again."""
        await engine.run("Click the Login button", login_page)
        await engine.run("Click the Login button", login_page)

        assert login_page.actions.count(("click", "Login")) == 2
        assert engine.cache.get_stats()["totalSuccesses"] == 2

    @pytest.mark.asyncio
    async def test_cache_disabled(self, settings, login_page):
        """No cache is built when disabled."""
        engine = StepEngine(settings=settings.merge_with({"cache": {"enabled": False}}))
        await engine.run("Click the Login button", login_page)
        assert engine.cache is None


def _save_page() -> MockPage:
    return MockPage(nodes=[
        MockNode(role="button", name="Save", tag="button", attrs={"id": "save-bad"},
                 fail_with="<div> intercepts pointer events"),
        MockNode(role="link", name="Save draft", tag="a", attrs={"id": "save-draft"}),
    ])


def _button_with_link_alternative(page: MockPage) -> MagicMock:
    """Matcher that always offers the button first and the link as a fallback."""
    async def find_element(root, target, intent, threshold=None):
        buttons = page.get_by_role("button")
        links = page.get_by_role("link")
        return MatchedElement(
            locator=buttons.first,
            confidence=0.9,
            method=MatchMethod.ACCESSIBILITY_TREE,
            description='button[name="Save"]',
            broad_locator=buttons,
            alternatives=[AlternativeMatch(
                locator=links.first,
                confidence=0.5,
                method=MatchMethod.TEXT_SEARCH,
                description='link[name="Save draft"]',
                broad_locator=links,
            )],
        )

    matcher = MagicMock()
    matcher.find_element = AsyncMock(side_effect=find_element)
    return matcher


class TestLearningAfterRecovery:
    """Test what is learned when recovery or the cache changes the element."""

    @pytest.fixture
    def executor(self):
        return ActionExecutor(timeout_ms=200, poll_interval_ms=10, recovery=ErrorRecovery(settle_ms=0))

    @pytest.mark.asyncio
    async def test_alternative_that_worked_is_cached(self, settings, executor):
        """The fingerprint comes from the alternative, so the next run heals to it."""
        page = _save_page()
        matcher = _button_with_link_alternative(page)
        engine = StepEngine(settings=settings, matcher=matcher, executor=executor, resolution_retry=NO_DELAY)

        await engine.run("Click Save", page)
        entry = engine.cache.get(generate_key(page.url, "Click Save"))
        assert entry.fingerprint.id == "save-draft"
        assert entry.locator_strategy == "text-search"

        await engine.run("Click Save", page)

        assert page.actions.count(("click", "Save draft")) == 2
        assert matcher.find_element.await_count == 1
        engine.close()

    @pytest.mark.asyncio
    async def test_failed_heal_resolves_again(self, settings, executor):
        """A cached element that stops working is replaced through the matcher."""
        page = _save_page()
        button = page.nodes[0]
        button.fail_with = None
        matcher = _button_with_link_alternative(page)
        engine = StepEngine(settings=settings, matcher=matcher, executor=executor, resolution_retry=NO_DELAY)
        key = generate_key(page.url, "Click Save")

        await engine.run("Click Save", page)
        assert engine.cache.get(key).fingerprint.id == "save-bad"

        button.fail_with = "<div> intercepts pointer events"
        await engine.run("Click Save", page)

        assert ("click", "Save draft") in page.actions
        assert matcher.find_element.await_count == 2
        entry = engine.cache.get(key)
        assert entry.fingerprint.id == "save-draft"
        assert entry.failure_count == 1
        engine.close()


class TestResolutionRetry:
    """Test repeated resolution attempts."""

    @pytest.mark.asyncio
    async def test_element_found_on_later_attempt(self, engine):
        """An element that appears after the page settles is found on retry."""
        page = MockPage(nodes=[])

        async def settle(*args, **kwargs):
            page.nodes.append(MockNode(role="button", name="Save", tag="button"))

        page.wait_for_load_state = AsyncMock(side_effect=settle)

        await engine.run("Click the Save button", page)

        page.wait_for_load_state.assert_awaited_once()
        assert ("click", "Save") in page.actions

    @pytest.mark.asyncio
    async def test_retry_config_controls_attempts(self, settings):
        """The retry callback sees each retried attempt."""
        retried = []
        engine = StepEngine(
            settings=settings,
            resolution_retry=RetryConfig(initial_delay_ms=0, on_retry=lambda n, e: retried.append(n)),
        )
        with pytest.raises(ElementResolutionError) as exc_info:
            await engine.run("Click the Save button", MockPage(nodes=[]))

        assert retried == [1, 2]
        assert exc_info.value.attempts == 3
        engine.close()


def _users_page() -> MockPage:
    return MockPage(nodes=[
        MockNode(role="table", name="Orders", tag="table", table={"headers": ["Id"], "rows": [["7"]]}),
        MockNode(role="table", name="Users", tag="table", table={
            "headers": ["Name", "Status"],
            "rows": [["Alice", "Active"], ["Bob", "Suspended"]],
        }),
        MockNode(role="columnheader", name="Name", tag="th"),
    ])


class TestTables:
    """Test table steps end to end."""

    @pytest.mark.asyncio
    async def test_cell_query_reads_named_table(self, engine):
        """The named table is read, not the first one on the page."""
        page = _users_page()
        value = await engine.run("Get the value from row 2 column 'Status' of the Users table", page)
        assert value == "Suspended"
        assert len(engine.cache) == 0

    @pytest.mark.asyncio
    async def test_table_assertions(self, engine):
        """Sorted and column checks return True."""
        page = _users_page()
        assert await engine.run("Verify column 'Name' of the Users table is sorted ascending", page) is True
        assert await engine.run("Verify column 'Email' does not exist in the Users table", page) is True
        assert await engine.run("Count rows in the Users table", page) == 2

    @pytest.mark.asyncio
    async def test_missing_table(self, engine):
        """An unknown table among several fails resolution."""
        with pytest.raises(ElementResolutionError):
            await engine.run("Count rows in the Invoices table", _users_page())

    @pytest.mark.asyncio
    async def test_sort_column(self, engine):
        """Header clicks go through normal resolution."""
        page = _users_page()
        await engine.run("Click column header 'Name' to sort", page)
        assert ("click", "Name") in page.actions


class TestCompound:
    """Test decomposed instructions."""

    @pytest.mark.asyncio
    async def test_sequence(self, engine, login_page):
        """Each part runs in order."""
        await engine.run("Type 'alice' in the Username field and then click the Login button", login_page)
        assert [a[0] for a in login_page.actions] == ["fill", "click"]

    @pytest.mark.asyncio
    async def test_conditional_skipped(self, engine, login_page):
        """A false guard skips the step."""
        assert await engine.run("If the Remember me checkbox is checked, click Login", login_page) is None
        assert login_page.actions == []

    @pytest.mark.asyncio
    async def test_conditional_runs(self, engine, login_page):
        """A true guard runs the step."""
        login_page.nodes[3].checked = True
        await engine.run("If the Remember me checkbox is checked, click Login", login_page)
        assert ("click", "Login") in login_page.actions

    @pytest.mark.asyncio
    async def test_loop(self, engine, login_page):
        """Loops repeat the step."""
        await engine.run("Click the Login button 3 times", login_page)
        assert login_page.actions.count(("click", "Login")) == 3


class TestScope:
    """Test tab scope tracking."""

    @pytest.mark.asyncio
    async def test_switched_tab_persists(self, engine, login_page):
        """Later steps on the same origin page run in the switched-to tab."""
        other = MockPage(context=login_page.context, url="https://example.com/other")

        await engine.run("Switch to tab 2", login_page)

        assert engine.active_page is other
        assert await engine.run("Get the current URL", login_page) == "https://example.com/other"

    @pytest.mark.asyncio
    async def test_new_origin_resets_scope(self, engine, login_page):
        """Passing a different page starts a new scope."""
        MockPage(context=login_page.context, url="https://example.com/other")
        await engine.run("Switch to tab 2", login_page)

        fresh = MockPage(url="https://example.com/fresh")
        assert await engine.run("Get the current URL", fresh) == "https://example.com/fresh"
