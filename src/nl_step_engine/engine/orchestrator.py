"""
Step Engine - Main orchestrator that ties all components together.

This is the primary entry point for running natural-language test steps:

    1. Decompose compound, conditional and loop instructions
    2. Parse each atomic instruction into a ParsedStep
    3. Resolve the target element (cache + self-heal first, then the cascade)
    4. Execute the intent and learn from the outcome

Example:
    >>> engine = StepEngine()
    >>> await engine.run("Type 'admin' in the Username field", page)
    >>> await engine.run("Verify the Dashboard heading is visible", page)
    True
    >>> await engine.run("Get the text of the Welcome banner", page)
    'Welcome back, admin'
"""

import dataclasses
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

from nl_step_engine.config import Settings, get_settings
from nl_step_engine.engine.accessibility_matcher import AccessibilityMatcher
from nl_step_engine.engine.action_executor import ActionExecutor
from nl_step_engine.engine.decomposer import (
    Condition,
    DecomposedInstruction,
    InstructionDecomposer,
    SubInstruction,
    SubInstructionType,
)
from nl_step_engine.engine.element_cache import ElementCache
from nl_step_engine.engine.error_recovery import ErrorRecovery
from nl_step_engine.engine.fingerprint import capture, generate_key, self_heal
from nl_step_engine.engine.grammar import GrammarEngine, extract_quoted_strings
from nl_step_engine.engine.grammar.helpers import target_parts
from nl_step_engine.engine.step_parser import StepParser
from nl_step_engine.engine.types import MatchedElement, MatchMethod, ParsedStep, StepCategory
from nl_step_engine.engine.vocabulary import (
    ABSENCE_INTENTS,
    DOM_MUTATING_INTENTS,
    PAGE_LEVEL_INTENTS,
    TABLE_INTENTS,
)
from nl_step_engine.exceptions import (
    ConfigurationError,
    ElementResolutionError,
    StepEngineError,
    StepExecutionError,
    StepParseError,
    StepValidationError,
)
from nl_step_engine.utils.retry import RetryConfig, retry_async

if TYPE_CHECKING:
    from playwright.async_api import Frame, Page

logger = logging.getLogger(__name__)

# Delay before the 2nd resolution attempt, doubled for the next ones up to 4s
RESOLUTION_RETRY = RetryConfig(initial_delay_ms=2000, max_delay_ms=4000, backoff_multiplier=2.0)
NETWORK_IDLE_TIMEOUT_MS = 5000


def url_pattern(url: str) -> str:
    """Page identity used for statistics: scheme://host/path."""
    parts = urlsplit(url or "")
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


class StepEngine:
    """
    Runs natural-language test steps against a Playwright page.

    Components are built from settings unless injected.

    Args:
        settings: Settings (default: global settings)
        parser: Step parser
        matcher: Element matcher
        cache: Element cache (None with cache.enabled=False)
        executor: Action executor
        decomposer: Instruction decomposer
        resolution_retry: Backoff between resolution attempts
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        parser: Optional[StepParser] = None,
        matcher: Optional[AccessibilityMatcher] = None,
        cache: Optional[ElementCache] = None,
        executor: Optional[ActionExecutor] = None,
        decomposer: Optional[InstructionDecomposer] = None,
        resolution_retry: Optional[RetryConfig] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        self.parser = parser or StepParser(GrammarEngine(cache_ttl_ms=s.engine.parse_cache_ttl_ms))
        self.matcher = matcher or AccessibilityMatcher(
            confidence_threshold=s.matcher.confidence_threshold,
            a11y_cache_ttl_ms=s.matcher.a11y_cache_ttl_ms,
        )
        if cache is None and s.cache.enabled:
            cache = ElementCache(
                cache_dir=s.cache.directory,
                ttl_ms=s.cache.ttl_ms,
                max_entries=s.cache.max_entries,
                save_debounce_ms=s.cache.save_debounce_ms,
            )
        self.cache = cache
        self.executor = executor or ActionExecutor(
            timeout_ms=s.executor.timeout_ms,
            navigation_timeout_ms=s.executor.navigation_timeout_ms,
            poll_interval_ms=s.executor.poll_interval_ms,
            login_url=s.executor.login_url,
            screenshot_dir=s.engine.screenshot_dir,
            recovery=ErrorRecovery(retries=s.executor.retries),
        )
        self.decomposer = decomposer or InstructionDecomposer()
        self.resolution_retry = resolution_retry or RESOLUTION_RETRY

        # Scope set by tab and frame switches, tied to the page it started from
        self._origin: Optional["Page"] = None
        self._active_page: Optional["Page"] = None
        self._active_frame: Optional["Frame"] = None

    @property
    def active_page(self) -> Optional["Page"]:
        return self._active_page

    @property
    def active_frame(self) -> Optional["Frame"]:
        return self._active_frame

    async def run(self, instruction: str, page: "Page") -> Any:
        """
        Run one instruction.

        Args:
            instruction: Natural-language step, possibly compound
            page: Playwright page

        Returns:
            Query value for queries, True for assertions, None for actions.
            A compound instruction returns the value of its last step.

        Raises:
            StepParseError: Instruction not understood
            ElementResolutionError: Target element not found
            OrdinalOutOfRangeError: Ordinal beyond the number of matches
            StepExecutionError: The operation failed
        """
        self._validate(instruction, page)
        page = self._scope_page(page)
        if page.is_closed():
            raise StepValidationError("Page is closed", intent="run", invalid_params={"page": "closed"})

        try:
            if self.settings.engine.decompose:
                decomposed = self.decomposer.decompose(instruction)
                if decomposed.was_decomposed:
                    return await self._run_decomposed(decomposed, page)
            return await self._run_single(instruction.strip(), page)
        except StepEngineError:
            await self._screenshot_on_failure(self._active_page or page)
            raise

    def _validate(self, instruction: str, page: Optional["Page"]) -> None:
        if not self.settings.engine.enabled:
            raise ConfigurationError("Step engine is disabled", {"setting": "engine.enabled"})
        if page is None:
            raise StepValidationError("A page is required to run a step", intent="run", invalid_params={"page": None})
        if not (instruction or "").strip():
            raise StepParseError("Empty instruction", instruction=instruction or "")

    def _scope_page(self, page: "Page") -> "Page":
        """Page steps run on: the switched-to tab when the caller passes the page it came from."""
        if self._origin is page and self._active_page is not None and not self._active_page.is_closed():
            return self._active_page
        self._origin = page
        self._active_page = page
        self._active_frame = None
        return page

    # ------------------------------------------------------------------
    # Compound instructions
    # ------------------------------------------------------------------

    async def _run_decomposed(self, decomposed: DecomposedInstruction, page: "Page") -> Any:
        logger.info(f"Running {len(decomposed.steps)} step(s) from '{decomposed.original}'")
        result = None
        for sub in decomposed.steps:
            result = await self._run_sub_instruction(sub, self._active_page or page)
        return result

    async def _run_sub_instruction(self, sub: SubInstruction, page: "Page") -> Any:
        if sub.type == SubInstructionType.CONDITIONAL and sub.condition is not None:
            if not await self._check_condition(sub.condition, page):
                logger.info(f"Condition not met, skipping '{sub.text}'")
                return None
            return await self._run_single(sub.text, page)

        if sub.type == SubInstructionType.LOOP:
            result = None
            for i in range(sub.loop_count or 1):
                logger.debug(f"Loop iteration {i + 1}/{sub.loop_count}: {sub.text}")
                result = await self._run_single(sub.text, self._active_page or page)
            return result

        return await self._run_single(sub.text, page)

    async def _check_condition(self, condition: Condition, page: "Page") -> bool:
        """Evaluate a conditional guard; a missing element makes every check False."""
        text, quoted = extract_quoted_strings(condition.element)
        target_text, element_type = target_parts(text, extended=True)
        target = self.parser.grammar.parse_element_target(target_text, element_type, quoted)

        self.matcher.invalidate_cache()
        element = await self.matcher.find_element(self._search_root(page), target, "verify-visible")

        if element is None:
            state = False
        elif condition.check == "visible":
            state = await element.locator.is_visible()
        elif condition.check == "enabled":
            state = await element.locator.is_enabled()
        elif condition.check == "checked":
            state = await element.locator.is_checked()
        else:
            state = True

        result = state != condition.negate
        logger.debug(
            f"Condition '{condition.element}' {condition.check}"
            f"{' (negated)' if condition.negate else ''}: {result}"
        )
        return result

    # ------------------------------------------------------------------
    # Single step
    # ------------------------------------------------------------------

    async def _run_single(self, instruction: str, page: "Page") -> Any:
        start = time.perf_counter()
        step = self.parser.parse(instruction)
        logger.debug(f"Parsed '{instruction}' as {step.category.value}:{step.intent} ({step.confidence:.2f})")

        element: Optional[MatchedElement] = None
        if self._needs_element(step):
            element = await self._resolve(step, page)
            if element is None:
                if self._absence_expected(step):
                    logger.info(f"'{instruction}' passed: element not present")
                    return True if step.category == StepCategory.ASSERTION else None
                if step.intent == "check-exists":
                    return False
                raise ElementResolutionError(
                    f"Could not find element for: {instruction}",
                    instruction=instruction,
                    descriptors=step.target.descriptors,
                    intent=step.intent,
                    attempts=self._attempts_for(step),
                )

        result = await self.executor.execute(page, step, element)
        if not result.success and element is not None and element.method == MatchMethod.SELF_HEALED:
            # Stale fingerprint: forget it and resolve through the matcher
            logger.info(f"Cached element failed for '{instruction}', resolving again: {result.error}")
            if self.cache is not None:
                self.cache.record_failure(generate_key(page.url, step.raw_text))
            resolved = await self._resolve(step, page, use_cache=False)
            if resolved is not None:
                element = resolved
                result = await self.executor.execute(page, step, element)

        if not result.success:
            logger.warning(f"Step failed: '{instruction}': {result.error}")
            raise StepExecutionError(
                f"Failed to {step.intent}: {result.error}",
                instruction=instruction,
                intent=step.intent,
                method=element.method.value if element else result.method,
                confidence=element.confidence if element else None,
            )

        if element is not None and step.intent not in TABLE_INTENTS:
            element = result.element or element
            await self._learn(step, element, page)
        if step.intent in DOM_MUTATING_INTENTS:
            self.matcher.invalidate_cache()
        self._track_scope(result.active_page, result.active_frame, page)

        logger.info(
            f"{step.intent} completed in {(time.perf_counter() - start) * 1000:.0f}ms"
            + (f" via {element.method.value} ({element.confidence:.2f})" if element else "")
        )

        if step.category == StepCategory.QUERY:
            return result.return_value
        if step.category == StepCategory.ASSERTION:
            return True
        return result.return_value if step.intent == "take-screenshot" else None

    @staticmethod
    def _needs_element(step: ParsedStep) -> bool:
        if step.intent in PAGE_LEVEL_INTENTS:
            return False
        return bool(step.target.search_text or step.target.element_type)

    @staticmethod
    def _absence_expected(step: ParsedStep) -> bool:
        if step.intent in ABSENCE_INTENTS:
            return True
        return step.modifiers.negated and step.intent in ("verify-visible", "wait-for")

    def _attempts_for(self, step: ParsedStep) -> int:
        if self._absence_expected(step):
            return 1
        return 4 if step.category == StepCategory.ASSERTION else 3

    def _search_root(self, page: "Page") -> "Page | Frame":
        return self._active_frame if self._active_frame is not None else page

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _resolve(self, step: ParsedStep, page: "Page", use_cache: bool = True) -> Optional[MatchedElement]:
        """
        Resolve the step's target.

        Tries the cached fingerprint first, then runs the matcher up to
        3 times (4 for assertions) with backoff in between.
        """
        root = self._search_root(page)
        pattern = url_pattern(page.url)

        if use_cache and "row_index" not in step.parameters and step.intent not in TABLE_INTENTS:
            healed = await self._from_cache(step, page, root)
            if healed is not None:
                return healed

        threshold = self.cache.get_recommended_threshold(pattern) if self.cache is not None else None
        if threshold is not None:
            logger.debug(f"Using recommended threshold {threshold:.2f} for {pattern}")

        attempts = self._attempts_for(step)
        attempt = 0

        async def find_once() -> MatchedElement:
            nonlocal attempt
            attempt += 1
            if attempt > 1:
                try:
                    await page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
                except Exception as e:
                    logger.debug(f"Network idle wait skipped: {e}")
            self.matcher.invalidate_cache()
            element = await self._find(step, root, threshold)
            if element is None:
                raise ElementResolutionError(
                    f"Element not found (attempt {attempt}/{attempts})",
                    instruction=step.raw_text,
                    descriptors=step.target.descriptors,
                    intent=step.intent,
                    attempts=attempt,
                )
            return element

        config = dataclasses.replace(
            self.resolution_retry, max_attempts=attempts, retry_on=(ElementResolutionError,)
        )
        try:
            return await retry_async(find_once, config)
        except ElementResolutionError:
            if self.cache is not None:
                self.cache.update_page_stats(pattern, success=False)
            return None

    async def _find(
        self,
        step: ParsedStep,
        root: "Page | Frame",
        threshold: Optional[float],
    ) -> Optional[MatchedElement]:
        if step.intent in TABLE_INTENTS:
            return await self.matcher.find_table(root, step.parameters.get("table_ref"))
        row_index = step.parameters.get("row_index")
        if row_index is not None:
            return await self.matcher.find_in_table_row(
                root, step.target, step.intent, int(row_index), step.parameters.get("table_ref")
            )
        return await self.matcher.find_element(root, step.target, step.intent, threshold=threshold)

    async def _from_cache(self, step: ParsedStep, page: "Page", root: "Page | Frame") -> Optional[MatchedElement]:
        if self.cache is None:
            return None
        key = generate_key(page.url, step.raw_text)
        entry = self.cache.get(key)
        if entry is None:
            return None

        healed = await self_heal(root, entry.fingerprint, min_score=self.settings.matcher.self_heal_min_score)
        if healed is None:
            logger.debug(f"Cached fingerprint no longer matches for '{step.raw_text}'")
            self.cache.record_failure(key)
            return None
        return healed

    async def _learn(self, step: ParsedStep, element: MatchedElement, page: "Page") -> None:
        """Record the element's fingerprint and the page's match statistics."""
        if self.cache is None:
            return
        fingerprint = await capture(
            element.locator,
            page_url=page.url,
            instruction=step.raw_text,
            match_method=element.method.value,
            match_confidence=element.confidence,
        )
        if fingerprint is not None:
            self.cache.set(
                generate_key(page.url, step.raw_text),
                fingerprint,
                locator_strategy=element.method.value,
                locator_description=element.description,
                confidence=element.confidence,
            )
        self.cache.update_page_stats(url_pattern(page.url), success=True, confidence=element.confidence)

    # ------------------------------------------------------------------
    # Scope and teardown
    # ------------------------------------------------------------------

    def _track_scope(self, active_page: Optional["Page"], active_frame: Optional["Frame"], page: "Page") -> None:
        if active_page is not None and active_page is not self._active_page:
            logger.debug(f"Active page is now {active_page.url}")
            self._active_page = active_page
            self._active_frame = None
        elif self._active_page is not None and self._active_page.is_closed():
            self._active_page = None
            self._active_frame = None

        if active_frame is not None:
            main_frame = (self._active_page or page).main_frame
            self._active_frame = None if active_frame is main_frame else active_frame

    async def _screenshot_on_failure(self, page: Optional["Page"]) -> None:
        if not self.settings.engine.screenshot_on_failure or page is None:
            return
        try:
            if page.is_closed():
                return
            directory = Path(self.settings.engine.screenshot_dir)
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / f"ai-step-failure-{datetime.now().strftime('%Y%m%d-%H%M%S-%f')}.png"
            await page.screenshot(path=str(path), full_page=True)
            logger.info(f"Failure screenshot saved as {path}")
        except Exception as e:
            logger.debug(f"Failure screenshot skipped: {e}")

    def flush(self) -> None:
        """Write pending cache changes."""
        if self.cache is not None:
            self.cache.flush()

    def close(self) -> None:
        self.flush()


# Global engine singleton
_engine: Optional[StepEngine] = None


def get_step_engine() -> StepEngine:
    """Get the global StepEngine, built from get_settings() on first use."""
    global _engine
    if _engine is None:
        _engine = StepEngine()
    return _engine


def reset_step_engine() -> None:
    """Flush and drop the global engine."""
    global _engine
    if _engine is not None:
        _engine.close()
    _engine = None


async def run_step(instruction: str, page: "Page", **options: Any) -> Any:
    """
    Run one instruction.

    Without options the global engine is used. Options are settings
    overrides by section and run on a throwaway engine:

        >>> await run_step("Click Save", page, matcher={"confidence_threshold": 0.7})
    """
    if not options:
        return await get_step_engine().run(instruction, page)

    engine = StepEngine(settings=get_settings().merge_with(options))
    try:
        return await engine.run(instruction, page)
    finally:
        engine.close()
