"""
Error Recovery - Retry a failed step before giving up on it.

Recovery is two cheap, logical moves that need no re-resolution:
    1. scroll the element into view, let the page settle, retry once
    2. retry with each alternative match, best first

The first success wins. Recovery never nests: a failure inside a recovery
attempt is reported as-is. The guard is per asyncio task, so steps running
concurrently on other pages still recover.
"""

import asyncio
import logging
from contextvars import ContextVar
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

from nl_step_engine.engine.types import ActionResult, MatchedElement

if TYPE_CHECKING:
    from nl_step_engine.engine.types import ParsedStep

logger = logging.getLogger(__name__)

# run(element) -> ActionResult
StepRunner = Callable[[MatchedElement], Awaitable[ActionResult]]

# Set while a recovery attempt runs in the current task
_recovering: ContextVar[bool] = ContextVar("nl_step_engine_recovering", default=False)


class ErrorType(Enum):
    """Classified error types, used to skip recovery that cannot help."""
    ELEMENT_NOT_FOUND = "element_not_found"
    ELEMENT_NOT_VISIBLE = "element_not_visible"
    ELEMENT_NOT_CLICKABLE = "element_not_clickable"
    ELEMENT_DETACHED = "element_detached"
    TIMEOUT = "timeout"
    NAVIGATION_FAILED = "navigation_failed"
    ASSERTION_FAILED = "assertion_failed"
    UNKNOWN = "unknown"


class ErrorRecovery:
    """
    Scroll-and-retry, then alternatives.

    Args:
        retries: 0 disables recovery
        settle_ms: Pause after scrolling before the retry
        scroll_timeout_ms: Timeout for the scroll itself

    Usage:
        recovery = ErrorRecovery()
        result = await recovery.recover(step, element, error, run)
        if result is None:
            # report the original failure
    """

    # Error message fragments -> ErrorType
    ERROR_PATTERNS: Dict[ErrorType, List[str]] = {
        ErrorType.ELEMENT_NOT_FOUND: [
            "no element found",
            "element not found",
            "resolved to 0 elements",
            "waiting for locator",
        ],
        ErrorType.ELEMENT_NOT_VISIBLE: [
            "not visible",
            "outside of the viewport",
            "zero-size",
        ],
        ErrorType.ELEMENT_NOT_CLICKABLE: [
            "intercepts pointer events",
            "not clickable",
            "not enabled",
            "not editable",
        ],
        ErrorType.ELEMENT_DETACHED: [
            "detached",
            "not attached",
            "stale",
        ],
        ErrorType.ASSERTION_FAILED: [
            "expected",
        ],
        ErrorType.TIMEOUT: [
            "timeout",
            "timed out",
        ],
        ErrorType.NAVIGATION_FAILED: [
            "net::",
            "navigation failed",
            "err_",
        ],
    }

    def __init__(self, retries: int = 1, settle_ms: int = 500, scroll_timeout_ms: int = 3000):
        self.retries = retries
        self.settle_ms = settle_ms
        self.scroll_timeout_ms = scroll_timeout_ms

    @property
    def in_recovery(self) -> bool:
        return _recovering.get()

    def classify_error(self, error: BaseException) -> ErrorType:
        """Classify an exception by its message."""
        error_str = str(error).lower()
        for error_type, patterns in self.ERROR_PATTERNS.items():
            for pattern in patterns:
                if pattern in error_str:
                    return error_type
        return ErrorType.UNKNOWN

    async def recover(
        self,
        step: "ParsedStep",
        element: Optional[MatchedElement],
        error: BaseException,
        run: StepRunner,
    ) -> Optional[ActionResult]:
        """
        Try to complete a failed step.

        Args:
            step: The step that failed
            element: Element it failed on (None for page-level intents)
            error: The failure
            run: Re-executes the step against a given element

        Returns:
            The first successful ActionResult, or None
        """
        if self.retries <= 0 or _recovering.get() or element is None:
            return None

        error_type = self.classify_error(error)
        logger.debug(f"Attempting recovery for {step.intent} ({error_type.value}): {error}")

        token = _recovering.set(True)
        try:
            if error_type != ErrorType.NAVIGATION_FAILED:
                result = await self._scroll_and_retry(element, run)
                if result is not None and result.success:
                    logger.info(f"Recovered {step.intent} by scrolling into view")
                    return result

            for alternative in element.alternatives:
                logger.debug(f"Trying alternative locator: {alternative.description}")
                candidate = MatchedElement(
                    locator=alternative.locator,
                    confidence=alternative.confidence,
                    method=alternative.method,
                    description=alternative.description,
                    broad_locator=alternative.broad_locator,
                )
                try:
                    result = await run(candidate)
                except Exception as e:
                    logger.debug(f"Alternative {alternative.description} failed: {e}")
                    continue
                if result.success:
                    logger.info(f"Recovered {step.intent} with alternative {alternative.description}")
                    return result

            return None
        finally:
            _recovering.reset(token)

    async def _scroll_and_retry(self, element: MatchedElement, run: StepRunner) -> Optional[ActionResult]:
        try:
            await element.locator.scroll_into_view_if_needed(timeout=self.scroll_timeout_ms)
            await asyncio.sleep(self.settle_ms / 1000)
            return await run(element)
        except Exception as e:
            logger.debug(f"Scroll-and-retry failed: {e}")
            return None
