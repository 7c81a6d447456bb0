"""
Action Executor - Run a parsed step against a resolved element.

Intents are dispatched through three tables (actions, assertions, queries).
Every handler returns an ActionResult; driver errors are caught, handed to
ErrorRecovery, and reported as a failed result when recovery does not help.
Missing parameters and unknown intents are programming errors in the step
and raise immediately.

Return values:
    - actions: None (take-screenshot returns the file path)
    - assertions: True
    - queries: the queried value

Example:
    >>> executor = ActionExecutor(timeout_ms=10000)
    >>> result = await executor.execute(page, step, match)
    >>> result.success
    True
"""

import logging
import re
import time
import weakref
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import parse_qs, urljoin, urlsplit

from nl_step_engine.engine.error_recovery import ErrorRecovery
from nl_step_engine.engine.types import ActionResult, MatchedElement, ParsedStep, StepCategory
from nl_step_engine.exceptions import (
    AssertionFailedError,
    ColumnNotFoundError,
    PollTimeoutError,
    StepValidationError,
    UnsupportedIntentError,
)
from nl_step_engine.utils.retry import poll_until

if TYPE_CHECKING:
    from playwright.async_api import Dialog, Locator, Page

logger = logging.getLogger(__name__)

Handler = Callable[["Page", ParsedStep, Optional[MatchedElement]], Awaitable[ActionResult]]

SCROLL_AMOUNT_PX = 500

KEY_MAP: Dict[str, str] = {
    "enter": "Enter",
    "return": "Enter",
    "tab": "Tab",
    "escape": "Escape",
    "esc": "Escape",
    "space": " ",
    "spacebar": " ",
    "backspace": "Backspace",
    "delete": "Delete",
    "del": "Delete",
    "arrow up": "ArrowUp",
    "arrow down": "ArrowDown",
    "arrow left": "ArrowLeft",
    "arrow right": "ArrowRight",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
    "home": "Home",
    "end": "End",
    "page up": "PageUp",
    "page down": "PageDown",
    **{f"f{i}": f"F{i}" for i in range(1, 13)},
}

MODIFIER_MAP: Dict[str, str] = {
    "ctrl": "Control",
    "control": "Control",
    "alt": "Alt",
    "option": "Alt",
    "shift": "Shift",
    "meta": "Meta",
    "cmd": "Meta",
    "command": "Meta",
}

# intent -> parameters that must be present
REQUIRED_PARAMS: Dict[str, List[str]] = {
    "fill": ["value"],
    "type": ["value"],
    "select": ["value"],
    "press-key": ["key"],
    "upload": ["file_path"],
    "drag": ["drag_target"],
    "navigate": ["url"],
    "switch-frame": ["frame_selector"],
    "set-storage-item": ["storage_key"],
    "verify-contains": ["expected_value"],
    "verify-not-contains": ["expected_value"],
    "verify-count": ["count"],
    "verify-attribute": ["attribute"],
    "verify-dialog-text": ["expected_value"],
    "get-attribute": ["attribute"],
    "get-url-param": ["url_param"],
    "get-cookie": ["cookie_name"],
    "get-storage-item": ["storage_key"],
    "get-table-cell": ["row_index", "column_ref"],
    "get-table-column": ["column_ref"],
    "verify-table-cell": ["row_index", "column_ref", "expected_value"],
    "verify-column-sorted": ["column_ref"],
    "verify-column-exists": ["column_ref"],
}

# Intents that work without a resolved element
ELEMENT_OPTIONAL = frozenset({
    "scroll", "press-key", "navigate", "wait-seconds", "wait-url-change", "wait-page-load",
    "switch-tab", "open-new-tab", "close-tab", "clear-session", "switch-frame",
    "switch-main-frame", "accept-dialog", "dismiss-dialog", "handle-next-dialog",
    "take-screenshot", "clear-cookies", "clear-storage", "set-storage-item",
    "verify-url", "verify-title", "verify-dialog-text",
    "get-url", "get-title", "get-url-param", "get-cookie", "get-storage-item", "check-exists",
})


def normalize_key(key: str) -> str:
    """
    Map a spoken key name to a Playwright key identifier.

    Example:
        >>> normalize_key("ctrl + shift + del")
        'Control+Shift+Delete'
    """
    key = key.strip()
    if "+" in key and len(key) > 1:
        parts = [p.strip() for p in re.split(r"\s*\+\s*", key) if p.strip()]
        normalized = []
        for part in parts:
            lower = part.lower()
            if lower in MODIFIER_MAP:
                normalized.append(MODIFIER_MAP[lower])
            elif lower in KEY_MAP:
                normalized.append(KEY_MAP[lower])
            elif len(lower) == 1:
                normalized.append(lower)
            else:
                normalized.append(part[:1].upper() + part[1:].lower())
        return "+".join(normalized)
    return KEY_MAP.get(key.lower(), key)


# {headers, rows} from thead / tbody, falling back to ARIA columnheader / row roles
TABLE_DATA_JS = """table => {
    const text = el => (el.innerText || el.textContent || '').trim();
    const cells = row => Array.from(
        row.querySelectorAll('td, th, [role="cell"], [role="gridcell"], [role="rowheader"]')
    ).map(text);
    let headers = Array.from(table.querySelectorAll('thead th, thead td')).map(text);
    if (!headers.length) {
        headers = Array.from(table.querySelectorAll('[role="columnheader"]')).map(text);
    }
    let rows = Array.from(table.querySelectorAll('tbody tr'));
    if (!rows.length) {
        rows = Array.from(table.querySelectorAll('[role="row"]'))
            .filter(row => !row.querySelector('[role="columnheader"]'));
    }
    if (!headers.length && rows.length && rows[0].querySelector('th') && !rows[0].querySelector('td')) {
        headers = cells(rows[0]);
        rows = rows.slice(1);
    }
    return {headers, rows: rows.map(cells)};
}"""

_DATE_FORMATS = (
    "%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M", "%Y/%m/%d",
    "%m/%d/%Y", "%d.%m.%Y", "%d %b %Y", "%d %B %Y", "%b %d, %Y", "%B %d, %Y",
)


def column_index(headers: List[str], column_ref: Any) -> int:
    """
    0-based column index for a 1-based number or a header text.

    Header text matches exactly first (case-insensitive), then as a
    substring. Returns -1 when no header matches.
    """
    ref = str(column_ref).strip()
    if ref.isdigit():
        return int(ref) - 1
    lowered = ref.lower()
    for index, header in enumerate(headers):
        if header.strip().lower() == lowered:
            return index
    for index, header in enumerate(headers):
        if lowered and lowered in header.lower():
            return index
    return -1


def sort_key(value: str, data_type: str) -> Any:
    """Comparable form of a cell value, None when it does not read as data_type."""
    text = value.strip()
    if data_type == "number":
        try:
            return float(re.sub(r"[^0-9.\-]", "", text))
        except ValueError:
            return None
    if data_type == "date":
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        return None
    return text.lower()


def is_sorted(values: List[str], descending: bool = False, data_type: str = "string") -> bool:
    """
    Whether the column values are in order.

    Empty cells and values that do not parse as data_type are skipped.
    """
    keys = [k for k in (sort_key(v, data_type) for v in values if v.strip()) if k is not None]
    pairs = zip(keys, keys[1:])
    if descending:
        return all(a >= b for a, b in pairs)
    return all(a <= b for a, b in pairs)


class DialogWatcher:
    """
    Tracks JavaScript dialogs (alert, confirm, prompt) on one page.

    A dialog that opens while a response is armed is answered immediately;
    otherwise it is held until an accept/dismiss step answers it.
    """

    def __init__(self) -> None:
        self.pending: Optional["Dialog"] = None
        self.last_message: Optional[str] = None
        self._armed: Optional[Tuple[str, Optional[str]]] = None

    def attach(self, page: "Page") -> None:
        page.on("dialog", self._on_dialog)

    async def _on_dialog(self, dialog: "Dialog") -> None:
        self.last_message = dialog.message
        logger.debug(f"Dialog opened ({dialog.type}): {dialog.message}")
        if self._armed is not None:
            action, prompt_text = self._armed
            self._armed = None
            await self._answer(dialog, action, prompt_text)
        else:
            self.pending = dialog

    async def respond(self, action: str, prompt_text: Optional[str] = None) -> bool:
        """Answer the held dialog; arm for the next one when none is held. True if answered now."""
        if self.pending is not None:
            dialog, self.pending = self.pending, None
            await self._answer(dialog, action, prompt_text)
            return True
        self.arm(action, prompt_text)
        return False

    def arm(self, action: str, prompt_text: Optional[str] = None) -> None:
        self._armed = (action, prompt_text)

    @staticmethod
    async def _answer(dialog: "Dialog", action: str, prompt_text: Optional[str]) -> None:
        if action == "dismiss":
            await dialog.dismiss()
        elif prompt_text is not None:
            await dialog.accept(prompt_text)
        else:
            await dialog.accept()


class ActionExecutor:
    """
    Intent dispatcher with recovery.

    Args:
        timeout_ms: Per-operation driver timeout
        navigation_timeout_ms: Floor for navigation timeouts
        poll_interval_ms: Interval for polled assertions
        login_url: Default destination after clear-session
        screenshot_dir: Directory for take-screenshot files
        recovery: ErrorRecovery instance (default: one retry)
    """

    def __init__(
        self,
        timeout_ms: int = 10000,
        navigation_timeout_ms: int = 30000,
        poll_interval_ms: int = 250,
        login_url: Optional[str] = None,
        screenshot_dir: str = ".",
        recovery: Optional[ErrorRecovery] = None,
    ):
        self.timeout_ms = timeout_ms
        self.navigation_timeout_ms = max(navigation_timeout_ms, timeout_ms)
        self.poll_interval_ms = poll_interval_ms
        self.login_url = login_url
        self.screenshot_dir = Path(screenshot_dir)
        self.recovery = recovery or ErrorRecovery()
        self._dialogs: "weakref.WeakKeyDictionary[Page, DialogWatcher]" = weakref.WeakKeyDictionary()

        self._actions: Dict[str, Handler] = {
            "click": self._click,
            "double-click": self._double_click,
            "right-click": self._right_click,
            "fill": self._fill,
            "type": self._fill,
            "clear": self._clear,
            "select": self._select,
            "check": self._check,
            "uncheck": self._uncheck,
            "toggle": self._toggle,
            "hover": self._hover,
            "scroll-to": self._scroll_to,
            "scroll": self._scroll,
            "focus": self._focus,
            "press-key": self._press_key,
            "navigate": self._navigate,
            "upload": self._upload,
            "drag": self._drag,
            "wait-for": self._wait_for,
            "wait-seconds": self._wait_seconds,
            "wait-url-change": self._wait_url_change,
            "wait-text-change": self._wait_text_change,
            "wait-page-load": self._wait_page_load,
            "switch-tab": self._switch_tab,
            "open-new-tab": self._open_new_tab,
            "close-tab": self._close_tab,
            "clear-session": self._clear_session,
            "switch-frame": self._switch_frame,
            "switch-main-frame": self._switch_main_frame,
            "accept-dialog": self._answer_dialog,
            "dismiss-dialog": self._answer_dialog,
            "handle-next-dialog": self._handle_next_dialog,
            "take-screenshot": self._take_screenshot,
            "clear-cookies": self._clear_cookies,
            "clear-storage": self._clear_storage,
            "set-storage-item": self._set_storage_item,
            "sort-column": self._sort_column,
        }
        self._assertions: Dict[str, Handler] = {
            "verify-visible": self._verify_visible,
            "verify-hidden": self._verify_hidden,
            "verify-not-present": self._verify_not_present,
            "verify-text": self._verify_text,
            "verify-contains": self._verify_contains,
            "verify-not-contains": self._verify_not_contains,
            "verify-enabled": self._verify_enabled,
            "verify-disabled": self._verify_disabled,
            "verify-checked": self._verify_checked,
            "verify-unchecked": self._verify_unchecked,
            "verify-count": self._verify_count,
            "verify-value": self._verify_value,
            "verify-attribute": self._verify_attribute,
            "verify-url": self._verify_url,
            "verify-title": self._verify_title,
            "verify-dialog-text": self._verify_dialog_text,
            "verify-table-cell": self._verify_table_cell,
            "verify-column-sorted": self._verify_column_sorted,
            "verify-column-exists": self._verify_column_exists,
        }
        self._queries: Dict[str, Handler] = {
            "get-text": self._get_text,
            "get-value": self._get_value,
            "get-attribute": self._get_attribute,
            "get-count": self._get_count,
            "get-list": self._get_list,
            "get-url": self._get_url,
            "get-title": self._get_title,
            "check-exists": self._check_exists,
            "get-url-param": self._get_url_param,
            "get-cookie": self._get_cookie,
            "get-storage-item": self._get_storage_item,
            "get-table-data": self._get_table_data,
            "get-table-cell": self._get_table_cell,
            "get-table-column": self._get_table_column,
            "get-table-row-count": self._get_table_row_count,
        }

    @property
    def supported_intents(self) -> Dict[str, List[str]]:
        return {
            StepCategory.ACTION.value: sorted(self._actions),
            StepCategory.ASSERTION.value: sorted(self._assertions),
            StepCategory.QUERY.value: sorted(self._queries),
        }

    def watch_dialogs(self, page: "Page") -> DialogWatcher:
        """Dialog watcher for a page, attached on first use."""
        watcher = self._dialogs.get(page)
        if watcher is None:
            watcher = DialogWatcher()
            watcher.attach(page)
            self._dialogs[page] = watcher
        return watcher

    async def execute(
        self,
        page: "Page",
        step: ParsedStep,
        element: Optional[MatchedElement] = None,
    ) -> ActionResult:
        """
        Execute a step.

        Args:
            page: Page the step runs on
            step: Parsed step
            element: Resolved element, None for page-level intents

        Returns:
            ActionResult; success False when the operation failed after recovery.
            On success, result.element is the element the step completed on,
            which is an alternative when recovery switched to one.

        Raises:
            UnsupportedIntentError: No handler for the step's intent
            StepValidationError: Required parameter or element missing
        """
        start = time.perf_counter()
        handler = self._handler_for(step)
        self._validate(step, element)
        self.watch_dialogs(page)

        try:
            result = await handler(page, step, element)
        except Exception as e:
            if not self.recovery.in_recovery:
                recovered = await self.recovery.recover(
                    step, element, e, lambda candidate: self.execute(page, step, candidate)
                )
                if recovered is not None:
                    recovered.duration_ms = (time.perf_counter() - start) * 1000
                    return recovered

            logger.debug(f"{step.category.value}:{step.intent} failed: {e}")
            return ActionResult(
                success=False,
                error=getattr(e, "message", None) or str(e),
                duration_ms=(time.perf_counter() - start) * 1000,
                method=f"{step.category.value}:{step.intent}",
                element=element,
            )

        result.duration_ms = (time.perf_counter() - start) * 1000
        if result.element is None:
            result.element = element
        return result

    def _handler_for(self, step: ParsedStep) -> Handler:
        table = {
            StepCategory.ACTION: self._actions,
            StepCategory.ASSERTION: self._assertions,
            StepCategory.QUERY: self._queries,
        }[step.category]
        handler = table.get(step.intent)
        if handler is None:
            raise UnsupportedIntentError(step.intent, step.category.value)
        return handler

    @staticmethod
    def _validate(step: ParsedStep, element: Optional[MatchedElement]) -> None:
        missing = {
            name: None
            for name in REQUIRED_PARAMS.get(step.intent, [])
            if step.parameters.get(name) in (None, "")
        }
        if missing:
            raise StepValidationError(
                f"Missing {', '.join(missing)} for {step.intent}. "
                f"Provide a quoted value in the instruction.",
                intent=step.intent,
                invalid_params=missing,
            )

        if element is None and step.intent not in ELEMENT_OPTIONAL:
            raise StepValidationError(
                f"No element found for {step.intent}. Please check the element description.",
                intent=step.intent,
                invalid_params={"element": None},
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _success(method: str, value: Any = None, **extra: Any) -> ActionResult:
        return ActionResult(success=True, return_value=value, method=method, **extra)

    @staticmethod
    def _broad(element: MatchedElement) -> "Locator":
        """Un-narrowed locator for counts and lists."""
        return element.broad_locator or element.locator

    async def _eventually(
        self,
        step: ParsedStep,
        condition: Callable[[], Awaitable[bool]],
        message: str,
        expected: Any = None,
        actual: Optional[Callable[[], Awaitable[Any]]] = None,
        poll_interval_ms: Optional[int] = None,
    ) -> None:
        """Poll a condition; raise AssertionFailedError carrying the last actual value."""
        try:
            await poll_until(
                condition,
                message,
                timeout_ms=self.timeout_ms,
                poll_interval_ms=poll_interval_ms or self.poll_interval_ms,
            )
        except PollTimeoutError as e:
            observed = None
            if actual is not None:
                try:
                    observed = await actual()
                except Exception:
                    observed = None
            raise AssertionFailedError(e.message, step.intent, expected=expected, actual=observed) from e

    @staticmethod
    async def _text(locator: "Locator") -> str:
        return ((await locator.text_content()) or "").strip()

    # ------------------------------------------------------------------
    # Element actions
    # ------------------------------------------------------------------

    async def _click(self, page, step, element) -> ActionResult:
        await element.locator.click(timeout=self.timeout_ms, force=step.modifiers.force)
        return self._success("click")

    async def _double_click(self, page, step, element) -> ActionResult:
        await element.locator.dblclick(timeout=self.timeout_ms)
        return self._success("double-click")

    async def _right_click(self, page, step, element) -> ActionResult:
        await element.locator.click(button="right", timeout=self.timeout_ms)
        return self._success("right-click")

    async def _fill(self, page, step, element) -> ActionResult:
        await element.locator.fill(str(step.value), timeout=self.timeout_ms)
        return self._success("fill")

    async def _clear(self, page, step, element) -> ActionResult:
        await element.locator.clear(timeout=self.timeout_ms)
        return self._success("clear")

    async def _select(self, page, step, element) -> ActionResult:
        await element.locator.select_option(str(step.value), timeout=self.timeout_ms)
        return self._success("select")

    async def _check(self, page, step, element) -> ActionResult:
        await element.locator.check(timeout=self.timeout_ms)
        return self._success("check")

    async def _uncheck(self, page, step, element) -> ActionResult:
        await element.locator.uncheck(timeout=self.timeout_ms)
        return self._success("uncheck")

    async def _toggle(self, page, step, element) -> ActionResult:
        if await element.locator.is_checked():
            await element.locator.uncheck(timeout=self.timeout_ms)
        else:
            await element.locator.check(timeout=self.timeout_ms)
        return self._success("toggle")

    async def _hover(self, page, step, element) -> ActionResult:
        await element.locator.hover(timeout=self.timeout_ms)
        return self._success("hover")

    async def _scroll_to(self, page, step, element) -> ActionResult:
        await element.locator.scroll_into_view_if_needed(timeout=self.timeout_ms)
        return self._success("scroll-to")

    async def _scroll(self, page, step, element) -> ActionResult:
        direction = (step.value or "down").lower()
        amount = -SCROLL_AMOUNT_PX if direction in ("up", "left") else SCROLL_AMOUNT_PX
        if direction in ("left", "right"):
            await page.mouse.wheel(amount, 0)
        else:
            await page.mouse.wheel(0, amount)
        return self._success("scroll")

    async def _focus(self, page, step, element) -> ActionResult:
        await element.locator.focus(timeout=self.timeout_ms)
        return self._success("focus")

    async def _press_key(self, page, step, element) -> ActionResult:
        key = normalize_key(str(step.parameters["key"]))
        if element is not None:
            await element.locator.press(key, timeout=self.timeout_ms)
        else:
            await page.keyboard.press(key)
        return self._success("press-key")

    async def _upload(self, page, step, element) -> ActionResult:
        files = [f.strip() for f in str(step.parameters["file_path"]).split(",") if f.strip()]
        await element.locator.set_input_files(files if len(files) > 1 else files[0], timeout=self.timeout_ms)
        return self._success("upload")

    async def _drag(self, page, step, element) -> ActionResult:
        destination = page.get_by_text(str(step.parameters["drag_target"]), exact=False).first
        await element.locator.drag_to(destination, timeout=self.timeout_ms)
        return self._success("drag")

    # ------------------------------------------------------------------
    # Navigation and waits
    # ------------------------------------------------------------------

    async def _navigate(self, page, step, element) -> ActionResult:
        url = str(step.parameters["url"])
        timeout = self.navigation_timeout_ms
        keyword = url.lower()

        if keyword == "back":
            await page.go_back(timeout=timeout, wait_until="domcontentloaded")
            return self._success("navigate-back")
        if keyword == "forward":
            await page.go_forward(timeout=timeout, wait_until="domcontentloaded")
            return self._success("navigate-forward")
        if keyword == "reload":
            await page.reload(timeout=timeout, wait_until="domcontentloaded")
            return self._success("navigate-reload")

        if url.startswith("/") and page.url and not page.url.startswith("about:"):
            url = urljoin(page.url, url)
        await page.goto(url, timeout=timeout, wait_until="domcontentloaded")
        return self._success("navigate")

    async def _wait_for(self, page, step, element) -> ActionResult:
        state = "hidden" if step.modifiers.negated else "visible"
        await element.locator.wait_for(state=state, timeout=self.timeout_ms)
        return self._success("wait-for")

    async def _wait_seconds(self, page, step, element) -> ActionResult:
        wait_ms = int(step.parameters.get("timeout") or 1000)
        logger.debug(f"Waiting {wait_ms}ms")
        await page.wait_for_timeout(wait_ms)
        return self._success("wait-seconds")

    async def _wait_url_change(self, page, step, element) -> ActionResult:
        fragment = step.parameters.get("url")
        if fragment:
            await page.wait_for_url(lambda url: fragment in url, timeout=self.timeout_ms)
        else:
            await page.wait_for_function(
                "prev => window.location.href !== prev", arg=page.url, timeout=self.timeout_ms
            )
        return self._success("wait-url-change")

    async def _wait_text_change(self, page, step, element) -> ActionResult:
        locator = element.locator
        expected = step.expected_value
        if expected is not None:
            async def became_expected() -> bool:
                return await self._text(locator) == expected

            await self._eventually(
                step, became_expected, f'Expected text to become "{expected}"',
                expected=expected, actual=lambda: self._text(locator), poll_interval_ms=500,
            )
        else:
            initial = await self._text(locator)

            async def changed() -> bool:
                return await self._text(locator) != initial

            await self._eventually(
                step, changed, f'Expected text to change from "{initial}"',
                actual=lambda: self._text(locator), poll_interval_ms=500,
            )
        return self._success("wait-text-change")

    async def _wait_page_load(self, page, step, element) -> ActionResult:
        state = step.parameters.get("load_state") or "load"
        await page.wait_for_load_state(state, timeout=self.navigation_timeout_ms)
        return self._success("wait-page-load")

    # ------------------------------------------------------------------
    # Tabs, frames and session
    # ------------------------------------------------------------------

    async def _switch_tab(self, page, step, element) -> ActionResult:
        pages = page.context.pages
        index = step.parameters.get("tab_index", -1)
        if index == -1:
            target = pages[-1]
        elif index == 0:
            target = pages[0]
        elif 1 <= index <= len(pages):
            target = pages[index - 1]
        else:
            raise IndexError(f"Tab index {index} out of range ({len(pages)} tabs open)")
        await target.bring_to_front()
        return self._success("switch-tab", active_page=target)

    async def _open_new_tab(self, page, step, element) -> ActionResult:
        new_page = await page.context.new_page()
        url = step.parameters.get("url")
        if url:
            await new_page.goto(url, timeout=self.navigation_timeout_ms, wait_until="domcontentloaded")
        return self._success("open-new-tab", active_page=new_page)

    async def _close_tab(self, page, step, element) -> ActionResult:
        context = page.context
        index = step.parameters.get("tab_index")
        if index:
            pages = context.pages
            if not 1 <= index <= len(pages):
                raise IndexError(f"Tab index {index} out of range ({len(pages)} tabs open)")
            await pages[index - 1].close()
        else:
            await page.close()

        remaining = context.pages
        active = remaining[-1] if remaining else None
        if active is not None:
            await active.bring_to_front()
        return self._success("close-tab", active_page=active)

    async def _clear_session(self, page, step, element) -> ActionResult:
        await page.context.clear_cookies()
        try:
            await page.evaluate("() => { localStorage.clear(); sessionStorage.clear(); }")
        except Exception as e:
            logger.debug(f"Storage not accessible while clearing session: {e}")

        login_url = step.parameters.get("login_url") or self.login_url
        if login_url:
            await page.goto(login_url, timeout=self.navigation_timeout_ms, wait_until="domcontentloaded")
        else:
            await page.reload(timeout=self.navigation_timeout_ms, wait_until="domcontentloaded")
        return self._success("clear-session")

    async def _switch_frame(self, page, step, element) -> ActionResult:
        selector = str(step.parameters["frame_selector"])
        frame = page.frame(name=selector)
        if frame is None:
            frame = page.frame(url=re.compile(re.escape(selector)))
        if frame is None and selector.isdigit():
            frames = page.frames
            index = int(selector)
            if 0 <= index < len(frames):
                frame = frames[index]
        if frame is None:
            handle = await page.query_selector(selector)
            if handle is not None:
                frame = await handle.content_frame()
        if frame is None:
            raise LookupError(f'Frame not found: "{selector}". Try a frame name, URL fragment, index or selector.')

        logger.debug(f"Switched to frame '{frame.name or frame.url}'")
        return self._success("switch-frame", active_frame=frame)

    async def _switch_main_frame(self, page, step, element) -> ActionResult:
        return self._success("switch-main-frame", active_frame=page.main_frame)

    async def _answer_dialog(self, page, step, element) -> ActionResult:
        action = step.parameters.get("dialog_action") or ("dismiss" if step.intent == "dismiss-dialog" else "accept")
        answered = await self.watch_dialogs(page).respond(action, step.parameters.get("prompt_text"))
        if not answered:
            logger.debug(f"No dialog open, will {action} the next one")
        return self._success(step.intent)

    async def _handle_next_dialog(self, page, step, element) -> ActionResult:
        self.watch_dialogs(page).arm(
            step.parameters.get("dialog_action") or "accept",
            step.parameters.get("prompt_text"),
        )
        return self._success("handle-next-dialog")

    async def _take_screenshot(self, page, step, element) -> ActionResult:
        name = step.parameters.get("screenshot_name")
        if not name:
            name = f"ai-screenshot-{datetime.now().strftime('%Y%m%d-%H%M%S-%f')}.png"
        elif not name.lower().endswith(".png"):
            name = f"{name}.png"
        path = self.screenshot_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(path), full_page=True)
        logger.info(f"Screenshot saved as {path}")
        return self._success("take-screenshot", str(path))

    async def _clear_cookies(self, page, step, element) -> ActionResult:
        await page.context.clear_cookies()
        return self._success("clear-cookies")

    async def _clear_storage(self, page, step, element) -> ActionResult:
        storage_type = step.parameters.get("storage_type") or "all"
        await page.evaluate(
            """type => {
                if (type === 'all' || type === 'local') localStorage.clear();
                if (type === 'all' || type === 'session') sessionStorage.clear();
            }""",
            storage_type,
        )
        return self._success("clear-storage")

    async def _set_storage_item(self, page, step, element) -> ActionResult:
        await page.evaluate(
            """args => {
                const storage = args.type === 'session' ? sessionStorage : localStorage;
                storage.setItem(args.key, args.value);
            }""",
            {
                "key": step.parameters["storage_key"],
                "value": step.value or "",
                "type": step.parameters.get("storage_type") or "local",
            },
        )
        return self._success("set-storage-item")

    # ------------------------------------------------------------------
    # Assertions
    # ------------------------------------------------------------------

    async def _verify_visible(self, page, step, element) -> ActionResult:
        state = "hidden" if step.modifiers.negated else "visible"
        await element.locator.wait_for(state=state, timeout=self.timeout_ms)
        return self._success("verify-visible", True)

    async def _verify_hidden(self, page, step, element) -> ActionResult:
        await element.locator.wait_for(state="hidden", timeout=self.timeout_ms)
        return self._success("verify-hidden", True)

    async def _verify_not_present(self, page, step, element) -> ActionResult:
        locator = self._broad(element)

        async def absent() -> bool:
            return await locator.count() == 0

        await self._eventually(
            step, absent, "Expected element to not be present but it exists",
            expected=0, actual=locator.count,
        )
        return self._success("verify-not-present", True)

    async def _verify_text(self, page, step, element) -> ActionResult:
        locator = element.locator
        expected = step.expected_value
        negated = step.modifiers.negated

        if expected is None:
            async def has_text() -> bool:
                return len(await self._text(locator)) > 0

            await self._eventually(step, has_text, "Expected element to have text but it was empty")
            return self._success("verify-text", True)

        async def matches() -> bool:
            text = await self._text(locator)
            if step.modifiers.case_insensitive:
                equal = text.lower() == expected.lower()
            else:
                equal = text == expected
            return equal != negated

        message = f'Expected text to NOT be "{expected}"' if negated else f'Expected text "{expected}"'
        await self._eventually(step, matches, message, expected=expected, actual=lambda: self._text(locator))
        return self._success("verify-text", True)

    async def _contains(self, step: ParsedStep, element: MatchedElement, negated: bool) -> None:
        locator = element.locator
        expected = str(step.expected_value)

        async def check() -> bool:
            text = (await locator.text_content()) or ""
            return (expected.lower() in text.lower()) != negated

        message = (
            f'Expected element to NOT contain text "{expected}"' if negated
            else f'Expected element to contain text "{expected}"'
        )
        await self._eventually(step, check, message, expected=expected, actual=lambda: self._text(locator))

    async def _verify_contains(self, page, step, element) -> ActionResult:
        await self._contains(step, element, negated=step.modifiers.negated)
        return self._success("verify-contains", True)

    async def _verify_not_contains(self, page, step, element) -> ActionResult:
        await self._contains(step, element, negated=not step.modifiers.negated)
        return self._success("verify-not-contains", True)

    async def _state(self, step: ParsedStep, element: MatchedElement, state: str, want: bool, label: str) -> None:
        locator = element.locator
        want = want != step.modifiers.negated

        async def check() -> bool:
            return bool(await getattr(locator, state)()) == want

        negation = "" if want else "not "
        await self._eventually(step, check, f"Expected element to be {negation}{label}", expected=want)

    async def _verify_enabled(self, page, step, element) -> ActionResult:
        await self._state(step, element, "is_enabled", True, "enabled")
        return self._success("verify-enabled", True)

    async def _verify_disabled(self, page, step, element) -> ActionResult:
        await self._state(step, element, "is_disabled", True, "disabled")
        return self._success("verify-disabled", True)

    async def _verify_checked(self, page, step, element) -> ActionResult:
        await self._state(step, element, "is_checked", True, "checked")
        return self._success("verify-checked", True)

    async def _verify_unchecked(self, page, step, element) -> ActionResult:
        await self._state(step, element, "is_checked", False, "checked")
        return self._success("verify-unchecked", True)

    async def _verify_count(self, page, step, element) -> ActionResult:
        locator = self._broad(element)
        expected = int(step.parameters["count"])
        negated = step.modifiers.negated

        async def check() -> bool:
            return (await locator.count() == expected) != negated

        await self._eventually(
            step, check, f"Expected count {'not ' if negated else ''}to be {expected}",
            expected=expected, actual=locator.count,
        )
        return self._success("verify-count", True)

    async def _verify_value(self, page, step, element) -> ActionResult:
        locator = element.locator
        expected = step.expected_value
        if expected is not None:
            negated = step.modifiers.negated

            async def check() -> bool:
                return (await locator.input_value() == expected) != negated

            await self._eventually(
                step, check, f'Expected input value {"not " if negated else ""}"{expected}"',
                expected=expected, actual=locator.input_value,
            )
        return self._success("verify-value", True)

    async def _verify_attribute(self, page, step, element) -> ActionResult:
        locator = element.locator
        attribute = str(step.parameters["attribute"])
        expected = step.expected_value

        if expected is None:
            async def present() -> bool:
                return (await locator.get_attribute(attribute) is not None) != step.modifiers.negated

            await self._eventually(step, present, f'Expected attribute "{attribute}" to be present')
        else:
            async def check() -> bool:
                return (await locator.get_attribute(attribute) == expected) != step.modifiers.negated

            await self._eventually(
                step, check, f'Expected attribute "{attribute}" to be "{expected}"',
                expected=expected, actual=lambda: locator.get_attribute(attribute),
            )
        return self._success("verify-attribute", True)

    async def _verify_url(self, page, step, element) -> ActionResult:
        expected = step.expected_value
        if expected:
            negated = step.modifiers.negated
            if "*" in expected or expected.startswith("/"):
                pattern = re.compile(re.escape(expected).replace(r"\*", ".*"))

                def matches(url: str) -> bool:
                    return bool(pattern.search(url))
            else:
                def matches(url: str) -> bool:
                    return expected in url

            async def check() -> bool:
                return matches(page.url) != negated

            async def current_url() -> str:
                return page.url

            await self._eventually(
                step, check, f'Expected URL {"not " if negated else ""}to match "{expected}"',
                expected=expected, actual=current_url,
            )
        return self._success("verify-url", True)

    async def _verify_title(self, page, step, element) -> ActionResult:
        expected = step.expected_value
        if expected:
            negated = step.modifiers.negated

            async def check() -> bool:
                return (expected in await page.title()) != negated

            await self._eventually(
                step, check, f'Expected page title {"not " if negated else ""}to contain "{expected}"',
                expected=expected, actual=page.title,
            )
        return self._success("verify-title", True)

    async def _verify_dialog_text(self, page, step, element) -> ActionResult:
        watcher = self.watch_dialogs(page)
        expected = str(step.expected_value)

        async def check() -> bool:
            message = watcher.last_message
            return message is not None and (message.strip() == expected or expected in message)

        async def last_message() -> Optional[str]:
            return watcher.last_message

        await self._eventually(
            step, check, f'Expected dialog text "{expected}"', expected=expected, actual=last_message,
        )
        return self._success("verify-dialog-text", True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _get_text(self, page, step, element) -> ActionResult:
        await element.locator.wait_for(state="visible", timeout=self.timeout_ms)
        return self._success("get-text", await self._text(element.locator))

    async def _get_value(self, page, step, element) -> ActionResult:
        await element.locator.wait_for(state="visible", timeout=self.timeout_ms)
        return self._success("get-value", await element.locator.input_value())

    async def _get_attribute(self, page, step, element) -> ActionResult:
        value = await element.locator.get_attribute(str(step.parameters["attribute"]))
        return self._success("get-attribute", value or "")

    async def _get_count(self, page, step, element) -> ActionResult:
        return self._success("get-count", await self._broad(element).count())

    async def _get_list(self, page, step, element) -> ActionResult:
        texts = await self._broad(element).all_text_contents()
        return self._success("get-list", [t.strip() for t in texts])

    async def _get_url(self, page, step, element) -> ActionResult:
        return self._success("get-url", page.url)

    async def _get_title(self, page, step, element) -> ActionResult:
        return self._success("get-title", await page.title())

    async def _check_exists(self, page, step, element) -> ActionResult:
        if element is None:
            return self._success("check-exists", False)
        return self._success("check-exists", await self._broad(element).count() > 0)

    async def _get_url_param(self, page, step, element) -> ActionResult:
        name = str(step.parameters["url_param"])
        values = parse_qs(urlsplit(page.url).query).get(name)
        return self._success("get-url-param", values[0] if values else "")

    async def _get_cookie(self, page, step, element) -> ActionResult:
        name = step.parameters["cookie_name"]
        cookies = await page.context.cookies()
        value = next((c.get("value", "") for c in cookies if c.get("name") == name), "")
        return self._success("get-cookie", value)

    async def _get_storage_item(self, page, step, element) -> ActionResult:
        value = await page.evaluate(
            """args => {
                const storage = args.type === 'session' ? sessionStorage : localStorage;
                return storage.getItem(args.key);
            }""",
            {"key": step.parameters["storage_key"], "type": step.parameters.get("storage_type") or "local"},
        )
        return self._success("get-storage-item", value or "")

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    @staticmethod
    async def _read_table(element: MatchedElement) -> Tuple[List[str], List[List[str]]]:
        data = await element.locator.evaluate(TABLE_DATA_JS) or {}
        headers = [str(h) for h in data.get("headers") or []]
        rows = [[str(cell) for cell in row] for row in data.get("rows") or []]
        return headers, rows

    @staticmethod
    def _column_of(headers: List[str], rows: List[List[str]], column_ref: Any) -> int:
        index = column_index(headers, column_ref)
        width = max([len(headers), *(len(row) for row in rows)], default=0)
        if index < 0 or index >= width:
            raise ColumnNotFoundError(str(column_ref), headers)
        return index

    @staticmethod
    def _cell(rows: List[List[str]], row_index: int, column: int) -> str:
        """1-based data row; '' when the row or cell does not exist."""
        if row_index < 1 or row_index > len(rows):
            return ""
        row = rows[row_index - 1]
        return row[column].strip() if column < len(row) else ""

    async def _cell_value(self, step: ParsedStep, element: MatchedElement) -> str:
        headers, rows = await self._read_table(element)
        column = self._column_of(headers, rows, step.parameters["column_ref"])
        return self._cell(rows, int(step.parameters["row_index"]), column)

    async def _column_values(self, step: ParsedStep, element: MatchedElement) -> List[str]:
        headers, rows = await self._read_table(element)
        column = self._column_of(headers, rows, step.parameters["column_ref"])
        return [row[column].strip() if column < len(row) else "" for row in rows]

    async def _sort_column(self, page, step, element) -> ActionResult:
        await element.locator.click(timeout=self.timeout_ms)
        return self._success("sort-column")

    async def _verify_table_cell(self, page, step, element) -> ActionResult:
        expected = str(step.expected_value)
        negated = step.modifiers.negated
        contains = step.parameters.get("cell_match") == "contains"

        async def check() -> bool:
            value = await self._cell_value(step, element)
            matched = expected in value if contains else value == expected
            return matched != negated

        where = f'row {step.parameters["row_index"]} column "{step.parameters["column_ref"]}"'
        verb = "contain" if contains else "be"
        await self._eventually(
            step, check, f'Expected table cell at {where} {"not " if negated else ""}to {verb} "{expected}"',
            expected=expected, actual=lambda: self._cell_value(step, element),
        )
        return self._success("verify-table-cell", True)

    async def _verify_column_sorted(self, page, step, element) -> ActionResult:
        descending = step.parameters.get("sort_direction") == "descending"
        data_type = step.parameters.get("sort_data_type") or "string"
        negated = step.modifiers.negated

        async def check() -> bool:
            return is_sorted(await self._column_values(step, element), descending, data_type) != negated

        direction = "descending" if descending else "ascending"
        await self._eventually(
            step, check,
            f'Expected column "{step.parameters["column_ref"]}" {"not " if negated else ""}to be sorted {direction}',
            expected=direction, actual=lambda: self._column_values(step, element),
        )
        return self._success("verify-column-sorted", True)

    async def _verify_column_exists(self, page, step, element) -> ActionResult:
        column_ref = str(step.parameters["column_ref"])
        negated = step.modifiers.negated

        async def check() -> bool:
            headers, _ = await self._read_table(element)
            index = column_index(headers, column_ref)
            return (0 <= index < len(headers)) != negated

        async def current_headers() -> List[str]:
            return (await self._read_table(element))[0]

        await self._eventually(
            step, check, f'Expected column "{column_ref}" {"not " if negated else ""}to exist',
            expected=column_ref, actual=current_headers,
        )
        return self._success("verify-column-exists", True)

    async def _get_table_data(self, page, step, element) -> ActionResult:
        headers, rows = await self._read_table(element)
        records = []
        for row in rows:
            keys = [headers[i] if i < len(headers) and headers[i] else f"column{i + 1}" for i in range(len(row))]
            records.append(dict(zip(keys, (cell.strip() for cell in row))))
        return self._success("get-table-data", records)

    async def _get_table_cell(self, page, step, element) -> ActionResult:
        return self._success("get-table-cell", await self._cell_value(step, element))

    async def _get_table_column(self, page, step, element) -> ActionResult:
        return self._success("get-table-column", await self._column_values(step, element))

    async def _get_table_row_count(self, page, step, element) -> ActionResult:
        _, rows = await self._read_table(element)
        return self._success("get-table-row-count", len(rows))
