"""
Pytest configuration and fixtures.

MockPage / MockLocator are small in-memory stand-ins for Playwright's async
Page and Locator: a page is a flat list of MockNode elements and every
locator is a filtered view of that list.
"""

from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest


class MockNode:
    """One element on a mock page."""

    def __init__(
        self,
        role: Optional[str] = None,
        name: str = "",
        text: Optional[str] = None,
        tag: str = "div",
        label: Optional[str] = None,
        placeholder: Optional[str] = None,
        attrs: Optional[Dict[str, str]] = None,
        visible: bool = True,
        enabled: bool = True,
        checked: bool = False,
        value: str = "",
        box: Optional[Dict[str, float]] = None,
        section: str = "",
        fail_with: Optional[str] = None,
        fail_times: Optional[int] = None,
        table: Optional[Dict[str, List[List[str]]]] = None,
    ):
        self.role = role
        self.name = name
        self.text = name if text is None else text
        self.tag = tag
        self.label = label
        self.placeholder = placeholder
        self.attrs = attrs or {}
        self.visible = visible
        self.enabled = enabled
        self.checked = checked
        self.value = value
        self.box = box
        self.section = section
        self.fail_with = fail_with
        # None fails every time
        self.fail_times = fail_times
        # {"headers": [...], "rows": [[...], ...]} for table elements
        self.table = table

    def fingerprint_data(self) -> Dict[str, Any]:
        box = self.box or {}
        return {
            "id": self.attrs.get("id", ""),
            "tagName": self.tag,
            "ariaLabel": self.attrs.get("aria-label", ""),
            "ariaRole": self.role or "",
            "placeholder": self.placeholder or "",
            "textContent": self.text,
            "innerText": self.text,
            "value": self.value,
            "x": box.get("x", 0),
            "y": box.get("y", 0),
            "width": box.get("width", 0),
            "height": box.get("height", 0),
        }

    def __repr__(self) -> str:
        return f"MockNode({self.role or self.tag}, {self.name!r})"


def _contains(haystack: Optional[str], needle: str, exact: bool) -> bool:
    if haystack is None:
        return False
    if exact:
        return haystack.strip() == needle
    return needle.lower() in haystack.lower()


class _Queries:
    """get_by_* and locator() over a node list."""

    page: "MockPage"

    def _nodes(self) -> List[MockNode]:
        raise NotImplementedError

    def _view(self, nodes: List[MockNode], description: str) -> "MockLocator":
        return MockLocator(self.page, nodes, description)

    def get_by_role(self, role: str, name: Optional[str] = None, exact: bool = False) -> "MockLocator":
        nodes = [
            n for n in self._nodes()
            if n.role == role and (name is None or _contains(n.name, name, exact))
        ]
        return self._view(nodes, f"role={role}[name={name}]")

    def get_by_text(self, text: str, exact: bool = False) -> "MockLocator":
        return self._view([n for n in self._nodes() if _contains(n.text, text, exact)], f"text={text}")

    def get_by_label(self, text: str, exact: bool = False) -> "MockLocator":
        return self._view([n for n in self._nodes() if _contains(n.label, text, exact)], f"label={text}")

    def get_by_placeholder(self, text: str, exact: bool = False) -> "MockLocator":
        return self._view(
            [n for n in self._nodes() if _contains(n.placeholder, text, exact)], f"placeholder={text}"
        )

    def locator(self, selector: str) -> "MockLocator":
        if selector == "body":
            return self._view(list(self._nodes()), "body")
        matched = []
        for part in (p.strip() for p in selector.split(",")):
            tag = part.split()[-1] if part else ""
            for node in self._nodes():
                if node in matched:
                    continue
                if (part == "[role]" and node.role) or tag in (node.tag, "*"):
                    matched.append(node)
        return self._view(matched, selector)


class MockLocator(_Queries):
    """Filtered view of a MockPage's nodes."""

    def __init__(self, page: "MockPage", nodes: List[MockNode], description: str = ""):
        self.page = page
        self.nodes = nodes
        self.description = description

    def _nodes(self) -> List[MockNode]:
        return self.nodes

    def __repr__(self) -> str:
        return f"MockLocator({self.description}, {len(self.nodes)})"

    @property
    def node(self) -> MockNode:
        if not self.nodes:
            raise Exception(f"waiting for locator('{self.description}'): resolved to 0 elements")
        return self.nodes[0]

    def _act(self, action: str, *args: Any) -> MockNode:
        node = self.node
        if node.fail_with and (node.fail_times is None or node.fail_times > 0):
            if node.fail_times is not None:
                node.fail_times -= 1
            raise Exception(node.fail_with)
        self.page.actions.append((action, node.name, *args))
        return node

    # Narrowing

    async def count(self) -> int:
        return len(self.nodes)

    def nth(self, index: int) -> "MockLocator":
        nodes = self.nodes[index:index + 1] if index >= 0 else self.nodes[index:][:1]
        return MockLocator(self.page, nodes, f"{self.description}.nth({index})")

    @property
    def first(self) -> "MockLocator":
        return self.nth(0)

    @property
    def last(self) -> "MockLocator":
        return self.nth(-1)

    def filter(self, has_text: Optional[str] = None) -> "MockLocator":
        nodes = [n for n in self.nodes if has_text is None or _contains(n.text, has_text, False)]
        return MockLocator(self.page, nodes, f"{self.description}.filter({has_text})")

    # Actions

    async def click(self, **kwargs: Any) -> None:
        self._act("right-click" if kwargs.get("button") == "right" else "click")

    async def dblclick(self, **kwargs: Any) -> None:
        self._act("double-click")

    async def hover(self, **kwargs: Any) -> None:
        self._act("hover")

    async def focus(self, **kwargs: Any) -> None:
        self._act("focus")

    async def press(self, key: str, **kwargs: Any) -> None:
        self._act("press", key)

    async def fill(self, value: str, **kwargs: Any) -> None:
        self._act("fill", value).value = value

    async def clear(self, **kwargs: Any) -> None:
        self._act("clear").value = ""

    async def select_option(self, value: str, **kwargs: Any) -> List[str]:
        self._act("select", value).value = value
        return [value]

    async def check(self, **kwargs: Any) -> None:
        self._act("check").checked = True

    async def uncheck(self, **kwargs: Any) -> None:
        self._act("uncheck").checked = False

    async def set_input_files(self, files: Any, **kwargs: Any) -> None:
        self._act("upload", files)

    async def drag_to(self, target: "MockLocator", **kwargs: Any) -> None:
        self._act("drag", target.node.name)

    async def scroll_into_view_if_needed(self, **kwargs: Any) -> None:
        self.page.actions.append(("scroll-into-view", self.node.name))

    # State

    async def text_content(self) -> Optional[str]:
        return self.node.text

    async def all_text_contents(self) -> List[str]:
        return [n.text for n in self.nodes]

    async def input_value(self, **kwargs: Any) -> str:
        return self.node.value

    async def get_attribute(self, name: str, **kwargs: Any) -> Optional[str]:
        return self.node.attrs.get(name)

    async def is_visible(self) -> bool:
        return bool(self.nodes) and self.nodes[0].visible

    async def is_enabled(self) -> bool:
        return self.node.enabled

    async def is_disabled(self) -> bool:
        return not self.node.enabled

    async def is_checked(self) -> bool:
        return self.node.checked

    async def wait_for(self, state: str = "visible", timeout: Optional[float] = None) -> None:
        visible = bool(self.nodes) and self.nodes[0].visible
        if state == "visible" and not visible:
            raise Exception(f"Timeout {timeout}ms exceeded waiting for {self.description} to be visible")
        if state == "hidden" and visible:
            raise Exception(f"Timeout {timeout}ms exceeded waiting for {self.description} to be hidden")

    async def bounding_box(self, **kwargs: Any) -> Optional[Dict[str, float]]:
        return self.node.box

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        node = self.node
        if "tbody" in script:
            return node.table
        if "getBoundingClientRect" in script:
            return node.fingerprint_data()
        if "containers" in script:
            return node.section
        if "tagName" in script:
            return node.tag
        return None

    async def aria_snapshot(self, **kwargs: Any) -> str:
        return self.page.aria_snapshot_text()


class MockFrame(_Queries):
    """Child frame holding its own nodes."""

    def __init__(self, page: "MockPage", name: str = "", url: str = "", nodes: Optional[List[MockNode]] = None):
        self.page = page
        self.name = name
        self.url = url
        self.nodes = nodes or []

    def _nodes(self) -> List[MockNode]:
        return self.nodes


class MockDialog:
    """JavaScript dialog."""

    def __init__(self, message: str, type: str = "alert"):
        self.message = message
        self.type = type
        self.accepted: Optional[bool] = None
        self.prompt_text: Optional[str] = None

    async def accept(self, prompt_text: Optional[str] = None) -> None:
        self.accepted = True
        self.prompt_text = prompt_text

    async def dismiss(self) -> None:
        self.accepted = False


class MockContext:
    """Browser context owning the open pages."""

    def __init__(self):
        self.pages: List["MockPage"] = []
        self.cookie_jar: List[Dict[str, str]] = []
        self.clear_cookies = AsyncMock(side_effect=self._clear)

    async def _clear(self) -> None:
        self.cookie_jar = []

    async def cookies(self) -> List[Dict[str, str]]:
        return list(self.cookie_jar)

    async def new_page(self) -> "MockPage":
        return MockPage(context=self, url="about:blank")


class MockPage(_Queries):
    """
    Mock Playwright page.

    Element actions are recorded in `actions` as (action, node name, *args);
    page-level calls are AsyncMocks so tests can assert on them directly.
    """

    def __init__(
        self,
        nodes: Optional[List[MockNode]] = None,
        url: str = "https://example.com/app",
        title: str = "Test Page",
        context: Optional[MockContext] = None,
        snapshot: Optional[str] = None,
    ):
        self.page = self
        self.nodes = nodes or []
        self._url = url
        self._title = title
        self.snapshot = snapshot
        self.actions: List[tuple] = []
        self.listeners: Dict[str, List[Callable]] = {}
        self.closed = False
        self.evaluate_result: Any = None

        self.context = context or MockContext()
        self.context.pages.append(self)
        self.main_frame = MockFrame(self, name="", url=url)
        self.child_frames: List[MockFrame] = []

        self.mouse = AsyncMock()
        self.keyboard = AsyncMock()
        self.goto = AsyncMock(side_effect=self._goto)
        self.go_back = AsyncMock()
        self.go_forward = AsyncMock()
        self.reload = AsyncMock()
        self.wait_for_timeout = AsyncMock()
        self.wait_for_url = AsyncMock()
        self.wait_for_function = AsyncMock()
        self.wait_for_load_state = AsyncMock()
        self.screenshot = AsyncMock()
        self.bring_to_front = AsyncMock()
        self.evaluate = AsyncMock(side_effect=lambda *args, **kwargs: self.evaluate_result)

    def _nodes(self) -> List[MockNode]:
        return self.nodes

    async def _goto(self, url: str, **kwargs: Any) -> None:
        self._url = url

    @property
    def url(self) -> str:
        return self._url

    @url.setter
    def url(self, value: str) -> None:
        self._url = value

    async def title(self) -> str:
        return self._title

    @property
    def frames(self) -> List[MockFrame]:
        return [self.main_frame, *self.child_frames]

    def add_frame(self, name: str, url: str, nodes: List[MockNode]) -> MockFrame:
        frame = MockFrame(self, name=name, url=url, nodes=nodes)
        self.child_frames.append(frame)
        return frame

    def frame(self, name: Optional[str] = None, url: Any = None) -> Optional[MockFrame]:
        for frame in self.child_frames:
            if name is not None and frame.name == name:
                return frame
            if url is not None and url.search(frame.url):
                return frame
        return None

    async def query_selector(self, selector: str) -> None:
        return None

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True
        if self in self.context.pages:
            self.context.pages.remove(self)

    def on(self, event: str, handler: Callable) -> None:
        self.listeners.setdefault(event, []).append(handler)

    async def open_dialog(self, dialog: MockDialog) -> None:
        for handler in self.listeners.get("dialog", []):
            await handler(dialog)

    def aria_snapshot_text(self) -> str:
        if self.snapshot is not None:
            return self.snapshot
        lines = []
        for node in self.nodes:
            if not node.role:
                continue
            line = f'- {node.role} "{node.name}"' if node.name else f"- {node.role}"
            if node.checked:
                line += " [checked]"
            lines.append(line)
        return "\n".join(lines)


@pytest.fixture
def settings(tmp_path):
    """Provide test settings with an isolated cache directory."""
    from nl_step_engine.config import CacheSettings, EngineSettings, ExecutorSettings, Settings

    return Settings(
        engine=EngineSettings(screenshot_on_failure=False, screenshot_dir=str(tmp_path)),
        executor=ExecutorSettings(timeout_ms=200, poll_interval_ms=10),
        cache=CacheSettings(directory=str(tmp_path / "cache"), save_debounce_ms=0),
    )


@pytest.fixture
def login_page():
    """A small login form."""
    return MockPage(nodes=[
        MockNode(role="heading", name="Sign in", tag="h1"),
        MockNode(role="textbox", name="Username", text="", tag="input", label="Username",
                 placeholder="Enter username", attrs={"id": "username"}),
        MockNode(role="textbox", name="Password", text="", tag="input", label="Password",
                 attrs={"id": "password", "type": "password"}),
        MockNode(role="checkbox", name="Remember me", tag="input", label="Remember me"),
        MockNode(role="button", name="Login", tag="button", attrs={"id": "login-btn"}),
        MockNode(role="link", name="Forgot password?", tag="a", attrs={"href": "/reset"}),
    ])
