"""
Browser grammar rules: tabs, session, frames, dialogs, cookies, storage
and screenshots.
"""

from typing import List

from nl_step_engine.engine.grammar.helpers import quoted_value, rule
from nl_step_engine.engine.types import GrammarExtraction, GrammarRule, StepCategory

ACTION = StepCategory.ACTION
ASSERTION = StepCategory.ASSERTION
QUERY = StepCategory.QUERY


def _params(**params):
    def extract(match, quoted):
        return GrammarExtraction(target_text="", params=dict(params))
    return extract


def _quoted_param(name: str, group: int = 1, **fixed):
    def extract(match, quoted):
        params = dict(fixed)
        params[name] = quoted_value(quoted, match.group(group)) or ""
        return GrammarExtraction(target_text="", params=params)
    return extract


def _storage_item(storage_type: str):
    def extract(match, quoted):
        return GrammarExtraction(
            target_text="",
            value=quoted_value(quoted, match.group(2)),
            params={"storage_type": storage_type, "storage_key": quoted_value(quoted, match.group(1)) or ""},
        )
    return extract


def _open_tab(match, quoted):
    url = quoted_value(quoted, match.group(1))
    return GrammarExtraction(target_text="", params={"url": url} if url else {})


def _screenshot(match, quoted):
    name = quoted_value(quoted, match.group(1))
    return GrammarExtraction(target_text="", params={"screenshot_name": name} if name else {})


BROWSER_RULES: List[GrammarRule] = [
    # Tabs
    rule(
        "browser-switch-tab-index",
        r"^switch\s+to\s+tab\s+(\d+)$",
        ACTION, "switch-tab", 350,
        lambda m, q: GrammarExtraction(target_text="", params={"tab_index": int(m.group(1))}),
        ["Switch to tab 2"],
    ),
    rule("browser-switch-tab-latest", r"^switch\s+to\s+(?:the\s+)?(?:latest|last|newest|new)\s+tab$",
         ACTION, "switch-tab", 351, _params(tab_index=-1), ["Switch to the new tab"]),
    rule("browser-switch-tab-main", r"^switch\s+to\s+(?:the\s+)?(?:main|first|original|primary)\s+tab$",
         ACTION, "switch-tab", 352, _params(tab_index=0), ["Switch to the main tab"]),
    rule(
        "browser-open-new-tab",
        r"^open\s+(?:a\s+)?new\s+tab(?:\s+(?:with|to)\s+__QUOTED_(\d+)__)?$",
        ACTION, "open-new-tab", 353,
        _open_tab,
        ["Open a new tab", "Open new tab with 'https://example.com'"],
    ),
    rule("browser-close-current-tab", r"^close\s+(?:the\s+)?(?:current\s+)?tab$",
         ACTION, "close-tab", 354, _params(), ["Close the current tab"]),
    rule(
        "browser-close-tab-index",
        r"^close\s+tab\s+(\d+)$",
        ACTION, "close-tab", 355,
        lambda m, q: GrammarExtraction(target_text="", params={"tab_index": int(m.group(1))}),
        ["Close tab 2"],
    ),

    # Session
    rule(
        "browser-clear-session",
        r"^clear\s+(?:the\s+)?(?:browser\s+)?(?:session|context)(?:\s+(?:for\s+)?re-?authentication)?$",
        ACTION, "clear-session", 380,
        _params(),
        ["Clear browser session for re-authentication", "Clear session"],
    ),
    rule(
        "browser-clear-session-navigate",
        r"^clear\s+(?:the\s+)?(?:browser\s+)?(?:session|context)\s+and\s+navigate\s+to\s+__QUOTED_(\d+)__$",
        ACTION, "clear-session", 381,
        _quoted_param("login_url"),
        ["Clear session and navigate to '/login'"],
    ),

    # Frames
    rule("browser-switch-frame-selector", r"^switch\s+to\s+(?:the\s+)?i?frame\s+__QUOTED_(\d+)__$",
         ACTION, "switch-frame", 390, _quoted_param("frame_selector"), ["Switch to frame '#payment'"]),
    rule("browser-switch-frame-named", r"^switch\s+to\s+(?:the\s+)?i?frame\s+named\s+__QUOTED_(\d+)__$",
         ACTION, "switch-frame", 391, _quoted_param("frame_selector"), ["Switch to the iframe named 'editor'"]),
    rule(
        "browser-switch-frame-index",
        r"^switch\s+to\s+(?:the\s+)?i?frame\s+(\d+)$",
        ACTION, "switch-frame", 392,
        lambda m, q: GrammarExtraction(target_text="", params={"frame_selector": m.group(1)}),
        ["Switch to frame 1"],
    ),
    rule("browser-switch-main-frame", r"^switch\s+to\s+(?:the\s+)?(?:main|parent|top|default)\s+(?:frame|content|page)$",
         ACTION, "switch-main-frame", 393, _params(), ["Switch to the main frame"]),

    # Dialogs
    rule("browser-accept-dialog", r"^(?:accept|ok|close)\s+(?:the\s+)?(?:alert|dialog)$",
         ACTION, "accept-dialog", 400, _params(dialog_action="accept"), ["Accept the alert"]),
    rule("browser-dismiss-dialog", r"^(?:dismiss|cancel|reject)\s+(?:the\s+)?(?:alert|confirm|dialog|popup)$",
         ACTION, "dismiss-dialog", 401, _params(dialog_action="dismiss"), ["Dismiss the dialog"]),
    rule("browser-accept-confirm", r"^(?:accept|confirm|ok)\s+(?:the\s+)?confirm(?:ation)?(?:\s+dialog)?$",
         ACTION, "accept-dialog", 402, _params(dialog_action="accept"), ["Accept the confirmation"]),
    rule(
        "browser-enter-prompt",
        r"^(?:enter|type|input)\s+__QUOTED_(\d+)__\s+(?:in|into)\s+(?:the\s+)?prompt(?:\s+(?:dialog|and\s+accept))?$",
        ACTION, "accept-dialog", 403,
        _quoted_param("prompt_text", dialog_action="accept"),
        ["Enter 'John' in the prompt"],
    ),
    rule(
        "browser-handle-next-dialog-accept",
        r"^(?:handle|prepare\s+for|expect)\s+(?:the\s+)?(?:next\s+)?(?:alert|dialog|confirm|prompt)\s+(?:by\s+)?accept(?:ing)?$",
        ACTION, "handle-next-dialog", 404,
        _params(dialog_action="accept"),
        ["Handle the next dialog by accepting"],
    ),
    rule(
        "browser-handle-next-dialog-dismiss",
        r"^(?:handle|prepare\s+for|expect)\s+(?:the\s+)?(?:next\s+)?(?:alert|dialog|confirm|prompt)\s+(?:by\s+)?dismiss(?:ing)?$",
        ACTION, "handle-next-dialog", 405,
        _params(dialog_action="dismiss"),
        ["Handle the next alert by dismissing"],
    ),
    rule(
        "browser-verify-dialog-text",
        r"^(?:verify|assert|check)\s+(?:the\s+)?(?:alert|dialog|confirm|prompt)\s+(?:text\s+)?(?:is|equals?|contains?|says?|shows?)\s+__QUOTED_(\d+)__$",
        ASSERTION, "verify-dialog-text", 406,
        lambda m, q: GrammarExtraction(target_text="", expected_value=quoted_value(q, m.group(1)) or ""),
        ["Verify the alert text is 'Are you sure?'"],
    ),

    # Cookies
    rule("browser-clear-cookies", r"^clear\s+(?:all\s+)?(?:the\s+)?cookies$",
         ACTION, "clear-cookies", 500, _params(), ["Clear all cookies"]),
    rule("browser-get-cookie", r"^(?:get|read)\s+(?:the\s+)?cookie\s+__QUOTED_(\d+)__$",
         QUERY, "get-cookie", 501, _quoted_param("cookie_name"), ["Get the cookie 'session_id'"]),

    # Storage
    rule("browser-clear-local-storage", r"^clear\s+(?:the\s+)?local\s+storage$",
         ACTION, "clear-storage", 510, _params(storage_type="local"), ["Clear local storage"]),
    rule("browser-clear-session-storage", r"^clear\s+(?:the\s+)?session\s+storage$",
         ACTION, "clear-storage", 511, _params(storage_type="session"), ["Clear session storage"]),
    rule("browser-clear-all-storage", r"^clear\s+(?:all\s+)?(?:the\s+)?storage$",
         ACTION, "clear-storage", 512, _params(storage_type="all"), ["Clear all storage"]),
    rule("browser-set-local-storage", r"^set\s+local\s+storage\s+__QUOTED_(\d+)__\s+to\s+__QUOTED_(\d+)__$",
         ACTION, "set-storage-item", 513, _storage_item("local"), ["Set local storage 'theme' to 'dark'"]),
    rule("browser-set-session-storage", r"^set\s+session\s+storage\s+__QUOTED_(\d+)__\s+to\s+__QUOTED_(\d+)__$",
         ACTION, "set-storage-item", 514, _storage_item("session"), ["Set session storage 'step' to '2'"]),
    rule("browser-get-local-storage", r"^(?:get|read)\s+local\s+storage\s+(?:item\s+)?__QUOTED_(\d+)__$",
         QUERY, "get-storage-item", 515, _quoted_param("storage_key", storage_type="local"),
         ["Get local storage item 'theme'"]),
    rule("browser-get-session-storage", r"^(?:get|read)\s+session\s+storage\s+(?:item\s+)?__QUOTED_(\d+)__$",
         QUERY, "get-storage-item", 516, _quoted_param("storage_key", storage_type="session"),
         ["Get session storage item 'step'"]),

    # Screenshots
    rule(
        "browser-take-screenshot",
        r"^take\s+(?:a\s+)?screenshot(?:\s+(?:as|named?)\s+__QUOTED_(\d+)__)?$",
        ACTION, "take-screenshot", 520,
        _screenshot,
        ["Take a screenshot", "Take a screenshot named 'checkout'"],
    ),
]
