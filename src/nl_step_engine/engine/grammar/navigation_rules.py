"""
Navigation grammar rules: URLs, paths, history and reload.
"""

from typing import List

from nl_step_engine.engine.grammar.helpers import quoted_value, rule
from nl_step_engine.engine.types import GrammarExtraction, GrammarRule, StepCategory

ACTION = StepCategory.ACTION

_GO = r"^(?:navigate|go|open|visit|browse)\s+"


def _url(value: str) -> GrammarExtraction:
    return GrammarExtraction(target_text="", value=value, params={"url": value})


NAVIGATION_RULES: List[GrammarRule] = [
    rule(
        "nav-goto-url-quoted",
        _GO + r"(?:to\s+)?__QUOTED_(\d+)__$",
        ACTION, "navigate", 300,
        lambda m, q: _url(quoted_value(q, m.group(1)) or ""),
        ["Navigate to 'https://example.com/login'"],
    ),
    rule(
        "nav-goto-url-unquoted",
        _GO + r"to\s+(https?://\S+)$",
        ACTION, "navigate", 301,
        lambda m, q: _url(m.group(1)),
        ["Go to https://example.com"],
    ),
    rule(
        "nav-goto-path",
        _GO + r"to\s+(/\S*)$",
        ACTION, "navigate", 302,
        lambda m, q: _url(m.group(1)),
        ["Navigate to /settings/profile"],
    ),
    rule(
        "nav-go-back",
        r"^(?:go|navigate)\s+back$",
        ACTION, "navigate", 310,
        lambda m, q: _url("back"),
        ["Go back"],
    ),
    rule(
        "nav-go-forward",
        r"^(?:go|navigate)\s+forward$",
        ACTION, "navigate", 311,
        lambda m, q: _url("forward"),
        ["Go forward"],
    ),
    rule(
        "nav-reload",
        r"^(?:reload|refresh)(?:\s+(?:the\s+)?page)?$",
        ACTION, "navigate", 312,
        lambda m, q: _url("reload"),
        ["Reload the page", "Refresh"],
    ),
]
