"""
Shared helpers for grammar rule extractors.
"""

import re
from typing import List, Optional, Tuple

from nl_step_engine.engine.types import Extractor, GrammarRule, StepCategory

QUOTED_PLACEHOLDER = re.compile(r"__QUOTED_(\d+)__")

# Checked in order; multi-word phrasings come before their single-word parts
_ELEMENT_TYPE_PATTERNS = [
    (re.compile(r"\b(?:menu\s*item)\b", re.I), "menuitem"),
    (re.compile(r"\b(?:text\s*box|text\s+field|input\s+field)\b", re.I), "input"),
    (re.compile(r"\b(?:check\s*box)\b", re.I), "checkbox"),
    (re.compile(r"\bradio\s*button\b", re.I), "radio"),
    (re.compile(r"\b(?:drop-?down|combo\s+box)\b", re.I), "dropdown"),
    (re.compile(r"\b(?:button|btn)\b", re.I), "button"),
    (re.compile(r"\b(?:link|hyperlink)\b", re.I), "link"),
    (re.compile(r"\b(?:input|field|textbox)\b", re.I), "input"),
    (re.compile(r"\bradio\b", re.I), "radio"),
    (re.compile(r"\b(?:select|combobox)\b", re.I), "dropdown"),
    (re.compile(r"\btab\b", re.I), "tab"),
    (re.compile(r"\b(?:heading|header)\b", re.I), "heading"),
    (re.compile(r"\b(?:dialog|modal|popup)\b", re.I), "dialog"),
    (re.compile(r"\b(?:image|icon|img)\b", re.I), "image"),
    (re.compile(r"\b(?:switch|toggle)\b", re.I), "switch"),
    (re.compile(r"\btable\b", re.I), "table"),
    (re.compile(r"\brow\b", re.I), "row"),
    (re.compile(r"\bcell\b", re.I), "cell"),
]

_ACTION_TYPE_SUFFIX = re.compile(
    r"\s+(?:button|btn|link|field|input|textbox|text\s*box|checkbox|check\s*box|radio|"
    r"dropdown|drop-down|tab|menu\s*item|heading|header|icon|image|switch|toggle|"
    r"slider|table|grid)$",
    re.I,
)

_TARGET_TYPE_SUFFIX = re.compile(
    r"\s+(?:button|btn|link|field|input|textbox|text\s*box|checkbox|check\s*box|radio|"
    r"dropdown|drop-down|tab|menu\s*item|heading|header|icon|image|switch|toggle|"
    r"slider|table|grid|row|cell|column|element|text|message|label|section|area|dialog|modal|popup)$",
    re.I,
)


def resolve_quoted(text: str, quoted: List[str]) -> str:
    """Substitute __QUOTED_n__ placeholders with their original values."""
    def _sub(match: "re.Match[str]") -> str:
        idx = int(match.group(1))
        return quoted[idx] if idx < len(quoted) else ""
    return QUOTED_PLACEHOLDER.sub(_sub, text)


def quoted_value(quoted: List[str], index_text: Optional[str]) -> Optional[str]:
    """Quoted string referenced by a captured placeholder index."""
    if index_text is None:
        return None
    idx = int(index_text)
    return quoted[idx] if idx < len(quoted) else None


def infer_element_type(text: str) -> Optional[str]:
    """Element type implied by a keyword anywhere in the target text."""
    for pattern, element_type in _ELEMENT_TYPE_PATTERNS:
        if pattern.search(text):
            return element_type
    return None


def strip_element_type(text: str, extended: bool = False) -> str:
    """
    Remove trailing element-type words ("Submit button" -> "Submit").

    Strips at most three words and never strips the text to nothing.
    extended=True also strips generic nouns used by assertions and queries
    (element, text, label, section, ...).
    """
    pattern = _TARGET_TYPE_SUFFIX if extended else _ACTION_TYPE_SUFFIX
    result = text.strip()
    for _ in range(3):
        stripped = pattern.sub("", result).strip()
        if not stripped or stripped == result:
            break
        result = stripped
    return result


def target_parts(raw: str, extended: bool = False) -> Tuple[str, Optional[str]]:
    """
    Split target text into (text without type words, element type).

    Placeholders stay in place; the engine resolves them after ordinal and
    position words are read, so words inside quoted labels are never taken
    as element types or ordinals.
    """
    raw = raw.strip()
    unquoted = QUOTED_PLACEHOLDER.sub(" ", raw)
    return strip_element_type(raw, extended), infer_element_type(unquoted)


def rule(
    rule_id: str,
    pattern: str,
    category: StepCategory,
    intent: str,
    priority: int,
    extract: Extractor,
    examples: Optional[List[str]] = None,
) -> GrammarRule:
    """Build a GrammarRule with a case-insensitive compiled pattern."""
    return GrammarRule(
        id=rule_id,
        pattern=re.compile(pattern, re.IGNORECASE),
        category=category,
        intent=intent,
        extract=extract,
        priority=priority,
        examples=examples or [],
    )
