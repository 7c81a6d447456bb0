"""
Intent Parser - Keyword-based fallback for instructions no grammar rule covers.

Classification is heuristic: prefixes pick assertions and queries, then a
keyword table picks the action. The resulting step always carries a lower
confidence than a grammar match and no matched_rule_id.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from nl_step_engine.engine.types import ElementTarget, ParsedStep, StepCategory, StepModifiers
from nl_step_engine.engine.vocabulary import ELEMENT_TYPE_SYNONYMS, ORDINAL_MAP

logger = logging.getLogger(__name__)

_QUOTED = re.compile(r"\"([^\"]*)\"|(?<!\w)'([^']*)'(?!\w)")
_NEGATION = re.compile(r"\b(?:not|no|isn't|doesn't|shouldn't|without|never)\b", re.IGNORECASE)

_ASSERTION_PREFIX = re.compile(r"^(?:verify|assert|check|confirm|ensure|should|must|expect)\b", re.IGNORECASE)
_QUERY_PREFIX = re.compile(r"^(?:get|read|extract|fetch|retrieve|capture|grab|how\s+many|count|list)\b", re.IGNORECASE)

# (pattern, intent) checked before the keyword table
_DIRECT_ACTIONS: List[Tuple["re.Pattern[str]", str]] = [
    (re.compile(r"^(?:wait|pause)\s+(?:for\s+)?\d+\s*(?:seconds?|secs?|ms|milliseconds?)", re.I), "wait-seconds"),
    (re.compile(r"^wait\s+(?:for\s+)?(?:the\s+)?url", re.I), "wait-url-change"),
    (re.compile(r"^switch\s+(?:to\s+)?(?:tab|the\s+(?:latest|main|first)\s+tab)", re.I), "switch-tab"),
    (re.compile(r"^open\s+(?:a\s+)?new\s+tab", re.I), "open-new-tab"),
    (re.compile(r"^close\s+(?:the\s+)?(?:current\s+)?tab", re.I), "close-tab"),
    (re.compile(r"^clear\s+(?:browser\s+)?(?:session|context)", re.I), "clear-session"),
    (re.compile(r"^take\s+(?:a\s+)?screenshot", re.I), "take-screenshot"),
]

_ASSERTION_HINTS: List[Tuple["re.Pattern[str]", str]] = [
    (re.compile(r"hidden|invisible|not\s+displayed|not\s+visible|not\s+shown|disappeared"), "verify-hidden"),
    (re.compile(r"visible|displayed|shown|present|appearing"), "verify-visible"),
    (re.compile(r"disabled|not\s+enabled|greye?d?\s+out|grayed\s+out"), "verify-disabled"),
    (re.compile(r"enabled"), "verify-enabled"),
    (re.compile(r"\bunchecked\b|\bnot\s+checked\b"), "verify-unchecked"),
    (re.compile(r"\bchecked\b"), "verify-checked"),
    (re.compile(r"contains?|includes?"), "verify-contains"),
    (re.compile(r"count|number\s+of"), "verify-count"),
    (re.compile(r"\burl\b"), "verify-url"),
    (re.compile(r"\btitle\b"), "verify-title"),
    (re.compile(r"text|equals?|shows?|reads?|says?"), "verify-text"),
]

_QUERY_HINTS: List[Tuple["re.Pattern[str]", str]] = [
    (re.compile(r"count|number\s+of|how\s+many|total"), "get-count"),
    (re.compile(r"\ball\b|\blist\b|\bevery\b|options?|items?"), "get-list"),
    (re.compile(r"\bvalue\b"), "get-value"),
    (re.compile(r"\battribute\b"), "get-attribute"),
    (re.compile(r"\burl\b"), "get-url"),
    (re.compile(r"\btitle\b"), "get-title"),
    (re.compile(r"exist|there"), "check-exists"),
]

_ELEMENT_TYPE_WORDS: Dict[str, str] = {
    "button": "button", "btn": "button",
    "link": "link", "anchor": "link", "hyperlink": "link",
    "input": "input", "field": "input", "textbox": "input", "textarea": "input",
    "checkbox": "checkbox",
    "radio": "radio",
    "dropdown": "dropdown", "select": "dropdown", "combobox": "dropdown",
    "image": "image", "img": "image", "picture": "image", "icon": "image",
    "table": "table", "grid": "grid",
    "row": "row", "cell": "cell",
    "header": "heading", "heading": "heading",
    "list": "list", "listbox": "listbox",
    "menu": "menu", "menuitem": "menuitem",
    "modal": "dialog", "dialog": "dialog", "popup": "dialog",
    "alert": "alert", "banner": "banner",
    "tab": "tab", "slider": "slider", "tooltip": "tooltip",
    "switch": "switch", "toggle": "switch",
}

_POSITION_WORDS = {"top", "bottom", "left", "right", "upper", "lower"}

_RELATION_WORDS = {
    "near": "near", "next": "near", "beside": "near",
    "inside": "inside", "within": "inside",
    "after": "after", "below": "after", "under": "after",
    "before": "before", "above": "before", "over": "before",
}

_STOP_WORDS = {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "with", "into", "from", "of", "please"}

_VALUE_INTENTS = {"fill", "type", "select"}


class IntentParser:
    """
    Heuristic instruction classifier.

    Example:
        >>> step = IntentParser().parse("Kindly press on the blue Save button")
        >>> step.intent, step.target.element_type
        ('click', 'button')
    """

    # Keywords looked for in the first three words
    INTENT_KEYWORDS: Dict[str, List[str]] = {
        "click": ["click", "press", "tap", "push", "hit"],
        "fill": ["type", "enter", "fill", "input", "write"],
        "select": ["select", "choose", "pick"],
        "uncheck": ["uncheck", "untick", "unmark"],
        "check": ["check", "tick", "mark"],
        "hover": ["hover", "mouseover"],
        "navigate": ["navigate", "goto", "visit", "open"],
        "verify-visible": ["verify", "assert", "validate", "see", "should", "expect"],
        "get-text": ["extract", "get", "read"],
        "wait-for": ["wait", "pause"],
    }

    # Intent -> category for keyword-table intents
    KEYWORD_CATEGORIES: Dict[str, StepCategory] = {
        "verify-visible": StepCategory.ASSERTION,
        "get-text": StepCategory.QUERY,
    }

    def parse(self, instruction: str) -> Optional[ParsedStep]:
        """
        Classify an instruction.

        Returns:
            ParsedStep, or None when no keyword gives an intent
        """
        text = instruction.strip()
        if not text:
            return None

        quoted = [a or b for a, b in _QUOTED.findall(text)]
        unquoted = _QUOTED.sub(" ", text)
        tokens = [t.strip(".,:;!?") for t in unquoted.lower().split()]
        tokens = [t for t in tokens if t]

        keyword_intent = self._keyword_intent(tokens)
        element_type = self._element_type(tokens)

        classified = self._classify(text, keyword_intent, element_type)
        if classified is None:
            logger.debug(f"No intent keyword in '{text[:80]}'")
            return None
        category, intent = classified

        parameters = {}
        target_quoted = list(quoted)
        if target_quoted and category == StepCategory.ACTION and intent in _VALUE_INTENTS:
            parameters["value"] = target_quoted.pop(0)
        elif target_quoted and category == StepCategory.ASSERTION:
            parameters["expected_value"] = target_quoted.pop(0)

        modifiers = StepModifiers(negated=bool(_NEGATION.search(text)))
        target = self._build_target(tokens, element_type, target_quoted, text)
        confidence = min(self._keyword_confidence(keyword_intent, element_type, tokens) * 0.85, 0.8)

        return ParsedStep(
            category=category,
            intent=intent,
            target=target,
            parameters=parameters,
            raw_text=instruction,
            confidence=confidence,
            modifiers=modifiers,
            matched_rule_id=None,
        )

    def _keyword_intent(self, tokens: List[str]) -> Optional[str]:
        for token in tokens[:3]:
            for intent, keywords in self.INTENT_KEYWORDS.items():
                if token in keywords:
                    return intent
        return None

    @staticmethod
    def _element_type(tokens: List[str]) -> Optional[str]:
        for token in tokens:
            if token in _ELEMENT_TYPE_WORDS:
                element_type = _ELEMENT_TYPE_WORDS[token]
                return ELEMENT_TYPE_SYNONYMS.get(element_type, element_type)
        if "submit" in tokens or "send" in tokens:
            return "button"
        if {"email", "password", "username"} & set(tokens):
            return "input"
        return None

    def _classify(
        self,
        text: str,
        keyword_intent: Optional[str],
        element_type: Optional[str],
    ) -> Optional[Tuple[StepCategory, str]]:
        lower = text.lower()

        if _ASSERTION_PREFIX.match(lower):
            for pattern, intent in _ASSERTION_HINTS:
                if pattern.search(lower):
                    return StepCategory.ASSERTION, intent
            return StepCategory.ASSERTION, "verify-visible"

        if _QUERY_PREFIX.match(lower):
            for pattern, intent in _QUERY_HINTS:
                if pattern.search(lower):
                    return StepCategory.QUERY, intent
            return StepCategory.QUERY, "get-text"

        for pattern, intent in _DIRECT_ACTIONS:
            if pattern.match(lower):
                return StepCategory.ACTION, intent

        if keyword_intent is None:
            # Infer from the element alone
            if element_type == "button":
                keyword_intent = "click"
            elif element_type == "input":
                keyword_intent = "fill"
            elif element_type == "dropdown":
                keyword_intent = "select"
            else:
                return None

        return self.KEYWORD_CATEGORIES.get(keyword_intent, StepCategory.ACTION), keyword_intent

    def _build_target(
        self,
        tokens: List[str],
        element_type: Optional[str],
        quoted: List[str],
        raw: str,
    ) -> ElementTarget:
        keywords = {k for words in self.INTENT_KEYWORDS.values() for k in words}
        descriptors: List[str] = []
        ordinal = None
        position = None
        relation = None
        relative_to = None

        for i, token in enumerate(tokens):
            if token in _RELATION_WORDS and relation is None:
                relation = _RELATION_WORDS[token]
                reference = [t for t in tokens[i + 1:i + 4] if t not in _STOP_WORDS]
                if reference:
                    relative_to = " ".join(reference)
                break
            if token in ORDINAL_MAP and ordinal is None:
                ordinal = ORDINAL_MAP[token]
                continue
            if token in _POSITION_WORDS:
                position = token
            if token in _STOP_WORDS or token in keywords or token in _ELEMENT_TYPE_WORDS:
                continue
            if len(token) <= 2:
                continue
            descriptors.append(token)

        if quoted:
            descriptors = quoted[0].split() + [d for d in descriptors if d not in quoted[0].lower().split()]

        return ElementTarget(
            element_type=element_type,
            descriptors=descriptors,
            ordinal=ordinal,
            position=position,
            relative_to=relative_to,
            relation=relation,
            raw_text=raw,
        )

    @staticmethod
    def _keyword_confidence(keyword_intent: Optional[str], element_type: Optional[str], tokens: List[str]) -> float:
        confidence = 0.5
        if keyword_intent:
            confidence += 0.1
        if element_type:
            confidence += 0.2
        if len([t for t in tokens if t not in _STOP_WORDS and len(t) > 2]) >= 2:
            confidence += 0.1
        return min(confidence, 1.0)
