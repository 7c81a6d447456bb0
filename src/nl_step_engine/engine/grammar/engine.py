"""
Grammar Engine - Deterministic instruction parsing via prioritized regex rules.

Parsing runs in two passes. Pass 1 matches the instruction as written, so
"Press Enter" reaches the press-key rule before "press" is read as a click
synonym. Pass 2 rewrites verb synonyms to their canonical form and retries,
so "Tap the Submit button" still reaches the click rule.

Example:
    >>> grammar = GrammarEngine()
    >>> step = grammar.parse("Click the second Delete button")
    >>> step.intent, step.target.ordinal, step.target.descriptors
    ('click', 2, ['Delete'])
"""

import copy
import logging
import re
import time
from typing import Dict, List, Optional, Tuple

from nl_step_engine.engine.grammar.action_rules import ACTION_RULES
from nl_step_engine.engine.grammar.assertion_rules import ASSERTION_RULES
from nl_step_engine.engine.grammar.browser_rules import BROWSER_RULES
from nl_step_engine.engine.grammar.helpers import resolve_quoted
from nl_step_engine.engine.grammar.navigation_rules import NAVIGATION_RULES
from nl_step_engine.engine.grammar.query_rules import QUERY_RULES
from nl_step_engine.engine.grammar.table_rules import TABLE_RULES
from nl_step_engine.engine.types import (
    ElementTarget,
    GrammarExtraction,
    GrammarRule,
    ParsedStep,
    StepModifiers,
)
from nl_step_engine.engine.vocabulary import ACTION_SYNONYMS, ELEMENT_TYPE_SYNONYMS, ORDINAL_MAP

logger = logging.getLogger(__name__)

_DOUBLE_QUOTED = re.compile(r'"([^"]*)"')
# Apostrophes inside words ("doesn't", "user's") are not quotes
_SINGLE_QUOTED = re.compile(r"(?<!\w)'([^']*)'(?!\w)")

_ORDINAL_PATTERNS = [
    (re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE), index)
    for word, index in ORDINAL_MAP.items()
]

_POSITION_PATTERN = re.compile(r"\b(top|bottom|left|right|upper|lower)\b", re.IGNORECASE)

_RELATIVE_PATTERNS = [
    (re.compile(r"\s+(?:near|next\s+to|beside)\s+(?:the\s+)?(.+?)$", re.IGNORECASE), "near"),
    (re.compile(r"\s+(?:inside|within|in)\s+(?:the\s+)?(.+?)$", re.IGNORECASE), "inside"),
    (re.compile(r"\s+(?:after|below|under)\s+(?:the\s+)?(.+?)$", re.IGNORECASE), "after"),
    (re.compile(r"\s+(?:before|above|over)\s+(?:the\s+)?(.+?)$", re.IGNORECASE), "before"),
]

_SYNONYM_PATTERNS = [
    (re.compile(rf"\b{re.escape(synonym)}\b", re.IGNORECASE), canonical)
    for synonym, canonical in sorted(ACTION_SYNONYMS.items(), key=lambda item: len(item[0]), reverse=True)
]


def default_rules() -> List[GrammarRule]:
    """Every built-in rule table, unsorted."""
    return [
        *ACTION_RULES,
        *ASSERTION_RULES,
        *QUERY_RULES,
        *NAVIGATION_RULES,
        *BROWSER_RULES,
        *TABLE_RULES,
    ]


def extract_quoted_strings(instruction: str) -> Tuple[str, List[str]]:
    """
    Replace quoted substrings with __QUOTED_n__ placeholders.

    Double-quoted strings are numbered first, then single-quoted ones.

    Example:
        >>> extract_quoted_strings("Type 'hello' in the \\"Email\\" field")
        ('Type __QUOTED_1__ in the __QUOTED_0__ field', ['Email', 'hello'])
    """
    quoted: List[str] = []

    def _placeholder(match: "re.Match[str]") -> str:
        quoted.append(match.group(1))
        return f"__QUOTED_{len(quoted) - 1}__"

    text = _DOUBLE_QUOTED.sub(_placeholder, instruction)
    text = _SINGLE_QUOTED.sub(_placeholder, text)
    return text, quoted


def normalize_synonyms(text: str) -> str:
    """Rewrite verb synonyms to canonical verbs, longest synonym first."""
    normalized = text
    for pattern, canonical in _SYNONYM_PATTERNS:
        normalized = pattern.sub(canonical, normalized)
    return normalized


class GrammarEngine:
    """
    Rule-driven instruction parser.

    Rules are tried in ascending priority; the first whose pattern matches
    and whose extractor succeeds produces the ParsedStep. Parsed results are
    memoized per raw instruction and the whole memo is dropped once it is
    older than the TTL.

    Args:
        rules: Rule list to use instead of the built-in tables
        cache_ttl_ms: Memo lifetime in milliseconds
    """

    def __init__(
        self,
        rules: Optional[List[GrammarRule]] = None,
        cache_ttl_ms: int = 300_000,
    ):
        self._rules = sorted(rules if rules is not None else default_rules(), key=lambda r: r.priority)
        self._cache_ttl_ms = cache_ttl_ms
        self._cache: Dict[str, ParsedStep] = {}
        self._last_sweep = time.monotonic()

    def parse(self, instruction: str) -> Optional[ParsedStep]:
        """
        Parse one instruction.

        Returns:
            ParsedStep, or None when no rule matches
        """
        self._evict_stale_cache()
        cached = self._cache.get(instruction)
        if cached is not None:
            logger.debug(f"Grammar cache hit for '{instruction[:50]}'")
            return copy.deepcopy(cached)

        start = time.perf_counter()
        text, quoted = extract_quoted_strings(instruction.strip())

        step = self._match_rules(text, quoted, instruction)
        parse_pass = 1
        if step is None:
            normalized = normalize_synonyms(text)
            if normalized != text:
                step = self._match_rules(normalized, quoted, instruction)
                parse_pass = 2

        elapsed_ms = (time.perf_counter() - start) * 1000
        if step is None:
            logger.debug(f"No grammar rule matched in {elapsed_ms:.1f}ms: '{instruction[:80]}'")
            return None

        logger.debug(
            f"Matched rule '{step.matched_rule_id}' in {elapsed_ms:.1f}ms "
            f"(pass {parse_pass}, confidence {step.confidence:.2f})"
        )
        self._cache[instruction] = copy.deepcopy(step)
        return step

    def _match_rules(self, text: str, quoted: List[str], raw: str) -> Optional[ParsedStep]:
        for rule in self._rules:
            match = rule.pattern.match(text)
            if not match:
                continue
            try:
                extraction = rule.extract(match, quoted)
                return self._build_step(raw, rule, extraction, quoted)
            except Exception as e:
                logger.debug(f"Rule '{rule.id}' extraction failed: {e}")
                continue
        return None

    def _build_step(
        self,
        raw: str,
        rule: GrammarRule,
        extraction: GrammarExtraction,
        quoted: List[str],
    ) -> ParsedStep:
        target = self.parse_element_target(extraction.target_text, extraction.element_type, quoted)

        parameters = {}
        if extraction.value is not None:
            parameters["value"] = extraction.value
        if extraction.expected_value is not None:
            parameters["expected_value"] = extraction.expected_value
        parameters.update(extraction.params)

        return ParsedStep(
            category=rule.category,
            intent=rule.intent,
            target=target,
            parameters=parameters,
            raw_text=raw,
            confidence=self._confidence(rule, extraction, target),
            modifiers=extraction.modifiers or StepModifiers(),
            matched_rule_id=rule.id,
        )

    def parse_element_target(
        self,
        target_text: str,
        element_type: Optional[str],
        quoted: List[str],
    ) -> ElementTarget:
        """
        Turn rule target text into an ElementTarget.

        Ordinal, position and relative words are read while quoted strings
        are still placeholders, so a quoted label such as 'First Name' keeps
        its words.
        """
        text = (target_text or "").strip()

        ordinal = None
        for pattern, index in _ORDINAL_PATTERNS:
            if pattern.search(text):
                ordinal = index
                text = " ".join(pattern.sub("", text, count=1).split())
                break

        position = None
        position_match = _POSITION_PATTERN.search(text)
        if position_match:
            position = position_match.group(1).lower()

        relative_to = None
        relation = None
        for pattern, name in _RELATIVE_PATTERNS:
            relative_match = pattern.search(text)
            if relative_match:
                relative_to = resolve_quoted(relative_match.group(1), quoted).strip()
                relation = name
                text = text[:relative_match.start()].strip()
                break

        if element_type:
            element_type = ELEMENT_TYPE_SYNONYMS.get(element_type.lower(), element_type)

        return ElementTarget(
            element_type=element_type,
            descriptors=resolve_quoted(text, quoted).split(),
            ordinal=ordinal,
            position=position,
            relative_to=relative_to,
            relation=relation,
            raw_text=resolve_quoted(target_text or "", quoted).strip(),
        )

    @staticmethod
    def _confidence(rule: GrammarRule, extraction: GrammarExtraction, target: ElementTarget) -> float:
        confidence = 0.8
        if target.element_type:
            confidence += 0.05
        if target.descriptors:
            confidence += 0.05
        if extraction.value:
            confidence += 0.05
        if rule.priority > 100:
            confidence -= 0.02
        if target.ordinal:
            confidence += 0.03
        return min(confidence, 1.0)

    def _evict_stale_cache(self) -> None:
        now = time.monotonic()
        if (now - self._last_sweep) * 1000 > self._cache_ttl_ms:
            self._cache.clear()
            self._last_sweep = now

    def register_rule(self, rule: GrammarRule) -> None:
        """Add a rule, keep priority order, and drop memoized results."""
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority)
        self._cache.clear()

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    @property
    def rule_ids(self) -> List[str]:
        return [r.id for r in self._rules]

    def cache_stats(self) -> Dict[str, int]:
        return {"size": len(self._cache), "ttl": self._cache_ttl_ms}

    def clear_cache(self) -> None:
        self._cache.clear()
