"""
Assertion grammar rules: visibility, text, value, state, count, URL, title.
"""

from typing import List

from nl_step_engine.engine.grammar.helpers import quoted_value, rule, target_parts
from nl_step_engine.engine.types import GrammarExtraction, GrammarRule, StepCategory

ASSERTION = StepCategory.ASSERTION

_VERIFY = r"^(?:verify|assert|check|confirm|ensure)\s+(?:that\s+)?(?:the\s+)?"
# Dialog text checks belong to the browser rules
_NOT_DIALOG = r"(?!(?:the\s+)?(?:alert|dialog|confirm|prompt)\s+(?:text\s+)?(?:is|equals?|contains?|says?|shows?)\s+__QUOTED_\d+__$)"


def _target(match, group: int = 1, default_type: str | None = None, **extra) -> GrammarExtraction:
    text, element_type = target_parts(match.group(group), extended=True)
    return GrammarExtraction(target_text=text, element_type=element_type or default_type, **extra)


def _expect(match, quoted, group: int = 2, default_type: str | None = None) -> GrammarExtraction:
    return _target(match, 1, default_type, expected_value=quoted_value(quoted, match.group(group)))


ASSERTION_RULES: List[GrammarRule] = [
    rule(
        "assert-visible",
        _VERIFY + r"(.+?)(?<!\snot)\s+(?:is\s+)?(?:visible|displayed|shown|present|appearing)$",
        ASSERTION, "verify-visible", 100,
        lambda m, q: _target(m),
        ["Verify the Welcome message is displayed"],
    ),
    rule(
        "assert-hidden",
        _VERIFY + r"(.+?)\s+(?:is\s+)?(?:not\s+)?(?:hidden|invisible|not\s+displayed|not\s+visible|not\s+shown|not\s+present)$",
        ASSERTION, "verify-hidden", 101,
        lambda m, q: _target(m),
        ["Verify the Error banner is hidden", "Verify the Spinner is not visible"],
    ),
    rule(
        "assert-not-present",
        _VERIFY + r"(.+?)\s+(?:does\s+not\s+exist|doesn't\s+exist|is\s+gone|has\s+disappeared)$",
        ASSERTION, "verify-not-present", 102,
        lambda m, q: _target(m),
        ["Verify the Cookie banner does not exist"],
    ),
    rule(
        "assert-url",
        _VERIFY + r"(?:url|page\s+url|current\s+url)\s+(?:is|equals?|contains?|matches?)\s+__QUOTED_(\d+)__$",
        ASSERTION, "verify-url", 106,
        lambda m, q: GrammarExtraction(target_text="", expected_value=quoted_value(q, m.group(1))),
        ["Verify the URL contains '/dashboard'"],
    ),
    rule(
        "assert-title",
        _VERIFY + r"(?:page\s+)?title\s+(?:is|equals?|contains?|matches?)\s+__QUOTED_(\d+)__$",
        ASSERTION, "verify-title", 107,
        lambda m, q: GrammarExtraction(target_text="", expected_value=quoted_value(q, m.group(1))),
        ["Verify the page title is 'Dashboard'"],
    ),
    rule(
        "assert-value",
        _VERIFY + r"(.+?)\s+(?:value\s+(?:is|equals?)|has\s+value)\s+__QUOTED_(\d+)__$",
        ASSERTION, "verify-value", 108,
        lambda m, q: _expect(m, q, 2, "input"),
        ["Verify the Email field value is 'a@b.com'"],
    ),
    rule(
        "assert-attribute",
        _VERIFY + r"(.+?)\s+(?:has\s+)?attribute\s+__QUOTED_(\d+)__\s+(?:equal\s+to|equals?|is|with\s+value)\s+__QUOTED_(\d+)__$",
        ASSERTION, "verify-attribute", 109,
        lambda m, q: _target(
            m, 1,
            expected_value=quoted_value(q, m.group(3)),
            params={"attribute": quoted_value(q, m.group(2))},
        ),
        ["Verify the Logo has attribute 'alt' equal to 'Company'"],
    ),
    rule(
        "assert-not-contains-text",
        _VERIFY + r"(.+?)\s+(?:does\s+not\s+contain|doesn't\s+contain|does\s+not\s+include|doesn't\s+include)\s+(?:the\s+)?(?:text\s+)?__QUOTED_(\d+)__$",
        ASSERTION, "verify-not-contains", 110,
        lambda m, q: _expect(m, q),
        ["Verify the Alert does not contain 'Error'"],
    ),
    rule(
        "assert-text-equals",
        _VERIFY + _NOT_DIALOG + r"(.+?)\s+(?:text\s+)?(?:is|equals?|shows?|reads?|says?|has\s+text)\s+__QUOTED_(\d+)__$",
        ASSERTION, "verify-text", 110,
        lambda m, q: _expect(m, q),
        ["Verify the Total is '42.00'"],
    ),
    rule(
        "assert-contains-text",
        _VERIFY + _NOT_DIALOG + r"(.+?)\s+(?:contains?|includes?|has)\s+(?:the\s+)?(?:text\s+)?__QUOTED_(\d+)__$",
        ASSERTION, "verify-contains", 111,
        lambda m, q: _expect(m, q),
        ["Verify the Header contains 'Welcome'"],
    ),
    rule(
        "assert-enabled",
        _VERIFY + r"(.+?)(?<!\snot)\s+(?:is\s+)?enabled$",
        ASSERTION, "verify-enabled", 120,
        lambda m, q: _target(m),
        ["Verify the Submit button is enabled"],
    ),
    rule(
        "assert-disabled",
        _VERIFY + r"(.+?)\s+(?:is\s+)?(?:disabled|not\s+enabled|greyed\s+out|grayed\s+out)$",
        ASSERTION, "verify-disabled", 121,
        lambda m, q: _target(m),
        ["Verify the Save button is disabled"],
    ),
    rule(
        "assert-checked",
        _VERIFY + r"(.+?)(?<!\snot)\s+(?:is\s+)?checked$",
        ASSERTION, "verify-checked", 122,
        lambda m, q: _target(m, 1, "checkbox"),
        ["Verify the Terms checkbox is checked"],
    ),
    rule(
        "assert-unchecked",
        _VERIFY + r"(.+?)\s+(?:is\s+)?(?:unchecked|not\s+checked)$",
        ASSERTION, "verify-unchecked", 123,
        lambda m, q: _target(m, 1, "checkbox"),
        ["Verify the Newsletter checkbox is unchecked"],
    ),
    rule(
        "assert-count",
        r"^(?:verify|assert|check|confirm|ensure)\s+(?:that\s+)?(?:there\s+are|the\s+count\s+of|the\s+number\s+of)\s+(?:the\s+)?(.+?)\s+(?:is|equals?|are)\s+(\d+)$",
        ASSERTION, "verify-count", 130,
        lambda m, q: _target(m, 1, params={"count": int(m.group(2))}),
        ["Verify the number of rows is 5"],
    ),
]
