"""
Query grammar rules: read text, values, attributes, counts and page state.
"""

from typing import List

from nl_step_engine.engine.grammar.helpers import quoted_value, rule, target_parts
from nl_step_engine.engine.types import GrammarExtraction, GrammarRule, StepCategory

QUERY = StepCategory.QUERY

_GET = r"^(?:get|read|extract|fetch|retrieve|capture|grab)\s+"


def _target(match, group: int = 1, default_type: str | None = None, **extra) -> GrammarExtraction:
    text, element_type = target_parts(match.group(group), extended=True)
    return GrammarExtraction(target_text=text, element_type=element_type or default_type, **extra)


def _url_param(match, quoted):
    return GrammarExtraction(target_text="", params={"url_param": quoted_value(quoted, match.group(1)) or ""})


QUERY_RULES: List[GrammarRule] = [
    rule(
        "query-get-text-from",
        _GET + r"(?:the\s+)?(?:text|content|label)\s+(?:from|of)\s+(?:the\s+)?(.+?)$",
        QUERY, "get-text", 200,
        lambda m, q: _target(m),
        ["Get the text from the heading", "Read the content of the error message"],
    ),
    rule(
        "query-get-text-of",
        _GET + r"(?:the\s+)?(.+?)(?:'s)?\s+text$",
        QUERY, "get-text", 201,
        lambda m, q: _target(m),
        ["Get the error message text"],
    ),
    rule(
        "query-get-value-from",
        _GET + r"(?:the\s+)?value\s+(?:from|of)\s+(?:the\s+)?(.+?)$",
        QUERY, "get-value", 202,
        lambda m, q: _target(m, 1, "input"),
        ["Get the value from the Email field"],
    ),
    rule(
        "query-get-attribute",
        r"^(?:get|read|extract|fetch|retrieve)\s+(?:the\s+)?(?:attribute\s+)?__QUOTED_(\d+)__\s+(?:attribute\s+)?(?:from|of)\s+(?:the\s+)?(.+?)$",
        QUERY, "get-attribute", 210,
        lambda m, q: _target(m, 2, params={"attribute": quoted_value(q, m.group(1)) or ""}),
        ["Get the 'href' attribute from the Docs link"],
    ),
    rule(
        "query-get-attribute-of",
        r"^(?:get|read|extract|fetch|retrieve)\s+(?:the\s+)?(.+?)\s+attribute\s+__QUOTED_(\d+)__$",
        QUERY, "get-attribute", 211,
        lambda m, q: _target(m, 1, params={"attribute": quoted_value(q, m.group(2)) or ""}),
        ["Get the Docs link attribute 'href'"],
    ),
    rule(
        "query-get-count",
        r"^(?:get|count|read)\s+(?:the\s+)?(?:number\s+of|count\s+of|total\s+)\s*(?:the\s+)?(.+?)$",
        QUERY, "get-count", 220,
        lambda m, q: _target(m),
        ["Get the number of rows", "Count the total items"],
    ),
    rule(
        "query-how-many",
        r"^how\s+many\s+(.+?)\s+(?:are\s+there|exist|are\s+(?:visible|displayed|shown|present))\??$",
        QUERY, "get-count", 221,
        lambda m, q: _target(m),
        ["How many rows are there?"],
    ),
    rule(
        "query-get-list",
        r"^(?:get|read|extract|list)\s+(?:all\s+)?(?:the\s+)?(?:text|values?|items?|options?)\s+(?:from|of|in)\s+(?:the\s+)?(.+?)$",
        QUERY, "get-list", 222,
        lambda m, q: _target(m),
        ["Get all the options from the Country dropdown"],
    ),
    rule(
        "query-check-exists",
        r"^(?:check|does|is)\s+(?:if\s+)?(?:there\s+(?:is|are)\s+)?(?:an?\s+)?(?:the\s+)?(.+?)(?:\s+(?:exist|exists|present|there))?\??$",
        QUERY, "check-exists", 230,
        lambda m, q: _target(m),
        ["Check if there are error messages", "Does the Submit button exist?"],
    ),
    rule(
        "query-get-url",
        r"^(?:get|read|extract)\s+(?:the\s+)?(?:current\s+)?(?:page\s+)?url$",
        QUERY, "get-url", 240,
        lambda m, q: GrammarExtraction(target_text=""),
        ["Get the current URL"],
    ),
    rule(
        "query-get-title",
        r"^(?:get|read|extract)\s+(?:the\s+)?(?:page\s+)?title$",
        QUERY, "get-title", 241,
        lambda m, q: GrammarExtraction(target_text=""),
        ["Get the page title"],
    ),
    rule(
        "query-get-url-param",
        r"^(?:get|read|extract)\s+(?:the\s+)?url\s+parameter\s+__QUOTED_(\d+)__$",
        QUERY, "get-url-param", 242,
        _url_param,
        ["Get the URL parameter 'id'"],
    ),
    rule(
        "query-get-url-param-alt",
        r"^(?:get|read|extract)\s+(?:the\s+)?(?:value\s+of\s+)?url\s+(?:param|parameter|query\s+param)\s+__QUOTED_(\d+)__$",
        QUERY, "get-url-param", 243,
        _url_param,
        ["Get the value of URL param 'session'"],
    ),
]
