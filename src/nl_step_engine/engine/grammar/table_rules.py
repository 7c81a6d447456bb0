"""
Table grammar rules: read cells, columns, row counts and whole tables,
verify cell values, column order and headers, sort by a column.

Columns are referenced by 1-based index or by quoted header text. These
rules run ahead of the generic click / verify / get rules, whose patterns
would otherwise swallow "row 2 column 'Status'" phrasing.
"""

from typing import List, Optional

from nl_step_engine.engine.grammar.helpers import quoted_value, resolve_quoted, rule, strip_element_type
from nl_step_engine.engine.types import GrammarExtraction, GrammarRule, StepCategory, StepModifiers

ACTION = StepCategory.ACTION
ASSERTION = StepCategory.ASSERTION
QUERY = StepCategory.QUERY

_OF = r"\s+(?:of|in|from)\s+(?:the\s+)?"
_COLUMN = r"column\s+(?:(\d+)|__QUOTED_(\d+)__)"


def _table_ref(raw: Optional[str], quoted: List[str]) -> str:
    """Table name with placeholders resolved and a trailing 'table' / 'grid' dropped."""
    if not raw:
        return ""
    text = resolve_quoted(raw.strip(), quoted)
    if text.lower() in ("table", "grid"):
        return ""
    return strip_element_type(text)


def _column_ref(match, quoted, index_group: int) -> str:
    """Column index digits, or the quoted header text in the next group."""
    index = match.group(index_group)
    if index:
        return index
    return quoted_value(quoted, match.group(index_group + 1)) or ""


def _table(match, quoted, table_group: Optional[int], **params) -> GrammarExtraction:
    raw = match.group(table_group) if table_group else None
    return GrammarExtraction(
        target_text="",
        element_type="table",
        params={"table_ref": _table_ref(raw, quoted), **params},
    )


def _cell(match, quoted) -> GrammarExtraction:
    return _table(
        match, quoted, 4,
        row_index=int(match.group(1)),
        column_ref=_column_ref(match, quoted, 2),
    )


def _verify_cell(match, quoted) -> GrammarExtraction:
    extraction = _cell(match, quoted)
    extraction.expected_value = quoted_value(quoted, match.group(6)) or ""
    if match.group(5).lower() == "contains":
        extraction.params["cell_match"] = "contains"
    return extraction


def _column(match, quoted) -> GrammarExtraction:
    return _table(match, quoted, 3, column_ref=_column_ref(match, quoted, 1))


def _sorted(match, quoted) -> GrammarExtraction:
    kind = (match.group(5) or "").lower()
    if kind.startswith("date"):
        data_type = "date"
    elif kind.startswith("number"):
        data_type = "number"
    else:
        data_type = "string"
    return _table(
        match, quoted, 3,
        column_ref=_column_ref(match, quoted, 1),
        sort_direction="descending" if match.group(4).lower().startswith("desc") else "ascending",
        sort_data_type=data_type,
    )


def _column_exists(match, quoted) -> GrammarExtraction:
    extraction = _table(match, quoted, 4, column_ref=quoted_value(quoted, match.group(1)) or "")
    extraction.modifiers = StepModifiers(negated=bool(match.group(2)))
    return extraction


def _sort_column(match, quoted) -> GrammarExtraction:
    return GrammarExtraction(
        target_text=quoted_value(quoted, match.group(1)) or "",
        element_type="columnheader",
    )


TABLE_RULES: List[GrammarRule] = [
    rule(
        "table-verify-cell",
        r"^(?:verify|assert|check)\s+(?:that\s+)?row\s+(\d+)\s+" + _COLUMN + _OF
        + r"(.+?)\s+(is|equals?|contains)\s+__QUOTED_(\d+)__$",
        ASSERTION, "verify-table-cell", 3,
        _verify_cell,
        ["Verify row 2 column 'Status' of the Users table is 'Active'", "Check row 3 column 1 in the table equals 'USD'"],
    ),
    rule(
        "table-sort-by-header",
        r"^(?:click|sort\s+by)\s+(?:the\s+)?column\s+header\s+__QUOTED_(\d+)__(?:\s+to\s+sort)?$",
        ACTION, "sort-column", 9,
        _sort_column,
        ["Click column header 'Name' to sort"],
    ),
    rule(
        "table-verify-sorted",
        r"^(?:verify|assert|check)\s+(?:that\s+)?" + _COLUMN + r"(?:" + _OF + r"(.+?))?"
        + r"\s+is\s+sorted\s+(?:in\s+)?(ascending|descending|asc|desc)(?:\s+order)?"
        + r"(?:\s+as\s+(dates?|numbers?|text))?$",
        ASSERTION, "verify-column-sorted", 90,
        _sorted,
        ["Verify column 'Name' is sorted ascending", "Verify column 'Created' is sorted descending as dates"],
    ),
    rule(
        "table-verify-column-exists",
        r"^(?:verify|assert|check)\s+(?:that\s+)?column\s+__QUOTED_(\d+)__\s+(?:(does\s+not\s+exist|is\s+not\s+present)"
        + r"|(exists?|is\s+present))(?:\s+in\s+(?:the\s+)?(.+?))?$",
        ASSERTION, "verify-column-exists", 91,
        _column_exists,
        ["Verify column 'Status' exists in the table", "Verify column 'Internal ID' does not exist in the table"],
    ),
    rule(
        "table-get-data",
        r"^(?:get|capture|extract|read)\s+(?:all\s+)?(?:the\s+)?(?:data|rows)\s+(?:from|of)\s+(?:the\s+)?(.*?\b(?:table|grid))$",
        QUERY, "get-table-data", 190,
        lambda m, q: _table(m, q, 1),
        ["Get all data from the Results table", "Extract all rows from the table"],
    ),
    rule(
        "table-capture-data",
        r"^capture\s+(?:the\s+)?table\s+(?:data|content)$",
        QUERY, "get-table-data", 191,
        lambda m, q: _table(m, q, None),
        ["Capture the table data"],
    ),
    rule(
        "table-get-cell",
        r"^(?:get|read)\s+(?:the\s+)?(?:value|text)\s+(?:from|of|in)\s+row\s+(\d+)\s+" + _COLUMN + _OF + r"(.+?)$",
        QUERY, "get-table-cell", 192,
        _cell,
        ["Get the value from row 2 column 3 of the table", "Read the value from row 1 column 'Status' of the Orders table"],
    ),
    rule(
        "table-get-column",
        r"^(?:get|read|extract)\s+(?:all\s+)?(?:the\s+)?values?\s+(?:from|of|in)\s+" + _COLUMN + _OF + r"(.+?)$",
        QUERY, "get-table-column", 193,
        _column,
        ["Get all values from column 'Name' in the table", "Read values from column 1 of the Results table"],
    ),
    rule(
        "table-get-row-count",
        r"^(?:get|count|read)\s+(?:the\s+)?(?:number\s+of\s+)?rows\s+(?:in|of|from)\s+(?:the\s+)?(.*?\b(?:table|grid))$",
        QUERY, "get-table-row-count", 194,
        lambda m, q: _table(m, q, 1),
        ["Get the number of rows in the table", "Count rows in the Results table"],
    ),
]
