"""
Action grammar rules: click, type, select, check, hover, keys, uploads, waits.

Patterns run against text where quoted strings were replaced by
__QUOTED_n__ placeholders. Table-row rules come first so they capture the
row context before the generic verbs do.
"""

from typing import List

from nl_step_engine.engine.grammar.helpers import (
    QUOTED_PLACEHOLDER,
    quoted_value,
    resolve_quoted,
    rule,
    strip_element_type,
    target_parts,
)
from nl_step_engine.engine.types import GrammarExtraction, GrammarRule, StepCategory, StepModifiers

ACTION = StepCategory.ACTION

_FILL_VERBS = r"(?:type|enter|fill|input|write)"
_ROW_SUFFIX = r"\s+(?:at|in|on)\s+row\s+(?:number\s+)?(\d+)\s+(?:in|of)\s+(?:the\s+)?(.+?)$"


def _target(match, group: int, default_type: str | None = None, **extra) -> GrammarExtraction:
    text, element_type = target_parts(match.group(group))
    return GrammarExtraction(target_text=text, element_type=element_type or default_type, **extra)


def _table_params(match, quoted, row_group: int) -> dict:
    table_ref = resolve_quoted(match.group(row_group + 1).strip(), quoted)
    return {"row_index": int(match.group(row_group)), "table_ref": strip_element_type(table_ref)}


def _shortcut(key: str):
    def extract(match, quoted):
        return GrammarExtraction(target_text="", params={"key": key})
    return extract


def _wait_seconds(match, quoted):
    amount = int(match.group(1))
    unit = match.group(2).lower()
    timeout = amount if unit.startswith(("ms", "milli")) else amount * 1000
    return GrammarExtraction(target_text="", params={"timeout": timeout})


def _load_state(state: str):
    def extract(match, quoted):
        return GrammarExtraction(target_text="", params={"load_state": state})
    return extract


ACTION_RULES: List[GrammarRule] = [
    # Table row scoped actions
    rule(
        "action-table-type",
        rf"^{_FILL_VERBS}\s+__QUOTED_(\d+)__\s+(?:in|into)\s+(?:the\s+)?(.+?){_ROW_SUFFIX}",
        ACTION, "fill", 5,
        lambda m, q: _target(m, 2, "input", value=quoted_value(q, m.group(1)), params=_table_params(m, q, 3)),
        ["Type '1000' in the 'Amount' field at row 1 in the Balances table"],
    ),
    rule(
        "action-table-clear",
        rf"^(?:clear|empty|erase)\s+(?:the\s+)?(?:text\s+in\s+)?(?:the\s+)?(.+?){_ROW_SUFFIX}",
        ACTION, "clear", 6,
        lambda m, q: _target(m, 1, "input", params=_table_params(m, q, 2)),
        ["Clear the 'Quantity' field at row 2 in the Orders table"],
    ),
    rule(
        "action-table-click",
        rf"^click\s+(?:on\s+)?(?:the\s+)?(.+?){_ROW_SUFFIX}",
        ACTION, "click", 7,
        lambda m, q: _target(m, 1, params=_table_params(m, q, 2)),
        ["Click the 'Update' button at row number 1 in the Balances table"],
    ),
    rule(
        "action-table-select",
        rf"^(?:select|pick|choose)\s+(?:the\s+)?(?:option\s+)?__QUOTED_(\d+)__\s+(?:option\s+)?(?:from|in)\s+(?:the\s+)?(.+?){_ROW_SUFFIX}",
        ACTION, "select", 8,
        lambda m, q: _target(m, 2, "dropdown", value=quoted_value(q, m.group(1)), params=_table_params(m, q, 3)),
        ["Select 'USD' from the Currency dropdown at row 2 in the Rates table"],
    ),

    # Click
    rule(
        "action-click-basic",
        r"^click\s+(?:on\s+)?(?:the\s+)?(.+?)$",
        ACTION, "click", 10,
        lambda m, q: _target(m, 1),
        ["Click the Login button", "Click on 'Submit'"],
    ),
    rule(
        "action-double-click",
        r"^double[\s-]?click\s+(?:on\s+)?(?:the\s+)?(.+?)$",
        ACTION, "double-click", 11,
        lambda m, q: _target(m, 1),
        ["Double-click the row"],
    ),
    rule(
        "action-right-click",
        r"^right[\s-]?click\s+(?:on\s+)?(?:the\s+)?(.+?)$",
        ACTION, "right-click", 12,
        lambda m, q: _target(m, 1),
        ["Right click the file icon"],
    ),

    # Type / fill
    rule(
        "action-type-value-in-target",
        rf"^{_FILL_VERBS}\s+__QUOTED_(\d+)__\s+(?:in|into|on)\s+(?!(?:the\s+)?prompt(?:\s+(?:dialog|and\s+accept))?$)(?:the\s+)?(.+?)$",
        ACTION, "fill", 20,
        lambda m, q: _target(m, 2, "input", value=quoted_value(q, m.group(1))),
        ["Type 'john@example.com' in the Email field"],
    ),
    rule(
        "action-type-in-target-value",
        rf"^{_FILL_VERBS}\s+(?:in|into)\s+(?:the\s+)?(.+?)\s+(?:the\s+)?(?:value|text)\s+__QUOTED_(\d+)__$",
        ACTION, "fill", 21,
        lambda m, q: _target(m, 1, "input", value=quoted_value(q, m.group(2))),
        ["Enter into the Username field the value 'admin'"],
    ),
    rule(
        "action-type-target-with-value",
        rf"^{_FILL_VERBS}\s+(?:in\s+)?(?:the\s+)?(.+?)\s+(?:with|as)\s+__QUOTED_(\d+)__$",
        ACTION, "fill", 22,
        lambda m, q: _target(m, 1, "input", value=quoted_value(q, m.group(2))),
        ["Fill the Password field with 'secret'"],
    ),
    rule(
        "action-clear-field",
        r"^(?:clear|empty|erase)\s+(?:the\s+)?(?!(?:all\s+)?(?:the\s+)?(?:browser\s+)?(?:session|context|cookies?|local\s+storage|session\s+storage|storage)\b)(.+?)$",
        ACTION, "clear", 25,
        lambda m, q: _target(m, 1, "input"),
        ["Clear the Search field"],
    ),

    # Select
    rule(
        "action-select-option-from",
        r"^(?:select|pick|choose)\s+(?:the\s+)?(?:option\s+)?__QUOTED_(\d+)__\s+(?:option\s+)?(?:from|in)\s+(?:the\s+)?(.+?)$",
        ACTION, "select", 30,
        lambda m, q: _target(m, 2, "dropdown", value=quoted_value(q, m.group(1))),
        ["Select 'United States' from the Country dropdown"],
    ),
    rule(
        "action-select-option-in",
        r"^(?:select|pick|choose)\s+(?:the\s+)?(?:option\s+)?__QUOTED_(\d+)__\s+(?:option\s+)?(?:on)\s+(?:the\s+)?(.+?)$",
        ACTION, "select", 31,
        lambda m, q: _target(m, 2, "dropdown", value=quoted_value(q, m.group(1))),
        ["Choose 'Express' on the Shipping select"],
    ),

    # Hover / scroll / focus
    rule(
        "action-hover",
        r"^(?:hover|mouse\s*over)\s+(?:over\s+|on\s+)?(?:the\s+)?(.+?)$",
        ACTION, "hover", 50,
        lambda m, q: _target(m, 1),
        ["Hover over the Profile menu"],
    ),
    rule(
        "action-scroll-to",
        r"^scroll\s+(?:to|until)\s+(?:the\s+)?(.+?)(?:\s+is\s+visible)?$",
        ACTION, "scroll-to", 51,
        lambda m, q: _target(m, 1),
        ["Scroll to the Footer"],
    ),
    rule(
        "action-scroll-direction",
        r"^scroll\s+(up|down|left|right)(?:\s+(?:on\s+|in\s+)?(?:the\s+)?(.+?))?$",
        ACTION, "scroll", 52,
        lambda m, q: GrammarExtraction(
            target_text=(m.group(2) or "page").strip(),
            value=m.group(1).lower(),
        ),
        ["Scroll down", "Scroll up the results panel"],
    ),
    rule(
        "action-focus",
        r"^(?:focus|set\s+focus)\s+(?:on\s+)?(?:the\s+)?(.+?)$",
        ACTION, "focus", 55,
        lambda m, q: _target(m, 1),
        ["Focus on the Search field"],
    ),

    # Keys
    rule(
        "action-press-key-combo",
        r"^press\s+((?:ctrl|control|alt|shift|meta|cmd|command)(?:\s*\+\s*(?:ctrl|control|alt|shift|meta|cmd|command|[a-z0-9]))+)(?:\s+(?:on|in)\s+(?:the\s+)?(.+?))?$",
        ACTION, "press-key", 59,
        lambda m, q: GrammarExtraction(
            target_text=target_parts(m.group(2))[0] if m.group(2) else "",
            element_type=target_parts(m.group(2))[1] if m.group(2) else None,
            params={"key": m.group(1).replace(" ", "")},
        ),
        ["Press Ctrl+A", "Press Shift+Tab in the Name field"],
    ),
    rule(
        "action-press-key-on",
        r"^press\s+(?:the\s+)?(.+?)\s+(?:key\s+)?(?:on|in)\s+(?:the\s+)?(.+?)$",
        ACTION, "press-key", 60,
        lambda m, q: _target(m, 2, params={"key": resolve_quoted(m.group(1), q).strip()}),
        ["Press Enter in the Search field"],
    ),
    rule(
        "action-press-key",
        r"^press\s+(?:the\s+)?(?:key\s+)?(?!.*\b(?:button|btn|link|icon|menu\s*item|checkbox)$)(.+?)(?:\s+key)?$",
        ACTION, "press-key", 61,
        lambda m, q: GrammarExtraction(target_text="", params={"key": resolve_quoted(m.group(1), q).strip()}),
        ["Press Enter", "Press the Escape key"],
    ),
    rule("action-select-all-text", r"^select\s+all(?:\s+text)?$", ACTION, "press-key", 63,
         _shortcut("Control+a"), ["Select all text"]),
    rule("action-copy", r"^copy(?:\s+(?:the\s+)?(?:selected\s+)?text)?$", ACTION, "press-key", 64,
         _shortcut("Control+c"), ["Copy"]),
    rule("action-paste", r"^paste(?:\s+(?:the\s+)?text)?$", ACTION, "press-key", 65,
         _shortcut("Control+v"), ["Paste"]),
    rule("action-cut", r"^cut(?:\s+(?:the\s+)?(?:selected\s+)?text)?$", ACTION, "press-key", 66,
         _shortcut("Control+x"), ["Cut"]),
    rule("action-undo", r"^undo(?:\s+(?:the\s+)?last\s+(?:change|action))?$", ACTION, "press-key", 67,
         _shortcut("Control+z"), ["Undo"]),
    rule("action-redo", r"^redo(?:\s+(?:the\s+)?last\s+(?:change|action))?$", ACTION, "press-key", 68,
         _shortcut("Control+y"), ["Redo"]),

    # Upload / drag
    rule(
        "action-upload",
        r"^upload\s+(?:the\s+)?(?:file\s+)?__QUOTED_(\d+)__\s+(?:to|in|into|on)\s+(?:the\s+)?(.+?)$",
        ACTION, "upload", 70,
        lambda m, q: _target(m, 2, "button", params={"file_path": quoted_value(q, m.group(1))}),
        ["Upload file 'report.pdf' to the Attachment field"],
    ),
    rule(
        "action-upload-multiple",
        r"^upload\s+files?\s+((?:__QUOTED_\d+__(?:\s*,\s*|\s+and\s+)?)+)\s+(?:to|in|into|on)\s+(?:the\s+)?(.+?)$",
        ACTION, "upload", 71,
        lambda m, q: _target(m, 2, "button", params={"file_path": ",".join(
            quoted_value(q, idx) or "" for idx in QUOTED_PLACEHOLDER.findall(m.group(1))
        )}),
        ["Upload files 'a.png', 'b.png' to the Gallery"],
    ),
    rule(
        "action-drag-to",
        r"^drag\s+(?:the\s+)?(.+?)\s+(?:to|onto|into)\s+(?:the\s+)?(.+?)$",
        ACTION, "drag", 72,
        lambda m, q: _target(m, 1, params={"drag_target": resolve_quoted(target_parts(m.group(2))[0], q)}),
        ["Drag the Task card to the Done column"],
    ),

    # Waits
    rule(
        "wait-for-element",
        r"^wait\s+(?:for\s+)?(?:the\s+)?(.+?)\s+(?:to\s+)?(?:be\s+)?(?:visible|displayed|shown|appear)$",
        ACTION, "wait-for", 80,
        lambda m, q: _target(m, 1),
        ["Wait for the Dashboard heading to be visible"],
    ),
    rule(
        "wait-for-element-gone",
        r"^wait\s+(?:for\s+)?(?:the\s+)?(.+?)\s+(?:to\s+)?(?:be\s+)?(?:hidden|gone|disappear|removed)$",
        ACTION, "wait-for", 81,
        lambda m, q: _target(m, 1, modifiers=StepModifiers(negated=True)),
        ["Wait for the Spinner to disappear"],
    ),
    rule(
        "wait-seconds",
        r"^(?:wait|pause)\s+(?:for\s+)?(\d+)\s*(seconds?|secs?|milliseconds?|ms)$",
        ACTION, "wait-seconds", 82,
        _wait_seconds,
        ["Wait 3 seconds", "Pause for 500 ms"],
    ),
    rule(
        "wait-url-contain",
        r"^wait\s+(?:for\s+)?(?:the\s+)?url\s+to\s+(?:contain|include|have)\s+__QUOTED_(\d+)__$",
        ACTION, "wait-url-change", 83,
        lambda m, q: GrammarExtraction(target_text="", params={"url": quoted_value(q, m.group(1))}),
        ["Wait for the URL to contain '/dashboard'"],
    ),
    rule(
        "wait-url-change",
        r"^wait\s+(?:for\s+)?(?:the\s+)?(?:url|page)\s+to\s+change$",
        ACTION, "wait-url-change", 84,
        lambda m, q: GrammarExtraction(target_text=""),
        ["Wait for the URL to change"],
    ),
    rule(
        "wait-text-to-be",
        r"^wait\s+(?:for\s+)?(?:the\s+)?(.+?)\s+(?:text\s+)?to\s+(?:be|equal|show|read)\s+__QUOTED_(\d+)__$",
        ACTION, "wait-text-change", 85,
        lambda m, q: _target(m, 1, expected_value=quoted_value(q, m.group(2))),
        ["Wait for the Status to be 'Complete'"],
    ),
    rule(
        "wait-text-change",
        r"^wait\s+(?:for\s+)?(?:the\s+)?(.+?)\s+(?:text\s+)?to\s+change$",
        ACTION, "wait-text-change", 86,
        lambda m, q: _target(m, 1),
        ["Wait for the Counter text to change"],
    ),
    rule(
        "wait-domcontentloaded",
        r"^wait\s+(?:for\s+)?(?:the\s+)?(?:dom\s*content\s*loaded|dom\s+to\s+load|dom\s+ready)$",
        ACTION, "wait-page-load", 87,
        _load_state("domcontentloaded"),
        ["Wait for DOM content loaded"],
    ),
    rule(
        "wait-page-load",
        r"^wait\s+(?:for\s+)?(?:the\s+)?page\s+(?:to\s+)?(?:load|be\s+loaded|finish\s+loading)$",
        ACTION, "wait-page-load", 88,
        _load_state("load"),
        ["Wait for the page to load"],
    ),
    rule(
        "wait-network-idle",
        r"^wait\s+(?:for\s+)?(?:the\s+)?network\s+(?:to\s+be\s+)?idle$",
        ACTION, "wait-page-load", 89,
        _load_state("networkidle"),
        ["Wait for network idle"],
    ),

    # Check / uncheck / toggle
    rule(
        "action-check",
        r"^(?:check|mark|tick)\s+(?:the\s+)?(?!(?:if|that|whether)\b)(?!__QUOTED_\d+__\s+(?:is\s+)?(?:displayed|shown|visible|present|available)\b)(.+?)(?:\s+checkbox)?$",
        ACTION, "check", 125,
        lambda m, q: _target(m, 1, "checkbox"),
        ["Check the Remember me checkbox"],
    ),
    rule(
        "action-uncheck",
        r"^(?:uncheck|untick|unmark|deselect)\s+(?:the\s+)?(.+?)(?:\s+checkbox)?$",
        ACTION, "uncheck", 126,
        lambda m, q: _target(m, 1, "checkbox"),
        ["Uncheck the Newsletter checkbox"],
    ),
    rule(
        "action-toggle",
        r"^toggle\s+(?:the\s+)?(.+?)(?:\s+(?:switch|toggle))?$",
        ACTION, "toggle", 127,
        lambda m, q: _target(m, 1, "switch"),
        ["Toggle the Dark mode switch"],
    ),
]
