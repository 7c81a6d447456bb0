"""
Grammar - Rule tables and the engine that applies them.
"""

from nl_step_engine.engine.grammar.action_rules import ACTION_RULES
from nl_step_engine.engine.grammar.assertion_rules import ASSERTION_RULES
from nl_step_engine.engine.grammar.browser_rules import BROWSER_RULES
from nl_step_engine.engine.grammar.engine import (
    GrammarEngine,
    default_rules,
    extract_quoted_strings,
    normalize_synonyms,
)
from nl_step_engine.engine.grammar.navigation_rules import NAVIGATION_RULES
from nl_step_engine.engine.grammar.query_rules import QUERY_RULES
from nl_step_engine.engine.grammar.table_rules import TABLE_RULES

ALL_RULES = sorted(default_rules(), key=lambda r: r.priority)

__all__ = [
    "GrammarEngine",
    "ALL_RULES",
    "ACTION_RULES",
    "ASSERTION_RULES",
    "QUERY_RULES",
    "NAVIGATION_RULES",
    "BROWSER_RULES",
    "TABLE_RULES",
    "default_rules",
    "extract_quoted_strings",
    "normalize_synonyms",
]
