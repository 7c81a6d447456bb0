"""
Tests for the two-tier step parser.
"""

from unittest.mock import MagicMock

import pytest

from nl_step_engine.engine.step_parser import StepParser
from nl_step_engine.exceptions import StepParseError


class TestStepParser:
    """Test grammar-first parsing with fallback."""

    def test_grammar_match(self):
        """Known phrasings come from the grammar."""
        step = StepParser().parse("Type 'admin' in the Username field")
        assert step.intent == "fill"
        assert step.matched_rule_id == "action-type-value-in-target"

    def test_fallback(self):
        """Unknown phrasings fall back to keywords."""
        step = StepParser().parse("Kindly press on the blue Save button")
        assert step.intent == "click"
        assert step.matched_rule_id is None

    def test_fallback_not_called_on_grammar_hit(self):
        """The keyword parser is only a fallback."""
        fallback = MagicMock()
        StepParser(fallback=fallback).parse("Click Login")
        fallback.parse.assert_not_called()

    def test_empty_instruction(self):
        """Blank text is rejected."""
        with pytest.raises(StepParseError):
            StepParser().parse("   ")

    def test_unparseable(self):
        """Nothing understood raises with the instruction attached."""
        with pytest.raises(StepParseError) as exc_info:
            StepParser().parse("Zzz qqq")
        assert exc_info.value.instruction == "Zzz qqq"

    def test_clear_cache(self):
        """Clearing drops grammar memo entries."""
        parser = StepParser()
        parser.parse("Click Login")
        parser.clear_cache()
        assert parser.grammar.cache_stats()["size"] == 0
