"""
Step Parser - Grammar first, keyword fallback second.
"""

import logging
import time
from typing import Optional

from nl_step_engine.engine.grammar import GrammarEngine
from nl_step_engine.engine.intent_parser import IntentParser
from nl_step_engine.engine.types import ParsedStep
from nl_step_engine.exceptions import StepParseError

logger = logging.getLogger(__name__)


class StepParser:
    """
    Two-tier instruction parser.

    The grammar engine handles the phrasings it has rules for; anything
    else goes through the keyword-based IntentParser. An instruction neither
    understands raises StepParseError.

    Example:
        >>> parser = StepParser()
        >>> parser.parse("Type 'admin' in the Username field").intent
        'fill'
    """

    def __init__(
        self,
        grammar: Optional[GrammarEngine] = None,
        fallback: Optional[IntentParser] = None,
    ):
        self.grammar = grammar or GrammarEngine()
        self.fallback = fallback or IntentParser()

    def parse(self, instruction: str) -> ParsedStep:
        """
        Parse one instruction.

        Raises:
            StepParseError: Empty instruction or no interpretation found
        """
        trimmed = (instruction or "").strip()
        if not trimmed:
            raise StepParseError("Empty instruction", instruction=instruction or "")

        start = time.perf_counter()
        step = self.grammar.parse(trimmed)
        if step is not None:
            logger.debug(
                f"Grammar parse: {step.intent} (rule: {step.matched_rule_id}) "
                f"in {(time.perf_counter() - start) * 1000:.1f}ms"
            )
            return step

        logger.debug(f"No grammar match, trying keyword fallback for '{trimmed[:80]}'")
        step = self.fallback.parse(trimmed)
        if step is None:
            raise StepParseError(f"Could not understand instruction: '{trimmed}'", instruction=trimmed)

        logger.debug(f"Fallback parse: {step.intent} (confidence {step.confidence:.2f})")
        return step

    def clear_cache(self) -> None:
        self.grammar.clear_cache()
