"""
Engine Module - Deterministic natural-language step execution.

Handles:
- Instruction decomposition and grammar/keyword parsing
- Element resolution across a five-strategy cascade
- Fingerprinting, self-healing and the persistent element cache
- Intent execution with recovery
"""

from nl_step_engine.engine.types import (
    StepCategory,
    MatchMethod,
    StepModifiers,
    ElementTarget,
    ParsedStep,
    MatchedElement,
    AlternativeMatch,
    ActionResult,
)
from nl_step_engine.engine.grammar import GrammarEngine
from nl_step_engine.engine.decomposer import InstructionDecomposer, decompose
from nl_step_engine.engine.intent_parser import IntentParser
from nl_step_engine.engine.step_parser import StepParser
from nl_step_engine.engine.fuzzy_matcher import FuzzyMatcher
from nl_step_engine.engine.fingerprint import ElementFingerprint, generate_key
from nl_step_engine.engine.element_cache import ElementCache
from nl_step_engine.engine.accessibility_matcher import AccessibilityMatcher
from nl_step_engine.engine.error_recovery import ErrorRecovery
from nl_step_engine.engine.action_executor import ActionExecutor
from nl_step_engine.engine.orchestrator import StepEngine, get_step_engine, reset_step_engine, run_step

__all__ = [
    # Orchestrator
    "StepEngine",
    "get_step_engine",
    "reset_step_engine",
    "run_step",
    # Parsing
    "GrammarEngine",
    "InstructionDecomposer",
    "decompose",
    "IntentParser",
    "StepParser",
    # Resolution
    "AccessibilityMatcher",
    "FuzzyMatcher",
    "ElementFingerprint",
    "ElementCache",
    "generate_key",
    # Execution
    "ActionExecutor",
    "ErrorRecovery",
    # Types
    "StepCategory",
    "MatchMethod",
    "StepModifiers",
    "ElementTarget",
    "ParsedStep",
    "MatchedElement",
    "AlternativeMatch",
    "ActionResult",
]
