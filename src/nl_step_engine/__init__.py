"""
NL Step Engine - Deterministic natural-language test steps for Playwright.

Turns plain-English steps into browser actions, assertions and queries
without calling a language model: a grammar parses the step, an
accessibility-first matcher finds the element, and an executor runs it.

Example:
    >>> from nl_step_engine import StepEngine
    >>> engine = StepEngine()
    >>> await engine.run("Click the Login button", page)
"""

__version__ = "0.1.0"

# Public API exports
from nl_step_engine.config.settings import Settings
from nl_step_engine.engine.orchestrator import StepEngine, run_step

__all__ = [
    "StepEngine",
    "run_step",
    "Settings",
    "__version__",
]
