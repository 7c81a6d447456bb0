"""
Step execution exceptions.
"""

from typing import Any

from nl_step_engine.exceptions.base import StepEngineError


class StepError(StepEngineError):
    """Base exception for step execution errors."""
    pass


class StepValidationError(StepError):
    """
    Step parameters are invalid.

    Raised when an intent is missing a parameter it needs (e.g. a fill
    without a value).
    """

    def __init__(self, message: str, intent: str, invalid_params: dict | None = None):
        super().__init__(message, {"intent": intent, "invalid_params": invalid_params})
        self.intent = intent
        self.invalid_params = invalid_params


class UnsupportedIntentError(StepError):
    """
    No executor handler exists for an intent.
    """

    def __init__(self, intent: str, category: str):
        super().__init__(
            f"Unsupported {category} intent: {intent}",
            {"intent": intent, "category": category},
        )
        self.intent = intent
        self.category = category


class AssertionFailedError(StepError):
    """
    An assertion step did not hold.
    """

    def __init__(self, message: str, intent: str, expected: Any = None, actual: Any = None):
        super().__init__(message, {"intent": intent, "expected": expected, "actual": actual})
        self.intent = intent
        self.expected = expected
        self.actual = actual


class PollTimeoutError(AssertionFailedError):
    """
    A polled condition never held before its deadline.
    """

    def __init__(self, message: str, timeout_ms: int):
        super().__init__(message, intent="poll")
        self.details["timeout_ms"] = timeout_ms
        self.timeout_ms = timeout_ms


class StepExecutionError(StepError):
    """
    The dispatched operation failed after recovery.

    Carries the instruction, the resolution method and its confidence so
    the failure can be diagnosed without re-running.
    """

    def __init__(
        self,
        message: str,
        instruction: str,
        intent: str,
        method: str | None = None,
        confidence: float | None = None,
    ):
        super().__init__(message, {
            "instruction": instruction,
            "intent": intent,
            "method": method,
            "confidence": confidence,
        })
        self.instruction = instruction
        self.intent = intent
        self.method = method
        self.confidence = confidence
