"""
Exceptions module - Custom exception hierarchy.

Parse failures, resolution failures and execution failures each have their
own branch so callers can tell them apart.
"""

from nl_step_engine.exceptions.base import (
    StepEngineError,
    ConfigurationError,
)
from nl_step_engine.exceptions.parsing import StepParseError
from nl_step_engine.exceptions.resolution import (
    ResolutionError,
    ElementResolutionError,
    OrdinalOutOfRangeError,
    ColumnNotFoundError,
)
from nl_step_engine.exceptions.action import (
    StepError,
    StepValidationError,
    UnsupportedIntentError,
    AssertionFailedError,
    PollTimeoutError,
    StepExecutionError,
)

__all__ = [
    # Base exceptions
    "StepEngineError",
    "ConfigurationError",
    # Parsing
    "StepParseError",
    # Resolution
    "ResolutionError",
    "ElementResolutionError",
    "OrdinalOutOfRangeError",
    "ColumnNotFoundError",
    # Execution
    "StepError",
    "StepValidationError",
    "UnsupportedIntentError",
    "AssertionFailedError",
    "PollTimeoutError",
    "StepExecutionError",
]
