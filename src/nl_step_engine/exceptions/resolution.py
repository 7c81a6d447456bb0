"""
Element resolution exceptions.
"""

from typing import List, Optional

from nl_step_engine.exceptions.base import StepEngineError


class ResolutionError(StepEngineError):
    """Base exception for element resolution errors."""
    pass


class ElementResolutionError(ResolutionError):
    """
    No resolution strategy cleared the acceptance bar.

    Raised after all resolution attempts are exhausted.
    """

    def __init__(
        self,
        message: str,
        instruction: str,
        descriptors: Optional[List[str]] = None,
        intent: str | None = None,
        attempts: int = 0,
    ):
        super().__init__(message, {
            "instruction": instruction,
            "descriptors": descriptors or [],
            "intent": intent,
            "attempts": attempts,
        })
        self.instruction = instruction
        self.descriptors = descriptors or []
        self.intent = intent
        self.attempts = attempts


class OrdinalOutOfRangeError(ResolutionError):
    """
    Requested ordinal exceeds the number of matched nodes.
    """

    def __init__(self, ordinal: int, count: int):
        super().__init__(
            f"Ordinal {ordinal} exceeds available match count {count}",
            {"ordinal": ordinal, "count": count},
        )
        self.ordinal = ordinal
        self.count = count


class ColumnNotFoundError(ResolutionError):
    """
    Table has no column matching the requested header or index.
    """

    def __init__(self, column_ref: str, headers: list):
        super().__init__(
            f"Column '{column_ref}' not found in table (headers: {', '.join(headers) or 'none'})",
            {"column_ref": column_ref, "headers": headers},
        )
        self.column_ref = column_ref
        self.headers = headers
