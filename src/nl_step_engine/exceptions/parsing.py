"""
Parsing-related exceptions.
"""

from nl_step_engine.exceptions.base import StepEngineError


class StepParseError(StepEngineError):
    """
    Instruction could not be interpreted.

    Raised when neither a grammar rule nor the keyword fallback recognizes
    the instruction. Never retried.
    """

    def __init__(self, message: str, instruction: str):
        super().__init__(message, {"instruction": instruction})
        self.instruction = instruction
