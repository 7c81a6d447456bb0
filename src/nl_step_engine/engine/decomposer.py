"""
Instruction Decomposer - Split compound instructions into atomic ones.

Recognizes, in order:
    - conditionals: "If the Cookie banner is visible, click Accept"
    - loops: "Repeat 3 times: click Next", "Click Next 3 times"
    - sequences: "Click Login and then verify the Dashboard heading is visible"

Quoted strings are protected while splitting, so "Type 'salt and pepper' in
the Search field" stays one instruction.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class SubInstructionType(Enum):
    """How a sub-instruction is executed."""
    ACTION = "action"
    CONDITIONAL = "conditional"
    LOOP = "loop"


@dataclass
class Condition:
    """
    Guard for a conditional sub-instruction.

    Attributes:
        element: Element description to test
        check: visible, exists, enabled or checked
        negate: Run the action when the check is False
    """
    element: str
    check: str
    negate: bool = False


@dataclass
class SubInstruction:
    """One atomic instruction produced by decomposition."""
    text: str
    type: SubInstructionType = SubInstructionType.ACTION
    condition: Optional[Condition] = None
    loop_count: Optional[int] = None


@dataclass
class DecomposedInstruction:
    """Result of decompose()."""
    steps: List[SubInstruction] = field(default_factory=list)
    was_decomposed: bool = False
    original: str = ""


ACTION_VERB_PATTERN = re.compile(
    r"^(click|tap|press|type|enter|fill|input|write|select|choose|pick|check|uncheck|"
    r"toggle|mark|hover|scroll|navigate|go|open|visit|browse|verify|assert|confirm|"
    r"validate|ensure|wait|drag|drop|upload|download|clear|close|switch|expand|collapse|"
    r"sort|get|read|capture|set|accept|dismiss|handle)\b",
    re.IGNORECASE,
)

CONJUNCTION_PATTERNS = [
    re.compile(r"\s+and\s+then\s+", re.IGNORECASE),
    re.compile(r"\s+then\s+", re.IGNORECASE),
    re.compile(r"\s+after\s+(?:that|which)\s+", re.IGNORECASE),
    re.compile(r"\s+followed\s+by\s+", re.IGNORECASE),
]

_AND_PATTERN = re.compile(r"\s+and\s+", re.IGNORECASE)

_CONDITIONAL_PATTERN = re.compile(
    r"^(?:if|when|unless)\s+(?:the\s+)?(.+?)\s+(?:is\s+)?"
    r"(visible|displayed|shown|exists?|present|enabled|disabled|checked|unchecked)"
    r"(?:\s*,\s*|\s+then\s+)(.+)$",
    re.IGNORECASE,
)

_REPEAT_PATTERN = re.compile(r"^repeat\s+(\d+)\s+times?\s*[:\-]\s*(.+)$", re.IGNORECASE)
_TIMES_PATTERN = re.compile(r"^(.+?)\s+(\d+)\s+times?$", re.IGNORECASE)

_QUOTED_PATTERN = re.compile(r"'[^']*'|\"[^\"]*\"")
_PROTECTED_PATTERN = re.compile(r"__PROTECTED_(\d+)__")

# condition word -> (check, negate)
_CONDITION_CHECKS = {
    "visible": ("visible", False),
    "displayed": ("visible", False),
    "shown": ("visible", False),
    "exist": ("exists", False),
    "exists": ("exists", False),
    "present": ("exists", False),
    "enabled": ("enabled", False),
    "disabled": ("enabled", True),
    "checked": ("checked", False),
    "unchecked": ("checked", True),
}

MAX_LOOP_COUNT = 100


def looks_like_instruction(text: str) -> bool:
    """True when text starts with a known action verb."""
    return bool(ACTION_VERB_PATTERN.match(text.strip()))


class InstructionDecomposer:
    """
    Rule-based splitter for compound instructions.

    Example:
        >>> result = InstructionDecomposer().decompose("Click A and type 'x' in B")
        >>> [s.text for s in result.steps]
        ['Click A', "type 'x' in B"]
    """

    def decompose(self, instruction: str) -> DecomposedInstruction:
        trimmed = instruction.strip()

        conditional = self._try_conditional(trimmed)
        if conditional:
            return DecomposedInstruction(steps=[conditional], was_decomposed=True, original=trimmed)

        loop = self._try_loop(trimmed)
        if loop:
            return DecomposedInstruction(steps=[loop], was_decomposed=True, original=trimmed)

        parts = self._try_split_conjunction(trimmed)
        if parts and len(parts) > 1:
            logger.debug(f"Decomposed '{trimmed}' into {len(parts)} steps")
            return DecomposedInstruction(
                steps=[SubInstruction(text=p) for p in parts],
                was_decomposed=True,
                original=trimmed,
            )

        return DecomposedInstruction(
            steps=[SubInstruction(text=trimmed)],
            was_decomposed=False,
            original=trimmed,
        )

    def _try_conditional(self, instruction: str) -> Optional[SubInstruction]:
        match = _CONDITIONAL_PATTERN.match(instruction)
        if not match:
            return None

        element = match.group(1).strip()
        check, negate = _CONDITION_CHECKS[match.group(2).lower()]
        action = match.group(3).strip()

        if instruction.lower().startswith("unless"):
            negate = not negate

        if not looks_like_instruction(action):
            return None

        return SubInstruction(
            text=action,
            type=SubInstructionType.CONDITIONAL,
            condition=Condition(element=element, check=check, negate=negate),
        )

    def _try_loop(self, instruction: str) -> Optional[SubInstruction]:
        for pattern, count_group, action_group in (
            (_REPEAT_PATTERN, 1, 2),
            (_TIMES_PATTERN, 2, 1),
        ):
            match = pattern.match(instruction)
            if not match:
                continue
            count = int(match.group(count_group))
            action = match.group(action_group).strip()
            if 0 < count <= MAX_LOOP_COUNT and looks_like_instruction(action):
                return SubInstruction(text=action, type=SubInstructionType.LOOP, loop_count=count)
        return None

    def _try_split_conjunction(self, instruction: str) -> Optional[List[str]]:
        protected: List[str] = []

        def _protect(match: "re.Match[str]") -> str:
            protected.append(match.group(0))
            return f"__PROTECTED_{len(protected) - 1}__"

        text = _QUOTED_PATTERN.sub(_protect, instruction)

        for pattern in CONJUNCTION_PATTERNS:
            parts = pattern.split(text)
            if len(parts) < 2:
                continue
            restored = [p for p in (self._restore(part.strip(), protected) for part in parts) if p]
            if all(looks_like_instruction(p) for p in restored):
                return restored

        parts = _AND_PATTERN.split(text)
        if len(parts) == 2:
            restored = [p for p in (self._restore(part.strip(), protected) for part in parts) if p]
            if len(restored) == 2 and all(looks_like_instruction(p) for p in restored):
                return restored

        return None

    @staticmethod
    def _restore(text: str, protected: List[str]) -> str:
        def _sub(match: "re.Match[str]") -> str:
            idx = int(match.group(1))
            return protected[idx] if idx < len(protected) else ""
        return _PROTECTED_PATTERN.sub(_sub, text)


_default_decomposer = InstructionDecomposer()


def decompose(instruction: str) -> DecomposedInstruction:
    """Decompose with a shared stateless decomposer."""
    return _default_decomposer.decompose(instruction)
