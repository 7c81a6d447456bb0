"""
Step Types - Data model shared by the parser, matcher and executor.

A ParsedStep is produced once per instruction and treated as read-only by
everything downstream. MatchedElement is produced fresh per resolution.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Pattern, TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Frame, Locator, Page


class StepCategory(Enum):
    """Broad class of a step; decides the return contract."""
    ACTION = "action"
    ASSERTION = "assertion"
    QUERY = "query"


class MatchMethod(Enum):
    """Which resolution strategy produced a match."""
    ACCESSIBILITY_TREE = "accessibility-tree"
    SEMANTIC_LOCATOR = "semantic-locator"
    TEXT_SEARCH = "text-search"
    ROLE_SEARCH = "role-search"
    SELF_HEALED = "self-healed"


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score to [0, 1]."""
    return max(0.0, min(1.0, value))


@dataclass
class StepModifiers:
    """Flags that alter how an intent is executed."""
    negated: bool = False
    exact: bool = False
    force: bool = False
    case_insensitive: bool = False


@dataclass
class ElementTarget:
    """
    Description of the element a step acts on.

    Attributes:
        element_type: Canonical element type ("button", "input", ...)
        descriptors: Ordered words describing the element
        ordinal: 1-based position among matches, -1 for "last"
        position: Spatial cue (top, bottom, left, right, upper, lower)
        relative_to: Text of a reference element ("near the Users table")
        relation: How relative_to relates (near, inside, after, before)
        raw_text: Target text as written after quote resolution
    """
    element_type: Optional[str] = None
    descriptors: List[str] = field(default_factory=list)
    ordinal: Optional[int] = None
    position: Optional[str] = None
    relative_to: Optional[str] = None
    relation: Optional[str] = None
    raw_text: str = ""

    @property
    def search_text(self) -> str:
        """Descriptors joined into the phrase used for text lookups."""
        return " ".join(d for d in self.descriptors if d).strip()


@dataclass
class ParsedStep:
    """
    Structured interpretation of one instruction.

    Attributes:
        category: action, assertion or query
        intent: Intent name (click, fill, verify-text, get-count, ...)
        target: Element description
        parameters: Open bag (value, expected_value, url, key, ...)
        raw_text: Instruction as given
        confidence: Parse confidence in [0, 1]
        modifiers: Negation and matching flags
        matched_rule_id: Grammar rule id, None for the keyword fallback
    """
    category: StepCategory
    intent: str
    target: ElementTarget
    parameters: Dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""
    confidence: float = 0.0
    modifiers: StepModifiers = field(default_factory=StepModifiers)
    matched_rule_id: Optional[str] = None

    @property
    def value(self) -> Optional[str]:
        return self.parameters.get("value")

    @property
    def expected_value(self) -> Optional[str]:
        return self.parameters.get("expected_value")

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view, used by the CLI."""
        return {
            "category": self.category.value,
            "intent": self.intent,
            "target": {
                "element_type": self.target.element_type,
                "descriptors": list(self.target.descriptors),
                "ordinal": self.target.ordinal,
                "position": self.target.position,
                "relative_to": self.target.relative_to,
                "relation": self.target.relation,
                "raw_text": self.target.raw_text,
            },
            "parameters": dict(self.parameters),
            "raw_text": self.raw_text,
            "confidence": round(self.confidence, 3),
            "modifiers": {
                "negated": self.modifiers.negated,
                "exact": self.modifiers.exact,
                "force": self.modifiers.force,
                "case_insensitive": self.modifiers.case_insensitive,
            },
            "matched_rule_id": self.matched_rule_id,
        }


@dataclass
class GrammarExtraction:
    """What a grammar rule pulled out of an instruction."""
    target_text: str = ""
    element_type: Optional[str] = None
    value: Optional[str] = None
    expected_value: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    modifiers: StepModifiers = field(default_factory=StepModifiers)


# extract(match, quoted_strings) -> GrammarExtraction
Extractor = Callable[[Any, List[str]], GrammarExtraction]


@dataclass
class GrammarRule:
    """
    One recognized phrasing of an instruction.

    Lower priority values are tried first.
    """
    id: str
    pattern: Pattern[str]
    category: StepCategory
    intent: str
    extract: Extractor
    priority: int
    examples: List[str] = field(default_factory=list)


@dataclass
class AlternativeMatch:
    """A lower-confidence candidate kept for recovery."""
    locator: "Locator"
    confidence: float
    method: MatchMethod
    description: str
    broad_locator: Optional["Locator"] = None


@dataclass
class MatchedElement:
    """
    A resolved element.

    Attributes:
        locator: Handle narrowed to exactly one node
        confidence: Match confidence in [0, 1]
        method: Strategy that produced the match
        description: Human-readable locator description
        alternatives: Other candidates, best first
        broad_locator: Handle before narrowing, used for counts
    """
    locator: "Locator"
    confidence: float
    method: MatchMethod
    description: str
    alternatives: List[AlternativeMatch] = field(default_factory=list)
    broad_locator: Optional["Locator"] = None

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)

    def as_alternative(self) -> AlternativeMatch:
        return AlternativeMatch(
            locator=self.locator,
            confidence=self.confidence,
            method=self.method,
            description=self.description,
            broad_locator=self.broad_locator,
        )


@dataclass
class AccessibilityNode:
    """One line of an ARIA snapshot."""
    role: str
    name: str
    level: int
    properties: Dict[str, str] = field(default_factory=dict)
    raw_line: str = ""
    line_index: int = 0


@dataclass
class AccessibilityMatchScore:
    """Weighted score of a node against a target."""
    node: AccessibilityNode
    total: float
    breakdown: Dict[str, float] = field(default_factory=dict)


@dataclass
class ActionResult:
    """
    Outcome of executing one step.

    active_page / active_frame are set by intents that move the browsing
    scope (tab and frame switches). element is the element the step ran on
    last, so a recovered step reports the alternative that worked.
    """
    success: bool
    return_value: Any = None
    duration_ms: float = 0.0
    method: Optional[str] = None
    error: Optional[str] = None
    active_page: Optional["Page"] = None
    active_frame: Optional["Frame"] = None
    element: Optional[MatchedElement] = None
