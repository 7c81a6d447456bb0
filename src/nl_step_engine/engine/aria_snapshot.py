"""
ARIA Snapshot - Fetch, parse and score Playwright accessibility snapshots.

Playwright renders the accessibility tree of a subtree as indented YAML-like
text:

    - heading "Dashboard" [level=1]
    - navigation "Main Menu":
      - link "Home"
      - link "Settings"
    - button "Submit"

Each "- role" line becomes an AccessibilityNode. Nesting is kept only as a
level number; matching works on the flat list.
"""

import logging
import re
import time
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from nl_step_engine.engine.fuzzy_matcher import jaro_winkler
from nl_step_engine.engine.types import AccessibilityMatchScore, AccessibilityNode, ElementTarget
from nl_step_engine.engine.vocabulary import INTERACTIVE_ROLES

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

SNAPSHOT_TIMEOUT_MS = 5000

# Nodes at or below this score are not candidates
MIN_NODE_SCORE = 0.3

_ROLE_PATTERN = re.compile(r"^-\s+(\w+)\s*")
_NAME_END_PATTERNS = [
    re.compile(r"\"\s*\["),
    re.compile(r"\"\s*:?\s*$"),
    re.compile(r"\"\s+"),
]
_PROPS_PATTERN = re.compile(r"\[([^\]]*)\]")
_TRAILING_COLON = re.compile(r":?\s*$")


class SnapshotCache:
    """
    Per-URL snapshot cache with a short TTL.

    A snapshot is reused only for the same URL inside the TTL window, so
    back-to-back resolutions on an unchanged page share one tree walk.

    Example:
        >>> cache = SnapshotCache(ttl_ms=500)
        >>> text = await cache.get(page)
    """

    def __init__(self, ttl_ms: int = 500):
        self.ttl_ms = ttl_ms
        self._url: Optional[str] = None
        self._snapshot: Optional[str] = None
        self._timestamp = 0.0

    async def get(self, page: "Page") -> Optional[str]:
        """Snapshot of the page body, or None when the driver call fails."""
        try:
            url = page.url
            now = time.monotonic() * 1000
            if (
                self._snapshot is not None
                and self._url == url
                and now - self._timestamp < self.ttl_ms
            ):
                return self._snapshot

            snapshot = await page.locator("body").aria_snapshot(timeout=SNAPSHOT_TIMEOUT_MS)
            self._url = url
            self._snapshot = snapshot
            self._timestamp = now
            return snapshot
        except Exception as e:
            logger.debug(f"aria_snapshot failed: {e}")
            return None

    def invalidate(self) -> None:
        self._url = None
        self._snapshot = None
        self._timestamp = 0.0


def parse_properties(props: Optional[str]) -> Dict[str, str]:
    """Parse "level=1, checked" into {"level": "1", "checked": "true"}."""
    result: Dict[str, str] = {}
    if not props:
        return result
    for pair in props.split(","):
        parts = [p.strip() for p in pair.split("=")]
        key = parts[0]
        if key:
            value = parts[1] if len(parts) > 1 else ""
            result[key] = value or "true"
    return result


def parse_line(line: str, line_index: int = 0) -> Optional[AccessibilityNode]:
    """Parse one snapshot line; lines not starting with '-' give None."""
    trimmed = line.strip()
    if not trimmed.startswith("-"):
        return None

    indent = len(line) - len(line.lstrip())
    level = indent // 2

    role_match = _ROLE_PATTERN.match(trimmed)
    if not role_match:
        return None

    role = role_match.group(1)
    remaining = trimmed[role_match.end():]
    name = ""

    if remaining.startswith('"'):
        body = remaining[1:]
        end_idx = -1
        for pattern in _NAME_END_PATTERNS:
            found = pattern.search(body)
            if found and (end_idx == -1 or found.start() < end_idx):
                end_idx = found.start()
        if end_idx >= 0:
            name = remaining[1:end_idx + 1]
            remaining = remaining[end_idx + 2:].strip()
        else:
            last_quote = remaining.rfind('"')
            if last_quote > 0:
                name = remaining[1:last_quote]
                remaining = remaining[last_quote + 1:].strip()

    properties: Dict[str, str] = {}
    props_match = _PROPS_PATTERN.search(remaining)
    if props_match:
        properties = parse_properties(props_match.group(1))

    remaining = _TRAILING_COLON.sub("", _PROPS_PATTERN.sub("", remaining, count=1)).strip()

    # Text nodes carry their content after the role: "- text: Welcome back"
    if not name and remaining:
        name = remaining.lstrip(":").strip().strip('"')
        if name.endswith(":"):
            name = name[:-1]

    return AccessibilityNode(
        role=role,
        name=name,
        level=level,
        properties=properties,
        raw_line=line,
        line_index=line_index,
    )


def parse_snapshot(snapshot: str) -> List[AccessibilityNode]:
    """Parse a whole snapshot into nodes, skipping blank and non-node lines."""
    lines = [line for line in snapshot.split("\n") if line.strip()]
    nodes = []
    for i, line in enumerate(lines):
        node = parse_line(line, i)
        if node:
            nodes.append(node)
    return nodes


def score_node(
    node: AccessibilityNode,
    search_text: str,
    expected_roles: Sequence[str],
    target: ElementTarget,
) -> AccessibilityMatchScore:
    """
    Score a node against a target.

    Weights: role 0.3, name 0.4, label 0.2, position 0.1.
    """
    if not expected_roles:
        role_score = 0.6 if node.role in INTERACTIVE_ROLES else 0.3
    elif node.role in expected_roles:
        role_score = 1.0
    else:
        role_score = 0.1

    name_score = 0.0
    search_lower = search_text.lower()
    name_lower = node.name.lower()
    if search_text and node.name:
        name_score = jaro_winkler(search_lower, name_lower)
        if search_lower in name_lower or name_lower in search_lower:
            name_score = max(name_score, 0.85)
        if name_lower == search_lower:
            name_score = 1.0
    elif not search_text and expected_roles:
        name_score = 0.5

    label_score = 0.0
    if target.descriptors and node.name:
        matched = sum(1 for d in target.descriptors if d.lower() in name_lower)
        label_score = matched / len(target.descriptors)

    position_score = 0.7 if target.ordinal is not None else 0.5

    total = role_score * 0.3 + name_score * 0.4 + label_score * 0.2 + position_score * 0.1
    return AccessibilityMatchScore(
        node=node,
        total=min(total, 1.0),
        breakdown={
            "role": role_score,
            "name": name_score,
            "label": label_score,
            "position": position_score,
        },
    )


def rank_nodes(
    nodes: Sequence[AccessibilityNode],
    search_text: str,
    expected_roles: Sequence[str],
    target: ElementTarget,
) -> List[AccessibilityMatchScore]:
    """Score every node, keep those above MIN_NODE_SCORE, best first."""
    scores = [score_node(node, search_text, expected_roles, target) for node in nodes]
    kept = [s for s in scores if s.total > MIN_NODE_SCORE]
    kept.sort(key=lambda s: s.total, reverse=True)
    return kept
