"""
Disambiguation - Pick one node out of a multi-match locator using context cues.

Three cues are tried in order:
    1. position: "the top Save button" -> extremum of bounding boxes
    2. relative_to: "Edit near the Users table" -> nearest to the reference text
    3. section text: "Edit button in Users" -> enclosing section mentions a descriptor
"""

import logging
import math
from typing import List, Optional, Tuple, TYPE_CHECKING

from nl_step_engine.engine.types import ElementTarget

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 10
BOX_TIMEOUT_MS = 2000

# Walk up at most 5 ancestors looking for a labelled container
SECTION_CONTEXT_JS = """
(el) => {
    const containers = ['section', 'article', 'form', 'table', 'div', 'fieldset', 'nav', 'header', 'footer', 'aside'];
    let parent = el.parentElement;
    for (let depth = 0; parent && depth < 5; depth++) {
        if (containers.includes(parent.tagName.toLowerCase())) {
            const ariaLabel = parent.getAttribute('aria-label');
            if (ariaLabel) return ariaLabel;
            const heading = parent.querySelector('h1,h2,h3,h4,h5,h6,legend,caption');
            if (heading) return (heading.textContent || '').trim();
            return (parent.textContent || '').trim().substring(0, 200);
        }
        parent = parent.parentElement;
    }
    return '';
}
"""


async def _bounding_box(locator: "Locator") -> Optional[dict]:
    try:
        return await locator.bounding_box(timeout=BOX_TIMEOUT_MS)
    except Exception:
        return None


async def _candidate_boxes(locator: "Locator", count: int) -> List[Tuple[int, dict]]:
    boxes = []
    for i in range(min(count, MAX_CANDIDATES)):
        box = await _bounding_box(locator.nth(i))
        if box:
            boxes.append((i, box))
    return boxes


async def by_position(locator: "Locator", count: int, position: str) -> Optional["Locator"]:
    """Candidate at the requested edge; needs at least two measurable boxes."""
    boxes = await _candidate_boxes(locator, count)
    if len(boxes) < 2:
        return None

    if position in ("top", "upper"):
        idx, _ = min(boxes, key=lambda b: b[1]["y"])
    elif position in ("bottom", "lower"):
        idx, _ = max(boxes, key=lambda b: b[1]["y"])
    elif position == "left":
        idx, _ = min(boxes, key=lambda b: b[1]["x"])
    elif position == "right":
        idx, _ = max(boxes, key=lambda b: b[1]["x"])
    else:
        return None
    return locator.nth(idx)


async def by_proximity(
    page: "Page",
    locator: "Locator",
    count: int,
    reference: str,
) -> Optional["Locator"]:
    """Candidate closest to the first element showing the reference text."""
    ref_locator = page.get_by_text(reference, exact=False)
    if await ref_locator.count() == 0:
        return None
    ref_box = await _bounding_box(ref_locator.first)
    if not ref_box:
        return None

    best_idx = None
    best_dist = math.inf
    for idx, box in await _candidate_boxes(locator, count):
        dist = math.hypot(box["x"] - ref_box["x"], box["y"] - ref_box["y"])
        if dist < best_dist:
            best_dist = dist
            best_idx = idx

    if best_idx is None:
        return None
    logger.debug(f"Disambiguated by proximity to '{reference}': element {best_idx} ({best_dist:.0f}px)")
    return locator.nth(best_idx)


async def by_section_text(locator: "Locator", count: int, descriptors: List[str]) -> Optional["Locator"]:
    """First candidate whose enclosing section mentions a descriptor."""
    words = [d.lower() for d in descriptors if len(d) >= 3]
    if not words:
        return None

    for i in range(min(count, MAX_CANDIDATES)):
        try:
            context = await locator.nth(i).evaluate(SECTION_CONTEXT_JS)
        except Exception:
            continue
        if not context:
            continue
        context_lower = context.lower()
        if any(word in context_lower for word in words):
            logger.debug(f"Disambiguated by section context: element {i} in '{context[:80]}'")
            return locator.nth(i)
    return None


async def disambiguate(
    page: "Page",
    locator: "Locator",
    count: int,
    target: ElementTarget,
) -> Optional["Locator"]:
    """
    Narrow a multi-match locator with the target's context cues.

    Args:
        page: Page (or frame) used to find reference elements
        locator: Locator matching `count` nodes
        count: Number of nodes matched
        target: Target carrying position, relative_to and descriptors

    Returns:
        Locator for one node, or None when no cue decides
    """
    if target.position:
        try:
            chosen = await by_position(locator, count, target.position)
            if chosen is not None:
                return chosen
        except Exception as e:
            logger.debug(f"Position disambiguation failed: {e}")

    if target.relative_to:
        try:
            chosen = await by_proximity(page, locator, count, target.relative_to)
            if chosen is not None:
                return chosen
        except Exception as e:
            logger.debug(f"Proximity disambiguation failed: {e}")

    if len(target.descriptors) > 1:
        try:
            chosen = await by_section_text(locator, count, target.descriptors)
            if chosen is not None:
                return chosen
        except Exception as e:
            logger.debug(f"Section disambiguation failed: {e}")

    return None
