"""
Element Fingerprinting - Attribute snapshots for re-finding elements.

A fingerprint records ~30 attributes of an element that was matched
successfully. On a later run the stored fingerprint is compared against the
candidates on the page with a weighted longest-common-subsequence score, so
an element whose id or text drifted slightly is still found ("self-healed").

Fingerprints handle:
- Dynamic class names (CSS-in-JS hashes are dropped before comparing)
- Minor text edits (LCS ratio instead of equality)
- Layout shifts (position scored by proximity)
"""

import logging
import re
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

from nl_step_engine.engine.fuzzy_matcher import lcs_length
from nl_step_engine.engine.types import MatchMethod, MatchedElement

if TYPE_CHECKING:
    from playwright.async_api import Frame, Locator, Page

logger = logging.getLogger(__name__)


# Classes that indicate dynamic generation (ignored when comparing)
DYNAMIC_CLASS_PATTERNS = [
    r'^css-[a-zA-Z0-9]+$',        # Emotion/styled-components
    r'^sc-[a-zA-Z]+$',            # Styled-components
    r'^_[a-zA-Z0-9]{5,}$',        # CSS Modules hashes
    r'^[a-zA-Z]+__[a-zA-Z]+_[a-zA-Z0-9]+$',  # BEM with hash
    r'^jsx-\d+$',                 # Next.js styled-jsx
    r'^svelte-[a-z0-9]+$',        # Svelte
]

# Attribute -> weight in the similarity score
ATTRIBUTE_WEIGHTS: Dict[str, float] = {
    "text_content": 1.0,
    "inner_text": 0.95,
    "aria_label": 0.9,
    "id": 0.85,
    "name": 0.8,
    "placeholder": 0.75,
    "title": 0.7,
    "alt": 0.7,
    "aria_role": 0.65,
    "class_name": 0.5,
    "tag_name": 0.5,
    "type": 0.45,
    "href": 0.4,
    "parent_tag": 0.3,
    "parent_id": 0.3,
    "dom_path": 0.25,
    "x": 0.1,
    "y": 0.1,
    "width": 0.1,
    "height": 0.1,
}

GEOMETRY_ATTRIBUTES = ("x", "y", "width", "height")

INTERACTIVE_TAGS = ("input", "button", "a", "select", "textarea")
INTERACTIVE_SELECTOR = "input, button, a, select, textarea, [role]"

MAX_CANDIDATES_PER_SELECTOR = 50
ENOUGH_CANDIDATES = 20
SELF_HEAL_CONFIDENCE_FACTOR = 0.8


def sanitize_classname(class_string: str) -> str:
    """
    Drop dynamically generated classes and sort the rest.

    Args:
        class_string: Space-separated class names

    Returns:
        Filtered, sorted class string
    """
    if not class_string:
        return ""
    stable = [
        cls for cls in class_string.split()
        if len(cls) <= 50 and not any(re.match(p, cls) for p in DYNAMIC_CLASS_PATTERNS)
    ]
    return " ".join(sorted(stable))


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass
class ElementFingerprint:
    """
    Attribute snapshot of a matched element.

    String attributes default to "" and geometry to 0 so that a fingerprint
    read back from JSON compares the same way as a freshly captured one.
    """
    id: str = ""
    name: str = ""
    class_name: str = ""
    tag_name: str = ""
    aria_label: str = ""
    aria_role: str = ""
    aria_described_by: str = ""
    title: str = ""
    alt: str = ""
    placeholder: str = ""
    text_content: str = ""
    inner_text: str = ""
    value: str = ""
    href: str = ""
    type: str = ""
    for_attr: str = ""
    data_attributes: Dict[str, str] = field(default_factory=dict)
    parent_tag: str = ""
    parent_id: str = ""
    parent_class: str = ""
    sibling_text: str = ""
    dom_path: str = ""
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    # Metadata
    page_url: str = ""
    instruction: str = ""
    match_method: str = ""
    match_confidence: float = 0.0
    captured_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """camelCase dict for the JSON cache file."""
        data = {_camel(k): v for k, v in asdict(self).items()}
        data["for"] = data.pop("forAttr")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementFingerprint":
        """Build from a camelCase (or snake_case) dict; unknown keys are ignored."""
        values = {}
        for f in fields(cls):
            for key in (_camel(f.name), f.name, "for" if f.name == "for_attr" else None):
                if key is not None and key in data and data[key] is not None:
                    values[f.name] = data[key]
                    break
        return cls(**values)

    @classmethod
    def from_capture(cls, data: Dict[str, Any], **metadata: Any) -> "ElementFingerprint":
        """Build from the capture script result plus metadata."""
        fp = cls.from_dict(data)
        for key, value in metadata.items():
            setattr(fp, key, value)
        return fp


# One evaluate() per element; returns the raw attribute map
CAPTURE_FINGERPRINT_JS = r'''(el) => {
    const rect = el.getBoundingClientRect();

    const domPath = [];
    let current = el;
    while (current && current !== document.documentElement) {
        const id = current.id ? `#${current.id}` : '';
        domPath.unshift(`${current.tagName.toLowerCase()}${id}`);
        current = current.parentElement;
    }

    const dataAttributes = {};
    let dataCount = 0;
    for (const attr of Array.from(el.attributes)) {
        if (attr.name.startsWith('data-') && dataCount < 10) {
            dataAttributes[attr.name] = attr.value.substring(0, 100);
            dataCount++;
        }
    }

    const parent = el.parentElement;
    let siblingText = '';
    if (parent) {
        siblingText = Array.from(parent.children)
            .filter(s => s !== el)
            .map(s => (s.innerText || '').substring(0, 50))
            .filter(t => t.length > 0)
            .slice(0, 3)
            .join(' | ');
    }

    const className = typeof el.className === 'string' ? el.className : '';
    const parentClass = parent && typeof parent.className === 'string' ? parent.className : '';

    return {
        id: el.id || '',
        name: el.getAttribute('name') || '',
        className: className,
        tagName: el.tagName.toLowerCase(),
        ariaLabel: el.getAttribute('aria-label') || '',
        ariaRole: el.getAttribute('role') || '',
        ariaDescribedBy: el.getAttribute('aria-describedby') || '',
        title: el.getAttribute('title') || '',
        alt: el.getAttribute('alt') || '',
        placeholder: el.getAttribute('placeholder') || '',
        textContent: (el.textContent || '').trim().substring(0, 200),
        innerText: (el.innerText || '').trim().substring(0, 200),
        value: el.value || '',
        href: el.getAttribute('href') || '',
        type: el.getAttribute('type') || '',
        for: el.getAttribute('for') || '',
        dataAttributes: dataAttributes,
        parentTag: parent ? parent.tagName.toLowerCase() : '',
        parentId: parent ? parent.id || '' : '',
        parentClass: parentClass,
        siblingText: siblingText,
        domPath: domPath.join(' > '),
        x: Math.round(rect.x),
        y: Math.round(rect.y),
        width: Math.round(rect.width),
        height: Math.round(rect.height),
    };
}'''


def _attribute_text(fp: ElementFingerprint, attr: str) -> str:
    value = getattr(fp, attr, "")
    if attr == "class_name":
        value = sanitize_classname(value or "")
    return str(value or "").lower().strip()


def compute_weighted_lcs(stored: ElementFingerprint, candidate: ElementFingerprint) -> float:
    """
    Similarity of two fingerprints in [0, 1].

    Attributes empty on both sides are skipped; empty on one side count
    against the score. Geometry is scored by proximity, strings by LCS
    length over the longer length.
    """
    total_weight = 0.0
    match_score = 0.0

    for attr, weight in ATTRIBUTE_WEIGHTS.items():
        stored_val = _attribute_text(stored, attr)
        candidate_val = _attribute_text(candidate, attr)

        if not stored_val and not candidate_val:
            continue
        total_weight += weight
        if not stored_val or not candidate_val:
            continue

        if attr in GEOMETRY_ATTRIBUTES:
            try:
                a = float(stored_val)
                b = float(candidate_val)
            except ValueError:
                continue
            max_val = max(abs(a), abs(b), 1)
            match_score += weight * max(0.0, 1 - abs(a - b) / max_val)
            continue

        if stored_val == candidate_val:
            match_score += weight
        else:
            max_len = max(len(stored_val), len(candidate_val))
            match_score += weight * (lcs_length(stored_val, candidate_val) / max_len)

    return match_score / total_weight if total_weight > 0 else 0.0


def generate_key(page_url: str, instruction: str) -> str:
    """
    Cache key for an instruction on a page.

    Query string and fragment are dropped so the key survives per-visit
    parameters.
    """
    parts = urlsplit(page_url or "")
    url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return f"{url}::{instruction.lower().strip()}"


async def capture(
    locator: "Locator",
    page_url: str,
    instruction: str,
    match_method: str,
    match_confidence: float,
) -> Optional[ElementFingerprint]:
    """
    Snapshot a matched element.

    Returns:
        ElementFingerprint, or None if the element could not be evaluated
    """
    try:
        data = await locator.evaluate(CAPTURE_FINGERPRINT_JS)
    except Exception as e:
        logger.debug(f"Failed to capture fingerprint: {e}")
        return None

    return ElementFingerprint.from_capture(
        data or {},
        page_url=page_url,
        instruction=instruction,
        match_method=match_method,
        match_confidence=match_confidence,
        captured_at=time.time() * 1000,
    )


async def _collect_candidates(
    page: "Page | Frame",
    reference: ElementFingerprint,
) -> List[Tuple["Locator", ElementFingerprint]]:
    selectors = [reference.tag_name or "*"]
    if reference.tag_name not in INTERACTIVE_TAGS:
        selectors.append(INTERACTIVE_SELECTOR)

    candidates: List[Tuple["Locator", ElementFingerprint]] = []
    for selector in selectors:
        try:
            locator = page.locator(selector)
            count = await locator.count()
        except Exception as e:
            logger.debug(f"Candidate selector '{selector}' failed: {e}")
            continue

        for i in range(min(count, MAX_CANDIDATES_PER_SELECTOR)):
            element = locator.nth(i)
            try:
                data = await element.evaluate(CAPTURE_FINGERPRINT_JS)
            except Exception as e:
                # Element went stale between count() and evaluate()
                logger.debug(f"Skipping candidate {selector}[{i}]: {e}")
                continue
            candidates.append((element, ElementFingerprint.from_dict(data or {})))

        if len(candidates) >= ENOUGH_CANDIDATES:
            break

    return candidates


async def self_heal(
    page: "Page | Frame",
    stored: ElementFingerprint,
    min_score: float = 0.5,
) -> Optional[MatchedElement]:
    """
    Find the element on the page most similar to a stored fingerprint.

    Args:
        page: Page or frame to search
        stored: Fingerprint recorded on an earlier success
        min_score: Lowest similarity accepted

    Returns:
        MatchedElement with confidence score * 0.8, or None
    """
    try:
        candidates = await _collect_candidates(page, stored)
    except Exception as e:
        logger.debug(f"Self-healing failed: {e}")
        return None

    if not candidates:
        logger.debug("No candidate elements found for self-healing")
        return None

    best_score = 0.0
    best: Optional[Tuple["Locator", ElementFingerprint]] = None
    for locator, fp in candidates:
        score = compute_weighted_lcs(stored, fp)
        if score > best_score:
            best_score = score
            best = (locator, fp)

    if best is None or best_score < min_score:
        logger.debug(f"Best self-heal score {best_score:.2f} below threshold {min_score}")
        return None

    locator, fp = best
    logger.info(
        f"Self-healed element (score: {best_score:.2f}, tag: {fp.tag_name}, "
        f"text: '{fp.text_content[:30]}')"
    )
    return MatchedElement(
        locator=locator,
        confidence=best_score * SELF_HEAL_CONFIDENCE_FACTOR,
        method=MatchMethod.SELF_HEALED,
        description=f"Self-healed via fingerprint (score: {best_score:.2f})",
    )
