"""
Accessibility Matcher - Resolve an element description to exactly one node.

Strategies run in strict order; the first result at or above the confidence
threshold wins. Results below it are kept as alternatives for recovery.

    1. Accessibility tree   - score parsed ARIA snapshot nodes
    2. Semantic locators    - get_by_role / get_by_label / get_by_placeholder
    3. Text search          - get_by_text on the phrase, then single words
    4. Role search          - all nodes of an expected role, matched by text
    5. Frames               - strategies 2 and 3 inside child frames

When nothing clears the threshold after strategy 4, the best alternative is
accepted if it reaches the relaxed bar (75% of the threshold; assertions keep
the full threshold). Frames are searched only when that fails too.

Usage:
    matcher = AccessibilityMatcher(confidence_threshold=0.6)
    match = await matcher.find_element(page, step.target, step.intent)
    if match:
        await match.locator.click()
"""

import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TYPE_CHECKING

from nl_step_engine.engine.aria_snapshot import SnapshotCache, parse_snapshot, rank_nodes
from nl_step_engine.engine.disambiguation import disambiguate
from nl_step_engine.engine.fuzzy_matcher import jaro_winkler
from nl_step_engine.engine.types import (
    AccessibilityMatchScore,
    AccessibilityNode,
    AlternativeMatch,
    ElementTarget,
    MatchedElement,
    MatchMethod,
)
from nl_step_engine.engine.vocabulary import get_expected_roles
from nl_step_engine.exceptions import OrdinalOutOfRangeError

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

SELECT_ELEMENT_TYPES = {"dropdown", "select", "combobox", "listbox"}

# Role search gives up on roles with more nodes than this
MAX_ROLE_CANDIDATES = 50

# Relaxed acceptance bar for non-assertion intents
RELAXED_THRESHOLD_FACTOR = 0.75

# Ordinal picks stay within this fraction of the best node score
ORDINAL_CLUSTER_FACTOR = 0.8

Strategy = Callable[
    ["Page", ElementTarget, str, str, List[str]],
    Awaitable[Optional[MatchedElement]],
]


def select_by_ordinal(locator: "Locator", count: int, ordinal: Optional[int]) -> "Locator":
    """
    Narrow a multi-match locator by ordinal.

    Raises:
        OrdinalOutOfRangeError: ordinal beyond count
    """
    if ordinal is None or count <= 1:
        return locator.first
    if ordinal == -1:
        return locator.last
    idx = ordinal - 1
    if idx >= count:
        raise OrdinalOutOfRangeError(ordinal, count)
    return locator.nth(max(0, idx))


def _matches(count: int) -> str:
    return f" ({count} matches)" if count > 1 else ""


def _decay(count: int, single: float, floor: float) -> float:
    """Confidence for a text hit; every extra match makes it less specific."""
    return single if count == 1 else max(floor, single - count * 0.05)


def _pick_hit(hits: List[int], ordinal: Optional[int]) -> int:
    """Candidate index among text-matched hits, honoring the ordinal."""
    if ordinal is None:
        return hits[0]
    if ordinal == -1:
        return hits[-1]
    if ordinal > len(hits):
        raise OrdinalOutOfRangeError(ordinal, len(hits))
    return hits[max(0, ordinal - 1)]


async def _tag_name(locator: "Locator") -> str:
    try:
        return await locator.evaluate("el => el.tagName.toLowerCase()")
    except Exception:
        return ""


async def _attribute(locator: "Locator", name: str) -> Optional[str]:
    try:
        return await locator.get_attribute(name)
    except Exception:
        return None


class AccessibilityMatcher:
    """
    Multi-strategy element resolver.

    Args:
        confidence_threshold: Minimum confidence for immediate acceptance
        a11y_cache_ttl_ms: Lifetime of a cached accessibility snapshot
    """

    def __init__(self, confidence_threshold: float = 0.6, a11y_cache_ttl_ms: int = 500):
        self.confidence_threshold = confidence_threshold
        self._snapshots = SnapshotCache(ttl_ms=a11y_cache_ttl_ms)
        self._strategies: List[Strategy] = [
            self._match_accessibility_tree,
            self._match_semantic_locators,
            self._match_text,
            self._match_role,
        ]

    def invalidate_cache(self) -> None:
        """Forget the cached snapshot; call after anything that changes the DOM."""
        self._snapshots.invalidate()

    async def find_element(
        self,
        page: "Page",
        target: ElementTarget,
        intent: str,
        threshold: Optional[float] = None,
    ) -> Optional[MatchedElement]:
        """
        Resolve a target to one element.

        Args:
            page: Page or frame to search
            target: Element description
            intent: Step intent, used for role expectations and acceptance
            threshold: Override for the confidence threshold

        Returns:
            MatchedElement, or None when nothing is acceptable

        Raises:
            OrdinalOutOfRangeError: every strategy failed and at least one
                failed because the ordinal exceeded its match count
        """
        start = time.perf_counter()
        threshold = self.confidence_threshold if threshold is None else threshold
        search_text = target.search_text

        if not search_text and not target.element_type:
            logger.debug("No search text or element type, skipping element search")
            return None

        expected_roles = get_expected_roles(target.element_type, intent)
        logger.debug(
            f"Searching for '{search_text}' (type: {target.element_type or 'any'}, intent: {intent})"
        )

        alternatives: List[AlternativeMatch] = []
        ordinal_error: Optional[OrdinalOutOfRangeError] = None

        for i, strategy in enumerate(self._strategies):
            try:
                result = await strategy(page, target, intent, search_text, expected_roles)
            except OrdinalOutOfRangeError as e:
                logger.debug(f"{strategy.__name__} failed: {e}")
                ordinal_error = e
                continue
            except Exception as e:
                logger.debug(f"{strategy.__name__} failed: {e}")
                continue

            if result is None:
                continue
            if result.confidence >= threshold:
                if i > 0:
                    result.alternatives = list(alternatives)
                logger.debug(
                    f"{result.method.value} match in {(time.perf_counter() - start) * 1000:.0f}ms "
                    f"(confidence: {result.confidence:.2f})"
                )
                return result
            alternatives.append(result.as_alternative())

        if alternatives:
            alternatives.sort(key=lambda a: a.confidence, reverse=True)
            best = alternatives[0]
            is_assertion = intent.startswith("verify-")
            min_acceptable = threshold if is_assertion else threshold * RELAXED_THRESHOLD_FACTOR
            if best.confidence >= min_acceptable:
                logger.debug(
                    f"Using best alternative (confidence: {best.confidence:.2f}, method: {best.method.value})"
                )
                return MatchedElement(
                    locator=best.locator,
                    confidence=best.confidence,
                    method=best.method,
                    description=best.description,
                    alternatives=alternatives[1:],
                    broad_locator=best.broad_locator,
                )
            logger.debug(
                f"Best alternative confidence {best.confidence:.2f} is below minimum "
                f"{min_acceptable:.2f} (assertion={is_assertion}), rejecting"
            )

        try:
            frame_result = await self._search_frames(page, target, intent, search_text, expected_roles)
            if frame_result:
                frame_result.alternatives = alternatives
                return frame_result
        except OrdinalOutOfRangeError as e:
            ordinal_error = e
        except Exception as e:
            logger.debug(f"Frame search failed: {e}")

        logger.debug(
            f"No element found in {(time.perf_counter() - start) * 1000:.0f}ms for '{search_text}'"
        )
        if ordinal_error is not None:
            raise ordinal_error
        return None

    # ------------------------------------------------------------------
    # Strategy 1: accessibility tree
    # ------------------------------------------------------------------

    async def _match_accessibility_tree(
        self,
        page: "Page",
        target: ElementTarget,
        intent: str,
        search_text: str,
        expected_roles: List[str],
    ) -> Optional[MatchedElement]:
        snapshot = await self._snapshots.get(page)
        if not snapshot:
            return None
        nodes = parse_snapshot(snapshot)
        if not nodes:
            return None

        scores = rank_nodes(nodes, search_text, expected_roles, target)
        if not scores:
            return None

        selected = self._select_scored(scores, target.ordinal)
        if selected is None:
            return None

        locator = await self._locator_for_node(page, selected.node, search_text)
        if locator is None:
            return None

        try:
            count = await locator.count()
        except Exception:
            count = 0
        if count == 0:
            return None

        adjustment = 0.0
        if count > 1 and target.ordinal is not None:
            final = select_by_ordinal(locator, count, target.ordinal)
        elif count == 1:
            final = locator.first
        else:
            chosen = await disambiguate(page, locator, count, target)
            if chosen is not None:
                final = chosen
                adjustment = -0.05
            else:
                final = locator.first
                adjustment = -0.15
            logger.debug(
                f"Accessibility tree matched {count} elements for '{selected.node.name}', "
                f"{'disambiguated by context' if chosen is not None else 'using first'}"
            )

        return MatchedElement(
            locator=final,
            confidence=max(0.1, selected.total + adjustment),
            method=MatchMethod.ACCESSIBILITY_TREE,
            description=f'{selected.node.role}[name="{selected.node.name}"]{_matches(count)}',
            broad_locator=locator,
        )

    @staticmethod
    def _select_scored(
        scores: Sequence[AccessibilityMatchScore],
        ordinal: Optional[int],
    ) -> Optional[AccessibilityMatchScore]:
        if ordinal is None:
            return scores[0]

        cutoff = scores[0].total * ORDINAL_CLUSTER_FACTOR
        cluster = [s for s in scores if s.total >= cutoff]
        if ordinal == -1:
            return cluster[-1]
        if ordinal > len(cluster):
            logger.debug(
                f"Ordinal {ordinal} requested but only {len(cluster)} high-confidence nodes found"
            )
            return None
        return cluster[ordinal - 1]

    @staticmethod
    async def _locator_for_node(
        page: "Page",
        node: AccessibilityNode,
        search_text: str,
    ) -> Optional["Locator"]:
        try:
            if node.name:
                exact = page.get_by_role(node.role, name=node.name, exact=True)
                try:
                    exact_count = await exact.count()
                except Exception:
                    exact_count = 0
                if exact_count > 0:
                    return exact
                return page.get_by_role(node.role, name=node.name, exact=False)
            return page.get_by_role(node.role)
        except Exception:
            if search_text:
                return page.get_by_text(search_text, exact=False)
            return None

    # ------------------------------------------------------------------
    # Strategy 2: semantic locators
    # ------------------------------------------------------------------

    async def _match_semantic_locators(
        self,
        page: "Page",
        target: ElementTarget,
        intent: str,
        search_text: str,
        expected_roles: List[str],
    ) -> Optional[MatchedElement]:
        is_select = intent == "select" or (
            target.element_type is not None and target.element_type.lower() in SELECT_ELEMENT_TYPES
        )

        if is_select and search_text:
            labelled = await self._select_by_label(page, search_text)
            if labelled:
                return labelled

        for role in expected_roles:
            try:
                locator = page.get_by_role(role, name=search_text or None, exact=False)
                count = await locator.count()
            except Exception:
                continue
            if count == 0:
                continue

            adjustment = 0.0
            if count > 1 and target.ordinal is None:
                chosen = await disambiguate(page, locator, count, target)
                final = chosen if chosen is not None else locator.first
                adjustment = -0.05 if chosen is not None else -0.1
            else:
                final = select_by_ordinal(locator, count, target.ordinal)
            return MatchedElement(
                locator=final,
                confidence=0.75 + adjustment,
                method=MatchMethod.SEMANTIC_LOCATOR,
                description=f"get_by_role('{role}', name='{search_text}'){_matches(count)}",
                broad_locator=locator,
            )

        if not search_text:
            return None

        for factory, confidence, label in (
            (page.get_by_label, 0.7, "get_by_label"),
            (page.get_by_placeholder, 0.65, "get_by_placeholder"),
        ):
            try:
                locator = factory(search_text, exact=False)
                count = await locator.count()
            except Exception:
                continue
            if count > 0:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=confidence,
                    method=MatchMethod.SEMANTIC_LOCATOR,
                    description=f"{label}('{search_text}')",
                    broad_locator=locator,
                )
        return None

    @staticmethod
    async def _select_by_label(page: "Page", search_text: str) -> Optional[MatchedElement]:
        try:
            locator = page.get_by_label(search_text, exact=False)
            count = await locator.count()
        except Exception:
            return None
        if count == 0:
            return None

        for i in range(min(count, 5)):
            candidate = locator.nth(i)
            tag = await _tag_name(candidate)
            role = await _attribute(candidate, "role")
            if tag == "select" or role in ("combobox", "listbox"):
                return MatchedElement(
                    locator=candidate,
                    confidence=0.85,
                    method=MatchMethod.SEMANTIC_LOCATOR,
                    description=f"get_by_label('{search_text}') -> <{tag}>",
                    broad_locator=locator,
                )

        if count == 1:
            return MatchedElement(
                locator=locator.first,
                confidence=0.75,
                method=MatchMethod.SEMANTIC_LOCATOR,
                description=f"get_by_label('{search_text}')",
                broad_locator=locator,
            )
        return None

    # ------------------------------------------------------------------
    # Strategy 3: text search
    # ------------------------------------------------------------------

    async def _match_text(
        self,
        page: "Page",
        target: ElementTarget,
        intent: str,
        search_text: str,
        expected_roles: List[str],
    ) -> Optional[MatchedElement]:
        if not search_text:
            return None

        try:
            locator = page.get_by_text(search_text, exact=False)
            count = await locator.count()
        except Exception:
            count = 0
        if count > 0:
            return MatchedElement(
                locator=select_by_ordinal(locator, count, target.ordinal),
                confidence=_decay(count, 0.6, 0.35),
                method=MatchMethod.TEXT_SEARCH,
                description=f"get_by_text('{search_text}'){_matches(count)}",
                broad_locator=locator,
            )

        # Single words are weaker evidence than the whole phrase
        for word in target.descriptors:
            if len(word) < 3:
                continue
            try:
                locator = page.get_by_text(word, exact=False)
                count = await locator.count()
            except Exception:
                continue
            if 0 < count <= 10:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=_decay(count, 0.45, 0.25),
                    method=MatchMethod.TEXT_SEARCH,
                    description=f"get_by_text('{word}'){_matches(count)}",
                    broad_locator=locator,
                )
        return None

    # ------------------------------------------------------------------
    # Strategy 4: role search
    # ------------------------------------------------------------------

    async def _match_role(
        self,
        page: "Page",
        target: ElementTarget,
        intent: str,
        search_text: str,
        expected_roles: List[str],
    ) -> Optional[MatchedElement]:
        if not expected_roles:
            return None

        if search_text:
            labelled = await self._labelled_with_role(page, search_text, expected_roles)
            if labelled:
                return labelled

        search_lower = search_text.lower()
        for role in expected_roles:
            try:
                locator = page.get_by_role(role)
                count = await locator.count()
            except Exception:
                continue
            if not 0 < count <= MAX_ROLE_CANDIDATES:
                continue

            if search_text:
                text_hits = []
                for i in range(min(count, 10)):
                    try:
                        text = await locator.nth(i).text_content()
                    except Exception:
                        text = None
                    if text and jaro_winkler(search_lower, text.lower().strip()) > 0.7:
                        text_hits.append(i)
                if text_hits:
                    i = _pick_hit(text_hits, target.ordinal)
                    return MatchedElement(
                        locator=locator.nth(i),
                        confidence=0.55,
                        method=MatchMethod.ROLE_SEARCH,
                        description=f"get_by_role('{role}').nth({i}) text match",
                        broad_locator=locator,
                    )

                name_hits = []
                for i in range(min(count, 10)):
                    candidate = locator.nth(i)
                    name = (
                        await _attribute(candidate, "aria-label")
                        or await _attribute(candidate, "name")
                        or await _attribute(candidate, "id")
                        or ""
                    )
                    if name and jaro_winkler(search_lower, name.lower()) > 0.6:
                        name_hits.append((i, name))
                if name_hits:
                    i = _pick_hit([idx for idx, _ in name_hits], target.ordinal)
                    name = dict(name_hits)[i]
                    return MatchedElement(
                        locator=locator.nth(i),
                        confidence=0.55,
                        method=MatchMethod.ROLE_SEARCH,
                        description=f"get_by_role('{role}').nth({i}) name match '{name}'",
                        broad_locator=locator,
                    )

            if count == 1 or target.ordinal is not None:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=0.45 if count == 1 else 0.4,
                    method=MatchMethod.ROLE_SEARCH,
                    description=f"get_by_role('{role}'){_matches(count)}",
                    broad_locator=locator,
                )

            logger.debug(
                f"Role search found {count} '{role}' elements but none matched '{search_text}', "
                f"rejecting ambiguous match"
            )
            return None
        return None

    @staticmethod
    async def _labelled_with_role(
        page: "Page",
        search_text: str,
        expected_roles: List[str],
    ) -> Optional[MatchedElement]:
        try:
            locator = page.get_by_label(search_text, exact=False)
            count = await locator.count()
        except Exception:
            return None
        if count == 0:
            return None

        for i in range(min(count, 5)):
            candidate = locator.nth(i)
            role_attr = await _attribute(candidate, "role")
            tag = await _tag_name(candidate)
            for role in expected_roles:
                # <select> carries an implicit combobox/listbox role
                if (
                    role_attr == role
                    or (role == "combobox" and tag in ("select", "input"))
                    or (role == "listbox" and tag == "select")
                ):
                    return MatchedElement(
                        locator=candidate,
                        confidence=0.65,
                        method=MatchMethod.ROLE_SEARCH,
                        description=f"get_by_label('{search_text}') -> {role}",
                        broad_locator=locator,
                    )
        return None

    # ------------------------------------------------------------------
    # Strategy 5: frames
    # ------------------------------------------------------------------

    async def _search_frames(
        self,
        page: "Page",
        target: ElementTarget,
        intent: str,
        search_text: str,
        expected_roles: List[str],
    ) -> Optional[MatchedElement]:
        frames = list(getattr(page, "frames", None) or [])
        if len(frames) <= 1:
            return None

        main_frame = getattr(page, "main_frame", None)
        logger.debug(f"Searching {len(frames) - 1} frame(s) for '{search_text}'")

        for frame in frames:
            if frame is main_frame:
                continue
            if not frame.url or frame.url == "about:blank":
                continue
            prefix = f"frame[{frame.name or 'iframe'}] > "
            try:
                result = await self._match_in_frame(frame, target, search_text, expected_roles, prefix)
            except OrdinalOutOfRangeError:
                raise
            except Exception as e:
                logger.debug(f"Skipping frame {frame.url}: {e}")
                continue
            if result:
                return result
        return None

    @staticmethod
    async def _match_in_frame(
        frame,
        target: ElementTarget,
        search_text: str,
        expected_roles: List[str],
        prefix: str,
    ) -> Optional[MatchedElement]:
        for role in expected_roles:
            locator = frame.get_by_role(role, name=search_text, exact=False)
            count = await locator.count()
            if count > 0:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=0.75,
                    method=MatchMethod.SEMANTIC_LOCATOR,
                    description=f"{prefix}get_by_role('{role}', '{search_text}')",
                    broad_locator=locator,
                )

        if search_text:
            locator = frame.get_by_text(search_text, exact=False)
            count = await locator.count()
            if count > 0:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=_decay(count, 0.65, 0.4),
                    method=MatchMethod.TEXT_SEARCH,
                    description=f"{prefix}get_by_text('{search_text}'){_matches(count)}",
                    broad_locator=locator,
                )

            locator = frame.get_by_label(search_text, exact=False)
            count = await locator.count()
            if count > 0:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=0.65,
                    method=MatchMethod.SEMANTIC_LOCATOR,
                    description=f"{prefix}get_by_label('{search_text}')",
                    broad_locator=locator,
                )

        for word in target.descriptors:
            if len(word) < 3:
                continue
            locator = frame.get_by_text(word, exact=False)
            count = await locator.count()
            if 0 < count <= 10:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=_decay(count, 0.5, 0.3),
                    method=MatchMethod.TEXT_SEARCH,
                    description=f"{prefix}get_by_text('{word}')",
                    broad_locator=locator,
                )
        return None

    # ------------------------------------------------------------------
    # Table rows
    # ------------------------------------------------------------------

    async def find_in_table_row(
        self,
        page: "Page",
        target: ElementTarget,
        intent: str,
        row_index: int,
        table_ref: Optional[str] = None,
    ) -> Optional[MatchedElement]:
        """
        Resolve a target inside one data row of a table.

        Used for "Click Edit in row 3 of the Users table". The table is
        found by accessible name, then by contained text; the row is the
        1-based data row (tbody rows, falling back to ARIA rows).

        Raises:
            OrdinalOutOfRangeError: row_index beyond the table's rows
        """
        table = await self._find_table(page, table_ref)
        if table is None:
            logger.debug(f"No table found for '{table_ref or 'any'}'")
            return None

        rows = table.locator("tbody tr")
        row_count = await rows.count()
        if row_count == 0:
            rows = table.get_by_role("row")
            row_count = await rows.count()
        if row_count == 0:
            return None
        if row_index < 1 or row_index > row_count:
            raise OrdinalOutOfRangeError(row_index, row_count)

        row = rows.nth(row_index - 1)
        search_text = target.search_text
        where = f"{table_ref or 'table'} row {row_index}"

        for role in get_expected_roles(target.element_type, intent):
            locator = row.get_by_role(role, name=search_text or None, exact=False)
            count = await locator.count()
            if count > 0:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=0.8,
                    method=MatchMethod.SEMANTIC_LOCATOR,
                    description=f"{where} > get_by_role('{role}', name='{search_text}'){_matches(count)}",
                    broad_locator=locator,
                )

        if search_text:
            locator = row.get_by_text(search_text, exact=False)
            count = await locator.count()
            if count > 0:
                return MatchedElement(
                    locator=select_by_ordinal(locator, count, target.ordinal),
                    confidence=0.7,
                    method=MatchMethod.TEXT_SEARCH,
                    description=f"{where} > get_by_text('{search_text}'){_matches(count)}",
                    broad_locator=locator,
                )
        return None

    async def find_table(self, page: "Page", table_ref: Optional[str] = None) -> Optional[MatchedElement]:
        """
        Resolve the table a table step reads or sorts.

        A named table that cannot be found falls back to the page's only
        table when there is exactly one.
        """
        table = await self._find_table(page, table_ref)
        confidence = 0.8
        description = f"table '{table_ref}'" if table_ref else "locator('table').first"
        if table is None and table_ref:
            tables = page.locator("table")
            if await tables.count() == 1:
                logger.debug(f"No table named '{table_ref}', using the only table on the page")
                table = tables.first
                confidence = 0.6
                description = "locator('table') (only table)"
        if table is None:
            return None
        return MatchedElement(
            locator=table,
            confidence=confidence,
            method=MatchMethod.SEMANTIC_LOCATOR,
            description=description,
            broad_locator=table,
        )

    @staticmethod
    async def _find_table(page: "Page", table_ref: Optional[str]) -> Optional["Locator"]:
        if not table_ref:
            tables = page.locator("table")
            return tables.first if await tables.count() > 0 else None

        for candidate in (
            page.get_by_role("table", name=table_ref, exact=False),
            page.get_by_role("grid", name=table_ref, exact=False),
            page.locator("table").filter(has_text=table_ref),
        ):
            if await candidate.count() > 0:
                return candidate.first
        return None
