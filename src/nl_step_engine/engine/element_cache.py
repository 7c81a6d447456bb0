"""
Element Cache - Persist successful element matches across runs.

Stores one fingerprint per (page, instruction) key plus per-page match
statistics. Entries expire after a TTL measured from last use and are
evicted once they fail more often than they succeed.

Writes are debounced: every change schedules a single save a couple of
seconds later, and flush() writes immediately at teardown.

Usage:
    cache = ElementCache(".ai-step-cache")
    cache.set(key, fingerprint, "accessibility-tree", "button[name=\"Login\"]", 0.92)
    entry = cache.get(key)
    cache.flush()
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from nl_step_engine.engine.fingerprint import ElementFingerprint

logger = logging.getLogger(__name__)

CACHE_VERSION = 1
CACHE_FILE_NAME = "element-cache.json"

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

DEFAULT_TTL_MS = DAY_MS
CLEANUP_INTERVAL_MS = HOUR_MS
STALE_ENTRY_MS = 7 * DAY_MS
STALE_STATS_MS = 30 * DAY_MS
MIN_SEARCHES_FOR_THRESHOLD = 5


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class CacheEntry:
    """A remembered match for one instruction on one page."""
    key: str
    fingerprint: ElementFingerprint
    locator_strategy: str
    locator_description: str
    confidence: float
    success_count: int = 1
    failure_count: int = 0
    created_at: float = field(default_factory=_now_ms)
    last_used: float = field(default_factory=_now_ms)

    @property
    def failure_rate(self) -> float:
        total = self.success_count + self.failure_count
        return self.failure_count / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "fingerprint": self.fingerprint.to_dict(),
            "locatorStrategy": self.locator_strategy,
            "locatorDescription": self.locator_description,
            "confidence": self.confidence,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "createdAt": self.created_at,
            "lastUsed": self.last_used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            fingerprint=ElementFingerprint.from_dict(data.get("fingerprint") or {}),
            locator_strategy=data.get("locatorStrategy", ""),
            locator_description=data.get("locatorDescription", ""),
            confidence=data.get("confidence", 0.0),
            success_count=data.get("successCount", 0),
            failure_count=data.get("failureCount", 0),
            created_at=data.get("createdAt", 0),
            last_used=data.get("lastUsed", 0),
        )


@dataclass
class PageStats:
    """Match statistics for one URL pattern."""
    url_pattern: str
    total_searches: int = 0
    successful_matches: int = 0
    avg_confidence: float = 0.0
    recommended_threshold: float = 0.6
    last_updated: float = field(default_factory=_now_ms)

    @property
    def success_rate(self) -> float:
        return self.successful_matches / self.total_searches if self.total_searches > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "urlPattern": self.url_pattern,
            "totalSearches": self.total_searches,
            "successfulMatches": self.successful_matches,
            "avgConfidence": self.avg_confidence,
            "recommendedThreshold": self.recommended_threshold,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageStats":
        return cls(
            url_pattern=data["urlPattern"],
            total_searches=data.get("totalSearches", 0),
            successful_matches=data.get("successfulMatches", 0),
            avg_confidence=data.get("avgConfidence", 0.0),
            recommended_threshold=data.get("recommendedThreshold", 0.6),
            last_updated=data.get("lastUpdated", 0),
        )


def calculate_recommended_threshold(stats: PageStats) -> float:
    """
    Confidence threshold suited to a page's history.

    Pages where matches usually fail get a more permissive threshold; pages
    with consistently confident matches get a stricter one.
    """
    success_rate = stats.success_rate
    if success_rate < 0.5:
        return max(0.4, stats.avg_confidence * 0.8)
    if success_rate > 0.9 and stats.avg_confidence > 0.7:
        return min(0.7, stats.avg_confidence * 0.9)
    return 0.6


class ElementCache:
    """
    JSON-backed store of element fingerprints and page statistics.

    Args:
        cache_dir: Directory holding element-cache.json
        ttl_ms: Default entry lifetime, measured from last use
        max_entries: Entry count kept by cleanup()
        save_debounce_ms: Delay before a scheduled save runs
    """

    def __init__(
        self,
        cache_dir: str = ".ai-step-cache",
        ttl_ms: int = DEFAULT_TTL_MS,
        max_entries: int = 5000,
        save_debounce_ms: int = 2000,
    ):
        self.cache_dir = Path(cache_dir).expanduser()
        self.cache_path = self.cache_dir / CACHE_FILE_NAME
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self.save_debounce_ms = save_debounce_ms

        self._entries: Dict[str, CacheEntry] = {}
        self._page_stats: Dict[str, PageStats] = {}
        self._last_cleanup = _now_ms()
        self._dirty = False
        self._lock = threading.RLock()
        self._save_timer: Optional[threading.Timer] = None
        self._load()

    # Persistence

    def _load(self) -> None:
        """Load the store; an unreadable file or unknown version starts empty."""
        if not self.cache_path.exists():
            return

        try:
            data = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.debug(f"Failed to load element cache: {e}")
            return

        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            logger.debug(f"Ignoring element cache with unsupported version: {self.cache_path}")
            return

        try:
            self._entries = {
                key: CacheEntry.from_dict(entry) for key, entry in (data.get("entries") or {}).items()
            }
            self._page_stats = {
                key: PageStats.from_dict(stats) for key, stats in (data.get("pageStats") or {}).items()
            }
        except (KeyError, TypeError, AttributeError) as e:
            logger.debug(f"Element cache is malformed, starting empty: {e}")
            self._entries = {}
            self._page_stats = {}
            return

        self._last_cleanup = data.get("lastCleanup", _now_ms())
        logger.debug(f"Loaded {len(self._entries)} cached element entries")

    def _save(self) -> None:
        """Write the store if anything changed since the last write."""
        with self._lock:
            if not self._dirty:
                return
            data = {
                "version": CACHE_VERSION,
                "entries": {key: entry.to_dict() for key, entry in self._entries.items()},
                "pageStats": {key: stats.to_dict() for key, stats in self._page_stats.items()},
                "lastCleanup": self._last_cleanup,
            }
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                self.cache_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
                self._dirty = False
            except OSError as e:
                logger.warning(f"Failed to save element cache: {e}")

    def _debounce_save(self) -> None:
        with self._lock:
            if self._save_timer is not None:
                self._save_timer.cancel()
            self._save_timer = threading.Timer(self.save_debounce_ms / 1000, self._save)
            self._save_timer.daemon = True
            self._save_timer.start()

    def flush(self) -> None:
        """Cancel any pending save and write now."""
        with self._lock:
            if self._save_timer is not None:
                self._save_timer.cancel()
                self._save_timer = None
        self._save()

    # Entries

    def get(self, key: str, ttl_ms: Optional[int] = None) -> Optional[CacheEntry]:
        """
        Look up an entry.

        Expired entries and entries failing more than half the time are
        evicted and reported as misses.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            max_age = self.ttl_ms if ttl_ms is None else ttl_ms
            age = _now_ms() - entry.last_used
            if age > max_age:
                logger.debug(f"Cache entry expired (age: {age / 1000:.0f}s, TTL: {max_age / 1000:.0f}s)")
                del self._entries[key]
                self._dirty = True
                return None

            if entry.failure_count > 0 and entry.failure_rate > 0.5:
                logger.debug(
                    f"Cache entry evicted due to failure rate "
                    f"({entry.failure_count}/{entry.success_count + entry.failure_count})"
                )
                del self._entries[key]
                self._dirty = True
                return None

            return entry

    def set(
        self,
        key: str,
        fingerprint: ElementFingerprint,
        locator_strategy: str,
        locator_description: str,
        confidence: float,
    ) -> None:
        """Record a successful match, creating or refreshing the entry."""
        now = _now_ms()
        with self._lock:
            existing = self._entries.get(key)
            if existing:
                existing.fingerprint = fingerprint
                existing.locator_strategy = locator_strategy
                existing.locator_description = locator_description
                existing.confidence = confidence
                existing.success_count += 1
                existing.last_used = now
            else:
                self._entries[key] = CacheEntry(
                    key=key,
                    fingerprint=fingerprint,
                    locator_strategy=locator_strategy,
                    locator_description=locator_description,
                    confidence=confidence,
                    created_at=now,
                    last_used=now,
                )
            self._dirty = True
            needs_cleanup = now - self._last_cleanup > CLEANUP_INTERVAL_MS

        self._debounce_save()
        if needs_cleanup:
            self.cleanup()

    def record_failure(self, key: str) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return
            entry.failure_count += 1
            self._dirty = True
        self._debounce_save()

    # Page statistics

    def update_page_stats(self, url_pattern: str, success: bool, confidence: float = 0.0) -> None:
        """Fold one search outcome into the page's running statistics."""
        with self._lock:
            stats = self._page_stats.get(url_pattern)
            if stats:
                stats.total_searches += 1
                if success:
                    stats.successful_matches += 1
                    n = stats.successful_matches
                    stats.avg_confidence = (stats.avg_confidence * (n - 1) + confidence) / n
                stats.recommended_threshold = calculate_recommended_threshold(stats)
                stats.last_updated = _now_ms()
            else:
                self._page_stats[url_pattern] = PageStats(
                    url_pattern=url_pattern,
                    total_searches=1,
                    successful_matches=1 if success else 0,
                    avg_confidence=confidence if success else 0.0,
                    recommended_threshold=0.6,
                )
            self._dirty = True
        self._debounce_save()

    def get_page_stats(self, url_pattern: str) -> Optional[PageStats]:
        return self._page_stats.get(url_pattern)

    def get_recommended_threshold(self, url_pattern: str) -> Optional[float]:
        """Recommended threshold, or None with fewer than five observations."""
        stats = self._page_stats.get(url_pattern)
        if stats is None or stats.total_searches < MIN_SEARCHES_FOR_THRESHOLD:
            return None
        return stats.recommended_threshold

    # Maintenance

    def cleanup(self) -> None:
        """Drop stale and unreliable entries, trim to max_entries, and save."""
        now = _now_ms()
        removed = 0
        with self._lock:
            for key, entry in list(self._entries.items()):
                if now - entry.last_used > STALE_ENTRY_MS:
                    del self._entries[key]
                    removed += 1
                    continue
                total = entry.success_count + entry.failure_count
                if total > 3 and entry.failure_count / total > 0.7:
                    del self._entries[key]
                    removed += 1

            excess = len(self._entries) - self.max_entries
            if excess > 0:
                oldest = sorted(self._entries.values(), key=lambda e: e.last_used)[:excess]
                for entry in oldest:
                    del self._entries[entry.key]
                removed += excess

            for key, stats in list(self._page_stats.items()):
                if now - stats.last_updated > STALE_STATS_MS:
                    del self._page_stats[key]

            self._last_cleanup = now
            self._dirty = True

        if removed:
            logger.debug(f"Cleaned up {removed} stale cache entries")
        self._save()

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "pagePatterns": len(self._page_stats),
                "totalSuccesses": sum(e.success_count for e in self._entries.values()),
            }

    def clear(self) -> None:
        """Forget everything and write the empty store."""
        with self._lock:
            self._entries = {}
            self._page_stats = {}
            self._last_cleanup = _now_ms()
            self._dirty = True
        self._save()

    def __len__(self) -> int:
        return len(self._entries)
