"""Duplicate detection — skip content items that were already turned into tweets."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from rapidfuzz import fuzz

from newsbird.fingerprint import (
    content_prefix,
    item_hashes,
    jaccard,
    normalize,
    shingles,
    significant_words,
)
from newsbird.models import (
    ContentItem,
    DuplicateCheck,
    DuplicateStats,
    FingerprintRecord,
    ProcessedReason,
    SimilarityConfig,
    SourceCounts,
)
from newsbird.store import FingerprintStore
from newsbird.timeouts import call_with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Shared significant title words that make two titles the same story.
MIN_COMMON_TITLE_WORDS = 3
_ACTIVITY_DAYS = 7


class RecordCache:
    """Short-lived cache of windowed record lists, keyed by window size.

    Every invalidation bumps a generation counter. A list fetched before an
    invalidation is not stored afterwards.
    """

    def __init__(self, ttl_seconds: float = 600.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[float, tuple[float, list[FingerprintRecord]]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, key: float) -> list[FingerprintRecord] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, records = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                return None
            return records

    def put(self, key: float, records: list[FingerprintRecord], generation: int | None = None) -> None:
        """Store *records*, unless the cache was invalidated since *generation*."""
        if self._ttl <= 0:
            return
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            self._entries[key] = (self._clock(), records)

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1


class DuplicateDetector:
    """Classify content items as new or already processed.

    Exact URL and title fingerprints are checked against every record ever
    stored. Fuzzy title and content checks only consider records inside the
    configured time window. Lookups fail open: if the store misbehaves the
    item is reported as new.
    """

    def __init__(
        self,
        store: FingerprintStore,
        *,
        cache: RecordCache | None = None,
        storage_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._cache = cache if cache is not None else RecordCache()
        self._storage_timeout = storage_timeout
        self._duplicates_detected = 0
        self._counter_lock = threading.Lock()

    # ── public ──────────────────────────────────────────────────────────

    def is_duplicate(self, item: ContentItem, config: SimilarityConfig | None = None) -> DuplicateCheck:
        """Return whether *item* overlaps with a previously recorded item."""
        config = config or SimilarityConfig()
        try:
            result = self._check(item, config)
        except Exception:
            logger.exception("Duplicate check failed for %s; treating as new", item.url)
            return DuplicateCheck(is_duplicate=False)

        if result.is_duplicate:
            with self._counter_lock:
                self._duplicates_detected += 1
            logger.info(
                "Duplicate (%s, %.2f): %s", result.reason, result.similarity or 0.0, item.title[:80]
            )
        return result

    def filter_duplicates(
        self, items: Iterable[ContentItem], config: SimilarityConfig | None = None
    ) -> tuple[list[ContentItem], list[tuple[ContentItem, DuplicateCheck]]]:
        """Split *items* into new ones and duplicates (with their verdicts)."""
        unique: list[ContentItem] = []
        duplicates: list[tuple[ContentItem, DuplicateCheck]] = []
        for item in items:
            check = self.is_duplicate(item, config)
            if check.is_duplicate:
                duplicates.append((item, check))
            else:
                unique.append(item)
        logger.info(
            "Dedupe: %d total → %d new (filtered %d seen)",
            len(unique) + len(duplicates),
            len(unique),
            len(duplicates),
        )
        return unique, duplicates

    def record_processed(
        self, item: ContentItem, reason: ProcessedReason | str
    ) -> FingerprintRecord | None:
        """Persist the fingerprints of *item*; return None if its title/URL pair is known."""
        reason = ProcessedReason(reason)
        title_hash, url_hash, content_hash = item_hashes(item)
        record = FingerprintRecord(
            id=uuid.uuid4().hex,
            title_hash=title_hash,
            url_hash=url_hash,
            content_hash=content_hash,
            source=item.source,
            recorded_at=datetime.now(UTC),
            reason=reason,
            title=item.title,
            url=item.url,
            description=item.description,
        )
        inserted = self._call(self._store.insert, record)
        self._cache.invalidate()
        if not inserted:
            logger.debug("Already recorded: %s", item.url)
            return None
        logger.info("Recorded %s item from %s: %s", reason.value, item.source, item.title[:80])
        return record

    def get_stats(self) -> DuplicateStats:
        records = self._call(self._store.list_all)
        stats = DuplicateStats(total_processed=len(records))
        with self._counter_lock:
            stats.duplicates_detected = self._duplicates_detected

        by_source: dict[str, SourceCounts] = defaultdict(SourceCounts)
        activity: dict[str, int] = defaultdict(int)
        activity_start = datetime.now(UTC) - timedelta(days=_ACTIVITY_DAYS)
        for record in records:
            counts = by_source[record.source]
            counts.total += 1
            setattr(counts, record.reason.value, getattr(counts, record.reason.value) + 1)
            if record.recorded_at >= activity_start:
                activity[record.recorded_at.date().isoformat()] += 1

        stats.unique_sources = set(by_source)
        stats.by_source = dict(by_source)
        stats.recent_activity = dict(sorted(activity.items()))
        return stats

    def cleanup(self, older_than_days: float = 30) -> int:
        """Delete records older than *older_than_days*; return the number removed."""
        cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
        removed = self._call(self._store.delete_older_than, cutoff)
        self._cache.invalidate()
        if removed:
            logger.info("Cleaned up %d fingerprint records older than %s", removed, cutoff.date())
        return removed

    # ── private ─────────────────────────────────────────────────────────

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        return call_with_timeout(
            fn, *args, timeout=self._storage_timeout, label=f"store.{getattr(fn, '__name__', 'call')}"
        )

    def _recent(self, hours: float) -> list[FingerprintRecord]:
        records = self._cache.get(hours)
        if records is None:
            generation = self._cache.generation
            records = self._call(self._store.list_within_window, hours)
            self._cache.put(hours, records, generation)
        return records

    def _check(self, item: ContentItem, config: SimilarityConfig) -> DuplicateCheck:
        title_hash, url_hash, content_hash = item_hashes(item)

        existing = self._call(self._store.find_by_hash, "url", url_hash)
        if existing is not None:
            return DuplicateCheck(
                is_duplicate=True, reason="URL already processed", similarity=1.0, existing_id=existing.id
            )

        existing = self._call(self._store.find_by_hash, "title", title_hash)
        if existing is not None:
            return DuplicateCheck(
                is_duplicate=True, reason="Title already processed", similarity=1.0, existing_id=existing.id
            )

        recent = self._recent(config.time_window_hours)

        title_match = self._similar_title(item, recent, config.title_similarity_threshold)
        if title_match is not None:
            return title_match

        if item.description and config.content_similarity_threshold is not None:
            content_match = self._similar_content(
                item, content_hash, recent, config.content_similarity_threshold
            )
            if content_match is not None:
                return content_match

        return DuplicateCheck(is_duplicate=False)

    @staticmethod
    def _similar_title(
        item: ContentItem, records: list[FingerprintRecord], threshold: float
    ) -> DuplicateCheck | None:
        words = significant_words(item.title)
        title = normalize(item.title)
        for record in records:
            if not record.title:
                continue
            other = significant_words(record.title)
            common = words & other
            if len(common) >= MIN_COMMON_TITLE_WORDS:
                overlap = len(common) / max(len(words), len(other))
                return DuplicateCheck(
                    is_duplicate=True, reason="Very similar title", similarity=overlap, existing_id=record.id
                )
            ratio = fuzz.ratio(title, normalize(record.title)) / 100.0
            if ratio >= threshold:
                return DuplicateCheck(
                    is_duplicate=True, reason="Very similar title", similarity=ratio, existing_id=record.id
                )
        return None

    @staticmethod
    def _similar_content(
        item: ContentItem,
        content_hash: str,
        records: list[FingerprintRecord],
        threshold: float,
    ) -> DuplicateCheck | None:
        mine = shingles(content_prefix(item.description))
        best: tuple[float, FingerprintRecord] | None = None
        for record in records:
            if content_hash and record.content_hash == content_hash:
                return DuplicateCheck(
                    is_duplicate=True, reason="Similar content", similarity=1.0, existing_id=record.id
                )
            if not record.description:
                continue
            score = jaccard(mine, shingles(content_prefix(record.description)))
            if best is None or score > best[0]:
                best = (score, record)

        if best is not None and best[0] >= threshold:
            return DuplicateCheck(
                is_duplicate=True, reason="Similar content", similarity=best[0], existing_id=best[1].id
            )
        return None
