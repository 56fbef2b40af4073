"""Unit tests for duplicate detection, recording, stats and cleanup."""

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from newsbird.detector import DuplicateDetector, RecordCache
from newsbird.errors import StorageError
from newsbird.fingerprint import item_hashes
from newsbird.models import (
    ContentItem,
    FingerprintRecord,
    ProcessedReason,
    SimilarityConfig,
)
from newsbird.store import SQLiteFingerprintStore


def _make(
    title: str,
    url: str,
    source: str = "techcrunch",
    description: str | None = None,
) -> ContentItem:
    return ContentItem(
        title=title,
        url=url,
        source=source,
        published_at=datetime.now(UTC),
        description=description,
    )


def _backdate(store: SQLiteFingerprintStore, item: ContentItem, age: timedelta) -> None:
    """Insert a record for *item* as if it had been recorded *age* ago."""
    title_hash, url_hash, content_hash = item_hashes(item)
    store.insert(
        FingerprintRecord(
            id=f"old-{url_hash}",
            title_hash=title_hash,
            url_hash=url_hash,
            content_hash=content_hash,
            source=item.source,
            recorded_at=datetime.now(UTC) - age,
            reason=ProcessedReason.REJECTED,
            title=item.title,
            url=item.url,
            description=item.description,
        )
    )


@pytest.fixture
def store(tmp_path: Path) -> SQLiteFingerprintStore:
    return SQLiteFingerprintStore(tmp_path / "fingerprints.sqlite3")


@pytest.fixture
def detector(store: SQLiteFingerprintStore) -> DuplicateDetector:
    return DuplicateDetector(store)


class _RacingStore(SQLiteFingerprintStore):
    """Runs *on_list* once, after a windowed read but before it returns."""

    on_list: Callable[[], object] | None = None

    def list_within_window(self, hours: float) -> list[FingerprintRecord]:
        records = super().list_within_window(hours)
        if self.on_list is not None:
            hook, self.on_list = self.on_list, None
            hook()
        return records


class _BrokenStore:
    def __getattr__(self, name: str):
        def fail(*args, **kwargs):
            raise StorageError("database is gone")

        fail.__name__ = name
        return fail


class _SlowStore:
    def find_by_hash(self, kind: str, value: str) -> None:
        time.sleep(1.0)


class TestExactMatches:
    def test_same_url_is_duplicate_regardless_of_title(self, detector: DuplicateDetector) -> None:
        detector.record_processed(_make("First title", "https://x.com/a"), ProcessedReason.GENERATED)
        check = detector.is_duplicate(_make("Completely different", " HTTPS://X.COM/A "))
        assert check.is_duplicate
        assert check.reason == "URL already processed"
        assert check.similarity == 1.0

    def test_same_title_different_url(self, detector: DuplicateDetector) -> None:
        detector.record_processed(_make("Rust 2.0 ships", "https://x.com/a"), "approved")
        check = detector.is_duplicate(_make("  rust 2.0 SHIPS ", "https://y.com/b"))
        assert check.is_duplicate
        assert check.reason == "Title already processed"
        assert check.similarity == 1.0

    def test_exact_matches_ignore_time_window(
        self, store: SQLiteFingerprintStore, detector: DuplicateDetector
    ) -> None:
        _backdate(store, _make("Ancient news", "https://x.com/old"), timedelta(days=400))
        check = detector.is_duplicate(_make("Fresh title", "https://x.com/old"))
        assert check.is_duplicate
        assert check.reason == "URL already processed"

    def test_case_different_title_within_window(self, detector: DuplicateDetector) -> None:
        detector.record_processed(
            _make("OpenAI releases new model", "https://x.com/a"), "tweet_generated"
        )
        check = detector.is_duplicate(_make("OpenAI Releases New Model", "https://x.com/b"))
        assert check.is_duplicate


class TestFuzzyTitle:
    def test_three_shared_words(self, detector: DuplicateDetector) -> None:
        detector.record_processed(_make("OpenAI releases new model", "https://x.com/a"), "generated")
        check = detector.is_duplicate(
            _make("OpenAI releases new model to developers", "https://other.com/z")
        )
        assert check.is_duplicate
        assert check.reason == "Very similar title"
        assert check.similarity == pytest.approx(3 / 4)

    def test_near_identical_spelling(self, detector: DuplicateDetector) -> None:
        detector.record_processed(_make("Apple unveils M5 chip", "https://x.com/a"), "generated")
        check = detector.is_duplicate(_make("Apple unveils M5 chips", "https://y.com/b"))
        assert check.is_duplicate
        assert check.reason == "Very similar title"
        assert check.similarity is not None and check.similarity >= 0.8

    def test_unrelated_titles(self, detector: DuplicateDetector) -> None:
        detector.record_processed(_make("OpenAI releases new model", "https://x.com/a"), "generated")
        check = detector.is_duplicate(_make("Stripe acquires payments startup", "https://y.com/b"))
        assert not check.is_duplicate
        assert check.reason is None

    def test_outside_window_is_not_fuzzy_matched(
        self, store: SQLiteFingerprintStore, detector: DuplicateDetector
    ) -> None:
        _backdate(store, _make("OpenAI releases new model", "https://x.com/a"), timedelta(hours=72))
        item = _make("OpenAI releases new model to developers", "https://y.com/b")
        assert not detector.is_duplicate(item, SimilarityConfig(time_window_hours=48)).is_duplicate
        assert detector.is_duplicate(item, SimilarityConfig(time_window_hours=96)).is_duplicate


class TestContent:
    _DESC = "the company announced a new robot arm that can fold laundry and wash dishes at home"

    def test_same_description_prefix(self, detector: DuplicateDetector) -> None:
        detector.record_processed(
            _make("Robot folds laundry", "https://x.com/a", description=self._DESC), "generated"
        )
        check = detector.is_duplicate(
            _make("Home automation update", "https://y.com/b", description=self._DESC.upper())
        )
        assert check.is_duplicate
        assert check.reason == "Similar content"
        assert check.similarity == 1.0

    def test_overlapping_description(self, detector: DuplicateDetector) -> None:
        detector.record_processed(
            _make("Robot folds laundry", "https://x.com/a", description=self._DESC), "generated"
        )
        check = detector.is_duplicate(
            _make("Home automation update", "https://y.com/b", description=self._DESC + " every day")
        )
        assert check.is_duplicate
        assert check.reason == "Similar content"
        assert check.similarity == pytest.approx(14 / 16)

    def test_content_check_disabled(self, detector: DuplicateDetector) -> None:
        detector.record_processed(
            _make("Robot folds laundry", "https://x.com/a", description=self._DESC), "generated"
        )
        config = SimilarityConfig(content_similarity_threshold=None)
        check = detector.is_duplicate(
            _make("Home automation update", "https://y.com/b", description=self._DESC), config
        )
        assert not check.is_duplicate

    def test_no_description(self, detector: DuplicateDetector) -> None:
        detector.record_processed(
            _make("Robot folds laundry", "https://x.com/a", description=self._DESC), "generated"
        )
        assert not detector.is_duplicate(_make("Home automation update", "https://y.com/b")).is_duplicate


class TestFailOpen:
    def test_storage_error_reports_not_duplicate(self) -> None:
        detector = DuplicateDetector(_BrokenStore())
        check = detector.is_duplicate(_make("Anything", "https://x.com/a"))
        assert not check.is_duplicate

    def test_slow_storage_reports_not_duplicate(self) -> None:
        detector = DuplicateDetector(_SlowStore(), storage_timeout=0.05)
        assert not detector.is_duplicate(_make("Anything", "https://x.com/a")).is_duplicate

    def test_record_errors_propagate(self) -> None:
        detector = DuplicateDetector(_BrokenStore())
        with pytest.raises(StorageError):
            detector.record_processed(_make("Anything", "https://x.com/a"), "generated")
        with pytest.raises(StorageError):
            detector.cleanup(30)


class TestRecordProcessed:
    def test_idempotent(self, store: SQLiteFingerprintStore, detector: DuplicateDetector) -> None:
        item = _make("Same item", "https://x.com/a")
        first = detector.record_processed(item, ProcessedReason.GENERATED)
        second = detector.record_processed(item, ProcessedReason.APPROVED)
        assert first is not None
        assert second is None
        assert len(store.list_all()) == 1

    def test_legacy_reason_name(self, detector: DuplicateDetector) -> None:
        record = detector.record_processed(_make("Item", "https://x.com/a"), "tweet_generated")
        assert record is not None
        assert record.reason is ProcessedReason.GENERATED

    def test_write_invalidates_cache(self, detector: DuplicateDetector) -> None:
        item = _make("OpenAI releases new model to developers", "https://y.com/b")
        assert not detector.is_duplicate(item).is_duplicate
        detector.record_processed(_make("OpenAI releases new model", "https://x.com/a"), "generated")
        assert detector.is_duplicate(item).is_duplicate

    def test_write_during_window_read_is_not_masked(self, tmp_path: Path) -> None:
        store = _RacingStore(tmp_path / "fingerprints.sqlite3")
        detector = DuplicateDetector(store)
        store.on_list = lambda: detector.record_processed(
            _make("OpenAI releases new model", "https://x.com/a"), "generated"
        )
        item = _make("OpenAI releases new model to developers", "https://y.com/b")

        assert not detector.is_duplicate(item).is_duplicate
        assert detector.is_duplicate(item).is_duplicate


class TestStatsAndCleanup:
    def test_stats(self, detector: DuplicateDetector) -> None:
        detector.record_processed(_make("One", "https://x.com/1"), "generated")
        detector.record_processed(_make("Two", "https://x.com/2"), "user_rejected")
        detector.record_processed(_make("Three", "https://gh.com/3", source="github"), "approved")
        detector.is_duplicate(_make("One", "https://x.com/1"))

        stats = detector.get_stats()
        assert stats.total_processed == 3
        assert stats.duplicates_detected == 1
        assert stats.unique_sources == {"techcrunch", "github"}
        assert stats.by_source["techcrunch"].total == 2
        assert stats.by_source["techcrunch"].generated == 1
        assert stats.by_source["techcrunch"].user_rejected == 1
        assert stats.by_source["github"].approved == 1
        assert sum(stats.recent_activity.values()) == 3

    def test_cleanup_removes_only_old_records(
        self, store: SQLiteFingerprintStore, detector: DuplicateDetector
    ) -> None:
        _backdate(store, _make("Old", "https://x.com/old"), timedelta(days=31))
        _backdate(store, _make("Recent", "https://x.com/recent"), timedelta(days=29))
        detector.record_processed(_make("Now", "https://x.com/now"), "generated")

        assert detector.cleanup(older_than_days=30) == 1
        assert detector.cleanup(older_than_days=30) == 0
        assert {r.title for r in store.list_all()} == {"Recent", "Now"}

    def test_filter_duplicates(self, detector: DuplicateDetector) -> None:
        detector.record_processed(_make("Seen", "https://x.com/seen"), "generated")
        unique, duplicates = detector.filter_duplicates(
            [_make("Seen", "https://x.com/seen"), _make("Unseen story", "https://x.com/new")]
        )
        assert [i.title for i in unique] == ["Unseen story"]
        assert duplicates[0][1].reason == "URL already processed"


class TestRecordCache:
    def test_expires_after_ttl(self) -> None:
        now = [0.0]
        cache = RecordCache(ttl_seconds=600, clock=lambda: now[0])
        cache.put(48, [])
        assert cache.get(48) == []
        now[0] = 599.0
        assert cache.get(48) == []
        now[0] = 600.0
        assert cache.get(48) is None

    def test_invalidate(self) -> None:
        cache = RecordCache()
        cache.put(48, [])
        cache.invalidate()
        assert cache.get(48) is None

    def test_zero_ttl_disables(self) -> None:
        cache = RecordCache(ttl_seconds=0)
        cache.put(48, [])
        assert cache.get(48) is None

    def test_put_after_invalidate_is_dropped(self) -> None:
        cache = RecordCache()
        generation = cache.generation
        cache.invalidate()
        cache.put(48, [], generation)
        assert cache.get(48) is None
        cache.put(48, [], cache.generation)
        assert cache.get(48) == []
