"""SQLite-backed fingerprint store and draft approval queue."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Literal, Protocol

from pydantic import ValidationError as ModelValidationError

from newsbird.errors import StorageError
from newsbird.models import (
    ContentItem,
    DraftStatus,
    FingerprintRecord,
    ProcessedReason,
    QueuedDraft,
)

logger = logging.getLogger(__name__)

HashKind = Literal["title", "url", "content"]

_HASH_COLUMNS: dict[str, str] = {
    "title": "title_hash",
    "url": "url_hash",
    "content": "content_hash",
}

_SCHEMA = """
CREATE TABLE IF NOT EXISTS fingerprints (
    id           TEXT PRIMARY KEY,
    title_hash   TEXT NOT NULL,
    url_hash     TEXT NOT NULL,
    content_hash TEXT NOT NULL DEFAULT '',
    source       TEXT NOT NULL,
    recorded_at  TEXT NOT NULL,
    reason       TEXT NOT NULL,
    title        TEXT NOT NULL DEFAULT '',
    url          TEXT NOT NULL DEFAULT '',
    description  TEXT,
    UNIQUE (title_hash, url_hash)
);
CREATE INDEX IF NOT EXISTS idx_fingerprints_title ON fingerprints (title_hash);
CREATE INDEX IF NOT EXISTS idx_fingerprints_url ON fingerprints (url_hash);
CREATE INDEX IF NOT EXISTS idx_fingerprints_content ON fingerprints (content_hash);
CREATE INDEX IF NOT EXISTS idx_fingerprints_recorded ON fingerprints (recorded_at);

CREATE TABLE IF NOT EXISTS drafts (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    item       TEXT NOT NULL,
    text       TEXT NOT NULL,
    status     TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    tweet_id   TEXT,
    error      TEXT
);
"""

_FINGERPRINT_COLUMNS = (
    "id, title_hash, url_hash, content_hash, source, recorded_at, reason, title, url, description"
)


def _iso(value: datetime) -> str:
    """UTC ISO-8601 with fixed precision so stored timestamps sort as text."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class FingerprintStore(Protocol):
    """Persistence interface the duplicate detector depends on."""

    def insert(self, record: FingerprintRecord) -> bool: ...

    def find_by_hash(self, kind: HashKind, value: str) -> FingerprintRecord | None: ...

    def list_within_window(self, hours: float) -> list[FingerprintRecord]: ...

    def list_all(self) -> list[FingerprintRecord]: ...

    def delete_older_than(self, cutoff: datetime) -> int: ...


class _SQLiteBase:
    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        with self._transaction() as con:
            con.executescript(_SCHEMA)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and map driver errors to StorageError."""
        try:
            with closing(sqlite3.connect(str(self._db_path))) as con:
                with con:
                    yield con
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite error on {self._db_path}: {exc}") from exc


class SQLiteFingerprintStore(_SQLiteBase):
    """Append-only fingerprint table; rows are only removed by the retention sweep."""

    # ── public ──────────────────────────────────────────────────────────

    def insert(self, record: FingerprintRecord) -> bool:
        """Insert a record; return False if its (title, url) pair was already stored."""
        with self._transaction() as con:
            cur = con.execute(
                f"""
                INSERT OR IGNORE INTO fingerprints ({_FINGERPRINT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.title_hash,
                    record.url_hash,
                    record.content_hash,
                    record.source,
                    _iso(record.recorded_at),
                    record.reason.value,
                    record.title,
                    record.url,
                    record.description,
                ),
            )
            return cur.rowcount > 0

    def find_by_hash(self, kind: HashKind, value: str) -> FingerprintRecord | None:
        """Return the oldest record whose *kind* hash equals *value*."""
        column = _HASH_COLUMNS.get(kind)
        if column is None:
            raise ValueError(f"Unknown hash kind: {kind!r}")
        if not value:
            return None
        with self._transaction() as con:
            row = con.execute(
                f"SELECT {_FINGERPRINT_COLUMNS} FROM fingerprints "
                f"WHERE {column} = ? ORDER BY recorded_at LIMIT 1",
                (value,),
            ).fetchone()
        return self._to_record(row) if row else None

    def list_within_window(self, hours: float) -> list[FingerprintRecord]:
        cutoff = datetime.now(UTC) - timedelta(hours=hours)
        with self._transaction() as con:
            rows = con.execute(
                f"SELECT {_FINGERPRINT_COLUMNS} FROM fingerprints "
                "WHERE recorded_at >= ? ORDER BY recorded_at",
                (_iso(cutoff),),
            ).fetchall()
        return [self._to_record(row) for row in rows]

    def list_all(self) -> list[FingerprintRecord]:
        with self._transaction() as con:
            rows = con.execute(
                f"SELECT {_FINGERPRINT_COLUMNS} FROM fingerprints ORDER BY recorded_at"
            ).fetchall()
        return [self._to_record(row) for row in rows]

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete records recorded strictly before *cutoff*; return how many went."""
        with self._transaction() as con:
            cur = con.execute("DELETE FROM fingerprints WHERE recorded_at < ?", (_iso(cutoff),))
            return cur.rowcount

    # ── private ─────────────────────────────────────────────────────────

    @staticmethod
    def _to_record(row: tuple) -> FingerprintRecord:
        try:
            return FingerprintRecord(
                id=row[0],
                title_hash=row[1],
                url_hash=row[2],
                content_hash=row[3] or "",
                source=row[4],
                recorded_at=datetime.fromisoformat(row[5]),
                reason=ProcessedReason(row[6]),
                title=row[7] or "",
                url=row[8] or "",
                description=row[9],
            )
        except (ModelValidationError, ValueError, TypeError) as exc:
            raise StorageError(f"Malformed fingerprint row {row[0]!r}: {exc}") from exc


class DraftStore(_SQLiteBase):
    """Queue of generated tweets awaiting human approval."""

    # ── public ──────────────────────────────────────────────────────────

    def add(self, item: ContentItem, text: str) -> QueuedDraft:
        now = datetime.now(UTC)
        with self._transaction() as con:
            cur = con.execute(
                "INSERT INTO drafts (item, text, status, created_at) VALUES (?, ?, ?, ?)",
                (item.model_dump_json(), text, DraftStatus.PENDING.value, _iso(now)),
            )
            draft_id = cur.lastrowid
        logger.info("Queued draft #%s for approval: %s", draft_id, item.title[:60])
        return QueuedDraft(id=draft_id, item=item, text=text, created_at=now)

    def get(self, draft_id: int) -> QueuedDraft | None:
        with self._transaction() as con:
            row = con.execute(
                "SELECT id, item, text, status, created_at, tweet_id, error "
                "FROM drafts WHERE id = ?",
                (draft_id,),
            ).fetchone()
        return self._to_draft(row) if row else None

    def pending(self) -> list[QueuedDraft]:
        return self.by_status(DraftStatus.PENDING)

    def by_status(self, status: DraftStatus) -> list[QueuedDraft]:
        with self._transaction() as con:
            rows = con.execute(
                "SELECT id, item, text, status, created_at, tweet_id, error "
                "FROM drafts WHERE status = ? ORDER BY id",
                (status.value,),
            ).fetchall()
        return [self._to_draft(row) for row in rows]

    def set_status(
        self,
        draft_id: int,
        status: DraftStatus,
        *,
        tweet_id: str | None = None,
        error: str | None = None,
    ) -> None:
        with self._transaction() as con:
            cur = con.execute(
                "UPDATE drafts SET status = ?, tweet_id = COALESCE(?, tweet_id), error = ? "
                "WHERE id = ?",
                (status.value, tweet_id, error, draft_id),
            )
            if cur.rowcount == 0:
                raise StorageError(f"No draft with id {draft_id}")

    # ── private ─────────────────────────────────────────────────────────

    @staticmethod
    def _to_draft(row: tuple) -> QueuedDraft:
        try:
            return QueuedDraft(
                id=row[0],
                item=ContentItem.model_validate_json(row[1]),
                text=row[2],
                status=DraftStatus(row[3]),
                created_at=datetime.fromisoformat(row[4]),
                tweet_id=row[5],
                error=row[6],
            )
        except (ModelValidationError, ValueError) as exc:
            raise StorageError(f"Malformed draft row {row[0]!r}: {exc}") from exc
