"""Domain models used across the pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ProcessedReason(str, Enum):
    """Why a content item was finally disposed of."""

    GENERATED = "generated"
    APPROVED = "approved"
    REJECTED = "rejected"
    USER_REJECTED = "user_rejected"

    @classmethod
    def _missing_(cls, value: object) -> ProcessedReason | None:
        # Older callers tag generated items as "tweet_generated".
        if isinstance(value, str):
            cleaned = value.strip().lower()
            if cleaned == "tweet_generated":
                return cls.GENERATED
            for member in cls:
                if member.value == cleaned:
                    return member
        return None


class ContentItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    source: str  # e.g. "techcrunch", "github", "news_api"
    published_at: datetime
    description: str | None = None


class FingerprintRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title_hash: str
    url_hash: str
    content_hash: str = ""
    source: str
    recorded_at: datetime
    reason: ProcessedReason
    # Original text, kept for the fuzzy title and content checks.
    title: str = ""
    url: str = ""
    description: str | None = None


class SimilarityConfig(BaseModel):
    title_similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    content_similarity_threshold: Annotated[float, Field(ge=0.0, le=1.0)] | None = 0.6
    time_window_hours: float = Field(default=48, gt=0)


class DuplicateCheck(BaseModel):
    is_duplicate: bool
    reason: str | None = None
    similarity: float | None = None
    existing_id: str | None = None


class SourceCounts(BaseModel):
    total: int = 0
    generated: int = 0
    approved: int = 0
    rejected: int = 0
    user_rejected: int = 0


class DuplicateStats(BaseModel):
    total_processed: int = 0
    duplicates_detected: int = 0
    unique_sources: set[str] = Field(default_factory=set)
    by_source: dict[str, SourceCounts] = Field(default_factory=dict)
    recent_activity: dict[str, int] = Field(default_factory=dict)  # "YYYY-MM-DD" -> count


class TweetDraft(BaseModel):
    body: str
    url: str | None = None
    hashtags: list[str] = Field(default_factory=list)  # each includes its leading "#"


class LengthCheck(BaseModel):
    valid: bool
    length: int
    remaining: int


class FitResult(BaseModel):
    draft: TweetDraft
    check: LengthCheck
    hashtags_dropped: int = 0
    body_truncated: bool = False


class PublishResult(BaseModel):
    tweet_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.tweet_id is not None and self.error is None


class DraftStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    POSTED = "posted"
    NEEDS_REVIEW = "needs_review"


class QueuedDraft(BaseModel):
    id: int
    item: ContentItem
    text: str
    status: DraftStatus = DraftStatus.PENDING
    created_at: datetime
    tweet_id: str | None = None
    error: str | None = None
