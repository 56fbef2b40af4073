"""Pipeline orchestration — wires dedupe → generate → budget → queue, then approve → publish → record."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterable
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, Field

from newsbird.detector import DuplicateDetector
from newsbird.errors import (
    CallTimeoutError,
    DraftStateError,
    GenerationUnavailable,
    PublishError,
    ValidationError,
)
from newsbird.llm import build_prompt
from newsbird.models import (
    ContentItem,
    DraftStatus,
    FitResult,
    ProcessedReason,
    PublishResult,
    QueuedDraft,
    SimilarityConfig,
)
from newsbird.store import DraftStore
from newsbird.text_budget import compose, extract_hashtags, fit_draft, validate
from newsbird.timeouts import call_with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TextCompletion(Protocol):
    def complete(self, prompt: str) -> str: ...


class Publisher(Protocol):
    def publish(self, text: str) -> PublishResult: ...


class BatchReport(BaseModel):
    fetched: int = 0
    duplicates: int = 0
    queued: int = 0
    skipped_generation: int = 0
    invalid: int = 0
    failed: int = 0
    draft_ids: list[int] = Field(default_factory=list)
    previews: list[str] = Field(default_factory=list)  # dry-run output


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


class Pipeline:
    """Turn candidate items into queued drafts and publish the approved ones."""

    def __init__(
        self,
        detector: DuplicateDetector,
        drafts: DraftStore,
        writer: TextCompletion,
        publisher: Publisher | None = None,
        *,
        similarity: SimilarityConfig | None = None,
        generation_timeout: float | None = 30,
        publish_timeout: float | None = 20,
        storage_timeout: float | None = None,
    ) -> None:
        self._detector = detector
        self._drafts = drafts
        self._writer = writer
        self._publisher = publisher
        self._similarity = similarity or SimilarityConfig()
        self._generation_timeout = generation_timeout
        self._publish_timeout = publish_timeout
        self._storage_timeout = storage_timeout

    # ── ingestion side ──────────────────────────────────────────────────

    def process_batch(self, items: Iterable[ContentItem], dry_run: bool = False) -> BatchReport:
        """Process every item independently; one failure never stops the batch."""
        report = BatchReport()
        for item in items:
            report.fetched += 1
            try:
                check = self._detector.is_duplicate(item, self._similarity)
                if check.is_duplicate:
                    report.duplicates += 1
                    continue

                fit = self.prepare(item)
                text = compose(fit.draft)
                if dry_run:
                    report.previews.append(text)
                    logger.info("  [%d chars] %s", fit.check.length, text.replace("\n", " ⏎ "))
                    continue

                queued = self._storage(self._drafts.add, item, text)
                self._detector.record_processed(item, ProcessedReason.GENERATED)
                report.queued += 1
                report.draft_ids.append(queued.id)
            except GenerationUnavailable as exc:
                report.skipped_generation += 1
                logger.warning("Skipping %s: %s", item.url, exc)
            except ValidationError as exc:
                report.invalid += 1
                logger.warning("Draft for %s does not fit: %s", item.url, exc)
            except Exception:
                report.failed += 1
                logger.exception("Failed to process %s", item.url)

        logger.info(
            "Batch done: %d fetched, %d duplicates, %d queued, %d skipped, %d invalid, %d failed",
            report.fetched,
            report.duplicates,
            report.queued,
            report.skipped_generation,
            report.invalid,
            report.failed,
        )
        return report

    def prepare(self, item: ContentItem) -> FitResult:
        """Generate a draft for *item* and fit it to the character budget."""
        try:
            raw = call_with_timeout(
                self._writer.complete,
                build_prompt(item),
                timeout=self._generation_timeout,
                label="llm.complete",
            )
        except CallTimeoutError as exc:
            raise GenerationUnavailable(str(exc)) from exc

        if item.url in raw:
            raw = raw.replace(item.url, "").strip()
        body, hashtags = extract_hashtags(raw)
        if not body:
            raise GenerationUnavailable("Generated text has no body")

        fit = fit_draft(body, item.url, hashtags)
        if not fit.check.valid:
            raise ValidationError(f"Draft cannot be fitted ({fit.check.length} characters)")
        return fit

    def dismiss(self, item: ContentItem, by_user: bool = True) -> bool:
        """Reject a candidate without generating anything; return False if already known."""
        reason = ProcessedReason.USER_REJECTED if by_user else ProcessedReason.REJECTED
        return self._detector.record_processed(item, reason) is not None

    # ── approval side ───────────────────────────────────────────────────

    def approve(self, draft_id: int) -> QueuedDraft:
        """Publish a queued draft.

        The text is length-checked before it is sent. A publish that is
        rejected, times out or raises leaves the draft in ``needs_review``.
        """
        draft = self._get(draft_id)
        if draft.status not in (DraftStatus.PENDING, DraftStatus.NEEDS_REVIEW):
            raise DraftStateError(f"Draft #{draft_id} is {draft.status.value}")

        check = validate(draft.text)
        if not check.valid:
            raise ValidationError(f"Draft #{draft_id} is {check.length} characters")
        if self._publisher is None:
            raise PublishError("Publishing is not configured")

        self._storage(self._drafts.set_status, draft_id, DraftStatus.APPROVED)
        try:
            result = call_with_timeout(
                self._publisher.publish,
                draft.text,
                timeout=self._publish_timeout,
                label="x.publish",
            )
        except Exception as exc:
            # Timeouts included: the post may or may not have gone out.
            self._storage(self._drafts.set_status, draft_id, DraftStatus.NEEDS_REVIEW, error=str(exc))
            raise

        if not result.ok:
            self._storage(
                self._drafts.set_status, draft_id, DraftStatus.NEEDS_REVIEW, error=result.error
            )
            raise PublishError(result.error or "Unknown publish error")

        self._storage(self._drafts.set_status, draft_id, DraftStatus.POSTED, tweet_id=result.tweet_id)
        self._detector.record_processed(draft.item, ProcessedReason.APPROVED)
        logger.info("Draft #%d posted as %s", draft_id, result.tweet_id)
        return self._get(draft_id)

    def reject(self, draft_id: int, by_user: bool = True) -> QueuedDraft:
        draft = self._get(draft_id)
        if draft.status == DraftStatus.POSTED:
            raise DraftStateError(f"Draft #{draft_id} is already posted")

        self._storage(self._drafts.set_status, draft_id, DraftStatus.REJECTED)
        reason = ProcessedReason.USER_REJECTED if by_user else ProcessedReason.REJECTED
        self._detector.record_processed(draft.item, reason)
        logger.info("Draft #%d rejected", draft_id)
        return self._get(draft_id)

    def pending(self) -> list[QueuedDraft]:
        return self._storage(self._drafts.pending)

    # ── private ─────────────────────────────────────────────────────────

    def _get(self, draft_id: int) -> QueuedDraft:
        draft = self._storage(self._drafts.get, draft_id)
        if draft is None:
            raise DraftStateError(f"No draft with id {draft_id}")
        return draft

    def _storage(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return call_with_timeout(
            fn,
            *args,
            timeout=self._storage_timeout,
            label=f"drafts.{getattr(fn, '__name__', 'call')}",
            **kwargs,
        )

