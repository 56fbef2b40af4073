"""CLI entry-point: ``python -m newsbird run`` / ``pending`` / ``approve`` / ``stats`` …"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from newsbird import config
from newsbird.detector import DuplicateDetector, RecordCache
from newsbird.errors import NewsbirdError
from newsbird.items import load_items
from newsbird.llm import TweetWriter
from newsbird.pipeline import Pipeline, setup_logging
from newsbird.store import DraftStore, SQLiteFingerprintStore
from newsbird.text_budget import compose, fit_draft
from newsbird.x_client import XPublisher

logger = logging.getLogger(__name__)


def _detector() -> DuplicateDetector:
    return DuplicateDetector(
        SQLiteFingerprintStore(config.DB_PATH),
        cache=RecordCache(ttl_seconds=config.CACHE_TTL_SECONDS),
        storage_timeout=config.STORAGE_TIMEOUT,
    )


def _pipeline() -> Pipeline:
    publisher = None
    if config.publishing_enabled():
        publisher = XPublisher(
            access_token=config.X_ACCESS_TOKEN,
            api_base=config.X_API_BASE,
            request_timeout=config.PUBLISH_TIMEOUT,
        )
    return Pipeline(
        detector=_detector(),
        drafts=DraftStore(config.DB_PATH),
        writer=TweetWriter(
            api_key=config.LLM_API_KEY,
            model=config.LLM_MODEL,
            base_url=config.LLM_BASE_URL,
        ),
        publisher=publisher,
        similarity=config.default_similarity(),
        generation_timeout=config.GENERATION_TIMEOUT,
        publish_timeout=config.PUBLISH_TIMEOUT,
        storage_timeout=config.STORAGE_TIMEOUT,
    )


# ── commands ───────────────────────────────────────────────────────────────


def _run(items_path: Path, dry_run: bool) -> int:
    if not items_path.exists():
        logger.error("Items file not found: %s", items_path)
        return 1
    items = load_items(items_path)
    if not items:
        logger.warning("No items loaded from %s — nothing to do.", items_path)
        return 0

    report = _pipeline().process_batch(items, dry_run=dry_run)
    print(
        f"fetched={report.fetched} duplicates={report.duplicates} queued={report.queued} "
        f"skipped={report.skipped_generation} invalid={report.invalid} failed={report.failed}"
    )
    for text in report.previews:
        print("-" * 40)
        print(text)
    return 0


def _pending() -> int:
    drafts = _pipeline().pending()
    if not drafts:
        print("No drafts awaiting approval.")
    for draft in drafts:
        print(f"#{draft.id} [{draft.item.source}] {draft.item.title}")
        print("    " + draft.text.replace("\n", "\n    "))
    return 0


def _approve(draft_id: int) -> int:
    draft = _pipeline().approve(draft_id)
    print(f"Posted draft #{draft.id} as {draft.tweet_id}")
    return 0


def _reject(draft_id: int) -> int:
    draft = _pipeline().reject(draft_id)
    print(f"Rejected draft #{draft.id}")
    return 0


def _stats() -> int:
    stats = _detector().get_stats()
    print(f"Total processed: {stats.total_processed}")
    print(f"Sources: {', '.join(sorted(stats.unique_sources)) or '-'}")
    for source, counts in sorted(stats.by_source.items()):
        print(
            f"  {source}: {counts.total} total "
            f"(generated {counts.generated}, approved {counts.approved}, "
            f"rejected {counts.rejected}, user_rejected {counts.user_rejected})"
        )
    for day, count in stats.recent_activity.items():
        print(f"  {day}: {count}")
    return 0


def _cleanup(days: float) -> int:
    removed = _detector().cleanup(older_than_days=days)
    print(f"Removed {removed} fingerprint records older than {days:g} days")
    return 0


def _check_length(text: str, url: str | None, hashtags: list[str]) -> int:
    tags = [tag if tag.startswith("#") else f"#{tag}" for tag in hashtags]
    fit = fit_draft(text, url, tags)
    print(compose(fit.draft))
    print("-" * 40)
    print(
        f"length={fit.check.length} remaining={fit.check.remaining} valid={fit.check.valid} "
        f"body_truncated={fit.body_truncated} hashtags_dropped={fit.hashtags_dropped}"
    )
    return 0 if fit.check.valid else 1


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="newsbird",
        description="Draft posts from news items, queue them for approval and publish to X.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── run ────────────────────────────────────────────────────────────
    run_parser = sub.add_parser("run", help="Dedupe, draft and queue a batch of items.")
    run_parser.add_argument("--items", type=Path, required=True, help="YAML file of candidate items.")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Draft and print posts without queueing or recording anything.",
    )

    # ── approval queue ─────────────────────────────────────────────────
    sub.add_parser("pending", help="List drafts awaiting approval.")
    approve_parser = sub.add_parser("approve", help="Publish a queued draft.")
    approve_parser.add_argument("draft_id", type=int)
    reject_parser = sub.add_parser("reject", help="Reject a queued draft.")
    reject_parser.add_argument("draft_id", type=int)

    # ── fingerprints ───────────────────────────────────────────────────
    sub.add_parser("stats", help="Show duplicate-detection statistics.")
    cleanup_parser = sub.add_parser("cleanup", help="Purge old fingerprint records.")
    cleanup_parser.add_argument(
        "--days",
        type=float,
        default=config.RETENTION_DAYS,
        help=f"Remove records older than this many days (default: {config.RETENTION_DAYS}).",
    )

    # ── budgeting ──────────────────────────────────────────────────────
    length_parser = sub.add_parser("check-length", help="Fit text, URL and hashtags into 280 characters.")
    length_parser.add_argument("text")
    length_parser.add_argument("--url")
    length_parser.add_argument("--hashtag", action="append", default=[], dest="hashtags")

    args = parser.parse_args(argv)
    setup_logging(config.LOG_LEVEL)

    try:
        if args.command == "run":
            code = _run(args.items, args.dry_run)
        elif args.command == "pending":
            code = _pending()
        elif args.command == "approve":
            code = _approve(args.draft_id)
        elif args.command == "reject":
            code = _reject(args.draft_id)
        elif args.command == "stats":
            code = _stats()
        elif args.command == "cleanup":
            code = _cleanup(args.days)
        elif args.command == "check-length":
            code = _check_length(args.text, args.url, args.hashtags)
        else:
            parser.print_help()
            code = 1
    except NewsbirdError as exc:
        logger.error("%s", exc)
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
