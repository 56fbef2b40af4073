"""Load candidate content items written by an ingestion step."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as ModelValidationError

from newsbird.models import ContentItem

logger = logging.getLogger(__name__)


def _parse_entry(raw: dict[str, Any], source: str | None = None) -> ContentItem | None:
    data = dict(raw)
    if source and not data.get("source"):
        data["source"] = source
    # Feeds without a timestamp are treated as published now.
    if not data.get("published_at"):
        data["published_at"] = data.pop("publishedAt", None) or datetime.now(UTC)
    try:
        return ContentItem.model_validate(data)
    except ModelValidationError as exc:
        logger.warning("Skipping malformed item %r: %s", data.get("title", "?"), exc.errors()[0]["msg"])
        return None


def load_items(items_path: Path) -> list[ContentItem]:
    """Parse an items file and return its content items.

    The file may be a plain list of items, a mapping with an ``items`` list,
    or a mapping with ``sources``: source-name → list of items (the source
    tag is then filled in from the key). Each item needs ``title``, ``url``
    and ``source``; ``published_at`` and ``description`` are optional.
    """
    with open(items_path, encoding="utf-8") as fh:
        cfg: Any = yaml.safe_load(fh) or {}

    entries: list[tuple[dict[str, Any], str | None]] = []
    if isinstance(cfg, list):
        entries = [(raw, None) for raw in cfg]
    else:
        entries = [(raw, None) for raw in cfg.get("items", []) or []]
        sources: dict[str, Any] = cfg.get("sources", {}) or {}
        for name, group in sources.items():
            if not group:
                logger.warning("Skipping empty source group: %s", name)
                continue
            entries.extend((raw, name) for raw in group)

    items: list[ContentItem] = []
    for raw, source in entries:
        if not isinstance(raw, dict):
            logger.warning("Skipping non-mapping item entry: %r", raw)
            continue
        item = _parse_entry(raw, source)
        if item is not None:
            items.append(item)

    logger.info("Loaded %d items from %s", len(items), items_path)
    return items
