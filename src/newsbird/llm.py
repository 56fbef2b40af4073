"""LLM-powered tweet writer — drafts a post for one content item."""

from __future__ import annotations

import logging
from typing import Any

from openai import OpenAI, OpenAIError

from newsbird.errors import GenerationUnavailable
from newsbird.models import ContentItem
from newsbird.text_budget import TWEET_LIMIT, URL_SEPARATOR, grapheme_length

logger = logging.getLogger(__name__)

# ── System prompt used for every drafting call ─────────────────────────────
_SYSTEM_PROMPT = (
    "You write engaging posts for a tech news account on X. "
    "Be factual and specific. Never invent details that are not in the source. "
    "Reply with the post text only."
)

# Prompts never ask for less room than this, even for very long URLs.
_MIN_BODY_CHARS = 200


def body_budget(url: str | None) -> int:
    """Characters the generated body may use once the URL is appended."""
    url_room = len(URL_SEPARATOR) + grapheme_length(url) if url else 0
    return max(_MIN_BODY_CHARS, TWEET_LIMIT - url_room)


def build_prompt(item: ContentItem) -> str:
    """Build the user prompt for *item*."""
    limit = body_budget(item.url)
    lines = [
        f"Create an engaging post based on this {item.source} item. The post should:",
        f"- be at most {limit} characters (the item URL is added afterwards)",
        "- end with 2-3 relevant hashtags",
        "- start with one fitting emoji",
        "- focus on the main news or trend",
        "- NOT include the item URL",
        "",
        f"Title: {item.title}",
    ]
    if item.description:
        lines.append(f"Description: {item.description}")
    lines.append(f"Published: {item.published_at:%Y-%m-%d}")
    return "\n".join(lines)


class TweetWriter:
    """Text completion over an OpenAI-compatible chat API."""

    def __init__(self, api_key: str, model: str, base_url: str = "") -> None:
        self._model = model
        self._client: Any = None

        if not api_key:
            logger.warning("LLM_API_KEY not set — generation is unavailable.")
            return
        self._client = OpenAI(api_key=api_key, base_url=base_url or None)

    # ── public ──────────────────────────────────────────────────────────

    @property
    def available(self) -> bool:
        return self._client is not None

    def complete(self, prompt: str) -> str:
        """Return the model's reply to *prompt*.

        Raises :class:`GenerationUnavailable` when no client is configured,
        the API call fails, or the reply is empty.
        """
        if self._client is None:
            raise GenerationUnavailable("No LLM client configured")

        try:
            resp = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
                max_tokens=200,
            )
        except OpenAIError as exc:
            raise GenerationUnavailable(f"LLM call failed: {exc}") from exc

        text = self._clean(resp.choices[0].message.content if resp.choices else "")
        if not text:
            raise GenerationUnavailable("LLM returned an empty reply")
        return text

    # ── private ─────────────────────────────────────────────────────────

    @staticmethod
    def _clean(raw: str | None) -> str:
        """Strip whitespace and wrapping quotes the model sometimes adds."""
        text = (raw or "").strip()
        if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
            text = text[1:-1].strip()
        return text
