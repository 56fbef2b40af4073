"""Character budgeting for tweets — grapheme-aware counting, truncation and degradation.

Counting is by user-perceived characters (extended grapheme clusters), so a
single emoji, flag or ZWJ sequence counts once. Python strings index by code
point, so there is no surrogate-pair fallback to worry about: the ``regex``
module's ``\\X`` does the segmentation everywhere.
"""

from __future__ import annotations

import logging

import regex

from newsbird.models import FitResult, LengthCheck, TweetDraft

logger = logging.getLogger(__name__)

TWEET_LIMIT = 280
URL_SEPARATOR = "\n\n"
HASHTAG_SEPARATOR = "\n"
DEFAULT_SUFFIX = "..."

_GRAPHEME_RE = regex.compile(r"\X")
_TRAILING_TAGS_RE = regex.compile(r"(?:(?:^|\s+)#\w+)+\s*$")
_TAG_RE = regex.compile(r"#\w+")


def graphemes(text: str) -> list[str]:
    return _GRAPHEME_RE.findall(text) if text else []


def grapheme_length(text: str | None) -> int:
    """Number of user-perceived characters in *text*."""
    return len(graphemes(text or ""))


def estimate_length(
    body: str,
    url: str | None = None,
    hashtags: list[str] | None = None,
) -> int:
    """Length of the composed tweet as the platform counts it.

    The URL costs two separator characters on top of its own length. The
    hashtag block costs one separator plus each tag and one space per tag,
    the last tag's trailing space included.
    """
    total = grapheme_length(body)
    if url:
        total += len(URL_SEPARATOR) + grapheme_length(url)
    if hashtags:
        total += len(HASHTAG_SEPARATOR)
        total += sum(grapheme_length(tag) + 1 for tag in hashtags)
    return total


def validate(
    body: str,
    url: str | None = None,
    hashtags: list[str] | None = None,
    limit: int = TWEET_LIMIT,
) -> LengthCheck:
    length = estimate_length(body, url, hashtags)
    return LengthCheck(valid=length <= limit, length=length, remaining=max(0, limit - length))


def truncate_to_limit(text: str, max_chars: int, suffix: str = DEFAULT_SUFFIX) -> str:
    """Cut *text* to at most *max_chars* graphemes, ending with *suffix* when cut.

    Returns ``""`` when the suffix alone leaves no room for content.
    """
    parts = graphemes(text)
    if len(parts) <= max_chars:
        return text

    room = max_chars - grapheme_length(suffix)
    if room <= 0:
        return ""
    return "".join(parts[:room]) + suffix


def extract_hashtags(text: str) -> tuple[str, list[str]]:
    """Split the trailing run of ``#tags`` off generated text.

    Inline hashtags stay part of the body; only the block at the end is
    separated so it can be dropped during degradation.
    """
    match = _TRAILING_TAGS_RE.search(text)
    if not match:
        return text.strip(), []

    tags: list[str] = []
    for tag in _TAG_RE.findall(match.group(0)):
        if tag not in tags:
            tags.append(tag)
    return text[: match.start()].strip(), tags


def _hashtag_steps(hashtags: list[str]) -> list[list[str]]:
    """Full set, then the first two, then the first one, then none."""
    steps: list[list[str]] = []
    for candidate in (hashtags, hashtags[:2], hashtags[:1], []):
        if not steps or len(candidate) < len(steps[-1]):
            steps.append(list(candidate))
    return steps


def fit_draft(
    body: str,
    url: str | None = None,
    hashtags: list[str] | None = None,
    limit: int = TWEET_LIMIT,
) -> FitResult:
    """Fit body, URL and hashtags into *limit* characters.

    The body is truncated once, against the room left after the URL (which
    is never dropped). Hashtags are then dropped from the end until the draft
    fits. If it still does not fit with no hashtags, or the URL leaves no
    room for any body text, the result is invalid.
    """
    tags = list(hashtags or [])
    url_room = len(URL_SEPARATOR) + grapheme_length(url) if url else 0

    fitted_body = truncate_to_limit(body, limit - url_room)
    body_truncated = fitted_body != body
    if body_truncated:
        logger.debug(
            "Body truncated from %d to %d graphemes",
            grapheme_length(body),
            grapheme_length(fitted_body),
        )

    check = LengthCheck(valid=False, length=0, remaining=0)
    # A URL that leaves no room for any body text cannot be posted.
    steps = _hashtag_steps(tags) if fitted_body or not body.strip() else []
    for step in steps:
        check = validate(fitted_body, url, step, limit)
        if check.valid:
            return FitResult(
                draft=TweetDraft(body=fitted_body, url=url, hashtags=step),
                check=check,
                hashtags_dropped=len(tags) - len(step),
                body_truncated=body_truncated,
            )

    if not steps:
        length = estimate_length(fitted_body, url)
        check = LengthCheck(valid=False, length=length, remaining=max(0, limit - length))
    logger.warning("Draft does not fit in %d characters (length=%d)", limit, check.length)
    return FitResult(
        draft=TweetDraft(body=fitted_body, url=url, hashtags=[]),
        check=check,
        hashtags_dropped=len(tags),
        body_truncated=body_truncated,
    )


def compose(draft: TweetDraft) -> str:
    """Render a draft as the text sent to the platform."""
    text = draft.body
    if draft.url:
        text += URL_SEPARATOR + draft.url
    if draft.hashtags:
        text += HASHTAG_SEPARATOR + " ".join(draft.hashtags)
    return text
