"""Minimal X API v2 client for creating posts."""

from __future__ import annotations

import logging
from typing import Any

import requests

from newsbird.models import PublishResult

logger = logging.getLogger(__name__)

_CREATE_TWEET_PATH = "/2/tweets"


class XPublisher:
    """Thin wrapper around ``POST /2/tweets`` using a user-context bearer token."""

    def __init__(
        self,
        access_token: str,
        api_base: str = "https://api.twitter.com",
        request_timeout: float = 30,
    ) -> None:
        if not access_token:
            raise ValueError("X_ACCESS_TOKEN is required but was empty.")
        self._url = api_base.rstrip("/") + _CREATE_TWEET_PATH
        self._timeout = request_timeout
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            }
        )

    # ── public ──────────────────────────────────────────────────────────

    def publish(self, text: str) -> PublishResult:
        """Post *text*; return the new post id, or the error the API reported."""
        if not text.strip():
            return PublishResult(error="Post text is empty")

        try:
            resp = self._session.post(self._url, json={"text": text}, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("X API request failed: %s", exc)
            return PublishResult(error=f"Request failed: {exc}")

        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After", "?")
            logger.warning("Rate-limited by X API; retry after %ss", retry_after)
            return PublishResult(error=f"Rate-limited (retry after {retry_after}s)")

        data = self._json(resp)
        tweet_id = (data.get("data") or {}).get("id")
        if resp.status_code in (200, 201) and tweet_id:
            logger.info("Published post %s", tweet_id)
            return PublishResult(tweet_id=str(tweet_id))

        return PublishResult(error=self._error_message(resp, data))

    # ── private ─────────────────────────────────────────────────────────

    @staticmethod
    def _json(resp: requests.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_message(resp: requests.Response, data: dict[str, Any]) -> str:
        errors: list[dict[str, Any]] = data.get("errors") or []
        if errors:
            return ", ".join(str(e.get("message") or e.get("detail") or e) for e in errors)
        if data.get("detail"):
            return str(data["detail"])
        return f"X API returned {resp.status_code}: {resp.text[:500]}"
