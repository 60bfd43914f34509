"""Inoreader (Google Reader API) stream client."""

from __future__ import annotations

import html
import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from reader_sync.config import ProviderSettings
from reader_sync.sync.models import IncomingArticle
from reader_sync.sync.sources.base import FetchError, RateLimitedError, StreamRequest
from reader_sync.usage.counter import UsageCounter

logger = logging.getLogger(__name__)

READING_LIST_PATH = "/reader/api/0/stream/contents/user/-/state/com.google/reading-list"
READ_STATE = "user/-/state/com.google/read"
STARRED_STATE = "user/-/state/com.google/starred"
HTTP_TOO_MANY_REQUESTS = 429
DEFAULT_TITLE = "Untitled"


class InoreaderStreamClient:
    """Fetches the reading list and maps stream items to incoming articles."""

    def __init__(
        self,
        *,
        settings: ProviderSettings,
        usage_counter: UsageCounter | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.name = settings.service_name
        self.settings = settings
        self.usage_counter = usage_counter

        headers = {"Accept": "application/json"}
        if settings.access_token:
            headers["Authorization"] = f"Bearer {settings.access_token}"
        if settings.app_id:
            headers["AppId"] = settings.app_id
        if settings.app_key:
            headers["AppKey"] = settings.app_key

        self._client = httpx.Client(
            base_url=settings.base_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            headers=headers,
            transport=transport or httpx.HTTPTransport(retries=settings.max_retries),
            follow_redirects=True,
        )

    def fetch_stream(self, request: StreamRequest) -> list[IncomingArticle]:
        params: dict[str, str | int] = {"n": request.max_items}
        if request.exclude_read:
            params["xt"] = READ_STATE
        if request.since is not None:
            params["ot"] = request.since

        try:
            response = self._client.get(READING_LIST_PATH, params=params)
        except httpx.HTTPError as exc:
            raise FetchError(message=f"Stream request failed: {exc}", code="transport") from exc

        self._record_call(response)

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise RateLimitedError(
                message="Provider rate limit exceeded",
                status_code=response.status_code,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if not response.is_success:
            raise FetchError(
                message=f"Stream request failed with HTTP {response.status_code}",
                code=str(response.status_code),
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(message="Stream response is not valid JSON", code="payload") from exc

        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise FetchError(message="Stream response has no items list", code="payload")

        articles: list[IncomingArticle] = []
        for item in items:
            article = _map_item(item)
            if article is None:
                logger.warning("Skipping stream item without id")
                continue
            articles.append(article)
        return articles

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> InoreaderStreamClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _record_call(self, response: httpx.Response) -> None:
        if self.usage_counter is None:
            return
        self.usage_counter.record_provider_call(self.name, dict(response.headers))


def _map_item(item: Any) -> IncomingArticle | None:
    if not isinstance(item, dict) or not item.get("id"):
        return None

    categories = item.get("categories")
    if not isinstance(categories, list):
        categories = []
    content = _nested_text(item.get("content"), "content") or _nested_text(
        item.get("summary"),
        "content",
    )
    return IncomingArticle(
        provider_id=str(item["id"]),
        feed_id=_nested_text(item.get("origin"), "streamId"),
        title=html.unescape(_text(item.get("title"))) or DEFAULT_TITLE,
        author=_text(item.get("author")) or None,
        content=html.unescape(content or ""),
        url=_first_href(item.get("canonical")) or _first_href(item.get("alternate")) or "",
        published_at=_parse_published(item.get("published")),
        is_read=READ_STATE in categories,
        is_starred=STARRED_STATE in categories,
    )


def _nested_text(value: Any, key: str) -> str | None:
    if not isinstance(value, dict):
        return None
    return _text(value.get(key)) or None


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _first_href(links: Any) -> str | None:
    if not isinstance(links, list) or not links:
        return None
    first = links[0]
    if not isinstance(first, dict):
        return None
    return _text(first.get("href")) or None


def _parse_published(value: Any) -> datetime | None:
    if value in (None, "", 0):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _parse_retry_after(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None
