"""Upstream provider contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from reader_sync.sync.models import IncomingArticle


@dataclass(slots=True)
class FetchError(Exception):
    """Upstream stream request failed; the sync run must not advance its watermark."""

    message: str
    code: str = "fetch_error"
    status_code: int | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class RateLimitedError(FetchError):
    """Provider rejected the request because the quota is exhausted."""

    code: str = "rate_limited"
    retry_after: int | None = None


@dataclass(slots=True, frozen=True)
class StreamRequest:
    """Parameters of one upstream stream fetch."""

    max_items: int
    since: int | None = None
    exclude_read: bool = True


class StreamProvider(Protocol):
    """Interface for upstream article providers."""

    name: str

    def fetch_stream(self, request: StreamRequest) -> list[IncomingArticle]:
        """Fetch articles matching the request."""
        raise NotImplementedError
