"""Resolution of local read/star edits against upstream state."""

from __future__ import annotations

from dataclasses import replace

from reader_sync.sync.models import (
    ConflictRecord,
    ConflictResolution,
    IncomingArticle,
    StoredArticleState,
)


def resolve_article_state(
    incoming: IncomingArticle,
    stored: StoredArticleState | None,
) -> tuple[IncomingArticle, ConflictRecord | None]:
    """Return the article to write and the conflict it caused, if any.

    A local edit newer than the last sync keeps the local read/star flags.
    Older local edits lose to upstream.
    """

    if stored is None or stored.last_local_update is None:
        return incoming, None

    differs = (
        stored.is_read != incoming.is_read or stored.is_starred != incoming.is_starred
    )
    synced_at = stored.last_sync_update or stored.created_at
    if stored.last_local_update > synced_at:
        conflict = (
            _conflict(incoming, stored, ConflictResolution.LOCAL) if differs else None
        )
        return (
            replace(incoming, is_read=stored.is_read, is_starred=stored.is_starred),
            conflict,
        )

    if differs:
        return incoming, _conflict(incoming, stored, ConflictResolution.REMOTE)
    return incoming, None


def _conflict(
    incoming: IncomingArticle,
    stored: StoredArticleState,
    resolution: ConflictResolution,
) -> ConflictRecord:
    return ConflictRecord(
        provider_id=incoming.provider_id,
        resolution=resolution,
        local_is_read=stored.is_read,
        local_is_starred=stored.is_starred,
        remote_is_read=incoming.is_read,
        remote_is_starred=incoming.is_starred,
    )
