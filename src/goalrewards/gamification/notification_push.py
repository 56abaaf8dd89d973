"""Best-effort push notifications over Redis pub/sub.

Operations queue pushes on the session while they run; the entry point that
commits publishes them afterwards with ``flush_pushes``. A push is never part
of the balance transaction: publish failures are logged and dropped, and a
rolled-back operation discards its queue with ``discard_pushes``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_OUTBOX_KEY = "push_outbox"


def queue_push(
    db: AsyncSession,
    user_id: int,
    subtype: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
    deep_link: str | None = None,
) -> None:
    """Queue a push for delivery after the current transaction commits."""
    db.info.setdefault(_OUTBOX_KEY, []).append({
        "user_id": user_id,
        "subtype": subtype,
        "title": title,
        "body": body,
        "data": data or {},
        "deep_link": deep_link,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


def pending_pushes(db: AsyncSession) -> list[dict[str, Any]]:
    """Pushes queued on this session and not yet published."""
    return list(db.info.get(_OUTBOX_KEY, []))


def discard_pushes(db: AsyncSession) -> None:
    """Drop queued pushes (the operation that queued them rolled back)."""
    db.info.pop(_OUTBOX_KEY, None)


def push_mark(db: AsyncSession) -> int:
    """Current outbox length, for rolling back to it when a savepoint fails."""
    return len(db.info.get(_OUTBOX_KEY, []))


def truncate_pushes(db: AsyncSession, mark: int) -> None:
    """Drop pushes queued after ``mark``."""
    if _OUTBOX_KEY in db.info:
        del db.info[_OUTBOX_KEY][mark:]


async def flush_pushes(db: AsyncSession, redis: object | None) -> int:
    """Publish queued pushes to push:user:{user_id}. Returns the number published."""
    queued = db.info.pop(_OUTBOX_KEY, [])
    if redis is None or not queued:
        return 0

    published = 0
    for push in queued:
        try:
            await redis.publish(  # type: ignore[union-attr]
                f"push:user:{push['user_id']}",
                json.dumps({"event": "push", "data": push}),
            )
            published += 1
        except Exception:
            logger.warning(
                "Failed to publish %s push to user %s",
                push["subtype"], push["user_id"],
                exc_info=True,
            )
    return published


@asynccontextmanager
async def deliver_after_commit(db: AsyncSession, redis: object | None) -> AsyncIterator[None]:
    """Commit the work done in the block, then publish the pushes it queued.

    On any error the transaction is rolled back, the queued pushes are
    dropped and the error propagates.
    """
    try:
        yield
        await db.commit()
    except Exception:
        await db.rollback()
        discard_pushes(db)
        raise
    await flush_pushes(db, redis)
