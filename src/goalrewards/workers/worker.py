"""arq worker that runs the scheduled reward jobs.

Import path for arq CLI: arq goalrewards.workers.worker.WorkerSettings
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings

from goalrewards.config import get_settings
from goalrewards.database import close_db, get_session_factory, init_db
from goalrewards.gamification.jobs import (
    run_badge_auto_unlock,
    run_referral_expiry,
    run_referral_tier_checks,
)
from goalrewards.middleware.logging import setup_logging

logger = logging.getLogger(__name__)


def _every(minutes: int) -> set[int]:
    return set(range(0, 60, max(1, minutes)))


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB and the pub/sub Redis connection on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    logger.info("Reward jobs worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Reward jobs worker shut down")


async def badge_auto_unlock(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: unlock badges users qualify for."""
    async with get_session_factory()() as db:
        return await run_badge_auto_unlock(db, ctx.get("redis"))


async def referral_tier_checks(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: promote referrals whose referred user logged in or subscribed."""
    async with get_session_factory()() as db:
        return await run_referral_tier_checks(db, redis=ctx.get("redis"))


async def referral_expiry(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: expire stale pending referrals (hourly)."""
    async with get_session_factory()() as db:
        return await run_referral_expiry(db)


_settings = get_settings()


class WorkerSettings:
    """arq worker settings for the scheduled reward jobs."""

    functions = [badge_auto_unlock, referral_tier_checks, referral_expiry]
    cron_jobs = [
        cron(badge_auto_unlock, minute=_every(_settings.badge_scan_interval_minutes), run_at_startup=True),
        cron(referral_tier_checks, minute=_every(_settings.referral_check_interval_minutes)),
        cron(referral_expiry, minute=0),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(_settings.redis_url)
    max_jobs = 4
    job_timeout = 600
