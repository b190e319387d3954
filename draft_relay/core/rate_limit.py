"""
rate_limit.py — Per-caller minute/day quotas over an expiring counter store.

Each caller gets two counters:
    m:<ip>:<YYYY-MM-DDTHH:MM>   expires after 90 s
    d:<ip>:<YYYY-MM-DD>         expires after 24 h + 60 s

A new minute/day produces a new key, so the old bucket simply stops being
read and expires on its own. There is no explicit reset.

The check is read-then-write, not an atomic increment. Concurrent bursts
from one caller can slip a few requests past the nominal limit; that is
acceptable for a low-stakes quota and keeps the store interface tiny.

Usage in routes:
    limiter = RateLimiter(store, settings.minute_limit, settings.daily_limit)
    quota = await limiter.check(caller_identity(request))
    if quota.exceeded:
        ...  # 429
    limiter.schedule_increment(quota, background_tasks)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks, Request

from draft_relay.core.config import settings
from draft_relay.core.counter_store import CounterStore

logger = logging.getLogger(__name__)

ANONYMOUS_CALLER = "anon"
MINUTE_TTL_SECONDS = 90
DAY_TTL_SECONDS = 60 * 60 * 24 + 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def caller_identity(request: Request) -> str:
    """Caller IP from the trusted proxy header, or "anon" when absent."""
    return request.headers.get(settings.caller_ip_header) or ANONYMOUS_CALLER


def bucket_keys(identity: str, now: datetime) -> tuple[str, str]:
    """
    Return (minute_key, day_key) for *identity* at *now*.

    Naive datetimes are taken as UTC; aware ones are converted to UTC so
    buckets line up regardless of the server's local zone.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    return (
        f"m:{identity}:{now:%Y-%m-%dT%H:%M}",
        f"d:{identity}:{now:%Y-%m-%d}",
    )


def _as_count(raw: Optional[str]) -> int:
    # Missing or garbage values count as an empty bucket
    try:
        return int(raw) if raw else 0
    except ValueError:
        return 0


@dataclass(frozen=True)
class QuotaCheck:
    identity: str
    minute_key: str
    day_key: str
    minute_count: int
    day_count: int
    exceeded: bool


class RateLimiter:
    def __init__(self, store: CounterStore, minute_limit: int, daily_limit: int) -> None:
        self.store = store
        self.minute_limit = minute_limit
        self.daily_limit = daily_limit

    async def check(self, identity: str, now: Optional[datetime] = None) -> QuotaCheck:
        """Read both buckets and decide whether *identity* is over quota."""
        minute_key, day_key = bucket_keys(identity, now or utcnow())
        minute_count = _as_count(await self.store.get(minute_key))
        day_count = _as_count(await self.store.get(day_key))
        exceeded = minute_count >= self.minute_limit or day_count >= self.daily_limit
        if exceeded:
            logger.info(
                "Rate limit exceeded for %s (minute=%d/%d, day=%d/%d)",
                identity,
                minute_count,
                self.minute_limit,
                day_count,
                self.daily_limit,
            )
        return QuotaCheck(
            identity=identity,
            minute_key=minute_key,
            day_key=day_key,
            minute_count=minute_count,
            day_count=day_count,
            exceeded=exceeded,
        )

    def schedule_increment(self, quota: QuotaCheck, background_tasks: BackgroundTasks) -> None:
        """
        Queue the counter writes to run after the response has been sent.

        Starlette runs BackgroundTasks once the body is flushed, so the
        caller never waits on the store write.
        """
        background_tasks.add_task(
            self.store.put, quota.minute_key, str(quota.minute_count + 1), MINUTE_TTL_SECONDS
        )
        background_tasks.add_task(
            self.store.put, quota.day_key, str(quota.day_count + 1), DAY_TTL_SECONDS
        )
