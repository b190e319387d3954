"""
Expiring key-value counter storage for rate limiting.

The request handler only needs two operations, get(key) and
put(key, value, expiration_ttl), so the store is modelled as a small
Protocol and injected into routes via FastAPI dependency injection
(get_counter_store). Two backends:

  - MemoryCounterStore (default): in-process dict with lazy expiry.
    Fine for a single instance; counters reset on restart.
  - MongoCounterStore: Motor collection with a TTL index on expires_at,
    so counters are shared across instances and reaped by MongoDB.

Selection happens once at startup (connect_counter_store, called from the
lifespan). If MongoDB is configured but unreachable, we log a warning and
run with the memory store rather than refusing to start.
"""

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection

from draft_relay.core.config import settings

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    """Minimal async KV interface with per-entry expiry."""

    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, expiration_ttl: int) -> None: ...


class MemoryCounterStore:
    """
    Dict-backed store. Expired entries are dropped when read.

    `clock` returns seconds since the epoch; tests pass a controllable
    clock to simulate bucket expiry without sleeping.
    """

    kind = "memory"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def put(self, key: str, value: str, expiration_ttl: int) -> None:
        self._entries[key] = (value, self._clock() + expiration_ttl)

    def reset(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MongoCounterStore:
    """
    Counters as documents: {_id: key, value: "3", expires_at: <datetime>}.

    MongoDB's TTL monitor only runs about once a minute, so get() also
    checks expires_at itself; a 90 s minute bucket must not outlive its
    window by a full TTL sweep.
    """

    kind = "mongo"

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.collection = collection
        self._clock = clock

    async def ensure_indexes(self) -> None:
        await self.collection.create_index("expires_at", expireAfterSeconds=0)

    async def get(self, key: str) -> Optional[str]:
        doc = await self.collection.find_one({"_id": key})
        if doc is None:
            return None
        expires_at = doc.get("expires_at")
        if expires_at is not None:
            # PyMongo hands back naive datetimes that are implicitly UTC
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= self._clock():
                return None
        return doc.get("value")

    async def put(self, key: str, value: str, expiration_ttl: int) -> None:
        expires_at = self._clock() + timedelta(seconds=expiration_ttl)
        await self.collection.update_one(
            {"_id": key},
            {"$set": {"value": value, "expires_at": expires_at}},
            upsert=True,
        )


class CounterStoreHolder:
    """
    Holds the active store and (when used) the Motor client.

    Tests swap .store and .client on this object directly.
    """

    store: CounterStore = MemoryCounterStore()
    client: AsyncIOMotorClient | None = None


# Module-level singleton — all app code references this object
counter_store_holder = CounterStoreHolder()


async def connect_counter_store() -> None:
    """
    Select and initialise the counter store. Called once at app startup.

    Falls back to the in-memory store when MongoDB cannot be reached, so
    the endpoint keeps serving (with per-instance limits) instead of
    crashing the whole server.
    """
    if settings.counter_store != "mongo":
        counter_store_holder.store = MemoryCounterStore()
        logger.info("Using in-memory counter store")
        return

    logger.info("Connecting counter store to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        counter_store_holder.client = AsyncIOMotorClient(
            settings.mongo_uri,
            # Fail fast; a hung startup is worse than degraded limits
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
        )
        await counter_store_holder.client.admin.command("ping")
        collection = counter_store_holder.client[settings.mongo_db_name][settings.mongo_collection]
        store = MongoCounterStore(collection)
        await store.ensure_indexes()
        counter_store_holder.store = store
        logger.info(
            "MongoDB counter store ready (db: %s, collection: %s)",
            settings.mongo_db_name,
            settings.mongo_collection,
        )
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "Falling back to in-memory counters — limits are per-instance.",
            exc,
        )
        if counter_store_holder.client is not None:
            counter_store_holder.client.close()
        counter_store_holder.client = None
        counter_store_holder.store = MemoryCounterStore()


async def close_counter_store() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if counter_store_holder.client is not None:
        counter_store_holder.client.close()
        counter_store_holder.client = None
        logger.info("MongoDB connection closed")


def get_counter_store() -> CounterStore:
    """
    FastAPI dependency — inject the active counter store into route handlers.

    Tests override this with app.dependency_overrides to supply a
    MemoryCounterStore driven by a manual clock.
    """
    return counter_store_holder.store


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
