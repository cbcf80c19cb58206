"""Key/value record store — the repository interface every component receives.

Two implementations:
- PostgresStore: kv_entries table via SQLAlchemy async (production)
- InMemoryStore: dict-backed, for tests and local runs

Values are JSON documents (dicts). Reads and writes are whole-document
get/put with no version token; the last write wins.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from spawnkit.storage.database import Database
from spawnkit.storage.models import KvEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


class MemoryStore(Protocol):
    """Get/Put/Delete/ListByPrefix over JSON documents."""

    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list_by_prefix(self, prefix: str) -> list[str]: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryStore:
    """Dict-backed store honoring TTLs lazily on read."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utcnow
        self._data: dict[str, tuple[dict[str, Any], datetime | None]] = {}

    def _live(self, key: str) -> dict[str, Any] | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> dict[str, Any] | None:
        value = self._live(key)
        # Hand out copies so callers can't mutate stored state in place
        return copy.deepcopy(value) if value is not None else None

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        expires_at = None
        if ttl_seconds:
            expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        self._data[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_by_prefix(self, prefix: str) -> list[str]:
        keys = [k for k in list(self._data) if k.startswith(prefix)]
        return sorted(k for k in keys if self._live(k) is not None)

    def ttl_of(self, key: str) -> datetime | None:
        """Storage expiry of a key (test helper)."""
        item = self._data.get(key)
        return item[1] if item else None


# ---------------------------------------------------------------------------
# Postgres
# ---------------------------------------------------------------------------


class PostgresStore:
    """kv_entries-backed store. Expired rows are invisible to reads."""

    def __init__(self, db: Database, clock: Clock | None = None) -> None:
        self.db = db
        self._clock = clock or utcnow

    def _not_expired(self, now: datetime):
        return or_(KvEntry.expires_at.is_(None), KvEntry.expires_at > now)

    async def get(self, key: str) -> dict[str, Any] | None:
        now = self._clock()
        async with self.db.session() as session:
            result = await session.execute(
                select(KvEntry.value).where(KvEntry.key == key, self._not_expired(now))
            )
            return result.scalar_one_or_none()

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        stmt = (
            pg_insert(KvEntry)
            .values(key=key, value=value, expires_at=expires_at, updated_at=now)
            .on_conflict_do_update(
                index_elements=[KvEntry.key],
                set_={"value": value, "expires_at": expires_at, "updated_at": now},
            )
        )
        async with self.db.session() as session:
            await session.execute(stmt)
            await session.commit()

    async def delete(self, key: str) -> None:
        async with self.db.session() as session:
            await session.execute(delete(KvEntry).where(KvEntry.key == key))
            await session.commit()

    async def list_by_prefix(self, prefix: str) -> list[str]:
        now = self._clock()
        async with self.db.session() as session:
            result = await session.execute(
                select(KvEntry.key)
                .where(KvEntry.key.startswith(prefix, autoescape=True), self._not_expired(now))
                .order_by(KvEntry.key)
            )
            return list(result.scalars().all())

    async def purge_expired(self) -> int:
        """Delete rows whose storage TTL has passed. Returns rows removed."""
        now = self._clock()
        async with self.db.session() as session:
            result = await session.execute(
                delete(KvEntry).where(KvEntry.expires_at.is_not(None), KvEntry.expires_at <= now)
            )
            await session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Purged %d expired store entries", removed)
        return removed
