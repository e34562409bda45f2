"""Persistent cache tier.

The persistent tier is authoritative for durability; the memory tier in
CacheManager is only a working-set view of it. Stores receive and return
CacheEntry objects and handle payload compression themselves.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mangekyo.core.translation.errors import CacheUnavailableError
from mangekyo.models.database.cache_entry import CacheEntryRecord

from .compression import COMPRESSION_THRESHOLD, decode_payload, encode_payload
from .models import CacheEntry

logger = logging.getLogger(__name__)

Pattern = Union[str, "re.Pattern[str]"]


def matches_pattern(pattern: Pattern, key: str, source_text: str, manga_id: Optional[str]) -> bool:
    """Check a cache entry against an invalidation pattern.

    A plain string matches when it is contained in the key or source text,
    or equals the manga id. A compiled regex is searched in the same fields.
    """
    if isinstance(pattern, str):
        return pattern in key or pattern in source_text or pattern == manga_id
    return bool(
        pattern.search(key) or pattern.search(source_text) or (manga_id and pattern.search(manga_id))
    )


def _split_entry(entry: CacheEntry, threshold: int) -> Tuple[str, bool, int]:
    return encode_payload(
        {"translated_text": entry.translated_text, "result": entry.result}, threshold
    )


class PersistentStore(ABC):
    """Durable key-value store for cache entries."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    async def set(self, entry: CacheEntry) -> int:
        """Store an entry. Returns bytes saved by compression."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def record_access(self, key: str, when: datetime) -> None:
        pass

    @abstractmethod
    async def get_most_accessed(self, limit: int) -> List[CacheEntry]:
        pass

    @abstractmethod
    async def get_by_language_pair(
        self, source_lang: str, target_lang: str, limit: int, scope: Optional[str] = None
    ) -> List[CacheEntry]:
        """Most recently used unexpired entries for a language pair.

        When scope is given only entries cached under that scope are returned.
        """
        pass

    @abstractmethod
    async def evict_lru(self, count: int) -> int:
        """Delete the count least recently accessed entries."""
        pass

    @abstractmethod
    async def delete_matching(self, pattern: Pattern) -> int:
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class InMemoryCacheStore(PersistentStore):
    """Dict-backed store for tests and memory-only deployments."""

    def __init__(self, compression_threshold: int = COMPRESSION_THRESHOLD):
        self.compression_threshold = compression_threshold
        self._rows: Dict[str, Dict[str, Any]] = {}

    def _to_entry(self, row: Dict[str, Any]) -> CacheEntry:
        data = decode_payload(row["payload"], row["compressed"])
        return row["entry"].model_copy(
            update={"translated_text": data["translated_text"], "result": data["result"]}
        )

    async def get(self, key: str) -> Optional[CacheEntry]:
        row = self._rows.get(key)
        return self._to_entry(row) if row else None

    async def set(self, entry: CacheEntry) -> int:
        payload, compressed, saved = _split_entry(entry, self.compression_threshold)
        self._rows[entry.key] = {
            "entry": entry.model_copy(update={"translated_text": "", "result": {}}),
            "payload": payload,
            "compressed": compressed,
        }
        return saved

    def is_compressed(self, key: str) -> bool:
        row = self._rows.get(key)
        return bool(row and row["compressed"])

    async def delete(self, key: str) -> bool:
        return self._rows.pop(key, None) is not None

    async def count(self) -> int:
        return len(self._rows)

    async def record_access(self, key: str, when: datetime) -> None:
        row = self._rows.get(key)
        if row:
            row["entry"].touch(when)

    async def get_most_accessed(self, limit: int) -> List[CacheEntry]:
        rows = sorted(self._rows.values(), key=lambda r: r["entry"].access_count, reverse=True)
        return [self._to_entry(r) for r in rows[:limit]]

    async def get_by_language_pair(
        self, source_lang: str, target_lang: str, limit: int, scope: Optional[str] = None
    ) -> List[CacheEntry]:
        now = datetime.utcnow()
        rows = [
            r for r in self._rows.values()
            if r["entry"].source_lang == source_lang
            and r["entry"].target_lang == target_lang
            and (scope is None or r["entry"].scope == scope)
            and not r["entry"].is_expired(now)
        ]
        rows.sort(key=lambda r: r["entry"].last_accessed, reverse=True)
        return [self._to_entry(r) for r in rows[:limit]]

    async def evict_lru(self, count: int) -> int:
        if count <= 0:
            return 0
        rows = sorted(self._rows.values(), key=lambda r: r["entry"].last_accessed)
        victims = [r["entry"].key for r in rows[:count]]
        for key in victims:
            del self._rows[key]
        return len(victims)

    async def delete_matching(self, pattern: Pattern) -> int:
        victims = [
            key for key, row in self._rows.items()
            if matches_pattern(pattern, key, row["entry"].source_text, row["entry"].manga_id)
        ]
        for key in victims:
            del self._rows[key]
        return len(victims)

    async def delete_expired(self, now: datetime) -> int:
        victims = [key for key, row in self._rows.items() if row["entry"].is_expired(now)]
        for key in victims:
            del self._rows[key]
        return len(victims)

    async def clear(self) -> None:
        self._rows.clear()


class SQLAlchemyCacheStore(PersistentStore):
    """Cache store backed by the cache_entries table.

    Database failures are raised as CacheUnavailableError; CacheManager logs
    them and carries on with the memory tier.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        compression_threshold: int = COMPRESSION_THRESHOLD,
    ):
        self._session_maker = session_maker
        self.compression_threshold = compression_threshold

    @staticmethod
    def _to_entry(record: CacheEntryRecord) -> CacheEntry:
        data = decode_payload(record.payload, record.compressed)
        return CacheEntry(
            key=record.key,
            source_text=record.source_text,
            normalized_text=record.normalized_text,
            translated_text=data["translated_text"],
            source_lang=record.source_lang,
            target_lang=record.target_lang,
            engine=record.engine,
            confidence=record.confidence,
            manga_id=record.manga_id,
            scope=record.scope or "",
            result=data["result"],
            created_at=record.created_at,
            last_accessed=record.last_accessed,
            access_count=record.access_count,
            ttl_seconds=record.ttl_seconds,
        )

    def _unavailable(self, operation: str, exc: SQLAlchemyError) -> CacheUnavailableError:
        return CacheUnavailableError(
            f"Cache store {operation} failed: {exc}", details={"operation": operation}
        )

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            async with self._session_maker() as session:
                record = await session.get(CacheEntryRecord, key)
                return self._to_entry(record) if record else None
        except SQLAlchemyError as e:
            raise self._unavailable("get", e)

    async def set(self, entry: CacheEntry) -> int:
        payload, compressed, saved = _split_entry(entry, self.compression_threshold)
        record = CacheEntryRecord(
            key=entry.key,
            source_text=entry.source_text,
            normalized_text=entry.normalized_text,
            payload=payload,
            compressed=compressed,
            source_lang=entry.source_lang,
            target_lang=entry.target_lang,
            engine=entry.engine,
            manga_id=entry.manga_id,
            scope=entry.scope,
            confidence=entry.confidence,
            access_count=entry.access_count,
            ttl_seconds=entry.ttl_seconds,
            created_at=entry.created_at,
            last_accessed=entry.last_accessed,
            expires_at=entry.expires_at,
        )
        try:
            async with self._session_maker() as session:
                await session.merge(record)
                await session.commit()
        except SQLAlchemyError as e:
            raise self._unavailable("set", e)
        return saved

    async def delete(self, key: str) -> bool:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(CacheEntryRecord).where(CacheEntryRecord.key == key)
                )
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise self._unavailable("delete", e)

    async def count(self) -> int:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(func.count()).select_from(CacheEntryRecord))
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise self._unavailable("count", e)

    async def record_access(self, key: str, when: datetime) -> None:
        try:
            async with self._session_maker() as session:
                await session.execute(
                    update(CacheEntryRecord)
                    .where(CacheEntryRecord.key == key)
                    .values(
                        access_count=CacheEntryRecord.access_count + 1,
                        last_accessed=when,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise self._unavailable("record_access", e)

    async def get_most_accessed(self, limit: int) -> List[CacheEntry]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(CacheEntryRecord)
                    .order_by(CacheEntryRecord.access_count.desc())
                    .limit(limit)
                )
                return [self._to_entry(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._unavailable("get_most_accessed", e)

    async def get_by_language_pair(
        self, source_lang: str, target_lang: str, limit: int, scope: Optional[str] = None
    ) -> List[CacheEntry]:
        query = select(CacheEntryRecord).where(
            CacheEntryRecord.source_lang == source_lang,
            CacheEntryRecord.target_lang == target_lang,
            CacheEntryRecord.expires_at > datetime.utcnow(),
        )
        if scope is not None:
            query = query.where(CacheEntryRecord.scope == scope)
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    query
                    .order_by(CacheEntryRecord.last_accessed.desc())
                    .limit(limit)
                )
                return [self._to_entry(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._unavailable("get_by_language_pair", e)

    async def evict_lru(self, count: int) -> int:
        if count <= 0:
            return 0
        try:
            async with self._session_maker() as session:
                oldest = (
                    select(CacheEntryRecord.key)
                    .order_by(CacheEntryRecord.last_accessed.asc())
                    .limit(count)
                )
                keys = list((await session.execute(oldest)).scalars().all())
                if keys:
                    await session.execute(
                        delete(CacheEntryRecord).where(CacheEntryRecord.key.in_(keys))
                    )
                    await session.commit()
                return len(keys)
        except SQLAlchemyError as e:
            raise self._unavailable("evict_lru", e)

    async def delete_matching(self, pattern: Pattern) -> int:
        try:
            async with self._session_maker() as session:
                if isinstance(pattern, str):
                    result = await session.execute(
                        delete(CacheEntryRecord).where(
                            or_(
                                CacheEntryRecord.key.contains(pattern, autoescape=True),
                                CacheEntryRecord.source_text.contains(pattern, autoescape=True),
                                CacheEntryRecord.manga_id == pattern,
                            )
                        )
                    )
                    await session.commit()
                    return result.rowcount

                rows = await session.execute(
                    select(
                        CacheEntryRecord.key,
                        CacheEntryRecord.source_text,
                        CacheEntryRecord.manga_id,
                    )
                )
                keys = [
                    key for key, source_text, manga_id in rows.all()
                    if matches_pattern(pattern, key, source_text, manga_id)
                ]
                if keys:
                    await session.execute(
                        delete(CacheEntryRecord).where(CacheEntryRecord.key.in_(keys))
                    )
                    await session.commit()
                return len(keys)
        except SQLAlchemyError as e:
            raise self._unavailable("delete_matching", e)

    async def delete_expired(self, now: datetime) -> int:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(CacheEntryRecord).where(CacheEntryRecord.expires_at <= now)
                )
                await session.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            raise self._unavailable("delete_expired", e)

    async def clear(self) -> None:
        try:
            async with self._session_maker() as session:
                await session.execute(delete(CacheEntryRecord))
                await session.commit()
        except SQLAlchemyError as e:
            raise self._unavailable("clear", e)
