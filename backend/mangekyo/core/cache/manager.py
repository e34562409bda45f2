"""Multi-tier translation cache.

Lookup order is memory (LRU) → exact persistent → fuzzy. Writes go to memory
immediately and to the persistent store in the background; a broken
persistent store degrades the cache to memory-only without failing any
translation.
"""

import asyncio
import hashlib
import logging
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

from pydantic import BaseModel, Field, model_validator

from mangekyo.core.events import EventChannel, EventType
from mangekyo.core.translation.errors import CacheUnavailableError
from mangekyo.core.translation.models import CacheSource, TranslationRequest, TranslationResult
from mangekyo.utils.text import bigram_similarity, normalize_text

from .compression import COMPRESSION_THRESHOLD
from .lru import LRUCache
from .models import DEFAULT_TTL_SECONDS, CacheEntry, CacheLookup, CacheStats, CacheStrategy
from .store import Pattern, PersistentStore, matches_pattern

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
ENFORCE_LIMIT_EVERY = 100  # persistent writes between size checks

COMMON_PHRASES = ["「…」", "……", "！", "？", "お前", "俺", "私"]
GENRE_PHRASES = {
    "action": ["くらえ！", "受けてみろ！", "やめろ！"],
    "romance": ["好き", "愛してる", "ごめん", "ありがとう"],
}


def make_cache_key(
    text: str,
    source_lang: str,
    target_lang: str,
    engine_id: str,
    context_fingerprint: str = "",
) -> str:
    """Build the cache key for a translation.

    Equal inputs always give the same key; the text is normalized first so
    whitespace and width variants share an entry.
    """
    material = "|".join(
        [normalize_text(text), source_lang, target_lang, engine_id, context_fingerprint]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def make_cache_scope(engine_id: str, context_fingerprint: str = "") -> str:
    """Scope shared by all keys built for one engine and context.

    Fuzzy matches never cross scopes.
    """
    return f"{engine_id}/{context_fingerprint}" if context_fingerprint else engine_id


class CacheConfig(BaseModel):
    """Cache tuning."""

    strategy: CacheStrategy = Field(default=CacheStrategy.HYBRID)
    memory_entries: int = Field(default=500, ge=1)
    max_persistent_entries: int = Field(default=5000, ge=1)
    ttl_seconds: int = Field(default=DEFAULT_TTL_SECONDS, gt=0)
    similarity_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    compression_threshold: int = Field(default=COMPRESSION_THRESHOLD, ge=0)
    fuzzy_candidates: int = Field(default=100, ge=0)
    warm_up_entries: int = Field(default=50, ge=0)
    preload_prediction_count: int = Field(default=3, ge=0)
    max_preload_queue: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def check_limits(self) -> "CacheConfig":
        if self.memory_entries > self.max_persistent_entries:
            raise ValueError("memory_entries cannot exceed max_persistent_entries")
        return self


class PreloadItem(BaseModel):
    """A translation worth fetching before the reader gets to it."""

    key: str
    request: TranslationRequest
    page_number: Optional[int] = None


Preloader = Callable[[TranslationRequest], Awaitable[Any]]


class CacheManager:
    """Memory, fuzzy and persistent cache tiers behind one interface."""

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        store: Optional[PersistentStore] = None,
        events: Optional[EventChannel] = None,
    ):
        self.config = config or CacheConfig()
        self.memory: LRUCache[CacheEntry] = LRUCache(self.config.memory_entries)
        self.store = store if self.config.strategy != CacheStrategy.MEMORY else None
        self._use_memory = self.config.strategy != CacheStrategy.PERSISTENT
        self.events = events
        self._stats = CacheStats(memory_capacity=self.config.memory_entries)
        self._pending_writes: Set[asyncio.Task] = set()
        self._writes = 0

        self._preloader: Optional[Preloader] = None
        self._preload_queue: Deque[PreloadItem] = deque()
        self._preload_keys: Set[str] = set()
        self._preload_task: Optional[asyncio.Task] = None

        logger.info(
            f"[Cache] Initialized: strategy={self.config.strategy.value}, "
            f"memory={self.config.memory_entries}, persistent={'yes' if self.store else 'no'}"
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get(
        self,
        key: str,
        source_text: Optional[str] = None,
        source_lang: Optional[str] = None,
        target_lang: Optional[str] = None,
        scope: str = "",
    ) -> CacheLookup:
        """Look a translation up in all tiers.

        Args:
            key: Cache key from make_cache_key
            source_text: Source text, enables the fuzzy tier
            source_lang: Source language, required for the fuzzy tier
            target_lang: Target language, required for the fuzzy tier
            scope: Scope from make_cache_scope; fuzzy candidates must share it

        Returns:
            CacheLookup; found is False on a miss
        """
        now = datetime.utcnow()

        if self._use_memory:
            entry = self.memory.get(key)
            if entry is not None:
                if entry.is_expired(now):
                    self.memory.delete(key)
                else:
                    entry.touch(now)
                    return self._hit(entry, CacheSource.MEMORY, 1.0)

        if self.store is not None:
            entry = await self._store_call(self.store.get(key))
            if entry is not None:
                if entry.is_expired(now):
                    await self._store_call(self.store.delete(key))
                else:
                    entry.touch(now)
                    await self._store_call(self.store.record_access(key, now))
                    if self._use_memory:
                        self._remember(entry)
                    return self._hit(entry, CacheSource.PERSISTENT, 1.0)

        if source_text and source_lang and target_lang:
            match = await self._fuzzy(source_text, source_lang, target_lang, scope, now)
            if match is not None:
                entry, similarity = match
                return self._hit(entry, CacheSource.FUZZY, similarity)

        self._stats.misses += 1
        return CacheLookup(found=False)

    async def contains(self, key: str) -> bool:
        if self._use_memory and key in self.memory:
            return True
        if self.store is None:
            return False
        return await self._store_call(self.store.get(key)) is not None

    async def _fuzzy(
        self, source_text: str, source_lang: str, target_lang: str, scope: str, now: datetime
    ) -> Optional[tuple]:
        normalized = normalize_text(source_text)
        if not normalized:
            return None

        candidates: Dict[str, CacheEntry] = {}
        if self._use_memory:
            for entry in self.memory.values():
                if (
                    entry.source_lang == source_lang
                    and entry.target_lang == target_lang
                    and entry.scope == scope
                ):
                    candidates[entry.key] = entry
        if self.store is not None and self.config.fuzzy_candidates:
            stored = await self._store_call(
                self.store.get_by_language_pair(
                    source_lang, target_lang, self.config.fuzzy_candidates, scope=scope
                ),
                default=[],
            )
            for entry in stored:
                candidates.setdefault(entry.key, entry)

        best: Optional[CacheEntry] = None
        best_score = 0.0
        for entry in candidates.values():
            if entry.is_expired(now):
                continue
            score = bigram_similarity(normalized, entry.normalized_text)
            if score > best_score:
                best, best_score = entry, score

        if best is not None and best_score >= self.config.similarity_threshold:
            logger.debug(f"[Cache] Fuzzy hit ({best_score:.2f}) for '{source_text[:30]}'")
            return best, best_score
        return None

    def _hit(self, entry: CacheEntry, source: CacheSource, confidence: float) -> CacheLookup:
        self._stats.hits += 1
        if source == CacheSource.MEMORY:
            self._stats.memory_hits += 1
        elif source == CacheSource.PERSISTENT:
            self._stats.persistent_hits += 1
        else:
            self._stats.fuzzy_hits += 1
        return CacheLookup(found=True, entry=entry, source=source, confidence=confidence)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def build_entry(
        self,
        key: str,
        result: TranslationResult,
        source_lang: str,
        target_lang: str,
        manga_id: Optional[str] = None,
        scope: str = "",
    ) -> CacheEntry:
        """Create a cache entry for a finished translation."""
        return CacheEntry(
            key=key,
            source_text=result.original_text,
            normalized_text=normalize_text(result.original_text),
            translated_text=result.text,
            source_lang=source_lang,
            target_lang=target_lang,
            engine=result.engine,
            confidence=result.confidence,
            manga_id=manga_id,
            scope=scope,
            result=result.model_dump(mode="json"),
            ttl_seconds=self.config.ttl_seconds,
        )

    async def set(self, entry: CacheEntry) -> None:
        """Store an entry. The persistent write runs in the background."""
        if self._use_memory:
            self._remember(entry)
        if self.store is not None:
            task = asyncio.create_task(self._persist(entry))
            self._pending_writes.add(task)
            task.add_done_callback(self._pending_writes.discard)

    def _remember(self, entry: CacheEntry) -> None:
        evicted = self.memory.put(entry.key, entry)
        if evicted is not None:
            logger.debug(f"[Cache] Evicted {evicted[0][:12]} from memory")

    async def _persist(self, entry: CacheEntry) -> None:
        saved = await self._store_call(self.store.set(entry), default=0)
        self._stats.compressed_savings += saved or 0
        self._writes += 1
        if self._writes % ENFORCE_LIMIT_EVERY == 0:
            await self._enforce_persistent_limit()

    async def _enforce_persistent_limit(self) -> int:
        count = await self._store_call(self.store.count(), default=0)
        excess = count - self.config.max_persistent_entries
        if excess <= 0:
            return 0
        evicted = await self._store_call(self.store.evict_lru(excess), default=0)
        logger.info(f"[Cache] Evicted {evicted} persistent entries over the size limit")
        return evicted

    async def flush(self) -> None:
        """Wait for outstanding persistent writes."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def _store_call(self, awaitable: Awaitable[Any], default: Any = None) -> Any:
        try:
            return await awaitable
        except CacheUnavailableError as e:
            self._stats.persistent_errors += 1
            logger.warning(f"[Cache] Persistent tier unavailable, continuing memory-only: {e}")
            return default

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def invalidate(self, pattern: Pattern) -> int:
        """Remove entries whose key, source text or manga id matches pattern.

        Args:
            pattern: Substring, or a compiled regular expression

        Returns:
            Number of entries removed across tiers
        """
        removed = 0
        for key in self.memory:
            entry = self.memory.peek(key)
            if entry and matches_pattern(pattern, key, entry.source_text, entry.manga_id):
                self.memory.delete(key)
                removed += 1

        if self.store is not None:
            await self.flush()
            removed += await self._store_call(self.store.delete_matching(pattern), default=0)

        label = pattern if isinstance(pattern, str) else pattern.pattern
        logger.info(f"[Cache] Invalidated {removed} entries matching '{label}'")
        if self.events:
            self.events.emit(EventType.CACHE_INVALIDATED, pattern=label, count=removed)
        return removed

    async def warm_up(self, limit: Optional[int] = None) -> int:
        """Load the most accessed persistent entries into memory."""
        if self.store is None or not self._use_memory:
            return 0
        entries = await self._store_call(
            self.store.get_most_accessed(limit or self.config.warm_up_entries), default=[]
        )
        now = datetime.utcnow()
        loaded = 0
        for entry in entries:
            if not entry.is_expired(now):
                self._remember(entry)
                loaded += 1
        logger.info(f"[Cache] Warmed memory tier with {loaded} entries")
        return loaded

    async def sweep(self) -> Dict[str, int]:
        """Delete expired entries and trim the persistent tier to its limit."""
        now = datetime.utcnow()
        expired_memory = 0
        for key in self.memory:
            entry = self.memory.peek(key)
            if entry and entry.is_expired(now):
                self.memory.delete(key)
                expired_memory += 1

        expired_persistent = 0
        evicted = 0
        if self.store is not None:
            await self.flush()
            expired_persistent = await self._store_call(self.store.delete_expired(now), default=0)
            evicted = await self._enforce_persistent_limit()

        return {
            "expired_memory": expired_memory,
            "expired_persistent": expired_persistent,
            "evicted": evicted,
        }

    async def clear(self) -> None:
        self.memory.clear()
        self._preload_queue.clear()
        self._preload_keys.clear()
        if self.store is not None:
            await self.flush()
            await self._store_call(self.store.clear())
        logger.info("[Cache] Cleared")

    def get_stats(self) -> CacheStats:
        stats = self._stats.model_copy()
        stats.evictions = self.memory.evictions
        stats.memory_size = len(self.memory)
        stats.preload_queue_size = len(self._preload_keys)
        return stats

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    async def export(self) -> Dict[str, Any]:
        """Snapshot memory and persistent entries."""
        entries: Dict[str, CacheEntry] = {e.key: e for e in self.memory.values()}
        if self.store is not None:
            await self.flush()
            stored = await self._store_call(
                self.store.get_most_accessed(self.config.max_persistent_entries), default=[]
            )
            for entry in stored:
                entries.setdefault(entry.key, entry)
        return {
            "version": EXPORT_VERSION,
            "exported_at": datetime.utcnow().isoformat(),
            "entries": [e.model_dump(mode="json") for e in entries.values()],
        }

    async def import_entries(self, data: Dict[str, Any]) -> int:
        """Load entries from an export() snapshot, skipping expired ones.

        Raises:
            ValueError: If the snapshot version is not supported
        """
        version = data.get("version")
        if version != EXPORT_VERSION:
            raise ValueError(f"Unsupported cache export version: {version}")

        now = datetime.utcnow()
        imported = 0
        for raw in data.get("entries", []):
            entry = CacheEntry.model_validate(raw)
            if entry.is_expired(now):
                continue
            if self._use_memory:
                self._remember(entry)
            if self.store is not None:
                saved = await self._store_call(self.store.set(entry), default=0)
                self._stats.compressed_savings += saved or 0
            imported += 1
        logger.info(f"[Cache] Imported {imported} entries")
        return imported

    # ------------------------------------------------------------------
    # Predictive preload
    # ------------------------------------------------------------------

    def set_preloader(self, preloader: Preloader) -> None:
        """Register the coroutine used to translate preload items."""
        self._preloader = preloader

    def common_phrases(self, genre: Optional[str] = None) -> List[str]:
        """Phrases that show up in most works of a genre, most useful first."""
        phrases = GENRE_PHRASES.get((genre or "").lower(), []) + COMMON_PHRASES
        return phrases[: self.config.preload_prediction_count]

    def preload(
        self,
        items: List[PreloadItem],
        current_page: Optional[int] = None,
        direction: str = "forward",
    ) -> int:
        """Queue background translations for content the reader is likely to see next.

        Items behind the reading direction are dropped; the rest are ordered
        by distance from the current page. Keys already cached or queued are
        skipped. Never blocks the caller.

        Returns:
            Number of items queued
        """
        if self._preloader is None:
            return 0

        def distance(item: PreloadItem) -> int:
            if item.page_number is None or current_page is None:
                return 0
            return abs(item.page_number - current_page)

        def ahead(item: PreloadItem) -> bool:
            if item.page_number is None or current_page is None:
                return True
            if direction == "backward":
                return item.page_number <= current_page
            return item.page_number >= current_page

        queued = 0
        for item in sorted(filter(ahead, items), key=distance):
            if len(self._preload_keys) >= self.config.max_preload_queue:
                break
            if item.key in self._preload_keys or (self._use_memory and item.key in self.memory):
                continue
            self._preload_keys.add(item.key)
            self._preload_queue.append(item)
            queued += 1

        if queued and (self._preload_task is None or self._preload_task.done()):
            self._preload_task = asyncio.create_task(self._run_preload())
        return queued

    async def _run_preload(self) -> None:
        while self._preload_queue:
            item = self._preload_queue.popleft()
            try:
                if not await self.contains(item.key):
                    await self._preloader(item.request)
                    self._stats.preloaded += 1
            except Exception as e:
                logger.debug(f"[Cache] Preload of {item.key[:12]} failed: {e}")
            finally:
                self._preload_keys.discard(item.key)

    async def drain_preload(self) -> None:
        """Wait until the preload queue is empty."""
        if self._preload_task is not None:
            await self._preload_task

    async def close(self) -> None:
        if self._preload_task is not None and not self._preload_task.done():
            self._preload_task.cancel()
            try:
                await self._preload_task
            except asyncio.CancelledError:
                pass
        self._preload_queue.clear()
        self._preload_keys.clear()
        await self.flush()
