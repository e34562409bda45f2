"""Translation orchestrator.

Ties the engines, marker pipeline, cache and context tracker together for
one bubble at a time:

    cache → entitlement → in-flight de-dup → markers → context → engine
    (→ fallback on QUOTA_EXCEEDED) → restore → cache → context → events

All collaborators are injected; build_orchestrator() wires them from
Settings.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, model_validator

from mangekyo.config import Settings
from mangekyo.core.cache import (
    CacheConfig,
    CacheLookup,
    CacheManager,
    CacheStrategy,
    PreloadItem,
    SQLAlchemyCacheStore,
    make_cache_key,
    make_cache_scope,
)
from mangekyo.core.collaborators import AllowAllEntitlement, Entitlement
from mangekyo.core.context import (
    ContextConfig,
    ContextTracker,
    PageInfo,
    RelevantContext,
    SQLAlchemyContextStore,
)
from mangekyo.core.events import EventChannel, EventType
from mangekyo.models.database.base import async_session_maker

from .engines import EngineFactory, TranslationEngine
from .errors import ContextCorruptError, ErrorKind, QuotaDeniedError, TranslationError
from .markers import HonorificMode, MarkerOptions, SFXMode, TextMarkerPipeline
from .models import (
    BubbleContext,
    CacheSource,
    HealthStatus,
    TranslateOptions,
    TranslationRequest,
    TranslationResult,
    UsageStats,
)

logger = logging.getLogger(__name__)

SFX_ENGINE_ID = "sfx"
QUOTA_WARNING_RATIO = 0.8

_FORMALITY_HINTS = {"formal": "more", "archaic": "more", "casual": "less"}


class OrchestratorConfig(BaseModel):
    """Orchestration settings."""

    preserve_honorifics: bool = Field(default=True)
    honorific_mode: HonorificMode = Field(default=HonorificMode.HYBRID)
    sfx_mode: SFXMode = Field(default=SFXMode.AUTO)
    batch_concurrency: int = Field(default=4, ge=1, description="Bubbles translated at once")
    min_fuzzy_confidence: float = Field(
        default=0.85, ge=0.0, le=1.0, description="Lowest fuzzy similarity served from cache"
    )
    use_context: bool = Field(default=True)
    preload_next_page: bool = Field(default=True)

    @model_validator(mode="after")
    def check_modes(self) -> "OrchestratorConfig":
        if not self.preserve_honorifics and self.honorific_mode == HonorificMode.PRESERVE:
            raise ValueError("honorific_mode 'preserve' requires preserve_honorifics")
        return self


class TranslationOrchestrator:
    """Runs translations through cache, markers, context and engines."""

    def __init__(
        self,
        primary: TranslationEngine,
        fallback: Optional[TranslationEngine] = None,
        cache: Optional[CacheManager] = None,
        context: Optional[ContextTracker] = None,
        markers: Optional[TextMarkerPipeline] = None,
        entitlement: Optional[Entitlement] = None,
        events: Optional[EventChannel] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.events = events or EventChannel()
        self.cache = cache or CacheManager(CacheConfig(strategy=CacheStrategy.MEMORY), events=self.events)
        self.context = context or ContextTracker()
        self.markers = markers or TextMarkerPipeline()
        self.entitlement = entitlement or AllowAllEntitlement()
        self.config = config or OrchestratorConfig()

        self._in_flight: Dict[str, asyncio.Future] = {}
        self._session_lock = asyncio.Lock()
        self._limit_warned: Set[str] = set()  # engines past the quota warning ratio
        self.cache.set_preloader(self._preload_translate)

        logger.info(
            f"[Orchestrator] Initialized: primary={primary.engine_id}, "
            f"fallback={fallback.engine_id if fallback else None}"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def translate(self, request: TranslationRequest) -> TranslationResult:
        """Translate one bubble.

        Args:
            request: Bubble text, languages and narrative context

        Returns:
            TranslationResult; from_cache is set when served from the cache

        Raises:
            QuotaDeniedError: Entitlement refused the translation
            TranslationError: Engine failure that is not retried or fallen back
        """
        return await self._translate(request, preload=False)

    async def translate_batch(
        self,
        requests: List[TranslationRequest],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[TranslationResult]:
        """Translate several bubbles with bounded concurrency.

        A failed item gets a placeholder result instead of failing the batch.
        Once cancel_event is set no new items start; they come back with
        error_kind CANCELLED. Results already cached stay cached.
        """
        semaphore = asyncio.Semaphore(self.config.batch_concurrency)

        async def run(index: int, request: TranslationRequest) -> TranslationResult:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return TranslationResult.failure(
                        request.source_text,
                        self.primary.engine_id,
                        error_kind=ErrorKind.CANCELLED.value,
                    )
                try:
                    return await self.translate(request)
                except TranslationError as e:
                    logger.error(f"[Orchestrator] Batch item {index} failed: {e}")
                    return TranslationResult.failure(request.source_text, e.engine or self.primary.engine_id, e)

        results = await asyncio.gather(*(run(i, r) for i, r in enumerate(requests)))
        failed = sum(1 for r in results if r.failed)
        if failed:
            logger.warning(f"[Orchestrator] Batch finished with {failed}/{len(results)} failed items")
        return list(results)

    async def translate_page(
        self,
        page_number: int,
        requests: List[TranslationRequest],
        page_info: Optional[PageInfo] = None,
        next_page: Optional[List[TranslationRequest]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[TranslationResult]:
        """Translate the bubbles of one page, then preload the next page."""
        first = next((r.context for r in requests if r.context), None)
        if first is not None:
            await self._ensure_session(first)
        self.context.process_page(page_number, page_info)

        results = await self.translate_batch(requests, cancel_event)

        if self.config.preload_next_page and not (cancel_event and cancel_event.is_set()):
            self._schedule_preload(page_number, requests, next_page or [])
        return results

    async def invalidate_manga(self, manga_id: str) -> int:
        """Drop every cached translation belonging to a manga."""
        removed = await self.cache.invalidate(manga_id)
        if self.cache.events is not self.events:
            self.events.emit(EventType.CACHE_INVALIDATED, pattern=manga_id, count=removed)
        return removed

    async def health_check(self) -> List[HealthStatus]:
        engines = [e for e in (self.primary, self.fallback) if e is not None]
        return list(await asyncio.gather(*(e.health_check() for e in engines)))

    def get_usage_stats(self) -> List[UsageStats]:
        return [e.get_usage_stats() for e in (self.primary, self.fallback) if e is not None]

    async def close(self) -> None:
        await self.cache.close()
        await self.context.save()
        for engine in (self.primary, self.fallback):
            if engine is not None:
                await engine.close()

    # ------------------------------------------------------------------
    # Flow
    # ------------------------------------------------------------------

    def _modes(self, request: TranslationRequest) -> tuple:
        return (
            request.honorific_mode or self.config.honorific_mode,
            request.sfx_mode or self.config.sfx_mode,
        )

    def _fingerprint(self, request: TranslationRequest) -> str:
        ctx = request.context or BubbleContext()
        honorific_mode, sfx_mode = self._modes(request)
        return self.context.context_fingerprint(
            ctx.manga_id, ctx.character, f"{honorific_mode.value}/{sfx_mode.value}"
        )

    def cache_key(self, request: TranslationRequest) -> str:
        return make_cache_key(
            request.source_text,
            request.source_lang,
            request.target_lang,
            self.primary.engine_id,
            self._fingerprint(request),
        )

    def cache_scope(self, request: TranslationRequest) -> str:
        return make_cache_scope(self.primary.engine_id, self._fingerprint(request))

    async def _translate(self, request: TranslationRequest, preload: bool) -> TranslationResult:
        if not request.source_text or not request.source_text.strip():
            return TranslationResult(
                text="", original_text=request.source_text, engine=self.primary.engine_id
            )

        ctx = request.context or BubbleContext()
        if not preload:
            await self._ensure_session(ctx)
        key = self.cache_key(request)
        scope = self.cache_scope(request)

        if request.use_cache:
            lookup = await self.cache.get(
                key, request.source_text, request.source_lang, request.target_lang, scope=scope
            )
            if lookup.found and (
                lookup.source != CacheSource.FUZZY
                or lookup.confidence >= self.config.min_fuzzy_confidence
            ):
                result = self._from_cache(lookup, request)
                if not preload:
                    self.events.emit(
                        EventType.TRANSLATION_COMPLETE,
                        key=key,
                        engine=result.engine,
                        from_cache=True,
                        cache_source=result.cache_source.value if result.cache_source else None,
                    )
                return result

        params = {
            "engine": self.primary.engine_id,
            "characters": len(request.source_text),
            "source_lang": request.source_lang,
            "target_lang": request.target_lang,
            "preload": preload,
        }
        if not await self.entitlement.check_quota("translate", params):
            raise QuotaDeniedError("translate", details=params)

        shared = self._in_flight.get(key)
        if shared is None:
            shared = asyncio.ensure_future(
                self._translate_live(request, ctx, key, scope, preload)
            )
            self._in_flight[key] = shared
            shared.add_done_callback(lambda _f: self._in_flight.pop(key, None))
        else:
            logger.debug(f"[Orchestrator] Joining in-flight translation {key[:12]}")

        result = await asyncio.shield(shared)
        return result.model_copy(deep=True)

    async def _translate_live(
        self,
        request: TranslationRequest,
        ctx: BubbleContext,
        key: str,
        scope: str,
        preload: bool,
    ) -> TranslationResult:
        started = time.time()
        options = self._marker_options(request, ctx)
        marked = self.markers.extract(request.source_text, options)

        if marked.is_pure_sfx:
            rendering = marked.sfx[0]
            result = TranslationResult(
                text=self.markers.process_sfx_only(marked, request.target_lang, request.source_lang),
                original_text=request.source_text,
                detected_language=request.source_lang,
                confidence=rendering.confidence,
                engine=SFX_ENGINE_ID,
                cost_usd=0.0,
                sfx=marked.sfx,
            )
            engine: Optional[TranslationEngine] = None
        else:
            relevant = None if preload else self._relevant_context(request.source_text, ctx)
            engine_options = self._engine_options(request, ctx, relevant)
            raw, engine = await self._call_engine(marked.text, engine_options)
            result = raw.model_copy(
                update={
                    "text": self.markers.restore(
                        raw.text, marked, request.target_lang, request.source_lang
                    ),
                    "original_text": request.source_text,
                    "honorifics": marked.honorifics,
                    "sfx": marked.sfx,
                }
            )

        result.latency_ms = int((time.time() - started) * 1000)

        await self.cache.set(
            self.cache.build_entry(
                key,
                result,
                request.source_lang,
                request.target_lang,
                manga_id=ctx.manga_id,
                scope=scope,
            )
        )

        if not preload:
            await self._record_context(request, ctx, result)

        if engine is not None:
            await self.entitlement.record_usage(
                "translate",
                {
                    "engine": result.engine,
                    "characters": result.characters_billed or len(request.source_text),
                    "tokens_in": result.tokens_in,
                    "tokens_out": result.tokens_out,
                    "cost_usd": result.cost_usd,
                    "preload": preload,
                },
            )
            if not engine.is_quota_approaching():
                self._limit_warned.discard(engine.engine_id)
            elif engine.engine_id not in self._limit_warned:
                self._limit_warned.add(engine.engine_id)
                usage = engine.get_usage_stats()
                self.events.emit(
                    EventType.LIMIT_APPROACHING,
                    engine=engine.engine_id,
                    ratio=usage.quota_used_ratio,
                    used=usage.quota_used,
                    limit=usage.quota_limit,
                )

        if not preload:
            self.events.emit(
                EventType.TRANSLATION_COMPLETE,
                key=key,
                engine=result.engine,
                from_cache=False,
                latency_ms=result.latency_ms,
            )
        return result

    async def _call_engine(
        self, text: str, options: TranslateOptions
    ) -> "tuple[TranslationResult, TranslationEngine]":
        """Translate with the primary engine, falling back once on QUOTA_EXCEEDED."""
        try:
            return await self.primary.translate(text, options), self.primary
        except TranslationError as e:
            if e.kind != ErrorKind.QUOTA_EXCEEDED or self.fallback is None:
                raise
            logger.warning(
                f"[Orchestrator] {self.primary.engine_id} quota exceeded, "
                f"falling back to {self.fallback.engine_id}"
            )
            self.events.emit(
                EventType.ENGINE_FALLBACK,
                from_engine=self.primary.engine_id,
                to_engine=self.fallback.engine_id,
                reason=e.kind.value,
            )
            return await self.fallback.translate(text, options), self.fallback

    def _from_cache(self, lookup: CacheLookup, request: TranslationRequest) -> TranslationResult:
        entry = lookup.entry
        if entry.result:
            result = TranslationResult.model_validate(entry.result)
        else:
            result = TranslationResult(
                text=entry.translated_text,
                original_text=entry.source_text,
                confidence=entry.confidence,
                engine=entry.engine,
            )
        confidence = result.confidence
        if lookup.source == CacheSource.FUZZY:
            confidence = min(confidence, lookup.confidence)
        return result.model_copy(
            update={
                "original_text": request.source_text,
                "from_cache": True,
                "cache_source": lookup.source,
                "confidence": confidence,
                "cost_usd": 0.0,
                "latency_ms": 0,
            }
        )

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def _ensure_session(self, ctx: BubbleContext) -> None:
        if not ctx.manga_id or self.context.session.manga_id == ctx.manga_id:
            return
        async with self._session_lock:
            if self.context.session.manga_id != ctx.manga_id:
                await self.context.initialize_session(ctx.manga_id, page=ctx.page_number or 0)

    def _relevant_context(self, text: str, ctx: BubbleContext) -> Optional[RelevantContext]:
        if not self.config.use_context:
            return None
        try:
            return self.context.get_relevant_context(text, ctx.character)
        except ContextCorruptError as e:
            logger.warning(f"[Orchestrator] {e}; resetting context session")
            self.context.reset_session()
            return None

    async def _record_context(
        self, request: TranslationRequest, ctx: BubbleContext, result: TranslationResult
    ) -> None:
        if not self.config.use_context:
            return
        try:
            await self.context.store_translation(
                request.source_text,
                result.text,
                result.confidence,
                character=ctx.character,
                bubble_type=ctx.bubble_type.value,
                page_number=ctx.page_number,
            )
        except ContextCorruptError as e:
            logger.warning(f"[Orchestrator] {e}; resetting context session")
            self.context.reset_session()

    def _marker_options(self, request: TranslationRequest, ctx: BubbleContext) -> MarkerOptions:
        honorific_mode, sfx_mode = self._modes(request)
        scene = next((hint for hint in ctx.scene_hints if hint), None)
        return MarkerOptions(
            source_lang=request.source_lang,
            target_lang=request.target_lang,
            preserve_honorifics=self.config.preserve_honorifics or request.honorific_mode is not None,
            honorific_mode=honorific_mode,
            sfx_mode=sfx_mode,
            relationship=ctx.relationship,
            scene=scene,
            genre=ctx.genre,
            bubble_type=ctx.bubble_type.value,
            intensity=ctx.intensity,
        )

    def _engine_options(
        self,
        request: TranslationRequest,
        ctx: BubbleContext,
        relevant: Optional[RelevantContext],
    ) -> TranslateOptions:
        options: Dict[str, Any] = {
            "source_lang": request.source_lang,
            "target_lang": request.target_lang,
            "genre": ctx.genre,
            "character": ctx.character,
            "scene": ", ".join(ctx.scene_hints) or None,
        }
        if relevant is not None:
            options["recent_lines"] = relevant.recent_lines()
            options["glossary"] = relevant.terminology
            options["tone"] = relevant.tone
            if relevant.scene and relevant.scene.setting and not options["scene"]:
                options["scene"] = relevant.scene.setting
            profile = relevant.character_profile
            if profile is not None:
                options["formality"] = _FORMALITY_HINTS.get(profile.formality_label)
                voice = [profile.formality_label, *profile.speech_patterns]
                options["character_voice"] = ", ".join(voice)
        return TranslateOptions(**options)

    # ------------------------------------------------------------------
    # Preload
    # ------------------------------------------------------------------

    async def _preload_translate(self, request: TranslationRequest) -> None:
        await self._translate(request, preload=True)

    def _schedule_preload(
        self,
        page_number: int,
        requests: List[TranslationRequest],
        next_page: List[TranslationRequest],
    ) -> int:
        items = [
            PreloadItem(key=self.cache_key(r), request=r, page_number=page_number + 1)
            for r in next_page
        ]

        template = requests[0] if requests else None
        if template is not None:
            ctx = template.context or BubbleContext()
            for phrase in self.cache.common_phrases(ctx.genre):
                phrase_request = template.model_copy(update={"source_text": phrase})
                items.append(PreloadItem(key=self.cache_key(phrase_request), request=phrase_request))

        queued = self.cache.preload(items, current_page=page_number, direction="forward")
        if queued:
            logger.debug(f"[Orchestrator] Queued {queued} preload translations after page {page_number}")
        return queued


def build_orchestrator(settings: Settings) -> TranslationOrchestrator:
    """Wire an orchestrator and its collaborators from settings."""
    events = EventChannel()
    primary = EngineFactory.create(settings.primary_engine, settings)
    fallback = (
        EngineFactory.create(settings.fallback_engine, settings)
        if settings.fallback_engine
        else None
    )

    strategy = CacheStrategy(settings.cache_strategy)
    cache_config = CacheConfig(
        strategy=strategy,
        memory_entries=settings.cache_memory_entries,
        max_persistent_entries=settings.cache_max_persistent_entries,
        ttl_seconds=settings.cache_ttl_hours * 3600,
        similarity_threshold=settings.cache_similarity_threshold,
        compression_threshold=settings.cache_compression_threshold,
    )
    cache_store = (
        SQLAlchemyCacheStore(async_session_maker, settings.cache_compression_threshold)
        if strategy != CacheStrategy.MEMORY
        else None
    )
    cache = CacheManager(cache_config, store=cache_store, events=events)

    context = ContextTracker(
        ContextConfig(
            window_size=settings.context_window_size,
            save_interval=settings.context_save_interval,
            expiry_days=settings.context_expiry_days,
        ),
        store=SQLAlchemyContextStore(async_session_maker),
    )

    config = OrchestratorConfig(
        preserve_honorifics=settings.preserve_honorifics,
        honorific_mode=HonorificMode(settings.honorific_mode),
        sfx_mode=SFXMode(settings.sfx_mode),
        batch_concurrency=settings.batch_concurrency,
        min_fuzzy_confidence=settings.min_fuzzy_confidence,
    )

    return TranslationOrchestrator(
        primary=primary,
        fallback=fallback,
        cache=cache,
        context=context,
        markers=TextMarkerPipeline(),
        entitlement=AllowAllEntitlement(),
        events=events,
        config=config,
    )
