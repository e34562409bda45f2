"""Tests for the translation orchestrator flow."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from conftest import NO_WAIT_RETRY, FakeEngine
from mangekyo.core.translation.models import CacheSource
from mangekyo.core.events import EventChannel, EventType
from mangekyo.core.translation import (
    BubbleContext,
    EngineError,
    ErrorKind,
    QuotaDeniedError,
    TranslationRequest,
)
from mangekyo.core.translation.engines import EngineConfig
from mangekyo.core.translation.markers import HonorificMode
from mangekyo.core.translation.models.result import FAILED_TRANSLATION_TEXT
from mangekyo.core.translation.orchestrator import (
    SFX_ENGINE_ID,
    OrchestratorConfig,
    TranslationOrchestrator,
)


def record_events(orchestrator: TranslationOrchestrator, event_type: EventType) -> list:
    seen = []
    orchestrator.events.subscribe(event_type, seen.append)
    return seen


class TestTranslate:
    """Single bubble translation"""

    def test_second_call_is_served_from_cache(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)
        request = TranslationRequest(source_text="おはよう")

        async def run():
            first = await orchestrator.translate(request)
            second = await orchestrator.translate(request)
            return first, second

        first, second = asyncio.run(run())
        assert first.text == "EN:おはよう"
        assert not first.from_cache
        assert second.text == first.text
        assert second.from_cache
        assert second.cache_source == CacheSource.MEMORY
        assert second.cost_usd == 0.0
        assert engine.calls == ["おはよう"]

    def test_concurrent_identical_requests_share_one_call(self):
        engine = FakeEngine(delay=0.05)
        orchestrator = TranslationOrchestrator(primary=engine)
        request = TranslationRequest(source_text="待ってくれ")

        async def run():
            return await asyncio.gather(*(orchestrator.translate(request) for _ in range(10)))

        results = asyncio.run(run())
        assert len(engine.calls) == 1
        assert {r.text for r in results} == {"EN:待ってくれ"}

    def test_honorific_survives_translation(self):
        engine = FakeEngine(responses={"田中__HON_0__": "Tanaka__HON_0__"})
        orchestrator = TranslationOrchestrator(primary=engine)
        request = TranslationRequest(source_text="田中さん", honorific_mode=HonorificMode.PRESERVE)

        result = asyncio.run(orchestrator.translate(request))
        assert engine.calls == ["田中__HON_0__"]
        assert result.text == "Tanaka-san"
        assert result.original_text == "田中さん"
        assert result.honorifics[0].rendered == "Tanaka-san"

    def test_pure_sfx_skips_engine(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)

        result = asyncio.run(orchestrator.translate(TranslationRequest(source_text="ドン")))
        assert engine.calls == []
        assert result.engine == SFX_ENGINE_ID
        assert result.cost_usd == 0.0
        assert result.text

    def test_blank_text_is_not_translated(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)

        result = asyncio.run(orchestrator.translate(TranslationRequest(source_text="   ")))
        assert result.text == ""
        assert engine.calls == []

    def test_use_cache_false_still_writes_cache(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)

        async def run():
            await orchestrator.translate(TranslationRequest(source_text="はい", use_cache=False))
            await orchestrator.translate(TranslationRequest(source_text="はい", use_cache=False))
            return await orchestrator.translate(TranslationRequest(source_text="はい"))

        result = asyncio.run(run())
        assert len(engine.calls) == 2
        assert result.from_cache

    def test_honorific_mode_change_is_not_served_from_cache(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)

        async def run():
            await orchestrator.translate(
                TranslationRequest(source_text="田中さん、おはよう", honorific_mode=HonorificMode.PRESERVE)
            )
            removed = await orchestrator.translate(
                TranslationRequest(source_text="田中さん、おはよう", honorific_mode=HonorificMode.REMOVE)
            )
            return removed

        removed = asyncio.run(run())
        assert len(engine.calls) == 2
        assert not removed.from_cache
        assert removed.cache_source is None
        assert "-san" not in removed.text

    def test_other_manga_is_not_served_from_cache(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)

        async def run():
            await orchestrator.translate(
                TranslationRequest(source_text="お前は誰だ", context=BubbleContext(manga_id="manga-a"))
            )
            return await orchestrator.translate(
                TranslationRequest(source_text="お前は誰だ", context=BubbleContext(manga_id="manga-b"))
            )

        result = asyncio.run(run())
        assert engine.calls == ["お前は誰だ", "お前は誰だ"]
        assert not result.from_cache

    def test_context_reaches_engine(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)
        ctx = BubbleContext(manga_id="manga-1", character="hero", genre="action")

        async def run():
            await orchestrator.translate(TranslationRequest(source_text="行くぞ", context=ctx))
            await orchestrator.translate(TranslationRequest(source_text="待て", context=ctx))

        asyncio.run(run())
        options = engine.options[-1]
        assert options.character == "hero"
        assert options.genre == "action"
        assert options.recent_lines == ["hero: 行くぞ → EN:行くぞ"]
        assert orchestrator.context.session.manga_id == "manga-1"


class TestQuotaAndFallback:
    """Entitlement gate and engine fallback"""

    def test_denied_quota_makes_no_engine_call(self):
        engine = FakeEngine()
        entitlement = MagicMock()
        entitlement.check_quota = AsyncMock(return_value=False)
        entitlement.record_usage = AsyncMock()
        orchestrator = TranslationOrchestrator(primary=engine, entitlement=entitlement)

        with pytest.raises(QuotaDeniedError) as exc_info:
            asyncio.run(orchestrator.translate(TranslationRequest(source_text="こんにちは")))

        assert exc_info.value.kind == ErrorKind.QUOTA_EXCEEDED
        assert engine.calls == []
        entitlement.record_usage.assert_not_called()

    def test_usage_is_recorded_after_live_translation(self):
        entitlement = MagicMock()
        entitlement.check_quota = AsyncMock(return_value=True)
        entitlement.record_usage = AsyncMock()
        orchestrator = TranslationOrchestrator(primary=FakeEngine(), entitlement=entitlement)

        asyncio.run(orchestrator.translate(TranslationRequest(source_text="こんにちは")))

        action, details = entitlement.record_usage.call_args.args
        assert action == "translate"
        assert details["engine"] == "fake"
        assert details["characters"] == 5

    def test_quota_exceeded_falls_back(self):
        primary = FakeEngine(
            errors=[EngineError("Quota exceeded", ErrorKind.QUOTA_EXCEEDED, engine="fake")]
        )
        backup = FakeEngine(engine_id="backup")
        orchestrator = TranslationOrchestrator(primary=primary, fallback=backup)
        fallbacks = record_events(orchestrator, EventType.ENGINE_FALLBACK)

        result = asyncio.run(orchestrator.translate(TranslationRequest(source_text="こんにちは")))
        assert result.engine == "backup"
        assert len(primary.calls) == 1
        assert backup.calls == ["こんにちは"]
        assert fallbacks[0].payload == {
            "from_engine": "fake",
            "to_engine": "backup",
            "reason": "QUOTA_EXCEEDED",
        }

    def test_fallback_result_is_cached_for_primary(self):
        primary = FakeEngine(
            errors=[EngineError("Quota exceeded", ErrorKind.QUOTA_EXCEEDED, engine="fake")]
        )
        backup = FakeEngine(engine_id="backup")
        orchestrator = TranslationOrchestrator(primary=primary, fallback=backup)
        request = TranslationRequest(source_text="こんにちは")

        async def run():
            await orchestrator.translate(request)
            return await orchestrator.translate(request)

        result = asyncio.run(run())
        assert result.from_cache
        assert result.engine == "backup"
        assert len(primary.calls) == 1

    def test_other_errors_do_not_fall_back(self):
        primary = FakeEngine(
            errors=[EngineError("Bad key", ErrorKind.AUTH_INVALID, engine="fake")]
        )
        backup = FakeEngine(engine_id="backup")
        orchestrator = TranslationOrchestrator(primary=primary, fallback=backup)

        with pytest.raises(EngineError) as exc_info:
            asyncio.run(orchestrator.translate(TranslationRequest(source_text="こんにちは")))

        assert exc_info.value.kind == ErrorKind.AUTH_INVALID
        assert backup.calls == []

    def test_quota_without_fallback_is_raised(self):
        primary = FakeEngine(
            errors=[EngineError("Quota exceeded", ErrorKind.QUOTA_EXCEEDED, engine="fake")]
        )
        orchestrator = TranslationOrchestrator(primary=primary)

        with pytest.raises(EngineError) as exc_info:
            asyncio.run(orchestrator.translate(TranslationRequest(source_text="こんにちは")))
        assert exc_info.value.kind == ErrorKind.QUOTA_EXCEEDED


class TestBatch:
    """Batch translation with placeholders and cancellation"""

    def test_failed_item_gets_placeholder(self):
        engine = FakeEngine(fail_on={"壊れた"})
        orchestrator = TranslationOrchestrator(primary=engine)
        requests = [
            TranslationRequest(source_text="一つ目"),
            TranslationRequest(source_text="壊れた"),
            TranslationRequest(source_text="三つ目"),
        ]

        results = asyncio.run(orchestrator.translate_batch(requests))
        assert [r.failed for r in results] == [False, True, False]
        assert results[1].text == FAILED_TRANSLATION_TEXT
        assert results[1].original_text == "壊れた"
        assert results[1].error_kind == "INVALID_REQUEST"
        assert results[2].text == "EN:三つ目"

    def test_cancelled_batch_starts_nothing(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)
        requests = [TranslationRequest(source_text=t) for t in ("一", "二", "三")]

        async def run():
            cancel = asyncio.Event()
            cancel.set()
            return await orchestrator.translate_batch(requests, cancel_event=cancel)

        results = asyncio.run(run())
        assert engine.calls == []
        assert all(r.failed and r.error_kind == "CANCELLED" for r in results)

    def test_cancel_midway_keeps_finished_items(self):
        engine = FakeEngine(delay=0.01)
        orchestrator = TranslationOrchestrator(
            primary=engine, config=OrchestratorConfig(batch_concurrency=1)
        )
        requests = [TranslationRequest(source_text=t) for t in ("一", "二", "三")]

        async def run():
            cancel = asyncio.Event()

            def stop(_event):
                cancel.set()

            orchestrator.events.subscribe(EventType.TRANSLATION_COMPLETE, stop)
            return await orchestrator.translate_batch(requests, cancel_event=cancel)

        results = asyncio.run(run())
        assert not results[0].failed
        assert [r.error_kind for r in results[1:]] == ["CANCELLED", "CANCELLED"]
        assert engine.calls == ["一"]


class TestEvents:
    """Events emitted by the orchestrator"""

    def test_translation_complete(self):
        orchestrator = TranslationOrchestrator(primary=FakeEngine())
        completed = record_events(orchestrator, EventType.TRANSLATION_COMPLETE)
        request = TranslationRequest(source_text="はい")

        async def run():
            await orchestrator.translate(request)
            await orchestrator.translate(request)

        asyncio.run(run())
        assert [e.payload["from_cache"] for e in completed] == [False, True]
        assert completed[0].payload["engine"] == "fake"

    def test_limit_approaching(self):
        engine = FakeEngine(config=EngineConfig(monthly_quota=10, retry=NO_WAIT_RETRY))
        orchestrator = TranslationOrchestrator(primary=engine)
        warnings = record_events(orchestrator, EventType.LIMIT_APPROACHING)

        async def run():
            await orchestrator.translate(TranslationRequest(source_text="一二三四五六七八九"))
            await orchestrator.translate(TranslationRequest(source_text="十"))

        asyncio.run(run())
        assert len(engine.calls) == 2
        assert len(warnings) == 1
        assert warnings[0].payload["engine"] == "fake"
        assert warnings[0].payload["ratio"] == pytest.approx(0.9)

    def test_invalidate_manga(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)
        invalidated = record_events(orchestrator, EventType.CACHE_INVALIDATED)
        ctx = BubbleContext(manga_id="manga-1")

        async def run():
            await orchestrator.translate(TranslationRequest(source_text="はい", context=ctx))
            await orchestrator.translate(TranslationRequest(source_text="いいえ", context=ctx))
            removed = await orchestrator.invalidate_manga("manga-1")
            again = await orchestrator.translate(TranslationRequest(source_text="はい", context=ctx))
            return removed, again

        removed, again = asyncio.run(run())
        assert removed == 2
        assert len(invalidated) == 1
        assert invalidated[0].payload["count"] == 2
        assert not again.from_cache
        assert engine.calls == ["はい", "いいえ", "はい"]


class TestEventChannel:
    """Handler delivery"""

    def test_async_handlers_run_and_failures_are_contained(self):
        channel = EventChannel()
        received = []

        async def on_complete(event):
            received.append(event.payload["key"])

        def broken(event):
            raise RuntimeError("handler bug")

        channel.subscribe(EventType.TRANSLATION_COMPLETE, broken)
        channel.subscribe(EventType.TRANSLATION_COMPLETE, on_complete)

        async def run():
            channel.emit(EventType.TRANSLATION_COMPLETE, key="abc")
            await channel.drain()

        asyncio.run(run())
        assert received == ["abc"]

    def test_unsubscribe(self):
        channel = EventChannel()
        received = []
        unsubscribe = channel.subscribe(EventType.CACHE_INVALIDATED, received.append)

        unsubscribe()
        channel.emit(EventType.CACHE_INVALIDATED, pattern="x", count=0)
        assert received == []


class TestPages:
    """Page translation and next-page preloading"""

    def test_next_page_is_preloaded(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)
        current = [TranslationRequest(source_text="今の話")]
        upcoming = [TranslationRequest(source_text="次の話")]

        async def run():
            await orchestrator.translate_page(1, current, next_page=upcoming)
            await orchestrator.cache.drain_preload()
            return await orchestrator.translate(upcoming[0])

        result = asyncio.run(run())
        assert "次の話" in engine.calls
        assert result.from_cache
        assert engine.calls.count("次の話") == 1
        assert orchestrator.cache.get_stats().preloaded >= 1

    def test_preload_disabled(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(
            primary=engine, config=OrchestratorConfig(preload_next_page=False)
        )

        async def run():
            await orchestrator.translate_page(
                1,
                [TranslationRequest(source_text="今の話")],
                next_page=[TranslationRequest(source_text="次の話")],
            )
            await orchestrator.cache.drain_preload()

        asyncio.run(run())
        assert engine.calls == ["今の話"]


class TestDegradation:
    """Non-fatal context failures"""

    def test_corrupt_context_is_reset(self):
        engine = FakeEngine()
        orchestrator = TranslationOrchestrator(primary=engine)
        old_session = orchestrator.context.session.id
        orchestrator.context.session.recent_bubbles = None

        result = asyncio.run(orchestrator.translate(TranslationRequest(source_text="何？")))
        assert not result.failed
        assert result.text == "EN:何？"
        assert orchestrator.context.session.id != old_session


class TestConfig:
    """Orchestrator configuration validation"""

    def test_preserve_mode_needs_preserve_flag(self):
        with pytest.raises(ValidationError):
            OrchestratorConfig(preserve_honorifics=False, honorific_mode=HonorificMode.PRESERVE)

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            OrchestratorConfig(batch_concurrency=0)
