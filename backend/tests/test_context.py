"""Tests for narrative context tracking."""

import asyncio
from datetime import datetime, timedelta

import pytest

from mangekyo.core.context import (
    ContextConfig,
    ContextTracker,
    InMemoryContextStore,
    PageInfo,
    SessionState,
    SQLAlchemyContextStore,
    StoredContext,
    TermAction,
)
from mangekyo.core.context.analysis import (
    detect_formality,
    detect_tone,
    extract_terms,
    is_scene_transition,
    smooth_tone,
)
from mangekyo.core.context.models import Scene
from mangekyo.core.translation.errors import ContextCorruptError
from mangekyo.models.database.base import create_session_maker, init_db


def active_tracker(**config) -> ContextTracker:
    tracker = ContextTracker(ContextConfig(**config), store=InMemoryContextStore())
    asyncio.run(tracker.initialize_session("manga-1", "ch-1"))
    return tracker


class TestAnalysis:
    """Heuristic analysis helpers"""

    def test_formality(self):
        assert detect_formality("ありがとうございます") == "formal"
        assert detect_formality("そうだよ") == "casual"
        assert detect_formality("拙者は侍でござる") == "archaic"
        assert detect_formality("そう") is None

    def test_tone_and_smoothing(self):
        assert detect_tone("危ない！逃げろ！") == "tense"
        assert detect_tone("やった！") == "positive"
        assert smooth_tone("positive", "negative") == "positive"
        assert smooth_tone("neutral", "tense") == "tense"

    def test_terms(self):
        terms = extract_terms("魔王城へ行くぞ、ドラゴン！")
        assert "魔王城" in terms
        assert "ドラゴン" in terms

    def test_scene_transition_rules(self):
        scene = Scene(setting="school", time_of_day="morning", mood="calm")
        assert is_scene_transition(None, None, None, None)
        assert is_scene_transition(scene, "park", None, None)
        assert is_scene_transition(scene, "school", "night", None)
        assert not is_scene_transition(scene, "school", "day", None)
        assert is_scene_transition(scene, None, None, "climax")
        assert not is_scene_transition(scene, None, None, "neutral")


class TestSessionLifecycle:
    """Session start, save, restore and end"""

    def test_initialize_sets_active(self):
        tracker = active_tracker()
        assert tracker.state == SessionState.ACTIVE
        assert tracker.session.manga_id == "manga-1"

    def test_saves_every_interval(self):
        store = InMemoryContextStore()
        tracker = ContextTracker(ContextConfig(save_interval=3), store=store)

        async def run():
            await tracker.initialize_session("manga-1")
            for i in range(3):
                await tracker.store_translation(f"台詞{i}", f"line {i}", 0.9, character="hero")
            return await store.load("manga-1")

        stored = asyncio.run(run())
        assert stored is not None
        assert tracker.state == SessionState.PERSISTED
        assert "hero" in stored.data["character_profiles"]

    def test_restore_on_new_session(self):
        store = InMemoryContextStore()
        first = ContextTracker(store=store)
        second = ContextTracker(store=store)

        async def run():
            await first.initialize_session("manga-1")
            first.record_term("魔王", "Demon King")
            await first.store_translation("俺は勇者だ", "I am the hero", 0.9, character="hero")
            await first.end_session()
            await second.initialize_session("manga-1")

        asyncio.run(run())
        assert first.state == SessionState.ENDED
        assert second.glossary() == {"魔王": "Demon King"}
        assert "hero" in second.session.character_profiles

    def test_expired_context_is_ignored(self):
        store = InMemoryContextStore()
        tracker = ContextTracker(ContextConfig(expiry_days=30), store=store)

        async def run():
            await store.save(
                StoredContext(
                    manga_id="manga-1",
                    session_id="old",
                    chapter_id=None,
                    data={"terminology": {"魔王": {"translation": "Demon King"}}},
                    saved_at=datetime.utcnow() - timedelta(days=31),
                )
            )
            await tracker.initialize_session("manga-1")

        asyncio.run(run())
        assert tracker.glossary() == {}

    def test_corrupt_snapshot_starts_fresh(self):
        store = InMemoryContextStore()
        tracker = ContextTracker(store=store)

        async def run():
            await store.save(
                StoredContext(
                    manga_id="manga-1",
                    session_id="bad",
                    chapter_id=None,
                    data={"character_profiles": "not a mapping"},
                )
            )
            return await tracker.initialize_session("manga-1")

        session = asyncio.run(run())
        assert session.state == SessionState.ACTIVE
        assert session.character_profiles == {}

    def test_sqlalchemy_store_round_trip(self, tmp_path):
        async def run():
            db_engine, session_maker = create_session_maker(f"sqlite+aiosqlite:///{tmp_path}/ctx.db")
            await init_db(db_engine)
            try:
                tracker = ContextTracker(store=SQLAlchemyContextStore(session_maker))
                await tracker.initialize_session("manga-1", "ch-1")
                tracker.record_term("魔王", "Demon King")
                saved = await tracker.save()

                restored = ContextTracker(store=SQLAlchemyContextStore(session_maker))
                await restored.initialize_session("manga-1")
                return saved, restored.glossary()
            finally:
                await db_engine.dispose()

        saved, glossary = asyncio.run(run())
        assert saved
        assert glossary == {"魔王": "Demon King"}


class TestTerminology:
    """Glossary consistency rules"""

    def test_new_term_is_added(self):
        tracker = active_tracker()
        check = tracker.record_term("魔王", "Demon King")
        assert check.action == TermAction.ADD
        assert tracker.glossary() == {"魔王": "Demon King"}

    def test_similar_rendering_is_accepted(self):
        tracker = active_tracker()
        tracker.record_term("魔王", "Demon King")
        check = tracker.record_term("魔王", "Demon King")
        assert check.action == TermAction.ACCEPT
        assert tracker.session.terminology["魔王"].frequency == 2

    def test_established_term_keeps_mapping(self):
        tracker = active_tracker()
        for _ in range(10):
            tracker.record_term("魔王", "Demon King")

        check = tracker.check_terminology_consistency("魔王", "Dark Lord")
        assert check.action == TermAction.KEEP_EXISTING
        assert not check.consistent
        assert "Demon King" in check.suggestion

        tracker.record_term("魔王", "Dark Lord")
        assert tracker.glossary()["魔王"] == "Demon King"

    def test_rare_recent_term_can_be_overridden(self):
        tracker = active_tracker()
        tracker.record_term("魔王", "Demon King")

        check = tracker.record_term("魔王", "Dark Lord")
        assert check.action == TermAction.OVERRIDE
        assert tracker.glossary()["魔王"] == "Dark Lord"
        assert tracker.session.terminology["魔王"].frequency == 1

    def test_rare_stale_term_is_kept(self):
        tracker = active_tracker()
        tracker.record_term("魔王", "Demon King")
        tracker.session.terminology["魔王"].last_seen = datetime.utcnow() - timedelta(hours=2)

        assert tracker.check_terminology_consistency("魔王", "Dark Lord").action == TermAction.KEEP_EXISTING

    def test_prune_drops_least_used(self):
        tracker = active_tracker(max_terminology_entries=10)
        for i in range(10):
            tracker.record_term(f"用語{i}", f"term {i}")
            tracker.record_term(f"用語{i}", f"term {i}")
        tracker.record_term("新語", "new word")

        assert "新語" not in tracker.glossary()
        assert len(tracker.glossary()) == 9

    def test_single_term_bubble_enters_glossary(self):
        tracker = active_tracker()
        asyncio.run(tracker.store_translation("魔王", "Demon King!", 0.95))
        assert tracker.glossary() == {"魔王": "Demon King"}

        asyncio.run(tracker.store_translation("魔王が来る", "The Demon King comes", 0.95))
        assert tracker.session.terminology["魔王"].frequency == 2


class TestRelevantContext:
    """Context selection for a new bubble"""

    def test_scores_speaker_and_recency(self):
        tracker = active_tracker(window_size=2)

        async def run():
            await tracker.store_translation("おはよう", "Morning", 0.9, character="hero")
            await tracker.store_translation("元気？", "How are you?", 0.9, character="rival")
            await tracker.store_translation("待って", "Wait", 0.9, character="friend")
            await tracker.store_translation("はい", "Yes", 0.9, character="rival")
            await tracker.store_translation("うん", "Yeah", 0.9, character="friend")

        asyncio.run(run())
        relevant = tracker.get_relevant_context("どこへ？", character="hero")

        texts = [b.text for b in relevant.immediate_context]
        assert texts == ["おはよう", "うん"]
        assert relevant.character_profile.id == "hero"

    def test_terminology_hits(self):
        tracker = active_tracker()
        tracker.record_term("魔王", "Demon King")
        tracker.record_term("勇者", "Hero")

        relevant = tracker.get_relevant_context("魔王を倒せ")
        assert relevant.terminology == {"魔王": "Demon King"}

    def test_unreadable_session_raises(self):
        tracker = active_tracker()
        tracker.session.recent_bubbles = None

        with pytest.raises(ContextCorruptError):
            tracker.get_relevant_context("何？")

        tracker.reset_session()
        assert tracker.get_relevant_context("何？").immediate_context == []

    def test_scene_transition_clears_recent_bubbles(self):
        tracker = active_tracker()
        tracker.process_page(1, PageInfo(setting="school", mood="calm"))
        asyncio.run(tracker.store_translation("おはよう", "Morning", 0.9))

        same = tracker.process_page(2, PageInfo(setting="school", mood="neutral"))
        assert not same.scene_changed
        assert len(tracker.recent_bubbles()) == 1

        changed = tracker.process_page(3, PageInfo(setting="battlefield", mood="climax"))
        assert changed.scene_changed
        assert tracker.recent_bubbles() == []
        assert len(tracker.session.narrative_arc.previous_scenes) == 1
        assert tracker.session.narrative_arc.previous_scenes[0].end_page == 3


class TestProfiles:
    """Character profile updates"""

    def test_formality_moves_toward_detected_level(self):
        tracker = active_tracker()
        asyncio.run(tracker.store_translation("ありがとうございます", "Thank you very much", 0.9, character="butler"))

        profile = tracker.session.character_profiles["butler"]
        assert profile.formality_level == pytest.approx(2.3)
        assert profile.avg_sentence_length == pytest.approx(0.8)

    def test_profile_summary(self):
        tracker = active_tracker()
        asyncio.run(tracker.store_translation("ふふふ", "Hehe", 0.9, character="villain", bubble_type="thought"))

        summary = tracker.get_character_profile("villain")
        assert summary["known"]
        assert "internal-monologue" in summary["speech_patterns"]
        assert tracker.get_character_profile("nobody")["known"] is False


class TestExportImport:
    """Context export and merge"""

    def test_export_then_import_merges(self):
        source = active_tracker()
        source.record_term("魔王", "Demon King")
        asyncio.run(source.store_translation("行くぞ", "Let's go", 0.9, character="hero"))
        data = source.export_context()

        target = active_tracker()
        target.record_term("魔王", "Dark Lord")
        assert target.import_context(data)

        assert target.glossary()["魔王"] == "Dark Lord"
        assert "hero" in target.session.character_profiles
        assert data["version"] == "1.0"

    def test_import_rejects_garbage(self):
        tracker = active_tracker()
        assert tracker.import_context({"terminology": ["not", "a", "dict"]}) is False

    def test_summary(self):
        tracker = active_tracker()
        asyncio.run(tracker.store_translation("行くぞ", "Let's go", 0.9, character="hero"))

        summary = tracker.generate_summary()
        assert summary["manga_id"] == "manga-1"
        assert summary["active_characters"] == ["hero"]
        assert summary["bubbles_processed"] == 1
