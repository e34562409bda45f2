"""Tests for honorific and SFX marker handling."""

from mangekyo.core.translation.markers import (
    HonorificMode,
    MarkerOptions,
    MarkerType,
    SFXMode,
    TextMarkerPipeline,
)
from mangekyo.core.translation.markers.honorifics import HonorificProcessor
from mangekyo.core.translation.markers.sfx import SFXTranslator


class TestHonorificPreservation:
    """Honorifics around a translated name"""

    def test_san_preserved_after_translated_name(self):
        pipeline = TextMarkerPipeline()
        options = MarkerOptions(honorific_mode=HonorificMode.PRESERVE)

        marked = pipeline.extract("田中さん", options)
        assert marked.text == "田中__HON_0__"
        assert marked.markers[0].type == MarkerType.HONORIFIC

        restored = pipeline.restore("Tanaka__HON_0__", marked, "en")
        assert restored == "Tanaka-san"
        assert marked.honorifics[0].rendered == "Tanaka-san"

    def test_engine_spacing_is_tolerated(self):
        pipeline = TextMarkerPipeline()
        marked = pipeline.extract("田中さん", MarkerOptions(honorific_mode=HonorificMode.PRESERVE))

        assert pipeline.restore("Tanaka __HON_0__", marked, "en") == "Tanaka-san"

    def test_dropped_placeholder_is_reinserted(self):
        pipeline = TextMarkerPipeline()
        marked = pipeline.extract("田中さん！", MarkerOptions(honorific_mode=HonorificMode.PRESERVE))

        restored = pipeline.restore("Tanaka!", marked, "en")
        assert restored == "Tanaka-san!"

    def test_remove_mode_leaves_bare_name(self):
        pipeline = TextMarkerPipeline()
        marked = pipeline.extract("田中さん", MarkerOptions(honorific_mode=HonorificMode.REMOVE))

        assert marked.markers == []
        assert marked.text == "田中"
        assert marked.honorifics[0].action == "removed"

    def test_same_language_keeps_original_suffix(self):
        pipeline = TextMarkerPipeline()
        options = MarkerOptions(source_lang="ja", target_lang="ja")
        marked = pipeline.extract("田中さん", options)

        assert pipeline.restore(marked.text, marked, "ja") == "田中さん"

    def test_non_names_are_ignored(self):
        assert HonorificProcessor().detect("皆さん") == []


class TestSFX:
    """SFX detection and rendering"""

    def test_don_emphasized_in_action_scene(self):
        pipeline = TextMarkerPipeline()
        options = MarkerOptions(
            sfx_mode=SFXMode.EMPHASIZED, genre="action", bubble_type="action"
        )

        marked = pipeline.extract("ドン", options)
        assert marked.is_pure_sfx

        text = pipeline.process_sfx_only(marked, "en")
        assert text in ("BAM", "BOOM")
        assert text == text.upper()
        assert "motion-lines" in marked.sfx[0].visual.effects

    def test_detection_confidence(self):
        sfx = SFXTranslator()
        detection = sfx.detect("ドキドキ")
        assert detection.is_sfx
        assert detection.entry is not None
        assert detection.repetition

        assert not sfx.detect("こんにちは").is_sfx

    def test_non_sfx_passes_through(self):
        rendering = SFXTranslator().translate("こんにちは", MarkerOptions())
        assert rendering.is_sfx is False
        assert rendering.strategy == "passthrough"
        assert rendering.translation == "こんにちは"

    def test_direct_mode_uses_romaji(self):
        rendering = SFXTranslator().translate("ドン", MarkerOptions(sfx_mode=SFXMode.DIRECT))
        assert rendering.translation.lower() == "don"

    def test_batch_keeps_repeated_sfx_consistent(self):
        results = SFXTranslator().translate_batch(["ドン", "バン", "ドン"], MarkerOptions())
        assert results[2].translation == results[0].translation
        assert results[2].consistent_with_previous

    def test_embedded_sfx_is_masked(self):
        pipeline = TextMarkerPipeline()
        marked = pipeline.extract("それはドキドキだ", MarkerOptions())

        assert "__SFX_0__" in marked.text
        assert not marked.is_pure_sfx
        restored = pipeline.restore(marked.text.replace("それは", "That is "), marked, "en")
        assert "__SFX" not in restored


class TestMarkerRoundTrip:
    """Extraction followed by identity restoration"""

    def test_identity_restore_returns_source(self):
        pipeline = TextMarkerPipeline()
        options = MarkerOptions(source_lang="ja", target_lang="ja")
        for text in ("田中さん、おはよう", "佐藤くんと山田先輩", "今日は晴れ"):
            marked = pipeline.extract(text, options)
            assert pipeline.restore(marked.text, marked, "ja") == text

    def test_stray_placeholders_are_stripped(self):
        pipeline = TextMarkerPipeline()
        marked = pipeline.extract("今日は晴れ", MarkerOptions())

        assert pipeline.restore("Sunny __SFX_7__ today", marked, "en") == "Sunny  today"

    def test_extract_is_pure(self):
        pipeline = TextMarkerPipeline()
        options = MarkerOptions()
        first = pipeline.extract("田中さん！ドン！", options)
        second = pipeline.extract("田中さん！ドン！", options)
        assert first.text == second.text
        assert [m.placeholder for m in first.markers] == [m.placeholder for m in second.markers]


class TestUsageAnalysis:
    """Honorific and SFX usage summaries"""

    def test_formal_honorifics_recommend_preserve(self):
        stats = HonorificProcessor().analyze_batch(["田中様、こちらへ", "佐藤様", "山田さん"])

        assert stats.total == 3
        assert stats.by_type == {"sama": 2, "san": 1}
        assert stats.by_formality["high"] == 2
        assert stats.most_common == "sama"
        assert stats.recommended_mode == HonorificMode.PRESERVE

    def test_sfx_usage_guesses_genre(self):
        stats = SFXTranslator().analyze_usage(["ドン", "バン", "ドン", "こんにちは"])

        assert stats.total == 3
        assert stats.by_category == {"impact": 3}
        assert stats.unique == ["don", "ban"]
        assert stats.repeated == ["don"]
        assert stats.by_intensity["high"] == 2
        assert stats.likely_genre == "shonen-battle"
