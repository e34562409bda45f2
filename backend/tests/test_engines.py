"""Tests for engine adapters: retry, error mapping, chunking and rate limiting."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from tenacity import wait_fixed

from mangekyo.config import Settings
from mangekyo.core.translation.engines import (
    DeepLEngine,
    EngineConfig,
    EngineFactory,
    GoogleTranslateEngine,
    LLMEngine,
    RateLimitConfig,
    RateLimiter,
    split_into_chunks,
)
from mangekyo.core.translation.engines.chunking import chunk_joiner
from mangekyo.core.translation.engines.retry import wait_retry_after
from mangekyo.core.translation.errors import EngineError, ErrorKind, TranslationError
from mangekyo.core.translation.models import TranslateOptions

from conftest import NO_WAIT_RETRY, FakeEngine

OPTIONS = TranslateOptions(source_lang="ja", target_lang="en")


def deepl_engine(handler, **config):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DeepLEngine(EngineConfig(api_key="key", retry=NO_WAIT_RETRY, **config), client=client)


def google_engine(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleTranslateEngine(EngineConfig(api_key="key", retry=NO_WAIT_RETRY), client=client)


def deepl_ok(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(
        200,
        json={
            "translations": [
                {"text": f"EN:{t}", "detected_source_language": "JA", "billed_characters": len(t)}
                for t in body["text"]
            ]
        },
    )


class TestRetry:
    """Retry ceiling and transient classification"""

    def test_server_errors_stop_at_max_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"message": "internal"})

        engine = deepl_engine(handler)
        with pytest.raises(EngineError) as exc:
            asyncio.run(engine.translate("こんにちは", OPTIONS))

        assert exc.value.kind == ErrorKind.SERVER_ERROR
        assert len(calls) == NO_WAIT_RETRY.max_attempts
        assert engine.get_usage_stats().retries == NO_WAIT_RETRY.max_attempts - 1
        assert engine.get_usage_stats().errors == 1

    def test_rate_limited_then_success(self):
        responses = [httpx.Response(429, json={"message": "slow down"})]

        def handler(request):
            if responses:
                return responses.pop(0)
            return deepl_ok(request)

        engine = deepl_engine(handler)
        result = asyncio.run(engine.translate("こんにちは", OPTIONS))

        assert result.text == "EN:こんにちは"
        assert engine.get_usage_stats().retries == 1

    def test_quota_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(456, json={"message": "Quota exceeded"})

        engine = deepl_engine(handler)
        with pytest.raises(EngineError) as exc:
            asyncio.run(engine.translate("こんにちは", OPTIONS))

        assert exc.value.kind == ErrorKind.QUOTA_EXCEEDED
        assert len(calls) == 1

    def test_timeout_maps_to_timeout_kind(self):
        engine = FakeEngine(delay=0.2)
        options = TranslateOptions(source_lang="ja", target_lang="en", timeout=0.01)

        with pytest.raises(EngineError) as exc:
            asyncio.run(engine.translate("遅い", options))

        assert exc.value.kind == ErrorKind.TIMEOUT
        assert len(engine.calls) == NO_WAIT_RETRY.max_attempts

    def test_retry_after_sets_minimum_wait(self):
        wait = wait_retry_after(wait_fixed(0.5), cap=30.0)
        state = MagicMock(attempt_number=1)

        state.outcome.exception.return_value = EngineError(
            "slow down", ErrorKind.RATE_LIMITED, retry_after=4
        )
        assert wait(state) == 4.0

        state.outcome.exception.return_value = EngineError(
            "slow down", ErrorKind.RATE_LIMITED, retry_after=600
        )
        assert wait(state) == 30.0

        state.outcome.exception.return_value = EngineError("internal", ErrorKind.SERVER_ERROR)
        assert wait(state) == 0.5

    def test_deepl_retry_after_header_drives_backoff(self):
        responses = [httpx.Response(429, headers={"Retry-After": "2"}, json={"message": "slow down"})]
        sleeps = []

        def handler(request):
            if responses:
                return responses.pop(0)
            return deepl_ok(request)

        retry = NO_WAIT_RETRY.model_copy(update={"max_retry_after": 0.01})
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        engine = DeepLEngine(EngineConfig(api_key="key", retry=retry), client=client)
        on_retry = engine._on_retry

        def capture(state):
            sleeps.append(state.next_action.sleep)
            on_retry(state)

        engine._on_retry = capture
        result = asyncio.run(engine.translate("こんにちは", OPTIONS))

        assert result.text == "EN:こんにちは"
        assert sleeps == [pytest.approx(0.01)]


class TestDeepL:
    """DeepL request building and error mapping"""

    def test_request_payload(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return deepl_ok(request)

        engine = deepl_engine(handler)
        result = asyncio.run(engine.translate("こんにちは", OPTIONS))

        assert seen["url"] == "https://api.deepl.com/v2/translate"
        assert seen["auth"] == "DeepL-Auth-Key key"
        assert seen["body"]["target_lang"] == "EN-US"
        assert seen["body"]["source_lang"] == "JA"
        assert result.detected_language == "ja"
        assert result.characters_billed == len("こんにちは")
        assert result.cost_usd == 0.0

    def test_free_key_uses_free_endpoint_and_limits(self):
        engine = DeepLEngine(EngineConfig(api_key="abc:fx", max_text_length=50000))
        assert engine.base_url == "https://api-free.deepl.com"
        assert engine.config.max_text_length == 5000
        assert engine.config.monthly_quota == 500_000

    @pytest.mark.parametrize(
        "status,message,kind",
        [
            (403, "Forbidden", ErrorKind.AUTH_INVALID),
            (413, "Too large", ErrorKind.TEXT_TOO_LONG),
            (400, "Value for 'target_lang' not supported language", ErrorKind.UNSUPPORTED_LANGUAGE),
            (400, "Bad request", ErrorKind.INVALID_REQUEST),
        ],
    )
    def test_error_mapping(self, status, message, kind):
        engine = deepl_engine(lambda request: httpx.Response(status, json={"message": message}))
        with pytest.raises(EngineError) as exc:
            asyncio.run(engine.translate("こんにちは", OPTIONS))
        assert exc.value.kind == kind
        assert exc.value.status_code == status

    def test_unsupported_language_rejected_before_call(self):
        calls = []
        engine = deepl_engine(lambda request: calls.append(request) or deepl_ok(request))

        with pytest.raises(EngineError) as exc:
            asyncio.run(engine.translate("hello", TranslateOptions(source_lang="en", target_lang="xx")))

        assert exc.value.kind == ErrorKind.UNSUPPORTED_LANGUAGE
        assert calls == []

    def test_usage_endpoint(self):
        def handler(request):
            assert request.url.path == "/v2/usage"
            return httpx.Response(200, json={"character_count": 250, "character_limit": 1000})

        usage = asyncio.run(deepl_engine(handler).get_usage())
        assert usage["percent_used"] == 25.0


class TestGoogle:
    """Google Translate adapter"""

    def test_translation_is_unescaped(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"data": {"translations": [{"translatedText": "It&#39;s fine", "detectedSourceLanguage": "ja"}]}},
            )

        result = asyncio.run(google_engine(handler).translate("大丈夫", OPTIONS))
        assert result.text == "It's fine"
        assert result.engine == "google"

    def test_quota_error(self):
        def handler(request):
            return httpx.Response(403, json={"error": {"code": 403, "message": "Daily Limit Exceeded"}})

        with pytest.raises(EngineError) as exc:
            asyncio.run(google_engine(handler).translate("大丈夫", OPTIONS))
        assert exc.value.kind == ErrorKind.QUOTA_EXCEEDED

    def test_invalid_key(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid"}})

        with pytest.raises(EngineError) as exc:
            asyncio.run(google_engine(handler).translate("大丈夫", OPTIONS))
        assert exc.value.kind == ErrorKind.AUTH_INVALID

    def test_transport_error_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused")

        with pytest.raises(EngineError) as exc:
            asyncio.run(google_engine(handler).translate("大丈夫", OPTIONS))
        assert exc.value.kind == ErrorKind.SERVER_ERROR
        assert len(calls) == NO_WAIT_RETRY.max_attempts

    def test_detect_language(self):
        def handler(request):
            assert request.url.path.endswith("/detect")
            return httpx.Response(
                200,
                json={"data": {"detections": [[{"language": "ja", "confidence": 0.98}]]}},
            )

        detected = asyncio.run(google_engine(handler).detect_language("大丈夫"))
        assert detected == {"language": "ja", "confidence": 0.98}


class TestLLMEngine:
    """LiteLLM-backed engine"""

    def test_messages_carry_context(self):
        engine = LLMEngine(EngineConfig(api_key="sk-test"))
        options = TranslateOptions(
            source_lang="ja",
            target_lang="en",
            character="Goku",
            character_voice="casual",
            glossary={"魔王": "Demon King"},
            recent_lines=["行くぞ！"],
        )
        messages = engine.build_messages("魔王だ", options)

        assert messages[0]["role"] == "system"
        user = messages[1]["content"]
        assert "Speaker: Goku (casual)" in user
        assert "魔王 = Demon King" in user
        assert "- 行くぞ！" in user
        assert "Translate from Japanese to English" in user

    def test_translate_strips_quotes_and_counts_tokens(self):
        engine = LLMEngine(EngineConfig(api_key="sk-test", retry=NO_WAIT_RETRY))
        response = MagicMock()
        response.choices = [MagicMock(finish_reason="stop")]
        response.choices[0].message.content = '"Let\'s go!"'
        response.usage = MagicMock(prompt_tokens=40, completion_tokens=5)

        with patch(
            "mangekyo.core.translation.engines.llm.acompletion",
            AsyncMock(return_value=response),
        ) as completion:
            result = asyncio.run(engine.translate("行くぞ！", OPTIONS))

        assert result.text == "Let's go!"
        assert result.tokens_in == 40
        assert result.tokens_out == 5
        assert result.cost_usd > 0
        assert completion.call_args.kwargs["model"] == "gpt-4o-mini"

    def test_empty_choices_is_a_server_error(self):
        engine = LLMEngine(EngineConfig(api_key="sk-test", retry=NO_WAIT_RETRY))
        response = MagicMock(choices=[])

        with patch(
            "mangekyo.core.translation.engines.llm.acompletion",
            AsyncMock(return_value=response),
        ) as completion:
            with pytest.raises(EngineError) as exc:
                asyncio.run(engine.translate("行くぞ！", OPTIONS))

        assert exc.value.kind == ErrorKind.SERVER_ERROR
        assert exc.value.engine == "openai"
        assert completion.await_count == NO_WAIT_RETRY.max_attempts


class TestChunking:
    """Sentence-boundary chunking"""

    def test_short_text_is_one_chunk(self):
        assert split_into_chunks("短い。", 100) == ["短い。"]

    def test_chunks_respect_limit(self):
        text = "This is one. This is two. This is three. This is four."
        chunks = split_into_chunks(text, 25)

        assert len(chunks) > 1
        assert all(len(c) <= 25 for c in chunks)
        assert " ".join(chunks) == text

    def test_word_split_keeps_words_apart(self):
        assert split_into_chunks("abc def", 6) == ["abc", "def"]

        text = "Hello there my friend how are you doing on this fine day"
        chunks = split_into_chunks(text, 12)

        assert all(len(c) <= 12 for c in chunks)
        assert " ".join(chunks).split() == text.split()

    def test_word_longer_than_limit_fails(self):
        with pytest.raises(EngineError) as exc:
            split_into_chunks("a " + "x" * 40, 20)
        assert exc.value.kind == ErrorKind.TEXT_TOO_LONG

    def test_placeholders_are_never_split(self):
        text = "あ" * 8 + "__HON_0__" + "い" * 8
        chunks = split_into_chunks(text, 12)
        assert any("__HON_0__" in c for c in chunks)
        assert "".join(chunks) == text

    def test_joiner(self):
        assert chunk_joiner("ja") == ""
        assert chunk_joiner("en-US") == " "

    def test_engine_translates_each_chunk(self):
        engine = FakeEngine(config=EngineConfig(max_text_length=20, retry=NO_WAIT_RETRY))
        result = asyncio.run(engine.translate("First one. Second one. Third one.", OPTIONS))

        assert len(engine.calls) == 3
        assert result.text == "EN:First one. EN:Second one. EN:Third one."
        assert engine.get_usage_stats().requests == 3


class TestRateLimiter:
    """Sliding window limits"""

    def test_waits_when_window_full(self):
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=2, window_seconds=0.2))

        async def run():
            waits = [await limiter.acquire() for _ in range(3)]
            return waits

        waits = asyncio.run(run())
        assert waits[0] == 0.0
        assert waits[1] == 0.0
        assert waits[2] > 0.0

    def test_unit_budget(self):
        limiter = RateLimiter(
            RateLimitConfig(requests_per_minute=100, units_per_minute=10, window_seconds=0.2)
        )

        async def run():
            await limiter.acquire(8)
            return await limiter.acquire(5)

        assert asyncio.run(run()) > 0.0

    def test_oversized_call_runs_on_empty_window(self):
        limiter = RateLimiter(RateLimitConfig(units_per_minute=10))
        assert asyncio.run(limiter.acquire(50)) == 0.0
        assert limiter.snapshot()["units_in_window"] == 50


class TestEngineContract:
    """Shared adapter behaviour"""

    def test_empty_text_skips_provider(self, fake_engine):
        result = asyncio.run(fake_engine.translate("   ", OPTIONS))
        assert result.text == ""
        assert fake_engine.calls == []

    def test_batch_isolates_failures(self):
        engine = FakeEngine(fail_on={"bad"})
        results = asyncio.run(engine.translate_batch(["good", "bad", "fine"], OPTIONS))

        assert [r.failed for r in results] == [False, True, False]
        assert results[0].text == "EN:good"
        assert results[1].error_kind == ErrorKind.INVALID_REQUEST.value

    def test_quota_warning(self):
        engine = FakeEngine(config=EngineConfig(monthly_quota=10, retry=NO_WAIT_RETRY))
        asyncio.run(engine.translate("123456789", OPTIONS))

        assert engine.is_quota_approaching()
        assert engine.get_usage_stats().quota_used == 9

    def test_health_check(self):
        healthy = asyncio.run(FakeEngine().health_check())
        assert healthy.status == "healthy"

        broken = FakeEngine(errors=[EngineError("nope", ErrorKind.AUTH_INVALID)])
        status = asyncio.run(broken.health_check())
        assert status.status == "unhealthy"
        assert "AUTH_INVALID" in status.error

    def test_errors_are_translation_errors(self):
        engine = FakeEngine(fail_on={"bad"})
        with pytest.raises(TranslationError):
            asyncio.run(engine.translate("bad", OPTIONS))
        assert engine.calls == ["bad"]


class TestEngineFactory:
    """Engine construction from settings"""

    def test_creates_configured_engines(self):
        settings = Settings(deepl_api_key="k", google_api_key="g", max_retries=5)

        deepl = EngineFactory.create("deepl", settings)
        google = EngineFactory.create("google", settings)
        llm = EngineFactory.create("openai", settings)

        assert isinstance(deepl, DeepLEngine)
        assert deepl.config.retry.max_attempts == 5
        assert isinstance(google, GoogleTranslateEngine)
        assert google.config.max_batch_size == 128
        assert isinstance(llm, LLMEngine)
        assert llm.config.rate_limit.units_per_minute == 30000

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            EngineFactory.create("babelfish", Settings())
