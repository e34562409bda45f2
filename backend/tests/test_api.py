"""Tests for the HTTP API."""

import asyncio

import httpx
import pytest

from conftest import FakeEngine
from mangekyo.core.translation import EngineError, ErrorKind
from mangekyo.core.translation.orchestrator import TranslationOrchestrator
from mangekyo.main import app


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def orchestrator(engine):
    app.state.orchestrator = TranslationOrchestrator(primary=engine)
    yield app.state.orchestrator
    del app.state.orchestrator


def call(method: str, path: str, **kwargs) -> httpx.Response:
    async def run():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            return await client.request(method, path, **kwargs)

    return asyncio.run(run())


class TestTranslateRoutes:
    """Translation endpoints"""

    def test_translate(self, orchestrator):
        response = call("POST", "/api/v1/translate", json={"source_text": "おはよう"})

        assert response.status_code == 200
        body = response.json()
        assert body["text"] == "EN:おはよう"
        assert body["engine"] == "fake"
        assert body["from_cache"] is False

    def test_engine_error_maps_to_status(self, orchestrator, engine):
        engine.errors.append(EngineError("Bad key", ErrorKind.AUTH_INVALID, engine="fake"))

        response = call("POST", "/api/v1/translate", json={"source_text": "おはよう"})
        assert response.status_code == 401
        assert response.json()["detail"]["kind"] == "AUTH_INVALID"

    def test_batch_reports_failures(self, orchestrator, engine):
        engine.fail_on.add("壊れた")

        response = call(
            "POST",
            "/api/v1/translate/batch",
            json={"requests": [{"source_text": "はい"}, {"source_text": "壊れた"}]},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["failed"] == 1
        assert body["results"][1]["error_kind"] == "INVALID_REQUEST"

    def test_empty_batch_is_rejected(self, orchestrator):
        response = call("POST", "/api/v1/translate/batch", json={"requests": []})
        assert response.status_code == 422

    def test_not_ready_without_orchestrator(self):
        response = call("POST", "/api/v1/translate", json={"source_text": "おはよう"})
        assert response.status_code == 503


class TestCacheRoutes:
    """Cache management endpoints"""

    def test_stats_after_hit(self, orchestrator):
        call("POST", "/api/v1/translate", json={"source_text": "はい"})
        call("POST", "/api/v1/translate", json={"source_text": "はい"})

        body = call("GET", "/api/v1/cache/stats").json()
        assert body["hits"] == 1
        assert body["memory_size"] == 1
        assert body["hit_rate"] == pytest.approx(0.5)

    def test_invalidate_by_pattern(self, orchestrator):
        call("POST", "/api/v1/translate", json={"source_text": "はい"})

        body = call("POST", "/api/v1/cache/invalidate", json={"pattern": "はい"}).json()
        assert body == {"pattern": "はい", "entries_deleted": 1}

    def test_bad_regex(self, orchestrator):
        response = call("POST", "/api/v1/cache/invalidate", json={"pattern": "[", "regex": True})
        assert response.status_code == 400


class TestSessionRoutes:
    """Reading session endpoints"""

    def test_start_session_and_record_term(self, orchestrator):
        summary = call("POST", "/api/v1/sessions", json={"manga_id": "manga-1"}).json()
        assert summary["manga_id"] == "manga-1"

        added = call("POST", "/api/v1/sessions/terms", json={"term": "魔王", "proposed": "Demon King"}).json()
        assert added["action"] == "add"
        assert added["consistent"] is True

        export = call("GET", "/api/v1/sessions/export").json()
        assert "魔王" in export["terminology"]


class TestEngineRoutes:
    """Engine status endpoints"""

    def test_usage(self, orchestrator):
        call("POST", "/api/v1/translate", json={"source_text": "こんにちは"})

        usage = call("GET", "/api/v1/engines/usage").json()
        assert usage[0]["engine"] == "fake"
        assert usage[0]["quota_used"] == 5

    def test_health(self, orchestrator):
        health = call("GET", "/api/v1/engines/health").json()
        assert health[0]["status"] == "healthy"


class TestAnalyzeRoute:
    """Marker usage analysis endpoint"""

    def test_analyze(self, orchestrator):
        response = call("POST", "/api/v1/translate/analyze", json={"texts": ["田中様", "ドン"]})

        assert response.status_code == 200
        body = response.json()
        assert body["honorifics"]["total"] == 1
        assert body["honorifics"]["recommended_mode"] == "preserve"
        assert body["sfx"]["unique"] == ["don"]
