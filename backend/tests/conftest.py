"""Shared fixtures and fakes for the translation core tests."""

import asyncio
from typing import Dict, List, Optional, Set

import pytest

from mangekyo.core.translation.engines import EngineConfig, EngineOutput, TranslationEngine
from mangekyo.core.translation.engines.retry import RetryConfig
from mangekyo.core.translation.errors import EngineError, ErrorKind
from mangekyo.core.translation.models import TranslateOptions

NO_WAIT_RETRY = RetryConfig(
    max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=0.0, max_retry_after=0.0
)


class FakeEngine(TranslationEngine):
    """Engine that answers from a table and counts provider calls."""

    def __init__(
        self,
        engine_id: str = "fake",
        responses: Optional[Dict[str, str]] = None,
        delay: float = 0.0,
        errors: Optional[List[Exception]] = None,
        fail_on: Optional[Set[str]] = None,
        config: Optional[EngineConfig] = None,
    ):
        self._engine_id = engine_id
        super().__init__(config or EngineConfig(retry=NO_WAIT_RETRY))
        self.responses = responses or {}
        self.delay = delay
        self.errors = list(errors or [])
        self.fail_on = set(fail_on or ())
        self.calls: List[str] = []
        self.options: List[TranslateOptions] = []

    @property
    def engine_id(self) -> str:
        return self._engine_id

    def supported_languages(self) -> List[str]:
        return []

    async def _translate_one(self, text: str, options: TranslateOptions) -> EngineOutput:
        self.calls.append(text)
        self.options.append(options)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        if text in self.fail_on:
            raise EngineError(f"Rejected: {text}", ErrorKind.INVALID_REQUEST, engine=self.engine_id)
        return EngineOutput(
            text=self.responses.get(text, f"EN:{text}"),
            confidence=0.95,
            characters_billed=len(text),
        )


@pytest.fixture
def fake_engine():
    return FakeEngine()
