"""Translation engine abstraction.

This module provides the abstract engine adapter. Concrete providers only
implement the raw provider call; chunking, rate limiting, retry/backoff,
timeouts, batch isolation and usage accounting live here.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field
from tenacity import RetryCallState

from ..errors import EngineError, ErrorKind, TranslationError
from ..models import HealthStatus, TranslateOptions, TranslationResult, UsageStats
from .chunking import chunk_joiner, split_into_chunks
from .rate_limiter import RateLimitConfig, RateLimiter
from .retry import RetryConfig, call_with_retry

logger = logging.getLogger(__name__)

QUOTA_WARNING_RATIO = 0.8
DEGRADED_LATENCY_MS = 5000


class EngineConfig(BaseModel):
    """Configuration for one engine adapter instance."""

    api_key: Optional[str] = Field(default=None, description="Provider credential")
    model: Optional[str] = Field(default=None, description="Model id for LLM engines")
    base_url: Optional[str] = Field(default=None, description="Custom API endpoint")
    timeout: float = Field(default=30.0, gt=0, description="Hard timeout per call (s)")
    max_text_length: int = Field(default=5000, gt=0, description="Characters per request")
    max_batch_size: int = Field(default=50, gt=0, description="Texts per batch request")
    monthly_quota: Optional[int] = Field(
        default=None, description="Monthly characters/tokens allowed, for warnings"
    )
    price_per_million_chars: float = Field(default=0.0, ge=0)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


@dataclass
class EngineOutput:
    """Raw output of one provider call for one text."""

    text: str
    detected_language: Optional[str] = None
    confidence: float = 0.9
    tokens_in: int = 0
    tokens_out: int = 0
    characters_billed: int = 0
    cost_usd: float = 0.0


def error_from_status(
    status_code: int,
    message: str,
    engine: str,
    retry_after: Optional[float] = None,
) -> EngineError:
    """Map an HTTP status to a typed engine error.

    Providers override specific codes before falling back to this mapping.
    """
    lowered = message.lower()
    if status_code in (401, 403):
        kind = ErrorKind.AUTH_INVALID
    elif status_code == 408:
        kind = ErrorKind.TIMEOUT
    elif status_code == 413:
        kind = ErrorKind.TEXT_TOO_LONG
    elif status_code == 429:
        kind = ErrorKind.RATE_LIMITED
    elif status_code >= 500:
        kind = ErrorKind.SERVER_ERROR
    elif "quota" in lowered:
        kind = ErrorKind.QUOTA_EXCEEDED
    elif "language" in lowered:
        kind = ErrorKind.UNSUPPORTED_LANGUAGE
    else:
        kind = ErrorKind.INVALID_REQUEST
    return EngineError(
        f"HTTP {status_code}: {message}",
        kind,
        engine=engine,
        status_code=status_code,
        retry_after=retry_after,
    )


def error_from_transport(exc: httpx.HTTPError, engine: str) -> EngineError:
    """Map an httpx transport failure to a transient engine error."""
    if isinstance(exc, httpx.TimeoutException):
        return EngineError(f"Request timed out: {exc}", ErrorKind.TIMEOUT, engine=engine)
    return EngineError(f"Network error: {exc}", ErrorKind.SERVER_ERROR, engine=engine)


class TranslationEngine(ABC):
    """Abstract translation engine adapter.

    Provides a uniform translate / translate_batch / health_check contract
    regardless of the underlying provider. Adapters never switch providers
    on their own; fallback is the orchestrator's decision.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self.rate_limiter = RateLimiter(config.rate_limit, name=self.engine_id)
        self._usage = UsageStats(engine=self.engine_id, quota_limit=config.monthly_quota)

    @property
    @abstractmethod
    def engine_id(self) -> str:
        """Stable engine identifier used in cache keys and results."""
        pass

    @property
    def name(self) -> str:
        return self.engine_id

    @abstractmethod
    async def _translate_one(self, text: str, options: TranslateOptions) -> EngineOutput:
        """Call the provider for a single chunk of text."""
        pass

    async def _translate_many(
        self, texts: List[str], options: TranslateOptions
    ) -> List[EngineOutput]:
        """Call the provider for several texts. Providers with a native batch API override this."""
        return [await self._translate_one(text, options) for text in texts]

    @abstractmethod
    def supported_languages(self) -> List[str]:
        """Language codes this engine can translate between."""
        pass

    def rate_units(self, text: str) -> int:
        """Units charged against the per-minute volume limit."""
        return len(text)

    async def close(self) -> None:
        """Release provider resources."""
        return None

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def translate(self, text: str, options: TranslateOptions) -> TranslationResult:
        """Translate one text, splitting it at sentence boundaries if needed.

        Args:
            text: Text to translate (already marker-masked)
            options: Per-call options

        Returns:
            TranslationResult for the whole text

        Raises:
            EngineError: Typed failure after retries are exhausted
        """
        if not text or not text.strip():
            return TranslationResult(
                text="", original_text=text, confidence=0.0, engine=self.engine_id,
                detected_language=options.source_lang,
            )

        self._check_languages(options)
        started = time.time()
        chunks = split_into_chunks(text, self.config.max_text_length)
        outputs = []
        for chunk in chunks:
            output = await self._call(lambda c=chunk: self._translate_one(c, options), chunk, options)
            outputs.append(output)

        if len(chunks) > 1:
            logger.info(f"[{self.name}] Translated {len(chunks)} chunks for {len(text)} characters")
        return self._to_result(text, outputs, options, started)

    async def translate_batch(
        self, texts: List[str], options: TranslateOptions
    ) -> List[TranslationResult]:
        """Translate several texts.

        Texts are sent in provider-sized groups. When a group fails, its items
        are retried individually so a single bad item only fails itself; a
        failed item gets a placeholder result instead of aborting the batch.
        """
        results: List[Optional[TranslationResult]] = [None] * len(texts)
        size = self.config.max_batch_size
        self._check_languages(options)

        for offset in range(0, len(texts), size):
            group = texts[offset:offset + size]
            indexes = list(range(offset, offset + len(group)))
            batchable = [
                i for i in indexes
                if texts[i].strip() and len(texts[i]) <= self.config.max_text_length
            ]

            if len(batchable) > 1:
                started = time.time()
                group_texts = [texts[i] for i in batchable]
                try:
                    outputs = await self._call(
                        lambda t=group_texts: self._translate_many(t, options),
                        "".join(group_texts),
                        options,
                    )
                    for i, output in zip(batchable, outputs):
                        results[i] = self._to_result(texts[i], [output], options, started)
                except TranslationError as e:
                    if e.kind in (ErrorKind.AUTH_INVALID, ErrorKind.QUOTA_EXCEEDED):
                        for i in batchable:
                            results[i] = TranslationResult.failure(texts[i], self.engine_id, e)
                    else:
                        logger.warning(f"[{self.name}] Batch request failed ({e}), retrying items one by one")

            for i in indexes:
                if results[i] is not None:
                    continue
                try:
                    results[i] = await self.translate(texts[i], options)
                except TranslationError as e:
                    logger.error(f"[{self.name}] Batch item {i} failed: {e}")
                    results[i] = TranslationResult.failure(texts[i], self.engine_id, e)

        return [r for r in results if r is not None]

    async def health_check(self) -> HealthStatus:
        """Translate a short probe and report status and latency."""
        started = time.time()
        try:
            await self._translate_one(
                "hello", TranslateOptions(source_lang="en", target_lang="es")
            )
        except (TranslationError, asyncio.TimeoutError) as e:
            return HealthStatus(
                engine=self.engine_id,
                status="unhealthy",
                latency_ms=int((time.time() - started) * 1000),
                error=str(e),
            )
        latency_ms = int((time.time() - started) * 1000)
        return HealthStatus(
            engine=self.engine_id,
            status="degraded" if latency_ms > DEGRADED_LATENCY_MS else "healthy",
            latency_ms=latency_ms,
        )

    def get_usage_stats(self) -> UsageStats:
        """Snapshot of running usage counters."""
        return self._usage.model_copy()

    def is_quota_approaching(self) -> bool:
        ratio = self._usage.quota_used_ratio
        return ratio is not None and ratio >= QUOTA_WARNING_RATIO

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_languages(self, options: TranslateOptions) -> None:
        supported = self.supported_languages()
        if not supported:
            return
        for code in (options.source_lang, options.target_lang):
            if code != "auto" and code.split("-")[0].lower() not in supported:
                raise EngineError(
                    f"Language '{code}' is not supported",
                    ErrorKind.UNSUPPORTED_LANGUAGE,
                    engine=self.engine_id,
                )

    def _on_retry(self, state: RetryCallState) -> None:
        self._usage.retries += 1

    async def _call(self, fn, text: str, options: TranslateOptions):
        """Run one provider call under rate limiting, timeout and retry."""
        timeout = options.timeout or self.config.timeout

        async def attempt():
            await self.rate_limiter.acquire(self.rate_units(text))
            try:
                return await asyncio.wait_for(fn(), timeout=timeout)
            except asyncio.TimeoutError:
                raise EngineError(
                    f"No response within {timeout}s", ErrorKind.TIMEOUT, engine=self.engine_id
                )

        try:
            return await call_with_retry(attempt, self.config.retry, self.engine_id, self._on_retry)
        except TranslationError:
            self._usage.errors += 1
            raise

    def _to_result(
        self,
        original: str,
        outputs: List[EngineOutput],
        options: TranslateOptions,
        started: float,
    ) -> TranslationResult:
        joiner = chunk_joiner(options.target_lang)
        text = joiner.join(o.text.strip() for o in outputs) if len(outputs) > 1 else outputs[0].text
        tokens_in = sum(o.tokens_in for o in outputs)
        tokens_out = sum(o.tokens_out for o in outputs)
        characters = sum(o.characters_billed or 0 for o in outputs) or len(original)
        cost = sum(o.cost_usd for o in outputs)
        if not cost and self.config.price_per_million_chars:
            cost = characters / 1_000_000 * self.config.price_per_million_chars

        self._usage.requests += len(outputs)
        self._usage.characters += characters
        self._usage.tokens_in += tokens_in
        self._usage.tokens_out += tokens_out
        self._usage.cost_usd += cost
        self._usage.last_request_at = datetime.utcnow()

        return TranslationResult(
            text=text,
            original_text=original,
            detected_language=outputs[0].detected_language or options.source_lang,
            confidence=min(o.confidence for o in outputs),
            engine=self.engine_id,
            cost_usd=cost,
            tokens_in=tokens_in or None,
            tokens_out=tokens_out or None,
            characters_billed=characters,
            latency_ms=int((time.time() - started) * 1000),
        )
