"""Factory for creating translation engines from settings."""

from typing import Any, Dict, Optional

from mangekyo.config import Settings

from .base import EngineConfig, TranslationEngine
from .deepl import DeepLEngine, PRO_MAX_TEXT_LENGTH
from .google import GoogleTranslateEngine
from .llm import LLMEngine
from .rate_limiter import RateLimitConfig
from .retry import RetryConfig


class EngineFactory:
    """Factory for creating engine adapters."""

    # Provider defaults
    ENGINE_CONFIGS: Dict[str, Dict[str, Any]] = {
        "deepl": {
            "class": DeepLEngine,
            "max_text_length": PRO_MAX_TEXT_LENGTH,
            "max_batch_size": 50,
            "rate_limit": RateLimitConfig(requests_per_minute=60),
            "price_per_million_chars": 25.0,
        },
        "google": {
            "class": GoogleTranslateEngine,
            "max_text_length": 5000,
            "max_batch_size": 128,
            "rate_limit": RateLimitConfig(requests_per_minute=60),
            "price_per_million_chars": 20.0,
        },
        "openai": {
            "class": LLMEngine,
            "max_text_length": 4000,
            "max_batch_size": 1,
            "rate_limit": RateLimitConfig(requests_per_minute=500, units_per_minute=30000),
            "timeout": 60.0,
            "retry_base_delay": 2.0,
            "retry_max_delay": 30.0,
        },
    }

    @classmethod
    def api_key_for(cls, engine_id: str, settings: Settings) -> Optional[str]:
        return {
            "deepl": settings.deepl_api_key,
            "google": settings.google_api_key,
            "openai": settings.openai_api_key,
        }.get(engine_id)

    @classmethod
    def create(cls, engine_id: str, settings: Settings) -> TranslationEngine:
        """Create an engine adapter.

        Args:
            engine_id: deepl, google or openai
            settings: Application settings

        Returns:
            Configured TranslationEngine

        Raises:
            ValueError: If engine_id is unknown
        """
        defaults = cls.ENGINE_CONFIGS.get(engine_id)
        if defaults is None:
            raise ValueError(f"Unknown engine: {engine_id}")

        config = EngineConfig(
            api_key=cls.api_key_for(engine_id, settings),
            model=settings.openai_model if engine_id == "openai" else None,
            base_url=settings.openai_base_url if engine_id == "openai" else None,
            timeout=defaults.get("timeout", settings.engine_timeout),
            max_text_length=defaults["max_text_length"],
            max_batch_size=defaults["max_batch_size"],
            price_per_million_chars=defaults.get("price_per_million_chars", 0.0),
            rate_limit=defaults["rate_limit"],
            retry=RetryConfig(
                max_attempts=settings.max_retries,
                base_delay=defaults.get("retry_base_delay", settings.retry_base_delay),
                max_delay=defaults.get("retry_max_delay", settings.retry_max_delay),
            ),
        )
        return defaults["class"](config)
