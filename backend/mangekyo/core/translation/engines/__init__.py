"""Translation engine adapters.

- TranslationEngine: uniform contract with rate limiting, retry and chunking
- DeepLEngine / GoogleTranslateEngine: REST providers over httpx
- LLMEngine: chat models through LiteLLM
- EngineFactory: builds adapters from settings
"""

from .base import EngineConfig, EngineOutput, TranslationEngine
from .chunking import split_into_chunks
from .deepl import DeepLEngine
from .factory import EngineFactory
from .google import GoogleTranslateEngine
from .llm import LLMEngine
from .rate_limiter import RateLimitConfig, RateLimiter
from .retry import RetryConfig, call_with_retry

__all__ = [
    "DeepLEngine",
    "EngineConfig",
    "EngineFactory",
    "EngineOutput",
    "GoogleTranslateEngine",
    "LLMEngine",
    "RateLimitConfig",
    "RateLimiter",
    "RetryConfig",
    "TranslationEngine",
    "call_with_retry",
    "split_into_chunks",
]
